"""Exceptions."""


class InvalidToken(ValueError):
    """Token is invalid (e.g. tampered with, or signed with another key)."""


class ExpiredToken(InvalidToken):
    """Token has expired."""
