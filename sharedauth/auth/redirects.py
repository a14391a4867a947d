"""Redirect target handling across participating services."""

from typing import Optional
from urllib.parse import urljoin, urlsplit


def origin(url: str) -> str:
    """Scheme and authority of ``url``, lower-cased."""
    parts = urlsplit(url)
    return f'{parts.scheme}://{parts.netloc}'.lower()


def _is_sign_in(path: str, sign_in_path: str) -> bool:
    return (path.rstrip('/') or '/') == (sign_in_path.rstrip('/') or '/')


def _relative_path(path: str, root: str) -> Optional[str]:
    """``path`` relative to the root path of the service, if it is under it."""
    if not root:
        return path
    if path == root or path.startswith(root + '/'):
        return path[len(root):] or '/'
    return None


def _within(hostname: Optional[str], domain: str) -> bool:
    if not hostname:
        return False
    domain = domain.lstrip('.').lower()
    return hostname == domain or hostname.endswith('.' + domain)


def resolve_redirect(target: Optional[str], base_url: str,
                     login_url: Optional[str] = None,
                     sign_in_path: str = '/login',
                     trusted_domain: Optional[str] = None) -> str:
    """
    Decide where to send the user for a requested redirect ``target``.

    - A target that resolves to this service's own sign-in endpoint is
      rewritten to ``login_url``: only the issuing service can start a login.
    - A relative target is resolved against ``base_url``.
    - An absolute target on the same origin as ``base_url`` is kept.
    - An absolute target on a host within ``trusted_domain`` is kept, if a
      trusted domain is given.
    - Anything else falls back to ``base_url``.

    Parameters
    ----------
    target : str or None
    base_url : str
        Origin (and optional root path) of the current service.
    login_url : str
        Absolute login URL of the issuing service.
    sign_in_path : str
        Path of this service's own sign-in endpoint.
    trusted_domain : str
        Parent domain whose subdomains are acceptable targets.

    Returns
    -------
    str

    """
    base_url = base_url.rstrip('/')
    if not target:
        return base_url
    target = target.strip()
    if target.startswith('/') and not target.startswith('//'):
        resolved = base_url + target
    else:
        resolved = urljoin(base_url + '/', target)
    parts = urlsplit(resolved)
    if parts.scheme not in ('http', 'https') or not parts.netloc:
        return base_url

    same_origin = origin(resolved) == origin(base_url)
    path = _relative_path(parts.path, urlsplit(base_url).path)
    if same_origin and login_url and path is not None \
            and _is_sign_in(path, sign_in_path):
        return login_url
    if same_origin:
        return resolved
    if trusted_domain and _within(parts.hostname, trusted_domain):
        return resolved
    return base_url
