"""Forms for login and account creation on the issuing service."""

from wtforms import Form, PasswordField, StringField, ValidationError
from wtforms.validators import DataRequired, Length, Regexp

from ..store.passwords import MAX_BYTES

EMAIL = r'^[^\s@]+@[^\s@]+\.[^\s@]+$'


def encoded_length(max_bytes: int):
    """Limit the UTF-8 encoded length of a field."""
    message = f'Password cannot be longer than {max_bytes} bytes'

    def _validate(form: Form, field: PasswordField) -> None:
        if field.data and len(field.data.encode('utf-8')) > max_bytes:
            raise ValidationError(message)
    return _validate


class LoginForm(Form):
    """Log in form."""

    email = StringField('E-mail', validators=[DataRequired()])
    password = PasswordField('Password', validators=[DataRequired()])


class SignupForm(Form):
    """Create a new account."""

    name = StringField('Name', validators=[
        DataRequired(),
        Length(min=2, max=50, message='Name must be 2 to 50 characters long')
    ])
    email = StringField('E-mail', validators=[
        DataRequired(),
        Regexp(EMAIL, message='Please enter a valid email address')
    ])
    password = PasswordField('Password', validators=[
        DataRequired(),
        Length(min=6, message='Password must be at least 6 characters long'),
        encoded_length(MAX_BYTES)
    ])
