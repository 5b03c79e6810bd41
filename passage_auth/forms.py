"""Forms for authentication workflows."""
from __future__ import annotations

from flask_wtf import FlaskForm
from wtforms import BooleanField, EmailField, HiddenField, PasswordField, StringField, SubmitField
from wtforms.validators import DataRequired, Email, EqualTo, Length, Regexp

from passage_auth.validation import PASSWORD_MAX, PASSWORD_MIN, USERNAME_MAX, USERNAME_MIN

_PASSWORD_LENGTH = Length(
    min=PASSWORD_MIN,
    max=PASSWORD_MAX,
    message=f"Password must be between {PASSWORD_MIN} and {PASSWORD_MAX} characters.",
)


class LoginForm(FlaskForm):
    """Authenticate an existing user."""

    username = StringField("Username", validators=[DataRequired()])
    password = PasswordField("Password", validators=[DataRequired()])
    remember_me = BooleanField("Remember me")
    redirect_to = HiddenField()
    submit = SubmitField("Log in")


class RegisterForm(FlaskForm):
    """Start onboarding by proving ownership of an email address."""

    email = EmailField("Email", validators=[DataRequired(), Email()])
    submit = SubmitField("Submit")


class VerifyForm(FlaskForm):
    """Enter the code that was emailed for onboarding or a password reset."""

    code = StringField("Code", validators=[DataRequired(), Length(max=10)])
    type = HiddenField(validators=[DataRequired(), Length(max=32)])
    target = HiddenField(validators=[DataRequired(), Length(max=255)])
    redirect_to = HiddenField()
    submit = SubmitField("Submit")


class OnboardingForm(FlaskForm):
    """Finish creating the account once the email is verified."""

    username = StringField(
        "Username",
        validators=[
            DataRequired(),
            Length(min=USERNAME_MIN, max=USERNAME_MAX, message="Username must be between 3 and 20 characters."),
            Regexp(r"^[A-Za-z0-9_]+$", message="Username can only include letters, numbers, and underscores."),
        ],
    )
    name = StringField("Name", validators=[DataRequired(), Length(max=120)])
    password = PasswordField("Password", validators=[DataRequired(), _PASSWORD_LENGTH])
    confirm_password = PasswordField(
        "Confirm password",
        validators=[DataRequired(), EqualTo("password", message="The passwords must match.")],
    )
    remember_me = BooleanField("Remember me")
    submit = SubmitField("Create an account")


class ForgotPasswordForm(FlaskForm):
    """Request a password reset code by email or username."""

    identifier = StringField("Username or Email", validators=[DataRequired(), Length(max=255)])
    submit = SubmitField("Recover password")


class ResetPasswordForm(FlaskForm):
    """Choose a new password after the reset code was verified."""

    password = PasswordField("New password", validators=[DataRequired(), _PASSWORD_LENGTH])
    confirm_password = PasswordField(
        "Confirm password",
        validators=[DataRequired(), EqualTo("password", message="The passwords must match.")],
    )
    submit = SubmitField("Reset password")
