"""
actions/schemas.py -- Input schemas for the server actions.

Pydantic v2 models. Messages are written for people, not for developers: the
first failing field's message is what the form shows, so each validator
raises a PydanticCustomError whose text is the whole user-facing message.

Fields default to "" so an absent form field fails with the same message as
an empty one ("Name is required", not "Field required").
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_core import PydanticCustomError

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


def _required(value: str, message: str) -> str:
    if not value:
        raise PydanticCustomError("required", message)
    return value


def _email(value: str) -> str:
    if len(value) > 255 or not EMAIL_PATTERN.match(value):
        raise PydanticCustomError("invalid_email", "Invalid email")
    return value


class _FormModel(BaseModel):
    # validate_default: an absent field must fail the same way an empty one does.
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore", validate_default=True)

    @field_validator("*", mode="before")
    @classmethod
    def absent_is_empty(cls, value: Any) -> Any:
        return _none_to_empty(value)


class MessageInput(_FormModel):
    """Contact form payload."""

    name: str = ""
    email: str = ""
    message: str = ""

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        return _required(value, "Name is required")

    @field_validator("email")
    @classmethod
    def email_valid(cls, value: str) -> str:
        return _email(value)

    @field_validator("message")
    @classmethod
    def message_required(cls, value: str) -> str:
        _required(value, "Message is required")
        if len(value) > 5000:
            raise PydanticCustomError("too_long", "Message must be at most 5000 characters")
        return value


class SignInInput(_FormModel):
    email: str = ""
    password: str = ""

    @field_validator("email")
    @classmethod
    def email_valid(cls, value: str) -> str:
        return _email(value)

    @field_validator("password")
    @classmethod
    def password_required(cls, value: str) -> str:
        return _required(value, "Password is required")


class SignUpInput(_FormModel):
    name: str = ""
    email: str = ""
    password: str = ""

    @field_validator("name")
    @classmethod
    def name_required(cls, value: str) -> str:
        return _required(value, "Name is required")

    @field_validator("email")
    @classmethod
    def email_valid(cls, value: str) -> str:
        return _email(value)

    @field_validator("password")
    @classmethod
    def password_length(cls, value: str) -> str:
        if len(value) < MIN_PASSWORD_LENGTH:
            raise PydanticCustomError(
                "too_short", "Password must be at least {min} characters", {"min": MIN_PASSWORD_LENGTH}
            )
        if len(value) > MAX_PASSWORD_LENGTH:
            raise PydanticCustomError(
                "too_long", "Password must be at most {max} characters", {"max": MAX_PASSWORD_LENGTH}
            )
        return value


class MagicLinkInput(_FormModel):
    email: str = ""
    name: str = ""
    callback_url: str = "/"

    @field_validator("email")
    @classmethod
    def email_valid(cls, value: str) -> str:
        return _email(value)
