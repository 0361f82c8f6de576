import string
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    HttpUrl,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    WrapValidator,
    model_validator,
)

from app.models import Role


# --- Identity ---

class Identity(BaseModel):
    """Read-only snapshot of the authenticated user, attached by the pipeline."""

    id: int
    email: str
    username: str
    role: Role
    verified: bool
    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_user(cls, user) -> "Identity":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            role=user.role,
            verified=user.is_verified,
        )


class TokenClaims(BaseModel):
    """Claims a credential verifier extracts from a bearer token."""

    user_id: int
    expires_at: int | None = None


# --- Pagination ---

class PaginatedResponse(BaseModel):
    success: bool = True
    items: list
    total: int
    page: int
    page_size: int
    pages: int


# --- Request bodies ---
#
# Each rule raises ValueError with the text the client sees.  Fields are
# validated in declaration order and every failing field is reported, so
# one 422 response lists all of a body's problems.

MAX_ID = 2**31 - 1

CATEGORY_MIN_LENGTH = 3
CATEGORY_MAX_LENGTH = 30
COMMENT_MAX_LENGTH = 1000
TITLE_MAX_LENGTH = 150
DESCRIPTION_MAX_LENGTH = 300
BIO_MAX_LENGTH = 500
PASSWORD_MIN_LENGTH = 8
# Column widths of users.email and the image URL columns.
EMAIL_MAX_LENGTH = 255
IMAGE_MAX_LENGTH = 500

IMAGE_MESSAGE = "Image must be a valid http(s) URL."

_HTTP_URL = TypeAdapter(HttpUrl)


def is_valid_id(value: Any) -> bool:
    # bool is an int subclass; reject it explicitly.
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= MAX_ID


def error_messages(exc: ValidationError) -> list[str]:
    """Client-facing messages of *exc*, in field order."""
    messages = []
    for error in exc.errors():
        if error["type"] == "value_error":
            messages.append(str(error["ctx"]["error"]))
        else:
            messages.append(error["msg"])
    return messages


def _text(missing: str, invalid: str = "") -> WrapValidator:
    """Strip a required string, then apply the field's constraints."""

    def check(value, handler):
        if not isinstance(value, str) or not value.strip():
            raise ValueError(missing)
        try:
            return handler(value.strip())
        except ValidationError as exc:
            raise ValueError(invalid) from exc

    return WrapValidator(check)


def _email(value, handler):
    if not isinstance(value, str) or not value.strip():
        raise ValueError("Email is required.")
    value = value.strip()
    if len(value) > EMAIL_MAX_LENGTH:
        raise ValueError(f"Email must be no more than {EMAIL_MAX_LENGTH} characters.")
    try:
        return handler(value)
    except ValidationError as exc:
        raise ValueError("Please provide a valid email address.") from exc


def _password(value, handler):
    if not isinstance(value, str) or not value:
        raise ValueError("Password is required.")
    try:
        value = handler(value)
    except ValidationError as exc:
        raise ValueError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.") from exc
    if not any(c in string.ascii_letters for c in value) or not any(c in string.digits for c in value):
        raise ValueError("Password must contain at least one letter and one number.")
    return value


def _password_present(value):
    if not isinstance(value, str) or not value:
        raise ValueError("Password is required.")
    return value


def _image(value):
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError(IMAGE_MESSAGE)
    value = value.strip()
    if len(value) > IMAGE_MAX_LENGTH:
        raise ValueError(f"Image URL must be no more than {IMAGE_MAX_LENGTH} characters.")
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError as exc:
        raise ValueError(IMAGE_MESSAGE) from exc
    return value


def _category_id(value):
    if value is not None and not is_valid_id(value):
        raise ValueError("Category must be a valid category id.")
    return value


def _bio(value):
    if value is not None and not isinstance(value, str):
        raise ValueError("Bio must be text.")
    if value and len(value) > BIO_MAX_LENGTH:
        raise ValueError(f"Bio must be no more than {BIO_MAX_LENGTH} characters.")
    return value


Email = Annotated[EmailStr, WrapValidator(_email)]
Password = Annotated[str, StringConstraints(min_length=PASSWORD_MIN_LENGTH), WrapValidator(_password)]
Username = Annotated[
    str,
    StringConstraints(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$"),
    _text(
        "Username is required.",
        "Username must be 3 to 30 characters long and contain only letters, numbers and underscores.",
    ),
]
ImageUrl = Annotated[str | None, BeforeValidator(_image)]


class RequestBody(BaseModel):
    """Base for JSON bodies: absent fields still run their rules."""

    model_config = ConfigDict(validate_default=True)


class CategoryIn(RequestBody):
    category: Annotated[
        str,
        StringConstraints(min_length=CATEGORY_MIN_LENGTH, max_length=CATEGORY_MAX_LENGTH),
        _text(
            "No category provided. Please provide a category.",
            f"Category must be at least {CATEGORY_MIN_LENGTH} characters long "
            f"and no more than {CATEGORY_MAX_LENGTH}.",
        ),
    ] = None


class CommentIn(RequestBody):
    comment: Annotated[
        str,
        StringConstraints(max_length=COMMENT_MAX_LENGTH),
        _text(
            "Comment cannot be empty.",
            f"Comment must be no more than {COMMENT_MAX_LENGTH} characters.",
        ),
    ] = None


class ArticleIn(RequestBody):
    title: Annotated[
        str,
        StringConstraints(max_length=TITLE_MAX_LENGTH),
        _text("Title is required.", f"Title must be no more than {TITLE_MAX_LENGTH} characters."),
    ] = None
    description: Annotated[
        str,
        StringConstraints(max_length=DESCRIPTION_MAX_LENGTH),
        _text(
            "Description is required.",
            f"Description must be no more than {DESCRIPTION_MAX_LENGTH} characters.",
        ),
    ] = None
    body: Annotated[str, _text("Article body is required.")] = None
    category: Annotated[int | None, BeforeValidator(_category_id)] = None
    image: ImageUrl = None


class SignupIn(RequestBody):
    email: Email = None
    username: Username = None
    password: Password = None


class LoginIn(RequestBody):
    """Login checks presence only; the password rules apply when one is set."""

    email: Annotated[str, _text("Email is required.")] = None
    password: Annotated[str, BeforeValidator(_password_present)] = None


class EmailIn(RequestBody):
    email: Email = None


class PasswordIn(RequestBody):
    password: Password = None


class ProfileUpdate(BaseModel):
    """
    Partial profile change.  Only the fields present in the body are
    validated and applied; ``null`` or ``""`` clears bio and image.
    """

    username: Username = None
    bio: Annotated[str | None, BeforeValidator(_bio)] = None
    image: ImageUrl = None

    @model_validator(mode="after")
    def require_a_change(self) -> "ProfileUpdate":
        if not self.model_fields_set & {"username", "bio", "image"}:
            raise ValueError("Please provide at least one of username, bio or image to update.")
        return self
