"""
Form validation for dialogs, auth pages and report ranges.

Each form is a pydantic model. `validate_form` turns submitted form data into
either a validated form or a field -> message mapping rendered inline next to
the offending inputs, before any backend call is made.
"""

import re
from datetime import date, datetime
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .filters import TRUE_VALUES
from .schemas import BookLevel

FormT = TypeVar("FormT", bound="BaseForm")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def form_data(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Plain dict of submitted values; multi-dicts keep the first value per key."""
    if hasattr(data, "to_dict"):
        return data.to_dict()
    return dict(data)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip() == "":
        return None
    return value


class BaseForm(BaseModel):
    """
    Base for all forms.

    `messages` overrides pydantic's wording per field; `error_field` receives
    errors raised by model-level validators.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    messages: ClassVar[Dict[str, str]] = {}
    error_field: ClassVar[Optional[str]] = None

    def payload(self) -> Dict[str, Any]:
        """JSON body for the backend."""
        return self.model_dump(mode="json")


def _error_message(error: Dict[str, Any], messages: Mapping[str, str], field: Optional[str]) -> str:
    if error["type"] == "value_error" and "error" in error.get("ctx", {}):
        return str(error["ctx"]["error"])
    if field and field in messages:
        return messages[field]
    return error["msg"]


def validate_form(form_cls: Type[FormT], data: Mapping[str, Any]) -> Tuple[Optional[FormT], Dict[str, str]]:
    """
    Validate submitted data.

    Returns:
        (form, {}) on success, (None, {field: message}) on failure; only the
        first error per field is kept.
    """
    try:
        return form_cls.model_validate(form_data(data)), {}
    except ValidationError as e:
        errors: Dict[str, str] = {}
        for error in e.errors():
            loc = error.get("loc") or ()
            field = str(loc[0]) if loc else form_cls.error_field
            key = field or "__all__"
            if key not in errors:
                errors[key] = _error_message(error, form_cls.messages, field)
        return None, errors


# =============================================================================
# Entity forms
# =============================================================================


class NameForm(BaseForm):
    """Requester / approver / author / publisher."""

    name: str = Field(min_length=1, max_length=255)

    messages = {"name": "Name is required"}


class PrintRequestForm(BaseForm):
    requester_id: int
    approver_id: int
    color_copies: int = Field(default=0, ge=0)
    bw_copies: int = Field(default=0, ge=0)
    requested_at: datetime
    description: Optional[str] = None

    messages = {
        "requester_id": "Select a requester",
        "approver_id": "Select an approver",
        "color_copies": "Copy counts must be whole numbers",
        "bw_copies": "Copy counts must be whole numbers",
        "requested_at": "Request date and time are required",
    }
    error_field = "color_copies"

    @field_validator("requester_id", "approver_id", "requested_at", "description", mode="before")
    @classmethod
    def blank_is_missing(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("color_copies", "bw_copies", mode="before")
    @classmethod
    def blank_is_zero(cls, v: Any) -> Any:
        return 0 if _blank_to_none(v) is None else v

    @model_validator(mode="after")
    def require_copies(self) -> "PrintRequestForm":
        if self.color_copies <= 0 and self.bw_copies <= 0:
            raise ValueError("Enter a number of copies for at least one copy type")
        return self


class BookForm(BaseForm):
    name: str = Field(min_length=1, max_length=255)
    type: Optional[str] = None
    language: Optional[str] = None
    page_count: Optional[int] = Field(default=None, ge=1)
    is_donation: bool = False
    barcode: Optional[str] = None
    shelf_code: Optional[str] = None
    fixture_no: Optional[str] = None
    author_id: int
    publisher_id: int
    level: BookLevel

    messages = {
        "name": "Book name is required",
        "page_count": "Page count must be a positive number",
        "author_id": "Select an author",
        "publisher_id": "Select a publisher",
        "level": "Select a level",
    }

    @field_validator(
        "type", "language", "page_count", "barcode", "shelf_code", "fixture_no",
        "author_id", "publisher_id", "level",
        mode="before",
    )
    @classmethod
    def blank_is_missing(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("is_donation", mode="before")
    @classmethod
    def parse_checkbox(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower() in TRUE_VALUES
        return bool(v)


# =============================================================================
# Auth forms
# =============================================================================


def _check_email(v: str) -> str:
    if not EMAIL_RE.match(v):
        raise ValueError("Enter a valid email address")
    return v


class LoginForm(BaseForm):
    email: str
    password: str = Field(min_length=1)

    messages = {
        "email": "Enter a valid email address",
        "password": "Password is required",
    }

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)


class RegisterForm(BaseForm):
    name: str = Field(min_length=1)
    email: str
    password: str = Field(min_length=6)
    password_confirmation: str = Field(min_length=6)

    messages = {
        "name": "Name is required",
        "email": "Enter a valid email address",
        "password": "Password must be at least 6 characters",
        "password_confirmation": "Password confirmation is required",
    }
    error_field = "password_confirmation"

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return _check_email(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "RegisterForm":
        if self.password != self.password_confirmation:
            raise ValueError("Passwords do not match")
        return self


# =============================================================================
# Report forms
# =============================================================================


class ReportRangeForm(BaseForm):
    start_date: date
    end_date: date

    messages = {
        "start_date": "Start date is required",
        "end_date": "End date is required",
    }
    error_field = "end_date"

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def blank_is_missing(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @model_validator(mode="after")
    def ordered(self) -> "ReportRangeForm":
        if self.start_date > self.end_date:
            raise ValueError("Start date must be on or before the end date")
        return self


class ComparisonReportForm(BaseForm):
    first_start_date: date
    first_end_date: date
    second_start_date: date
    second_end_date: date

    messages = {
        "first_start_date": "Start date of the first period is required",
        "first_end_date": "End date of the first period is required",
        "second_start_date": "Start date of the second period is required",
        "second_end_date": "End date of the second period is required",
    }

    @field_validator("first_start_date", "first_end_date", "second_start_date", "second_end_date", mode="before")
    @classmethod
    def blank_is_missing(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("first_end_date")
    @classmethod
    def first_period_ordered(cls, v: date, info) -> date:
        start = info.data.get("first_start_date")
        if start is not None and start > v:
            raise ValueError("First period must start on or before its end date")
        return v

    @field_validator("second_end_date")
    @classmethod
    def second_period_ordered(cls, v: date, info) -> date:
        start = info.data.get("second_start_date")
        if start is not None and start > v:
            raise ValueError("Second period must start on or before its end date")
        return v
