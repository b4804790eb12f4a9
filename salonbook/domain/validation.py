"""
Client-side validation of guest contact details.

Validation runs before any booking request is made; a failure names the
offending field so it can be shown inline.
"""

from typing import Optional

from pydantic import BaseModel, ValidationError, field_validator

from .exceptions import BookingValidationError

MIN_NAME_LENGTH = 3
MIN_PHONE_LENGTH = 8


class GuestDetails(BaseModel):
    """Contact details of a guest booking without an account."""
    name: str
    phone: str
    email: str = ""
    address: str = ""
    notes: str = ""

    @field_validator("name", "phone", "email", "address", "notes", mode="before")
    @classmethod
    def strip_whitespace(cls, value: Optional[str]) -> str:
        """Trim input and treat None as empty."""
        return (value or "").strip()

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        if len(value) < MIN_NAME_LENGTH:
            raise ValueError(f"Name must have at least {MIN_NAME_LENGTH} characters")
        return value

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        if len(value) < MIN_PHONE_LENGTH:
            raise ValueError(f"Phone number must have at least {MIN_PHONE_LENGTH} characters")
        return value

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        if value and ("@" not in value or value.startswith("@") or value.endswith("@")):
            raise ValueError("Email address is not valid")
        return value


def validate_guest_details(
    name: Optional[str],
    phone: Optional[str],
    email: Optional[str] = None,
    address: Optional[str] = None,
    notes: Optional[str] = None,
) -> GuestDetails:
    """
    Validate guest input.

    Raises:
        BookingValidationError: for the first invalid field
    """
    try:
        return GuestDetails(
            name=name,
            phone=phone,
            email=email,
            address=address,
            notes=notes,
        )
    except ValidationError as exc:
        error = exc.errors()[0]
        field = str(error["loc"][0]) if error.get("loc") else "details"
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        raise BookingValidationError(field, message) from exc
