from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .errors import ValidationError

MIN_PHONE_DIGITS = 10

_NON_DIGITS = re.compile(r"\D")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_WHITESPACE = re.compile(r"\s+")


class LookupField(str, Enum):
    """Keys a ticket can be resolved by."""

    TICKET_NUMBER = "ticket_number"
    PHONE = "phone"
    NAME = "name"
    EMAIL = "email"


def normalize_phone(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


@dataclass(slots=True, frozen=True)
class LookupCriteria:
    """Exactly one validated and normalized search key."""

    field: LookupField
    value: str

    @classmethod
    def build(
        cls,
        *,
        ticket_number: str | None = None,
        phone: str | None = None,
        name: str | None = None,
        email: str | None = None,
    ) -> "LookupCriteria":
        provided = {
            key: value
            for key, value in (
                (LookupField.TICKET_NUMBER, ticket_number),
                (LookupField.PHONE, phone),
                (LookupField.NAME, name),
                (LookupField.EMAIL, email),
            )
            if value is not None and value.strip()
        }
        if not provided:
            raise ValidationError("Provide a ticket number, phone number, customer name or email")
        if len(provided) > 1:
            keys = ", ".join(key.value for key in provided)
            raise ValidationError(f"Provide exactly one search key, got: {keys}")

        field, raw = next(iter(provided.items()))
        return cls(field=field, value=_normalize(field, raw))

    @property
    def name_terms(self) -> tuple[str, ...]:
        """Lowercased words that must all appear in the customer's name."""

        return tuple(self.value.split(" ")) if self.field is LookupField.NAME else ()


def _normalize(field: LookupField, raw: str) -> str:
    value = raw.strip()
    if field is LookupField.TICKET_NUMBER:
        return value
    if field is LookupField.PHONE:
        digits = normalize_phone(value)
        if len(digits) < MIN_PHONE_DIGITS:
            raise ValidationError(
                f"Phone number must contain at least {MIN_PHONE_DIGITS} digits (got {len(digits)})"
            )
        return digits
    if field is LookupField.EMAIL:
        if not _EMAIL_RE.match(value):
            raise ValidationError(f"Malformed email address: {value!r}")
        return value.lower()
    collapsed = _WHITESPACE.sub(" ", value).lower()
    if len(collapsed) < 2:
        raise ValidationError("Customer name search needs at least 2 characters")
    return collapsed


@dataclass(slots=True, frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 20

    @classmethod
    def build(cls, page: int | None, limit: int | None, *, default_limit: int = 20, max_limit: int = 100) -> "PageRequest":
        page = 1 if page is None else page
        limit = default_limit if limit is None else limit
        if page < 1:
            raise ValidationError("page must be 1 or greater")
        if limit < 1 or limit > max_limit:
            raise ValidationError(f"limit must be between 1 and {max_limit}")
        return cls(page=page, limit=limit)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit
