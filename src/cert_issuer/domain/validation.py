"""
Row validation — turns one untyped spreadsheet row into a Recipient.

Pure functions: deterministic and total over any mapping. Column names are
matched case-insensitively after trimming, so "Name", " name " and "NAME"
are the same column.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from cert_issuer.domain.models import DEFAULT_PROGRAM, InvalidRow, RawRow, Recipient
from cert_issuer.railway import ErrorCode, Result

NAME_ALIASES = ("Name", "Student Name", "student_name")
EMAIL_ALIASES = ("Email",)
PROGRAM_ALIASES = ("Program",)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MISSING_FIELDS_MESSAGE = "Missing required fields: Name and Email"


def _normalize_keys(row: Mapping[object, object]) -> dict[str, str]:
    """Lower-cased, trimmed header → value. First occurrence of a header wins."""
    normalized: dict[str, str] = {}
    for key, value in row.items():
        if not isinstance(key, str) or not isinstance(value, str):
            continue
        normalized.setdefault(key.strip().lower(), value)
    return normalized


def _resolve(row: dict[str, str], aliases: Iterable[str]) -> str:
    """Trimmed value of the first alias present with a non-blank value."""
    for alias in aliases:
        value = row.get(alias.lower(), "").strip()
        if value:
            return value
    return ""


def validate_row(row: RawRow) -> Result[Recipient]:
    """
    Validate one raw row.

    Fails with MISSING_FIELD when name or email is absent or blank, and with
    INVALID_EMAIL when the email is not shaped like local@domain.tld.
    """
    normalized = _normalize_keys(row)
    name = _resolve(normalized, NAME_ALIASES)
    email = _resolve(normalized, EMAIL_ALIASES)
    program = _resolve(normalized, PROGRAM_ALIASES) or DEFAULT_PROGRAM

    if not name or not email:
        return Result.failure(ErrorCode.MISSING_FIELD, MISSING_FIELDS_MESSAGE)
    if not EMAIL_PATTERN.match(email):
        return Result.failure(ErrorCode.INVALID_EMAIL, f"Invalid email format: {email}")

    return Result.success(Recipient(name=name, email=email.lower(), program=program))


def validate_rows(rows: Iterable[RawRow]) -> tuple[list[Recipient], list[InvalidRow]]:
    """Split rows into valid recipients and rejected rows, both in input order."""
    recipients: list[Recipient] = []
    invalid: list[InvalidRow] = []
    for row in rows:
        validate_row(row).either(
            on_success=recipients.append,
            on_failure=lambda err, raw=row: invalid.append(
                InvalidRow(raw_row=raw, code=err.code, reason=err.message)
            ),
        )
    return recipients, invalid
