"""Coercion of raw URL query tokens into typed filter values."""

from __future__ import annotations

import math
import re
from datetime import UTC

from dateutil import parser as date_parser
from dateutil.parser import ParserError

from resthandlers.errors.domain import RequestSyntaxError, SyntaxErrorCode

CoercedValue = str | int | float | bool


def _invalid(raw: str, expectation: str) -> RequestSyntaxError:
    return RequestSyntaxError(
        SyntaxErrorCode.INVALID_VALUE,
        f"Invalid filter value {raw!r}: expected {expectation}.",
    )


def _strip_prefix(raw: str, ref_prefix: str | None) -> str:
    if ref_prefix and raw.startswith(ref_prefix):
        return raw[len(ref_prefix):]
    return raw


def coerce_value(raw: str, value_type: str, ref_prefix: str | None = None) -> CoercedValue:
    """Convert a raw token into a strictly typed filter value.

    Args:
        raw: Raw (already URL-decoded) token.
        value_type: One of ``string``, ``number``, ``boolean``,
            ``datetime`` or ``pattern``.
        ref_prefix: Reference prefix (``"Account#"``) stripped from string
            and number values when present.

    Returns:
        The coerced value. Numbers are ints when integral. Datetimes are
        ISO-8601 UTC strings with millisecond precision. Patterns are the
        source text of a valid regular expression.

    Raises:
        RequestSyntaxError: INVALID_VALUE if the token does not fit the type.
    """
    if value_type == "string":
        return _strip_prefix(raw, ref_prefix)

    if value_type == "number":
        token = _strip_prefix(raw, ref_prefix).strip()
        try:
            number = float(token) if token and "_" not in token else math.nan
        except ValueError:
            number = math.nan
        if not math.isfinite(number):
            raise _invalid(raw, "a number")
        return int(number) if number.is_integer() else number

    if value_type == "boolean":
        if raw == "true":
            return True
        if raw == "false":
            return False
        raise _invalid(raw, "'true' or 'false'")

    if value_type == "datetime":
        try:
            moment = date_parser.parse(raw)
        except (ParserError, ValueError, OverflowError):
            raise _invalid(raw, "a date/time") from None
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")

    if value_type == "pattern":
        try:
            re.compile(raw)
        except re.error:
            raise _invalid(raw, "a valid regular expression") from None
        return raw

    raise _invalid(raw, f"a value of a filterable type, not {value_type!r}")
