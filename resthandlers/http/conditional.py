"""Conditional request evaluation (ETag / Last-Modified preconditions).

Evaluates If-Match, If-Unmodified-Since, If-None-Match and
If-Modified-Since against the version descriptor of the addressed record
or collection, in the order given by RFC 7232 section 6:

1. If-Match present and not matching -> 412.
2. Otherwise If-Unmodified-Since present and resource modified after it -> 412.
3. If-None-Match present and matching -> 304 for GET/HEAD, 412 otherwise.
4. Otherwise, for GET/HEAD, If-Modified-Since present and resource not
   modified after it -> 304.

Short-circuit outcomes are returned as responses, never raised. Date
headers that cannot be parsed are treated as absent.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import format_datetime
from typing import Any

from dateutil import parser as date_parser
from dateutil.parser import ParserError

from resthandlers.http.service import ServiceResponse, create_response, error_response

CONDITIONAL_HEADERS = (
    "if-match",
    "if-none-match",
    "if-modified-since",
    "if-unmodified-since",
)

_SAFE_METHODS = frozenset({"GET", "HEAD"})

# One entity tag in a list header: optional weak marker and the quoted opaque tag
_ETAG_PATTERN = re.compile(r'(W/)?("[^"]*")')


# ---------------------------------------------------------------------------
# Version descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VersionDescriptor:
    """Validators of a record or collection: entity tag and modification time."""

    etag: str | None = None
    last_modified: datetime | None = None


@dataclass(frozen=True)
class ConditionalOutcome:
    """Result of precondition evaluation.

    Attributes:
        short_circuit: 304 or 412 response to send instead of proceeding,
            or None if the call should proceed.
        etag_to_send: ETag header value for the eventual response.
        last_modified_to_send: Last-Modified header value for the
            eventual response.
    """

    short_circuit: ServiceResponse | None
    etag_to_send: str | None
    last_modified_to_send: str | None


def build_etag(api_version: str, actor_id: str, version: Any) -> str:
    """Build a strong entity tag namespaced by API version and actor.

    Two actors may see different representations of the same record, and
    representations change across API versions, so both are part of the tag.

    Args:
        api_version: API version string.
        actor_id: Id of the calling actor (``-`` for anonymous).
        version: Raw record or collection version value.

    Returns:
        Quoted entity tag.
    """
    return f'"{api_version}:{actor_id}:{version}"'


def to_utc_datetime(value: Any) -> datetime | None:
    """Normalize a timestamp value to an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC) and date-time strings.
    Returns None for None or unparseable strings.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        try:
            moment = date_parser.parse(str(value))
        except (ParserError, ValueError, OverflowError):
            return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def version_descriptor(
    api_version: str, actor_id: str, version: Any, modified_on: Any
) -> VersionDescriptor:
    """Build a version descriptor from raw version and modification values."""
    return VersionDescriptor(
        etag=build_etag(api_version, actor_id, version) if version is not None else None,
        last_modified=to_utc_datetime(modified_on),
    )


# ---------------------------------------------------------------------------
# HTTP date handling
# ---------------------------------------------------------------------------


def format_http_date(moment: datetime) -> str:
    """Format a datetime as an RFC 7231 IMF-fixdate."""
    return format_datetime(to_utc_datetime(moment), usegmt=True)


def parse_http_date(value: str | None) -> datetime | None:
    """Parse an HTTP date header value; None if absent or unparseable."""
    if not value:
        return None
    return to_utc_datetime(value.strip())


def _truncate(moment: datetime | None) -> datetime | None:
    # HTTP dates carry whole seconds only
    return moment.replace(microsecond=0) if moment is not None else None


# ---------------------------------------------------------------------------
# Entity tag matching
# ---------------------------------------------------------------------------


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None


def _etag_matches(header_value: str, etag: str | None, weak: bool) -> bool:
    """Check an If-Match / If-None-Match header value against the current tag.

    Args:
        header_value: Raw header value, ``*`` or a list of entity tags.
        etag: Current entity tag, or None if the resource has none.
        weak: Use weak comparison (If-None-Match) instead of strong
            comparison (If-Match).

    Returns:
        True if the header matches.
    """
    if header_value.strip() == "*":
        return True
    if etag is None:
        return False
    current = etag[2:] if etag.startswith("W/") else etag
    for weak_marker, opaque in _ETAG_PATTERN.findall(header_value):
        if weak_marker and not weak:
            continue
        if opaque == current:
            return True
    return False


def is_conditional_request(headers: Mapping[str, str]) -> bool:
    """Tell if the request carries any precondition header."""
    return any(_header(headers, name) is not None for name in CONDITIONAL_HEADERS)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _not_modified(etag: str | None, last_modified: str | None) -> ServiceResponse:
    response = create_response(304)
    if etag is not None:
        response.set_header("ETag", etag)
    if last_modified is not None:
        response.set_header("Last-Modified", last_modified)
    return response


def evaluate_preconditions(
    headers: Mapping[str, str],
    method: str,
    etag: str | None = None,
    last_modified: datetime | None = None,
) -> ConditionalOutcome:
    """Evaluate request preconditions against the current validators.

    Args:
        headers: Request headers (names compared case-insensitively).
        method: HTTP method of the call.
        etag: Current entity tag, if the resource has one.
        last_modified: Current modification time, if known.

    Returns:
        ConditionalOutcome with the short-circuit response, if any, and the
        validator header values to send with the eventual response.
    """
    method = method.upper()
    modified = _truncate(to_utc_datetime(last_modified))
    last_modified_to_send = format_http_date(modified) if modified is not None else None

    def outcome(short_circuit: ServiceResponse | None) -> ConditionalOutcome:
        return ConditionalOutcome(short_circuit, etag, last_modified_to_send)

    if_match = _header(headers, "if-match")
    if if_match is not None:
        if not _etag_matches(if_match, etag, weak=False):
            return outcome(error_response("RSRC-412-1"))
    else:
        unmodified_since = parse_http_date(_header(headers, "if-unmodified-since"))
        if unmodified_since is not None and modified is not None and modified > unmodified_since:
            return outcome(error_response("RSRC-412-1"))

    if_none_match = _header(headers, "if-none-match")
    if if_none_match is not None:
        if _etag_matches(if_none_match, etag, weak=True):
            if method in _SAFE_METHODS:
                return outcome(_not_modified(etag, last_modified_to_send))
            return outcome(error_response("RSRC-412-1"))
    elif method in _SAFE_METHODS:
        modified_since = parse_http_date(_header(headers, "if-modified-since"))
        if modified_since is not None and modified is not None and modified <= modified_since:
            return outcome(_not_modified(etag, last_modified_to_send))

    return outcome(None)
