"""
HTTP cache validation for proxy responses.

Computes ``ETag`` / ``Last-Modified`` / ``Cache-Control`` for a payload and
decides whether the client's cached copy is still current. Everything here
is a pure function of (payload, validators, policy); nothing is stored.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .models import parse_timestamp


@dataclass(frozen=True)
class CachePolicy:
    """Per-endpoint caching policy."""

    max_age: int
    public: bool = True
    vary_origin: bool = True

    def cache_control(self) -> str:
        scope = "public" if self.public else "private"
        return f"{scope}, max-age={self.max_age}"


@dataclass(frozen=True)
class ConditionalResult:
    """Outcome of validating a request against a payload."""

    headers: Dict[str, str] = field(default_factory=dict)
    not_modified: bool = False

    @property
    def etag(self) -> Optional[str]:
        return self.headers.get("ETag")


def canonical_json(payload: Any) -> bytes:
    """Serialise a payload deterministically."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def compute_etag(payload: Any) -> str:
    """Strong ETag over the canonical JSON form of a payload."""
    return '"' + hashlib.sha256(canonical_json(payload)).hexdigest() + '"'


def compute_bytes_etag(data: bytes) -> str:
    """Strong ETag over raw bytes."""
    return '"' + hashlib.sha256(data).hexdigest() + '"'


def latest_modified(
    items: Iterable[Mapping[str, Any]],
    field_name: str = "lastModifiedDateTime",
) -> Optional[datetime]:
    """Return the newest modification timestamp found on the items, if any."""
    latest: Optional[datetime] = None
    for item in items:
        if not isinstance(item, Mapping):
            continue
        parsed = parse_timestamp(item.get(field_name))
        if parsed is not None and (latest is None or parsed > latest):
            latest = parsed
    return latest


def http_date(value: datetime) -> str:
    """Format a datetime as an IMF-fixdate."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def _parse_http_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _entity_tags(header: str) -> List[str]:
    tags = []
    for raw in header.split(","):
        tag = raw.strip()
        if tag.startswith("W/"):
            tag = tag[2:]
        if tag:
            tags.append(tag)
    return tags


def _none_match(if_none_match: str, etag: str) -> bool:
    """True when If-None-Match says the client already holds ``etag``."""
    tags = _entity_tags(if_none_match)
    if "*" in tags:
        return True
    return etag in tags


def _not_modified_since(if_modified_since: Optional[str], last_modified: Optional[datetime]) -> bool:
    since = _parse_http_date(if_modified_since)
    if since is None or last_modified is None:
        return False
    # HTTP dates carry whole seconds only
    return last_modified.replace(microsecond=0) <= since


def evaluate(
    payload: Any,
    policy: CachePolicy,
    *,
    if_none_match: Optional[str] = None,
    if_modified_since: Optional[str] = None,
    last_modified: Optional[datetime] = None,
    etag: Optional[str] = None,
) -> ConditionalResult:
    """
    Build validators for ``payload`` and compare them with the request's.

    ``If-None-Match`` takes precedence: when present it alone decides.
    ``If-Modified-Since`` is only consulted when the request carries no
    entity tags and the payload has a modification time.
    """
    etag = etag or compute_etag(payload)
    headers: Dict[str, str] = {
        "ETag": etag,
        "Cache-Control": policy.cache_control(),
    }
    if last_modified is not None:
        headers["Last-Modified"] = http_date(last_modified)
    if policy.vary_origin:
        headers["Vary"] = "Origin"

    if if_none_match:
        not_modified = _none_match(if_none_match, etag)
    else:
        not_modified = _not_modified_since(if_modified_since, last_modified)

    return ConditionalResult(headers=headers, not_modified=not_modified)
