"""
Data models for the mail pipeline.

Uses dataclasses for clean, typed data structures. Raw records are validated
at the ingestion boundary (RawMailItem.from_dict); everything downstream works
with the canonical, immutable MailItem.
"""

import hashlib
import json
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from mailroom.core.errors import MalformedRawItem


class Category(str, Enum):
    """Mail categories returned by the classifier."""

    INVOICE = "Invoice"
    BANK = "Bank"
    GOVERNMENT = "Government"
    PERSONAL = "Personal"
    LEGAL = "Legal"
    MARKETING = "Marketing"
    OTHER = "Other"
    UNCATEGORIZED = "uncategorized"

    @classmethod
    def from_label(cls, label: str | None) -> "Category":
        """Map free text from the classifier onto a known category.

        Unknown or empty answers map to OTHER.
        """
        cleaned = re.sub(r"[^a-z]", "", (label or "").lower())
        for category in cls:
            if category.value.lower() == cleaned:
                return category
        return cls.OTHER


class ChannelState(str, Enum):
    """Connectivity state of a live channel handle."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


def parse_timestamp(value: Any, field_name: str, item_id: str | None = None) -> datetime:
    """Parse an ISO 8601 string (or datetime) into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise MalformedRawItem(f"invalid {field_name}: {value!r}", item_id)
    else:
        raise MalformedRawItem(f"missing {field_name}", item_id)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _first(data: dict[str, Any], *keys: str) -> Any:
    """Return the first non-None value among keys."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _text(value: Any, field_name: str, item_id: str | None = None) -> str | None:
    """Accept a string or None; anything else makes the record malformed."""
    if value is None or isinstance(value, str):
        return value
    raise MalformedRawItem(f"{field_name} must be a string", item_id)


@dataclass(frozen=True)
class AiKeyValue:
    """A key/value pair extracted from a scanned document."""

    key: str
    value: str


@dataclass(frozen=True)
class AiMetadata:
    """AI enrichment attached to a mail item. Every field is optional."""

    sender_name: str | None = None
    document_title: str | None = None
    reference_number: str | None = None
    summary: str | None = None
    industry: str | None = None
    categories: tuple[str, ...] | None = None
    sub_categories: tuple[str, ...] | None = None
    key_information: tuple[AiKeyValue, ...] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None, item_id: str | None = None) -> "AiMetadata":
        """
        Create AiMetadata from a provider or storage dict.

        Raises:
            MalformedRawItem: If a field has the wrong shape
        """
        data = data or {}

        def _strings(key: str) -> tuple[str, ...] | None:
            values = data.get(key)
            if values is None:
                return None
            if isinstance(values, str):
                values = [values]
            if not isinstance(values, (list, tuple)) or not all(isinstance(v, str) for v in values):
                raise MalformedRawItem(f"ai_metadata.{key} must be a list of strings", item_id)
            return tuple(values)

        key_information = None
        if data.get("key_information") is not None:
            entries = data["key_information"]
            if not isinstance(entries, (list, tuple)) or not all(isinstance(kv, dict) for kv in entries):
                raise MalformedRawItem("ai_metadata.key_information must be a list of objects", item_id)
            key_information = tuple(
                AiKeyValue(key=str(kv.get("key", "")), value=str(kv.get("value", "")))
                for kv in entries
            )

        def _field(key: str) -> str | None:
            return _text(data.get(key), f"ai_metadata.{key}", item_id)

        return cls(
            sender_name=_field("sender_name"),
            document_title=_field("document_title"),
            reference_number=_field("reference_number"),
            summary=_field("summary"),
            industry=_field("industry"),
            categories=_strings("categories"),
            sub_categories=_strings("sub_categories"),
            key_information=key_information,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, leaving out absent fields."""
        result: dict[str, Any] = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            result[key] = list(value) if isinstance(value, tuple) else value
        return result


@dataclass(frozen=True)
class RawMailItem:
    """Producer-supplied mail record, before classification."""

    id: str
    sender: str
    category: str
    summary: str
    received_at: datetime
    expires_at: datetime
    file_url: str | None = None

    # Optional extras sent by the scanning provider
    document_title: str = ""
    file_name: str | None = None
    url_envelope_front: str | None = None
    url_envelope_back: str | None = None
    ai_metadata: AiMetadata | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RawMailItem":
        """
        Validate a raw provider record.

        Raises:
            MalformedRawItem: If the identifier or timestamps are missing,
                unparseable or out of order.
        """
        if not isinstance(data, dict):
            raise MalformedRawItem("record is not an object")

        raw_id = data.get("id")
        item_id = str(raw_id).strip() if raw_id is not None else ""
        if not item_id:
            raise MalformedRawItem("missing id")

        received_at = parse_timestamp(
            _first(data, "received_at", "receivedAt"), "received_at", item_id
        )
        expires_at = parse_timestamp(
            _first(data, "expires_at", "expiresAt"), "expires_at", item_id
        )
        if received_at > expires_at:
            raise MalformedRawItem("received_at is after expires_at", item_id)

        ai_data = data.get("ai_metadata")
        if ai_data is not None and not isinstance(ai_data, dict):
            raise MalformedRawItem("ai_metadata must be an object", item_id)
        ai_metadata = AiMetadata.from_dict(ai_data, item_id) if ai_data is not None else None

        def _field(*keys: str) -> str | None:
            return _text(_first(data, *keys), keys[0], item_id)

        document_title = _field("document_title", "documentTitle")
        if document_title is None and ai_metadata:
            document_title = ai_metadata.document_title

        return cls(
            id=item_id,
            sender=_field("sender", "sender_name") or "",
            category=_field("category") or "",
            summary=_field("summary") or "",
            received_at=received_at,
            expires_at=expires_at,
            file_url=_field("file_url", "fileUrl", "url"),
            document_title=document_title or "",
            file_name=_field("file_name"),
            url_envelope_front=_field("url_envelope_front"),
            url_envelope_back=_field("url_envelope_back"),
            ai_metadata=ai_metadata,
        )


@dataclass(frozen=True)
class MailItem:
    """Canonical, classification-enriched mail record."""

    id: str | int
    external_id: str
    created_at: str  # ISO 8601
    url: str | None = None
    url_envelope_front: str | None = None
    url_envelope_back: str | None = None
    file_name: str | None = None
    ai_metadata: AiMetadata | None = None

    @property
    def category(self) -> str | None:
        """Primary category, if classified."""
        if self.ai_metadata and self.ai_metadata.categories:
            return self.ai_metadata.categories[0]
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire/storage dict."""
        data: dict[str, Any] = {
            "id": self.id,
            "external_id": self.external_id,
            "created_at": self.created_at,
        }
        for key in ("url", "url_envelope_front", "url_envelope_back", "file_name"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.ai_metadata is not None:
            data["ai_metadata"] = self.ai_metadata.to_dict()
        if self.category is not None:
            data["category"] = self.category
        return data

    def to_json(self) -> str:
        """Serialize for the live channel (one item per message)."""
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def content_version(self) -> str:
        """Digest of the item's content; changes whenever any field changes."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MailItem":
        """Create MailItem from a stored payload."""
        ai_data = data.get("ai_metadata")
        return cls(
            id=data["id"],
            external_id=data["external_id"],
            created_at=data["created_at"],
            url=data.get("url"),
            url_envelope_front=data.get("url_envelope_front"),
            url_envelope_back=data.get("url_envelope_back"),
            file_name=data.get("file_name"),
            ai_metadata=AiMetadata.from_dict(ai_data) if ai_data is not None else None,
        )


@dataclass(frozen=True)
class NormalizedMail:
    """A canonical item plus the retry flag that travels beside it."""

    item: MailItem
    raw: RawMailItem
    session_id: str
    needs_reclassification: bool = False


@dataclass(frozen=True)
class CacheEntry:
    """Memoized classification result. Replaced, never mutated."""

    label: str
    computed_at: float


@dataclass
class IngestResult:
    """Result from ingesting a batch of raw records."""

    received: int = 0
    accepted: int = 0
    rejected: int = 0
    delivered: int = 0
    buffered: int = 0
    needs_reclassification: int = 0
    rejections: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
