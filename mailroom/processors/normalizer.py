"""
Mail normalizer: RawMailItem + classification outcome -> canonical MailItem.
"""

import uuid
from dataclasses import replace
from pathlib import PurePosixPath
from urllib.parse import urlparse

from mailroom.core.errors import ClassificationUnavailable
from mailroom.core.models import AiMetadata, MailItem, NormalizedMail, RawMailItem

# Namespace for deriving stable external ids from (session, provider id)
MAIL_ITEM_NAMESPACE = uuid.UUID("6f1c2d4e-8a3b-5c7d-9e0f-1a2b3c4d5e6f")


def external_id_for(session_id: str, item_id: str) -> str:
    """Stable external id of a provider record within a session."""
    return str(uuid.uuid5(MAIL_ITEM_NAMESPACE, f"{session_id}/{item_id}"))


def _file_name(raw: RawMailItem) -> str | None:
    if raw.file_name:
        return raw.file_name
    if not raw.file_url:
        return None
    name = PurePosixPath(urlparse(raw.file_url).path).name
    return name or None


def _iso(raw: RawMailItem) -> str:
    return raw.received_at.isoformat().replace("+00:00", "Z")


def normalize(
    raw: RawMailItem,
    classification: str | ClassificationUnavailable,
    session_id: str,
) -> NormalizedMail:
    """
    Build the canonical MailItem for a raw record.

    Never fails for a validated RawMailItem. When classification is
    unavailable, ai_metadata.categories stays absent and the result is
    flagged for re-classification. File references are kept as sent by the
    provider. The raw record is not modified.

    Args:
        raw: Validated provider record
        classification: Category label, or the error from the classifier
        session_id: Owning session (external_id of the subscription)
    """
    failed = isinstance(classification, ClassificationUnavailable)

    base = raw.ai_metadata or AiMetadata()
    ai_metadata = replace(
        base,
        sender_name=base.sender_name or raw.sender or None,
        document_title=base.document_title or raw.document_title or None,
        summary=base.summary or raw.summary or None,
        categories=None if failed else (classification,),
    )
    if ai_metadata == AiMetadata():
        ai_metadata = None

    item = MailItem(
        id=raw.id,
        external_id=external_id_for(session_id, raw.id),
        created_at=_iso(raw),
        url=raw.file_url,
        url_envelope_front=raw.url_envelope_front,
        url_envelope_back=raw.url_envelope_back,
        file_name=_file_name(raw),
        ai_metadata=ai_metadata,
    )

    return NormalizedMail(
        item=item,
        raw=raw,
        session_id=session_id,
        needs_reclassification=failed,
    )


def apply_classification(item: MailItem, label: str) -> MailItem:
    """Return a copy of a stored item carrying a new category label."""
    base = item.ai_metadata or AiMetadata()
    return replace(item, ai_metadata=replace(base, categories=(label,)))
