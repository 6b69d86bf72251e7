"""Core modules for the mail pipeline."""

from .logging import configure_logging, get_logger
from .models import (
    AiKeyValue,
    AiMetadata,
    CacheEntry,
    Category,
    ChannelState,
    IngestResult,
    MailItem,
    NormalizedMail,
    RawMailItem,
)
from .database import Database

__all__ = [
    "configure_logging",
    "get_logger",
    "AiKeyValue",
    "AiMetadata",
    "CacheEntry",
    "Category",
    "ChannelState",
    "IngestResult",
    "MailItem",
    "NormalizedMail",
    "RawMailItem",
    "Database",
]
