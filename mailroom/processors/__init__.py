"""Mail processors."""

from .base import BaseProcessor
from .ingest import IngestProcessor
from .reclassify import ReclassifyProcessor

__all__ = ["BaseProcessor", "IngestProcessor", "ReclassifyProcessor"]
