"""
Pipeline error kinds.

None of these are fatal to the process: classification failures fall back to
"uncategorized", channel failures are retried on reconnect and malformed
records are rejected one by one.
"""


class MailroomError(Exception):
    """Base class for pipeline errors."""


class ClassificationUnavailable(MailroomError):
    """The classification service could not produce a label."""


class ChannelUnavailable(MailroomError):
    """The live channel transport for a session is down."""

    def __init__(self, session_id: str, reason: str = ""):
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Live channel unavailable for {session_id}: {reason}")


class MalformedRawItem(MailroomError):
    """A raw mail record is missing required fields or is inconsistent."""

    def __init__(self, reason: str, item_id: str | None = None):
        self.reason = reason
        self.item_id = item_id
        super().__init__(f"Malformed raw mail item {item_id or '<unknown>'}: {reason}")
