"""
Mailroom: scanned-mail ingestion and live notifications for virtual office customers.

A small async pipeline that:
- Validates raw mail records from the scanning provider
- Classifies them using the remote classification service (cached, single-flight)
- Normalizes them into canonical MailItem records
- Pushes them to connected customers over the /ws/mail live feed
"""

__version__ = "1.0.0"
