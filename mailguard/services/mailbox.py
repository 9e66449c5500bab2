"""Mailbox transport boundary. Connections, folders and IMAP details live behind it."""

from typing import Protocol

from mailguard.models.domain.threat_domain import EmailMessage


class MailboxError(Exception):
    """Raised by transports when a message cannot be fetched or flagged."""

    def __init__(self, message: str, operation: str = "unknown", not_found: bool = False):
        super().__init__(message)
        self.operation = operation
        self.not_found = not_found


class MailboxTransport(Protocol):
    async def fetch_message(self, message_id: str) -> EmailMessage: ...

    async def mark_message(self, message_id: str, flag: str) -> None: ...

    async def list_message_ids(self, folder: str, limit: int) -> list[str]: ...
