# mailguard/models/api/threat_request.py
"""
Threat API request models.
Used by routes for input validation.
"""

from pydantic import BaseModel, Field


class DomainCheckRequest(BaseModel):
    """Request for checking several domains against the DNS firewall."""

    domains: list[str] = Field(..., min_length=1, max_length=500, description="Domains to check")


class MessageBatchRequest(BaseModel):
    """Request naming a batch of mailbox messages."""

    message_ids: list[str] = Field(..., min_length=1, max_length=200, description="Mailbox message IDs")


class BulkScanRequest(MessageBatchRequest):
    auto_mark: bool = Field(default=False, description="Mark messages with blocked domains as spam")


class BulkScoreRequest(MessageBatchRequest):
    max_score: int | None = Field(
        default=None, ge=-100, le=100, description="Only return messages scoring at or below this value"
    )


class BulkAssessRequest(MessageBatchRequest):
    auto_action: bool = Field(default=False, description="Mark quarantined messages as spam")


class SenderCheckRequest(BaseModel):
    """Request for the local sender list check."""

    emails: list[str] = Field(..., min_length=1, max_length=1000, description="Sender addresses or From headers")
