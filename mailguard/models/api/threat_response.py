# mailguard/models/api/threat_response.py
"""
Threat API response models.
Used by routes for output formatting.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class DomainCheckResponse(BaseModel):
    """DNS firewall verdict for one domain."""

    domain: str = Field(..., description="Checked domain")
    is_safe: bool = Field(..., description="True unless the provider blocked the domain")
    is_blocked: bool = Field(..., description="True when the provider blocked the domain")
    provider: str = Field(..., description="Provider that produced the verdict")
    checked_at: datetime = Field(..., description="When the verdict was produced")
    response_time_ms: float = Field(..., description="Lookup latency")
    from_cache: bool = Field(..., description="Served from the reputation cache")
    error: str | None = Field(None, description="Upstream failure that forced a fail-open verdict")


class DomainBatchResponse(BaseModel):
    total: int = Field(..., description="Domains submitted")
    unique: int = Field(..., description="Distinct domains checked")
    safe: int = Field(..., description="Safe domains")
    blocked: int = Field(..., description="Blocked domains")
    results: list[DomainCheckResponse] = Field(default_factory=list)


class MessageScanResponse(BaseModel):
    """Domain safety scan of one message."""

    message_id: str
    is_safe: bool
    domains: list[str] = Field(default_factory=list)
    blocked_domains: list[str] = Field(default_factory=list)
    total_domains: int
    scan_time_ms: float
    marked_as_spam: bool = Field(default=False, description="Message was flagged as spam")
    error: str | None = Field(None, description="Why the message could not be scanned")


class BulkScanResponse(BaseModel):
    scanned: int
    safe: int
    blocked: int
    marked: int
    results: list[MessageScanResponse] = Field(default_factory=list)


class ScoreRuleResponse(BaseModel):
    rule_id: str
    points: int
    reason: str


class ConfidenceScoreResponse(BaseModel):
    """Header confidence breakdown for one message."""

    message_id: str
    from_address: str
    subject: str = ""
    total_score: int = Field(..., ge=-100, le=100)
    confidence_band: str
    recommendation: str
    flags: list[str] = Field(default_factory=list)
    rules: list[ScoreRuleResponse] = Field(default_factory=list)
    top_issues: list[str] = Field(default_factory=list, description="Up to three most negative rule reasons")


class BulkScoreResponse(BaseModel):
    scored: int
    filter: str = Field(..., description="Applied score filter")
    results: list[ConfidenceScoreResponse] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)


class FlagFrequencyResponse(BaseModel):
    flag: str
    count: int
    percentage: float


class FolderConfidenceResponse(BaseModel):
    """Confidence statistics for a mailbox folder."""

    folder: str
    analyzed: int
    average_score: float | None = None
    min_score: int | None = None
    max_score: int | None = None
    band_distribution: dict[str, int] = Field(default_factory=dict)
    top_flags: list[FlagFrequencyResponse] = Field(default_factory=list)
    most_suspicious: list[ConfidenceScoreResponse] = Field(default_factory=list)
    error: str | None = None


class SenderReputationResponse(BaseModel):
    email: str
    is_spam: bool
    spam_score: float
    source: str
    reason: str | None = None
    from_cache: bool = False


class ThreatAssessmentResponse(BaseModel):
    """Combined verdict for one message."""

    message_id: str
    recommended_action: str = Field(..., description="allow or quarantine")
    actioned: bool = Field(..., description="Message was flagged as spam in the mailbox")
    domain_safety: MessageScanResponse
    confidence: ConfidenceScoreResponse
    sender_reputation: SenderReputationResponse | None = None


class BulkAssessmentResponse(BaseModel):
    scanned: int
    safe: int
    blocked: int
    actioned_message_ids: list[str] = Field(default_factory=list)
    assessments: list[ThreatAssessmentResponse] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)


class SenderCheckResponse(BaseModel):
    email: str
    domain: str
    is_spam: bool
    confidence: str
    reason: str | None = None


class SenderBatchResponse(BaseModel):
    spam: list[SenderCheckResponse] = Field(default_factory=list)
    clean: list[SenderCheckResponse] = Field(default_factory=list)
    domain_counts: dict[str, int] = Field(default_factory=dict)
