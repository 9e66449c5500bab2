"""
Threat assessment domain models.

Lightweight records passed between the extraction, reputation, scoring and
aggregation services. Only ReputationCacheEntry outlives a single evaluation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

Verdict = Literal["safe", "blocked"]
ConfidenceBand = Literal["HIGH", "MEDIUM", "LOW", "VERY_LOW"]
RecommendedAction = Literal["allow", "quarantine"]

LOW_CONFIDENCE_BANDS: frozenset[str] = frozenset({"LOW", "VERY_LOW"})


@dataclass(slots=True, frozen=True)
class ParsedAddress:
    """A successfully parsed mailbox; domain is always lower-cased and non-empty."""

    address: str
    domain: str
    display_name: str | None = None


@dataclass(slots=True, frozen=True)
class ReputationCacheEntry:
    key: str
    verdict: Verdict
    source: str
    checked_at: datetime
    expires_at: datetime

    @property
    def is_safe(self) -> bool:
        return self.verdict == "safe"

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass(slots=True, frozen=True)
class DomainValidationResult:
    """One verdict for one domain. A repeat check produces a new result."""

    domain: str
    is_safe: bool
    provider: str
    checked_at: datetime
    response_time_ms: float
    from_cache: bool
    error: str | None = None  # set when the verdict came from the fail-open path

    @property
    def is_blocked(self) -> bool:
        return not self.is_safe


@dataclass(slots=True)
class MessageScanResult:
    message_id: str
    is_safe: bool
    domains: list[str]
    blocked_domains: list[str]
    total_domains: int
    scan_time_ms: float


@dataclass(slots=True, frozen=True)
class ScoreRule:
    rule_id: str
    points: int
    reason: str


@dataclass(slots=True)
class ScoreBreakdown:
    total_score: int
    confidence_band: ConfidenceBand
    rules: list[ScoreRule]
    flags: list[str]
    recommendation: str

    def top_issues(self, limit: int = 3) -> list[str]:
        """Reasons of the most negative rules, worst first."""
        negative = sorted((r for r in self.rules if r.points < 0), key=lambda r: r.points)
        return [rule.reason for rule in negative[:limit]]


@dataclass(slots=True, frozen=True)
class TyposquattingResult:
    is_typosquatting: bool
    matched_domain: str | None = None
    technique: str | None = None  # substitution | edit_distance | subdomain_embedding


@dataclass(slots=True)
class EmailHeaders:
    """Header fields consumed by the confidence scorer."""

    from_address: str
    subject: str = ""
    message_id: str | None = None
    reply_to: str | None = None
    received_spf: str | None = None
    dkim_result: str | None = None
    dmarc_result: str | None = None
    return_path: str | None = None
    date: datetime | None = None
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)


@dataclass(slots=True)
class EmailMessage:
    """A message as handed over by the mailbox transport."""

    message_id: str
    from_address: str
    subject: str = ""
    to: list[str] = field(default_factory=list)
    reply_to: str | None = None
    header_message_id: str | None = None
    text_body: str | None = None
    html_body: str | None = None
    received_spf: str | None = None
    dkim_result: str | None = None
    dmarc_result: str | None = None
    return_path: str | None = None
    date: datetime | None = None

    def headers(self) -> EmailHeaders:
        return EmailHeaders(
            from_address=self.from_address,
            subject=self.subject,
            message_id=self.header_message_id,
            reply_to=self.reply_to,
            received_spf=self.received_spf,
            dkim_result=self.dkim_result,
            dmarc_result=self.dmarc_result,
            return_path=self.return_path,
            date=self.date,
            to=list(self.to),
        )


@dataclass(slots=True, frozen=True)
class DnsProviderConfig:
    """A DNS-over-HTTPS threat intelligence provider."""

    provider_id: str
    endpoint: str
    api_key: str | None = None
    is_enabled: bool = True
    is_default: bool = False
    timeout_ms: int = 5000

    def doh_url(self) -> str:
        endpoint = self.endpoint.strip().rstrip("/")
        if endpoint.startswith(("http://", "https://")):
            return endpoint if endpoint.endswith("/dns-query") else f"{endpoint}/dns-query"
        return f"https://{endpoint}/dns-query"


@dataclass(slots=True, frozen=True)
class ReputationRecord:
    """Normalized answer from a third-party sender reputation API."""

    email: str
    is_spam: bool
    spam_score: float
    source: str
    reason: str | None = None
    from_cache: bool = False


@dataclass(slots=True)
class ThreatAssessment:
    message_id: str
    domain_safety: MessageScanResult
    confidence: ScoreBreakdown
    recommended_action: RecommendedAction
    sender_reputation: ReputationRecord | None = None
    actioned: bool = False
    from_address: str = ""
    subject: str = ""


@dataclass(slots=True)
class BulkAssessmentSummary:
    scanned: int
    safe: int
    blocked: int
    actioned_message_ids: list[str]
    assessments: list[ThreatAssessment]
    errors: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class SenderCheckResult:
    email: str
    domain: str
    is_spam: bool
    confidence: Literal["high", "medium", "low"]
    reason: str | None = None
