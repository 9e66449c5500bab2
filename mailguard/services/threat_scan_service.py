"""
Mailbox-facing threat operations: scan, score and assess messages by id.

Thin orchestration over the mailbox transport and the threat services. Fetch
failures surface as MailboxError for single-message calls; bulk calls record
them per message and keep going.
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from mailguard.infrastructure.observability.logging import get_logger
from mailguard.models.domain.threat_domain import (
    BulkAssessmentSummary,
    EmailMessage,
    MessageScanResult,
    ScoreBreakdown,
    ThreatAssessment,
)
from mailguard.services.confidence_scoring_service import ConfidenceScoringService
from mailguard.services.dns_firewall_service import DnsFirewallService
from mailguard.services.domain_extraction_service import DomainExtractionService
from mailguard.services.mailbox import MailboxError, MailboxTransport
from mailguard.services.threat_aggregator import SPAM_FLAG, ThreatAggregator

logger = get_logger(__name__)

TOP_FLAGS_LIMIT = 10
MOST_SUSPICIOUS_LIMIT = 10


@dataclass(slots=True)
class ScanReport:
    scan: MessageScanResult
    marked_as_spam: bool = False
    error: str | None = None


@dataclass(slots=True)
class BulkScanReport:
    scanned: int
    safe: int
    blocked: int
    marked: int
    results: list[ScanReport]


@dataclass(slots=True)
class ScoredMessage:
    message_id: str
    from_address: str
    subject: str
    breakdown: ScoreBreakdown


@dataclass(slots=True)
class FlagFrequency:
    flag: str
    count: int
    percentage: float


@dataclass(slots=True)
class FolderConfidenceReport:
    folder: str
    analyzed: int
    average_score: float | None = None
    min_score: int | None = None
    max_score: int | None = None
    band_distribution: dict[str, int] = field(default_factory=dict)
    top_flags: list[FlagFrequency] = field(default_factory=list)
    most_suspicious: list[ScoredMessage] = field(default_factory=list)
    error: str | None = None


class ThreatScanService:
    def __init__(
        self,
        mailbox: MailboxTransport,
        extractor: DomainExtractionService,
        dns_firewall: DnsFirewallService,
        scorer: ConfidenceScoringService,
        aggregator: ThreatAggregator,
    ):
        self.mailbox = mailbox
        self.extractor = extractor
        self.dns_firewall = dns_firewall
        self.scorer = scorer
        self.aggregator = aggregator

    async def scan_message(self, message_id: str, auto_mark: bool = False) -> ScanReport:
        """Extract and validate one message's domains. Raises MailboxError if it cannot be fetched."""
        message = await self.mailbox.fetch_message(message_id)
        scan = await self._scan(message)

        marked = False
        if auto_mark and not scan.is_safe:
            marked = bool(await self._mark_spam([message_id]))
            if marked:
                logger.info("Marked message as spam", message_id=message_id, blocked_domains=scan.blocked_domains)

        return ScanReport(scan=scan, marked_as_spam=marked)

    async def bulk_scan(self, message_ids: Iterable[str], auto_mark: bool = False) -> BulkScanReport:
        results: list[ScanReport] = []
        for message_id in message_ids:
            try:
                message = await self.mailbox.fetch_message(message_id)
            except MailboxError as e:
                logger.warning("Failed to load message for scan", message_id=message_id, error=str(e))
                results.append(ScanReport(scan=_unscanned(message_id), error=str(e)))
                continue
            results.append(ScanReport(scan=await self._scan(message)))

        unsafe_ids = [r.scan.message_id for r in results if not r.scan.is_safe]
        marked_ids: list[str] = []
        if auto_mark and unsafe_ids:
            marked_ids = await self._mark_spam(unsafe_ids)
            for report in results:
                report.marked_as_spam = report.scan.message_id in marked_ids

        return BulkScanReport(
            scanned=len(results),
            safe=len(results) - len(unsafe_ids),
            blocked=len(unsafe_ids),
            marked=len(marked_ids),
            results=results,
        )

    async def score_message(self, message_id: str) -> ScoredMessage:
        message = await self.mailbox.fetch_message(message_id)
        return self._score(message)

    async def bulk_score(
        self, message_ids: Iterable[str], max_score: int | None = None
    ) -> tuple[list[ScoredMessage], dict[str, str]]:
        """Scores sorted most suspicious first; max_score keeps only scores at or below it."""
        scored: list[ScoredMessage] = []
        errors: dict[str, str] = {}

        for message_id in message_ids:
            try:
                message = await self.mailbox.fetch_message(message_id)
            except MailboxError as e:
                errors[message_id] = str(e)
                continue

            result = self._score(message)
            if max_score is not None and result.breakdown.total_score > max_score:
                continue
            scored.append(result)

        scored.sort(key=lambda s: s.breakdown.total_score)
        return scored, errors

    async def analyze_folder_confidence(self, folder: str, limit: int = 100) -> FolderConfidenceReport:
        message_ids = await self.mailbox.list_message_ids(folder, limit)
        scored, _errors = await self.bulk_score(message_ids[:limit])

        if not scored:
            return FolderConfidenceReport(folder=folder, analyzed=0, error="No emails found in folder")

        scores = [s.breakdown.total_score for s in scored]
        bands = Counter(s.breakdown.confidence_band for s in scored)
        flags = Counter(flag for s in scored for flag in s.breakdown.flags)

        return FolderConfidenceReport(
            folder=folder,
            analyzed=len(scored),
            average_score=round(sum(scores) / len(scores), 1),
            min_score=min(scores),
            max_score=max(scores),
            band_distribution={band: bands.get(band, 0) for band in ("HIGH", "MEDIUM", "LOW", "VERY_LOW")},
            top_flags=[
                FlagFrequency(flag=flag, count=count, percentage=round(count / len(scored) * 100, 1))
                for flag, count in flags.most_common(TOP_FLAGS_LIMIT)
            ],
            most_suspicious=scored[:MOST_SUSPICIOUS_LIMIT],
        )

    async def assess_message(self, message_id: str, auto_action: bool = False) -> ThreatAssessment:
        message = await self.mailbox.fetch_message(message_id)
        return await self.aggregator.assess(message, auto_action)

    async def bulk_assess(self, message_ids: Iterable[str], auto_action: bool = False) -> BulkAssessmentSummary:
        messages: list[EmailMessage] = []
        errors: dict[str, str] = {}
        for message_id in message_ids:
            try:
                messages.append(await self.mailbox.fetch_message(message_id))
            except MailboxError as e:
                errors[message_id] = str(e)

        summary = await self.aggregator.assess_many(messages, auto_action)
        summary.errors = errors
        return summary

    async def _scan(self, message: EmailMessage) -> MessageScanResult:
        domains = self.extractor.extract_all_domains(message)
        return await self.dns_firewall.validate_message_domains(message.message_id, domains)

    def _score(self, message: EmailMessage) -> ScoredMessage:
        return ScoredMessage(
            message_id=message.message_id,
            from_address=message.from_address,
            subject=message.subject,
            breakdown=self.scorer.score_email_confidence(message.headers()),
        )

    async def _mark_spam(self, message_ids: list[str]) -> list[str]:
        marked: list[str] = []
        for message_id in message_ids:
            try:
                await self.mailbox.mark_message(message_id, SPAM_FLAG)
            except MailboxError as e:
                logger.error("Failed to mark message as spam", message_id=message_id, error=str(e))
                continue
            marked.append(message_id)
        return marked


def _unscanned(message_id: str) -> MessageScanResult:
    return MessageScanResult(
        message_id=message_id,
        is_safe=True,
        domains=[],
        blocked_domains=[],
        total_domains=0,
        scan_time_ms=0.0,
    )
