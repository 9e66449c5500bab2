"""
Combined message verdict: DNS firewall scan + header confidence score.

A message is quarantined when any linked domain is blocked, when its
confidence band is LOW or VERY_LOW, or when a configured sender reputation
provider reports the sender as spam. Marking the message in the mailbox only
happens on request.
"""

from collections.abc import Iterable

from mailguard.infrastructure.observability.logging import get_logger, log_assessment
from mailguard.models.domain.threat_domain import (
    LOW_CONFIDENCE_BANDS,
    BulkAssessmentSummary,
    EmailMessage,
    MessageScanResult,
    RecommendedAction,
    ReputationRecord,
    ScoreBreakdown,
    ThreatAssessment,
)
from mailguard.services.confidence_scoring_service import ConfidenceScoringService, parse_email_address
from mailguard.services.dns_firewall_service import DnsFirewallService
from mailguard.services.domain_extraction_service import DomainExtractionService
from mailguard.services.mailbox import MailboxTransport
from mailguard.services.sender_reputation_service import SenderReputationProvider

logger = get_logger(__name__)

SPAM_FLAG = "spam"


def recommend_action(
    scan: MessageScanResult,
    confidence: ScoreBreakdown,
    reputation: ReputationRecord | None = None,
) -> RecommendedAction:
    if not scan.is_safe:
        return "quarantine"
    if confidence.confidence_band in LOW_CONFIDENCE_BANDS:
        return "quarantine"
    if reputation is not None and reputation.is_spam:
        return "quarantine"
    return "allow"


class ThreatAggregator:
    def __init__(
        self,
        extractor: DomainExtractionService,
        dns_firewall: DnsFirewallService,
        scorer: ConfidenceScoringService,
        mailbox: MailboxTransport | None = None,
        sender_reputation: SenderReputationProvider | None = None,
    ):
        self.extractor = extractor
        self.dns_firewall = dns_firewall
        self.scorer = scorer
        self.mailbox = mailbox
        self.sender_reputation = sender_reputation

    async def assess(self, message: EmailMessage, auto_action: bool = False) -> ThreatAssessment:
        domains = self.extractor.extract_all_domains(message)
        scan = await self.dns_firewall.validate_message_domains(message.message_id, domains)
        confidence = self.scorer.score_email_confidence(message.headers())
        reputation = await self._sender_reputation(message)

        action = recommend_action(scan, confidence, reputation)
        actioned = False
        if auto_action and action == "quarantine":
            actioned = await self._mark_spam(message.message_id)

        log_assessment(message.message_id, action, scan.is_safe, confidence.confidence_band, actioned)

        return ThreatAssessment(
            message_id=message.message_id,
            domain_safety=scan,
            confidence=confidence,
            recommended_action=action,
            sender_reputation=reputation,
            actioned=actioned,
            from_address=message.from_address,
            subject=message.subject,
        )

    async def assess_many(self, messages: Iterable[EmailMessage], auto_action: bool = False) -> BulkAssessmentSummary:
        """Assess messages one after another; each verdict is independent."""
        assessments = [await self.assess(message, auto_action) for message in messages]

        safe = sum(1 for a in assessments if a.recommended_action == "allow")
        return BulkAssessmentSummary(
            scanned=len(assessments),
            safe=safe,
            blocked=len(assessments) - safe,
            actioned_message_ids=[a.message_id for a in assessments if a.actioned],
            assessments=assessments,
        )

    async def _sender_reputation(self, message: EmailMessage) -> ReputationRecord | None:
        if self.sender_reputation is None:
            return None

        sender = parse_email_address(message.from_address)
        if sender is None:
            return None

        try:
            return await self.sender_reputation.check_email(sender.address)
        except Exception as e:
            logger.warning(
                "Sender reputation check failed, ignoring",
                message_id=message.message_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    async def _mark_spam(self, message_id: str) -> bool:
        if self.mailbox is None:
            logger.warning("Auto action requested without a mailbox", message_id=message_id)
            return False

        try:
            await self.mailbox.mark_message(message_id, SPAM_FLAG)
        except Exception as e:
            logger.error(
                "Failed to mark message as spam",
                message_id=message_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        return True
