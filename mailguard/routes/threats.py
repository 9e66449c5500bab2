"""
Threat API Routes
HTTP endpoints for DNS firewall checks, confidence scoring and combined verdicts.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from mailguard.infrastructure.observability.logging import get_logger
from mailguard.models.api.threat_request import (
    BulkAssessRequest,
    BulkScanRequest,
    BulkScoreRequest,
    DomainCheckRequest,
    SenderCheckRequest,
)
from mailguard.models.api.threat_response import (
    BulkAssessmentResponse,
    BulkScanResponse,
    BulkScoreResponse,
    ConfidenceScoreResponse,
    DomainBatchResponse,
    DomainCheckResponse,
    FlagFrequencyResponse,
    FolderConfidenceResponse,
    MessageScanResponse,
    ScoreRuleResponse,
    SenderBatchResponse,
    SenderCheckResponse,
    SenderReputationResponse,
    ThreatAssessmentResponse,
)
from mailguard.models.domain.threat_domain import (
    DomainValidationResult,
    SenderCheckResult,
    ThreatAssessment,
)
from mailguard.services.dns_firewall_service import DnsFirewallService
from mailguard.services.mailbox import MailboxError
from mailguard.services.sender_list_service import SenderListService
from mailguard.services.threat_aggregator import ThreatAggregator
from mailguard.services.threat_scan_service import ScanReport, ScoredMessage, ThreatScanService

logger = get_logger(__name__)

router = APIRouter(prefix="/threats", tags=["threats"])


def get_dns_firewall(request: Request) -> DnsFirewallService:
    return request.app.state.dns_firewall


def get_sender_list(request: Request) -> SenderListService:
    return request.app.state.sender_list


def get_scan_service(request: Request) -> ThreatScanService:
    """Mailbox-backed operations; unavailable until a transport is attached to app.state.mailbox."""
    state = request.app.state
    mailbox = getattr(state, "mailbox", None)
    if mailbox is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="No mailbox transport configured",
        )

    aggregator = ThreatAggregator(
        state.extractor,
        state.dns_firewall,
        state.scorer,
        mailbox=mailbox,
        sender_reputation=getattr(state, "sender_reputation", None),
    )
    return ThreatScanService(mailbox, state.extractor, state.dns_firewall, state.scorer, aggregator)


def _mailbox_http_error(message_id: str, e: MailboxError) -> HTTPException:
    if e.not_found:
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Message {message_id} not found")

    logger.error("Mailbox operation failed", message_id=message_id, operation=e.operation, error=str(e))
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Mailbox operation failed")


def _domain_response(result: DomainValidationResult) -> DomainCheckResponse:
    return DomainCheckResponse(
        domain=result.domain,
        is_safe=result.is_safe,
        is_blocked=result.is_blocked,
        provider=result.provider,
        checked_at=result.checked_at,
        response_time_ms=result.response_time_ms,
        from_cache=result.from_cache,
        error=result.error,
    )


def _scan_response(report: ScanReport) -> MessageScanResponse:
    scan = report.scan
    return MessageScanResponse(
        message_id=scan.message_id,
        is_safe=scan.is_safe,
        domains=scan.domains,
        blocked_domains=scan.blocked_domains,
        total_domains=scan.total_domains,
        scan_time_ms=scan.scan_time_ms,
        marked_as_spam=report.marked_as_spam,
        error=report.error,
    )


def _score_response(scored: ScoredMessage) -> ConfidenceScoreResponse:
    breakdown = scored.breakdown
    return ConfidenceScoreResponse(
        message_id=scored.message_id,
        from_address=scored.from_address,
        subject=scored.subject,
        total_score=breakdown.total_score,
        confidence_band=breakdown.confidence_band,
        recommendation=breakdown.recommendation,
        flags=breakdown.flags,
        rules=[ScoreRuleResponse(rule_id=r.rule_id, points=r.points, reason=r.reason) for r in breakdown.rules],
        top_issues=breakdown.top_issues(),
    )


def _assessment_response(assessment: ThreatAssessment) -> ThreatAssessmentResponse:
    reputation = assessment.sender_reputation
    return ThreatAssessmentResponse(
        message_id=assessment.message_id,
        recommended_action=assessment.recommended_action,
        actioned=assessment.actioned,
        domain_safety=_scan_response(ScanReport(scan=assessment.domain_safety, marked_as_spam=assessment.actioned)),
        confidence=_score_response(
            ScoredMessage(
                message_id=assessment.message_id,
                from_address=assessment.from_address,
                subject=assessment.subject,
                breakdown=assessment.confidence,
            )
        ),
        sender_reputation=(
            SenderReputationResponse(
                email=reputation.email,
                is_spam=reputation.is_spam,
                spam_score=reputation.spam_score,
                source=reputation.source,
                reason=reputation.reason,
                from_cache=reputation.from_cache,
            )
            if reputation
            else None
        ),
    )


def _sender_response(result: SenderCheckResult) -> SenderCheckResponse:
    return SenderCheckResponse(
        email=result.email,
        domain=result.domain,
        is_spam=result.is_spam,
        confidence=result.confidence,
        reason=result.reason,
    )


@router.get("/domains/{domain}", response_model=DomainCheckResponse)
async def check_domain(domain: str, dns_firewall: DnsFirewallService = Depends(get_dns_firewall)):
    """Check one domain against the DNS firewall."""
    result = await dns_firewall.check_domain(domain)
    return _domain_response(result)


@router.post("/domains/check", response_model=DomainBatchResponse)
async def check_domains(
    request: DomainCheckRequest, dns_firewall: DnsFirewallService = Depends(get_dns_firewall)
):
    """Check many domains; duplicates are looked up once."""
    results = await dns_firewall.check_domains(request.domains)
    blocked = sum(1 for r in results.values() if r.is_blocked)

    return DomainBatchResponse(
        total=len(request.domains),
        unique=len(results),
        safe=len(results) - blocked,
        blocked=blocked,
        results=[_domain_response(r) for r in results.values()],
    )


@router.post("/messages/scan", response_model=BulkScanResponse)
async def bulk_scan_messages(
    request: BulkScanRequest, scan_service: ThreatScanService = Depends(get_scan_service)
):
    """Scan several messages; unloadable messages are reported safe with an error."""
    report = await scan_service.bulk_scan(request.message_ids, auto_mark=request.auto_mark)
    return BulkScanResponse(
        scanned=report.scanned,
        safe=report.safe,
        blocked=report.blocked,
        marked=report.marked,
        results=[_scan_response(r) for r in report.results],
    )


@router.post("/messages/{message_id}/scan", response_model=MessageScanResponse)
async def scan_message(
    message_id: str,
    auto_mark: bool = Query(False, description="Mark as spam when a blocked domain is found"),
    scan_service: ThreatScanService = Depends(get_scan_service),
):
    try:
        report = await scan_service.scan_message(message_id, auto_mark=auto_mark)
    except MailboxError as e:
        raise _mailbox_http_error(message_id, e)

    return _scan_response(report)


@router.post("/messages/score", response_model=BulkScoreResponse)
async def bulk_score_messages(
    request: BulkScoreRequest, scan_service: ThreatScanService = Depends(get_scan_service)
):
    """Score several messages, most suspicious first."""
    scored, errors = await scan_service.bulk_score(request.message_ids, max_score=request.max_score)
    return BulkScoreResponse(
        scored=len(scored),
        filter=f"Score <= {request.max_score}" if request.max_score is not None else "None",
        results=[_score_response(s) for s in scored],
        errors=errors,
    )


@router.get("/messages/{message_id}/score", response_model=ConfidenceScoreResponse)
async def score_message(message_id: str, scan_service: ThreatScanService = Depends(get_scan_service)):
    try:
        scored = await scan_service.score_message(message_id)
    except MailboxError as e:
        raise _mailbox_http_error(message_id, e)

    return _score_response(scored)


@router.get("/folders/{folder}/confidence", response_model=FolderConfidenceResponse)
async def analyze_folder_confidence(
    folder: str,
    limit: int = Query(100, ge=1, le=1000, description="Maximum messages to analyze"),
    scan_service: ThreatScanService = Depends(get_scan_service),
):
    try:
        report = await scan_service.analyze_folder_confidence(folder, limit=limit)
    except MailboxError as e:
        raise _mailbox_http_error(folder, e)

    return FolderConfidenceResponse(
        folder=report.folder,
        analyzed=report.analyzed,
        average_score=report.average_score,
        min_score=report.min_score,
        max_score=report.max_score,
        band_distribution=report.band_distribution,
        top_flags=[
            FlagFrequencyResponse(flag=f.flag, count=f.count, percentage=f.percentage) for f in report.top_flags
        ],
        most_suspicious=[_score_response(s) for s in report.most_suspicious],
        error=report.error,
    )


@router.post("/messages/assess", response_model=BulkAssessmentResponse)
async def bulk_assess_messages(
    request: BulkAssessRequest, scan_service: ThreatScanService = Depends(get_scan_service)
):
    summary = await scan_service.bulk_assess(request.message_ids, auto_action=request.auto_action)
    return BulkAssessmentResponse(
        scanned=summary.scanned,
        safe=summary.safe,
        blocked=summary.blocked,
        actioned_message_ids=summary.actioned_message_ids,
        assessments=[_assessment_response(a) for a in summary.assessments],
        errors=summary.errors,
    )


@router.post("/messages/{message_id}/assess", response_model=ThreatAssessmentResponse)
async def assess_message(
    message_id: str,
    auto_action: bool = Query(False, description="Mark as spam when the verdict is quarantine"),
    scan_service: ThreatScanService = Depends(get_scan_service),
):
    """Full verdict: domain safety, header confidence and sender reputation."""
    try:
        assessment = await scan_service.assess_message(message_id, auto_action=auto_action)
    except MailboxError as e:
        raise _mailbox_http_error(message_id, e)

    return _assessment_response(assessment)


@router.post("/senders/check", response_model=SenderBatchResponse)
async def check_senders(request: SenderCheckRequest, sender_list: SenderListService = Depends(get_sender_list)):
    """Check sender addresses against known spam domains and the configured lists."""
    summary = sender_list.check_emails(request.emails)
    return SenderBatchResponse(
        spam=[_sender_response(r) for r in summary.spam],
        clean=[_sender_response(r) for r in summary.clean],
        domain_counts=dict(summary.domain_counts),
    )
