"""
Email confidence scoring from headers alone (no network).

Scale: -100 (likely spoofed) to +100 (highly legitimate). Rules live in an
ordered table of (rule id, points, predicate, reason template); every rule
whose predicate holds fires, the points are summed and the sum is clamped.
"""

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from mailguard.infrastructure.observability.logging import get_logger
from mailguard.models.domain.threat_domain import (
    ConfidenceBand,
    EmailHeaders,
    ParsedAddress,
    ScoreBreakdown,
    ScoreRule,
    TyposquattingResult,
)
from mailguard.services.typosquatting_detector import TyposquattingDetector

logger = get_logger(__name__)

MIN_SCORE = -100
MAX_SCORE = 100

FREE_EMAIL_PROVIDERS = frozenset(
    {
        "gmail.com",
        "yahoo.com",
        "outlook.com",
        "hotmail.com",
        "aol.com",
        "icloud.com",
        "protonmail.com",
        "mail.com",
        "zoho.com",
        "yandex.com",
        "gmx.com",
        "live.com",
        "msn.com",
        "me.com",
        "mac.com",
    }
)

SUSPICIOUS_TLDS = (
    ".tk", ".ml", ".ga", ".cf", ".gq", ".xyz", ".top", ".work",
    ".click", ".link", ".pw", ".cc", ".info", ".biz", ".su", ".club",
)

FINANCIAL_KEYWORDS = (
    "bank", "paypal", "venmo", "zelle", "wire", "transfer", "account",
    "payment", "invoice", "urgent", "verify", "confirm", "suspend",
    "security", "alert", "locked", "unauthorized", "fraud",
)

COMPANY_KEYWORDS = (
    "ceo", "cfo", "president", "director", "executive", "manager",
    "hr", "payroll", "admin", "administrator",
)

URGENCY_KEYWORDS = (
    "urgent", "immediate", "asap", "today", "now", "quickly", "rush",
    "emergency", "critical", "important", "deadline", "expires", "expiring",
)

INVALID_FROM_RULE = ScoreRule(rule_id="INVALID_FROM", points=-100, reason="Invalid From address")

_ADDRESS_RE = re.compile(r"<?([^<>@\s]+@[^<>\s]+)>?")
_DISPLAY_NAME_RE = re.compile(r"^([^<]+)\s*<")
_MESSAGE_ID_DOMAIN_RE = re.compile(r"@([^>]+)>?$")
_AUTH_PASS_RE = re.compile(r"pass", re.IGNORECASE)


def _keyword_pattern(keywords: Iterable[str]) -> re.Pattern:
    # Plain containment: "myaccount" carries "account"
    return re.compile("|".join(re.escape(k) for k in keywords), re.IGNORECASE)


_FINANCIAL_RE = _keyword_pattern(FINANCIAL_KEYWORDS)
_COMPANY_RE = _keyword_pattern(COMPANY_KEYWORDS)
_URGENCY_RE = _keyword_pattern(URGENCY_KEYWORDS)


def parse_email_address(value: str | None) -> ParsedAddress | None:
    """
    Parse '"Name" <user@domain>' or bare 'user@domain'.

    Returns None when no address can be found; never a partial record.
    """
    if not value:
        return None

    match = _ADDRESS_RE.search(value)
    if not match:
        return None

    address = match.group(1).lower()
    parts = address.split("@")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None

    name_match = _DISPLAY_NAME_RE.match(value)
    display_name = name_match.group(1).strip().strip('"').strip() if name_match else None

    return ParsedAddress(address=address, domain=parts[1], display_name=display_name or None)


def has_financial_keywords(text: str | None) -> bool:
    return bool(text and _FINANCIAL_RE.search(text))


def has_company_keywords(text: str | None) -> bool:
    return bool(text and _COMPANY_RE.search(text))


def has_urgency_keywords(text: str | None) -> bool:
    return bool(text and _URGENCY_RE.search(text))


def auth_passed(result: str | None) -> bool:
    return bool(result and _AUTH_PASS_RE.search(result))


def auth_present(result: str | None) -> bool:
    return bool(result and result.strip())


def message_id_domain(message_id: str | None) -> str | None:
    if not message_id:
        return None
    match = _MESSAGE_ID_DOMAIN_RE.search(message_id.strip())
    return match.group(1).lower() if match else None


def confidence_band_for(score: int) -> tuple[ConfidenceBand, str]:
    """Band and recommendation for a clamped score, evaluated high to low."""
    if score >= 50:
        return "HIGH", "Email appears legitimate"
    if score >= 0:
        return "MEDIUM", "Exercise caution - verify sender if unexpected"
    if score >= -50:
        return "LOW", "Likely spoofed - verify through alternate channel before acting"
    return "VERY_LOW", "DANGER - High probability of spoofing, recommend deletion"


@dataclass(slots=True)
class ScoringContext:
    """Everything a rule predicate may look at, computed once per evaluation."""

    headers: EmailHeaders
    sender: ParsedAddress
    reply_to: ParsedAddress | None
    return_path: ParsedAddress | None
    typosquatting: TyposquattingResult
    is_free_email: bool
    has_suspicious_tld: bool
    is_known_legitimate: bool
    spf_pass: bool
    dkim_pass: bool
    dmarc_pass: bool

    @property
    def subject(self) -> str:
        return self.headers.subject or ""

    def template_values(self) -> dict[str, str]:
        return {
            "sender_domain": self.sender.domain,
            "reply_to_domain": self.reply_to.domain if self.reply_to else "",
            "return_path_domain": self.return_path.domain if self.return_path else "",
            "matched_domain": self.typosquatting.matched_domain or "",
        }


@dataclass(slots=True, frozen=True)
class ScoringRuleDefinition:
    rule_id: str
    points: int
    predicate: Callable[[ScoringContext], bool]
    reason_template: str

    def evaluate(self, context: ScoringContext) -> ScoreRule | None:
        if not self.predicate(context):
            return None
        return ScoreRule(
            rule_id=self.rule_id,
            points=self.points,
            reason=self.reason_template.format(**context.template_values()),
        )


SCORING_RULES: tuple[ScoringRuleDefinition, ...] = (
    ScoringRuleDefinition(
        "FREE_EMAIL_FINANCIAL",
        -40,
        lambda c: c.is_free_email and has_financial_keywords(c.subject),
        "Free email provider ({sender_domain}) with financial keywords in subject",
    ),
    ScoringRuleDefinition(
        "SUSPICIOUS_TLD",
        -15,
        lambda c: c.has_suspicious_tld,
        "Suspicious top-level domain: {sender_domain}",
    ),
    ScoringRuleDefinition(
        "REPLY_TO_MISMATCH",
        -20,
        lambda c: c.reply_to is not None and c.reply_to.domain != c.sender.domain,
        "Reply-To domain ({reply_to_domain}) differs from From domain ({sender_domain})",
    ),
    ScoringRuleDefinition(
        "TYPOSQUATTING",
        -30,
        lambda c: c.typosquatting.is_typosquatting,
        "Domain {sender_domain} resembles {matched_domain} (possible typosquatting)",
    ),
    ScoringRuleDefinition(
        "DISPLAY_NAME_SPOOFING",
        -25,
        lambda c: c.is_free_email and has_company_keywords(c.sender.display_name),
        "Display name contains company keywords but uses free email provider",
    ),
    ScoringRuleDefinition(
        "URGENT_FINANCIAL",
        -20,
        lambda c: has_urgency_keywords(c.subject) and has_financial_keywords(c.subject),
        "Subject contains both urgency and financial keywords",
    ),
    ScoringRuleDefinition(
        "MISSING_MESSAGE_ID",
        -10,
        lambda c: not auth_present(c.headers.message_id),
        "Email missing Message-ID header",
    ),
    ScoringRuleDefinition(
        "INVALID_MESSAGE_ID",
        -15,
        lambda c: auth_present(c.headers.message_id)
        and message_id_domain(c.headers.message_id) != c.sender.domain,
        "Message-ID domain does not match sender domain",
    ),
    ScoringRuleDefinition(
        "RETURN_PATH_MISMATCH",
        -15,
        lambda c: c.return_path is not None and c.return_path.domain != c.sender.domain,
        "Return-Path domain ({return_path_domain}) differs from From domain",
    ),
    ScoringRuleDefinition(
        "SPF_PASS",
        15,
        lambda c: c.spf_pass,
        "SPF authentication passed",
    ),
    ScoringRuleDefinition(
        "SPF_FAIL",
        -20,
        lambda c: not c.spf_pass and auth_present(c.headers.received_spf),
        "SPF authentication failed",
    ),
    ScoringRuleDefinition(
        "DKIM_PASS",
        20,
        lambda c: c.dkim_pass,
        "DKIM signature verified",
    ),
    ScoringRuleDefinition(
        "DKIM_FAIL",
        -25,
        lambda c: not c.dkim_pass and auth_present(c.headers.dkim_result),
        "DKIM signature verification failed",
    ),
    ScoringRuleDefinition(
        "DMARC_PASS",
        25,
        lambda c: c.dmarc_pass,
        "DMARC policy passed",
    ),
    ScoringRuleDefinition(
        "DMARC_FAIL",
        -30,
        lambda c: not c.dmarc_pass and auth_present(c.headers.dmarc_result),
        "DMARC policy failed",
    ),
    ScoringRuleDefinition(
        "FULL_AUTH_SUITE",
        10,
        lambda c: c.spf_pass and c.dkim_pass and c.dmarc_pass,
        "All authentication methods (SPF, DKIM, DMARC) passed",
    ),
    ScoringRuleDefinition(
        "CORPORATE_DOMAIN",
        10,
        lambda c: not c.is_free_email and not c.has_suspicious_tld,
        "Using corporate domain (not free email provider)",
    ),
    ScoringRuleDefinition(
        "KNOWN_LEGITIMATE_DOMAIN",
        20,
        lambda c: c.is_known_legitimate,
        "Well-known legitimate domain: {sender_domain}",
    ),
)


class ConfidenceScoringService:
    """Anti-spoofing score for a message based on its headers."""

    def __init__(
        self,
        detector: TyposquattingDetector | None = None,
        rules: Iterable[ScoringRuleDefinition] = SCORING_RULES,
        free_email_providers: Iterable[str] = FREE_EMAIL_PROVIDERS,
        suspicious_tlds: Iterable[str] = SUSPICIOUS_TLDS,
    ):
        self.detector = detector or TyposquattingDetector()
        self.rules = tuple(rules)
        self.free_email_providers = frozenset(d.lower() for d in free_email_providers)
        self.suspicious_tlds = tuple(t.lower() for t in suspicious_tlds)

    def is_free_email_provider(self, domain: str) -> bool:
        return domain.lower() in self.free_email_providers

    def has_suspicious_tld(self, domain: str) -> bool:
        return domain.lower().endswith(self.suspicious_tlds)

    def build_context(self, headers: EmailHeaders, sender: ParsedAddress) -> ScoringContext:
        reply_to = parse_email_address(headers.reply_to) if headers.reply_to else None
        return_path = parse_email_address(headers.return_path) if headers.return_path else None

        return ScoringContext(
            headers=headers,
            sender=sender,
            reply_to=reply_to,
            return_path=return_path,
            typosquatting=self.detector.detect(sender.domain),
            is_free_email=self.is_free_email_provider(sender.domain),
            has_suspicious_tld=self.has_suspicious_tld(sender.domain),
            is_known_legitimate=self.detector.is_known_legitimate(sender.domain),
            spf_pass=auth_passed(headers.received_spf),
            dkim_pass=auth_passed(headers.dkim_result),
            dmarc_pass=auth_passed(headers.dmarc_result),
        )

    def score_email_confidence(self, headers: EmailHeaders) -> ScoreBreakdown:
        sender = parse_email_address(headers.from_address)
        if sender is None:
            logger.info("Unparseable From header", from_preview=(headers.from_address or "")[:60])
            return ScoreBreakdown(
                total_score=MIN_SCORE,
                confidence_band="VERY_LOW",
                rules=[INVALID_FROM_RULE],
                flags=[INVALID_FROM_RULE.rule_id],
                recommendation="DELETE - Invalid sender address",
            )

        context = self.build_context(headers, sender)
        fired = [rule for rule in (d.evaluate(context) for d in self.rules) if rule is not None]

        total = max(MIN_SCORE, min(MAX_SCORE, sum(rule.points for rule in fired)))
        band, recommendation = confidence_band_for(total)

        return ScoreBreakdown(
            total_score=total,
            confidence_band=band,
            rules=fired,
            flags=[rule.rule_id for rule in fired if rule.points < 0],
            recommendation=recommendation,
        )

    def bulk_score_emails(self, headers_list: Iterable[EmailHeaders]) -> list[ScoreBreakdown]:
        return [self.score_email_confidence(headers) for headers in headers_list]
