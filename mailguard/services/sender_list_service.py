"""
Local sender checks against known spam domains and an explicit domain policy.

No network. Order of precedence: whitelist, known or custom spam domain,
suspicious domain pattern, clean.
"""

import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from mailguard.config import Settings
from mailguard.models.domain.threat_domain import SenderCheckResult

KNOWN_SPAM_DOMAINS = frozenset(
    {
        # disposable mailbox services
        "tempmail.com", "temp-mail.org", "guerrillamail.com", "guerrillamail.org",
        "guerrillamail.net", "sharklasers.com", "mailinator.com", "maildrop.cc",
        "dispostable.com", "throwaway.email", "throwawaymail.com", "fakeinbox.com",
        "trashmail.com", "trashmail.net", "trashmail.org", "10minutemail.com",
        "10minutemail.net", "minutemail.com", "yopmail.com", "yopmail.fr",
        "yopmail.net", "mailnesia.com", "getnada.com", "nada.email", "tempail.com",
        "emailondeck.com", "mohmal.com", "tmpmail.org", "tmpmail.net", "tempr.email",
        "discard.email", "discardmail.com", "spamgourmet.com", "mailcatch.com",
        "mytrashmail.com", "jetable.org", "spambox.us", "spam4.me", "grr.la",
        # placeholder and junk domains
        "example.com", "test.com", "spam.com", "junk.com",
        # phishing lookalikes
        "secure-login-verify.com", "account-verify-secure.com", "login-secure-verify.com",
    }
)

SUSPICIOUS_DOMAIN_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"^[a-z0-9]{20,}\.(com|net|org)$", re.IGNORECASE),
    re.compile(r"\d{5,}"),
    re.compile(r"(secure|verify|login|account|update|confirm|suspend).*\d+", re.IGNORECASE),
    re.compile(r"^xn--", re.IGNORECASE),
)

_BRACKETED_RE = re.compile(r"<([^>]+)>")
_BARE_RE = re.compile(r"([^\s<>]+@[^\s<>]+)")


@dataclass(slots=True)
class DomainListPolicy:
    """Operator-supplied domain lists; passed in explicitly, never read from the environment here."""

    spam_domains: set[str] = field(default_factory=set)
    whitelist_domains: set[str] = field(default_factory=set)

    def __post_init__(self):
        self.spam_domains = {d.strip().lower() for d in self.spam_domains if d.strip()}
        self.whitelist_domains = {d.strip().lower() for d in self.whitelist_domains if d.strip()}

    @classmethod
    def from_settings(cls, config: Settings) -> "DomainListPolicy":
        return cls(spam_domains=config.spam_domain_set(), whitelist_domains=config.whitelist_domain_set())


@dataclass(slots=True)
class SenderListSummary:
    spam: list[SenderCheckResult]
    clean: list[SenderCheckResult]
    domain_counts: list[tuple[str, int]]  # most frequent first


def extract_sender_domain(email: str | None) -> str | None:
    if not email:
        return None
    match = _BRACKETED_RE.search(email) or _BARE_RE.search(email)
    if not match:
        return None
    parts = match.group(1).split("@")
    if len(parts) != 2 or not parts[1]:
        return None
    return parts[1].strip().lower()


class SenderListService:
    def __init__(
        self,
        policy: DomainListPolicy | None = None,
        known_spam_domains: Iterable[str] = KNOWN_SPAM_DOMAINS,
        patterns: Iterable[re.Pattern] = SUSPICIOUS_DOMAIN_PATTERNS,
    ):
        self.policy = policy or DomainListPolicy()
        self.known_spam_domains = frozenset(known_spam_domains)
        self.patterns = tuple(patterns)

    def check_email(self, email: str) -> SenderCheckResult:
        domain = extract_sender_domain(email)
        if domain is None:
            return SenderCheckResult(
                email=email, domain="unknown", is_spam=False, confidence="low", reason="Could not extract domain"
            )

        if domain in self.policy.whitelist_domains:
            return SenderCheckResult(
                email=email, domain=domain, is_spam=False, confidence="high", reason="Domain is whitelisted"
            )

        if domain in self.known_spam_domains or domain in self.policy.spam_domains:
            return SenderCheckResult(
                email=email,
                domain=domain,
                is_spam=True,
                confidence="high",
                reason="Known spam/disposable email domain",
            )

        for pattern in self.patterns:
            if pattern.search(domain):
                return SenderCheckResult(
                    email=email,
                    domain=domain,
                    is_spam=True,
                    confidence="medium",
                    reason=f"Domain matches suspicious pattern: {pattern.pattern}",
                )

        return SenderCheckResult(email=email, domain=domain, is_spam=False, confidence="low")

    def check_emails(self, emails: Iterable[str]) -> SenderListSummary:
        results = [self.check_email(email) for email in emails]
        counts = Counter(result.domain for result in results)
        return SenderListSummary(
            spam=[r for r in results if r.is_spam],
            clean=[r for r in results if not r.is_spam],
            domain_counts=counts.most_common(),
        )
