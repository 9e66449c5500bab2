"""
Lookalike detection for well-known legitimate domains.

For each legitimate domain, in list order, the first rule that matches wins:
exact match (legitimate, stop), confusable character substitution,
Levenshtein distance of exactly 1, and finally the legitimate domain embedded
inside a longer name (paypal.com.evil.net).
"""

from collections.abc import Iterable, Mapping

from mailguard.models.domain.threat_domain import TyposquattingResult

COMMON_LEGITIMATE_DOMAINS: tuple[str, ...] = (
    "amazon.com",
    "apple.com",
    "microsoft.com",
    "google.com",
    "facebook.com",
    "paypal.com",
    "ebay.com",
    "netflix.com",
    "linkedin.com",
    "twitter.com",
    "instagram.com",
    "adobe.com",
    "dropbox.com",
    "salesforce.com",
    "oracle.com",
)

# legitimate character -> lookalikes an attacker may swap in
CONFUSABLE_CHARACTERS: dict[str, tuple[str, ...]] = {
    "a": ("@", "4", "α"),
    "e": ("3", "є", "ε"),
    "i": ("1", "l", "!", "í", "ì"),
    "l": ("1", "i", "|", "ł"),
    "o": ("0", "ο", "σ"),
    "s": ("5", "$", "ş"),
    "t": ("7", "+", "τ"),
    "g": ("9", "q"),
    "b": ("8", "β"),
    "m": ("rn", "nn"),
    "n": ("r",),
    "u": ("v", "ü"),
    "v": ("u", "ν"),
    "w": ("vv", "ω"),
}

NOT_TYPOSQUATTING = TyposquattingResult(is_typosquatting=False)


def edit_distance(source: str, target: str) -> int:
    """Levenshtein distance with unit insert/delete/substitute cost."""
    rows, cols = len(source) + 1, len(target) + 1
    table = [[0] * cols for _ in range(rows)]

    for i in range(rows):
        table[i][0] = i
    for j in range(cols):
        table[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            if source[i - 1] == target[j - 1]:
                table[i][j] = table[i - 1][j - 1]
            else:
                table[i][j] = 1 + min(
                    table[i - 1][j - 1],  # substitute
                    table[i][j - 1],  # insert
                    table[i - 1][j],  # delete
                )

    return table[rows - 1][cols - 1]


class TyposquattingDetector:
    def __init__(
        self,
        legitimate_domains: Iterable[str] = COMMON_LEGITIMATE_DOMAINS,
        confusables: Mapping[str, Iterable[str]] = CONFUSABLE_CHARACTERS,
    ):
        self.legitimate_domains = tuple(d.lower() for d in legitimate_domains)
        self.confusables = {char: tuple(subs) for char, subs in confusables.items()}

    def is_known_legitimate(self, domain: str) -> bool:
        return domain.lower() in self.legitimate_domains

    def detect(self, domain: str) -> TyposquattingResult:
        candidate = domain.strip().lower()
        if candidate.startswith("www."):
            candidate = candidate[4:]
        if not candidate:
            return NOT_TYPOSQUATTING

        for legitimate in self.legitimate_domains:
            if candidate == legitimate:
                return NOT_TYPOSQUATTING

            if self._matches_substitution(candidate, legitimate):
                return TyposquattingResult(True, legitimate, "substitution")

            if edit_distance(candidate, legitimate) == 1:
                return TyposquattingResult(True, legitimate, "edit_distance")

            if legitimate in candidate:
                return TyposquattingResult(True, legitimate, "subdomain_embedding")

        return NOT_TYPOSQUATTING

    def _matches_substitution(self, candidate: str, legitimate: str) -> bool:
        """True when replacing every occurrence of one character with one lookalike yields candidate."""
        for char, substitutes in self.confusables.items():
            if char not in legitimate:
                continue
            for substitute in substitutes:
                if legitimate.replace(char, substitute) == candidate:
                    return True
        return False
