"""
Legal metadata extraction.

Heuristics shared by the structure classifier and the chunker: language
detection, statute citations, clause-type tags and section numerals.
Swiss and EU citation styles are recognised in German, French, Italian and
English texts.
"""

import re
from bisect import bisect_right

from shared.models import Language

LANGUAGE_KEYWORDS: dict[Language, list[str]] = {
    Language.GERMAN: ["der", "die", "das", "und", "oder", "wenn", "Artikel", "Absatz", "Gesetz"],
    Language.FRENCH: ["le", "la", "les", "et", "ou", "si", "article", "alinéa", "loi"],
    Language.ITALIAN: ["il", "la", "gli", "e", "o", "se", "articolo", "capoverso", "legge"],
    Language.ENGLISH: ["the", "and", "or", "if", "article", "section", "law"],
}

_LANGUAGE_PATTERNS = {
    language: re.compile(
        r"\b(?:" + "|".join(re.escape(word) for word in words) + r")\b", re.IGNORECASE
    )
    for language, words in LANGUAGE_KEYWORDS.items()
}

SWISS_REFERENCE = re.compile(r"\b(OR|ZGB|StGB|StPO|ZPO|DSG|ArG|BÜPF)\s*(?:Art\.?\s*)?(\d+\w*)")
EU_REFERENCE = re.compile(r"\b(DSGVO|GDPR)\s*(?:Art\.?\s*)?(\d+)")
ARTICLE_REFERENCE = re.compile(r"\bArt\.?\s*(\d+\w*)")

CLAUSE_PATTERNS: dict[str, re.Pattern] = {
    "liability": re.compile(
        r"Haftung(?:sausschluss|sbeschränkung)?|\bliabilit(?:y|ies)\b", re.IGNORECASE
    ),
    "jurisdiction": re.compile(r"Gerichtsstand|\bjurisdiction\b|\bplace of venue\b", re.IGNORECASE),
    "termination": re.compile(r"Kündigung(?:sfrist)?|\btermination\b|\bnotice period\b", re.IGNORECASE),
    "confidentiality": re.compile(r"Vertraulichkeit|\bconfidentiality\b", re.IGNORECASE),
    "data_protection": re.compile(r"Datenschutz|\bdata protection\b", re.IGNORECASE),
    "warranty": re.compile(r"Gewährleistung|\bwarrant(?:y|ies)\b", re.IGNORECASE),
    "damages": re.compile(r"Schadens?ersatz|\bdamages\b", re.IGNORECASE),
    "force_majeure": re.compile(r"Force Majeure|höhere Gewalt", re.IGNORECASE),
    "severability": re.compile(r"Salvatorische Klausel|\bseverability\b", re.IGNORECASE),
}

SECTION_MARKER = re.compile(r"(?:§|\bArt\.?|\bArticle)\s*(\d+\w*)")
SUBSECTION_MARKER = re.compile(r"\b(?:Abs\.?|Absatz|Alinéa|Paragraph)\s*(\d+\w*)", re.IGNORECASE)


def detect_language(text: str, default: Language = Language.GERMAN) -> Language:
    """
    Detect the document language by keyword frequency.

    Ties and texts without any keyword hit resolve to ``default``.
    """
    scores = {
        language: len(pattern.findall(text)) for language, pattern in _LANGUAGE_PATTERNS.items()
    }
    best = max(scores.values(), default=0)
    if best == 0:
        return default

    winners = [language for language, score in scores.items() if score == best]
    if len(winners) > 1:
        return default
    return winners[0]


def extract_legal_references(text: str) -> list[str]:
    """Extract statute and article citations, deduplicated in order of appearance."""
    references: list[str] = []
    seen_articles: set[str] = set()

    for match in SWISS_REFERENCE.finditer(text):
        references.append(f"{match.group(1)} Art. {match.group(2)}")
        seen_articles.add(match.group(2))
    for match in EU_REFERENCE.finditer(text):
        references.append(f"{match.group(1)} Art. {match.group(2)}")
        seen_articles.add(match.group(2))
    for match in ARTICLE_REFERENCE.finditer(text):
        if match.group(1) not in seen_articles:
            references.append(f"Art. {match.group(1)}")

    return list(dict.fromkeys(references))


def extract_clause_tags(text: str) -> list[str]:
    """Return the clause types mentioned in text."""
    return [tag for tag, pattern in CLAUSE_PATTERNS.items() if pattern.search(text)]


def extract_subsection(text: str) -> str | None:
    match = SUBSECTION_MARKER.search(text)
    return match.group(1) if match else None


class SectionLocator:
    """
    Resolves the section numeral a span of a document belongs to.

    A span containing a section marker takes the first one inside it;
    otherwise the closest marker before the span applies.
    """

    def __init__(self, text: str):
        self._positions: list[int] = []
        self._numerals: list[str] = []
        for match in SECTION_MARKER.finditer(text):
            self._positions.append(match.start())
            self._numerals.append(match.group(1))

    def locate(self, start: int, end: int) -> str | None:
        i = bisect_right(self._positions, start - 1)
        if i < len(self._positions) and self._positions[i] < end:
            return self._numerals[i]
        if i > 0:
            return self._numerals[i - 1]
        return None
