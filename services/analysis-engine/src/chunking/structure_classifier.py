"""
Structure Classifier

Inspects raw document text and reports its structural shape: chapters,
sections, tables, language and complexity. Detection is heuristic and
best effort; classification never fails a pipeline run.
"""

import re

from shared.config import get_settings
from shared.models import Complexity, DocumentKind, Language, StructureProfile
from shared.utils import get_logger

from .legal_enrichment import detect_language

CHAPTER_PATTERNS = [
    re.compile(r"^[ \t]*(?:Kapitel|Chapter|Chapitre|Capitolo)\s+\d+", re.MULTILINE),
    re.compile(r"^[ \t]*(?:Abschnitt|Section)\s+\d+", re.MULTILINE),
    re.compile(r"^##[ \t]+", re.MULTILINE),
]

SECTION_PATTERNS = [
    re.compile(r"^[ \t]*(?:§|Art\.?|Article)\s*\d+", re.MULTILINE),
    re.compile(r"^###[ \t]+", re.MULTILINE),
    re.compile(r"^[ \t]*\d+\.\s+[A-ZÄÖÜ]", re.MULTILINE),
]

# Two or more consecutive pipe-delimited rows
TABLE_BLOCK = re.compile(r"(?:^[ \t]*\|[^\n]*\|[ \t]*(?:\n|$)){2,}", re.MULTILINE)

HINT_FLAGS = {"has_chapters", "has_sections", "has_tables"}
TRUE_VALUES = {"true", "yes", "1"}
FALSE_VALUES = {"false", "no", "0"}


class StructureClassifier:
    """Heuristic document structure detection."""

    def __init__(
        self,
        default_language: Language | str | None = None,
        length_threshold: int | None = None,
        medium_length_threshold: int | None = None,
        logger=None,
    ):
        settings = get_settings()
        self.default_language = Language(default_language or settings.default_language)
        self.length_threshold = length_threshold or settings.complexity_length_threshold
        self.medium_length_threshold = (
            medium_length_threshold or settings.medium_complexity_length_threshold
        )
        self.logger = logger or get_logger(__name__)

    def classify(
        self,
        text: str,
        kind: DocumentKind = DocumentKind.GENERAL,
    ) -> StructureProfile:
        """
        Classify document structure.

        Args:
            text: Raw document text
            kind: Declared document kind

        Returns:
            Best-effort StructureProfile; a default profile if detection fails
        """
        try:
            has_chapters = any(p.search(text) for p in CHAPTER_PATTERNS)
            has_sections = any(p.search(text) for p in SECTION_PATTERNS)
            has_tables = TABLE_BLOCK.search(text) is not None
            language = detect_language(text, default=self.default_language)

            profile = StructureProfile(
                document_kind=kind,
                language=language,
                has_chapters=has_chapters,
                has_sections=has_sections,
                has_tables=has_tables,
                complexity=self.assess_complexity(len(text), has_chapters, has_sections),
            )
        except Exception as e:
            self.logger.log_error_with_context(
                "Structure classification failed, using default profile",
                e,
                text_length=len(text) if isinstance(text, str) else None,
            )
            return StructureProfile(document_kind=kind, language=self.default_language)

        self.logger.debug(
            "Classified document structure",
            extra={"profile": profile.model_dump(mode="json"), "text_length": len(text)},
        )
        return profile

    def assess_complexity(self, length: int, has_chapters: bool, has_sections: bool) -> Complexity:
        """Chapters weigh two structure points, sections one."""
        structure_score = (2 if has_chapters else 0) + (1 if has_sections else 0)

        if length > self.length_threshold and structure_score >= 2:
            return Complexity.HIGH
        if length > self.medium_length_threshold or structure_score >= 1:
            return Complexity.MEDIUM
        return Complexity.LOW

    def apply_hints(self, profile: StructureProfile, hints: dict[str, str]) -> StructureProfile:
        """
        Override detected structure with caller hints.

        Recognised keys are ``has_chapters``, ``has_sections`` and
        ``has_tables`` ("true"/"false") and ``complexity`` ("low",
        "medium", "high"). Unknown keys and values are ignored with a warning.
        """
        updates: dict[str, object] = {}
        for key, value in hints.items():
            normalized = value.strip().lower()
            if key in HINT_FLAGS and normalized in TRUE_VALUES | FALSE_VALUES:
                updates[key] = normalized in TRUE_VALUES
            elif key == "complexity" and normalized in {c.value for c in Complexity}:
                updates[key] = Complexity(normalized)
            else:
                self.logger.warning(
                    f"Ignoring structure hint {key}={value!r}", extra={"hint": key}
                )

        return profile.model_copy(update=updates) if updates else profile
