"""
Terminology: glossary protection around an opaque translation backend.

Matched glossary sources are swapped for PLACEHOLDER_<n> tokens before the
text leaves the process, and swapped for their targets when the translation
comes back. Libraries can be toggled and imported from CSV.
"""
import csv
import io
import logging
import re
import uuid
from typing import Iterable, List, Optional

from .models import PreparedText, Replacement, Term, TerminologyLibrary

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "PLACEHOLDER_"

TARGET_LANGUAGE_COLUMNS = ("tgt_lng", "target_language", "target_lang")

PLACEHOLDER_INSTRUCTIONS = (
    "The text contains placeholder tokens such as PLACEHOLDER_0. "
    "Copy every placeholder token into the translation exactly as written; "
    "never translate or drop them."
)

# Sources made of these characters are matched on word boundaries
_WORD_SOURCE = re.compile(r"^[A-Za-z0-9 ]+$")

# Han + Kana. Hangul is deliberately absent: Korean separates words with spaces.
_CJK = "\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff"
_CJK_PUNCT = "\u3000-\u303f\uff00-\uffef"

_SPACE_BETWEEN_CJK = re.compile(rf"(?<=[{_CJK}])[ \t]+(?=[{_CJK}])")
_SPACE_BEFORE_CJK_PUNCT = re.compile(rf"[ \t]+(?=[{_CJK_PUNCT}])")
_SPACE_AFTER_CJK_PUNCT = re.compile(rf"(?<=[{_CJK_PUNCT}])[ \t]+")

_RESIDUE = re.compile(
    r"[\s.,!?;:'\"()\[\]{}<>\-–—…·~～/\\|"
    r"、，。！？；：“”‘’（）【】《》「」『』]+"
)


class TerminologyImportError(ValueError):
    """Raised when a glossary import yields no usable term."""
    pass


def _language_key(language: Optional[str]) -> str:
    return (language or "").strip().lower().replace("_", "-")


def cleanup_cjk_spacing(text: str) -> str:
    """Remove spaces a translator inserted between CJK characters or around CJK punctuation."""
    text = _SPACE_BETWEEN_CJK.sub("", text)
    text = _SPACE_BEFORE_CJK_PUNCT.sub("", text)
    return _SPACE_AFTER_CJK_PUNCT.sub("", text)


def _longest_first(replacements: Iterable[Replacement]) -> List[Replacement]:
    # PLACEHOLDER_12 must be handled before PLACEHOLDER_1
    return sorted(replacements, key=lambda item: len(item.placeholder), reverse=True)


def restore(text: str, replacements: List[Replacement]) -> str:
    """Swap every placeholder back to its glossary target."""
    if not replacements:
        return text
    restored = text
    for item in _longest_first(replacements):
        restored = restored.replace(item.placeholder, item.replacement)
    return cleanup_cjk_spacing(restored)


def is_terminology_only(text: str, replacements: List[Replacement]) -> bool:
    """True when nothing but placeholders, whitespace and punctuation is left."""
    if not replacements:
        return False
    remainder = text
    for item in _longest_first(replacements):
        remainder = remainder.replace(item.placeholder, "")
    return not _RESIDUE.sub("", remainder)


def normalize_term(raw) -> Optional[Term]:
    """Build a Term from a model or a loosely-keyed dict; None if unusable."""
    if isinstance(raw, Term):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        return None
    source = str(raw.get("source") or "").strip()
    target = str(raw.get("target") or "").strip()
    if not source or not target:
        return None
    language = None
    for field in ("target_language", "targetLanguage", *TARGET_LANGUAGE_COLUMNS):
        value = raw.get(field)
        if isinstance(value, str) and value.strip():
            language = value.strip()
            break
    return Term(source=source, target=target, target_language=language)


def normalize_library(raw) -> Optional[TerminologyLibrary]:
    if isinstance(raw, TerminologyLibrary):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        return None
    terms = [term for term in (normalize_term(t) for t in raw.get("terms") or []) if term]
    if not terms:
        return None
    return TerminologyLibrary(
        id=str(raw.get("id") or uuid.uuid4().hex[:12]),
        name=str(raw.get("name") or "").strip() or "Glossary",
        enabled=bool(raw.get("enabled", True)),
        terms=terms,
    )


def normalize_libraries(raw_libraries) -> List[TerminologyLibrary]:
    """Validate stored libraries, dropping any left without a valid term."""
    libraries = []
    for raw in raw_libraries or []:
        library = normalize_library(raw)
        if library is None:
            logger.warning("[Terminology] Dropping library without valid terms")
            continue
        libraries.append(library)
    return libraries


def parse_terminology_csv(content, name: str = "Glossary", library_id: str = None) -> TerminologyLibrary:
    """
    Parse a glossary CSV into a library.

    The header must name `source` and `target`; `tgt_lng`, `target_language`
    or `target_lang` optionally tags a term with its target language. Quoting
    follows RFC 4180 (doubled quotes escape a quote). Malformed rows are
    skipped one by one.

    Raises:
        TerminologyImportError: non-UTF-8 bytes, bad header, unreadable CSV or zero valid terms
    """
    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise TerminologyImportError(f"CSV file is not valid UTF-8: {e}")
    content = content.lstrip("\ufeff")

    reader = csv.reader(io.StringIO(content, newline=""))
    try:
        header = next(reader, None)
        if not header:
            raise TerminologyImportError("CSV file is empty")

        columns = [column.strip().lower() for column in header]
        if "source" not in columns or "target" not in columns:
            raise TerminologyImportError("CSV header must contain 'source' and 'target' columns")

        source_index = columns.index("source")
        target_index = columns.index("target")
        language_index = next(
            (columns.index(column) for column in TARGET_LANGUAGE_COLUMNS if column in columns),
            None,
        )

        terms = []
        skipped = 0
        for row in reader:
            if not any(cell.strip() for cell in row):
                continue
            if max(source_index, target_index) >= len(row):
                skipped += 1
                continue
            source = row[source_index].strip()
            target = row[target_index].strip()
            if not source or not target:
                skipped += 1
                continue
            language = ""
            if language_index is not None and language_index < len(row):
                language = row[language_index].strip()
            terms.append(Term(source=source, target=target, target_language=language or None))
    except csv.Error as e:
        raise TerminologyImportError(f"Could not read CSV: {e}")

    if not terms:
        raise TerminologyImportError("No valid terms found in CSV")

    logger.info(f"[Terminology] Imported {len(terms)} terms into '{name}' ({skipped} rows skipped)")
    return TerminologyLibrary(
        id=library_id or uuid.uuid4().hex[:12],
        name=(name or "").strip() or "Glossary",
        enabled=True,
        terms=terms,
    )


class TerminologyResolver:
    def __init__(self, libraries=None):
        self._libraries: List[TerminologyLibrary] = normalize_libraries(libraries)

    @property
    def libraries(self) -> List[TerminologyLibrary]:
        return list(self._libraries)

    def set_libraries(self, libraries) -> None:
        self._libraries = normalize_libraries(libraries)

    def add_library(self, library: TerminologyLibrary) -> TerminologyLibrary:
        """Add a library, replacing one with the same id."""
        normalized = normalize_library(library)
        if normalized is None:
            raise TerminologyImportError("Library has no valid terms")
        self._libraries = [lib for lib in self._libraries if lib.id != normalized.id] + [normalized]
        return normalized

    def remove_library(self, library_id: str) -> bool:
        remaining = [lib for lib in self._libraries if lib.id != library_id]
        removed = len(remaining) != len(self._libraries)
        self._libraries = remaining
        return removed

    def set_enabled(self, library_id: str, enabled: bool) -> bool:
        updated = False
        libraries = []
        for lib in self._libraries:
            if lib.id == library_id:
                lib = lib.model_copy(update={"enabled": enabled})
                updated = True
            libraries.append(lib)
        self._libraries = libraries
        return updated

    def candidate_terms(self, target_language: str) -> List[Term]:
        """Enabled terms for target_language, deduplicated, longest source first."""
        wanted = _language_key(target_language)
        seen = set()
        terms = []
        for library in self._libraries:
            if not library.enabled:
                continue
            for term in library.terms:
                if term.target_language and _language_key(term.target_language) != wanted:
                    continue
                key = term.source.lower()
                if key in seen:
                    continue
                seen.add(key)
                terms.append(term)
        # sort is stable: equal lengths keep library order
        terms.sort(key=lambda term: len(term.source), reverse=True)
        return terms

    @staticmethod
    def _pattern(source: str) -> re.Pattern:
        escaped = re.escape(source)
        if _WORD_SOURCE.match(source):
            return re.compile(rf"(?<![A-Za-z0-9_]){escaped}(?![A-Za-z0-9_])", re.IGNORECASE)
        return re.compile(escaped, re.IGNORECASE)

    def prepare(self, text: str, target_language: str) -> PreparedText:
        """Replace glossary matches with placeholders, numbered left to right."""
        terms = self.candidate_terms(target_language) if text else []
        if not terms:
            return PreparedText(text=text)

        spans = []
        for term in terms:
            for match in self._pattern(term.source).finditer(text):
                start, end = match.span()
                if start == end:
                    continue
                if any(start < taken_end and taken_start < end for taken_start, taken_end, _ in spans):
                    continue
                spans.append((start, end, term))

        if not spans:
            return PreparedText(text=text)

        spans.sort(key=lambda span: span[0])
        pieces = []
        replacements = []
        cursor = 0
        for index, (start, end, term) in enumerate(spans):
            placeholder = f"{PLACEHOLDER_PREFIX}{index}"
            pieces.append(text[cursor:start])
            pieces.append(placeholder)
            replacements.append(Replacement(placeholder=placeholder, replacement=term.target))
            cursor = end
        pieces.append(text[cursor:])

        logger.debug(f"[Terminology] {len(replacements)} term(s) protected")
        return PreparedText(
            text="".join(pieces),
            replacements=replacements,
            instructions=PLACEHOLDER_INSTRUCTIONS,
        )

    restore = staticmethod(restore)
    is_terminology_only = staticmethod(is_terminology_only)
