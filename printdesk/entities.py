from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional, Pattern

from .catalog import SupportCatalog
from .utils import normalize_text


@dataclass(frozen=True)
class ExtractedEntities:
    printer_model: Optional[str] = None
    software_name: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.printer_model and not self.software_name


def _alternation(terms) -> str:
    # Longest first so "zebra designer" wins over "zebra".
    ordered = sorted({term for term in terms if term}, key=len, reverse=True)
    return "|".join(re.escape(term).replace(r"\ ", r"\s+") for term in ordered)


def _plausible_code(code: str) -> bool:
    # "TSC 3 days ago" is a count, not a model; codes carry a letter or 3+ digits.
    compact = code.replace("-", "")
    return any(ch.isalpha() for ch in compact) or len(compact) >= 3


class ModelExtractor:
    """Finds brand-prefixed model codes ("TSC TTP-247") and bare codes ("TE200") in raw text."""

    def __init__(self, catalog: SupportCatalog) -> None:
        aliases = [alias for brand in catalog.brands.values() for alias in brand.aliases]
        self._branded: Pattern[str] = re.compile(
            r"(?<![A-Za-z0-9])(?:" + _alternation(aliases) + r")[\s\-_]*(?P<code>[A-Za-z0-9\-]*\d[A-Za-z0-9\-]*)",
            re.IGNORECASE,
        )
        bare = [code for brand in catalog.brands.values() for code in brand.bare_models]
        self._bare: Optional[Pattern[str]] = None
        if bare:
            self._bare = re.compile(
                r"(?<![A-Za-z0-9])(?:" + _alternation(bare) + r")(?![A-Za-z0-9])",
                re.IGNORECASE,
            )

    def extract(self, text: str) -> Optional[str]:
        if not text:
            return None
        match = next((m for m in self._branded.finditer(text) if _plausible_code(m.group("code"))), None)
        if match is None and self._bare is not None:
            match = self._bare.search(text)
        if match is None:
            return None
        return match.group(0).rstrip("-").strip() or None


class SoftwareExtractor:
    """Finds a known label-software name and returns its canonical spelling."""

    def __init__(self, catalog: SupportCatalog) -> None:
        self._canonical: Dict[str, str] = {}
        for info in catalog.software.values():
            for alias in info.aliases:
                self._canonical[alias] = info.name
        self._pattern: Optional[Pattern[str]] = None
        if self._canonical:
            self._pattern = re.compile(r"\b(" + _alternation(self._canonical) + r")\b")

    def extract(self, normalized: str) -> Optional[str]:
        if not normalized or self._pattern is None:
            return None
        match = self._pattern.search(normalized)
        if match is None:
            return None
        return self._canonical.get(re.sub(r"\s+", " ", match.group(1)))


class EntityExtractor:
    def __init__(self, catalog: SupportCatalog) -> None:
        self._models = ModelExtractor(catalog)
        self._software = SoftwareExtractor(catalog)

    def extract(self, text: str, normalized: Optional[str] = None) -> ExtractedEntities:
        """Run both extractors; the model is read from raw text so its casing is kept."""
        if normalized is None:
            normalized = normalize_text(text)
        return ExtractedEntities(
            printer_model=self._models.extract(text),
            software_name=self._software.extract(normalized),
        )
