"""Support catalog loader.

Loads the JSON catalog (brands, model codes, support links, software vocabulary,
greetings, reply templates, and the ordered intent table) into typed objects used
by the extractors, the rule table, and the resolver.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .utils import normalize_key, normalize_text

logger = logging.getLogger("printdesk.catalog")

REQUIRED_MESSAGES = (
    "greeting",
    "model_first",
    "gate_printer_model",
    "gate_software_name",
    "model_ack",
    "software_ack",
    "model_software_ack",
    "apology",
    "audio_apology",
)


@dataclass(frozen=True)
class BrandInfo:
    """Printer brand with the aliases and bare model codes that identify it."""
    name: str
    aliases: Tuple[str, ...]
    bare_models: Tuple[str, ...]
    links: Dict[str, str]


@dataclass(frozen=True)
class SoftwareInfo:
    name: str
    aliases: Tuple[str, ...]
    link: Optional[str] = None


@dataclass(frozen=True)
class CatalogMeta:
    """Metadata describing the catalog file version for logging."""
    file_name: str
    updated_at: str
    sha256: str


@dataclass(frozen=True)
class SupportCatalog:
    brands: Dict[str, BrandInfo]
    software: Dict[str, SoftwareInfo]
    greetings: FrozenSet[str]
    messages: Dict[str, str]
    templates: Dict[str, str]
    tasks: Dict[str, str]
    intents: List[Dict[str, Any]] = field(default_factory=list)
    meta: Optional[CatalogMeta] = None

    def message(self, key: str, **values: str) -> str:
        return self.messages[key].format(**values)

    def brand_for(self, model: Optional[str]) -> Optional[str]:
        """Infer the brand of a stored model string from its prefix or a bare model code."""
        if not model:
            return None
        normalized = normalize_text(model)
        first_token = normalized.split(" ", 1)[0].split("-", 1)[0]
        compact = normalize_key(model)
        for brand in self.brands.values():
            if first_token in brand.aliases:
                return brand.name
            if any(compact.startswith(alias) for alias in brand.aliases):
                return brand.name
        for brand in self.brands.values():
            if compact in {normalize_key(code) for code in brand.bare_models}:
                return brand.name
        return None

    def link_for(self, brand: Optional[str], key: str) -> Optional[str]:
        if not brand or brand not in self.brands:
            return None
        return self.brands[brand].links.get(key) or None

    def software_named(self, name: Optional[str]) -> Optional[SoftwareInfo]:
        if not name:
            return None
        wanted = normalize_key(name)
        for info in self.software.values():
            if normalize_key(info.name) == wanted:
                return info
        return None

    def is_greeting(self, normalized: str) -> bool:
        return normalized.strip(" .-_/") in self.greetings


class CatalogLoader:
    def __init__(self, path: Path) -> None:
        """Purpose: Configure the loader with a catalog file path.
        Inputs/Outputs: Input is a Path to the JSON catalog; no return value.
        Side Effects / State: Stores the path for later load calls.
        Dependencies: None beyond Path usage.
        Failure Modes: None at init; load() handles read/parse errors.
        If Removed: The router has no vocabulary, links, or rule table.
        Testing Notes: Instantiate with a temp path and call load().
        """
        # Store the catalog file location for subsequent loads.
        self._path = path

    def load(self) -> SupportCatalog:
        """Purpose: Load and validate catalog data from the JSON file.
        Inputs/Outputs: No inputs; returns a SupportCatalog with file metadata.
        Side Effects / State: Reads file contents and computes hash/mtime.
        Dependencies: Uses json, hashlib, and parse_catalog.
        Failure Modes: Missing file, JSON errors, or missing required messages raise.
        If Removed: The app cannot start with configured support content.
        Testing Notes: Load the bundled catalog and check brands and intents.
        """
        # Read bytes for hashing and parse JSON into typed records.
        raw_bytes = self._path.read_bytes()
        meta = CatalogMeta(
            file_name=self._path.name,
            updated_at=datetime.fromtimestamp(self._path.stat().st_mtime).isoformat(),
            sha256=hashlib.sha256(raw_bytes).hexdigest(),
        )
        data = json.loads(raw_bytes.decode("utf-8-sig"))
        catalog = parse_catalog(data, meta=meta)
        logger.info(
            "catalog=%s sha256=%s brands=%s intents=%s",
            meta.file_name,
            meta.sha256[:12],
            len(catalog.brands),
            len(catalog.intents),
        )
        return catalog


def parse_catalog(data: Dict[str, Any], meta: Optional[CatalogMeta] = None) -> SupportCatalog:
    """Build a SupportCatalog from decoded JSON; raises ValueError on missing sections."""
    if not isinstance(data, dict):
        raise ValueError("catalog root must be an object")

    brands: Dict[str, BrandInfo] = {}
    for name, raw in (data.get("brands") or {}).items():
        aliases = tuple(normalize_text(alias) for alias in raw.get("aliases") or [name])
        brands[name] = BrandInfo(
            name=name,
            aliases=aliases,
            bare_models=tuple(raw.get("bare_models") or []),
            links={key: str(value) for key, value in (raw.get("links") or {}).items() if value},
        )
    if not brands:
        raise ValueError("catalog defines no brands")

    software: Dict[str, SoftwareInfo] = {}
    for name, raw in (data.get("software") or {}).items():
        raw = raw or {}
        software[name] = SoftwareInfo(
            name=name,
            aliases=tuple(normalize_text(alias) for alias in raw.get("aliases") or [name]),
            link=raw.get("link") or None,
        )

    messages = {key: str(value) for key, value in (data.get("messages") or {}).items()}
    missing = [key for key in REQUIRED_MESSAGES if key not in messages]
    if missing:
        raise ValueError(f"catalog is missing messages: {', '.join(missing)}")

    intents = data.get("intents") or []
    if not isinstance(intents, list):
        raise ValueError("catalog intents must be a list")

    return SupportCatalog(
        brands=brands,
        software=software,
        greetings=frozenset(normalize_text(item) for item in data.get("greetings") or []),
        messages=messages,
        templates={key: str(value) for key, value in (data.get("templates") or {}).items()},
        tasks={key: str(value) for key, value in (data.get("tasks") or {}).items()},
        intents=intents,
        meta=meta,
    )
