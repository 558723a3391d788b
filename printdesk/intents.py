"""Ordered intent rule table.

Rules come from the catalog's ``intents`` list and keep its order: the first rule
whose matcher accepts the normalized text wins, with no scoring. Strategies are
pure functions of ``(session, text)`` returning a ReplyDirective; they never call
the network, only describe what the router should do.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from .catalog import SupportCatalog
from .directives import (
    MISSING_SOFTWARE,
    CannedText,
    DelegateToGenerative,
    GatePrompt,
    ReplyDirective,
    build_grounding,
)
from .entities import SoftwareExtractor
from .session_store import SenderSession
from .utils import normalize_text

Matcher = Callable[[str], bool]
Strategy = Callable[[SenderSession, str], ReplyDirective]
StrategyFactory = Callable[[SupportCatalog, Dict[str, Any]], Strategy]


@dataclass(frozen=True)
class IntentRule:
    name: str
    matcher: Matcher
    requires_model: bool
    strategy: Strategy


def pattern_matcher(patterns: Sequence[str]) -> Matcher:
    compiled = [re.compile(pattern, re.IGNORECASE) for pattern in patterns]
    if not compiled:
        raise ValueError("an intent needs at least one pattern")

    def matches(normalized: str) -> bool:
        return any(pattern.search(normalized) for pattern in compiled)

    return matches


def _delegate(catalog: SupportCatalog, session: SenderSession, task: str, text: str) -> DelegateToGenerative:
    brand = catalog.brand_for(session.printer_model)
    return DelegateToGenerative(
        prompt=f"{task}\n\nCustomer message: {text}",
        system_context=build_grounding(session, brand),
    )


def _fill(template: str, session: SenderSession, brand: Optional[str], **extra: str) -> str:
    model = session.printer_model or ""
    # Stored models usually carry their brand already ("TSC TTP-247").
    if brand and model.lower().startswith(brand.lower()):
        brand = ""
    values = {"model": model, "brand": brand or "", "software": session.software_name or ""}
    values.update(extra)
    return re.sub(r" {2,}", " ", template.format(**values)).strip()


def link_strategy(catalog: SupportCatalog, spec: Dict[str, Any]) -> Strategy:
    """Brand-specific canned link, or a generative task when the brand has no such link."""
    key = spec.get("link")
    if not key or key not in catalog.templates or key not in catalog.tasks:
        raise ValueError(f"intent {spec.get('name')!r} needs a link key with a template and a task")

    def strategy(session: SenderSession, text: str) -> ReplyDirective:
        brand = catalog.brand_for(session.printer_model)
        link = catalog.link_for(brand, key)
        if link:
            return CannedText(_fill(catalog.templates[key], session, brand, link=link))
        return _delegate(catalog, session, _fill(catalog.tasks[key], session, brand), text)

    return strategy


def canned_strategy(catalog: SupportCatalog, spec: Dict[str, Any]) -> Strategy:
    key = spec.get("message")
    if not key or key not in catalog.messages:
        raise ValueError(f"intent {spec.get('name')!r} refers to unknown message {key!r}")
    reply = catalog.messages[key]

    def strategy(session: SenderSession, text: str) -> ReplyDirective:
        return CannedText(reply)

    return strategy


def _require_entries(catalog: SupportCatalog, spec: Dict[str, Any], section: str, key: str) -> None:
    if key not in getattr(catalog, section):
        raise ValueError(f"intent {spec.get('name')!r} needs catalog {section}[{key!r}]")


def software_install_strategy(catalog: SupportCatalog, spec: Dict[str, Any]) -> Strategy:
    _require_entries(catalog, spec, "templates", "software_install")
    _require_entries(catalog, spec, "tasks", "software_install")
    extractor = SoftwareExtractor(catalog)

    def strategy(session: SenderSession, text: str) -> ReplyDirective:
        # Software named in the message beats the remembered one.
        name = extractor.extract(normalize_text(text)) or session.software_name
        info = catalog.software_named(name)
        if info is None:
            return GatePrompt(MISSING_SOFTWARE)
        brand = catalog.brand_for(session.printer_model)
        if info.link:
            return CannedText(
                catalog.templates["software_install"].format(software=info.name, link=info.link)
            )
        task = _fill(catalog.tasks["software_install"], session, brand, software=info.name)
        return _delegate(catalog, session, task, text)

    return strategy


def software_help_strategy(catalog: SupportCatalog, spec: Dict[str, Any]) -> Strategy:
    _require_entries(catalog, spec, "tasks", "software_help")

    def strategy(session: SenderSession, text: str) -> ReplyDirective:
        if not session.software_name:
            return GatePrompt(MISSING_SOFTWARE)
        brand = catalog.brand_for(session.printer_model)
        return _delegate(catalog, session, _fill(catalog.tasks["software_help"], session, brand), text)

    return strategy


STRATEGIES: Dict[str, StrategyFactory] = {
    "link": link_strategy,
    "canned": canned_strategy,
    "software_install": software_install_strategy,
    "software_help": software_help_strategy,
}


def build_rules(catalog: SupportCatalog, strategies: Optional[Dict[str, StrategyFactory]] = None) -> List[IntentRule]:
    """Compile the catalog's intent list into IntentRules, preserving declaration order."""
    registry = strategies or STRATEGIES
    rules: List[IntentRule] = []
    seen = set()
    for spec in catalog.intents:
        name = spec.get("name")
        if not name or name in seen:
            raise ValueError(f"intent names must be unique and non-empty: {name!r}")
        seen.add(name)
        kind = spec.get("strategy")
        if kind not in registry:
            raise ValueError(f"intent {name!r} uses unknown strategy {kind!r}")
        rules.append(
            IntentRule(
                name=name,
                matcher=pattern_matcher(spec.get("patterns") or []),
                requires_model=bool(spec.get("requires_model", False)),
                strategy=registry[kind](catalog, spec),
            )
        )
    return rules


def classify(rules: Sequence[IntentRule], normalized: str) -> Optional[IntentRule]:
    """First matching rule in declaration order, or None."""
    for rule in rules:
        if rule.matcher(normalized):
            return rule
    return None
