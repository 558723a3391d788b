from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .catalog import SupportCatalog
from .directives import (
    MISSING_IDENTITY,
    MISSING_MODEL,
    MISSING_SOFTWARE,
    CannedText,
    DelegateToGenerative,
    GatePrompt,
    ReplyDirective,
    build_grounding,
)
from .intents import IntentRule, classify
from .session_store import SenderSession

logger = logging.getLogger("printdesk.resolver")

GREETING_INTENT = "greeting"
MODEL_FIRST_INTENT = "model_first_gate"
FALLBACK_INTENT = "generative_fallback"


@dataclass(frozen=True)
class Resolution:
    intent: str
    directive: ReplyDirective


class ResponseResolver:
    """Greeting, model-first gate, ordered rules, then generative fallback."""

    def __init__(self, catalog: SupportCatalog, rules: Sequence[IntentRule]) -> None:
        self._catalog = catalog
        self._rules: List[IntentRule] = list(rules)

    def resolve(self, session: Optional[SenderSession], text: str, normalized: str) -> Resolution:
        """Purpose: Decide the reply directive for a message with no new entity.
        Inputs/Outputs: Inputs are the live session (or None), raw text, and normalized
            text; output is a Resolution naming the intent and its directive.
        Side Effects / State: None; strategies are pure.
        Dependencies: Uses the catalog greeting vocabulary and the ordered rule table.
        Failure Modes: Exceptions raised by a strategy propagate to the router boundary.
        If Removed: The router has no way to pick between links, gates, and the model.
        Testing Notes: A fresh sender gets the same gate prompt for any non-greeting text.
        """
        # Greetings are answered before the gate so a first "hello" gets a welcome.
        if self._catalog.is_greeting(normalized):
            return Resolution(GREETING_INTENT, CannedText(self._catalog.message("greeting")))

        if session is None or session.is_empty():
            return Resolution(MODEL_FIRST_INTENT, GatePrompt(MISSING_IDENTITY))

        rule = classify(self._rules, normalized)
        if rule is None:
            brand = self._catalog.brand_for(session.printer_model)
            return Resolution(
                FALLBACK_INTENT,
                DelegateToGenerative(prompt=text, system_context=build_grounding(session, brand)),
            )
        if rule.requires_model and not session.printer_model:
            logger.debug("sender=%s intent=%s gated=printer_model", session.sender_id, rule.name)
            return Resolution(rule.name, GatePrompt(MISSING_MODEL))
        return Resolution(rule.name, rule.strategy(session, text))

    def gate_text(self, missing_field: str) -> str:
        """Render the prompt that asks for a missing field."""
        if missing_field == MISSING_IDENTITY:
            return self._catalog.message("model_first")
        if missing_field == MISSING_MODEL:
            return self._catalog.message("gate_printer_model")
        if missing_field == MISSING_SOFTWARE:
            return self._catalog.message("gate_software_name")
        raise ValueError(f"no gate prompt for field {missing_field!r}")
