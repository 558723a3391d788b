"""Reply directives produced by intent strategies and executed by the router."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Union

from .session_store import SenderSession

MISSING_IDENTITY = "printer_model_or_software"
MISSING_MODEL = "printer_model"
MISSING_SOFTWARE = "software_name"


@dataclass(frozen=True)
class CannedText:
    """Answer that needs no external call."""
    text: str


@dataclass(frozen=True)
class GatePrompt:
    """Ask the sender for a fact we must know before answering."""
    missing_field: str


@dataclass(frozen=True)
class DelegateToGenerative:
    """Hand the message to the language model with grounding facts as system context."""
    prompt: str
    system_context: str = ""


ReplyDirective = Union[CannedText, GatePrompt, DelegateToGenerative]


def build_grounding(session: Optional[SenderSession], brand: Optional[str] = None) -> str:
    """Render the known brand/model/software facts for a system instruction."""
    if session is None:
        return ""
    facts: List[str] = []
    if brand:
        facts.append(f"- Printer brand: {brand}")
    if session.printer_model:
        facts.append(f"- Printer model: {session.printer_model}")
    if session.software_name:
        facts.append(f"- Label software: {session.software_name}")
    if not facts:
        return ""
    return "Known facts about this customer:\n" + "\n".join(facts)
