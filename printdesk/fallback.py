from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from .prompt_loader import load_prompt, render_prompt

logger = logging.getLogger("printdesk.gateway")
operator_log = logging.getLogger("printdesk.operator")

FALLBACK_PROMPT_FILE = "fallback_system.txt"


class CompletionBackend(Protocol):
    def generate_content(
        self,
        contents: list,
        system_instruction: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: int = 1024,
        timeout: Optional[float] = None,
    ) -> str:
        ...


@dataclass(frozen=True)
class CompletionResult:
    """Outcome of one generative call; text is only meaningful when ok is True."""
    ok: bool
    text: str = ""
    error: str = ""

    @classmethod
    def success(cls, text: str) -> "CompletionResult":
        return cls(ok=True, text=text)

    @classmethod
    def failure(cls, error: str) -> "CompletionResult":
        return cls(ok=False, error=error)


class GenerativeFallbackGateway:
    """Grounded, time-bounded access to the language model."""

    def __init__(
        self,
        backend: CompletionBackend,
        prompts_dir: Path,
        timeout_seconds: float = 20.0,
        max_output_tokens: int = 1024,
    ) -> None:
        """Purpose: Bind the completion backend and load the role instruction.
        Inputs/Outputs: Inputs are a backend with generate_content, the prompts
            directory, a timeout, and an output cap; no return value.
        Side Effects / State: Reads the role prompt from disk once.
        Dependencies: Uses load_prompt and the fallback_system.txt template.
        Failure Modes: A missing prompt file raises FileNotFoundError at startup.
        If Removed: Messages that no rule answers receive no reply.
        Testing Notes: Use a fake backend that records the system instruction.
        """
        # Load the role template once; grounding is rendered per call.
        self._backend = backend
        self._template = load_prompt(prompts_dir / FALLBACK_PROMPT_FILE)
        self._timeout = timeout_seconds
        self._max_output_tokens = max_output_tokens

    def system_instruction(self, system_context: str) -> str:
        return render_prompt(self._template, {"GROUNDING": system_context or ""}).strip()

    def complete(self, system_context: str, user_text: str) -> CompletionResult:
        """Purpose: Obtain a free-form answer for a message no canned reply covers.
        Inputs/Outputs: Inputs are the grounding facts and the user-level prompt; output
            is a CompletionResult carrying the answer or the failure reason.
        Side Effects / State: One network call; failures go to the operator log.
        Dependencies: Uses the backend's generate_content with a bounded timeout.
        Failure Modes: Timeouts, transport errors, and empty answers become failure results.
        If Removed: The router cannot delegate to the model.
        Testing Notes: A backend raising TimeoutError must yield ok=False, not an exception.
        """
        # Any backend failure is converted here; callers only see the result type.
        instruction = self.system_instruction(system_context)
        contents = [{"role": "user", "parts": [{"text": user_text}]}]
        try:
            answer = self._backend.generate_content(
                contents,
                system_instruction=instruction,
                max_output_tokens=self._max_output_tokens,
                timeout=self._timeout,
            )
        except Exception as exc:
            operator_log.error("generative completion failed: %s: %s", type(exc).__name__, exc)
            return CompletionResult.failure(f"{type(exc).__name__}: {exc}")
        answer = (answer or "").strip()
        if not answer:
            operator_log.error("generative completion returned an empty answer")
            return CompletionResult.failure("empty answer")
        logger.debug("completion chars=%s", len(answer))
        return CompletionResult.success(answer)
