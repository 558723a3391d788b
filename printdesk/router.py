"""Support router: the composition root of the message pipeline.

Step contracts:
    validate:   drops messages without a sender id or without any content.
    transcribe: turns an audio reference into text; failure ends in an apology.
    normalize:  lowercases and strips punctuation for pattern matching.
    extract:    stores newly stated printer model / software and acknowledges it.
    resolve:    greeting, model-first gate, ordered rules, generative fallback.
    execute:    turns the directive into reply text (the only network step).
    finalize:   counts the intent and logs the outcome.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .catalog import SupportCatalog
from .directives import CannedText, DelegateToGenerative, GatePrompt, ReplyDirective
from .entities import EntityExtractor
from .errors import DirectiveError, MalformedMessageError
from .fallback import GenerativeFallbackGateway
from .intent_memory import IntentTally
from .intents import IntentRule, build_rules
from .models import InboundMessage
from .pipeline_runtime import PipelineStep, StepRunner
from .resolver import ResponseResolver
from .session_store import SenderSession, SessionStore
from .transcription import Transcriber
from .utils import KeyedLock, normalize_text

logger = logging.getLogger("printdesk.router")
operator_log = logging.getLogger("printdesk.operator")

MALFORMED_INTENT = "malformed"
TRANSCRIPTION_FAILED_INTENT = "transcription_failed"
MODEL_REGISTERED_INTENT = "model_registered"
SOFTWARE_REGISTERED_INTENT = "software_registered"
ERROR_INTENT = "error"

ReplyCallback = Callable[[str, str], None]


@dataclass
class RouteContext:
    """Mutable context passed through each router step."""
    message: InboundMessage
    text: str = ""
    normalized: str = ""
    session: Optional[SenderSession] = None
    intent: str = ""
    directive: Optional[ReplyDirective] = None
    reply: Optional[str] = None
    failed: bool = False
    skipped: bool = False
    step_log: List[Dict[str, str]] = field(default_factory=list)

    @property
    def sender_id(self) -> str:
        return self.message.sender_id

    @property
    def done(self) -> bool:
        return self.skipped or self.reply is not None

    def log(self, step: str, detail: str) -> None:
        self.step_log.append({"step": step, "detail": detail})


class SupportRouter:
    def __init__(
        self,
        catalog: SupportCatalog,
        sessions: SessionStore,
        gateway: GenerativeFallbackGateway,
        transcriber: Optional[Transcriber] = None,
        intent_tally: Optional[IntentTally] = None,
        rules: Optional[Sequence[IntentRule]] = None,
        max_workers: int = 8,
    ) -> None:
        """Purpose: Wire the catalog, session store, rules, and collaborators together.
        Inputs/Outputs: Inputs are the catalog, session store, fallback gateway, and the
            optional transcriber, intent tally, rule override, and worker cap.
        Side Effects / State: Compiles the rule table and builds the step runner.
        Dependencies: Uses EntityExtractor, ResponseResolver, and StepRunner.
        Failure Modes: An invalid catalog intent table raises ValueError here.
        If Removed: Nothing turns inbound messages into replies.
        Testing Notes: Build with a manual-clock SessionStore and a fake backend.
        """
        # Store collaborators and build the ordered step runner.
        self._catalog = catalog
        self._sessions = sessions
        self._gateway = gateway
        self._transcriber = transcriber
        self._tally = intent_tally
        self._extractor = EntityExtractor(catalog)
        self._resolver = ResponseResolver(catalog, rules if rules is not None else build_rules(catalog))
        self._sender_locks = KeyedLock()
        self._max_workers = max(1, max_workers)
        self._runner: StepRunner[RouteContext] = StepRunner(
            [
                PipelineStep("validate", self._step_validate),
                PipelineStep("transcribe", self._step_transcribe, skip_if=_is_done),
                PipelineStep("normalize", self._step_normalize, skip_if=_is_done),
                PipelineStep("extract", self._step_extract, skip_if=_is_done),
                PipelineStep("resolve", self._step_resolve, skip_if=_has_directive),
                PipelineStep("execute", self._step_execute, skip_if=_is_done),
                PipelineStep("finalize", self._step_finalize, always_run=True),
            ]
        )

    def handle_message(self, message: InboundMessage) -> RouteContext:
        """Purpose: Produce the reply for one inbound message.
        Inputs/Outputs: Input is an InboundMessage; output is the populated RouteContext
            (reply is None only for skipped malformed messages).
        Side Effects / State: May update the sender's session; may call the model.
        Dependencies: Uses StepRunner and the per-sender lock.
        Failure Modes: Never raises; unexpected errors become the apology reply and an
            operator log entry with traceback.
        If Removed: Webhook and chat endpoints have nothing to call.
        Testing Notes: Replay the A/B scenario and check replies and stored models.
        """
        # One sender at a time so a registration commits before the next message reads.
        context = RouteContext(message=message)
        with self._sender_locks.hold(message.sender_id or ""):
            try:
                self._runner.run(context)
            except Exception:
                operator_log.exception(
                    "routing failed sender=%s message_id=%s step_log=%s",
                    message.sender_id,
                    message.message_id,
                    context.step_log,
                )
                context.intent = context.intent or ERROR_INTENT
                context.reply = self._catalog.message("apology")
                context.failed = True
        return context

    def reply_to(self, message: InboundMessage) -> Optional[str]:
        return self.handle_message(message).reply

    def handle_batch(
        self,
        messages: Sequence[InboundMessage],
        on_reply: Optional[ReplyCallback] = None,
    ) -> List[RouteContext]:
        """Purpose: Route a webhook batch, parallel across senders, ordered within one.
        Inputs/Outputs: Inputs are the messages in arrival order and an optional
            delivery callback; returns contexts in the same order as the input.
        Side Effects / State: Calls on_reply(sender_id, reply) inside the sender's lane.
        Dependencies: Uses ThreadPoolExecutor bounded by max_workers.
        Failure Modes: A raising callback is logged and does not stop the lane.
        If Removed: Multi-message webhook deliveries would be processed serially.
        Testing Notes: Two messages from one sender must be delivered in order.
        """
        # Group by sender keeping first-seen order; each lane runs sequentially.
        lanes: "OrderedDict[str, List[Tuple[int, InboundMessage]]]" = OrderedDict()
        for index, message in enumerate(messages):
            lanes.setdefault(message.sender_id, []).append((index, message))
        results: List[Optional[RouteContext]] = [None] * len(messages)

        def run_lane(lane: List[Tuple[int, InboundMessage]]) -> None:
            for index, message in lane:
                context = self.handle_message(message)
                results[index] = context
                if on_reply is None or context.reply is None:
                    continue
                try:
                    on_reply(context.sender_id, context.reply)
                except Exception:
                    operator_log.exception("reply delivery raised sender=%s", context.sender_id)

        if len(lanes) <= 1 or self._max_workers == 1:
            for lane in lanes.values():
                run_lane(lane)
        else:
            with ThreadPoolExecutor(max_workers=min(self._max_workers, len(lanes))) as pool:
                futures = [pool.submit(run_lane, lane) for lane in lanes.values()]
                for future in futures:
                    future.result()
        return [context for context in results if context is not None]

    def _step_validate(self, context: RouteContext) -> None:
        try:
            context.message.ensure_routable()
        except MalformedMessageError as exc:
            context.skipped = True
            context.intent = MALFORMED_INTENT
            operator_log.error("skipping malformed message: %s", exc)

    def _step_transcribe(self, context: RouteContext) -> None:
        message = context.message
        if (message.text or "").strip():
            context.text = message.text.strip()
            return
        if self._transcriber is None:
            operator_log.error("audio message without transcriber sender=%s", message.sender_id)
            result_ok, transcript = False, ""
        else:
            result = self._transcriber.transcribe(message.audio_ref or "")
            result_ok, transcript = result.ok, result.text
        if not result_ok:
            context.intent = TRANSCRIPTION_FAILED_INTENT
            context.reply = self._catalog.message("audio_apology")
            context.failed = True
            return
        context.text = transcript
        context.log("transcribe", f"chars={len(transcript)}")

    def _step_normalize(self, context: RouteContext) -> None:
        context.normalized = normalize_text(context.text)

    def _step_extract(self, context: RouteContext) -> None:
        sender_id = context.sender_id
        context.session = self._sessions.get(sender_id)
        entities = self._extractor.extract(context.text, context.normalized)
        if entities.is_empty():
            return

        known_software = context.session.software_name if context.session else None
        new_software = bool(entities.software_name) and entities.software_name != known_software
        if entities.printer_model:
            context.session = self._sessions.set_model(sender_id, entities.printer_model)
        if entities.software_name:
            context.session = self._sessions.set_software(sender_id, entities.software_name)

        if entities.printer_model and new_software:
            reply = self._catalog.message(
                "model_software_ack", model=entities.printer_model, software=entities.software_name
            )
            context.intent = MODEL_REGISTERED_INTENT
        elif entities.printer_model:
            reply = self._catalog.message("model_ack", model=entities.printer_model)
            context.intent = MODEL_REGISTERED_INTENT
        elif new_software:
            reply = self._catalog.message("software_ack", software=entities.software_name)
            context.intent = SOFTWARE_REGISTERED_INTENT
        else:
            # Repeated software mention: refreshed above, classified like any message.
            return
        context.directive = CannedText(reply)
        logger.info(
            "sender=%s registered model=%s software=%s",
            sender_id,
            entities.printer_model,
            entities.software_name,
        )

    def _step_resolve(self, context: RouteContext) -> None:
        resolution = self._resolver.resolve(context.session, context.text, context.normalized)
        context.intent = resolution.intent
        context.directive = resolution.directive

    def _step_execute(self, context: RouteContext) -> None:
        directive = context.directive
        if isinstance(directive, CannedText):
            context.reply = directive.text
        elif isinstance(directive, GatePrompt):
            context.reply = self._resolver.gate_text(directive.missing_field)
        elif isinstance(directive, DelegateToGenerative):
            result = self._gateway.complete(directive.system_context, directive.prompt)
            if result.ok:
                context.reply = result.text
            else:
                context.reply = self._catalog.message("apology")
                context.failed = True
        else:
            raise DirectiveError(f"unrecognized directive {type(directive).__name__} for intent {context.intent!r}")
        context.log("execute", type(directive).__name__)

    def _step_finalize(self, context: RouteContext) -> None:
        if self._tally is not None and context.intent:
            self._tally.record(context.intent)
        logger.info(
            "sender=%s intent=%s directive=%s failed=%s skipped=%s",
            context.sender_id,
            context.intent,
            type(context.directive).__name__ if context.directive else None,
            context.failed,
            context.skipped,
        )


def _is_done(context: RouteContext) -> bool:
    return context.done


def _has_directive(context: RouteContext) -> bool:
    return context.done or context.directive is not None
