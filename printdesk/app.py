from __future__ import annotations

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from dotenv import load_dotenv
from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from .catalog import CatalogLoader
from .config import Settings, load_settings
from .fallback import GenerativeFallbackGateway
from .gemini_client import GeminiClient
from .intent_memory import IntentTally
from .models import ChatRequest, ChatResponse, InboundMessage, IntentStats, SessionView
from .router import SupportRouter
from .session_store import SessionStore
from .transcription import GeminiTranscriber
from .whatsapp import OutboundSender, WhatsAppClient, parse_webhook, verify_signature

BASE_DIR = Path(__file__).resolve().parent

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("printdesk").setLevel(log_level)
logger = logging.getLogger("printdesk.app")
operator_log = logging.getLogger("printdesk.operator")

ENV_PATH = BASE_DIR.parent / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=False)


async def sweep_sessions_forever(sessions: SessionStore, interval_seconds: float) -> None:
    """Evict expired sessions on a fixed interval, independent of read traffic."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = await asyncio.to_thread(sessions.sweep)
        except Exception:
            operator_log.exception("session sweep failed")
            continue
        logger.debug("session sweep removed=%s", removed)


def create_app(
    settings: Optional[Settings] = None,
    router: Optional[SupportRouter] = None,
    sessions: Optional[SessionStore] = None,
    outbound: Optional[OutboundSender] = None,
    intent_tally: Optional[IntentTally] = None,
) -> FastAPI:
    """Purpose: Build the HTTP service around a SupportRouter.
    Inputs/Outputs: Optional settings and pre-built collaborators; returns a FastAPI app.
    Side Effects / State: Loads the catalog and configures Gemini/WhatsApp clients for
        any collaborator not passed in; the lifespan runs the periodic session sweep.
    Dependencies: Uses load_settings, CatalogLoader, GeminiClient, WhatsAppClient.
    Failure Modes: Missing GEMINI_API_KEY raises ValueError when no router is given.
    If Removed: The router cannot receive WhatsApp webhooks.
    Testing Notes: Pass a router with fakes and use TestClient.
    """
    # Build collaborators that were not injected, then declare the routes.
    settings = settings or load_settings()
    # SessionStore defines __len__, so an empty injected store is falsy.
    if sessions is None:
        sessions = SessionStore(
            retention_seconds=settings.session_retention_seconds,
            path=settings.sessions_path,
        )
    if intent_tally is None:
        intent_tally = IntentTally(settings.intent_stats_path)
    whatsapp: Optional[WhatsAppClient] = None
    if outbound is None:
        whatsapp = WhatsAppClient(settings)
        outbound = whatsapp
    if router is None:
        catalog = CatalogLoader(settings.catalog_path).load()
        gemini = GeminiClient(settings)
        media = whatsapp or WhatsAppClient(settings)
        router = SupportRouter(
            catalog=catalog,
            sessions=sessions,
            gateway=GenerativeFallbackGateway(gemini, settings.prompts_dir, settings.llm_timeout_seconds),
            transcriber=GeminiTranscriber(media, gemini, settings.llm_timeout_seconds),
            intent_tally=intent_tally,
            max_workers=settings.max_workers,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper = asyncio.create_task(sweep_sessions_forever(sessions, settings.session_sweep_seconds))
        logger.info("router started sessions=%s sweep_seconds=%s", len(sessions), settings.session_sweep_seconds)
        try:
            yield
        finally:
            sweeper.cancel()
            try:
                await sweeper
            except asyncio.CancelledError:
                pass
            if whatsapp is not None:
                whatsapp.close()

    app = FastAPI(title="Printdesk Support Router", lifespan=lifespan)

    @app.get("/healthz")
    def healthz() -> dict:
        return {"status": "ok", "sessions": len(sessions)}

    @app.get("/webhook", response_class=PlainTextResponse)
    def verify_webhook(
        mode: str = Query(default="", alias="hub.mode"),
        token: str = Query(default="", alias="hub.verify_token"),
        challenge: str = Query(default="", alias="hub.challenge"),
    ) -> str:
        """Answer the WhatsApp subscription handshake."""
        if mode == "subscribe" and settings.whatsapp_verify_token and token == settings.whatsapp_verify_token:
            return challenge
        raise HTTPException(status_code=403, detail="verification failed")

    @app.post("/webhook")
    async def receive_webhook(request: Request, background: BackgroundTasks) -> dict:
        """Purpose: Accept a WhatsApp webhook delivery and route it after responding.
        Inputs/Outputs: Raw request body; returns a small status dict.
        Side Effects / State: Schedules SupportRouter.handle_batch with outbound delivery.
        Dependencies: Uses verify_signature and parse_webhook.
        Failure Modes: Bad signature is 403; an unparseable envelope is logged and ignored.
        If Removed: WhatsApp messages never reach the router.
        Testing Notes: Post a text message envelope and check the fake outbound sender.
        """
        # Verify authenticity before parsing; the body must be read as bytes for the HMAC.
        body = await request.body()
        if not verify_signature(settings.whatsapp_app_secret, body, request.headers.get("x-hub-signature-256")):
            raise HTTPException(status_code=403, detail="invalid signature")
        try:
            messages = parse_webhook(json.loads(body or b"{}"))
        except (ValueError, ValidationError) as exc:
            operator_log.error("unparseable webhook payload: %s", exc)
            return {"status": "ignored"}
        if messages:
            background.add_task(router.handle_batch, messages, outbound.send_text)
        return {"status": "accepted", "messages": len(messages)}

    @app.post("/api/chat", response_model=ChatResponse)
    def chat(request: ChatRequest) -> ChatResponse:
        """Route one message synchronously and return the reply instead of sending it."""
        context = router.handle_message(InboundMessage(sender_id=request.sender_id, text=request.message))
        return ChatResponse(
            sender_id=request.sender_id,
            reply=context.reply,
            intent=context.intent,
            failed=context.failed,
        )

    @app.get("/api/sessions/{sender_id}", response_model=SessionView)
    def get_session(sender_id: str) -> SessionView:
        session = sessions.get(sender_id)
        if session is None:
            raise HTTPException(status_code=404, detail="no active session")
        return SessionView(
            sender_id=session.sender_id,
            printer_model=session.printer_model,
            software_name=session.software_name,
            last_touched=session.last_touched,
        )

    @app.get("/api/intents", response_model=IntentStats)
    def intent_stats() -> IntentStats:
        return IntentStats(intents=intent_tally.snapshot())

    return app
