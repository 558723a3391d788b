from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from printdesk.catalog import CatalogLoader, SupportCatalog
from printdesk.config import BASE_DIR, Settings
from printdesk.fallback import GenerativeFallbackGateway
from printdesk.intent_memory import IntentTally
from printdesk.router import SupportRouter
from printdesk.session_store import SessionStore
from printdesk.transcription import TranscriptionResult

RETENTION_SECONDS = 48 * 60 * 60


class ManualClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    def __init__(self, answer: str = "Generated answer", error: Optional[Exception] = None) -> None:
        self.answer = answer
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def generate_content(
        self,
        contents: list,
        system_instruction: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: int = 1024,
        timeout: Optional[float] = None,
    ) -> str:
        self.calls.append(
            {
                "contents": contents,
                "system_instruction": system_instruction,
                "timeout": timeout,
            }
        )
        if self.error is not None:
            raise self.error
        return self.answer


class FakeTranscriber:
    def __init__(self, result: TranscriptionResult) -> None:
        self.result = result
        self.refs: List[str] = []

    def transcribe(self, audio_ref: str) -> TranscriptionResult:
        self.refs.append(audio_ref)
        return self.result


class FakeOutbound:
    def __init__(self) -> None:
        self.sent: List[tuple] = []

    def send_text(self, sender_id: str, text: str) -> bool:
        self.sent.append((sender_id, text))
        return True


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: Dict[str, Any] = dict(
        gemini_api_key="test-key",
        gemini_model="gemini-test",
        llm_timeout_seconds=5.0,
        llm_temperature=0.2,
        catalog_path=BASE_DIR / "resources" / "support_catalog.json",
        prompts_dir=BASE_DIR / "prompts",
        session_retention_hours=48.0,
        session_sweep_seconds=3600.0,
        sessions_path=None,
        intent_stats_path=None,
        whatsapp_token="token",
        whatsapp_phone_number_id="12345",
        whatsapp_api_version="v19.0",
        whatsapp_verify_token="verify-me",
        whatsapp_app_secret="",
        http_timeout_seconds=5.0,
        max_workers=4,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def catalog() -> SupportCatalog:
    return CatalogLoader(BASE_DIR / "resources" / "support_catalog.json").load()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def sessions(clock: ManualClock) -> SessionStore:
    return SessionStore(retention_seconds=RETENTION_SECONDS, clock=clock)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def gateway(backend: FakeBackend) -> GenerativeFallbackGateway:
    return GenerativeFallbackGateway(backend, BASE_DIR / "prompts", timeout_seconds=5.0)


@pytest.fixture
def tally() -> IntentTally:
    return IntentTally()


@pytest.fixture
def router(
    catalog: SupportCatalog,
    sessions: SessionStore,
    gateway: GenerativeFallbackGateway,
    tally: IntentTally,
) -> SupportRouter:
    return SupportRouter(catalog, sessions, gateway, intent_tally=tally, max_workers=4)
