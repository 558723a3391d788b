from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

logger = logging.getLogger("printdesk.transcription")
operator_log = logging.getLogger("printdesk.operator")


@dataclass(frozen=True)
class TranscriptionResult:
    ok: bool
    text: str = ""
    error: str = ""


class Transcriber(Protocol):
    def transcribe(self, audio_ref: str) -> TranscriptionResult:
        ...


class MediaSource(Protocol):
    def fetch_media(self, media_id: str) -> Tuple[bytes, str]:
        ...


class AudioModel(Protocol):
    def transcribe_audio(self, data: bytes, mime_type: str, timeout: Optional[float] = None) -> str:
        ...


class GeminiTranscriber:
    """Downloads a voice note and asks the language model for its transcript."""

    def __init__(self, media: MediaSource, model: AudioModel, timeout_seconds: float = 20.0) -> None:
        self._media = media
        self._model = model
        self._timeout = timeout_seconds

    def transcribe(self, audio_ref: str) -> TranscriptionResult:
        try:
            data, mime_type = self._media.fetch_media(audio_ref)
            # WhatsApp reports "audio/ogg; codecs=opus"; the model wants the bare type.
            text = self._model.transcribe_audio(data, mime_type.split(";", 1)[0].strip(), timeout=self._timeout)
        except Exception as exc:
            operator_log.error("transcription failed audio_ref=%s: %s: %s", audio_ref, type(exc).__name__, exc)
            return TranscriptionResult(ok=False, error=f"{type(exc).__name__}: {exc}")
        text = (text or "").strip()
        if not text:
            operator_log.error("transcription empty audio_ref=%s", audio_ref)
            return TranscriptionResult(ok=False, error="empty transcript")
        logger.info("audio_ref=%s transcript_chars=%s", audio_ref, len(text))
        return TranscriptionResult(ok=True, text=text)
