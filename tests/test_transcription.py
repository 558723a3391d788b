from __future__ import annotations

import logging
from typing import List, Optional, Tuple

import pytest

from printdesk.transcription import GeminiTranscriber


class FakeMedia:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error

    def fetch_media(self, media_id: str) -> Tuple[bytes, str]:
        if self.error is not None:
            raise self.error
        return b"OggS", "audio/ogg; codecs=opus"


class FakeAudioModel:
    def __init__(self, transcript: str = "TSC TTP-247 driver") -> None:
        self.transcript = transcript
        self.calls: List[Tuple[bytes, str, Optional[float]]] = []

    def transcribe_audio(self, data: bytes, mime_type: str, timeout: Optional[float] = None) -> str:
        self.calls.append((data, mime_type, timeout))
        return self.transcript


def test_transcript_is_returned_with_bare_mime_type() -> None:
    model = FakeAudioModel()

    result = GeminiTranscriber(FakeMedia(), model, timeout_seconds=7.0).transcribe("media-1")

    assert result.ok
    assert result.text == "TSC TTP-247 driver"
    assert model.calls == [(b"OggS", "audio/ogg", 7.0)]


def test_download_failure_is_reported(caplog: pytest.LogCaptureFixture) -> None:
    transcriber = GeminiTranscriber(FakeMedia(error=ValueError("media gone")), FakeAudioModel())

    with caplog.at_level(logging.ERROR, logger="printdesk.operator"):
        result = transcriber.transcribe("media-1")

    assert not result.ok
    assert "media gone" in result.error
    assert any("transcription failed" in record.getMessage() for record in caplog.records)


def test_empty_transcript_is_a_failure() -> None:
    result = GeminiTranscriber(FakeMedia(), FakeAudioModel(transcript="  ")).transcribe("media-1")

    assert not result.ok
    assert result.error == "empty transcript"
