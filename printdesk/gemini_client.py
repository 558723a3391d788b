from __future__ import annotations

import logging
from typing import Dict, Optional

import google.generativeai as genai
from google.generativeai import types as genai_types

from .config import Settings

logger = logging.getLogger("printdesk.gemini")

DEFAULT_SAFETY_SETTINGS = [
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    },
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    },
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    },
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
    },
]


class GeminiClient:
    """Thin wrapper around the Gemini SDK with model caching and bounded request timeouts."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK and initialize the model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures the SDK global API key and caches a model instance.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ValueError if the API key or model name is missing.
        If Removed: The generative fallback and audio transcription cannot run.
        Testing Notes: Validate that a missing key raises ValueError.
        """
        # Configure API key and seed the default model cache.
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        self._default_model = _normalize_model_name(settings.gemini_model)
        if not self._default_model:
            raise ValueError("GEMINI_MODEL is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._timeout = settings.llm_timeout_seconds
        self._temperature = settings.llm_temperature
        self._models: Dict[str, genai.GenerativeModel] = {
            self._default_model: genai.GenerativeModel(self._default_model)
        }

    def generate_content(
        self,
        contents: list,
        system_instruction: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_output_tokens: int = 1024,
        timeout: Optional[float] = None,
    ) -> str:
        """Purpose: Generate a reply from structured chat contents.
        Inputs/Outputs: Input is a list of content entries plus an optional system
            instruction; returns the stripped response text.
        Side Effects / State: May add a model to the internal cache.
        Dependencies: Uses genai.GenerativeModel.generate_content with request_options.
        Failure Modes: SDK and transport errors (including deadline exceeded) propagate;
            a blocked or empty candidate yields an empty string.
        If Removed: The generative fallback gateway has no backend.
        Testing Notes: Replace with a fake exposing the same signature in router tests.
        """
        # System instructions are bound at model construction, so those models are not cached.
        model_name = _normalize_model_name(model) if model else self._default_model
        if system_instruction:
            generative_model = genai.GenerativeModel(model_name, system_instruction=system_instruction)
        else:
            generative_model = self._cached_model(model_name)
        response = generative_model.generate_content(
            contents,
            generation_config={
                "temperature": self._temperature if temperature is None else temperature,
                "max_output_tokens": max_output_tokens,
            },
            safety_settings=DEFAULT_SAFETY_SETTINGS,
            request_options={"timeout": timeout or self._timeout},
        )
        return _response_text(response)

    def transcribe_audio(self, data: bytes, mime_type: str, timeout: Optional[float] = None) -> str:
        """Ask the default model for a plain transcript of an audio clip."""
        response = self._cached_model(self._default_model).generate_content(
            [
                {"mime_type": mime_type, "data": data},
                "Transcribe this voice message verbatim. Reply with the transcript only.",
            ],
            generation_config={"temperature": 0.0},
            request_options={"timeout": timeout or self._timeout},
        )
        return _response_text(response)

    def _cached_model(self, model_name: str) -> genai.GenerativeModel:
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(model_name)
        return self._models[model_name]


def _response_text(response: object) -> str:
    # response.text raises ValueError when the candidate was blocked or has no parts.
    try:
        text: Optional[str] = getattr(response, "text", None)
    except ValueError:
        logger.warning("gemini response had no text part")
        return ""
    return (text or "").strip()


def _normalize_model_name(name: Optional[str]) -> str:
    """GEMINI_MODEL may be given as "models/gemini-2.5-flash"; cache keys use the bare id."""
    cleaned = (name or "").strip()
    prefix, _, rest = cleaned.partition("/")
    return rest if prefix == "models" and rest else cleaned
