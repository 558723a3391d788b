from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BASE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class Settings:
    """Configuration container for the router, adapters, and runtime limits."""
    gemini_api_key: str
    gemini_model: str
    llm_timeout_seconds: float
    llm_temperature: float
    catalog_path: Path
    prompts_dir: Path
    session_retention_hours: float
    session_sweep_seconds: float
    sessions_path: Optional[Path]
    intent_stats_path: Optional[Path]
    whatsapp_token: str
    whatsapp_phone_number_id: str
    whatsapp_api_version: str
    whatsapp_verify_token: str
    whatsapp_app_secret: str
    http_timeout_seconds: float
    max_workers: int

    @property
    def session_retention_seconds(self) -> float:
        return self.session_retention_hours * 60 * 60


def _optional_path(name: str) -> Optional[Path]:
    value = os.getenv(name, "").strip()
    return Path(value) if value else None


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for the bundled catalog and prompts.
    Failure Modes: Invalid numeric env values raise ValueError.
    If Removed: App cannot configure Gemini, WhatsApp, or session retention.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve catalog and prompt paths, then build Settings.
    catalog_path = os.getenv("CATALOG_PATH")
    if catalog_path:
        catalog_file = Path(catalog_path)
    else:
        catalog_file = (BASE_DIR / "resources" / "support_catalog.json").resolve()

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        llm_timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "20")),
        llm_temperature=float(os.getenv("LLM_TEMPERATURE", "0.2")),
        catalog_path=catalog_file,
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        session_retention_hours=float(os.getenv("SESSION_RETENTION_HOURS", "48")),
        session_sweep_seconds=float(os.getenv("SESSION_SWEEP_SECONDS", "3600")),
        sessions_path=_optional_path("SESSIONS_PATH"),
        intent_stats_path=_optional_path("INTENT_STATS_PATH"),
        whatsapp_token=os.getenv("WHATSAPP_TOKEN", ""),
        whatsapp_phone_number_id=os.getenv("WHATSAPP_PHONE_NUMBER_ID", ""),
        whatsapp_api_version=os.getenv("WHATSAPP_API_VERSION", "v19.0"),
        whatsapp_verify_token=os.getenv("WHATSAPP_VERIFY_TOKEN", ""),
        whatsapp_app_secret=os.getenv("WHATSAPP_APP_SECRET", ""),
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "10")),
        max_workers=int(os.getenv("MAX_WORKERS", "8")),
    )
