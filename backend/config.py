"""
Runtime configuration for the vision narration backend.

Values come from the environment (a local .env is loaded first), with the
defaults below. Timeouts and windows are kept in the units the pipeline uses.
"""

import os
import threading
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from errors import ConfigError

load_dotenv()

PROVIDERS = ("gemini", "openai")


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PipelineConfig:
    """Tunable parameters for frame admission, analysis and speech."""

    # Vision provider
    provider: str = "gemini"
    gemini_api_key: str = ""
    openai_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    openai_model: str = "gpt-4o-mini"

    # Frame admission: 2 Hz -> one frame every 500ms
    max_fps: float = 2.0
    jpeg_quality: int = 75

    # Speech policy
    max_object_distance_m: float = 5.0
    dedupe_window_ms: int = 7000
    max_utterance_ms: int = 5000
    audio_enabled: bool = True

    # Vision call timeouts (seconds)
    connect_timeout_s: float = 20.0
    read_timeout_s: float = 30.0
    write_timeout_s: float = 30.0

    # Connectivity probe
    connectivity_host: str = "8.8.8.8"
    connectivity_port: int = 53
    connectivity_timeout_s: float = 1.5
    connectivity_interval_s: float = 5.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    def __post_init__(self):
        if self.provider not in PROVIDERS:
            raise ConfigError(f"VISION_PROVIDER must be one of {PROVIDERS}, got {self.provider!r}")
        if self.max_fps <= 0:
            raise ConfigError(f"MAX_ANALYSIS_FPS must be positive, got {self.max_fps}")
        if self.dedupe_window_ms < 0 or self.max_utterance_ms <= 0:
            raise ConfigError("Speech windows must be positive")

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        return cls(
            provider=os.getenv("VISION_PROVIDER", "gemini").strip().lower(),
            gemini_api_key=os.getenv("GEMINI_API_KEY", "").strip(),
            openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            max_fps=_env_float("MAX_ANALYSIS_FPS", "2.0"),
            jpeg_quality=_env_int("JPEG_QUALITY", "75"),
            max_object_distance_m=_env_float("MAX_OBJECT_DISTANCE_M", "5.0"),
            dedupe_window_ms=_env_int("SPEECH_DEDUPE_WINDOW_MS", "7000"),
            max_utterance_ms=_env_int("MAX_UTTERANCE_MS", "5000"),
            audio_enabled=_env_bool("AUDIO_ENABLED", "true"),
            connect_timeout_s=_env_float("VISION_CONNECT_TIMEOUT_S", "20"),
            read_timeout_s=_env_float("VISION_READ_TIMEOUT_S", "30"),
            write_timeout_s=_env_float("VISION_WRITE_TIMEOUT_S", "30"),
            connectivity_host=os.getenv("CONNECTIVITY_HOST", "8.8.8.8"),
            connectivity_port=_env_int("CONNECTIVITY_PORT", "53"),
            connectivity_timeout_s=_env_float("CONNECTIVITY_TIMEOUT_S", "1.5"),
            connectivity_interval_s=_env_float("CONNECTIVITY_INTERVAL_S", "5.0"),
            host=os.getenv("SERVER_HOST", "0.0.0.0"),
            port=_env_int("SERVER_PORT", "8000"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def default_api_key(self) -> str:
        return self.gemini_api_key if self.provider == "gemini" else self.openai_api_key


class ApiKeyStore:
    """
    In-memory credential holder.

    A key set at runtime (from the device) wins over the one from the
    environment. Nothing is written to disk.
    """

    def __init__(self, fallback: str = ""):
        self._fallback = fallback or ""
        self._override: Optional[str] = None
        self._lock = threading.Lock()

    def get_api_key(self) -> str:
        with self._lock:
            key = self._override if self._override else self._fallback
        return key.strip()

    def set_api_key(self, value: Optional[str]):
        with self._lock:
            self._override = (value or "").strip() or None
