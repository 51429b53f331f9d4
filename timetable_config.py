from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_RECOGNIZER_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_RECOGNIZER_MODEL = "google/gemini-2.5-flash"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class RecognizerSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    api_key: Optional[str] = None
    url: str = DEFAULT_RECOGNIZER_URL
    model: str = DEFAULT_RECOGNIZER_MODEL
    temperature: float = 0.2
    timeout_s: float = 60.0

    @field_validator("timeout_s")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be a positive number of seconds")
        return v


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # None keeps everything in memory
    store_path: Optional[str] = None
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://localhost:8501"])
    log_level: str = "INFO"
    recognizer: RecognizerSettings = Field(default_factory=RecognizerSettings)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        v = (v or "").strip().upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return v

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if environ is None else environ
        recognizer = {
            "api_key": env.get("GROQ_API_KEY") or None,
            "url": env.get("TIMETABLE_RECOGNIZER_URL") or DEFAULT_RECOGNIZER_URL,
            "model": env.get("TIMETABLE_RECOGNIZER_MODEL") or DEFAULT_RECOGNIZER_MODEL,
        }
        data = {"recognizer": recognizer}
        if env.get("TIMETABLE_STORE_PATH"):
            data["store_path"] = env["TIMETABLE_STORE_PATH"]
        if env.get("TIMETABLE_CORS_ORIGINS"):
            data["cors_origins"] = [o.strip() for o in env["TIMETABLE_CORS_ORIGINS"].split(",") if o.strip()]
        if env.get("TIMETABLE_LOG_LEVEL"):
            data["log_level"] = env["TIMETABLE_LOG_LEVEL"]
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ValueError(str(e)) from e

    @classmethod
    def load_file(cls, path: Union[str, Path]) -> "AppConfig":
        p = Path(path)
        data = json.loads(p.read_text(encoding="utf-8"))
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            # Re-raise with a cleaner message for CLI usage
            raise ValueError(str(e)) from e


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
