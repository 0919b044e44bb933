"""Runtime settings, read from the environment (and a .env file if present).

  ENSEMBLE_DATA_DIR     storage directory                     ./data
  LLM_PROVIDER_URL      backend base URL; empty → EchoLLM     ""
  LLM_PROVIDER_FORMAT   openai | ollama | koboldcpp           openai
  LLM_API_KEY           bearer token                          ""
  LLM_MODEL             model identifier                      ""
  LLM_TIMEOUT           seconds                               120
  SECONDARY_DELAY_MS    stagger between secondary replies     1200
  HISTORY_LIMIT         messages of history sent to the LLM   10
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from ensemble.llm import LLM, EchoLLM, HttpLLM, ProviderFormat

_ENV_FIELDS = {
    "data_dir": "ENSEMBLE_DATA_DIR",
    "provider_url": "LLM_PROVIDER_URL",
    "provider_format": "LLM_PROVIDER_FORMAT",
    "api_key": "LLM_API_KEY",
    "model": "LLM_MODEL",
    "timeout": "LLM_TIMEOUT",
    "secondary_delay_ms": "SECONDARY_DELAY_MS",
    "history_limit": "HISTORY_LIMIT",
}


class Settings(BaseModel):
    data_dir: Path = Path("data")
    provider_url: str = ""
    provider_format: ProviderFormat = "openai"
    api_key: str = ""
    model: str = ""
    timeout: float = Field(default=120.0, gt=0)
    secondary_delay_ms: int = Field(default=1200, ge=0)
    history_limit: int = Field(default=10, ge=0)


def load_settings(env_file: Path | None = None) -> Settings:
    """Build Settings from the environment after loading `env_file` (default ./.env).

    Variables already set in the environment win over the file.
    """
    load_dotenv(env_file or Path(".env"))
    values = {
        field: os.environ[var]
        for field, var in _ENV_FIELDS.items()
        if os.environ.get(var)
    }
    return Settings.model_validate(values)


def build_llm(settings: Settings) -> LLM:
    if not settings.provider_url:
        return EchoLLM()
    return HttpLLM(
        provider_url=settings.provider_url,
        api_key=settings.api_key,
        provider_format=settings.provider_format,
        model=settings.model,
        timeout=settings.timeout,
    )
