"""App configuration (service connections, storage, display).

load_config() layers three sources, later ones winning:

  1. defaults (the model field defaults below)
  2. a JSON config file: nested sections are merged key by key
  3. environment variables, with a .env file loaded first:
       NARRATOR_URL, NARRATOR_API_KEY, NARRATOR_FORMAT, NARRATOR_MODEL,
       PORTRAIT_URL, PORTRAIT_API_KEY, DATA_DIR
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from storyspawn.llm import ProviderFormat
from storyspawn.portraits import PLACEHOLDER_URL
from storyspawn.tokenizer import RenderOptions

_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "NARRATOR_URL": ("narrator", "provider_url"),
    "NARRATOR_API_KEY": ("narrator", "api_key"),
    "NARRATOR_FORMAT": ("narrator", "provider_format"),
    "NARRATOR_MODEL": ("narrator", "model"),
    "PORTRAIT_URL": ("portraits", "provider_url"),
    "PORTRAIT_API_KEY": ("portraits", "api_key"),
}


class NarratorConnection(BaseModel):
    provider_url: str = "http://localhost:5001"
    api_key: str = ""
    provider_format: ProviderFormat = "openai"
    model: str = ""
    timeout: float = 120.0


class PortraitConnection(BaseModel):
    provider_url: str = "http://localhost:5002"
    api_key: str = ""
    model: str = ""
    timeout: float = 120.0
    placeholder_url: str = PLACEHOLDER_URL


class AppConfig(BaseModel):
    narrator: NarratorConnection = Field(default_factory=NarratorConnection)
    portraits: PortraitConnection = Field(default_factory=PortraitConnection)
    data_dir: Path = Path("data")
    max_history: int = 50
    prune_history_to: int = 10
    storage_capacity: int | None = None  # bytes; None = unlimited
    render: RenderOptions = Field(default_factory=RenderOptions)
    disable_suggestions: bool = False


def _merge(base: dict[str, Any], stored: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in stored.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> AppConfig:
    """Read config, returning defaults merged with file and env values."""
    load_dotenv()
    data = AppConfig().model_dump(mode="json")
    if path is not None and path.is_file():
        data = _merge(data, json.loads(path.read_text()))

    for var, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(var)
        if value:
            data[section][key] = value
    if os.getenv("DATA_DIR"):
        data["data_dir"] = os.environ["DATA_DIR"]

    return AppConfig.model_validate(data)
