# core/config.py
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import List, Optional

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config.yaml"

# CORS origins (dev Vite/Svelte)
DEFAULT_ORIGINS = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./chats.db"
    ollama_host: str = "http://localhost:11434"
    chat_model: str = "mistral"
    temperature: float = 0.7
    system_prompt: Optional[str] = None
    completion_timeout: float = 60.0    # seconds to wait for the next fragment
    frontend_origins: List[str] = field(default_factory=lambda: list(DEFAULT_ORIGINS))
    log_level: str = "INFO"


def _split_origins(raw: str) -> List[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


def _from_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    out = {}
    db_cfg = cfg.get("database") or {}
    if "url" in db_cfg:
        out["database_url"] = db_cfg["url"]

    llm_cfg = cfg.get("llm") or {}
    for src, dst in (("host", "ollama_host"), ("model", "chat_model"),
                     ("temperature", "temperature"), ("system_prompt", "system_prompt"),
                     ("timeout", "completion_timeout")):
        if src in llm_cfg:
            out[dst] = llm_cfg[src]

    if "frontend_origins" in cfg:
        out["frontend_origins"] = list(cfg["frontend_origins"] or [])
    if "log_level" in cfg:
        out["log_level"] = cfg["log_level"]
    return out


def _from_env() -> dict:
    out = {}
    env = os.environ
    if env.get("DATABASE_URL"):
        out["database_url"] = env["DATABASE_URL"]
    if env.get("OLLAMA_HOST"):
        out["ollama_host"] = env["OLLAMA_HOST"]
    if env.get("OLLAMA_CHAT_MODEL"):
        out["chat_model"] = env["OLLAMA_CHAT_MODEL"]
    if env.get("OLLAMA_TEMPERATURE"):
        out["temperature"] = float(env["OLLAMA_TEMPERATURE"])
    if env.get("SYSTEM_PROMPT"):
        out["system_prompt"] = env["SYSTEM_PROMPT"]
    if env.get("COMPLETION_TIMEOUT"):
        out["completion_timeout"] = float(env["COMPLETION_TIMEOUT"])
    if env.get("LOG_LEVEL"):
        out["log_level"] = env["LOG_LEVEL"]
    return out


def load_settings(path: Optional[Path] = None) -> Settings:
    """Build settings from ``config.yaml`` (optional) with env vars on top.

    ``FRONTEND_ORIGINS`` extends the configured origin list rather than
    replacing it.
    """
    if path is None:
        path = Path(os.getenv("CONFIG_PATH", str(DEFAULT_CONFIG_PATH)))
    settings = replace(Settings(), **_from_yaml(Path(path)))
    settings = replace(settings, **_from_env())

    extra = os.getenv("FRONTEND_ORIGINS")
    if extra:
        settings = replace(settings, frontend_origins=settings.frontend_origins + _split_origins(extra))
    return settings
