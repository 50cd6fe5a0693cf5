"""
Runtime configuration.

Values come from environment variables (optionally from a ``.env`` file loaded
with python-dotenv) and are exposed as typed pydantic models grouped by
concern. Every field has a working default so the service starts against a
local Ollama without any configuration.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


ENV_PREFIX = "ONE_AGENT_"

DEFAULT_DENYLIST = ["傻瓜", "白痴", "不良内容"]


def _get(key: str, default: str = "") -> str:
    """
    Read ``ONE_AGENT_<key>`` from the environment.

    Args:
        key: Variable name without prefix.
        default: Fallback if unset or blank.

    Returns:
        The stripped value or default.
    """
    return os.getenv(f"{ENV_PREFIX}{key}", "").strip() or default


def _get_int(key: str, default: int) -> int:
    raw = _get(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(key: str, default: Optional[float]) -> Optional[float]:
    raw = _get(key)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_list(key: str, default: List[str]) -> List[str]:
    raw = _get(key)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class InferenceSettings(BaseModel):
    """Chat model used for reasoning and summarization"""
    base_url: str = "http://127.0.0.1:11434"
    model: str = "qwen2.5:3b"
    temperature: float = 0.0
    top_p: float = 0.9
    top_k: int = 40
    repeat_penalty: float = 1.2
    num_predict: int = 512


class ContextSettings(BaseModel):
    """Window and summarization bounds"""
    window_size: int = Field(10, description="Messages from history sent to inference")
    max_messages: int = Field(10, description="Session length that triggers summarization")
    retained_tail: int = Field(5, description="Messages kept after summarization")
    max_depth: int = Field(5, description="Capability round-trips allowed per turn")
    turn_timeout: float = Field(120.0, description="Seconds before a whole turn is cancelled")
    summary_timeout: float = Field(30.0, description="Seconds allowed for one summarization call")
    persist_timeout: float = Field(30.0, description="Seconds allowed for transcript and memory writes after a turn")
    denylist: List[str] = Field(default_factory=lambda: list(DEFAULT_DENYLIST))


class MemorySettings(BaseModel):
    """Memory index and memory capabilities"""
    embedding_model: str = "mxbai-embed-large"
    top_k: int = 2
    char_budget: int = 800
    min_score: Optional[float] = None
    session_ttl: float = 3600.0
    max_sessions: int = 1000
    sweep_interval: float = 60.0


class SearchSettings(BaseModel):
    """Web search capability, registered only when an API key is present"""
    tavily_api_key: Optional[str] = None
    max_results: int = 3
    timeout: float = 15.0


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000


class LoggingSettings(BaseModel):
    level: str = "INFO"
    format: str = "json"
    service_name: str = "one-agent"


class AgentSettings(BaseModel):
    """Complete service configuration"""
    inference: InferenceSettings = Field(default_factory=InferenceSettings)
    context: ContextSettings = Field(default_factory=ContextSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(env_file: Optional[Path] = None) -> AgentSettings:
    """
    Build settings from the environment.

    Args:
        env_file: Optional path to a .env file; defaults to ``.env`` in the
            working directory. Existing environment variables are not
            overridden.

    Returns:
        A populated AgentSettings.
    """
    load_dotenv(env_file or Path.cwd() / ".env")

    return AgentSettings(
        inference=InferenceSettings(
            base_url=_get("OLLAMA_BASE_URL", os.getenv("OLLAMA_BASE_URL", "http://127.0.0.1:11434")),
            model=_get("MODEL", "qwen2.5:3b"),
            temperature=_get_float("TEMPERATURE", 0.0),
            top_p=_get_float("TOP_P", 0.9),
            top_k=_get_int("TOP_K", 40),
            repeat_penalty=_get_float("REPEAT_PENALTY", 1.2),
            num_predict=_get_int("NUM_PREDICT", 512),
        ),
        context=ContextSettings(
            window_size=_get_int("WINDOW_SIZE", 10),
            max_messages=_get_int("MAX_MESSAGES", 10),
            retained_tail=_get_int("RETAINED_TAIL", 5),
            max_depth=_get_int("MAX_DEPTH", 5),
            turn_timeout=_get_float("TURN_TIMEOUT", 120.0),
            summary_timeout=_get_float("SUMMARY_TIMEOUT", 30.0),
            persist_timeout=_get_float("PERSIST_TIMEOUT", 30.0),
            denylist=_get_list("DENYLIST", DEFAULT_DENYLIST),
        ),
        memory=MemorySettings(
            embedding_model=_get("EMBEDDING_MODEL", "mxbai-embed-large"),
            top_k=_get_int("MEMORY_TOP_K", 2),
            char_budget=_get_int("MEMORY_CHAR_BUDGET", 800),
            min_score=_get_float("MEMORY_MIN_SCORE", None),
            session_ttl=_get_float("SESSION_TTL", 3600.0),
            max_sessions=_get_int("MAX_SESSIONS", 1000),
            sweep_interval=_get_float("SWEEP_INTERVAL", 60.0),
        ),
        search=SearchSettings(
            tavily_api_key=os.getenv("TAVILY_API_KEY", "").strip() or None,
            max_results=_get_int("SEARCH_MAX_RESULTS", 3),
            timeout=_get_float("SEARCH_TIMEOUT", 15.0),
        ),
        server=ServerSettings(
            host=_get("HOST", "0.0.0.0"),
            port=_get_int("PORT", 3000),
        ),
        logging=LoggingSettings(
            level=_get("LOG_LEVEL", "INFO"),
            format=_get("LOG_FORMAT", "json"),
            service_name=_get("SERVICE_NAME", "one-agent"),
        ),
    )
