from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from llama_index.llms.openai import OpenAI

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_CHAT_URL = "http://localhost:5000/chat"
DEFAULT_ASSETS = "assets/echarts"


def load_env() -> None:
    load_dotenv()


@dataclass(frozen=True)
class Settings:
    openai_api_key: Optional[str]
    model: str = DEFAULT_MODEL
    backend: str = "llm"
    chat_url: str = DEFAULT_CHAT_URL
    assets: str = DEFAULT_ASSETS
    timeout: float = 60.0
    log_level: str = "INFO"
    log_file: str = "chart_agent.log"

    @staticmethod
    def from_env() -> "Settings":
        """Build settings from the environment (after loading ``.env``)."""
        load_env()
        backend = os.getenv("CHART_AGENT_BACKEND", "llm").strip().lower()
        if backend not in ("llm", "http"):
            raise ValueError(f"CHART_AGENT_BACKEND must be 'llm' or 'http', got {backend!r}")
        return Settings(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            model=os.getenv("CHART_AGENT_MODEL", DEFAULT_MODEL),
            backend=backend,
            chat_url=os.getenv("CHART_AGENT_CHAT_URL", DEFAULT_CHAT_URL),
            assets=os.getenv("CHART_AGENT_ASSETS", DEFAULT_ASSETS),
            timeout=float(os.getenv("CHART_AGENT_TIMEOUT", "60")),
            log_level=os.getenv("CHART_AGENT_LOG_LEVEL", "INFO"),
            log_file=os.getenv("CHART_AGENT_LOG_FILE", "chart_agent.log"),
        )


def get_llm(settings: Optional[Settings] = None) -> OpenAI:
    """Get LlamaIndex OpenAI LLM instance."""
    settings = settings or Settings.from_env()
    if not settings.openai_api_key:
        raise RuntimeError("OPENAI_API_KEY not set in environment/.env")
    # Retries belong to the caller, not the transport
    return OpenAI(
        model=settings.model,
        api_key=settings.openai_api_key,
        timeout=settings.timeout,
        max_retries=0,
    )
