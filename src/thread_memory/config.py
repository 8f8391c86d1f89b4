"""
Memory configuration and engine credentials.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_SUMMARY_MODEL = "gemini-2.5-flash"
DEFAULT_MODEL_PROVIDER = "google_genai"


@dataclass
class MemoryConfig:
    """Configuration for context windowing and thread summarization."""

    # Sliding window: most recent messages kept verbatim
    recent_window_size: int = 20

    # Approximate token ceiling for one context package
    max_context_tokens: int = 8000

    # Re-summarize once this many new messages arrived since the last pass
    resummarize_threshold: int = 20

    # Only the most recent N messages are sent to the engine for a summary
    max_summary_messages: int = 50

    # Generation engine
    enable_engine: bool = True
    summary_model: str = DEFAULT_SUMMARY_MODEL
    model_provider: str = DEFAULT_MODEL_PROVIDER
    summary_temperature: float = 0.3
    engine_timeout: float = 30.0  # seconds

    @classmethod
    def from_env(cls) -> "MemoryConfig":
        """Load configuration from environment variables (and a .env file)."""
        load_dotenv()
        return cls(
            recent_window_size=int(os.getenv("MEMORY_RECENT_WINDOW_SIZE", "20")),
            max_context_tokens=int(os.getenv("MEMORY_MAX_CONTEXT_TOKENS", "8000")),
            resummarize_threshold=int(os.getenv("MEMORY_RESUMMARIZE_THRESHOLD", "20")),
            max_summary_messages=int(os.getenv("MEMORY_MAX_SUMMARY_MESSAGES", "50")),
            enable_engine=os.getenv("MEMORY_ENABLE_ENGINE", "true").lower()
            in ("1", "true", "yes"),
            summary_model=os.getenv("MEMORY_SUMMARY_MODEL", DEFAULT_SUMMARY_MODEL),
            model_provider=os.getenv("MODEL_PROVIDER", DEFAULT_MODEL_PROVIDER),
            summary_temperature=float(os.getenv("MEMORY_SUMMARY_TEMPERATURE", "0.3")),
            engine_timeout=float(os.getenv("MEMORY_ENGINE_TIMEOUT", "30")),
        )


def get_credentials() -> tuple[Optional[str], Optional[str]]:
    """
    Resolve engine credentials.

    - API key: API_KEY > GOOGLE_API_KEY > GEMINI_API_KEY
    - Base URL: API_BASE_URL

    Returns:
        (api_key, base_url)
    """
    api_key = (
        os.getenv("API_KEY")
        or os.getenv("GOOGLE_API_KEY")
        or os.getenv("GEMINI_API_KEY")
    )
    base_url = os.getenv("API_BASE_URL")
    return api_key, base_url
