"""
Generation-engine collaborator.

The summarizer only needs ``generate(prompt, temperature, system_instruction)``.
``ChatModelEngine`` adapts any LangChain chat model to that contract and maps
provider exceptions onto the engine error taxonomy.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Protocol

from langchain_core.runnables import Runnable
from langchain_core.messages import HumanMessage, SystemMessage

from .config import MemoryConfig, get_credentials
from .errors import (
    EngineConfigurationError,
    EngineError,
    EngineRateLimitError,
    EngineUnavailableError,
    SummaryParseError,
)

logger = logging.getLogger(__name__)


class GenerationEngine(Protocol):
    """Anything that turns a prompt into text."""

    async def generate(
        self,
        prompt: str,
        temperature: float,
        system_instruction: str,
    ) -> str:
        ...


class EngineErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    PARSE = "parse"
    TRANSIENT = "transient"


def classify_engine_error(exc: BaseException) -> EngineErrorKind:
    """Name the kind of an engine failure. Used for logging only."""
    if isinstance(exc, EngineConfigurationError):
        return EngineErrorKind.CONFIGURATION
    if isinstance(exc, EngineRateLimitError):
        return EngineErrorKind.RATE_LIMIT
    if isinstance(exc, SummaryParseError):
        return EngineErrorKind.PARSE
    if isinstance(exc, asyncio.TimeoutError):
        return EngineErrorKind.TIMEOUT

    status = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    name = type(exc).__name__.lower()
    text = str(exc).lower()
    if status == 429 or "ratelimit" in name or "resourceexhausted" in name or "quota" in text:
        return EngineErrorKind.RATE_LIMIT
    if status in (401, 403) or "permission" in name or "api key" in text:
        return EngineErrorKind.CONFIGURATION
    if "timeout" in name:
        return EngineErrorKind.TIMEOUT
    return EngineErrorKind.TRANSIENT


def _wrap_error(exc: Exception) -> EngineError:
    kind = classify_engine_error(exc)
    if kind == EngineErrorKind.CONFIGURATION:
        return EngineConfigurationError(str(exc))
    if kind == EngineErrorKind.RATE_LIMIT:
        return EngineRateLimitError(str(exc))
    return EngineUnavailableError(str(exc) or type(exc).__name__)


class ChatModelEngine:
    """
    GenerationEngine backed by a LangChain chat model.

    The temperature is passed per call through the runnable config; models
    built with ``configurable_fields=("temperature",)`` honour it, others keep
    their construction-time temperature.
    """

    def __init__(self, llm: Optional[Runnable]):
        self._llm = llm

    async def generate(
        self,
        prompt: str,
        temperature: float,
        system_instruction: str,
    ) -> str:
        if self._llm is None:
            raise EngineConfigurationError("no chat model configured")

        messages = []
        if system_instruction:
            messages.append(SystemMessage(content=system_instruction))
        messages.append(HumanMessage(content=prompt))

        try:
            response = await self._llm.ainvoke(
                messages,
                config={"configurable": {"temperature": temperature}},
            )
        except EngineError:
            raise
        except Exception as e:
            raise _wrap_error(e) from e

        content = response.content if hasattr(response, "content") else response
        if isinstance(content, list):
            # Content blocks: keep the text parts only
            parts = []
            for block in content:
                if isinstance(block, str):
                    parts.append(block)
                elif isinstance(block, dict) and block.get("type") == "text":
                    parts.append(block.get("text", ""))
            content = "".join(parts)
        return str(content or "")


def create_engine(config: MemoryConfig) -> Optional[ChatModelEngine]:
    """
    Build the default engine from configuration.

    Returns None when the engine is disabled or no credentials are present;
    the summarizer then runs on its heuristic path only.
    """
    if not config.enable_engine:
        return None

    api_key, base_url = get_credentials()
    if not api_key:
        logger.info("No engine credentials configured; summaries will use heuristics")
        return None

    try:
        from langchain.chat_models import init_chat_model

        init_kwargs = {"temperature": config.summary_temperature, "api_key": api_key}
        if base_url:
            init_kwargs["base_url"] = base_url

        llm = init_chat_model(
            config.summary_model,
            model_provider=config.model_provider or None,
            configurable_fields=("temperature",),
            **init_kwargs,
        )
        return ChatModelEngine(llm)
    except Exception as e:
        logger.warning("Failed to create summary engine: %s", e)
        return None
