# llm/provider.py
import logging
from typing import AsyncIterator, List, Optional, Protocol, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_ollama import ChatOllama
from ollama import ResponseError

from core.config import Settings
from core.errors import ProviderError
from db.models import Message, Role

logger = logging.getLogger(__name__)


class CompletionProvider(Protocol):
    def complete(self, messages: Sequence[Message]) -> AsyncIterator[str]:
        """Return a finite, single-pass stream of text fragments."""
        ...


def get_chat_model(settings: Settings) -> ChatOllama:
    return ChatOllama(
        model=settings.chat_model,
        base_url=settings.ollama_host,
        temperature=settings.temperature,
    )


def to_langchain_messages(messages: Sequence[Message], system_prompt: Optional[str] = None) -> List[BaseMessage]:
    out: List[BaseMessage] = []
    if system_prompt:
        out.append(SystemMessage(content=system_prompt))
    for m in messages:
        if m.role == Role.user.value:
            out.append(HumanMessage(content=m.content))
        elif m.role == Role.assistant.value:
            out.append(AIMessage(content=m.content))
        else:
            out.append(SystemMessage(content=m.content))
    return out


class OllamaCompletionProvider:
    """Streams chat completions from an Ollama server through LangChain."""

    def __init__(self, model: ChatOllama, system_prompt: Optional[str] = None):
        self._model = model
        self._system_prompt = system_prompt

    @classmethod
    def from_settings(cls, settings: Settings) -> "OllamaCompletionProvider":
        return cls(get_chat_model(settings), system_prompt=settings.system_prompt)

    async def complete(self, messages: Sequence[Message]) -> AsyncIterator[str]:
        lc_messages = to_langchain_messages(messages, self._system_prompt)
        logger.debug("requesting completion from %s over %d messages", self._model.model, len(lc_messages))
        try:
            async for chunk in self._model.astream(lc_messages):
                # content can be a list of parts for multimodal models
                text = chunk.content if isinstance(chunk.content, str) else ""
                if text:
                    yield text
        except ResponseError as e:
            raise ProviderError(f"Ollama error ({e.status_code}): {e.error}") from e
