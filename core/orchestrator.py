# core/orchestrator.py
"""Runs one chat turn: store the user message, stream the completion to the
client and store what was delivered as the assistant reply.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool

from core.errors import PersistenceError, ProviderError
from db.models import Message, Role
from db.store import ChatStore
from llm.provider import CompletionProvider
from llm.stream import FragmentStream

logger = logging.getLogger(__name__)

COMPLETED = "completed"
FAILED = "failed"
DISCONNECTED = "disconnected"
CANCELLED = "cancelled"


@dataclass
class CompletionTurn:
    chat_id: str
    user_message: Message
    history: List[Message]
    stream: FragmentStream


class ChatOrchestrator:
    def __init__(self, store: ChatStore, provider: CompletionProvider, fragment_timeout: Optional[float] = None):
        self._store = store
        self._provider = provider
        self._fragment_timeout = fragment_timeout

    async def begin_turn(self, chat_id: str, user_message: str) -> CompletionTurn:
        """Store the user message and open the provider stream.

        Raises ``NotFound`` before any write when the chat does not exist and
        ``PersistenceError`` before any provider call when the user message
        cannot be stored.
        """
        chat = await run_in_threadpool(self._store.get_chat, chat_id)
        user_msg = await run_in_threadpool(self._store.add_message, chat.id, Role.user, user_message)
        history = await run_in_threadpool(self._store.list_messages, chat.id)
        try:
            source = self._provider.complete(history)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Could not start completion: {e}") from e
        logger.info("chat %s: completion started over %d messages", chat.id, len(history))
        return CompletionTurn(chat.id, user_msg, history, FragmentStream(source, self._fragment_timeout))

    async def relay(self, turn: CompletionTurn, responder) -> Optional[Message]:
        """Forward fragments to ``responder`` and store the delivered text.

        Returns the stored assistant message, or ``None`` when nothing was
        stored.
        """
        fragments: List[str] = []
        status = COMPLETED
        try:
            while True:
                if responder.closed:
                    status = DISCONNECTED
                    break
                fragment = await turn.stream.next()
                if fragment is None:
                    break
                if not await responder.send(fragment):
                    status = DISCONNECTED
                    break
                fragments.append(fragment)
        except ProviderError as e:
            status = FAILED
            logger.warning("chat %s: completion failed after %d fragments: %s", turn.chat_id, len(fragments), e.detail)
            await responder.send_error(e.detail)
        except asyncio.CancelledError:
            status = CANCELLED
            raise
        finally:
            # a cancel arriving here must not drop the delivered text
            finish = asyncio.ensure_future(self._finish_turn(turn, fragments, status, responder))
            try:
                saved = await asyncio.shield(finish)
            except asyncio.CancelledError:
                logger.info("chat %s: cancelled while storing reply, finishing first", turn.chat_id)
                await finish
                raise
        return saved

    async def complete(self, chat_id: str, user_message: str, responder) -> Optional[Message]:
        turn = await self.begin_turn(chat_id, user_message)
        return await self.relay(turn, responder)

    async def _finish_turn(self, turn: CompletionTurn, fragments: List[str], status: str, responder) -> Optional[Message]:
        await turn.stream.aclose()
        saved = await self._store_reply(turn.chat_id, fragments, status)
        await responder.close()
        return saved

    async def _store_reply(self, chat_id: str, fragments: List[str], status: str) -> Optional[Message]:
        content = "".join(fragments)
        truncated = status != COMPLETED
        if truncated and not content:
            logger.info("chat %s: stream %s before any content, no reply stored", chat_id, status)
            return None
        try:
            msg = await run_in_threadpool(self._store.add_message, chat_id, Role.assistant, content, truncated)
        except PersistenceError:
            logger.exception("chat %s: reply was delivered but could not be stored", chat_id)
            return None
        logger.info("chat %s: stored reply %s (%d chars, %s)", chat_id, msg.id, len(content), status)
        return msg
