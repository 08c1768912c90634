# llm/stream.py
import asyncio
import logging
from typing import AsyncIterator, Optional

from core.errors import ProviderError

logger = logging.getLogger(__name__)


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


class FragmentStream:
    """Pull-based view over a provider's fragment iterator.

    ``next()`` returns the next fragment, ``None`` once the source is
    exhausted, and raises :class:`ProviderError` when the source fails or
    stays silent for longer than ``timeout`` seconds. ``aclose()`` stops the
    source early; after it, ``next()`` always returns ``None``.

    Line endings are normalized to ``\\n`` since server-sent events cannot
    carry a bare ``\\r``; what is sent and what is stored stay identical.
    """

    def __init__(self, source: AsyncIterator[str], timeout: Optional[float] = None):
        self._source = source
        self._timeout = timeout
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    async def next(self) -> Optional[str]:
        if self._done:
            return None
        try:
            if self._timeout:
                fragment = await asyncio.wait_for(self._source.__anext__(), self._timeout)
            else:
                fragment = await self._source.__anext__()
        except StopAsyncIteration:
            self._done = True
            return None
        except asyncio.TimeoutError as e:
            self._done = True
            raise ProviderError(f"No completion fragment within {self._timeout}s") from e
        except ProviderError:
            self._done = True
            raise
        except Exception as e:
            self._done = True
            raise ProviderError(f"Completion stream failed: {type(e).__name__}: {e}") from e
        return normalize_newlines(fragment)

    async def aclose(self) -> None:
        self._done = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.warning("Could not close completion stream: %s", e)
