from __future__ import annotations

import abc
import asyncio
import functools
import logging
from typing import Any, Callable, Mapping, Optional, Tuple
from urllib.parse import urlencode

from ..endpoints import Endpoints
from ..envelope import CallResult
from ..exceptions import SfError

_logger = logging.getLogger(__name__)

Callback = Callable[..., None]


def append_query(url: str, params: Optional[Mapping[str, Any]]) -> str:
    """Append ``params`` to ``url`` as a query string (no-op when empty)."""
    if not params:
        return url
    qs = urlencode({k: v for k, v in params.items() if v is not None})
    if not qs:
        return url
    return url + ("&" if "?" in url else "?") + qs


async def run_callback_primitive(fn: Callable[[Callback, Callback], Any]) -> Tuple[bool, Any]:
    """
    Drive a callback-style primitive and wait for its first callback.

    ``fn(on_success, on_error)`` runs on the loop's default executor, so a
    blocking primitive does not stall the loop. Returns ``(True, result)`` or
    ``(False, error)``; later callbacks are ignored. Exceptions raised by
    ``fn`` itself propagate.
    """
    loop = asyncio.get_running_loop()
    fut: asyncio.Future = loop.create_future()

    def settle(ok: bool, value: Any) -> None:
        def _set() -> None:
            if not fut.done():
                fut.set_result((ok, value))

        loop.call_soon_threadsafe(_set)

    def on_success(res: Any = None, *_rest: Any) -> None:
        settle(True, res)

    def on_error(err: Any = None, *_rest: Any) -> None:
        settle(False, err)

    await loop.run_in_executor(None, functools.partial(fn, on_success, on_error))
    return await fut


class TransportAdapter(abc.ABC):
    """One way of sending a request to Salesforce."""

    source = "transport"

    def __init__(self, *, request_timeout: Optional[float] = None) -> None:
        self.request_timeout = request_timeout

    @property
    @abc.abstractmethod
    def endpoints(self) -> Optional[Endpoints]:
        """Current endpoints; may change after (re)authentication."""

    async def prepare(self) -> None:
        """Make sure ``endpoints`` is usable before URLs are built."""

    async def ajax(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> CallResult:
        method = method.upper()
        if self.request_timeout is None:
            return await self._ajax(method, url, params, body)
        try:
            return await asyncio.wait_for(self._ajax(method, url, params, body), self.request_timeout)
        except asyncio.TimeoutError:
            _logger.warning("%s %s timed out after %ss", method, url, self.request_timeout)
            raise SfError(
                f"Request timed out after {self.request_timeout}s",
                http_status=0,
                code="REQUEST_TIMEOUT",
                method=method,
                url=url,
                source=self.source,
            ) from None

    @abc.abstractmethod
    async def _ajax(
        self,
        method: str,
        url: str,
        params: Optional[Mapping[str, Any]],
        body: Any,
    ) -> CallResult:
        """Perform one call, including this transport's own retries."""

    def _error(self, method: str, url: str, **kwargs: Any) -> SfError:
        return SfError(method=method, url=url, source=self.source, **kwargs)
