"""
Bad-host handlers.
Invoked by the secure middleware when a request's Host is not allowed.
"""

import inspect
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Union

from starlette import status
from starlette.requests import Request
from starlette.responses import Response

BadHostCallable = Callable[[Request], Union[Response, Awaitable[Response]]]


class BadHostHandler(ABC):
    """Strategy producing the response for a rejected host."""

    @abstractmethod
    async def handle(self, request: Request) -> Response:
        ...


class ForbiddenHostHandler(BadHostHandler):
    """Default handler: empty 403 Forbidden."""

    async def handle(self, request: Request) -> Response:
        return Response(status_code=status.HTTP_403_FORBIDDEN)


class CallableBadHostHandler(BadHostHandler):
    """Adapts a plain sync or async function ``(request) -> Response``."""

    def __init__(self, func: BadHostCallable) -> None:
        self.func = func

    async def handle(self, request: Request) -> Response:
        result = self.func(request)
        if inspect.isawaitable(result):
            result = await result
        return result


def as_bad_host_handler(handler) -> BadHostHandler:
    """Coerce ``None``, a BadHostHandler or a callable into a handler."""
    if handler is None:
        return ForbiddenHostHandler()
    if isinstance(handler, BadHostHandler):
        return handler
    if callable(handler):
        return CallableBadHostHandler(handler)
    raise TypeError(
        f"bad_host_handler must be a BadHostHandler or callable, got {type(handler).__name__}"
    )
