"""
Push-side middleware.

A push middleware receives a ``PushRequest`` and the next handler in the
chain. It may change the request, forward it, or return without forwarding
to stop the push before it reaches the adapter. Definitions are resolved to
middleware objects once, when the queue is built.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol, Sequence, runtime_checkable

from .exceptions import BehaviorNotSupportedError, InvalidMiddlewareDefinitionError
from .types import Message

log = logging.getLogger(__name__)


@dataclass(slots=True)
class PushRequest:
    message: Message
    adapter: Any
    message_id: str | None = None


PushHandler = Callable[[PushRequest], PushRequest]


@runtime_checkable
class MiddlewarePush(Protocol):
    def process_push(self, request: PushRequest, handler: PushHandler) -> PushRequest:
        ...


class MiddlewareFactoryPush(Protocol):
    def create_push_middleware(self, definition: Any) -> MiddlewarePush:
        ...


class CallableMiddleware:
    def __init__(self, fn: Callable[[PushRequest, PushHandler], PushRequest]):
        self.fn = fn

    def process_push(self, request: PushRequest, handler: PushHandler) -> PushRequest:
        return self.fn(request, handler)

    def __repr__(self) -> str:
        return f"CallableMiddleware({getattr(self.fn, '__qualname__', self.fn)!r})"


def _import_path(path: str) -> Any:
    if ":" not in path:
        raise InvalidMiddlewareDefinitionError(path, "import path must be in form module:attr")
    module_name, attr = path.split(":", 1)
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise InvalidMiddlewareDefinitionError(path, str(exc)) from exc


class MiddlewareFactory:
    """Resolves middleware definitions.

    Supported shapes:

    * an object with ``process_push``
    * ``"module:attr"`` naming a middleware class (instantiated without
      arguments) or instance
    * ``("module:attr", {"param": value})`` or
      ``{"class": "module:attr", "param": value}``
    * a callable ``(request, handler) -> request``
    """

    def create_push_middleware(self, definition: Any) -> MiddlewarePush:
        if isinstance(definition, MiddlewarePush) and not isinstance(definition, type):
            return definition
        if isinstance(definition, str):
            return self._from_target(definition, _import_path(definition), {})
        if isinstance(definition, Mapping):
            params = dict(definition)
            path = params.pop("class", None)
            if not isinstance(path, str):
                raise InvalidMiddlewareDefinitionError(definition, "mapping needs a 'class' import path")
            return self._from_target(definition, _import_path(path), params)
        if isinstance(definition, (tuple, list)):
            if len(definition) != 2 or not isinstance(definition[0], str) or not isinstance(definition[1], Mapping):
                raise InvalidMiddlewareDefinitionError(definition, "expected (import path, params)")
            return self._from_target(definition, _import_path(definition[0]), dict(definition[1]))
        if isinstance(definition, type):
            return self._from_target(definition, definition, {})
        if callable(definition):
            return CallableMiddleware(definition)
        raise InvalidMiddlewareDefinitionError(definition)

    @staticmethod
    def _from_target(definition: Any, target: Any, params: dict[str, Any]) -> MiddlewarePush:
        if isinstance(target, type):
            try:
                middleware = target(**params)
            except TypeError as exc:
                raise InvalidMiddlewareDefinitionError(definition, str(exc)) from exc
        elif params:
            raise InvalidMiddlewareDefinitionError(definition, "parameters given for a non-class target")
        else:
            middleware = target
        if isinstance(middleware, MiddlewarePush):
            return middleware
        if callable(middleware):
            return CallableMiddleware(middleware)
        raise InvalidMiddlewareDefinitionError(definition, f"{type(middleware).__name__} has no process_push")


def build_push_middlewares(
    definitions: Iterable[Any], factory: MiddlewareFactoryPush | None = None
) -> list[MiddlewarePush]:
    factory = factory or MiddlewareFactory()
    return [factory.create_push_middleware(d) for d in definitions]


class PushMiddlewareDispatcher:
    """Runs a request through the middlewares, first one outermost, and then
    through ``final_handler``."""

    def __init__(self, middlewares: Sequence[MiddlewarePush], final_handler: PushHandler):
        self.middlewares = tuple(middlewares)
        self.final_handler = final_handler

    def dispatch(self, request: PushRequest) -> PushRequest:
        return self._handler_at(0)(request)

    def _handler_at(self, index: int) -> PushHandler:
        if index >= len(self.middlewares):
            return self.final_handler
        middleware = self.middlewares[index]

        def handler(request: PushRequest) -> PushRequest:
            return middleware.process_push(request, self._handler_at(index + 1))

        return handler


class DelayMiddleware:
    """Asks the adapter to hold the message back for ``delay_seconds``."""

    def __init__(self, delay_seconds: float):
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self.delay_seconds = delay_seconds

    def process_push(self, request: PushRequest, handler: PushHandler) -> PushRequest:
        if not getattr(request.adapter, "supports_delay", False):
            raise BehaviorNotSupportedError(request.adapter, "delayed push")
        request.message.metadata["delay_seconds"] = self.delay_seconds
        log.debug("delaying message %s by %ss", request.message.name, self.delay_seconds)
        return handler(request)
