from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from .base import AmbiguousHandlerError, CancellationToken, NoHandlerError, ensure_token
from .validation import Validator, run_validators

Handler = Callable[[Any, CancellationToken], Awaitable[Any]]

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Startup-time table of request type -> handler and request type -> validators."""

    def __init__(self) -> None:
        self._handlers: Dict[type, Handler] = {}
        self._validators: Dict[type, List[Validator]] = {}

    def register_handler(self, request_type: type, handler: Handler) -> None:
        if request_type in self._handlers:
            raise AmbiguousHandlerError(request_type)
        self._handlers[request_type] = handler

    def register_validator(self, request_type: type, validator: Validator) -> None:
        self._validators.setdefault(request_type, []).append(validator)

    def handler_for(self, request_type: type) -> Handler:
        handler = self._handlers.get(request_type)
        if handler is None:
            raise NoHandlerError(request_type)
        return handler

    def validators_for(self, request_type: type) -> List[Validator]:
        return list(self._validators.get(request_type, []))

    def ensure_complete(self, request_types: Iterable[type]) -> None:
        missing = [t for t in request_types if t not in self._handlers]
        if missing:
            raise NoHandlerError(missing[0])

    @property
    def request_types(self) -> List[type]:
        return list(self._handlers)


class Dispatcher:
    def __init__(self, registry: HandlerRegistry):
        self._registry = registry

    async def send(self, request: Any, token: Optional[CancellationToken] = None) -> Any:
        token = ensure_token(token)
        request_type = type(request)
        handler = self._registry.handler_for(request_type)
        validators = self._registry.validators_for(request_type)

        logger.debug(
            "Dispatching %s (validators=%d)",
            request_type.__name__,
            len(validators),
        )
        await run_validators(request, validators, token)
        return await handler(request, token)
