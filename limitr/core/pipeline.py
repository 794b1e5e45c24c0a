"""Request pipeline wiring the resolver, a storage adapter and notifications.

One decision per request, in order: skip check, key derivation, limit
resolution, counting, then allow (call the handler and stamp headers) or
deny (notify and respond with 429 or a custom response).

Fail-open: any error raised while deciding is logged and the wrapped
handler runs uncounted, without rate limit headers. Errors raised by the
wrapped handler itself are not caught here.

Usage:
    limiter = with_rate_limit({"limit": 10, "window_ms": 60_000})

    @router.get("/api/hello")
    @limiter
    async def hello(request: Request) -> Response: ...

    # or application-wide
    app.middleware("http")(limiter.dispatch)
"""

from __future__ import annotations

import functools
import inspect
import logging
import math
import time
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass
from typing import Any, Callable

from fastapi.encoders import jsonable_encoder
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from limitr.adapters.notify.webhook import WebhookNotifier
from limitr.adapters.storage.base import StorageAdapter, hash_key
from limitr.adapters.storage.factory import create_storage
from limitr.core.resolver import (
    OptionsLike,
    build_options,
    resolve_options,
    validate_route_override,
)
from limitr.schemas.options import RateLimitOptions
from limitr.schemas.usage import RateLimitStrategy
from limitr.utils.client_ip import get_client_ip

logger = logging.getLogger(__name__)

HEADER_LIMIT = "X-RateLimit-Limit"
HEADER_REMAINING = "X-RateLimit-Remaining"
HEADER_RESET = "X-RateLimit-Reset"
HEADER_RETRY_AFTER = "Retry-After"

Handler = Callable[[Request], Any]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _find_request(args: tuple[Any, ...], kwargs: dict[str, Any]) -> Request:
    for value in (*args, *kwargs.values()):
        if isinstance(value, Request):
            return value
    raise TypeError("Rate limited handlers must receive the Request object")


@dataclass(frozen=True)
class _Decision:
    """Outcome of the counting stage.

    ``headers`` is set when the request is allowed, ``denial`` when it is
    rejected; neither is set when the request was skipped.
    """

    headers: dict[str, str] | None = None
    denial: Response | None = None


class RateLimiter:
    """Rate limiting pipeline with its own options and storage adapter.

    Args:
        options: Global options merged onto the built-in defaults.
        routes: Ordered pattern -> partial options overrides.
        storage: Pre-built adapter; created from ``options`` when omitted.
        clock: Time source function returning UNIX time in seconds.

    Raises:
        ConfigurationAppError: If options, a route override, or the selected
            storage backend are misconfigured.
    """

    def __init__(
        self,
        options: OptionsLike | None = None,
        *,
        routes: Mapping[str, OptionsLike] | None = None,
        storage: StorageAdapter | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.options: RateLimitOptions = build_options(options)
        self.routes: dict[str, OptionsLike] = dict(routes or {})
        for pattern, override in self.routes.items():
            validate_route_override(self.options, pattern, override)

        self._clock = clock
        self.storage: StorageAdapter = (
            storage if storage is not None else create_storage(self.options, clock=clock)
        )

        if self.options.strategy is not RateLimitStrategy.FIXED_WINDOW:
            logger.warning(
                "rate_limit.strategy_not_implemented",
                extra={
                    "strategy": self.options.strategy.value,
                    "effective_strategy": RateLimitStrategy.FIXED_WINDOW.value,
                },
            )

    def __call__(self, handler: Handler) -> Callable[..., Awaitable[Response]]:
        """Wrap ``handler`` so every call goes through the pipeline."""

        @functools.wraps(handler)
        async def rate_limited(*args: Any, **kwargs: Any) -> Response:
            request = _find_request(args, kwargs)
            return await self.process(request, lambda _request: handler(*args, **kwargs))

        return rate_limited

    async def dispatch(self, request: Request, call_next: Handler) -> Response:
        """HTTP middleware entry point (``app.middleware("http")``)."""
        return await self.process(request, call_next)

    async def close(self) -> None:
        await self.storage.close()

    async def process(self, request: Request, handler: Handler) -> Response:
        """Run one request through the pipeline and return exactly one response."""
        path = request.url.path
        try:
            decision = await self._decide(request, path)
        except Exception as exc:
            logger.error(
                "rate_limit.fail_open",
                extra={
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                    "request_path": path,
                    "request_method": request.method,
                },
            )
            return await self._call_handler(handler, request)

        if decision.denial is not None:
            return decision.denial

        response = await self._call_handler(handler, request)
        if decision.headers:
            for name, value in decision.headers.items():
                response.headers[name] = value
        return response

    async def _call_handler(self, handler: Handler, request: Request) -> Response:
        result = await _maybe_await(handler(request))
        if isinstance(result, Response):
            return result
        return JSONResponse(content=jsonable_encoder(result))

    async def _derive_key(self, options: RateLimitOptions, request: Request, path: str) -> str:
        if options.key_generator is not None:
            return str(await _maybe_await(options.key_generator(request)))
        return f"{get_client_ip(request)}-{path}"

    async def _resolve_limit(self, options: RateLimitOptions, request: Request) -> int:
        if options.get_limit_for_request is not None:
            return int(await _maybe_await(options.get_limit_for_request(request)))
        return options.limit

    async def _decide(self, request: Request, path: str) -> _Decision:
        options = resolve_options(self.options, self.routes, path)

        if options.skip is not None and await _maybe_await(options.skip(request)):
            logger.debug("rate_limit.skipped", extra={"request_path": path})
            return _Decision()

        key = await self._derive_key(options, request, path)
        limit = await self._resolve_limit(options, request)

        usage = (await self.storage.increment(key, options.window_ms)).with_limit(limit)

        headers = {
            HEADER_LIMIT: str(limit),
            HEADER_REMAINING: str(usage.remaining),
            HEADER_RESET: str(usage.reset),
        }
        log_fields = {
            "key_hash": hash_key(key),
            "limit": limit,
            "used": usage.used,
            "remaining": usage.remaining,
            "window_ms": options.window_ms,
            "request_path": path,
        }

        if usage.used <= limit:
            logger.info("rate_limit.allowed", extra=log_fields)
            return _Decision(headers=headers)

        now_ms = self._clock() * 1000
        retry_after = max(0, math.ceil((usage.reset * 1000 - now_ms) / 1000))
        headers[HEADER_RETRY_AFTER] = str(retry_after)
        logger.warning("rate_limit.exceeded", extra={**log_fields, "retry_after_s": retry_after})

        if options.webhook is not None:
            await WebhookNotifier(options.webhook).notify(request, usage)

        if options.on_limit_reached is not None:
            await _maybe_await(options.on_limit_reached(request, usage))

        denial = None
        if options.handler is not None:
            denial = await _maybe_await(options.handler(request, usage))
            if denial is None:
                logger.warning("rate_limit.empty_deny_response", extra={"request_path": path})
            elif not isinstance(denial, Response):
                denial = JSONResponse(
                    status_code=429,
                    content=jsonable_encoder(denial),
                    headers=headers,
                )

        if denial is None:
            denial = JSONResponse(
                status_code=429,
                content={"error": "Too Many Requests"},
                headers=headers,
            )
        return _Decision(denial=denial)


def with_rate_limit(
    options: OptionsLike | None = None,
    *,
    routes: Mapping[str, OptionsLike] | None = None,
) -> RateLimiter:
    """Build a rate limiter usable as a handler decorator or HTTP middleware.

    Storage is created immediately, so configuration errors surface here
    rather than on the first request.
    """
    return RateLimiter(options, routes=routes)
