"""Retry wrapper and typed failure shared by the Copilot and Xero gateways."""

from __future__ import annotations

import functools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from xero_sync.core.config import settings
from xero_sync.core.errors import SyncError

logger = structlog.get_logger()

T = TypeVar("T")

# Rate limiting and Xero/Copilot internal errors
RETRYABLE_STATUS_CODES = frozenset({429, 500})


class GatewayError(SyncError):
    """A Copilot or Xero API call failed.

    ``transport_error`` marks timeouts and connection failures, which never
    produced an HTTP status from the remote side.
    """

    error_code = "gateway_error"

    def __init__(
        self,
        message: str,
        status_code: int = 502,
        *,
        service: str,
        response_body: Any = None,
        transport_error: bool = False,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, status_code, cause=cause)
        self.service = service
        self.response_body = response_body
        self.transport_error = transport_error

    @property
    def retryable(self) -> bool:
        return self.transport_error or self.status_code in RETRYABLE_STATUS_CODES


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, GatewayError) and exc.retryable


def with_gateway_retry(
    *,
    attempts: int | None = None,
    min_wait: float | None = None,
    max_wait: float | None = None,
    multiplier: float | None = None,
    predicate: Callable[[BaseException], bool] = is_retryable,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Retry an async gateway call with exponential backoff.

    Only failures accepted by ``predicate`` are retried; everything else is
    re-raised on the first attempt. Unset limits fall back to the
    ``GATEWAY_RETRY_*`` settings, read at call time.
    """

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        def _log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "gateway_call_retrying",
                call=fn.__qualname__,
                attempt=retry_state.attempt_number,
                status_code=getattr(exc, "status_code", None),
                error=str(exc),
            )

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            retrying = AsyncRetrying(
                stop=stop_after_attempt(attempts or settings.GATEWAY_RETRY_ATTEMPTS),
                wait=wait_exponential(
                    multiplier=multiplier if multiplier is not None else settings.GATEWAY_RETRY_MULTIPLIER,
                    min=min_wait if min_wait is not None else settings.GATEWAY_RETRY_MIN_WAIT,
                    max=max_wait if max_wait is not None else settings.GATEWAY_RETRY_MAX_WAIT,
                ),
                retry=retry_if_exception(predicate),
                before_sleep=_log_retry,
                reraise=True,
            )
            async for attempt in retrying:
                with attempt:
                    return await fn(*args, **kwargs)
            raise AssertionError("unreachable")  # pragma: no cover

        return wrapper

    return decorator
