"""Deadline- and cancellation-bounded execution of single HTTP calls."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx

from ..errors import FailureKind, RequestFailure

logger = logging.getLogger(__name__)

ResponsePredicate = Callable[[httpx.Response], bool]


class CancelToken:
    """Caller-owned signal used to abort in-flight calls."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(slots=True, frozen=True)
class BoundedRequest:
    """Per-call bounds; created for one call and discarded once it settles."""

    deadline_ms: int
    cancel_token: CancelToken | None = None
    started_at: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        if (
            not isinstance(self.deadline_ms, int)
            or isinstance(self.deadline_ms, bool)
            or self.deadline_ms <= 0
        ):
            raise ValueError("deadline_ms must be a positive integer")

    @property
    def timeout_seconds(self) -> float:
        return self.deadline_ms / 1000

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


def _is_success(response: httpx.Response) -> bool:
    return response.is_success


class BoundedRequestExecutor:
    """Issue one call against an ``httpx.AsyncClient`` with a hard deadline.

    The transport, the deadline timer and the optional cancel token race each
    other; whichever settles first decides the outcome. Nothing is retried here:
    retry and fallback policies belong to the callers.
    """

    def __init__(self, http_client: httpx.AsyncClient):
        self._client = http_client

    def build_request(self, method: str, url: str, **kwargs: Any) -> httpx.Request:
        return self._client.build_request(method, url, **kwargs)

    async def execute(
        self,
        request: httpx.Request,
        deadline_ms: int,
        *,
        cancel: CancelToken | None = None,
        accept: ResponsePredicate | None = None,
    ) -> httpx.Response:
        """Send ``request`` and return the accepted response.

        Raises :class:`RequestFailure` tagged ``TIMEOUT``, ``CANCELLED``,
        ``NETWORK_ERROR`` or ``REJECTED_RESPONSE``.
        """

        bounded = BoundedRequest(deadline_ms=deadline_ms, cancel_token=cancel)
        target = f"{request.method} {request.url.copy_remove_param('api_key')}"
        if cancel is not None and cancel.cancelled:
            logger.debug("Skipping %s: cancelled before start", target)
            raise RequestFailure(FailureKind.CANCELLED)

        send_task = asyncio.create_task(self._client.send(request))
        waiters: set[asyncio.Task[Any]] = {send_task}
        cancel_task: asyncio.Task[Any] | None = None
        if cancel is not None:
            cancel_task = asyncio.create_task(cancel.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=bounded.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            pending = [task for task in waiters if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if send_task not in done:
            if cancel_task is not None and cancel_task in done:
                logger.debug(
                    "%s cancelled after %sms", target, bounded.elapsed_ms()
                )
                raise RequestFailure(FailureKind.CANCELLED)
            logger.warning(
                "%s timed out after %sms", target, bounded.deadline_ms
            )
            raise RequestFailure(
                FailureKind.TIMEOUT, detail=f"no response within {deadline_ms}ms"
            )

        try:
            response = send_task.result()
        except httpx.HTTPError as exc:
            logger.warning("%s failed: %s", target, exc.__class__.__name__)
            raise RequestFailure(FailureKind.NETWORK_ERROR, cause=exc) from exc

        predicate = accept or _is_success
        if not predicate(response):
            logger.info(
                "%s rejected with HTTP %s", target, response.status_code
            )
            raise RequestFailure(
                FailureKind.REJECTED_RESPONSE,
                status=response.status_code,
                detail=_error_detail(response),
            )
        return response

    async def get_json(
        self,
        request: httpx.Request,
        deadline_ms: int,
        *,
        cancel: CancelToken | None = None,
        accept: ResponsePredicate | None = None,
    ) -> dict[str, Any]:
        """Execute ``request`` and decode a JSON object body."""

        response = await self.execute(
            request, deadline_ms, cancel=cancel, accept=accept
        )
        return decode_json_object(response)


def decode_json_object(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise RequestFailure(
            FailureKind.REJECTED_RESPONSE,
            status=response.status_code,
            detail="response body is not JSON",
        ) from exc
    if not isinstance(payload, dict):
        raise RequestFailure(
            FailureKind.REJECTED_RESPONSE,
            status=response.status_code,
            detail="response body is not a JSON object",
        )
    return payload


def _error_detail(response: httpx.Response) -> str | None:
    """Pull the ``error`` field out of a rejected JSON body, if any."""

    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        error = payload.get("error") or payload.get("status_message")
        if isinstance(error, str) and error:
            return error
    return None
