"""Gateway for the backend chat assistant."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import Settings
from ..errors import FailureKind, RequestFailure
from ..models import ChatMessage, ConnectivityStatus
from .executor import BoundedRequestExecutor, CancelToken, decode_json_object

logger = logging.getLogger(__name__)

GREETING = (
    "Hey there! I'm your movie buddy. What's your vibe tonight? Looking for "
    "something to make you laugh, cry, or jump out of your seat?"
)
GENERIC_FAILURE_MESSAGE = "Sorry, something went wrong."
TIMEOUT_MESSAGE = "Request timed out. Please try again."
NETWORK_FAILURE_MESSAGE = "Network error. Please try again."


def _accept_any(_: httpx.Response) -> bool:
    # Error bodies still carry a user-facing ``error`` field.
    return True


class ChatGateway:
    """Health probe plus turn-taking message exchange with the chat backend.

    The transcript is append-only and ordered by send order; sends are
    serialized so a slow reply can never be overtaken by a later one.
    """

    def __init__(
        self,
        settings: Settings,
        executor: BoundedRequestExecutor,
        *,
        greeting: str | None = GREETING,
    ) -> None:
        self._settings = settings
        self._executor = executor
        self._status: ConnectivityStatus | None = None
        self._transcript: list[ChatMessage] = []
        self._send_lock = asyncio.Lock()
        if greeting:
            self._transcript.append(ChatMessage(role="assistant", content=greeting))

    @property
    def status(self) -> ConnectivityStatus | None:
        """Result of the last probe, ``None`` until one has run."""

        return self._status

    @property
    def transcript(self) -> tuple[ChatMessage, ...]:
        return tuple(self._transcript)

    async def probe(self, *, cancel: CancelToken | None = None) -> ConnectivityStatus:
        request = self._executor.build_request(
            "GET", "/health", headers={"Accept": "application/json"}
        )
        try:
            payload = await self._executor.get_json(
                request, self._settings.chat_probe_deadline_ms, cancel=cancel
            )
        except RequestFailure as exc:
            logger.warning("Chat backend health check failed: %s", exc)
            self._status = ConnectivityStatus.OFFLINE
            return self._status

        if payload.get("status") == "ok":
            self._status = ConnectivityStatus.ONLINE
        else:
            logger.info("Chat backend reported status %r", payload.get("status"))
            self._status = ConnectivityStatus.OFFLINE
        return self._status

    async def send(self, text: str, *, cancel: CancelToken | None = None) -> str:
        """Send one user message and return the assistant's reply text.

        Failures never raise: they come back as user-facing messages, with a
        timeout worded differently from a network failure.
        """

        if not text or not text.strip():
            raise ValueError("Message text must not be empty")

        async with self._send_lock:
            self._transcript.append(ChatMessage(role="user", content=text))
            reply = await self._exchange(text, cancel=cancel)
            self._transcript.append(ChatMessage(role="assistant", content=reply))
            return reply

    async def _exchange(self, text: str, *, cancel: CancelToken | None) -> str:
        request = self._executor.build_request(
            "POST",
            "/api/chat",
            headers={"Content-Type": "application/json"},
            json={"message": text},
        )
        try:
            response = await self._executor.execute(
                request,
                self._settings.chat_send_deadline_ms,
                cancel=cancel,
                accept=_accept_any,
            )
        except RequestFailure as exc:
            if exc.kind is FailureKind.TIMEOUT:
                return TIMEOUT_MESSAGE
            logger.warning("Chat request failed: %s", exc)
            return NETWORK_FAILURE_MESSAGE

        try:
            payload = decode_json_object(response)
        except RequestFailure as exc:
            logger.warning("Malformed chat response: %s", exc)
            return GENERIC_FAILURE_MESSAGE
        return extract_reply(payload)


def extract_reply(payload: dict[str, Any]) -> str:
    for key in ("reply", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return GENERIC_FAILURE_MESSAGE
