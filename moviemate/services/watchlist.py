"""Watchlist membership against the account backend."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from ..config import Settings
from ..errors import (
    AllFailed,
    FailureKind,
    ReconcileFailure,
    ReconcileKind,
    RequestFailure,
)
from ..models import EntityRef, MembershipStatus, WatchlistEntry
from ..utils import parse_year
from .executor import BoundedRequestExecutor, CancelToken
from .fallback import FallbackResolver
from .tmdb import TMDBClient, has_identity

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]

_RECONCILE_KINDS = {
    FailureKind.TIMEOUT: ReconcileKind.TIMEOUT,
    FailureKind.NETWORK_ERROR: ReconcileKind.NETWORK_ERROR,
    FailureKind.CANCELLED: ReconcileKind.CANCELLED,
    FailureKind.REJECTED_RESPONSE: ReconcileKind.REMOTE_REJECTED,
}


class WatchlistBackend:
    """Client for the ``/api/watchlist`` contract of the account backend."""

    _PATH = "/api/watchlist"

    def __init__(self, settings: Settings, executor: BoundedRequestExecutor):
        self._settings = settings
        self._executor = executor

    @staticmethod
    def _headers(token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    async def add(
        self, movie_id: int, token: str, *, cancel: CancelToken | None = None
    ) -> str | None:
        return await self._mutate("POST", movie_id, token, cancel=cancel)

    async def remove(
        self, movie_id: int, token: str, *, cancel: CancelToken | None = None
    ) -> str | None:
        return await self._mutate("DELETE", movie_id, token, cancel=cancel)

    async def _mutate(
        self,
        method: str,
        movie_id: int,
        token: str,
        *,
        cancel: CancelToken | None,
    ) -> str | None:
        request = self._executor.build_request(
            method,
            self._PATH,
            headers=self._headers(token),
            json={"movie_id": movie_id},
        )
        response = await self._executor.execute(
            request, self._settings.backend_deadline_ms, cancel=cancel
        )
        try:
            payload = response.json()
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        error = payload.get("error")
        if error or payload.get("success") is False:
            raise RequestFailure(
                FailureKind.REJECTED_RESPONSE,
                status=response.status_code,
                detail=str(error or payload.get("message") or "request refused"),
            )
        message = payload.get("message")
        return str(message) if message else None

    async def list_ids(
        self, token: str, *, cancel: CancelToken | None = None
    ) -> list[int]:
        request = self._executor.build_request(
            "GET", self._PATH, headers=self._headers(token)
        )
        payload = await self._executor.get_json(
            request, self._settings.backend_deadline_ms, cancel=cancel
        )
        items = payload.get("items") or []
        if not isinstance(items, list):
            raise RequestFailure(
                FailureKind.REJECTED_RESPONSE, detail="items is not a list"
            )
        ids: list[int] = []
        for item in items:
            try:
                ids.append(int(item))
            except (TypeError, ValueError):
                logger.debug("Ignoring malformed watchlist id %r", item)
        return ids


class MembershipReconciler:
    """Optimistic watchlist membership with confirmation and rollback.

    Statuses are keyed by provider id because the backend stores ids without a
    kind; a movie and a show sharing an id share one membership entry. At most
    one mutation per id is in flight: a toggle that finds the entry ``pending``
    is refused before anything touches the network.
    """

    def __init__(self, backend: WatchlistBackend, token_provider: TokenProvider):
        self._backend = backend
        self._token_provider = token_provider
        self._statuses: dict[int, MembershipStatus] = {}

    def read(self, ref: EntityRef) -> MembershipStatus:
        return self._statuses.get(ref.id, MembershipStatus.UNKNOWN)

    def _require_token(self) -> str:
        token = self._token_provider()
        if not token:
            raise ReconcileFailure(ReconcileKind.UNAUTHENTICATED)
        return token

    async def toggle(
        self,
        ref: EntityRef,
        current_status: MembershipStatus | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> MembershipStatus:
        """Flip membership of ``ref`` and return the confirmed status.

        ``current_status`` is the status the caller displays and picks between
        create and delete. Any failure restores the status stored before the
        call, whatever the caller passed.
        """

        token = self._require_token()
        stored = self.read(ref)
        if stored is MembershipStatus.PENDING or current_status is MembershipStatus.PENDING:
            raise ReconcileFailure(ReconcileKind.ALREADY_PENDING, detail=str(ref))

        removing = (current_status or stored) is MembershipStatus.PRESENT
        self._statuses[ref.id] = MembershipStatus.PENDING
        try:
            if removing:
                message = await self._backend.remove(ref.id, token, cancel=cancel)
            else:
                message = await self._backend.add(ref.id, token, cancel=cancel)
        except RequestFailure as exc:
            self._restore(ref, stored)
            logger.warning("Watchlist update for %s rolled back: %s", ref, exc)
            raise ReconcileFailure(
                _RECONCILE_KINDS[exc.kind], detail=exc.detail
            ) from exc
        except asyncio.CancelledError:
            self._restore(ref, stored)
            raise

        confirmed = MembershipStatus.ABSENT if removing else MembershipStatus.PRESENT
        self._statuses[ref.id] = confirmed
        logger.info("Watchlist %s -> %s (%s)", ref, confirmed.value, message or "ok")
        return confirmed

    def _restore(self, ref: EntityRef, status: MembershipStatus) -> None:
        if status is MembershipStatus.UNKNOWN:
            self._statuses.pop(ref.id, None)
        else:
            self._statuses[ref.id] = status

    async def refresh(self, *, cancel: CancelToken | None = None) -> set[int]:
        """Load authoritative membership; pending entries are left alone."""

        token = self._require_token()
        try:
            ids = set(await self._backend.list_ids(token, cancel=cancel))
        except RequestFailure as exc:
            raise ReconcileFailure(
                _RECONCILE_KINDS[exc.kind], detail=exc.detail
            ) from exc

        for key, status in list(self._statuses.items()):
            if status is MembershipStatus.PENDING:
                continue
            self._statuses[key] = (
                MembershipStatus.PRESENT if key in ids else MembershipStatus.ABSENT
            )
        for key in ids:
            if self._statuses.get(key) is not MembershipStatus.PENDING:
                self._statuses[key] = MembershipStatus.PRESENT
        return ids


class WatchlistResolver:
    """Turn the backend's bare ids into displayable entries."""

    def __init__(self, backend: WatchlistBackend, tmdb: TMDBClient):
        self._backend = backend
        self._tmdb = tmdb
        self._resolver: FallbackResolver[tuple[EntityRef, dict[str, Any]]] = (
            FallbackResolver(lambda result: has_identity(result[1]), label="watchlist")
        )

    async def list_entries(
        self, token: str, *, cancel: CancelToken | None = None
    ) -> list[WatchlistEntry]:
        ids = await self._backend.list_ids(token, cancel=cancel)
        results = await asyncio.gather(
            *(self._resolve(movie_id, cancel=cancel) for movie_id in ids),
            return_exceptions=True,
        )
        entries: list[WatchlistEntry] = []
        for result in results:
            if isinstance(result, BaseException):
                raise result
            if result is not None:
                entries.append(result)
        return entries

    async def _resolve(
        self, movie_id: int, *, cancel: CancelToken | None
    ) -> WatchlistEntry | None:
        # Ids carry no kind, so try movie first and then show.
        strategies = [
            self._details_strategy(EntityRef(id=movie_id, kind=kind), cancel)
            for kind in ("movie", "show")
        ]
        try:
            ref, details = await self._resolver.resolve(strategies)
        except AllFailed as exc:
            logger.warning("Could not resolve watchlist id %s: %s", movie_id, exc)
            return None
        return WatchlistEntry(
            ref=ref,
            title=str(details.get("title") or details.get("name") or "Untitled"),
            year=parse_year(details.get("release_date"))
            or parse_year(details.get("first_air_date")),
            poster=self._tmdb.image_url(details.get("poster_path")),
            overview=details.get("overview") or None,
        )

    def _details_strategy(self, ref: EntityRef, cancel: CancelToken | None):
        async def fetch() -> tuple[EntityRef, dict[str, Any]]:
            details = await self._tmdb.fetch_details(
                ref, append_videos=False, cancel=cancel
            )
            return ref, details

        return fetch
