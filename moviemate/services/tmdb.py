"""Utilities for fetching entity metadata from The Movie Database (TMDB)."""

from __future__ import annotations

import logging
from typing import Any

from ..config import Settings
from ..models import EntityRef
from ..utils import build_image_url
from .executor import BoundedRequestExecutor, CancelToken

logger = logging.getLogger(__name__)


class TMDBClient:
    """Client for the per-entity details, video and image endpoints."""

    def __init__(self, settings: Settings, executor: BoundedRequestExecutor):
        if not settings.has_provider_credentials:
            raise ValueError(
                "TMDB_API_KEY or TMDB_READ_ACCESS_TOKEN is required when "
                "initialising TMDBClient"
            )
        self._settings = settings
        self._executor = executor

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        token = self._settings.tmdb_read_access_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _params(self, **extra: Any) -> dict[str, Any]:
        params = {key: value for key, value in extra.items() if value is not None}
        # A v4 token goes in the header; only fall back to the v3 key parameter.
        if not self._settings.tmdb_read_access_token and self._settings.tmdb_api_key:
            params["api_key"] = self._settings.tmdb_api_key
        return params

    async def _get(
        self, path: str, *, cancel: CancelToken | None = None, **params: Any
    ) -> dict[str, Any]:
        request = self._executor.build_request(
            "GET", path, headers=self._headers(), params=self._params(**params)
        )
        return await self._executor.get_json(
            request, self._settings.provider_deadline_ms, cancel=cancel
        )

    async def fetch_details(
        self,
        ref: EntityRef,
        *,
        append_videos: bool = True,
        cancel: CancelToken | None = None,
    ) -> dict[str, Any]:
        """Fetch the primary details payload for ``ref``."""

        endpoint = f"/{ref.provider_segment}/{ref.id}"
        return await self._get(
            endpoint,
            cancel=cancel,
            append_to_response="videos" if append_videos else None,
        )

    async def fetch_videos(
        self, ref: EntityRef, *, cancel: CancelToken | None = None
    ) -> list[dict[str, Any]]:
        """Fetch the standalone video listing for ``ref``."""

        payload = await self._get(
            f"/{ref.provider_segment}/{ref.id}/videos", cancel=cancel
        )
        return extract_results(payload)

    async def fetch_images(
        self, ref: EntityRef, *, cancel: CancelToken | None = None
    ) -> dict[str, Any]:
        """Fetch the image listing (backdrops, posters) for ``ref``."""

        return await self._get(
            f"/{ref.provider_segment}/{ref.id}/images", cancel=cancel
        )

    def image_url(self, path: str | None) -> str | None:
        return build_image_url(path, self._settings.tmdb_image_base_url)


def extract_results(payload: Any) -> list[dict[str, Any]]:
    """Return the ``results`` list of a listing payload, dropping junk entries."""

    if not isinstance(payload, dict):
        return []
    results = payload.get("results")
    if not isinstance(results, list):
        return []
    return [entry for entry in results if isinstance(entry, dict)]


def has_identity(payload: Any) -> bool:
    """A details payload is usable only if it carries the entity id."""

    return isinstance(payload, dict) and payload.get("id") not in (None, "", 0)
