"""Compose provider calls into a single presentable media record."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from ..errors import (
    AggregationFailure,
    AggregationKind,
    AllFailed,
    FailureKind,
    RequestFailure,
)
from ..models import EntityRef, MediaRecord, VideoCandidate
from ..utils import dedupe_preserving_order
from .executor import CancelToken
from .fallback import FallbackResolver, Strategy
from .tmdb import TMDBClient, extract_results, has_identity

logger = logging.getLogger(__name__)

DEFAULT_EXTRA_BACKDROPS = 5


def select_trailer(videos: Sequence[VideoCandidate]) -> VideoCandidate | None:
    """Pick the trailer to present for an entity.

    Priority: an official trailer on YouTube, then any trailer, then any
    YouTube video. The first match in provider order wins within each tier.
    """

    tiers = (
        lambda video: video.is_trailer and video.on_recognized_site and video.is_official,
        lambda video: video.is_trailer,
        lambda video: video.on_recognized_site,
    )
    for matches in tiers:
        for video in videos:
            if matches(video):
                return video
    return None


def parse_videos(entries: Sequence[dict[str, Any]]) -> list[VideoCandidate]:
    videos: list[VideoCandidate] = []
    for entry in entries:
        video = VideoCandidate.from_provider(entry)
        if video is not None:
            videos.append(video)
    return videos


class MediaAggregator:
    """Build :class:`MediaRecord` objects for entity references."""

    def __init__(
        self,
        tmdb: TMDBClient,
        *,
        extra_backdrop_limit: int = DEFAULT_EXTRA_BACKDROPS,
    ) -> None:
        self._tmdb = tmdb
        self._extra_backdrop_limit = extra_backdrop_limit
        self._details_resolver: FallbackResolver[tuple[EntityRef, dict[str, Any]]] = (
            FallbackResolver(lambda result: has_identity(result[1]), label="details")
        )
        self._video_resolver: FallbackResolver[list[dict[str, Any]]] = FallbackResolver(
            bool, label="videos"
        )

    async def fetch_entity(
        self, ref: EntityRef, *, cancel: CancelToken | None = None
    ) -> MediaRecord:
        """Return the fully populated record for ``ref``.

        Raises :class:`AggregationFailure` when no details can be resolved and
        :class:`RequestFailure` tagged ``CANCELLED`` when ``cancel`` fires.
        """

        resolved_ref, details = await self._resolve_details(ref, cancel=cancel)

        # Both enrichments absorb their own failures; anything that escapes
        # (cancellation) is re-raised once both have settled.
        results = await asyncio.gather(
            self._resolve_trailer(resolved_ref, details, cancel=cancel),
            self._resolve_extra_images(resolved_ref, cancel=cancel),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        trailer, extra_images = results

        images = dedupe_preserving_order(
            [
                self._tmdb.image_url(details.get("backdrop_path")),
                self._tmdb.image_url(details.get("poster_path")),
                *extra_images,
            ]
        )
        return MediaRecord.from_details(
            resolved_ref, details, images=images, trailer=trailer
        )

    async def _resolve_details(
        self, ref: EntityRef, *, cancel: CancelToken | None
    ) -> tuple[EntityRef, dict[str, Any]]:
        def details_as(candidate: EntityRef) -> Strategy[tuple[EntityRef, dict[str, Any]]]:
            async def fetch() -> tuple[EntityRef, dict[str, Any]]:
                payload = await self._tmdb.fetch_details(candidate, cancel=cancel)
                return candidate, payload

            return fetch

        strategies = [details_as(ref)]
        # The provider occasionally files movies under tv; retry once as a movie.
        if ref.kind == "show":
            strategies.append(details_as(ref.as_kind("movie")))

        try:
            resolved_ref, details = await self._details_resolver.resolve(strategies)
        except AllFailed as exc:
            logger.warning("Details unavailable for %s: %s", ref, exc)
            raise AggregationFailure(
                AggregationKind.DETAILS_UNAVAILABLE, failures=exc
            ) from exc

        if resolved_ref != ref:
            logger.info("Resolved %s as %s", ref, resolved_ref)
        return resolved_ref, details

    async def _resolve_trailer(
        self,
        ref: EntityRef,
        details: dict[str, Any],
        *,
        cancel: CancelToken | None,
    ) -> VideoCandidate | None:
        async def embedded() -> list[dict[str, Any]]:
            return extract_results(details.get("videos"))

        async def listing() -> list[dict[str, Any]]:
            return await self._tmdb.fetch_videos(ref, cancel=cancel)

        try:
            entries = await self._video_resolver.resolve([embedded, listing])
        except AllFailed as exc:
            if any(isinstance(failure, RequestFailure) for failure in exc.failures):
                logger.warning("Video listing unavailable for %s: %s", ref, exc)
            else:
                logger.debug("No videos published for %s", ref)
            return None
        return select_trailer(parse_videos(entries))

    async def _resolve_extra_images(
        self, ref: EntityRef, *, cancel: CancelToken | None
    ) -> list[str]:
        try:
            payload = await self._tmdb.fetch_images(ref, cancel=cancel)
        except RequestFailure as exc:
            if exc.kind is FailureKind.CANCELLED:
                raise
            logger.warning("Image listing unavailable for %s: %s", ref, exc)
            return []

        backdrops = payload.get("backdrops")
        if not isinstance(backdrops, list):
            return []
        urls: list[str] = []
        for backdrop in backdrops[: self._extra_backdrop_limit]:
            if not isinstance(backdrop, dict):
                continue
            url = self._tmdb.image_url(backdrop.get("file_path"))
            if url:
                urls.append(url)
        return urls
