"""Tests for the media aggregator and its provider client."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from moviemate.config import Settings
from moviemate.errors import AggregationFailure, AggregationKind, FailureKind, RequestFailure
from moviemate.models import EntityRef, VideoCandidate
from moviemate.services.aggregator import MediaAggregator, select_trailer
from moviemate.services.executor import BoundedRequestExecutor, CancelToken
from moviemate.services.tmdb import TMDBClient

IMAGE_BASE = "https://image.tmdb.org/t/p/original"

Route = tuple[int, dict[str, Any]] | Callable[[httpx.Request], httpx.Response]


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base = {"TMDB_API_KEY": "test-key"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


def build_client(routes: dict[str, Route], requests: list[httpx.Request]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"status_message": "not found"})
        if callable(route):
            return route(request)
        status, payload = route
        return httpx.Response(status, json=payload)

    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://tmdb.test"
    )


def build_aggregator(http_client: httpx.AsyncClient, **overrides: Any) -> MediaAggregator:
    settings = build_settings(**overrides)
    tmdb = TMDBClient(settings, BoundedRequestExecutor(http_client))
    return MediaAggregator(tmdb, extra_backdrop_limit=settings.extra_backdrop_limit)


def paths(requests: list[httpx.Request]) -> list[str]:
    return [request.url.path for request in requests]


FIGHT_CLUB = {
    "id": 550,
    "title": "Fight Club",
    "release_date": "1999-10-15",
    "vote_average": 8.4,
    "overview": "An insomniac office worker...",
    "runtime": 139,
    "genres": [{"id": 18, "name": "Drama"}, {"id": 53, "name": "Thriller"}],
    "backdrop_path": "/backdrop.jpg",
    "poster_path": "/poster.jpg",
    "videos": {"results": []},
}


def test_trailer_selection_prefers_official_trailer() -> None:
    videos = [
        VideoCandidate(external_key="a", host_site="YouTube", category="Teaser", is_official=True),
        VideoCandidate(external_key="b", host_site="YouTube", category="Trailer", is_official=False),
        VideoCandidate(external_key="c", host_site="YouTube", category="Trailer", is_official=True),
    ]

    assert select_trailer(videos) is videos[2]


def test_trailer_selection_falls_back_through_tiers() -> None:
    vimeo_trailer = VideoCandidate(external_key="v", host_site="Vimeo", category="Trailer")
    youtube_clip = VideoCandidate(external_key="y", host_site="YouTube", category="Clip")
    featurette = VideoCandidate(external_key="f", host_site="Vimeo", category="Featurette")

    assert select_trailer([youtube_clip, vimeo_trailer]) is vimeo_trailer
    assert select_trailer([featurette, youtube_clip]) is youtube_clip
    assert select_trailer([featurette]) is None
    assert select_trailer([]) is None


@pytest.mark.anyio("asyncio")
async def test_fetch_entity_with_bare_listings() -> None:
    """Valid details with empty listings give a record with primary images only."""

    requests: list[httpx.Request] = []
    routes: dict[str, Route] = {
        "/movie/550": (200, FIGHT_CLUB),
        "/movie/550/videos": (200, {"id": 550, "results": []}),
        "/movie/550/images": (
            200,
            {"id": 550, "backdrops": [], "posters": [{"file_path": "/poster.jpg"}]},
        ),
    }
    async with build_client(routes, requests) as http_client:
        record = await build_aggregator(http_client).fetch_entity(
            EntityRef(id=550, kind="movie")
        )

    assert record.title == "Fight Club"
    assert record.year == 1999
    assert record.rating == 8.4
    assert record.runtime == 139
    assert record.genres == ("Drama", "Thriller")
    assert record.trailer is None
    assert record.images == (f"{IMAGE_BASE}/backdrop.jpg", f"{IMAGE_BASE}/poster.jpg")
    assert record.ref == EntityRef(id=550, kind="movie")


@pytest.mark.anyio("asyncio")
async def test_fetch_entity_appends_limited_deduplicated_backdrops() -> None:
    requests: list[httpx.Request] = []
    backdrops = ["/backdrop.jpg", "/b1.jpg", "/b2.jpg", "/b1.jpg", "/b3.jpg", "/b4.jpg", "/b5.jpg"]
    routes: dict[str, Route] = {
        "/movie/550": (200, FIGHT_CLUB),
        "/movie/550/images": (
            200,
            {"backdrops": [{"file_path": path} for path in backdrops]},
        ),
    }
    async with build_client(routes, requests) as http_client:
        record = await build_aggregator(http_client).fetch_entity(
            EntityRef(id=550, kind="movie")
        )

    assert record.images == (
        f"{IMAGE_BASE}/backdrop.jpg",
        f"{IMAGE_BASE}/poster.jpg",
        f"{IMAGE_BASE}/b1.jpg",
        f"{IMAGE_BASE}/b2.jpg",
        f"{IMAGE_BASE}/b3.jpg",
    )


@pytest.mark.anyio("asyncio")
async def test_fetch_entity_uses_embedded_videos_before_listing() -> None:
    requests: list[httpx.Request] = []
    details = {
        **FIGHT_CLUB,
        "videos": {
            "results": [
                {"key": "clip", "site": "YouTube", "type": "Clip", "official": True},
                {"key": "trailer", "site": "YouTube", "type": "Trailer", "official": True},
            ]
        },
    }
    routes: dict[str, Route] = {
        "/movie/550": (200, details),
        "/movie/550/images": (200, {"backdrops": []}),
    }
    async with build_client(routes, requests) as http_client:
        record = await build_aggregator(http_client).fetch_entity(
            EntityRef(id=550, kind="movie")
        )

    assert record.trailer is not None
    assert record.trailer.external_key == "trailer"
    assert record.trailer.embed_url == "https://www.youtube.com/embed/trailer"
    assert "/movie/550/videos" not in paths(requests)


@pytest.mark.anyio("asyncio")
async def test_fetch_entity_falls_back_to_video_listing() -> None:
    requests: list[httpx.Request] = []
    routes: dict[str, Route] = {
        "/movie/550": (200, FIGHT_CLUB),
        "/movie/550/videos": (
            200,
            {"results": [{"key": "teaser", "site": "YouTube", "type": "Teaser"}]},
        ),
        "/movie/550/images": (200, {"backdrops": []}),
    }
    async with build_client(routes, requests) as http_client:
        record = await build_aggregator(http_client).fetch_entity(
            EntityRef(id=550, kind="movie")
        )

    assert record.trailer is not None
    assert record.trailer.external_key == "teaser"


@pytest.mark.anyio("asyncio")
async def test_fetch_entity_retries_show_as_movie_once() -> None:
    requests: list[httpx.Request] = []
    routes: dict[str, Route] = {
        "/tv/550": (200, {"success": False}),
        "/movie/550": (200, FIGHT_CLUB),
        "/movie/550/images": (200, {"backdrops": []}),
    }
    async with build_client(routes, requests) as http_client:
        record = await build_aggregator(http_client).fetch_entity(
            EntityRef(id=550, kind="show")
        )

    assert record.ref == EntityRef(id=550, kind="movie")
    assert record.title == "Fight Club"
    assert paths(requests).count("/tv/550") == 1
    assert paths(requests).count("/movie/550") == 1
    assert not any(path.startswith("/tv/") for path in paths(requests)[1:])


@pytest.mark.anyio("asyncio")
async def test_fetch_entity_reports_details_unavailable() -> None:
    requests: list[httpx.Request] = []
    routes: dict[str, Route] = {"/tv/9": (200, {"success": False})}
    async with build_client(routes, requests) as http_client:
        with pytest.raises(AggregationFailure) as excinfo:
            await build_aggregator(http_client).fetch_entity(EntityRef(id=9, kind="show"))

    assert excinfo.value.kind is AggregationKind.DETAILS_UNAVAILABLE
    assert excinfo.value.provider_unavailable is False
    assert paths(requests) == ["/tv/9", "/movie/9"]


@pytest.mark.anyio("asyncio")
async def test_fetch_entity_does_not_retry_movies_as_shows() -> None:
    requests: list[httpx.Request] = []
    async with build_client({}, requests) as http_client:
        with pytest.raises(AggregationFailure):
            await build_aggregator(http_client).fetch_entity(EntityRef(id=9, kind="movie"))

    assert paths(requests) == ["/movie/9"]


@pytest.mark.anyio("asyncio")
async def test_fetch_entity_flags_unreachable_provider() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="https://tmdb.test"
    ) as http_client:
        with pytest.raises(AggregationFailure) as excinfo:
            await build_aggregator(http_client).fetch_entity(EntityRef(id=1, kind="movie"))

    assert excinfo.value.provider_unavailable is True


@pytest.mark.anyio("asyncio")
async def test_fetch_entity_degrades_when_enrichment_fails() -> None:
    requests: list[httpx.Request] = []
    routes: dict[str, Route] = {
        "/movie/550": (200, FIGHT_CLUB),
        "/movie/550/videos": (500, {"status_message": "internal error"}),
        "/movie/550/images": (503, {"status_message": "unavailable"}),
    }
    async with build_client(routes, requests) as http_client:
        record = await build_aggregator(http_client).fetch_entity(
            EntityRef(id=550, kind="movie")
        )

    assert record.title == "Fight Club"
    assert record.trailer is None
    assert record.images == (f"{IMAGE_BASE}/backdrop.jpg", f"{IMAGE_BASE}/poster.jpg")


@pytest.mark.anyio("asyncio")
async def test_fetch_entity_is_idempotent() -> None:
    requests: list[httpx.Request] = []
    routes: dict[str, Route] = {
        "/movie/550": (200, FIGHT_CLUB),
        "/movie/550/images": (200, {"backdrops": [{"file_path": "/b1.jpg"}]}),
    }
    async with build_client(routes, requests) as http_client:
        aggregator = build_aggregator(http_client)
        first = await aggregator.fetch_entity(EntityRef(id=550, kind="movie"))
        second = await aggregator.fetch_entity(EntityRef(id=550, kind="movie"))

    assert first == second


@pytest.mark.anyio("asyncio")
async def test_fetch_entity_propagates_cancellation() -> None:
    requests: list[httpx.Request] = []
    token = CancelToken()
    token.cancel()
    async with build_client({"/movie/550": (200, FIGHT_CLUB)}, requests) as http_client:
        with pytest.raises(RequestFailure) as excinfo:
            await build_aggregator(http_client).fetch_entity(
                EntityRef(id=550, kind="movie"), cancel=token
            )

    assert excinfo.value.kind is FailureKind.CANCELLED
    assert requests == []


@pytest.mark.anyio("asyncio")
async def test_provider_credentials_use_bearer_token_when_available() -> None:
    requests: list[httpx.Request] = []
    routes: dict[str, Route] = {"/movie/550": (200, FIGHT_CLUB)}
    async with build_client(routes, requests) as http_client:
        aggregator = build_aggregator(
            http_client, TMDB_API_KEY=None, TMDB_READ_ACCESS_TOKEN="v4-token"
        )
        await aggregator.fetch_entity(EntityRef(id=550, kind="movie"))

    details_request = requests[0]
    assert details_request.headers["Authorization"] == "Bearer v4-token"
    assert "api_key" not in details_request.url.params
    assert details_request.url.params["append_to_response"] == "videos"


@pytest.mark.anyio("asyncio")
async def test_provider_credentials_fall_back_to_api_key() -> None:
    requests: list[httpx.Request] = []
    routes: dict[str, Route] = {"/movie/550": (200, FIGHT_CLUB)}
    async with build_client(routes, requests) as http_client:
        await build_aggregator(http_client).fetch_entity(EntityRef(id=550, kind="movie"))

    assert requests[0].url.params["api_key"] == "test-key"
    assert "Authorization" not in requests[0].headers


def test_tmdb_client_requires_credentials() -> None:
    settings = build_settings(TMDB_API_KEY=None)
    with pytest.raises(ValueError):
        TMDBClient(settings, BoundedRequestExecutor(httpx.AsyncClient()))
