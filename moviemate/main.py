"""Entry point for the FastAPI surface over the aggregation core."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from .config import settings
from .errors import AggregationFailure, RequestFailure
from .models import EntityRef
from .services.aggregator import MediaAggregator
from .services.chat import ChatGateway
from .services.executor import BoundedRequestExecutor
from .services.tmdb import TMDBClient
from .services.watchlist import WatchlistBackend, WatchlistResolver
from .utils import bearer_token

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI

KIND_ALIASES = {"movie": "movie", "show": "show", "tv": "show"}


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(base_url=str(settings.tmdb_api_url))
    )
    backend_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(base_url=str(settings.backend_api_url))
    )
    backend_executor = BoundedRequestExecutor(backend_http_client)
    watchlist_backend = WatchlistBackend(settings, backend_executor)

    if settings.has_provider_credentials:
        tmdb = TMDBClient(settings, BoundedRequestExecutor(tmdb_http_client))
        fastapi_app.state.media_aggregator = MediaAggregator(
            tmdb, extra_backdrop_limit=settings.extra_backdrop_limit
        )
        fastapi_app.state.watchlist_resolver = WatchlistResolver(
            watchlist_backend, tmdb
        )
    else:
        logger.warning("TMDB credentials missing; title endpoints are disabled")
    fastapi_app.state.chat_gateway = ChatGateway(settings, backend_executor)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Aggregated movie and show views backed by TMDB",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def _service(fastapi_app: FastAPI, name: str) -> Any:
    service = getattr(fastapi_app.state, name, None)
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name} not initialised")
    return service


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/titles/{kind}/{entity_id}")
    async def title_endpoint(kind: str, entity_id: int) -> dict[str, Any]:
        resolved_kind = KIND_ALIASES.get(kind.lower())
        if resolved_kind is None:
            raise HTTPException(status_code=400, detail="Unsupported content type")
        try:
            ref = EntityRef(id=entity_id, kind=resolved_kind)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.errors()) from exc

        aggregator: MediaAggregator = _service(fastapi_app, "media_aggregator")
        try:
            record = await aggregator.fetch_entity(ref)
        except AggregationFailure as exc:
            if exc.provider_unavailable:
                raise HTTPException(
                    status_code=502, detail="Metadata provider unreachable"
                ) from exc
            raise HTTPException(status_code=404, detail="Title not found") from exc
        return record.model_dump(mode="json")

    @fastapi_app.get("/api/watchlist")
    async def watchlist_endpoint(
        authorization: str | None = Header(default=None),
    ) -> dict[str, Any]:
        token = bearer_token(authorization)
        if not token:
            raise HTTPException(status_code=401, detail="User not authenticated")
        resolver: WatchlistResolver = _service(fastapi_app, "watchlist_resolver")
        try:
            entries = await resolver.list_entries(token)
        except RequestFailure as exc:
            status = 502 if exc.is_transport_failure else (exc.status or 502)
            raise HTTPException(status_code=status, detail=str(exc)) from exc
        return {
            "items": [entry.model_dump(mode="json") for entry in entries],
            "count": len(entries),
        }

    @fastapi_app.get("/api/chat/status")
    async def chat_status_endpoint() -> dict[str, str]:
        gateway: ChatGateway = _service(fastapi_app, "chat_gateway")
        status = await gateway.probe()
        return {"status": status.value}

    @fastapi_app.post("/api/chat")
    async def chat_endpoint(request: Request) -> dict[str, str]:
        try:
            payload = ChatRequest.model_validate(await request.json())
        except (ValueError, ValidationError) as exc:
            raise HTTPException(status_code=400, detail="message is required") from exc
        gateway: ChatGateway = _service(fastapi_app, "chat_gateway")
        try:
            reply = await gateway.send(payload.message)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="message is required") from exc
        return {"reply": reply}


app = create_app()
