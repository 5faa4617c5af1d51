"""State backing one title detail view."""

from __future__ import annotations

import logging
from typing import Callable

from ..errors import AggregationFailure, FailureKind, RequestFailure
from ..models import EntityRef, MediaRecord
from .aggregator import MediaAggregator
from .executor import CancelToken
from .rotation import BackgroundRotationController

logger = logging.getLogger(__name__)

RotationFactory = Callable[[], BackgroundRotationController]


class TitleView:
    """Own the current record and its rotation controller for one view.

    Each ``load`` supersedes the previous one: the earlier aggregation is
    cancelled and its result, should it still arrive, is dropped. Closing the
    view cancels whatever is outstanding and disposes the rotation timer.
    """

    def __init__(
        self,
        aggregator: MediaAggregator,
        rotation_factory: RotationFactory = BackgroundRotationController,
    ) -> None:
        self._aggregator = aggregator
        self._rotation_factory = rotation_factory
        self._record: MediaRecord | None = None
        self._rotation: BackgroundRotationController | None = None
        self._token: CancelToken | None = None
        self._generation = 0
        self._closed = False

    @property
    def record(self) -> MediaRecord | None:
        return self._record

    @property
    def rotation(self) -> BackgroundRotationController | None:
        return self._rotation

    @property
    def closed(self) -> bool:
        return self._closed

    async def load(self, ref: EntityRef) -> MediaRecord | None:
        """Aggregate ``ref`` and commit it unless superseded meanwhile.

        Returns ``None`` when the load was superseded or the view closed.
        """

        if self._closed:
            raise RuntimeError("Cannot load into a closed view")

        self._cancel_outstanding()
        self._generation += 1
        generation = self._generation
        token = CancelToken()
        self._token = token

        try:
            record = await self._aggregator.fetch_entity(ref, cancel=token)
        except RequestFailure as exc:
            if exc.kind is FailureKind.CANCELLED:
                logger.debug("Load of %s superseded", ref)
                return None
            raise
        except AggregationFailure:
            if generation != self._generation or self._closed:
                return None
            raise
        finally:
            if self._token is token:
                self._token = None

        if generation != self._generation or self._closed:
            logger.debug("Discarding stale record for %s", ref)
            return None

        self._commit(record)
        return record

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._cancel_outstanding()
        if self._rotation is not None:
            self._rotation.dispose()

    def _commit(self, record: MediaRecord) -> None:
        if self._rotation is not None:
            self._rotation.dispose()
        rotation = self._rotation_factory()
        rotation.load(record)
        self._rotation = rotation
        self._record = record

    def _cancel_outstanding(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None
