"""Sequential fallback chains over alternative fetch strategies."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from ..errors import (
    AllFailed,
    FailureKind,
    MovieMateError,
    RequestFailure,
    UnacceptableResult,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Strategy = Callable[[], Awaitable[T]]


class FallbackResolver(Generic[T]):
    """Try strategies one after another until one yields an acceptable value.

    Strategies never overlap: strategy ``k + 1`` is only started once strategy
    ``k`` has failed, and nothing runs after the first success. A cancelled
    call ends the chain immediately instead of falling through.
    """

    def __init__(
        self,
        accept: Callable[[T], bool] | None = None,
        *,
        label: str = "fallback",
    ) -> None:
        self._accept = accept or bool
        self._label = label

    async def resolve(self, strategies: Sequence[Strategy[T]]) -> T:
        if not strategies:
            raise ValueError("At least one strategy is required")

        failures: list[MovieMateError] = []
        for index, strategy in enumerate(strategies):
            try:
                value = await strategy()
            except RequestFailure as exc:
                if exc.kind is FailureKind.CANCELLED:
                    raise
                logger.debug(
                    "%s strategy %s/%s failed: %s",
                    self._label,
                    index + 1,
                    len(strategies),
                    exc,
                )
                failures.append(exc)
                continue

            if self._accept(value):
                if failures:
                    logger.info(
                        "%s resolved by strategy %s after %s failure(s)",
                        self._label,
                        index + 1,
                        len(failures),
                    )
                return value
            failures.append(UnacceptableResult(value))

        raise AllFailed(failures, label=self._label)


async def resolve_first(
    strategies: Sequence[Strategy[T]],
    *,
    accept: Callable[[T], bool] | None = None,
    label: str = "fallback",
) -> T:
    """Shortcut for a one-off :class:`FallbackResolver` run."""

    return await FallbackResolver(accept, label=label).resolve(strategies)
