"""Failure taxonomy shared by the aggregation core."""

from __future__ import annotations

from enum import Enum
from typing import Any, Sequence


class MovieMateError(Exception):
    """Base class for every failure raised by the core."""


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    NETWORK_ERROR = "network_error"
    REJECTED_RESPONSE = "rejected_response"


class RequestFailure(MovieMateError):
    """A bounded call did not produce an acceptable response."""

    def __init__(
        self,
        kind: FailureKind,
        *,
        status: int | None = None,
        cause: BaseException | None = None,
        detail: str | None = None,
    ) -> None:
        self.kind = kind
        self.status = status
        self.cause = cause
        self.detail = detail
        message = kind.value
        if status is not None:
            message = f"{message} (HTTP {status})"
        if detail:
            message = f"{message}: {detail}"
        elif cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)

    @property
    def is_transport_failure(self) -> bool:
        """True when the service could not be reached at all."""

        return self.kind in (FailureKind.TIMEOUT, FailureKind.NETWORK_ERROR)


class UnacceptableResult(MovieMateError):
    """A strategy completed but its result failed the acceptance check."""

    def __init__(self, value: Any) -> None:
        self.value = value
        super().__init__(f"result rejected: {type(value).__name__}")


class AllFailed(MovieMateError):
    """Every fallback strategy failed; failures are kept in strategy order."""

    def __init__(self, failures: Sequence[MovieMateError], label: str = "") -> None:
        self.failures = tuple(failures)
        self.label = label
        summary = ", ".join(str(failure) for failure in self.failures)
        prefix = f"{label}: " if label else ""
        super().__init__(f"{prefix}all {len(self.failures)} strategies failed [{summary}]")

    @property
    def provider_unavailable(self) -> bool:
        return bool(self.failures) and all(
            isinstance(failure, RequestFailure) and failure.is_transport_failure
            for failure in self.failures
        )


class AggregationKind(str, Enum):
    DETAILS_UNAVAILABLE = "details_unavailable"


class AggregationFailure(MovieMateError):
    def __init__(self, kind: AggregationKind, *, failures: AllFailed | None = None) -> None:
        self.kind = kind
        self.failures = failures
        super().__init__(kind.value)

    @property
    def provider_unavailable(self) -> bool:
        return self.failures is not None and self.failures.provider_unavailable


class ReconcileKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    ALREADY_PENDING = "already_pending"
    REMOTE_REJECTED = "remote_rejected"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class ReconcileFailure(MovieMateError):
    def __init__(self, kind: ReconcileKind, *, detail: str | None = None) -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)

    @property
    def is_transient(self) -> bool:
        """True when retrying later may succeed."""

        return self.kind in (
            ReconcileKind.NETWORK_ERROR,
            ReconcileKind.TIMEOUT,
            ReconcileKind.CANCELLED,
        )
