"""FastAPI dependencies and error mapping for step-up authentication."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import HTTPException
from starlette.responses import JSONResponse

from ...clock import utc_now
from ...exceptions import (
    ChallengeError,
    EnrollmentRequiredError,
    PolicyDeniedError,
    RateLimitedError,
    StepUpError,
    StepUpRequiredError,
    TransientStoreError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

    from ...service import StepUpService

_STATUS_BY_ERROR: tuple[tuple[type[StepUpError], int], ...] = (
    (RateLimitedError, 429),
    (StepUpRequiredError, 401),
    (EnrollmentRequiredError, 403),
    (PolicyDeniedError, 403),
    (TransientStoreError, 503),
    (ChallengeError, 409),
)


def status_for(error: StepUpError) -> int:
    """HTTP status for a step-up error (400 when not listed)."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 400


def error_response(error: StepUpError, now: datetime | None = None) -> JSONResponse:
    """JSON error payload, with Retry-After when rate limited."""
    headers: dict[str, str] = {}
    if isinstance(error, RateLimitedError):
        retry_after = error.retry_after_seconds(now or utc_now())
        headers["Retry-After"] = str(retry_after)
    return JSONResponse(
        status_code=status_for(error), content=error.to_dict(), headers=headers
    )


def require_step_up(
    service: StepUpService, action_kind: str
) -> Callable[[], Awaitable[None]]:
    """Create a dependency that rejects requests lacking a fresh step-up.

    Example:
        ```python
        @router.post("/refunds")
        async def refund(_: None = Depends(require_step_up(service, "refund"))):
            ...
        ```
    """

    async def dependency() -> None:
        try:
            required = await service.requires_step_up(action_kind)
        except StepUpError as e:
            raise HTTPException(status_code=status_for(e), detail=e.to_dict()) from e
        if required:
            error = StepUpRequiredError()
            detail: dict[str, Any] = error.to_dict()
            detail["action_kind"] = action_kind
            raise HTTPException(status_code=status_for(error), detail=detail)

    return dependency


__all__: list[str] = ["status_for", "error_response", "require_step_up"]
