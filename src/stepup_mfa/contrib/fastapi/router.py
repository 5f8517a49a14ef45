"""FastAPI router exposing the administrative step-up operations.

Routes (relative to ``prefix``):

    POST /enroll             begin enrollment
    POST /enroll/confirm     confirm with the first TOTP code
    POST /verify             verify a TOTP or recovery code
    POST /disable            disable the factor with a valid code
    POST /recovery-codes     regenerate recovery codes
    GET  /status             factor status
    GET  /step-up/{kind}     whether an action would prompt (UI hint)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ...codes import CodeType
from ...exceptions import StepUpError
from .dependencies import error_response

if TYPE_CHECKING:
    from ...service import StepUpService


class CodeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    type: CodeType = CodeType.TOTP


class ConfirmRequest(BaseModel):
    code: str = Field(min_length=1, max_length=16)


def create_step_up_router(
    service: StepUpService, *, prefix: str = "/mfa", tags: list[str] | None = None
) -> APIRouter:
    """Build an APIRouter bound to ``service``.

    Expects the principal to be set in context by the authentication
    middleware; without one every route answers 403.

    Example:
        ```python
        app.include_router(create_step_up_router(build_step_up_service()))
        ```
    """
    router = APIRouter(prefix=prefix, tags=tags or ["mfa"])

    @router.post("/enroll")
    async def begin_enrollment() -> Any:
        try:
            setup = await service.begin_enrollment()
        except StepUpError as e:
            return error_response(e, service.now())
        return {
            "secret": setup.secret,
            "provisioning_uri": setup.provisioning_uri,
            "manual_key": setup.manual_key,
        }

    @router.post("/enroll/confirm")
    async def confirm_enrollment(body: ConfirmRequest) -> Any:
        try:
            codes = await service.confirm_enrollment(body.code)
        except StepUpError as e:
            return error_response(e, service.now())
        return {"recovery_codes": codes}

    @router.post("/verify")
    async def verify(body: CodeRequest) -> Any:
        try:
            result = await service.verify(body.code, body.type)
        except StepUpError as e:
            return error_response(e, service.now())
        if result.failure is not None:
            return error_response(result.failure, service.now())
        return {"ok": True, "remaining_attempts": result.remaining_attempts}

    @router.post("/disable")
    async def disable(body: CodeRequest) -> Any:
        try:
            await service.disable(body.code, body.type)
        except StepUpError as e:
            return error_response(e, service.now())
        return {"ok": True}

    @router.post("/recovery-codes")
    async def regenerate_recovery_codes() -> Any:
        try:
            codes = await service.regenerate_recovery_codes()
        except StepUpError as e:
            return error_response(e, service.now())
        return {"recovery_codes": codes}

    @router.get("/status")
    async def status() -> Any:
        try:
            return await service.status()
        except StepUpError as e:
            return error_response(e, service.now())

    @router.get("/step-up/{action_kind}")
    async def requires_step_up(action_kind: str) -> Any:
        try:
            required = await service.requires_step_up(action_kind)
        except StepUpError as e:
            return error_response(e, service.now())
        return {"action_kind": action_kind, "required": required}

    return router


__all__: list[str] = ["CodeRequest", "ConfirmRequest", "create_step_up_router"]
