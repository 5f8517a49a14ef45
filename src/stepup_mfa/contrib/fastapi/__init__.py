"""FastAPI integration for stepup-mfa."""

from .dependencies import error_response, require_step_up, status_for
from .middleware import StepUpContextMiddleware, client_ip
from .router import create_step_up_router

__all__: list[str] = [
    # Middleware
    "StepUpContextMiddleware",
    "client_ip",
    # Router
    "create_step_up_router",
    # Dependencies
    "error_response",
    "require_step_up",
    "status_for",
]
