"""
Secure middleware for HTTP requests.
Enforces the host allow-list and HTTPS redirect, then applies
security headers to every response that is let through.
"""

from typing import Optional

import structlog
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.types import ASGIApp

from secure_policy.handlers import as_bad_host_handler
from secure_policy.options import Option, STRICT_DEFAULTS, build_options
from secure_policy.policy import (
    DecisionAction,
    PolicyConfig,
    PolicyEvaluator,
    RequestFacts,
)

logger = structlog.get_logger(__name__)


class SecureMiddleware(BaseHTTPMiddleware):
    """
    Applies a PolicyConfig to every request.
    Redirected and rejected requests never reach downstream handlers.
    Policy headers never replace one a route has set itself.
    """

    def __init__(
        self,
        app: ASGIApp,
        config: Optional[PolicyConfig] = None,
        bad_host_handler=None,
    ) -> None:
        super().__init__(app)
        self.config = config if config is not None else PolicyConfig()
        self.evaluator = PolicyEvaluator(self.config)
        self.bad_host_handler = as_bad_host_handler(bad_host_handler)
        logger.debug(
            "Secure middleware configured",
            development=self.config.is_development,
            ssl_redirect=self.config.ssl_redirect,
            allowed_hosts=list(self.config.allowed_hosts),
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        decision = self.evaluator.evaluate(RequestFacts.from_request(request))

        if decision.action is DecisionAction.REJECT:
            logger.warning(
                "Host rejected",
                host=request.headers.get("host", ""),
                path=request.url.path,
            )
            return await self.bad_host_handler.handle(request)

        if decision.action is DecisionAction.REDIRECT:
            logger.info(
                "Redirecting insecure request",
                location=decision.location,
                status_code=decision.status_code,
            )
            return RedirectResponse(decision.location, status_code=decision.status_code)

        response = await call_next(request)
        for header_name, header_value in decision.headers.items():
            response.headers.setdefault(header_name, header_value)
        return response


def new(*options: Option) -> Middleware:
    """Middleware entry built from ``options``, for ``FastAPI(middleware=[...])``."""
    staged = build_options(*options)
    return Middleware(
        SecureMiddleware,
        config=staged.to_config(),
        bad_host_handler=staged.bad_host_handler,
    )


def default(*options: Option) -> Middleware:
    """Like ``new`` but starting from the strict defaults."""
    return new(*STRICT_DEFAULTS, *options)
