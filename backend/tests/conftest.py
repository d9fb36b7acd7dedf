from typing import Dict, Optional

import pytest
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from httpx import ASGITransport, AsyncClient, Response

from secure_policy.middleware.secure import SecureMiddleware, default, new
from secure_policy.options import Option
from secure_policy.policy import PolicyConfig, RequestFacts

TEST_RESPONSE = "bar"


def build_app(
    *options: Option,
    config: Optional[PolicyConfig] = None,
    bad_host_handler=None,
    strict: bool = False,
) -> FastAPI:
    """Minimal app with a single /foo route behind the secure middleware."""
    if strict:
        app = FastAPI(middleware=[default(*options)])
    elif config is not None:
        app = FastAPI()
        app.add_middleware(SecureMiddleware, config=config, bad_host_handler=bad_host_handler)
    else:
        app = FastAPI(middleware=[new(*options)])

    @app.get("/foo", response_class=PlainTextResponse)
    async def foo() -> str:
        return TEST_RESPONSE

    return app


async def perform_request(
    app: FastAPI, url: str, headers: Optional[Dict[str, str]] = None
) -> Response:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport) as client:
        return await client.get(url, headers=headers)


@pytest.fixture()
def plain_facts() -> RequestFacts:
    return RequestFacts(host="www.example.com", is_tls=False, path="/foo")


@pytest.fixture()
def tls_facts() -> RequestFacts:
    return RequestFacts(host="www.example.com", is_tls=True, path="/foo")
