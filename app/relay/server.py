"""
Standalone relay application.

Run it on a host whose network egress you want provider calls to use::

    RELAY_AUTH_TOKEN=... uvicorn app.relay.server:app --port 8788

and point the proxy at it with ``PROXY_{PROVIDER}=worker://relay.example.com``
plus the same secret in ``PROXY_AUTH_TOKEN``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

import httpx
from fastapi import FastAPI

from app.relay.route import default_relay_client, default_relay_token, router

logger = logging.getLogger("uvicorn.error")


def create_relay_app(
    token: Optional[str] = None,
    client_factory: Callable[[], httpx.AsyncClient] = default_relay_client,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.relay_token = default_relay_token() if token is None else token
        app.state.relay_client = client_factory()
        if not app.state.relay_token:
            logger.warning("[RELAY] RELAY_AUTH_TOKEN is not set, every request will be refused")
        try:
            yield
        finally:
            await app.state.relay_client.aclose()

    app = FastAPI(title="provider-relay", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_relay_app()
