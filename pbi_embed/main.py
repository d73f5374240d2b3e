# main.py
# - FastAPI app: caller-authenticated Power BI embed-config endpoint + health
# - Provider config, HTTP client and resolver are built once in the lifespan

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pbi_embed.api.routers import ops, powerbi
from pbi_embed.config import cfg, ProviderConfig, is_placeholder, load_provider_config
from pbi_embed.container import build_resolver, new_http_client
from pbi_embed.errors import EmbedError


# Logging setup
logger = logging.getLogger("pbi_embed")
logging.basicConfig(level=getattr(logging, cfg.log_level.upper(), logging.INFO))

# Optional Sentry setup (if installed and DSN provided)
if os.getenv("SENTRY_DSN"):
    try:
        import sentry_sdk  # type: ignore
        from sentry_sdk.integrations.fastapi import FastApiIntegration  # type: ignore
        sentry_sdk.init(dsn=os.getenv("SENTRY_DSN"), integrations=[FastApiIntegration()])
    except ImportError:
        logger.warning("SENTRY_DSN is set but sentry-sdk is not installed")


def _describe(provider: ProviderConfig) -> str:
    missing = provider.credentials.missing()
    if not provider.workspace_configured():
        missing.append("workspace_id")
    missing += [f"report:{name}" for name, rid in provider.catalog.entries.items() if is_placeholder(rid)]
    return "live" if not missing else "demo (missing: " + ", ".join(missing) + ")"


def create_app(provider: Optional[ProviderConfig] = None, **client_kwargs) -> FastAPI:
    """Build the app. ``client_kwargs`` go to the outbound httpx client (e.g. a test transport)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        prov = provider or load_provider_config()
        client = new_http_client(**client_kwargs)
        app.state.http_client = client
        app.state.resolver = build_resolver(client, prov)
        logger.info("%s %s starting; Power BI embedding: %s", cfg.server_name, cfg.server_version, _describe(prov))
        try:
            yield
        finally:
            await client.aclose()

    app = FastAPI(title=cfg.server_name, version=cfg.server_version, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(EmbedError)
    async def _embed_error(request: Request, exc: EmbedError):
        logger.error("Error generating Power BI embed config: %s (upstream body: %s)", exc, exc.body)
        return JSONResponse(status_code=exc.http_status, content={"message": exc.public_message(), "error": exc.kind})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=getattr(exc, "headers", None))

    app.include_router(ops.router)
    app.include_router(powerbi.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("pbi_embed.main:app", host="0.0.0.0", port=cfg.port, log_level=cfg.log_level.lower())
