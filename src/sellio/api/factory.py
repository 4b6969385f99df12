"""FastAPI application factory."""

from fastapi import FastAPI, Request, Response

from sellio.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)

from .routes import public, webhooks_facebook, webhooks_instagram, webhooks_whatsapp


def create_app() -> FastAPI:
    """Create FastAPI app with health and webhook routes.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Sellio Inbox",
        docs_url=None,
        redoc_url=None,
    )

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(public.router)
    app.include_router(webhooks_whatsapp.router)
    app.include_router(webhooks_instagram.router)
    app.include_router(webhooks_facebook.router)

    return app
