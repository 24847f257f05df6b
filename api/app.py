from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from api.routes import history as history_routes
from api.routes import sessions as session_routes


def create_app() -> FastAPI:
    app = FastAPI(
        title="Kettlebell Force API",
        description="Live force telemetry, rep detection and session history over kbforce.",
        version="0.1.0",
    )
    app.include_router(session_routes.router)
    app.include_router(history_routes.router)

    @app.get("/", include_in_schema=False)
    async def redirect_to_docs() -> RedirectResponse:
        return RedirectResponse(url="/docs")

    return app


app = create_app()
