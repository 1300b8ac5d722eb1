"""Application entrypoint for the LeadDesk API."""

from __future__ import annotations

from fastapi import FastAPI

from leaddesk.api.v1.router import get_api_router
from leaddesk.core.config import get_config
from leaddesk.core.startup import bootstrap


def create_app() -> FastAPI:
    cfg = get_config()
    app = FastAPI(title=cfg.APP_NAME, version=cfg.APP_VERSION)
    app.include_router(get_api_router())

    @app.get("/")
    def root() -> dict:
        return {"service": cfg.APP_NAME, "version": cfg.APP_VERSION, "api_prefix": cfg.API_PREFIX}

    return app


# Expose ASGI app for `uvicorn leaddesk.main:app`.
app = create_app()


if __name__ == "__main__":
    import uvicorn

    bootstrap()
    cfg = get_config()
    uvicorn.run("leaddesk.main:app", host=cfg.API_HOST, port=cfg.API_PORT)
