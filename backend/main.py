import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from services.broadcast_hub import BroadcastHub
from services.event_store import EventStore

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("👻 Ghost Hunter HQ backend starting up...")
    yield
    await app.state.hub.close_all()
    logger.info("Backend shutting down.")


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def create_app(
    store: Optional[EventStore] = None,
    hub: Optional[BroadcastHub] = None,
) -> FastAPI:
    """Build the app with its own store and hub (tests pass fresh ones)."""
    app = FastAPI(
        title="Ghost Hunter HQ",
        version=VERSION,
        description="Real-time squad command center: chat, evidence and ghost events over HTTP + WebSocket",
        lifespan=lifespan,
    )
    app.state.store = store or EventStore()
    app.state.hub = hub or BroadcastHub()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": _validation_message(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "service": "ghost-hunter-hq",
            "version": VERSION,
            "connections": app.state.hub.count,
        }

    from routers.hq_router import router as hq_router
    from routers.ws_router import router as ws_router

    app.include_router(hq_router, prefix="/api")
    app.include_router(ws_router)

    # Serve a compiled frontend if one sits next to the backend
    frontend_dist = os.path.abspath(
        os.path.join(os.path.dirname(__file__), "..", "frontend", "dist")
    )
    if os.path.isdir(frontend_dist):
        app.mount("/", StaticFiles(directory=frontend_dist, html=True), name="static")
        logger.info(f"Serving frontend from {frontend_dist}")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
