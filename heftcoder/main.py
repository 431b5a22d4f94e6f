from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from heftcoder.api import orchestrator as orchestrator_api
from heftcoder.core.orchestrator import orchestrator
from heftcoder.settings import get_settings
from heftcoder.utils.logging import configure_logging, get_logger

LOGGER = get_logger(__name__)
configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    LOGGER.info("Orchestrator %s starting (llm_mode=%s)", settings.build_id, settings.llm_mode)
    yield
    await orchestrator.shutdown()


app = FastAPI(
    title="HeftCoder Orchestrator",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def check_api_key(request: Request, call_next):
    settings = get_settings()
    # Only enforced for the edge-function style routes
    if settings.admin_api_key and request.url.path.startswith("/functions"):
        if request.method == "OPTIONS":
            return await call_next(request)
        if request.headers.get("X-API-Key") != settings.admin_api_key:
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Invalid or missing API Key"},
            )
    return await call_next(request)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    LOGGER.error("Global exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
    )


app.include_router(orchestrator_api.router)
