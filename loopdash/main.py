"""loopdash FastAPI backend: main application entry point."""
from __future__ import annotations

import argparse
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from loopdash import config
from loopdash.observability import initialize as initialize_observability, shutdown as shutdown_observability
from loopdash.routers.sessions import maintenance_router, sessions_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("loopdash")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    settings = config.get_settings()
    logger.info("loopdash backend starting up (log=%s)", settings.log_file)
    initialize_observability(app)

    yield

    logger.info("loopdash backend shutting down")
    shutdown_observability(app)


app = FastAPI(
    title="loopdash API",
    description="Backend API for the loop session dashboard",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow the Vite dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        f"http://localhost:{config.PORT}",
        f"http://127.0.0.1:{config.PORT}",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions_router)
app.include_router(maintenance_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    settings = config.get_settings()
    return {
        "status": "ok",
        "log": "present" if settings.log_file.is_file() else "missing",
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Serve the loop session dashboard API")
    parser.add_argument("--host", default=config.HOST, help=f"Bind address (default: {config.HOST})")
    parser.add_argument("--port", type=int, default=config.PORT, help=f"Port (default: {config.PORT})")
    args = parser.parse_args()
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
