"""
FastAPI application for the passage retrieval API.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .deps import build_service
from .routes import router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the retrieval service on startup; release the remote client on shutdown."""
    service, error = await build_service()
    app.state.service = service
    app.state.startup_error = error
    yield
    close = getattr(getattr(service, "index", None), "close", None)
    if close is not None:
        await close()


app = FastAPI(
    title="Study Material Retrieval API",
    description="Finds supporting study-material passages for exam questions",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
app.include_router(router)
