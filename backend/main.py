"""
FastAPI backend hosting page, relay and portal contexts over HTTP.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.middleware.context import CallerContextMiddleware
from backend.routes.contexts import router as contexts_router
from backend.routes.relay import router as relay_router
from backend.services.context_host import start_host, stop_host
from signal_pipeline.config import PORTAL_URL


@asynccontextmanager
async def lifespan(app: FastAPI):
    start_host()
    yield
    stop_host()


app = FastAPI(
    title="Prospecting Signal Pipeline",
    description="Message bridge host for page detection contexts",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(CallerContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[PORTAL_URL, "http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(contexts_router)
app.include_router(relay_router)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok"}
