"""Main FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from app.core.logging import setup_logging
from app.db.database import init_db
from app.api import health
from app.api.webhooks import call_handler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    yield


app = FastAPI(
    title="AgentsFlowAI Call Handler",
    description="Twilio webhook service for AI-answered inbound calls",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(call_handler.router, tags=["webhooks"])


@app.get("/")
async def root():
    """Service banner."""
    return {
        "message": "AgentsFlowAI Call Handler API",
        "version": "0.1.0",
    }
