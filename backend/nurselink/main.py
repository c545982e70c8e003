"""
NurseLink Matching API - Main Application Entry Point

This module initializes the FastAPI application with:
- Logging configuration
- Database schema initialization
- Prometheus metrics middleware and /metrics endpoint
- API router registration

Architecture:
    FastAPI App
    ├── Lifespan Management (startup)
    ├── Prometheus Middleware
    └── API Router
        └── /matching - trigger, re-notify, status, results, ranking preview

Matching runs themselves execute in Celery workers (see nurselink.tasks).
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from nurselink.config import configure_logging
from nurselink.database import init_db
from nurselink.api import api_router
from nurselink.middleware import setup_metrics


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
        1. Configure logging
        2. Initialize database tables
    """
    configure_logging()
    await init_db()
    yield


app = FastAPI(
    title="NurseLink Matching API",
    description="Nurse-to-mission matching engine",
    version="0.1.0",
    lifespan=lifespan,
)

setup_metrics(app)
app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
