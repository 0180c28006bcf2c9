"""
FastAPI Application Entry Point

This module initializes the FastAPI application and configures:
- API routes
- Middleware (logging, CORS)
- Rate limiting
- Logging
- Application metadata
"""

import logging

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shortlinks.api import endpoints
from shortlinks.core.logging_config import setup_logging
from shortlinks.core.rate_limit import limiter
from shortlinks.core.setting import EnvSettingsOptions, settings
from shortlinks.db.session import create_db_and_tables, engine, get_session
from shortlinks.middleware.logging import add_logging_middleware

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Link Shortener Service",
    description="Short links with expiry, password gates and visit analytics",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

add_logging_middleware(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health endpoints defined before router to match before the /{handle} catch-all
@app.get("/", tags=["Health"])
async def root():
    return {
        "message": "Link Shortener Service",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
async def health_check(session: AsyncSession = Depends(get_session)):
    """Liveness plus a round trip to the database."""
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unavailable"})
    return {"status": "healthy", "database": "ok"}


app.include_router(endpoints.router, tags=["Links"])


@app.on_event("startup")
async def startup_event():
    """Create tables in development; other environments migrate with Alembic."""
    if settings.ENV_SETTING == EnvSettingsOptions.development:
        await create_db_and_tables()
        logger.info("Development schema ensured")


@app.on_event("shutdown")
async def shutdown_event():
    await engine.dispose()
