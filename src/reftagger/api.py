"""FastAPI application entry point."""

import logging

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from reftagger import __version__
from reftagger.database import SessionLocal
from reftagger.settings import settings

from reftagger.routers import (
    config,
    images,
    search,
    tags,
    vocabulary_config,
)

app = FastAPI(
    title="RefTagger",
    description="Reference image vocabulary, scored search and tag reconciliation",
    version=__version__
)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def configure_logging():
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("RefTagger API starting (environment=%s)", settings.environment)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(search.router)
app.include_router(vocabulary_config.router)
app.include_router(tags.router)
app.include_router(images.router)
app.include_router(config.router)


@app.get("/health")
async def health_check():
    """Health check endpoint with DB connectivity verification."""
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy"}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"Database unavailable: {exc}")
    finally:
        db.close()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "reftagger.api:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        reload=settings.debug
    )
