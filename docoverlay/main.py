"""
FastAPI application entry point for docoverlay.

Provides REST API for:
- PDF / DOCX upload and page previews
- Placing, moving and resizing text, signature and checkmark overlays
- Exporting the edited PDF
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from docoverlay.config import settings


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(),
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting docoverlay application...")
    logger.info(
        f"Text metrics: {settings.text_metrics_mode}, "
        f"unicode font embedding: {'on' if settings.embed_unicode_font else 'off'}"
    )
    yield
    logger.info("Shutting down docoverlay application...")


app = FastAPI(
    title="docoverlay",
    description="Overlay text, signatures and checkmarks on PDF and Word documents",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Export-Report"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": "1.0.0",
    }


from docoverlay.routers import sessions
app.include_router(sessions.router, prefix="/api/sessions", tags=["sessions"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "docoverlay.main:app",
        host="0.0.0.0",
        port=8080,
        reload=settings.debug,
    )
