"""Main FastAPI application for MV Studio."""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Load environment variables using centralized loader
from mvstudio.core.env_loader import ensure_env_loaded
ensure_env_loaded()

from mvstudio import __version__
from mvstudio.api.dependencies import limiter
from mvstudio.api.routers import grid, provenance, scenes, settings
from mvstudio.core.exceptions import ConfigurationError, ImageDataError
from mvstudio.core.logging_config import get_logger

logger = get_logger("api.main")

app = FastAPI(
    title="MV Studio API",
    description="Contact sheet and panel generation for music video storyboards",
    version=__version__,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware for web UI
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ImageDataError)
async def image_data_error_handler(request: Request, exc: ImageDataError):
    logger.warning(f"Rejected image input: {exc.message}")
    return JSONResponse(status_code=400, content={"error": exc.message})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error: {exc.message}")
    return JSONResponse(status_code=400, content={"error": exc.message})


# Include routers
app.include_router(grid.router, prefix="/api/grid", tags=["grid"])
app.include_router(provenance.router, prefix="/api/provenance", tags=["provenance"])
app.include_router(scenes.router, prefix="/api/scenes", tags=["scenes"])
app.include_router(settings.router, prefix="/api/settings", tags=["settings"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "MV Studio API", "version": __version__}


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


def start_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Start the FastAPI server."""
    uvicorn.run(
        "mvstudio.api.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="warning",  # Suppress INFO logs for each request
    )


if __name__ == "__main__":
    start_server()
