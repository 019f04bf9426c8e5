import logging

from fastapi import FastAPI

from jspin.api.packages import router as packages_router
from jspin.core.dependencies import close_dependencies, get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="jspin",
    version="0.1.0",
    description="Resolves bare package names to CDN URLs and serves the resulting browser import map.",
)

app.include_router(packages_router, tags=["packages"])


@app.on_event("startup")
async def startup_event() -> None:
    settings = get_settings()
    logger.info(
        f"Using lock file next to {settings.resolved_config_path()} "
        f"and import map {settings.resolved_import_map_path()} (provider: {settings.provider.value})"
    )


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await close_dependencies()


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    """
    Allow running `python jspin/main.py` to start the Uvicorn development server.
    """
    import uvicorn

    uvicorn.run(
        "jspin.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
