import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aur_mirror_meta import __version__
from aur_mirror_meta.api.git import router as git_router
from aur_mirror_meta.api.rpc import router as rpc_router
from aur_mirror_meta.core.dependencies import get_index_store

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO; keep that for debugging only.
    if logging.getLogger().level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)


app = FastAPI(
    title="AUR Mirror Meta",
    version=__version__,
    description="AUR RPC and git endpoints served from a local mirror of the AUR GitHub repository.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event() -> None:
    """
    Open the index database before the first request and log where it lives.
    """
    store = get_index_store()
    logger.info(f"Database file: {getattr(store, 'db_path', '?')}")


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok"}


app.include_router(rpc_router, tags=["rpc"])
app.include_router(git_router, tags=["git"])


if __name__ == "__main__":
    """
    Allow running `python -m aur_mirror_meta.main` to start a development server.
    """
    import uvicorn

    configure_logging("DEBUG")
    uvicorn.run(
        "aur_mirror_meta.main:app",
        host="0.0.0.0",
        port=3000,
        reload=True,
    )
