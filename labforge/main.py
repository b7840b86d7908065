from fastapi import FastAPI
import logging

from labforge import __version__
from labforge.api.routes import router
from labforge.catalog.startup import init_catalog_for_app
from labforge.settings import get_log_level

app = FastAPI(title="labforge", version=__version__)
app.include_router(router)
# Configure logging
logging.basicConfig(level=get_log_level())


@app.on_event("startup")
async def _startup() -> None:
    init_catalog_for_app()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "labforge", "version": __version__}
