from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from release_o_matic.api.routes import router
from release_o_matic.settings import init_settings

app = FastAPI(
    title="release-o-matic",
    version="1.0.0",
    description="Prepare, deploy, publish, and roll back game builds.",
)
app.include_router(router)
# Configure logging
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

# project root is one level up from this file: release_o_matic/main.py
_project_root = Path(__file__).resolve().parents[1]


@app.on_event("startup")
async def _startup() -> None:
    env_path = _project_root / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path, override=False)

    settings = init_settings()
    logger.info(
        "Serving builds from %s (auth %s)",
        settings.game_builds_dir,
        "required" if settings.auth_required else "disabled",
    )
