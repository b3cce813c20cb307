import os
import logging
from pathlib import Path

from dotenv import load_dotenv

# Load .env at startup
env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import LOG_LEVEL, CORS_ORIGINS

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="ChatTranslate API", version=__version__)

# CORS Configuration - Restrict to known origins
_env_origins = os.environ.get("CORS_ORIGINS", "")
ALLOWED_ORIGINS = list(set(o.strip() for o in _env_origins.split(",") if o.strip()) | set(CORS_ORIGINS))

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "X-API-Key"],
)

from . import manager
from .routes import router
app.include_router(router)


@app.get("/")
async def root():
    return {"message": "ChatTranslate API is running"}


@app.get("/api/system/status")
async def system_status():
    return manager.translation_manager.get_status()
