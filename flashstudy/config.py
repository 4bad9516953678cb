"""Settings loaded from the environment (and an optional .env file)."""

import logging
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


class Settings(BaseModel):
    data_dir: Optional[str] = None  # None keeps the store in memory
    api_url: str = "http://127.0.0.1:8000"
    port: int = 8000
    mutation_timeout: float = 15.0
    http_timeout: float = 10.0
    scale_interval_by_ease: bool = False
    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]
    log_level: str = "INFO"


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings(environ=None) -> Settings:
    if environ is None:
        load_dotenv()
        environ = os.environ

    values = {}
    if environ.get("FLASHSTUDY_DATA_DIR"):
        values["data_dir"] = environ["FLASHSTUDY_DATA_DIR"]
    if environ.get("FLASHSTUDY_API_URL"):
        values["api_url"] = environ["FLASHSTUDY_API_URL"]
    if environ.get("FLASHSTUDY_PORT"):
        values["port"] = environ["FLASHSTUDY_PORT"]
    if environ.get("FLASHSTUDY_MUTATION_TIMEOUT"):
        values["mutation_timeout"] = environ["FLASHSTUDY_MUTATION_TIMEOUT"]
    if environ.get("FLASHSTUDY_HTTP_TIMEOUT"):
        values["http_timeout"] = environ["FLASHSTUDY_HTTP_TIMEOUT"]
    if environ.get("FLASHSTUDY_SCALE_INTERVAL_BY_EASE"):
        values["scale_interval_by_ease"] = _env_flag(environ["FLASHSTUDY_SCALE_INTERVAL_BY_EASE"])
    if environ.get("FLASHSTUDY_CORS_ORIGINS"):
        values["cors_origins"] = [o.strip() for o in environ["FLASHSTUDY_CORS_ORIGINS"].split(",") if o.strip()]
    if environ.get("FLASHSTUDY_LOG_LEVEL"):
        values["log_level"] = environ["FLASHSTUDY_LOG_LEVEL"].upper()

    return Settings(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def configure_logging(level: Optional[str] = None):
    if level is None:
        level = get_settings().log_level
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
