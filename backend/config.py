"""
Application settings loaded from the environment (and an optional .env file).
"""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / ".env", override=False)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        self.MONGO_URL = os.environ.get("MONGO_URL") or os.environ.get("MONGODB_URI", "mongodb://localhost:27017")
        self.DB_NAME = os.environ.get("DB_NAME", "blood_bank")
        self.JWT_SECRET = os.environ.get("JWT_SECRET", "change-me")
        self.JWT_ALGORITHM = "HS256"
        self.JWT_EXPIRES_DAYS = int(os.environ.get("JWT_EXPIRES_DAYS", "7"))
        self.MAIN_ADMIN_EMAIL = os.environ.get("MAIN_ADMIN_EMAIL", "admin@bloodbank.org").lower()
        self.CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]
        self.UPLOAD_DIR = Path(os.environ.get("UPLOAD_DIR", str(ROOT_DIR / "uploads")))
        self.MAX_UPLOAD_MB = int(os.environ.get("MAX_UPLOAD_MB", "10"))
        self.LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
        self.FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
        self.DONOR_TEMP_PASSWORD = os.environ.get("DONOR_TEMP_PASSWORD", "TempPass123!")
        self.DEBUG = _env_bool("DEBUG")


settings = Settings()


def configure_logging(level: str = None):
    logging.basicConfig(
        level=level or settings.LOG_LEVEL,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
