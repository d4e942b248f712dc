import logging
import os

from dotenv import load_dotenv


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Environment-driven settings, read when the object is built (not at import)."""

    def __init__(self):
        self.APP_NAME: str = os.getenv("APP_NAME", "Storefront API")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Backend selection: memory | sql | oracle | oracle_mongo | mongo
        self.STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "memory").strip().lower()
        self.STORAGE_FAIL_FAST: bool = _flag("STORAGE_FAIL_FAST", True)
        self.STORAGE_CALL_TIMEOUT: float = float(os.getenv("STORAGE_CALL_TIMEOUT", "10"))
        self.SEED_DATA: bool = _flag("SEED_DATA", False)
        self.ENFORCE_ORDER_TRANSITIONS: bool = _flag("ENFORCE_ORDER_TRANSITIONS", True)

        # Relational (SQLAlchemy)
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///storefront.db")

        # Oracle (stored procedures)
        self.ORACLE_USER: str = os.getenv("ORACLE_USER", "storefront")
        self.ORACLE_PASSWORD: str = os.getenv("ORACLE_PASSWORD", "password")
        self.ORACLE_CONNECTION_STRING: str = os.getenv("ORACLE_CONNECTION_STRING", "localhost:1521/XE")
        self.ORACLE_CLIENT_DIR = os.getenv("ORACLE_CLIENT_DIR")  # thick mode only
        self.ORACLE_POOL_MAX: int = int(os.getenv("ORACLE_POOL_MAX", "5"))

        # MongoDB (reviews)
        self.MONGODB_URI: str = os.getenv("MONGODB_URI", "mongodb://localhost:27017/storefront")
        self.MONGODB_DB_NAME: str = os.getenv("MONGODB_DB_NAME", "storefront")

        # Password hashing
        self.PASSWORD_SCHEMES = [
            s.strip() for s in os.getenv("PASSWORD_SCHEMES", "pbkdf2_sha256").split(",") if s.strip()
        ]


def get_settings() -> Settings:
    load_dotenv()
    return Settings()


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
