import os


def _bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./campusnet.db")
    SQL_ECHO: bool = _bool(os.getenv("SQL_ECHO", "false"))
    FEED_PAGE_SIZE: int = int(os.getenv("FEED_PAGE_SIZE", "20"))
    CONVERSATION_LIMIT: int = int(os.getenv("CONVERSATION_LIMIT", "100"))
    UPLOAD_ROOT: str = os.getenv("UPLOAD_ROOT", "uploads")
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
