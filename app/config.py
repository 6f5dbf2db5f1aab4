import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List


def _split_origins(value: str) -> List[str]:
    return [origin.strip() for origin in value.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./lostfound.db"

    jwt_secret: str = "your_really_long_secret_key"
    google_client_id: str = ""

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    email_from: str = "Campus Lost & Found <noreply@lostfound.local>"
    client_url: str = "http://localhost:5173"

    # Notification queue rate limiting
    email_delay_ms: int = 2000
    email_batch_size: int = 5
    email_batch_delay_ms: int = 5000

    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])


@lru_cache
def get_settings() -> Settings:
    """Read settings from the environment (populated by load_dotenv in app.main)."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./lostfound.db"),
        jwt_secret=os.getenv("JWT_SECRET", "your_really_long_secret_key"),
        google_client_id=os.getenv("GOOGLE_CLIENT_ID", ""),
        smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        smtp_user=os.getenv("SMTP_USER", ""),
        # app passwords are usually pasted with spaces
        smtp_pass="".join(os.getenv("SMTP_PASS", "").split()),
        email_from=os.getenv("EMAIL_FROM") or os.getenv("SMTP_USER") or Settings.email_from,
        client_url=os.getenv("CLIENT_URL", "http://localhost:5173"),
        email_delay_ms=int(os.getenv("EMAIL_DELAY_MS", "2000")),
        email_batch_size=int(os.getenv("EMAIL_BATCH_SIZE", "5")),
        email_batch_delay_ms=int(os.getenv("EMAIL_BATCH_DELAY_MS", "5000")),
        cors_origins=_split_origins(os.getenv("CORS_ORIGINS", "http://localhost:5173")),
    )
