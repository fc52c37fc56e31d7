import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "off", "no"}


@dataclass(frozen=True)
class Settings:
    SECRET_KEY: str
    DATABASE_URL: str | None
    DATA_BACKEND: str
    SUPABASE_URL: str | None
    SUPABASE_ANON_KEY: str | None
    SUPABASE_SERVICE_ROLE_KEY: str | None
    JWT_SECRET: str
    JWT_EXPIRE_HOURS: int
    FRONTEND_URL: str
    BACKEND_URL: str
    PORT: int
    MAX_FILE_SIZE: int
    UPLOAD_PATH: str
    AWS_ACCESS_KEY_ID: str | None
    AWS_SECRET_ACCESS_KEY: str | None
    AWS_REGION: str
    AWS_S3_BUCKET_NAME: str | None
    EMAIL_ENABLED: bool
    EMAIL_SENDER: str
    SUPPORT_EMAIL: str
    OPENAI_API_KEY: str | None
    OPENAI_MODEL: str
    AI_MAX_RETRIES: int
    AI_RETRY_BACKOFF_BASE: float
    AI_RETRY_BACKOFF_CAP: float
    CONTENT_FILTER_ENABLED: bool
    CONTENT_FILTER_EXTRA_WORDS_PATH: str | None
    SCHEDULER_ENABLED: bool
    SCHEDULER_POLL_SECONDS: float
    REMINDER_SCAN_INTERVAL_SECONDS: float
    NOTIFICATION_RETENTION: int


def get_settings() -> Settings:
    secret_key = os.getenv("SECRET_KEY", "dev-insecure-key")
    return Settings(
        SECRET_KEY=secret_key,
        DATABASE_URL=os.getenv("DATABASE_URL"),
        DATA_BACKEND=os.getenv("DATA_BACKEND", "sql").strip().lower(),
        SUPABASE_URL=os.getenv("SUPABASE_URL"),
        SUPABASE_ANON_KEY=os.getenv("SUPABASE_ANON_KEY"),
        SUPABASE_SERVICE_ROLE_KEY=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
        JWT_SECRET=os.getenv("JWT_SECRET") or secret_key,
        JWT_EXPIRE_HOURS=int(os.getenv("JWT_EXPIRE_HOURS", "168")),
        FRONTEND_URL=os.getenv("FRONTEND_URL", "http://localhost:5173"),
        BACKEND_URL=os.getenv("BACKEND_URL", "http://localhost:5000"),
        PORT=int(os.getenv("PORT", "5000")),
        MAX_FILE_SIZE=int(os.getenv("MAX_FILE_SIZE", "10485760")),
        UPLOAD_PATH=os.getenv("UPLOAD_PATH", "uploads/"),
        AWS_ACCESS_KEY_ID=os.getenv("AWS_ACCESS_KEY_ID"),
        AWS_SECRET_ACCESS_KEY=os.getenv("AWS_SECRET_ACCESS_KEY"),
        AWS_REGION=os.getenv("AWS_REGION", "us-east-1"),
        AWS_S3_BUCKET_NAME=os.getenv("AWS_S3_BUCKET_NAME"),
        EMAIL_ENABLED=_env_bool("EMAIL_ENABLED", False),
        EMAIL_SENDER=os.getenv("EMAIL_SENDER", "SmartStudy <no-reply@smartstudy.et>"),
        SUPPORT_EMAIL=os.getenv("SUPPORT_EMAIL", "support@smartstudy.et"),
        OPENAI_API_KEY=os.getenv("OPENAI_API_KEY"),
        OPENAI_MODEL=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        AI_MAX_RETRIES=int(os.getenv("AI_MAX_RETRIES", "3")),
        AI_RETRY_BACKOFF_BASE=float(os.getenv("AI_RETRY_BACKOFF_BASE", "1.5")),
        AI_RETRY_BACKOFF_CAP=float(os.getenv("AI_RETRY_BACKOFF_CAP", "30")),
        CONTENT_FILTER_ENABLED=_env_bool("CONTENT_FILTER_ENABLED", True),
        CONTENT_FILTER_EXTRA_WORDS_PATH=os.getenv("CONTENT_FILTER_EXTRA_WORDS_PATH"),
        SCHEDULER_ENABLED=_env_bool("SCHEDULER_ENABLED", False),
        SCHEDULER_POLL_SECONDS=float(os.getenv("SCHEDULER_POLL_SECONDS", "60")),
        REMINDER_SCAN_INTERVAL_SECONDS=float(
            os.getenv("REMINDER_SCAN_INTERVAL_SECONDS", "3600")
        ),
        NOTIFICATION_RETENTION=int(os.getenv("NOTIFICATION_RETENTION", "100")),
    )
