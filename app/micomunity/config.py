import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    storage_backend: str
    upload_dir: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    reservation_limit_per_zone_per_day: int
    reservation_limit_per_user: int

    document_allowed_extensions: tuple[str, ...]
    document_max_file_size: int
    image_allowed_extensions: tuple[str, ...]

    chat_history_limit: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).") from e


def _getenv_list(name: str, default: str) -> tuple[str, ...]:
    raw = _getenv(name, default)
    return tuple(x.strip().lower().lstrip(".") for x in raw.split(",") if x.strip())


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///micomunity.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        upload_dir=_getenv("UPLOAD_DIR", "uploads"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        reservation_limit_per_zone_per_day=_getenv_int("RESERVATION_LIMIT_PER_ZONE_PER_DAY", 1),
        reservation_limit_per_user=_getenv_int("RESERVATION_LIMIT_PER_USER", 0),
        document_allowed_extensions=_getenv_list(
            "DOCUMENT_ALLOWED_EXTENSIONS", "pdf,doc,docx,xls,xlsx,jpg,jpeg,png"
        ),
        document_max_file_size=_getenv_int("DOCUMENT_MAX_FILE_SIZE", 10 * 1024 * 1024),
        image_allowed_extensions=_getenv_list("IMAGE_ALLOWED_EXTENSIONS", "jpg,jpeg,png,gif,webp"),
        chat_history_limit=_getenv_int("CHAT_HISTORY_LIMIT", 50),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "STORAGE_BACKEND": s.storage_backend,
        "UPLOAD_DIR": s.upload_dir,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # reservation quotas (0 disables the per-user total)
        "RESERVATION_LIMIT_PER_ZONE_PER_DAY": s.reservation_limit_per_zone_per_day,
        "RESERVATION_LIMIT_PER_USER": s.reservation_limit_per_user,
        "DOCUMENT_ALLOWED_EXTENSIONS": s.document_allowed_extensions,
        "DOCUMENT_MAX_FILE_SIZE": s.document_max_file_size,
        "IMAGE_ALLOWED_EXTENSIONS": s.image_allowed_extensions,
        "CHAT_HISTORY_LIMIT": s.chat_history_limit,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # request body limit (25MB); per-file limits enforced in services
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
    }
