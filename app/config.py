import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env(name: str, default: str | None = None):
    return field(default_factory=lambda: os.getenv(name, default))


def _env_int(name: str, default: int):
    return field(default_factory=lambda: int(os.getenv(name, str(default))))


def _env_float(name: str, default: float):
    return field(default_factory=lambda: float(os.getenv(name, str(default))))


def _env_list(name: str, default: str):
    return field(
        default_factory=lambda: [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]
    )


def _env_bool(name: str, default: bool):
    return field(
        default_factory=lambda: os.getenv(name, str(default)).lower() in ("true", "1", "yes")
    )


@dataclass
class Settings:
    """
    Application settings, read from the environment (and .env) when instantiated
    """
    # Database
    database_url: str = _env("DATABASE_URL", "sqlite+aiosqlite:///./library.db")
    db_pool_size: int = _env_int("DB_POOL_SIZE", 10)
    db_max_overflow: int = _env_int("DB_MAX_OVERFLOW", 20)
    db_connect_retries: int = _env_int("DB_CONNECT_RETRIES", 5)
    db_connect_delay: float = _env_float("DB_CONNECT_DELAY", 2.0)
    db_create_tables: bool = _env_bool("DB_CREATE_TABLES", True)

    # Tokens
    secret_key: str = _env("SECRET_KEY", "change-me-in-production")
    algorithm: str = _env("ALGORITHM", "HS256")
    access_token_expire_minutes: int = _env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 60)
    refresh_token_expire_days: int = _env_int("REFRESH_TOKEN_EXPIRE_DAYS", 7)
    auth_cookie_name: str = _env("AUTH_COOKIE_NAME", "access_token")
    auth_cookie_secure: bool = _env_bool("AUTH_COOKIE_SECURE", False)
    bcrypt_rounds: int = _env_int("BCRYPT_ROUNDS", 12)

    # Seeded admin account
    admin_username: str | None = _env("ADMIN_USERNAME")
    admin_password: str | None = _env("ADMIN_PASSWORD")

    # Image storage
    asset_backend: str = _env("ASSET_BACKEND", "local")
    upload_dir: str = _env("UPLOAD_DIR", "uploads")
    cloudinary_cloud_name: str | None = _env("CLOUDINARY_CLOUD_NAME")
    cloudinary_api_key: str | None = _env("CLOUDINARY_API_KEY")
    cloudinary_api_secret: str | None = _env("CLOUDINARY_API_SECRET")
    cloudinary_folder: str = _env("CLOUDINARY_FOLDER", "pedbook")
    asset_timeout: float = _env_float("ASSET_TIMEOUT", 10.0)

    # Built client application
    client_dist_dir: str = _env("CLIENT_DIST_DIR", "client/dist")

    # Origins allowed to call the API with credentials
    cors_origins: list[str] = _env_list("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")

    log_level: str = _env("LOG_LEVEL", "INFO")
