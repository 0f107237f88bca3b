import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


def _env(*names: str, default: str) -> str:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


@dataclass(frozen=True)
class Settings:
    storage_backend: str = "mongo"
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "college"
    secret_key: str = "dev-secret-change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 30
    bcrypt_rounds: int = 12
    upload_dir: Path = Path("uploads")
    max_upload_mb: int = 10
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    port: int = 8000
    log_level: str = "INFO"

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


def load_settings() -> Settings:
    backend = _env("STORAGE_BACKEND", default="mongo").lower()
    if backend not in {"mongo", "memory"}:
        raise ValueError(f"Unsupported STORAGE_BACKEND: {backend}")

    origins = [o.strip() for o in _env("CORS_ORIGINS", default="*").split(",") if o.strip()]

    return Settings(
        storage_backend=backend,
        database_url=_env("DATABASE_URL", "MONGODB_URI", default="mongodb://localhost:27017"),
        database_name=_env("DATABASE_NAME", default="college"),
        secret_key=_env("SECRET_KEY", "JWT_SECRET", default="dev-secret-change-me"),
        access_token_expire_minutes=int(_env("ACCESS_TOKEN_EXPIRE_MINUTES", default=str(60 * 24 * 30))),
        bcrypt_rounds=int(_env("BCRYPT_ROUNDS", default="12")),
        upload_dir=Path(_env("UPLOAD_DIR", default="uploads")),
        max_upload_mb=int(_env("MAX_UPLOAD_MB", default="10")),
        cors_origins=origins or ["*"],
        port=int(_env("PORT", default="8000")),
        log_level=_env("LOG_LEVEL", default="INFO").upper(),
    )
