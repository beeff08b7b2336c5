import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Always load .env from the project root (stable, regardless of CWD)
BASE_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=BASE_DIR / ".env", override=False)


def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v and v.strip() else default


def _downloads_dir() -> str:
    return _env("DOWNLOADS_DIR", str(BASE_DIR / "downloads"))


@dataclass(frozen=True)
class Settings:
    env: str = field(default_factory=lambda: _env("ENV", "local"))
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    # Ledger
    database_url: str = field(
        default_factory=lambda: _env("DATABASE_URL", f"sqlite:///{Path(_downloads_dir()) / 'bridge.db'}")
    )

    # Queue
    broker_url: str = field(
        default_factory=lambda: _env("CELERY_BROKER_URL") or _env("REDIS_URL") or "redis://localhost:6379/0"
    )
    result_backend: str | None = field(default_factory=lambda: _env("CELERY_RESULT_BACKEND"))
    download_queue: str = field(default_factory=lambda: _env("DOWNLOAD_QUEUE", "download-queue"))
    worker_concurrency: int = field(default_factory=lambda: int(_env("WORKER_CONCURRENCY", "1")))

    # Local filesystem
    downloads_dir: str = field(default_factory=_downloads_dir)
    scratch_dir: str = field(default_factory=lambda: _env("SCRATCH_DIR", str(BASE_DIR / "temp")))
    content_url_prefix: str = field(default_factory=lambda: _env("CONTENT_URL_PREFIX", "/content"))

    # External fetch executable
    fetch_executable: str = field(default_factory=lambda: _env("FETCH_EXECUTABLE", "kiwifyDownload"))

    # Uploads
    upload_concurrency: int = field(default_factory=lambda: int(_env("UPLOAD_CONCURRENCY", "4")))
    upload_grace_seconds: float = field(default_factory=lambda: float(_env("UPLOAD_GRACE_SECONDS", "2.0")))
    s3_bucket: str = field(default_factory=lambda: _env("S3_BUCKET", "course-bridge"))
    s3_endpoint_url: str | None = field(default_factory=lambda: _env("S3_ENDPOINT_URL"))
    s3_region: str | None = field(default_factory=lambda: _env("S3_REGION"))
    # e.g. https://cdn.example.com ; defaults to the bucket's virtual-hosted URL
    public_base_url: str | None = field(default_factory=lambda: _env("PUBLIC_BASE_URL"))

    # Remote course platform
    platform_api_base_url: str = field(
        default_factory=lambda: _env("PLATFORM_API_BASE_URL", "https://admin-api.kiwify.com.br/v1")
    )
    platform_timeout_seconds: float = field(default_factory=lambda: float(_env("PLATFORM_TIMEOUT_SECONDS", "30")))

    @property
    def result_backend_url(self) -> str:
        return self.result_backend or self.broker_url

    def is_test_env(self) -> bool:
        return self.env == "test"


settings = Settings()
