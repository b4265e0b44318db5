from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path


@dataclass
class Settings:
    db_url: str = "sqlite:///./clinic_bookings.db"
    export_dir: Path = field(default_factory=lambda: Path("exports"))
    max_upload_mb: float = 5.0
    preview_rows: int = 10
    log_level: str = "INFO"

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)

    @classmethod
    def from_env(cls) -> "Settings":
        db_url = os.getenv("BOOKINGS_DB_URL", cls.db_url)
        default_export = Path("exports")
        export_dir = Path(os.getenv("BOOKINGS_EXPORT_DIR", str(default_export)))
        max_upload_mb = float(os.getenv("BOOKINGS_MAX_UPLOAD_MB", cls.max_upload_mb))
        preview_rows = int(os.getenv("BOOKINGS_PREVIEW_ROWS", cls.preview_rows))
        log_level = os.getenv("BOOKINGS_LOG_LEVEL", cls.log_level).upper()
        settings = cls(
            db_url=db_url,
            export_dir=export_dir,
            max_upload_mb=max_upload_mb,
            preview_rows=preview_rows,
            log_level=log_level,
        )
        settings.export_dir.mkdir(parents=True, exist_ok=True)
        return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


__all__ = ["Settings", "get_settings"]
