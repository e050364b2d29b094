import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    supabase_url: Optional[str] = Field(None, alias="NEXT_PUBLIC_SUPABASE_URL")
    supabase_service_role_key: Optional[str] = Field(None, alias="SUPABASE_SERVICE_ROLE_KEY")
    supabase_anon_key: Optional[str] = Field(None, alias="NEXT_PUBLIC_SUPABASE_ANON_KEY")
    database_url: Optional[str] = Field(None, alias="ACADEMY_DATABASE_URL")
    database_echo: bool = Field(False, alias="ACADEMY_DATABASE_ECHO")
    persistence_mode: Literal["rest", "database"] = Field("rest", alias="ACADEMY_PERSISTENCE_MODE")
    phantom_email_domain: str = Field("sport-of-kings", alias="GUARDIAN_MIGRATION_EMAIL_DOMAIN")
    baseline_belt_rank: str = Field("white", alias="GUARDIAN_MIGRATION_BASELINE_BELT")
    restore_guardian_names: Optional[bool] = Field(None, alias="GUARDIAN_MIGRATION_RESTORE_NAMES")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[arg-type]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc


def _preview(value: str) -> str:
    if len(value) > 8:
        return f"{value[:5]}...{value[-5:]}"
    return "***"


def load_env_file(path: Path) -> Dict[str, str]:
    """Export ``KEY=value`` lines from ``path`` into ``os.environ``.

    Blank lines, ``#`` comment lines and lines without ``=`` are skipped.
    Anything after a ``#`` in the value is dropped, then one pair of
    surrounding quotes is stripped. Empty keys or values are ignored.
    Raises ``FileNotFoundError`` when the file does not exist.
    """
    if not path.exists():
        raise FileNotFoundError(f"Environment file not found at {path}")

    loaded: Dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip() or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()
        if "#" in value:
            value = value.split("#", 1)[0].strip()
        if len(value) >= 2 and value[0] in "\"'" and value[-1] in "\"'":
            value = value[1:-1]
        if key and value:
            os.environ[key] = value
            loaded[key] = value
            logger.info("Loaded %s: length=%d, value=%s", key, len(value), _preview(value))
    return loaded
