import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

PACKAGE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    text_model: str = Field("gpt-4o-mini", alias="MYEDGE_TEXT_MODEL")
    image_model: str = Field("gpt-image-1", alias="MYEDGE_IMAGE_MODEL")
    github_token: Optional[str] = Field(None, alias="GITHUB_TOKEN")
    debug_endpoints: bool = Field(False, alias="MYEDGE_DEBUG_ENDPOINTS")
    database_url: Optional[str] = Field(None, alias="MYEDGE_DATABASE_URL")
    database_pool_size: int = Field(10, alias="MYEDGE_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="MYEDGE_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="MYEDGE_DATABASE_ECHO")
    persistence_mode: Literal["database", "json", "hybrid"] = Field(
        "json",
        alias="MYEDGE_PERSISTENCE_MODE",
    )
    data_dir: Path = Field(PACKAGE_DIR / "data" / "state", alias="MYEDGE_DATA_DIR")
    blob_dir: Optional[Path] = Field(None, alias="MYEDGE_BLOB_DIR")
    default_city: str = Field("Los Angeles", alias="MYEDGE_DEFAULT_CITY")
    upstream_timeout_seconds: float = Field(10.0, gt=0, alias="MYEDGE_UPSTREAM_TIMEOUT_SECONDS")
    public_base_url: str = Field("", alias="MYEDGE_PUBLIC_BASE_URL")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def resolved_blob_dir(self) -> Path:
        return self.blob_dir or self.data_dir / "blobs"


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()  # type: ignore[arg-type]
        if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
            os.environ["OPENAI_API_KEY"] = settings.openai_api_key
        return settings
    except ValidationError as exc:
        raise RuntimeError(f"Invalid backend configuration: {exc}") from exc
