import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(default="", alias="HARVEST_SOURCE")
    snapshot_path: Path = Field(default=Path("ads.json"), alias="SNAPSHOT_PATH")
    new_batch_path: Path = Field(default=Path("new_ads.json"), alias="NEW_BATCH_PATH")
    csv_path: str = Field(default="ads.csv", alias="CSV_PATH")
    images_dir: Path = Field(default=Path("images"), alias="IMAGES_DIR")
    concurrency: int = Field(default=5, ge=1, alias="CONCURRENCY")
    image_max_size: int = Field(default=1000, ge=1, alias="IMAGE_MAX_SIZE")
    image_quality: int = Field(default=80, ge=1, le=95, alias="IMAGE_QUALITY")
    image_sharpen: bool = Field(default=True, alias="IMAGE_SHARPEN")
    image_delay: float = Field(default=0.5, ge=0, alias="IMAGE_DELAY")
    fetch_timeout: float = Field(default=20.0, gt=0, alias="FETCH_TIMEOUT")
    source_max_attempts: int = Field(default=3, ge=1, alias="SOURCE_MAX_ATTEMPTS")
    source_backoff: float = Field(default=1.0, ge=0, alias="SOURCE_BACKOFF")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def _load_dotenv():
    # .env in the working directory wins over one next to the package
    local_env = Path.cwd() / ".env"
    if local_env.exists():
        load_dotenv(local_env)
    else:
        load_dotenv()


@lru_cache()
def get_settings() -> Settings:
    _load_dotenv()
    try:
        return Settings(**os.environ)
    except ValidationError as exc:
        bad = [str(e["loc"][0]) for e in exc.errors()]
        raise RuntimeError(f"Invalid settings in environment: {', '.join(bad)}") from exc
