# keeper/core/config.py
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Big Data Keeper"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite:///./keeper.db"

    # "s3" for any S3-compatible endpoint (AWS, MinIO), "local" for plain disk
    storage_backend: str = "s3"
    s3_endpoint_url: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    s3_bucket_name: str = "big-data-keeper"
    local_storage_dir: str = "storage"
    upload_prefix: str = "uploads"

    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 7
    password_hash_method: str = "scrypt"

    max_file_size: int = 2 * 1024 * 1024 * 1024  # 2GB
    allowed_file_types: str = (
        "pdf,doc,docx,xls,xlsx,ppt,pptx,zip,jpg,jpeg,png,gif,mp4,avi,mov,txt,csv"
    )
    max_files_per_upload: int = 10

    cors_origin: str = "http://localhost:8080"
    rate_limit: str = "100/15 minutes"
    rate_limit_enabled: bool = True

    # Tell pydantic-settings to load from .env at project root
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore any extra stuff in .env
    )

    @property
    def allowed_extensions(self) -> set[str]:
        return {
            ext.strip().lower().lstrip(".")
            for ext in self.allowed_file_types.split(",")
            if ext.strip()
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()
