from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    log_level: str = Field(default="INFO")
    backups_dir_name: str = Field(default="_backups", min_length=1)
    backup_before_migration: bool = Field(default=True)
    migration_up_script: str = Field(default="up.sql", min_length=1)
    migration_down_script: str = Field(default="down.sql", min_length=1)
    configuration_collection: str = Field(default="Configuration", min_length=1)
    time_series_date_dimension: str = Field(default="date_time", min_length=1)

    model_config = SettingsConfigDict(
        env_prefix="SCHEMADB_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
