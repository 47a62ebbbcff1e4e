from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./sync_ledger.db"
    log_level: str = "INFO"
    dry_run: bool = False
    source_export_dir: str = "./exports"
    destination_factory: str = "clinisync.destination.memory:InMemoryDestination"
    sync_hour: int = 3
    fetch_max_attempts: int = 3
    fetch_retry_base_delay: float = 1.0  # seconds; doubles per attempt

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
