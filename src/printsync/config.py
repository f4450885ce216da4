from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    printful_api_key: str = ""
    printful_base_url: str = "https://api.printful.com"
    printful_store_id: Optional[str] = None
    printful_page_size: int = 100
    printful_page_delay_seconds: float = 0.1  # between listing pages only
    printful_timeout_seconds: float = 30.0
    database_url: str = "sqlite:///./catalog.db"
    # Judged on started_at only: checked before every run, so a run longer than
    # this is cancelled if another one is triggered meanwhile.
    stuck_sync_threshold_minutes: int = 10
    stuck_sweep_interval_minutes: int = 15
    # The periodic sweep uses its own, longer age so a healthy run on a large
    # catalog (one detail call per product) is not cancelled in the background.
    stuck_sweep_threshold_minutes: int = 120
    catalog_sync_hour: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
