"""
Configuration Management
Loads environment variables and provides typed config objects.

Only the service layer (main.py) reads these settings. The sync core receives
tenant credentials and endpoints explicitly.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Hosted store (PostgREST endpoint of the Supabase project)
    supabase_url: str = Field(default="", alias="SUPABASE_URL")
    supabase_service_key: str = Field(default="", alias="SUPABASE_SERVICE_ROLE_KEY")

    # MarketSharp APIs
    ms_odata_url: str = Field(
        default="https://api4.marketsharpm.com/WcfDataService.svc",
        alias="MARKETSHARP_ODATA_URL",
    )
    ms_rest_url: str = Field(
        default="https://restapi.marketsharpm.com", alias="MARKETSHARP_REST_URL"
    )
    remote_timeout_seconds: float = Field(default=30.0, alias="REMOTE_TIMEOUT_SECONDS")

    # Scheduling
    sync_cron_hour: int = Field(default=6, alias="SYNC_CRON_HOUR")
    sync_on_startup: bool = Field(default=False, alias="SYNC_ON_STARTUP")

    # Endpoint protection (empty means open)
    cron_secret: str = Field(default="", alias="CRON_SECRET")
    api_token: str = Field(default="", alias="API_TOKEN")

    # Alerts
    slack_webhook_url: str = Field(default="", alias="SLACK_WEBHOOK_URL")

    # App Settings
    port: int = Field(default=8080, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    sync_history_limit: int = 20

    class Config:
        env_file = ".env"
        case_sensitive = False
        populate_by_name = True


# Global settings instance
settings = Settings()
