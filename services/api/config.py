"""
Application configuration via pydantic-settings.
All config read from environment variables with sensible defaults for local dev.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # App
    app_name: str = "ntugo-api"
    app_version: str = "0.1.0"
    environment: str = Field(default="development", pattern=r"^(development|test|staging|production)$")
    debug: bool = False

    # MongoDB
    mongodb_uri: str = ""
    mongodb_db_name: str = "ntugo"
    mongodb_max_pool_size: int = 10
    mongodb_min_pool_size: int = 1
    mongodb_server_selection_timeout_ms: int = 30_000
    mongodb_connect_timeout_ms: int = 30_000
    mongodb_socket_timeout_ms: int = 45_000

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0")

    # CORS
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "https://ntugo.vercel.app"]
    )

    # Sentry
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)

    # Rate Limiting
    rate_limit_anon_per_min: int = 30
    rate_limit_auth_per_min: int = 120
    rate_limit_llm_per_min: int = 10
    rate_limit_email_per_min: int = 5

    # TDX (Transport Data eXchange)
    tdx_client_id: str = ""
    tdx_client_secret: str = ""
    tdx_auth_url: str = (
        "https://tdx.transportdata.tw/auth/realms/TDXConnect/protocol/openid-connect/token"
    )
    tdx_api_base: str = "https://tdx.transportdata.tw/api/basic/v2"
    tdx_timeout_s: float = 15.0
    tdx_default_city: str = "Taipei"
    # Seconds shaved off the provider's expires_in before a token is refreshed
    tdx_token_expiry_margin_s: int = 60

    # YouBike open data
    youbike_feed_url: str = (
        "https://tcgbusfs.blob.core.windows.net/dotapp/youbike/v2/youbike_immediate.json"
    )
    youbike_timeout_s: float = 10.0

    # In-memory cache TTLs
    bike_cache_ttl_s: float = 60.0
    bus_stops_cache_ttl_s: float = 60.0
    bus_arrivals_cache_ttl_s: float = 30.0
    bus_arrivals_cache_max_entries: int = 500

    # Campus geography
    ntu_center_lat: float = 25.0173405
    ntu_center_lon: float = 121.5397518
    bus_stop_radius_m: int = 1000

    # Anthropic (campus assistant)
    anthropic_api_key: str = ""
    assistant_model: str = "claude-haiku-4-5-20251001"
    assistant_max_tokens: int = 1000
    assistant_temperature: float = Field(default=0.7, ge=0.0, le=1.0)
    assistant_timeout_s: float = 45.0
    assistant_history_window: int = 10

    # JWT (issued by the web app's login flow)
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"

    # Email (Resend)
    resend_api_key: str = ""
    email_from_address: str = "NTUGo <no-reply@ntugo.app>"
    email_timeout_s: float = 10.0

    # Password reset
    verification_code_expiry_minutes: int = 10
    verification_code_max_attempts: int = 5
    verification_code_max_sends_per_hour: int = 5
    reset_token_window_minutes: int = 30
    password_min_length: int = 6

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}


settings = Settings()
