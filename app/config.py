from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Service
    app_name: str = "B&R Food Services Chat API"
    app_version: str = "1.0.0"
    environment: str = "development"
    log_level: str = "INFO"

    # Frontend URL for CORS
    frontend_url: str = "http://localhost:3000"

    # Google Generative AI (Gemini) API key; must start with api_key_prefix
    google_api_key: str = ""
    api_key_prefix: str = "AIza"

    # Model fallback hierarchy, tried in order
    gemini_models: list[str] = [
        "gemini-1.5-flash-latest",
        "gemini-1.5-flash",
        "gemini-1.5-pro-latest",
        "gemini-1.5-pro",
    ]
    gemini_temperature: float = 0.7
    max_output_tokens: int = 4096
    # Seconds a model stays skipped after the backend reports it as not found
    unavailable_model_cooldown_seconds: int = 300

    # Progressive timeouts (seconds) per complexity tier
    timeout_fast_seconds: float = 15.0
    timeout_normal_seconds: float = 30.0
    timeout_complex_seconds: float = 60.0
    health_probe_timeout_seconds: float = 5.0

    # Message / response limits
    max_message_length: int = 5000
    max_response_length: int = 10000
    max_user_id_length: int = 128

    # Rate limiting: global default tier, per-tier caps are in rate_limiter
    rate_limit_per_minute: int = 60
    rate_limit_per_hour: int = 1000
    rate_limit_blacklist: list[str] = []
    # Key clients by X-Forwarded-For / X-Real-IP. Only safe behind a proxy that overwrites them;
    # set false when clients reach the service directly, or they can rotate the header to dodge limits
    trust_proxy_headers: bool = True

    # Response cache TTLs (seconds) per query category
    cache_ttl_excel_formulas: int = 3600  # 1 hour
    cache_ttl_margin_optimization: int = 1800  # 30 minutes
    cache_ttl_fifa_projections: int = 86400  # 24 hours
    cache_ttl_default: int = 600  # 10 minutes

    # Coalesce concurrent identical cache misses into one model call
    single_flight: bool = True

    # Redis (optional shared response cache; empty = in-process only)
    redis_url: str = ""  # e.g. redis://localhost:6379/0

    class Config:
        env_file = ".env"

    @property
    def timeouts(self) -> dict[str, float]:
        return {
            "fast": self.timeout_fast_seconds,
            "normal": self.timeout_normal_seconds,
            "complex": self.timeout_complex_seconds,
        }

    @property
    def cache_ttls(self) -> dict[str, int]:
        return {
            "excel_formulas": self.cache_ttl_excel_formulas,
            "margin_optimization": self.cache_ttl_margin_optimization,
            "fifa_projections": self.cache_ttl_fifa_projections,
        }

    @property
    def api_key_configured(self) -> bool:
        key = (self.google_api_key or "").strip()
        return bool(key) and key.startswith(self.api_key_prefix)


@lru_cache
def get_settings() -> Settings:
    return Settings()
