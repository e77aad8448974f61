from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    app_name: str = 'Tutoring Core'
    app_env: str = 'local'
    app_base_url: str = 'http://127.0.0.1:8000'
    app_timezone: str = 'UTC'
    database_url: str = 'sqlite:///./tutoring.db'
    default_session_location: str = 'Online'
    max_session_minutes: int = 600
    payment_timeout_seconds: float = 10.0
    payment_simulated_delay_seconds: float = 1.0
    payment_max_workers: int = 4
    lock_timeout_seconds: float = 10.0
    trust_identity_headers: bool = True
    seed_demo_catalog: bool = True
    db_slow_query_ms: int = 100
    metrics_slow_ms: int = 200


settings = Settings()
