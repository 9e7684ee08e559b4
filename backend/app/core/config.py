from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Bulk Image Enhancer"
    env: str = "dev"

    log_level: str = "INFO"
    log_file: str = ""

    max_concurrent_requests: int = 3

    upload_cleanup_delay_seconds: float = 60.0
    dispatcher_thread_prefix: str = "job-dispatch"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
