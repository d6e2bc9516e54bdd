# flow_designer/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    GEMINI_API_KEY: str = ""
    GENERATION_MODEL: str = "gemini-flash-latest"
    FLOW_STORE_DIR: str = ""
    LIMITER_STORAGE_URI: str = "memory://"
    ALLOWED_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:8000",
        "http://localhost:8080",
    ]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
