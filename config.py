from pathlib import Path
from pydantic_settings import BaseSettings
from functools import lru_cache

_ENV_FILE = Path(__file__).parent / ".env"
_DEFAULT_TOKEN_FILE = Path(__file__).parent / "config.json"


class Settings(BaseSettings):
    api_url: str = "http://localhost:8000/api/v1"
    refresh_path: str = "/auth/refresh"
    token_file: Path = _DEFAULT_TOKEN_FILE
    login_path: str = "/login"
    refresh_wait_timeout: float = 10.0   # seconds a request waits on someone else's refresh
    refresh_timeout: float = 30.0
    request_timeout: float = 30.0

    model_config = {
        "env_prefix": "BEARER_",
        "env_file": str(_ENV_FILE),
        "env_file_encoding": "utf-8",
    }

    @property
    def refresh_url(self) -> str:
        return f"{self.api_url.rstrip('/')}{self.refresh_path}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
