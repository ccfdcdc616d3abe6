import os
from functools import lru_cache
from typing import List, Mapping, Optional

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Database settings (SQLite file next to the package)
DB_FILE = os.path.join(BASE_DIR, '..', 'chat.db')
DB_URL = f"sqlite:///{os.path.abspath(DB_FILE)}"

# Browser origins always allowed to call the API
DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:8501",
]


def parse_origins(raw: Optional[str]) -> List[str]:
    """Split a comma separated origin list, dropping blanks."""
    if not raw:
        return []
    return [o.strip() for o in raw.split(",") if o.strip()]


def merge_origins(extra: List[str], defaults: List[str] = DEFAULT_ALLOWED_ORIGINS) -> List[str]:
    merged = []
    for origin in [*extra, *defaults]:
        if origin not in merged:
            merged.append(origin)
    return merged


def _as_bool(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings read from the environment (and .env).

    Pass a mapping instead of os.environ to build settings for tests.
    """

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        env = os.environ if env is None else env

        # Server
        self.host: str = env.get("HOST", "0.0.0.0")
        self.port: int = int(env.get("PORT", 5000))
        self.log_level: str = env.get("LOG_LEVEL", "INFO").upper()

        # Storage
        self.database_url: str = env.get("DATABASE_URL", DB_URL)
        self.db_echo: bool = _as_bool(env.get("DB_ECHO"))

        # Model and LLM settings
        self.llm_api_key: Optional[str] = env.get("GROQ_API_KEY") or None
        self.llm_base_url: str = env.get("LLM_BASE_URL", "https://api.groq.com/openai/v1")
        self.llm_model: str = env.get("LLM_MODEL", "llama-3.3-70b-versatile")
        self.llm_max_tokens: int = int(env.get("LLM_MAX_TOKENS", 2048))
        self.llm_temperature: float = float(env.get("LLM_TEMPERATURE", 0.7))

        # CORS allow-list: env origins first, then the built-in defaults
        self.allowed_origins: List[str] = merge_origins(parse_origins(env.get("FRONTEND_ORIGINS")))

        # Client UI
        self.api_base_url: str = env.get("API_BASE_URL", "http://localhost:5000")
        self.client_timeout: float = float(env.get("CLIENT_TIMEOUT", 120))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
