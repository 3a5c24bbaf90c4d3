import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _default_sqlite_uri() -> str:
    instance_path = BASE_DIR / "instance"
    instance_path.mkdir(exist_ok=True)
    return f"sqlite:///{instance_path / 'novel_app.db'}"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    """Base configuration shared across environments."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", _default_sqlite_uri())
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_TIME_LIMIT = None
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
    GENERATION_MAX_TOKENS = _env_int("GENERATION_MAX_TOKENS", 4096)

    # Token economy
    BASE_TOKEN_COST = _env_int("BASE_TOKEN_COST", 1)
    EXTRACTION_TOKEN_COST = _env_int("EXTRACTION_TOKEN_COST", 2)
    RLM_MIN_BALANCE = _env_int("RLM_MIN_BALANCE", 5)
    MAX_RETRIEVAL_SELECTIONS = _env_int("MAX_RETRIEVAL_SELECTIONS", 3)

    DEFAULT_TOTAL_EPISODES = _env_int("DEFAULT_TOTAL_EPISODES", 20)
    DEFAULT_GENRE = os.environ.get("DEFAULT_GENRE", "fantasy")
    PREVIOUS_EXCERPT_CHARS = _env_int("PREVIOUS_EXCERPT_CHARS", 500)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    WTF_CSRF_ENABLED = False
    OPENAI_API_KEY = ""
