"""Application settings and validation."""

import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    DATABASE_URL: str
    SUMMARY_ENABLED: bool
    OLLAMA_API_URL: str
    OLLAMA_MODEL: str
    OLLAMA_TIMEOUT_SECONDS: float
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.ALLOW_INSECURE_JWT = _flag("ALLOW_INSECURE_JWT", "false")
        self.ALLOW_DEV_CORS = _flag("ALLOW_DEV_CORS", "true")
        # empty means the sqlite file next to the package
        self.DATABASE_URL = os.getenv("DATABASE_URL", "")
        self.SUMMARY_ENABLED = _flag("SUMMARY_ENABLED", "true")
        self.OLLAMA_API_URL = os.getenv("OLLAMA_API_URL", "http://localhost:11434/api").rstrip("/")
        self.OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3")
        self.OLLAMA_TIMEOUT_SECONDS = float(os.getenv("OLLAMA_TIMEOUT_SECONDS", "120"))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.JWT_EXPIRE_HOURS <= 0:
            raise RuntimeError("JWT_EXPIRE_HOURS must be a positive number of hours")
        if self.SUMMARY_ENABLED and not self.OLLAMA_API_URL:
            raise RuntimeError("OLLAMA_API_URL is required when SUMMARY_ENABLED is true")


settings = Settings()
