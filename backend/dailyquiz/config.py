"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    DATABASE_URL: str
    DB_BUSY_TIMEOUT_SECONDS: float
    LOG_LEVEL: str
    ALLOW_DEV_CORS: bool
    MAX_UPLOAD_BYTES: int
    QUIZ_TIMEZONE: str
    QUIZ_EASY_COUNT: int
    QUIZ_MEDIUM_COUNT: int
    QUIZ_HARD_COUNT: int
    DEFAULT_DAILY_LIMIT: int
    UNLIMITED_REMAINING: int
    XP_BASE: int
    XP_PER_CORRECT: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        self.DB_BUSY_TIMEOUT_SECONDS = float(os.getenv("DB_BUSY_TIMEOUT_SECONDS", "30"))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10 MB default
        self.QUIZ_TIMEZONE = os.getenv("QUIZ_TIMEZONE", "UTC")
        # 8/8/4 gives the 20 question daily set
        self.QUIZ_EASY_COUNT = int(os.getenv("QUIZ_EASY_COUNT", "8"))
        self.QUIZ_MEDIUM_COUNT = int(os.getenv("QUIZ_MEDIUM_COUNT", "8"))
        self.QUIZ_HARD_COUNT = int(os.getenv("QUIZ_HARD_COUNT", "4"))
        self.DEFAULT_DAILY_LIMIT = int(os.getenv("DEFAULT_DAILY_LIMIT", "1"))
        self.UNLIMITED_REMAINING = int(os.getenv("UNLIMITED_REMAINING", "999"))
        self.XP_BASE = int(os.getenv("XP_BASE", "50"))
        self.XP_PER_CORRECT = int(os.getenv("XP_PER_CORRECT", "5"))
        self._validate()

    @property
    def bucket_counts(self) -> dict:
        """Requested questions per difficulty, in session order."""
        return {
            "easy": self.QUIZ_EASY_COUNT,
            "medium": self.QUIZ_MEDIUM_COUNT,
            "hard": self.QUIZ_HARD_COUNT,
        }

    def _validate(self):
        for name, value in self.bucket_counts.items():
            if value < 0:
                raise RuntimeError(f"QUIZ_{name.upper()}_COUNT must be >= 0")
        if self.DEFAULT_DAILY_LIMIT < 0:
            raise RuntimeError("DEFAULT_DAILY_LIMIT must be >= 0")
        if self.XP_BASE < 0 or self.XP_PER_CORRECT < 0:
            raise RuntimeError("XP_BASE and XP_PER_CORRECT must be >= 0")


settings = Settings()
