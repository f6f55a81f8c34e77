import os


class Settings:
    PROJECT_NAME: str = "learnit"
    SITE_TITLE: str = "LEARNit"
    DEBUG: bool = os.getenv("LEARNIT_DEBUG", "false").lower() == "true"
    LOG_DIR: str = os.getenv("LEARNIT_LOG_DIR", "log")
    LOG_FILE: str = "learnit.log"
    LOG_TO_FILE: bool = os.getenv("LEARNIT_LOG_TO_FILE", "true").lower() == "true"
    REDIS_URL: str = os.getenv("LEARNIT_REDIS_URL", "redis://localhost:6379/0")
    TEST_SIZE: int = 15
    SESSION_COOKIE_NAME: str = "play_session_id"
    SESSION_TIMEOUT_MINUTES: int = 120
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024
    PREVIEW_LENGTH: int = 300
    FILE_WORKERS: int = 4
    GEMINI_API_KEY: str = os.getenv("LEARNIT_GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("LEARNIT_GEMINI_MODEL", "gemini-1.5-flash")
    GENERATION_CACHE_HOURS: int = 24
    CELEBRATION_THRESHOLD: int = 70


settings = Settings()
