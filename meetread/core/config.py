from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "MeetRead API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://postgres:postgres@db:5432/meetread_db"

    # Session token
    SESSION_SECRET_KEY: str = "dev-super-secret-change-me"
    SESSION_ALGORITHM: str = "HS256"
    SESSION_EXPIRE_MINUTES: int = 60 * 24 * 7
    SESSION_COOKIE_NAME: str = "meetread_session"
    SESSION_COOKIE_SECURE: bool = False

    # Built-in Admin
    ADMIN_EMAIL: str = "admin@meetread.id"
    ADMIN_PASSWORD: str = "admin123456"
    ADMIN_NAME: str = "Admin MeetRead"

    # Borrowing
    WHATSAPP_BASE_URL: str = "https://wa.me"
    NOTIFICATION_FEED_LIMIT: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


settings = Settings()
