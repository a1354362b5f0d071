from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Booking Engine"
    API_PREFIX: str = "/api"

    # Server
    PORT: int = 8000
    ENVIRONMENT: str = "development"

    # Logging
    LOG_LEVEL: str = "INFO"
    ERROR_LOG_PATH: str = "logs/errors.log"

    # Storage
    STORE_BACKEND: str = "sqlite"  # "sqlite" | "supabase"
    DATABASE_PATH: str = "data/bookings.db"
    BOOTSTRAP_ON_STARTUP: bool = True

    # Company seed data (hours, services, notification templates)
    COMPANY_CONFIG_PATH: str = "data/company_config.json"

    # Security
    ADMIN_TOKEN: str = ""

    # Admission
    ADMISSION_MAX_RETRIES: int = 1
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 5.0

    # Google
    GOOGLE_CREDENTIALS_FILE: str = "google_credentials.json"
    GOOGLE_CREDENTIALS_JSON: str = ""
    CALENDAR_TIMEOUT_SECONDS: float = 3.0

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""

    # Notifications
    SIDE_EFFECT_TIMEOUT_SECONDS: float = 20.0

    GOSMS_CLIENT_ID: str = ""
    GOSMS_CLIENT_SECRET: str = ""
    GOSMS_CHANNEL_ID: str = ""

    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
