from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # SECRET_KEY is mandatory; paths fall back to the working directory
    SECRET_KEY: str = Field(..., validation_alias="SECRET_KEY")
    DB_PATH:    str = Field("./opname.db", validation_alias="DB_PATH")
    PHOTO_DIR:  str = Field("./photos",    validation_alias="PHOTO_DIR")

    # Token settings
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15  # short-lived access token
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7     # long-lived refresh token

    # Import wizard
    IMPORT_BATCH_SIZE: int = 100
    IMPORT_PREVIEW_ROWS: int = 10

    # Opname entry
    ASSET_SEARCH_MIN_CHARS: int = 4
    PENDING_ASSET_LIMIT: int = 10
    PHOTO_MAX_BYTES: int = 10 * 1024 * 1024

    # First admin account, created only when the users table is empty
    ADMIN_USERNAME: str | None = None
    ADMIN_PASSWORD: str | None = None

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

settings = Settings()
