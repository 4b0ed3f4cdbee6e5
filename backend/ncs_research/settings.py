from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed user
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")
	# Sessions idle longer than this are purged by the cleanup loop
	session_retention_days: int = Field(default=30, validation_alias="SESSION_RETENTION_DAYS")

	# Token economy
	welcome_bonus_tokens: int = Field(default=100, validation_alias="WELCOME_BONUS_TOKENS")
	referral_bonus_tokens: int = Field(default=100, validation_alias="REFERRAL_BONUS_TOKENS")

	# Extra attempts for idempotent reads when the database hiccups; writes are never retried
	db_read_retries: int = Field(default=2, validation_alias="DB_READ_RETRIES")

	# Defaults handed to the presentation layer until a user saves preferences
	default_theme: str = Field(default="light", validation_alias="DEFAULT_THEME")
	default_language: str = Field(default="en", validation_alias="DEFAULT_LANGUAGE")

	# Proposal export pages (A4 at 150 dpi)
	export_page_width_px: int = Field(default=1240, validation_alias="EXPORT_PAGE_WIDTH_PX")
	export_page_height_px: int = Field(default=1754, validation_alias="EXPORT_PAGE_HEIGHT_PX")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
