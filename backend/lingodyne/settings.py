from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	app_name: str = Field(default="Lingodyne", validation_alias="APP_NAME")
	# Used to build links in outgoing e-mails (password reset)
	app_base_url: str = Field(default="http://localhost:3000", validation_alias="APP_BASE_URL")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	# 7 days, same lifetime as the auth cookie of the web client
	access_token_expire_minutes: int = Field(default=7 * 24 * 60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	otp_expire_minutes: int = Field(default=5, validation_alias="OTP_EXPIRE_MINUTES")
	reset_token_expire_minutes: int = Field(default=60, validation_alias="RESET_TOKEN_EXPIRE_MINUTES")
	# Sessions without activity for this many days are purged at startup
	session_retention_days: int = Field(default=30, validation_alias="SESSION_RETENTION_DAYS")

	# Scoring
	default_pass_threshold: float = Field(default=60.0, validation_alias="DEFAULT_PASS_THRESHOLD")

	# E-mail delivery (Resend). Without an API key mails are logged and skipped.
	resend_api_key: str | None = Field(default=None, validation_alias="RESEND_API_KEY")
	resend_base_url: str = Field(default="https://api.resend.com/emails", validation_alias="RESEND_BASE_URL")
	email_from: str = Field(default="Lingodyne <onboarding@resend.dev>", validation_alias="EMAIL_FROM")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
