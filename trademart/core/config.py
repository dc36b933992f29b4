from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
	model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

	APP_NAME: str = Field(default="IndianTradeMart API")
	DEBUG: bool = Field(default=False)
	ENVIRONMENT: str = Field(default="development")
	API_PREFIX: str = Field(default="/api")

	# Database
	DATABASE_URL: str = Field(default="")

	# Auth / JWT
	JWT_SECRET: str = Field(default="")
	JWT_ALGORITHM: str = Field(default="HS256")
	AUTH_TOKEN_TTL_MINUTES: int = Field(default=7 * 24 * 60)

	# Session cookies
	AUTH_COOKIE_NAME: str = Field(default="itm_access")
	AUTH_CSRF_COOKIE: str = Field(default="itm_csrf")
	AUTH_COOKIE_DOMAIN: str = Field(default="")
	AUTH_COOKIE_MAX_AGE_DAYS: int = Field(default=7)

	# Hosted auth provider (Supabase)
	SUPABASE_URL: str = Field(default="")
	SUPABASE_ANON_KEY: str = Field(default="")
	SUPABASE_JWT_SECRET: str = Field(default="")
	SUPABASE_SERVICE_ROLE_KEY: str = Field(default="")
	AUTH_PROVIDER_TIMEOUT_SECONDS: float = Field(default=10.0)

	# Marketplace rules
	MARKETPLACE_MAX_VENDORS_PER_LEAD: int = Field(default=5)
	MARKETPLACE_FETCH_LIMIT: int = Field(default=500)
	DEFAULT_LEAD_PRICE: float = Field(default=50.0)
	QUOTA_UPDATE_RETRIES: int = Field(default=3)

	# Request limits / CORS
	MAX_BODY_BYTES: int = Field(default=1024 * 1024)
	CORS_ORIGINS: str = Field(default="http://localhost:3000,http://localhost:5173")

	# Azure Monitor / Application Insights
	AZURE_MONITOR_CONN_STR: str = Field(default="")
	ENABLE_APP_INSIGHTS: bool = Field(default=False)
	SAMPLING_RATIO: float = Field(default=1.0)

	@property
	def cors_origins(self) -> list[str]:
		return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

	@property
	def is_production(self) -> bool:
		return self.ENVIRONMENT.lower() == "production"


settings = Settings()
