import os
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
	# Accept a direct URL (supports either DATABASE_URL or database_url env vars)
	database_url: str | None = None

	DB_DRIVER: str = "sqlite"
	DB_HOST: str = ""
	DB_USER: str = ""
	DB_PASSWORD: str = ""
	DB_NAME: str = "expense_tracker.db"
	DB_PORT: int = 0

	SECRET_KEY: str = "secret"
	ALGORITHM: str = "HS256"
	ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

	# Observability / Telemetry flags
	ENABLE_REQUEST_LOGGING: bool = True
	ENABLE_OUTBOUND_LOGGING: bool = True
	LOG_SAMPLE_RATE: float = 1.0
	LOG_LEVEL: str = "INFO"

	MINIO_ENDPOINT: str = os.getenv("MINIO_ENDPOINT", "localhost:9000")
	MINIO_ACCESS_KEY: str = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
	MINIO_SECRET_KEY: str = os.getenv("MINIO_SECRET_KEY", "minioadmin")
	MINIO_BUCKET: str = os.getenv("MINIO_BUCKET", "receipts")
	MINIO_SECURE: bool = os.getenv("MINIO_SECURE", "false").lower() == "true"

	# Receipt images
	IMAGE_URL_EXPIRY_MINUTES: int = 60
	MAX_IMAGE_SIZE_MB: int = 10

	# Prefer explicit database_url if provided; otherwise assemble from parts
	@property
	def DATABASE_URL(self) -> str:
		if self.database_url and self.database_url.strip():
			return self.database_url.strip()
		explicit_url = os.getenv("DATABASE_URL")
		if explicit_url and explicit_url.strip():
			return explicit_url.strip()
		if self.DB_DRIVER.startswith("sqlite"):
			return f"{self.DB_DRIVER}:///./{self.DB_NAME}"
		return f"{self.DB_DRIVER}://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

	# Pydantic v2 settings config
	model_config = SettingsConfigDict(
		env_file=".env",
		extra="ignore",  # tolerate unrelated env vars
		case_sensitive=False,  # accept lowercase keys on Windows and in .env
	)

settings = Settings()
