from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	# Evaluation model (scoring, discussion simulation, mentor chat)
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Cheaper model for outlines, briefing and transcription
	gemini_model_fast: str = Field(default="gemini-2.5-flash-lite", validation_alias="GEMINI_MODEL_FAST")
	gemini_model_image: str = Field(default="gemini-2.5-flash-image", validation_alias="GEMINI_MODEL_IMAGE")
	gemini_model_tts: str = Field(default="gemini-2.5-flash-preview-tts", validation_alias="GEMINI_MODEL_TTS")
	gemini_tts_voice: str = Field(default="Charon", validation_alias="GEMINI_TTS_VOICE")
	gemini_timeout_seconds: float = Field(default=60, validation_alias="GEMINI_TIMEOUT_SECONDS")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# OpenRouter fallback configuration (optional, text-only prompts)
	openrouter_api_key: str | None = Field(default=None, validation_alias="OPENROUTER_API_KEY")
	openrouter_model: str = Field(default="x-ai/grok-4-fast:free", validation_alias="OPENROUTER_MODEL")
	openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_BASE_URL")
	openrouter_referer: str = Field(default="https://localhost", validation_alias="OPENROUTER_HTTP_REFERER")
	openrouter_title: str = Field(default="SSB Prep", validation_alias="OPENROUTER_TITLE")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	# Seed user
	seed_username: str | None = Field(default=None, validation_alias="SEED_USERNAME")
	seed_password_plain: str | None = Field(default=None, validation_alias="SEED_PASSWORD")
	# Mentor bot quota for newly registered users
	default_requests_limit: int = Field(default=200, validation_alias="DEFAULT_REQUESTS_LIMIT")
	# Comma-separated usernames allowed to edit the test catalog
	admin_usernames: str = Field(default="", validation_alias="ADMIN_USERNAMES")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")
	# Daily cache rows older than this are purged
	cache_retention_days: int = Field(default=7, validation_alias="CACHE_RETENTION_DAYS")

	# Live test sessions untouched this long are closed
	session_idle_minutes: int = Field(default=120, validation_alias="SESSION_IDLE_MINUTES")
	# Live sessions of one kind a member may hold; starting another closes the oldest
	sessions_per_user: int = Field(default=1, validation_alias="SESSIONS_PER_USER")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def admins(self) -> set[str]:
		return {name.strip() for name in self.admin_usernames.split(",") if name.strip()}

settings = Settings()
