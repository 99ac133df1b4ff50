from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Explicit model; when unset the client discovers one from the models listing
	gemini_model: str | None = Field(default=None, validation_alias="GEMINI_MODEL")
	# Comma-separated prefixes tried in order during model discovery
	gemini_preferred_models: str = Field(default="gemini-2.0-flash", validation_alias="GEMINI_PREFERRED_MODELS")
	gemini_fallback_model: str = Field(default="gemini-2.0-flash", validation_alias="GEMINI_FALLBACK_MODEL")
	gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta", validation_alias="GEMINI_BASE_URL")
	gemini_timeout_seconds: float = Field(default=25.0, validation_alias="GEMINI_TIMEOUT_SECONDS")

	# Knowledge tests
	kt_default_requested: int = Field(default=6, validation_alias="KT_DEFAULT_REQUESTED")
	kt_max_requested: int = Field(default=20, validation_alias="KT_MAX_REQUESTED")
	# Drop generated questions whose correctIndex does not point at one of their choices
	kt_reject_out_of_range_index: bool = Field(default=False, validation_alias="KT_REJECT_OUT_OF_RANGE_INDEX")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	def preferred_models(self) -> List[str]:
		return [p.strip() for p in self.gemini_preferred_models.split(",") if p.strip()]

settings = Settings()
