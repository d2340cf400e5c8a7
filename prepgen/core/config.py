from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from typing import List
from dotenv import load_dotenv



# Path to the .env file
CONFIG_DIR = Path(__file__).resolve().parent
# .env lives in the project root (two levels up from prepgen/core)
PROJECT_ROOT = CONFIG_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT / '.env'

# Load environment variables from .env file
load_dotenv(ENV_FILE_PATH)


def split_provider_list(value: str) -> List[str]:
    """Turn a comma-separated provider ordering into a clean list."""
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding='utf-8',
        extra='ignore'
    )


    DEBUG_MODE: bool = False
    LOG_JSON: bool = False


    GEMINI_API_KEY: str = ""
    GROQ_API_KEY: str = ""

    # Model names per backend
    GEMINI_FLASH_MODEL: str = "gemini-2.5-flash"
    GEMINI_PRO_MODEL: str = "gemini-2.5-pro"
    GROQ_MODEL: str = "openai/gpt-oss-120b"

    # Provider ordering per capability (first entry is tried first)
    GROUNDING_PROVIDERS: str = "gemini_flash,gemini_pro"
    STRUCTURED_PROVIDERS: str = "groq,gemini_flash"
    REASONING_PROVIDERS: str = "groq,gemini_pro"

    # Service Specific Limits (Requests Per Minute)
    GEMINI_RPM: int = 15
    GROQ_RPM: int = 60

    # Retry Configuration
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 1.0
    RETRY_MAX_DELAY: float = 60.0

    # Timeout Configuration (seconds)
    PROVIDER_TIMEOUT_SECONDS: float = 45.0
    FAST_PASS_TIMEOUT_SECONDS: float = 2.0
    SLOW_PASS_BUDGET_SECONDS: float = 300.0  # 5 minutes

    # Generation policy
    QUALITY_THRESHOLD: int = 70
    MAX_REFINEMENT_ATTEMPTS: int = 2
    MIN_ROUNDS: int = 3
    MAX_ROUNDS: int = 5
    GENERATION_SEED: int = 0

    # Persistence (empty selects the in-memory repository)
    DATABASE_URL: str = ""

    @property
    def provider_routing(self) -> dict:
        return {
            "grounding": split_provider_list(self.GROUNDING_PROVIDERS),
            "structured": split_provider_list(self.STRUCTURED_PROVIDERS),
            "reasoning": split_provider_list(self.REASONING_PROVIDERS),
        }


settings = Settings()
