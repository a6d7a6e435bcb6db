import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


class Settings:
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Image generation provider
    FAL_KEY: str | None = os.getenv("FAL_KEY")
    FAL_BASE_URL: str = os.getenv("FAL_BASE_URL", "https://fal.run")
    FAL_PROXY_URL: str | None = os.getenv("FAL_PROXY_URL")
    FAL_MODEL_ID: str = os.getenv("FAL_MODEL_ID", "fal-ai/flux/dev")
    FAL_UPSCALE_MODEL_ID: str = os.getenv("FAL_UPSCALE_MODEL_ID", "fal-ai/esrgan")
    FAL_ALLOWED_HOSTS: tuple[str, ...] = ("fal.run", "fal.ai", "fal.media")

    GENERATION_TIMEOUT: float = 30.0  # seconds, per attempt
    BATCH_PAUSE: float = 1.0
    TRACKER_TICK_INTERVAL: float = 1.0

    # Fulfillment provider
    PRINTFUL_API_URL: str = os.getenv("PRINTFUL_API_URL", "https://api.printful.com/v2")
    PRINTFUL_API_KEY: str | None = os.getenv("PRINTFUL_API_KEY")
    PRINTFUL_CDN_PREFIX: str = "https://files.cdn.printful.com/"
    MOCKUP_POLL_INTERVAL: float = 2.0
    MOCKUP_MAX_POLLS: int = 10
    CATALOG_CACHE_TTL: int = 3600

    # Auth / database backend
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "http://127.0.0.1:54321")
    SUPABASE_KEY: str | None = os.getenv("SUPABASE_KEY")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
    ORDER_CACHE_TTL: int = 300

    IMAGE_PROXY_MAX_AGE: int = 86400

    RATE_LIMIT_GENERATE: int = int(os.getenv("RATE_LIMIT_GENERATE", "10"))
    RATE_LIMIT_WINDOW: int = int(os.getenv("RATE_LIMIT_WINDOW", "60"))

    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
    OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o")


settings = Settings()
