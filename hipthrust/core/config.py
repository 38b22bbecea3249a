import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables.

    Provides validated access to the Supabase document store used by
    :mod:`hipthrust.services.supabase_model`.
    """

    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_SERVICE_KEY: str = os.getenv("SUPABASE_SERVICE_KEY", "")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "WARNING")
    DEFAULT_REDIRECT_CODE: int = int(os.getenv("DEFAULT_REDIRECT_CODE", "302"))
    MEMORIES_TABLE: str = os.getenv("MEMORIES_TABLE", "memories")

    @staticmethod
    def allowed_origins(extra_origins: List[str] | None = None) -> List[str]:
        env_origins = [o.strip() for o in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()]
        merged = list(env_origins)
        if extra_origins:
            merged.extend(extra_origins)
        # Deduplicate while preserving order
        seen = set()
        result: List[str] = []
        for origin in merged:
            if origin not in seen:
                seen.add(origin)
                result.append(origin)
        return result

    @classmethod
    def validate(cls) -> None:
        if not cls.SUPABASE_URL:
            raise ValueError("SUPABASE_URL environment variable is required")
        if not cls.SUPABASE_SERVICE_KEY:
            raise ValueError("SUPABASE_SERVICE_KEY environment variable is required")
