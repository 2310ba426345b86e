"""
Supabase Configuration for the clinic back office
Settings come from environment variables, with a .env file as fallback
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Supabase project
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: str = ""
    # Direct database URL, only used to derive SUPABASE_URL when it is unset
    DATABASE_URL: str = ""

    # Clinic
    CLINIC_NAME: str = "Clinic"
    REQUIRE_SESSION: bool = True  # Skip snapshot refreshes until a user has signed in

    # Other
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    def resolve_supabase_url(self) -> Optional[str]:
        """Get the Supabase API URL, falling back to one derived from DATABASE_URL"""
        if self.SUPABASE_URL:
            return self.SUPABASE_URL.rstrip("/")

        database_url = self.DATABASE_URL
        if database_url and "supabase.co" in database_url:
            # db.<project-ref>.supabase.co -> <project-ref>.supabase.co
            if database_url.startswith("https://db."):
                project_ref = database_url.replace("https://db.", "").replace(".supabase.co", "").rstrip("/")
                supabase_url = f"https://{project_ref}.supabase.co"
            else:
                supabase_url = database_url.rstrip("/")
            logger.info(f"🔄 Using DATABASE_URL as SUPABASE_URL: {supabase_url}")
            return supabase_url

        return None


@lru_cache()
def get_settings() -> Settings:
    """Get the process-wide settings instance"""
    return Settings()
