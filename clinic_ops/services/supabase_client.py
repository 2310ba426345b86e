"""
Supabase client factory
Builds the async client used by the clinic store from the configured settings
"""

import logging
from typing import Optional

from supabase import AsyncClient, acreate_client

from ..config.settings import Settings, get_settings
from ..exceptions import ClinicConfigError

logger = logging.getLogger(__name__)


async def create_supabase_client(settings: Optional[Settings] = None) -> AsyncClient:
    """
    Create an async Supabase client

    Raises:
        ClinicConfigError: If the project URL or anon key is not configured
    """
    settings = settings or get_settings()

    supabase_url = settings.resolve_supabase_url()
    if not supabase_url:
        raise ClinicConfigError("SUPABASE_URL environment variable is required")
    if not settings.SUPABASE_ANON_KEY:
        raise ClinicConfigError("SUPABASE_ANON_KEY environment variable is required")

    client = await acreate_client(supabase_url, settings.SUPABASE_ANON_KEY)
    logger.info(f"✅ Supabase client initialized: {supabase_url}")
    return client
