"""
Configuration and schema reference.

This module contains:
- Environment-driven settings for the Supabase backend
- Table metadata and the bootstrap SQL for a fresh project
"""

from .settings import Settings, get_settings
from .schema import SCHEMA_SQL, TABLES, MONITORED_TABLES

__all__ = [
    'Settings',
    'get_settings',
    'SCHEMA_SQL',
    'TABLES',
    'MONITORED_TABLES'
]
