"""
Service layer for the clinic back office.

This module contains:
- Row codecs between Supabase tables and the clinic models
- The snapshot store and its per-entity write operations
- Checkout and course redemption flows
- SQL export, seeding and reset helpers
- Supabase client and session handling
"""

from .store import ClinicStore
from .auth import ClinicAuth
from .operations import process_sale, use_course
from .backup import export_to_sql, seed_database, reset_database

__all__ = [
    'ClinicStore',
    'ClinicAuth',
    'process_sale',
    'use_course',
    'export_to_sql',
    'seed_database',
    'reset_database'
]
