"""
Clinic Ops Package

Back-office data layer for an aesthetic clinic:
- Customer records, service catalog and appointments
- Inventory stock and prepaid treatment courses
- Point-of-sale checkout and course redemption
- Supabase-backed snapshot store with an HTTP API on top
"""

__version__ = "1.0.0"
__author__ = "Clinic Ops Team"
