"""
Backup and maintenance helpers
SQL export of the loaded snapshot, demo seeding and a full reset of the clinic tables
"""

import datetime as dt
import json
import logging
from typing import Any, Optional, Sequence

from ..config.schema import NIL_UUID, RESET_ORDER
from ..models import ClinicSnapshot
from . import codecs
from .codecs import EntityCodec
from .store import ClinicStore

logger = logging.getLogger(__name__)

# (section title, codec, snapshot collection, exported fields)
EXPORT_SECTIONS = (
    ("Customers", codecs.CUSTOMERS, "customers",
     ("id", "name", "phone", "email", "birth_date", "notes", "line_id", "address")),
    ("Inventory", codecs.INVENTORY, "inventory",
     ("id", "name", "quantity", "unit", "min_level", "price_per_unit")),
    ("Services", codecs.SERVICES, "services",
     ("id", "name", "price", "duration_minutes", "category", "consumables", "image_url")),
    ("Courses", codecs.COURSES, "course_definitions",
     ("id", "name", "price", "total_units", "description", "consumables")),
)

SEED_INVENTORY = [
    {"name": "Syringe 3ml", "quantity": 500, "unit": "piece", "min_level": 100, "price_per_unit": 5},
    {"name": "Botox Allergan 100u", "quantity": 20, "unit": "vial", "min_level": 5, "price_per_unit": 4000},
    {"name": "Vitamin C Ampoule", "quantity": 200, "unit": "ampoule", "min_level": 50, "price_per_unit": 20},
    {"name": "Normal Saline 100ml", "quantity": 100, "unit": "bag", "min_level": 20, "price_per_unit": 15},
    {"name": "Sterile Gloves (M)", "quantity": 1000, "unit": "pair", "min_level": 100, "price_per_unit": 10},
    {"name": "Meso Fat Solution", "quantity": 50, "unit": "vial", "min_level": 10, "price_per_unit": 500},
]

SEED_SERVICES = [
    {"name": "Botox Injection (50u)", "price": 8900, "duration_minutes": 30, "category": "Injection"},
    {"name": "IV Drip Vitamin Glow", "price": 2500, "duration_minutes": 45, "category": "Wellness"},
    {"name": "Ultraformer III (Face)", "price": 15000, "duration_minutes": 60, "category": "Lifting"},
    {"name": "Laser Hair Removal (Arm)", "price": 1500, "duration_minutes": 20, "category": "Laser"},
    {"name": "Meso Fat Jawline", "price": 3500, "duration_minutes": 30, "category": "Injection"},
]

SEED_COURSES = [
    {"name": "IV Drip Buffet (10 sessions)", "price": 20000, "total_units": 10,
     "description": "Concentrated skin vitamin drip, 10 sessions"},
    {"name": "Laser Hair Removal (12 sessions)", "price": 12000, "total_units": 12,
     "description": "Laser hair removal, 12 sessions"},
    {"name": "Acne Clear (5 sessions)", "price": 4500, "total_units": 5,
     "description": "Acne treatment, extraction and mask, 5 sessions"},
]

SEED_CUSTOMERS = [
    {"name": "Suda Jaidee", "phone": "081-234-5678", "email": "suda@example.com", "notes": "Allergic to penicillin"},
    {"name": "Somchai Mangkang", "phone": "089-987-6543", "email": "somchai@example.com", "notes": "Prefers firm facial massage"},
    {"name": "Wilai Suaysamer", "phone": "065-432-1111", "email": "wilai@example.com"},
]


def sql_literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (list, dict)):
        value = json.dumps(value, ensure_ascii=False)
    return "'" + str(value).replace("'", "''") + "'"


def _insert_statement(table: str, codec: EntityCodec, fields: Sequence[str], models: Sequence[Any]) -> str:
    columns = [codec.column_for(field) for field in fields]
    values = []
    for model in models:
        # id is read-only on the codec, everything else goes through the write path
        row = codec.to_row({field: getattr(model, field) for field in fields if field != "id"})
        row["id"] = model.id
        values.append("(" + ", ".join(sql_literal(row[column]) for column in columns) + ")")
    return f"INSERT INTO {table} ({', '.join(columns)}) VALUES \n" + ",\n".join(values) + ";\n\n"


def export_to_sql(snapshot: ClinicSnapshot, clinic_name: str = "Clinic",
                  generated_at: Optional[dt.datetime] = None) -> str:
    """
    Render customers, inventory, services and courses as INSERT statements

    Built from the loaded snapshot only; nothing is re-queried. Tables with
    no rows are left out.
    """
    generated_at = generated_at or dt.datetime.now(dt.timezone.utc)
    sql = f"-- {clinic_name} Backup \n-- Date: {generated_at.isoformat()}\n\n"

    for title, codec, collection, fields in EXPORT_SECTIONS:
        models = getattr(snapshot, collection)
        if not models:
            continue
        sql += f"-- {title} \n" + _insert_statement(codec.table, codec, fields, models)

    return sql


async def seed_database(store: ClinicStore) -> None:
    """Load demo inventory, services, courses and customers"""
    for codec, rows in (
        (codecs.INVENTORY, SEED_INVENTORY),
        (codecs.SERVICES, SEED_SERVICES),
        (codecs.COURSES, SEED_COURSES),
        (codecs.CUSTOMERS, SEED_CUSTOMERS),
    ):
        payload = [codec.to_row(row, partial=False) for row in rows]
        await store.run(store.client.table(codec.table).insert(payload), f"seed {codec.table}")
        logger.info(f"🌱 Seeded {len(payload)} {codec.table} rows")

    await store.refresh()


async def reset_database(store: ClinicStore) -> None:
    """Delete every row of every clinic table, children first"""
    for table in RESET_ORDER:
        await store.run(store.client.table(table).delete().neq("id", NIL_UUID), f"clear {table}")
        logger.warning(f"🗑️ Cleared {table}")

    await store.refresh()
