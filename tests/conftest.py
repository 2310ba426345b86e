import copy
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import pytest
from postgrest.exceptions import APIError

from clinic_ops.services.store import ClinicStore

ALL_TABLES = (
    "customers", "services", "courses", "inventory",
    "customer_courses", "treatment_records", "transactions", "appointments",
)

# Columns of each table; omitted columns are stored as NULL unless a
# database default is given. appointments.status has no default here so
# writes must send it.
COLUMNS = {
    "customers": ("name", "phone", "email", "birth_date", "notes", "line_id", "address"),
    "services": ("name", "price", "duration_minutes", "category", "consumables", "image_url"),
    "courses": ("name", "price", "total_units", "description", "consumables"),
    "inventory": ("name", "quantity", "unit", "min_level", "price_per_unit"),
    "customer_courses": (
        "customer_id", "course_id", "course_name", "total_units", "remaining_units",
        "purchase_date", "expiry_date", "active",
    ),
    "treatment_records": ("customer_id", "date", "treatment_name", "details", "doctor_name", "units_used", "doctor_fee"),
    "transactions": ("created_at", "customer_id", "total_amount", "payment_method", "items"),
    "appointments": ("customer_id", "service_id", "date", "time", "status", "doctor_name"),
}

DEFAULTS = {
    "customer_courses": lambda: {"purchase_date": _now(), "active": True},
    "treatment_records": lambda: {"date": _now(), "units_used": 0, "doctor_fee": 0},
    "transactions": lambda: {"created_at": _now()},
}


def _insert_defaults(table):
    row = dict.fromkeys(COLUMNS[table])
    row.update(DEFAULTS.get(table, dict)())
    return row


def _now():
    return datetime.now(timezone.utc).isoformat()


def api_error(code, message):
    return APIError({"code": code, "message": message, "details": None, "hint": None})


class FakeQuery:
    """Chainable stand-in for a postgrest request builder"""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.order_by = None

    def select(self, *columns):
        self.op = "select"
        return self

    def insert(self, rows):
        self.op = "insert"
        self.payload = rows if isinstance(rows, list) else [rows]
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append(("eq", column, value))
        return self

    def neq(self, column, value):
        self.filters.append(("neq", column, value))
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def matches(self, row):
        for op, column, value in self.filters:
            if op == "eq" and row.get(column) != value:
                return False
            if op == "neq" and row.get(column) == value:
                return False
        return True

    async def execute(self):
        return self.db.run(self)


class FakeSupabase:
    """In-memory tables behind the subset of the Supabase client the store uses"""

    def __init__(self):
        self.tables = {name: [] for name in ALL_TABLES}
        self.missing_tables = set()
        self.failures = {}
        self.calls = []
        self.auth = Mock()
        self.auth.sign_in_with_password = AsyncMock()
        self.auth.sign_up = AsyncMock()
        self.auth.sign_out = AsyncMock()

    def table(self, name):
        return FakeQuery(self, name)

    def fail(self, table, op, error):
        """Make the next `op` on `table` raise `error`"""
        self.failures[(table, op)] = error

    def add(self, table, **row):
        row.setdefault("id", str(uuid.uuid4()))
        self.tables[table].append(row)
        return row

    def get(self, table, row_id):
        return next((row for row in self.tables[table] if row["id"] == row_id), None)

    def calls_for(self, table, op):
        return [call for call in self.calls if call.table == table and call.op == op]

    def run(self, query):
        self.calls.append(query)
        if query.table in self.missing_tables:
            raise api_error("42P01", f'relation "public.{query.table}" does not exist')
        error = self.failures.pop((query.table, query.op), None)
        if error is not None:
            raise error

        rows = self.tables[query.table]
        if query.op == "select":
            result = [row for row in rows if query.matches(row)]
            if query.order_by:
                column, desc = query.order_by
                result.sort(key=lambda row: (row.get(column) is None, str(row.get(column))), reverse=desc)
        elif query.op == "insert":
            result = []
            for payload in query.payload:
                row = _insert_defaults(query.table)
                row.update(copy.deepcopy(payload))
                row.setdefault("id", str(uuid.uuid4()))
                rows.append(row)
                result.append(row)
        elif query.op == "update":
            result = [row for row in rows if query.matches(row)]
            for row in result:
                row.update(copy.deepcopy(query.payload))
        else:
            result = [row for row in rows if query.matches(row)]
            self.tables[query.table] = [row for row in rows if not query.matches(row)]

        return SimpleNamespace(data=copy.deepcopy(result))


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def store(fake_db):
    return ClinicStore(fake_db)


@pytest.fixture
def clinic_rows(fake_db):
    """A small clinic: one customer holding a 5-unit course that uses two consumables"""
    gloves = fake_db.add("inventory", name="Sterile Gloves", quantity=10, unit="pair", min_level=2, price_per_unit=10)
    vitamin = fake_db.add("inventory", name="Vitamin C Ampoule", quantity=3, unit="ampoule", min_level=1, price_per_unit=20)
    botox = fake_db.add("services", name="Botox Injection", price=100, duration_minutes=30, category="Injection")
    course = fake_db.add(
        "courses", name="IV Drip (5 sessions)", price=500, total_units=5, description="Vitamin drip",
        consumables=[
            {"inventoryItemId": gloves["id"], "quantityUsed": 1},
            {"inventoryItemId": vitamin["id"], "quantityUsed": 2},
        ],
    )
    customer = fake_db.add(
        "customers", name="Suda Jaidee", phone="081-234-5678", email="suda@example.com",
        birth_date="1990-04-01", notes="Allergic to penicillin", line_id="suda.j", address="Bangkok",
    )
    instance = fake_db.add(
        "customer_courses", customer_id=customer["id"], course_id=course["id"], course_name=course["name"],
        total_units=5, remaining_units=5, purchase_date="2024-01-05T10:00:00", expiry_date=None, active=True,
    )
    return SimpleNamespace(
        gloves=gloves, vitamin=vitamin, botox=botox, course=course, customer=customer, instance=instance,
    )
