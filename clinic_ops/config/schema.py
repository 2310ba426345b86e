"""
Database schema reference for the clinic Supabase project
"""

from typing import Dict

# PostgreSQL "relation does not exist"
RELATION_MISSING_CODE = "42P01"
# PostgreSQL foreign key violation
FOREIGN_KEY_VIOLATION_CODE = "23503"

# Never assigned by gen_random_uuid(), used to match every row on bulk deletes
NIL_UUID = "00000000-0000-0000-0000-000000000000"

TABLES: Dict[str, str] = {
    "customers": "Customer records",
    "services": "Service catalog",
    "courses": "Course definitions (prepaid bundles of treatment units)",
    "inventory": "Consumable stock",
    "customer_courses": "Courses purchased by customers",
    "treatment_records": "Treatment log, one row per redemption",
    "transactions": "Point-of-sale transactions",
    "appointments": "Appointment bookings",
}

# A missing table in this subset means the project has not been set up
MONITORED_TABLES = ("customers", "services", "appointments", "inventory")

# Child tables first so foreign keys never block the bulk delete
RESET_ORDER = (
    "treatment_records",
    "customer_courses",
    "appointments",
    "transactions",
    "inventory",
    "services",
    "courses",
    "customers",
)

SCHEMA_SQL = """
create table if not exists inventory (
  id uuid default gen_random_uuid() primary key,
  name text not null,
  quantity int default 0,
  unit text,
  min_level int default 10,
  price_per_unit decimal default 0
);

create table if not exists services (
  id uuid default gen_random_uuid() primary key,
  name text not null,
  price decimal default 0,
  duration_minutes int default 30,
  category text,
  consumables jsonb,
  image_url text
);

create table if not exists courses (
  id uuid default gen_random_uuid() primary key,
  name text not null,
  price decimal default 0,
  total_units int default 1,
  description text,
  consumables jsonb
);

create table if not exists customers (
  id uuid default gen_random_uuid() primary key,
  name text not null,
  phone text,
  email text,
  birth_date date,
  notes text,
  line_id text,
  address text
);

create table if not exists customer_courses (
  id uuid default gen_random_uuid() primary key,
  customer_id uuid references customers(id),
  course_id uuid references courses(id),
  course_name text,
  total_units int,
  remaining_units int,
  purchase_date timestamp default now(),
  expiry_date timestamp,
  active boolean default true
);

create table if not exists treatment_records (
  id uuid default gen_random_uuid() primary key,
  customer_id uuid references customers(id),
  date timestamp default now(),
  treatment_name text,
  details text,
  doctor_name text,
  units_used int default 0,
  doctor_fee decimal default 0
);

create table if not exists transactions (
  id uuid default gen_random_uuid() primary key,
  created_at timestamp default now(),
  customer_id uuid references customers(id),
  total_amount decimal,
  payment_method text,
  items jsonb
);

create table if not exists appointments (
  id uuid default gen_random_uuid() primary key,
  customer_id uuid references customers(id),
  service_id uuid,
  date date,
  time text,
  status text default 'scheduled',
  doctor_name text
);
""".strip()
