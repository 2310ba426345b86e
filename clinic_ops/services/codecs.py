"""
Row codecs for the clinic tables
One declarative codec per table maps persisted rows to models and builds write payloads
"""

from typing import Annotated, Any, Dict, Iterable, List, Mapping, Optional, Type

from pydantic import BaseModel, TypeAdapter, ValidationError

from ..exceptions import ClinicValidationError
from ..models import (
    Appointment,
    ClinicSnapshot,
    CourseDefinition,
    CourseInstance,
    Customer,
    InventoryItem,
    Service,
    TreatmentRecord,
    Transaction,
)


class EntityCodec:
    """Maps one table's snake_case rows to a model and back"""

    def __init__(self, model: Type[BaseModel], table: str,
                 columns: Optional[Dict[str, str]] = None,
                 read_only: Iterable[str] = (),
                 order_by: Optional[str] = None,
                 descending: bool = False):
        """
        Args:
            model: Model the rows are validated into
            table: Table name in the remote store
            columns: Field name -> column name, for fields stored under another name
            read_only: Fields that are never written (ids, derived lists)
            order_by: Column used to sort reads for display
            descending: Sort direction for order_by
        """
        self.model = model
        self.table = table
        self.columns = dict(columns or {})
        self.fields_by_column = {column: field for field, column in self.columns.items()}
        self.read_only = {"id", *read_only}
        self.order_by = order_by
        self.descending = descending

        self._aliases = {info.alias: name for name, info in model.model_fields.items() if info.alias}
        self._adapters: Dict[str, TypeAdapter] = {}

    def column_for(self, field: str) -> str:
        return self.columns.get(field, field)

    def field_for(self, key: str) -> str:
        """Resolve a field name or camelCase alias to the model's field name"""
        if key in self.model.model_fields:
            return key
        if key in self._aliases:
            return self._aliases[key]
        raise ClinicValidationError(f"Unknown field '{key}' for {self.table}")

    def from_row(self, row: Mapping[str, Any], **extra: Any) -> BaseModel:
        data = {self.fields_by_column.get(column, column): value for column, value in row.items()}
        data.update(extra)
        return self.model.model_validate(data)

    def from_rows(self, rows: Iterable[Mapping[str, Any]]) -> List[BaseModel]:
        return [self.from_row(row) for row in rows]

    def to_row(self, data: Mapping[str, Any], partial: bool = True) -> Dict[str, Any]:
        """
        Build a write payload from field names or aliases

        Only the keys present in data are included, so an update never
        touches columns the caller did not mention. A full write
        (partial=False) also carries the model defaults of omitted fields.

        Raises:
            ClinicValidationError: For unknown or read-only keys, bad values,
                or (with partial=False) missing required fields
        """
        row: Dict[str, Any] = {}
        seen = set()
        for key, value in data.items():
            field = self.field_for(key)
            if field in self.read_only:
                raise ClinicValidationError(f"Field '{key}' of {self.table} cannot be written")
            row[self.column_for(field)] = self._serialize(field, value)
            seen.add(field)

        if not partial:
            missing = []
            for name, info in self.model.model_fields.items():
                if name in self.read_only or name in seen:
                    continue
                if info.is_required():
                    missing.append(name)
                    continue
                # None defaults are left to the column default
                default = info.get_default(call_default_factory=True)
                if default is not None:
                    row[self.column_for(name)] = self._serialize(name, default)
            if missing:
                raise ClinicValidationError(f"Missing required fields for {self.table}: {', '.join(missing)}")

        return row

    def _serialize(self, field: str, value: Any) -> Any:
        adapter = self._adapters.get(field)
        if adapter is None:
            info = self.model.model_fields[field]
            # keep Field constraints such as ge=0 on the adapter
            annotation = Annotated[(info.annotation, *info.metadata)] if info.metadata else info.annotation
            adapter = TypeAdapter(annotation)
            self._adapters[field] = adapter
        try:
            validated = adapter.validate_python(value)
        except ValidationError as e:
            raise ClinicValidationError(f"Invalid value for {self.table}.{field}: {e.errors()[0]['msg']}") from e
        # jsonb columns keep the camelCase keys of nested models
        return adapter.dump_python(validated, mode="json", by_alias=True)


CUSTOMERS = EntityCodec(Customer, "customers", read_only=("active_courses", "treatment_history"), order_by="name")
SERVICES = EntityCodec(Service, "services", order_by="name")
APPOINTMENTS = EntityCodec(Appointment, "appointments", order_by="date", descending=True)
INVENTORY = EntityCodec(InventoryItem, "inventory", order_by="name")
COURSES = EntityCodec(CourseDefinition, "courses", order_by="name")
TRANSACTIONS = EntityCodec(Transaction, "transactions", columns={"date": "created_at"},
                           order_by="created_at", descending=True)
CUSTOMER_COURSES = EntityCodec(CourseInstance, "customer_courses")
TREATMENT_RECORDS = EntityCodec(TreatmentRecord, "treatment_records", order_by="date", descending=True)

# Read order of a snapshot refresh
ALL_CODECS = (CUSTOMERS, SERVICES, APPOINTMENTS, INVENTORY, COURSES, TRANSACTIONS, CUSTOMER_COURSES, TREATMENT_RECORDS)


def build_snapshot(rows: Mapping[str, Optional[List[Mapping[str, Any]]]]) -> ClinicSnapshot:
    """
    Map the raw rows of every table into a snapshot

    Course instances and treatment records are nested under their customer
    by matching customer_id; rows pointing at unknown customers are dropped.

    Args:
        rows: Table name -> rows as returned by the store

    Raises:
        pydantic.ValidationError: If a row cannot be mapped
    """
    course_instances = CUSTOMER_COURSES.from_rows(rows.get(CUSTOMER_COURSES.table) or [])
    treatments = TREATMENT_RECORDS.from_rows(rows.get(TREATMENT_RECORDS.table) or [])

    customers = [
        CUSTOMERS.from_row(
            row,
            active_courses=[cc for cc in course_instances if cc.customer_id == row.get("id")],
            treatment_history=[t for t in treatments if t.customer_id == row.get("id")],
        )
        for row in rows.get(CUSTOMERS.table) or []
    ]

    return ClinicSnapshot(
        customers=customers,
        services=SERVICES.from_rows(rows.get(SERVICES.table) or []),
        appointments=APPOINTMENTS.from_rows(rows.get(APPOINTMENTS.table) or []),
        inventory=INVENTORY.from_rows(rows.get(INVENTORY.table) or []),
        course_definitions=COURSES.from_rows(rows.get(COURSES.table) or []),
        transactions=TRANSACTIONS.from_rows(rows.get(TRANSACTIONS.table) or []),
    )
