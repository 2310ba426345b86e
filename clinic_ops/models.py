import datetime as dt
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ClinicModel(BaseModel):
    """Attributes are snake_case like the columns, JSON at the boundary is camelCase"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class ConsumableUsage(ClinicModel):
    inventory_item_id: str
    quantity_used: int = Field(default=1, ge=0)


class Service(ClinicModel):
    id: str
    name: str
    price: float = 0
    duration_minutes: int = 30
    category: Optional[str] = None
    consumables: Optional[List[ConsumableUsage]] = None
    image_url: Optional[str] = None


class CourseDefinition(ClinicModel):
    id: str
    name: str
    price: float = 0
    total_units: int = Field(default=1, ge=1)
    description: Optional[str] = None
    consumables: Optional[List[ConsumableUsage]] = None


class CourseInstance(ClinicModel):
    id: str
    customer_id: Optional[str] = None
    course_id: Optional[str] = None
    course_name: Optional[str] = None
    total_units: int = 0
    remaining_units: int = 0
    purchase_date: Optional[dt.datetime] = None
    expiry_date: Optional[dt.datetime] = None
    active: bool = True


class TreatmentRecord(ClinicModel):
    id: str
    customer_id: Optional[str] = None
    date: Optional[dt.datetime] = None
    treatment_name: Optional[str] = None
    details: Optional[str] = None
    doctor_name: Optional[str] = None
    units_used: int = 0
    doctor_fee: float = 0


class Customer(ClinicModel):
    id: str
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    birth_date: Optional[dt.date] = None
    notes: Optional[str] = None
    line_id: Optional[str] = None
    address: Optional[str] = None
    # Denormalized from customer_courses and treatment_records on refresh
    active_courses: List[CourseInstance] = Field(default_factory=list)
    treatment_history: List[TreatmentRecord] = Field(default_factory=list)


class InventoryItem(ClinicModel):
    id: str
    name: str
    quantity: int = 0
    unit: Optional[str] = None
    min_level: int = 10
    price_per_unit: float = 0

    @property
    def needs_reorder(self) -> bool:
        return self.quantity <= self.min_level


class SaleItem(ClinicModel):
    kind: Literal["service", "course"] = Field(alias="type")
    item_id: str = Field(alias="id")
    price: float = Field(ge=0)
    quantity: int = Field(default=1, gt=0)


class Transaction(ClinicModel):
    id: str
    customer_id: Optional[str] = None
    total_amount: float = 0
    payment_method: Optional[str] = None
    items: List[SaleItem] = Field(default_factory=list)
    date: Optional[dt.datetime] = None


class Appointment(ClinicModel):
    id: str
    customer_id: Optional[str] = None
    service_id: Optional[str] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    doctor_name: Optional[str] = None


class TreatmentDetails(ClinicModel):
    """What the attending staff records when a course unit is redeemed"""
    treatment_name: str
    details: Optional[str] = None
    doctor_name: Optional[str] = None
    doctor_fee: float = 0


class ClinicSnapshot(ClinicModel):
    customers: List[Customer] = Field(default_factory=list)
    services: List[Service] = Field(default_factory=list)
    appointments: List[Appointment] = Field(default_factory=list)
    inventory: List[InventoryItem] = Field(default_factory=list)
    course_definitions: List[CourseDefinition] = Field(default_factory=list)
    transactions: List[Transaction] = Field(default_factory=list)

    def find_customer(self, customer_id: str) -> Optional[Customer]:
        return next((c for c in self.customers if c.id == customer_id), None)

    def find_service(self, service_id: str) -> Optional[Service]:
        return next((s for s in self.services if s.id == service_id), None)

    def find_course(self, course_id: str) -> Optional[CourseDefinition]:
        return next((c for c in self.course_definitions if c.id == course_id), None)

    def find_inventory_item(self, item_id: str) -> Optional[InventoryItem]:
        return next((i for i in self.inventory if i.id == item_id), None)

    def find_course_instance(self, customer_id: str, instance_id: str) -> Optional[CourseInstance]:
        customer = self.find_customer(customer_id)
        if customer is None:
            return None
        return next((cc for cc in customer.active_courses if cc.id == instance_id), None)

    def is_empty(self) -> bool:
        return not any((
            self.customers, self.services, self.appointments,
            self.inventory, self.course_definitions, self.transactions,
        ))
