from __future__ import annotations

import datetime as dt
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import Field

from .config.schema import SCHEMA_SQL
from .config.settings import Settings, get_settings
from .exceptions import (
    ClinicAuthError,
    ClinicOperationError,
    ClinicValidationError,
    SchemaMissingError,
    StaleSnapshotError,
)
from .logging_conf import configure_logging
from .models import (
    Appointment,
    AppointmentStatus,
    ClinicModel,
    ClinicSnapshot,
    CourseDefinition,
    Customer,
    InventoryItem,
    SaleItem,
    Service,
    TreatmentDetails,
    TreatmentRecord,
    Transaction,
)
from .services import operations
from .services.auth import ClinicAuth
from .services.backup import export_to_sql, reset_database, seed_database
from .services.store import ClinicStore
from .services.supabase_client import create_supabase_client

logger = logging.getLogger(__name__)


class Credentials(ClinicModel):
    email: str
    password: str


class SaleRequest(ClinicModel):
    customer_id: str
    items: List[SaleItem]
    payment_method: str


class RedemptionRequest(TreatmentDetails):
    units_to_use: int = Field(gt=0)


class StockChange(ClinicModel):
    quantity_change: int


class StatusChange(ClinicModel):
    status: AppointmentStatus


OK = {"status": "ok"}


def get_store(request: Request) -> ClinicStore:
    return request.app.state.store


def get_auth(request: Request) -> ClinicAuth:
    return request.app.state.auth


def signed_in_store(store: ClinicStore = Depends(get_store)) -> ClinicStore:
    if store.auth is not None and not store.auth.is_signed_in:
        raise ClinicAuthError("Sign in required")
    return store


router = APIRouter()


@router.get("/")
def health() -> Dict[str, str]:
    return {"service": "clinic-ops"}


# ===== SESSION =====

@router.post("/auth/sign-in")
async def sign_in(body: Credentials, auth: ClinicAuth = Depends(get_auth),
                  store: ClinicStore = Depends(get_store)) -> Dict[str, Any]:
    await auth.sign_in(body.email, body.password)
    await store.refresh()
    return {"status": "ok", "email": auth.email}


@router.post("/auth/sign-up")
async def sign_up(body: Credentials, auth: ClinicAuth = Depends(get_auth),
                  store: ClinicStore = Depends(get_store)) -> Dict[str, Any]:
    signed_in = await auth.sign_up(body.email, body.password)
    if not signed_in:
        return {"status": "confirmation_required", "email": body.email}
    await store.refresh()
    return {"status": "ok", "email": auth.email}


@router.post("/auth/sign-out")
async def sign_out(auth: ClinicAuth = Depends(get_auth)) -> Dict[str, str]:
    await auth.sign_out()
    return OK


# ===== SNAPSHOT =====

@router.get("/snapshot")
async def read_snapshot(store: ClinicStore = Depends(signed_in_store)) -> ClinicSnapshot:
    if store.setup_required:
        raise SchemaMissingError("Database tables are missing")
    return store.snapshot


@router.post("/refresh")
async def refresh(store: ClinicStore = Depends(signed_in_store)) -> ClinicSnapshot:
    await store.refresh()
    if store.setup_required:
        raise SchemaMissingError("Database tables are missing")
    return store.snapshot


# ===== CUSTOMERS =====

@router.post("/customers", status_code=status.HTTP_201_CREATED)
async def add_customer(data: Dict[str, Any] = Body(...), store: ClinicStore = Depends(signed_in_store)) -> Customer:
    return await store.add_customer(data)


@router.patch("/customers/{customer_id}")
async def update_customer(customer_id: str, data: Dict[str, Any] = Body(...),
                          store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    await store.update_customer(customer_id, data)
    return OK


@router.delete("/customers/{customer_id}")
async def delete_customer(customer_id: str, store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    await store.delete_customer(customer_id)
    return OK


@router.post("/customers/{customer_id}/courses/{instance_id}/use")
async def use_course(customer_id: str, instance_id: str, body: RedemptionRequest,
                     store: ClinicStore = Depends(signed_in_store)) -> JSONResponse:
    details = TreatmentDetails.model_validate(body.model_dump(exclude={"units_to_use"}))
    record: Optional[TreatmentRecord] = await operations.use_course(
        store, customer_id, instance_id, body.units_to_use, details
    )
    if record is None:
        return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "noop"})
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=record.model_dump(mode="json", by_alias=True))


# ===== SERVICES =====

@router.post("/services", status_code=status.HTTP_201_CREATED)
async def add_service(data: Dict[str, Any] = Body(...), store: ClinicStore = Depends(signed_in_store)) -> Service:
    return await store.add_service(data)


@router.patch("/services/{service_id}")
async def update_service(service_id: str, data: Dict[str, Any] = Body(...),
                         store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    await store.update_service(service_id, data)
    return OK


@router.delete("/services/{service_id}")
async def delete_service(service_id: str, store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    await store.delete_service(service_id)
    return OK


# ===== INVENTORY =====

@router.post("/inventory", status_code=status.HTTP_201_CREATED)
async def add_inventory_item(data: Dict[str, Any] = Body(...),
                             store: ClinicStore = Depends(signed_in_store)) -> InventoryItem:
    return await store.add_inventory_item(data)


@router.patch("/inventory/{item_id}")
async def update_inventory_item(item_id: str, data: Dict[str, Any] = Body(...),
                                store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    await store.update_inventory_item(item_id, data)
    return OK


@router.post("/inventory/{item_id}/adjust")
async def adjust_stock(item_id: str, body: StockChange,
                       store: ClinicStore = Depends(signed_in_store)) -> Dict[str, Any]:
    quantity = await store.update_stock(item_id, body.quantity_change)
    if quantity is None:
        return {"status": "noop"}
    return {"status": "ok", "quantity": quantity}


@router.delete("/inventory/{item_id}")
async def delete_inventory_item(item_id: str, store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    await store.delete_inventory_item(item_id)
    return OK


# ===== COURSES =====

@router.post("/courses", status_code=status.HTTP_201_CREATED)
async def add_course(data: Dict[str, Any] = Body(...),
                     store: ClinicStore = Depends(signed_in_store)) -> CourseDefinition:
    return await store.add_course(data)


@router.patch("/courses/{course_id}")
async def update_course(course_id: str, data: Dict[str, Any] = Body(...),
                        store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    await store.update_course(course_id, data)
    return OK


@router.delete("/courses/{course_id}")
async def delete_course(course_id: str, store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    await store.delete_course(course_id)
    return OK


# ===== APPOINTMENTS =====

@router.post("/appointments", status_code=status.HTTP_201_CREATED)
async def add_appointment(data: Dict[str, Any] = Body(...),
                          store: ClinicStore = Depends(signed_in_store)) -> Appointment:
    return await store.add_appointment(data)


@router.patch("/appointments/{appointment_id}/status")
async def update_appointment_status(appointment_id: str, body: StatusChange,
                                    store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    await store.update_appointment_status(appointment_id, body.status)
    return OK


@router.delete("/appointments/{appointment_id}")
async def delete_appointment(appointment_id: str, store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    await store.delete_appointment(appointment_id)
    return OK


# ===== SALES =====

@router.post("/sales", status_code=status.HTTP_201_CREATED)
async def process_sale(body: SaleRequest, store: ClinicStore = Depends(signed_in_store)) -> Transaction:
    return await operations.process_sale(store, body.customer_id, body.items, body.payment_method)


# ===== ADMIN =====

@router.get("/export")
async def export(request: Request, store: ClinicStore = Depends(signed_in_store)) -> PlainTextResponse:
    settings: Settings = request.app.state.settings
    sql = export_to_sql(store.snapshot, settings.CLINIC_NAME)
    filename = f"clinic_backup_{dt.date.today().isoformat()}.sql"
    return PlainTextResponse(sql, headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@router.post("/admin/seed")
async def seed(store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    await seed_database(store)
    return OK


@router.post("/admin/reset")
async def reset(confirm: bool = False, store: ClinicStore = Depends(signed_in_store)) -> Dict[str, str]:
    if not confirm:
        raise ClinicValidationError("Reset deletes every clinic record, pass confirm=true")
    await reset_database(store)
    return OK


def _error(status_code: int, reason: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "error", "reason": reason, **extra})


def create_app(store: Optional[ClinicStore] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API app

    Args:
        store: Ready store to serve; when omitted one is created from the
            settings on startup
        settings: Defaults to the environment settings
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.store is None:
            configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
            client = await create_supabase_client(settings)
            app.state.auth = ClinicAuth(client)
            app.state.store = ClinicStore(client, auth=app.state.auth if settings.REQUIRE_SESSION else None)
            await app.state.store.refresh()
            logger.info("✅ Clinic API startup completed")
        yield

    app = FastAPI(title="Clinic Ops", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.auth = None
    if store is not None:
        app.state.auth = store.auth or ClinicAuth(store.client)

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.info("validation_error", extra={"evt": "validation_error", "path": request.url.path})
        return _error(status.HTTP_400_BAD_REQUEST, "validation error")

    @app.exception_handler(ClinicValidationError)
    async def clinic_validation_handler(request: Request, exc: ClinicValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, exc.message)

    @app.exception_handler(StaleSnapshotError)
    async def stale_snapshot_handler(request: Request, exc: StaleSnapshotError):
        return _error(status.HTTP_409_CONFLICT, exc.message)

    @app.exception_handler(ClinicOperationError)
    async def operation_error_handler(request: Request, exc: ClinicOperationError):
        return _error(status.HTTP_400_BAD_REQUEST, exc.message)

    @app.exception_handler(ClinicAuthError)
    async def auth_error_handler(request: Request, exc: ClinicAuthError):
        return _error(status.HTTP_401_UNAUTHORIZED, exc.message)

    @app.exception_handler(SchemaMissingError)
    async def schema_missing_handler(request: Request, exc: SchemaMissingError):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "setup_required", "reason": exc.message, "schemaSql": SCHEMA_SQL},
        )

    app.include_router(router)
    return app


app = create_app()
