"""
Clinic store for the Supabase-backed back office
Holds the last-fetched snapshot of every table and re-fetches all of it after each write
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional

import httpx
from postgrest.exceptions import APIError
from pydantic import BaseModel, ValidationError

from ..config.schema import FOREIGN_KEY_VIOLATION_CODE, MONITORED_TABLES, RELATION_MISSING_CODE
from ..exceptions import ClinicOperationError
from ..models import (
    Appointment,
    AppointmentStatus,
    ClinicSnapshot,
    CourseDefinition,
    Customer,
    InventoryItem,
    Service,
)
from . import codecs
from .auth import ClinicAuth
from .codecs import EntityCodec

logger = logging.getLogger(__name__)

MISSING_TABLES = "MISSING_TABLES"


def is_relation_missing(error: Any) -> bool:
    return getattr(error, "code", None) == RELATION_MISSING_CODE


def mentions_relation(error: Any) -> bool:
    message = getattr(error, "message", None) or str(error)
    return is_relation_missing(error) or "relation" in message


class ClinicStore:
    """Snapshot of the clinic tables plus the operations that change them"""

    def __init__(self, client: Any, auth: Optional[ClinicAuth] = None):
        """
        Args:
            client: Async Supabase client (anything with table(...) query builders)
            auth: Session gate; when given, refreshes are skipped until a user signs in
        """
        self.client = client
        self.auth = auth
        self.snapshot = ClinicSnapshot()
        self.is_loading = False
        self.connection_error: Optional[str] = None
        self.last_error: Optional[str] = None
        self.stale = True
        self._redemption_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def setup_required(self) -> bool:
        return self.connection_error == MISSING_TABLES

    @property
    def customers(self) -> List[Customer]:
        return self.snapshot.customers

    @property
    def services(self) -> List[Service]:
        return self.snapshot.services

    @property
    def appointments(self) -> List[Appointment]:
        return self.snapshot.appointments

    @property
    def inventory(self) -> List[InventoryItem]:
        return self.snapshot.inventory

    @property
    def course_definitions(self) -> List[CourseDefinition]:
        return self.snapshot.course_definitions

    # ===== SNAPSHOT =====

    def invalidate(self) -> None:
        """Mark the snapshot as out of date until the next successful refresh"""
        self.stale = True

    async def refresh(self) -> ClinicSnapshot:
        """
        Re-fetch every table concurrently and replace the snapshot wholesale

        A missing table in the monitored subset clears the snapshot and puts
        the store in the setup-required state. Any other failure is logged
        and leaves the previous snapshot in place.
        """
        if self.auth is not None and not self.auth.is_signed_in:
            logger.debug("Skipping refresh, no user signed in")
            return self.snapshot

        self.is_loading = True
        self.connection_error = None
        try:
            results = await asyncio.gather(
                *(self._fetch(codec) for codec in codecs.ALL_CODECS),
                return_exceptions=True,
            )
            outcome = {codec.table: result for codec, result in zip(codecs.ALL_CODECS, results)}

            missing = next((outcome[table] for table in MONITORED_TABLES if is_relation_missing(outcome[table])), None)
            if missing is not None:
                logger.error(f"❌ Database tables missing: {missing}")
                self._mark_schema_missing()
                return self.snapshot

            for result in results:
                if isinstance(result, BaseException) and not isinstance(result, Exception):
                    raise result

            errors = [(table, result) for table, result in outcome.items() if isinstance(result, Exception)]
            if errors:
                for table, error in errors:
                    logger.error(f"❌ Error fetching {table}: {error}")
                if any(mentions_relation(error) for _, error in errors):
                    self._mark_schema_missing()
                else:
                    self.last_error = str(errors[0][1])
                return self.snapshot

            try:
                snapshot = codecs.build_snapshot(outcome)
            except ValidationError as e:
                logger.error(f"❌ Error mapping fetched rows: {e}")
                self.last_error = str(e)
                return self.snapshot

            self.snapshot = snapshot
            self.stale = False
            self.last_error = None
            self._prune_redemption_locks()
            logger.info(
                f"🔄 Snapshot refreshed: {len(snapshot.customers)} customers, "
                f"{len(snapshot.services)} services, {len(snapshot.transactions)} transactions"
            )
            return snapshot
        finally:
            self.is_loading = False

    def _mark_schema_missing(self) -> None:
        self.snapshot = ClinicSnapshot()
        self.connection_error = MISSING_TABLES
        self.stale = True

    async def _fetch(self, codec: EntityCodec) -> List[Dict[str, Any]]:
        query = self.client.table(codec.table).select("*")
        if codec.order_by:
            query = query.order(codec.order_by, desc=codec.descending)
        response = await query.execute()
        return response.data or []

    def redemption_lock(self, instance_id: str) -> asyncio.Lock:
        """Lock serializing redemptions of one course instance"""
        return self._redemption_locks[instance_id]

    def _prune_redemption_locks(self) -> None:
        """Drop idle locks of course instances that are no longer loaded"""
        loaded = {cc.id for customer in self.snapshot.customers for cc in customer.active_courses}
        for instance_id in [i for i, lock in self._redemption_locks.items() if i not in loaded and not lock.locked()]:
            del self._redemption_locks[instance_id]

    # ===== ROW HELPERS =====

    async def run(self, query: Any, action: str) -> List[Dict[str, Any]]:
        """
        Execute a query builder and return its rows

        Raises:
            ClinicOperationError: If the store rejects the query or cannot be reached
        """
        try:
            response = await query.execute()
        except APIError as e:
            logger.error(f"❌ Failed to {action}: {e.message}")
            raise ClinicOperationError(f"Failed to {action}: {e.message}", code=e.code) from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Failed to {action}: {e}")
            raise ClinicOperationError(f"Failed to {action}: {e}") from e
        return response.data or []

    async def create_row(self, codec: EntityCodec, data: Mapping[str, Any], action: str) -> BaseModel:
        payload = codec.to_row(data, partial=False)
        rows = await self.run(self.client.table(codec.table).insert(payload), action)
        if not rows:
            logger.error(f"❌ Failed to {action}: no row returned")
            raise ClinicOperationError(f"Failed to {action}: no row returned")
        try:
            return codec.from_row(rows[0])
        except ValidationError as e:
            logger.error(f"❌ Failed to {action}: stored row is invalid: {e}")
            raise ClinicOperationError(f"Failed to {action}: stored row is invalid") from e

    async def update_row(self, codec: EntityCodec, row_id: str, data: Mapping[str, Any], action: str) -> bool:
        """Write only the given fields; returns False when there was nothing to write"""
        payload = codec.to_row(data)
        if not payload:
            return False
        await self.run(self.client.table(codec.table).update(payload).eq("id", row_id), action)
        return True

    async def delete_row(self, codec: EntityCodec, row_id: str, action: str) -> None:
        await self.run(self.client.table(codec.table).delete().eq("id", row_id), action)

    async def write_stock(self, item_id: str, quantity: int) -> None:
        await self.run(
            self.client.table(codecs.INVENTORY.table).update({"quantity": max(0, quantity)}).eq("id", item_id),
            "update stock",
        )

    # ===== APPOINTMENTS =====

    async def add_appointment(self, data: Mapping[str, Any]) -> Appointment:
        appointment = await self.create_row(codecs.APPOINTMENTS, data, "add appointment")
        await self.refresh()
        return appointment

    async def update_appointment(self, appointment_id: str, data: Mapping[str, Any]) -> None:
        if await self.update_row(codecs.APPOINTMENTS, appointment_id, data, "update appointment"):
            await self.refresh()

    async def update_appointment_status(self, appointment_id: str, status: AppointmentStatus) -> None:
        """Any status may follow any other"""
        await self.update_appointment(appointment_id, {"status": status})

    async def delete_appointment(self, appointment_id: str) -> None:
        await self.delete_row(codecs.APPOINTMENTS, appointment_id, "delete appointment")
        await self.refresh()

    # ===== CUSTOMERS =====

    async def add_customer(self, data: Mapping[str, Any]) -> Customer:
        customer = await self.create_row(codecs.CUSTOMERS, data, "add customer")
        logger.info(f"✅ Customer added: {customer.name}")
        await self.refresh()
        return customer

    async def update_customer(self, customer_id: str, data: Mapping[str, Any]) -> None:
        if await self.update_row(codecs.CUSTOMERS, customer_id, data, "update customer"):
            await self.refresh()

    async def delete_customer(self, customer_id: str) -> None:
        try:
            await self.delete_row(codecs.CUSTOMERS, customer_id, "delete customer")
        except ClinicOperationError as e:
            if e.code == FOREIGN_KEY_VIOLATION_CODE:
                raise ClinicOperationError(
                    "Cannot delete customer with existing records", code=e.code
                ) from e
            raise
        await self.refresh()

    # ===== SERVICES =====

    async def add_service(self, data: Mapping[str, Any]) -> Service:
        service = await self.create_row(codecs.SERVICES, data, "add service")
        await self.refresh()
        return service

    async def update_service(self, service_id: str, data: Mapping[str, Any]) -> None:
        if await self.update_row(codecs.SERVICES, service_id, data, "update service"):
            await self.refresh()

    async def delete_service(self, service_id: str) -> None:
        sold = any(
            item.kind == "service" and item.item_id == service_id
            for transaction in self.snapshot.transactions
            for item in transaction.items
        )
        if sold:
            raise ClinicOperationError("Cannot delete a service that appears on recorded transactions")
        await self.delete_row(codecs.SERVICES, service_id, "delete service")
        await self.refresh()

    # ===== INVENTORY =====

    async def update_stock(self, item_id: str, quantity_change: int) -> Optional[int]:
        """
        Adjust stock relative to the loaded quantity, never going below zero

        Returns:
            The new quantity, or None when the item is not in the snapshot
        """
        item = self.snapshot.find_inventory_item(item_id)
        if item is None:
            return None
        new_quantity = max(0, item.quantity + quantity_change)
        await self.write_stock(item_id, new_quantity)
        await self.refresh()
        return new_quantity

    async def add_inventory_item(self, data: Mapping[str, Any]) -> InventoryItem:
        item = await self.create_row(codecs.INVENTORY, data, "add inventory item")
        await self.refresh()
        return item

    async def update_inventory_item(self, item_id: str, data: Mapping[str, Any]) -> None:
        if await self.update_row(codecs.INVENTORY, item_id, data, "update inventory"):
            await self.refresh()

    async def delete_inventory_item(self, item_id: str) -> None:
        await self.delete_row(codecs.INVENTORY, item_id, "delete inventory")
        await self.refresh()

    # ===== COURSES =====

    async def add_course(self, data: Mapping[str, Any]) -> CourseDefinition:
        course = await self.create_row(codecs.COURSES, data, "add course")
        await self.refresh()
        return course

    async def update_course(self, course_id: str, data: Mapping[str, Any]) -> None:
        if await self.update_row(codecs.COURSES, course_id, data, "update course"):
            await self.refresh()

    async def delete_course(self, course_id: str) -> None:
        await self.delete_row(codecs.COURSES, course_id, "delete course")
        await self.refresh()
