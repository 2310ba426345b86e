"""
Multi-step clinic operations: point-of-sale checkout and course redemption

Neither flow runs inside a database transaction. When a later step fails the
earlier writes are undone with compensating writes on a best-effort basis.
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import TypeAdapter, ValidationError

from ..exceptions import ClinicOperationError, ClinicValidationError, StaleSnapshotError
from ..models import SaleItem, TreatmentDetails, TreatmentRecord, Transaction
from . import codecs
from .store import ClinicStore

logger = logging.getLogger(__name__)

_sale_items = TypeAdapter(List[SaleItem])


def sale_total(items: Iterable[SaleItem]) -> float:
    return sum(item.price * item.quantity for item in items)


async def process_sale(store: ClinicStore, customer_id: str,
                       items: Iterable[Union[SaleItem, Mapping[str, Any]]],
                       payment_method: str) -> Transaction:
    """
    Record a sale and open a course instance for every course unit sold

    Args:
        store: Clinic store holding the current snapshot
        customer_id: Paying customer
        items: Line items (kind, id, price, quantity)
        payment_method: How the customer paid

    Returns:
        The recorded transaction

    Raises:
        ClinicValidationError: If a line item is malformed
        ClinicOperationError: If the transaction or course instances cannot be written
    """
    try:
        line_items = _sale_items.validate_python(list(items))
    except ValidationError as e:
        raise ClinicValidationError(f"Invalid sale items: {e.errors()[0]['msg']}") from e

    total_amount = sale_total(line_items)
    transaction = await store.create_row(
        codecs.TRANSACTIONS,
        {
            "customer_id": customer_id,
            "total_amount": total_amount,
            "payment_method": payment_method,
            "items": line_items,
        },
        "record sale",
    )
    logger.info(f"💰 Sale recorded for customer {customer_id}: {total_amount}")

    course_rows = []
    for item in line_items:
        if item.kind != "course":
            continue
        definition = store.snapshot.find_course(item.item_id)
        if definition is None:
            logger.warning(f"⚠️ Course {item.item_id} not in snapshot, no instance opened")
            continue
        for _ in range(item.quantity):
            course_rows.append(codecs.CUSTOMER_COURSES.to_row({
                "customer_id": customer_id,
                "course_id": definition.id,
                "course_name": definition.name,
                "total_units": definition.total_units,
                "remaining_units": definition.total_units,
                "active": True,
            }))

    if course_rows:
        try:
            await store.run(store.client.table(codecs.CUSTOMER_COURSES.table).insert(course_rows), "open course instances")
        except ClinicOperationError:
            await _compensate(
                store.delete_row(codecs.TRANSACTIONS, transaction.id, "remove transaction"),
                f"transaction {transaction.id}",
            )
            await store.refresh()
            raise
        logger.info(f"✅ Opened {len(course_rows)} course instance(s) for customer {customer_id}")

    await store.refresh()
    return transaction


async def use_course(store: ClinicStore, customer_id: str, course_instance_id: str,
                     units_to_use: int,
                     treatment: Union[TreatmentDetails, Mapping[str, Any]]) -> Optional[TreatmentRecord]:
    """
    Redeem units of a customer's course, log the treatment and deduct consumables

    Redemptions of the same course instance run one at a time, and the
    decrement only applies if the stored remaining units still match the
    snapshot.

    Returns:
        The treatment record, or None when the customer or course instance is not loaded

    Raises:
        ClinicValidationError: If units_to_use is not a positive integer
        StaleSnapshotError: If the course instance changed since the last refresh
        ClinicOperationError: If a write fails
    """
    if isinstance(units_to_use, bool) or not isinstance(units_to_use, int) or units_to_use < 1:
        raise ClinicValidationError("units_to_use must be a positive integer")
    try:
        details = TreatmentDetails.model_validate(treatment)
    except ValidationError as e:
        raise ClinicValidationError(f"Invalid treatment details: {e.errors()[0]['msg']}") from e

    # locks are only created for instances present in the snapshot
    if store.snapshot.find_course_instance(customer_id, course_instance_id) is None:
        logger.debug(f"Course instance {course_instance_id} of customer {customer_id} not loaded, nothing to redeem")
        return None

    async with store.redemption_lock(course_instance_id):
        snapshot = store.snapshot
        customer = snapshot.find_customer(customer_id)
        instance = snapshot.find_course_instance(customer_id, course_instance_id)
        if customer is None or instance is None:
            logger.debug(f"Course instance {course_instance_id} of customer {customer_id} not loaded, nothing to redeem")
            return None

        previous = instance.remaining_units
        new_remaining = max(0, previous - units_to_use)
        table = store.client.table(codecs.CUSTOMER_COURSES.table)
        updated = await store.run(
            table.update({"remaining_units": new_remaining, "active": new_remaining > 0})
            .eq("id", course_instance_id)
            .eq("remaining_units", previous),
            "redeem course units",
        )
        if not updated:
            logger.warning(f"⚠️ Course instance {course_instance_id} changed since last refresh")
            await store.refresh()
            raise StaleSnapshotError("Course instance was changed by another session, please retry")

        try:
            record = await store.create_row(
                codecs.TREATMENT_RECORDS,
                {
                    "customer_id": customer_id,
                    "treatment_name": details.treatment_name,
                    "details": details.details,
                    "doctor_name": details.doctor_name,
                    "units_used": units_to_use,
                    "doctor_fee": details.doctor_fee or 0,
                },
                "record treatment",
            )
        except ClinicOperationError:
            await _compensate(
                store.run(
                    store.client.table(codecs.CUSTOMER_COURSES.table)
                    .update({"remaining_units": previous, "active": previous > 0})
                    .eq("id", course_instance_id),
                    "restore course units",
                ),
                f"course instance {course_instance_id}",
            )
            await store.refresh()
            raise
        logger.info(f"✅ Redeemed {units_to_use} unit(s) of {instance.course_name} for {customer.name}, {new_remaining} left")

        failed = await _deduct_consumables(store, instance.course_id, units_to_use)

        await store.refresh()
        if failed:
            raise ClinicOperationError(f"Failed to deduct stock for: {', '.join(failed)}")
        return record


async def _deduct_consumables(store: ClinicStore, course_id: Optional[str], units: int) -> List[str]:
    """Deduct each consumable independently; returns the names that failed"""
    definition = store.snapshot.find_course(course_id) if course_id else None
    if definition is None or not definition.consumables:
        return []

    failed = []
    for consumable in definition.consumables:
        item = store.snapshot.find_inventory_item(consumable.inventory_item_id)
        if item is None:
            continue
        deduct = consumable.quantity_used * units
        try:
            await store.write_stock(item.id, item.quantity - deduct)
        except ClinicOperationError:
            failed.append(item.name)
    return failed


async def _compensate(undo: Any, what: str) -> None:
    try:
        await undo
        logger.info(f"↩️ Rolled back {what}")
    except ClinicOperationError as e:
        logger.error(f"❌ Could not roll back {what}: {e.message}")
