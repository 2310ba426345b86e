import pytest
from datetime import date, datetime

from clinic_ops.exceptions import ClinicValidationError
from clinic_ops.models import AppointmentStatus, SaleItem
from clinic_ops.services import codecs


class TestEntityCodec:
    """Unit tests for the row codecs"""

    def test_from_row_maps_renamed_columns(self):
        """Test transaction created_at is read into date"""
        row = {
            "id": "t1",
            "customer_id": "c1",
            "total_amount": 700,
            "payment_method": "cash",
            "items": [{"type": "service", "id": "s1", "price": 100, "quantity": 2}],
            "created_at": "2024-03-01T09:30:00",
        }

        transaction = codecs.TRANSACTIONS.from_row(row)

        assert transaction.date == datetime(2024, 3, 1, 9, 30)
        assert transaction.items[0].kind == "service"
        assert transaction.items[0].item_id == "s1"

    def test_from_row_ignores_unknown_columns(self):
        """Test extra columns in a row do not break mapping"""
        service = codecs.SERVICES.from_row({"id": "s1", "name": "Laser", "legacy_code": "X1"})
        assert service.name == "Laser"
        assert service.duration_minutes == 30

    def test_to_row_is_sparse(self):
        """Test only the given fields end up in an update payload"""
        assert codecs.CUSTOMERS.to_row({"phone": "099-000-0000"}) == {"phone": "099-000-0000"}

    def test_to_row_accepts_camel_case(self):
        """Test camelCase aliases resolve to snake_case columns"""
        row = codecs.CUSTOMERS.to_row({"birthDate": date(1990, 4, 1), "lineId": "suda.j"})
        assert row == {"birth_date": "1990-04-01", "line_id": "suda.j"}

    def test_to_row_uses_column_overrides(self):
        """Test fields stored under another column name"""
        row = codecs.TRANSACTIONS.to_row({"date": datetime(2024, 3, 1, 9, 30)})
        assert row == {"created_at": "2024-03-01T09:30:00"}

    def test_to_row_keeps_camel_case_inside_jsonb(self):
        """Test nested consumables are written with camelCase keys"""
        row = codecs.COURSES.to_row({"consumables": [{"inventory_item_id": "i1", "quantity_used": 2}]})
        assert row == {"consumables": [{"inventoryItemId": "i1", "quantityUsed": 2}]}

    def test_to_row_serializes_sale_items_by_persisted_keys(self):
        """Test sale items keep the type/id keys"""
        item = SaleItem(kind="course", item_id="c1", price=500, quantity=1)
        row = codecs.TRANSACTIONS.to_row({"items": [item]})
        assert row == {"items": [{"type": "course", "id": "c1", "price": 500.0, "quantity": 1}]}

    def test_to_row_serializes_enums(self):
        """Test appointment status is written as its value"""
        row = codecs.APPOINTMENTS.to_row({"status": AppointmentStatus.NO_SHOW})
        assert row == {"status": "no-show"}

    def test_to_row_rejects_unknown_field(self):
        with pytest.raises(ClinicValidationError, match="Unknown field"):
            codecs.CUSTOMERS.to_row({"nickname": "Sue"})

    @pytest.mark.parametrize("key", ["id", "activeCourses", "treatment_history"])
    def test_to_row_rejects_read_only_fields(self, key):
        with pytest.raises(ClinicValidationError, match="cannot be written"):
            codecs.CUSTOMERS.to_row({key: []})

    def test_to_row_validates_values(self):
        """Test Field constraints apply on writes"""
        with pytest.raises(ClinicValidationError, match="total_units"):
            codecs.COURSES.to_row({"total_units": 0})

    def test_to_row_full_fills_model_defaults(self):
        """Test a full write carries non-null defaults and leaves the rest to the column"""
        row = codecs.APPOINTMENTS.to_row({"date": date(2024, 7, 1)}, partial=False)
        assert row == {"date": "2024-07-01", "status": "scheduled"}

    def test_to_row_full_requires_required_fields(self):
        with pytest.raises(ClinicValidationError, match="name"):
            codecs.CUSTOMERS.to_row({"phone": "081"}, partial=False)


class TestBuildSnapshot:
    """Unit tests for snapshot mapping"""

    def test_children_nested_under_their_customer(self):
        rows = {
            "customers": [{"id": "c1", "name": "Suda"}, {"id": "c2", "name": "Wilai"}],
            "customer_courses": [
                {"id": "cc1", "customer_id": "c1", "course_id": "k1", "total_units": 5, "remaining_units": 3},
                {"id": "cc2", "customer_id": "c2", "course_id": "k1", "total_units": 5, "remaining_units": 5},
                {"id": "cc3", "customer_id": "gone", "course_id": "k1", "total_units": 5, "remaining_units": 5},
            ],
            "treatment_records": [
                {"id": "t1", "customer_id": "c1", "treatment_name": "IV Drip", "units_used": 2},
            ],
        }

        snapshot = codecs.build_snapshot(rows)

        suda, wilai = snapshot.customers
        assert [cc.id for cc in suda.active_courses] == ["cc1"]
        assert [t.id for t in suda.treatment_history] == ["t1"]
        assert [cc.id for cc in wilai.active_courses] == ["cc2"]
        assert wilai.treatment_history == []

    def test_missing_tables_map_to_empty_collections(self):
        snapshot = codecs.build_snapshot({"customers": None})
        assert snapshot.is_empty()
