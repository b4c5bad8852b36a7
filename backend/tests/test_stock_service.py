# Overview: Pytest coverage for organization stock behavior.

"""
Organization Stock Tests

Verifies that:
1. Adding bags increases stock by exactly the count and logs an ADD movement
2. Removing bags requires a reason and never drives stock negative
3. Invalid counts are rejected before anything is written
4. Stock is isolated per organization
"""

import pytest

from bagledger.errors import InsufficientStockError, InvalidArgumentError, NotFoundError
from bagledger.models import BagMovement, OrganizationStock
from bagledger.services import stock_service
from bagledger.services.movement_service import MOVEMENT_ADD, MOVEMENT_REMOVE, stock_from_movements


class TestAddBags:

    def test_add_creates_stock_row_on_first_use(self, db_session, org_a):
        assert stock_service.get_stock(org_a.id) is None

        stock = stock_service.add_bags(org_a.id, 100, actor="ops")

        assert stock.available_bags == 100
        assert db_session.query(OrganizationStock).filter_by(org_id=org_a.id).count() == 1

    def test_add_accumulates(self, db_session, org_a):
        stock_service.add_bags(org_a.id, 100)
        stock = stock_service.add_bags(org_a.id, 25)
        assert stock.available_bags == 125

    def test_add_logs_movement(self, db_session, org_a):
        stock_service.add_bags(org_a.id, 30, actor="ops@ccw.test")

        movement = db_session.query(BagMovement).filter_by(org_id=org_a.id).one()
        assert movement.movement_type == MOVEMENT_ADD
        assert movement.stock_delta == 30
        assert movement.driver_delta == 0
        assert movement.actor == "ops@ccw.test"

    def test_add_accepts_integer_strings(self, db_session, org_a):
        stock = stock_service.add_bags(org_a.id, "12")
        assert stock.available_bags == 12

    @pytest.mark.parametrize("count", [0, -5, None, "abc", "1.5", 2.5, True])
    def test_add_rejects_invalid_counts(self, db_session, org_a, count):
        with pytest.raises(InvalidArgumentError):
            stock_service.add_bags(org_a.id, count)
        assert stock_service.get_available_bags(org_a.id) == 0
        assert db_session.query(BagMovement).count() == 0

    def test_add_to_unknown_organization(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.add_bags(99999, 10)


class TestRemoveBags:

    def test_remove_decreases_stock(self, db_session, org_a):
        stock_service.add_bags(org_a.id, 100)
        stock = stock_service.remove_bags(org_a.id, 10, "Damaged in storage")

        assert stock.available_bags == 90
        movement = db_session.query(BagMovement).filter_by(movement_type=MOVEMENT_REMOVE).one()
        assert movement.stock_delta == -10
        assert movement.reason == "Damaged in storage"

    def test_remove_beyond_stock_fails_and_leaves_stock_unchanged(self, db_session, org_a):
        stock_service.add_bags(org_a.id, 5)

        with pytest.raises(InsufficientStockError) as exc:
            stock_service.remove_bags(org_a.id, 6, "Lost")

        assert "Available: 5" in exc.value.message
        assert stock_service.get_available_bags(org_a.id) == 5
        assert db_session.query(BagMovement).filter_by(movement_type=MOVEMENT_REMOVE).count() == 0

    def test_remove_entire_stock(self, db_session, org_a):
        stock_service.add_bags(org_a.id, 5)
        stock = stock_service.remove_bags(org_a.id, 5, "Written off")
        assert stock.available_bags == 0

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_remove_requires_reason(self, db_session, org_a, reason):
        stock_service.add_bags(org_a.id, 10)
        with pytest.raises(InvalidArgumentError):
            stock_service.remove_bags(org_a.id, 1, reason)
        assert stock_service.get_available_bags(org_a.id) == 10

    def test_stock_never_negative_over_sequence(self, db_session, org_a):
        operations = [("add", 10), ("remove", 4), ("remove", 7), ("add", 3), ("remove", 9), ("remove", 1)]
        for op, count in operations:
            try:
                if op == "add":
                    stock_service.add_bags(org_a.id, count)
                else:
                    stock_service.remove_bags(org_a.id, count, "test")
            except InsufficientStockError:
                pass
            assert stock_service.get_available_bags(org_a.id) >= 0

        # 10 - 4 = 6, remove 7 refused, + 3 = 9, - 9 = 0, remove 1 refused
        assert stock_service.get_available_bags(org_a.id) == 0
        assert stock_from_movements(org_a.id) == 0


class TestStockIsolation:

    def test_stock_is_per_organization(self, db_session, org_a, org_b):
        stock_service.add_bags(org_a.id, 50)
        stock_service.add_bags(org_b.id, 7)

        assert stock_service.get_available_bags(org_a.id) == 50
        assert stock_service.get_available_bags(org_b.id) == 7

        with pytest.raises(InsufficientStockError):
            stock_service.remove_bags(org_b.id, 8, "Lost")


class TestRemovalReason:

    def test_long_reason_is_stored_in_full(self, db_session, org_a):
        reason = "Water damage in bay 4; " * 20
        stock_service.add_bags(org_a.id, 10)

        stock_service.remove_bags(org_a.id, 2, reason)

        movement = db_session.query(BagMovement).filter_by(movement_type=MOVEMENT_REMOVE).one()
        assert len(reason.strip()) > 255
        assert movement.reason == reason.strip()
