# Overview: Pytest coverage for driver allocation periods.

"""
Driver Allocation Tests

Verifies that:
1. Allocation moves exactly count bags from organization stock to the driver
2. Re-allocation archives the recent period and carries its leftover forward
3. Exactly one period per driver is "recent"
4. Drivers from other organizations cannot be allocated to
"""

from datetime import timedelta

import pytest

from bagledger.errors import InsufficientDriverStockError, InsufficientStockError, NotFoundError
from bagledger.models import BagMovement, DriverAllocation
from bagledger.services import allocation_service, stock_service
from bagledger.services.allocation_service import ALLOCATION_STATUS_PREVIOUS, ALLOCATION_STATUS_RECENT
from bagledger.services.movement_service import MOVEMENT_ALLOCATE, driver_available_from_movements

from conftest import T0


class TestAllocateBags:

    def test_allocate_moves_bags_from_stock(self, db_session, org_a, driver_a):
        stock_service.add_bags(org_a.id, 100)

        allocation = allocation_service.allocate_bags(org_a.id, driver_a.id, 40, actor="ops", now=T0)

        assert stock_service.get_available_bags(org_a.id) == 60
        assert allocation.allocated_bags == 40
        assert allocation.used_bags == 0
        assert allocation.available_bags == 40
        assert allocation.bags_from_previous == 0
        assert allocation.status == ALLOCATION_STATUS_RECENT
        assert allocation_service.get_available_bags(driver_a.id) == 40

    def test_allocate_logs_movement_with_both_sides(self, db_session, org_a, driver_a):
        stock_service.add_bags(org_a.id, 10)
        allocation = allocation_service.allocate_bags(org_a.id, driver_a.id, 4)

        movement = db_session.query(BagMovement).filter_by(movement_type=MOVEMENT_ALLOCATE).one()
        assert movement.stock_delta == -4
        assert movement.driver_delta == 4
        assert movement.driver_id == driver_a.id
        assert movement.allocation_id == allocation.id

    def test_allocate_beyond_stock_fails_without_changes(self, db_session, org_a, driver_a):
        stock_service.add_bags(org_a.id, 10)

        with pytest.raises(InsufficientStockError):
            allocation_service.allocate_bags(org_a.id, driver_a.id, 11)

        assert stock_service.get_available_bags(org_a.id) == 10
        assert db_session.query(DriverAllocation).count() == 0
        assert allocation_service.get_available_bags(driver_a.id) == 0

    def test_allocate_to_driver_of_other_organization(self, db_session, org_a, foreign_driver):
        stock_service.add_bags(org_a.id, 10)

        with pytest.raises(NotFoundError):
            allocation_service.allocate_bags(org_a.id, foreign_driver.id, 5)

        assert stock_service.get_available_bags(org_a.id) == 10

    def test_allocate_to_unknown_driver(self, db_session, org_a):
        stock_service.add_bags(org_a.id, 10)
        with pytest.raises(NotFoundError):
            allocation_service.allocate_bags(org_a.id, 99999, 5)


class TestCarryOver:

    def test_reallocation_carries_leftover(self, db_session, org_a, driver_a):
        """Allocate 10, consume 3, allocate 5 more: new period holds 12."""
        stock_service.add_bags(org_a.id, 100)
        first = allocation_service.allocate_bags(org_a.id, driver_a.id, 10, now=T0)
        allocation_service.consume_for_issuance(org_a.id, driver_a.id, 3, now=T0 + timedelta(hours=1))
        assert allocation_service.get_available_bags(driver_a.id) == 7

        second = allocation_service.allocate_bags(org_a.id, driver_a.id, 5, now=T0 + timedelta(hours=2))

        assert second.bags_from_previous == 7
        assert second.allocated_bags == 12
        assert second.available_bags == 12
        assert second.used_bags == 0

        db_session.refresh(first)
        assert first.status == ALLOCATION_STATUS_PREVIOUS
        assert first.archived_at is not None
        assert first.used_bags == 3

        # Only the new count leaves central stock
        assert stock_service.get_available_bags(org_a.id) == 85
        assert allocation_service.get_available_bags(driver_a.id) == 12
        assert driver_available_from_movements(driver_a.id) == 12

    def test_single_recent_period_per_driver(self, db_session, org_a, driver_a, driver_b):
        stock_service.add_bags(org_a.id, 100)
        for count in (5, 6, 7):
            allocation_service.allocate_bags(org_a.id, driver_a.id, count)
        allocation_service.allocate_bags(org_a.id, driver_b.id, 8)

        recent_a = db_session.query(DriverAllocation).filter_by(
            driver_id=driver_a.id, status=ALLOCATION_STATUS_RECENT
        ).all()
        previous_a = db_session.query(DriverAllocation).filter_by(
            driver_id=driver_a.id, status=ALLOCATION_STATUS_PREVIOUS
        ).count()

        assert len(recent_a) == 1
        assert previous_a == 2
        assert recent_a[0].allocated_bags == 18
        assert recent_a[0].bags_from_previous == 11
        assert allocation_service.get_available_bags(driver_b.id) == 8

    def test_balance_points_at_recent_period(self, db_session, org_a, driver_a):
        stock_service.add_bags(org_a.id, 20)
        allocation_service.allocate_bags(org_a.id, driver_a.id, 5)
        latest = allocation_service.allocate_bags(org_a.id, driver_a.id, 5)

        balance = allocation_service.get_balance(driver_a.id)
        assert balance.current_period_id == latest.id
        assert balance.current_period.status == ALLOCATION_STATUS_RECENT
        assert [period.id for period in balance.periods][-1] == latest.id


class TestConsumption:

    def test_consume_beyond_available_fails(self, db_session, org_a, driver_a):
        stock_service.add_bags(org_a.id, 10)
        allocation_service.allocate_bags(org_a.id, driver_a.id, 4)

        with pytest.raises(InsufficientDriverStockError):
            allocation_service.consume_for_issuance(org_a.id, driver_a.id, 5)

        assert allocation_service.get_available_bags(driver_a.id) == 4

    def test_consume_without_allocation_fails(self, db_session, org_a, driver_a):
        with pytest.raises(InsufficientDriverStockError):
            allocation_service.consume_for_issuance(org_a.id, driver_a.id, 1)

    def test_consume_increments_used_bags(self, db_session, org_a, driver_a):
        stock_service.add_bags(org_a.id, 10)
        allocation_service.allocate_bags(org_a.id, driver_a.id, 10)

        period = allocation_service.consume_for_issuance(org_a.id, driver_a.id, 4)

        assert period.used_bags == 4
        assert period.allocated_bags == 10
        assert period.available_bags == 6


class TestAllocationQueries:

    def test_search_by_driver_name(self, db_session, org_a, driver_a, driver_b):
        stock_service.add_bags(org_a.id, 20)
        allocation_service.allocate_bags(org_a.id, driver_a.id, 5)
        allocation_service.allocate_bags(org_a.id, driver_b.id, 5)

        rows = allocation_service.get_allocations_for_organization(org_a.id, search="amina")
        assert [row.driver_id for row in rows] == [driver_a.id]

    def test_search_treats_wildcards_literally(self, db_session, org_a, driver_a):
        stock_service.add_bags(org_a.id, 20)
        allocation_service.allocate_bags(org_a.id, driver_a.id, 5)

        assert allocation_service.get_allocations_for_organization(org_a.id, search="%") == []

    def test_includes_previous_periods(self, db_session, org_a, driver_a):
        stock_service.add_bags(org_a.id, 20)
        allocation_service.allocate_bags(org_a.id, driver_a.id, 5)
        allocation_service.allocate_bags(org_a.id, driver_a.id, 5)

        rows = allocation_service.get_allocations_for_organization(org_a.id)
        assert sorted(row.status for row in rows) == [ALLOCATION_STATUS_PREVIOUS, ALLOCATION_STATUS_RECENT]
