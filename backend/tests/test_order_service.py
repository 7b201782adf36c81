# Overview: Pytest coverage for the purchase order state machine.

"""
Order Lifecycle Tests

Covers creation totals, every legal transition, rejection of illegal ones,
exactly-once stock crediting on verify, and access scoping for staff.
"""

import pytest

from procure.errors import ConflictError, NotFoundError, StateError, ValidationError
from procure.models import Order, PurchaseOrder, Staff
from procure.models.orders import (
    STATUS_ASSIGNED,
    STATUS_CANCELED,
    STATUS_NOT_ASSIGNED,
    STATUS_PAID,
    STATUS_PENDING_REVIEW,
    STATUS_VERIFIED,
)
from procure.models.staff import ROLE_ADMIN
from procure.services import order_service
from procure.services.concurrency import compare_and_set

from conftest import create_verified_order, reload


BILL = "/uploads/orders/bill.png"


@pytest.fixture
def two_item_order(supplier, product_x, product_y):
    return order_service.create_order(
        supplier_id=supplier.id,
        items=[
            {"product_id": product_x.id, "quantity": 10, "unit_cost": "5.00"},
            {"productId": product_y.id, "quantity": 3, "unitCost": 2.5},
        ],
    )


class TestCreateOrder:
    def test_two_items_total_and_batches(self, two_item_order, product_x, product_y):
        order = two_item_order
        assert order.total_amount_cents == 5750
        assert order.to_dict()["total_amount"] == 57.5
        assert order.status == STATUS_NOT_ASSIGNED
        assert order.order_number.startswith("ORD-")

        batches = order.items
        assert [b.product_id for b in batches] == [product_x.id, product_y.id]
        assert [b.remaining_qte for b in batches] == [10, 3]
        assert all(not b.is_expired for b in batches)

    def test_stock_untouched_on_create(self, two_item_order, product_x):
        assert reload(product_x).current_stock == 0

    def test_unit_cost_rounds_half_up(self, supplier, product_x):
        order = order_service.create_order(
            supplier_id=supplier.id,
            items=[{"product_id": product_x.id, "quantity": 3, "unit_cost": "0.335"}],
        )
        assert order.items[0].unit_cost_cents == 34
        assert order.total_amount_cents == 102

    def test_missing_supplier_rejected(self, db_session, product_x):
        with pytest.raises(ValidationError, match="supplier is required"):
            order_service.create_order(
                supplier_id=None,
                items=[{"product_id": product_x.id, "quantity": 1, "unit_cost": 1}],
            )

    def test_unknown_supplier_rejected(self, db_session, product_x):
        with pytest.raises(ValidationError, match="Supplier 999 not found"):
            order_service.create_order(
                supplier_id=999,
                items=[{"product_id": product_x.id, "quantity": 1, "unit_cost": 1}],
            )
        assert db_session.query(Order).count() == 0

    def test_empty_items_rejected(self, supplier):
        with pytest.raises(ValidationError, match="at least one item"):
            order_service.create_order(supplier_id=supplier.id, items=[])

    def test_unknown_product_rejected_and_nothing_written(self, db_session, supplier, product_x):
        with pytest.raises(ValidationError, match="Product 4242 not found"):
            order_service.create_order(
                supplier_id=supplier.id,
                items=[
                    {"product_id": product_x.id, "quantity": 1, "unit_cost": 1},
                    {"product_id": 4242, "quantity": 1, "unit_cost": 1},
                ],
            )
        assert db_session.query(Order).count() == 0
        assert db_session.query(PurchaseOrder).count() == 0

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2e3", True])
    def test_bad_quantity_rejected(self, supplier, product_x, quantity):
        with pytest.raises(ValidationError):
            order_service.create_order(
                supplier_id=supplier.id,
                items=[{"product_id": product_x.id, "quantity": quantity, "unit_cost": 1}],
            )

    def test_negative_unit_cost_rejected(self, supplier, product_x):
        with pytest.raises(ValidationError, match="cannot be negative"):
            order_service.create_order(
                supplier_id=supplier.id,
                items=[{"product_id": product_x.id, "quantity": 1, "unit_cost": "-1"}],
            )

    def test_order_numbers_are_unique_and_sequential(self, supplier, product_x):
        items = [{"product_id": product_x.id, "quantity": 1, "unit_cost": 1}]
        first = order_service.create_order(supplier_id=supplier.id, items=items)
        second = order_service.create_order(supplier_id=supplier.id, items=items)
        assert first.order_number != second.order_number
        assert first.order_number[:-4] == second.order_number[:-4]
        assert int(second.order_number[-4:]) == int(first.order_number[-4:]) + 1


class TestAssign:
    def test_assign_sets_staff_and_date(self, two_item_order, buyer):
        order = order_service.assign_order(two_item_order.id, buyer.id)
        assert order.status == STATUS_ASSIGNED
        assert order.staff_id == buyer.id
        assert order.assigned_date is not None

    def test_reassign_conflicts_and_leaves_order_unchanged(self, two_item_order, buyer, other_buyer):
        order_service.assign_order(two_item_order.id, buyer.id)
        with pytest.raises(ConflictError, match="already assigned"):
            order_service.assign_order(two_item_order.id, other_buyer.id)

        order = reload(order_service.get_order(two_item_order.id))
        assert order.staff_id == buyer.id
        assert order.status == STATUS_ASSIGNED

    def test_missing_staff_id(self, two_item_order):
        with pytest.raises(ValidationError, match="Staff ID is required"):
            order_service.assign_order(two_item_order.id, None)

    def test_unknown_staff(self, two_item_order):
        with pytest.raises(NotFoundError):
            order_service.assign_order(two_item_order.id, 999)

    def test_unknown_order(self, db_session, buyer):
        with pytest.raises(NotFoundError):
            order_service.assign_order(999, buyer.id)

    def test_assign_after_verify_is_state_error(self, supplier, buyer, admin, product_x):
        order = create_verified_order(
            supplier, buyer, admin, [{"product_id": product_x.id, "quantity": 1, "unit_cost": 1}]
        )
        with pytest.raises(StateError) as exc:
            order_service.assign_order(order.id, buyer.id)
        assert exc.value.current_status == STATUS_VERIFIED


class TestSubmitAndVerify:
    def test_submit_requires_bill(self, two_item_order, buyer):
        order_service.assign_order(two_item_order.id, buyer.id)
        with pytest.raises(ValidationError, match="Bill image is required"):
            order_service.submit_for_review(two_item_order.id, bill_url=None)
        assert reload(order_service.get_order(two_item_order.id)).status == STATUS_ASSIGNED

    def test_submit_from_not_assigned_is_rejected(self, two_item_order):
        with pytest.raises(StateError, match="current status is 'not assigned'"):
            order_service.submit_for_review(two_item_order.id, bill_url=BILL)

    def test_submit_override_replaces_total(self, two_item_order, buyer):
        order_service.assign_order(two_item_order.id, buyer.id)
        order = order_service.submit_for_review(two_item_order.id, bill_url=BILL, total_amount="60.10")
        assert order.status == STATUS_PENDING_REVIEW
        assert order.total_amount_cents == 6010
        assert order.bill_url == BILL

    def test_submit_does_not_credit_stock(self, two_item_order, buyer, product_x):
        order_service.assign_order(two_item_order.id, buyer.id)
        order_service.submit_for_review(two_item_order.id, bill_url=BILL)
        assert reload(product_x).current_stock == 0

    def test_verify_credits_stock_once(self, two_item_order, buyer, admin, product_x, product_y):
        order_service.assign_order(two_item_order.id, buyer.id)
        order_service.submit_for_review(two_item_order.id, bill_url=BILL)

        order = order_service.verify_order(two_item_order.id, verified_by_staff_id=admin.id)
        assert order.status == STATUS_VERIFIED
        assert order.verified_by_staff_id == admin.id
        assert order.verified_date is not None
        assert reload(product_x).current_stock == 10
        assert reload(product_y).current_stock == 3

        for _ in range(3):
            with pytest.raises(StateError, match="current status is 'verified'"):
                order_service.verify_order(two_item_order.id)
        assert reload(product_x).current_stock == 10
        assert reload(product_y).current_stock == 3

    def test_submitter_cannot_verify(self, db_session, two_item_order, admin, product_x):
        order_service.assign_order(two_item_order.id, admin.id)
        order = order_service.submit_for_review(two_item_order.id, bill_url=BILL, submitted_by_staff_id=admin.id)
        assert order.submitted_by_staff_id == admin.id

        with pytest.raises(ConflictError, match="someone other than"):
            order_service.verify_order(two_item_order.id, verified_by_staff_id=admin.id)
        order = reload(order_service.get_order(two_item_order.id))
        assert order.status == STATUS_PENDING_REVIEW
        assert order.verified_by_staff_id is None
        assert reload(product_x).current_stock == 0

        checker = Staff(fullname="Cleo Checker", email="checker@procure.test", role=ROLE_ADMIN)
        db_session.add(checker)
        db_session.commit()
        order = order_service.verify_order(two_item_order.id, verified_by_staff_id=checker.id)
        assert order.status == STATUS_VERIFIED
        assert reload(product_x).current_stock == 10

    def test_verify_sums_repeated_product(self, supplier, buyer, admin, product_x):
        create_verified_order(
            supplier,
            buyer,
            admin,
            [
                {"product_id": product_x.id, "quantity": 4, "unit_cost": 1},
                {"product_id": product_x.id, "quantity": 6, "unit_cost": 1},
            ],
        )
        assert reload(product_x).current_stock == 10

    def test_verify_before_review_rejected(self, two_item_order, buyer, product_x):
        order_service.assign_order(two_item_order.id, buyer.id)
        with pytest.raises(StateError):
            order_service.verify_order(two_item_order.id)
        assert reload(product_x).current_stock == 0


class TestPayAndCancel:
    def test_full_path_to_paid(self, supplier, buyer, admin, product_x):
        order = create_verified_order(
            supplier, buyer, admin, [{"product_id": product_x.id, "quantity": 2, "unit_cost": 3}]
        )
        order = order_service.mark_paid(order.id)
        assert order.status == STATUS_PAID
        assert order.paid_date is not None

        with pytest.raises(StateError):
            order_service.mark_paid(order.id)

    def test_pay_requires_verified(self, two_item_order):
        with pytest.raises(StateError, match="must be 'verified'"):
            order_service.mark_paid(two_item_order.id)

    @pytest.mark.parametrize("steps", [0, 1, 2])
    def test_cancel_before_verify(self, two_item_order, buyer, steps):
        if steps >= 1:
            order_service.assign_order(two_item_order.id, buyer.id)
        if steps >= 2:
            order_service.submit_for_review(two_item_order.id, bill_url=BILL)

        order = order_service.cancel_order(two_item_order.id, "2026-10-01T08:00:00Z")
        assert order.status == STATUS_CANCELED
        assert order.canceled_date.year == 2026

    def test_cancel_verified_rejected_and_stock_kept(self, supplier, buyer, admin, product_x):
        order = create_verified_order(
            supplier, buyer, admin, [{"product_id": product_x.id, "quantity": 5, "unit_cost": 1}]
        )
        with pytest.raises(StateError) as exc:
            order_service.cancel_order(order.id)
        assert exc.value.current_status == STATUS_VERIFIED
        assert reload(product_x).current_stock == 5

    def test_canceled_is_terminal(self, two_item_order, buyer):
        order_service.cancel_order(two_item_order.id)
        with pytest.raises(StateError):
            order_service.assign_order(two_item_order.id, buyer.id)
        with pytest.raises(StateError):
            order_service.cancel_order(two_item_order.id)


class TestUpdate:
    def test_update_expected_date_any_state(self, two_item_order):
        order = order_service.update_expected_date(two_item_order.id, "2026-11-01")
        assert order.expected_date.month == 11
        order = order_service.update_expected_date(two_item_order.id, None)
        assert order.expected_date is None

    def test_update_expected_date_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.update_expected_date(999, "2026-11-01")

    def test_generic_update_rejects_direct_verify(self, two_item_order):
        with pytest.raises(ValidationError, match="cannot be set directly"):
            order_service.update_order(two_item_order.id, status=STATUS_VERIFIED)

    def test_generic_update_cancel_with_notes(self, two_item_order):
        order = order_service.update_order(two_item_order.id, status=STATUS_CANCELED, notes="duplicate")
        assert order.status == STATUS_CANCELED
        assert order.notes == "duplicate"

    def test_failed_status_change_discards_detail_edits(self, two_item_order):
        with pytest.raises(StateError):
            order_service.update_order(two_item_order.id, status=STATUS_PAID, notes="should not stick")
        assert reload(order_service.get_order(two_item_order.id)).notes is None


class TestTransitionGuard:
    def test_can_transition_graph(self):
        assert order_service.can_transition(STATUS_NOT_ASSIGNED, STATUS_ASSIGNED)
        assert order_service.can_transition(STATUS_PENDING_REVIEW, STATUS_CANCELED)
        assert not order_service.can_transition(STATUS_NOT_ASSIGNED, STATUS_VERIFIED)
        assert not order_service.can_transition(STATUS_VERIFIED, STATUS_CANCELED)
        assert not order_service.can_transition(STATUS_PAID, STATUS_CANCELED)

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError, match="Invalid status"):
            order_service.can_transition("confirmed", STATUS_PAID)

    def test_stale_compare_and_set_writes_nothing(self, db_session, two_item_order, buyer):
        order_service.assign_order(two_item_order.id, buyer.id)

        # A second writer that still believes the order is unassigned
        moved = compare_and_set(
            Order,
            two_item_order.id,
            expected={"status": STATUS_NOT_ASSIGNED},
            values={"status": STATUS_CANCELED},
        )
        db_session.commit()
        assert moved is False
        assert reload(order_service.get_order(two_item_order.id)).status == STATUS_ASSIGNED


class TestListAndAccess:
    @pytest.fixture
    def orders(self, supplier, buyer, other_buyer, product_x):
        items = [{"product_id": product_x.id, "quantity": 1, "unit_cost": 1}]
        created = [order_service.create_order(supplier_id=supplier.id, items=items) for _ in range(3)]
        order_service.assign_order(created[0].id, buyer.id)
        order_service.assign_order(created[1].id, other_buyer.id)
        return created

    def test_admin_sees_everything(self, orders, admin):
        page = order_service.list_orders(staff=admin)
        assert page.total == 3
        assert page.pages == 1

    def test_staff_sees_only_own(self, orders, buyer):
        page = order_service.list_orders(staff=buyer, staff_id=orders[1].staff_id)
        assert [o.id for o in page.orders] == [orders[0].id]

    def test_status_filter_and_pagination(self, orders, admin):
        page = order_service.list_orders(
            staff=admin, status=STATUS_ASSIGNED, sort_by="order_number", sort_order="asc", limit=1
        )
        assert page.total == 2
        assert page.pages == 2
        assert page.orders[0].id == orders[0].id

    def test_order_number_search(self, orders, admin):
        needle = orders[2].order_number[-4:]
        page = order_service.list_orders(staff=admin, order_number=needle.lower())
        assert [o.id for o in page.orders] == [orders[2].id]

    def test_supplier_filter(self, orders, admin, supplier):
        assert order_service.list_orders(staff=admin, supplier_ids=f"{supplier.id}").total == 3
        assert order_service.list_orders(staff=admin, supplier_ids=["999"]).total == 0

    def test_invalid_sort_field(self, orders, admin):
        with pytest.raises(ValidationError, match="Invalid sort field"):
            order_service.list_orders(staff=admin, sort_by="password")

    def test_hidden_order_is_not_found(self, orders, buyer):
        assert order_service.get_order_for_staff(orders[0].id, buyer).id == orders[0].id
        with pytest.raises(NotFoundError):
            order_service.get_order_for_staff(orders[1].id, buyer)
