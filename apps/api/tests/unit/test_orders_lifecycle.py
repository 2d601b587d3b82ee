from decimal import Decimal

import pytest
from sqlalchemy import func, select

from courier_dispatch.clock import as_utc
from courier_dispatch.errors import StateConflictError, ValidationError
from courier_dispatch.models.courier import Courier
from courier_dispatch.models.courier_rating import CourierRating
from courier_dispatch.models.order import OrderStatus
from courier_dispatch.schemas.order import OrderCreate
from courier_dispatch.services import orders_service


def _delivered_order(db_session, make_courier, make_order, clock, **order_kwargs):
    courier = make_courier(["خلدا"], available=False)
    order = make_order(status=OrderStatus.ASSIGNED, courier=courier, **order_kwargs)
    orders_service.pickup_order(
        db_session, order.id, courier.id, "https://cdn.example/inv.jpg", clock=clock
    )
    orders_service.mark_en_route(db_session, order.id, courier.id, clock=clock)
    orders_service.deliver_order(db_session, order.id, courier.id, order.delivery_code, clock=clock)
    return courier, order


def test_create_order_snapshots_commission_and_fee(db_session, clock, commission_amount):
    order = orders_service.create_order(
        db_session,
        OrderCreate(
            customer_id="customer-1",
            items_text="  خبز وحليب ",
            estimated_price=Decimal("7.25"),
            delivery_address="الجبيهة",
            zone="الجبيهة",
        ),
        clock,
    )

    assert order.status == OrderStatus.REQUESTED
    assert order.items_text == "خبز وحليب"
    assert order.commission_amount == Decimal("2.50")
    assert order.delivery_fee == Decimal("1.50")
    assert len(order.delivery_code) == 4 and order.delivery_code.isdigit()
    assert order.courier_id is None


def test_delivery_code_never_changes_across_transitions(db_session, make_courier, make_order, clock):
    _, order = _delivered_order(db_session, make_courier, make_order, clock)

    db_session.refresh(order)
    assert order.delivery_code == "4821"
    assert order.status == OrderStatus.DELIVERED
    assert order.picked_at is not None and order.en_route_at is not None
    assert as_utc(order.delivered_at) == clock.now()


def test_wrong_delivery_code_leaves_order_untouched(db_session, make_courier, make_order, clock):
    courier = make_courier(["خلدا"], available=False)
    order = make_order(status=OrderStatus.PICKED_UP, courier=courier)

    with pytest.raises(ValidationError, match="Invalid delivery code"):
        orders_service.deliver_order(db_session, order.id, courier.id, "0000", clock=clock)

    db_session.rollback()
    db_session.refresh(order)
    assert order.status == OrderStatus.PICKED_UP
    assert order.delivered_at is None


def test_other_courier_cannot_advance_order(db_session, make_courier, make_order, clock):
    assigned = make_courier(["خلدا"], available=False)
    stranger = make_courier(["خلدا"])
    order = make_order(status=OrderStatus.ASSIGNED, courier=assigned)

    with pytest.raises(StateConflictError, match="not assigned"):
        orders_service.pickup_order(
            db_session, order.id, stranger.id, "https://cdn.example/i.jpg", clock=clock
        )


def test_pickup_requires_invoice_image(db_session, make_courier, make_order, clock):
    courier = make_courier(["خلدا"], available=False)
    order = make_order(status=OrderStatus.ASSIGNED, courier=courier)

    with pytest.raises(ValidationError, match="Invoice image"):
        orders_service.pickup_order(db_session, order.id, courier.id, "   ", clock=clock)


def test_pickup_records_actual_price(db_session, make_courier, make_order, clock):
    courier = make_courier(["خلدا"], available=False)
    order = make_order(status=OrderStatus.ASSIGNED, courier=courier)

    picked = orders_service.pickup_order(
        db_session,
        order.id,
        courier.id,
        "https://cdn.example/i.jpg",
        actual_price=Decimal("12.40"),
        clock=clock,
    )

    assert picked.status == OrderStatus.PICKED_UP
    assert picked.estimated_price == Decimal("12.40")


def test_requested_order_cannot_be_picked_up(db_session, make_courier, make_order, clock):
    courier = make_courier(["خلدا"])
    order = make_order(status=OrderStatus.REQUESTED)
    order.courier_id = courier.id
    db_session.commit()

    with pytest.raises(StateConflictError, match="Invalid state transition"):
        orders_service.pickup_order(
            db_session, order.id, courier.id, "https://cdn.example/i.jpg", clock=clock
        )


@pytest.mark.parametrize("rating", [0, 6])
def test_complete_rejects_out_of_range_rating(db_session, make_courier, make_order, clock, rating):
    _, order = _delivered_order(db_session, make_courier, make_order, clock)

    with pytest.raises(ValidationError, match="between 1 and 5"):
        orders_service.complete_order(db_session, order.id, rating=rating, clock=clock)

    db_session.rollback()
    db_session.refresh(order)
    assert order.status == OrderStatus.DELIVERED


def test_complete_requires_rating_without_override(db_session, make_courier, make_order, clock):
    _, order = _delivered_order(db_session, make_courier, make_order, clock)

    with pytest.raises(ValidationError, match="Rating is required"):
        orders_service.complete_order(db_session, order.id, clock=clock)


def test_complete_posts_commission_and_releases_courier(db_session, make_courier, make_order, clock):
    courier, order = _delivered_order(
        db_session, make_courier, make_order, clock, commission="2.5"
    )

    completed = orders_service.complete_order(
        db_session, order.id, rating=4, comment="سريع", clock=clock
    )

    assert completed.status == OrderStatus.COMPLETED
    assert completed.driver_share == Decimal("9.00")
    assert completed.commission_posted_at is not None

    db_session.expire_all()
    refreshed = db_session.get(Courier, courier.id)
    assert refreshed.pending_settlement == Decimal("2.50")
    assert refreshed.is_available is True
    assert refreshed.rating == pytest.approx(4.0)
    assert refreshed.total_deliveries == 1
    comment = db_session.scalar(
        select(CourierRating.comment).where(CourierRating.order_id == order.id)
    )
    assert comment == "سريع"


def test_courier_rating_is_unrounded_mean(db_session, make_courier, make_order, clock):
    courier = make_courier(["خلدا"], available=False)
    for rating in (5, 4, 4):
        order = make_order(status=OrderStatus.DELIVERED, courier=courier)
        orders_service.complete_order(db_session, order.id, rating=rating, clock=clock)

    db_session.expire_all()
    refreshed = db_session.get(Courier, courier.id)
    assert refreshed.rating == pytest.approx(13 / 3)
    assert refreshed.total_deliveries == 3


def test_admin_override_completes_without_rating(db_session, make_courier, make_order, clock):
    _, order = _delivered_order(db_session, make_courier, make_order, clock)

    completed = orders_service.complete_order(
        db_session, order.id, admin_override=True, clock=clock
    )

    assert completed.status == OrderStatus.COMPLETED
    assert db_session.scalar(select(func.count(CourierRating.id))) == 0


def test_commission_reaching_threshold_keeps_courier_offline(
    db_session, make_courier, make_order, clock
):
    courier = make_courier(["خلدا"], available=False, pending="48.50")
    order = make_order(status=OrderStatus.DELIVERED, courier=courier, commission="1.5")

    orders_service.complete_order(db_session, order.id, rating=5, clock=clock)

    db_session.expire_all()
    refreshed = db_session.get(Courier, courier.id)
    assert refreshed.pending_settlement == Decimal("50.00")
    assert refreshed.is_blocked is True
    assert refreshed.is_available is False


def test_cancel_appends_reason_and_releases_courier(db_session, make_courier, make_order, clock):
    courier = make_courier(["خلدا"], available=False)
    order = make_order(status=OrderStatus.ASSIGNED, courier=courier)

    canceled = orders_service.cancel_order(
        db_session, order.id, reason="العميل غير موجود", actor="customer:customer-1", clock=clock
    )

    assert canceled.status == OrderStatus.CANCELED
    assert canceled.canceled_at is not None
    assert canceled.notes == "cancellation reason: العميل غير موجود (by: customer:customer-1)"

    db_session.expire_all()
    assert db_session.get(Courier, courier.id).is_available is True


def test_cancel_keeps_blocked_courier_offline(db_session, make_courier, make_order, clock):
    courier = make_courier(["خلدا"], available=False)
    courier.is_blocked = True
    courier.block_reason = "manual"
    db_session.commit()
    order = make_order(status=OrderStatus.EN_ROUTE, courier=courier)

    orders_service.cancel_order(db_session, order.id, clock=clock)

    db_session.expire_all()
    assert db_session.get(Courier, courier.id).is_available is False


def test_completed_order_cannot_be_canceled(db_session, make_courier, make_order, clock):
    courier = make_courier(["خلدا"], available=False)
    order = make_order(status=OrderStatus.COMPLETED, courier=courier)

    with pytest.raises(StateConflictError):
        orders_service.cancel_order(db_session, order.id, clock=clock)


def test_dispute_records_reporter_and_only_allows_cancel(
    db_session, make_courier, make_order, clock
):
    courier = make_courier(["خلدا"], available=False)
    order = make_order(status=OrderStatus.DELIVERED, courier=courier)

    disputed = orders_service.dispute_order(
        db_session, order.id, "ناقص صنف", reporter="customer:customer-1", clock=clock
    )

    assert disputed.status == OrderStatus.DISPUTE
    assert disputed.dispute_flag is True
    assert disputed.dispute_reason == "ناقص صنف (reported by: customer:customer-1)"
    with pytest.raises(StateConflictError):
        orders_service.complete_order(db_session, order.id, rating=5, clock=clock)


def test_list_orders_filters_by_customer_and_status(db_session, make_order):
    make_order(customer_id="customer-1")
    make_order(customer_id="customer-1", status=OrderStatus.CANCELED)
    make_order(customer_id="customer-2")

    items, total = orders_service.list_orders(
        db_session, customer_id="customer-1", status_filter=OrderStatus.REQUESTED
    )

    assert total == 1
    assert items[0].customer_id == "customer-1"
