from decimal import Decimal

from sqlalchemy.exc import OperationalError

from courier_dispatch.models.courier import Courier, CourierBlockSource
from courier_dispatch.services import debt_monitor_service
from courier_dispatch.services.audit_service import (
    DEBT_WARNING_SENT,
    DRIVER_BLOCKED_DEBT,
    list_audit_entries,
)
from courier_dispatch.services.courier_directory import apply_block
from courier_dispatch.services.debt_monitor_service import run_end_of_day_sweep


def _sweep(session_factory, notifier, audit, clock):
    return run_end_of_day_sweep(session_factory, notifier, audit, clock, grace_h=24)


def _courier_actions(session_factory, courier_id) -> list[str]:
    with session_factory() as db:
        entries = list_audit_entries(db, entity_type="courier", entity_id=courier_id)
    return [entry.action for entry in entries]


def test_first_sweep_warns_with_full_grace_period(
    session_factory, notifier, audit, clock, make_courier
):
    courier = make_courier(["خلدا"], pending="20.00", name="سامي")

    result = _sweep(session_factory, notifier, audit, clock)

    assert [item.id for item in result.warned] == [courier.id]
    assert result.warned[0].hours_until_block == 24
    assert result.warned[0].debt == Decimal("20.00")
    assert result.blocked == []
    assert notifier.sent[0]["data"]["type"] == "debt_warning"
    assert "20.00" in notifier.sent[0]["body"]
    assert _courier_actions(session_factory, courier.id) == [DEBT_WARNING_SENT]


def test_couriers_without_debt_are_ignored(session_factory, notifier, audit, clock, make_courier):
    make_courier(["خلدا"])

    result = _sweep(session_factory, notifier, audit, clock)

    assert result.warned == [] and result.blocked == []
    assert notifier.sent == []


def test_second_sweep_same_day_does_nothing(
    session_factory, notifier, audit, clock, make_courier
):
    make_courier(["خلدا"], pending="20.00")
    _sweep(session_factory, notifier, audit, clock)
    clock.advance(hours=5)

    result = _sweep(session_factory, notifier, audit, clock)

    assert result.warned == [] and result.blocked == []
    assert len(notifier.sent) == 1


def test_next_day_before_grace_warns_again_with_remaining_hours(
    session_factory, notifier, audit, clock, make_courier
):
    make_courier(["خلدا"], pending="20.00")
    clock.advance(hours=14)  # 23:00 on the first day
    _sweep(session_factory, notifier, audit, clock)
    clock.advance(hours=4)  # 03:00 the next day

    result = _sweep(session_factory, notifier, audit, clock)

    assert len(result.warned) == 1
    assert result.warned[0].hours_until_block == 20
    assert result.blocked == []


def test_courier_is_blocked_once_grace_period_passes(
    session_factory, notifier, audit, clock, make_courier
):
    courier = make_courier(["خلدا"], pending="20.00")
    _sweep(session_factory, notifier, audit, clock)
    clock.advance(hours=24)

    result = _sweep(session_factory, notifier, audit, clock)

    assert [item.id for item in result.blocked] == [courier.id]
    assert result.warned == []
    with session_factory() as db:
        blocked = db.get(Courier, courier.id)
        assert blocked.is_blocked is True
        assert blocked.is_available is False
        assert blocked.block_source == CourierBlockSource.DEBT
        assert blocked.block_reason == "unpaid debt: 20.00 not settled within 24 hours"
    assert _courier_actions(session_factory, courier.id) == [
        DEBT_WARNING_SENT,
        DRIVER_BLOCKED_DEBT,
    ]


def test_already_blocked_couriers_are_skipped(
    session_factory, notifier, audit, clock, make_courier, db_session
):
    courier = make_courier(["خلدا"], pending="70.00")
    apply_block(courier, "accumulated debt: 70.00", CourierBlockSource.DEBT)
    db_session.commit()

    result = _sweep(session_factory, notifier, audit, clock)

    assert result.warned == [] and result.blocked == []
    assert notifier.sent == []


def test_notification_failure_does_not_stop_warning(
    session_factory, notifier, audit, clock, make_courier
):
    courier = make_courier(["خلدا"], pending="20.00")
    notifier.fail_for.add(str(courier.id))

    result = _sweep(session_factory, notifier, audit, clock)

    assert [item.id for item in result.warned] == [courier.id]
    assert _courier_actions(session_factory, courier.id) == [DEBT_WARNING_SENT]


def test_one_failing_courier_does_not_abort_sweep(
    session_factory, notifier, audit, clock, make_courier, monkeypatch
):
    broken = make_courier(["خلدا"], pending="20.00")
    healthy = make_courier(["عبدون"], pending="15.00")
    original_lookup = debt_monitor_service.latest_audit_entry

    def flaky_lookup(db, *, action, entity_type, entity_id):
        if entity_id == broken.id:
            raise OperationalError("SELECT audit_logs", {}, Exception("disk I/O error"))
        return original_lookup(db, action=action, entity_type=entity_type, entity_id=entity_id)

    monkeypatch.setattr(debt_monitor_service, "latest_audit_entry", flaky_lookup)

    result = _sweep(session_factory, notifier, audit, clock)

    assert result.failed == [broken.id]
    assert [item.id for item in result.warned] == [healthy.id]
