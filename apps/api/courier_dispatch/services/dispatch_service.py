import asyncio
import enum
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courier_dispatch.clock import Clock, as_utc, system_clock
from courier_dispatch.config import settings
from courier_dispatch.errors import DependencyError, NotFoundError, StateConflictError
from courier_dispatch.integrations.notification_client import NotificationSink, notify_best_effort
from courier_dispatch.models.courier import Courier
from courier_dispatch.models.order import Order, OrderStatus
from courier_dispatch.observability import log_event, log_failure, metrics_store, observe_timing
from courier_dispatch.services import area_proximity
from courier_dispatch.services.audit_service import (
    MATCHING_ACCEPT_REJECTED,
    MATCHING_ACCEPTED,
    MATCHING_NO_DRIVERS,
    MATCHING_NOTIFICATION_SENT,
    MATCHING_NOTIFICATIONS_SENT,
    MATCHING_REJECTED,
    MATCHING_STARTED,
    MATCHING_TIMEOUT,
    AuditRecorder,
)
from courier_dispatch.services.courier_directory import has_active_order, list_eligible_couriers
from courier_dispatch.services.dispatch_locks import DispatchLockRegistry

RECENCY_BONUS_CAP = 50.0
RATING_BONUS_WEIGHT = 5.0


class MatchingOutcome(str, enum.Enum):
    ACCEPTED = "ACCEPTED"
    EXHAUSTED = "EXHAUSTED"
    ORDER_CLOSED = "ORDER_CLOSED"
    NO_ELIGIBLE_COURIERS = "NO_ELIGIBLE_COURIERS"
    ORDER_NOT_REQUESTED = "ORDER_NOT_REQUESTED"


class _Response(str, enum.Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CLOSED = "closed"
    TIMEOUT = "timeout"


@dataclass
class RankedCourier:
    courier_id: uuid.UUID
    name: str | None
    score: float
    proximity_score: int


@dataclass
class NotificationRecord:
    courier_id: uuid.UUID
    position: int
    score: float
    proximity_score: int
    sent_at: datetime
    delivered: bool


@dataclass
class MatchingResult:
    success: bool
    outcome: MatchingOutcome
    notified_count: int = 0
    notifications: list[NotificationRecord] = field(default_factory=list)


@dataclass
class _OrderSnapshot:
    status: OrderStatus
    items_text: str
    delivery_address: str


def recency_bonus(last_active_at: datetime | None, now: datetime) -> float:
    """Up to 50 points, losing one point per minute since the courier was last active."""
    if last_active_at is None:
        return 0.0
    minutes_idle = max(0.0, (now - as_utc(last_active_at)).total_seconds() / 60)
    return RECENCY_BONUS_CAP - min(RECENCY_BONUS_CAP, minutes_idle)


def rank_couriers(
    couriers: list[Courier],
    zone: str,
    now: datetime,
    limit: int,
) -> list[RankedCourier]:
    ranked: list[RankedCourier] = []
    for courier in couriers:
        proximity = area_proximity.score(courier.working_areas or [], zone)
        if proximity == area_proximity.NO_MATCH_SCORE:
            continue
        score = (
            proximity
            + recency_bonus(courier.last_active_at, now)
            + (courier.rating or 0.0) * RATING_BONUS_WEIGHT
        )
        ranked.append(
            RankedCourier(
                courier_id=courier.id,
                name=courier.name,
                score=score,
                proximity_score=proximity,
            )
        )
    ranked.sort(key=lambda item: (-item.score, str(item.courier_id)))
    return ranked[:limit]


class DispatchEngine:
    """Ranks couriers for a requested order, offers it to them one at a time
    and grants the order to the first courier who accepts.

    Matching runs are coroutines; database and notification calls run in the
    threadpool so a run waiting on one courier never blocks other orders.
    ``accept_order`` is synchronous and may be called from any thread.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        notifier: NotificationSink,
        audit: AuditRecorder,
        locks: DispatchLockRegistry,
        clock: Clock = system_clock,
        response_timeout_s: float | None = None,
        poll_interval_s: float | None = None,
        max_candidates: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.notifier = notifier
        self.audit = audit
        self.locks = locks
        self.clock = clock
        self.response_timeout_s = response_timeout_s or settings.dispatch_response_timeout_s
        self.poll_interval_s = poll_interval_s or settings.dispatch_poll_interval_s
        self.max_candidates = max_candidates or settings.dispatch_max_candidates
        self._runs: dict[uuid.UUID, asyncio.Task] = {}

    # -- matching -----------------------------------------------------------

    def _order_snapshot(self, order_id: uuid.UUID) -> _OrderSnapshot | None:
        with self._session_factory() as db:
            order = db.get(Order, order_id)
            if order is None:
                return None
            return _OrderSnapshot(
                status=order.status,
                items_text=order.items_text,
                delivery_address=order.delivery_address,
            )

    def _order_status(self, order_id: uuid.UUID) -> OrderStatus | None:
        snapshot = self._order_snapshot(order_id)
        return snapshot.status if snapshot else None

    def find_candidates(self, order_id: uuid.UUID, zone: str) -> list[RankedCourier]:
        with self._session_factory() as db:
            couriers = list_eligible_couriers(db, exclude_ids=self.locks.tried(order_id))
        return rank_couriers(couriers, zone, self.clock.now(), self.max_candidates)

    def _notify(self, order_id: uuid.UUID, order: _OrderSnapshot, candidate: RankedCourier, zone: str) -> bool:
        delivered = notify_best_effort(
            self.notifier,
            str(candidate.courier_id),
            "طلب جديد",
            f"طلب جديد في منطقتك - {order.items_text[:50]}",
            {
                "orderId": str(order_id),
                "type": "new_order",
                "timeoutMs": int(self.response_timeout_s * 1000),
            },
        )
        self.audit.record(
            MATCHING_NOTIFICATION_SENT,
            entity_type="order",
            entity_id=order_id,
            details={
                "courier_id": candidate.courier_id,
                "courier_name": candidate.name,
                "zone": zone,
                "delivery_address": order.delivery_address,
                "delivered": delivered,
            },
            result="sent" if delivered else "failed",
        )
        return delivered

    async def _await_response(self, order_id: uuid.UUID, courier_id: uuid.UUID) -> _Response:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.response_timeout_s
        while True:
            status = await run_in_threadpool(self._order_status, order_id)
            if status != OrderStatus.REQUESTED:
                return _Response.ACCEPTED if status == OrderStatus.ASSIGNED else _Response.CLOSED
            if self.locks.has_declined(order_id, courier_id):
                return _Response.DECLINED

            remaining = deadline - loop.time()
            if remaining <= 0:
                # A claim in flight still wins over the deadline.
                return _Response.ACCEPTED if self.locks.is_locked(order_id) else _Response.TIMEOUT
            await asyncio.sleep(min(self.poll_interval_s, remaining))

    async def start_matching(self, order_id: uuid.UUID, zone: str) -> MatchingResult:
        with observe_timing("dispatch_matching_seconds"):
            return await self._run_matching(order_id, zone)

    async def _run_matching(self, order_id: uuid.UUID, zone: str) -> MatchingResult:
        order = await run_in_threadpool(self._order_snapshot, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.status != OrderStatus.REQUESTED:
            return MatchingResult(success=False, outcome=MatchingOutcome.ORDER_NOT_REQUESTED)

        metrics_store.increment("dispatch_matching_runs_total")
        log_event("matching_started", order_id=order_id, zone=zone)
        await run_in_threadpool(
            self.audit.record,
            MATCHING_STARTED,
            entity_type="order",
            entity_id=order_id,
            details={"zone": zone, "items": order.items_text[:100]},
            result="started",
        )

        candidates = await run_in_threadpool(self.find_candidates, order_id, zone)
        if not candidates:
            metrics_store.increment("dispatch_no_candidates_total")
            log_event("matching_no_candidates", order_id=order_id, zone=zone)
            await run_in_threadpool(
                self.audit.record,
                MATCHING_NO_DRIVERS,
                entity_type="order",
                entity_id=order_id,
                details={"zone": zone},
                result="failed",
            )
            return MatchingResult(success=False, outcome=MatchingOutcome.NO_ELIGIBLE_COURIERS)

        self.locks.open(order_id)
        try:
            outcome, notifications = await self._offer_in_turn(order_id, order, candidates, zone)
        finally:
            # A claim retains its own lock; cancelled or finished runs expire theirs.
            if not self.locks.is_locked(order_id):
                self.locks.retain(order_id)

        await run_in_threadpool(
            self.audit.record,
            MATCHING_NOTIFICATIONS_SENT,
            entity_type="order",
            entity_id=order_id,
            details={
                "couriers_notified": len(notifications),
                "outcome": outcome.value,
                "couriers": [
                    {"courier_id": n.courier_id, "position": n.position, "sent_at": n.sent_at}
                    for n in notifications
                ],
            },
            result="success",
        )
        log_event(f"matching_finished:{outcome.value}", order_id=order_id, zone=zone)
        return MatchingResult(
            success=bool(notifications),
            outcome=outcome,
            notified_count=len(notifications),
            notifications=notifications,
        )

    async def _offer_in_turn(
        self,
        order_id: uuid.UUID,
        order: _OrderSnapshot,
        candidates: list[RankedCourier],
        zone: str,
    ) -> tuple[MatchingOutcome, list[NotificationRecord]]:
        notifications: list[NotificationRecord] = []
        outcome = MatchingOutcome.EXHAUSTED

        for position, candidate in enumerate(candidates, start=1):
            if self.locks.is_locked(order_id):
                outcome = MatchingOutcome.ACCEPTED
                break
            status = await run_in_threadpool(self._order_status, order_id)
            if status != OrderStatus.REQUESTED:
                outcome = MatchingOutcome.ORDER_CLOSED
                break

            delivered = await run_in_threadpool(self._notify, order_id, order, candidate, zone)
            self.locks.record_notified(order_id, candidate.courier_id)
            metrics_store.increment("dispatch_notifications_total")
            notifications.append(
                NotificationRecord(
                    courier_id=candidate.courier_id,
                    position=position,
                    score=candidate.score,
                    proximity_score=candidate.proximity_score,
                    sent_at=self.clock.now(),
                    delivered=delivered,
                )
            )

            response = await self._await_response(order_id, candidate.courier_id)
            if response == _Response.ACCEPTED:
                outcome = MatchingOutcome.ACCEPTED
                break
            if response == _Response.CLOSED:
                outcome = MatchingOutcome.ORDER_CLOSED
                break
            if response == _Response.TIMEOUT:
                metrics_store.increment("dispatch_timeouts_total")
                await run_in_threadpool(
                    self.audit.record,
                    MATCHING_TIMEOUT,
                    entity_type="order",
                    entity_id=order_id,
                    actor_type="courier",
                    actor_id=candidate.courier_id,
                    details={"timeout_ms": int(self.response_timeout_s * 1000)},
                    result="timeout",
                )

        return outcome, notifications

    def spawn_matching(self, order_id: uuid.UUID, zone: str) -> asyncio.Task:
        """Run matching as a background task; one live run per order."""
        existing = self._runs.get(order_id)
        if existing is not None and not existing.done():
            return existing

        task = asyncio.get_running_loop().create_task(
            self.start_matching(order_id, zone), name=f"matching:{order_id}"
        )
        self._runs[order_id] = task
        task.add_done_callback(lambda finished: self._on_run_done(order_id, finished))
        return task

    def _on_run_done(self, order_id: uuid.UUID, task: asyncio.Task) -> None:
        if self._runs.get(order_id) is task:
            del self._runs[order_id]
        if task.cancelled():
            log_event("matching_cancelled", order_id=order_id)
            return
        error = task.exception()
        if error is not None:
            metrics_store.increment("dispatch_matching_failed_total")
            log_event(f"matching_failed:{type(error).__name__}", order_id=order_id)

    def cancel_matching(self, order_id: uuid.UUID) -> bool:
        task = self._runs.get(order_id)
        if task is None or task.done():
            return False
        # Callers may run in threadpool workers; cancel on the task's own loop.
        task.get_loop().call_soon_threadsafe(task.cancel)
        return True

    async def shutdown(self) -> None:
        """Cancel every live matching run and wait for them to unwind."""
        tasks = [task for task in self._runs.values() if not task.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # -- acceptance ---------------------------------------------------------

    def accept_order(self, order_id: uuid.UUID, courier_id: uuid.UUID) -> Order:
        acquired, holder = self.locks.try_acquire(order_id, courier_id)
        if not acquired:
            metrics_store.increment("dispatch_accept_conflict_total")
            self.audit.record(
                MATCHING_ACCEPT_REJECTED,
                entity_type="order",
                entity_id=order_id,
                actor_type="courier",
                actor_id=courier_id,
                details={"reason": "already_taken", "taken_by": holder},
                result="rejected",
            )
            raise StateConflictError("Order already taken")

        try:
            order = self._claim(order_id, courier_id)
        except Exception:
            self.locks.release(order_id, courier_id)
            raise

        self.locks.retain(order_id)
        metrics_store.increment("dispatch_accept_total")
        accepted_at = self.clock.now()
        self.audit.record(
            MATCHING_ACCEPTED,
            entity_type="order",
            entity_id=order_id,
            actor_type="courier",
            actor_id=courier_id,
            details={
                "accepted_at": accepted_at,
                "response_time_ms": int(
                    (accepted_at - as_utc(order.created_at)).total_seconds() * 1000
                ),
            },
            result="success",
        )
        log_event("order_accepted", order_id=order_id, courier_id=courier_id)
        return order

    def _claim(self, order_id: uuid.UUID, courier_id: uuid.UUID) -> Order:
        with self._session_factory() as db:
            try:
                order = db.get(Order, order_id)
                if order is None:
                    raise NotFoundError("Order not found")
                if order.status != OrderStatus.REQUESTED:
                    raise StateConflictError("Order no longer available")

                courier = db.get(Courier, courier_id)
                if courier is None:
                    raise NotFoundError("Courier not found")
                if not courier.is_approved or courier.is_blocked:
                    raise StateConflictError("Courier is not eligible to accept orders")
                if has_active_order(db, courier_id):
                    raise StateConflictError("Courier already has an active order")
                if not courier.is_available:
                    raise StateConflictError("Courier is offline")

                now = self.clock.now()
                claimed = db.execute(
                    update(Order)
                    .where(
                        Order.id == order_id,
                        Order.status == OrderStatus.REQUESTED,
                        Order.courier_id.is_(None),
                    )
                    .values(courier_id=courier_id, status=OrderStatus.ASSIGNED, assigned_at=now)
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount != 1:
                    db.rollback()
                    raise StateConflictError("Order no longer available")

                # Only an available courier can be reserved, so two claims by one
                # courier on different orders cannot both commit.
                reserved = db.execute(
                    update(Courier)
                    .where(
                        Courier.id == courier_id,
                        Courier.is_blocked.is_(False),
                        Courier.is_available.is_(True),
                    )
                    .values(is_available=False, last_active_at=now)
                    .execution_options(synchronize_session=False)
                )
                if reserved.rowcount != 1:
                    db.rollback()
                    raise StateConflictError("Courier already has an active order")

                db.commit()
                db.refresh(order)
                return order
            except SQLAlchemyError as exc:
                db.rollback()
                log_failure("order_claim_failed", order_id=order_id, courier_id=courier_id)
                raise DependencyError("Order store unavailable") from exc

    def reject_order(self, order_id: uuid.UUID, courier_id: uuid.UUID, reason: str = "rejected") -> None:
        """A courier declined the offer; the matching run moves on without waiting."""
        self.locks.record_declined(order_id, courier_id)
        metrics_store.increment("dispatch_declined_total")
        self.audit.record(
            MATCHING_REJECTED,
            entity_type="order",
            entity_id=order_id,
            actor_type="courier",
            actor_id=courier_id,
            details={"reason": reason},
            result="rejected",
        )
