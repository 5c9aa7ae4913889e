"""
Хранилище движений: единственная точка изменения очереди.

Переходы статусов:
    pending -> processing            claim_due (аренда + маркер SKU)
    processing -> processing         start_attempt (attempts + 1, продление аренды)
    processing -> completed          complete
    processing -> pending            schedule_retry
    processing -> failed             fail, fail_unmapped
    failed -> pending                requeue_failed (ручной повтор)
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy import and_, exists, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased
from sqlmodel import Session, select

from stock_push.core.push_config import PushSyncConfig, push_sync_config
from stock_push.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from stock_push.models.movement import (
    ACTIVE_STATUSES,
    InventoryMovement,
    MovementStatus,
    MovementType,
)
from stock_push.models.movement_log import LogAction
from stock_push.models.sku_in_flight_lock import SkuInFlightLock
from stock_push.schemas.inventory_push import MovementFilters
from stock_push.services.movement_event_logger import MovementEventLogger
from stock_push.services.unmapped_sku_registry import UnmappedSkuRegistry
from stock_push.utils.date_utils import utcnow

UNMAPPED_SKU_ERROR = "unmapped_sku"


class MovementStore:
    """
    Очередь движений поверх SQLModel.

    Каждый мутирующий метод фиксирует транзакцию сам, вместе с записью журнала.
    """

    def __init__(
        self,
        session: Session,
        config: PushSyncConfig = push_sync_config,
        clock: Callable[[], datetime] = utcnow
    ):
        self.session = session
        self.config = config
        self.clock = clock
        self.events = MovementEventLogger(session)
        self.logger = logging.getLogger("stock.push.store")

    # ------------------------------------------------------------------
    # Создание
    # ------------------------------------------------------------------

    def append(self, movement: InventoryMovement) -> InventoryMovement:
        """
        Добавляет новое движение в очередь в статусе pending.

        Raises:
            ValidationError: quantity <= 0, неизвестный movement_type, пустой SKU
        """
        return self.append_many([movement])[0]

    def append_many(self, movements: List[InventoryMovement]) -> List[InventoryMovement]:
        """
        Добавляет пачку движений одной транзакцией: либо все, либо ни одного.

        Raises:
            ValidationError: если хотя бы одно движение некорректно (ничего не сохраняется)
        """
        for movement in movements:
            self._validate(movement)

        try:
            for movement in movements:
                self._stage(movement)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return movements

    def _stage(self, movement: InventoryMovement) -> None:
        movement.status = MovementStatus.PENDING
        movement.attempts = 0
        movement.next_attempt_at = None
        movement.last_attempt_at = None
        movement.error_message = None
        movement.processed_at = None
        movement.claimed_by = None
        movement.lease_expires_at = None
        movement.created_at = self.clock()
        if movement.movement_metadata is None:
            movement.movement_metadata = {}

        self.session.add(movement)
        self.session.flush()

        self.events.log_action(
            movement_id=movement.id,
            action=LogAction.CREATED,
            message=f"{movement.sku} x{movement.quantity} ({movement.movement_type.value})",
            additional_context={
                "store_id": movement.store_id,
                "order_id": movement.order_id,
                "event_type": movement.event_type,
                "max_attempts": movement.max_attempts
            }
        )

    def _validate(self, movement: InventoryMovement) -> None:
        try:
            movement.movement_type = MovementType(movement.movement_type)
        except ValueError:
            raise ValidationError(
                f"movement_type must be one of {[t.value for t in MovementType]}, got {movement.movement_type!r}"
            )

        if isinstance(movement.quantity, bool) or not isinstance(movement.quantity, int):
            raise ValidationError(f"quantity must be an integer, got {movement.quantity!r}")
        if movement.quantity <= 0:
            raise ValidationError(f"quantity must be positive, got {movement.quantity}")

        if not movement.sku or not movement.sku.strip():
            raise ValidationError("sku is required")
        movement.sku = movement.sku.strip()

        if movement.max_attempts is None:
            movement.max_attempts = self.config.retry_max_attempts
        if movement.max_attempts < 1:
            raise ValidationError(f"max_attempts must be >= 1, got {movement.max_attempts}")

    # ------------------------------------------------------------------
    # Захват
    # ------------------------------------------------------------------

    def claim_due(
        self,
        store_id: int,
        limit: Optional[int] = None,
        lease_duration: Optional[timedelta] = None,
        worker_id: str = "worker"
    ) -> List[InventoryMovement]:
        """
        Атомарно захватывает до limit готовых движений магазина.

        Подходят pending с наступившим next_attempt_at (или без него) и
        processing с истекшей арендой. Из каждой пары (store_id, sku) берется
        только самое раннее незавершенное движение, и только если на SKU нет
        живого маркера "в обработке". Попытка начинается позже, в start_attempt.

        Returns:
            Захваченные движения в порядке (store_id, sku, created_at)
        """
        now = self.clock()
        limit = limit or self.config.processing_batch_size
        lease_duration = lease_duration or timedelta(seconds=self.config.claim_lease_seconds)

        movement = InventoryMovement
        earlier = aliased(InventoryMovement)

        blocked_by_earlier = exists().where(
            earlier.store_id == movement.store_id,
            earlier.sku == movement.sku,
            earlier.status.in_(ACTIVE_STATUSES),
            or_(
                earlier.created_at < movement.created_at,
                and_(earlier.created_at == movement.created_at, earlier.id < movement.id)
            )
        )
        sku_in_flight = exists().where(
            SkuInFlightLock.store_id == movement.store_id,
            SkuInFlightLock.sku == movement.sku,
            SkuInFlightLock.expires_at > now
        )

        statement = (
            select(movement)
            .where(
                movement.store_id == store_id,
                or_(
                    and_(
                        movement.status == MovementStatus.PENDING,
                        or_(movement.next_attempt_at.is_(None), movement.next_attempt_at <= now)
                    ),
                    and_(
                        movement.status == MovementStatus.PROCESSING,
                        or_(movement.lease_expires_at.is_(None), movement.lease_expires_at <= now)
                    )
                ),
                ~blocked_by_earlier,
                ~sku_in_flight
            )
            .order_by(movement.store_id, movement.sku, movement.created_at, movement.id)
            .limit(limit)
            .with_for_update(skip_locked=True, of=movement)
        )

        candidates = self.session.exec(statement).all()
        claimed: List[InventoryMovement] = []

        for candidate in candidates:
            if candidate.status == MovementStatus.PROCESSING:
                if candidate.attempts >= candidate.max_attempts:
                    self._fail_abandoned(candidate)
                    continue
                self.events.log_action(
                    movement_id=candidate.id,
                    action=LogAction.LEASE_EXPIRED,
                    message=f"Аренда воркера {candidate.claimed_by} истекла, движение перехвачено",
                    status="warning",
                    additional_context={"previous_owner": candidate.claimed_by, "new_owner": worker_id}
                )

            self._take_sku_lock(candidate, worker_id, now, now + lease_duration)

            from_status = candidate.status
            candidate.status = MovementStatus.PROCESSING
            candidate.claimed_by = worker_id
            candidate.lease_expires_at = now + lease_duration

            self.events.log_status_transition(
                movement_id=candidate.id,
                action=LogAction.CLAIMED,
                from_status=from_status,
                to_status=MovementStatus.PROCESSING,
                reason=f"Захвачено, попыток использовано {candidate.attempts} из {candidate.max_attempts}",
                additional_context={"worker_id": worker_id}
            )
            claimed.append(candidate)

        try:
            self.session.commit()
        except IntegrityError as e:
            # Другой воркер успел поставить маркер на тот же SKU
            self.session.rollback()
            self.logger.warning(f"Claim for store {store_id} lost a race on sku lock, retrying next cycle: {e}")
            return []

        if claimed:
            self.logger.debug(f"Worker {worker_id} claimed {len(claimed)} movements for store {store_id}")
        return claimed

    def _fail_abandoned(self, movement: InventoryMovement) -> None:
        """Брошенное на последней попытке движение: повторять уже нельзя."""
        previous_owner = movement.claimed_by
        movement.status = MovementStatus.FAILED
        movement.next_attempt_at = None
        movement.error_message = "claim lease expired"
        self._clear_claim(movement)
        self._release_sku_lock(movement)

        self.events.log_status_transition(
            movement_id=movement.id,
            action=LogAction.FAILED,
            from_status=MovementStatus.PROCESSING,
            to_status=MovementStatus.FAILED,
            reason="Аренда истекла на последней попытке",
            additional_context={"previous_owner": previous_owner, "attempts": movement.attempts}
        )

    def _take_sku_lock(self, movement: InventoryMovement, worker_id: str, now: datetime, expires_at: datetime) -> None:
        lock = self.session.get(SkuInFlightLock, (movement.store_id, movement.sku))
        if lock is None:
            self.session.add(SkuInFlightLock(
                store_id=movement.store_id,
                sku=movement.sku,
                movement_id=movement.id,
                lock_owner=worker_id,
                locked_at=now,
                expires_at=expires_at
            ))
            return

        # Устаревший маркер: перехватываем
        lock.movement_id = movement.id
        lock.lock_owner = worker_id
        lock.locked_at = now
        lock.expires_at = expires_at
        self.session.add(lock)

    def _release_sku_lock(self, movement: InventoryMovement) -> None:
        lock = self.session.get(SkuInFlightLock, (movement.store_id, movement.sku))
        if lock is not None and lock.movement_id == movement.id:
            self.session.delete(lock)

    @staticmethod
    def _clear_claim(movement: InventoryMovement) -> None:
        movement.claimed_by = None
        movement.lease_expires_at = None

    def start_attempt(
        self,
        movement_id: int,
        worker_id: str,
        lease_duration: Optional[timedelta] = None
    ) -> InventoryMovement:
        """
        Начинает попытку отправки захваченного движения, непосредственно перед вызовом адаптера.

        Проверяет, что аренда еще принадлежит worker_id и не истекла, продлевает
        аренду и маркер SKU, увеличивает attempts.

        Raises:
            InvalidTransitionError: Аренда потеряна (истекла или перехвачена)
        """
        now = self.clock()
        lease_duration = lease_duration or timedelta(seconds=self.config.claim_lease_seconds)

        movement = self._load_processing(movement_id, "start_attempt", worker_id)
        if movement.lease_expired(now):
            raise InvalidTransitionError(movement_id, movement.status.value, "start_attempt (lease expired)")

        lock = self.session.get(SkuInFlightLock, (movement.store_id, movement.sku), populate_existing=True)
        if lock is None or lock.movement_id != movement.id or not lock.is_active(now):
            raise InvalidTransitionError(movement_id, movement.status.value, "start_attempt (sku lock lost)")

        movement.attempts += 1
        movement.last_attempt_at = now
        movement.lease_expires_at = now + lease_duration
        lock.expires_at = movement.lease_expires_at
        self.session.add(lock)

        self.events.log_action(
            movement_id=movement.id,
            action=LogAction.ATTEMPT_STARTED,
            message=f"Попытка #{movement.attempts} из {movement.max_attempts}",
            additional_context={"worker_id": worker_id}
        )
        self.session.commit()
        return movement

    # ------------------------------------------------------------------
    # Переходы после попытки
    # ------------------------------------------------------------------

    def _load_processing(self, movement_id: int, action: str, claim_owner: Optional[str]) -> InventoryMovement:
        movement = self.get(movement_id, for_update=True)
        if movement.status != MovementStatus.PROCESSING:
            raise InvalidTransitionError(movement_id, movement.status.value, action)
        if claim_owner is not None and movement.claimed_by != claim_owner:
            # Аренда истекла и движение перехвачено другим воркером
            raise InvalidTransitionError(
                movement_id, movement.status.value, f"{action} (claim held by {movement.claimed_by})"
            )
        return movement

    def complete(
        self,
        movement_id: int,
        claim_owner: Optional[str] = None,
        execution_time_ms: Optional[int] = None
    ) -> InventoryMovement:
        """processing -> completed."""
        movement = self._load_processing(movement_id, "complete", claim_owner)

        movement.status = MovementStatus.COMPLETED
        movement.processed_at = self.clock()
        movement.next_attempt_at = None
        movement.error_message = None
        self._clear_claim(movement)
        self._release_sku_lock(movement)

        self.events.log_status_transition(
            movement_id=movement.id,
            action=LogAction.COMPLETED,
            from_status=MovementStatus.PROCESSING,
            to_status=MovementStatus.COMPLETED,
            reason="Движение принято интеграцией",
            additional_context={"attempts": movement.attempts, "execution_time_ms": execution_time_ms}
        )
        self.session.commit()
        return movement

    def schedule_retry(
        self,
        movement_id: int,
        next_attempt_at: datetime,
        error_message: str,
        claim_owner: Optional[str] = None
    ) -> InventoryMovement:
        """processing -> pending с новым next_attempt_at."""
        movement = self._load_processing(movement_id, "schedule_retry", claim_owner)
        if movement.attempts >= movement.max_attempts:
            raise InvalidTransitionError(movement_id, movement.status.value, "schedule_retry (attempts exhausted)")

        movement.status = MovementStatus.PENDING
        movement.next_attempt_at = next_attempt_at
        movement.error_message = error_message
        self._clear_claim(movement)
        self._release_sku_lock(movement)

        self.events.log_status_transition(
            movement_id=movement.id,
            action=LogAction.RETRY_SCHEDULED,
            from_status=MovementStatus.PROCESSING,
            to_status=MovementStatus.PENDING,
            reason=error_message,
            additional_context={
                "attempts": movement.attempts,
                "next_attempt_at": next_attempt_at.isoformat()
            }
        )
        self.session.commit()
        return movement

    def fail(
        self,
        movement_id: int,
        error_message: str,
        claim_owner: Optional[str] = None,
        action: LogAction = LogAction.FAILED
    ) -> InventoryMovement:
        """processing -> failed (терминально до ручного повтора)."""
        movement = self._stage_failed(movement_id, error_message, claim_owner, action)
        self.session.commit()
        return movement

    def fail_unmapped(
        self,
        movement_id: int,
        registry: UnmappedSkuRegistry,
        claim_owner: Optional[str] = None
    ) -> InventoryMovement:
        """
        processing -> failed с ошибкой unmapped_sku и запись SKU в реестр одной транзакцией.
        """
        try:
            movement = self._stage_failed(movement_id, UNMAPPED_SKU_ERROR, claim_owner, LogAction.UNMAPPED_SKU)
            registry.record_unmapped(
                tenant_id=movement.tenant_id,
                store_id=movement.store_id,
                sku=movement.sku,
                product_name=movement.product_name_hint,
                commit=False
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return movement

    def _stage_failed(
        self,
        movement_id: int,
        error_message: str,
        claim_owner: Optional[str],
        action: LogAction
    ) -> InventoryMovement:
        movement = self._load_processing(movement_id, "fail", claim_owner)

        movement.status = MovementStatus.FAILED
        movement.next_attempt_at = None
        movement.error_message = error_message
        self._clear_claim(movement)
        self._release_sku_lock(movement)

        self.events.log_status_transition(
            movement_id=movement.id,
            action=action,
            from_status=MovementStatus.PROCESSING,
            to_status=MovementStatus.FAILED,
            reason=error_message,
            additional_context={"attempts": movement.attempts, "max_attempts": movement.max_attempts}
        )
        return movement

    def requeue_failed(self, movement_id: int, store_id: Optional[int] = None) -> InventoryMovement:
        """
        failed -> pending в обход расписания backoff (ручной повтор).

        Счетчик попыток обнуляется: оператор получает полный новый бюджет.

        Raises:
            NotFoundError: Движение не найдено
            InvalidTransitionError: Движение не в статусе failed
        """
        movement = self.get(movement_id, store_id=store_id, for_update=True)
        if movement.status != MovementStatus.FAILED:
            raise InvalidTransitionError(movement_id, movement.status.value, "retry")

        previous_error = movement.error_message
        previous_attempts = movement.attempts

        movement.status = MovementStatus.PENDING
        movement.attempts = 0
        movement.error_message = None
        movement.next_attempt_at = self.clock()
        self._clear_claim(movement)

        self.events.log_status_transition(
            movement_id=movement.id,
            action=LogAction.MANUAL_RETRY,
            from_status=MovementStatus.FAILED,
            to_status=MovementStatus.PENDING,
            reason="Ручной повтор оператором",
            additional_context={"previous_error": previous_error, "previous_attempts": previous_attempts}
        )
        self.session.commit()
        return movement

    # ------------------------------------------------------------------
    # Чтение
    # ------------------------------------------------------------------

    def get(self, movement_id: int, store_id: Optional[int] = None, for_update: bool = False) -> InventoryMovement:
        """
        Raises:
            NotFoundError: Нет движения с таким id (или оно другого магазина)
        """
        statement = (
            select(InventoryMovement)
            .where(InventoryMovement.id == movement_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            statement = statement.with_for_update()

        movement = self.session.exec(statement).first()
        if movement is None or (store_id is not None and movement.store_id != store_id):
            raise NotFoundError("Movement", movement_id)
        return movement

    def _filter_conditions(self, store_id: int, filters: Optional[MovementFilters]) -> list:
        conditions = [InventoryMovement.store_id == store_id]
        if filters is None:
            return conditions
        if filters.status is not None:
            conditions.append(InventoryMovement.status == filters.status)
        if filters.movement_type is not None:
            conditions.append(InventoryMovement.movement_type == filters.movement_type)
        if filters.date_from is not None:
            conditions.append(InventoryMovement.created_at >= filters.date_from)
        if filters.date_to is not None:
            conditions.append(InventoryMovement.created_at <= filters.date_to)
        return conditions

    def list_movements(
        self,
        store_id: int,
        filters: Optional[MovementFilters] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[InventoryMovement], int]:
        """Страница движений магазина, новые сначала. Возвращает (items, total)."""
        conditions = self._filter_conditions(store_id, filters)

        total = self.session.exec(
            select(func.count()).select_from(InventoryMovement).where(*conditions)
        ).one()

        items = self.session.exec(
            select(InventoryMovement)
            .where(*conditions)
            .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(items), total

    def iter_movements(self, store_id: int, filters: Optional[MovementFilters] = None) -> List[InventoryMovement]:
        """Все движения по фильтру (для экспорта)."""
        conditions = self._filter_conditions(store_id, filters)
        return list(self.session.exec(
            select(InventoryMovement)
            .where(*conditions)
            .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
        ).all())

    def find_existing(self, store_id: int, order_id: str, sku: str, movement_type: MovementType) -> Optional[InventoryMovement]:
        """Движение того же заказа, SKU и типа (идемпотентность приема событий)."""
        return self.session.exec(
            select(InventoryMovement).where(
                InventoryMovement.store_id == store_id,
                InventoryMovement.order_id == order_id,
                InventoryMovement.sku == sku,
                InventoryMovement.movement_type == movement_type
            )
        ).first()

    def stores_with_due_movements(self, now: Optional[datetime] = None) -> List[int]:
        """Магазины, у которых есть что захватывать прямо сейчас."""
        now = now or self.clock()
        rows = self.session.exec(
            select(InventoryMovement.store_id)
            .where(
                or_(
                    and_(
                        InventoryMovement.status == MovementStatus.PENDING,
                        or_(InventoryMovement.next_attempt_at.is_(None), InventoryMovement.next_attempt_at <= now)
                    ),
                    and_(
                        InventoryMovement.status == MovementStatus.PROCESSING,
                        or_(InventoryMovement.lease_expires_at.is_(None), InventoryMovement.lease_expires_at <= now)
                    )
                )
            )
            .distinct()
            .order_by(InventoryMovement.store_id)
        ).all()
        return list(rows)
