import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from stock_push.exceptions import NotFoundError
from stock_push.models.unmapped_sku import UnmappedSku
from stock_push.utils.date_utils import utcnow

logger = logging.getLogger("stock.push.unmapped")


class UnmappedSkuRegistry:
    """
    Реестр SKU, которые интеграция отклонила как несопоставленные.

    Одна запись на (store_id, sku). Флаг resolved меняет только оператор,
    и это не запускает повтор упавших движений.
    """

    def __init__(self, session: Session, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    def _find(self, store_id: int, sku: str) -> Optional[UnmappedSku]:
        return self.session.exec(
            select(UnmappedSku).where(
                UnmappedSku.store_id == store_id,
                UnmappedSku.sku == sku
            )
        ).first()

    def _touch(self, record: UnmappedSku, product_name: Optional[str], now: datetime, commit: bool = True) -> UnmappedSku:
        record.occurrences += 1
        record.last_seen_at = now
        if not record.product_name and product_name:
            record.product_name = product_name
        self.session.add(record)
        if commit:
            self.session.commit()
        return record

    def record_unmapped(
        self,
        tenant_id: int,
        store_id: int,
        sku: str,
        product_name: Optional[str] = None,
        commit: bool = True
    ) -> UnmappedSku:
        """
        Создает запись или увеличивает счетчик встреч SKU.

        Args:
            tenant_id: ID арендатора
            store_id: ID магазина
            sku: SKU, отклоненный интеграцией
            product_name: Название товара из метаданных движения (если есть)
            commit: False - только flush, фиксирует вызывающий (fail_unmapped)

        Returns:
            Актуальная запись реестра
        """
        now = self.clock()

        record = self._find(store_id, sku)
        if record is not None:
            return self._touch(record, product_name, now, commit=commit)

        record = UnmappedSku(
            tenant_id=tenant_id,
            store_id=store_id,
            sku=sku,
            product_name=product_name,
            last_seen_at=now,
            occurrences=1,
            resolved=False,
            created_at=now
        )
        self.session.add(record)
        if not commit:
            # Гонка вставки здесь откатит всю транзакцию вызывающего
            self.session.flush()
            logger.warning(f"New unmapped SKU for store {store_id}: {sku} ({product_name or 'без названия'})")
            return record

        try:
            self.session.commit()
        except IntegrityError:
            # Параллельный воркер вставил ту же пару первым
            self.session.rollback()
            record = self._find(store_id, sku)
            if record is None:
                raise
            logger.debug(f"Unmapped SKU {store_id}:{sku} inserted concurrently, incrementing")
            return self._touch(record, product_name, now, commit=commit)

        logger.warning(f"New unmapped SKU for store {store_id}: {sku} ({product_name or 'без названия'})")
        return record

    def resolve(self, unmapped_id: int, store_id: Optional[int] = None) -> UnmappedSku:
        """
        Помечает SKU как исправленный оператором. Повторный вызов ничего не меняет.

        Raises:
            NotFoundError: Запись не найдена (или принадлежит другому магазину)
        """
        record = self.session.get(UnmappedSku, unmapped_id)
        if record is None or (store_id is not None and record.store_id != store_id):
            raise NotFoundError("UnmappedSku", unmapped_id)

        if not record.resolved:
            record.resolved = True
            self.session.add(record)
            self.session.commit()
            logger.info(f"Unmapped SKU {record.sku} (store {record.store_id}) marked as resolved")
        return record

    def list_unmapped(self, store_id: int, resolved: Optional[bool] = None) -> List[UnmappedSku]:
        """SKU магазина, сначала встреченные последними."""
        statement = select(UnmappedSku).where(UnmappedSku.store_id == store_id)
        if resolved is not None:
            statement = statement.where(UnmappedSku.resolved == resolved)
        statement = statement.order_by(UnmappedSku.last_seen_at.desc(), UnmappedSku.id.desc())
        return list(self.session.exec(statement).all())

    def iter_unmapped(self, store_id: int, resolved: Optional[bool] = None) -> List[UnmappedSku]:
        """Для экспорта: сортировка по числу встреч."""
        statement = select(UnmappedSku).where(UnmappedSku.store_id == store_id)
        if resolved is not None:
            statement = statement.where(UnmappedSku.resolved == resolved)
        statement = statement.order_by(UnmappedSku.occurrences.desc(), UnmappedSku.sku)
        return list(self.session.exec(statement).all())
