from datetime import datetime, timezone, time
from typing import Optional


def utcnow() -> datetime:
    """Текущее время в UTC без tzinfo (так хранятся все даты в БД)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_date(date_str: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Парсит дату из query-параметра в naive datetime (UTC).

    Принимает как дату "YYYY-MM-DD", так и полный ISO datetime.
    Значения с часовым поясом приводятся к UTC.

    Args:
        date_str: Строка с датой или None
        end_of_day: Для "голой" даты вернуть конец дня (для date_to)

    Returns:
        datetime без tzinfo или None

    Example:
        >>> parse_date("2025-03-20")
        datetime(2025, 3, 20, 0, 0)
        >>> parse_date("2025-03-20", end_of_day=True)
        datetime(2025, 3, 20, 23, 59, 59, 999999)
    """
    if not date_str:
        return None

    value = date_str.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        raise ValueError("Дата должна быть в формате YYYY-MM-DD или ISO 8601")

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    elif len(value) == 10 and end_of_day:
        dt = datetime.combine(dt.date(), time.max)
    return dt
