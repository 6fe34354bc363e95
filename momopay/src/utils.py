import calendar
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Tuple, Type


logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    # naive UTC: SQLite no conserva tzinfo
    return datetime.now(timezone.utc).replace(tzinfo=None)


def fixed_retry(
    fn: Callable,
    max_tries: int = 3,
    delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
):
    """Ejecuta ``fn`` hasta ``max_tries`` veces con una pausa fija entre intentos."""
    last_exc = None
    for attempt in range(1, max(1, max_tries) + 1):
        try:
            return fn()
        except retry_on as e:
            last_exc = e
            if attempt >= max_tries:
                break
            logger.warning("Attempt %d/%d failed: %s; retrying in %.1fs", attempt, max_tries, e, delay)
            if delay > 0:
                time.sleep(delay)
    raise last_exc


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() + "Z" if value else None
