import random
from datetime import timedelta
from typing import Optional

from stock_push.core.push_config import PushSyncConfig, push_sync_config
from stock_push.exceptions import RetriesExhausted


class BackoffPolicy:
    """
    Экспоненциальная задержка между попытками отправки с jitter.

    delay = initial_delay * base^(attempts-1), но не больше max_delay,
    затем случайное отклонение ±jitter, чтобы движения, упавшие одновременно,
    не вернулись в очередь одной пачкой.
    """

    def __init__(
        self,
        initial_delay: float = 120,
        max_delay: float = 3600,
        exponential_base: float = 2.0,
        jitter: float = 0.2,
        rng: Optional[random.Random] = None
    ):
        if not 0 <= jitter < 1:
            raise ValueError("jitter must be in [0, 1)")
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.rng = rng or random.Random()

    @classmethod
    def from_config(cls, config: PushSyncConfig = push_sync_config, rng: Optional[random.Random] = None) -> "BackoffPolicy":
        return cls(
            initial_delay=config.retry_initial_delay,
            max_delay=config.retry_max_delay,
            exponential_base=config.retry_exponential_base,
            jitter=config.retry_jitter,
            rng=rng
        )

    def base_delay(self, attempts: int) -> float:
        """Задержка в секундах без jitter."""
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        return min(
            self.initial_delay * (self.exponential_base ** (attempts - 1)),
            self.max_delay
        )

    def next_delay(self, attempts: int, max_attempts: Optional[int] = None) -> timedelta:
        """
        Задержка перед следующей попыткой.

        Args:
            attempts: Количество попыток с учетом только что проваленной
            max_attempts: Лимит попыток движения

        Raises:
            RetriesExhausted: Если попытки исчерпаны и повтор не нужен
        """
        if max_attempts is not None and attempts >= max_attempts:
            raise RetriesExhausted(attempts, max_attempts)

        delay = self.base_delay(attempts)
        if self.jitter:
            delay *= 1 + self.rng.uniform(-self.jitter, self.jitter)
        return timedelta(seconds=delay)
