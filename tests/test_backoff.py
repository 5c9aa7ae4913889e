import random
from datetime import timedelta

import pytest

from stock_push.exceptions import RetriesExhausted
from stock_push.services.backoff import BackoffPolicy


class TestBackoffPolicy:
    """Тесты экспоненциальной задержки"""

    def setup_method(self):
        self.policy = BackoffPolicy(initial_delay=120, max_delay=3600, exponential_base=2.0, jitter=0.0)

    def test_first_attempt_uses_initial_delay(self):
        """Тест: после первой неудачи задержка равна initial_delay"""
        assert self.policy.next_delay(1) == timedelta(seconds=120)

    def test_delay_doubles(self):
        """Тест: каждая следующая неудача удваивает задержку"""
        assert self.policy.next_delay(2) == timedelta(seconds=240)
        assert self.policy.next_delay(3) == timedelta(seconds=480)

    def test_delay_is_capped(self):
        """Тест: задержка не превышает max_delay"""
        assert self.policy.next_delay(10) == timedelta(seconds=3600)
        assert self.policy.next_delay(50) == timedelta(seconds=3600)

    def test_non_decreasing_without_jitter(self):
        """Тест: без jitter задержка не убывает с ростом attempts"""
        delays = [self.policy.base_delay(n) for n in range(1, 20)]
        assert delays == sorted(delays)

    def test_exhausted_attempts_raise(self):
        """Тест: на последней попытке возвращается терминальный сигнал, а не задержка"""
        with pytest.raises(RetriesExhausted) as exc_info:
            self.policy.next_delay(3, max_attempts=3)

        assert exc_info.value.attempts == 3
        assert exc_info.value.max_attempts == 3

    def test_attempts_below_limit_return_delay(self):
        """Тест: пока попытки не исчерпаны, возвращается задержка"""
        assert self.policy.next_delay(2, max_attempts=3) == timedelta(seconds=240)

    def test_zero_attempts_rejected(self):
        """Тест: attempts < 1 не имеет смысла"""
        with pytest.raises(ValueError):
            self.policy.next_delay(0)

    def test_jitter_bounds(self):
        """Тест: jitter отклоняет задержку не более чем на ±20%"""
        policy = BackoffPolicy(initial_delay=100, max_delay=3600, jitter=0.2, rng=random.Random(42))

        for _ in range(200):
            seconds = policy.next_delay(1).total_seconds()
            assert 80 <= seconds <= 120

    def test_jitter_uses_injected_rng(self):
        """Тест: одинаковый seed дает одинаковую последовательность"""
        first = BackoffPolicy(jitter=0.2, rng=random.Random(7))
        second = BackoffPolicy(jitter=0.2, rng=random.Random(7))

        assert [first.next_delay(n) for n in (1, 2, 3)] == [second.next_delay(n) for n in (1, 2, 3)]

    def test_invalid_jitter(self):
        """Тест: jitter вне [0, 1) отклоняется"""
        with pytest.raises(ValueError):
            BackoffPolicy(jitter=1.5)

    def test_from_config(self, config):
        """Тест: параметры берутся из PushSyncConfig"""
        policy = BackoffPolicy.from_config(config)

        assert policy.initial_delay == config.retry_initial_delay
        assert policy.max_delay == config.retry_max_delay
        assert policy.jitter == config.retry_jitter
