"""Unit tests for homehub.core.retry."""

from homehub.core.retry import RetryConfig, calculate_backoff


class TestCalculateBackoff:

    def test_default_config_values(self) -> None:
        cfg = RetryConfig()
        assert cfg.max_attempts == 5
        assert cfg.base_delay == 3.0
        assert cfg.max_delay == 60.0

    def test_doubles_then_caps(self) -> None:
        cfg = RetryConfig(max_attempts=10)
        delays = [calculate_backoff(n, cfg) for n in range(1, 8)]
        assert delays == [3.0, 6.0, 12.0, 24.0, 48.0, 60.0, 60.0]

    def test_jitter_stays_within_bounds(self) -> None:
        cfg = RetryConfig(base_delay=10.0, jitter=0.5)
        for _ in range(50):
            assert 10.0 <= calculate_backoff(1, cfg) <= 15.0
