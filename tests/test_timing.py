import asyncio

from linkwatch.orchestrator.timing import jitter, sleep_ms


def test_jitter_is_zero_for_non_positive_max():
    assert jitter(0) == 0
    assert jitter(-10) == 0


def test_jitter_stays_within_range():
    values = {jitter(10) for _ in range(500)}
    assert min(values) >= 0
    assert max(values) <= 10
    assert all(isinstance(value, int) for value in values)


def test_sleep_ms_ignores_non_positive_delays():
    asyncio.run(sleep_ms(0))
    asyncio.run(sleep_ms(-5))
    asyncio.run(sleep_ms(1))
