from settlement_service.deadline import DeadlineClock


def test_remaining_is_clamped_at_zero() -> None:
    assert DeadlineClock.remaining(1_000, 5_000) == 4_000
    assert DeadlineClock.remaining(5_000, 5_000) == 0
    assert DeadlineClock.remaining(9_000, 5_000) == 0


def test_has_expired_boundary() -> None:
    assert not DeadlineClock.has_expired(4_999, 5_000)
    assert DeadlineClock.has_expired(5_000, 5_000)
    assert DeadlineClock.has_expired(5_001, 5_000)

