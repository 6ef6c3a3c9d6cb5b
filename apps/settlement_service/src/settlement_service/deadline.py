from __future__ import annotations

import time


def now_ms() -> int:
    return int(time.time() * 1000)


class DeadlineClock:
    """Remaining-time queries against a challenge's due timestamp (epoch milliseconds).

    Nothing here schedules; callers poll with their own ``now``.
    """

    @staticmethod
    def remaining(now: int, due_at: int) -> int:
        return max(0, due_at - now)

    @classmethod
    def has_expired(cls, now: int, due_at: int) -> bool:
        return cls.remaining(now, due_at) == 0
