"""
Progressive account lockout.

Every time the cumulative failure count reaches a further multiple of
max_attempts the account is locked; each successive window doubles the
previous one, capped at max_duration_minutes:

    lockout_count = (attempts - 1) // max_attempts
    minutes       = min(initial * 2 ** lockout_count, max)

With 5 / 15 / 1440: attempt 5 locks for 15 minutes, attempt 10 for 30,
attempt 15 for 60, ... up to one day.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class LockoutPolicy:
    max_attempts: int = 5
    initial_duration_minutes: int = 15
    max_duration_minutes: int = 1440

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_duration_minutes < 1:
            raise ValueError("initial_duration_minutes must be at least 1")
        if self.max_duration_minutes < self.initial_duration_minutes:
            raise ValueError("max_duration_minutes must be >= initial_duration_minutes")

    @classmethod
    def from_config(cls, config) -> "LockoutPolicy":
        return cls(
            max_attempts=int(config["LOCKOUT_MAX_ATTEMPTS"]),
            initial_duration_minutes=int(config["LOCKOUT_INITIAL_DURATION_MINUTES"]),
            max_duration_minutes=int(config["LOCKOUT_MAX_DURATION_MINUTES"]),
        )

    def should_lock(self, attempts: int) -> bool:
        return attempts > 0 and attempts % self.max_attempts == 0

    def duration_minutes(self, attempts: int) -> int:
        if attempts < 1:
            return 0
        lockout_count = (attempts - 1) // self.max_attempts
        # Past the cap the exponent no longer matters; avoid huge ints
        if lockout_count >= self.max_duration_minutes.bit_length():
            return self.max_duration_minutes
        return min(self.initial_duration_minutes * 2 ** lockout_count, self.max_duration_minutes)

    def duration(self, attempts: int) -> timedelta:
        return timedelta(minutes=self.duration_minutes(attempts))

    def lockout_until(self, attempts: int, now: datetime) -> datetime | None:
        """When the account stays locked after this many failures, or None."""
        if not self.should_lock(attempts):
            return None
        return now + self.duration(attempts)
