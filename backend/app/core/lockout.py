# app/core/lockout.py
"""
Account lockout policy (brute force protection).

Failed logins are counted with single-statement atomic updates so two
concurrent bad attempts cannot both read the same count:

1. a stale lock (lock_until in the past) is cleared and the count restarts at 1
2. otherwise the count is incremented with an F() expression
3. the lock is set by a conditional update that only matches once the count
   has reached the threshold and the account is not already locked
"""
import datetime as dt
from dataclasses import dataclass
from typing import Optional

from tortoise.expressions import F

from app.core.security import utc_now
from app.models.user import User


@dataclass
class LockoutStatus:
    attempts: int
    remaining_attempts: int
    locked: bool = False
    lock_until: Optional[dt.datetime] = None


class AccountLockoutPolicy:
    """
    Manages account lockout.

    - Lock after `max_attempts` consecutive failures
    - Lock lasts `lock_minutes`, then self-heals on the next login attempt
    - Successful login resets the counter and clears the lock in one update
    """

    def __init__(self, max_attempts: int = 5, lock_minutes: int = 120):
        self.max_attempts = max_attempts
        self.lock_minutes = lock_minutes

    @staticmethod
    def is_locked(user: User) -> bool:
        return user.is_account_locked

    async def record_failed_attempt(self, user: User) -> LockoutStatus:
        now = utc_now()

        healed = await User.filter(id=user.id, lock_until__lte=now).update(
            login_attempts=1, is_locked=False, lock_until=None,
        )
        if not healed:
            await User.filter(id=user.id).update(login_attempts=F("login_attempts") + 1)
            await User.filter(
                id=user.id, login_attempts__gte=self.max_attempts, is_locked=False,
            ).update(is_locked=True, lock_until=now + dt.timedelta(minutes=self.lock_minutes))

        await user.refresh_from_db(fields=["login_attempts", "is_locked", "lock_until"])
        return LockoutStatus(
            attempts=user.login_attempts,
            remaining_attempts=max(0, self.max_attempts - user.login_attempts),
            locked=user.is_account_locked,
            lock_until=user.lock_until if user.is_account_locked else None,
        )

    async def record_successful_login(self, user: User) -> None:
        now = utc_now()
        await User.filter(id=user.id).update(
            login_attempts=0, is_locked=False, lock_until=None, last_login=now,
        )
        user.login_attempts = 0
        user.is_locked = False
        user.lock_until = None
        user.last_login = now

    async def unlock(self, user: User) -> None:
        """Manual (admin) unlock."""
        await User.filter(id=user.id).update(login_attempts=0, is_locked=False, lock_until=None)
        user.login_attempts = 0
        user.is_locked = False
        user.lock_until = None

    @staticmethod
    def remaining_seconds(user: User) -> Optional[int]:
        if not user.is_account_locked:
            return None
        return max(0, int((user.lock_until - utc_now()).total_seconds()))

    @classmethod
    def lockout_message(cls, user: User) -> str:
        remaining = cls.remaining_seconds(user)
        if remaining is None:
            return ""
        if remaining >= 3600:
            hours = remaining // 3600
            return f"Account temporarily locked. Try again in {hours} hour{'s' if hours > 1 else ''}."
        if remaining >= 60:
            minutes = remaining // 60
            return f"Account temporarily locked. Try again in {minutes} minute{'s' if minutes > 1 else ''}."
        return f"Account temporarily locked. Try again in {remaining} second{'s' if remaining != 1 else ''}."
