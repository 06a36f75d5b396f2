from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import timedelta


class CacheState(str, enum.Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    VALID = "valid"
    STALE = "stale"


class RefreshKind(str, enum.Enum):
    PERIODIC = "periodic"
    PERIODIC_AND_LOGIN = "periodic_and_login"
    ON_LOGIN_LOGOUT = "on_login_logout"
    MANUAL = "manual"


@dataclass(frozen=True)
class RefreshPolicy:
    """How and when a cached value refreshes.

    Build instances through the named constructors::

        RefreshPolicy.periodic(10)
        RefreshPolicy.periodic(2, fetch_on_login=True, flush_on_logout=True)
        RefreshPolicy.periodic_and_login(timedelta(seconds=10))
        RefreshPolicy.on_login_logout()
        RefreshPolicy.manual()

    ``periodic_and_login`` keeps the value on logout and marks it stale,
    while ``on_login_logout`` drops it. Callers that must not show an empty
    state after logout should pick the former.
    """

    kind: RefreshKind
    interval: float | None = None
    # Extra hooks for a plain periodic policy, e.g. session-scoped trading pairs.
    fetch_on_login: bool = False
    flush_on_logout: bool = False

    def __post_init__(self) -> None:
        if self.kind in (RefreshKind.PERIODIC, RefreshKind.PERIODIC_AND_LOGIN):
            if self.interval is None or self.interval <= 0:
                raise ValueError(
                    f"{self.kind.value} policy needs a positive interval, got {self.interval!r}"
                )
        elif self.interval is not None:
            raise ValueError(f"{self.kind.value} policy takes no interval")
        if (self.fetch_on_login or self.flush_on_logout) and self.kind is not RefreshKind.PERIODIC:
            raise ValueError(f"{self.kind.value} policy already defines its login/logout behaviour")

    @classmethod
    def periodic(
        cls,
        interval: float | timedelta,
        *,
        fetch_on_login: bool = False,
        flush_on_logout: bool = False,
    ) -> RefreshPolicy:
        return cls(
            RefreshKind.PERIODIC,
            _seconds(interval),
            fetch_on_login=fetch_on_login,
            flush_on_logout=flush_on_logout,
        )

    @classmethod
    def periodic_and_login(cls, interval: float | timedelta) -> RefreshPolicy:
        return cls(RefreshKind.PERIODIC_AND_LOGIN, _seconds(interval))

    @classmethod
    def on_login_logout(cls) -> RefreshPolicy:
        return cls(RefreshKind.ON_LOGIN_LOGOUT)

    @classmethod
    def manual(cls) -> RefreshPolicy:
        return cls(RefreshKind.MANUAL)

    @property
    def is_time_bound(self) -> bool:
        return self.interval is not None

    @property
    def fetches_on_login(self) -> bool:
        return self.fetch_on_login or self.kind in (
            RefreshKind.PERIODIC_AND_LOGIN,
            RefreshKind.ON_LOGIN_LOGOUT,
        )

    @property
    def flushes_on_logout(self) -> bool:
        return self.flush_on_logout or self.kind is RefreshKind.ON_LOGIN_LOGOUT

    @property
    def marks_stale_on_logout(self) -> bool:
        return self.kind is RefreshKind.PERIODIC_AND_LOGIN

    def is_expired(self, last_fetch_time: float | None, now: float) -> bool:
        """Whether a value fetched at ``last_fetch_time`` is past its TTL."""
        if not self.is_time_bound:
            return False
        if last_fetch_time is None:
            return True
        return now - last_fetch_time > self.interval  # type: ignore[operator]

    def describe(self) -> str:
        if self.interval is None:
            return self.kind.value
        text = f"{self.kind.value}({self.interval:g}s)"
        if self.fetch_on_login:
            text += "+login"
        if self.flush_on_logout:
            text += "+flush"
        return text


def _seconds(interval: float | timedelta) -> float:
    if isinstance(interval, timedelta):
        return interval.total_seconds()
    return float(interval)
