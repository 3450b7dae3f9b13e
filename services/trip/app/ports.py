"""
Trip Service - clock and id generator

Commands take the current time and new identities from these so tests
can pin both.
"""

from datetime import datetime, timezone
from typing import Protocol
from uuid import UUID, uuid4


class Clock(Protocol):
    def now(self) -> datetime: ...


class IdGenerator(Protocol):
    def new_id(self) -> UUID: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class UuidGenerator:
    def new_id(self) -> UUID:
        return uuid4()
