"""Primary/fallback selection for read-side collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from flask import current_app

T = TypeVar("T")


@dataclass(frozen=True)
class DataSource(Generic[T]):
    """Pick ``primary`` while ``health_check`` passes, otherwise ``fallback``.

    The health check runs on every ``resolve()`` call; nothing is cached, so
    recovery of the primary is picked up on the next call.
    """

    primary: T
    fallback: T
    health_check: Callable[[], bool]
    name: str = "data source"

    def is_healthy(self) -> bool:
        try:
            return bool(self.health_check())
        except Exception as exc:
            current_app.logger.warning("%s health check failed: %s", self.name, exc)
            return False

    def resolve(self) -> T:
        if self.is_healthy():
            return self.primary
        current_app.logger.debug("%s unavailable, using fallback", self.name)
        return self.fallback
