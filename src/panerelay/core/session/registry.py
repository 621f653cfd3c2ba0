"""
Session registry.

The SessionRegistry holds every assistant instance the coordinator knows
about. It is an explicit object owned by the SessionCoordinator and passed
by reference; there is no module-level instance table.

Invariants:
  - Instance ids are unique within a registry.
  - At most one running TerminalSession per instance id.
"""

from __future__ import annotations

from collections.abc import Iterator

import structlog

from panerelay.core.exceptions import SessionNotFoundError
from panerelay.core.session.models import Instance

logger = structlog.get_logger()


class SessionRegistry:
    """
    In-memory instance registry.

    Not thread-safe: call it from the event loop thread only.
    """

    def __init__(self) -> None:
        self._instances: dict[str, Instance] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, instance: Instance) -> None:
        """Add a new instance to the registry."""
        if instance.instance_id in self._instances:
            raise ValueError(f"Instance {instance.instance_id!r} already registered")
        self._instances[instance.instance_id] = instance
        logger.info("instance_registered", instance_id=instance.short_id(), cwd=instance.cwd)

    def get(self, instance_id: str) -> Instance:
        """Return the instance; raise SessionNotFoundError if not found."""
        try:
            return self._instances[instance_id]
        except KeyError:
            raise SessionNotFoundError(f"Instance not found: {instance_id!r}") from None

    def get_or_none(self, instance_id: str) -> Instance | None:
        return self._instances.get(instance_id)

    def remove(self, instance_id: str) -> Instance:
        """Drop an instance from the registry and return it."""
        instance = self.get(instance_id)
        del self._instances[instance_id]
        logger.info("instance_removed", instance_id=instance.short_id())
        return instance

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._instances

    def __iter__(self) -> Iterator[Instance]:
        yield from list(self._instances.values())

    def __len__(self) -> int:
        return len(self._instances)

    def ids(self) -> list[str]:
        return list(self._instances)

    def running(self) -> list[Instance]:
        return [i for i in self._instances.values() if i.is_running]
