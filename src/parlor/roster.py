"""Presence roster - who is online, derived from the registry."""

from parlor.registry import ConnectionRegistry


class PresenceRoster:
    """Read-only view of distinct online usernames.

    Holds no state of its own; every call re-derives from the registry.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def snapshot(self) -> list[str]:
        """Distinct online usernames in join order."""
        seen: set[str] = set()
        usernames: list[str] = []
        for connection in self._registry.all():
            name = connection.username
            if name is not None and name not in seen:
                seen.add(name)
                usernames.append(name)
        return usernames

    def __len__(self) -> int:
        return len(self.snapshot())
