"""In-memory index of live raids, backed by :class:`~raidbot.store.RaidStore`.

The registry is the single authority on which channels are raids.  Changes go
through :meth:`RaidRegistry.update`, which mutates a copy, persists it and only
then swaps it in, so a failed write never leaves memory ahead of the store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterator, TypeVar

from .errors import RaidNotFound
from .raid import Raid
from .store import RaidStore

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RaidRegistry:
    def __init__(self, store: RaidStore) -> None:
        self.store = store
        self._raids: dict[int, Raid] = {}
        self._lock = asyncio.Lock()

    async def load(self) -> int:
        """Populate the registry from the active store."""

        raids = await self.store.load_all()
        self._raids = {raid.channel_id: raid for raid in raids}
        logger.info("Loaded %d active raid(s)", len(self._raids))
        return len(self._raids)

    def __len__(self) -> int:
        return len(self._raids)

    def __iter__(self) -> Iterator[Raid]:
        return iter(list(self._raids.values()))

    def all(self) -> list[Raid]:
        return list(self._raids.values())

    def channel_ids(self) -> list[int]:
        return list(self._raids)

    def exists(self, channel_id: int) -> bool:
        return channel_id in self._raids

    def find(self, channel_id: int) -> Raid | None:
        return self._raids.get(channel_id)

    def get(self, channel_id: int) -> Raid:
        raid = self._raids.get(channel_id)
        if raid is None:
            raise RaidNotFound()
        return raid

    def all_for_source(self, source_channel_id: int) -> list[Raid]:
        return [r for r in self._raids.values() if r.source_channel_id == source_channel_id]

    def exists_for_venue(self, venue_id: str) -> bool:
        return any(r.venue_id == venue_id for r in self._raids.values())

    async def put(self, raid: Raid) -> Raid:
        async with self._lock:
            await self.store.save(raid)
            self._raids[raid.channel_id] = raid
        return raid

    async def update(self, channel_id: int, mutator: Callable[[Raid], T]) -> tuple[Raid, T]:
        """Apply ``mutator`` to a copy of the raid, persist it and commit it.

        Exceptions from ``mutator`` (validation errors) or from the store
        (:class:`~raidbot.errors.PersistenceFailure`) propagate and leave the
        registered raid untouched.  Returns the new raid and whatever the
        mutator returned.
        """

        async with self._lock:
            raid = self.get(channel_id).copy()
            result = mutator(raid)
            await self.store.save(raid)
            self._raids[channel_id] = raid
        return raid, result

    async def remove(self, channel_id: int) -> Raid | None:
        async with self._lock:
            if channel_id not in self._raids:
                return None
            await self.store.delete(channel_id)
            return self._raids.pop(channel_id)

    async def archive(self, channel_id: int) -> Raid | None:
        """Move a raid to its venue's archive.  No-op if already gone."""

        async with self._lock:
            raid = self._raids.get(channel_id)
            if raid is None:
                return None
            await self.store.archive(raid)
            return self._raids.pop(channel_id)
