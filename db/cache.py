import asyncio
import logging
from collections import defaultdict

from db.db import Database
from utils.index import DuplicateIndex


class HashTableCache:
    """
    Loaded hash tables, by channel id, kept for the life of the process.

    Callers that load, change and save a table must hold ``lock(channel_id)``
    for the whole sequence. The cache does not notice writes made by other
    processes.
    """

    def __init__(self, database: Database) -> None:
        self.database = database
        self._tables: dict[int, DuplicateIndex] = {}
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.logger = logging.getLogger(self.__class__.__name__)

    def lock(self, channel_id: int) -> asyncio.Lock:
        return self._locks[channel_id]

    async def get(self, channel_id: int) -> DuplicateIndex | None:
        index = self._tables.get(channel_id)
        if index is None:
            index = await self.database.load_index(channel_id)
            if index is not None:
                self._tables[channel_id] = index
        return index

    async def get_or_create(self, channel_id: int) -> DuplicateIndex:
        index = await self.get(channel_id)
        if index is None:
            index = self._tables[channel_id] = DuplicateIndex()
        return index

    async def save(self, channel_id: int, index: DuplicateIndex) -> None:
        await self.database.save_index(channel_id, index)
        self._tables[channel_id] = index

    def invalidate(self, channel_id: int) -> None:
        self._tables.pop(channel_id, None)

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._tables
