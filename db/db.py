import logging
import sqlite3
import typing
from pathlib import Path

from tortoise import Tortoise, connections
from tortoise.exceptions import BaseORMException
from tortoise.transactions import in_transaction

import exception
from db.models import HashTable, ImageOccurrence
from utils.index import Author, DuplicateIndex, Occurrence

SAVE_CHUNK = 1000

_ROW_FIELDS = (
    "phash",
    "is_original",
    "message_id",
    "url",
    "author_id",
    "author_name",
    "timestamp",
    "location",
)


class Database:
    """
    SQLite store of per-channel hash tables.

    A channel's table is replaced as a whole inside one transaction, so a
    failed save leaves the previous table untouched.
    """

    def __init__(self, path: str | Path):
        self.path = str(path)
        self.logger = logging.getLogger(self.__class__.__name__)

    async def connect(self):
        await Tortoise.init(
            db_url=f"sqlite://{self.path}",
            modules={"models": ["db.models"]},
        )

        conn = connections.get("default")
        await conn.execute_query("PRAGMA journal_mode = WAL;")

        await Tortoise.generate_schemas()

    async def load_index(self, channel_id: int) -> DuplicateIndex | None:
        """
        Load the hash table of a channel.

        Returns None when no table was ever saved for the channel. Raises
        HashStoreCorrupted when the stored rows do not form a valid table.
        """
        try:
            table = await HashTable.get_or_none(channel_id=channel_id)
            if table is None:
                return None
            rows = await ImageOccurrence.filter(channel_id=channel_id).order_by("seq").values(*_ROW_FIELDS)
        except (BaseORMException, sqlite3.Error) as e:
            raise exception.PersistenceError(f"failed to load hash table for {channel_id}: {e}") from e

        index = DuplicateIndex()
        for row in rows:
            occurrence = Occurrence(
                message_id=row["message_id"],
                url=row["url"],
                author=Author(id=row["author_id"], name=row["author_name"]),
                timestamp=row["timestamp"],
                location=row["location"],
            )
            known = row["phash"] in index
            if bool(row["is_original"]) == known:
                raise exception.HashStoreCorrupted(
                    f"hash table for {channel_id} is corrupted at hash {row['phash']}"
                )
            index.record(row["phash"], occurrence)

        if len(index) != table.image_count:
            raise exception.HashStoreCorrupted(
                f"hash table for {channel_id} holds {len(index)} images, expected {table.image_count}"
            )
        self.logger.info(f"Loaded hash table for {channel_id} with {len(index)} images")
        return index

    def _rows(self, channel_id: int, index: DuplicateIndex) -> typing.Iterator[ImageOccurrence]:
        seq = 0
        for phash, record in index.items():
            for position, occurrence in enumerate(record.occurrences):
                yield ImageOccurrence(
                    channel_id=channel_id,
                    seq=seq,
                    phash=phash,
                    is_original=position == 0,
                    message_id=occurrence.message_id,
                    url=occurrence.url,
                    author_id=occurrence.author.id,
                    author_name=occurrence.author.name,
                    timestamp=occurrence.timestamp,
                    location=occurrence.location,
                )
                seq += 1

    async def save_index(self, channel_id: int, index: DuplicateIndex) -> None:
        try:
            async with in_transaction() as conn:
                await ImageOccurrence.filter(channel_id=channel_id).using_db(conn).delete()
                batch = []
                for row in self._rows(channel_id, index):
                    batch.append(row)
                    if len(batch) >= SAVE_CHUNK:
                        await ImageOccurrence.bulk_create(batch, using_db=conn)
                        batch = []
                if batch:
                    await ImageOccurrence.bulk_create(batch, using_db=conn)
                await HashTable.update_or_create(
                    defaults={"image_count": len(index)},
                    using_db=conn,
                    channel_id=channel_id,
                )
        except (BaseORMException, sqlite3.Error) as e:
            raise exception.PersistenceError(f"failed to save hash table for {channel_id}: {e}") from e
        self.logger.info(f"Saved hash table for {channel_id} with {len(index)} images")

    async def close(self):
        await connections.close_all()
