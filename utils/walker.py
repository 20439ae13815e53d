import asyncio
import enum
import logging
import typing
from dataclasses import dataclass

import discord

import exception
from .hashing import AttachmentHasher, is_image
from .index import DuplicateIndex, Occurrence

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100

ProgressCallback = typing.Callable[["WalkStats"], typing.Awaitable[None]]


class HashOutcome(enum.Enum):
    HASHED = "hashed"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class WalkStats:
    messages: int = 0
    pages: int = 0
    images: int = 0
    duplicates: int = 0
    skipped: int = 0
    failed: int = 0

    def add(self, other: "WalkStats") -> None:
        self.messages += other.messages
        self.pages += other.pages
        self.images += other.images
        self.duplicates += other.duplicates
        self.skipped += other.skipped
        self.failed += other.failed

    def count(self, outcome: HashOutcome) -> None:
        if outcome is HashOutcome.HASHED:
            self.images += 1
        elif outcome is HashOutcome.DUPLICATE:
            self.images += 1
            self.duplicates += 1
        elif outcome is HashOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1


class DiscordChannelSource:
    """Fetches pages of history from a text channel or thread."""

    def __init__(self, channel: discord.abc.Messageable) -> None:
        self.channel = channel

    @property
    def id(self) -> int:
        return self.channel.id

    @property
    def name(self) -> str:
        return self.channel.name

    async def fetch_page(self, before: int | None, limit: int) -> list[discord.Message]:
        kwargs: dict[str, typing.Any] = {"limit": limit}
        if before is not None:
            kwargs["before"] = discord.Object(id=before)
        try:
            return [message async for message in self.channel.history(**kwargs)]
        except discord.Forbidden as e:
            raise exception.AccessDenied(f"no access to message history of {self.channel.id}") from e
        except discord.HTTPException as e:
            raise exception.RequestFailed(f"failed to fetch messages of {self.channel.id}: {e}") from e


async def _hash_one(hasher: AttachmentHasher, message, attachment) -> tuple[HashOutcome, str | None]:
    try:
        return HashOutcome.HASHED, await hasher.hash_attachment(attachment)
    except exception.UnsupportedFormat:
        return HashOutcome.SKIPPED, None
    except (exception.AttachmentError, OSError) as e:
        logger.warning(f"Skipping attachment {attachment.url} of message {message.id}: {e}")
        return HashOutcome.FAILED, None


async def _ingest(messages: list, index: DuplicateIndex, hasher: AttachmentHasher, location: str) -> WalkStats:
    stats = WalkStats(messages=len(messages))
    jobs = [
        (message, attachment)
        for message in messages
        for attachment in message.attachments
        if is_image(attachment)
    ]
    if not jobs:
        return stats

    # downloads run concurrently, recording keeps message order
    results = await _gather_or_cancel([_hash_one(hasher, m, a) for m, a in jobs])
    for (message, _), (outcome, phash) in zip(jobs, results):
        if phash is not None:
            is_new = index.record(phash, Occurrence.from_message(message, location))
            outcome = HashOutcome.HASHED if is_new else HashOutcome.DUPLICATE
        stats.count(outcome)
    return stats


async def ingest_message(message, index: DuplicateIndex, hasher: AttachmentHasher, location: str) -> WalkStats:
    """Hash every image of one message into ``index``."""
    return await _ingest([message], index, hasher, location)


class MessageWalker:
    """
    Walks the history of one channel from newest to oldest in pages.

    Each page is requested with the id of the last message of the previous
    page as cursor. The walk stops at the first empty page.
    """

    def __init__(self, source, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.source = source
        self.batch_size = batch_size
        self.logger = logging.getLogger(self.__class__.__name__)

    async def pages(self) -> typing.AsyncIterator[list]:
        before = None
        while True:
            page = await self.source.fetch_page(before, self.batch_size)
            if not page:
                return
            before = page[-1].id
            yield page
            del page

    async def count(self) -> int:
        total = 0
        async for page in self.pages():
            total += len(page)
        self.logger.info(f"Counted {total} messages in {self.source.id}")
        return total

    async def process(
        self,
        index: DuplicateIndex,
        hasher: AttachmentHasher,
        location: str,
        progress: ProgressCallback | None = None,
        progress_interval: int = 100,
    ) -> WalkStats:
        stats = WalkStats()
        reported = 0
        async for page in self.pages():
            stats.add(await _ingest(page, index, hasher, location))
            stats.pages += 1
            if progress is not None and stats.messages - reported >= progress_interval:
                reported = stats.messages
                await progress(stats)
        self.logger.info(
            f"Walked {location}: {stats.messages} messages, {stats.images} images, "
            f"{stats.duplicates} duplicates, {stats.skipped} skipped, {stats.failed} failed"
        )
        return stats


async def _gather_or_cancel(coros: list) -> list:
    """Like gather, but the first failure cancels the remaining tasks."""
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def walk_channels(
    sources: list,
    index: DuplicateIndex,
    hasher: AttachmentHasher,
    location: typing.Callable[[typing.Any], str],
    concurrency: int = 4,
    batch_size: int = DEFAULT_BATCH_SIZE,
    on_channel_done: typing.Callable[[typing.Any, WalkStats], typing.Awaitable[None]] | None = None,
) -> WalkStats:
    """Walk several channels into one shared index, ``concurrency`` at a time."""
    semaphore = asyncio.Semaphore(concurrency)
    total = WalkStats()

    async def walk(source) -> None:
        async with semaphore:
            stats = await MessageWalker(source, batch_size).process(index, hasher, location(source))
            total.add(stats)
            if on_channel_done is not None:
                await on_channel_done(source, stats)

    await _gather_or_cancel([walk(source) for source in sources])
    return total


async def count_channels(sources: list, concurrency: int = 4, batch_size: int = DEFAULT_BATCH_SIZE) -> int:
    semaphore = asyncio.Semaphore(concurrency)

    async def count(source) -> int:
        async with semaphore:
            return await MessageWalker(source, batch_size).count()

    return sum(await _gather_or_cancel([count(source) for source in sources]))
