import asyncio
import logging
import time
import typing
from dataclasses import dataclass

import discord
from discord.ext import commands

import exception
from utils import DuplicateIndex, create_progress_bar, format_elapsed_time, generate_reports
from utils.channels import get_all_forum_posts, location_for, parse_channel_id, resolve_channel
from utils.permissions import check_channel_permissions
from utils.progress import ProgressMessage
from utils.walker import DiscordChannelSource, MessageWalker, WalkStats, count_channels, walk_channels


@dataclass
class Job:
    kind: str
    task: asyncio.Task | None = None
    partial: bool = False
    # set by !stop, also before the task exists
    cancel_requested: bool = False


class AnalysisCog(commands.Cog):
    """Forum analysis, hash table builds and the reports made from them."""

    def __init__(self, bot):
        self.bot = bot
        self.config = bot.config
        self.jobs: dict[int, Job] = {}
        # last finished or partially stopped !check per channel, with its partial flag
        self.results: dict[int, tuple[DuplicateIndex, bool]] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def cog_unload(self) -> None:
        for job in self.jobs.values():
            if job.task is not None:
                job.task.cancel()

    def _claim(self, channel_id: int, kind: str) -> Job:
        running = self.jobs.get(channel_id)
        if running is not None:
            raise exception.JobAlreadyRunning(f"a {running.kind} job is already running for {channel_id}")
        job = self.jobs[channel_id] = Job(kind)
        return job

    async def _run(self, job: Job, coro: typing.Coroutine) -> bool:
        """Run ``coro`` as the job's task. Returns False if it was stopped."""
        job.task = asyncio.create_task(coro)
        if job.cancel_requested:
            job.task.cancel()
        try:
            await asyncio.wait({job.task})
        except asyncio.CancelledError:
            job.task.cancel()
            raise
        if job.task.cancelled():
            return False
        job.task.result()
        return True

    def _sources(self, posts: list) -> list[DiscordChannelSource]:
        me = posts[0].guild.me if posts else None
        for post in posts:
            check_channel_permissions(post, me)
        return [DiscordChannelSource(post) for post in posts]

    async def _send_reports(self, ctx: commands.Context, paths: list) -> None:
        try:
            await ctx.send(files=[discord.File(path) for path in paths])
        except discord.HTTPException as e:
            self.logger.warning(f"Could not upload reports: {e}")
            await ctx.send("Reports are too large to upload, they were saved as:\n" + "\n".join(str(p) for p in paths))

    @commands.command(name="check")
    async def check(self, ctx: commands.Context, channel_id: str):
        """
        Analyze every post of a forum channel for duplicate images.

        Parameters
        ----------
        ctx: commands.Context
            The context of the command invocation
        channel_id: str
            Id of the forum channel to analyze.
        """
        channel = await resolve_channel(self.bot, channel_id)
        if not isinstance(channel, discord.ForumChannel):
            raise exception.WrongChannelType(f"{channel.id} is not a forum channel")
        check_channel_permissions(channel, channel.guild.me)

        job = self._claim(channel.id, "check")
        self.logger.info(f"Check started for {channel.id} by {ctx.author}")
        progress = ProgressMessage(ctx.channel, timeout=self.config.progress_timeout)
        index = DuplicateIndex()
        start = time.monotonic()
        try:
            await progress.update("Starting forum analysis... This might take a while.")
            finished = await self._run(job, self._analyze_forum(channel, index, progress, start))
        finally:
            self.jobs.pop(channel.id, None)

        if not finished:
            self.logger.info(f"Check for {channel.id} stopped with {len(index)} images recorded")
            if not job.partial:
                await progress.append("Analysis stopped. No report was generated.")
                return
            self.results[channel.id] = (index, True)
            paths = await asyncio.to_thread(generate_reports, channel.id, index, self.config.report_dir, None, True)
            await progress.append("Analysis stopped. Partial reports attached.")
            await self._send_reports(ctx, paths)
            return

        stats, total_messages, post_count = job.task.result()
        self.results[channel.id] = (index, False)
        paths = await asyncio.to_thread(generate_reports, channel.id, index, self.config.report_dir)
        await progress.update(
            "Analysis complete!\n"
            f"Total messages analyzed: {total_messages:,}\n"
            f"Images found: {stats.images:,}\n"
            f"Duplicates found: {stats.duplicates:,}\n"
            f"Images skipped: {stats.skipped + stats.failed:,}\n"
            f"Forum posts analyzed: {post_count}\n"
            f"Time taken: {format_elapsed_time(time.monotonic() - start)}\n"
            f"Report saved as: {paths[0].name}"
        )
        await self._send_reports(ctx, paths)
        self.logger.info(f"Check finished for {channel.id}: {stats.images} images, {stats.duplicates} duplicates")

    async def _analyze_forum(
        self,
        channel: discord.ForumChannel,
        index: DuplicateIndex,
        progress: ProgressMessage,
        start: float,
    ) -> tuple[WalkStats, int, int]:
        posts = await get_all_forum_posts(channel)
        sources = self._sources(posts)
        total_messages = await count_channels(sources, self.config.thread_concurrency, self.config.batch_size)
        await progress.update(
            f"Starting analysis of {total_messages:,} total messages across {len(posts)} forum posts..."
        )

        running = WalkStats()
        done = 0

        async def on_post_done(source: DiscordChannelSource, stats: WalkStats) -> None:
            nonlocal done
            done += 1
            running.add(stats)
            await progress.update(
                "Processing forum posts...\n"
                f"{create_progress_bar(done / len(posts))}\n"
                f"Found {running.images:,} images ({running.duplicates:,} duplicates)\n"
                f"Time elapsed: {format_elapsed_time(time.monotonic() - start)}\n"
                f"Last finished: {source.name}"
            )

        stats = await walk_channels(
            sources,
            index,
            self.bot.hasher,
            lambda source: location_for(source.channel),
            concurrency=self.config.thread_concurrency,
            batch_size=self.config.batch_size,
            on_channel_done=on_post_done,
        )
        return stats, total_messages, len(posts)

    @commands.command(name="hash")
    async def hash(self, ctx: commands.Context, channel_id: str):
        """
        Build the stored hash table for a channel from its whole history.

        Parameters
        ----------
        ctx: commands.Context
            The context of the command invocation
        channel_id: str
            Id of a text channel, thread or forum channel.
        """
        channel = await resolve_channel(self.bot, channel_id)
        if isinstance(channel, discord.ForumChannel):
            check_channel_permissions(channel, channel.guild.me)
            posts = None
        elif isinstance(channel, (discord.TextChannel, discord.VoiceChannel, discord.Thread)):
            check_channel_permissions(channel, channel.guild.me)
            posts = [channel]
        else:
            raise exception.WrongChannelType(f"{channel.id} has no message history to hash")

        job = self._claim(channel.id, "hash")
        self.logger.info(f"Hash table build started for {channel.id} by {ctx.author}")
        progress = ProgressMessage(ctx.channel, timeout=self.config.progress_timeout)
        index = DuplicateIndex()
        start = time.monotonic()
        # messages newer than this are also seen by live tracking while the build runs
        started_after = discord.utils.time_snowflake(discord.utils.utcnow())
        try:
            await progress.update("Counting messages...")
            finished = await self._run(job, self._build_table(channel, posts, index, progress, start))
        finally:
            self.jobs.pop(channel.id, None)

        if not finished:
            await progress.append("Hash table build stopped. Nothing was saved.")
            return

        stats = job.task.result()
        await self._save_built_table(channel.id, index, started_after)
        await progress.update(
            "Hash database build complete!\n"
            f"Total messages processed: {stats.messages:,}\n"
            f"Total images processed: {stats.images:,}\n"
            f"Images skipped: {stats.skipped + stats.failed:,}\n"
            f"Unique images: {len(index):,}\n"
            f"Time taken: {format_elapsed_time(time.monotonic() - start)}"
        )

    async def _save_built_table(self, channel_id: int, index: DuplicateIndex, started_after: int) -> None:
        cache = self.bot.hash_tables
        async with cache.lock(channel_id):
            try:
                current = await cache.get(channel_id)
            except exception.PersistenceError as e:
                self.logger.warning(f"Replacing unreadable hash table for {channel_id}: {e}")
                current = None
            if current is not None:
                added = index.merge(current, after=started_after)
                if added:
                    self.logger.info(f"Kept {added} images tracked in {channel_id} during the build")
            await cache.save(channel_id, index)

    async def _build_table(
        self,
        channel,
        posts: list | None,
        index: DuplicateIndex,
        progress: ProgressMessage,
        start: float,
    ) -> WalkStats:
        if posts is None:
            posts = await get_all_forum_posts(channel)
        sources = self._sources(posts)
        total = await count_channels(sources, self.config.thread_concurrency, self.config.batch_size)

        async def report(stats: WalkStats) -> None:
            fraction = stats.messages / total if total else 1.0
            await progress.update(
                "Building hash database...\n"
                f"{create_progress_bar(fraction)}\n"
                f"Progress: {fraction * 100:.2f}% ({stats.messages:,}/{total:,} messages)\n"
                f"Images processed: {stats.images:,}\n"
                f"Images skipped: {stats.skipped + stats.failed:,}\n"
                f"Unique images: {len(index):,}\n"
                f"Time elapsed: {format_elapsed_time(time.monotonic() - start)}"
            )

        if len(sources) == 1:
            source = sources[0]
            return await MessageWalker(source, self.config.batch_size).process(
                index,
                self.bot.hasher,
                location_for(source.channel),
                progress=report,
                progress_interval=self.config.progress_interval,
            )

        running = WalkStats()

        async def on_post_done(source: DiscordChannelSource, stats: WalkStats) -> None:
            running.add(stats)
            await report(running)

        return await walk_channels(
            sources,
            index,
            self.bot.hasher,
            lambda source: location_for(source.channel),
            concurrency=self.config.thread_concurrency,
            batch_size=self.config.batch_size,
            on_channel_done=on_post_done,
        )

    @commands.command(name="report")
    async def report(self, ctx: commands.Context, channel_id: str):
        """
        Write the duplicate, author and timeline reports for a channel.

        Uses the last !check of the channel, or its stored hash table.
        """
        cid = parse_channel_id(channel_id)
        result = self.results.get(cid)
        if result is not None:
            index, partial = result
            paths = await asyncio.to_thread(generate_reports, cid, index, self.config.report_dir, None, partial)
        else:
            async with self.bot.hash_tables.lock(cid):
                index = await self.bot.hash_tables.get(cid)
                if index is None:
                    raise exception.NoHashTable(f"no hash table for {cid}")
                paths = await asyncio.to_thread(generate_reports, cid, index, self.config.report_dir)
        await ctx.send(f"Reports for {cid} ({len(index):,} unique images):")
        await self._send_reports(ctx, paths)

    @commands.command(name="stop")
    async def stop(self, ctx: commands.Context, channel_id: str, mode: str | None = None):
        """
        Stop the running job of a channel.

        Pass ``partial`` as second argument to still get reports from a
        stopped !check.
        """
        cid = parse_channel_id(channel_id)
        job = self.jobs.get(cid)
        if job is None:
            raise exception.NoJobRunning(f"no job running for {cid}")
        job.partial = mode is not None and mode.lower() == "partial"
        job.cancel_requested = True
        if job.task is not None:
            job.task.cancel()
        self.logger.info(f"{job.kind} job for {cid} stopped by {ctx.author}")
        await ctx.send(f"Stopping {job.kind} job for {cid}...")


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(AnalysisCog(bot))
