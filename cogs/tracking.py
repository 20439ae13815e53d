import logging

import discord
from discord.ext import commands

import exception
from utils import is_image
from utils.channels import location_for
from utils.walker import ingest_message


class TrackingCog(commands.Cog):
    """Adds images posted in tracked channels to their stored hash tables."""

    def __init__(self, bot):
        self.bot = bot
        self.tracked = bot.config.tracked_channels
        self.prefix = bot.config.prefix
        self.logger = logging.getLogger(self.__class__.__name__)

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.channel.id not in self.tracked:
            return
        if message.content.startswith(self.prefix):
            return
        if not any(is_image(attachment) for attachment in message.attachments):
            return

        channel_id = message.channel.id
        cache = self.bot.hash_tables
        async with cache.lock(channel_id):
            try:
                index = await cache.get_or_create(channel_id)
            except exception.PersistenceError as e:
                self.logger.error(f"Not tracking message {message.id}: {e}")
                return
            stats = await ingest_message(message, index, self.bot.hasher, location_for(message.channel))
            try:
                await cache.save(channel_id, index)
            except exception.PersistenceError as e:
                cache.invalidate(channel_id)
                self.logger.error(f"Failed to save hash table for {channel_id}: {e}")
                return

        if stats.duplicates:
            self.logger.info(
                f"{stats.duplicates} duplicate image(s) posted by {message.author} in {message.channel}: {message.jump_url}"
            )
        else:
            self.logger.debug(f"Recorded {stats.images} new images from message {message.id}")


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(TrackingCog(bot))
