import datetime
import logging
import traceback

import discord
from discord.ext import commands

import exception


class ExceptionHandler(commands.Cog):
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self.logger = logging.getLogger(self.__class__.__name__)

    @commands.Cog.listener()
    async def on_command_error(self, ctx: commands.Context, error: commands.CommandError) -> None:
        if isinstance(error, commands.CommandNotFound):
            await ctx.send(f"Unknown command. Use {self.bot.config.prefix}help to see available commands.")
            return
        error = getattr(error, "original", error)

        embed = discord.Embed(
        title=f"Error in command {ctx.command}!",
        description="Unknown error occurred while using the command",
        color=discord.Color.red(),
        timestamp=datetime.datetime.now(datetime.timezone.utc)
        )
        if isinstance(error, commands.MissingRequiredArgument):
            embed.description = f"Command format is incorrect! Usage: `{self.bot.config.prefix}{ctx.command} <channelId>`"
        elif isinstance(error, exception.InvalidChannelId):
            embed.description = "Invalid channel ID format."
        elif isinstance(error, exception.ChannelNotFound):
            embed.description = "Channel not found."
        elif isinstance(error, exception.WrongChannelType):
            embed.description = "This channel is not the right kind for this command."
        elif isinstance(error, exception.JobAlreadyRunning):
            embed.description = "A job is already running for this channel. Use stop to cancel it."
        elif isinstance(error, exception.NoJobRunning):
            embed.description = "There is no running job for this channel."
        elif isinstance(error, exception.NoHashTable):
            embed.description = "No hash database exists for this channel. Build one with hash first."
        elif isinstance(error, exception.AccessDenied):
            embed.description = "The bot does not have access to that channel."
        elif isinstance(error, exception.RequestFailed):
            embed.description = "A request to Discord failed. Try again later."
        elif isinstance(error, exception.HashStoreCorrupted):
            embed.description = "The stored hash database for this channel is corrupted. It was not modified."
        elif isinstance(error, exception.PersistenceError):
            embed.description = "The hash database could not be read or written."
        elif isinstance(error, exception.ReportGenerationError):
            embed.description = "The report could not be written. The analysis results were kept, use report to retry."
        else:
            self.logger.error(
                f"Unhandled error in {ctx.command}:\n"
                + "".join(traceback.format_exception(type(error), error, error.__traceback__))
            )
        if isinstance(error, exception.BotError):
            self.logger.warning(f"{ctx.command} failed: {error}")
            embed.add_field(name="Details", value=str(error)[:1024])
        await ctx.send(embed=embed)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(ExceptionHandler(bot))
