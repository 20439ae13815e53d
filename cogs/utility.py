from discord.ext import commands

from utils.channels import resolve_channel
from utils.permissions import REQUIRED_PERMISSIONS


class UtilityCog(commands.Cog):
    def __init__(self, bot):
        self.bot = bot

    @commands.command(name="help")
    async def help(self, ctx: commands.Context):
        """
        Show the available commands.
        """
        p = self.bot.config.prefix
        await ctx.send(
            "**Forum Image Analyzer Bot Commands:**\n"
            f"`{p}check <channelId>` - Analyze a forum channel for duplicate images\n"
            f"`{p}hash <channelId>` - Build hash database for previous messages in a channel\n"
            f"`{p}report <channelId>` - Generate reports from the last analysis or the hash database\n"
            f"`{p}stop <channelId> [partial]` - Stop a running analysis, optionally keeping partial reports\n"
            f"`{p}checkperms <channelId>` - Check bot permissions in a channel\n"
            f"`{p}help` - Show this help message\n\n"
            "**Note:** All responses will be sent to the channel where the command was issued."
        )

    @commands.command(name="checkperms")
    async def checkperms(self, ctx: commands.Context, channel_id: str):
        """
        Show which of the permissions the bot needs it has in a channel.

        Parameters
        ----------
        ctx: commands.Context
            The context of the command invocation
        channel_id: str
            Id of the channel to check.
        """
        channel = await resolve_channel(self.bot, channel_id)
        permissions = channel.permissions_for(channel.guild.me)
        lines = [
            f"{name}: {'✅' if getattr(permissions, name) else '❌'}"
            for name in (*REQUIRED_PERMISSIONS, "send_messages", "attach_files")
        ]
        await ctx.send("Bot permissions in channel:\n" + "\n".join(lines))


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(UtilityCog(bot))
