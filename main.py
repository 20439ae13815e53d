import datetime
import logging
import os
import traceback
import typing
import aiohttp

import discord
from discord.ext import commands
from dotenv import load_dotenv

from config import Config
from db.cache import HashTableCache
from db.db import Database
from utils import AttachmentHasher


class RepostBot(commands.Bot):
    session: aiohttp.ClientSession
    db: Database
    hash_tables: HashTableCache
    hasher: AttachmentHasher

    def __init__(self, config: Config, ext_dir: str, *args: typing.Any, **kwargs: typing.Any) -> None:
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(*args, **kwargs, command_prefix=commands.when_mentioned_or(config.prefix), intents=intents)
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config = config
        self.ext_dir = ext_dir
        self.remove_command('help')

    async def _load_extensions(self) -> None:
        if os.getenv("MODE") == "DEV":
            await self.load_extension('jishaku')
        if not os.path.isdir(self.ext_dir):
            self.logger.error(f"Extension directory {self.ext_dir} does not exist.")
            return
        for filename in os.listdir(self.ext_dir):
            if filename.endswith(".py") and not filename.startswith("_"):
                try:
                    await self.load_extension(f"{self.ext_dir}.{filename[:-3]}")
                    self.logger.info(f"Loaded extension {filename[:-3]}")
                except commands.ExtensionError:
                    self.logger.error(f"Failed to load extension {filename[:-3]}\n{traceback.format_exc()}")

    async def on_error(self, event_method: str, *args: typing.Any, **kwargs: typing.Any) -> None:
        self.logger.error(f"An error occurred in {event_method}.\n{traceback.format_exc()}")

    async def on_ready(self) -> None:
        self.logger.info(f"Logged in as {self.user} ({self.user.id})")
        await self.change_presence(activity=discord.Activity(type=discord.ActivityType.watching, name="for duplicate images"))

    async def setup_hook(self) -> None:
        self.session = aiohttp.ClientSession()
        self.db = Database(self.config.database_path)
        await self.db.connect()
        self.hash_tables = HashTableCache(self.db)
        self.hasher = AttachmentHasher(
            self.session,
            max_size=self.config.max_attachment_size,
            concurrency=self.config.download_concurrency,
            hash_size=self.config.hash_size,
            download_timeout=self.config.download_timeout,
        )
        await self._load_extensions()

    async def close(self) -> None:
        await super().close()
        if hasattr(self, "session"):
            await self.session.close()
        if hasattr(self, "db"):
            await self.db.close()

    def run(self, *args: typing.Any, **kwargs: typing.Any) -> None:
        if not self.config.token:
            self.logger.error("TOKEN is not set.")
            return
        try:
            super().run(self.config.token, *args, log_handler=None, **kwargs)
        except (discord.LoginFailure, KeyboardInterrupt):
            self.logger.info("Exiting...")

    @property
    def user(self) -> discord.ClientUser:
        assert super().user, "Bot is not ready yet"
        return typing.cast(discord.ClientUser, super().user)


def setup_logging(config: Config) -> None:
    config.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = config.log_dir / f"bot_log_{datetime.date.today().isoformat()}.log"
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="[%(asctime)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(), logging.FileHandler(log_file, encoding="utf-8")],
    )


def main() -> None:
    load_dotenv()
    config = Config(os.getenv("CONFIG_DIR", "./configs"))
    setup_logging(config)
    bot = RepostBot(config, ext_dir="cogs")
    bot.run()


if __name__ == "__main__":
    main()
