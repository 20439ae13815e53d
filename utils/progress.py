import asyncio
import logging

import discord


class ProgressMessage:
    """
    A status message that is sent once and then edited in place.

    Edits never hold up the caller for longer than ``timeout`` seconds and a
    failed edit is only logged.
    """

    def __init__(self, channel: discord.abc.Messageable, timeout: float = 5.0) -> None:
        self.channel = channel
        self.timeout = timeout
        self.message: discord.Message | None = None
        self.content = ""
        self.logger = logging.getLogger(self.__class__.__name__)

    async def update(self, content: str, **kwargs) -> None:
        self.content = content
        try:
            if self.message is None:
                self.message = await asyncio.wait_for(self.channel.send(content, **kwargs), self.timeout)
            else:
                await asyncio.wait_for(self.message.edit(content=content, **kwargs), self.timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Progress update timed out")
        except discord.HTTPException as e:
            self.logger.warning(f"Progress update failed: {e}")

    async def append(self, line: str) -> None:
        """Add a line below the current text, keeping what is already shown."""
        await self.update(f"{self.content}\n{line}" if self.content else line)
