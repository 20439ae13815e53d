from discord.ext import commands


class BotError(commands.CommandError):
    """Base class for every error the bot raises on purpose."""
    pass

class InvalidInput(BotError):
    """Command arguments were rejected before any work started."""
    pass

class InvalidChannelId(InvalidInput):
    """Channel id is not a plain string of digits."""
    pass

class ChannelNotFound(InvalidInput):
    """Channel could not be found."""
    pass

class WrongChannelType(InvalidInput):
    """Channel exists but is the wrong kind for this command."""
    pass

class JobAlreadyRunning(InvalidInput):
    """Another job is already walking this channel."""
    pass

class NoJobRunning(InvalidInput):
    """There is no job to stop for this channel."""
    pass

class NoHashTable(InvalidInput):
    """No hash table has been built for this channel."""
    pass

class AccessDenied(BotError):
    """Bot does not have access to the channel."""
    pass

class RequestFailed(BotError):
    """A request to Discord or a CDN has failed."""
    pass

class AttachmentError(BotError):
    """A single attachment could not be hashed."""
    pass

class UnsupportedFormat(AttachmentError):
    """Attachment is not one of the supported raster formats."""
    pass

class AttachmentTooLarge(AttachmentError):
    """Attachment is bigger than the configured maximum."""
    pass

class HashingFailed(AttachmentError):
    """Downloaded file could not be decoded as an image."""
    pass

class DownloadError(RequestFailed, AttachmentError):
    """Attachment download failed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status

class PersistenceError(BotError):
    """Hash store could not be read or written."""
    pass

class HashStoreCorrupted(PersistenceError):
    """Stored hash table exists but its rows are inconsistent."""
    pass

class ReportGenerationError(BotError):
    """A CSV report could not be written."""
    pass
