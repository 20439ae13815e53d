import asyncio
import logging
import os
import tempfile

import aiohttp
import imagehash
from PIL import Image

import exception

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = frozenset({
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
})

CHUNK_SIZE = 64 * 1024


def _mime(content_type: str | None) -> str:
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_image(attachment) -> bool:
    return _mime(attachment.content_type).startswith("image/")


def is_supported_format(content_type: str | None) -> bool:
    return _mime(content_type) in SUPPORTED_FORMATS


def compute_hash(path: str, hash_size: int = 16) -> str:
    """Perceptual hash of an image file as a hex string."""
    try:
        with Image.open(path) as img:
            img.load()
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            return str(imagehash.phash(img, hash_size=hash_size))
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise exception.HashingFailed(f"could not hash image: {e}") from e


class AttachmentHasher:
    """
    Downloads attachments to a temporary file and hashes them.

    At most ``concurrency`` downloads are in flight at once, no matter how
    many callers are waiting.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        max_size: int,
        concurrency: int = 6,
        hash_size: int = 16,
        download_timeout: float = 30.0,
        tmp_dir: str | None = None,
    ) -> None:
        self.session = session
        self.max_size = max_size
        self.hash_size = hash_size
        self.download_timeout = download_timeout
        self.tmp_dir = tmp_dir
        self._semaphore = asyncio.Semaphore(concurrency)
        self.logger = logging.getLogger(self.__class__.__name__)

    async def hash_attachment(self, attachment) -> str:
        if not is_supported_format(attachment.content_type):
            raise exception.UnsupportedFormat(f"unsupported image format: {attachment.content_type}")
        size = getattr(attachment, "size", None)
        if size is not None and size > self.max_size:
            raise exception.AttachmentTooLarge(f"{attachment.url} is {size} bytes (max {self.max_size})")

        async with self._semaphore:
            try:
                fd, tmpfile = tempfile.mkstemp(prefix="attachment_", dir=self.tmp_dir)
                os.close(fd)
            except OSError as e:
                raise exception.HashingFailed(f"could not create temporary file: {e}") from e
            try:
                await self._download(attachment.url, tmpfile)
                return await asyncio.to_thread(compute_hash, tmpfile, self.hash_size)
            finally:
                try:
                    os.remove(tmpfile)
                except OSError:
                    pass

    async def _download(self, url: str, path: str) -> None:
        timeout = aiohttp.ClientTimeout(total=self.download_timeout)
        try:
            async with self.session.get(url, timeout=timeout) as resp:
                if resp.status != 200:
                    raise exception.DownloadError(f"failed to download image: {resp.status}", status=resp.status)
                if resp.content_length is not None and resp.content_length > self.max_size:
                    raise exception.AttachmentTooLarge(f"{url} is {resp.content_length} bytes (max {self.max_size})")
                written = 0
                with open(path, "wb") as f:
                    async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                        written += len(chunk)
                        if written > self.max_size:
                            raise exception.AttachmentTooLarge(f"{url} exceeded {self.max_size} bytes")
                        f.write(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise exception.DownloadError(f"failed to download image: {e}") from e
        except OSError as e:
            # ClientOSError is handled above, this is the local file
            raise exception.HashingFailed(f"could not write temporary file: {e}") from e
