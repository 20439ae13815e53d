"""
Pytest configuration and shared fixtures for test suite.
"""

import datetime
import shutil
import tempfile
from pathlib import Path
from types import SimpleNamespace

import aiohttp
import pytest
from PIL import Image


def make_attachment(url="https://cdn.example/a.png", content_type="image/png", size=1024):
    return SimpleNamespace(url=url, content_type=content_type, size=size, filename=url.rsplit("/", 1)[-1])


def make_message(message_id, author_id=1, author_name="alice", timestamp=0, attachments=None):
    created_at = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc) + datetime.timedelta(milliseconds=timestamp)
    return SimpleNamespace(
        id=message_id,
        author=SimpleNamespace(id=author_id, name=author_name, bot=False),
        created_at=created_at,
        jump_url=f"https://discord.com/channels/1/2/{message_id}",
        attachments=attachments or [],
    )


class FakeSource:
    """Channel source serving prepared pages and recording the cursors used."""

    def __init__(self, pages, source_id=10, name="general"):
        self.pages = list(pages)
        self.id = source_id
        self.name = name
        self.calls = []

    async def fetch_page(self, before, limit):
        self.calls.append((before, limit))
        if not self.pages:
            return []
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page


class FakeHasher:
    """Hasher that maps attachment urls to fixed hashes."""

    def __init__(self, hashes):
        self.hashes = hashes
        self.seen = []

    async def hash_attachment(self, attachment):
        self.seen.append(attachment.url)
        result = self.hashes[attachment.url]
        if isinstance(result, Exception):
            raise result
        return result


class FakeContent:
    def __init__(self, data, fail_after=None):
        self.data = data
        self.fail_after = fail_after

    async def iter_chunked(self, size):
        for offset in range(0, len(self.data), size):
            if self.fail_after is not None and offset >= self.fail_after:
                raise aiohttp.ClientPayloadError("connection reset")
            yield self.data[offset:offset + size]


class FakeResponse:
    def __init__(self, status=200, data=b"", content_length=None, fail_after=None):
        self.status = status
        self.content = FakeContent(data, fail_after)
        self.content_length = content_length

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession.get()."""

    def __init__(self, responses):
        self.responses = responses
        self.requested = []

    def get(self, url, timeout=None):
        self.requested.append(url)
        response = self.responses[url]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def png_bytes(temp_dir):
    """Bytes of a small PNG with some structure so the hash is not trivial."""
    img = Image.new("RGB", (64, 64), color="white")
    for x in range(32):
        for y in range(32):
            img.putpixel((x, y), (200, 30, 30))
    path = temp_dir / "sample.png"
    img.save(path, "PNG")
    return path.read_bytes()
