"""
Tests for the paginated message walker.
"""

import asyncio

import pytest

import exception
from conftest import FakeHasher, FakeSource, make_attachment, make_message
from utils.index import DuplicateIndex, classify
from utils.walker import MessageWalker, WalkStats, count_channels, ingest_message, walk_channels


def page(start, size):
    return [make_message(start + i) for i in range(size)]


class TestPagination:
    def test_counts_until_empty_page(self):
        source = FakeSource([page(1000, 100), page(900, 100), page(800, 37), []])
        walker = MessageWalker(source, batch_size=100)

        total = asyncio.run(walker.count())

        assert total == 237
        assert len(source.calls) == 4

    def test_process_counts_pages(self):
        source = FakeSource([page(1000, 100), page(900, 100), page(800, 37), []])
        stats = asyncio.run(MessageWalker(source).process(DuplicateIndex(), FakeHasher({}), "loc"))
        assert stats.pages == 3
        assert stats.messages == 237

    def test_cursor_is_last_id_of_previous_page(self):
        first = [make_message(30), make_message(29)]
        second = [make_message(28)]
        source = FakeSource([first, second, []])

        asyncio.run(MessageWalker(source, batch_size=2).count())

        assert source.calls == [(None, 2), (29, 2), (28, 2)]

    def test_page_failure_aborts_walk(self):
        source = FakeSource([page(100, 2), exception.AccessDenied("forbidden")])
        with pytest.raises(exception.AccessDenied):
            asyncio.run(MessageWalker(source).count())


class TestProcess:
    def test_newest_first_scenario(self):
        a = make_message(1, author_id=1, author_name="alice", timestamp=100,
                         attachments=[make_attachment("https://cdn/a.png")])
        b = make_message(2, author_id=2, author_name="bob", timestamp=200,
                         attachments=[make_attachment("https://cdn/b.png")])
        c = make_message(3, author_id=1, author_name="alice", timestamp=300,
                         attachments=[make_attachment("https://cdn/c.png")])
        source = FakeSource([[c, b, a], []])
        hasher = FakeHasher({"https://cdn/a.png": "H1", "https://cdn/b.png": "H1", "https://cdn/c.png": "H2"})
        index = DuplicateIndex()

        stats = asyncio.run(MessageWalker(source).process(index, hasher, "forum-post-art"))

        assert stats.images == 3
        assert stats.duplicates == 1
        assert len(index) == 2
        h1 = index.get("H1")
        assert h1.original.message_id == 2
        assert [o.message_id for o in h1.duplicates] == [1]
        result = classify(h1)
        assert result.original.author.name == "alice"
        assert result.original.timestamp == 100
        assert result.stolen_reposts == 1
        assert result.self_reposts == 0
        assert classify(index.get("H2")).reposts == []

    def test_failed_attachment_is_skipped(self):
        good = make_message(2, attachments=[make_attachment("https://cdn/good.png")])
        bad = make_message(1, attachments=[make_attachment("https://cdn/bad.png")])
        source = FakeSource([[good, bad], []])
        hasher = FakeHasher({
            "https://cdn/good.png": "H",
            "https://cdn/bad.png": exception.DownloadError("failed", status=404),
        })
        index = DuplicateIndex()

        stats = asyncio.run(MessageWalker(source).process(index, hasher, "loc"))

        assert stats.images == 1
        assert stats.failed == 1
        assert stats.skipped == 0
        assert len(index) == 1

    def test_unsupported_format_counted_as_skipped(self):
        msg = make_message(1, attachments=[make_attachment("https://cdn/x.gif", content_type="image/gif")])
        hasher = FakeHasher({"https://cdn/x.gif": exception.UnsupportedFormat("gif")})
        stats = asyncio.run(MessageWalker(FakeSource([[msg], []])).process(DuplicateIndex(), hasher, "loc"))
        assert stats.skipped == 1
        assert stats.failed == 0

    def test_non_images_not_hashed(self):
        msg = make_message(1, attachments=[make_attachment("https://cdn/doc.pdf", content_type="application/pdf"),
                                           make_attachment("https://cdn/none", content_type=None)])
        hasher = FakeHasher({})
        stats = asyncio.run(MessageWalker(FakeSource([[msg], []])).process(DuplicateIndex(), hasher, "loc"))
        assert hasher.seen == []
        assert stats == WalkStats(messages=1, pages=1)

    def test_progress_reported_every_interval(self):
        source = FakeSource([page(1000, 100), page(900, 100), page(800, 37), []])
        reports = []

        async def progress(stats):
            reports.append(stats.messages)

        asyncio.run(MessageWalker(source).process(DuplicateIndex(), FakeHasher({}), "loc",
                                                  progress=progress, progress_interval=150))
        assert reports == [200]

    def test_ingest_single_message(self):
        msg = make_message(1, attachments=[make_attachment("https://cdn/a.png"), make_attachment("https://cdn/b.png")])
        index = DuplicateIndex()
        stats = asyncio.run(ingest_message(msg, index, FakeHasher({"https://cdn/a.png": "H", "https://cdn/b.png": "H"}), "#general"))
        assert stats.images == 2
        assert stats.duplicates == 1
        assert index.get("H").original.location == "#general"

    def test_local_io_error_is_skipped(self):
        good = make_message(2, attachments=[make_attachment("https://cdn/good.png")])
        bad = make_message(1, attachments=[make_attachment("https://cdn/bad.png")])
        hasher = FakeHasher({
            "https://cdn/good.png": "H",
            "https://cdn/bad.png": OSError(28, "No space left on device"),
        })
        index = DuplicateIndex()

        stats = asyncio.run(MessageWalker(FakeSource([[good, bad], []])).process(index, hasher, "loc"))

        assert stats.images == 1
        assert stats.failed == 1
        assert "H" in index

    def test_unexpected_error_cancels_other_downloads(self):
        cancelled = []

        class BrokenHasher:
            async def hash_attachment(self, attachment):
                if attachment.url.endswith("broken.png"):
                    raise RuntimeError("boom")
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    cancelled.append(attachment.url)
                    raise

        msg = make_message(1, attachments=[make_attachment("https://cdn/slow.png"),
                                           make_attachment("https://cdn/broken.png")])
        with pytest.raises(RuntimeError):
            asyncio.run(ingest_message(msg, DuplicateIndex(), BrokenHasher(), "loc"))
        assert cancelled == ["https://cdn/slow.png"]


class TestMultipleChannels:
    def test_shared_index(self):
        first = FakeSource([[make_message(1, timestamp=10, attachments=[make_attachment("https://cdn/1.png")])], []],
                           source_id=1, name="one")
        second = FakeSource([[make_message(2, timestamp=20, attachments=[make_attachment("https://cdn/2.png")])], []],
                            source_id=2, name="two")
        hasher = FakeHasher({"https://cdn/1.png": "H", "https://cdn/2.png": "H"})
        index = DuplicateIndex()
        done = []

        async def on_done(source, stats):
            done.append(source.name)

        stats = asyncio.run(walk_channels([first, second], index, hasher, lambda s: f"forum-post-{s.name}",
                                          concurrency=2, on_channel_done=on_done))

        assert stats.images == 2
        assert stats.duplicates == 1
        assert sorted(done) == ["one", "two"]
        locations = {o.location for o in index.get("H").occurrences}
        assert locations == {"forum-post-one", "forum-post-two"}

    def test_failure_in_one_channel_propagates(self):
        ok = FakeSource([page(10, 3), []], source_id=1)
        broken = FakeSource([exception.RequestFailed("boom")], source_id=2)
        with pytest.raises(exception.RequestFailed):
            asyncio.run(walk_channels([ok, broken], DuplicateIndex(), FakeHasher({}), lambda s: "loc"))

    def test_count_channels(self):
        sources = [FakeSource([page(0, 5), []]), FakeSource([page(0, 7), page(0, 2), []])]
        assert asyncio.run(count_channels(sources, concurrency=1)) == 14
