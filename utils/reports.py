"""
CSV reports built from a :class:`DuplicateIndex`.

Three reports are produced per channel: one row per image (duplicate
report), one row per author (author report) and one row per UTC day
(timeline report). Each file starts with a block of ``#`` metadata lines,
then a blank line, the column header and the data rows. Rows are written as
they are computed.
"""

import csv
import datetime
import logging
import typing
from dataclasses import dataclass
from pathlib import Path

import exception
from .formatters import format_utc, millis_to_date, millis_to_iso
from .index import DuplicateIndex, classify

logger = logging.getLogger(__name__)

DUPLICATE_COLUMNS = [
    "Original Post URL",
    "Original Poster",
    "Original Location",
    "Upload Date",
    "Number of Duplicates",
    "Users Who Reposted",
    "Locations of Reposts",
    "Stolen Reposts",
    "Self-Reposts",
]

AUTHOR_COLUMNS = [
    "User ID",
    "Username",
    "Total Reposts",
    "Self Reposts",
    "Stolen Reposts",
    "Times Been Reposted",
    "Repost Ratio",
    "First Activity",
    "Last Activity",
]

TIMELINE_COLUMNS = ["Date", "Total Images", "Duplicates", "Duplicate Ratio"]


@dataclass
class AuthorStats:
    username: str
    total_reposts: int = 0
    self_reposts: int = 0
    stolen_reposts: int = 0
    victim_of: int = 0
    first_activity: int | None = None
    last_activity: int | None = None

    def seen(self, timestamp: int) -> None:
        if self.first_activity is None or timestamp < self.first_activity:
            self.first_activity = timestamp
        if self.last_activity is None or timestamp > self.last_activity:
            self.last_activity = timestamp


def repost_ratio(stolen: int, total: int) -> str:
    return f"{stolen / total:.2f}" if total > 0 else "0.00"


def compute_author_stats(index: DuplicateIndex) -> dict[int, AuthorStats]:
    stats: dict[int, AuthorStats] = {}

    def get(author) -> AuthorStats:
        entry = stats.get(author.id)
        if entry is None:
            entry = stats[author.id] = AuthorStats(username=author.name)
        return entry

    for _, record in index.items():
        result = classify(record)
        original_author = get(result.original.author)
        original_author.seen(result.original.timestamp)
        original_author.victim_of += result.stolen_reposts
        for repost in result.reposts:
            author = get(repost.author)
            author.seen(repost.timestamp)
            author.total_reposts += 1
            if repost.author.id == result.original.author.id:
                author.self_reposts += 1
            else:
                author.stolen_reposts += 1
    return stats


def _duplicate_rows(index: DuplicateIndex) -> typing.Iterator[list]:
    for _, record in index.items():
        result = classify(record)
        original = result.original
        yield [
            original.url,
            original.author.name,
            original.location,
            millis_to_date(original.timestamp),
            len(result.reposts),
            ";".join(r.author.name for r in result.reposts),
            ";".join(r.location for r in result.reposts),
            result.stolen_reposts,
            result.self_reposts,
        ]


def _author_rows(authors: dict[int, AuthorStats]) -> typing.Iterator[list]:
    for author_id, stats in authors.items():
        yield [
            author_id,
            stats.username,
            stats.total_reposts,
            stats.self_reposts,
            stats.stolen_reposts,
            stats.victim_of,
            repost_ratio(stats.stolen_reposts, stats.total_reposts),
            millis_to_iso(stats.first_activity) if stats.first_activity is not None else "",
            millis_to_iso(stats.last_activity) if stats.last_activity is not None else "",
        ]


def _timeline_rows(index: DuplicateIndex) -> typing.Iterator[list]:
    days: dict[str, list[int]] = {}
    for _, record in index.items():
        date = millis_to_date(classify(record).original.timestamp)
        day = days.setdefault(date, [0, 0])
        day[0] += 1
        day[1] += len(record.duplicates)
    for date in sorted(days):
        total, duplicates = days[date]
        yield [date, total, duplicates, f"{duplicates / total:.2f}"]


def _open_unique(directory: Path, stem: str):
    path = directory / f"{stem}.csv"
    suffix = 0
    while True:
        try:
            return path, open(path, "x", encoding="utf-8", newline="")
        except FileExistsError:
            suffix += 1
            path = directory / f"{stem}_{suffix}.csv"


def _write_report(
    kind: str,
    title: str,
    channel_id: int,
    directory: Path,
    generated_at: datetime.datetime,
    metadata: list[str],
    columns: list[str],
    rows: typing.Iterable[list],
    partial: bool,
) -> Path:
    stamp = int(generated_at.timestamp() * 1000)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        path, f = _open_unique(directory, f"{kind}_report_{channel_id}_{stamp}")
        with f:
            f.write(f"# {title}\n")
            f.write(f"# Channel ID: {channel_id}\n")
            f.write(f"# Analysis performed at: {format_utc(generated_at)} UTC\n")
            for line in metadata:
                f.write(f"# {line}\n")
            if partial:
                f.write("# Partial report: the analysis was stopped before it finished\n")
            f.write("\n")
            writer = csv.writer(f, lineterminator="\n")
            writer.writerow(columns)
            count = 0
            for row in rows:
                writer.writerow(row)
                count += 1
    except OSError as e:
        logger.error(f"Failed to write {kind} report for {channel_id}: {e}")
        raise exception.ReportGenerationError(f"failed to generate {kind} report: {e}") from e

    logger.info(f"Wrote {kind} report {path} ({count} rows)")
    return path


def _now(generated_at: datetime.datetime | None) -> datetime.datetime:
    if generated_at is None:
        return datetime.datetime.now(datetime.timezone.utc)
    return generated_at


def write_duplicate_report(
    channel_id: int,
    index: DuplicateIndex,
    directory: Path,
    generated_at: datetime.datetime | None = None,
    partial: bool = False,
) -> Path:
    return _write_report(
        "duplicate",
        "Forum Analysis Report",
        channel_id,
        Path(directory),
        _now(generated_at),
        [f"Total unique images analyzed: {len(index)}"],
        DUPLICATE_COLUMNS,
        _duplicate_rows(index),
        partial,
    )


def write_author_report(
    channel_id: int,
    index: DuplicateIndex,
    directory: Path,
    generated_at: datetime.datetime | None = None,
    partial: bool = False,
    authors: dict[int, AuthorStats] | None = None,
) -> Path:
    if authors is None:
        authors = compute_author_stats(index)
    return _write_report(
        "author",
        "Author Repost Report",
        channel_id,
        Path(directory),
        _now(generated_at),
        [f"Total unique images analyzed: {len(index)}", f"Total authors: {len(authors)}"],
        AUTHOR_COLUMNS,
        _author_rows(authors),
        partial,
    )


def write_timeline_report(
    channel_id: int,
    index: DuplicateIndex,
    directory: Path,
    generated_at: datetime.datetime | None = None,
    partial: bool = False,
) -> Path:
    return _write_report(
        "timeline",
        "Duplicate Timeline Report",
        channel_id,
        Path(directory),
        _now(generated_at),
        [f"Total unique images analyzed: {len(index)}"],
        TIMELINE_COLUMNS,
        _timeline_rows(index),
        partial,
    )


def generate_reports(
    channel_id: int,
    index: DuplicateIndex,
    directory: Path,
    generated_at: datetime.datetime | None = None,
    partial: bool = False,
) -> list[Path]:
    """Write all three reports with one shared generation time."""
    generated_at = _now(generated_at)
    return [
        write_duplicate_report(channel_id, index, directory, generated_at, partial),
        write_author_report(channel_id, index, directory, generated_at, partial),
        write_timeline_report(channel_id, index, directory, generated_at, partial),
    ]
