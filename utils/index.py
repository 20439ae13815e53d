import datetime
import threading
import typing
from dataclasses import dataclass, field

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


def to_millis(dt: datetime.datetime) -> int:
    """Epoch milliseconds of an aware datetime, computed without floats."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return (dt - EPOCH) // datetime.timedelta(milliseconds=1)


@dataclass(frozen=True)
class Author:
    id: int
    name: str


@dataclass(frozen=True)
class Occurrence:
    """One appearance of an image in a message."""

    message_id: int
    url: str
    author: Author
    timestamp: int
    location: str

    @classmethod
    def from_message(cls, message, location: str) -> "Occurrence":
        return cls(
            message_id=message.id,
            url=message.jump_url,
            author=Author(id=message.author.id, name=message.author.name),
            timestamp=to_millis(message.created_at),
            location=location,
        )


@dataclass
class ImageRecord:
    original: Occurrence
    duplicates: list[Occurrence] = field(default_factory=list)

    @property
    def occurrences(self) -> list[Occurrence]:
        return [self.original, *self.duplicates]


@dataclass
class Classification:
    original: Occurrence
    reposts: list[Occurrence]
    self_reposts: int
    stolen_reposts: int


def canonical_order(record: ImageRecord) -> list[Occurrence]:
    """All occurrences of a record, oldest first. Ties keep discovery order."""
    return sorted(record.occurrences, key=lambda o: o.timestamp)


def classify(record: ImageRecord) -> Classification:
    ordered = canonical_order(record)
    original, reposts = ordered[0], ordered[1:]
    self_reposts = sum(1 for r in reposts if r.author.id == original.author.id)
    return Classification(
        original=original,
        reposts=reposts,
        self_reposts=self_reposts,
        stolen_reposts=len(reposts) - self_reposts,
    )


class DuplicateIndex:
    """
    Mapping of perceptual hash to every place the image was seen.

    The first occurrence recorded for a hash is kept as ``original``; later
    ones are appended to ``duplicates`` in the order they arrive. The true
    original is only decided at report time, see :func:`classify`.
    """

    def __init__(self) -> None:
        self._records: dict[str, ImageRecord] = {}
        self._lock = threading.Lock()

    def record(self, phash: str, occurrence: Occurrence) -> bool:
        """Add an occurrence. Returns True if the hash was not seen before."""
        with self._lock:
            entry = self._records.get(phash)
            if entry is None:
                self._records[phash] = ImageRecord(original=occurrence)
                return True
            entry.duplicates.append(occurrence)
            return False

    def merge(self, other: "DuplicateIndex", after: int = 0) -> int:
        """
        Record the occurrences of ``other`` whose message id is above ``after``
        and that are not in this index yet. Returns how many were added.
        """
        seen = {(o.message_id, o.url) for _, record in self.items() for o in record.occurrences}
        added = 0
        for phash, record in other.items():
            for occurrence in record.occurrences:
                if occurrence.message_id > after and (occurrence.message_id, occurrence.url) not in seen:
                    self.record(phash, occurrence)
                    added += 1
        return added

    def get(self, phash: str) -> ImageRecord | None:
        return self._records.get(phash)

    def items(self) -> typing.Iterator[tuple[str, ImageRecord]]:
        return iter(list(self._records.items()))

    def total_occurrences(self) -> int:
        return sum(1 + len(r.duplicates) for r in self._records.values())

    def total_duplicates(self) -> int:
        return sum(len(r.duplicates) for r in self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, phash: object) -> bool:
        return phash in self._records
