from .formatters import create_progress_bar, format_elapsed_time, format_utc, millis_to_date, millis_to_iso
from .hashing import SUPPORTED_FORMATS, AttachmentHasher, compute_hash, is_image, is_supported_format
from .index import Author, DuplicateIndex, ImageRecord, Occurrence, canonical_order, classify
from .reports import AuthorStats, compute_author_stats, generate_reports, repost_ratio

__all__ = [
    "create_progress_bar",
    "format_elapsed_time",
    "format_utc",
    "millis_to_date",
    "millis_to_iso",
    "SUPPORTED_FORMATS",
    "AttachmentHasher",
    "compute_hash",
    "is_image",
    "is_supported_format",
    "Author",
    "DuplicateIndex",
    "ImageRecord",
    "Occurrence",
    "canonical_order",
    "classify",
    "AuthorStats",
    "compute_author_stats",
    "generate_reports",
    "repost_ratio",
]
