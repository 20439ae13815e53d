import json
import logging
import os

from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTACHMENT_SIZE = 8 * 1024 * 1024


class Config:
    """
    Bot settings.

    Values come from ``settings.json`` inside the config directory and are
    overridden by environment variables of the same name in upper case.
    """

    def __init__(self, path: str = "./configs"):
        self.base_path = Path(path)
        self.settings = self.load_dict((self.base_path / "settings.json"))

        self.token = self.get_str("TOKEN", os.getenv("DISCORD_BOT_TOKEN", ""))
        self.prefix = self.get_str("COMMAND_PREFIX", "!")
        self.tracked_channels = self.get_id_set("TRACKED_CHANNELS")
        self.database_path = self.get_str("DATABASE_PATH", "hashes.sqlite3")
        self.report_dir = Path(self.get_str("REPORT_DIR", "reports"))
        self.log_dir = Path(self.get_str("LOG_DIR", "logs"))
        self.log_level = self.get_str("LOG_LEVEL", "INFO").upper()

        self.batch_size = self.get_int("BATCH_SIZE", 100)
        self.download_concurrency = self.get_int("DOWNLOAD_CONCURRENCY", 6)
        self.thread_concurrency = self.get_int("THREAD_CONCURRENCY", 4)
        self.max_attachment_size = self.get_int("MAX_ATTACHMENT_SIZE", DEFAULT_MAX_ATTACHMENT_SIZE)
        self.hash_size = self.get_int("HASH_SIZE", 16)
        self.progress_interval = self.get_int("PROGRESS_INTERVAL", 100)
        self.progress_timeout = self.get_float("PROGRESS_TIMEOUT", 5.0)
        self.download_timeout = self.get_float("DOWNLOAD_TIMEOUT", 30.0)

    def load_json(self, path: Path):
        if path.is_file():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Could not read {path}: {e}")
                return {}
        else:
            return {}

    def load_dict(self, path: Path) -> dict:
        data = self.load_json(path)
        return data if isinstance(data, dict) else {}

    def _raw(self, name: str):
        value = os.getenv(name)
        if value is not None:
            return value
        return self.settings.get(name.lower())

    def get_str(self, name: str, default: str) -> str:
        value = self._raw(name)
        return default if value is None or value == "" else str(value)

    def get_int(self, name: str, default: int) -> int:
        value = self._raw(name)
        if value is None:
            return default
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid value {value!r} for {name}, using {default}")
            return default
        if parsed <= 0:
            logger.warning(f"{name} must be positive, using {default}")
            return default
        return parsed

    def get_float(self, name: str, default: float) -> float:
        value = self._raw(name)
        if value is None:
            return default
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid value {value!r} for {name}, using {default}")
            return default
        return parsed if parsed > 0 else default

    def get_id_set(self, name: str) -> set[int]:
        value = self._raw(name)
        if value is None:
            return set()
        items = value if isinstance(value, list) else str(value).split(",")
        ids = set()
        for item in items:
            item = str(item).strip()
            if item.isdigit():
                ids.add(int(item))
            elif item:
                logger.warning(f"Ignoring invalid channel id {item!r} in {name}")
        return ids
