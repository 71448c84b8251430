from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from ..images.transcoder import TranscodeConfig
from ..net.fetch import DEFAULT_FETCH_TIMEOUT_S, DEFAULT_MAX_FETCH_BYTES
from ..net.retry import RetryConfig


DEFAULT_BUCKET = "images"
DEFAULT_PREFIX = "webp"
DEFAULT_CONCURRENCY = 5
DEFAULT_GROUP_DELAY_S = 0.2
DEFAULT_CHECKPOINT_EVERY = 10
DEFAULT_CHECKPOINT_PATH = "data/image_cache.json"
DEFAULT_INDEX_PAGE_SIZE = 1000


class ConfigurationError(RuntimeError):
    """Required settings are missing or invalid; raised at startup."""


@dataclass(frozen=True)
class NotionSettings:
    token: str = ""
    database_id: str = ""
    moodboard_database_id: str = ""

    def missing(self) -> list[str]:
        names = []
        if not self.token.strip():
            names.append("NOTION_TOKEN")
        if not self.database_id.strip():
            names.append("NOTION_DATABASE_ID")
        return names

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "NotionSettings":
        return cls(
            token=str(data.get("token", "") or ""),
            database_id=str(data.get("database_id", "") or ""),
            moodboard_database_id=str(data.get("moodboard_database_id", "") or ""),
        )


@dataclass(frozen=True)
class StorageSettings:
    url: str = ""
    service_key: str = ""
    bucket: str = DEFAULT_BUCKET
    prefix: str = DEFAULT_PREFIX

    def missing(self) -> list[str]:
        names = []
        if not self.url.strip():
            names.append("SUPABASE_URL")
        if not self.service_key.strip():
            names.append("SUPABASE_SERVICE_KEY")
        if not self.bucket.strip():
            names.append("SUPABASE_BUCKET")
        return names

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "StorageSettings":
        # An explicit empty prefix means objects live at the bucket root.
        prefix = data.get("prefix")
        return cls(
            url=str(data.get("url", "") or ""),
            service_key=str(data.get("service_key", "") or ""),
            bucket=str(data.get("bucket", DEFAULT_BUCKET) or DEFAULT_BUCKET),
            prefix=DEFAULT_PREFIX if prefix is None else str(prefix),
        )


@dataclass
class IngestSettings:
    concurrency: int = DEFAULT_CONCURRENCY
    group_delay_s: float = DEFAULT_GROUP_DELAY_S
    fetch_timeout_s: float = DEFAULT_FETCH_TIMEOUT_S
    max_fetch_bytes: int = DEFAULT_MAX_FETCH_BYTES
    checkpoint_every: int = DEFAULT_CHECKPOINT_EVERY
    checkpoint_path: str = DEFAULT_CHECKPOINT_PATH
    index_page_size: int = DEFAULT_INDEX_PAGE_SIZE

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "IngestSettings":
        return cls(
            concurrency=max(1, _as_int(data.get("concurrency"), DEFAULT_CONCURRENCY)),
            group_delay_s=max(0.0, _as_float(data.get("group_delay_s"), DEFAULT_GROUP_DELAY_S)),
            fetch_timeout_s=max(1.0, _as_float(data.get("fetch_timeout_s"), DEFAULT_FETCH_TIMEOUT_S)),
            max_fetch_bytes=max(1024, _as_int(data.get("max_fetch_bytes"), DEFAULT_MAX_FETCH_BYTES)),
            checkpoint_every=max(0, _as_int(data.get("checkpoint_every"), DEFAULT_CHECKPOINT_EVERY)),
            checkpoint_path=str(data.get("checkpoint_path") or DEFAULT_CHECKPOINT_PATH),
            index_page_size=max(1, _as_int(data.get("index_page_size"), DEFAULT_INDEX_PAGE_SIZE)),
        )


@dataclass
class AppSettings:
    notion: NotionSettings = field(default_factory=NotionSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    ingest: IngestSettings = field(default_factory=IngestSettings)
    transcode: Optional[TranscodeConfig] = None
    retry: Optional[RetryConfig] = None

    def get_transcode(self) -> TranscodeConfig:
        """Get transcode config, using defaults if not set."""
        return self.transcode or TranscodeConfig()

    def get_retry(self) -> RetryConfig:
        """Get retry config, using defaults if not set."""
        return self.retry or RetryConfig()

    def require_complete(self) -> None:
        missing = self.notion.missing() + self.storage.missing()
        if missing:
            raise ConfigurationError("missing required settings: " + ", ".join(missing))

    def with_env(self, environ: Mapping[str, str]) -> "AppSettings":
        """Return a copy where non-empty environment variables override file values."""
        def env(name: str) -> Optional[str]:
            value = environ.get(name)
            return value.strip() if value and value.strip() else None

        notion = self.notion
        notion = replace(
            notion,
            token=env("NOTION_TOKEN") or notion.token,
            database_id=env("NOTION_DATABASE_ID") or notion.database_id,
            moodboard_database_id=env("NOTION_MOODBOARD_DATABASE_ID") or notion.moodboard_database_id,
        )

        storage = self.storage
        storage = replace(
            storage,
            url=env("SUPABASE_URL") or storage.url,
            service_key=env("SUPABASE_SERVICE_KEY") or env("SUPABASE_KEY") or storage.service_key,
            bucket=env("SUPABASE_BUCKET") or storage.bucket,
            prefix=env("SUPABASE_PREFIX") or storage.prefix,
        )

        ingest = replace(self.ingest)
        checkpoint_path = env("IMAGE_CACHE_PATH")
        if checkpoint_path:
            ingest.checkpoint_path = checkpoint_path
        concurrency = env("IMAGE_CONCURRENCY")
        if concurrency:
            ingest.concurrency = max(1, _as_int(concurrency, ingest.concurrency))

        return AppSettings(
            notion=notion,
            storage=storage,
            ingest=ingest,
            transcode=self.transcode,
            retry=self.retry,
        )

    @classmethod
    def from_persist_dict(cls, data: dict[str, Any]) -> "AppSettings":
        def section(name: str) -> Optional[dict[str, Any]]:
            raw = data.get(name)
            return raw if isinstance(raw, dict) else None

        notion = section("notion")
        storage = section("storage")
        ingest = section("ingest")
        transcode = section("transcode")
        retry = section("retry")

        return cls(
            notion=NotionSettings.from_persist_dict(notion) if notion else NotionSettings(),
            storage=StorageSettings.from_persist_dict(storage) if storage else StorageSettings(),
            ingest=IngestSettings.from_persist_dict(ingest) if ingest else IngestSettings(),
            transcode=TranscodeConfig.from_persist_dict(transcode) if transcode else None,
            retry=RetryConfig.from_persist_dict(retry) if retry else None,
        )


def _as_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
