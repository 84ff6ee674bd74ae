from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

# Source kinds
RSS = "rss"
SINGLE_VIDEO = "single_video"
CHANNEL = "channel"
TRENDING = "trending"
WEB = "web"
SOURCE_KINDS = (RSS, SINGLE_VIDEO, CHANNEL, TRENDING, WEB)

# Content kinds
ARTICLE = "article"
VIDEO = "video"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Source:
    """A configured origin the pipeline scrapes."""
    name: str
    url: str
    kind: str = RSS
    channel_id: Optional[str] = None
    style: str = ""  # enrichment style label; empty disables summary/commentary
    is_active: bool = True
    last_fetched_at: Optional[datetime] = None
    test_status: Optional[str] = None  # "pending", "passed" or "failed"
    id: Optional[int] = None


@dataclass
class ScrapedItem:
    """A freshly scraped piece of content, before it becomes a draft."""
    title: str
    content: str
    url: str
    published: Optional[datetime] = None
    content_kind: str = ARTICLE
    video_id: Optional[str] = None
    image_url: Optional[str] = None


@dataclass
class ContentItem:
    """The durable unit: a draft until enrichment publishes or discards it."""
    source_id: Optional[int]
    url: str
    title: str
    body: str = ""
    content_kind: str = ARTICLE
    video_id: Optional[str] = None
    image_url: Optional[str] = None
    published: Optional[datetime] = None
    summary: str = ""
    commentary: str = ""
    category_id: Optional[int] = None
    tags: list[str] = field(default_factory=list)
    location: Optional[str] = None
    is_published: bool = False
    batch_id: Optional[str] = None
    batch_completed_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    is_pinned: bool = False
    enrich_attempts: int = 0
    last_error: Optional[str] = None
    deep_background: Optional[str] = None
    deep_prediction: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None


@dataclass
class BatchRun:
    """Bookkeeping for one orchestrator invocation."""
    batch_id: str
    started_at: datetime = field(default_factory=utcnow)
    sources_processed: int = 0
    sources_failed: int = 0
    scraped: int = 0
    duplicates: int = 0
    drafts: int = 0
    published: int = 0
    skipped: int = 0
    failed: int = 0
    completed_at: Optional[datetime] = None


@dataclass
class PipelineStatus:
    """Progress of the current (or last) run, persisted for outside observers."""
    is_running: bool = False
    current_source: str = ""
    progress: int = 0
    total: int = 0
    started_at: Optional[datetime] = None
    last_completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("started_at", "last_completed_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PipelineStatus":
        kwargs = {k: data.get(k) for k in cls.__dataclass_fields__ if k in data}
        for key in ("started_at", "last_completed_at"):
            if kwargs.get(key):
                kwargs[key] = datetime.fromisoformat(kwargs[key])
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# Enrichment results: either the model said skip, or it analyzed the content
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Skipped:
    """Service-type content (schedules, ads, roundups) the model flagged."""
    reason: str = ""

    @property
    def should_skip(self) -> bool:
        return True


@dataclass(frozen=True)
class Analyzed:
    summary: str = ""
    commentary: str = ""
    translated_title: Optional[str] = None
    category: Optional[str] = None
    tags: tuple[str, ...] = ()
    location: Optional[str] = None
    degraded: bool = False  # placeholder result produced when every provider failed

    @property
    def should_skip(self) -> bool:
        return False


EnrichmentResult = Union[Skipped, Analyzed]
