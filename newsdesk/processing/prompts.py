"""Prompt rendering and response parsing for enrichment and classification.

Prompt-shaping rules (service-type filters, length policies, taxonomy,
gazetteer, classification priority rules) live in the ``ai_config`` table so
they can be tuned without a deploy. They are read through ``ConfigCache``;
every key has a hardcoded default used when the table has no value or
cannot be read.
"""

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

from newsdesk.models import VIDEO, Analyzed, EnrichmentResult, Skipped

logger = logging.getLogger(__name__)

CONFIG_KEYS = (
    "filter_rules",
    "summary_length_article",
    "summary_length_video",
    "commentary_length_article",
    "commentary_length_deep_dive",
    "classification_categories",
    "classification_rules",
    "gazetteer",
)

DEFAULT_FILTER_RULES = """\
Schedules and programme listings (TV air times, live-stream timetables)
Event promotions, viewing guides, ticket guides
Periodic roundups ("this week in review", "today's headlines", daily briefings)
Pure advertising or promotional content
Weather forecasts, sports score tables and other bare listings
Channel or platform self-promotion ("about us", "contact us", site introductions)
Follow/like/subscribe reminders and QR-code prompts
Generic media-brand slogans or statements with no concrete news facts"""

DEFAULT_SUMMARY_LENGTH = {
    "article": "80-150 characters covering the core facts, key actors and impact",
    "video": "80-150 characters covering what the video reports",
}

DEFAULT_COMMENTARY_LENGTH = "300-500 characters, sharp and witty with real depth"
DEFAULT_DEEP_DIVE_LENGTH = (
    "800-1000 characters in three labelled parts: Background (history and context), "
    "Analysis (core argument and deeper reading), Implications (future trends and advice)"
)

DEFAULT_CATEGORIES = "Local, Trending, Politics, Technology, Finance, Entertainment, Sports, In-Depth"

DEFAULT_CLASSIFICATION_RULES = """\
Local: the story mentions any known place below, a Canadian province, a federal or provincial agency (CBSA, CRA, Service Canada) or a distinctly Canadian institution
Trending: breaking events, viral stories, major disasters, scandals or celebrity deaths
In-Depth: structural political questions, macro-economic risk, disruptive technology with ethical stakes, contested social issues
Politics, Technology, Finance, Entertainment, Sports: by subject"""

DEFAULT_GAZETTEER = """\
Toronto/多伦多, Mississauga/密西沙加, Brampton/宾顿/布兰普顿, Markham/万锦, Richmond Hill/列治文山,
Vaughan/旺市, Oakville/奥克维尔, Burlington/伯灵顿, Hamilton/汉密尔顿, Ottawa/渥太华,
Guelph/贵湖, Waterloo/滑铁卢, North York/北约克, Scarborough/士嘉堡, Etobicoke/怡陶碧谷,
Vancouver/温哥华, Burnaby/本拿比, Surrey/素里, Coquitlam/高贵林, Victoria/维多利亚, Kelowna/基洛纳,
Montreal/蒙特利尔, Quebec City/魁北克城, Laval/拉瓦尔,
Calgary/卡尔加里, Edmonton/埃德蒙顿,
Winnipeg/温尼伯, Halifax/哈利法克斯, Saskatoon/萨斯卡通"""

SECTION_MARKERS = (
    "SKIP", "SKIP_REASON", "TITLE", "SUMMARY", "COMMENTARY", "CATEGORY", "TAGS", "LOCATION",
)
_SECTION_RE = re.compile(r"\[(" + "|".join(SECTION_MARKERS) + r")\]")

_YES = {"yes", "y", "true", "1", "skip", "是"}
_NULLISH = {"", "null", "none", "n/a", "na", "无", "-"}


# ---------------------------------------------------------------------------
# Config cache
# ---------------------------------------------------------------------------

class ConfigCache:
    """Process-local TTL cache over the ai_config rows used for prompts."""

    def __init__(
        self,
        db,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._values: Optional[dict[str, str]] = None
        self._loaded_at = 0.0

    def get(self) -> dict[str, str]:
        if self._values is not None and self._clock() - self._loaded_at < self.ttl_seconds:
            return self._values
        try:
            values = self.db.get_config(CONFIG_KEYS)
        except Exception as e:
            # Not cached: the next call retries the store
            logger.warning(f"  [Config] Could not load AI config, using defaults: {e}")
            return {}
        self._values = values
        self._loaded_at = self._clock()
        return values

    def value(self, key: str, default: str) -> str:
        return (self.get().get(key) or "").strip() or default


# ---------------------------------------------------------------------------
# Gazetteer
# ---------------------------------------------------------------------------

def parse_gazetteer(text: str) -> dict[str, str]:
    """Map every lowercased name and alias to its canonical English place name.

    Entries look like ``Toronto/多伦多`` and are separated by commas or
    newlines. An optional ``Region:`` prefix on a line is ignored.
    """
    places: dict[str, str] = {}
    for line in text.splitlines():
        if ":" in line:
            line = line.split(":", 1)[1]
        for entry in re.split(r"[,，;；]", line):
            names = [n.strip() for n in entry.split("/") if n.strip()]
            if not names:
                continue
            canonical = names[0]
            for name in names:
                places.setdefault(name.lower(), canonical)
    return places


def find_places(text: str, places: dict[str, str]) -> list[str]:
    """Canonical names of gazetteer places mentioned in text, in order of appearance."""
    if not text:
        return []
    lowered = text.lower()
    hits = []
    for alias, canonical in places.items():
        if alias.isascii():
            match = re.search(r"\b" + re.escape(alias) + r"\b", lowered)
            pos = match.start() if match else -1
        else:
            pos = lowered.find(alias)
        if pos >= 0:
            hits.append((pos, -len(alias), canonical))
    found = []
    for _, _, canonical in sorted(hits):
        if canonical not in found:
            found.append(canonical)
    return found


# ---------------------------------------------------------------------------
# Prompt rendering
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Prompt:
    """A rendered prompt; providers decide how to pass the system part."""
    system: str
    user: str


SYSTEM_PROMPT = """\
You are the news editor of a {language} community news site for readers in Canada. \
Every natural-language field you write must be in {language}. Do not leave words \
in other languages except proper nouns that have no common {language} form."""

ENRICHMENT_TEMPLATE = """\
Step 1. Decide whether the item below is service-type content rather than genuine reporting. \
Service-type content includes:
{filter_rules}
If it is service-type, answer [SKIP] yes, give a one-line [SKIP_REASON] and write nothing else.

Step 2. Otherwise answer [SKIP] no and fill in every remaining section.

Title: {title}
Content:
{content}

Answer with these markers, exactly as written and in this order:
[SKIP] yes or no
[SKIP_REASON] why it was skipped, or empty
[TITLE] {title_instruction}
[SUMMARY] {summary_instruction}
[COMMENTARY] {commentary_instruction}
[CATEGORY] exactly one of: {categories}
[TAGS] 2-5 hashtags separated by commas
[LOCATION] the canonical English name of the place the story happens in if it is a known place, otherwise null

Classification rules:
{classification_rules}

Known places (canonical English name first, then aliases):
{gazetteer}

If any known place is mentioned, the category is Local and the location and one tag must use \
the canonical English place name (for example #Mississauga), never a transliteration."""

CLASSIFICATION_TEMPLATE = """\
Classify the news item below.

Highest priority: look for any known place name. If any known place appears, the category is \
Local and the location and one tag must use the canonical English place name (for example \
#Mississauga), never a transliteration.

Known places (canonical English name first, then aliases):
{gazetteer}

Classification rules:
{classification_rules}

Title: {title}
Summary: {summary}
Commentary: {commentary}

Respond with JSON only:
{{"category": "one of: {categories}", "tags": ["#tag1", "#tag2"], "location": "canonical place name or null"}}"""


def _bullets(text: str) -> str:
    lines = [line.strip().lstrip("-•* ").strip() for line in text.splitlines()]
    return "\n".join(f"- {line}" for line in lines if line)


class PromptBuilder:
    """Renders enrichment and classification prompts from the cached config."""

    def __init__(
        self,
        cache: ConfigCache,
        target_language: str = "Simplified Chinese",
        max_content_length: int = 3000,
    ):
        self.cache = cache
        self.target_language = target_language
        self.max_content_length = max_content_length

    def system(self) -> str:
        return SYSTEM_PROMPT.format(language=self.target_language)

    def gazetteer(self) -> dict[str, str]:
        return parse_gazetteer(self.cache.value("gazetteer", DEFAULT_GAZETTEER))

    def length_policy(self, content_kind: str, is_deep_dive: bool) -> tuple[str, str]:
        """(summary length, commentary length) for a content kind."""
        kind = VIDEO if content_kind == VIDEO else "article"
        summary = self.cache.value(f"summary_length_{kind}", DEFAULT_SUMMARY_LENGTH[kind])
        if is_deep_dive:
            commentary = self.cache.value("commentary_length_deep_dive", DEFAULT_DEEP_DIVE_LENGTH)
        else:
            commentary = self.cache.value("commentary_length_article", DEFAULT_COMMENTARY_LENGTH)
        return summary, commentary

    def build_enrichment(
        self,
        body: str,
        title: str,
        style: str,
        content_kind: str = "article",
        is_deep_dive: bool = False,
    ) -> Prompt:
        content = body or ""
        if len(content) > self.max_content_length:
            content = content[: self.max_content_length] + "..."

        summary_length, commentary_length = self.length_policy(content_kind, is_deep_dive)
        if not style:
            summary_instruction = "leave empty"
            commentary_instruction = "leave empty"
        else:
            summary_instruction = f"a summary of {summary_length}"
            if content_kind == VIDEO:
                commentary_instruction = "leave empty"
            else:
                commentary_instruction = f'commentary in a "{style}" voice, {commentary_length}'

        if re.search(r"[A-Za-z]", title or ""):
            title_instruction = f"the title translated into {self.target_language}"
        else:
            title_instruction = "the original title, unchanged"

        user = ENRICHMENT_TEMPLATE.format(
            filter_rules=_bullets(self.cache.value("filter_rules", DEFAULT_FILTER_RULES)),
            title=title,
            content=content,
            title_instruction=title_instruction,
            summary_instruction=summary_instruction,
            commentary_instruction=commentary_instruction,
            categories=self.cache.value("classification_categories", DEFAULT_CATEGORIES),
            classification_rules=_bullets(
                self.cache.value("classification_rules", DEFAULT_CLASSIFICATION_RULES)
            ),
            gazetteer=self.cache.value("gazetteer", DEFAULT_GAZETTEER),
        )
        return Prompt(system=self.system(), user=user)

    def build_classification(self, title: str, summary: str, commentary: str = "") -> Prompt:
        user = CLASSIFICATION_TEMPLATE.format(
            gazetteer=self.cache.value("gazetteer", DEFAULT_GAZETTEER),
            classification_rules=_bullets(
                self.cache.value("classification_rules", DEFAULT_CLASSIFICATION_RULES)
            ),
            categories=self.cache.value("classification_categories", DEFAULT_CATEGORIES),
            title=title or "",
            summary=summary or "",
            commentary=commentary or "",
        )
        return Prompt(system=self.system(), user=user)


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def parse_sections(text: str) -> dict[str, str]:
    """Split a marker-delimited response. Missing sections map to ''."""
    sections = {marker: "" for marker in SECTION_MARKERS}
    matches = list(_SECTION_RE.finditer(text or ""))
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        marker = match.group(1)
        if not sections[marker]:
            sections[marker] = text[match.end():end].strip()
    return sections


def parse_tags(raw) -> tuple[str, ...]:
    """Normalise a tag list or comma-separated string to unique '#tag' strings."""
    if isinstance(raw, str):
        raw = re.split(r"[,，、\n]+", raw)
    tags = []
    for tag in raw or []:
        tag = str(tag).strip().strip('"').strip()
        if not tag or tag.lower() in _NULLISH:
            continue
        if not tag.startswith("#"):
            tag = "#" + tag
        if tag not in tags:
            tags.append(tag)
    return tuple(tags)


def _optional(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return None if value.lower() in _NULLISH else value


def parse_enrichment(text: str, style: str = "", content_kind: str = "article") -> EnrichmentResult:
    """Turn a marker-delimited model answer into Skipped or Analyzed.

    The generation policy is re-applied here: no style means no summary or
    commentary, and videos never carry commentary.
    """
    sections = parse_sections(text)
    answer = sections["SKIP"].split()
    if answer and answer[0].lower().strip(".:,") in _YES:
        return Skipped(reason=sections["SKIP_REASON"])

    summary = sections["SUMMARY"] if style else ""
    commentary = sections["COMMENTARY"] if style and content_kind != VIDEO else ""
    return Analyzed(
        summary=summary,
        commentary=commentary,
        translated_title=_optional(sections["TITLE"]),
        category=_optional(sections["CATEGORY"]),
        tags=parse_tags(sections["TAGS"]),
        location=_optional(sections["LOCATION"]),
    )


def parse_classification(text: str) -> Optional[dict]:
    """Extract {category, tags, location} from a JSON answer, or None."""
    json_match = re.search(r"\{.*\}", text or "", re.DOTALL)
    if not json_match:
        return None
    try:
        data = json.loads(json_match.group())
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    return {
        "category": _optional(data.get("category")),
        "tags": list(parse_tags(data.get("tags") or [])),
        "location": _optional(data.get("location")),
    }
