"""Tests for category normalisation, place tags and the classification job."""

import json
from unittest.mock import MagicMock

from newsdesk.models import ContentItem
from newsdesk.processing.classifier import (
    ensure_place_tag,
    normalize_category,
    place_tag,
    resolve_place,
    run_classification,
)
from newsdesk.processing.prompts import ConfigCache, PromptBuilder, parse_gazetteer

PLACES = parse_gazetteer("Toronto/多伦多, Mississauga/密西沙加, Richmond Hill/列治文山")


class FakeCompleter:
    def __init__(self, answers) -> None:
        self.answers = list(answers)
        self.prompts = []

    def complete(self, prompt, system=None):
        self.prompts.append(prompt)
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer


class TestNormalizeCategory:
    def test_aliases(self) -> None:
        assert normalize_category("tech") == "Technology"
        assert normalize_category("Technology") == "Technology"
        assert normalize_category("本地") == "Local"
        assert normalize_category("in-depth") == "In-Depth"

    def test_containment(self) -> None:
        assert normalize_category("Tech news") == "Technology"
        assert normalize_category("**Sports**") == "Sports"
        assert normalize_category("本地新闻") == "Local"

    def test_containment_needs_whole_words(self) -> None:
        assert normalize_category("Transportation") == "Trending"
        assert normalize_category("Photography") == "Trending"
        assert normalize_category("Local sports") == "Sports"

    def test_unknown_falls_back_to_trending(self) -> None:
        assert normalize_category("Weather") == "Trending"
        assert normalize_category(None) == "Trending"
        assert normalize_category("") == "Trending"


class TestPlaceTags:
    def test_place_tag_removes_spaces(self) -> None:
        assert place_tag("Richmond Hill") == "#RichmondHill"

    def test_resolve_place(self) -> None:
        assert resolve_place("#RichmondHill", PLACES) == "Richmond Hill"
        assert resolve_place("多伦多", PLACES) == "Toronto"
        assert resolve_place("Paris", PLACES) is None

    def test_non_local_untouched(self) -> None:
        assert ensure_place_tag("Sports", ["#hockey"], None, "Toronto wins", PLACES) == (
            "Sports", ["#hockey"], None,
        )

    def test_existing_place_tag_kept(self) -> None:
        category, tags, location = ensure_place_tag("Local", ["#Toronto"], None, "", PLACES)

        assert category == "Local"
        assert tags == ["#Toronto"]
        assert location == "Toronto"

    def test_tag_from_transliterated_location(self) -> None:
        category, tags, location = ensure_place_tag("Local", ["#房价"], "密西沙加", "", PLACES)

        assert tags == ["#Mississauga", "#房价"]
        assert location == "Mississauga"

    def test_tag_from_text(self) -> None:
        category, tags, location = ensure_place_tag(
            "Local", [], None, "Police in Richmond Hill said on Monday", PLACES
        )

        assert category == "Local"
        assert tags == ["#RichmondHill"]
        assert location == "Richmond Hill"

    def test_local_without_place_is_demoted(self) -> None:
        category, tags, _ = ensure_place_tag("Local", ["#news"], None, "Nothing here", PLACES)

        assert category == "Trending"
        assert tags == ["#news"]


class TestRunClassification:
    def _prompts(self, db) -> PromptBuilder:
        return PromptBuilder(ConfigCache(db))

    def test_mississauga_scenario(self, db) -> None:
        item_id = db.insert_draft(ContentItem(
            source_id=None,
            url="https://example.com/fire",
            title="House fire overnight",
            summary="Firefighters responded to a house fire in Mississauga early Tuesday.",
        ))
        provider = FakeCompleter([json.dumps({"category": "local", "tags": ["#fire"], "location": None})])

        stats = run_classification(db, provider, self._prompts(db), sleep=lambda s: None)

        item = db.get_item(item_id)
        assert stats.succeeded == 1
        assert db.get_category_name(item.category_id) == "Local"
        assert "#Mississauga" in item.tags
        assert item.location == "Mississauga"

    def test_unrecognised_label_becomes_trending(self, db) -> None:
        item_id = db.insert_draft(ContentItem(source_id=None, url="https://example.com/x", title="Odd story"))
        provider = FakeCompleter(['{"category": "Weather", "tags": [], "location": null}'])

        run_classification(db, provider, self._prompts(db), sleep=lambda s: None)

        assert db.get_category_name(db.get_item(item_id).category_id) == "Trending"

    def test_failures_are_counted_not_raised(self, db) -> None:
        db.insert_draft(ContentItem(source_id=None, url="https://example.com/1", title="One"))
        db.insert_draft(ContentItem(source_id=None, url="https://example.com/2", title="Two"))
        provider = FakeCompleter([RuntimeError("quota"), "no json here"])

        stats = run_classification(db, provider, self._prompts(db), sleep=lambda s: None)

        assert stats.processed == 2
        assert stats.failed == 2
        assert len(db.list_uncategorized(10)) == 2

    def test_delay_between_items(self, db) -> None:
        for n in range(3):
            db.insert_draft(ContentItem(source_id=None, url=f"https://example.com/{n}", title=f"Story {n}"))
        answer = '{"category": "Sports", "tags": ["#hockey"], "location": null}'
        sleeps = []

        run_classification(
            db, FakeCompleter([answer] * 3), self._prompts(db), delay=0.3, sleep=sleeps.append
        )

        assert sleeps == [0.3, 0.3]

    def test_limit(self, db) -> None:
        for n in range(3):
            db.insert_draft(ContentItem(source_id=None, url=f"https://example.com/{n}", title=f"Story {n}"))
        provider = MagicMock()
        provider.complete.return_value = '{"category": "Sports", "tags": [], "location": null}'

        stats = run_classification(db, provider, self._prompts(db), limit=2, sleep=lambda s: None)

        assert stats.processed == 2
        assert provider.complete.call_count == 2
