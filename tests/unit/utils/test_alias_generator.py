import pytest

from hypercli.utils.alias_generator import generate_aliases


def test_tasks_database_aliases():
    """Suffix stripping, singular form, db variants and acronym."""
    assert generate_aliases("Tasks Database") == frozenset(
        {"tasks database", "tasks", "task", "tasks db", "td"}
    )


def test_always_contains_normalized_title():
    aliases = generate_aliases("  Meeting   Notes ")
    assert "meeting notes" in aliases
    assert "mn" in aliases
    assert "meeting" in aliases


def test_separators_become_spaces():
    aliases = generate_aliases("bug-tracker_items")
    assert "bug-tracker_items" in aliases
    assert "bug tracker items" in aliases
    assert "bti" in aliases


@pytest.mark.parametrize("title, expected", [
    ("Stories", "story"),
    ("Story", "stories"),
    ("Project", "projects"),
    ("Address", "addresses"),
    ("Key", "keys"),
])
def test_singular_plural_variants(title, expected):
    assert expected in generate_aliases(title)


def test_single_word_title_has_no_acronym():
    aliases = generate_aliases("Roadmap")
    assert aliases == frozenset({"roadmap", "roadmaps"})


def test_short_first_word_is_not_added():
    aliases = generate_aliases("QA Log")
    assert "qa" in aliases  # suffix-stripped base
    assert "ql" in aliases
    assert "qa log" in aliases


@pytest.mark.parametrize("title", ["", "   ", None])
def test_blank_title_yields_empty_set(title):
    assert generate_aliases(title) == frozenset()


def test_idempotent_and_lowercase():
    first = generate_aliases("Content Calendar DB")
    assert first == generate_aliases("Content Calendar DB")
    assert all(alias == alias.lower() for alias in first)
    assert "content calendar" in first
    assert "content calendar database" in first
