"""Derives search aliases from resource titles.

Aliases let users type "tasks", "task" or "td" instead of "Tasks Database".
The function is pure: the same title always produces the same set, so
re-running it during a sync never invalidates earlier matches.

Example:
    >>> sorted(generate_aliases("Tasks Database"))
    ['task', 'tasks', 'tasks database', 'tasks db', 'td']
"""

import re
from functools import lru_cache
from typing import FrozenSet, List

# Trailing words that describe the container rather than its content
SUFFIX_WORDS = ("database", "db", "table", "list", "tracker", "log")

_SUFFIX_RE = re.compile(r"\s+(?:" + "|".join(SUFFIX_WORDS) + r")$")
_SEPARATOR_RE = re.compile(r"[-_]+")
_WORD_RE = re.compile(r"[a-z0-9]+")
_VOWELS = set("aeiou")

MIN_SHORT_FORM_LENGTH = 3


def _normalize(title: str) -> str:
    return " ".join(title.lower().split())


def _singular_plural(word: str) -> str:
    """Returns the other number of ``word`` using simple English rules."""
    if word.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if word.endswith("ss"):
        return word + "es"
    if word.endswith("s") and len(word) > 1:
        return word[:-1]
    if word.endswith("y") and len(word) > 1 and word[-2] not in _VOWELS:
        return word[:-1] + "ies"
    return word + "s"


def _words(text: str) -> List[str]:
    return _WORD_RE.findall(text)


@lru_cache(maxsize=1024)
def generate_aliases(title: str) -> FrozenSet[str]:
    """Generates the lowercase alias set for a title.

    Args:
        title: The resource title as shown by the API.

    Returns:
        A frozenset containing the normalized title, a separator-free variant,
        the title without a container suffix (plus "db"/"database" forms),
        the singular/plural of that base, an acronym for multi-word titles
        and a first-word short form. Empty for blank titles.
    """
    normalized = _normalize(title or "")
    if not normalized:
        return frozenset()

    aliases = {normalized}

    despaced = _normalize(_SEPARATOR_RE.sub(" ", normalized))
    if despaced:
        aliases.add(despaced)

    base = _SUFFIX_RE.sub("", despaced)
    if base != despaced and base:
        aliases.add(base)
        aliases.add(f"{base} db")
        aliases.add(f"{base} database")

    if base:
        aliases.add(_singular_plural(base))

    words = _words(despaced)
    if len(words) >= 2:
        acronym = "".join(w[0] for w in words)
        aliases.add(acronym)
        if len(words[0]) >= MIN_SHORT_FORM_LENGTH:
            aliases.add(words[0])

    aliases.discard("")
    return frozenset(aliases)
