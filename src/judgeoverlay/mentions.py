"""Parse and normalize ``@mentions`` of reviewers in free text.

Two syntaxes are recognized: ``@word`` for stable ids and ``@{Display Name}``
for names with spaces or punctuation.  Both normalize to the same canonical
key, so ``@fact_integrity_reviewer`` and ``@{Fact Integrity Reviewer}``
refer to the same reviewer.

Malformed input (``@`` alone, an unclosed brace) is plain text, never an error.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from judgeoverlay.models import MentionToken, Reviewer

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

# @{Display Name} (group 1) or @word (group 2)
_MENTION_RE = re.compile(r"@(?:\{([^}]+)\}|([a-zA-Z0-9_-]+))")

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^a-z0-9_-]")
_UNDERSCORE_RUN_RE = re.compile(r"_+")


def normalize(token: str) -> str:
    """Canonical identity key for a mention token, id, or display name.

    >>> normalize(" Clarity & Structure Reviewer ")
    'clarity_structure_reviewer'
    """
    key = _WHITESPACE_RE.sub("_", token.strip().lower())
    key = _DISALLOWED_RE.sub("", key)
    key = _UNDERSCORE_RUN_RE.sub("_", key)
    return key.strip("_")


def parse_tokens(text: str) -> list[str]:
    """Return the raw mention strings in *text*, left to right, duplicates kept."""
    tokens = []
    for match in _MENTION_RE.finditer(text):
        raw = match.group(1) or match.group(2) or ""
        if raw.strip():
            tokens.append(raw)
    return tokens


def parse_mentions(text: str) -> list[MentionToken]:
    """Like :func:`parse_tokens`, paired with each token's canonical key."""
    return [MentionToken(raw=raw, key=normalize(raw)) for raw in parse_tokens(text)]


def strip(text: str) -> str:
    """Remove every mention and collapse the leftover whitespace."""
    return _WHITESPACE_RE.sub(" ", _MENTION_RE.sub("", text)).strip()


def build_identity_keys(identifier: str, display_name: str) -> list[str]:
    """Distinct canonical keys for a reviewer, id first.

    Usually the id and the display name collapse to a single key.
    """
    keys: list[str] = []
    for value in (identifier, display_name):
        key = normalize(value)
        if key and key not in keys:
            keys.append(key)
    return keys


def format_display_mention(name: str) -> str:
    return f"@{{{name}}}"


class MentionDirectory:
    """Lookup from canonical keys to the reviewers of a roster.

    The first reviewer registered under a key keeps it; later collisions are
    logged and ignored.
    """

    def __init__(self, reviewers: Iterable[Reviewer] = ()) -> None:
        self._by_key: dict[str, Reviewer] = {}
        for reviewer in reviewers:
            self.add(reviewer)

    def add(self, reviewer: Reviewer) -> None:
        for key in build_identity_keys(reviewer.id, reviewer.name):
            owner = self._by_key.setdefault(key, reviewer)
            if owner is not reviewer and owner.id != reviewer.id:
                logger.warning("Mention key %r of %s already belongs to %s", key, reviewer.id, owner.id)

    def lookup(self, token: str) -> Reviewer | None:
        return self._by_key.get(normalize(token))

    def resolve(self, text: str) -> list[Reviewer]:
        """Reviewers mentioned in *text*, in order of first mention."""
        found: list[Reviewer] = []
        for raw in parse_tokens(text):
            reviewer = self.lookup(raw)
            if reviewer is not None and reviewer not in found:
                found.append(reviewer)
        return found

    def unknown(self, text: str) -> list[str]:
        """Raw tokens in *text* that match no reviewer."""
        return [raw for raw in parse_tokens(text) if self.lookup(raw) is None]

    def __len__(self) -> int:
        return len(self._by_key)

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and normalize(token) in self._by_key
