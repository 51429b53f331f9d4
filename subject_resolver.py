"""
Map free-text subject labels (often abbreviated, as printed on a timetable) onto
the user's subject catalog, creating a subject when nothing matches.

Strategies are tried in order and the first hit wins. Precision drops and
recall rises down the list, so a loose match can never pre-empt a stricter one:

    ExactMatch        "computer networks" == "Computer Networks"
    AbbreviationMatch "comp" / "CN"       -> "Computer Networks"
    ContainmentMatch  "Networks"          -> "Computer Networks"
    WordOverlapMatch  "Predictive Analysis" -> "Predictive Analytics"
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol, Sequence, Tuple

from timetable_schema import SUBJECT_PALETTE, Subject, SubjectCreate
from timetable_store import TimetableStore

logger = logging.getLogger(__name__)

ColorPicker = Callable[[Sequence[Subject]], str]


def normalize_name(name: str) -> str:
    return (name or "").strip().lower()


def initials(name: str) -> str:
    return "".join(word[0].lower() for word in name.split())


class MatchStrategy(Protocol):
    name: str

    def matches(self, query: str, subject: Subject) -> bool:
        """`query` is already trimmed and lower-cased."""
        ...


class ExactMatch:
    name = "exact"

    def matches(self, query: str, subject: Subject) -> bool:
        return subject.name.lower() == query


class AbbreviationMatch:
    name = "abbreviation"

    def matches(self, query: str, subject: Subject) -> bool:
        return subject.name.lower().startswith(query) or initials(subject.name) == query


class ContainmentMatch:
    name = "containment"

    def matches(self, query: str, subject: Subject) -> bool:
        existing = subject.name.lower()
        return query in existing or existing in query


class WordOverlapMatch:
    name = "word_overlap"

    # longest first; only the first one that leaves a long enough stem is removed
    SUFFIXES: Tuple[str, ...] = ("ology", "tics", "ics", "sis", "ies", "es", "s", "y")

    def __init__(self, threshold: float = 0.7, min_stem: Optional[int] = 5) -> None:
        self.threshold = threshold
        # min_stem=None keeps pure substring word matching
        self.min_stem = min_stem

    def stem(self, word: str) -> str:
        for suffix in self.SUFFIXES:
            if word.endswith(suffix) and len(word) - len(suffix) >= self.min_stem:
                return word[: -len(suffix)]
        return word

    def words_match(self, a: str, b: str) -> bool:
        """Substring either way, or the same stem once an inflection is dropped ("analysis" ~ "analytics")."""
        if a in b or b in a:
            return True
        if self.min_stem is None:
            return False
        stem = self.stem(a)
        return len(stem) >= self.min_stem and stem == self.stem(b)

    def similarity(self, query: str, subject: Subject) -> float:
        existing_words = subject.name.lower().split()
        query_words = query.split()
        if not existing_words or not query_words:
            return 0.0
        matching = [w for w in existing_words if any(self.words_match(w, q) for q in query_words)]
        return len(matching) / max(len(existing_words), len(query_words))

    def matches(self, query: str, subject: Subject) -> bool:
        return self.similarity(query, subject) > self.threshold


DEFAULT_STRATEGIES: Tuple[MatchStrategy, ...] = (
    ExactMatch(),
    AbbreviationMatch(),
    ContainmentMatch(),
    WordOverlapMatch(),
)


def round_robin_color(existing: Sequence[Subject]) -> str:
    return SUBJECT_PALETTE[len(existing) % len(SUBJECT_PALETTE)]


class SubjectResolver:
    def __init__(
        self,
        store: TimetableStore,
        user_id: str,
        *,
        strategies: Sequence[MatchStrategy] = DEFAULT_STRATEGIES,
        color_picker: ColorPicker = round_robin_color,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.strategies = tuple(strategies)
        self.color_picker = color_picker

    def match(self, raw_name: str, existing: Sequence[Subject]) -> Optional[Tuple[Subject, str]]:
        query = normalize_name(raw_name)
        if not query:
            return None
        for strategy in self.strategies:
            for subject in existing:
                if strategy.matches(query, subject):
                    return subject, strategy.name
        return None

    def create(self, raw_name: str, existing: Sequence[Subject]) -> Subject:
        """Raises PersistenceFailure when the store rejects the new subject."""
        data = SubjectCreate(name=raw_name, color=self.color_picker(existing))
        subject = self.store.create_subject(self.user_id, data)
        logger.info("created subject '%s' (%s) for user %s", subject.name, subject.id, self.user_id)
        return subject

    def resolve(self, raw_name: str, existing: Sequence[Subject]) -> Subject:
        if not normalize_name(raw_name):
            raise ValueError("subject name must be a non-empty string")
        hit = self.match(raw_name, existing)
        if hit is not None:
            subject, how = hit
            logger.debug("resolved '%s' -> '%s' (%s)", raw_name, subject.name, how)
            return subject
        return self.create(raw_name.strip(), existing)
