import pytest

from subject_resolver import (
    AbbreviationMatch,
    ContainmentMatch,
    ExactMatch,
    SubjectResolver,
    WordOverlapMatch,
    initials,
)
from timetable_errors import PersistenceFailure
from timetable_schema import SUBJECT_PALETTE, SubjectCreate


@pytest.fixture
def resolver(store, user_id):
    return SubjectResolver(store, user_id)


@pytest.fixture
def networks(store, user_id):
    return store.create_subject(user_id, SubjectCreate(name="Computer Networks"))


def test_initials_match(resolver, networks):
    assert resolver.resolve("CN", [networks]).id == networks.id
    assert resolver.match("CN", [networks]) == (networks, "abbreviation")


def test_exact_match_ignores_case(resolver, networks):
    assert resolver.resolve("computer networks", [networks]).id == networks.id
    assert resolver.match("computer networks", [networks])[1] == "exact"


def test_containment_match(resolver, networks):
    assert resolver.resolve("Networks", [networks]).id == networks.id
    assert resolver.match("Networks", [networks])[1] == "containment"


def test_prefix_abbreviation(resolver, networks):
    assert resolver.match("Comp", [networks])[1] == "abbreviation"


def test_word_overlap_match(store, user_id, resolver):
    analytics = store.create_subject(user_id, SubjectCreate(name="Predictive Analytics"))
    assert resolver.resolve("Predictive Analysis", [analytics]).id == analytics.id
    assert resolver.match("Predictive Analysis", [analytics])[1] == "word_overlap"


def test_no_match_creates_subject(store, user_id, resolver, networks):
    created = resolver.resolve("Organic Chemistry", [networks])
    assert created.id != networks.id
    assert created.name == "Organic Chemistry"
    assert created.color == SUBJECT_PALETTE[1]
    assert {s.name for s in store.list_subjects(user_id)} == {"Computer Networks", "Organic Chemistry"}


def test_empty_catalog_creates_subject(store, user_id, resolver):
    created = resolver.resolve("  Physics ", [])
    assert created.name == "Physics"
    assert created.color == SUBJECT_PALETTE[0]
    assert store.list_subjects(user_id) == [created]


def test_stricter_strategy_wins_over_list_order(store, user_id, resolver):
    lab = store.create_subject(user_id, SubjectCreate(name="Networks Lab"))
    plain = store.create_subject(user_id, SubjectCreate(name="Networks"))
    # "Networks Lab" comes first and is a prefix hit, but the exact match is checked before any prefix
    assert resolver.resolve("networks", [lab, plain]).id == plain.id


def test_input_is_trimmed(resolver, networks):
    assert resolver.resolve("  cn  ", [networks]).id == networks.id


def test_blank_name_is_rejected(resolver, networks):
    with pytest.raises(ValueError):
        resolver.resolve("   ", [networks])


def test_custom_strategy_list(store, user_id, networks):
    strict = SubjectResolver(store, user_id, strategies=[ExactMatch()])
    created = strict.resolve("CN", [networks])
    assert created.id != networks.id


def test_custom_color_picker(store, user_id):
    r = SubjectResolver(store, user_id, color_picker=lambda existing: "#000000")
    assert r.resolve("Art", []).color == "#000000"


def test_creation_failure_propagates(store, user_id, resolver, networks):
    # the store already has the name; a stale candidate list forces a create
    with pytest.raises(PersistenceFailure):
        resolver.resolve("Computer Networks", [])


def test_strategies_individually(make_subject):
    s = make_subject("s1", "Software Engineering")
    assert ExactMatch().matches("software engineering", s)
    assert not ExactMatch().matches("se", s)
    assert AbbreviationMatch().matches("se", s)
    assert AbbreviationMatch().matches("soft", s)
    assert not AbbreviationMatch().matches("eng", s)
    assert ContainmentMatch().matches("engineering", s)
    assert ContainmentMatch().matches("software engineering lab", s)
    assert not ContainmentMatch().matches("hardware", s)


def test_word_overlap_threshold(make_subject):
    s = make_subject("s1", "Predictive Analytics")
    literal = WordOverlapMatch(min_stem=None)
    assert literal.similarity("predictive analysis", s) == pytest.approx(0.5)
    assert not literal.matches("predictive analysis", s)
    assert WordOverlapMatch().similarity("predictive analysis", s) == pytest.approx(1.0)
    # 2 of 3 words is not above 0.7
    assert not WordOverlapMatch().matches("predictive analytics lab", make_subject("s2", "Predictive Data Analytics"))


def test_word_stems_must_agree():
    m = WordOverlapMatch()
    assert m.stem("analysis") == m.stem("analytics") == "analy"
    assert m.words_match("analysis", "analytics")
    assert not m.words_match("physiology", "physics")
    assert not m.words_match("computer", "compiler")
    assert not m.words_match("organic", "networks")


def test_similar_but_different_subject_is_not_merged(store, user_id, resolver):
    physics = store.create_subject(user_id, SubjectCreate(name="Applied Physics"))
    assert resolver.match("Applied Physiology", [physics]) is None
    created = resolver.resolve("Applied Physiology", [physics])
    assert created.id != physics.id
    assert created.name == "Applied Physiology"


def test_initials_helper():
    assert initials("Artificial Intelligence and Soft Computing") == "aiasc"
    assert initials("  Computer   Networks ") == "cn"
