import pytest

from shared.errors import (
    DuplicateMember, EmptyRoster, InsufficientMembers, MemberNotFound, PositionOutOfRange
)
from shared.models import RotationState
from shared.rotation import RotationRing, normalize_index


def ring(members, index=0):
    return RotationRing(RotationState(members=list(members), index=index))


def test_normalize_index_range():
    for count in range(1, 6):
        for i in range(-20, 21):
            assert 0 <= normalize_index(i, count) < count
    assert normalize_index(7, 0) == 0
    assert normalize_index(-3, 0) == 0
    assert normalize_index(-1, 3) == 2


def test_advance_then_swap_makes_former_next_current():
    r = ring(["A", "B", "C"])
    r.advance()
    assert r.state.index == 1
    assert r.current() == "B"

    r.swap_current_with_next()
    assert r.members == ["A", "C", "B"]
    assert r.state.index == 1
    assert r.current() == "C"


def test_advance_wraps():
    r = ring(["A", "B"], index=1)
    r.advance()
    assert r.current() == "A"


def test_advance_on_empty_is_noop():
    r = ring([])
    r.advance()
    assert r.state.index == 0
    assert r.current() is None


def test_swap_wraps_around_the_end():
    r = ring(["A", "B", "C"], index=2)
    r.swap_current_with_next()
    assert r.members == ["C", "B", "A"]
    assert r.current() == "A"


def test_swap_needs_two_members():
    with pytest.raises(InsufficientMembers):
        ring(["A"]).swap_current_with_next()
    with pytest.raises(InsufficientMembers):
        ring([]).swap_current_with_next()


def test_add_rejects_duplicates():
    r = ring(["A"])
    r.add("B")
    assert r.members == ["A", "B"]
    with pytest.raises(DuplicateMember):
        r.add("A")


def test_remove_unknown_member():
    with pytest.raises(MemberNotFound):
        ring(["A"]).remove("Z")


def test_remove_keeps_index_when_still_valid():
    r = ring(["A", "B", "C"], index=1)
    r.remove("A")
    assert r.state.index == 1
    assert r.current() == "C"


def test_remove_resets_index_past_the_end():
    r = ring(["A", "B", "C"], index=2)
    r.remove("C")
    assert r.state.index == 0
    assert r.current() == "A"


def test_set_current_by_position_is_one_based():
    r = ring(["A", "B", "C"])
    r.set_current_by_position(3)
    assert r.current() == "C"
    for bad in (0, 4, -1):
        with pytest.raises(PositionOutOfRange):
            r.set_current_by_position(bad)


def test_require_current_on_empty():
    with pytest.raises(EmptyRoster):
        ring([]).require_current()


def test_next_member():
    assert ring(["A", "B", "C"], index=2).next() == "A"
    assert ring([]).next() is None


def test_normalized_fixes_out_of_range_index():
    r = ring(["A", "B", "C"], index=7)
    assert r.current() == "B"
    assert r.normalized().index == 1
