import datetime

from shared import database
from shared.models import RotationRole, RotationState, SessionOverride

T1 = datetime.datetime(2025, 1, 6, 9, 0, tzinfo=datetime.timezone.utc)
T2 = datetime.datetime(2025, 1, 7, 9, 0, tzinfo=datetime.timezone.utc)


def test_markers_absent_by_default():
    assert database.get_markers("default:2025-01-06") is None


def test_set_announced_is_idempotent():
    database.set_announced("default:2025-01-06", T1)
    database.set_announced("default:2025-01-06", T2)

    markers = database.get_markers("default:2025-01-06")
    assert markers.announced is True
    assert markers.announced_at == T2.isoformat()
    assert markers.advanced is False
    assert markers.advanced_at is None


def test_advanced_and_announced_are_independent():
    database.set_advanced("default:2025-01-06", T1)
    database.set_announced("default:2025-01-06", T2)

    markers = database.get_markers("default:2025-01-06")
    assert markers.advanced is True
    assert markers.advanced_at == T1.isoformat()
    assert markers.announced is True
    assert markers.announced_at == T2.isoformat()


def test_rotations_are_seeded_empty():
    for role in RotationRole:
        state = database.get_rotation(role)
        assert state.members == []
        assert state.index == 0


def test_save_rotation_normalizes_index():
    database.save_rotation(RotationRole.DM, RotationState(members=["a", "b", "c"], index=5))
    assert database.get_rotation(RotationRole.DM).index == 2

    database.save_rotation(RotationRole.FOOD, RotationState(members=[], index=4))
    assert database.get_rotation(RotationRole.FOOD).index == 0


def test_roles_are_stored_separately():
    database.save_rotation(RotationRole.DM, RotationState(members=["a"], index=0))
    assert database.get_rotation(RotationRole.FOOD).members == []


def test_override_round_trip():
    original = datetime.date(2025, 1, 6)
    assert database.get_override(original) is None

    database.upsert_override(SessionOverride(
        original_date=original,
        is_cancelled=True,
        moved_to=datetime.datetime(2025, 1, 8, 19, 0),
        note="venue closed"
    ))
    override = database.get_override(original)
    assert override.is_cancelled is True
    assert override.moved_to == datetime.datetime(2025, 1, 8, 19, 0)
    assert override.note == "venue closed"

    database.upsert_override(SessionOverride(original_date=original))
    override = database.get_override(original)
    assert override.is_cancelled is False
    assert override.moved_to is None
    assert override.note is None


def test_overrides_moved_to_date():
    database.upsert_override(SessionOverride(
        original_date=datetime.date(2025, 1, 6), moved_to=datetime.datetime(2025, 1, 8, 19, 0)
    ))
    database.upsert_override(SessionOverride(
        original_date=datetime.date(2025, 1, 13), moved_to=datetime.datetime(2025, 1, 8, 12, 0)
    ))
    database.upsert_override(SessionOverride(original_date=datetime.date(2025, 1, 20), is_cancelled=True))

    moved = database.get_overrides_moved_to_date(datetime.date(2025, 1, 8))
    assert [o.original_date for o in moved] == [datetime.date(2025, 1, 13), datetime.date(2025, 1, 6)]
    assert database.get_overrides_moved_to_date(datetime.date(2025, 1, 20)) == []


def test_delete_override():
    original = datetime.date(2025, 1, 6)
    database.upsert_override(SessionOverride(original_date=original, is_cancelled=True))
    assert database.delete_override(original) is True
    assert database.delete_override(original) is False
    assert database.get_override(original) is None


def test_settings_upsert():
    assert database.get_setting("x") is None
    database.upsert_setting("x", "1")
    database.upsert_setting("x", "2")
    assert database.get_setting("x") == "2"
