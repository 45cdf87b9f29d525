# shared/errors.py


class SchedulerError(Exception):
    """Base class for failures surfaced by the scheduler core."""


class InvalidTimeZone(SchedulerError):
    def __init__(self, time_zone_id: str):
        super().__init__(f"Unknown time zone: {time_zone_id!r}")
        self.time_zone_id = time_zone_id


class RotationError(SchedulerError):
    """A roster operation that cannot be applied to the current state."""


class InsufficientMembers(RotationError):
    pass


class DuplicateMember(RotationError):
    pass


class MemberNotFound(RotationError):
    pass


class PositionOutOfRange(RotationError):
    pass


class EmptyRoster(RotationError):
    pass
