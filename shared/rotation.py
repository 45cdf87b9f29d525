# shared/rotation.py

from typing import Optional

from shared.errors import (
    DuplicateMember, EmptyRoster, InsufficientMembers,
    MemberNotFound, PositionOutOfRange
)
from shared.models import RotationState


def normalize_index(index: int, count: int) -> int:
    if count <= 0:
        return 0
    return index % count


class RotationRing:
    """
    Ordered roster with a pointer to whoever holds the current turn.

    Operations mutate the wrapped ``RotationState`` in place; call
    ``normalized()`` (the database layer does) before persisting it.
    """

    def __init__(self, state: RotationState):
        self.state = state

    @property
    def members(self):
        return self.state.members

    @property
    def position(self) -> int:
        return normalize_index(self.state.index, len(self.state.members))

    def current(self) -> Optional[str]:
        if not self.state.members:
            return None
        return self.state.members[self.position]

    def next(self) -> Optional[str]:
        if not self.state.members:
            return None
        return self.state.members[(self.position + 1) % len(self.state.members)]

    def require_current(self) -> str:
        member = self.current()
        if member is None:
            raise EmptyRoster("The roster is empty")
        return member

    def advance(self) -> None:
        if not self.state.members:
            return
        self.state.index = (self.position + 1) % len(self.state.members)

    def swap_current_with_next(self) -> None:
        """Swap the current holder with the next one; the pointer stays put."""
        count = len(self.state.members)
        if count < 2:
            raise InsufficientMembers("Need at least 2 members to swap")
        i = self.position
        j = (i + 1) % count
        members = self.state.members
        members[i], members[j] = members[j], members[i]
        self.state.index = i

    def add(self, member_id: str) -> None:
        if member_id in self.state.members:
            raise DuplicateMember(f"{member_id} is already in the roster")
        self.state.members.append(member_id)

    def remove(self, member_id: str) -> None:
        if member_id not in self.state.members:
            raise MemberNotFound(f"{member_id} is not in the roster")
        self.state.members.remove(member_id)
        if self.state.index >= len(self.state.members):
            self.state.index = 0

    def set_current_by_position(self, position: int) -> None:
        if not 1 <= position <= len(self.state.members):
            raise PositionOutOfRange(
                f"Position must be between 1 and {len(self.state.members)}"
            )
        self.state.index = position - 1

    def normalized(self) -> RotationState:
        self.state.index = normalize_index(self.state.index, len(self.state.members))
        return self.state
