"""Service for managing contest participants and their connection state."""

from __future__ import annotations

from contest_engine.core.models import Participant


class LobbyManager:
    """Tracks who joined a contest, in join order, and who is still connected."""

    def __init__(self, contest_id: str, max_participants: int) -> None:
        self._contest_id = contest_id
        self._max_participants = max_participants
        self._participants: dict[str, Participant] = {}
        self._join_counter: int = 0

    def register(self, user_id: str, joined_at: float) -> Participant:
        """Add a participant; callers have already checked capacity and duplicates."""
        self._join_counter += 1
        participant = Participant(
            contest_id=self._contest_id,
            user_id=user_id,
            joined_at=joined_at,
            join_sequence=self._join_counter,
        )
        self._participants[user_id] = participant
        return participant

    def load(self, participants: list[Participant]) -> None:
        """Replace the roster, e.g. when a room is rebuilt from a checkpoint."""
        self._participants = {p.user_id: p for p in sorted(participants, key=lambda p: p.join_sequence)}
        self._join_counter = max((p.join_sequence for p in participants), default=0)

    def get(self, user_id: str) -> Participant | None:
        return self._participants.get(user_id)

    def has(self, user_id: str) -> bool:
        return user_id in self._participants

    def is_full(self) -> bool:
        return len(self._participants) >= self._max_participants

    def count(self) -> int:
        return len(self._participants)

    def connected_count(self) -> int:
        return sum(1 for p in self._participants.values() if p.connected)

    def get_participants(self) -> list[Participant]:
        """Return participants ordered by join sequence."""
        return sorted(self._participants.values(), key=lambda p: p.join_sequence)

    def get_connected(self) -> list[Participant]:
        return [p for p in self.get_participants() if p.connected]

    def set_connected(self, user_id: str, connected: bool) -> bool:
        """Update the connection flag; returns True when it actually changed."""
        participant = self._participants[user_id]
        if participant.connected == connected:
            return False
        participant.connected = connected
        return True
