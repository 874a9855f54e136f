from dataclasses import dataclass
from typing import Any, Dict, Protocol


class Channel(Protocol):
    """Per-connection outbound capability the core depends on."""

    @property
    def connected(self) -> bool: ...

    def send(self, event: str, payload: Dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class Player:
    """Identity and rating of a player at the time they queued."""

    player_id: int
    display_name: str
    rating: int

    def to_dict(self):
        return {
            'id': self.player_id,
            'username': self.display_name,
            'rating': self.rating,
        }
