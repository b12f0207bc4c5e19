from dataclasses import dataclass

from editorial.db.models import ActorRole


@dataclass(frozen=True)
class Actor:
    """Caller identity, authenticated upstream and trusted as claimed."""

    actor_id: str
    role: ActorRole

    def __str__(self) -> str:
        return f"{self.role.value}:{self.actor_id}"
