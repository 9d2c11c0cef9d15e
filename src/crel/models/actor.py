"""Actor identity attached to evaluations and ledger entries."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ActorIdentity(BaseModel):
    """Who performed an action.

    Attributes:
        actor_id: Stable identifier of the user or service account.
        name: Display name captured at the time of the action.
        position: Optional job title / position.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    actor_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    position: str | None = None
