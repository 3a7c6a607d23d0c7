"""Wizard session model persisted between inbound messages."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from app.core.reservations.drafts import Draft, draft_from_dict, draft_to_dict
from app.core.reservations.errors import SessionCorruptedError
from app.core.reservations.steps import WizardStep


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class WizardSession:
    """
    One in-progress reservation dialogue.

    Exactly one session exists per conversation (``session_id``). Starting
    a new flow overwrites whatever was stored before, and commit or cancel
    deletes it.
    """

    session_id: str
    step: WizardStep
    draft: Draft
    owner_id: Optional[str] = None  # Auditing only

    # Single-use token for the summary currently shown
    confirmation_token: Optional[str] = None

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def mode(self) -> str:
        """'modify' when editing an existing reservation, else 'new'."""
        return "modify" if self.draft.is_modify else "new"

    def touch(self) -> None:
        """Update the last-modified timestamp."""
        self.updated_at = _utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = draft_to_dict(self.draft)
        data["confirmation_token"] = self.confirmation_token
        return {
            "session_id": self.session_id,
            "step": self.step.value,
            "owner_id": self.owner_id,
            "data": data,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    def to_json(self) -> str:
        """Serialize to JSON string for Redis storage."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WizardSession":
        """
        Create from dictionary.

        Raises:
            SessionCorruptedError: If the payload cannot be decoded
        """
        session_id = str(data.get("session_id", "?")) if isinstance(data, dict) else "?"
        try:
            payload = dict(data["data"])
            token = payload.pop("confirmation_token", None)
            return cls(
                session_id=data["session_id"],
                step=WizardStep(data["step"]),
                draft=draft_from_dict(payload),
                owner_id=data.get("owner_id"),
                confirmation_token=token,
                created_at=datetime.fromisoformat(data["created_at"]),
                updated_at=datetime.fromisoformat(data["updated_at"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SessionCorruptedError(session_id, str(e)) from e

    @classmethod
    def from_json(cls, json_str: str) -> "WizardSession":
        """Deserialize from JSON string."""
        try:
            data = json.loads(json_str)
        except (TypeError, ValueError) as e:
            raise SessionCorruptedError("?", f"invalid JSON: {e}") from e
        return cls.from_dict(data)
