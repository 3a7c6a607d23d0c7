"""
Typed reservation drafts.

A draft grows one variant at a time as the wizard collects data. Each
variant carries exactly the fields that are valid once its step has been
accepted, so a ``RoomDraft`` always has dates and a room, and a
``PricedDraft`` is complete enough to commit.

    Draft -> NamedDraft -> CheckInDraft -> DatedDraft -> RoomDraft
          -> AdultsDraft -> GuestsDraft -> PricedDraft
"""

from dataclasses import dataclass, fields, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Type, TypeVar

from app.core.reservations.steps import WizardStep


@dataclass(frozen=True, kw_only=True)
class Draft:
    """Data known before any step is accepted."""

    property_id: str
    edit_target_id: Optional[str] = None  # Set in modify flows
    notes: Optional[str] = None

    @property
    def is_modify(self) -> bool:
        return self.edit_target_id is not None


@dataclass(frozen=True, kw_only=True)
class NamedDraft(Draft):
    guest_name: str


@dataclass(frozen=True, kw_only=True)
class CheckInDraft(NamedDraft):
    check_in: date


@dataclass(frozen=True, kw_only=True)
class DatedDraft(CheckInDraft):
    check_out: date

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days


@dataclass(frozen=True, kw_only=True)
class RoomDraft(DatedDraft):
    room_no: str
    room_type: Optional[str] = None
    capacity: int


@dataclass(frozen=True, kw_only=True)
class AdultsDraft(RoomDraft):
    adults: int


@dataclass(frozen=True, kw_only=True)
class GuestsDraft(AdultsDraft):
    children: int

    @property
    def total_guests(self) -> int:
        return self.adults + self.children


@dataclass(frozen=True, kw_only=True)
class PricedDraft(GuestsDraft):
    amount: Decimal


D = TypeVar("D", bound=Draft)

# Variant order, paired with the step that produces the next variant
_CHAIN: list[tuple[Type[Draft], WizardStep]] = [
    (NamedDraft, WizardStep.GUEST_NAME),
    (CheckInDraft, WizardStep.CHECK_IN),
    (DatedDraft, WizardStep.CHECK_OUT),
    (RoomDraft, WizardStep.ROOM),
    (AdultsDraft, WizardStep.ADULTS),
    (GuestsDraft, WizardStep.CHILDREN),
    (PricedDraft, WizardStep.AMOUNT),
]

DRAFT_TYPES: dict[str, Type[Draft]] = {
    cls.__name__: cls for cls in [Draft] + [c for c, _ in _CHAIN]
}


def extend(draft: Draft, target: Type[D], **values: Any) -> D:
    """
    Move a draft to a richer variant, or update it in place.

    If the draft already is (or is richer than) ``target``, the given
    fields are replaced and every later field is kept. This is what lets a
    rollback or a modify flow change one field without losing the rest.

    Args:
        draft: Current draft
        target: Variant that ``values`` belong to
        **values: Fields introduced or changed by the accepted step

    Returns:
        The updated draft

    Raises:
        ValueError: If ``target`` is not reachable from the draft in one step
    """
    if isinstance(draft, target):
        return replace(draft, **values)

    if not issubclass(target, type(draft)):
        raise ValueError(
            f"Cannot extend {type(draft).__name__} to {target.__name__}"
        )

    current = {f.name: getattr(draft, f.name) for f in fields(draft)}
    current.update(values)
    try:
        return target(**current)
    except TypeError as e:
        raise ValueError(
            f"Cannot extend {type(draft).__name__} to {target.__name__}: {e}"
        ) from e


def next_missing_step(draft: Draft) -> WizardStep:
    """Return the first step whose data the draft does not have yet."""
    for variant, step in _CHAIN:
        if not isinstance(draft, variant):
            return step
    return WizardStep.CONFIRM


def draft_to_dict(draft: Draft) -> dict[str, Any]:
    """Serialize a draft to a JSON-safe dict tagged with its variant."""
    data: dict[str, Any] = {"kind": type(draft).__name__}
    for f in fields(draft):
        value = getattr(draft, f.name)
        if isinstance(value, date):
            value = value.isoformat()
        elif isinstance(value, Decimal):
            value = str(value)
        data[f.name] = value
    return data


_CONVERTERS = {
    "check_in": date.fromisoformat,
    "check_out": date.fromisoformat,
    "amount": Decimal,
    "capacity": int,
    "adults": int,
    "children": int,
}


def draft_from_dict(data: dict[str, Any]) -> Draft:
    """
    Rebuild a draft from ``draft_to_dict`` output.

    Raises:
        ValueError: If the kind is unknown or a field is missing/invalid
    """
    kind = data.get("kind")
    cls = DRAFT_TYPES.get(kind)
    if cls is None:
        raise ValueError(f"Unknown draft kind: {kind!r}")

    values: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        raw = data[f.name]
        converter = _CONVERTERS.get(f.name)
        if converter is not None and raw is not None:
            try:
                raw = converter(raw)
            except (InvalidOperation, TypeError, ValueError) as e:
                raise ValueError(f"Invalid value for {f.name}: {raw!r}") from e
        values[f.name] = raw

    try:
        return cls(**values)
    except TypeError as e:
        raise ValueError(f"Incomplete {kind} draft: {e}") from e
