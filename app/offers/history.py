"""
Typed negotiation history.

Every history row stores its old and new values as JSON. This module
owns that encoding: each negotiable field has its own change type with
a concrete value type, and ``parse_entry`` turns a stored row back into
the matching change.

Change types:
    PriceChange: Decimal
    DateChange: datetime.date
    TimeChange: "HH:MM" string
    TextChange: free text (materials, scope)
    ConfirmationChange: (seeker_confirmed, provider_confirmed) pair

Usage:
    from offers.history import PriceChange, record_change

    record_change(offer, PriceChange(old=None, new=Decimal("1000")), user)
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, ClassVar, Union

from offers.models import HistoryField, NegotiationHistoryEntry

if TYPE_CHECKING:
    from authentication.models import User
    from offers.models import Offer


@dataclass(frozen=True)
class PriceChange:
    field: ClassVar[str] = HistoryField.PRICE
    old: Decimal | None
    new: Decimal | None

    @staticmethod
    def encode(value: Decimal | None) -> str | None:
        return None if value is None else str(value)

    @staticmethod
    def decode(raw) -> Decimal | None:
        return None if raw is None else Decimal(str(raw))


@dataclass(frozen=True)
class DateChange:
    field: ClassVar[str] = HistoryField.DATE
    old: datetime.date | None
    new: datetime.date | None

    @staticmethod
    def encode(value: datetime.date | None) -> str | None:
        return None if value is None else value.isoformat()

    @staticmethod
    def decode(raw) -> datetime.date | None:
        return None if raw is None else datetime.date.fromisoformat(raw)


@dataclass(frozen=True)
class TimeChange:
    field: ClassVar[str] = HistoryField.TIME
    old: str
    new: str

    @staticmethod
    def encode(value: str) -> str:
        return value or ""

    @staticmethod
    def decode(raw) -> str:
        return raw or ""


@dataclass(frozen=True)
class TextChange:
    """Materials or scope edit; ``name`` says which."""

    name: str
    old: str
    new: str

    @property
    def field(self) -> str:
        return self.name

    @staticmethod
    def encode(value: str) -> str:
        return value or ""

    @staticmethod
    def decode(raw) -> str:
        return raw or ""


@dataclass(frozen=True)
class ConfirmationState:
    seeker_confirmed: bool
    provider_confirmed: bool

    def to_json(self) -> dict[str, bool]:
        return {
            "seeker_confirmed": self.seeker_confirmed,
            "provider_confirmed": self.provider_confirmed,
        }

    @classmethod
    def from_json(cls, raw) -> ConfirmationState:
        raw = raw or {}
        return cls(
            seeker_confirmed=bool(raw.get("seeker_confirmed")),
            provider_confirmed=bool(raw.get("provider_confirmed")),
        )

    @classmethod
    def of(cls, offer: Offer) -> ConfirmationState:
        return cls(offer.seeker_confirmed, offer.provider_confirmed)


@dataclass(frozen=True)
class ConfirmationChange:
    field: ClassVar[str] = HistoryField.CONFIRMATION
    old: ConfirmationState
    new: ConfirmationState

    @staticmethod
    def encode(value: ConfirmationState) -> dict[str, bool]:
        return value.to_json()

    @staticmethod
    def decode(raw) -> ConfirmationState:
        return ConfirmationState.from_json(raw)


NegotiationChange = Union[PriceChange, DateChange, TimeChange, TextChange, ConfirmationChange]


@dataclass(frozen=True)
class HistoryRecord:
    """A parsed history row."""

    change: NegotiationChange
    changed_by_id: int | None
    timestamp: datetime.datetime
    note: str = ""

    def to_dict(self) -> dict:
        change = self.change
        return {
            "field": change.field,
            "old_value": change.encode(change.old),
            "new_value": change.encode(change.new),
            "changed_by": self.changed_by_id,
            "timestamp": self.timestamp.isoformat(),
            "note": self.note,
        }


def term_change(name: str, old, new) -> NegotiationChange:
    """Build the change type for a negotiation term by field name."""
    if name == HistoryField.PRICE:
        return PriceChange(old=old, new=new)
    if name == HistoryField.DATE:
        return DateChange(old=old, new=new)
    if name == HistoryField.TIME:
        return TimeChange(old=old or "", new=new or "")
    if name in (HistoryField.MATERIALS, HistoryField.SCOPE):
        return TextChange(name=name, old=old or "", new=new or "")
    raise ValueError(f"Not a negotiation term: {name}")


def record_change(
    offer: Offer,
    change: NegotiationChange,
    changed_by: User,
    note: str = "",
) -> NegotiationHistoryEntry:
    """Append one entry to the offer's history."""
    return NegotiationHistoryEntry.objects.create(
        offer=offer,
        field=change.field,
        old_value=change.encode(change.old),
        new_value=change.encode(change.new),
        changed_by=changed_by,
        note=note,
    )


def parse_entry(entry: NegotiationHistoryEntry) -> HistoryRecord:
    """Decode a stored row into its typed change."""
    field = entry.field
    if field == HistoryField.CONFIRMATION:
        change: NegotiationChange = ConfirmationChange(
            old=ConfirmationChange.decode(entry.old_value),
            new=ConfirmationChange.decode(entry.new_value),
        )
    elif field == HistoryField.PRICE:
        change = PriceChange(old=PriceChange.decode(entry.old_value), new=PriceChange.decode(entry.new_value))
    elif field == HistoryField.DATE:
        change = DateChange(old=DateChange.decode(entry.old_value), new=DateChange.decode(entry.new_value))
    elif field == HistoryField.TIME:
        change = TimeChange(old=TimeChange.decode(entry.old_value), new=TimeChange.decode(entry.new_value))
    else:
        change = TextChange(
            name=field,
            old=TextChange.decode(entry.old_value),
            new=TextChange.decode(entry.new_value),
        )

    return HistoryRecord(
        change=change,
        changed_by_id=entry.changed_by_id,
        timestamp=entry.created_at,
        note=entry.note,
    )


def load_history(offer: Offer) -> list[HistoryRecord]:
    """The offer's history, oldest first."""
    return [parse_entry(entry) for entry in offer.history_entries.order_by("created_at", "id")]
