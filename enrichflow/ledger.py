"""Per-run field bookkeeping: what is outstanding, who resolved what, spend."""

from __future__ import annotations

from typing import Iterable

from .models import LedgerEntry

# Provider name recorded for fields the entity already held
EXISTING = "existing"


def is_empty_value(value) -> bool:
    """True for values that don't count as 'already filled'."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


class FieldLedger:
    """Tracks resolution and cost for one run.

    Pure bookkeeping: no I/O, and nothing here decides which provider to
    call next.
    """

    def __init__(
        self,
        fields: Iterable[str],
        existing_values: dict | None = None,
        max_cost_cents: int = 0,
    ) -> None:
        if max_cost_cents < 0:
            raise ValueError("max_cost_cents must be >= 0")
        self._fields = list(fields)
        self._entries: dict[str, LedgerEntry] = {}
        self.max_cost_cents = max_cost_cents
        self.spent_cents = 0

        existing_values = existing_values or {}
        for name in self._fields:
            if not is_empty_value(existing_values.get(name)):
                self._entries[name] = LedgerEntry(name, EXISTING, 0)

    # -- queries -----------------------------------------------------------

    @property
    def fields(self) -> list[str]:
        return list(self._fields)

    @property
    def outstanding(self) -> tuple[str, ...]:
        """Unresolved fields in plan order."""
        return tuple(f for f in self._fields if f not in self._entries)

    @property
    def is_complete(self) -> bool:
        return not self.outstanding

    @property
    def resolved(self) -> dict[str, LedgerEntry]:
        return dict(self._entries)

    @property
    def prefilled(self) -> list[str]:
        return [f for f, e in self._entries.items() if e.provider == EXISTING]

    @property
    def remaining_cents(self) -> int:
        return self.max_cost_cents - self.spent_cents

    def outstanding_for(self, capable_fields: Iterable[str]) -> list[str]:
        """Outstanding fields a provider can supply, in plan order."""
        capable = set(capable_fields)
        return [f for f in self.outstanding if f in capable]

    def can_afford(self, cost_cents: int) -> bool:
        return self.spent_cents + cost_cents <= self.max_cost_cents

    # -- updates -----------------------------------------------------------

    def mark_resolved(
        self,
        field_name: str,
        provider: str,
        cost_cents: int = 0,
        *,
        confidence: float | None = None,
        source_url: str = "",
    ) -> bool:
        """Record *field_name* as resolved by *provider*.

        First resolution wins: returns False and changes nothing when the
        field is already resolved.  Fields outside the plan are ignored.
        """
        if field_name not in self._fields or field_name in self._entries:
            return False
        self._entries[field_name] = LedgerEntry(
            field_name, provider, cost_cents, confidence, source_url,
        )
        return True

    def debit(self, cost_cents: int) -> None:
        """Add *cost_cents* to the run's spend."""
        if cost_cents < 0:
            raise ValueError("cost must be >= 0")
        if not self.can_afford(cost_cents):
            raise ValueError(
                f"Debit of {cost_cents} would exceed ceiling "
                f"({self.spent_cents}/{self.max_cost_cents})"
            )
        self.spent_cents += cost_cents

    def resolved_by_provider(self) -> dict[str, str]:
        """Field -> provider for fields resolved during the run (not pre-filled)."""
        return {
            f: e.provider for f, e in self._entries.items() if e.provider != EXISTING
        }

    def provenance(self) -> list[dict]:
        """Where each field resolved during the run came from, in resolution order."""
        return [
            {
                "field": e.field_name,
                "provider": e.provider,
                "confidence": e.confidence,
                "source_url": e.source_url,
            }
            for e in self._entries.values()
            if e.provider != EXISTING
        ]
