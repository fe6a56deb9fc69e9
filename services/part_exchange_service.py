"""
Part-exchange netting.

Deals carry trade-ins in two shapes while the data migration is in flight: a
legacy single part exchange and a newer list. Both are honored and folded into
one net figure; dropping either source silently misstates the balance.

TODO: retire the legacy `Deal.part_exchange` field once every stored deal has
been migrated to `part_exchanges`.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Optional

from domain.deal import Deal, PartExchange
from domain.money import ZERO, round_money, to_decimal


def all_part_exchanges(legacy: Optional[PartExchange], part_exchanges: Iterable[PartExchange]) -> List[PartExchange]:
    """Legacy entry first (if present), then the list entries."""

    combined: List[PartExchange] = []
    if legacy is not None:
        combined.append(legacy)
    combined.extend(part_exchanges)
    return combined


def net_part_exchange_value(legacy: Optional[PartExchange], part_exchanges: Iterable[PartExchange]) -> Decimal:
    """Σ (allowance − settlement) across the legacy field and every list entry."""

    total = ZERO
    for px in all_part_exchanges(legacy, part_exchanges):
        total += to_decimal(px.allowance) - to_decimal(px.settlement)
    return round_money(total)


def deal_part_exchange_value(deal: Deal) -> Decimal:
    return net_part_exchange_value(deal.part_exchange, deal.part_exchanges)


__all__ = ["all_part_exchanges", "deal_part_exchange_value", "net_part_exchange_value"]
