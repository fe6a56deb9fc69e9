"""
Payment ledger rollups for a deal.

Refunded (reversed) payments are excluded. Each remaining payment lands in
exactly one bucket, so total_paid == deposit_paid + finance_advance + other_payments.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from domain.deal import Payment, PaymentType
from domain.money import ZERO, round_money, to_decimal

# Balances within a penny of zero count as settled
PAID_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class PaymentSummary:
    total_paid: Decimal
    deposit_paid: Decimal
    finance_advance: Decimal
    other_payments: Decimal


def summarize_payments(payments: Iterable[Payment]) -> PaymentSummary:
    deposit = ZERO
    finance = ZERO
    other = ZERO

    for payment in payments:
        if payment.is_refunded:
            continue
        amount = to_decimal(payment.amount)
        if payment.type is PaymentType.DEPOSIT:
            deposit += amount
        elif payment.type is PaymentType.FINANCE_ADVANCE:
            finance += amount
        else:
            other += amount

    return PaymentSummary(
        total_paid=round_money(deposit + finance + other),
        deposit_paid=round_money(deposit),
        finance_advance=round_money(finance),
        other_payments=round_money(other),
    )


__all__ = ["PAID_TOLERANCE", "PaymentSummary", "summarize_payments"]
