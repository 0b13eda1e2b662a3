"""Balance calculator for a single grant.

Derived figures are recomputed from disbursement rows on every read and
never stored.  All arithmetic stays in ``Decimal``; rounding happens only
when a figure is formatted.
"""
from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from decimal import Decimal

from ssgms.exceptions import ValidationError

ZERO = Decimal("0")
CENT = Decimal("0.01")


@dataclasses.dataclass(frozen=True)
class GrantBalance:
    amount_approved: Decimal
    total_disbursed: Decimal
    remaining_balance: Decimal

    def to_dict(self) -> dict[str, float]:
        return {
            "amount_approved": float(self.amount_approved),
            "total_disbursed": float(self.total_disbursed),
            "remaining_balance": float(self.remaining_balance),
        }


def compute_balance(amount_approved: Decimal, amounts: Iterable[Decimal]) -> GrantBalance:
    """Sum *amounts* and subtract from *amount_approved*.

    A negative remaining balance is returned as is: it means the
    no-overspend rule was bypassed upstream and must stay visible.
    """
    total = sum((Decimal(a) for a in amounts), ZERO)
    approved = Decimal(amount_approved)
    return GrantBalance(
        amount_approved=approved,
        total_disbursed=total,
        remaining_balance=approved - total,
    )


def validate_disbursement_amount(amount: Decimal, remaining_balance: Decimal) -> Decimal:
    """Reject a candidate disbursement before anything is written.

    This is checked against the balance as last read; two concurrent
    creations can both pass it.
    """
    amount = Decimal(amount)
    if amount <= ZERO:
        raise ValidationError("Disbursement amount must be greater than zero")
    if amount != amount.quantize(CENT):
        raise ValidationError("Disbursement amount cannot have more than 2 decimal places")
    if amount > remaining_balance:
        raise ValidationError(
            f"Amount cannot exceed remaining balance of {Decimal(remaining_balance):.2f}"
        )
    return amount
