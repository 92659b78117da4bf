"""
Payment Ledger Module

Actual payments keyed by the installment they settle. At most one live
entry exists per sequence number; recording again replaces it.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional
import logging

from .dates import resolve_date
from .errors import NotFoundError, SequenceError, ValidationError
from .precision import ZERO, to_decimal

logger = logging.getLogger("amortizer.ledger")


@dataclass(frozen=True)
class ActualPayment:
    """Record of a payment made against one installment slot"""
    sequence_number: int
    payment_date: date
    amount: Decimal

    def __post_init__(self):
        if isinstance(self.sequence_number, bool) or not isinstance(self.sequence_number, int):
            raise ValidationError(f"sequence_number must be an integer, got {self.sequence_number!r}")
        if self.sequence_number < 1:
            raise SequenceError(f"sequence_number must be at least 1, got {self.sequence_number}")

        object.__setattr__(self, 'payment_date', resolve_date(self.payment_date, "payment_date"))
        object.__setattr__(self, 'amount', to_decimal(self.amount, "amount"))

        if self.amount <= ZERO:
            raise ValidationError(f"Payment amount must be positive, got {self.amount}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sequence_number': self.sequence_number,
            'payment_date': self.payment_date.isoformat(),
            'amount': str(self.amount)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActualPayment':
        try:
            return cls(
                sequence_number=data['sequence_number'],
                payment_date=data['payment_date'],
                amount=data['amount']
            )
        except KeyError as e:
            raise ValidationError(f"Payment record missing field {e.args[0]!r}")


class PaymentLedger:
    """Actual payments, always available in ascending sequence order"""

    def __init__(self, payments: Optional[List[ActualPayment]] = None):
        self._entries: Dict[int, ActualPayment] = {}
        for payment in payments or []:
            self._entries[payment.sequence_number] = payment

    def record(self, sequence_number: int, payment_date: Any, amount: Any) -> ActualPayment:
        """
        Insert or replace the payment for an installment

        Args:
            sequence_number: Installment the payment settles
            payment_date: Date (or ISO string) the payment was made
            amount: Amount paid, must be positive

        Returns:
            The stored ActualPayment
        """
        payment = ActualPayment(
            sequence_number=sequence_number,
            payment_date=payment_date,
            amount=amount
        )
        replaced = payment.sequence_number in self._entries
        self._entries[payment.sequence_number] = payment
        logger.debug(
            f"{'Replaced' if replaced else 'Recorded'} payment {payment.amount} "
            f"on {payment.payment_date.isoformat()} for installment {payment.sequence_number}"
        )
        return payment

    def delete(self, sequence_number: int) -> ActualPayment:
        """Remove the payment for an installment; the slot reverts to scheduled status"""
        if sequence_number not in self._entries:
            raise NotFoundError(f"No payment recorded for installment {sequence_number}")
        payment = self._entries.pop(sequence_number)
        logger.debug(f"Deleted payment for installment {sequence_number}")
        return payment

    def get(self, sequence_number: int) -> Optional[ActualPayment]:
        return self._entries.get(sequence_number)

    def has_payment(self, sequence_number: int) -> bool:
        return sequence_number in self._entries

    @property
    def entries(self) -> List[ActualPayment]:
        """Payments sorted by sequence number regardless of insertion order"""
        return [self._entries[key] for key in sorted(self._entries)]

    @property
    def latest(self) -> Optional[ActualPayment]:
        """Payment with the highest sequence number"""
        if not self._entries:
            return None
        return self._entries[max(self._entries)]

    def copy(self) -> 'PaymentLedger':
        return PaymentLedger(list(self._entries.values()))

    def to_list(self) -> List[Dict[str, Any]]:
        return [payment.to_dict() for payment in self.entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ActualPayment]:
        return iter(self.entries)

    def __contains__(self, sequence_number: int) -> bool:
        return sequence_number in self._entries
