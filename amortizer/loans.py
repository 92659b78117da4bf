"""
Loan Module

The Loan aggregate (terms, original schedule, payment ledger and the current
recalculated schedule) and the operations collaborators drive it through:
creation, schedule queries, payment record/edit/delete, balance queries and
serialization. LoanManager keeps named loans in a storage backend.
"""

from decimal import Decimal
from datetime import date
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple, Union
import threading
import logging

from .config import get_config
from .dates import resolve_date
from .errors import LoanError, NotFoundError, SequenceError, StateError, ValidationError
from .ledger import ActualPayment, PaymentLedger
from .logging_config import log_action
from .recalculator import AllocationResult, RecalculationResult, Recalculator
from .schedule import Schedule, build_schedule
from .storage import StorageInterface
from .terms import LoanDefinition
from .views import ScheduleMode, ScheduleRow, ScheduleView

logger = logging.getLogger("amortizer.loans")


class Loan:
    """
    Loan aggregate root

    Only record/edit/delete change a loan, and each either replaces the
    ledger, schedule and allocations together or raises and changes nothing.
    The most recent replaced schedules are kept in `history`, oldest first,
    up to `history_limit` of them.
    """

    def __init__(self, definition: LoanDefinition, name: Optional[str] = None,
                 history_limit: Optional[int] = None):
        self.definition = definition
        self.name = name
        self.ledger = PaymentLedger()
        self.base_schedule: Optional[Schedule] = None
        self.schedule: Optional[Schedule] = None
        self.allocations: Tuple[AllocationResult, ...] = ()
        self.history: List[Schedule] = []
        self.history_limit = get_config().history_limit if history_limit is None else history_limit
        self._recalculator: Optional[Recalculator] = None
        self._lock = threading.RLock()

    def initialize(self) -> 'Loan':
        """Build the original schedule from the loan terms"""
        with self._lock:
            recalculator = Recalculator(self.definition)
            self.base_schedule = build_schedule(
                principal=self.definition.principal,
                rate=recalculator.rate,
                count=self.definition.installment_count,
                first_payment_date=self.definition.first_payment_date,
                frequency=self.definition.payment_frequency,
                precision=self.definition.precision
            )
            self._recalculator = recalculator
            self.schedule = self.base_schedule
            self.allocations = ()
            self.ledger = PaymentLedger()
            self.history = []
            return self

    @property
    def is_initialized(self) -> bool:
        return self.base_schedule is not None and self._recalculator is not None

    @property
    def level_payment(self) -> Decimal:
        self._require_initialized()
        return self._recalculator.payment_amount

    @property
    def is_paid_off(self) -> bool:
        """True once a payment has brought the balance to exactly zero"""
        self._require_initialized()
        return bool(self.allocations) and self.allocations[-1].is_payoff and not self.schedule.suffix

    def view(self) -> ScheduleView:
        self._require_initialized()
        return ScheduleView(
            self.definition,
            self.base_schedule,
            RecalculationResult(schedule=self.schedule, allocations=self.allocations)
        )

    def allocation_for(self, sequence_number: int) -> Optional[AllocationResult]:
        for allocation in self.allocations:
            if allocation.sequence_number == sequence_number:
                return allocation
        return None

    def record_payment(self, sequence_number: int, payment_date: Any, amount: Any) -> AllocationResult:
        """
        Record a new payment against an installment

        Raises:
            ValidationError: Non-positive amount or unusable date
            SequenceError: Installment outside the current schedule, or already paid
        """
        with self._lock, self._rejections("record_payment", sequence_number):
            self._require_initialized()
            candidate = self.ledger.copy()
            payment = candidate.record(sequence_number, payment_date, amount)
            if payment.sequence_number in self.ledger:
                raise SequenceError(
                    f"Installment {payment.sequence_number} already has a payment; edit it instead"
                )
            self._check_payment(payment)
            self._commit(candidate, "record_payment", payment.sequence_number)
            return self.allocation_for(payment.sequence_number)

    def edit_payment(self, sequence_number: int, payment_date: Any, amount: Any) -> AllocationResult:
        """Replace an existing payment and replay"""
        with self._lock, self._rejections("edit_payment", sequence_number):
            self._require_initialized()
            if sequence_number not in self.ledger:
                raise NotFoundError(f"No payment recorded for installment {sequence_number}")
            candidate = self.ledger.copy()
            payment = candidate.record(sequence_number, payment_date, amount)
            self._check_payment(payment)
            self._commit(candidate, "edit_payment", payment.sequence_number)
            return self.allocation_for(payment.sequence_number)

    def delete_payment(self, sequence_number: int) -> 'Loan':
        """Remove a payment; everything is replayed as if it had never been made"""
        with self._lock, self._rejections("delete_payment", sequence_number):
            self._require_initialized()
            candidate = self.ledger.copy()
            candidate.delete(sequence_number)
            self._commit(candidate, "delete_payment", sequence_number)
            return self

    def replay(self, ledger: PaymentLedger) -> RecalculationResult:
        """Replace the whole ledger, e.g. when restoring a stored loan"""
        with self._lock, self._rejections("replay", None):
            self._require_initialized()
            return self._commit(ledger.copy(), "replay", None)

    def current_balance(self, as_of_date: Optional[date] = None) -> Decimal:
        return self.view().current_balance(as_of_date or date.today())

    def rows(self, mode: ScheduleMode = ScheduleMode.COMBINED) -> List[ScheduleRow]:
        return self.view().rows(mode)

    @contextmanager
    def _rejections(self, action: str, sequence_number: Optional[int]):
        """Log a rejected mutation at WARNING and re-raise it"""
        try:
            yield
        except LoanError as e:
            log_action(logger, "warning", f"{action} rejected: {e}", loan=self.name,
                       action=action, sequence_number=sequence_number)
            raise

    def _check_payment(self, payment: ActualPayment) -> None:
        if self.schedule.get(payment.sequence_number) is None:
            raise SequenceError(
                f"Installment {payment.sequence_number} is outside the current schedule "
                f"(1..{len(self.schedule)})"
            )
        if payment.payment_date < self.definition.origination_date:
            raise ValidationError(
                f"Payment date {payment.payment_date.isoformat()} is before the loan's "
                f"origination date {self.definition.origination_date.isoformat()}"
            )

    def _commit(self, ledger: PaymentLedger, action: str, sequence_number: Optional[int]) -> RecalculationResult:
        """Replay `ledger` and swap in the results; nothing changes if replay fails"""
        result = self._recalculator.replay(self.base_schedule, ledger)

        self.history.append(self.schedule)
        if len(self.history) > self.history_limit:
            del self.history[:len(self.history) - self.history_limit]
        self.ledger = ledger
        self.schedule = result.schedule
        self.allocations = result.allocations

        log_action(
            logger, "info", f"{action} applied; {len(ledger)} payments on ledger",
            loan=self.name, action=action, sequence_number=sequence_number,
            details={"installments": len(result.schedule), "paid_off": result.is_paid_off}
        )
        return result

    def _require_initialized(self) -> None:
        if not self.is_initialized:
            raise StateError("Loan has no schedule; create it with create_loan()")


def create_loan(definition: Union[LoanDefinition, Dict[str, Any]], name: Optional[str] = None) -> Loan:
    """Create a loan and build its initial schedule"""
    if isinstance(definition, dict):
        definition = LoanDefinition.from_dict(definition)
    if not isinstance(definition, LoanDefinition):
        raise ValidationError(f"Expected a LoanDefinition, got {type(definition).__name__}")
    loan = Loan(definition, name=name).initialize()
    log_action(
        logger, "info", "Loan created", loan=name, action="create_loan",
        details={
            "principal": str(definition.principal),
            "installments": len(loan.schedule),
            "level_payment": str(loan.level_payment)
        }
    )
    return loan


def _coerce_mode(mode: Union[ScheduleMode, str]) -> ScheduleMode:
    if isinstance(mode, ScheduleMode):
        return mode
    try:
        return ScheduleMode(str(mode).lower())
    except ValueError:
        raise ValidationError(f"Unknown schedule mode {mode!r} (expected scheduled, actual or combined)")


def get_schedule(loan: Loan, mode: Union[ScheduleMode, str] = ScheduleMode.COMBINED) -> List[ScheduleRow]:
    """Ordered schedule rows for the requested projection"""
    return loan.rows(_coerce_mode(mode))


def record_payment(loan: Loan, sequence_number: int, payment_date: Any, amount: Any) -> AllocationResult:
    return loan.record_payment(sequence_number, payment_date, amount)


def edit_payment(loan: Loan, sequence_number: int, payment_date: Any, amount: Any) -> AllocationResult:
    return loan.edit_payment(sequence_number, payment_date, amount)


def delete_payment(loan: Loan, sequence_number: int) -> Loan:
    return loan.delete_payment(sequence_number)


def get_current_balance(loan: Loan, as_of_date: Optional[Any] = None) -> Decimal:
    """Balance as of a date (today by default)"""
    if as_of_date is not None:
        as_of_date = resolve_date(as_of_date, "as_of_date")
    return loan.current_balance(as_of_date)


def serialize_parameters(loan: Loan) -> Dict[str, Any]:
    """Structured LoanDefinition record"""
    return loan.definition.to_dict()


def serialize_payments(loan: Loan) -> Dict[str, Any]:
    """Structured record of the current scheduled rows and the actual payments"""
    loan._require_initialized()
    return {
        'scheduled': [installment.to_dict() for installment in loan.schedule.installments],
        'actual': [allocation.to_dict() for allocation in loan.allocations]
    }


def load_loan(parameters: Dict[str, Any], payments: Optional[Dict[str, Any]] = None,
              name: Optional[str] = None) -> Loan:
    """Rebuild a loan from its serialized records by replaying the actual payments"""
    loan = create_loan(LoanDefinition.from_dict(parameters), name=name)
    entries = (payments or {}).get('actual', [])
    if entries:
        loan.replay(PaymentLedger([ActualPayment.from_dict(entry) for entry in entries]))
    return loan


class LoanManager:
    """
    Manages named loans over a storage backend
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.parameters_table = "loan_parameters"
        self.payments_table = "loan_payments"
        self._loans: Dict[str, Loan] = {}
        self._lock = threading.RLock()

    def create_loan(self, name: str, definition: Union[LoanDefinition, Dict[str, Any]]) -> Loan:
        """Create and persist a new named loan"""
        if not name or not name.strip():
            raise ValidationError("Loan name must not be empty")
        with self._lock:
            if name in self._loans or self.storage.exists(self.parameters_table, name):
                raise ValidationError(f"Loan {name!r} already exists")
            loan = create_loan(definition, name=name)
            self._save(loan)
            self._loans[name] = loan
            return loan

    def get_loan(self, name: str) -> Loan:
        """Loan by name, loading it from storage on first access"""
        with self._lock:
            loan = self._loans.get(name)
            if loan is not None:
                return loan

            parameters = self.storage.load(self.parameters_table, name)
            if parameters is None:
                raise NotFoundError(f"Loan {name!r} not found")
            payments = self.storage.load(self.payments_table, name)
            loan = load_loan(parameters, payments, name=name)
            self._loans[name] = loan
            return loan

    def list_loans(self) -> List[str]:
        return self.storage.list_ids(self.parameters_table)

    def delete_loan(self, name: str) -> None:
        with self._lock:
            with self.storage.atomic():
                found = self.storage.delete(self.parameters_table, name)
                self.storage.delete(self.payments_table, name)
            self._loans.pop(name, None)
            if not found:
                raise NotFoundError(f"Loan {name!r} not found")
            log_action(logger, "info", "Loan deleted", loan=name, action="delete_loan")

    def record_payment(self, name: str, sequence_number: int, payment_date: Any, amount: Any) -> AllocationResult:
        loan = self.get_loan(name)
        with loan._lock:
            allocation = loan.record_payment(sequence_number, payment_date, amount)
            self._persist(loan)
            return allocation

    def edit_payment(self, name: str, sequence_number: int, payment_date: Any, amount: Any) -> AllocationResult:
        loan = self.get_loan(name)
        with loan._lock:
            allocation = loan.edit_payment(sequence_number, payment_date, amount)
            self._persist(loan)
            return allocation

    def delete_payment(self, name: str, sequence_number: int) -> Loan:
        loan = self.get_loan(name)
        with loan._lock:
            loan.delete_payment(sequence_number)
            self._persist(loan)
            return loan

    def _persist(self, loan: Loan) -> None:
        """Save a mutated loan; when that fails the cached copy is dropped and reloaded from storage"""
        try:
            self._save(loan)
        except Exception:
            with self._lock:
                self._loans.pop(loan.name, None)
            log_action(logger, "error", "Loan could not be saved; cached copy discarded",
                       loan=loan.name, action="save_loan")
            raise

    def _save(self, loan: Loan) -> None:
        """Persist parameters and payments together"""
        with self.storage.atomic():
            self.storage.save(self.parameters_table, loan.name, serialize_parameters(loan))
            self.storage.save(self.payments_table, loan.name, serialize_payments(loan))
