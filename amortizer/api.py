"""
FastAPI REST API Module

Provides REST API endpoints for loan creation, schedule queries, payment
recording/editing/deletion and balance queries. Runs on port 8090.
"""

from datetime import datetime, timezone, date
from typing import Optional
from fastapi import FastAPI, HTTPException, Depends, Query, status
import uvicorn

from . import __version__
from .config import get_config
from .dates import resolve_date
from .errors import LoanError, NotFoundError, StateError
from .loans import LoanManager, get_schedule, serialize_parameters, serialize_payments
from .logging_config import setup_logging
from .schemas import (
    AllocationModel, BalanceResponse, CreateLoanRequest, EditPaymentRequest,
    RecordPaymentRequest, ScheduleResponse, ScheduleRowModel
)
from .storage import StorageInterface, create_storage


class AmortizerSystem:
    """Storage and loan manager wired together"""

    def __init__(self, storage: Optional[StorageInterface] = None):
        self.storage = storage or create_storage(get_config())
        self.loan_manager = LoanManager(self.storage)


# Global system instance
amortizer_system = AmortizerSystem()


app = FastAPI(
    title="Loan Amortization API",
    description="Amortization schedules reconciled against actual payments",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)


# Dependency to get the system
def get_system() -> AmortizerSystem:
    return amortizer_system


def _http_error(error: LoanError) -> HTTPException:
    """Map a rejected loan operation to an HTTP error"""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, StateError):
        return HTTPException(status_code=409, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


def _allocation_model(allocation) -> AllocationModel:
    return AllocationModel(**allocation.to_dict())


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/")
async def root():
    """Root endpoint with system information"""
    return {
        "system": "Loan Amortization Engine",
        "version": __version__,
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "loans": "/loans"
        }
    }


@app.post("/loans", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    system: AmortizerSystem = Depends(get_system)
):
    """Create a named loan and its initial schedule"""
    try:
        loan = system.loan_manager.create_loan(request.name, request.terms.to_definition())
    except LoanError as e:
        raise _http_error(e)

    return {
        "name": loan.name,
        "installments": len(loan.schedule),
        "level_payment": str(loan.level_payment),
        "message": "Loan created successfully"
    }


@app.get("/loans")
async def list_loans(system: AmortizerSystem = Depends(get_system)):
    """Names of all stored loans"""
    return {"loans": system.loan_manager.list_loans()}


@app.get("/loans/{name}")
async def get_loan(name: str, system: AmortizerSystem = Depends(get_system)):
    """Loan parameters and payments"""
    try:
        loan = system.loan_manager.get_loan(name)
    except LoanError as e:
        raise _http_error(e)

    return {
        "name": loan.name,
        "parameters": serialize_parameters(loan),
        "payments": serialize_payments(loan),
        "level_payment": str(loan.level_payment),
        "paid_off": loan.is_paid_off
    }


@app.delete("/loans/{name}")
async def delete_loan(name: str, system: AmortizerSystem = Depends(get_system)):
    """Remove a stored loan"""
    try:
        system.loan_manager.delete_loan(name)
    except LoanError as e:
        raise _http_error(e)
    return {"message": "Loan deleted successfully"}


@app.get("/loans/{name}/schedule", response_model=ScheduleResponse)
async def get_loan_schedule(
    name: str,
    mode: str = Query("combined", description="scheduled, actual or combined"),
    system: AmortizerSystem = Depends(get_system)
):
    """Amortization schedule in the requested projection"""
    try:
        loan = system.loan_manager.get_loan(name)
        rows = get_schedule(loan, mode)
    except LoanError as e:
        raise _http_error(e)

    return ScheduleResponse(
        loan=name,
        mode=mode.lower(),
        rows=[ScheduleRowModel(**row.to_dict()) for row in rows]
    )


@app.post("/loans/{name}/payments", status_code=status.HTTP_201_CREATED, response_model=AllocationModel)
async def record_loan_payment(
    name: str,
    request: RecordPaymentRequest,
    system: AmortizerSystem = Depends(get_system)
):
    """Record a payment against an installment"""
    try:
        allocation = system.loan_manager.record_payment(
            name, request.sequence_number, request.payment_date, request.amount
        )
    except LoanError as e:
        raise _http_error(e)
    return _allocation_model(allocation)


@app.put("/loans/{name}/payments/{sequence_number}", response_model=AllocationModel)
async def edit_loan_payment(
    name: str,
    sequence_number: int,
    request: EditPaymentRequest,
    system: AmortizerSystem = Depends(get_system)
):
    """Replace the payment recorded for an installment"""
    try:
        allocation = system.loan_manager.edit_payment(
            name, sequence_number, request.payment_date, request.amount
        )
    except LoanError as e:
        raise _http_error(e)
    return _allocation_model(allocation)


@app.delete("/loans/{name}/payments/{sequence_number}")
async def delete_loan_payment(
    name: str,
    sequence_number: int,
    system: AmortizerSystem = Depends(get_system)
):
    """Remove the payment recorded for an installment"""
    try:
        loan = system.loan_manager.delete_payment(name, sequence_number)
    except LoanError as e:
        raise _http_error(e)
    return {"message": "Payment deleted successfully", "payments": len(loan.ledger)}


@app.get("/loans/{name}/balance", response_model=BalanceResponse)
async def get_loan_balance(
    name: str,
    as_of: Optional[str] = Query(None, description="ISO date; defaults to today"),
    system: AmortizerSystem = Depends(get_system)
):
    """Current balance, with interest accrued since the last payment"""
    try:
        as_of_date = resolve_date(as_of, "as_of") if as_of else date.today()
        loan = system.loan_manager.get_loan(name)
        balance = loan.current_balance(as_of_date)
    except LoanError as e:
        raise _http_error(e)

    return BalanceResponse(
        loan=name,
        as_of_date=as_of_date.isoformat(),
        balance=str(balance),
        paid_off=loan.is_paid_off
    )


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    settings = get_config()
    setup_logging(settings.log_level, log_format=settings.log_format, log_file=settings.log_file)
    uvicorn.run(
        "amortizer.api:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=debug,
        log_level="info"
    )
