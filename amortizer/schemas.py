"""
Pydantic schemas for API requests and responses
"""

from typing import List
from pydantic import BaseModel, Field

from .terms import LoanDefinition


class LoanDefinitionModel(BaseModel):
    principal: str = Field(..., description="Decimal amount as string")
    term_years: int
    nominal_annual_rate: str = Field(..., description="Annual rate in percent, as string (e.g. \"7.5\")")
    payment_frequency: str = Field("monthly", description="weekly, biweekly, semimonthly, monthly, quarterly, semiannual, annual")
    compounding_frequency: str = Field("monthly", description="daily or any payment frequency")
    origination_date: str  # ISO date string
    first_payment_date: str  # ISO date string
    precision: int = Field(2, description="Decimal places amounts are rounded to")

    def to_definition(self) -> LoanDefinition:
        return LoanDefinition(
            principal=self.principal,
            term_years=self.term_years,
            nominal_annual_rate=self.nominal_annual_rate,
            payment_frequency=self.payment_frequency,
            compounding_frequency=self.compounding_frequency,
            origination_date=self.origination_date,
            first_payment_date=self.first_payment_date,
            precision=self.precision
        )


class CreateLoanRequest(BaseModel):
    name: str
    terms: LoanDefinitionModel


class RecordPaymentRequest(BaseModel):
    sequence_number: int
    payment_date: str  # ISO date string
    amount: str = Field(..., description="Decimal amount as string")


class EditPaymentRequest(BaseModel):
    payment_date: str  # ISO date string
    amount: str = Field(..., description="Decimal amount as string")


class AllocationModel(BaseModel):
    sequence_number: int
    payment_date: str
    amount: str
    principal_paid: str
    interest_paid: str
    resulting_balance: str
    date_shift: int
    excess: str = "0"


class ScheduleRowModel(BaseModel):
    sequence_number: int
    date: str
    payment: str
    principal: str
    interest: str
    ending_balance: str
    is_actual: bool


class ScheduleResponse(BaseModel):
    loan: str
    mode: str
    rows: List[ScheduleRowModel]


class BalanceResponse(BaseModel):
    loan: str
    as_of_date: str
    balance: str
    paid_off: bool
