"""
Loan Amortization Engine

Builds amortization schedules from loan terms and reconciles them against
actual payments using Decimal arithmetic throughout.
"""

__version__ = "0.1.0"
