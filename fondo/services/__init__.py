"""Services package for Fondo business logic.

This package contains the focused service classes used by FondoEngine and the
pure calculators they share.
"""

from .amortization import amortization_schedule, monthly_payment, schedule_dataframe
from .loan_service import LoanService, apply_payment
from .member_service import MemberService
from .notification_service import NotificationService, format_currency
from .savings_service import SavingsService, accrued_interest

__all__ = ['LoanService', 'SavingsService', 'MemberService', 'NotificationService',
           'monthly_payment', 'amortization_schedule', 'schedule_dataframe',
           'apply_payment', 'accrued_interest', 'format_currency']
