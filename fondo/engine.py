"""Business logic engine for Fondo.

This module provides the FondoEngine class which acts as a facade over the
focused service classes in fondo/services/. Collaborators are created once per
engine and passed explicitly into the services that need them; there are no
module-level service singletons.

Service Classes:
    - MemberService: Registration and profiles
    - LoanService: Loan requests, approvals and payments
    - SavingsService: Contributions and savings interest
    - NotificationService: Member notifications
    - ReportGenerator: Dashboard and report rollups
"""
from fondo.database import DatabaseManager
from fondo.reports import ReportGenerator
from fondo.services import LoanService, MemberService, NotificationService, SavingsService


class FondoEngine:
    """Handles business logic, interfacing with DatabaseManager.

    Attributes:
        db: DatabaseManager instance for data persistence.
        notification_service: NotificationService (lazy-loaded).
        member_service: MemberService (lazy-loaded).
        loan_service: LoanService (lazy-loaded).
        savings_service: SavingsService (lazy-loaded).
        report_generator: ReportGenerator (lazy-loaded).
    """

    def __init__(self, db_manager=None):
        self.db = db_manager if db_manager is not None else DatabaseManager()
        self._notification_service = None
        self._member_service = None
        self._loan_service = None
        self._savings_service = None
        self._report_generator = None

    @property
    def notification_service(self):
        """Lazy-load NotificationService instance."""
        if self._notification_service is None:
            self._notification_service = NotificationService(self.db)
        return self._notification_service

    @property
    def member_service(self):
        """Lazy-load MemberService instance."""
        if self._member_service is None:
            self._member_service = MemberService(self.db)
        return self._member_service

    @property
    def loan_service(self):
        """Lazy-load LoanService instance."""
        if self._loan_service is None:
            self._loan_service = LoanService(self.db, self.notification_service)
        return self._loan_service

    @property
    def savings_service(self):
        """Lazy-load SavingsService instance."""
        if self._savings_service is None:
            self._savings_service = SavingsService(self.db, self.notification_service)
        return self._savings_service

    @property
    def report_generator(self):
        """Lazy-load ReportGenerator instance."""
        if self._report_generator is None:
            self._report_generator = ReportGenerator(self.db)
        return self._report_generator

    def register_member(self, email, name, date_of_birth, role="asociado", phone=""):
        return self.member_service.register_member(email, name, date_of_birth, role, phone)

    def request_loan(self, user_id, amount, term, description="", rate=None, cosigner_id=None):
        return self.loan_service.request_loan(user_id, amount, term, description, rate, cosigner_id)

    def approve_loan(self, loan_id):
        return self.loan_service.approve_loan(loan_id)

    def reject_loan(self, loan_id, reason=None):
        return self.loan_service.reject_loan(loan_id, reason)

    def register_payment(self, loan_id, amount, payer_id=None, receipt_ref=None):
        """Apply a repayment; returns (updated_loan, payment)."""
        return self.loan_service.apply_payment(loan_id, amount, payer_id, receipt_ref)

    def add_contribution(self, user_id, amount, description="", date=None):
        return self.savings_service.add_contribution(user_id, amount, description, date)

    def dashboard(self, user_id):
        return self.report_generator.dashboard_summary(user_id)

    def report(self, user_id, now=None):
        return self.report_generator.report_summary(user_id, now=now)

    def close(self):
        self.db.close()
