"""Loan lifecycle service for Fondo.

This module handles all loan-related operations including:
- Loan requests (with co-signer rules for clients)
- Administrative approval and rejection
- Payment application (transactional balance update)
- Amortization tables for stored loans

The status rules are plain functions so they can be used without a store;
``LoanService`` wires them to the record store and notification collaborator.
"""
import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from fondo import config
from fondo.data_structures import CosignerStatus, Loan, LoanStatus, MemberRole, Payment
from fondo.exceptions import (
    CosignerRequiredError, InvalidArgumentError, InvalidTermError,
    InvalidTransitionError, LoanNotFoundError, MemberNotFoundError,
    TransactionConflictError,
)
from fondo.services.amortization import (
    amortization_schedule, is_whole_amount, monthly_payment, round_money,
)

logger = logging.getLogger(__name__)

# Administrative moves. ``paid`` is only ever reached through apply_payment.
ADMIN_TRANSITIONS = {
    LoanStatus.PENDING: frozenset({LoanStatus.ACTIVE, LoanStatus.REJECTED}),
}


def check_transition(loan: Loan, target: LoanStatus, action: str):
    """Raise InvalidTransitionError unless ``loan`` may move to ``target``."""
    allowed = ADMIN_TRANSITIONS.get(LoanStatus.parse(loan.status), frozenset())
    if target not in allowed:
        raise InvalidTransitionError(loan.id, LoanStatus.parse(loan.status).value, action)


def apply_payment(loan: Loan, amount, payer_id=None, receipt_ref=None, now=None):
    """Apply a repayment to a loan without touching any store.

    The new balance is clamped at zero; a loan whose balance reaches zero
    becomes ``paid``. Legacy ``approved`` loans are written back as
    ``active``.

    Returns:
        (updated_loan, payment) tuple.

    Raises:
        InvalidArgumentError: If amount is not a positive whole number of pesos.
        InvalidTransitionError: If the loan is not currently owed.
    """
    if not is_whole_amount(amount):
        raise InvalidArgumentError(f"Payment must be a positive whole amount: {amount}", {'amount': amount})
    amount = int(amount)
    status = LoanStatus.parse(loan.status)
    if not status.is_owed:
        raise InvalidTransitionError(loan.id, status.value, "apply payment to")

    now = now or datetime.now()
    new_balance = max(0, loan.balance - amount)
    new_status = LoanStatus.PAID if new_balance == 0 else LoanStatus.ACTIVE

    updated = replace(loan, balance=new_balance, status=new_status, updated_at=now)
    payment = Payment(
        id=None,
        loan_id=loan.id,
        payer_id=payer_id or loan.user_id,
        amount=amount,
        date=now,
        new_balance=new_balance,
        receipt_ref=receipt_ref,
    )
    return updated, payment


def progress_percent(loan: Loan) -> int:
    """Share of the principal already repaid, in whole percent."""
    if not loan.amount:
        return 0
    return round_money(Decimal(loan.amount - loan.balance) * 100 / Decimal(loan.amount))


class LoanService:
    """Handles loan lifecycle operations.

    Args:
        db_manager: DatabaseManager (record store collaborator).
        notifier: Optional NotificationService; called after successful writes.
        max_attempts: Attempts for a payment that collides with another one.
    """

    def __init__(self, db_manager, notifier=None, max_attempts=config.MAX_PAYMENT_ATTEMPTS):
        self.db = db_manager
        self.notifier = notifier
        self.max_attempts = max_attempts

    def _notify(self, method, *args):
        if self.notifier is None:
            return
        try:
            getattr(self.notifier, method)(*args)
        except Exception:
            # Runs after a durable write; failures are only logged
            logger.exception("Notification %s failed", method)

    def get_loan(self, loan_id) -> Loan:
        loan = self.db.get_loan(loan_id)
        if loan is None:
            raise LoanNotFoundError(loan_id)
        return loan

    def get_user_loans(self, user_id):
        return self.db.get_user_loans(user_id)

    def get_active_loans(self, user_id):
        """Loans still being repaid (``active`` or legacy ``approved``)."""
        return [loan for loan in self.get_user_loans(user_id) if loan.status.is_owed]

    def get_payments(self, loan_id):
        self.get_loan(loan_id)
        return self.db.get_payments(loan_id)

    def get_schedule(self, loan_id):
        """Amortization table of a stored loan."""
        loan = self.get_loan(loan_id)
        return amortization_schedule(loan.amount, loan.interest_rate, loan.term)

    def _validate_request(self, amount, term):
        if term == 0 or term is None:
            raise InvalidTermError(term)
        if term < config.MIN_LOAN_TERM or term > config.MAX_LOAN_TERM:
            raise InvalidTermError(term)
        if not is_whole_amount(amount) or int(amount) < config.MIN_LOAN_AMOUNT:
            raise InvalidArgumentError(f"Loan amount must be a positive whole amount: {amount}", {'amount': amount})

    def _validate_cosigner(self, member, cosigner_id):
        if cosigner_id is None:
            if member.role == MemberRole.CLIENT:
                raise CosignerRequiredError(member.id)
            return
        if cosigner_id == member.id:
            raise CosignerRequiredError(member.id, "A member cannot co-sign their own loan")
        cosigner = self.db.get_member(cosigner_id)
        if cosigner is None:
            raise MemberNotFoundError(cosigner_id)
        if cosigner.role != MemberRole.ASSOCIATE:
            raise CosignerRequiredError(member.id, "Co-signer must be an associate")

    def request_loan(self, user_id, amount, term=config.DEFAULT_LOAN_TERM, description="",
                     rate=None, cosigner_id=None) -> Loan:
        """Create a pending loan request.

        Args:
            user_id: Borrower ID.
            amount: Principal in whole pesos.
            term: Term in months.
            description: Free-text purpose.
            rate: Annual percent rate; defaults to the borrower's role rate.
            cosigner_id: Associate backing the request (required for clients).

        Returns:
            The stored Loan.
        """
        self._validate_request(amount, term)
        amount = int(amount)
        member = self.db.get_member(user_id)
        if member is None:
            raise MemberNotFoundError(user_id)
        self._validate_cosigner(member, cosigner_id)

        if rate is None:
            rate = config.rate_for_role(member.role, self.db)
        payment = monthly_payment(amount, rate, term)

        now = datetime.now()
        loan = self.db.add_loan(Loan(
            id=None,
            user_id=user_id,
            amount=amount,
            balance=amount,
            term=term,
            interest_rate=rate,
            monthly_payment=payment,
            description=description,
            status=LoanStatus.PENDING,
            request_date=now,
            cosigner_id=cosigner_id,
            cosigner_status=CosignerStatus.PENDING if cosigner_id else None,
            updated_at=now,
        ))
        logger.info("Loan %s requested by %s: %s over %s months at %s%%",
                    loan.id, user_id, amount, term, rate)
        self._notify("notify_loan_requested", user_id, amount)
        return loan

    def respond_cosigner(self, loan_id, cosigner_id, accepted) -> Loan:
        """Record the named co-signer's acceptance or refusal."""
        loan = self.get_loan(loan_id)
        if loan.cosigner_id is None or loan.cosigner_id != cosigner_id:
            raise MemberNotFoundError(cosigner_id)
        if loan.status != LoanStatus.PENDING:
            raise InvalidTransitionError(loan_id, loan.status.value, "change co-signer of")
        status = CosignerStatus.ACCEPTED if accepted else CosignerStatus.DECLINED
        self.db.update_cosigner_status(loan_id, status)
        logger.info("Co-signer %s %s loan %s", cosigner_id, status.value, loan_id)
        return self.get_loan(loan_id)

    def approve_loan(self, loan_id) -> Loan:
        """Approve a pending loan, making it ``active``."""
        loan = self.get_loan(loan_id)
        check_transition(loan, LoanStatus.ACTIVE, "approve")
        if loan.cosigner_id and loan.cosigner_status != CosignerStatus.ACCEPTED:
            raise InvalidTransitionError(loan_id, loan.status.value, "approve (co-signer has not accepted)")
        if not self.db.update_loan_status(loan_id, LoanStatus.PENDING, LoanStatus.ACTIVE,
                                          approval_date=datetime.now()):
            raise TransactionConflictError(loan_id)
        logger.info("Loan %s approved", loan_id)
        self._notify("notify_loan_approved", loan.user_id, loan.amount)
        return self.get_loan(loan_id)

    def reject_loan(self, loan_id, reason=None) -> Loan:
        """Reject a pending loan, optionally recording why."""
        loan = self.get_loan(loan_id)
        check_transition(loan, LoanStatus.REJECTED, "reject")
        if not self.db.update_loan_status(loan_id, LoanStatus.PENDING, LoanStatus.REJECTED,
                                          rejection_reason=reason):
            raise TransactionConflictError(loan_id)
        logger.info("Loan %s rejected: %s", loan_id, reason or "-")
        self._notify("notify_loan_rejected", loan.user_id)
        return self.get_loan(loan_id)

    def apply_payment(self, loan_id, amount, payer_id=None, receipt_ref=None):
        """Register a repayment against a stored loan.

        The balance read, the arithmetic, the status change and the write run
        as one compare-and-swap against the store. When another payment wins
        the race the whole read-modify-write is repeated from a fresh read, up
        to ``max_attempts`` times.

        Returns:
            (updated_loan, payment) tuple.

        Raises:
            InvalidArgumentError: If amount is not a positive whole number of pesos.
            LoanNotFoundError: If the loan doesn't exist.
            InvalidTransitionError: If the loan is not currently owed.
            TransactionConflictError: If every attempt collided.
        """
        if not is_whole_amount(amount):
            raise InvalidArgumentError(f"Payment must be a positive whole amount: {amount}", {'amount': amount})
        amount = int(amount)

        for attempt in range(1, self.max_attempts + 1):
            loan = self.get_loan(loan_id)
            updated, payment = apply_payment(loan, amount, payer_id, receipt_ref)
            try:
                payment = self.db.commit_payment(updated, payment, loan.balance, loan.status)
            except TransactionConflictError as e:
                if attempt >= self.max_attempts:
                    logger.error("Payment on loan %s failed after %d attempts", loan_id, attempt)
                    raise TransactionConflictError(loan_id, attempts=attempt) from e
                logger.warning("Payment on loan %s collided (attempt %d), retrying", loan_id, attempt)
                continue

            logger.info("Payment of %s on loan %s, balance %s -> %s",
                        amount, loan_id, loan.balance, updated.balance)
            self._notify("notify_payment_registered", loan.user_id, amount, updated.balance)
            return updated, payment
