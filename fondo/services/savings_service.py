"""Savings service for Fondo.

This service handles member contributions (aportes) and the flat interest
credited on the accumulated balance.
"""
import logging
from datetime import datetime
from decimal import Decimal

from fondo import config
from fondo.data_structures import Saving
from fondo.exceptions import InvalidArgumentError, MemberNotFoundError
from fondo.services.amortization import is_whole_amount, round_money

logger = logging.getLogger(__name__)


def accrued_interest(total_balance, rate=config.SAVINGS_INTEREST_RATE) -> int:
    """Flat (non-compounded) interest on a savings balance, in whole pesos."""
    return round_money(Decimal(str(total_balance)) * Decimal(str(rate)))


class SavingsService:
    """Handles savings contributions.

    Args:
        db_manager: DatabaseManager for data persistence.
        notifier: Optional NotificationService.
    """

    def __init__(self, db_manager, notifier=None):
        self.db = db_manager
        self.notifier = notifier

    def add_contribution(self, user_id, amount, description="", date=None) -> Saving:
        """Record a savings contribution.

        Args:
            user_id: ID of the member.
            amount: Contribution in whole pesos (> 0, no fractional part).
            description: Optional note.
            date: Contribution date (default: now).

        Returns:
            The stored Saving, with its accumulated-balance snapshot.
        """
        if not is_whole_amount(amount):
            raise InvalidArgumentError(f"Contribution must be a positive whole amount: {amount}", {'amount': amount})
        amount = int(amount)
        if self.db.get_member(user_id) is None:
            raise MemberNotFoundError(user_id)

        saving = self.db.add_saving(Saving(
            id=None,
            user_id=user_id,
            amount=amount,
            description=description,
            date=date or datetime.now(),
        ))
        logger.info("Contribution %s of %s by %s", saving.id, amount, user_id)
        if self.notifier is not None:
            try:
                self.notifier.notify_saving_confirmed(user_id, amount)
            except Exception:
                logger.exception("Saving notification failed")
        return saving

    def get_user_savings(self, user_id):
        """Contributions of a member, newest first."""
        return self.db.get_user_savings(user_id)

    def get_total_balance(self, user_id) -> int:
        return self.db.get_savings_total(user_id)

    def calculate_interests(self, user_id, rate=None) -> int:
        """Interest on the member's total balance (rate from settings by default)."""
        if rate is None:
            rate = config.savings_rate(self.db)
        return accrued_interest(self.get_total_balance(user_id), rate)
