from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


class LoanStatus(str, Enum):
    """Loan lifecycle states.

    ``ACTIVE`` is the canonical "currently owed" state written by approvals.
    ``APPROVED`` is only read back from legacy records and is treated as an
    alias of ``ACTIVE`` wherever owed loans are filtered.
    """
    PENDING = "pending"
    APPROVED = "approved"
    ACTIVE = "active"
    REJECTED = "rejected"
    PAID = "paid"

    @classmethod
    def parse(cls, value):
        """Map a stored status string (English or legacy Spanish) to a LoanStatus."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        return cls(_LEGACY_STATUS_ALIASES.get(key, key))

    @property
    def is_owed(self) -> bool:
        return self in OWED_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in (LoanStatus.REJECTED, LoanStatus.PAID)


_LEGACY_STATUS_ALIASES = {
    "pendiente": "pending",
    "aprobado": "approved",
    "activo": "active",
    "rechazado": "rejected",
    "pagado": "paid",
}

OWED_STATUSES = frozenset({LoanStatus.ACTIVE, LoanStatus.APPROVED})


class MemberRole(str, Enum):
    ASSOCIATE = "asociado"
    CLIENT = "cliente"


class CosignerStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class NotificationType(str, Enum):
    LOAN_REQUESTED = "loan_requested"
    LOAN_APPROVED = "loan_approved"
    LOAN_REJECTED = "loan_rejected"
    PAYMENT_REGISTERED = "payment_registered"
    PAYMENT_REMINDER = "payment_reminder"
    MEETING_REMINDER = "meeting_reminder"
    SAVING_CONFIRMED = "saving_confirmed"
    GENERAL = "general"


@dataclass
class Member:
    """Cooperative member (associate or client)."""
    id: str
    email: str
    name: str
    role: MemberRole
    date_of_birth: date
    phone: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Loan:
    """Loan record. Amounts are whole pesos."""
    id: Optional[str]
    user_id: str
    amount: int
    balance: int
    term: int
    interest_rate: float  # annual percent
    monthly_payment: int
    description: str
    status: LoanStatus
    request_date: datetime
    approval_date: Optional[datetime] = None
    cosigner_id: Optional[str] = None
    cosigner_status: Optional[CosignerStatus] = None
    rejection_reason: Optional[str] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Payment:
    """Append-only repayment entry carrying the post-payment balance."""
    id: Optional[str]
    loan_id: str
    payer_id: str
    amount: int
    date: datetime
    new_balance: int
    receipt_ref: Optional[str] = None
    status: str = "confirmed"


@dataclass(frozen=True)
class Saving:
    """Savings contribution (aporte)."""
    id: Optional[str]
    user_id: str
    amount: int
    description: str
    date: datetime
    status: str = "confirmed"
    accumulated_balance: int = 0
    created_at: Optional[datetime] = None


@dataclass
class Notification:
    id: Optional[str]
    user_id: str
    type: NotificationType
    title: str
    message: str
    read: bool = False
    action_url: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class AmortizationRow:
    period: int
    payment: int
    interest: int
    principal: int
    balance: int


@dataclass(frozen=True)
class MonthAnchor:
    """One calendar month of a report window."""
    year: int
    month: int
    label: str


@dataclass(frozen=True)
class DistributionItem:
    category: str
    amount: int
    percentage: float


@dataclass
class DashboardSummary:
    """DTO for the member dashboard."""
    balance: int
    interests: int
    active_loans: int
    active_loans_balance: int
    monthly_contribution: int
    recent_transactions: List[Saving] = field(default_factory=list)


@dataclass
class ReportSummary:
    """DTO for the reports view."""
    total_savings: int
    total_loans: int
    total_interests: int
    transactions: int
    monthly_data: List[tuple] = field(default_factory=list)
    distribution: List[DistributionItem] = field(default_factory=list)
