"""Centralized configuration for the Fondo savings-and-loan core.

This module contains the default rates, business rule limits and display
constants used across the services. Values can be overridden per database
through the ``settings`` table (see ``DatabaseManager.get_setting``).
"""

# =============================================================================
# INTEREST RATES
# =============================================================================

# Default annual loan rate (percent) for associates
ASSOCIATE_INTEREST_RATE = 2

# Default annual loan rate (percent) for clients
CLIENT_INTEREST_RATE = 3

# Flat fraction credited on the total savings balance
SAVINGS_INTEREST_RATE = 0.05

# =============================================================================
# BUSINESS RULES
# =============================================================================

# Default loan term in months
DEFAULT_LOAN_TERM = 12

# Minimum loan term in months
MIN_LOAN_TERM = 1

# Maximum loan term in months
MAX_LOAN_TERM = 60

# Minimum loan amount (whole pesos)
MIN_LOAN_AMOUNT = 1

# Attempts for a payment whose balance write collides with another payment
MAX_PAYMENT_ATTEMPTS = 3

# Members must be at least this old to register
MINIMUM_MEMBER_AGE = 18

# Expected monthly contribution shown on the dashboard
DEFAULT_MONTHLY_CONTRIBUTION = 500000

# =============================================================================
# REPORTS
# =============================================================================

# Number of calendar months in the savings evolution chart
REPORT_MONTHS = 5

# Number of savings shown as recent transactions
RECENT_TRANSACTIONS_LIMIT = 5

# Default page size for notification listings
NOTIFICATIONS_LIMIT = 50

# Month labels, January first
MONTH_LABELS = ("Ene", "Feb", "Mar", "Abr", "May", "Jun",
                "Jul", "Ago", "Sep", "Oct", "Nov", "Dic")

# Distribution categories
CATEGORY_SAVINGS = "Ahorros"
CATEGORY_LOANS = "Préstamos"
CATEGORY_INTEREST = "Intereses"

# =============================================================================
# STORAGE & DISPLAY
# =============================================================================

# Default database file
DB_NAME = "fondo.db"

# Timestamp format for storage (ISO 8601)
DATE_FORMAT_STORAGE = "%Y-%m-%d %H:%M:%S"

# Currency symbol for display (Colombian pesos, no minor units)
CURRENCY_SYMBOL = "$"

# Default log level
LOG_LEVEL = "INFO"


def _setting_number(db, key, default):
    """Read a numeric override from the settings table, if any."""
    if db is None:
        return default
    value = db.get_setting(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def rate_for_role(role, db=None):
    """Return the annual loan rate (percent) for a member role.

    Args:
        role: MemberRole or its string value ("asociado" / "cliente").
        db: Optional DatabaseManager consulted for overrides.
    """
    role_value = getattr(role, "value", role)
    if role_value == "cliente":
        return _setting_number(db, "client_interest_rate", CLIENT_INTEREST_RATE)
    return _setting_number(db, "associate_interest_rate", ASSOCIATE_INTEREST_RATE)


def savings_rate(db=None):
    """Return the flat savings interest fraction."""
    return _setting_number(db, "savings_interest_rate", SAVINGS_INTEREST_RATE)
