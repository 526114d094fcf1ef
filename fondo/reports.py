"""
Report generation module for Fondo.
Rolls savings and loan records up into dashboard and report figures, and
exports the report tables.
"""
import logging
from datetime import datetime

import pandas as pd
from dateutil.relativedelta import relativedelta

from fondo import config
from fondo.data_structures import (
    DashboardSummary, DistributionItem, LoanStatus, MonthAnchor, ReportSummary,
)
from fondo.exceptions import InvalidArgumentError
from fondo.services.savings_service import accrued_interest

logger = logging.getLogger(__name__)


def total_balance(savings) -> int:
    """Sum of all contribution amounts."""
    return sum(saving.amount for saving in savings)


def active_loans_balance(loans) -> int:
    """Outstanding balance over loans that are currently owed."""
    return sum(loan.balance for loan in loans if LoanStatus.parse(loan.status).is_owed)


def count_active_loans(loans) -> int:
    return sum(1 for loan in loans if LoanStatus.parse(loan.status).is_owed)


def month_anchors(count=config.REPORT_MONTHS, now=None):
    """The ``count`` calendar months ending at the month of ``now``, oldest first."""
    if count < 1:
        raise InvalidArgumentError(f"Month count must be positive: {count}", {'count': count})
    now = now or datetime.now()
    first = now.replace(day=1) - relativedelta(months=count - 1)

    anchors = []
    for offset in range(count):
        month_start = first + relativedelta(months=offset)
        anchors.append(MonthAnchor(
            year=month_start.year,
            month=month_start.month,
            label=config.MONTH_LABELS[month_start.month - 1],
        ))
    return anchors


def monthly_bucketing(savings, anchors):
    """Sum contributions per anchor month.

    Each saving is assigned to the calendar month (year and month) of its
    date; savings outside the window are ignored and months without activity
    are zero.

    Returns:
        list of (label, total) tuples in the order of ``anchors``.
    """
    frame = pd.DataFrame([(s.date, s.amount) for s in savings], columns=["date", "amount"])
    totals = {}
    if not frame.empty:
        dates = pd.to_datetime(frame["date"])
        frame["period"] = dates.dt.year * 100 + dates.dt.month
        totals = frame.groupby("period")["amount"].sum().to_dict()

    return [(a.label, int(totals.get(a.year * 100 + a.month, 0))) for a in anchors]


def distribution(total_savings, total_loan_balance, total_interest):
    """Share of savings, loans and interest in the combined amount.

    All percentages are 0 when the combined amount is 0.
    """
    items = [
        (config.CATEGORY_SAVINGS, total_savings),
        (config.CATEGORY_LOANS, total_loan_balance),
        (config.CATEGORY_INTEREST, total_interest),
    ]
    total = sum(amount for _, amount in items)
    return [
        DistributionItem(category, amount, (amount / total * 100) if total else 0.0)
        for category, amount in items
    ]


class ReportGenerator:
    def __init__(self, db_manager):
        self.db = db_manager

    def _monthly_contribution(self):
        return int(config._setting_number(
            self.db, "monthly_contribution", config.DEFAULT_MONTHLY_CONTRIBUTION))

    def dashboard_summary(self, user_id) -> DashboardSummary:
        """Figures for the member dashboard."""
        savings = self.db.get_user_savings(user_id)
        loans = self.db.get_user_loans(user_id)
        balance = total_balance(savings)

        return DashboardSummary(
            balance=balance,
            interests=accrued_interest(balance, config.savings_rate(self.db)),
            active_loans=count_active_loans(loans),
            active_loans_balance=active_loans_balance(loans),
            monthly_contribution=self._monthly_contribution(),
            recent_transactions=savings[:config.RECENT_TRANSACTIONS_LIMIT],
        )

    def report_summary(self, user_id, months=config.REPORT_MONTHS, now=None) -> ReportSummary:
        """Totals, monthly series and distribution for the reports view."""
        savings = self.db.get_user_savings(user_id)
        loans = self.db.get_user_loans(user_id)

        savings_total = total_balance(savings)
        loans_total = active_loans_balance(loans)
        interests = accrued_interest(savings_total, config.savings_rate(self.db))
        payments = sum(len(self.db.get_payments(loan.id)) for loan in loans)

        return ReportSummary(
            total_savings=savings_total,
            total_loans=loans_total,
            total_interests=interests,
            transactions=len(savings) + payments,
            monthly_data=monthly_bucketing(savings, month_anchors(months, now)),
            distribution=distribution(savings_total, loans_total, interests),
        )

    def report_frames(self, summary: ReportSummary):
        """Tabulate a report summary as (monthly, distribution) DataFrames."""
        monthly_df = pd.DataFrame(summary.monthly_data, columns=["Mes", "Aportes"])
        distribution_df = pd.DataFrame(
            [(d.category, d.amount, round(d.percentage, 1)) for d in summary.distribution],
            columns=["Categoría", "Monto", "Porcentaje"],
        )
        return monthly_df, distribution_df

    def export_report(self, user_id, output_path, now=None):
        """
        Export the member report.

        Args:
            user_id: ID of the member.
            output_path (str): ``.csv`` writes the monthly series followed by the
                distribution; anything else writes an Excel workbook.

        Returns:
            tuple: (bool, str) - (Success status, Result message or Error details).
        """
        summary = self.report_summary(user_id, now=now)
        monthly_df, distribution_df = self.report_frames(summary)

        if str(output_path).endswith('.csv'):
            return self._export_to_csv(monthly_df, distribution_df, output_path)
        return self._export_to_excel(monthly_df, distribution_df, output_path)

    def _export_to_excel(self, monthly_df, distribution_df, output_path):
        try:
            with pd.ExcelWriter(output_path, engine='xlsxwriter') as writer:
                monthly_df.to_excel(writer, index=False, sheet_name='Aportes')
                distribution_df.to_excel(writer, index=False, sheet_name='Distribucion')

                num_fmt = writer.book.add_format({'num_format': '#,##0'})
                writer.sheets['Aportes'].set_column('A:A', 10)
                writer.sheets['Aportes'].set_column('B:B', 15, num_fmt)
                writer.sheets['Distribucion'].set_column('A:A', 15)
                writer.sheets['Distribucion'].set_column('B:B', 15, num_fmt)
            return True, "Report generated successfully."
        except Exception as e:
            logger.exception("Excel export failed")
            return False, f"Excel Export Failed: {e}"

    def _export_to_csv(self, monthly_df, distribution_df, output_path):
        try:
            with open(output_path, "w", newline="", encoding="utf-8") as handle:
                monthly_df.to_csv(handle, index=False)
                handle.write("\n")
                distribution_df.to_csv(handle, index=False)
            return True, "Report generated successfully (CSV)."
        except OSError as e:
            logger.exception("CSV export failed")
            return False, f"CSV Export Failed: {e}"
