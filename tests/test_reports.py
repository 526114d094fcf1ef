"""Tests for dashboard/report rollups and report export."""
import os
import sys
import tempfile
import unittest
from datetime import date, datetime

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fondo.data_structures import Loan, LoanStatus, Saving
from fondo.database import DatabaseManager
from fondo.exceptions import InvalidArgumentError
from fondo.reports import (
    ReportGenerator,
    active_loans_balance,
    count_active_loans,
    distribution,
    month_anchors,
    monthly_bucketing,
    total_balance,
)
from fondo.services.loan_service import LoanService
from fondo.services.member_service import MemberService
from fondo.services.savings_service import SavingsService


def saving(amount, when):
    return Saving(id=None, user_id="u1", amount=amount, description="", date=when)


def loan(status, balance):
    return Loan(id=None, user_id="u1", amount=2_000_000, balance=balance, term=12,
                interest_rate=2, monthly_payment=168478, description="", status=status,
                request_date=datetime(2024, 1, 1))


class TestRollups(unittest.TestCase):

    def test_total_balance(self):
        self.assertEqual(total_balance([]), 0)
        self.assertEqual(total_balance([saving(500_000, datetime(2024, 1, 1)),
                                        saving(250_000, datetime(2024, 2, 1))]), 750_000)

    def test_active_loans_balance_counts_owed_only(self):
        loans = [
            loan(LoanStatus.ACTIVE, 1_000_000),
            loan(LoanStatus.APPROVED, 400_000),
            loan(LoanStatus.PENDING, 2_000_000),
            loan(LoanStatus.REJECTED, 2_000_000),
            loan(LoanStatus.PAID, 0),
        ]
        self.assertEqual(active_loans_balance(loans), 1_400_000)
        self.assertEqual(count_active_loans(loans), 2)

    def test_month_anchors(self):
        anchors = month_anchors(5, now=datetime(2024, 3, 31, 18, 0))
        self.assertEqual([(a.year, a.month) for a in anchors],
                         [(2023, 11), (2023, 12), (2024, 1), (2024, 2), (2024, 3)])
        self.assertEqual([a.label for a in anchors], ["Nov", "Dic", "Ene", "Feb", "Mar"])

    def test_month_anchors_count(self):
        with self.assertRaises(InvalidArgumentError):
            month_anchors(0)

    def test_single_saving_in_current_month(self):
        now = datetime(2024, 5, 20)
        data = monthly_bucketing([saving(500_000, datetime(2024, 5, 3))], month_anchors(5, now))
        self.assertEqual([amount for _, amount in data], [0, 0, 0, 0, 500_000])
        self.assertEqual([label for label, _ in data], ["Ene", "Feb", "Mar", "Abr", "May"])

    def test_bucketing_separates_years(self):
        now = datetime(2024, 5, 20)
        savings = [
            saving(500_000, datetime(2024, 5, 3)),
            saving(100_000, datetime(2023, 5, 3)),  # same month name, previous year
            saving(200_000, datetime(2024, 1, 31)),
            saving(50_000, datetime(2024, 1, 2)),
        ]
        data = monthly_bucketing(savings, month_anchors(5, now))
        self.assertEqual([amount for _, amount in data], [250_000, 0, 0, 0, 500_000])

    def test_bucketing_without_savings(self):
        data = monthly_bucketing([], month_anchors(3, datetime(2024, 5, 20)))
        self.assertEqual(data, [("Mar", 0), ("Abr", 0), ("May", 0)])

    def test_distribution(self):
        items = distribution(1_000_000, 500_000, 50_000)
        self.assertEqual([i.category for i in items], ["Ahorros", "Préstamos", "Intereses"])
        self.assertAlmostEqual(sum(i.percentage for i in items), 100.0, places=6)
        self.assertAlmostEqual(items[0].percentage, 1_000_000 / 1_550_000 * 100)

    def test_distribution_of_nothing(self):
        items = distribution(0, 0, 0)
        self.assertEqual([i.percentage for i in items], [0, 0, 0])


class TestReportGenerator(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.member = MemberService(self.db).register_member(
            "reportes@example.com", "Rosa Vega", date(1975, 9, 9))
        savings = SavingsService(self.db)
        savings.add_contribution(self.member.id, 500_000, date=datetime(2024, 4, 30))
        savings.add_contribution(self.member.id, 300_000, date=datetime(2024, 5, 15))

        loans = LoanService(self.db)
        active = loans.request_loan(self.member.id, 2_000_000, 12)
        loans.approve_loan(active.id)
        loans.apply_payment(active.id, 500_000)
        loans.request_loan(self.member.id, 1_000_000, 6)

        self.generator = ReportGenerator(self.db)
        self.now = datetime(2024, 5, 20)

    def tearDown(self):
        self.db.close()

    def test_dashboard_summary(self):
        summary = self.generator.dashboard_summary(self.member.id)
        self.assertEqual(summary.balance, 800_000)
        self.assertEqual(summary.interests, 40_000)
        self.assertEqual(summary.active_loans, 1)
        self.assertEqual(summary.active_loans_balance, 1_500_000)
        self.assertEqual(summary.monthly_contribution, 500_000)
        self.assertEqual([s.amount for s in summary.recent_transactions], [300_000, 500_000])

    def test_monthly_contribution_setting(self):
        self.db.set_setting("monthly_contribution", 300000)
        self.assertEqual(self.generator.dashboard_summary(self.member.id).monthly_contribution, 300_000)

    def test_float_monthly_contribution_setting(self):
        self.db.set_setting("monthly_contribution", 500000.0)
        summary = self.generator.dashboard_summary(self.member.id)
        self.assertEqual(summary.monthly_contribution, 500_000)
        self.assertIsInstance(summary.monthly_contribution, int)

    def test_unparseable_monthly_contribution_setting(self):
        self.db.set_setting("monthly_contribution", "quinientos mil")
        self.assertEqual(self.generator.dashboard_summary(self.member.id).monthly_contribution, 500_000)

    def test_report_summary(self):
        summary = self.generator.report_summary(self.member.id, now=self.now)
        self.assertEqual(summary.total_savings, 800_000)
        self.assertEqual(summary.total_loans, 1_500_000)
        self.assertEqual(summary.total_interests, 40_000)
        self.assertEqual(summary.transactions, 3)
        self.assertEqual(summary.monthly_data,
                         [("Ene", 0), ("Feb", 0), ("Mar", 0), ("Abr", 500_000), ("May", 300_000)])
        self.assertAlmostEqual(sum(d.percentage for d in summary.distribution), 100.0, places=6)

    def test_empty_member_report(self):
        other = MemberService(self.db).register_member("nuevo@example.com", "Nuevo", date(1990, 1, 1))
        summary = self.generator.report_summary(other.id, now=self.now)
        self.assertEqual(summary.transactions, 0)
        self.assertEqual([d.percentage for d in summary.distribution], [0, 0, 0])

    def test_export_csv(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "reporte.csv")
            ok, msg = self.generator.export_report(self.member.id, path, now=self.now)
            self.assertTrue(ok, msg)
            with open(path, encoding="utf-8") as handle:
                content = handle.read()

        self.assertTrue(content.startswith("Mes,Aportes"))
        self.assertIn("May,300000", content)
        self.assertIn("Categoría,Monto,Porcentaje", content)
        self.assertIn("Préstamos,1500000", content)

    def test_export_excel(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "reporte.xlsx")
            ok, msg = self.generator.export_report(self.member.id, path, now=self.now)
            self.assertTrue(ok, msg)
            self.assertGreater(os.path.getsize(path), 0)

    def test_export_to_missing_directory(self):
        path = os.path.join(tempfile.gettempdir(), "no-such-dir-fondo", "x", "reporte.csv")
        with self.assertLogs('fondo.reports', level='ERROR'):
            ok, msg = self.generator.export_report(self.member.id, path, now=self.now)
        self.assertFalse(ok)
        self.assertIn("CSV Export Failed", msg)


if __name__ == '__main__':
    unittest.main()
