"""Tests for member notifications."""
import os
import sys
import unittest
from datetime import date

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fondo.data_structures import NotificationType
from fondo.database import DatabaseManager
from fondo.exceptions import InvalidArgumentError
from fondo.services.notification_service import NotificationService, format_currency


class TestFormatCurrency(unittest.TestCase):

    def test_thousands_separator(self):
        self.assertEqual(format_currency(1_500_000), "$ 1.500.000")
        self.assertEqual(format_currency(0), "$ 0")
        self.assertEqual(format_currency(999), "$ 999")

    def test_negative(self):
        self.assertEqual(format_currency(-25_000), "-$ 25.000")

    def test_halves_round_away_from_zero(self):
        self.assertEqual(format_currency(2.5), "$ 3")
        self.assertEqual(format_currency(0.5), "$ 1")
        self.assertEqual(format_currency(1_499_999.5), "$ 1.500.000")
        self.assertEqual(format_currency(-2.5), "-$ 3")


class TestNotificationService(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.service = NotificationService(self.db)

    def tearDown(self):
        self.db.close()

    def test_create_and_list(self):
        self.service.create_notification("u1", "general", "Asamblea", "Asamblea el sábado")
        self.service.notify_loan_approved("u1", 2_000_000)

        items = self.service.get_user_notifications("u1")
        self.assertEqual(len(items), 2)
        self.assertEqual(self.service.get_unread_count("u1"), 2)
        self.assertEqual(self.service.get_unread_count("u2"), 0)

    def test_typed_helpers(self):
        note = self.service.notify_payment_registered("u1", 169_500, 1_330_500)
        self.assertEqual(note.type, NotificationType.PAYMENT_REGISTERED)
        self.assertIn("$ 169.500", note.message)
        self.assertIn("$ 1.330.500", note.message)
        self.assertEqual(note.action_url, "/loans")

        reminder = self.service.notify_payment_reminder("u1", 168_478, date(2024, 7, 5))
        self.assertIn("05/07/2024", reminder.message)

        self.assertEqual(self.service.notify_loan_requested("u1", 1000).type,
                         NotificationType.LOAN_REQUESTED)
        self.assertEqual(self.service.notify_loan_rejected("u1").type,
                         NotificationType.LOAN_REJECTED)
        self.assertEqual(self.service.notify_saving_confirmed("u1", 1000).type,
                         NotificationType.SAVING_CONFIRMED)

    def test_mark_as_read(self):
        first = self.service.notify_saving_confirmed("u1", 1000)
        self.service.notify_saving_confirmed("u1", 2000)

        self.assertTrue(self.service.mark_as_read(first.id))
        self.assertEqual(self.service.get_unread_count("u1"), 1)
        self.service.mark_all_as_read("u1")
        self.assertEqual(self.service.get_unread_count("u1"), 0)
        self.assertFalse(self.service.mark_as_read("missing"))

    def test_limit(self):
        for i in range(5):
            self.service.create_notification("u1", NotificationType.GENERAL, f"#{i}", "")
        self.assertEqual(len(self.service.get_user_notifications("u1", limit=3)), 3)

    def test_unknown_type(self):
        with self.assertRaises(InvalidArgumentError):
            self.service.create_notification("u1", "carrier_pigeon", "x", "y")


if __name__ == '__main__':
    unittest.main()
