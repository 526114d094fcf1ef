"""Tests for configuration lookups, logging setup, statuses and the error taxonomy."""
import json
import logging
import os
import sys
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fondo import config
from fondo.data_structures import LoanStatus, MemberRole, OWED_STATUSES
from fondo.exceptions import (
    CosignerRequiredError, DatabaseError, FondoError, InvalidArgumentError, InvalidTermError,
    InvalidTransitionError, LoanNotFoundError, MemberNotFoundError, StoreUnavailableError,
    TransactionConflictError, TransactionError,
)
from fondo.logging import JsonFormatter, get_logger, setup_logging


class TestConfig(unittest.TestCase):

    def test_default_rates(self):
        self.assertEqual(config.rate_for_role(MemberRole.ASSOCIATE), config.ASSOCIATE_INTEREST_RATE)
        self.assertEqual(config.rate_for_role("cliente"), config.CLIENT_INTEREST_RATE)
        self.assertEqual(config.savings_rate(), config.SAVINGS_INTEREST_RATE)

    def test_overrides(self):
        db = MagicMock()
        db.get_setting.side_effect = {"client_interest_rate": "4.5"}.get
        self.assertEqual(config.rate_for_role(MemberRole.CLIENT, db), 4.5)
        self.assertEqual(config.rate_for_role(MemberRole.ASSOCIATE, db), config.ASSOCIATE_INTEREST_RATE)

    def test_unparseable_override_falls_back(self):
        db = MagicMock()
        db.get_setting.return_value = "cinco"
        self.assertEqual(config.savings_rate(db), config.SAVINGS_INTEREST_RATE)

    def test_month_labels(self):
        self.assertEqual(len(config.MONTH_LABELS), 12)
        self.assertEqual(config.MONTH_LABELS[0], "Ene")


class TestLoanStatus(unittest.TestCase):

    def test_parse_english_and_spanish(self):
        self.assertEqual(LoanStatus.parse("active"), LoanStatus.ACTIVE)
        self.assertEqual(LoanStatus.parse("Pendiente"), LoanStatus.PENDING)
        self.assertEqual(LoanStatus.parse("pagado"), LoanStatus.PAID)
        self.assertEqual(LoanStatus.parse(LoanStatus.REJECTED), LoanStatus.REJECTED)

    def test_parse_unknown(self):
        with self.assertRaises(ValueError):
            LoanStatus.parse("frozen")

    def test_owed_group(self):
        self.assertEqual(OWED_STATUSES, {LoanStatus.ACTIVE, LoanStatus.APPROVED})
        self.assertFalse(LoanStatus.PENDING.is_owed)
        self.assertTrue(LoanStatus.PAID.is_terminal)
        self.assertFalse(LoanStatus.ACTIVE.is_terminal)


class TestExceptions(unittest.TestCase):

    def test_hierarchy(self):
        self.assertTrue(issubclass(InvalidTermError, InvalidArgumentError))
        self.assertTrue(issubclass(CosignerRequiredError, InvalidArgumentError))
        self.assertTrue(issubclass(TransactionConflictError, DatabaseError))
        self.assertTrue(issubclass(StoreUnavailableError, DatabaseError))
        self.assertTrue(issubclass(TransactionError, DatabaseError))
        for exc in (InvalidArgumentError, LoanNotFoundError, MemberNotFoundError,
                    InvalidTransitionError, DatabaseError):
            self.assertTrue(issubclass(exc, FondoError))

    def test_str_includes_details(self):
        error = InvalidTransitionError("L-9", "paid", "approve")
        self.assertIn("Cannot approve loan 'L-9'", str(error))
        self.assertIn("'status': 'paid'", str(error))
        self.assertEqual(str(FondoError("plain")), "plain")

    def test_conflict_attempts(self):
        self.assertEqual(TransactionConflictError("L-1", attempts=3).details,
                         {'loan_id': "L-1", 'attempts': 3})
        self.assertEqual(TransactionConflictError("L-1").details, {'loan_id': "L-1"})


class TestLogging(unittest.TestCase):

    def setUp(self):
        self.root = logging.getLogger()
        self.saved_handlers = self.root.handlers[:]
        self.saved_level = self.root.level

    def tearDown(self):
        self.root.handlers = self.saved_handlers
        self.root.setLevel(self.saved_level)

    def test_setup_standard(self):
        setup_logging("debug")
        self.assertEqual(self.root.level, logging.DEBUG)
        self.assertEqual(len(self.root.handlers), 1)
        self.assertNotIsInstance(self.root.handlers[0].formatter, JsonFormatter)

    def test_setup_json(self):
        setup_logging("WARNING", format_type="json")
        self.assertIsInstance(self.root.handlers[0].formatter, JsonFormatter)
        self.assertEqual(logging.getLogger("fondo").level, logging.WARNING)

    def test_json_formatter(self):
        record = logging.LogRecord("fondo.database", logging.WARNING, __file__, 1,
                                   "Ordered query failed (%s)", ("no index",), None)
        data = json.loads(JsonFormatter().format(record))
        self.assertEqual(data["level"], "WARNING")
        self.assertEqual(data["logger"], "fondo.database")
        self.assertEqual(data["message"], "Ordered query failed (no index)")

    def test_get_logger(self):
        self.assertEqual(get_logger("fondo.reports").name, "fondo.reports")


if __name__ == '__main__':
    unittest.main()
