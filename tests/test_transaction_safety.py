"""Tests for transaction safety and structured error handling."""
import sys
import os
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loandesk.database import DatabaseManager
from loandesk.exceptions import (
    ClientNotFoundError,
    InsufficientCreditError,
    LoanCompletedError,
    LoanNotFoundError,
    TransactionError,
    ValidationError,
)
from loandesk.result import ErrorType, Result
from loandesk.services.client_service import ClientService
from loandesk.services.loan_service import LoanService
from loandesk.services.payment_service import PaymentService


class TestExceptions(unittest.TestCase):
    """Test that custom exceptions carry their details."""

    def test_loan_not_found_message(self):
        error = LoanNotFoundError(loan_id=42)
        self.assertIn("42", str(error))
        self.assertEqual(error.details['loan_id'], 42)

    def test_client_not_found_by_name(self):
        self.assertEqual(ClientNotFoundError(name="Ana").message, "Client 'Ana' not found")

    def test_loan_completed(self):
        error = LoanCompletedError(3, 4, 4)
        self.assertIn("4/4", error.message)

    def test_insufficient_credit(self):
        error = InsufficientCreditError(1500, 1000, client_id=1)
        self.assertIn("1500.00", error.message)
        self.assertEqual(error.details['available'], 1000)

    def test_validation_error_field(self):
        error = ValidationError('cpf', "CPF must have 11 digits")
        self.assertEqual(error.field, 'cpf')
        self.assertEqual(error.message, "CPF must have 11 digits")


class TestResult(unittest.TestCase):

    def test_ok(self):
        result = Result.ok(5)
        self.assertTrue(result)
        self.assertEqual(result.unwrap(), 5)

    def test_fail(self):
        result = Result.fail("nope", ErrorType.VALIDATION)
        self.assertFalse(result)
        self.assertEqual(result.unwrap_or(0), 0)
        with self.assertRaises(ValueError):
            result.unwrap()


class TestConnectionManagement(unittest.TestCase):
    """Test database connection management."""

    def test_context_manager(self):
        with DatabaseManager(":memory:") as db:
            db.add_client("Context Test", "111.111.111-11", "(11) 98765-4321", "Rua A")
            self.assertEqual(len(db.get_clients()), 1)
        self.assertTrue(db._closed)

    def test_explicit_close(self):
        db = DatabaseManager(":memory:")
        self.assertFalse(db._closed)
        db.close()
        self.assertTrue(db._closed)
        # Calling close again should not raise
        db.close()


class TestTransactionContextManager(unittest.TestCase):
    """Test the transaction context manager."""

    def setUp(self):
        self.db = DatabaseManager(":memory:")

    def tearDown(self):
        self.db.close()

    def test_commit_on_success(self):
        with self.db.transaction():
            self.db.add_client("Trans Test", "111.111.111-11", "(11) 98765-4321", "Rua A")
        self.assertEqual(len(self.db.get_clients()), 1)
        self.assertFalse(self.db.in_transaction)

    def test_rollback_on_failure(self):
        with self.assertRaises(ValueError):
            with self.db.transaction():
                self.db.add_client("Rollback Test", "111.111.111-11", "(11) 98765-4321", "Rua A")
                raise ValueError("Simulated error")
        self.assertEqual(self.db.get_clients(), [])

    def test_nested_blocks_roll_back_together(self):
        with self.assertRaises(ValueError):
            with self.db.transaction():
                self.db.add_client("Outer", "111.111.111-11", "(11) 98765-4321", "Rua A")
                with self.db.transaction():
                    self.db.add_client("Inner", "222.222.222-22", "(11) 98765-4321", "Rua B")
                raise ValueError("Simulated error")
        self.assertEqual(self.db.get_clients(), [])

    def test_sqlite_errors_become_transaction_errors(self):
        with self.assertRaises(TransactionError):
            with self.db.transaction():
                self.db.conn.execute("INSERT INTO missing_table VALUES (1)")
        self.assertFalse(self.db.in_transaction)

    def test_setting_with_special_characters(self):
        value = "x'; DROP TABLE clients; --"
        self.db.set_setting("note", value)
        self.assertEqual(self.db.get_setting("note"), value)
        self.assertEqual(self.db.get_clients(), [])


class TestAtomicOperations(unittest.TestCase):
    """Multi-row operations leave no partial writes behind."""

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.client_id = ClientService(self.db).create_client("Ana Lima", "12345678901", "11987654321", "Rua A")
        self.loans = LoanService(self.db)

    def tearDown(self):
        self.db.close()

    def test_failed_credit_update_discards_loan(self):
        with patch.object(self.db, 'update_client', side_effect=RuntimeError("disk full")):
            with self.assertRaises(RuntimeError):
                self.loans.create_loan(self.client_id, 400, 4, loan_date="2025-01-06")

        self.assertEqual(self.db.get_loans(), [])
        self.assertEqual(self.db.get_client(self.client_id)['available_credit'], 1000)

    def test_failed_progress_update_discards_payment(self):
        loan_id = self.loans.create_loan(self.client_id, 400, 4, loan_date="2025-01-06")
        payments = PaymentService(self.db)

        with patch.object(self.db, 'update_loan_progress', side_effect=RuntimeError("disk full")):
            with self.assertRaises(RuntimeError):
                payments.register_payment(loan_id, "2025-01-13")

        self.assertEqual(self.db.get_payments(loan_id), [])
        self.assertEqual(self.db.get_loan(loan_id)['weeks_paid'], 0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
