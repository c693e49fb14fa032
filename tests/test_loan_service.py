"""Tests for loan terms, origination and schedules."""
import sys
import os
import unittest
from datetime import date

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loandesk.database import DatabaseManager
from loandesk.exceptions import (
    ClientNotFoundError,
    InsufficientCreditError,
    LoanNotFoundError,
    ValidationError,
)
from loandesk.result import ErrorType
from loandesk.services.client_service import ClientService
from loandesk.services.loan_service import (
    LoanService,
    calculate_terms,
    next_payment_date_for,
    payment_status,
    terms_from_total,
)


class TestTermCalculation(unittest.TestCase):

    def test_default_rate(self):
        terms = calculate_terms(1000, 4, loan_date=date(2025, 1, 6))
        self.assertEqual(terms.interest_rate, 35.0)
        self.assertEqual(terms.total_amount, 1350.0)
        self.assertEqual(terms.weekly_payment, 337.5)
        self.assertEqual(terms.interest_amount, 350.0)

    def test_dates(self):
        terms = calculate_terms(1000, 4, loan_date=date(2025, 1, 6))
        self.assertEqual(terms.first_payment_date, date(2025, 1, 13))
        self.assertEqual(terms.due_date, date(2025, 2, 3))

    def test_explicit_first_payment(self):
        terms = calculate_terms(500, 2, 20, first_payment_date="2025-01-10", loan_date="2025-01-01")
        self.assertEqual(terms.first_payment_date, date(2025, 1, 10))
        self.assertEqual(terms.due_date, date(2025, 1, 17))
        self.assertEqual(terms.total_amount, 600.0)

    def test_any_positive_week_count(self):
        terms = calculate_terms(700, 7, 0, loan_date=date(2025, 1, 1))
        self.assertEqual(terms.weekly_payment, 100.0)

    def test_terms_from_total(self):
        terms = terms_from_total(1000, 4, 1200, loan_date=date(2025, 1, 6))
        self.assertEqual(terms.interest_rate, 20.0)
        self.assertEqual(terms.weekly_payment, 300.0)

    def test_total_below_amount_rejected(self):
        with self.assertRaises(ValidationError) as context:
            terms_from_total(1000, 4, 900)
        self.assertEqual(context.exception.field, 'total_amount')

    def test_invalid_inputs(self):
        with self.assertRaises(ValidationError):
            calculate_terms(0, 4)
        with self.assertRaises(ValidationError):
            calculate_terms(-10, 4)
        with self.assertRaises(ValidationError):
            calculate_terms(100, 0)
        with self.assertRaises(ValidationError):
            calculate_terms(100, True)
        with self.assertRaises(ValidationError):
            calculate_terms(100, 4, -1)

    def test_next_payment_date_for(self):
        self.assertEqual(next_payment_date_for("2025-01-06", 0), date(2025, 1, 13))
        self.assertEqual(next_payment_date_for("2025-01-06", 2), date(2025, 1, 27))


class TestPaymentStatus(unittest.TestCase):

    def test_completed(self):
        loan = {'status': "completed", 'next_payment_date': "2020-01-01"}
        self.assertEqual(payment_status(loan, date(2025, 1, 1)), "completed")

    def test_overdue(self):
        loan = {'status': "pending", 'next_payment_date': "2025-01-01"}
        self.assertEqual(payment_status(loan, date(2025, 1, 2)), "overdue")

    def test_pending(self):
        loan = {'status': "active", 'next_payment_date': "2025-01-02"}
        self.assertEqual(payment_status(loan, date(2025, 1, 2)), "pending")


class TestLoanService(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.clients = ClientService(self.db)
        self.service = LoanService(self.db)
        self.client_id = self.clients.create_client("Ana Lima", "12345678901", "11987654321", "Rua A, 1")

    def tearDown(self):
        self.db.close()

    def test_simulate_ok(self):
        result = self.service.simulate(self.client_id, 500, 4)
        self.assertTrue(result)
        self.assertEqual(result.value.total_amount, 675.0)

    def test_simulate_exceeding_credit(self):
        result = self.service.simulate(self.client_id, 1500, 4)
        self.assertFalse(result)
        self.assertEqual(result.error_type, ErrorType.INSUFFICIENT_CREDIT)

    def test_simulate_missing_client(self):
        result = self.service.simulate(999, 100, 4)
        self.assertEqual(result.error_type, ErrorType.NOT_FOUND)

    def test_simulate_invalid_terms(self):
        result = self.service.simulate(self.client_id, 100, 0)
        self.assertEqual(result.error_type, ErrorType.VALIDATION)

    def test_create_loan_reserves_credit(self):
        loan_id = self.service.create_loan(self.client_id, 400, 4, loan_date="2025-01-06")

        loan = self.service.get_loan(loan_id)
        self.assertEqual(loan['status'], "pending")
        self.assertEqual(loan['weeks_paid'], 0)
        self.assertEqual(loan['next_payment_date'], "2025-01-13")
        self.assertEqual(loan['due_date'], "2025-02-03")
        self.assertEqual(loan['client_name'], "Ana Lima")

        client = self.db.get_client(self.client_id)
        self.assertEqual(client['available_credit'], 600)
        self.assertEqual(client['total_borrowed'], 400)
        self.assertEqual(client['is_first_loan'], 0)

    def test_create_loan_with_fixed_total(self):
        loan_id = self.service.create_loan(self.client_id, 400, 4, interest_rate=None, total_amount=480,
                                           loan_date="2025-01-06")
        loan = self.service.get_loan(loan_id)
        self.assertEqual(loan['interest_rate'], 20.0)
        self.assertEqual(loan['weekly_payment'], 120.0)

    def test_create_loan_over_credit(self):
        with self.assertRaises(InsufficientCreditError):
            self.service.create_loan(self.client_id, 1001, 4)
        self.assertEqual(self.service.list_loans(), [])

    def test_create_loan_unknown_client(self):
        with self.assertRaises(ClientNotFoundError):
            self.service.create_loan(999, 100, 4)

    def test_create_loan_cannot_start_completed(self):
        with self.assertRaises(ValidationError):
            self.service.create_loan(self.client_id, 100, 4, status="completed")

    def test_get_missing_loan(self):
        with self.assertRaises(LoanNotFoundError):
            self.service.get_loan(404)

    def test_delete_open_loan_restores_credit(self):
        loan_id = self.service.create_loan(self.client_id, 400, 4, loan_date="2025-01-06")
        self.service.delete_loan(loan_id)

        self.assertEqual(self.service.list_loans(), [])
        self.assertEqual(self.db.get_client(self.client_id)['available_credit'], 1000)

    def test_schedule_from_weeks_paid(self):
        loan_id = self.service.create_loan(self.client_id, 400, 4, loan_date="2025-01-06")
        self.db.update_loan_progress(loan_id, 1, "pending", "2025-01-20")
        schedule = self.service.payment_schedule(self.service.get_loan(loan_id))

        self.assertEqual([row.week_number for row in schedule], [1, 2, 3, 4])
        self.assertEqual(schedule[0].due_date, date(2025, 1, 13))
        self.assertEqual(schedule[3].due_date, date(2025, 2, 3))
        self.assertEqual([row.paid for row in schedule], [True, False, False, False])
        self.assertEqual(schedule[0].amount, 135.0)

    def test_schedule_from_payments(self):
        loan_id = self.service.create_loan(self.client_id, 400, 4, loan_date="2025-01-06")
        payments = [{'week_number': 2}, {'week_number': None}]
        schedule = self.service.payment_schedule(self.service.get_loan(loan_id), payments)
        self.assertEqual([row.paid for row in schedule], [False, True, False, False])

    def test_first_payment_date_without_due_date(self):
        loan = {'due_date': None, 'loan_date': "2025-01-06", 'total_weeks': 4}
        self.assertEqual(LoanService.first_payment_date(loan), date(2025, 1, 13))

    def test_dashboard_stats(self):
        first = self.service.create_loan(self.client_id, 400, 4, loan_date="2025-01-06")
        self.service.create_loan(self.client_id, 200, 2, loan_date="2025-01-06")
        self.db.update_loan_progress(first, 1, "pending", "2025-01-20")

        stats = self.service.dashboard_stats()
        self.assertEqual(stats['clients'], 1)
        self.assertEqual(stats['active_loans'], 2)
        self.assertEqual(stats['total_lent'], 600)
        self.assertEqual(stats['pending_installments'], 5)


if __name__ == "__main__":
    unittest.main(verbosity=2)
