"""Tests for duplicate payment handling and loan status sync."""
import sys
import os
import unittest

import pandas as pd

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loandesk.database import DatabaseManager
from loandesk.services.client_service import ClientService
from loandesk.services.loan_service import LoanService
from loandesk.services.payment_service import PaymentService
from loandesk.services.reconciler import (
    PaymentReconciler,
    dedupe_payments,
    dedupe_payments_df,
    duplicate_payments,
    paid_amount,
    paid_by_loan,
)


def _payment(id, loan_id, week, day, amount=100.0):
    return {'id': id, 'loan_id': loan_id, 'week_number': week,
            'payment_date': f"2025-01-{day:02d}", 'payment_amount': amount}


class TestDeduplication(unittest.TestCase):

    def test_keeps_earliest_per_installment(self):
        payments = [_payment(1, 1, 1, 10), _payment(2, 1, 1, 9), _payment(3, 1, 2, 17)]
        kept = dedupe_payments(payments)
        self.assertEqual([p['id'] for p in kept], [2, 3])

    def test_same_date_keeps_lowest_id(self):
        payments = [_payment(5, 1, 1, 10), _payment(4, 1, 1, 10)]
        self.assertEqual([p['id'] for p in dedupe_payments(payments)], [4])
        self.assertEqual([p['id'] for p in duplicate_payments(payments)], [5])

    def test_payments_without_week_never_merged(self):
        payments = [_payment(1, 1, None, 10), _payment(2, 1, None, 10)]
        self.assertEqual(len(dedupe_payments(payments)), 2)

    def test_loans_are_separate(self):
        payments = [_payment(1, 1, 1, 10), _payment(2, 2, 1, 10)]
        self.assertEqual(len(dedupe_payments(payments)), 2)

    def test_totals(self):
        payments = [_payment(1, 1, 1, 10), _payment(2, 1, 1, 11), _payment(3, 2, 1, 12, 50.0)]
        self.assertEqual(paid_amount(payments), 150.0)
        self.assertEqual(paid_by_loan(payments), {1: 100.0, 2: 50.0})

    def test_dataframe_dedupe(self):
        df = pd.DataFrame([
            _payment(1, 1, 1, 10),
            _payment(2, 1, 1, 9),
            _payment(3, 1, None, 11),
            _payment(4, 1, None, 11),
        ])
        result = dedupe_payments_df(df)
        self.assertEqual(sorted(result['id'].tolist()), [2, 3, 4])

    def test_dataframe_dedupe_empty(self):
        df = pd.DataFrame(columns=['id', 'loan_id', 'week_number', 'payment_date', 'payment_amount'])
        self.assertTrue(dedupe_payments_df(df).empty)


class TestPaymentReconciler(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        client_id = ClientService(self.db).create_client("Davi Rocha", "12345678901", "11987654321", "Rua D, 4")
        # 400 over 4 weeks at 35%: 135 per week, first installment 2025-01-13
        self.loan_id = LoanService(self.db).create_loan(client_id, 400, 4, loan_date="2025-01-06")
        self.reconciler = PaymentReconciler(self.db)

    def tearDown(self):
        self.db.close()

    def test_cleanup_removes_duplicates(self):
        PaymentService(self.db).register_payment(self.loan_id, "2025-01-13")
        self.db.add_payment(self.loan_id, 135.0, "2025-01-14", 1)

        removed = self.reconciler.cleanup_duplicate_payments()

        self.assertEqual(removed, 1)
        payments = self.db.get_payments(self.loan_id)
        self.assertEqual(len(payments), 1)
        self.assertEqual(payments[0]['payment_date'], "2025-01-13")

    def test_cleanup_nothing_to_do(self):
        self.assertEqual(self.reconciler.cleanup_duplicate_payments(), 0)

    def test_sync_from_payment_rows(self):
        self.db.add_payment(self.loan_id, 135.0, "2025-01-13", 1)
        self.db.add_payment(self.loan_id, 135.0, "2025-01-20", 2)

        changed = self.reconciler.sync_loan_status()

        self.assertEqual(changed, [self.loan_id])
        loan = self.db.get_loan(self.loan_id)
        self.assertEqual(loan['weeks_paid'], 2)
        self.assertEqual(loan['status'], "pending")
        self.assertEqual(loan['next_payment_date'], "2025-01-27")

    def test_sync_points_next_date_at_missing_week(self):
        self.db.add_payment(self.loan_id, 135.0, "2025-01-13", 1)
        self.db.add_payment(self.loan_id, 135.0, "2025-01-27", 3)

        self.reconciler.sync_loan_status(self.loan_id)

        loan = self.db.get_loan(self.loan_id)
        self.assertEqual(loan['weeks_paid'], 2)
        self.assertEqual(loan['next_payment_date'], "2025-01-20")

    def test_sync_completes_fully_paid_loan(self):
        for week, day in enumerate(["2025-01-13", "2025-01-20", "2025-01-27", "2025-02-03"], start=1):
            self.db.add_payment(self.loan_id, 135.0, day, week)

        self.reconciler.sync_loan_status(self.loan_id)

        loan = self.db.get_loan(self.loan_id)
        self.assertEqual(loan['status'], "completed")
        self.assertIsNone(loan['next_payment_date'])

    def test_sync_leaves_consistent_loans(self):
        PaymentService(self.db).register_payment(self.loan_id, "2025-01-13")
        self.assertEqual(self.reconciler.sync_loan_status(), [])

    def test_reconcile(self):
        PaymentService(self.db).register_payment(self.loan_id, "2025-01-13")
        self.db.add_payment(self.loan_id, 135.0, "2025-01-13", 1)
        self.db.add_payment(self.loan_id, 135.0, "2025-01-20", 2)

        result = self.reconciler.reconcile()

        self.assertEqual(result['removed_payments'], 1)
        self.assertEqual(result['updated_loans'], [self.loan_id])
        self.assertEqual(self.db.get_loan(self.loan_id)['weeks_paid'], 2)


if __name__ == "__main__":
    unittest.main(verbosity=2)
