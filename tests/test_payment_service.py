"""Tests for installment payments and their effect on loans and credit."""
import sys
import os
import shutil
import tempfile
import unittest

from PIL import Image

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loandesk.database import DatabaseManager
from loandesk.exceptions import LoanCompletedError, LoanDeskError, LoanNotFoundError
from loandesk.services.attachment_store import AttachmentStore
from loandesk.services.cash_flow import CashFlowService
from loandesk.services.client_service import ClientService
from loandesk.services.loan_service import LoanService
from loandesk.services.payment_service import PaymentService


class TestPaymentService(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.client_id = ClientService(self.db).create_client(
            "Bruno Lima", "12345678901", "11987654321", "Rua B, 2")
        self.loans = LoanService(self.db)
        self.service = PaymentService(self.db)
        # 500 over 2 weeks at 35%: 337.50 per week
        self.loan_id = self.loans.create_loan(self.client_id, 500, 2, loan_date="2025-01-06")

    def tearDown(self):
        self.db.close()

    def test_first_payment_advances_loan(self):
        outcome = self.service.register_payment(self.loan_id, "2025-01-13")

        self.assertEqual(outcome.week_number, 1)
        self.assertFalse(outcome.completed)
        self.assertEqual(outcome.remaining_weeks, 1)

        loan = self.db.get_loan(self.loan_id)
        self.assertEqual(loan['weeks_paid'], 1)
        self.assertEqual(loan['status'], "pending")
        self.assertEqual(loan['next_payment_date'], "2025-01-20")

        payment = self.db.get_payment(outcome.payment_id)
        self.assertEqual(payment['payment_amount'], 337.5)
        self.assertEqual(payment['payment_date'], "2025-01-13")
        self.assertEqual(payment['week_number'], 1)

    def test_final_payment_completes_and_restores_credit(self):
        self.assertEqual(self.db.get_client(self.client_id)['available_credit'], 500)

        self.service.register_payment(self.loan_id, "2025-01-13")
        outcome = self.service.register_payment(self.loan_id, "2025-01-20")

        self.assertTrue(outcome.completed)
        self.assertEqual(outcome.remaining_weeks, 0)
        loan = self.db.get_loan(self.loan_id)
        self.assertEqual(loan['status'], "completed")
        self.assertEqual(loan['weeks_paid'], 2)
        self.assertIsNone(loan['next_payment_date'])
        self.assertEqual(self.db.get_client(self.client_id)['available_credit'], 1000)

    def test_restored_credit_capped_at_limit(self):
        self.db.update_client(self.client_id, available_credit=900)
        self.service.register_payment(self.loan_id, "2025-01-13")
        self.service.register_payment(self.loan_id, "2025-01-20")
        self.assertEqual(self.db.get_client(self.client_id)['available_credit'], 1000)

    def test_payment_on_completed_loan_rejected(self):
        self.service.register_payment(self.loan_id, "2025-01-13")
        self.service.register_payment(self.loan_id, "2025-01-20")

        with self.assertRaises(LoanCompletedError):
            self.service.register_payment(self.loan_id, "2025-01-27")
        self.assertEqual(len(self.service.payment_history(self.loan_id)), 2)

    def test_payment_on_missing_loan(self):
        with self.assertRaises(LoanNotFoundError):
            self.service.register_payment(999)

    def test_receipt_requires_attachment_store(self):
        with self.assertRaises(LoanDeskError):
            self.service.register_payment(self.loan_id, receipt_file="/tmp/receipt.png")
        self.assertEqual(self.service.payment_history(self.loan_id), [])

    def test_delete_final_payment_reopens_loan(self):
        self.service.register_payment(self.loan_id, "2025-01-13")
        last = self.service.register_payment(self.loan_id, "2025-01-20")

        self.service.delete_payment(last.payment_id)

        loan = self.db.get_loan(self.loan_id)
        self.assertEqual(loan['weeks_paid'], 1)
        self.assertEqual(loan['status'], "pending")
        self.assertEqual(loan['next_payment_date'], "2025-01-20")
        self.assertEqual(self.db.get_client(self.client_id)['available_credit'], 500)

    def test_delete_middle_payment_then_pay_again(self):
        # 400 over 4 weeks at 35%: 135 per week, installments from 2025-01-13
        loan_id = self.loans.create_loan(self.client_id, 400, 4, loan_date="2025-01-06")
        paid = [self.service.register_payment(loan_id, day)
                for day in ("2025-01-13", "2025-01-20", "2025-01-27")]

        self.service.delete_payment(paid[1].payment_id)

        loan = self.db.get_loan(loan_id)
        self.assertEqual(loan['weeks_paid'], 2)
        self.assertEqual(loan['status'], "pending")
        self.assertEqual(loan['next_payment_date'], "2025-01-20")

        outcome = self.service.register_payment(loan_id, "2025-01-28")
        self.assertEqual(outcome.week_number, 2)
        self.assertFalse(outcome.completed)
        self.assertEqual(outcome.remaining_weeks, 1)
        self.assertEqual(self.db.get_loan(loan_id)['next_payment_date'], "2025-02-03")
        row = next(r for r in CashFlowService(self.db).loan_rows() if r['loan_id'] == loan_id)
        self.assertEqual(row['paid'], 405.0)

        last = self.service.register_payment(loan_id, "2025-02-03")
        self.assertEqual(last.week_number, 4)
        self.assertTrue(last.completed)
        weeks = [p['week_number'] for p in self.service.payment_history(loan_id)]
        self.assertEqual(weeks, [1, 2, 3, 4])

    def test_delete_missing_payment(self):
        with self.assertRaises(LoanDeskError):
            self.service.delete_payment(12345)

    def test_history_ordered_by_week(self):
        self.service.register_payment(self.loan_id, "2025-01-13")
        self.service.register_payment(self.loan_id, "2025-01-20")
        weeks = [p['week_number'] for p in self.service.payment_history(self.loan_id)]
        self.assertEqual(weeks, [1, 2])


class TestPaymentReceipts(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.db = DatabaseManager(":memory:")
        client_id = ClientService(self.db).create_client("Carla Dias", "12345678901", "11987654321", "Rua C, 3")
        self.loan_id = LoanService(self.db).create_loan(client_id, 300, 3, loan_date="2025-01-06")
        self.store = AttachmentStore(self.db, root=os.path.join(self.tmpdir, "store"))
        self.service = PaymentService(self.db, attachment_store=self.store)

    def tearDown(self):
        self.db.close()
        shutil.rmtree(self.tmpdir)

    def test_receipt_file_is_stored(self):
        receipt = os.path.join(self.tmpdir, "pix.png")
        Image.new("RGB", (20, 20), "white").save(receipt)

        outcome = self.service.register_payment(self.loan_id, "2025-01-13", receipt_file=receipt)

        self.assertTrue(os.path.isfile(outcome.receipt_path))
        self.assertIn("payment-receipts", outcome.receipt_path)
        self.assertEqual(self.db.get_payment(outcome.payment_id)['receipt_path'], outcome.receipt_path)

    def test_invalid_receipt_leaves_no_payment(self):
        receipt = os.path.join(self.tmpdir, "notes.txt")
        with open(receipt, "w") as f:
            f.write("paid")

        with self.assertRaises(LoanDeskError):
            self.service.register_payment(self.loan_id, receipt_file=receipt)
        self.assertEqual(self.service.payment_history(self.loan_id), [])
        self.assertEqual(self.db.get_loan(self.loan_id)['weeks_paid'], 0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
