"""Tests for upcoming payment tracking and reminder messages."""
import sys
import os
import unittest
from datetime import date

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loandesk.data_structures import UpcomingPayment
from loandesk.database import DatabaseManager
from loandesk.exceptions import ValidationError
from loandesk.reminders import (
    URGENCY_OVERDUE,
    URGENCY_TODAY,
    URGENCY_UPCOMING,
    URGENCY_URGENT,
    ReminderService,
    build_reminder_message,
    classify,
    whatsapp_url,
)
from loandesk.services.client_service import ClientService
from loandesk.services.loan_service import LoanService
from loandesk.services.payment_service import PaymentService

TODAY = date(2025, 3, 10)


def _upcoming(days, weeks_paid=0):
    return UpcomingPayment(
        loan_id=1, client_id=1, client_name="Ana Souza", client_phone="(11) 98765-4321",
        weekly_payment=337.5, weeks_paid=weeks_paid, total_weeks=4,
        next_payment_date=date(2025, 3, 8), days_until_due=days, urgency=classify(days),
    )


class TestClassification(unittest.TestCase):

    def test_classify(self):
        self.assertEqual(classify(-1), URGENCY_OVERDUE)
        self.assertEqual(classify(0), URGENCY_TODAY)
        self.assertEqual(classify(1), URGENCY_URGENT)
        self.assertEqual(classify(2), URGENCY_URGENT)
        self.assertEqual(classify(3), URGENCY_UPCOMING)


class TestMessages(unittest.TestCase):

    def test_overdue_message(self):
        message = build_reminder_message(_upcoming(-1))
        self.assertIn("PAYMENT OVERDUE", message)
        self.assertIn("1 day overdue", message)
        self.assertIn("Installment: 1 of 4", message)
        self.assertIn("R$ 337.50", message)
        self.assertIn("08/03/2025", message)

    def test_due_today_message(self):
        self.assertIn("due today", build_reminder_message(_upcoming(0)))

    def test_future_message_plural(self):
        message = build_reminder_message(_upcoming(3, weeks_paid=2))
        self.assertIn("due in 3 days", message)
        self.assertIn("Installment: 3 of 4", message)
        self.assertIn("Thank you", message)

    def test_whatsapp_url(self):
        url = whatsapp_url("(11) 98765-4321", "Hi there")
        self.assertEqual(url, "https://wa.me/5511987654321?text=Hi%20there")

    def test_whatsapp_url_without_phone(self):
        with self.assertRaises(ValidationError):
            whatsapp_url("", "Hi")


class TestReminderService(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        clients = ClientService(self.db)
        self.loans = LoanService(self.db)
        self.service = ReminderService(self.db)

        due_dates = {
            "Ana Souza": "2025-03-08",      # 2 days late
            "Bruno Lima": "2025-03-10",     # today
            "Carla Dias": "2025-03-12",     # in 2 days
            "Davi Rocha": "2025-03-15",     # in 5 days
            "Elisa Prado": "2025-03-20",    # beyond the window
        }
        for index, (name, due) in enumerate(due_dates.items()):
            client_id = clients.create_client(name, f"{index}" * 11, "11987654321", "Rua A, 1")
            self.loans.create_loan(client_id, 100, 4, first_payment_date=due, loan_date="2025-03-01")

        settled = clients.create_client("Fabio Reis", "99999999999", "11987654321", "Rua F, 6")
        loan_id = self.loans.create_loan(settled, 100, 1, first_payment_date="2025-03-09", loan_date="2025-03-01")
        PaymentService(self.db).register_payment(loan_id, "2025-03-09")

    def tearDown(self):
        self.db.close()

    def test_upcoming_within_window(self):
        upcoming = self.service.upcoming_payments(TODAY)

        self.assertEqual([p.client_name for p in upcoming],
                         ["Ana Souza", "Bruno Lima", "Carla Dias", "Davi Rocha"])
        self.assertEqual([p.days_until_due for p in upcoming], [-2, 0, 2, 5])
        self.assertEqual([p.urgency for p in upcoming],
                         [URGENCY_OVERDUE, URGENCY_TODAY, URGENCY_URGENT, URGENCY_UPCOMING])
        self.assertEqual(upcoming[0].installment_number, 1)

    def test_counts(self):
        counts = self.service.counts(TODAY)
        self.assertEqual(counts, {URGENCY_OVERDUE: 1, URGENCY_TODAY: 1, URGENCY_URGENT: 1, URGENCY_UPCOMING: 1})

    def test_reminder_for(self):
        payment = self.service.upcoming_payments(TODAY)[0]
        message, url = self.service.reminder_for(payment)
        self.assertIn("Ana Souza", message)
        self.assertTrue(url.startswith("https://wa.me/5511987654321?text="))


if __name__ == "__main__":
    unittest.main(verbosity=2)
