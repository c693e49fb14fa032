"""Tests for the operator activity log."""
import sys
import os
import shutil
import tempfile
import unittest
from datetime import date, datetime

import pandas as pd

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from loandesk.activity_log import ActivityLogger
from loandesk.database import DatabaseManager


class TestActivityLogger(unittest.TestCase):

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.now = datetime(2025, 1, 1, 10, 0, 0)
        self.activity = ActivityLogger(self.db, clock=lambda: self.now)

    def tearDown(self):
        self.db.close()

    def test_log_entry(self):
        entry = self.activity.log("Create client", "Client", 7, type="create")

        self.assertEqual(entry['timestamp'], "2025-01-01 10:00:00")
        self.assertEqual(entry['user'], "System")
        self.assertEqual(entry['entity_id'], "7")
        self.assertEqual(entry['details'], "Create client on Client")
        self.assertEqual(len(self.activity.get_logs()), 1)

    def test_unknown_type_rejected(self):
        with self.assertRaises(ValueError):
            self.activity.log("Something", "Client", type="bogus")

    def test_set_current_user_logs_session(self):
        entry = self.activity.set_current_user("Maria")
        self.assertEqual(self.activity.current_user, "Maria")
        self.assertEqual(entry['type'], "login")
        self.assertEqual(entry['user'], "Maria")

    def test_action_types_from_wording(self):
        self.assertEqual(self.activity.log_client_action("Create client", "Ana", 1)['type'], "create")
        self.assertEqual(self.activity.log_client_action("Update client", "Ana", 1)['type'], "update")
        self.assertEqual(self.activity.log_client_action("Delete client", "Ana", 1)['type'], "delete")
        self.assertEqual(self.activity.log_loan_action("Sync loan", "Ana", 3)['type'], "update")
        self.assertEqual(self.activity.log_payment_action("Register", "Ana", 3, 135, 2)['type'], "payment")

    def test_payment_entry_id(self):
        entry = self.activity.log_payment_action("Register", "Ana", 3, 135, 2)
        self.assertEqual(entry['entity_id'], "3_week_2")
        self.assertIn("R$ 135.00", entry['details'])

    def test_filters(self):
        self.activity.set_current_user("Maria")
        self.activity.log_client_action("Create client", "Ana", 1)
        self.activity.set_current_user("Joao")
        self.activity.log_loan_action("Create loan", "Ana", 1, 500)

        self.assertEqual(len(self.activity.get_logs(user="MARIA")), 2)
        self.assertEqual(len(self.activity.get_logs(type="create")), 2)
        self.assertEqual(len(self.activity.get_logs(entity="loan")), 1)
        self.assertEqual(len(self.activity.get_logs(limit=1)), 1)

    def test_date_filters(self):
        self.activity.log_system_action("Early", "January entry")
        self.now = datetime(2025, 3, 1, 9, 0, 0)
        self.activity.log_system_action("Late", "March entry")

        self.assertEqual([e['action'] for e in self.activity.get_logs()], ["Late", "Early"])
        self.assertEqual([e['action'] for e in self.activity.get_logs(start=date(2025, 2, 1))], ["Late"])
        self.assertEqual([e['action'] for e in self.activity.get_logs(end=date(2025, 1, 1))], ["Early"])

    def test_entries_capped(self):
        capped = ActivityLogger(self.db, max_entries=3, clock=lambda: self.now)
        for i in range(5):
            capped.log_system_action(f"Action {i}", "details")
        self.assertEqual(len(capped.get_logs()), 3)

    def test_clear_old_logs(self):
        self.activity.log_system_action("Old", "old entry")
        self.now = datetime(2025, 3, 1, 10, 0, 0)
        self.activity.log_system_action("Recent", "recent entry")

        removed = self.activity.clear_old_logs(30)

        self.assertEqual(removed, 1)
        actions = [e['action'] for e in self.activity.get_logs()]
        self.assertNotIn("Old", actions)
        self.assertIn("Log cleanup", actions)

    def test_clear_nothing(self):
        self.activity.log_system_action("Fresh", "entry")
        self.assertEqual(self.activity.clear_old_logs(30), 0)
        self.assertEqual(len(self.activity.get_logs()), 1)

    def test_stats(self):
        self.activity.log_system_action("Old", "entry")
        self.now = datetime(2025, 1, 2, 8, 0, 0)
        self.activity.log_client_action("Create client", "Ana", 1)

        stats = self.activity.get_stats()
        self.assertEqual(stats['total'], 2)
        self.assertEqual(stats['today'], 1)
        self.assertEqual(stats['by_type'], {'system': 1, 'create': 1})

    def test_export_csv(self):
        tmpdir = tempfile.mkdtemp()
        try:
            self.activity.log_client_action("Create client", "Ana", 1)
            path = os.path.join(tmpdir, "log.csv")
            success, msg = self.activity.export_csv(path)

            self.assertTrue(success)
            self.assertEqual(msg, "Exported 1 entries.")
            df = pd.read_csv(path)
            self.assertEqual(list(df.columns), ["Date/Time", "Action", "Description", "User"])
            self.assertEqual(df.iloc[0]['Date/Time'], "01/01/2025 10:00")
        finally:
            shutil.rmtree(tmpdir)


if __name__ == "__main__":
    unittest.main(verbosity=2)
