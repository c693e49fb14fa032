"""Operator activity log for LoanDesk.

Every business operation (client edits, loans, payments, data repair)
leaves an entry in the ``activity_logs`` table so the operator can audit
what happened and when. This is separate from the diagnostic logging in
``loandesk.logger``.
"""
from datetime import date, datetime, timedelta

import pandas as pd

from loandesk.config import (
    DATETIME_FORMAT_STORAGE,
    DEFAULT_LOG_RETENTION_DAYS,
    DEFAULT_OPERATOR_NAME,
    LOG_TYPES,
    MAX_ACTIVITY_LOGS,
    SETTING_OPERATOR_NAME,
)
from loandesk.formatters import format_currency, format_datetime
from loandesk.logger import get_logger

logger = get_logger(__name__)

ENTITY_CLIENT = "Client"
ENTITY_LOAN = "Loan"
ENTITY_PAYMENT = "Payment"
ENTITY_SYSTEM = "System"


def _action_type(action, create_words, update_words, delete_words):
    """Derive the entry type from the wording of the action."""
    lowered = action.lower()
    if any(word in lowered for word in create_words):
        return "create"
    if any(word in lowered for word in update_words):
        return "update"
    if any(word in lowered for word in delete_words):
        return "delete"
    return "system"


def _as_timestamp(value, end_of_day=False):
    """Convert a date/datetime/string filter bound into a storage timestamp.

    A plain date used as an upper bound covers the whole day.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime(DATETIME_FORMAT_STORAGE)
    if isinstance(value, date):
        if end_of_day:
            value = value + timedelta(days=1)
        return value.strftime(DATETIME_FORMAT_STORAGE)
    return str(value)


class ActivityLogger:
    """Persists and queries operator activity entries.

    Attributes:
        db: DatabaseManager used for storage.
        max_entries: Oldest entries beyond this count are discarded.
    """

    def __init__(self, db_manager, max_entries=MAX_ACTIVITY_LOGS, clock=None):
        self.db = db_manager
        self.max_entries = max_entries
        self._clock = clock or datetime.now

    @property
    def current_user(self):
        return self.db.get_setting(SETTING_OPERATOR_NAME, DEFAULT_OPERATOR_NAME)

    def set_current_user(self, username):
        """Record the operator name and log the start of their session."""
        self.db.set_setting(SETTING_OPERATOR_NAME, username)
        return self.log_session_start()

    def log(self, action, entity, entity_id=None, details=None, type="system"):
        """Store a new entry and return it as a dict.

        Raises:
            ValueError: If ``type`` is not a known entry type.
        """
        if type not in LOG_TYPES:
            raise ValueError(f"Unknown activity type '{type}'")

        entry = {
            'timestamp': self._clock().strftime(DATETIME_FORMAT_STORAGE),
            'user': self.current_user,
            'action': action,
            'entity': entity,
            'entity_id': str(entity_id) if entity_id is not None else None,
            'details': details or f"{action} on {entity}",
            'type': type,
        }
        entry['id'] = self.db.add_activity_log(**entry)
        self.db.trim_activity_logs(self.max_entries)

        logger.info("[%s] %s: %s - %s %s", type.upper(), entry['user'], action, entity, entry['entity_id'] or "")
        return entry

    def log_client_action(self, action, client_name, client_id, details=None):
        entry_type = _action_type(action, ("create", "add"), ("edit", "update"), ("delete", "remove"))
        return self.log(action, ENTITY_CLIENT, client_id,
                        details or f"{action} client: {client_name}", entry_type)

    def log_loan_action(self, action, client_name, loan_id, amount=None, details=None):
        entry_type = _action_type(action, ("create", "approve"), ("edit", "update", "sync"),
                                  ("delete", "cancel"))
        amount_text = f" of {format_currency(amount)}" if amount else ""
        return self.log(action, ENTITY_LOAN, loan_id,
                        details or f"{action} loan{amount_text} for {client_name}", entry_type)

    def log_payment_action(self, action, client_name, loan_id, amount, week_number, details=None):
        return self.log(action, ENTITY_PAYMENT, f"{loan_id}_week_{week_number}",
                        details or f"{action} payment of {format_currency(amount)} (week {week_number}) - {client_name}",
                        "payment")

    def log_system_action(self, action, details):
        return self.log(action, ENTITY_SYSTEM, None, details, "system")

    def log_session_start(self):
        user = self.current_user
        return self.log("Session started", ENTITY_SYSTEM, None,
                        f"Operator {user} opened the book at {format_datetime(self._clock())}", "login")

    def get_logs(self, user=None, type=None, entity=None, start=None, end=None, limit=None):
        """Return entries newest first, filtered by any combination of criteria.

        Args:
            user: Case-insensitive substring of the operator name.
            type: Exact entry type.
            entity: Case-insensitive substring of the entity name.
            start: Earliest date/datetime (inclusive).
            end: Latest date (whole day included) or datetime (exclusive).
            limit: Maximum number of entries.
        """
        return self.db.get_activity_logs(
            user=user,
            type=type,
            entity=entity,
            start=_as_timestamp(start),
            end=_as_timestamp(end, end_of_day=True),
            limit=limit,
        )

    def get_stats(self):
        today_start = datetime.combine(self._clock().date(), datetime.min.time())
        return {
            'total': self.db.count_activity_logs(),
            'today': self.db.count_activity_logs(since=today_start.strftime(DATETIME_FORMAT_STORAGE)),
            'by_type': self.db.count_activity_logs_by('type'),
            'by_user': self.db.count_activity_logs_by('user'),
        }

    def clear_old_logs(self, days_to_keep=DEFAULT_LOG_RETENTION_DAYS):
        """Delete entries older than ``days_to_keep`` days. Returns the number removed."""
        cutoff = self._clock() - timedelta(days=days_to_keep)
        removed = self.db.delete_activity_logs_before(cutoff.strftime(DATETIME_FORMAT_STORAGE))
        if removed > 0:
            self.log_system_action("Log cleanup",
                                   f"Removed {removed} old entries (older than {days_to_keep} days)")
        return removed

    def export_csv(self, output_path, **filters):
        """Write entries to a CSV file with Date/Time, Action, Description, User columns."""
        logs = self.get_logs(**filters)
        df = pd.DataFrame([{
            "Date/Time": format_datetime(entry['timestamp']),
            "Action": entry['action'],
            "Description": entry['details'],
            "User": entry['user'],
        } for entry in logs], columns=["Date/Time", "Action", "Description", "User"])
        try:
            df.to_csv(output_path, index=False, encoding='utf-8')
            return True, f"Exported {len(logs)} entries."
        except OSError as e:
            logger.error("Activity log export failed: %s", e)
            return False, f"CSV Export Failed: {e}"
