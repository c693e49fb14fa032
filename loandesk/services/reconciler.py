"""Payment reconciliation service for LoanDesk.

Duplicate payment rows for the same installment (double clicks, retried
registrations) must never be counted twice. This module provides:
- Deduplication of payments by (loan, week number)
- Paid totals per loan over the deduplicated rows
- Repair routines that delete duplicates and resync loan progress
"""
import pandas as pd

from loandesk.config import STATUS_COMPLETED, STATUS_PENDING
from loandesk.formatters import to_storage_date
from loandesk.logger import get_logger
from loandesk.services.loan_service import LoanService, first_unpaid_week, paid_week_numbers

logger = get_logger(__name__)


def payment_key(payment):
    """Identity of the installment a payment settles.

    Payments without a week number are keyed by their date and row id, so
    they are never merged with each other.
    """
    if payment.get('week_number') is None:
        return (payment['loan_id'], "date", payment.get('payment_date'), payment.get('id'))
    return (payment['loan_id'], payment['week_number'])


def _sort_key(payment):
    return (payment.get('payment_date') or "", payment.get('id') or 0)


def dedupe_payments(payments):
    """Keep the earliest payment per installment.

    Ties on the date keep the lowest row id. The result is ordered by
    loan, then date.
    """
    kept = {}
    for payment in sorted(payments, key=_sort_key):
        key = payment_key(payment)
        if key not in kept:
            kept[key] = payment
    return sorted(kept.values(), key=lambda p: (p['loan_id'],) + _sort_key(p))


def duplicate_payments(payments):
    """Rows that dedupe_payments() would drop."""
    kept_ids = {p['id'] for p in dedupe_payments(payments)}
    return [p for p in payments if p['id'] not in kept_ids]


def paid_amount(payments):
    """Sum of payment amounts after deduplication."""
    return round(sum(float(p['payment_amount'] or 0) for p in dedupe_payments(payments)), 2)


def paid_by_loan(payments):
    """Map loan_id -> deduplicated paid total."""
    totals = {}
    for payment in dedupe_payments(payments):
        totals[payment['loan_id']] = totals.get(payment['loan_id'], 0.0) + float(payment['payment_amount'] or 0)
    return {loan_id: round(total, 2) for loan_id, total in totals.items()}


def dedupe_payments_df(df):
    """DataFrame flavour of dedupe_payments() used by the reports."""
    if df.empty:
        return df
    df = df.sort_values(by=['payment_date', 'id'])
    week_key = df['week_number'].apply(lambda w: None if pd.isna(w) else str(int(w)))
    fallback = "date_" + df['payment_date'].astype(str) + "_" + df['id'].astype(str)
    df = df.assign(_key=df['loan_id'].astype(str) + ":" + week_key.fillna(fallback))
    return df.drop_duplicates(subset='_key', keep='first').drop(columns='_key')


class PaymentReconciler:
    """Repairs payment data and loan progress.

    Loans track weeks_paid and status redundantly with their payment rows.
    These routines make the loan rows agree with the deduplicated payments.
    """

    def __init__(self, db_manager, activity_logger=None):
        """Initialize PaymentReconciler.

        Args:
            db_manager: DatabaseManager instance for data persistence.
            activity_logger: Optional ActivityLogger instance.
        """
        self.db = db_manager
        self._activity = activity_logger

    @property
    def activity(self):
        """Lazy-load the activity logger."""
        if self._activity is None:
            from loandesk.activity_log import ActivityLogger
            self._activity = ActivityLogger(self.db)
        return self._activity

    def cleanup_duplicate_payments(self):
        """Delete every duplicate installment payment, keeping the earliest.

        Returns:
            Number of rows removed.
        """
        duplicates = duplicate_payments(self.db.get_payments())
        if not duplicates:
            return 0

        with self.db.transaction():
            removed = self.db.delete_payments([p['id'] for p in duplicates])

        logger.info("Removed %s duplicate payments", removed)
        self.activity.log_system_action("Duplicate payment cleanup", f"Removed {removed} duplicate payment(s)")
        return removed

    def expected_progress(self, loan, payments):
        """Return (weeks_paid, status, next_payment_date) implied by the payments.

        The next payment date is the due date of the lowest unpaid
        installment, so a gap left by a deleted payment is collected first.
        """
        paid_weeks = paid_week_numbers(payments)
        next_week = first_unpaid_week(loan['total_weeks'], paid_weeks)
        if next_week is None:
            return len(paid_weeks), STATUS_COMPLETED, None
        status = loan['status'] if loan['status'] != STATUS_COMPLETED else STATUS_PENDING
        return len(paid_weeks), status, to_storage_date(LoanService.installment_date(loan, next_week))

    def sync_loan_status(self, loan_id=None):
        """Recompute weeks_paid, status and next payment date from the payment rows.

        Args:
            loan_id: Limit the sync to one loan. All loans when None.

        Returns:
            IDs of the loans that were changed.
        """
        if loan_id is not None:
            loan = self.db.get_loan(loan_id)
            loans = [loan] if loan else []
        else:
            loans = self.db.get_loans()

        payments_by_loan = {}
        for payment in self.db.get_payments(loan_id):
            payments_by_loan.setdefault(payment['loan_id'], []).append(payment)

        changed = []
        with self.db.transaction():
            for loan in loans:
                weeks_paid, status, next_date = self.expected_progress(loan, payments_by_loan.get(loan['id'], []))
                drifted = (
                    int(loan['weeks_paid'] or 0) != weeks_paid
                    or (status == STATUS_COMPLETED) != (loan['status'] == STATUS_COMPLETED)
                    or loan.get('next_payment_date') != next_date
                )
                if not drifted:
                    continue
                self.db.update_loan_progress(loan['id'], weeks_paid, status, next_date)
                changed.append(loan['id'])

        if changed:
            logger.info("Synced status of %s loan(s)", len(changed))
            self.activity.log_system_action("Loan status sync", f"Updated {len(changed)} loan(s): {changed}")
        return changed

    def reconcile(self):
        """Cleanup duplicates, then resync every loan."""
        removed = self.cleanup_duplicate_payments()
        changed = self.sync_loan_status()
        return {'removed_payments': removed, 'updated_loans': changed}
