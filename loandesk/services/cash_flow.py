"""Cash flow service for LoanDesk.

The single place where money totals are computed. Every screen (dashboard,
cash flow, reports) reads its figures from here so they always agree.
"""
from loandesk.config import DEFAULT_INITIAL_BALANCE, SETTING_INITIAL_BALANCE, STATUS_COMPLETED
from loandesk.data_structures import CashSummary
from loandesk.logger import get_logger
from loandesk.services.reconciler import paid_by_loan

logger = get_logger(__name__)


class CashFlowService:
    """Computes cash position from loans and deduplicated payments."""

    def __init__(self, db_manager):
        self.db = db_manager

    def get_initial_balance(self):
        raw = self.db.get_setting(SETTING_INITIAL_BALANCE)
        if raw is None:
            return float(DEFAULT_INITIAL_BALANCE)
        try:
            return float(raw)
        except ValueError:
            logger.warning("Invalid initial balance setting %r, using default", raw)
            return float(DEFAULT_INITIAL_BALANCE)

    def set_initial_balance(self, amount):
        self.db.set_setting(SETTING_INITIAL_BALANCE, float(amount))

    @staticmethod
    def loan_state(loan, paid):
        """Return (remaining, state) for a loan given its paid total.

        A loan counts as active while it is not completed and still has a
        balance to collect.
        """
        remaining = max(round(float(loan['total_amount'] or 0) - paid, 2), 0.0)
        active = loan['status'] != STATUS_COMPLETED and remaining > 0
        return remaining, ("active" if active else "completed")

    def loan_rows(self):
        """Per-loan figures: client, amount, total, paid, remaining, state."""
        paid = paid_by_loan(self.db.get_payments())
        rows = []
        for loan in self.db.get_loans():
            loan_paid = paid.get(loan['id'], 0.0)
            remaining, state = self.loan_state(loan, loan_paid)
            rows.append({
                'loan_id': loan['id'],
                'client_id': loan['client_id'],
                'client_name': loan.get('client_name'),
                'loan_amount': float(loan['loan_amount'] or 0),
                'total_amount': float(loan['total_amount'] or 0),
                'paid': loan_paid,
                'remaining': remaining,
                'state': state,
                'loan_date': loan['loan_date'],
            })
        return rows

    def summary(self, initial_balance=None) -> CashSummary:
        """Overall cash position.

        available cash = initial balance - total loaned + total received
        """
        if initial_balance is None:
            initial_balance = self.get_initial_balance()
        rows = self.loan_rows()

        total_loaned = round(sum(r['loan_amount'] for r in rows), 2)
        total_received = round(sum(r['paid'] for r in rows), 2)
        active = [r for r in rows if r['state'] == "active"]

        return CashSummary(
            initial_balance=float(initial_balance),
            total_loaned=total_loaned,
            total_received=total_received,
            total_in_street=round(sum(r['remaining'] for r in active), 2),
            profit=round(total_received - total_loaned, 2),
            available_cash=round(float(initial_balance) - total_loaned + total_received, 2),
            active_loans=len(active),
            completed_loans=len(rows) - len(active),
        )
