"""Payment registry service for LoanDesk.

Registers weekly installments against a loan and keeps the loan's progress
and the client's credit in step with the payment rows.
"""
from datetime import date

from loandesk.config import STATUS_COMPLETED, STATUS_PENDING
from loandesk.data_structures import PaymentOutcome
from loandesk.exceptions import LoanCompletedError, LoanDeskError, LoanNotFoundError
from loandesk.formatters import parse_date, to_storage_date
from loandesk.logger import get_logger
from loandesk.services.loan_service import LoanService, first_unpaid_week, paid_week_numbers

logger = get_logger(__name__)


class PaymentService:
    """Handles installment payments.

    Attributes:
        db: DatabaseManager for persistence.
        attachments: AttachmentStore used for receipt files (optional).
    """

    def __init__(self, db_manager, activity_logger=None, attachment_store=None, reconciler=None):
        self.db = db_manager
        self._activity = activity_logger
        self.attachments = attachment_store
        self._reconciler = reconciler

    @property
    def activity(self):
        """Lazy-load the activity logger."""
        if self._activity is None:
            from loandesk.activity_log import ActivityLogger
            self._activity = ActivityLogger(self.db)
        return self._activity

    @property
    def reconciler(self):
        """Lazy-load the reconciler."""
        if self._reconciler is None:
            from .reconciler import PaymentReconciler
            self._reconciler = PaymentReconciler(self.db, self._activity)
        return self._reconciler

    def _restore_credit(self, loan):
        """Give the loan principal back to the client, capped at the credit limit."""
        client = self.db.get_client(loan['client_id'])
        if not client:
            return
        restored = float(client['available_credit'] or 0) + float(loan['loan_amount'])
        restored = min(restored, float(client['credit_limit'] or 0))
        self.db.update_client(loan['client_id'], available_credit=round(restored, 2))

    def _reserve_credit(self, loan):
        """Take the loan principal out of the client's available credit again."""
        client = self.db.get_client(loan['client_id'])
        if not client:
            return
        reserved = float(client['available_credit'] or 0) - float(loan['loan_amount'])
        self.db.update_client(loan['client_id'], available_credit=round(max(reserved, 0.0), 2))

    def register_payment(self, loan_id, payment_date=None, receipt_file=None):
        """Record the next weekly installment of a loan.

        The payment row, the loan progress and (on the final installment)
        the credit restoration are written in one transaction.

        Args:
            loan_id: Loan being paid.
            payment_date: Date of payment, defaults to today.
            receipt_file: Optional path of a receipt image/PDF to attach.

        Returns:
            PaymentOutcome describing the new state.

        Raises:
            LoanNotFoundError: If the loan does not exist.
            LoanCompletedError: If every installment is already paid.
            AttachmentError: If the receipt file is rejected.
        """
        loan = self.db.get_loan(loan_id)
        if not loan:
            raise LoanNotFoundError(loan_id=loan_id)

        total_weeks = int(loan['total_weeks'])
        paid_weeks = paid_week_numbers(self.db.get_payments(loan_id))
        new_week = first_unpaid_week(total_weeks, paid_weeks)
        if loan['status'] == STATUS_COMPLETED or new_week is None:
            raise LoanCompletedError(loan_id, int(loan['weeks_paid'] or 0), total_weeks)

        if receipt_file and self.attachments is None:
            raise LoanDeskError("Receipt attachments are not configured")
        if receipt_file:
            self.attachments.validate(receipt_file)

        paid_on = parse_date(payment_date) or date.today()
        paid_weeks = paid_weeks | {new_week}
        weeks_paid = len(paid_weeks)
        next_week = first_unpaid_week(total_weeks, paid_weeks)
        completed = next_week is None

        if completed:
            next_date = None
        else:
            next_date = to_storage_date(LoanService.installment_date(loan, next_week))

        with self.db.transaction():
            payment_id = self.db.add_payment(
                loan_id=loan_id,
                payment_amount=float(loan['weekly_payment']),
                payment_date=to_storage_date(paid_on),
                week_number=new_week,
            )
            self.db.update_loan_progress(
                loan_id,
                weeks_paid,
                STATUS_COMPLETED if completed else STATUS_PENDING,
                next_date,
            )
            if completed:
                self._restore_credit(loan)

        receipt_path = None
        if receipt_file:
            receipt_path = self.attachments.store(receipt_file, "payment-receipts", loan_id)
            self.db.update_payment_receipt(payment_id, receipt_path)

        logger.info("Payment %s registered: loan %s week %s/%s", payment_id, loan_id, new_week, total_weeks)
        self.activity.log_payment_action("Register", loan.get('client_name') or "-", loan_id,
                                         float(loan['weekly_payment']), new_week)
        if completed:
            self.activity.log_loan_action("Complete loan", loan.get('client_name') or "-", loan_id,
                                          details=f"Loan #{loan_id} fully paid ({total_weeks} installments)")

        return PaymentOutcome(
            payment_id=payment_id,
            loan_id=loan_id,
            week_number=new_week,
            completed=completed,
            remaining_weeks=max(total_weeks - weeks_paid, 0),
            receipt_path=receipt_path,
        )

    def payment_history(self, loan_id):
        """Payments of a loan ordered by week."""
        return self.db.get_payments(loan_id)

    def delete_payment(self, payment_id):
        """Remove a payment and bring the loan back in line with the rest.

        A loan that drops from completed back to open reserves its
        principal from the client's credit again.
        """
        payment = self.db.get_payment(payment_id)
        if not payment:
            raise LoanDeskError(f"Payment #{payment_id} not found", {'payment_id': payment_id})
        loan = self.db.get_loan(payment['loan_id'])

        with self.db.transaction():
            self.db.delete_payments([payment_id])
            self.reconciler.sync_loan_status(payment['loan_id'])
            if loan and loan['status'] == STATUS_COMPLETED:
                updated = self.db.get_loan(payment['loan_id'])
                if updated and updated['status'] != STATUS_COMPLETED:
                    self._reserve_credit(loan)

        self.activity.log_payment_action("Delete", (loan or {}).get('client_name') or "-", payment['loan_id'],
                                         float(payment['payment_amount']), payment['week_number'])
