"""Business logic engine for LoanDesk.

This module provides the LoanDeskEngine class which acts as a facade over
the focused service classes in loandesk/services/. Views talk to the
engine; services are created on first use and share one ActivityLogger.

Service Classes:
    - ClientService: Client registry
    - LoanService: Loan lifecycle and simulation
    - PaymentService: Installment registration
    - PaymentReconciler: Duplicate cleanup and status sync
    - CashFlowService: Cash position
"""
from loandesk.activity_log import ActivityLogger
from loandesk.document_generator import DocumentGenerator
from loandesk.reminders import ReminderService
from loandesk.reports import ReportGenerator
from loandesk.services import (
    AttachmentStore,
    CashFlowService,
    ClientService,
    LoanService,
    PaymentReconciler,
    PaymentService,
)


class LoanDeskEngine:
    """Entry point to the business layer.

    Attributes:
        db: DatabaseManager instance for data persistence.
        printer_view_getter: Optional callable returning a QWebEngineView,
            handed to the document and report generators for PDF output.
    """

    def __init__(self, db_manager, printer_view_getter=None, attachments_root=None):
        self.db = db_manager
        self.printer_view_getter = printer_view_getter
        self._attachments_root = attachments_root
        self._activity = None
        self._clients = None
        self._loans = None
        self._payments = None
        self._reconciler = None
        self._cash_flow = None
        self._reminders = None
        self._reports = None
        self._documents = None
        self._attachments = None

    @property
    def activity(self):
        """Lazy-load the ActivityLogger."""
        if self._activity is None:
            self._activity = ActivityLogger(self.db)
        return self._activity

    @property
    def attachments(self):
        if self._attachments is None:
            self._attachments = AttachmentStore(self.db, self._attachments_root)
        return self._attachments

    @property
    def clients(self):
        """Lazy-load ClientService instance."""
        if self._clients is None:
            self._clients = ClientService(self.db, self.activity)
        return self._clients

    @property
    def loans(self):
        """Lazy-load LoanService instance."""
        if self._loans is None:
            self._loans = LoanService(self.db, self.activity)
        return self._loans

    @property
    def reconciler(self):
        if self._reconciler is None:
            self._reconciler = PaymentReconciler(self.db, self.activity)
        return self._reconciler

    @property
    def payments(self):
        """Lazy-load PaymentService instance."""
        if self._payments is None:
            self._payments = PaymentService(self.db, self.activity, self.attachments, self.reconciler)
        return self._payments

    @property
    def cash_flow(self):
        if self._cash_flow is None:
            self._cash_flow = CashFlowService(self.db)
        return self._cash_flow

    @property
    def reminders(self):
        if self._reminders is None:
            self._reminders = ReminderService(self.db)
        return self._reminders

    @property
    def reports(self):
        if self._reports is None:
            self._reports = ReportGenerator(self.db, self.printer_view_getter)
        return self._reports

    @property
    def documents(self):
        if self._documents is None:
            self._documents = DocumentGenerator(self.db, self.printer_view_getter)
        return self._documents

    # Shortcuts used by several views

    def register_payment(self, loan_id, payment_date=None, receipt_file=None, receipt_folder=None):
        """Register the next installment and optionally print its receipt.

        Returns:
            Tuple of (PaymentOutcome, document result or None).
        """
        outcome = self.payments.register_payment(loan_id, payment_date, receipt_file)
        document = None
        if receipt_folder:
            document = self.documents.generate_receipt(outcome.payment_id, receipt_folder)
        return outcome, document

    def repair_data(self):
        """Remove duplicate payments and resync every loan."""
        return self.reconciler.reconcile()
