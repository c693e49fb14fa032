"""Services package for LoanDesk business logic.

Each service owns one area of the book (clients, loans, payments, cash,
reconciliation, attachments) and is reached through LoanDeskEngine.
"""

from .client_service import ClientService
from .loan_service import LoanService
from .payment_service import PaymentService
from .reconciler import PaymentReconciler
from .cash_flow import CashFlowService
from .attachment_store import AttachmentStore

__all__ = ['ClientService', 'LoanService', 'PaymentService', 'PaymentReconciler',
           'CashFlowService', 'AttachmentStore']
