"""Loans view for LoanDesk."""
import os

from PyQt6.QtWidgets import (QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QComboBox,
                             QTableWidget, QTableWidgetItem, QHeaderView, QAbstractItemView,
                             QMessageBox, QFileDialog, QDialog, QMenu)
from PyQt6.QtGui import QAction, QColor, QDesktopServices
from PyQt6.QtCore import Qt, QUrl

from loandesk.client_action_controller import create_loan_from_simulator
from loandesk.config import STATUS_COMPLETED
from loandesk.dialogs import LoanSimulatorDialog, PaymentDialog
from loandesk.exceptions import LoanDeskError
from loandesk.formatters import format_currency, format_date
from loandesk.services.loan_service import payment_status

STATUS_TEXT = {STATUS_COMPLETED: "Settled", "overdue": "Overdue", "pending": "Pending"}
STATUS_COLOR_KEYS = {STATUS_COMPLETED: "success", "overdue": "danger", "pending": "warning"}

COLUMNS = ["#", "Client", "Amount", "Total", "Weekly", "Paid", "Next payment", "Status", "Loan date"]


def _item(text, data=None):
    item = QTableWidgetItem(str(text))
    if data is not None:
        item.setData(Qt.ItemDataRole.UserRole, data)
    return item


class PaymentHistoryDialog(QDialog):
    """Payments of one loan with receipt and delete actions."""

    def __init__(self, engine, loan, parent=None):
        super().__init__(parent)
        self.engine = engine
        self.loan = loan
        self.changed = False
        self.setWindowTitle(f"Payments - Loan #{loan['id']} ({loan.get('client_name') or ''})")
        self.resize(560, 360)

        layout = QVBoxLayout(self)
        self.table = QTableWidget(0, 4)
        self.table.setHorizontalHeaderLabels(["Week", "Date", "Amount", "Receipt file"])
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Stretch)
        self.table.verticalHeader().setVisible(False)
        self.table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self.table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self.table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        layout.addWidget(self.table)

        btn_layout = QHBoxLayout()
        receipt_btn = QPushButton("Receipt PDF")
        receipt_btn.clicked.connect(self.generate_receipt)
        open_btn = QPushButton("Open File")
        open_btn.clicked.connect(self.open_file)
        delete_btn = QPushButton("Delete Payment")
        delete_btn.clicked.connect(self.delete_payment)
        close_btn = QPushButton("Close")
        close_btn.clicked.connect(self.accept)
        btn_layout.addWidget(receipt_btn)
        btn_layout.addWidget(open_btn)
        btn_layout.addWidget(delete_btn)
        btn_layout.addStretch()
        btn_layout.addWidget(close_btn)
        layout.addLayout(btn_layout)
        self.refresh()

    def refresh(self):
        payments = self.engine.payments.payment_history(self.loan['id'])
        self.table.setRowCount(len(payments))
        for row, payment in enumerate(payments):
            self.table.setItem(row, 0, _item(f"{payment['week_number']}/{self.loan['total_weeks']}", payment))
            self.table.setItem(row, 1, _item(format_date(payment['payment_date'])))
            self.table.setItem(row, 2, _item(format_currency(payment['payment_amount'])))
            self.table.setItem(row, 3, _item(os.path.basename(payment.get('receipt_path') or "") or "-"))

    def _selected_payment(self):
        row = self.table.currentRow()
        if row < 0:
            QMessageBox.warning(self, "No Selection", "Please select a payment first.")
            return None
        return self.table.item(row, 0).data(Qt.ItemDataRole.UserRole)

    def generate_receipt(self):
        payment = self._selected_payment()
        if not payment:
            return
        folder = QFileDialog.getExistingDirectory(self, "Select Folder to Save Receipt")
        if folder:
            show_document_result(self, self.engine.documents.generate_receipt(payment['id'], folder))

    def open_file(self):
        payment = self._selected_payment()
        if payment and payment.get('receipt_path'):
            QDesktopServices.openUrl(QUrl.fromLocalFile(payment['receipt_path']))

    def delete_payment(self):
        payment = self._selected_payment()
        if not payment:
            return
        confirm = QMessageBox.question(
            self, "Delete Payment",
            f"Delete the payment of week {payment['week_number']}? Loan progress will be recalculated.",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No
        )
        if confirm != QMessageBox.StandardButton.Yes:
            return
        try:
            self.engine.payments.delete_payment(payment['id'])
        except LoanDeskError as e:
            QMessageBox.critical(self, "Error", e.message)
            return
        self.changed = True
        self.refresh()


def show_document_result(parent, result):
    """Report the (ok, path, kind) outcome of a document generation."""
    ok, path, kind = result
    if not ok:
        QMessageBox.critical(parent, "Error", "The document could not be generated.")
    elif kind == "html":
        QMessageBox.information(parent, "Saved as HTML",
                                f"PDF printing is not available, the document was saved as HTML:\n{path}")
    else:
        QMessageBox.information(parent, "Success", f"Document saved to:\n{path}")


class LoansView(QWidget):
    """All loans with payment registration and documents."""

    def __init__(self, main_window, engine, theme_manager):
        super().__init__()
        self.main_window = main_window
        self.engine = engine
        self.theme_manager = theme_manager
        self.create_widgets()
        self.apply_theme()

    def create_widgets(self):
        layout = QVBoxLayout(self)
        layout.setContentsMargins(30, 25, 30, 25)
        layout.setSpacing(14)

        header = QHBoxLayout()
        self.title_label = QLabel("Loans")
        header.addWidget(self.title_label)
        header.addStretch()
        self.new_btn = QPushButton("+ New Loan")
        self.new_btn.clicked.connect(self.new_loan)
        header.addWidget(self.new_btn)
        layout.addLayout(header)

        filters = QHBoxLayout()
        filters.addWidget(QLabel("Client:"))
        self.client_filter = QComboBox()
        self.client_filter.setMinimumWidth(220)
        self.client_filter.currentIndexChanged.connect(self.refresh_table)
        filters.addWidget(self.client_filter)
        filters.addWidget(QLabel("Status:"))
        self.status_filter = QComboBox()
        self.status_filter.addItem("All", None)
        self.status_filter.addItem("Open", "open")
        self.status_filter.addItem("Overdue", "overdue")
        self.status_filter.addItem("Settled", STATUS_COMPLETED)
        self.status_filter.currentIndexChanged.connect(self.refresh_table)
        filters.addWidget(self.status_filter)
        filters.addStretch()
        layout.addLayout(filters)

        self.table = QTableWidget(0, len(COLUMNS))
        self.table.setHorizontalHeaderLabels(COLUMNS)
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Stretch)
        self.table.horizontalHeader().setSectionResizeMode(0, QHeaderView.ResizeMode.ResizeToContents)
        self.table.verticalHeader().setVisible(False)
        self.table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self.table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self.table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.table.itemSelectionChanged.connect(self._update_action_buttons)
        self.table.doubleClicked.connect(lambda index: self.register_payment())
        layout.addWidget(self.table)

        actions = QHBoxLayout()
        self.pay_btn = QPushButton("Register Payment")
        self.pay_btn.clicked.connect(self.register_payment)
        self.history_btn = QPushButton("Payments")
        self.history_btn.clicked.connect(self.show_history)
        self.proposal_btn = QPushButton("Proposal PDF")
        self.proposal_btn.clicked.connect(self.generate_proposal)
        self.delete_btn = QPushButton("Delete")
        self.delete_btn.clicked.connect(self.delete_loan)

        self.tools_btn = QPushButton("Data Tools")
        tools_menu = QMenu(self)
        sync_action = QAction("Sync Loan Status", self)
        sync_action.triggered.connect(self.sync_status)
        tools_menu.addAction(sync_action)
        cleanup_action = QAction("Remove Duplicate Payments", self)
        cleanup_action.triggered.connect(self.cleanup_duplicates)
        tools_menu.addAction(cleanup_action)
        self.tools_btn.setMenu(tools_menu)

        actions.addWidget(self.pay_btn)
        actions.addWidget(self.history_btn)
        actions.addWidget(self.proposal_btn)
        actions.addStretch()
        actions.addWidget(self.tools_btn)
        actions.addWidget(self.delete_btn)
        layout.addLayout(actions)
        self._update_action_buttons()

    def apply_theme(self):
        t = self.theme_manager
        self.setStyleSheet(t.base_stylesheet())
        self.title_label.setStyleSheet(f"font-size: 24px; font-weight: 600; color: {t.get_color('text_primary')};")
        self.delete_btn.setStyleSheet(
            f"QPushButton {{ background-color: {t.get_color('danger_bg')}; color: {t.get_color('danger')};"
            f" border: 1px solid {t.get_color('danger')}; }}")
        if self.table.rowCount():
            self.refresh_table()

    def set_client_filter(self, client_id):
        index = self.client_filter.findData(client_id)
        self.client_filter.setCurrentIndex(index if index >= 0 else 0)

    def refresh(self):
        """Reload clients for the filter, keeping the current choice, then the table."""
        current = self.client_filter.currentData()
        self.client_filter.blockSignals(True)
        self.client_filter.clear()
        self.client_filter.addItem("All clients", None)
        for client in self.engine.clients.list_clients():
            self.client_filter.addItem(client['full_name'], client['id'])
        index = self.client_filter.findData(current)
        self.client_filter.setCurrentIndex(index if index >= 0 else 0)
        self.client_filter.blockSignals(False)
        self.refresh_table()

    def _filtered_loans(self):
        loans = self.engine.loans.list_loans(client_id=self.client_filter.currentData())
        wanted = self.status_filter.currentData()
        if wanted is None:
            return loans
        result = []
        for loan in loans:
            status = payment_status(loan)
            if wanted == "open" and status != STATUS_COMPLETED:
                result.append(loan)
            elif wanted == status:
                result.append(loan)
        return result

    def refresh_table(self):
        loans = self._filtered_loans()
        t = self.theme_manager
        self.table.setRowCount(len(loans))
        for row, loan in enumerate(loans):
            status = payment_status(loan)
            values = [
                loan['id'],
                loan.get('client_name') or "-",
                format_currency(loan['loan_amount']),
                format_currency(loan['total_amount']),
                format_currency(loan['weekly_payment']),
                f"{loan['weeks_paid']}/{loan['total_weeks']}",
                format_date(loan.get('next_payment_date')) if status != STATUS_COMPLETED else "-",
                STATUS_TEXT[status],
                format_date(loan['loan_date']),
            ]
            for col, value in enumerate(values):
                item = _item(value, loan['id'] if col == 0 else None)
                if col == 7:
                    item.setForeground(QColor(t.get_color(STATUS_COLOR_KEYS[status])))
                self.table.setItem(row, col, item)
        self._update_action_buttons()

    def _selected_loan_id(self):
        row = self.table.currentRow()
        if row < 0 or not self.table.selectedItems():
            return None
        return self.table.item(row, 0).data(Qt.ItemDataRole.UserRole)

    def _selected_loan(self, warn=True):
        loan_id = self._selected_loan_id()
        if loan_id is None:
            if warn:
                QMessageBox.warning(self, "No Selection", "Please select a loan first.")
            return None
        try:
            return self.engine.loans.get_loan(loan_id)
        except LoanDeskError as e:
            QMessageBox.warning(self, "Error", e.message)
            return None

    def _update_action_buttons(self):
        enabled = self._selected_loan_id() is not None
        for btn in (self.pay_btn, self.history_btn, self.proposal_btn, self.delete_btn):
            btn.setEnabled(enabled)

    def new_loan(self):
        create_loan_from_simulator(self.engine, self, LoanSimulatorDialog,
                                   client_id=self.client_filter.currentData(),
                                   on_created=lambda loan_id: self.main_window.refresh_all())

    def register_payment(self):
        loan = self._selected_loan()
        if not loan:
            return
        if loan['status'] == STATUS_COMPLETED:
            QMessageBox.information(self, "Loan Settled", "All installments of this loan are already paid.")
            return

        dialog = PaymentDialog(loan, self)
        if not dialog.exec():
            return
        data = dialog.get_data()

        folder = None
        if data['generate_receipt']:
            folder = QFileDialog.getExistingDirectory(self, "Select Folder to Save Receipt")

        try:
            outcome, document = self.engine.register_payment(
                loan['id'], data['payment_date'], data['receipt_file'], receipt_folder=folder or None)
        except LoanDeskError as e:
            QMessageBox.critical(self, "Payment Not Registered", e.message)
            return

        self.main_window.refresh_all()
        if outcome.completed:
            QMessageBox.information(self, "Loan Settled",
                                    f"Final installment registered. Loan #{loan['id']} is settled.")
        else:
            QMessageBox.information(self, "Payment Registered",
                                    f"Installment {outcome.week_number} registered. "
                                    f"{outcome.remaining_weeks} remaining.")
        if document:
            show_document_result(self, document)

    def show_history(self):
        loan = self._selected_loan()
        if not loan:
            return
        dialog = PaymentHistoryDialog(self.engine, loan, self)
        dialog.exec()
        if dialog.changed:
            self.main_window.refresh_all()

    def generate_proposal(self):
        loan = self._selected_loan()
        if not loan:
            return
        folder = QFileDialog.getExistingDirectory(self, "Select Folder to Save Proposal")
        if folder:
            show_document_result(self, self.engine.documents.generate_proposal(loan['id'], folder))

    def delete_loan(self):
        loan = self._selected_loan()
        if not loan:
            return
        confirm = QMessageBox.question(
            self, "Delete Loan",
            f"Delete loan #{loan['id']} of {loan.get('client_name') or '-'} and all its payments?",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No
        )
        if confirm != QMessageBox.StandardButton.Yes:
            return
        try:
            self.engine.loans.delete_loan(loan['id'])
        except LoanDeskError as e:
            QMessageBox.critical(self, "Error", e.message)
            return
        self.main_window.refresh_all()

    def sync_status(self):
        try:
            changed = self.engine.reconciler.sync_loan_status()
        except LoanDeskError as e:
            QMessageBox.critical(self, "Error", e.message)
            return
        self.main_window.refresh_all()
        QMessageBox.information(self, "Sync Complete", f"{len(changed)} loan(s) updated.")

    def cleanup_duplicates(self):
        confirm = QMessageBox.question(
            self, "Remove Duplicates",
            "Remove duplicate payments (same loan and week), keeping the earliest of each?",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No
        )
        if confirm != QMessageBox.StandardButton.Yes:
            return
        try:
            result = self.engine.repair_data()
        except LoanDeskError as e:
            QMessageBox.critical(self, "Error", e.message)
            return
        self.main_window.refresh_all()
        QMessageBox.information(
            self, "Cleanup Complete",
            f"{result['removed_payments']} duplicate payment(s) removed, "
            f"{len(result['updated_loans'])} loan(s) updated.")
