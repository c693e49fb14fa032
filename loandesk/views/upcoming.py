"""Upcoming payments view for LoanDesk."""
from PyQt6.QtWidgets import (QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QTableWidget,
                             QTableWidgetItem, QHeaderView, QAbstractItemView, QMessageBox)
from PyQt6.QtGui import QColor
from PyQt6.QtCore import Qt

from loandesk.dialogs import ReminderMessageDialog
from loandesk.exceptions import ValidationError
from loandesk.formatters import format_currency, format_date, format_phone
from loandesk.reminders import URGENCY_OVERDUE, URGENCY_TODAY, URGENCY_UPCOMING, URGENCY_URGENT

URGENCY_TEXT = {
    URGENCY_OVERDUE: "Overdue",
    URGENCY_TODAY: "Due today",
    URGENCY_URGENT: "Urgent",
    URGENCY_UPCOMING: "Upcoming",
}


def _days_text(days):
    if days < 0:
        return f"{abs(days)} day(s) late"
    if days == 0:
        return "today"
    return f"in {days} day(s)"


class UpcomingView(QWidget):
    """Installments due within the reminder window, overdue first."""

    def __init__(self, main_window, engine, theme_manager):
        super().__init__()
        self.main_window = main_window
        self.engine = engine
        self.theme_manager = theme_manager
        self.payments = []
        self.create_widgets()
        self.apply_theme()

    def create_widgets(self):
        layout = QVBoxLayout(self)
        layout.setContentsMargins(30, 25, 30, 25)
        layout.setSpacing(14)

        self.title_label = QLabel("Upcoming Payments")
        layout.addWidget(self.title_label)

        self.counts_layout = QHBoxLayout()
        self.count_labels = {}
        for urgency in (URGENCY_OVERDUE, URGENCY_TODAY, URGENCY_URGENT, URGENCY_UPCOMING):
            label = QLabel()
            label.setAlignment(Qt.AlignmentFlag.AlignCenter)
            label.setMinimumHeight(44)
            self.count_labels[urgency] = label
            self.counts_layout.addWidget(label)
        layout.addLayout(self.counts_layout)

        self.table = QTableWidget(0, 6)
        self.table.setHorizontalHeaderLabels(["Client", "Phone", "Installment", "Amount", "Due date", "Status"])
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Stretch)
        self.table.verticalHeader().setVisible(False)
        self.table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self.table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self.table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self.table.doubleClicked.connect(lambda index: self.send_reminder())
        layout.addWidget(self.table)

        actions = QHBoxLayout()
        self.remind_btn = QPushButton("Send Reminder")
        self.remind_btn.clicked.connect(self.send_reminder)
        self.pay_btn = QPushButton("Go to Loan")
        self.pay_btn.clicked.connect(self.open_loan)
        actions.addWidget(self.remind_btn)
        actions.addWidget(self.pay_btn)
        actions.addStretch()
        layout.addLayout(actions)

    def apply_theme(self):
        t = self.theme_manager
        self.setStyleSheet(t.base_stylesheet())
        self.title_label.setStyleSheet(f"font-size: 24px; font-weight: 600; color: {t.get_color('text_primary')};")
        for urgency, label in self.count_labels.items():
            fg, bg = t.urgency_colors(urgency)
            label.setStyleSheet(
                f"background-color: {bg}; color: {fg}; border: 1px solid {fg}; border-radius: 6px;"
                f" font-weight: 700; padding: 6px;")
        self.refresh()

    def refresh(self):
        self.payments = self.engine.reminders.upcoming_payments()
        counts = {urgency: 0 for urgency in URGENCY_TEXT}
        for payment in self.payments:
            counts[payment.urgency] += 1
        for urgency, label in self.count_labels.items():
            label.setText(f"{URGENCY_TEXT[urgency]}: {counts[urgency]}")

        self.table.setRowCount(len(self.payments))
        for row, payment in enumerate(self.payments):
            fg, bg = self.theme_manager.urgency_colors(payment.urgency)
            values = [
                payment.client_name,
                format_phone(payment.client_phone),
                f"{payment.installment_number}/{payment.total_weeks}",
                format_currency(payment.weekly_payment),
                format_date(payment.next_payment_date),
                f"{URGENCY_TEXT[payment.urgency]} ({_days_text(payment.days_until_due)})",
            ]
            for col, value in enumerate(values):
                item = QTableWidgetItem(value)
                item.setBackground(QColor(bg))
                if col == 5:
                    item.setForeground(QColor(fg))
                self.table.setItem(row, col, item)

    def _selected_payment(self):
        row = self.table.currentRow()
        if row < 0 or row >= len(self.payments) or not self.table.selectedItems():
            QMessageBox.warning(self, "No Selection", "Please select a payment first.")
            return None
        return self.payments[row]

    def send_reminder(self):
        payment = self._selected_payment()
        if not payment:
            return
        try:
            message, _ = self.engine.reminders.reminder_for(payment)
        except ValidationError as e:
            QMessageBox.warning(self, "Cannot Send Reminder", e.message)
            return
        ReminderMessageDialog(payment, message, self).exec()

    def open_loan(self):
        payment = self._selected_payment()
        if payment:
            self.main_window.show_loans(payment.client_id)
