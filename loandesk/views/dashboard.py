"""Dashboard view for LoanDesk."""
from PyQt6.QtWidgets import (QWidget, QVBoxLayout, QHBoxLayout, QLabel, QGridLayout, QFrame,
                             QTableWidget, QTableWidgetItem, QHeaderView, QAbstractItemView)
from PyQt6.QtGui import QColor

from loandesk.formatters import format_currency, format_date, format_phone
from loandesk.reminders import URGENCY_OVERDUE, URGENCY_TODAY, URGENCY_URGENT


class StatCard(QFrame):
    """Small tile with a title and a big value."""

    def __init__(self, title, theme_manager, color_key="accent"):
        super().__init__()
        self.theme_manager = theme_manager
        self.color_key = color_key
        self.setMinimumHeight(90)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(16, 12, 16, 12)
        self.title_label = QLabel(title.upper())
        self.value_label = QLabel("-")
        layout.addWidget(self.title_label)
        layout.addWidget(self.value_label)
        self.apply_theme()

    def set_value(self, text):
        self.value_label.setText(str(text))

    def apply_theme(self):
        t = self.theme_manager
        self.setStyleSheet(f"""
            StatCard {{
                background-color: {t.get_color('card_bg')};
                border: 1px solid {t.get_color('card_border')};
                border-left: 4px solid {t.get_color(self.color_key)};
                border-radius: 8px;
            }}
        """)
        self.title_label.setStyleSheet(
            f"font-size: 11px; font-weight: 700; color: {t.get_color('text_secondary')}; background: transparent;")
        self.value_label.setStyleSheet(
            f"font-size: 22px; font-weight: 600; color: {t.get_color('text_primary')}; background: transparent;")


class Dashboard(QWidget):
    """Headline figures of the book and the installments coming due."""

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
        layout.setSpacing(18)

        self.title_label = QLabel("Dashboard")
        layout.addWidget(self.title_label)

        grid = QGridLayout()
        grid.setSpacing(14)
        self.cards = {
            'clients': StatCard("Clients", self.theme_manager),
            'active_loans': StatCard("Active loans", self.theme_manager, "info"),
            'total_lent': StatCard("Total lent", self.theme_manager),
            'pending_installments': StatCard("Pending installments", self.theme_manager, "warning"),
            'available_cash': StatCard("Available cash", self.theme_manager, "success"),
            'in_street': StatCard("In the street", self.theme_manager, "warning"),
            'overdue': StatCard("Overdue", self.theme_manager, "danger"),
            'due_soon': StatCard("Due in 2 days", self.theme_manager, "warning"),
        }
        for index, card in enumerate(self.cards.values()):
            grid.addWidget(card, index // 4, index % 4)
        layout.addLayout(grid)

        header = QHBoxLayout()
        self.upcoming_label = QLabel("Due this week")
        header.addWidget(self.upcoming_label)
        header.addStretch()
        layout.addLayout(header)

        self.upcoming_table = QTableWidget(0, 5)
        self.upcoming_table.setHorizontalHeaderLabels(["Client", "Phone", "Installment", "Amount", "Due"])
        self.upcoming_table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Stretch)
        self.upcoming_table.verticalHeader().setVisible(False)
        self.upcoming_table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self.upcoming_table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        layout.addWidget(self.upcoming_table)

    def apply_theme(self):
        t = self.theme_manager
        self.setStyleSheet(t.base_stylesheet())
        self.title_label.setStyleSheet(f"font-size: 24px; font-weight: 600; color: {t.get_color('text_primary')};")
        self.upcoming_label.setStyleSheet(
            f"font-size: 14px; font-weight: 700; color: {t.get_color('text_secondary')}; text-transform: uppercase;")
        for card in self.cards.values():
            card.apply_theme()
        self.refresh()

    def refresh(self):
        stats = self.engine.loans.dashboard_stats()
        cash = self.engine.cash_flow.summary()
        counts = self.engine.reminders.counts()

        self.cards['clients'].set_value(stats['clients'])
        self.cards['active_loans'].set_value(stats['active_loans'])
        self.cards['total_lent'].set_value(format_currency(stats['total_lent']))
        self.cards['pending_installments'].set_value(stats['pending_installments'])
        self.cards['available_cash'].set_value(format_currency(cash.available_cash))
        self.cards['in_street'].set_value(format_currency(cash.total_in_street))
        self.cards['overdue'].set_value(counts[URGENCY_OVERDUE])
        self.cards['due_soon'].set_value(counts[URGENCY_TODAY] + counts[URGENCY_URGENT])

        upcoming = self.engine.reminders.upcoming_payments()
        self.upcoming_table.setRowCount(len(upcoming))
        for row, payment in enumerate(upcoming):
            fg, _ = self.theme_manager.urgency_colors(payment.urgency)
            values = [
                payment.client_name,
                format_phone(payment.client_phone),
                f"{payment.installment_number}/{payment.total_weeks}",
                format_currency(payment.weekly_payment),
                format_date(payment.next_payment_date),
            ]
            for col, value in enumerate(values):
                item = QTableWidgetItem(value)
                if col == 4:
                    item.setForeground(QColor(fg))
                self.upcoming_table.setItem(row, col, item)
