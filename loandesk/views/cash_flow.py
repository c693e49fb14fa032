"""Cash flow and reports view for LoanDesk."""
from PyQt6.QtWidgets import (QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QGridLayout,
                             QTableWidget, QTableWidgetItem, QHeaderView, QAbstractItemView, QTabWidget,
                             QMessageBox, QFileDialog, QInputDialog, QProgressDialog)
from PyQt6.QtCore import Qt, QThread, pyqtSignal

from loandesk.database import DatabaseManager
from loandesk.formatters import format_currency, format_date
from loandesk.logger import get_logger
from loandesk.reports import ReportGenerator
from loandesk.views.dashboard import StatCard

logger = get_logger(__name__)

MONEY_COLUMNS = {"Loaned", "Received", "Profit", "Total Amount", "Total Paid"}


class ReportWorker(QThread):
    """Background worker for spreadsheet exports."""
    progress = pyqtSignal(int, int, str)  # current, total, message
    finished = pyqtSignal(bool, str)      # success, message

    def __init__(self, db_name, kind, output_path):
        super().__init__()
        self.db_name = db_name
        self.kind = kind
        self.output_path = output_path

    def run(self):
        # SQLite connections cannot cross threads; open one for this worker
        db_manager = None
        try:
            db_manager = DatabaseManager(self.db_name)
            generator = ReportGenerator(db_manager)

            def callback(current, total, msg):
                self.progress.emit(current, total, msg)

            success, msg = generator.export_report(self.kind, self.output_path, progress_callback=callback)
            self.finished.emit(success, msg)
        except Exception as e:
            logger.exception("Report worker failed")
            self.finished.emit(False, str(e))
        finally:
            if db_manager:
                db_manager.close()


def fill_table(table, df):
    """Show a report DataFrame in a QTableWidget."""
    table.clear()
    table.setColumnCount(len(df.columns))
    table.setHorizontalHeaderLabels([str(col) for col in df.columns])
    table.setRowCount(len(df))
    for row, (_, record) in enumerate(df.iterrows()):
        for col, column in enumerate(df.columns):
            value = record[column]
            text = format_currency(value) if column in MONEY_COLUMNS else str(value)
            item = QTableWidgetItem(text)
            if column in MONEY_COLUMNS:
                item.setTextAlignment(Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignVCenter)
            table.setItem(row, col, item)


def _report_table():
    table = QTableWidget(0, 0)
    table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.Stretch)
    table.verticalHeader().setVisible(False)
    table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
    return table


class CashFlowView(QWidget):
    """Cash position, per-loan balances and the monthly/client reports."""

    def __init__(self, main_window, engine, theme_manager):
        super().__init__()
        self.main_window = main_window
        self.engine = engine
        self.theme_manager = theme_manager
        self.report_worker = None
        self.create_widgets()
        self.apply_theme()

    def create_widgets(self):
        layout = QVBoxLayout(self)
        layout.setContentsMargins(30, 25, 30, 25)
        layout.setSpacing(14)

        header = QHBoxLayout()
        self.title_label = QLabel("Cash Flow & Reports")
        header.addWidget(self.title_label)
        header.addStretch()
        self.balance_btn = QPushButton("Set Initial Balance")
        self.balance_btn.clicked.connect(self.edit_initial_balance)
        header.addWidget(self.balance_btn)
        layout.addLayout(header)

        grid = QGridLayout()
        grid.setSpacing(12)
        t = self.theme_manager
        self.cards = {
            'initial_balance': StatCard("Initial balance", t),
            'available_cash': StatCard("Available cash", t, "success"),
            'total_loaned': StatCard("Total loaned", t, "info"),
            'total_received': StatCard("Total received", t, "success"),
            'total_in_street': StatCard("In the street", t, "warning"),
            'profit': StatCard("Profit", t),
            'active_loans': StatCard("Active loans", t, "info"),
            'completed_loans': StatCard("Completed loans", t, "success"),
        }
        for index, card in enumerate(self.cards.values()):
            grid.addWidget(card, index // 4, index % 4)
        layout.addLayout(grid)

        self.tabs = QTabWidget()
        self.loans_table = _report_table()
        self.monthly_table = _report_table()
        self.clients_table = _report_table()
        self.tabs.addTab(self.loans_table, "Loans")
        self.tabs.addTab(self.monthly_table, "Monthly")
        self.tabs.addTab(self.clients_table, "Clients")
        layout.addWidget(self.tabs)

        actions = QHBoxLayout()
        actions.addStretch()
        self.export_monthly_btn = QPushButton("Export Monthly Report")
        self.export_monthly_btn.clicked.connect(lambda: self.export_report('monthly'))
        self.export_clients_btn = QPushButton("Export Client Report")
        self.export_clients_btn.clicked.connect(lambda: self.export_report('clients'))
        actions.addWidget(self.export_monthly_btn)
        actions.addWidget(self.export_clients_btn)
        layout.addLayout(actions)

    def apply_theme(self):
        t = self.theme_manager
        self.setStyleSheet(t.base_stylesheet())
        self.title_label.setStyleSheet(f"font-size: 24px; font-weight: 600; color: {t.get_color('text_primary')};")
        for card in self.cards.values():
            card.apply_theme()
        self.refresh()

    def refresh(self):
        summary = self.engine.cash_flow.summary()
        for key, card in self.cards.items():
            value = getattr(summary, key)
            card.set_value(value if key in ('active_loans', 'completed_loans') else format_currency(value))
        profit_key = 'success' if summary.profit >= 0 else 'danger'
        self.cards['profit'].color_key = profit_key
        self.cards['profit'].apply_theme()

        rows = self.engine.cash_flow.loan_rows()
        headers = ["#", "Client", "Loan date", "Amount", "Total", "Paid", "Remaining", "State"]
        self.loans_table.clear()
        self.loans_table.setColumnCount(len(headers))
        self.loans_table.setHorizontalHeaderLabels(headers)
        self.loans_table.setRowCount(len(rows))
        for row, loan in enumerate(rows):
            values = [
                loan['loan_id'], loan['client_name'] or "-", format_date(loan['loan_date']),
                format_currency(loan['loan_amount']), format_currency(loan['total_amount']),
                format_currency(loan['paid']), format_currency(loan['remaining']),
                "Active" if loan['state'] == "active" else "Completed",
            ]
            for col, value in enumerate(values):
                self.loans_table.setItem(row, col, QTableWidgetItem(str(value)))

        fill_table(self.monthly_table, self.engine.reports.monthly_report())
        fill_table(self.clients_table, self.engine.reports.client_report())

    def edit_initial_balance(self):
        current = self.engine.cash_flow.get_initial_balance()
        value, ok = QInputDialog.getDouble(self, "Initial Balance", "Opening cash balance (R$):",
                                           current, 0, 100_000_000, 2)
        if ok:
            self.engine.cash_flow.set_initial_balance(value)
            self.engine.activity.log_system_action(
                "Update initial balance", f"Initial balance set to {format_currency(value)}")
            self.main_window.refresh_all()

    def export_report(self, kind):
        default_name = "monthly_report.xlsx" if kind == 'monthly' else "client_report.xlsx"
        file_path, _ = QFileDialog.getSaveFileName(
            self, "Save Report", default_name,
            "Excel Files (*.xlsx);;CSV Files (*.csv);;PDF Files (*.pdf)"
        )
        if not file_path:
            return

        if file_path.endswith('.pdf'):
            # QWebEngineView lives on the GUI thread
            success, message = self.engine.reports.export_report(kind, file_path)
            self._on_export_finished(success, message, file_path)
            return

        progress = QProgressDialog("Generating Report...", None, 0, 3, self)
        progress.setWindowModality(Qt.WindowModality.WindowModal)
        progress.setMinimumDuration(0)
        progress.setValue(0)

        self.report_worker = ReportWorker(self.engine.db.db_name, kind, file_path)

        def on_progress(curr, total, msg):
            progress.setMaximum(total)
            progress.setValue(curr)
            progress.setLabelText(msg)

        def on_finished(success, message):
            progress.close()
            self._on_export_finished(success, message, file_path)
            self.report_worker = None

        self.report_worker.progress.connect(on_progress)
        self.report_worker.finished.connect(on_finished)
        self.report_worker.start()

    def _on_export_finished(self, success, message, file_path):
        if success:
            self.engine.activity.log_system_action("Export report", f"Report saved to {file_path}")
            QMessageBox.information(self, "Success", f"Report saved to:\n{file_path}")
        else:
            QMessageBox.critical(self, "Error", f"Failed to generate report:\n{message}")
