"""Activity log view for LoanDesk."""
from PyQt6.QtWidgets import (QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QLineEdit, QComboBox,
                             QDateEdit, QCheckBox, QTableWidget, QTableWidgetItem, QHeaderView,
                             QAbstractItemView, QMessageBox, QFileDialog, QInputDialog)
from PyQt6.QtCore import QDate

from loandesk.config import DEFAULT_LOG_RETENTION_DAYS, LOG_TYPES
from loandesk.formatters import format_datetime

ALL_TYPES = "All types"


class ActivityLogView(QWidget):
    """Filterable list of everything operators did in the book."""

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
        self.title_label = QLabel("Activity Log")
        header.addWidget(self.title_label)
        header.addStretch()
        self.stats_label = QLabel()
        header.addWidget(self.stats_label)
        layout.addLayout(header)

        filters = QHBoxLayout()
        self.user_input = QLineEdit()
        self.user_input.setPlaceholderText("Operator")
        self.type_combo = QComboBox()
        self.type_combo.addItem(ALL_TYPES)
        self.type_combo.addItems(LOG_TYPES)
        self.entity_input = QLineEdit()
        self.entity_input.setPlaceholderText("Entity")

        self.date_check = QCheckBox("Between")
        self.start_date = QDateEdit(QDate.currentDate().addDays(-7))
        self.start_date.setCalendarPopup(True)
        self.start_date.setDisplayFormat("dd/MM/yyyy")
        self.end_date = QDateEdit(QDate.currentDate())
        self.end_date.setCalendarPopup(True)
        self.end_date.setDisplayFormat("dd/MM/yyyy")
        self.date_check.toggled.connect(self.start_date.setEnabled)
        self.date_check.toggled.connect(self.end_date.setEnabled)
        self.start_date.setEnabled(False)
        self.end_date.setEnabled(False)

        self.filter_btn = QPushButton("Filter")
        self.filter_btn.clicked.connect(self.refresh)
        self.user_input.returnPressed.connect(self.refresh)
        self.entity_input.returnPressed.connect(self.refresh)

        for widget in (self.user_input, self.type_combo, self.entity_input,
                       self.date_check, self.start_date, self.end_date, self.filter_btn):
            filters.addWidget(widget)
        layout.addLayout(filters)

        self.table = QTableWidget(0, 5)
        self.table.setHorizontalHeaderLabels(["Date/Time", "Operator", "Type", "Action", "Description"])
        self.table.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.ResizeToContents)
        self.table.horizontalHeader().setStretchLastSection(True)
        self.table.verticalHeader().setVisible(False)
        self.table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self.table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        layout.addWidget(self.table)

        actions = QHBoxLayout()
        self.export_btn = QPushButton("Export CSV")
        self.export_btn.clicked.connect(self.export_csv)
        self.clear_btn = QPushButton("Clear Old Entries")
        self.clear_btn.clicked.connect(self.clear_old)
        actions.addWidget(self.export_btn)
        actions.addStretch()
        actions.addWidget(self.clear_btn)
        layout.addLayout(actions)

    def apply_theme(self):
        t = self.theme_manager
        self.setStyleSheet(t.base_stylesheet())
        self.title_label.setStyleSheet(f"font-size: 24px; font-weight: 600; color: {t.get_color('text_primary')};")
        self.stats_label.setStyleSheet(f"font-size: 13px; color: {t.get_color('text_secondary')};")
        self.refresh()

    def current_filters(self):
        filters = {
            'user': self.user_input.text().strip() or None,
            'type': None if self.type_combo.currentText() == ALL_TYPES else self.type_combo.currentText(),
            'entity': self.entity_input.text().strip() or None,
        }
        if self.date_check.isChecked():
            filters['start'] = self.start_date.date().toPyDate()
            filters['end'] = self.end_date.date().toPyDate()
        return filters

    def refresh(self):
        activity = self.engine.activity
        stats = activity.get_stats()
        self.stats_label.setText(f"{stats['total']} entries | {stats['today']} today")

        logs = activity.get_logs(**self.current_filters())
        self.table.setRowCount(len(logs))
        for row, entry in enumerate(logs):
            values = [
                format_datetime(entry['timestamp']),
                entry['user'],
                entry['type'],
                entry['action'],
                entry['details'],
            ]
            for col, value in enumerate(values):
                self.table.setItem(row, col, QTableWidgetItem(str(value or "")))

    def export_csv(self):
        file_path, _ = QFileDialog.getSaveFileName(self, "Export Activity Log", "activity_log.csv",
                                                   "CSV Files (*.csv)")
        if not file_path:
            return
        success, message = self.engine.activity.export_csv(file_path, **self.current_filters())
        if success:
            QMessageBox.information(self, "Export Complete", message)
        else:
            QMessageBox.critical(self, "Export Failed", message)

    def clear_old(self):
        days, ok = QInputDialog.getInt(self, "Clear Old Entries", "Keep entries from the last N days:",
                                       DEFAULT_LOG_RETENTION_DAYS, 1, 3650)
        if not ok:
            return
        removed = self.engine.activity.clear_old_logs(days)
        QMessageBox.information(self, "Log Cleanup", f"Removed {removed} entries.")
        self.refresh()
