"""Main application window for LoanDesk."""
import sys
import os

# Disable GPU and software rasterizer to prevent crashes on older hardware.
# Must be set before QtWebEngineWidgets is imported.
os.environ["QTWEBENGINE_CHROMIUM_FLAGS"] = "--disable-gpu --disable-software-rasterizer"

# QtWebEngineWidgets must be imported before QApplication is created
from PyQt6.QtWebEngineWidgets import QWebEngineView

from PyQt6.QtWidgets import (QApplication, QMainWindow, QStackedWidget, QMessageBox, QDialog, QVBoxLayout,
                             QHBoxLayout, QPushButton, QLabel, QFileDialog, QWidget, QFrame, QInputDialog)
from PyQt6.QtGui import QIcon, QAction, QKeySequence
from PyQt6.QtCore import Qt

from loandesk.database import DatabaseManager
from loandesk.engine import LoanDeskEngine
from loandesk.logger import get_logger
from loandesk.theme import ThemeManager
from loandesk.views.activity_logs import ActivityLogView
from loandesk.views.cash_flow import CashFlowView
from loandesk.views.clients import ClientsView
from loandesk.views.dashboard import Dashboard
from loandesk.views.loans import LoansView
from loandesk.views.upcoming import UpcomingView

logger = get_logger(__name__)


class StartupDialog(QDialog):
    """Dialog to select or create a book (database file)."""
    def __init__(self):
        super().__init__()
        self.setWindowTitle("LoanDesk - Select Book")
        self.setFixedSize(400, 200)
        self.selected_db = None

        layout = QVBoxLayout(self)
        layout.setSpacing(15)
        layout.setAlignment(Qt.AlignmentFlag.AlignCenter)

        title = QLabel("Welcome to LoanDesk")
        title.setStyleSheet("font-size: 18px; font-weight: bold; color: #0F766E;")
        title.setAlignment(Qt.AlignmentFlag.AlignCenter)
        layout.addWidget(title)

        subtitle = QLabel("Please select a book to continue:")
        subtitle.setAlignment(Qt.AlignmentFlag.AlignCenter)
        layout.addWidget(subtitle)

        btn_new = QPushButton("Create New Book")
        btn_new.setMinimumHeight(40)
        btn_new.clicked.connect(self.create_new)
        layout.addWidget(btn_new)

        btn_open = QPushButton("Open Existing Book")
        btn_open.setMinimumHeight(40)
        btn_open.clicked.connect(self.open_existing)
        layout.addWidget(btn_open)

    def create_new(self):
        path, _ = QFileDialog.getSaveFileName(self, "Create New Book", "loans.db", "Database Files (*.db)")
        if path:
            if not path.endswith('.db'):
                path += '.db'
            self.selected_db = path
            self.accept()

    def open_existing(self):
        path, _ = QFileDialog.getOpenFileName(self, "Open Existing Book", "", "Database Files (*.db)")
        if path:
            self.selected_db = path
            self.accept()


class MainApp(QMainWindow):
    """Main application window: sidebar navigation over a stack of views."""

    PAGES = (
        ("dashboard", "Dashboard"),
        ("clients", "Clients"),
        ("loans", "Loans"),
        ("upcoming", "Upcoming"),
        ("cash_flow", "Cash Flow"),
        ("activity", "Activity Log"),
    )

    def __init__(self, db_path):
        super().__init__()
        self.setWindowTitle(f"LoanDesk - [{db_path}]")
        self.resize(1200, 760)

        if getattr(sys, 'frozen', False):
            base_path = os.path.dirname(sys.executable)
        else:
            base_path = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
        icon_path = os.path.join(base_path, "resources", "icon.png")
        if os.path.exists(icon_path):
            self.setWindowIcon(QIcon(icon_path))

        self.printer_view = None
        self.db = DatabaseManager(db_path)
        self.theme_manager = ThemeManager(self.db)
        self.engine = LoanDeskEngine(self.db, printer_view_getter=self.get_printer_view)

        self.create_widgets()
        self.create_menus()
        self.apply_theme()

        self.engine.activity.log_session_start()
        self.show_page("dashboard")

    def create_widgets(self):
        central = QWidget()
        root = QHBoxLayout(central)
        root.setContentsMargins(0, 0, 0, 0)
        root.setSpacing(0)

        self.sidebar = QFrame()
        self.sidebar.setFixedWidth(200)
        side_layout = QVBoxLayout(self.sidebar)
        side_layout.setContentsMargins(12, 20, 12, 20)
        side_layout.setSpacing(6)

        self.brand_label = QLabel("LoanDesk")
        side_layout.addWidget(self.brand_label)
        side_layout.addSpacing(16)

        self.stack = QStackedWidget()
        self.pages = {
            'dashboard': Dashboard(self, self.engine, self.theme_manager),
            'clients': ClientsView(self, self.engine, self.theme_manager),
            'loans': LoansView(self, self.engine, self.theme_manager),
            'upcoming': UpcomingView(self, self.engine, self.theme_manager),
            'cash_flow': CashFlowView(self, self.engine, self.theme_manager),
            'activity': ActivityLogView(self, self.engine, self.theme_manager),
        }
        self.nav_buttons = {}
        for key, label in self.PAGES:
            self.stack.addWidget(self.pages[key])
            btn = QPushButton(label)
            btn.setCheckable(True)
            btn.setMinimumHeight(38)
            btn.clicked.connect(lambda checked, k=key: self.show_page(k))
            self.nav_buttons[key] = btn
            side_layout.addWidget(btn)

        side_layout.addStretch()
        self.operator_label = QLabel()
        self.operator_label.setWordWrap(True)
        side_layout.addWidget(self.operator_label)
        self.operator_btn = QPushButton("Change Operator")
        self.operator_btn.clicked.connect(self.change_operator)
        side_layout.addWidget(self.operator_btn)
        self.theme_btn = QPushButton()
        self.theme_btn.clicked.connect(self.toggle_theme)
        side_layout.addWidget(self.theme_btn)

        root.addWidget(self.sidebar)
        root.addWidget(self.stack)
        self.setCentralWidget(central)

    def create_menus(self):
        refresh_action = QAction("Refresh", self)
        refresh_action.setShortcut(QKeySequence("F5"))
        refresh_action.triggered.connect(self.refresh_all)
        self.addAction(refresh_action)

    def apply_theme(self):
        t = self.theme_manager
        self.sidebar.setStyleSheet(f"""
            QFrame {{ background-color: {t.get_color('bg_sidebar')}; }}
            QPushButton {{
                background-color: transparent; color: {t.get_color('text_sidebar')};
                border: none; border-radius: 6px; padding: 8px 12px; text-align: left; font-size: 14px;
            }}
            QPushButton:hover {{ background-color: {t.get_color('accent_hover')}; }}
            QPushButton:checked {{ background-color: {t.get_color('accent')}; color: white; font-weight: bold; }}
            QLabel {{ color: {t.get_color('text_sidebar')}; background: transparent; }}
        """)
        self.brand_label.setStyleSheet("font-size: 20px; font-weight: 800;")
        self.theme_btn.setText("Light Mode" if t.is_dark else "Dark Mode")
        self.operator_label.setText(f"Operator: {self.engine.activity.current_user}")
        for page in self.pages.values():
            page.apply_theme()

    def toggle_theme(self):
        self.theme_manager.toggle_theme()
        self.apply_theme()

    def change_operator(self):
        name, ok = QInputDialog.getText(self, "Operator", "Operator name:",
                                        text=self.engine.activity.current_user)
        name = name.strip()
        if ok and name:
            self.engine.activity.set_current_user(name)
            self.operator_label.setText(f"Operator: {name}")
            self.pages['activity'].refresh()

    def show_page(self, key, reload=True):
        for name, btn in self.nav_buttons.items():
            btn.setChecked(name == key)
        page = self.pages[key]
        if reload:
            page.refresh()
        self.stack.setCurrentWidget(page)

    def show_loans(self, client_id=None):
        """Open the loans page filtered to one client."""
        loans_view = self.pages['loans']
        loans_view.refresh()
        loans_view.set_client_filter(client_id)
        self.show_page('loans', reload=False)

    def refresh_all(self):
        """Reload every page after data changed."""
        for page in self.pages.values():
            page.refresh()

    def get_printer_view(self):
        """Get or create the hidden QWebEngineView for printing."""
        if self.printer_view is None:
            self.printer_view = QWebEngineView()
            self.printer_view.hide()
        return self.printer_view

    def closeEvent(self, event):
        """Confirm before exiting."""
        reply = QMessageBox.question(self, "Exit", "Are you sure you want to exit?",
                                     QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
                                     QMessageBox.StandardButton.No)
        if reply == QMessageBox.StandardButton.Yes:
            self.db.close()
            event.accept()
        else:
            event.ignore()


def main():
    """Entry point for the application."""
    app = QApplication(sys.argv)

    dialog = StartupDialog()
    if dialog.exec() == QDialog.DialogCode.Accepted and dialog.selected_db:
        logger.info("Opening book %s", dialog.selected_db)
        window = MainApp(dialog.selected_db)
        window.show()
        sys.exit(app.exec())
    else:
        sys.exit(0)


if __name__ == "__main__":
    main()
