"""Clients view for LoanDesk."""
from PyQt6.QtWidgets import (QWidget, QVBoxLayout, QHBoxLayout, QLabel, QPushButton, QLineEdit,
                             QScrollArea, QFrame)
from PyQt6.QtCore import Qt

from loandesk.client_action_controller import ClientActionController
from loandesk.dialogs import ClientDialog, ClientDocumentsDialog, LoanSimulatorDialog
from loandesk.formatters import format_currency
from loandesk.ui_state_manager import UIStateManager


class ClientCard(QFrame):
    """A card in the client list."""

    def __init__(self, client, parent_view):
        super().__init__()
        self.client_id = client['id']
        self.name = client['full_name']
        self.cpf = client.get('cpf') or ""
        self.phone = client.get('phone') or ""
        self.credit_limit = float(client.get('credit_limit') or 0)
        self.available_credit = float(client.get('available_credit') or 0)
        self.view = parent_view
        self._is_selected = False

        self.setCursor(Qt.CursorShape.PointingHandCursor)
        self.setFixedHeight(68)
        self.init_ui()
        self.apply_theme()

    def init_ui(self):
        layout = QHBoxLayout(self)
        layout.setContentsMargins(12, 8, 12, 8)
        layout.setSpacing(12)

        self.avatar = QLabel("".join(part[0] for part in self.name.split()[:2]).upper())
        self.avatar.setFixedSize(40, 40)
        self.avatar.setAlignment(Qt.AlignmentFlag.AlignCenter)
        layout.addWidget(self.avatar)

        info_layout = QVBoxLayout()
        info_layout.setSpacing(4)
        self.name_label = QLabel(self.name)
        self.details_label = QLabel(f"CPF {self.cpf} | {self.phone or 'No Phone'}")
        info_layout.addWidget(self.name_label)
        info_layout.addWidget(self.details_label)
        layout.addLayout(info_layout)
        layout.addStretch()

        self.credit_label = QLabel(
            f"{format_currency(self.available_credit)} of {format_currency(self.credit_limit)}")
        self.credit_label.setAlignment(Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignVCenter)
        layout.addWidget(self.credit_label)

    def _avatar_color(self):
        colors = ["#0F766E", "#B91C1C", "#B45309", "#15803D", "#1D4ED8", "#4338CA", "#7E22CE", "#BE185D"]
        return colors[sum(ord(ch) for ch in self.name) % len(colors)]

    def apply_theme(self):
        t = self.view.theme_manager
        self.avatar.setStyleSheet(f"""
            background-color: {self._avatar_color()}; color: white;
            font-weight: bold; font-size: 15px; border-radius: 20px;
        """)
        self.name_label.setStyleSheet(
            f"font-size: 15px; font-weight: 600; color: {t.get_color('text_primary')}; background: transparent;")
        self.details_label.setStyleSheet(
            f"font-size: 12px; color: {t.get_color('text_secondary')}; background: transparent;")
        credit_color = t.get_color('success') if self.available_credit > 0 else t.get_color('danger')
        self.credit_label.setStyleSheet(
            f"font-size: 13px; font-weight: 600; color: {credit_color}; background: transparent;")
        self.update_style()

    def mousePressEvent(self, event):
        self.view.select_client(self)
        super().mousePressEvent(event)

    def mouseDoubleClickEvent(self, event):
        self.view.main_window.show_loans(self.client_id)
        super().mouseDoubleClickEvent(event)

    def set_selected(self, selected):
        self._is_selected = selected
        self.update_style()

    def update_style(self):
        t = self.view.theme_manager
        if self._is_selected:
            self.setStyleSheet(f"""
                ClientCard {{
                    background-color: {t.get_color('card_selected_bg')};
                    border: 2px solid {t.get_color('card_selected_border')};
                    border-radius: 8px;
                }}
            """)
        else:
            self.setStyleSheet(f"""
                ClientCard {{
                    background-color: {t.get_color('card_bg')};
                    border: 1px solid {t.get_color('card_border')};
                    border-radius: 8px;
                }}
                ClientCard:hover {{ border-color: {t.get_color('card_hover_border')}; }}
            """)


class ClientsView(QWidget):
    """Searchable client list with registration actions."""

    def __init__(self, main_window, engine, theme_manager):
        super().__init__()
        self.main_window = main_window
        self.engine = engine
        self.theme_manager = theme_manager

        self._ui_state = UIStateManager(on_selection_changed=self._on_selection_changed)
        self.controller = ClientActionController(
            engine,
            self._ui_state,
            self,
            on_refresh=self.refresh,
            on_loans_changed=self.main_window.refresh_all,
        )
        self.create_widgets()
        self.apply_theme()

    def create_widgets(self):
        layout = QVBoxLayout(self)
        layout.setContentsMargins(30, 25, 30, 25)
        layout.setSpacing(16)

        header = QHBoxLayout()
        self.title_label = QLabel("Clients")
        header.addWidget(self.title_label)
        header.addStretch()
        self.add_btn = QPushButton("+ New Client")
        self.add_btn.clicked.connect(lambda: self.controller.add_client(ClientDialog))
        header.addWidget(self.add_btn)
        layout.addLayout(header)

        self.search_input = QLineEdit()
        self.search_input.setPlaceholderText("Search by name, CPF or phone...")
        self.search_input.setMinimumHeight(40)
        self.search_input.textChanged.connect(self._ui_state.apply_filter)
        layout.addWidget(self.search_input)

        self.count_label = QLabel()
        layout.addWidget(self.count_label)

        self.scroll_area = QScrollArea()
        self.scroll_area.setWidgetResizable(True)
        self.scroll_area.setFrameShape(QFrame.Shape.NoFrame)
        self.scroll_content = QWidget()
        self.scroll_content_layout = QVBoxLayout(self.scroll_content)
        self.scroll_content_layout.setSpacing(10)
        self.scroll_content_layout.setContentsMargins(0, 5, 5, 5)
        self.scroll_content_layout.setAlignment(Qt.AlignmentFlag.AlignTop)
        self.scroll_area.setWidget(self.scroll_content)
        layout.addWidget(self.scroll_area)

        actions = QHBoxLayout()
        self.loan_btn = QPushButton("New Loan")
        self.loan_btn.clicked.connect(lambda: self.controller.new_loan(LoanSimulatorDialog))
        self.loans_btn = QPushButton("View Loans")
        self.loans_btn.clicked.connect(
            lambda: self.main_window.show_loans(self._ui_state.get_selected_id()))
        self.edit_btn = QPushButton("Edit Details")
        self.edit_btn.clicked.connect(lambda: self.controller.edit_client(ClientDialog))
        self.docs_btn = QPushButton("Documents")
        self.docs_btn.clicked.connect(lambda: self.controller.show_documents(ClientDocumentsDialog))
        self.delete_btn = QPushButton("Delete")
        self.delete_btn.clicked.connect(self.controller.delete_client)
        actions.addWidget(self.loan_btn)
        actions.addWidget(self.loans_btn)
        actions.addWidget(self.edit_btn)
        actions.addWidget(self.docs_btn)
        actions.addStretch()
        actions.addWidget(self.delete_btn)
        layout.addLayout(actions)
        self._update_action_buttons()

    def apply_theme(self):
        t = self.theme_manager
        self.setStyleSheet(t.base_stylesheet())
        self.title_label.setStyleSheet(f"font-size: 24px; font-weight: 600; color: {t.get_color('text_primary')};")
        self.count_label.setStyleSheet(
            f"font-size: 13px; font-weight: 700; color: {t.get_color('text_secondary')}; text-transform: uppercase;")
        self.scroll_content.setStyleSheet("background-color: transparent;")
        self.delete_btn.setStyleSheet(f"""
            QPushButton {{ background-color: {t.get_color('danger_bg')}; color: {t.get_color('danger')};
                           border: 1px solid {t.get_color('danger')}; }}
            QPushButton:disabled {{ background-color: {t.get_color('bg_secondary')}; color: {t.get_color('border')};
                                    border-color: {t.get_color('border')}; }}
        """)
        for card in self._ui_state.card_widgets:
            card.apply_theme()

    def refresh(self, select_id=None):
        while self.scroll_content_layout.count():
            item = self.scroll_content_layout.takeAt(0)
            widget = item.widget()
            if widget:
                widget.deleteLater()

        cards = []
        for client in self.engine.clients.list_clients():
            card = ClientCard(client, self)
            self.scroll_content_layout.addWidget(card)
            cards.append(card)

        self._ui_state.set_cards(cards)
        self._ui_state.refresh_filter()
        self.count_label.setText(f"{len(cards)} client(s)")
        if select_id is not None:
            self._ui_state.select_by_id(select_id)
        self._update_action_buttons()

    def select_client(self, card):
        self._ui_state.select(card)

    def _on_selection_changed(self, card):
        self._update_action_buttons()

    def _update_action_buttons(self):
        enabled = self._ui_state.has_selection()
        for btn in (self.loan_btn, self.loans_btn, self.edit_btn, self.docs_btn, self.delete_btn):
            btn.setEnabled(enabled)
