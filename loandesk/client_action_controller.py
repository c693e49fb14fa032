"""Client Action Controller for LoanDesk.

Button actions of the clients view: registration, edits, removal and
starting a loan for the selected client.
"""
from typing import Callable, Optional

from PyQt6.QtWidgets import QMessageBox, QFileDialog

from loandesk.config import CLIENT_DOCUMENT_FIELDS
from loandesk.exceptions import LoanDeskError
from loandesk.logger import get_logger

logger = get_logger(__name__)

# Client field -> attachment category
ATTACHMENT_FIELDS = {field: category for field, _, category in CLIENT_DOCUMENT_FIELDS}


class ClientActionController:
    """Controller for client-related actions.

    Attributes:
        engine: LoanDeskEngine for business operations.
        ui_state: UIStateManager for selection state.
        on_refresh: Callback to refresh the UI after changes.
    """

    def __init__(self, engine, ui_state, parent_widget,
                 on_refresh: Callable = None,
                 on_loans_changed: Callable = None):
        """Initialize ClientActionController.

        Args:
            engine: LoanDeskEngine instance.
            ui_state: UIStateManager for selection state.
            parent_widget: Parent widget for dialogs.
            on_refresh: Callback to refresh the client list, takes select_id.
            on_loans_changed: Callback after a loan was created.
        """
        self.engine = engine
        self.ui_state = ui_state
        self.parent = parent_widget
        self.on_refresh = on_refresh
        self.on_loans_changed = on_loans_changed

    def _require_selection(self) -> bool:
        if not self.ui_state.has_selection():
            QMessageBox.warning(self.parent, "No Selection", "Please select a client first.")
            return False
        return True

    def _store_files(self, client_id, files, current=None):
        """Copy picked files into the attachment store.

        Returns:
            Mapping of client field -> stored path, current values kept
            for fields without a new file.
        """
        current = current or {}
        stored = {key: current.get(key) for key in ATTACHMENT_FIELDS}
        for key, path in files.items():
            stored[key] = self.engine.attachments.store(path, ATTACHMENT_FIELDS[key], client_id)
        return stored

    def _validate_files(self, files) -> bool:
        try:
            for path in files.values():
                self.engine.attachments.validate(path)
        except LoanDeskError as e:
            QMessageBox.warning(self.parent, "Invalid File", e.message)
            return False
        return True

    def _confirm_cpf(self, cpf, exclude_id=None) -> bool:
        if not self.engine.clients.cpf_in_use(cpf, exclude_id):
            return True
        confirm = QMessageBox.question(
            self.parent, "Duplicate CPF",
            f"The CPF {cpf} is already registered. Save anyway?",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No
        )
        return confirm == QMessageBox.StandardButton.Yes

    def add_client(self, dialog_class) -> bool:
        """Register a new client.

        Args:
            dialog_class: Dialog class to use for input (ClientDialog).
        """
        dialog = dialog_class(self.parent)
        if not dialog.exec():
            return False

        data = dialog.get_data()
        files = dialog.get_files()
        if not self._validate_files(files) or not self._confirm_cpf(data['cpf']):
            return False

        try:
            client_id = self.engine.clients.create_client(**data)
            if files:
                stored = self._store_files(client_id, files)
                self.engine.clients.update_client(client_id, **data, **stored)
        except LoanDeskError as e:
            QMessageBox.critical(self.parent, "Error", f"Could not save client: {e.message}")
            return False

        if self.on_refresh:
            self.on_refresh(select_id=client_id)
        QMessageBox.information(self.parent, "Success", f"'{data['full_name']}' has been registered.")
        return True

    def edit_client(self, dialog_class) -> bool:
        """Edit the selected client."""
        if not self._require_selection():
            return False

        client_id = self.ui_state.get_selected_id()
        try:
            client = self.engine.clients.get_client(client_id)
        except LoanDeskError as e:
            QMessageBox.warning(self.parent, "Error", e.message)
            return False

        dialog = dialog_class(self.parent, client=client)
        if not dialog.exec():
            return False

        data = dialog.get_data()
        files = dialog.get_files()
        if not self._validate_files(files) or not self._confirm_cpf(data['cpf'], exclude_id=client_id):
            return False

        try:
            stored = self._store_files(client_id, files, current=client)
            self.engine.clients.update_client(client_id, **data, **stored)
        except LoanDeskError as e:
            QMessageBox.critical(self.parent, "Error", f"Could not save client: {e.message}")
            return False

        if self.on_refresh:
            self.on_refresh(select_id=client_id)
        return True

    def delete_client(self) -> bool:
        """Delete the selected client after confirmation."""
        if not self._require_selection():
            return False

        client_id = self.ui_state.get_selected_id()
        name = self.ui_state.get_selected_name()

        confirm = QMessageBox.question(
            self.parent, "Delete Client",
            f"Are you sure you want to delete '{name}' and all their loans and payments?",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No
        )
        if confirm != QMessageBox.StandardButton.Yes:
            return False

        try:
            self.engine.clients.delete_client(client_id)
        except LoanDeskError as e:
            QMessageBox.critical(self.parent, "Error", e.message)
            return False

        self.ui_state.clear_selection()
        if self.on_refresh:
            self.on_refresh()
        if self.on_loans_changed:
            self.on_loans_changed()
        return True

    def show_documents(self, dialog_class) -> bool:
        """Show the stored documents of the selected client."""
        if not self._require_selection():
            return False
        try:
            client = self.engine.clients.get_client(self.ui_state.get_selected_id())
        except LoanDeskError as e:
            QMessageBox.warning(self.parent, "Error", e.message)
            return False
        dialog_class(client, self.engine.attachments, self.parent).exec()
        return True

    def new_loan(self, dialog_class) -> bool:
        """Open the simulator for the selected client and create the loan."""
        if not self._require_selection():
            return False
        return create_loan_from_simulator(self.engine, self.parent, dialog_class,
                                          client_id=self.ui_state.get_selected_id(),
                                          on_created=self._after_loan)

    def _after_loan(self, loan_id):
        if self.on_refresh:
            self.on_refresh(select_id=self.ui_state.get_selected_id())
        if self.on_loans_changed:
            self.on_loans_changed()

    def select_output_folder(self, title: str = "Select Output Folder") -> Optional[str]:
        folder = QFileDialog.getExistingDirectory(self.parent, title)
        return folder if folder else None


def create_loan_from_simulator(engine, parent, dialog_class, client_id=None, on_created=None) -> bool:
    """Shared simulator flow for the clients and loans views."""
    clients = engine.clients.list_clients()
    if not clients:
        QMessageBox.warning(parent, "No Clients", "Register a client before creating a loan.")
        return False

    dialog = dialog_class(engine.loans, clients, parent, client_id=client_id)
    if not dialog.exec():
        return False

    data = dialog.get_data()
    try:
        loan_id = engine.loans.create_loan(
            data['client_id'], data['amount'], data['weeks'],
            interest_rate=data['interest_rate'],
            total_amount=data['total_amount'],
            first_payment_date=data['first_payment_date'],
        )
    except LoanDeskError as e:
        QMessageBox.warning(parent, "Loan Not Created", e.message)
        return False

    QMessageBox.information(parent, "Success", f"Loan #{loan_id} created.")
    if on_created:
        on_created(loan_id)
    return True
