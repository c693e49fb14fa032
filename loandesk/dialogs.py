import os
from datetime import date

from PyQt6.QtWidgets import (QDialog, QFormLayout, QLineEdit, QPushButton, QVBoxLayout, QHBoxLayout,
                             QLabel, QCheckBox, QFileDialog, QGroupBox, QDateEdit, QComboBox,
                             QDoubleSpinBox, QRadioButton, QButtonGroup, QTextEdit, QGridLayout,
                             QApplication, QMessageBox)
from PyQt6.QtCore import Qt, QDate, QUrl
from PyQt6.QtGui import QDesktopServices

from loandesk.config import (
    CLIENT_DOCUMENT_FIELDS,
    CREDIT_LIMIT_STEP,
    DEFAULT_CREDIT_LIMIT,
    DEFAULT_INTEREST_RATE,
    DEFAULT_WEEKS,
    MAX_CREDIT_LIMIT,
    MIN_CREDIT_LIMIT,
    WEEK_OPTIONS,
)
from loandesk.data_structures import ClientReference
from loandesk.exceptions import AttachmentError, ValidationError
from loandesk.formatters import format_cpf, format_currency, format_date, format_phone
from loandesk.reminders import whatsapp_url
from loandesk.services.client_service import ClientService, client_documents

ERROR_STYLE = "color: #dc3545; font-size: 11px;"
ERROR_BORDER = "border: 1px solid #dc3545;"

ATTACHMENT_FILTER = "Images and PDF (*.jpg *.jpeg *.png *.pdf);;All Files (*)"

# Slots for references in the client form
REFERENCE_SLOTS = 2


def _from_qdate(qdate):
    return date(qdate.year(), qdate.month(), qdate.day())


class ClientDialog(QDialog):
    """Dialog for registering/editing a client with inline validation.

    Uploaded files are only picked here; the controller stores them once the
    client has an ID.
    """

    FIELDS = ('full_name', 'cpf', 'phone', 'address', 'email', 'credit_limit')

    def __init__(self, parent=None, client=None):
        super().__init__(parent)
        client = client or {}
        self.setWindowTitle("Edit Client" if client else "New Client")
        self.setMinimumWidth(480)
        layout = QVBoxLayout(self)

        form = QFormLayout()
        self.inputs = {}
        self.errors = {}

        self.inputs['full_name'] = QLineEdit(client.get('full_name', ""))
        self.inputs['full_name'].setPlaceholderText("Full name")
        self.inputs['cpf'] = QLineEdit(client.get('cpf', ""))
        self.inputs['cpf'].setPlaceholderText("000.000.000-00")
        self.inputs['phone'] = QLineEdit(client.get('phone', ""))
        self.inputs['phone'].setPlaceholderText("(00) 00000-0000")
        self.inputs['address'] = QLineEdit(client.get('address', ""))
        self.inputs['email'] = QLineEdit(client.get('email') or "")
        self.inputs['email'].setPlaceholderText("optional")

        self.inputs['credit_limit'] = QDoubleSpinBox()
        self.inputs['credit_limit'].setRange(MIN_CREDIT_LIMIT, MAX_CREDIT_LIMIT)
        self.inputs['credit_limit'].setSingleStep(CREDIT_LIMIT_STEP)
        self.inputs['credit_limit'].setDecimals(2)
        self.inputs['credit_limit'].setPrefix("R$ ")
        self.inputs['credit_limit'].setValue(float(client.get('credit_limit') or DEFAULT_CREDIT_LIMIT))

        labels = {'full_name': "Name:", 'cpf': "CPF:", 'phone': "Phone:", 'address': "Address:",
                  'email': "Email:", 'credit_limit': "Credit limit:"}
        for field in self.FIELDS:
            error = QLabel()
            error.setStyleSheet(ERROR_STYLE)
            error.setWordWrap(True)
            error.hide()
            self.errors[field] = error

            field_layout = QVBoxLayout()
            field_layout.setSpacing(2)
            field_layout.addWidget(self.inputs[field])
            field_layout.addWidget(error)
            form.addRow(labels[field], field_layout)

        # Progressive masks
        self.inputs['cpf'].textEdited.connect(lambda text: self._apply_mask('cpf', format_cpf))
        self.inputs['phone'].textEdited.connect(lambda text: self._apply_mask('phone', format_phone))
        for field in ('full_name', 'cpf', 'phone', 'address', 'email'):
            self.inputs[field].textChanged.connect(self.validate)

        layout.addLayout(form)

        # References
        refs_group = QGroupBox("References")
        refs_layout = QGridLayout()
        refs_layout.addWidget(QLabel("Name"), 0, 0)
        refs_layout.addWidget(QLabel("Phone"), 0, 1)
        refs_layout.addWidget(QLabel("Relationship"), 0, 2)
        existing_refs = list(client.get('references') or [])
        self.reference_inputs = []
        for slot in range(REFERENCE_SLOTS):
            ref = existing_refs[slot] if slot < len(existing_refs) else ClientReference("", "")
            name_in, phone_in, rel_in = QLineEdit(ref.name), QLineEdit(ref.phone), QLineEdit(ref.relationship)
            phone_in.textEdited.connect(lambda text, w=phone_in: w.setText(format_phone(text)))
            refs_layout.addWidget(name_in, slot + 1, 0)
            refs_layout.addWidget(phone_in, slot + 1, 1)
            refs_layout.addWidget(rel_in, slot + 1, 2)
            self.reference_inputs.append((name_in, phone_in, rel_in))
        refs_group.setLayout(refs_layout)
        layout.addWidget(refs_group)

        # Attachments
        files_group = QGroupBox("Documents")
        files_layout = QFormLayout()
        self.files = {}
        self.file_labels = {}
        for key, label, _ in CLIENT_DOCUMENT_FIELDS:
            self.files[key] = None
            current = client.get(key)
            file_label = QLabel(current if current else "No file")
            file_label.setStyleSheet("color: gray; font-style: italic;")
            file_label.setWordWrap(True)
            self.file_labels[key] = file_label
            row = QHBoxLayout()
            row.addWidget(file_label, 1)
            if current and os.path.isfile(current):
                open_btn = QPushButton("Open")
                open_btn.clicked.connect(
                    lambda checked=False, p=current: QDesktopServices.openUrl(QUrl.fromLocalFile(p)))
                row.addWidget(open_btn)
            pick_btn = QPushButton("Choose...")
            pick_btn.clicked.connect(lambda checked=False, k=key: self.pick_file(k))
            row.addWidget(pick_btn)
            files_layout.addRow(f"{label}:", row)
        files_group.setLayout(files_layout)
        layout.addWidget(files_group)

        btn_layout = QHBoxLayout()
        btn_layout.addStretch()
        cancel_btn = QPushButton("Cancel")
        cancel_btn.clicked.connect(self.reject)
        self.save_btn = QPushButton("Save")
        self.save_btn.clicked.connect(self.validate_and_accept)
        btn_layout.addWidget(cancel_btn)
        btn_layout.addWidget(self.save_btn)
        layout.addLayout(btn_layout)

    def _apply_mask(self, field, formatter):
        widget = self.inputs[field]
        widget.blockSignals(True)
        widget.setText(formatter(widget.text()))
        widget.blockSignals(False)
        self.validate()

    def pick_file(self, key):
        path, _ = QFileDialog.getOpenFileName(self, "Select File", "", ATTACHMENT_FILTER)
        if path:
            self.files[key] = path
            self.file_labels[key].setText(path)
            self.file_labels[key].setStyleSheet("")

    def _show_error(self, field, message):
        for name in self.FIELDS:
            self.errors[name].hide()
            self.inputs[name].setStyleSheet("")
        if field in self.errors:
            self.errors[field].setText(message)
            self.errors[field].show()
            self.inputs[field].setStyleSheet(ERROR_BORDER)

    def validate(self):
        """Run the registration rules and flag the first failing field."""
        data = self.get_data()
        try:
            ClientService.validate(data['full_name'], data['cpf'], data['phone'], data['address'],
                                   data['email'], data['credit_limit'])
        except ValidationError as e:
            self._show_error(e.field, e.message)
            return False
        self._show_error(None, "")
        return True

    def validate_and_accept(self):
        if self.validate():
            self.accept()

    def get_references(self):
        refs = []
        for name_in, phone_in, rel_in in self.reference_inputs:
            ref = ClientReference(name_in.text().strip(), phone_in.text().strip(), rel_in.text().strip())
            if not ref.is_empty():
                refs.append(ref)
        return refs

    def get_data(self):
        return {
            'full_name': self.inputs['full_name'].text().strip(),
            'cpf': self.inputs['cpf'].text().strip(),
            'phone': self.inputs['phone'].text().strip(),
            'address': self.inputs['address'].text().strip(),
            'email': self.inputs['email'].text().strip() or None,
            'credit_limit': self.inputs['credit_limit'].value(),
            'references': self.get_references(),
        }

    def get_files(self):
        """Newly picked files, keyed by client field."""
        return {key: path for key, path in self.files.items() if path}


class LoanSimulatorDialog(QDialog):
    """Loan simulator with live terms.

    The operator picks amount, number of weeks and either the interest rate
    or the total to repay. Terms are recalculated on every change.
    """

    def __init__(self, loan_service, clients, parent=None, client_id=None):
        super().__init__(parent)
        self.loan_service = loan_service
        self.terms = None
        self.setWindowTitle("Loan Simulator")
        self.setMinimumWidth(440)

        layout = QVBoxLayout(self)
        form = QFormLayout()

        self.client_combo = QComboBox()
        for client in clients:
            self.client_combo.addItem(
                f"{client['full_name']} ({format_currency(client['available_credit'])} available)", client['id'])
        if client_id is not None:
            index = self.client_combo.findData(client_id)
            if index >= 0:
                self.client_combo.setCurrentIndex(index)
        form.addRow("Client:", self.client_combo)

        self.amount_input = QDoubleSpinBox()
        self.amount_input.setRange(0, MAX_CREDIT_LIMIT)
        self.amount_input.setDecimals(2)
        self.amount_input.setSingleStep(50)
        self.amount_input.setPrefix("R$ ")
        form.addRow("Amount:", self.amount_input)

        self.weeks_combo = QComboBox()
        for weeks in WEEK_OPTIONS:
            self.weeks_combo.addItem(f"{weeks} weeks", weeks)
        self.weeks_combo.setCurrentIndex(self.weeks_combo.findData(DEFAULT_WEEKS))
        form.addRow("Installments:", self.weeks_combo)

        self.rate_radio = QRadioButton("Interest rate")
        self.total_radio = QRadioButton("Total to repay")
        self.rate_radio.setChecked(True)
        mode_group = QButtonGroup(self)
        mode_group.addButton(self.rate_radio)
        mode_group.addButton(self.total_radio)
        mode_layout = QHBoxLayout()
        mode_layout.addWidget(self.rate_radio)
        mode_layout.addWidget(self.total_radio)
        form.addRow("Calculate by:", mode_layout)

        self.rate_input = QDoubleSpinBox()
        self.rate_input.setRange(0, 1000)
        self.rate_input.setDecimals(2)
        self.rate_input.setSuffix(" %")
        self.rate_input.setValue(DEFAULT_INTEREST_RATE)
        form.addRow("Interest rate:", self.rate_input)

        self.total_input = QDoubleSpinBox()
        self.total_input.setRange(0, MAX_CREDIT_LIMIT * 20)
        self.total_input.setDecimals(2)
        self.total_input.setPrefix("R$ ")
        self.total_input.setEnabled(False)
        form.addRow("Total:", self.total_input)

        self.first_payment_input = QDateEdit()
        self.first_payment_input.setCalendarPopup(True)
        self.first_payment_input.setDate(QDate.currentDate().addDays(7))
        form.addRow("First payment:", self.first_payment_input)

        layout.addLayout(form)

        terms_group = QGroupBox("Terms")
        self.terms_label = QLabel("Enter an amount to simulate.")
        self.terms_label.setWordWrap(True)
        self.terms_label.setTextFormat(Qt.TextFormat.RichText)
        terms_layout = QVBoxLayout()
        terms_layout.addWidget(self.terms_label)
        terms_group.setLayout(terms_layout)
        layout.addWidget(terms_group)

        btn_layout = QHBoxLayout()
        btn_layout.addStretch()
        cancel_btn = QPushButton("Cancel")
        cancel_btn.clicked.connect(self.reject)
        self.create_btn = QPushButton("Create Loan")
        self.create_btn.setEnabled(False)
        self.create_btn.clicked.connect(self.accept)
        btn_layout.addWidget(cancel_btn)
        btn_layout.addWidget(self.create_btn)
        layout.addLayout(btn_layout)

        self.client_combo.currentIndexChanged.connect(self.recalculate)
        self.amount_input.valueChanged.connect(self.recalculate)
        self.weeks_combo.currentIndexChanged.connect(self.recalculate)
        self.rate_input.valueChanged.connect(self.recalculate)
        self.total_input.valueChanged.connect(self.recalculate)
        self.first_payment_input.dateChanged.connect(self.recalculate)
        self.rate_radio.toggled.connect(self._toggle_mode)

    def _toggle_mode(self, by_rate):
        self.rate_input.setEnabled(by_rate)
        self.total_input.setEnabled(not by_rate)
        if not by_rate and self.total_input.value() < self.amount_input.value():
            self.total_input.setValue(self.amount_input.value() * (1 + self.rate_input.value() / 100))
        self.recalculate()

    def get_data(self):
        by_rate = self.rate_radio.isChecked()
        return {
            'client_id': self.client_combo.currentData(),
            'amount': self.amount_input.value(),
            'weeks': self.weeks_combo.currentData(),
            'interest_rate': self.rate_input.value() if by_rate else None,
            'total_amount': None if by_rate else self.total_input.value(),
            'first_payment_date': _from_qdate(self.first_payment_input.date()),
        }

    def recalculate(self):
        data = self.get_data()
        self.terms = None
        self.create_btn.setEnabled(False)
        if data['client_id'] is None:
            self.terms_label.setText("Register a client first.")
            return
        if data['amount'] <= 0:
            self.terms_label.setText("Enter an amount to simulate.")
            return

        result = self.loan_service.simulate(
            data['client_id'], data['amount'], data['weeks'],
            interest_rate=data['interest_rate'] if data['interest_rate'] is not None else DEFAULT_INTEREST_RATE,
            total_amount=data['total_amount'],
            first_payment_date=data['first_payment_date'],
        )
        if not result:
            self.terms_label.setText(f"<span style='color:#dc3545;'>{result.error}</span>")
            return

        terms = result.value
        self.terms = terms
        self.terms_label.setText(
            f"<b>Total:</b> {format_currency(terms.total_amount)}<br>"
            f"<b>Interest:</b> {format_currency(terms.interest_amount)} ({terms.interest_rate:.2f}%)<br>"
            f"<b>Installments:</b> {terms.weeks}× {format_currency(terms.weekly_payment)}<br>"
            f"<b>First payment:</b> {format_date(terms.first_payment_date)}<br>"
            f"<b>Due date:</b> {format_date(terms.due_date)}"
        )
        self.create_btn.setEnabled(True)


class PaymentDialog(QDialog):
    """Confirms the next installment of a loan."""

    def __init__(self, loan, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Register Payment")
        self.setMinimumWidth(380)
        self.receipt_file = None

        layout = QVBoxLayout(self)
        weeks_paid = int(loan['weeks_paid'] or 0)
        summary = QLabel(
            f"<b>{loan.get('client_name') or ''}</b><br>"
            f"Installment {weeks_paid + 1} of {loan['total_weeks']}: "
            f"{format_currency(loan['weekly_payment'])}<br>"
            f"Due: {format_date(loan.get('next_payment_date'))}"
        )
        summary.setTextFormat(Qt.TextFormat.RichText)
        layout.addWidget(summary)

        form = QFormLayout()
        self.date_input = QDateEdit()
        self.date_input.setCalendarPopup(True)
        self.date_input.setDate(QDate.currentDate())
        form.addRow("Payment date:", self.date_input)

        self.file_label = QLabel("No file")
        self.file_label.setStyleSheet("color: gray; font-style: italic;")
        pick_btn = QPushButton("Attach receipt...")
        pick_btn.clicked.connect(self.pick_file)
        file_row = QHBoxLayout()
        file_row.addWidget(self.file_label, 1)
        file_row.addWidget(pick_btn)
        form.addRow("Receipt file:", file_row)

        self.chk_generate = QCheckBox("Generate receipt PDF")
        self.chk_generate.setChecked(True)
        form.addRow(self.chk_generate)
        layout.addLayout(form)

        btn_layout = QHBoxLayout()
        btn_layout.addStretch()
        cancel_btn = QPushButton("Cancel")
        cancel_btn.clicked.connect(self.reject)
        ok_btn = QPushButton("Register")
        ok_btn.clicked.connect(self.accept)
        btn_layout.addWidget(cancel_btn)
        btn_layout.addWidget(ok_btn)
        layout.addLayout(btn_layout)

    def pick_file(self):
        path, _ = QFileDialog.getOpenFileName(self, "Select Receipt", "", ATTACHMENT_FILTER)
        if path:
            self.receipt_file = path
            self.file_label.setText(path)
            self.file_label.setStyleSheet("")

    def get_data(self):
        return {
            'payment_date': _from_qdate(self.date_input.date()),
            'receipt_file': self.receipt_file,
            'generate_receipt': self.chk_generate.isChecked(),
        }


class ReminderMessageDialog(QDialog):
    """Shows the reminder text and opens it in WhatsApp."""

    def __init__(self, payment, message, parent=None):
        super().__init__(parent)
        self.payment = payment
        self.setWindowTitle(f"Reminder - {payment.client_name}")
        self.resize(460, 420)

        layout = QVBoxLayout(self)
        layout.addWidget(QLabel(f"To: {payment.client_name} {format_phone(payment.client_phone)}"))
        self.text_edit = QTextEdit()
        self.text_edit.setPlainText(message)
        layout.addWidget(self.text_edit)

        self.error_label = QLabel()
        self.error_label.setStyleSheet(ERROR_STYLE)
        self.error_label.hide()
        layout.addWidget(self.error_label)

        btn_layout = QHBoxLayout()
        copy_btn = QPushButton("Copy")
        copy_btn.clicked.connect(self.copy_message)
        open_btn = QPushButton("Open WhatsApp")
        open_btn.clicked.connect(self.open_whatsapp)
        close_btn = QPushButton("Close")
        close_btn.clicked.connect(self.reject)
        btn_layout.addWidget(copy_btn)
        btn_layout.addStretch()
        btn_layout.addWidget(close_btn)
        btn_layout.addWidget(open_btn)
        layout.addLayout(btn_layout)

    def copy_message(self):
        QApplication.clipboard().setText(self.text_edit.toPlainText())

    def open_whatsapp(self):
        try:
            url = whatsapp_url(self.payment.client_phone, self.text_edit.toPlainText())
        except ValidationError as e:
            self.error_label.setText(e.message)
            self.error_label.show()
            return
        QDesktopServices.openUrl(QUrl(url))
        self.accept()


class ClientDocumentsDialog(QDialog):
    """Stored documents of a client, each with Open and Save As actions."""

    def __init__(self, client, attachment_store, parent=None):
        super().__init__(parent)
        self.attachments = attachment_store
        self.setWindowTitle(f"Documents - {client.get('full_name', '')}")
        self.setMinimumWidth(460)
        layout = QVBoxLayout(self)

        documents = client_documents(client)
        if not documents:
            empty = QLabel("No documents on file for this client.")
            empty.setStyleSheet("color: gray; font-style: italic;")
            layout.addWidget(empty)

        grid = QGridLayout()
        for row, (_, label, path) in enumerate(documents):
            name_label = QLabel(f"{label}:")
            file_label = QLabel(os.path.basename(path))
            file_label.setToolTip(path)
            open_btn = QPushButton("Open")
            open_btn.clicked.connect(lambda checked=False, p=path: self.open_document(p))
            save_btn = QPushButton("Save As...")
            save_btn.clicked.connect(lambda checked=False, p=path: self.save_document(p))
            if not os.path.isfile(path):
                file_label.setText(f"{os.path.basename(path)} (missing)")
                open_btn.setEnabled(False)
                save_btn.setEnabled(False)
            grid.addWidget(name_label, row, 0)
            grid.addWidget(file_label, row, 1)
            grid.addWidget(open_btn, row, 2)
            grid.addWidget(save_btn, row, 3)
        layout.addLayout(grid)

        btn_layout = QHBoxLayout()
        btn_layout.addStretch()
        close_btn = QPushButton("Close")
        close_btn.clicked.connect(self.accept)
        btn_layout.addWidget(close_btn)
        layout.addLayout(btn_layout)

    def open_document(self, path):
        QDesktopServices.openUrl(QUrl.fromLocalFile(path))

    def save_document(self, path):
        destination, _ = QFileDialog.getSaveFileName(self, "Save Document", os.path.basename(path),
                                                     ATTACHMENT_FILTER)
        if not destination:
            return
        try:
            self.attachments.export(path, destination)
        except AttachmentError as e:
            QMessageBox.warning(self, "Save Failed", e.message)
            return
        QMessageBox.information(self, "Saved", f"Document saved to:\n{destination}")
