"""Document generator for LoanDesk.

Builds the loan proposal and the payment receipt as HTML and prints them
to PDF through QtWebEngine, falling back to a plain .html file when no
printer view is available.
"""
import os
from datetime import datetime
from html import escape

from loandesk.config import DATE_FORMAT_DISPLAY, DATETIME_FORMAT_DISPLAY, STATUS_COMPLETED
from loandesk.data_structures import DocumentConfig, ProposalPresentation, ReceiptPresentation
from loandesk.formatters import (
    format_cpf,
    format_currency,
    format_date,
    format_phone,
    sanitize_filename,
)
from loandesk.logger import get_logger
from loandesk.pdf_printer import print_html_to_pdf
from loandesk.services.client_service import unpack_address
from loandesk.services.loan_service import LoanService, first_unpaid_week, paid_week_numbers, payment_status

logger = get_logger(__name__)

STATUS_LABELS = {
    STATUS_COMPLETED: "Settled",
    "overdue": "Overdue",
    "pending": "Pending",
}

_BASE_STYLE = """
    body { font-family: Arial, sans-serif; margin: 0; padding: 20px; font-size: 11px; color: #333; }
    .header { text-align: center; border-bottom: 3px solid #2b5797; padding-bottom: 10px; margin-bottom: 15px; }
    .header h1 { color: #2b5797; margin: 0; font-size: 20px; }
    .header .tagline { color: #666; font-size: 11px; }
    .header h2 { margin: 10px 0 0 0; font-size: 16px; }
    .section { margin-bottom: 14px; }
    .section-title { background: #2b5797; color: white; padding: 5px 10px; font-weight: bold; }
    .box { background: #f5f5f5; padding: 8px 10px; }
    .box p { margin: 3px 0; }
    table { width: 100%; border-collapse: collapse; font-size: 10px; }
    th { background: #e0e0e0; padding: 4px; text-align: left; border: 1px solid #ccc; }
    td { padding: 3px 4px; border: 1px solid #ddd; }
    .paid { color: #28a745; font-weight: bold; }
    .footer { margin-top: 20px; text-align: center; font-size: 9px; color: #999; }
"""


class DocumentGenerator:
    """Generates loan proposals and payment receipts."""

    def __init__(self, db_manager, printer_view_getter=None, config: DocumentConfig = None):
        """Initialize DocumentGenerator.

        Args:
            db_manager: DatabaseManager instance for data access.
            printer_view_getter: Optional callable that returns a QWebEngineView
                for PDF generation. If None, HTML fallback is used.
            config: Optional DocumentConfig.
        """
        self.db = db_manager
        self._get_printer_view = printer_view_getter
        self.config = config or DocumentConfig()

    # ------------------------------------------------------------------
    # Filenames
    # ------------------------------------------------------------------

    @staticmethod
    def proposal_filename(client_name, issued=None):
        issued = issued or datetime.now()
        safe_name = sanitize_filename(client_name, separator="_", fallback="cliente").lower()
        return f"proposta_emprestimo_{safe_name}_{issued.strftime('%Y%m%d')}.pdf"

    @staticmethod
    def receipt_filename(client_name, receipt_number):
        safe_name = sanitize_filename(client_name, separator="-", fallback="cliente")
        return f"recibo-{safe_name}-{receipt_number}.pdf"

    @staticmethod
    def receipt_number(payment_id):
        return f"{int(payment_id):06d}"

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def _prepare_proposal(self, loan_id, today=None) -> ProposalPresentation:
        loan = self.db.get_loan(loan_id)
        if not loan:
            raise ValueError(f"Loan with ID {loan_id} not found.")

        client = self.db.get_client(loan['client_id']) or {}
        address, _ = unpack_address(client.get('address') or loan.get('client_address') or "")
        payments = self.db.get_payments(loan_id)

        weeks_paid = int(loan['weeks_paid'] or 0)
        total_weeks = int(loan['total_weeks'])
        weekly = float(loan['weekly_payment'])

        client_view = {
            'name': client.get('full_name') or loan.get('client_name') or "",
            'cpf': format_cpf(client.get('cpf') or loan.get('client_cpf') or ""),
            'phone': format_phone(client.get('phone') or loan.get('client_phone') or ""),
            'credit_limit': float(client.get('credit_limit') or loan.get('client_credit_limit') or 0),
            'address': address,
        }

        return ProposalPresentation(
            issue_date=(today or datetime.now()).strftime(DATE_FORMAT_DISPLAY),
            client=client_view,
            loan=loan,
            interest_amount=round(float(loan['total_amount']) - float(loan['loan_amount']), 2),
            paid_amount=round(weeks_paid * weekly, 2),
            remaining_amount=round(max(total_weeks - weeks_paid, 0) * weekly, 2),
            status_label=STATUS_LABELS[payment_status(loan)],
            schedule=LoanService(self.db).payment_schedule(loan, payments),
        )

    def _prepare_receipt(self, payment_id, today=None) -> ReceiptPresentation:
        payment = self.db.get_payment(payment_id)
        if not payment:
            raise ValueError(f"Payment with ID {payment_id} not found.")
        loan = self.db.get_loan(payment['loan_id'])
        if not loan:
            raise ValueError(f"Loan with ID {payment['loan_id']} not found.")

        if payment['week_number'] is None:
            raise ValueError(f"Payment with ID {payment_id} has no installment number.")

        week = int(payment['week_number'])
        total_weeks = int(loan['total_weeks'])
        weekly = float(loan['weekly_payment'])
        # Installments settled up to and including this payment
        paid_weeks = paid_week_numbers(
            p for p in self.db.get_payments(loan['id']) if p['id'] <= payment['id'])
        next_week = first_unpaid_week(total_weeks, paid_weeks)
        is_settlement = next_week is None
        remaining_weeks = max(total_weeks - len(paid_weeks), 0)

        next_payment = None
        if not is_settlement:
            next_payment = format_date(LoanService.installment_date(loan, next_week))

        return ReceiptPresentation(
            receipt_number=self.receipt_number(payment['id']),
            issue_date=(today or datetime.now()).strftime(DATETIME_FORMAT_DISPLAY),
            client_name=loan.get('client_name') or "",
            client_cpf=format_cpf(loan.get('client_cpf') or ""),
            installment_number=week,
            total_weeks=total_weeks,
            amount=float(payment['payment_amount']),
            payment_date=format_date(payment['payment_date']),
            is_settlement=is_settlement,
            remaining_weeks=remaining_weeks,
            loan=loan,
            paid_amount=round(len(paid_weeks) * weekly, 2),
            remaining_amount=round(remaining_weeks * weekly, 2),
            next_payment_date=next_payment,
        )

    # ------------------------------------------------------------------
    # HTML
    # ------------------------------------------------------------------

    def _header_html(self, title, subtitle):
        return f"""<div class="header">
    <h1>{escape(self.config.company_name)}</h1>
    <div class="tagline">{escape(self.config.company_tagline)}</div>
    <h2>{title}</h2>
    <div>{subtitle}</div>
</div>"""

    def _proposal_html(self, p: ProposalPresentation):
        loan = p.loan
        weeks_paid = int(loan['weeks_paid'] or 0)
        total_weeks = int(loan['total_weeks'])
        next_payment = format_date(loan.get('next_payment_date')) if loan['status'] != STATUS_COMPLETED else "-"

        html = f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"><style>{_BASE_STYLE}</style></head><body>"""
        html += self._header_html("LOAN PROPOSAL", f"Issued on {p.issue_date}")

        html += f"""<div class="section"><div class="section-title">CLIENT</div><div class="box">
    <p><strong>Name:</strong> {escape(p.client['name'])}</p>
    <p><strong>CPF:</strong> {p.client['cpf']}</p>
    <p><strong>Phone:</strong> {p.client['phone']}</p>
    <p><strong>Credit limit:</strong> {format_currency(p.client['credit_limit'])}</p>
    <p><strong>Address:</strong> {escape(p.client['address'] or '-')}</p>
</div></div>"""

        html += f"""<div class="section"><div class="section-title">LOAN</div><div class="box">
    <p><strong>Amount:</strong> {format_currency(loan['loan_amount'])}</p>
    <p><strong>Total to repay:</strong> {format_currency(loan['total_amount'])}</p>
    <p><strong>Interest:</strong> {format_currency(p.interest_amount)} ({float(loan['interest_rate']):.1f}%)</p>
    <p><strong>Installments:</strong> {total_weeks}× {format_currency(loan['weekly_payment'])} weekly</p>
    <p><strong>Loan date:</strong> {format_date(loan['loan_date'])}</p>
    <p><strong>Due date:</strong> {format_date(loan['due_date'])}</p>
</div></div>"""

        html += f"""<div class="section"><div class="section-title">STATUS</div><div class="box">
    <p><strong>Installments paid:</strong> {weeks_paid} of {total_weeks}</p>
    <p><strong>Amount paid:</strong> {format_currency(p.paid_amount)}</p>
    <p><strong>Remaining:</strong> {format_currency(p.remaining_amount)}</p>
    <p><strong>Status:</strong> {p.status_label}</p>
    <p><strong>Next payment:</strong> {next_payment}</p>
</div></div>"""

        html += """<div class="section"><div class="section-title">PAYMENT SCHEDULE</div>"""
        rows_per_page = max(self.config.schedule_rows_per_page, 1)
        for start in range(0, len(p.schedule), rows_per_page):
            chunk = p.schedule[start:start + rows_per_page]
            page_break = ' style="page-break-before: always;"' if start else ''
            html += f"<table{page_break}><thead><tr><th>Installment</th><th>Due date</th><th>Amount</th><th>Paid</th></tr></thead><tbody>"
            for row in chunk:
                paid = '<span class="paid">Yes</span>' if row.paid else "No"
                html += (f"<tr><td>{row.week_number}/{total_weeks}</td><td>{format_date(row.due_date)}</td>"
                         f"<td>{format_currency(row.amount)}</td><td>{paid}</td></tr>")
            html += "</tbody></table>"
        html += "</div>"

        html += '<div class="section"><div class="section-title">TERMS</div><div class="box"><ol>'
        for term in self.config.terms:
            html += f"<li>{escape(term)}</li>"
        html += "</ol></div></div>"

        html += """<table style="margin-top:50px; border:none;"><tr>
    <td style="border:none; text-align:center;">______________________________<br>Client</td>
    <td style="border:none; text-align:center;">______________________________<br>Collections</td>
</tr></table>"""

        html += f"""<div class="footer">Document generated on {datetime.now().strftime(DATETIME_FORMAT_DISPLAY)}</div>
</body></html>"""
        return html

    def _receipt_html(self, r: ReceiptPresentation):
        loan = r.loan
        title = "SETTLEMENT RECEIPT" if r.is_settlement else "PAYMENT RECEIPT"
        if r.is_settlement:
            status = '<p class="paid">LOAN SETTLED</p>'
        else:
            plural = "S" if r.remaining_weeks != 1 else ""
            status = f"<p><strong>{r.remaining_weeks} INSTALLMENT{plural} REMAINING</strong></p>"

        html = f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"><style>{_BASE_STYLE}</style></head><body>"""
        html += self._header_html(title, f"Receipt #{r.receipt_number}")

        html += f"""<div class="section"><div class="section-title">CLIENT</div><div class="box">
    <p><strong>Name:</strong> {escape(r.client_name)}</p>
    <p><strong>CPF:</strong> {r.client_cpf}</p>
</div></div>"""

        html += f"""<div class="section"><div class="section-title">PAYMENT</div><div class="box">
    <p><strong>Installment:</strong> {r.installment_number} of {r.total_weeks}</p>
    <p><strong>Amount:</strong> {format_currency(r.amount)}</p>
    <p><strong>Payment date:</strong> {r.payment_date}</p>
    {status}
</div></div>"""

        html += f"""<div class="section"><div class="section-title">LOAN SUMMARY</div><div class="box">
    <p><strong>Original amount:</strong> {format_currency(loan['loan_amount'])}</p>
    <p><strong>Total:</strong> {format_currency(loan['total_amount'])}</p>
    <p><strong>Interest rate:</strong> {float(loan['interest_rate']):.1f}%</p>
    <p><strong>Weekly payment:</strong> {format_currency(loan['weekly_payment'])}</p>
    <p><strong>Paid:</strong> {format_currency(r.paid_amount)}</p>"""
        if not r.is_settlement:
            html += f"\n    <p><strong>Remaining:</strong> {format_currency(r.remaining_amount)}</p>"
        html += "\n</div></div>"

        if r.next_payment_date:
            html += f"""<div class="section"><div class="box"><p><strong>Next payment:</strong> {r.next_payment_date}</p></div></div>"""

        html += f"""<div class="footer">Receipt generated on {r.issue_date}</div>
</body></html>"""
        return html

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _write(self, html, filepath):
        """Print ``html`` to ``filepath``, or write an .html next to it.

        Returns:
            Tuple of (success, path, kind) where kind is "pdf", "html" or "failed".
        """
        web_view = self._get_printer_view() if self._get_printer_view else None
        error = None
        if web_view is not None:
            try:
                if print_html_to_pdf(web_view, html, filepath):
                    return True, filepath, "pdf"
                error = "printer reported failure"
            except Exception as e:
                error = str(e)
        else:
            error = "QWebEngineView not available"

        if not self.config.allow_html_fallback:
            logger.error("PDF generation failed: %s. Fallback disabled.", error)
            return False, None, "failed"

        logger.warning("PDF generation failed: %s, falling back to HTML", error)
        html_path = os.path.splitext(filepath)[0] + ".html"
        try:
            with open(html_path, 'w', encoding='utf-8') as f:
                f.write(html)
        except OSError as e:
            logger.error("Could not write %s: %s", html_path, e)
            return False, None, "failed"
        return True, html_path, "html"

    def generate_proposal(self, loan_id, folder):
        """Generate the proposal document for a loan.

        Returns:
            Tuple of (success, path, kind).
        """
        try:
            presentation = self._prepare_proposal(loan_id)
        except ValueError as e:
            logger.error("Validation Error: %s", e)
            return False, None, "error"

        filename = self.proposal_filename(presentation.client['name'])
        return self._write(self._proposal_html(presentation), os.path.join(folder, filename))

    def generate_receipt(self, payment_id, folder):
        """Generate the receipt for a registered payment.

        Returns:
            Tuple of (success, path, kind).
        """
        try:
            presentation = self._prepare_receipt(payment_id)
        except ValueError as e:
            logger.error("Validation Error: %s", e)
            return False, None, "error"

        filename = self.receipt_filename(presentation.client_name, presentation.receipt_number)
        return self._write(self._receipt_html(presentation), os.path.join(folder, filename))

    def generate_receipt_for_week(self, loan_id, week_number, folder):
        """Generate the receipt of a loan's installment by week number."""
        for payment in self.db.get_payments(loan_id):
            if payment['week_number'] == week_number:
                return self.generate_receipt(payment['id'], folder)
        logger.error("No payment for loan %s week %s", loan_id, week_number)
        return False, None, "error"
