"""Loan registry service for LoanDesk.

This service handles all loan-related operations including:
- Term calculation (flat interest, equal weekly installments)
- Simulation against the client's available credit
- Loan origination and removal
- Payment schedules and status
"""
from datetime import date

from dateutil.relativedelta import relativedelta

from loandesk.config import DEFAULT_INTEREST_RATE, STATUS_COMPLETED, STATUS_PENDING, LOAN_STATUSES
from loandesk.data_structures import LoanTerms, ScheduleRow
from loandesk.exceptions import (
    ClientNotFoundError,
    InsufficientCreditError,
    LoanNotFoundError,
    ValidationError,
)
from loandesk.formatters import format_currency, parse_date, to_storage_date
from loandesk.logger import get_logger
from loandesk.result import ErrorType, Result

logger = get_logger(__name__)


def _validate_amount_and_weeks(amount, weeks):
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        raise ValidationError('amount', "Loan amount must be a number")
    if amount <= 0:
        raise ValidationError('amount', "Loan amount must be greater than zero")
    if isinstance(weeks, bool) or not isinstance(weeks, int) or weeks < 1:
        raise ValidationError('weeks', "Number of weeks must be a positive whole number")
    return amount, int(weeks)


def _build_terms(amount, weeks, interest_rate, total_amount, first_payment_date, loan_date):
    loan_date = parse_date(loan_date) or date.today()
    first_payment_date = parse_date(first_payment_date) or (loan_date + relativedelta(weeks=1))
    due_date = first_payment_date + relativedelta(weeks=weeks - 1)
    return LoanTerms(
        amount=round(amount, 2),
        weeks=weeks,
        interest_rate=round(interest_rate, 2),
        total_amount=round(total_amount, 2),
        weekly_payment=round(total_amount / weeks, 2),
        loan_date=loan_date,
        first_payment_date=first_payment_date,
        due_date=due_date,
    )


def calculate_terms(amount, weeks, interest_rate=DEFAULT_INTEREST_RATE, first_payment_date=None, loan_date=None):
    """Calculate loan terms from a principal and a flat rate.

    total = amount * (1 + rate / 100), repaid in ``weeks`` equal weekly
    installments. The first installment defaults to one week after the
    loan date; the due date is the last installment.

    Args:
        amount: Principal.
        weeks: Number of weekly installments.
        interest_rate: Flat rate in percent over the whole loan.
        first_payment_date: Optional first installment date.
        loan_date: Origination date, defaults to today.

    Raises:
        ValidationError: On a non-positive amount, bad week count or negative rate.
    """
    amount, weeks = _validate_amount_and_weeks(amount, weeks)
    if interest_rate is None:
        interest_rate = DEFAULT_INTEREST_RATE
    if interest_rate < 0:
        raise ValidationError('interest_rate', "Interest rate cannot be negative")
    total = round(amount * (1 + interest_rate / 100), 2)
    return _build_terms(amount, weeks, interest_rate, total, first_payment_date, loan_date)


def terms_from_total(amount, weeks, total_amount, first_payment_date=None, loan_date=None):
    """Calculate terms when the operator fixes the total to be repaid.

    The rate is derived as (total - amount) / amount * 100.

    Raises:
        ValidationError: If the total is lower than the principal.
    """
    amount, weeks = _validate_amount_and_weeks(amount, weeks)
    try:
        total_amount = float(total_amount)
    except (TypeError, ValueError):
        raise ValidationError('total_amount', "Total amount must be a number")
    if total_amount < amount:
        raise ValidationError('total_amount', "Total amount cannot be lower than the loan amount")
    rate = (total_amount - amount) / amount * 100
    return _build_terms(amount, weeks, rate, total_amount, first_payment_date, loan_date)


def next_payment_date_for(loan_date, weeks_paid):
    """Installment date after ``weeks_paid`` payments: loan_date + 7 days * (weeks_paid + 1)."""
    return parse_date(loan_date) + relativedelta(days=7 * (weeks_paid + 1))


def paid_week_numbers(payments):
    """Installment numbers that have at least one payment row."""
    return {p['week_number'] for p in payments if p.get('week_number') is not None}


def first_unpaid_week(total_weeks, paid_weeks):
    """Lowest installment without a payment, or None when every one is paid."""
    unpaid = set(range(1, int(total_weeks) + 1)) - set(paid_weeks)
    return min(unpaid) if unpaid else None


def payment_status(loan, today=None):
    """Classify a loan as completed, overdue or pending."""
    if loan.get('status') == STATUS_COMPLETED:
        return STATUS_COMPLETED
    today = today or date.today()
    next_date = parse_date(loan.get('next_payment_date'))
    if next_date and next_date < today:
        return "overdue"
    return STATUS_PENDING


class LoanService:
    """Handles loan lifecycle operations.

    Credit bookkeeping on the client row (available credit, first-loan
    flag, total borrowed) is done here together with the loan writes, in
    one transaction.
    """

    def __init__(self, db_manager, activity_logger=None):
        """Initialize LoanService.

        Args:
            db_manager: DatabaseManager instance for data persistence.
            activity_logger: Optional ActivityLogger instance.
        """
        self.db = db_manager
        self._activity = activity_logger

    @property
    def activity(self):
        """Lazy-load the activity logger."""
        if self._activity is None:
            from loandesk.activity_log import ActivityLogger
            self._activity = ActivityLogger(self.db)
        return self._activity

    def _terms(self, amount, weeks, interest_rate, total_amount, first_payment_date, loan_date):
        if total_amount is not None:
            return terms_from_total(amount, weeks, total_amount, first_payment_date, loan_date)
        return calculate_terms(amount, weeks, interest_rate, first_payment_date, loan_date)

    def simulate(self, client_id, amount, weeks, interest_rate=DEFAULT_INTEREST_RATE, total_amount=None,
                 first_payment_date=None, loan_date=None) -> Result:
        """Calculate terms for a client without raising.

        Returns:
            Result holding LoanTerms, or a failure with an ErrorType.
        """
        client = self.db.get_client(client_id)
        if not client:
            return Result.fail(f"Client with ID {client_id} not found", ErrorType.NOT_FOUND)
        try:
            terms = self._terms(amount, weeks, interest_rate, total_amount, first_payment_date, loan_date)
        except ValidationError as e:
            return Result.fail(e.message, ErrorType.VALIDATION)

        available = float(client['available_credit'] or 0)
        if terms.amount > available:
            return Result.fail(
                f"Amount {format_currency(terms.amount)} exceeds available credit {format_currency(available)}",
                ErrorType.INSUFFICIENT_CREDIT)
        return Result.ok(terms)

    def create_loan(self, client_id, amount, weeks, interest_rate=DEFAULT_INTEREST_RATE,
                    first_payment_date=None, loan_date=None, total_amount=None, status=STATUS_PENDING):
        """Originate a loan and reserve the principal from the client's credit.

        Returns:
            ID of the new loan.

        Raises:
            ClientNotFoundError: If the client does not exist.
            ValidationError: On invalid terms or status.
            InsufficientCreditError: If the amount exceeds the available credit.
        """
        if status not in LOAN_STATUSES or status == STATUS_COMPLETED:
            raise ValidationError('status', f"A new loan cannot start as '{status}'")
        client = self.db.get_client(client_id)
        if not client:
            raise ClientNotFoundError(client_id=client_id)

        terms = self._terms(amount, weeks, interest_rate, total_amount, first_payment_date, loan_date)
        available = float(client['available_credit'] or 0)
        if terms.amount > available:
            raise InsufficientCreditError(terms.amount, available, client_id)

        with self.db.transaction():
            loan_id = self.db.add_loan(
                client_id=client_id,
                loan_amount=terms.amount,
                interest_rate=terms.interest_rate,
                total_amount=terms.total_amount,
                weekly_payment=terms.weekly_payment,
                total_weeks=terms.weeks,
                loan_date=to_storage_date(terms.loan_date),
                due_date=to_storage_date(terms.due_date),
                next_payment_date=to_storage_date(terms.first_payment_date),
                status=status,
                description=f"Loan of {format_currency(terms.amount)}",
            )
            self.db.update_client(
                client_id,
                available_credit=round(available - terms.amount, 2),
                is_first_loan=0,
                total_borrowed=round(float(client['total_borrowed'] or 0) + terms.amount, 2),
            )

        logger.info("Loan %s created for client %s: %.2f over %s weeks", loan_id, client_id,
                    terms.amount, terms.weeks)
        self.activity.log_loan_action("Create loan", client['full_name'], loan_id, terms.amount)
        return loan_id

    def get_loan(self, loan_id):
        """Fetch a loan with client fields.

        Raises:
            LoanNotFoundError: If no loan has this ID.
        """
        loan = self.db.get_loan(loan_id)
        if not loan:
            raise LoanNotFoundError(loan_id=loan_id)
        return loan

    def list_loans(self, client_id=None, status=None):
        """Loans newest first, optionally for one client or status."""
        return self.db.get_loans(client_id=client_id, status=status)

    def delete_loan(self, loan_id):
        """Delete a loan and its payments.

        If the loan was not paid off, its principal goes back to the
        client's available credit, never beyond the credit limit.
        """
        loan = self.get_loan(loan_id)
        with self.db.transaction():
            if loan['status'] != STATUS_COMPLETED:
                client = self.db.get_client(loan['client_id'])
                if client:
                    restored = float(client['available_credit'] or 0) + float(loan['loan_amount'])
                    restored = min(restored, float(client['credit_limit'] or 0))
                    self.db.update_client(loan['client_id'], available_credit=round(restored, 2))
            self.db.delete_loan(loan_id)

        logger.info("Loan %s deleted", loan_id)
        self.activity.log_loan_action("Delete loan", loan.get('client_name') or "-", loan_id, loan['loan_amount'])

    @staticmethod
    def first_payment_date(loan):
        """First installment date, derived from the due date and week count."""
        due = parse_date(loan.get('due_date'))
        if due:
            return due - relativedelta(weeks=int(loan['total_weeks']) - 1)
        return parse_date(loan['loan_date']) + relativedelta(weeks=1)

    @classmethod
    def installment_date(cls, loan, week_number):
        """Due date of installment ``week_number`` (1-based)."""
        return cls.first_payment_date(loan) + relativedelta(weeks=week_number - 1)

    def payment_schedule(self, loan, payments=None):
        """Installment plan for a loan.

        Args:
            loan: Loan dict.
            payments: Optional payment rows; when given, an installment is
                marked paid if a payment exists for its week. Otherwise the
                first ``weeks_paid`` installments are marked paid.
        """
        first = self.first_payment_date(loan)
        if payments is not None:
            paid_weeks = paid_week_numbers(payments)
        else:
            paid_weeks = set(range(1, int(loan.get('weeks_paid') or 0) + 1))

        return [
            ScheduleRow(
                week_number=week,
                due_date=first + relativedelta(weeks=week - 1),
                amount=float(loan['weekly_payment']),
                paid=week in paid_weeks,
            )
            for week in range(1, int(loan['total_weeks']) + 1)
        ]

    def dashboard_stats(self):
        """Headline numbers for the dashboard."""
        loans = self.db.get_loans()
        open_loans = [l for l in loans if l['status'] != STATUS_COMPLETED]
        return {
            'clients': len(self.db.get_clients()),
            'active_loans': len(open_loans),
            'total_lent': round(sum(float(l['loan_amount'] or 0) for l in loans), 2),
            'pending_installments': sum(
                max(int(l['total_weeks'] or 0) - int(l['weeks_paid'] or 0), 0) for l in open_loans),
        }
