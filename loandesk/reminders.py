"""Upcoming payment tracking and WhatsApp reminder messages."""
from datetime import date
from urllib.parse import quote

from loandesk.config import (
    STATUS_COMPLETED,
    UPCOMING_WINDOW_DAYS,
    URGENT_DAYS,
    WHATSAPP_BASE_URL,
    WHATSAPP_COUNTRY_CODE,
)
from loandesk.data_structures import UpcomingPayment
from loandesk.exceptions import ValidationError
from loandesk.formatters import format_currency, format_date, only_digits, parse_date
from loandesk.logger import get_logger

logger = get_logger(__name__)

URGENCY_OVERDUE = "overdue"
URGENCY_TODAY = "today"
URGENCY_URGENT = "urgent"
URGENCY_UPCOMING = "upcoming"


def classify(days_until_due):
    if days_until_due < 0:
        return URGENCY_OVERDUE
    if days_until_due == 0:
        return URGENCY_TODAY
    if days_until_due <= URGENT_DAYS:
        return URGENCY_URGENT
    return URGENCY_UPCOMING


def build_reminder_message(payment: UpcomingPayment) -> str:
    """Compose the reminder text sent to a client."""
    message = f"Hello {payment.client_name}! 👋\n\n"

    if payment.days_until_due < 0:
        days = abs(payment.days_until_due)
        message += "⚠️ *PAYMENT OVERDUE*\n\n"
        message += f"Your installment is {days} day{'s' if days != 1 else ''} overdue.\n\n"
    elif payment.days_until_due == 0:
        message += "⏰ *PAYMENT REMINDER*\n\n"
        message += "Your installment is due today!\n\n"
    else:
        days = payment.days_until_due
        message += "📅 *PAYMENT REMINDER*\n\n"
        message += f"Your installment is due in {days} day{'s' if days != 1 else ''}.\n\n"

    message += "💰 *Payment details:*\n"
    message += f"• Installment: {payment.installment_number} of {payment.total_weeks}\n"
    message += f"• Amount: {format_currency(payment.weekly_payment)}\n"
    message += f"• Due date: {format_date(payment.next_payment_date)}\n\n"

    if payment.days_until_due < 0:
        message += "Please settle your payment as soon as possible. 🙏"
    else:
        message += "Thank you for paying on time! 😊"
    return message


def whatsapp_url(phone, message):
    """Build a wa.me link that opens a chat with the message pre-filled.

    Raises:
        ValidationError: If the phone number has no digits.
    """
    digits = only_digits(phone)
    if not digits:
        raise ValidationError('phone', "Client has no phone number registered")
    return f"{WHATSAPP_BASE_URL}{WHATSAPP_COUNTRY_CODE}{digits}?text={quote(message, safe='')}"


class ReminderService:
    """Finds installments coming due and prepares client reminders."""

    def __init__(self, db_manager, window_days=UPCOMING_WINDOW_DAYS):
        self.db = db_manager
        self.window_days = window_days

    def upcoming_payments(self, today=None):
        """Open loans due within the window, overdue ones included.

        Returns:
            List of UpcomingPayment sorted by days until due.
        """
        today = today or date.today()
        upcoming = []
        for loan in self.db.get_loans(exclude_status=STATUS_COMPLETED):
            next_date = parse_date(loan.get('next_payment_date'))
            if next_date is None:
                continue
            days = (next_date - today).days
            if days > self.window_days:
                continue
            upcoming.append(UpcomingPayment(
                loan_id=loan['id'],
                client_id=loan['client_id'],
                client_name=loan.get('client_name') or "",
                client_phone=loan.get('client_phone') or "",
                weekly_payment=float(loan['weekly_payment'] or 0),
                weeks_paid=int(loan['weeks_paid'] or 0),
                total_weeks=int(loan['total_weeks']),
                next_payment_date=next_date,
                days_until_due=days,
                urgency=classify(days),
            ))
        upcoming.sort(key=lambda p: (p.days_until_due, p.client_name.lower()))
        return upcoming

    def counts(self, today=None):
        """Number of upcoming payments per urgency class."""
        counts = {URGENCY_OVERDUE: 0, URGENCY_TODAY: 0, URGENCY_URGENT: 0, URGENCY_UPCOMING: 0}
        for payment in self.upcoming_payments(today):
            counts[payment.urgency] += 1
        return counts

    def reminder_for(self, payment: UpcomingPayment):
        """Return (message, url) for a payment."""
        message = build_reminder_message(payment)
        url = whatsapp_url(payment.client_phone, message)
        logger.info("Prepared reminder for loan %s (%s)", payment.loan_id, payment.urgency)
        return message, url
