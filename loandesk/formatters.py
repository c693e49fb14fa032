"""Display formatting helpers: CPF, phone, names, currency and dates."""
import re
import unicodedata
from datetime import date, datetime

from loandesk.config import (
    CURRENCY_SYMBOL,
    DATE_FORMAT_DISPLAY,
    DATE_FORMAT_STORAGE,
    DATETIME_FORMAT_DISPLAY,
)

# Connectives kept lowercase inside names ("Maria da Silva")
NAME_CONNECTIVES = {'e', 'de', 'da', 'do', 'das', 'dos', 'a', 'o', 'as', 'os', 'em', 'por', 'com'}


def only_digits(value) -> str:
    if not value:
        return ""
    return re.sub(r'\D', '', str(value))


def format_cpf(value) -> str:
    """Apply the 000.000.000-00 mask progressively, up to 11 digits."""
    cpf = only_digits(value)[:11]
    if len(cpf) <= 3:
        return cpf
    if len(cpf) <= 6:
        return f"{cpf[:3]}.{cpf[3:]}"
    if len(cpf) <= 9:
        return f"{cpf[:3]}.{cpf[3:6]}.{cpf[6:]}"
    return f"{cpf[:3]}.{cpf[3:6]}.{cpf[6:9]}-{cpf[9:]}"


def format_phone(value) -> str:
    """Apply the (00) 00000-0000 mask progressively, up to 11 digits."""
    phone = only_digits(value)[:11]
    if len(phone) <= 2:
        return f"({phone}" if phone else phone
    if len(phone) <= 7:
        return f"({phone[:2]}) {phone[2:]}"
    return f"({phone[:2]}) {phone[2:7]}-{phone[7:]}"


def capitalize_words(value) -> str:
    """Title-case a person's name, keeping connectives lowercase.

    The first word is always capitalized, so "de souza" becomes "De Souza".
    Runs of spaces are preserved.
    """
    if not value:
        return ""

    words = str(value).lower().split(' ')
    result = []
    seen_word = False
    for word in words:
        if not word:
            result.append('')
            continue
        if word in NAME_CONNECTIVES and seen_word:
            result.append(word)
        else:
            result.append(word[0].upper() + word[1:])
        seen_word = True
    return ' '.join(result)


def format_currency(amount) -> str:
    """Format as "R$ 1234.56". None renders as zero."""
    try:
        value = float(amount or 0)
    except (TypeError, ValueError):
        value = 0.0
    if abs(value) < 0.005:
        value = 0.0
    return f"{CURRENCY_SYMBOL} {value:.2f}"


def parse_date(value):
    """Parse an ISO date (or datetime) string into a date.

    Returns None for empty input. date and datetime objects pass through.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.strptime(text[:10], DATE_FORMAT_STORAGE).date()
    except ValueError:
        raise ValueError(f"Invalid date '{value}'. Expected YYYY-MM-DD.")


def to_storage_date(value) -> str:
    parsed = parse_date(value)
    return parsed.strftime(DATE_FORMAT_STORAGE) if parsed else None


def format_date(value) -> str:
    """Format a stored date as dd/mm/yyyy. Empty values render as "-"."""
    parsed = parse_date(value)
    if parsed is None:
        return "-"
    return parsed.strftime(DATE_FORMAT_DISPLAY)


def format_datetime(value) -> str:
    if not value:
        return "-"
    if isinstance(value, datetime):
        return value.strftime(DATETIME_FORMAT_DISPLAY)
    try:
        return datetime.fromisoformat(str(value)).strftime(DATETIME_FORMAT_DISPLAY)
    except ValueError:
        return str(value)


def strip_accents(value) -> str:
    normalized = unicodedata.normalize('NFKD', str(value or ""))
    return "".join(c for c in normalized if not unicodedata.combining(c))


def sanitize_filename(name, separator="_", fallback="documento") -> str:
    """Make a client name safe for use in a file name.

    Accents are stripped, anything outside letters, digits, spaces, dashes
    and underscores is dropped, and whitespace runs become ``separator``.
    """
    safe = strip_accents(name)
    safe = "".join(c for c in safe if c.isalnum() or c in (' ', '-', '_'))
    safe = re.sub(r'\s+', separator, safe.strip())
    if not safe:
        safe = fallback
    return safe[:100]
