"""Centralized configuration for LoanDesk application.

Business rule constants and display defaults. Values the operator can
change at runtime (opening cash balance, operator name, theme, attachment
folder) live in the ``settings`` table instead, see SETTINGS DEFAULTS.
"""

# =============================================================================
# LOAN DEFAULTS
# =============================================================================

# Flat interest rate applied over the whole loan, in percent
DEFAULT_INTEREST_RATE = 35.0

# Installment counts offered by the simulator (one installment per week)
WEEK_OPTIONS = (2, 3, 4, 6, 8, 12)

DEFAULT_WEEKS = 4

# Loan statuses
STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"

LOAN_STATUSES = (STATUS_PENDING, STATUS_ACTIVE, STATUS_COMPLETED)

# =============================================================================
# CLIENT CREDIT
# =============================================================================

# Limit proposed by the client form
DEFAULT_CREDIT_LIMIT = 1000

# Column default for rows created without an explicit limit
DB_DEFAULT_CREDIT_LIMIT = 500

MIN_CREDIT_LIMIT = 100
MAX_CREDIT_LIMIT = 50000
CREDIT_LIMIT_STEP = 50

# =============================================================================
# CASH FLOW
# =============================================================================

# Opening cash balance used when no setting has been saved
DEFAULT_INITIAL_BALANCE = 10000

# Months covered by the monthly report
REPORT_MONTHS = 6

# =============================================================================
# REMINDERS
# =============================================================================

# Loans due within this many days show up in the upcoming list
UPCOMING_WINDOW_DAYS = 7

# Due within this many days is flagged urgent
URGENT_DAYS = 2

WHATSAPP_COUNTRY_CODE = "55"
WHATSAPP_BASE_URL = "https://wa.me/"

# =============================================================================
# ATTACHMENTS
# =============================================================================

ALLOWED_ATTACHMENT_EXTENSIONS = (".jpg", ".jpeg", ".png", ".pdf")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png")

# 5 MB
MAX_ATTACHMENT_BYTES = 5 * 1024 * 1024

ATTACHMENT_CATEGORIES = (
    "client-photos",
    "client-documents",
    "residence-proofs",
    "selfies",
    "payment-receipts",
)

# Client field, display label, attachment category
CLIENT_DOCUMENT_FIELDS = (
    ('photo_url', "Photo", "client-photos"),
    ('document_photo_url', "ID document", "client-documents"),
    ('residence_proof_url', "Proof of residence", "residence-proofs"),
    ('selfie_url', "Selfie", "selfies"),
)

# =============================================================================
# ACTIVITY LOG
# =============================================================================

MAX_ACTIVITY_LOGS = 1000
DEFAULT_LOG_RETENTION_DAYS = 30

LOG_TYPES = ("create", "update", "delete", "payment", "login", "system")

# =============================================================================
# DISPLAY FORMATS
# =============================================================================

# Date format for storage (ISO 8601)
DATE_FORMAT_STORAGE = "%Y-%m-%d"

DATETIME_FORMAT_STORAGE = "%Y-%m-%d %H:%M:%S"

# Date format for display (dd/mm/yyyy)
DATE_FORMAT_DISPLAY = "%d/%m/%Y"

DATETIME_FORMAT_DISPLAY = "%d/%m/%Y %H:%M"

CURRENCY_SYMBOL = "R$"

# =============================================================================
# SETTINGS DEFAULTS
# =============================================================================

SETTING_INITIAL_BALANCE = "initial_balance"
SETTING_OPERATOR_NAME = "operator_name"
SETTING_THEME = "app_theme"
SETTING_ATTACHMENTS_DIR = "attachments_dir"

DEFAULT_OPERATOR_NAME = "System"

# PDF margins in mm
PDF_MARGIN_MM = 10
