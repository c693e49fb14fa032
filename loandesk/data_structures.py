from dataclasses import dataclass, field
from datetime import date
from typing import List, Dict, Any, Optional


@dataclass
class ClientReference:
    name: str
    phone: str
    relationship: str = ""

    def is_empty(self) -> bool:
        return not (self.name or "").strip() or not (self.phone or "").strip()

    def to_dict(self) -> Dict[str, str]:
        return {'name': self.name, 'phone': self.phone, 'relationship': self.relationship}


@dataclass
class ClientExtras:
    """Auxiliary client data stored as JSON inside the address column."""
    residence_proof_url: Optional[str] = None
    selfie_url: Optional[str] = None
    references: List[ClientReference] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.residence_proof_url and not self.selfie_url and not self.references


@dataclass
class LoanTerms:
    """Calculated terms for a prospective loan."""
    amount: float
    weeks: int
    interest_rate: float
    total_amount: float
    weekly_payment: float
    loan_date: date
    first_payment_date: date
    due_date: date

    @property
    def interest_amount(self) -> float:
        return round(self.total_amount - self.amount, 2)


@dataclass
class ScheduleRow:
    week_number: int
    due_date: date
    amount: float
    paid: bool


@dataclass
class PaymentOutcome:
    payment_id: int
    loan_id: int
    week_number: int
    completed: bool
    remaining_weeks: int
    receipt_path: Optional[str] = None


@dataclass
class CashSummary:
    initial_balance: float
    total_loaned: float
    total_received: float
    total_in_street: float
    profit: float
    available_cash: float
    active_loans: int
    completed_loans: int


@dataclass
class UpcomingPayment:
    loan_id: int
    client_id: int
    client_name: str
    client_phone: str
    weekly_payment: float
    weeks_paid: int
    total_weeks: int
    next_payment_date: date
    days_until_due: int
    urgency: str

    @property
    def installment_number(self) -> int:
        return self.weeks_paid + 1


@dataclass
class DocumentConfig:
    company_name: str = "LoanDesk"
    company_tagline: str = "Financial Solutions"
    allow_html_fallback: bool = True
    # Schedule rows per printed table before a page break
    schedule_rows_per_page: int = 20
    terms: List[str] = field(default_factory=lambda: [
        "Installments are due weekly on the dates listed in the payment schedule.",
        "Late payments may be subject to additional charges.",
        "Early settlement of the full remaining balance is allowed at any time.",
        "This proposal is valid upon signature by both parties.",
    ])


@dataclass
class ProposalPresentation:
    issue_date: str
    client: Dict[str, Any]
    loan: Dict[str, Any]
    interest_amount: float
    paid_amount: float
    remaining_amount: float
    status_label: str
    schedule: List[ScheduleRow]


@dataclass
class ReceiptPresentation:
    receipt_number: str
    issue_date: str
    client_name: str
    client_cpf: str
    installment_number: int
    total_weeks: int
    amount: float
    payment_date: str
    is_settlement: bool
    remaining_weeks: int
    loan: Dict[str, Any]
    paid_amount: float
    remaining_amount: float
    next_payment_date: Optional[str] = None
