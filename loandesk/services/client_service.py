"""Client registry service for LoanDesk.

Handles client registration, edits and removal, including the auxiliary
data (residence proof, selfie, references) that is stored as JSON after
the street address:

    "Rua das Flores, 10 || {"residence_proof_url": ..., "references": [...]}"
"""
import json
import re

from loandesk.config import CLIENT_DOCUMENT_FIELDS, DEFAULT_CREDIT_LIMIT, MAX_CREDIT_LIMIT, MIN_CREDIT_LIMIT
from loandesk.data_structures import ClientExtras, ClientReference
from loandesk.exceptions import ClientNotFoundError, ValidationError
from loandesk.formatters import capitalize_words, format_cpf, format_phone, only_digits
from loandesk.logger import get_logger

logger = get_logger(__name__)

ADDRESS_SEPARATOR = " || "

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def _coerce_reference(ref):
    if isinstance(ref, ClientReference):
        return ref
    return ClientReference(
        name=(ref.get('name') or "").strip(),
        phone=(ref.get('phone') or "").strip(),
        relationship=(ref.get('relationship') or "").strip(),
    )


def pack_address(address, extras: ClientExtras = None):
    """Append the JSON-encoded extras to the address.

    Returns the bare address when there is nothing to store.
    """
    address = (address or "").strip()
    if extras is None or extras.is_empty():
        return address
    payload = {
        'residence_proof_url': extras.residence_proof_url,
        'selfie_url': extras.selfie_url,
        'references': [ref.to_dict() for ref in extras.references],
    }
    return f"{address}{ADDRESS_SEPARATOR}{json.dumps(payload, ensure_ascii=False)}"


def unpack_address(stored):
    """Split a stored address into (address, ClientExtras).

    Anything that does not parse as the expected JSON object is treated as
    part of the address.
    """
    if not stored:
        return "", ClientExtras()
    if ADDRESS_SEPARATOR not in stored:
        return stored, ClientExtras()

    address, raw = stored.split(ADDRESS_SEPARATOR, 1)
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Unreadable client extras, keeping raw address")
        return stored, ClientExtras()
    if not isinstance(payload, dict):
        return stored, ClientExtras()

    references = []
    for ref in payload.get('references') or []:
        if isinstance(ref, dict):
            references.append(_coerce_reference(ref))
    extras = ClientExtras(
        residence_proof_url=payload.get('residence_proof_url'),
        selfie_url=payload.get('selfie_url'),
        references=references,
    )
    return address, extras


class ClientService:
    """Registers and maintains clients and their credit.

    Attributes:
        db: DatabaseManager for persistence.
        activity: ActivityLogger for the audit trail.
    """

    def __init__(self, db_manager, activity_logger=None):
        self.db = db_manager
        self._activity = activity_logger

    @property
    def activity(self):
        """Lazy-load the activity logger."""
        if self._activity is None:
            from loandesk.activity_log import ActivityLogger
            self._activity = ActivityLogger(self.db)
        return self._activity

    @staticmethod
    def validate(full_name, cpf, phone, address, email=None, credit_limit=DEFAULT_CREDIT_LIMIT):
        """Check client fields against the registration rules.

        Raises:
            ValidationError: On the first field that fails.
        """
        name = (full_name or "").strip()
        if not name:
            raise ValidationError('full_name', "Name is required")
        if len(name) > 100:
            raise ValidationError('full_name', "Name too long (max 100 characters)")
        if len(only_digits(cpf)) != 11:
            raise ValidationError('cpf', "CPF must have 11 digits")
        if len(only_digits(phone)) not in (10, 11):
            raise ValidationError('phone', "Phone must have 10 or 11 digits including area code")
        if not (address or "").strip():
            raise ValidationError('address', "Address is required")
        if email and not EMAIL_PATTERN.match(email.strip()):
            raise ValidationError('email', "Invalid email format (e.g., name@example.com)")
        try:
            limit = float(credit_limit)
        except (TypeError, ValueError):
            raise ValidationError('credit_limit', "Credit limit must be a number")
        if limit < MIN_CREDIT_LIMIT or limit > MAX_CREDIT_LIMIT:
            raise ValidationError('credit_limit',
                                  f"Credit limit must be between {MIN_CREDIT_LIMIT} and {MAX_CREDIT_LIMIT}")

    @staticmethod
    def _clean_references(references):
        """Drop references missing a name or phone."""
        cleaned = []
        for ref in references or []:
            ref = _coerce_reference(ref)
            if not ref.is_empty():
                ref.phone = format_phone(ref.phone)
                cleaned.append(ref)
        return cleaned

    def create_client(self, full_name, cpf, phone, address, email=None, credit_limit=DEFAULT_CREDIT_LIMIT,
                      photo_url=None, document_photo_url=None, residence_proof_url=None,
                      selfie_url=None, references=None):
        """Register a new client with their full credit limit available.

        Returns:
            ID of the new client.

        Raises:
            ValidationError: If a field is invalid.
        """
        self.validate(full_name, cpf, phone, address, email, credit_limit)
        refs = self._clean_references(references)
        extras = ClientExtras(residence_proof_url=residence_proof_url, selfie_url=selfie_url, references=refs)
        name = capitalize_words(full_name.strip())
        limit = float(credit_limit)

        with self.db.transaction():
            client_id = self.db.add_client(
                full_name=name,
                cpf=format_cpf(cpf),
                phone=format_phone(phone),
                address=pack_address(address, extras),
                email=(email or "").strip() or None,
                photo_url=photo_url,
                document_photo_url=document_photo_url,
                credit_limit=limit,
                available_credit=limit,
            )
            if refs:
                self.db.replace_client_references(client_id, [ref.to_dict() for ref in refs])

        logger.info("Client %s registered (limit %.2f)", client_id, limit)
        self.activity.log_client_action("Create client", name, client_id)
        return client_id

    def update_client(self, client_id, full_name, cpf, phone, address, email=None, credit_limit=None,
                      photo_url=None, document_photo_url=None, residence_proof_url=None,
                      selfie_url=None, references=None):
        """Replace a client's details.

        A new credit limit shifts the available credit by the same amount,
        kept between zero and the new limit.
        """
        current = self.db.get_client(client_id)
        if not current:
            raise ClientNotFoundError(client_id=client_id)

        if credit_limit is None:
            credit_limit = current['credit_limit']
        self.validate(full_name, cpf, phone, address, email, credit_limit)

        limit = float(credit_limit)
        delta = limit - float(current['credit_limit'] or 0)
        available = float(current['available_credit'] or 0) + delta
        available = max(0.0, min(available, limit))

        refs = self._clean_references(references)
        extras = ClientExtras(residence_proof_url=residence_proof_url, selfie_url=selfie_url, references=refs)
        name = capitalize_words(full_name.strip())

        with self.db.transaction():
            self.db.update_client(
                client_id,
                full_name=name,
                cpf=format_cpf(cpf),
                phone=format_phone(phone),
                address=pack_address(address, extras),
                email=(email or "").strip() or None,
                photo_url=photo_url if photo_url is not None else current['photo_url'],
                document_photo_url=document_photo_url if document_photo_url is not None else current['document_photo_url'],
                credit_limit=limit,
                available_credit=round(available, 2),
            )
            self.db.replace_client_references(client_id, [ref.to_dict() for ref in refs])

        self.activity.log_client_action("Update client", name, client_id)

    def delete_client(self, client_id):
        """Delete a client together with their loans, payments and references."""
        client = self.db.get_client(client_id)
        if not client:
            raise ClientNotFoundError(client_id=client_id)
        with self.db.transaction():
            self.db.delete_client(client_id)
        logger.info("Client %s deleted", client_id)
        self.activity.log_client_action("Delete client", client['full_name'], client_id)

    def _hydrate(self, row):
        address, extras = unpack_address(row.get('address'))
        client = dict(row)
        client['address'] = address
        client['residence_proof_url'] = extras.residence_proof_url
        client['selfie_url'] = extras.selfie_url
        client['is_first_loan'] = bool(client.get('is_first_loan'))
        return client, extras

    def get_client(self, client_id):
        """Fetch a client with the address unpacked and references attached.

        Raises:
            ClientNotFoundError: If no client has this ID.
        """
        row = self.db.get_client(client_id)
        if not row:
            raise ClientNotFoundError(client_id=client_id)
        client, extras = self._hydrate(row)
        stored_refs = self.db.get_client_references(client_id)
        if stored_refs:
            client['references'] = [_coerce_reference(ref) for ref in stored_refs]
        else:
            client['references'] = extras.references
        return client

    def list_clients(self, search=None):
        """All clients sorted by name, optionally matching name, CPF or phone."""
        return [self._hydrate(row)[0] for row in self.db.get_clients(search)]

    def cpf_in_use(self, cpf, exclude_id=None):
        return self.db.client_cpf_exists(format_cpf(cpf), exclude_id)


def client_documents(client):
    """(field, label, path) of each document a client has on file."""
    return [(field, label, client[field]) for field, label, _ in CLIENT_DOCUMENT_FIELDS
            if client.get(field)]
