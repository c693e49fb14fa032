"""Database management module for LoanDesk."""
import sqlite3
import pandas as pd
from datetime import datetime
from contextlib import contextmanager

from loandesk.config import DATETIME_FORMAT_STORAGE, DB_DEFAULT_CREDIT_LIMIT, STATUS_PENDING
from loandesk.exceptions import TransactionError
from loandesk.formatters import only_digits
from loandesk.logger import get_logger

logger = get_logger(__name__)

# Columns an update_client() call may touch
CLIENT_UPDATABLE_COLUMNS = (
    'full_name', 'cpf', 'phone', 'address', 'email', 'photo_url', 'document_photo_url',
    'credit_limit', 'available_credit', 'is_first_loan', 'total_borrowed',
)

LOAN_WITH_CLIENT_SELECT = """
    SELECT l.*,
           c.full_name AS client_name,
           c.cpf AS client_cpf,
           c.phone AS client_phone,
           c.address AS client_address,
           c.credit_limit AS client_credit_limit,
           c.available_credit AS client_available_credit
    FROM loans l
    LEFT JOIN clients c ON c.id = l.client_id
"""


def _now():
    return datetime.now().strftime(DATETIME_FORMAT_STORAGE)


def _digits_sql(column):
    """SQL expression of a masked CPF/phone column with its punctuation removed."""
    expr = column
    for char in ".-() ":
        expr = f"REPLACE({expr}, '{char}', '')"
    return expr


class DatabaseManager:
    """Handles all SQLite database operations."""

    def __init__(self, db_name="loandesk.db"):
        self.db_name = db_name
        self.conn = sqlite3.connect(db_name)
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._closed = False
        self._transaction_depth = 0
        self.create_tables()

    def close(self):
        """Close the database connection."""
        if getattr(self, 'conn', None) and not self._closed:
            self.conn.close()
            self._closed = True

    def __del__(self):
        self.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def in_transaction(self):
        return self._transaction_depth > 0

    def _commit(self):
        """Commit unless an outer transaction() block owns the commit."""
        if not self.in_transaction:
            self.conn.commit()

    @contextmanager
    def transaction(self):
        """Context manager for database transactions with automatic rollback on failure.

        Usage:
            with db.transaction():
                db.add_payment(...)
                db.update_loan_progress(...)

        Nested blocks join the outermost one. If any exception occurs the
        whole unit is rolled back; sqlite errors surface as TransactionError.
        """
        self._transaction_depth += 1
        try:
            yield
        except sqlite3.Error as e:
            self._transaction_depth -= 1
            if not self.in_transaction:
                self.conn.rollback()
            logger.error("Transaction rolled back: %s", e)
            raise TransactionError(f"Transaction failed: {str(e)}")
        except Exception:
            self._transaction_depth -= 1
            if not self.in_transaction:
                self.conn.rollback()
            raise
        else:
            self._transaction_depth -= 1
            if not self.in_transaction:
                self.conn.commit()

    def create_tables(self):
        cursor = self.conn.cursor()
        cursor.execute(f"""
            CREATE TABLE IF NOT EXISTS clients (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                full_name TEXT NOT NULL,
                cpf TEXT NOT NULL,
                phone TEXT NOT NULL,
                address TEXT NOT NULL,
                email TEXT,
                photo_url TEXT,
                document_photo_url TEXT,
                credit_limit REAL DEFAULT {DB_DEFAULT_CREDIT_LIMIT},
                available_credit REAL DEFAULT {DB_DEFAULT_CREDIT_LIMIT},
                is_first_loan INTEGER DEFAULT 1,
                total_borrowed REAL DEFAULT 0,
                created_at TEXT,
                updated_at TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS loans (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                client_id INTEGER NOT NULL,
                loan_amount REAL NOT NULL DEFAULT 0,
                interest_rate REAL DEFAULT 35,
                total_amount REAL NOT NULL DEFAULT 0,
                weekly_payment REAL NOT NULL DEFAULT 0,
                total_weeks INTEGER NOT NULL DEFAULT 1,
                weeks_paid INTEGER DEFAULT 0,
                loan_date TEXT NOT NULL,
                due_date TEXT,
                next_payment_date TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                description TEXT,
                created_at TEXT,
                updated_at TEXT,
                FOREIGN KEY(client_id) REFERENCES clients(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS loan_payments (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                loan_id INTEGER NOT NULL,
                payment_amount REAL NOT NULL,
                payment_date TEXT NOT NULL,
                week_number INTEGER,
                created_at TEXT,
                FOREIGN KEY(loan_id) REFERENCES loans(id) ON DELETE CASCADE
            )
        """)
        # Receipt attachments came after the first schema
        try:
            cursor.execute("ALTER TABLE loan_payments ADD COLUMN receipt_path TEXT")
        except sqlite3.OperationalError:
            pass

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS client_references (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                client_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                phone TEXT NOT NULL,
                relationship TEXT,
                created_at TEXT,
                FOREIGN KEY(client_id) REFERENCES clients(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS activity_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                user TEXT,
                action TEXT NOT NULL,
                entity TEXT NOT NULL,
                entity_id TEXT,
                details TEXT,
                type TEXT NOT NULL DEFAULT 'system'
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_loans_client ON loans(client_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_payments_loan ON loan_payments(loan_id, week_number)")

        self.conn.commit()

    @staticmethod
    def _fetch_dict(cursor):
        row = cursor.fetchone()
        if row:
            cols = [description[0] for description in cursor.description]
            return dict(zip(cols, row))
        return None

    @staticmethod
    def _fetch_dicts(cursor):
        cols = [description[0] for description in cursor.description]
        return [dict(zip(cols, row)) for row in cursor.fetchall()]

    # Client operations
    def add_client(self, full_name, cpf, phone, address, email=None, photo_url=None,
                   document_photo_url=None, credit_limit=DB_DEFAULT_CREDIT_LIMIT, available_credit=None):
        if available_credit is None:
            available_credit = credit_limit
        now = _now()
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO clients (
                full_name, cpf, phone, address, email, photo_url, document_photo_url,
                credit_limit, available_credit, is_first_loan, total_borrowed, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, 0, ?, ?)
        """, (full_name, cpf, phone, address, email, photo_url, document_photo_url,
              credit_limit, available_credit, now, now))
        self._commit()
        return cursor.lastrowid

    def get_client(self, id):
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM clients WHERE id=?", (id,))
        return self._fetch_dict(cursor)

    def get_clients(self, search=None):
        """Return all clients sorted by name, optionally filtered by name, CPF or phone.

        CPF and phone also match on digits alone, ignoring their masks.
        """
        query = "SELECT * FROM clients"
        params = []
        if search:
            like = f"%{search.strip()}%"
            conditions = ["full_name LIKE ?", "cpf LIKE ?", "phone LIKE ?"]
            params.extend([like, like, like])
            digits = only_digits(search)
            if digits:
                conditions.append(f"{_digits_sql('cpf')} LIKE ?")
                conditions.append(f"{_digits_sql('phone')} LIKE ?")
                params.extend([f"%{digits}%", f"%{digits}%"])
            query += " WHERE " + " OR ".join(conditions)
        query += " ORDER BY full_name COLLATE NOCASE, id"
        cursor = self.conn.cursor()
        cursor.execute(query, tuple(params))
        return self._fetch_dicts(cursor)

    def client_cpf_exists(self, cpf, exclude_id=None):
        cursor = self.conn.cursor()
        if exclude_id is None:
            cursor.execute("SELECT 1 FROM clients WHERE cpf=? LIMIT 1", (cpf,))
        else:
            cursor.execute("SELECT 1 FROM clients WHERE cpf=? AND id<>? LIMIT 1", (cpf, exclude_id))
        return cursor.fetchone() is not None

    def update_client(self, id, **fields):
        """Update the given client columns. Unknown column names raise ValueError."""
        unknown = set(fields) - set(CLIENT_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown client fields: {', '.join(sorted(unknown))}")
        if not fields:
            return
        assignments = ", ".join(f"{col}=?" for col in fields)
        params = list(fields.values()) + [_now(), id]
        cursor = self.conn.cursor()
        cursor.execute(f"UPDATE clients SET {assignments}, updated_at=? WHERE id=?", tuple(params))
        self._commit()

    def delete_client(self, id):
        """Delete a client with its loans, payments and references."""
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM loan_payments WHERE loan_id IN (SELECT id FROM loans WHERE client_id=?)", (id,))
        cursor.execute("DELETE FROM loans WHERE client_id=?", (id,))
        cursor.execute("DELETE FROM client_references WHERE client_id=?", (id,))
        cursor.execute("DELETE FROM clients WHERE id=?", (id,))
        self._commit()

    # Reference operations
    def replace_client_references(self, client_id, references):
        """Replace all references of a client with the given list of dicts."""
        now = _now()
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM client_references WHERE client_id=?", (client_id,))
        for ref in references:
            cursor.execute("""
                INSERT INTO client_references (client_id, name, phone, relationship, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (client_id, ref.get('name'), ref.get('phone'), ref.get('relationship'), now))
        self._commit()

    def get_client_references(self, client_id):
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM client_references WHERE client_id=? ORDER BY id", (client_id,))
        return self._fetch_dicts(cursor)

    # Loan operations
    def add_loan(self, client_id, loan_amount, interest_rate, total_amount, weekly_payment, total_weeks,
                 loan_date, due_date, next_payment_date, status=STATUS_PENDING, description=None):
        now = _now()
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO loans (
                client_id, loan_amount, interest_rate, total_amount, weekly_payment, total_weeks,
                weeks_paid, loan_date, due_date, next_payment_date, status, description, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?)
        """, (client_id, loan_amount, interest_rate, total_amount, weekly_payment, total_weeks,
              loan_date, due_date, next_payment_date, status, description, now, now))
        self._commit()
        return cursor.lastrowid

    def get_loan(self, loan_id):
        """Fetch a loan with its client's name, CPF, phone and credit fields."""
        cursor = self.conn.cursor()
        cursor.execute(LOAN_WITH_CLIENT_SELECT + " WHERE l.id=?", (loan_id,))
        return self._fetch_dict(cursor)

    def get_loans(self, client_id=None, status=None, exclude_status=None):
        """Return loans newest first, each joined with client fields."""
        query = LOAN_WITH_CLIENT_SELECT + " WHERE 1=1"
        params = []
        if client_id is not None:
            query += " AND l.client_id=?"
            params.append(client_id)
        if status:
            query += " AND l.status=?"
            params.append(status)
        if exclude_status:
            query += " AND l.status<>?"
            params.append(exclude_status)
        query += " ORDER BY l.created_at DESC, l.id DESC"
        cursor = self.conn.cursor()
        cursor.execute(query, tuple(params))
        return self._fetch_dicts(cursor)

    def update_loan_progress(self, loan_id, weeks_paid, status, next_payment_date):
        cursor = self.conn.cursor()
        cursor.execute("""
            UPDATE loans SET weeks_paid=?, status=?, next_payment_date=?, updated_at=?
            WHERE id=?
        """, (weeks_paid, status, next_payment_date, _now(), loan_id))
        self._commit()

    def delete_loan(self, loan_id):
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM loan_payments WHERE loan_id=?", (loan_id,))
        cursor.execute("DELETE FROM loans WHERE id=?", (loan_id,))
        self._commit()

    # Payment operations
    def add_payment(self, loan_id, payment_amount, payment_date, week_number, receipt_path=None):
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO loan_payments (loan_id, payment_amount, payment_date, week_number, receipt_path, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (loan_id, payment_amount, payment_date, week_number, receipt_path, _now()))
        self._commit()
        return cursor.lastrowid

    def get_payment(self, payment_id):
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM loan_payments WHERE id=?", (payment_id,))
        return self._fetch_dict(cursor)

    def get_payments(self, loan_id=None):
        """Return payments ordered by loan, week and date."""
        query = "SELECT * FROM loan_payments"
        params = []
        if loan_id is not None:
            query += " WHERE loan_id=?"
            params.append(loan_id)
        query += " ORDER BY loan_id, week_number, payment_date, id"
        cursor = self.conn.cursor()
        cursor.execute(query, tuple(params))
        return self._fetch_dicts(cursor)

    def update_payment_receipt(self, payment_id, receipt_path):
        cursor = self.conn.cursor()
        cursor.execute("UPDATE loan_payments SET receipt_path=? WHERE id=?", (receipt_path, payment_id))
        self._commit()

    def delete_payments(self, payment_ids):
        if not payment_ids:
            return 0
        ids = list(payment_ids)
        placeholders = ", ".join("?" for _ in ids)
        cursor = self.conn.cursor()
        cursor.execute(f"DELETE FROM loan_payments WHERE id IN ({placeholders})", tuple(ids))
        self._commit()
        return cursor.rowcount

    # DataFrame views for reporting
    def get_loans_df(self):
        return pd.read_sql_query("""
            SELECT l.*, c.full_name AS client_name
            FROM loans l
            LEFT JOIN clients c ON c.id = l.client_id
            ORDER BY l.id
        """, self.conn)

    def get_payments_df(self):
        return pd.read_sql_query("SELECT * FROM loan_payments ORDER BY loan_id, week_number, payment_date, id",
                                 self.conn)

    # Activity log operations
    def add_activity_log(self, timestamp, user, action, entity, entity_id, details, type):
        cursor = self.conn.cursor()
        cursor.execute("""
            INSERT INTO activity_logs (timestamp, user, action, entity, entity_id, details, type)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (timestamp, user, action, entity, entity_id, details, type))
        self._commit()
        return cursor.lastrowid

    def get_activity_logs(self, user=None, type=None, entity=None, start=None, end=None, limit=None):
        """Fetch activity logs newest first.

        ``user`` and ``entity`` match case-insensitive substrings. ``start`` is
        inclusive and ``end`` exclusive; both are timestamp strings.
        """
        query = "SELECT * FROM activity_logs WHERE 1=1"
        params = []
        if user:
            query += " AND LOWER(user) LIKE ?"
            params.append(f"%{user.lower()}%")
        if type:
            query += " AND type=?"
            params.append(type)
        if entity:
            query += " AND LOWER(entity) LIKE ?"
            params.append(f"%{entity.lower()}%")
        if start:
            query += " AND timestamp >= ?"
            params.append(start)
        if end:
            query += " AND timestamp < ?"
            params.append(end)
        query += " ORDER BY timestamp DESC, id DESC"
        if limit:
            query += " LIMIT ?"
            params.append(int(limit))
        cursor = self.conn.cursor()
        cursor.execute(query, tuple(params))
        return self._fetch_dicts(cursor)

    def count_activity_logs(self, since=None):
        cursor = self.conn.cursor()
        if since:
            cursor.execute("SELECT COUNT(*) FROM activity_logs WHERE timestamp >= ?", (since,))
        else:
            cursor.execute("SELECT COUNT(*) FROM activity_logs")
        return cursor.fetchone()[0]

    def count_activity_logs_by(self, column):
        if column not in ('type', 'user'):
            raise ValueError(f"Cannot group activity logs by '{column}'")
        cursor = self.conn.cursor()
        cursor.execute(f"SELECT {column}, COUNT(*) FROM activity_logs GROUP BY {column}")
        return {key: count for key, count in cursor.fetchall()}

    def trim_activity_logs(self, keep):
        """Delete all but the newest ``keep`` log rows. Returns rows removed."""
        cursor = self.conn.cursor()
        cursor.execute("""
            DELETE FROM activity_logs WHERE id NOT IN (
                SELECT id FROM activity_logs ORDER BY timestamp DESC, id DESC LIMIT ?
            )
        """, (keep,))
        self._commit()
        return cursor.rowcount

    def delete_activity_logs_before(self, cutoff):
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM activity_logs WHERE timestamp < ?", (cutoff,))
        self._commit()
        return cursor.rowcount

    # Settings
    def get_setting(self, key, default=None):
        """Get a setting value."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM settings WHERE key=?", (key,))
        res = cursor.fetchone()
        return res[0] if res else default

    def set_setting(self, key, value):
        """Set a setting value."""
        cursor = self.conn.cursor()
        cursor.execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, str(value)))
        self._commit()
