"""Database management module for Fondo."""
import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime

from fondo.config import DB_NAME, DATE_FORMAT_STORAGE
from fondo.data_structures import (
    CosignerStatus, Loan, LoanStatus, Member, MemberRole, Notification,
    NotificationType, Payment, Saving,
)
from fondo.exceptions import (
    DatabaseError, LoanNotFoundError, StoreUnavailableError,
    TransactionConflictError, TransactionError,
)

logger = logging.getLogger(__name__)

DATE_FORMAT_BIRTH = "%Y-%m-%d"


def _new_id():
    return uuid.uuid4().hex


def _to_text(value):
    if value is None:
        return None
    return value.strftime(DATE_FORMAT_STORAGE)


def _to_datetime(value):
    if not value:
        return None
    return datetime.strptime(value, DATE_FORMAT_STORAGE)


class DatabaseManager:
    """Handles all SQLite record store operations.

    Every read returns the dataclasses from ``fondo.data_structures``. Writes
    that must land together (a payment and its loan balance) go through
    ``transaction()``.
    """

    def __init__(self, db_name=DB_NAME):
        self.db_name = db_name
        self._lock = threading.RLock()
        self._closed = True
        try:
            self.conn = sqlite3.connect(db_name, check_same_thread=False)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open record store: {e}", {'db_name': db_name})
        self.conn.row_factory = sqlite3.Row
        self._closed = False
        self.create_tables()

    def close(self):
        """Close the database connection."""
        if not self._closed:
            self.conn.close()
            self._closed = True

    def __del__(self):
        """Ensure connection is closed on garbage collection."""
        if getattr(self, "conn", None) is not None:
            self.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _ensure_open(self):
        if self._closed:
            raise StoreUnavailableError("Record store is closed", {'db_name': self.db_name})

    @contextmanager
    def transaction(self):
        """Context manager for database transactions with automatic rollback on failure.

        Usage:
            with db.transaction() as cursor:
                cursor.execute(...)
                cursor.execute(...)

        If any exception occurs, the transaction is rolled back.
        """
        self._ensure_open()
        with self._lock:
            cursor = self.conn.cursor()
            try:
                yield cursor
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                logger.error("Transaction rolled back: %s", e)
                raise TransactionError(f"Transaction failed: {str(e)}")
            except Exception:
                self.conn.rollback()
                raise

    def _run(self, query, params=()):
        """Execute a read query and return rows as dicts (raw sqlite errors)."""
        self._ensure_open()
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute(query, tuple(params))
            return [dict(row) for row in cursor.fetchall()]

    def _fetch_all(self, query, params=()):
        try:
            return self._run(query, params)
        except sqlite3.Error as e:
            raise DatabaseError(f"Query failed: {e}")

    def _fetch_one(self, query, params=()):
        rows = self._fetch_all(query, params)
        return rows[0] if rows else None

    def _fetch_ordered(self, query, params, order_by, sort_key, descending=False):
        """Run a query with its sort, falling back to an in-memory sort.

        When the store cannot satisfy the ORDER BY clause, the same query is
        re-run unsorted and the rows are sorted by ``sort_key``.
        """
        try:
            return self._run(f"{query} ORDER BY {order_by}", params)
        except sqlite3.OperationalError as e:
            logger.warning("Ordered query failed (%s); sorting in memory", e)
        rows = self._fetch_all(query, params)
        return sorted(rows, key=sort_key, reverse=descending)

    def _write(self, query, params=()):
        with self.transaction() as cursor:
            cursor.execute(query, tuple(params))
            return cursor.rowcount

    def create_tables(self):
        with self.transaction() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS members (
                    id TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL,
                    name TEXT NOT NULL,
                    role TEXT NOT NULL,
                    date_of_birth TEXT,
                    phone TEXT DEFAULT '',
                    created_at TEXT,
                    updated_at TEXT
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS loans (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    balance INTEGER NOT NULL,
                    term INTEGER NOT NULL,
                    interest_rate REAL NOT NULL,
                    monthly_payment INTEGER NOT NULL,
                    description TEXT DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'pending',
                    request_date TEXT NOT NULL,
                    approval_date TEXT,
                    cosigner_id TEXT,
                    cosigner_status TEXT,
                    rejection_reason TEXT,
                    updated_at TEXT
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS payments (
                    id TEXT PRIMARY KEY,
                    loan_id TEXT NOT NULL,
                    payer_id TEXT,
                    amount INTEGER NOT NULL,
                    date TEXT NOT NULL,
                    new_balance INTEGER NOT NULL,
                    receipt_ref TEXT,
                    status TEXT DEFAULT 'confirmed',
                    FOREIGN KEY(loan_id) REFERENCES loans(id)
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS savings (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    description TEXT DEFAULT '',
                    date TEXT NOT NULL,
                    status TEXT DEFAULT 'confirmed',
                    accumulated_balance INTEGER DEFAULT 0,
                    created_at TEXT
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS notifications (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    title TEXT,
                    message TEXT,
                    read INTEGER DEFAULT 0,
                    action_url TEXT,
                    created_at TEXT
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

    # ========== MEMBER OPERATIONS ==========

    def add_member(self, member: Member) -> Member:
        member_id = member.id or _new_id()
        now = datetime.now()
        self._write("""
            INSERT INTO members (id, email, name, role, date_of_birth, phone, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (member_id, member.email, member.name, MemberRole(member.role).value,
              member.date_of_birth.strftime(DATE_FORMAT_BIRTH) if member.date_of_birth else None,
              member.phone, _to_text(now), _to_text(now)))
        return self.get_member(member_id)

    def get_member(self, user_id):
        row = self._fetch_one("SELECT * FROM members WHERE id=?", (user_id,))
        return self._row_to_member(row) if row else None

    def get_member_by_email(self, email):
        row = self._fetch_one("SELECT * FROM members WHERE lower(email)=lower(?)", (email,))
        return self._row_to_member(row) if row else None

    def update_member(self, user_id, name, phone):
        return self._write("UPDATE members SET name=?, phone=?, updated_at=? WHERE id=?",
                           (name, phone, _to_text(datetime.now()), user_id))

    def _row_to_member(self, row):
        dob = row.get('date_of_birth')
        return Member(
            id=row['id'],
            email=row['email'],
            name=row['name'],
            role=MemberRole(row['role']),
            date_of_birth=datetime.strptime(dob, DATE_FORMAT_BIRTH).date() if dob else None,
            phone=row.get('phone') or "",
            created_at=_to_datetime(row.get('created_at')),
            updated_at=_to_datetime(row.get('updated_at')),
        )

    # ========== LOAN OPERATIONS ==========

    def add_loan(self, loan: Loan) -> Loan:
        loan_id = loan.id or _new_id()
        self._write("""
            INSERT INTO loans (
                id, user_id, amount, balance, term, interest_rate, monthly_payment,
                description, status, request_date, approval_date, cosigner_id,
                cosigner_status, rejection_reason, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (loan_id, loan.user_id, loan.amount, loan.balance, loan.term, loan.interest_rate,
              loan.monthly_payment, loan.description, LoanStatus.parse(loan.status).value,
              _to_text(loan.request_date), _to_text(loan.approval_date), loan.cosigner_id,
              loan.cosigner_status.value if loan.cosigner_status else None,
              loan.rejection_reason, _to_text(loan.updated_at or loan.request_date)))
        return replace(loan, id=loan_id)

    def get_loan(self, loan_id):
        row = self._fetch_one("SELECT * FROM loans WHERE id=?", (loan_id,))
        return self._row_to_loan(row) if row else None

    def get_user_loans(self, user_id):
        """Get ALL loans for a member, newest request first."""
        rows = self._fetch_ordered(
            "SELECT rowid AS seq, * FROM loans WHERE user_id=?", (user_id,),
            "request_date DESC, seq DESC",
            sort_key=lambda r: (r['request_date'], r['seq']),
            descending=True,
        )
        return [self._row_to_loan(r) for r in rows]

    def get_cosigned_loans(self, cosigner_id):
        rows = self._fetch_ordered(
            "SELECT rowid AS seq, * FROM loans WHERE cosigner_id=?", (cosigner_id,),
            "request_date DESC, seq DESC",
            sort_key=lambda r: (r['request_date'], r['seq']),
            descending=True,
        )
        return [self._row_to_loan(r) for r in rows]

    def update_loan_status(self, loan_id, expected_status, status, approval_date=None, rejection_reason=None):
        """Move a loan to a new status if it is still in ``expected_status``.

        Returns:
            True if the row was updated, False if the status had changed.
        """
        count = self._write("""
            UPDATE loans
            SET status=?, approval_date=COALESCE(?, approval_date),
                rejection_reason=COALESCE(?, rejection_reason), updated_at=?
            WHERE id=? AND status=?
        """, (LoanStatus.parse(status).value, _to_text(approval_date), rejection_reason,
              _to_text(datetime.now()), loan_id, LoanStatus.parse(expected_status).value))
        return count > 0

    def update_cosigner_status(self, loan_id, cosigner_status):
        return self._write("UPDATE loans SET cosigner_status=?, updated_at=? WHERE id=?",
                           (CosignerStatus(cosigner_status).value, _to_text(datetime.now()), loan_id)) > 0

    def commit_payment(self, loan: Loan, payment: Payment, expected_balance, expected_status) -> Payment:
        """Write a payment and its loan balance as one atomic unit.

        The loan row is only updated if its balance and status still equal
        what the caller read; otherwise nothing is written.

        Raises:
            TransactionConflictError: If the loan changed since it was read.
            LoanNotFoundError: If the loan no longer exists.
        """
        payment_id = payment.id or _new_id()
        with self.transaction() as cursor:
            cursor.execute("""
                UPDATE loans SET balance=?, status=?, updated_at=?
                WHERE id=? AND balance=? AND status=?
            """, (loan.balance, LoanStatus.parse(loan.status).value, _to_text(payment.date),
                  loan.id, expected_balance, LoanStatus.parse(expected_status).value))
            if cursor.rowcount == 0:
                cursor.execute("SELECT 1 FROM loans WHERE id=?", (loan.id,))
                if cursor.fetchone() is None:
                    raise LoanNotFoundError(loan.id)
                raise TransactionConflictError(loan.id)
            cursor.execute("""
                INSERT INTO payments (id, loan_id, payer_id, amount, date, new_balance, receipt_ref, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (payment_id, payment.loan_id, payment.payer_id, payment.amount, _to_text(payment.date),
                  payment.new_balance, payment.receipt_ref, payment.status))
        return replace(payment, id=payment_id)

    def get_payments(self, loan_id):
        """Get the payments of a loan, oldest first."""
        rows = self._fetch_ordered(
            "SELECT rowid AS seq, * FROM payments WHERE loan_id=?", (loan_id,),
            "date ASC, seq ASC",
            sort_key=lambda r: (r['date'], r['seq']),
        )
        return [self._row_to_payment(r) for r in rows]

    def _row_to_loan(self, row):
        return Loan(
            id=row['id'],
            user_id=row['user_id'],
            amount=row['amount'],
            balance=row['balance'],
            term=row['term'],
            interest_rate=row['interest_rate'],
            monthly_payment=row['monthly_payment'],
            description=row.get('description') or "",
            status=LoanStatus.parse(row['status']),
            request_date=_to_datetime(row['request_date']),
            approval_date=_to_datetime(row.get('approval_date')),
            cosigner_id=row.get('cosigner_id'),
            cosigner_status=CosignerStatus(row['cosigner_status']) if row.get('cosigner_status') else None,
            rejection_reason=row.get('rejection_reason'),
            updated_at=_to_datetime(row.get('updated_at')),
        )

    def _row_to_payment(self, row):
        return Payment(
            id=row['id'],
            loan_id=row['loan_id'],
            payer_id=row.get('payer_id'),
            amount=row['amount'],
            date=_to_datetime(row['date']),
            new_balance=row['new_balance'],
            receipt_ref=row.get('receipt_ref'),
            status=row.get('status') or "confirmed",
        )

    # ========== SAVINGS OPERATIONS ==========

    def add_saving(self, saving: Saving) -> Saving:
        """Append a contribution, snapshotting the member's accumulated balance."""
        saving_id = saving.id or _new_id()
        created_at = saving.created_at or datetime.now()
        with self.transaction() as cursor:
            cursor.execute("SELECT COALESCE(SUM(amount), 0) FROM savings WHERE user_id=?", (saving.user_id,))
            accumulated = cursor.fetchone()[0] + saving.amount
            cursor.execute("""
                INSERT INTO savings (id, user_id, amount, description, date, status, accumulated_balance, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (saving_id, saving.user_id, saving.amount, saving.description, _to_text(saving.date),
                  saving.status, accumulated, _to_text(created_at)))
        return replace(saving, id=saving_id, accumulated_balance=accumulated, created_at=created_at)

    def get_user_savings(self, user_id):
        """Get all contributions of a member, newest first."""
        rows = self._fetch_ordered(
            "SELECT rowid AS seq, * FROM savings WHERE user_id=?", (user_id,),
            "date DESC, seq DESC",
            sort_key=lambda r: (r['date'], r['seq']),
            descending=True,
        )
        return [self._row_to_saving(r) for r in rows]

    def get_savings_total(self, user_id):
        row = self._fetch_one("SELECT COALESCE(SUM(amount), 0) AS total FROM savings WHERE user_id=?", (user_id,))
        return row['total']

    def _row_to_saving(self, row):
        return Saving(
            id=row['id'],
            user_id=row['user_id'],
            amount=row['amount'],
            description=row.get('description') or "",
            date=_to_datetime(row['date']),
            status=row.get('status') or "confirmed",
            accumulated_balance=row.get('accumulated_balance') or 0,
            created_at=_to_datetime(row.get('created_at')),
        )

    # ========== NOTIFICATION OPERATIONS ==========

    def add_notification(self, notification: Notification) -> Notification:
        notification_id = notification.id or _new_id()
        created_at = notification.created_at or datetime.now()
        self._write("""
            INSERT INTO notifications (id, user_id, type, title, message, read, action_url, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (notification_id, notification.user_id, NotificationType(notification.type).value,
              notification.title, notification.message, int(notification.read),
              notification.action_url, _to_text(created_at)))
        return replace(notification, id=notification_id, created_at=created_at)

    def get_user_notifications(self, user_id, limit):
        rows = self._fetch_ordered(
            "SELECT rowid AS seq, * FROM notifications WHERE user_id=?", (user_id,),
            "created_at DESC, seq DESC",
            sort_key=lambda r: (r['created_at'], r['seq']),
            descending=True,
        )
        return [self._row_to_notification(r) for r in rows[:limit]]

    def count_unread_notifications(self, user_id):
        row = self._fetch_one("SELECT COUNT(*) AS unread FROM notifications WHERE user_id=? AND read=0", (user_id,))
        return row['unread']

    def mark_notification_read(self, notification_id):
        return self._write("UPDATE notifications SET read=1 WHERE id=?", (notification_id,)) > 0

    def mark_all_notifications_read(self, user_id):
        return self._write("UPDATE notifications SET read=1 WHERE user_id=? AND read=0", (user_id,))

    def _row_to_notification(self, row):
        return Notification(
            id=row['id'],
            user_id=row['user_id'],
            type=NotificationType(row['type']),
            title=row.get('title') or "",
            message=row.get('message') or "",
            read=bool(row.get('read')),
            action_url=row.get('action_url'),
            created_at=_to_datetime(row.get('created_at')),
        )

    # ========== SETTINGS ==========

    def get_setting(self, key, default=None):
        """Get a setting value."""
        row = self._fetch_one("SELECT value FROM settings WHERE key=?", (key,))
        return row['value'] if row else default

    def set_setting(self, key, value):
        """Set a setting value."""
        self._write("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, str(value)))
