"""
Repository pattern for data access.

Handles the account store and the append-only interaction log.
Balance changes are single conditional UPDATE statements so concurrent
debits never lose updates.
"""

from datetime import datetime
from typing import List, Optional

from killer_assistant.errors import AccountNotFound, AllowanceExceeded

from .db import DEFAULT_DB_PATH, get_connection
from .models import Account, InteractionAction, InteractionRecord, Plan

_ACCOUNT_COLUMNS = (
    "id, plan, allowance, consumed, display_name, email, first_session_bonus_pending"
)


def _row_to_account(row) -> Account:
    return Account(
        id=row[0],
        plan=Plan(row[1]),
        allowance=row[2],
        consumed=row[3],
        display_name=row[4],
        email=row[5],
        first_session_bonus_pending=bool(row[6]),
    )


class AccountRepository:
    """Repository for reading and mutating account records.

    Every mutation is expressed as one SQL statement evaluated by the
    database, never as read-compute-write from Python.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def create_account(self, account: Account) -> Account:
        """Insert a new account record.

        Raises:
            sqlite3.IntegrityError: If an account with this id already exists
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                f"INSERT INTO accounts ({_ACCOUNT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    account.id,
                    account.plan.value,
                    account.allowance,
                    account.consumed,
                    account.display_name,
                    account.email,
                    int(account.first_session_bonus_pending),
                ),
            )
            conn.commit()
        finally:
            conn.close()
        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        """Fetch an account, or None when it does not exist."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = ?",
                (account_id,),
            )
            row = cursor.fetchone()
            return _row_to_account(row) if row else None
        finally:
            conn.close()

    def require_account(self, account_id: str) -> Account:
        """Fetch an account.

        Raises:
            AccountNotFound: If the account does not exist
        """
        account = self.get_account(account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    def increment_consumed(self, account_id: str, amount: int) -> int:
        """Atomically add amount to consumed for a metered account with balance left.

        The WHERE clause carries the gate: the row only changes while
        allowance - consumed > 0. Unmetered accounts are left untouched.

        Args:
            account_id: Account to debit
            amount: Units to add to consumed

        Returns:
            The consumed value after the statement ran

        Raises:
            ValueError: If amount is negative
            AccountNotFound: If the account does not exist
            AllowanceExceeded: If a metered account has no balance left
        """
        if amount < 0:
            raise ValueError("amount cannot be negative")

        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                """
                UPDATE accounts
                SET consumed = consumed + ?
                WHERE id = ? AND plan = ? AND allowance - consumed > 0
                """,
                (amount, account_id, Plan.METERED.value),
            )
            updated = cursor.rowcount
            row = conn.execute(
                "SELECT plan, consumed FROM accounts WHERE id = ?",
                (account_id,),
            ).fetchone()
            conn.commit()
        finally:
            conn.close()

        if row is None:
            raise AccountNotFound(account_id)
        if not updated and Plan(row[0]).is_metered:
            raise AllowanceExceeded(account_id)
        return row[1]

    def apply_first_session_bonus(self, account_id: str, bonus: int) -> bool:
        """Grant the one-time bonus if it is still pending.

        Returns:
            True if this call applied the bonus, False if it was already applied
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                """
                UPDATE accounts
                SET allowance = allowance + ?, first_session_bonus_pending = 0
                WHERE id = ? AND first_session_bonus_pending = 1
                """,
                (bonus, account_id),
            )
            conn.commit()
            return cursor.rowcount == 1
        finally:
            conn.close()

    def grant(self, account_id: str, amount: int) -> Account:
        """Atomically raise the allowance of an account.

        Raises:
            ValueError: If amount is not positive
            AccountNotFound: If the account does not exist
        """
        if amount <= 0:
            raise ValueError("amount must be > 0")
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "UPDATE accounts SET allowance = allowance + ? WHERE id = ?",
                (amount, account_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise AccountNotFound(account_id)
        finally:
            conn.close()
        return self.require_account(account_id)

    def set_plan(self, account_id: str, plan: Plan) -> Account:
        """Change the subscription plan of an account.

        Raises:
            AccountNotFound: If the account does not exist
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "UPDATE accounts SET plan = ? WHERE id = ?",
                (plan.value, account_id),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise AccountNotFound(account_id)
        finally:
            conn.close()
        return self.require_account(account_id)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the account, interaction and identity tables if they don't exist.

    The interaction table is an append-only ledger. No UPDATE or DELETE
    operations are ever performed on it.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                id TEXT PRIMARY KEY,
                plan TEXT NOT NULL,
                allowance INTEGER NOT NULL CHECK (allowance >= 0),
                consumed INTEGER NOT NULL DEFAULT 0 CHECK (consumed >= 0),
                display_name TEXT NOT NULL DEFAULT 'User',
                email TEXT NOT NULL DEFAULT '',
                first_session_bonus_pending INTEGER NOT NULL DEFAULT 1
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS interactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                account_id TEXT NOT NULL,
                action TEXT NOT NULL,
                prompt TEXT NOT NULL,
                response TEXT NOT NULL,
                cost INTEGER NOT NULL,
                timestamp TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS identities (
                uid TEXT PRIMARY KEY,
                email TEXT UNIQUE,
                password_hash TEXT,
                provider TEXT NOT NULL,
                subject TEXT,
                display_name TEXT NOT NULL DEFAULT 'User'
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                token TEXT PRIMARY KEY,
                uid TEXT NOT NULL REFERENCES identities(uid),
                created_at TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


def insert_interaction(record: InteractionRecord, db_path: str = DEFAULT_DB_PATH) -> None:
    """Append a single interaction record to the log.

    Args:
        record: The interaction to record
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO interactions
            (account_id, action, prompt, response, cost, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            record.account_id,
            record.action.value,
            record.prompt,
            record.response,
            record.cost,
            record.timestamp.isoformat(),
        ))
        conn.commit()
    finally:
        conn.close()


def fetch_recent_interactions(
    account_id: Optional[str] = None,
    action: Optional[InteractionAction] = None,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[InteractionRecord]:
    """Fetch recent interaction records, optionally filtered by account and action.

    Returns records in reverse chronological order (newest first).

    Args:
        account_id: Optional filter for a specific account
        action: Optional filter for a specific billed action
        limit: Maximum number of records to return
        db_path: Path to SQLite database file

    Returns:
        List of interaction records ordered by timestamp (newest first)
    """
    conn = get_connection(db_path)
    try:
        query = "SELECT account_id, action, prompt, response, cost, timestamp FROM interactions"
        params = []
        conditions = []

        if account_id:
            conditions.append("account_id = ?")
            params.append(account_id)
        if action:
            conditions.append("action = ?")
            params.append(action.value)

        if conditions:
            query += " WHERE " + " AND ".join(conditions)

        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor = conn.execute(query, params)
        records = []
        for row in cursor.fetchall():
            records.append(InteractionRecord(
                account_id=row[0],
                action=InteractionAction(row[1]),
                prompt=row[2],
                response=row[3],
                cost=row[4],
                timestamp=datetime.fromisoformat(row[5]),
            ))
        return records
    finally:
        conn.close()
