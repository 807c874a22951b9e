"""
PostgreSQL repository adapter - Implements AccountRepository protocol.

This module provides the PostgreSQL implementation of the domain's
repository port using psycopg3 with raw SQL.

Atomicity Design:
-----------------
Every operation runs inside a single pool.connection() block, which
commits on success and rolls back on any exception. No operation leaves
a half-done mutation behind.

1. **Exactly-once codes**: consume_registration_code, activate_account and
   reset_password_with_code delete the code row and update the user in one
   statement (DELETE ... RETURNING inside a CTE). A concurrent second
   delete blocks on the row lock, then finds nothing.

2. **Uniqueness**: the partial unique index on live profile emails and the
   UNIQUE code columns are the source of truth. Violations are translated
   into a None result (email) or CodeCollision (code).

3. **Idempotent seeding**: roles are inserted with ON CONFLICT DO NOTHING
   against UNIQUE (master_id, access_level).

Connection failures surface as TransientStoreError.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import psycopg
from psycopg import sql
from psycopg.errors import UniqueViolation
from psycopg_pool import ConnectionPool

from src.domain.exceptions import (
    CodeCollision,
    CompanyNotFound,
    DuplicateEmail,
    TransientStoreError,
)
from src.domain.ports import (
    Account,
    AccessLevel,
    AssignmentResult,
    CodeScope,
    MasterContext,
    Member,
    PasswordHash,
    Profile,
    ProfileCompletion,
    ProfileFields,
)

logger = logging.getLogger(__name__)

_CODE_TABLES = {
    CodeScope.REGISTRATION: "registration_codes",
    CodeScope.RECOVERY: "recovery_codes",
    CodeScope.SETUP: "setup_codes",
}

_EMAIL_INDEX = "user_profiles_email_live"

_ACCOUNT_COLUMNS = """
    SELECT u.id, p.email, u.password_hash, u.password_salt, u.verified_at IS NOT NULL
    FROM users u
    JOIN user_profiles p ON p.user_id = u.id
"""


def _is_email_conflict(exc: UniqueViolation) -> bool:
    return exc.diag.constraint_name == _EMAIL_INDEX


class PostgresAccountRepository:
    """
    Implements AccountRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    @contextmanager
    def _connection(self) -> Iterator[psycopg.Connection]:
        """Borrow a pooled connection, translating outages into TransientStoreError."""
        try:
            with self._pool.connection() as conn:
                yield conn
        except psycopg.OperationalError as exc:
            logger.error("Credential store unavailable: %s", type(exc).__name__)
            raise TransientStoreError("credential store unavailable") from exc

    def code_exists(self, scope: CodeScope, code: str) -> bool:
        query = sql.SQL("SELECT 1 FROM {} WHERE code = %s").format(
            sql.Identifier(_CODE_TABLES[scope])
        )
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(query, (code,))
            return cursor.fetchone() is not None

    def find_account_by_email(self, email: str) -> Account | None:
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                _ACCOUNT_COLUMNS + " WHERE p.email = %s AND NOT p.deleted", (email,)
            )
            return self._to_account(cursor.fetchone())

    def get_account(self, user_id: int) -> Account | None:
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                _ACCOUNT_COLUMNS + " WHERE u.id = %s AND NOT p.deleted", (user_id,)
            )
            return self._to_account(cursor.fetchone())

    def create_pending_account(self, email: str, code: str) -> int | None:
        """
        Create user, profile and registration code in one transaction.

        Returns:
            New user id, or None if a live profile already holds the email

        Raises:
            CodeCollision: If the code is already outstanding
        """
        try:
            with self._connection() as conn, conn.cursor() as cursor:
                cursor.execute("INSERT INTO users DEFAULT VALUES RETURNING id")
                user_id = cursor.fetchone()[0]
                cursor.execute(
                    "INSERT INTO user_profiles (user_id, email) VALUES (%s, %s)",
                    (user_id, email),
                )
                cursor.execute(
                    "INSERT INTO registration_codes (user_id, code) VALUES (%s, %s)",
                    (user_id, code),
                )
                return user_id
        except UniqueViolation as exc:
            if _is_email_conflict(exc):
                return None
            raise CodeCollision(CodeScope.REGISTRATION.value) from exc

    def replace_registration_code(self, user_id: int, code: str) -> None:
        self._replace_code(CodeScope.REGISTRATION, user_id, code)

    def replace_recovery_code(self, user_id: int, code: str) -> None:
        self._replace_code(CodeScope.RECOVERY, user_id, code)

    def _replace_code(self, scope: CodeScope, user_id: int, code: str) -> None:
        # ON CONFLICT covers the per-user key only; a clash on code still raises
        query = sql.SQL(
            """
            INSERT INTO {table} (user_id, code) VALUES (%s, %s)
            ON CONFLICT (user_id) DO UPDATE
            SET code = EXCLUDED.code, issued_at = NOW()
            """
        ).format(table=sql.Identifier(_CODE_TABLES[scope]))
        try:
            with self._connection() as conn, conn.cursor() as cursor:
                cursor.execute(query, (user_id, code))
        except UniqueViolation as exc:
            raise CodeCollision(scope.value) from exc

    def consume_registration_code(self, code: str, setup_code: str) -> int | None:
        """
        Delete the code and mark its owner verified in one statement, then
        store the setup code in the same transaction.

        Returns:
            Owning user id, or None if the code is unknown or already consumed

        Raises:
            CodeCollision: If the setup code is already outstanding
        """
        query = """
            WITH consumed AS (
                DELETE FROM registration_codes WHERE code = %s RETURNING user_id
            )
            UPDATE users
            SET verified_at = COALESCE(users.verified_at, NOW())
            FROM consumed
            WHERE users.id = consumed.user_id
            RETURNING users.id
        """
        try:
            with self._connection() as conn, conn.cursor() as cursor:
                cursor.execute(query, (code,))
                row = cursor.fetchone()
                if row is None:
                    return None
                cursor.execute(
                    """
                    INSERT INTO setup_codes (user_id, code) VALUES (%s, %s)
                    ON CONFLICT (user_id) DO UPDATE
                    SET code = EXCLUDED.code, issued_at = NOW()
                    """,
                    (row[0], setup_code),
                )
                return row[0]
        except UniqueViolation as exc:
            raise CodeCollision(CodeScope.SETUP.value) from exc

    def activate_account(self, user_id: int, setup_code: str, password: PasswordHash) -> bool:
        """Consume the setup code and store the first password in one statement."""
        query = """
            WITH consumed AS (
                DELETE FROM setup_codes WHERE user_id = %s AND code = %s RETURNING user_id
            )
            UPDATE users
            SET password_hash = %s, password_salt = %s
            FROM consumed
            WHERE users.id = consumed.user_id
            RETURNING users.id
        """
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(query, (user_id, setup_code, password.hash, password.salt))
            if cursor.fetchone() is None:
                return False
            cursor.execute("DELETE FROM registration_codes WHERE user_id = %s", (user_id,))
            return True

    def set_password(self, user_id: int, password: PasswordHash) -> None:
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                "UPDATE users SET password_hash = %s, password_salt = %s WHERE id = %s",
                (password.hash, password.salt, user_id),
            )
            cursor.execute("DELETE FROM registration_codes WHERE user_id = %s", (user_id,))
            cursor.execute("DELETE FROM setup_codes WHERE user_id = %s", (user_id,))

    def reset_password_with_code(self, code: str, password: PasswordHash) -> int | None:
        """
        Consume a recovery code and store the new password atomically.

        Also clears any registration code and marks the email verified:
        receiving the recovery code proves control of the address.

        Returns:
            Owning user id, or None if the code is unknown or already consumed
        """
        query = """
            WITH consumed AS (
                DELETE FROM recovery_codes WHERE code = %s RETURNING user_id
            )
            UPDATE users
            SET password_hash = %s,
                password_salt = %s,
                verified_at = COALESCE(users.verified_at, NOW())
            FROM consumed
            WHERE users.id = consumed.user_id
            RETURNING users.id
        """
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(query, (code, password.hash, password.salt))
            row = cursor.fetchone()
            if row is None:
                return None
            cursor.execute("DELETE FROM registration_codes WHERE user_id = %s", (row[0],))
            cursor.execute("DELETE FROM setup_codes WHERE user_id = %s", (row[0],))
            return row[0]

    def complete_profile(
        self, user_id: int, fields: ProfileFields, roles: list[AccessLevel]
    ) -> ProfileCompletion | None:
        update_sql = """
            UPDATE user_profiles
            SET first_name = %s, last_name = %s, phone = %s, birth_date = %s,
                national_id = %s, country = %s, description = %s
            WHERE user_id = %s AND NOT deleted
            RETURNING email
        """
        seed_sql = """
            INSERT INTO roles (master_id, name, access_level)
            SELECT %s, r.name, r.access_level
            FROM unnest(%s::text[], %s::smallint[]) AS r (name, access_level)
            ON CONFLICT (master_id, access_level) DO NOTHING
        """
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                update_sql,
                (
                    fields.first_name,
                    fields.last_name,
                    fields.phone,
                    fields.birth_date,
                    fields.national_id,
                    fields.country,
                    fields.description,
                    user_id,
                ),
            )
            row = cursor.fetchone()
            if row is None:
                return None

            cursor.execute(
                seed_sql,
                (user_id, [r.role_name for r in roles], [int(r) for r in roles]),
            )
            return ProfileCompletion(email=row[0], roles_seeded=cursor.rowcount)

    def get_profile(self, user_id: int) -> Profile | None:
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                """
                SELECT user_id, email, first_name, last_name
                FROM user_profiles
                WHERE user_id = %s AND NOT deleted
                """,
                (user_id,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return Profile(user_id=row[0], email=row[1], first_name=row[2], last_name=row[3])

    def find_master_company(self, user_id: int) -> MasterContext | None:
        """
        Owned companies first, then memberships by earliest assignment,
        ties broken by lowest company id.
        """
        query = """
            SELECT company_id, master_id
            FROM (
                SELECT c.id AS company_id, c.master_id, 0 AS priority, c.created_at AS since
                FROM companies c
                WHERE c.master_id = %s
                UNION ALL
                SELECT c.id, c.master_id, 1, cu.assigned_at
                FROM company_users cu
                JOIN companies c ON c.id = cu.company_id
                WHERE cu.user_id = %s
            ) AS candidates
            ORDER BY priority, since, company_id
            LIMIT 1
        """
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(query, (user_id, user_id))
            row = cursor.fetchone()
        if row is None:
            return None
        return MasterContext(company_id=row[0], master_id=row[1])

    def create_company(self, master_id: int, name: str) -> int | None:
        query = """
            INSERT INTO companies (name, master_id)
            SELECT %s, u.id FROM users u WHERE u.id = %s
            RETURNING id
        """
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(query, (name, master_id))
            row = cursor.fetchone()
            return row[0] if row is not None else None

    def assign_user(
        self, company_id: int, user_id: int, access_level: AccessLevel
    ) -> AssignmentResult:
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(
                """
                SELECT EXISTS (SELECT 1 FROM companies WHERE id = %s),
                       EXISTS (SELECT 1 FROM users WHERE id = %s)
                """,
                (company_id, user_id),
            )
            company_found, user_found = cursor.fetchone()
            if not company_found:
                return AssignmentResult.COMPANY_NOT_FOUND
            if not user_found:
                return AssignmentResult.USER_NOT_FOUND

            cursor.execute(
                """
                INSERT INTO company_users (company_id, user_id, access_level)
                VALUES (%s, %s, %s)
                ON CONFLICT (company_id, user_id) DO NOTHING
                """,
                (company_id, user_id, int(access_level)),
            )
            if cursor.rowcount == 1:
                return AssignmentResult.ASSIGNED
            return AssignmentResult.DUPLICATE

    def create_member(
        self,
        company_id: int,
        email: str,
        fields: ProfileFields,
        access_level: AccessLevel,
        password: PasswordHash | None,
        code: str | None,
    ) -> int | None:
        """
        Create an account already assigned to a company, in one transaction.

        Returns:
            New user id, or None if a live profile already holds the email

        Raises:
            CompanyNotFound: If the company does not exist
            CodeCollision: If the code is already outstanding
        """
        try:
            with self._connection() as conn, conn.cursor() as cursor:
                cursor.execute("SELECT 1 FROM companies WHERE id = %s", (company_id,))
                if cursor.fetchone() is None:
                    raise CompanyNotFound(company_id)

                if password is not None:
                    cursor.execute(
                        """
                        INSERT INTO users (password_hash, password_salt, verified_at)
                        VALUES (%s, %s, NOW())
                        RETURNING id
                        """,
                        (password.hash, password.salt),
                    )
                else:
                    cursor.execute("INSERT INTO users DEFAULT VALUES RETURNING id")
                user_id = cursor.fetchone()[0]

                cursor.execute(
                    """
                    INSERT INTO user_profiles (
                        user_id, email, first_name, last_name, phone, birth_date,
                        national_id, country, description
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        user_id,
                        email,
                        fields.first_name,
                        fields.last_name,
                        fields.phone,
                        fields.birth_date,
                        fields.national_id,
                        fields.country,
                        fields.description,
                    ),
                )
                cursor.execute(
                    """
                    INSERT INTO company_users (company_id, user_id, access_level)
                    VALUES (%s, %s, %s)
                    """,
                    (company_id, user_id, int(access_level)),
                )
                if code is not None:
                    cursor.execute(
                        "INSERT INTO registration_codes (user_id, code) VALUES (%s, %s)",
                        (user_id, code),
                    )
                return user_id
        except UniqueViolation as exc:
            if _is_email_conflict(exc):
                return None
            raise CodeCollision(CodeScope.REGISTRATION.value) from exc

    def list_members(self, master_id: int, company_id: int | None = None) -> list[Member]:
        query = """
            SELECT p.user_id, cu.company_id, p.email, p.first_name, p.last_name, cu.access_level
            FROM company_users cu
            JOIN companies c ON c.id = cu.company_id
            JOIN user_profiles p ON p.user_id = cu.user_id
            WHERE c.master_id = %s
              AND NOT p.deleted
              AND (%s::bigint IS NULL OR c.id = %s)
            ORDER BY cu.company_id, p.user_id
        """
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(query, (master_id, company_id, company_id))
            rows = cursor.fetchall()
        return [
            Member(
                user_id=row[0],
                company_id=row[1],
                email=row[2],
                first_name=row[3],
                last_name=row[4],
                access_level=AccessLevel(row[5]),
            )
            for row in rows
        ]

    def update_member(
        self, master_id: int, user_id: int, email: str, fields: ProfileFields
    ) -> bool:
        """
        Overwrite a member's email and profile if master_id owns one of its companies.

        Raises:
            DuplicateEmail: If another live profile holds the email
        """
        query = """
            UPDATE user_profiles p
            SET email = %s, first_name = %s, last_name = %s, phone = %s, birth_date = %s,
                national_id = %s, country = %s, description = %s
            WHERE p.user_id = %s
              AND NOT p.deleted
              AND EXISTS (
                  SELECT 1
                  FROM company_users cu
                  JOIN companies c ON c.id = cu.company_id
                  WHERE cu.user_id = p.user_id AND c.master_id = %s
              )
        """
        try:
            with self._connection() as conn, conn.cursor() as cursor:
                cursor.execute(
                    query,
                    (
                        email,
                        fields.first_name,
                        fields.last_name,
                        fields.phone,
                        fields.birth_date,
                        fields.national_id,
                        fields.country,
                        fields.description,
                        user_id,
                        master_id,
                    ),
                )
                return cursor.rowcount == 1
        except UniqueViolation as exc:
            if _is_email_conflict(exc):
                raise DuplicateEmail(email) from exc
            raise

    def soft_delete_member(self, master_id: int, user_id: int) -> bool:
        """Mark the profile deleted and drop its outstanding codes."""
        query = """
            UPDATE user_profiles p
            SET deleted = TRUE
            WHERE p.user_id = %s
              AND NOT p.deleted
              AND EXISTS (
                  SELECT 1
                  FROM company_users cu
                  JOIN companies c ON c.id = cu.company_id
                  WHERE cu.user_id = p.user_id AND c.master_id = %s
              )
        """
        with self._connection() as conn, conn.cursor() as cursor:
            cursor.execute(query, (user_id, master_id))
            if cursor.rowcount != 1:
                return False
            cursor.execute("DELETE FROM registration_codes WHERE user_id = %s", (user_id,))
            cursor.execute("DELETE FROM recovery_codes WHERE user_id = %s", (user_id,))
            cursor.execute("DELETE FROM setup_codes WHERE user_id = %s", (user_id,))
            return True

    @staticmethod
    def _to_account(row: tuple | None) -> Account | None:
        if row is None:
            return None
        return Account(
            user_id=row[0],
            email=row[1],
            password_hash=row[2],
            password_salt=row[3],
            verified=row[4],
        )


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
