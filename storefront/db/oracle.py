import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional

import oracledb

from storefront.storage.errors import BackendUnavailable, ConstraintViolation, StorageError, StorageTimeout

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "oracle_migrations"
MIGRATION_SCRIPTS = ("01_create_tables.sql", "02_create_procedures.sql")

# ORA-00001 unique, 01400 not null, 02290 check, 02291 parent missing, 02292 child exists
CONSTRAINT_CODES = {1, 1400, 2290, 2291, 2292}
# Application errors raised by the procedures (-20001 stock, -20002 missing reference)
APPLICATION_CODES = range(20000, 21000)
ALREADY_EXISTS = 955
TIMEOUT_CODES = {"DPI-1067", "DPY-4024", "DPY-4005", "ORA-03156", "ORA-24459"}


def translate(e: oracledb.Error) -> StorageError:
    """Map an oracledb error onto the storage taxonomy."""
    error = e.args[0] if e.args else None
    code = getattr(error, "code", 0) or 0
    full_code = getattr(error, "full_code", "") or ""
    message = getattr(error, "message", str(e))
    if full_code in TIMEOUT_CODES:
        return StorageTimeout(message)
    if full_code.startswith("ORA-") and (code in CONSTRAINT_CODES or code in APPLICATION_CODES):
        return ConstraintViolation(message)
    if isinstance(e, (oracledb.OperationalError, oracledb.InterfaceError)):
        return BackendUnavailable(message)
    return StorageError(message)


def split_script(script: str) -> List[str]:
    """Split a migration script on lines holding a single ``/``."""
    statements, current = [], []
    for line in script.splitlines():
        if line.strip() == "/":
            statement = "\n".join(current).strip()
            if statement:
                statements.append(statement)
            current = []
        else:
            current.append(line)
    tail = "\n".join(current).strip()
    if tail:
        statements.append(tail)
    return statements


def _rows(cursor) -> List[Dict]:
    columns = [d[0].upper() for d in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


class OracleDriver:
    """
    Connection pool plus the handful of call shapes the procedure store needs.

    Every method that takes ``conn`` runs on a connection obtained from
    ``connection()``, which commits on success and rolls back on failure.
    """

    def __init__(self, user: str, password: str, dsn: str, pool_max: int = 5,
                 client_dir: Optional[str] = None, call_timeout: float = 10.0):
        self.user = user
        self.password = password
        self.dsn = dsn
        self.pool_max = pool_max
        self.client_dir = client_dir
        self.call_timeout_ms = int(call_timeout * 1000)
        self.pool = None

    def open(self):
        if self.client_dir:
            oracledb.init_oracle_client(lib_dir=self.client_dir)
        oracledb.defaults.fetch_lobs = False
        oracledb.defaults.fetch_decimals = True
        try:
            self.pool = oracledb.create_pool(
                user=self.user,
                password=self.password,
                dsn=self.dsn,
                min=0,
                max=self.pool_max,
                increment=1,
                getmode=oracledb.POOL_GETMODE_TIMEDWAIT,
                wait_timeout=self.call_timeout_ms,
            )
        except oracledb.Error as e:
            raise translate(e) from e
        logger.info(f"Oracle connection pool created for {self.dsn}")

    def close(self):
        if self.pool is not None:
            self.pool.close(force=True)
            self.pool = None
            logger.info("Oracle connection pool closed")

    @contextmanager
    def connection(self):
        if self.pool is None:
            raise BackendUnavailable("Oracle pool is not open")
        try:
            conn = self.pool.acquire()
        except oracledb.Error as e:
            raise translate(e) from e
        conn.call_timeout = self.call_timeout_ms
        try:
            try:
                yield conn
                conn.commit()
            except oracledb.Error as e:
                conn.rollback()
                raise translate(e) from e
            except Exception:
                conn.rollback()
                raise
        finally:
            self.pool.release(conn)

    # --- Call shapes ---

    def call_query(self, conn, proc: str, params: Dict) -> List[Dict]:
        """Call ``proc`` with a trailing ``p_cursor`` OUT ref cursor and drain it."""
        with conn.cursor() as cursor:
            out = cursor.var(oracledb.DB_TYPE_CURSOR)
            cursor.callproc(proc, keyword_parameters={**params, "p_cursor": out})
            ref = out.getvalue()
            try:
                return _rows(ref)
            finally:
                ref.close()

    def call_create(self, conn, proc: str, params: Dict, out_name: str = "p_id") -> int:
        with conn.cursor() as cursor:
            new_id = cursor.var(int)
            cursor.callproc(proc, keyword_parameters={**params, out_name: new_id})
            return int(new_id.getvalue())

    def call_update(self, conn, proc: str, params: Dict) -> int:
        """Call a write procedure that reports the affected row count in ``p_rows``."""
        with conn.cursor() as cursor:
            rows = cursor.var(int)
            cursor.callproc(proc, keyword_parameters={**params, "p_rows": rows})
            return int(rows.getvalue() or 0)

    def query(self, conn, sql: str, params: Dict) -> List[Dict]:
        with conn.cursor() as cursor:
            cursor.execute(sql, params)
            return _rows(cursor)

    def execute(self, conn, sql: str, params: Dict) -> int:
        with conn.cursor() as cursor:
            cursor.execute(sql, params)
            return cursor.rowcount

    def insert_returning(self, conn, sql: str, params: Dict, out_name: str = "new_id") -> int:
        with conn.cursor() as cursor:
            new_id = cursor.var(int)
            cursor.execute(sql, {**params, out_name: new_id})
            value = new_id.getvalue()
            return int(value[0] if isinstance(value, list) else value)

    # --- Migrations ---

    def run_migrations(self, directory: Path = MIGRATIONS_DIR) -> bool:
        """Create tables then procedures. Objects that already exist are skipped."""
        for name in MIGRATION_SCRIPTS:
            path = directory / name
            if not path.exists():
                logger.error(f"Oracle migration script not found: {path}")
                return False
            statements = split_script(path.read_text(encoding="utf-8"))
            with self.pool.acquire() as conn:
                with conn.cursor() as cursor:
                    for statement in statements:
                        try:
                            cursor.execute(statement)
                        except oracledb.DatabaseError as e:
                            error = e.args[0] if e.args else None
                            if getattr(error, "code", None) == ALREADY_EXISTS:
                                continue
                            logger.error(f"Migration {name} failed: {e}", exc_info=True)
                            return False
            logger.info(f"Applied Oracle migration {name} ({len(statements)} statements)")
        return True
