# Database connection and transaction management

import sqlite3
import logging
import os
from datetime import datetime
from typing import List, Any, Callable, Dict
from contextlib import contextmanager

CORE_TABLES = ['customers', 'orders', 'gateway_orders', 'payment_events', 'offers', 'settings', 'admins']


class DatabaseManager:
    """
    Database manager

    Owns one SQLite connection. Writes go through execute_transaction(),
    which takes the database write lock (BEGIN IMMEDIATE) before running
    the operations, so guards and conditional updates inside one
    transaction never interleave with another writer.
    """

    def __init__(self, db_path: str, auto_connect: bool = False, busy_timeout: float = 5.0):
        """
        Args:
            db_path: database file path, or ':memory:'
            auto_connect: connect immediately
            busy_timeout: seconds to wait for the write lock
        """
        self.db_path = db_path
        self.busy_timeout = busy_timeout
        self.conn = None
        self._is_connected = False

        self.logger = logging.getLogger(self.__class__.__name__)

        if auto_connect:
            self.connect()

    def connect(self) -> sqlite3.Connection:
        """
        Open the connection

        Raises:
            ConnectionError: when the database cannot be opened
        """
        try:
            if self.conn is not None:
                self.logger.warning("Connection already open, closing it first")
                self.close()

            db_dir = os.path.dirname(self.db_path)
            if self.db_path != ':memory:' and db_dir and not os.path.exists(db_dir):
                os.makedirs(db_dir, exist_ok=True)
                self.logger.info(f"Created database directory: {db_dir}")

            self.conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self._is_connected = True
            self.logger.debug(f"Connected to database: {self.db_path}")

            self._configure_database()

            return self.conn

        except sqlite3.Error as e:
            self.logger.error(f"Failed to connect to database: {str(e)}")
            raise ConnectionError(f"Cannot connect to database {self.db_path}: {str(e)}")

    def close(self):
        if self.conn is not None:
            try:
                self.conn.close()
                self.logger.debug("Database connection closed")
            except sqlite3.Error as e:
                self.logger.error(f"Error while closing connection: {str(e)}")
            finally:
                self.conn = None
                self._is_connected = False

    def _configure_database(self):
        pragmas = [
            "PRAGMA foreign_keys = ON",
            "PRAGMA journal_mode = WAL",
            "PRAGMA synchronous = NORMAL",
            f"PRAGMA busy_timeout = {int(self.busy_timeout * 1000)}",
        ]

        for pragma in pragmas:
            self.conn.execute(pragma)

    def is_connected(self) -> bool:
        return self._is_connected and self.conn is not None

    def ensure_connected(self):
        """
        Raises:
            ConnectionError: when connect() has not been called
        """
        if not self.is_connected():
            raise ConnectionError("Database is not connected, call connect() first")

    def execute_transaction(self, operations: List[Callable]) -> List[Any]:
        """
        Run operations serially inside one write transaction

        Args:
            operations: callables, each returning a result

        Returns:
            list of results

        Raises:
            ConnectionError: database not connected
            Exception: the original exception after rollback
        """
        self.ensure_connected()

        if not operations:
            self.logger.warning("Empty transaction")
            return []

        results = []
        transaction_id = datetime.now().strftime("%Y%m%d%H%M%S%f")

        try:
            if not self.conn.in_transaction:
                self.conn.execute("BEGIN IMMEDIATE")
            self.logger.debug(f"Transaction {transaction_id} started with {len(operations)} operation(s)")

            for operation in operations:
                results.append(operation())

            self.conn.commit()
            self.logger.debug(f"Transaction {transaction_id} committed")

            return results

        except Exception as e:
            self.logger.debug(f"Transaction {transaction_id} failed: {type(e).__name__}: {e}")
            try:
                self.conn.rollback()
            except sqlite3.Error as rollback_error:
                self.logger.error(f"Rollback of transaction {transaction_id} failed: {rollback_error}")
            raise

    def execute_single(self, query: str, params: List = None) -> Any:
        """
        Run a single statement, committing DDL/DML immediately

        Args:
            query: SQL
            params: parameters
        """
        self.ensure_connected()

        try:
            if params:
                result = self.conn.execute(query, params)
            else:
                result = self.conn.execute(query)

            if query.strip().upper().startswith(('CREATE', 'DROP', 'ALTER', 'INSERT', 'UPDATE', 'DELETE')):
                self.conn.commit()

            return result

        except sqlite3.Error as e:
            self.logger.error(f"Query failed: {query[:100]}..., error: {str(e)}")
            raise

    @contextmanager
    def transaction(self):
        """
        Write transaction context manager

        Usage:
            with db_manager.transaction() as conn:
                conn.execute("INSERT ...")
                conn.execute("UPDATE ...")
        """
        self.ensure_connected()

        try:
            if not self.conn.in_transaction:
                self.conn.execute("BEGIN IMMEDIATE")
            yield self.conn
            self.conn.commit()
        except Exception as e:
            self.logger.debug(f"Manual transaction failed: {str(e)}")
            try:
                self.conn.rollback()
            except sqlite3.Error as rollback_error:
                self.logger.error(f"Manual transaction rollback failed: {str(rollback_error)}")
            raise

    def check_integrity(self) -> Dict[str, int]:
        """
        Verify the core tables exist and the order invariants hold

        Returns:
            row count per core table

        Raises:
            RuntimeError: missing table or inconsistent order rows
        """
        self.ensure_connected()

        counts = {}
        for table in CORE_TABLES:
            exists = self.conn.execute(
                "SELECT COUNT(*) FROM sqlite_master WHERE type='table' AND name=?",
                (table,)
            ).fetchone()[0]
            if not exists:
                raise RuntimeError(f"Core table {table} does not exist")
            counts[table] = self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

        # accepted + cancelled must never coexist
        broken = self.conn.execute("""
            SELECT order_id FROM orders
            WHERE is_accepted = 1 AND status = 'Cancelled'
        """).fetchall()

        if broken:
            ids = ', '.join(row[0] for row in broken)
            raise RuntimeError(f"Orders both accepted and cancelled: {ids}")

        self.logger.info("Database integrity check passed")
        return counts

    def __enter__(self):
        if not self.is_connected():
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __del__(self):
        if self.is_connected():
            self.close()
