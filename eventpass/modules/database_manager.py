"""
Database Manager Module - Event Pass

This module handles all database operations for the check-in pipeline.
It owns SQLite connection management, schema creation, and the small set of
query primitives the other modules build on. Managers keep their own SQL;
this module only guarantees connections, transactions and error logging.

Features:
- Thread-local SQLite connections
- Schema creation (clubs, events, registrations, attendance, certificates)
- Query / update / batch helpers
- Transaction support with automatic rollback
"""

import sqlite3
import logging
from contextlib import contextmanager
import threading
import os


class DatabaseManager:
    """
    Database management class for the event pass store.

    Write statements run inside ``BEGIN IMMEDIATE`` transactions so that two
    connections racing on the same row serialize on the write lock instead of
    failing with a lock upgrade error.
    """

    def __init__(self, db_path, timeout=30.0):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str): Path to the SQLite database file
            timeout (float): Seconds to wait for a locked database
        """
        self.db_path = str(db_path)
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()

        # Ensure database directory exists
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.initialize_database()

    @contextmanager
    def get_connection(self):
        """
        Context manager yielding this thread's connection.

        Yields:
            sqlite3.Connection: Database connection object
        """
        if not hasattr(self._local, 'connection'):
            self._local.connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=self.timeout,
                isolation_level='IMMEDIATE'
            )
            self._local.connection.row_factory = sqlite3.Row
            self._local.connection.execute("PRAGMA foreign_keys = ON")

        try:
            yield self._local.connection
        except sqlite3.IntegrityError:
            # Constraint violations are an expected signal for callers
            self._local.connection.rollback()
            raise
        except Exception as e:
            self._local.connection.rollback()
            self.logger.error(f"Database operation failed: {str(e)}")
            raise

    def initialize_database(self):
        """
        Create all necessary tables. Idempotent.
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS clubs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name VARCHAR(100) NOT NULL,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS events (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        club_id INTEGER NOT NULL,
                        title VARCHAR(200) NOT NULL,
                        description TEXT DEFAULT '',
                        event_date TIMESTAMP,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (club_id) REFERENCES clubs(id)
                    )
                """)

                # Club membership applications; only approved rows are members
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS club_registrations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        club_id INTEGER NOT NULL,
                        student_name VARCHAR(100) NOT NULL,
                        student_email VARCHAR(100),
                        roll_number VARCHAR(20) NOT NULL,
                        branch VARCHAR(100),
                        year VARCHAR(20),
                        status VARCHAR(20) DEFAULT 'pending',
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (club_id) REFERENCES clubs(id)
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS mentors (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name VARCHAR(100),
                        email VARCHAR(100),
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS event_registrations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        event_id INTEGER NOT NULL,
                        student_name VARCHAR(100) NOT NULL,
                        student_email VARCHAR(100) NOT NULL,
                        roll_number VARCHAR(20) NOT NULL,
                        branch VARCHAR(100),
                        year VARCHAR(20),
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (event_id) REFERENCES events(id),
                        UNIQUE(event_id, roll_number)
                    )
                """)

                # One attendance row per registration, keyed by its credential
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS event_attendance (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        qr_token VARCHAR(100) UNIQUE NOT NULL,
                        event_id INTEGER NOT NULL,
                        registration_id INTEGER UNIQUE NOT NULL,
                        student_name VARCHAR(100) NOT NULL,
                        student_email VARCHAR(100),
                        roll_number VARCHAR(20) NOT NULL,
                        branch VARCHAR(100),
                        year VARCHAR(20),
                        status VARCHAR(20) NOT NULL DEFAULT 'pending'
                            CHECK (status IN ('pending', 'present')),
                        confirmed_at TIMESTAMP,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (event_id) REFERENCES events(id),
                        FOREIGN KEY (registration_id) REFERENCES event_registrations(id)
                    )
                """)

                # No unique (event_id, roll_number) constraint: dedup is
                # enforced by the eligibility check before insert
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS certificates (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        certificate_number VARCHAR(40) UNIQUE NOT NULL,
                        event_id INTEGER NOT NULL,
                        club_id INTEGER,
                        roll_number VARCHAR(20) NOT NULL,
                        student_name VARCHAR(100),
                        student_email VARCHAR(100),
                        certificate_title VARCHAR(200) NOT NULL,
                        description TEXT,
                        issued_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (event_id) REFERENCES events(id)
                    )
                """)

                cursor.execute("CREATE INDEX IF NOT EXISTS idx_attendance_event ON event_attendance(event_id, status)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_certificates_event ON certificates(event_id, roll_number)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_club_registrations_club ON club_registrations(club_id, status)")

                conn.commit()
                self.logger.info("Database initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            raise

    def execute_query(self, query, params=None, fetch_all=True):
        """
        Execute a SELECT query and return results.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters
            fetch_all (bool): Whether to fetch all results or just one

        Returns:
            list or dict: Query results
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())

            if fetch_all:
                return [dict(row) for row in cursor.fetchall()]
            result = cursor.fetchone()
            return dict(result) if result else None

    def execute_update(self, query, params=None):
        """
        Execute an INSERT, UPDATE, or DELETE statement in its own transaction.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters

        Returns:
            int: Last inserted row ID for INSERT, affected row count otherwise
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            conn.commit()

            if query.strip().upper().startswith('INSERT'):
                return cursor.lastrowid
            return cursor.rowcount

    @contextmanager
    def transaction(self, immediate=False):
        """
        Context manager for database transactions with automatic rollback on error.

        Args:
            immediate (bool): Take the write lock before the first statement,
                so reads inside the block see no concurrent writer

        Yields:
            sqlite3.Connection: Database connection within transaction
        """
        with self.get_connection() as conn:
            try:
                if immediate:
                    conn.execute("BEGIN IMMEDIATE")
                yield conn
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.logger.error(f"Transaction rolled back: {str(e)}")
                raise

    def close_all_connections(self):
        """Close this thread's database connection."""
        try:
            local = getattr(self, '_local', None)
            if local is not None and hasattr(local, 'connection'):
                local.connection.close()
                del local.connection
        except sqlite3.Error as e:
            self.logger.error(f"Error closing connections: {str(e)}")

    def __del__(self):
        """Cleanup when object is destroyed."""
        self.close_all_connections()
