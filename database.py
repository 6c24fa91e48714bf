"""
Database module for Attendance System
SQLite storage for student profiles (reference blob keys) and attendance records.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

from core.errors import AttendanceCommitError
from core.storage.blob_store import BlobReference

logger = logging.getLogger('database')


class DatabaseManager:
    def __init__(self, db_path="attendance_system.db"):
        self.db_path = str(db_path)
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.init_database()

    @contextmanager
    def get_connection(self):
        """Open a connection; commit on success, roll back on error, always close."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_database(self):
        """Create tables when missing."""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS students (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id VARCHAR(50) UNIQUE NOT NULL,
                    full_name VARCHAR(100) NOT NULL,
                    reference_key VARCHAR(200),
                    reference_content_type VARCHAR(50),
                    reference_size INTEGER,
                    reference_url TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    is_active BOOLEAN DEFAULT 1
                )
            ''')

            # recorded_at is the capture timestamp; identical claims collapse into one row
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS attendance (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id VARCHAR(50) NOT NULL,
                    class_id VARCHAR(100) NOT NULL,
                    recorded_at TIMESTAMP NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (student_id, class_id, recorded_at),
                    FOREIGN KEY (student_id) REFERENCES students(student_id)
                )
            ''')

            cursor.execute('CREATE INDEX IF NOT EXISTS idx_attendance_student ON attendance(student_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_attendance_class ON attendance(class_id)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_attendance_recorded ON attendance(recorded_at)')

        logger.info("Database initialized at %s", self.db_path)

    # ------------------------------------------------------------------
    # Students
    def add_student(self, student_id, full_name):
        """Add a new student. Returns False when the id already exists."""
        with self.get_connection() as conn:
            try:
                conn.execute('''
                    INSERT INTO students (student_id, full_name)
                    VALUES (?, ?)
                ''', (student_id, full_name))
            except sqlite3.IntegrityError as e:
                logger.error(f"Student ID {student_id} already exists: {e}")
                return False
        logger.info(f"Added student: {full_name} ({student_id})")
        return True

    def get_student(self, student_id):
        with self.get_connection() as conn:
            row = conn.execute('SELECT * FROM students WHERE student_id = ?', (student_id,)).fetchone()
            return dict(row) if row else None

    def get_all_students(self, active_only=True):
        with self.get_connection() as conn:
            if active_only:
                rows = conn.execute('SELECT * FROM students WHERE is_active = 1 ORDER BY full_name').fetchall()
            else:
                rows = conn.execute('SELECT * FROM students ORDER BY full_name').fetchall()
            return [dict(r) for r in rows]

    def update_student(self, student_id, **kwargs):
        """Update editable student fields (full_name, is_active)."""
        allowed = {k: v for k, v in kwargs.items() if k in ('full_name', 'is_active')}
        if not allowed:
            return False
        assignments = ', '.join(f"{column} = ?" for column in allowed)
        values = list(allowed.values()) + [student_id]
        with self.get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE students SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE student_id = ?",
                values,
            )
            return cursor.rowcount > 0

    def delete_student(self, student_id):
        """Remove a student that has no attendance yet (used to undo a failed registration)."""
        with self.get_connection() as conn:
            cursor = conn.execute('DELETE FROM students WHERE student_id = ?', (student_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Reference index
    def get_reference_key(self, student_id):
        with self.get_connection() as conn:
            row = conn.execute(
                'SELECT reference_key FROM students WHERE student_id = ? AND is_active = 1',
                (student_id,),
            ).fetchone()
            return row['reference_key'] if row else None

    def set_reference_key(self, student_id, reference: BlobReference):
        with self.get_connection() as conn:
            cursor = conn.execute('''
                UPDATE students
                SET reference_key = ?, reference_content_type = ?, reference_size = ?,
                    reference_url = ?, updated_at = CURRENT_TIMESTAMP
                WHERE student_id = ?
            ''', (reference.key, reference.content_type, reference.size, reference.url, student_id))
            if cursor.rowcount == 0:
                raise KeyError(f"Unknown student {student_id}")
        logger.info(f"Reference for {student_id} set to {reference.key}")

    # ------------------------------------------------------------------
    # Attendance
    def commit(self, subject_id, class_id, timestamp: datetime):
        """Record one attendance claim; a repeated identical claim is a no-op."""
        try:
            with self.get_connection() as conn:
                cursor = conn.execute('''
                    INSERT OR IGNORE INTO attendance (student_id, class_id, recorded_at)
                    VALUES (?, ?, ?)
                ''', (subject_id, class_id, timestamp.isoformat()))
                inserted = cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"DB Error - Operation: commit, Error: {e}")
            raise AttendanceCommitError(f"Attendance storage unavailable: {e}") from e
        if inserted:
            logger.info(f"Marked attendance for {subject_id} in {class_id}")
        else:
            logger.info(f"Duplicate attendance claim for {subject_id} in {class_id} ignored")

    def get_attendance_records(self, student_id=None, class_id=None, start_date=None, end_date=None):
        """Attendance rows filtered by student, class and inclusive date range, newest first."""
        clauses = []
        params = []
        if student_id:
            clauses.append('a.student_id = ?')
            params.append(student_id)
        if class_id:
            clauses.append('a.class_id = ?')
            params.append(class_id)
        if start_date:
            clauses.append('substr(a.recorded_at, 1, 10) >= ?')
            params.append(start_date.isoformat() if isinstance(start_date, date) else start_date)
        if end_date:
            clauses.append('substr(a.recorded_at, 1, 10) <= ?')
            params.append(end_date.isoformat() if isinstance(end_date, date) else end_date)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ''

        with self.get_connection() as conn:
            rows = conn.execute(f'''
                SELECT a.student_id, a.class_id, a.recorded_at, s.full_name
                FROM attendance a
                LEFT JOIN students s ON a.student_id = s.student_id
                {where}
                ORDER BY a.recorded_at DESC, a.id DESC
            ''', params).fetchall()
            return [dict(r) for r in rows]
