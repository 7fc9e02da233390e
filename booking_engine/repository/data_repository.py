"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from contextlib import closing, contextmanager
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from threading import Lock
from typing import Iterable, Iterator, List, Optional

from booking_engine.domain.constraints import validate_room_type
from booking_engine.domain.models import (
    Adjustment,
    Capacity,
    HistoryAction,
    NominalAdjustment,
    PercentageAdjustment,
    Reservation,
    ReservationStatus,
    RoomType,
    SeasonRule,
    SeasonRuleHistoryEntry,
    StayRequest,
)
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_room_type(row: sqlite3.Row) -> RoomType:
    return RoomType(
        room_type_id=int(row["id"]),
        name=str(row["name"]),
        base_price=int(row["base_price"]),
        quota=int(row["quota"]),
        capacity=Capacity(
            adults=int(row["capacity_adults"]),
            children=int(row["capacity_children"]),
        ),
    )


def _row_to_adjustment(row: sqlite3.Row) -> Adjustment:
    if row["percentage"] is not None:
        return PercentageAdjustment(percentage=float(row["percentage"]))
    if row["nominal"] is not None:
        return NominalAdjustment(nominal=int(row["nominal"]))
    return None


def _row_to_season_rule(row: sqlite3.Row) -> SeasonRule:
    return SeasonRule(
        rule_id=int(row["id"]),
        room_type_id=int(row["room_type_id"]),
        start_date=date.fromisoformat(str(row["start_date"])),
        end_date=date.fromisoformat(str(row["end_date"])),
        is_available=bool(row["is_available"]),
        adjustment=_row_to_adjustment(row),
        created_at=datetime.fromisoformat(str(row["created_at"])),
    )


def _row_to_reservation(row: sqlite3.Row) -> Reservation:
    return Reservation(
        reservation_id=int(row["id"]),
        room_type_id=int(row["room_type_id"]),
        check_in_date=date.fromisoformat(str(row["check_in_date"])),
        check_out_date=date.fromisoformat(str(row["check_out_date"])),
        qty=int(row["qty"]),
        status=ReservationStatus(str(row["status"])),
        order_number=str(row["order_number"]),
        total_price=int(row["total_price"]),
        adults=int(row["adults"]),
        children=int(row["children"]),
        created_at=datetime.fromisoformat(str(row["created_at"])),
    )


def _adjustment_columns(adjustment: Adjustment) -> tuple[Optional[float], Optional[int]]:
    if isinstance(adjustment, PercentageAdjustment):
        return adjustment.percentage, None
    if isinstance(adjustment, NominalAdjustment):
        return None, adjustment.nominal
    return None, None


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._locks_guard = Lock()
        self._room_type_locks: dict[int, Lock] = {}

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _session(
        self,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Iterator[sqlite3.Connection]:
        """Reuse the caller's transaction when given, else commit on a fresh connection."""
        if conn is not None:
            yield conn
            return
        with closing(self._connect()) as own:
            with own:
                yield own

    def _room_type_lock(self, room_type_id: int) -> Lock:
        with self._locks_guard:
            lock = self._room_type_locks.get(room_type_id)
            if lock is None:
                lock = Lock()
                self._room_type_locks[room_type_id] = lock
            return lock

    @contextmanager
    def _immediate_session(self) -> Iterator[sqlite3.Connection]:
        """Open a transaction holding the SQLite write lock from its first read."""
        with closing(self._connect()) as conn:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            else:
                conn.commit()

    @contextmanager
    def reservation_transaction(self, room_type_id: int) -> Iterator[sqlite3.Connection]:
        """Serialize check-and-insert of reservations for one room type.

        The in-process lock orders requests within this server; BEGIN IMMEDIATE
        takes the SQLite write lock so other processes wait (or fail with
        OperationalError) instead of reading a stale snapshot.
        """
        with self._room_type_lock(room_type_id):
            with self._immediate_session() as conn:
                yield conn

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._session() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS RoomTypes (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        base_price INTEGER NOT NULL CHECK (base_price >= 0),
                        quota INTEGER NOT NULL CHECK (quota > 0),
                        capacity_adults INTEGER NOT NULL CHECK (capacity_adults > 0),
                        capacity_children INTEGER NOT NULL DEFAULT 0
                            CHECK (capacity_children >= 0),
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS SeasonRules (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        room_type_id INTEGER NOT NULL,
                        start_date TEXT NOT NULL,
                        end_date TEXT NOT NULL,
                        is_available INTEGER NOT NULL CHECK (is_available IN (0,1)),
                        percentage REAL CHECK (percentage IS NULL OR percentage > 0),
                        nominal INTEGER CHECK (nominal IS NULL OR nominal > 0),
                        created_at TEXT NOT NULL,
                        CHECK (start_date <= end_date),
                        CHECK (percentage IS NULL OR nominal IS NULL),
                        FOREIGN KEY (room_type_id) REFERENCES RoomTypes(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS SeasonRuleHistory (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        room_type_id INTEGER NOT NULL,
                        rule_id INTEGER NOT NULL,
                        action TEXT NOT NULL CHECK (action IN ('CREATE','DELETE')),
                        details TEXT NOT NULL,
                        timestamp TEXT NOT NULL,
                        FOREIGN KEY (room_type_id) REFERENCES RoomTypes(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Reservations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        order_number TEXT NOT NULL UNIQUE,
                        room_type_id INTEGER NOT NULL,
                        check_in_date TEXT NOT NULL,
                        check_out_date TEXT NOT NULL,
                        qty INTEGER NOT NULL CHECK (qty > 0),
                        adults INTEGER NOT NULL,
                        children INTEGER NOT NULL DEFAULT 0,
                        total_price INTEGER NOT NULL CHECK (total_price >= 0),
                        status TEXT NOT NULL DEFAULT 'WAITING_FOR_PAYMENT',
                        created_at TEXT NOT NULL,
                        CHECK (check_in_date < check_out_date),
                        FOREIGN KEY (room_type_id) REFERENCES RoomTypes(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_season_rules_room_type_dates
                    ON SeasonRules(room_type_id, start_date, end_date);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservations_room_type_dates
                    ON Reservations(room_type_id, check_in_date, check_out_date, status);
                    """
                )
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data_if_empty(self) -> None:
        """Seed a few room types and season rules only when no room type exists."""
        try:
            with self._session() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM RoomTypes;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Demo data already present; skipping seed")
                    return

            deluxe = self.create_room_type("Deluxe Room", 850_000, 3, Capacity(2, 1))
            suite = self.create_room_type("Family Suite", 1_500_000, 2, Capacity(4, 2))
            self.create_room_type("Standard Room", 450_000, 5, Capacity(2, 0))

            today = _utcnow().date()
            self.create_season_rule(
                room_type_id=deluxe.room_type_id,
                start_date=today + timedelta(days=30),
                end_date=today + timedelta(days=39),
                is_available=True,
                adjustment=PercentageAdjustment(percentage=20),
            )
            self.create_season_rule(
                room_type_id=suite.room_type_id,
                start_date=today + timedelta(days=60),
                end_date=today + timedelta(days=61),
                is_available=False,
                adjustment=None,
            )
            logger.info("Demo seed completed")
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

    def create_room_type(
        self,
        name: str,
        base_price: int,
        quota: int,
        capacity: Capacity,
    ) -> RoomType:
        candidate = RoomType(
            room_type_id=0,
            name=name,
            base_price=base_price,
            quota=quota,
            capacity=capacity,
        )
        validate_room_type(candidate)
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO RoomTypes (
                    name,
                    base_price,
                    quota,
                    capacity_adults,
                    capacity_children
                )
                VALUES (?, ?, ?, ?, ?);
                """,
                (name, base_price, quota, capacity.adults, capacity.children),
            )
            room_type_id = int(cursor.lastrowid)
        return replace(candidate, room_type_id=room_type_id)

    def get_room_type(
        self,
        room_type_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[RoomType]:
        with self._session(conn) as session:
            cursor = session.cursor()
            cursor.execute(
                """
                SELECT id, name, base_price, quota, capacity_adults, capacity_children
                FROM RoomTypes
                WHERE id = ?;
                """,
                (room_type_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_room_type(row)

    def list_room_types(self) -> List[RoomType]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, name, base_price, quota, capacity_adults, capacity_children
                FROM RoomTypes
                ORDER BY id ASC;
                """
            )
            return [_row_to_room_type(row) for row in cursor.fetchall()]

    def list_season_rules(
        self,
        room_type_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> List[SeasonRule]:
        """Return every rule of a room type, overlapping ones included."""
        with self._session(conn) as session:
            cursor = session.cursor()
            cursor.execute(
                """
                SELECT
                    id,
                    room_type_id,
                    start_date,
                    end_date,
                    is_available,
                    percentage,
                    nominal,
                    created_at
                FROM SeasonRules
                WHERE room_type_id = ?
                ORDER BY start_date ASC, id ASC;
                """,
                (room_type_id,),
            )
            return [_row_to_season_rule(row) for row in cursor.fetchall()]

    def create_season_rule(
        self,
        room_type_id: int,
        start_date: date,
        end_date: date,
        is_available: bool,
        adjustment: Adjustment,
    ) -> SeasonRule:
        """Insert a rule and its CREATE history entry in one transaction."""
        percentage, nominal = _adjustment_columns(adjustment)
        created_at = _utcnow()
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO SeasonRules (
                    room_type_id,
                    start_date,
                    end_date,
                    is_available,
                    percentage,
                    nominal,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    room_type_id,
                    start_date.isoformat(),
                    end_date.isoformat(),
                    int(is_available),
                    percentage,
                    nominal,
                    created_at.isoformat(),
                ),
            )
            rule = SeasonRule(
                rule_id=int(cursor.lastrowid),
                room_type_id=room_type_id,
                start_date=start_date,
                end_date=end_date,
                is_available=is_available,
                adjustment=adjustment,
                created_at=created_at,
            )
            self._insert_history(
                conn,
                rule=rule,
                action=HistoryAction.CREATE,
                details=rule.describe(),
                timestamp=created_at,
            )
        return rule

    def delete_season_rules(
        self,
        room_type_id: int,
        rule_ids: Iterable[int],
    ) -> List[SeasonRule]:
        """Delete every listed rule of a room type, or none of them.

        Lookup and delete share one write-locked transaction, so a concurrent
        delete of the same ids finds them gone. Raises LookupError naming the
        ids that do not belong to the room type.
        """
        wanted = sorted(set(rule_ids))
        timestamp = _utcnow()
        with self._immediate_session() as conn:
            existing = {
                rule.rule_id: rule
                for rule in self.list_season_rules(room_type_id, conn=conn)
            }
            missing = [rule_id for rule_id in wanted if rule_id not in existing]
            if missing:
                raise LookupError(missing)

            deleted = [existing[rule_id] for rule_id in wanted]
            cursor = conn.cursor()
            for rule in deleted:
                cursor.execute(
                    "DELETE FROM SeasonRules WHERE id = ? AND room_type_id = ?;",
                    (rule.rule_id, room_type_id),
                )
                self._insert_history(
                    conn,
                    rule=rule,
                    action=HistoryAction.DELETE,
                    details=rule.describe(),
                    timestamp=timestamp,
                )
        return deleted

    def _insert_history(
        self,
        conn: sqlite3.Connection,
        rule: SeasonRule,
        action: HistoryAction,
        details: str,
        timestamp: datetime,
    ) -> None:
        conn.execute(
            """
            INSERT INTO SeasonRuleHistory (room_type_id, rule_id, action, details, timestamp)
            VALUES (?, ?, ?, ?, ?);
            """,
            (
                rule.room_type_id,
                rule.rule_id,
                action.value,
                details,
                timestamp.isoformat(),
            ),
        )

    def list_season_rule_history(self, room_type_id: int) -> List[SeasonRuleHistoryEntry]:
        """Return change log entries, newest first."""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, room_type_id, rule_id, action, details, timestamp
                FROM SeasonRuleHistory
                WHERE room_type_id = ?
                ORDER BY id DESC;
                """,
                (room_type_id,),
            )
            return [
                SeasonRuleHistoryEntry(
                    entry_id=int(row["id"]),
                    room_type_id=int(row["room_type_id"]),
                    rule_id=int(row["rule_id"]),
                    action=HistoryAction(str(row["action"])),
                    details=str(row["details"]),
                    timestamp=datetime.fromisoformat(str(row["timestamp"])),
                )
                for row in cursor.fetchall()
            ]

    def list_reservations(
        self,
        room_type_id: int,
        statuses: Optional[Iterable[ReservationStatus]] = None,
        window_start: Optional[date] = None,
        window_end: Optional[date] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> List[Reservation]:
        """Return reservations of a room type, optionally overlapping [start, end)."""
        clauses = ["room_type_id = ?"]
        params: list[object] = [room_type_id]
        if statuses is not None:
            status_values = sorted(status.value for status in statuses)
            if not status_values:
                return []
            placeholders = ",".join("?" for _ in status_values)
            clauses.append(f"status IN ({placeholders})")
            params.extend(status_values)
        if window_end is not None:
            clauses.append("check_in_date < ?")
            params.append(window_end.isoformat())
        if window_start is not None:
            clauses.append("check_out_date > ?")
            params.append(window_start.isoformat())

        with self._session(conn) as session:
            cursor = session.cursor()
            cursor.execute(
                f"""
                SELECT
                    id,
                    order_number,
                    room_type_id,
                    check_in_date,
                    check_out_date,
                    qty,
                    adults,
                    children,
                    total_price,
                    status,
                    created_at
                FROM Reservations
                WHERE {" AND ".join(clauses)}
                ORDER BY check_in_date ASC, id ASC;
                """,
                tuple(params),
            )
            return [_row_to_reservation(row) for row in cursor.fetchall()]

    def create_reservation(
        self,
        stay: StayRequest,
        total_price: int,
        order_number: str,
        status: ReservationStatus,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Reservation:
        created_at = _utcnow()
        with self._session(conn) as session:
            cursor = session.cursor()
            cursor.execute(
                """
                INSERT INTO Reservations (
                    order_number,
                    room_type_id,
                    check_in_date,
                    check_out_date,
                    qty,
                    adults,
                    children,
                    total_price,
                    status,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    order_number,
                    stay.room_type_id,
                    stay.check_in_date.isoformat(),
                    stay.check_out_date.isoformat(),
                    stay.qty,
                    stay.adults,
                    stay.children,
                    total_price,
                    status.value,
                    created_at.isoformat(),
                ),
            )
            reservation_id = int(cursor.lastrowid)
        return Reservation(
            reservation_id=reservation_id,
            room_type_id=stay.room_type_id,
            check_in_date=stay.check_in_date,
            check_out_date=stay.check_out_date,
            qty=stay.qty,
            status=status,
            order_number=order_number,
            total_price=total_price,
            adults=stay.adults,
            children=stay.children,
            created_at=created_at,
        )

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT
                    id,
                    order_number,
                    room_type_id,
                    check_in_date,
                    check_out_date,
                    qty,
                    adults,
                    children,
                    total_price,
                    status,
                    created_at
                FROM Reservations
                WHERE id = ?;
                """,
                (reservation_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_reservation(row)

    def update_reservation_status(
        self,
        reservation_id: int,
        expected: ReservationStatus,
        status: ReservationStatus,
    ) -> bool:
        """Move a reservation from `expected` to `status`.

        Returns False, writing nothing, when the stored status is no longer
        `expected` because another request changed it first.
        """
        with self._session() as conn:
            cursor = conn.execute(
                "UPDATE Reservations SET status = ? WHERE id = ? AND status = ?;",
                (status.value, reservation_id, expected.value),
            )
            return cursor.rowcount == 1

    def count_reservations(self) -> int:
        """Return persisted reservation count for diagnostics and tests."""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Reservations;")
            return int(cursor.fetchone()["count"])
