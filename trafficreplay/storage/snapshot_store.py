"""
Time-series store accessor for pilot and controller snapshots.

Append-only storage of per-poll-cycle samples with:
- atomic batch inserts (one transaction per poll cycle)
- inclusive range queries and windowed point-in-time queries
- exact-timestamp fetches for the snapshot resolver
- distinct-value aggregates for building filter option lists
- retention pruning that never touches protected event windows

Every pilot read accepts the same SnapshotFilters value; see
trafficreplay.filters for the composition rules.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, desc, func, select, union, union_all
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import sessionmaker

from trafficreplay.filters import SnapshotFilters, filter_clauses
from trafficreplay.models import (
    ControllerSample,
    ControllerSnapshot,
    PilotSample,
    PilotSnapshot,
    ProtectedRange,
    SessionLocal,
    session_scope,
)

logger = logging.getLogger(__name__)

# Columns usable with aggregate_distinct; 'airport' is departure UNION ALL destination
AGGREGATE_COLUMNS = ('airspace', 'departure', 'destination', 'callsign', 'airport')

# Keep IN (...) lists under SQLite's historical 999 bound-parameter limit
_IN_CHUNK = 900


def _chunks(values: Sequence[int], size: int = _IN_CHUNK) -> Iterable[Sequence[int]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class SnapshotStore:
    """
    Accessor over the snapshot tables.

    Reads open a short-lived session each; writes run inside
    session_scope so a failure rolls back the whole unit of work.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or SessionLocal

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def insert_batch(
        self,
        timestamp: int,
        pilots: Sequence[PilotSample],
        controllers: Sequence[ControllerSample] = (),
    ) -> int:
        """
        Append one poll cycle's rows under a single timestamp.

        Pilots and controllers go in one transaction: either every row
        becomes visible or none does. Errors propagate to the caller.

        Returns count of pilot rows inserted.
        """
        pilot_records = [p.to_record(timestamp) for p in pilots]
        controller_records = [c.to_record(timestamp) for c in controllers]

        if not pilot_records and not controller_records:
            return 0

        with session_scope(self._session_factory) as session:
            if pilot_records:
                session.execute(PilotSnapshot.__table__.insert(), pilot_records)
            if controller_records:
                session.execute(ControllerSnapshot.__table__.insert(), controller_records)

        logger.debug(
            f'Inserted batch ts={timestamp} pilots={len(pilot_records)} '
            f'controllers={len(controller_records)}'
        )
        return len(pilot_records)

    def prune(self, cutoff_timestamp: int) -> int:
        """
        Delete samples strictly older than cutoff.

        Samples whose timestamp lies inside any protected range are kept
        regardless of age. Returns total pilot + controller rows deleted.
        """
        deleted = 0
        with session_scope(self._session_factory) as session:
            for model in (PilotSnapshot, ControllerSnapshot):
                protected = (
                    select(ProtectedRange.id)
                    .where(
                        ProtectedRange.start_ts <= model.ts,
                        ProtectedRange.end_ts >= model.ts,
                    )
                    .correlate(model)
                    .exists()
                )
                result = session.execute(
                    delete(model)
                    .where(model.ts < cutoff_timestamp, ~protected)
                    .execution_options(synchronize_session=False)
                )
                deleted += result.rowcount or 0

        if deleted:
            logger.info(f'Pruned {deleted} samples older than {cutoff_timestamp}')
        return deleted

    def upsert_protected_ranges(self, ranges: Iterable[dict], fetched_at: int) -> int:
        """
        Insert or update protected windows keyed by event_id.

        Each item needs event_id, start_ts and end_ts; name is optional.
        Returns count of rows written.
        """
        records = [
            {
                'event_id': str(r['event_id']),
                'name': r.get('name'),
                'start_ts': int(r['start_ts']),
                'end_ts': int(r['end_ts']),
                'fetched_at': fetched_at,
            }
            for r in ranges
        ]
        if not records:
            return 0

        with session_scope(self._session_factory) as session:
            dialect = session.get_bind().dialect.name
            insert_fn = pg_insert if dialect == 'postgresql' else sqlite_insert
            for record in records:
                stmt = insert_fn(ProtectedRange).values(**record)
                stmt = stmt.on_conflict_do_update(
                    index_elements=['event_id'],
                    set_={
                        'name': stmt.excluded.name,
                        'start_ts': stmt.excluded.start_ts,
                        'end_ts': stmt.excluded.end_ts,
                        'fetched_at': stmt.excluded.fetched_at,
                    },
                )
                session.execute(stmt)

        return len(records)

    # -------------------------------------------------------------------------
    # Pilot reads
    # -------------------------------------------------------------------------

    def _select_pilots(self, filters: Optional[SnapshotFilters]):
        return select(PilotSnapshot).where(*filter_clauses(filters, PilotSnapshot))

    def query_range(
        self,
        since: int,
        until: int,
        filters: Optional[SnapshotFilters] = None,
        limit: Optional[int] = None,
    ) -> List[PilotSample]:
        """Samples with since <= ts <= until, oldest first."""
        stmt = (
            self._select_pilots(filters)
            .where(PilotSnapshot.ts >= since, PilotSnapshot.ts <= until)
            .order_by(PilotSnapshot.ts.asc(), PilotSnapshot.callsign.asc(), PilotSnapshot.id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._session_factory() as session:
            return [PilotSample.from_row(row) for row in session.scalars(stmt)]

    def query_at(
        self,
        timestamp: int,
        window: int,
        filters: Optional[SnapshotFilters] = None,
    ) -> List[PilotSample]:
        """All samples within [timestamp - window, timestamp + window]."""
        return self.query_range(timestamp - window, timestamp + window, filters)

    def query_at_timestamps(
        self,
        timestamps: Sequence[int],
        filters: Optional[SnapshotFilters] = None,
    ) -> List[PilotSample]:
        """Samples whose ts is exactly one of the given timestamps."""
        wanted = sorted(set(timestamps))
        if not wanted:
            return []

        samples: List[PilotSample] = []
        with self._session_factory() as session:
            for chunk in _chunks(wanted):
                stmt = (
                    self._select_pilots(filters)
                    .where(PilotSnapshot.ts.in_(chunk))
                    .order_by(PilotSnapshot.ts.asc(), PilotSnapshot.callsign.asc(), PilotSnapshot.id.asc())
                )
                samples.extend(PilotSample.from_row(row) for row in session.scalars(stmt))
        return samples

    def distinct_timestamps(self, since: int, until: int) -> List[int]:
        """
        Sorted unique poll timestamps present in [since, until].

        A cycle that stored only controllers still counts as present.
        """
        stmt = union(
            select(PilotSnapshot.ts).where(PilotSnapshot.ts >= since, PilotSnapshot.ts <= until),
            select(ControllerSnapshot.ts).where(ControllerSnapshot.ts >= since, ControllerSnapshot.ts <= until),
        )
        with self._session_factory() as session:
            return sorted(int(ts) for ts in session.scalars(stmt))

    def aggregate_distinct(
        self,
        column: str,
        since: int,
        until: int,
        filters: Optional[SnapshotFilters] = None,
        limit: int = 2000,
    ) -> List[Dict[str, object]]:
        """
        Count samples per distinct value of a label column.

        Null and empty values are skipped. Sorted by count descending,
        then value ascending.
        """
        if column not in AGGREGATE_COLUMNS:
            raise ValueError(f'cannot aggregate on column {column!r}')

        clauses = filter_clauses(filters, PilotSnapshot)
        in_range = (PilotSnapshot.ts >= since, PilotSnapshot.ts <= until)

        if column == 'airport':
            sources = [
                select(col.label('value')).where(*in_range, col.isnot(None), col != '', *clauses)
                for col in (PilotSnapshot.departure, PilotSnapshot.destination)
            ]
            subq = union_all(*sources).subquery()
            value_col = subq.c.value
            stmt = select(value_col, func.count().label('count')).group_by(value_col)
        else:
            value_col = getattr(PilotSnapshot, column)
            stmt = (
                select(value_col.label('value'), func.count().label('count'))
                .where(*in_range, value_col.isnot(None), value_col != '', *clauses)
                .group_by(value_col)
            )

        stmt = stmt.order_by(desc('count'), value_col.asc()).limit(limit)

        with self._session_factory() as session:
            return [
                {'value': row.value, 'count': int(row.count)}
                for row in session.execute(stmt)
            ]

    def callsigns_in_range(
        self,
        since: int,
        until: int,
        filters: Optional[SnapshotFilters] = None,
        limit: int = 2000,
    ) -> List[Dict[str, object]]:
        """Callsigns seen in range with first/last sighting, most recent first."""
        last_seen = func.max(PilotSnapshot.ts).label('last_seen')
        stmt = (
            select(
                PilotSnapshot.callsign,
                func.min(PilotSnapshot.ts).label('first_seen'),
                last_seen,
                func.count().label('points'),
            )
            .where(PilotSnapshot.ts >= since, PilotSnapshot.ts <= until)
            .where(*filter_clauses(filters, PilotSnapshot))
            .group_by(PilotSnapshot.callsign)
            .order_by(desc('last_seen'), PilotSnapshot.callsign.asc())
            .limit(limit)
        )

        with self._session_factory() as session:
            return [
                {
                    'callsign': row.callsign,
                    'first_seen': row.first_seen,
                    'last_seen': row.last_seen,
                    'points': int(row.points),
                }
                for row in session.execute(stmt)
            ]

    def track(
        self,
        callsign: str,
        since: int,
        until: int,
        step: int = 0,
        filters: Optional[SnapshotFilters] = None,
    ) -> List[dict]:
        """
        Position history for one callsign.

        With step > 0 the track is downsampled to one averaged point per
        (ts // step) * step bucket, stamped with the bucket's earliest ts.
        """
        callsign = callsign.strip().upper()
        where = (
            PilotSnapshot.callsign == callsign,
            PilotSnapshot.ts >= since,
            PilotSnapshot.ts <= until,
            *filter_clauses(filters, PilotSnapshot),
        )

        if not step or step <= 0:
            stmt = (
                select(PilotSnapshot)
                .where(*where)
                .order_by(PilotSnapshot.ts.asc(), PilotSnapshot.id.asc())
            )
            with self._session_factory() as session:
                return [
                    PilotSample.from_row(row).to_dict()
                    for row in session.scalars(stmt)
                ]

        bucket = ((PilotSnapshot.ts // step) * step).label('bucket')
        first_ts = func.min(PilotSnapshot.ts).label('ts')
        stmt = (
            select(
                bucket,
                first_ts,
                func.avg(PilotSnapshot.lat).label('lat'),
                func.avg(PilotSnapshot.lon).label('lon'),
                func.avg(PilotSnapshot.altitude).label('altitude'),
                func.avg(PilotSnapshot.groundspeed).label('groundspeed'),
                func.avg(PilotSnapshot.heading).label('heading'),
                func.max(PilotSnapshot.airspace).label('airspace'),
                func.max(PilotSnapshot.departure).label('departure'),
                func.max(PilotSnapshot.destination).label('destination'),
            )
            .where(*where)
            .group_by(bucket)
            .order_by(first_ts.asc())
        )

        def _round(value):
            return None if value is None else int(round(float(value)))

        with self._session_factory() as session:
            return [
                {
                    'ts': row.ts,
                    'callsign': callsign,
                    'lat': float(row.lat),
                    'lon': float(row.lon),
                    'altitude': _round(row.altitude),
                    'groundspeed': _round(row.groundspeed),
                    'heading': _round(row.heading),
                    'airspace': row.airspace,
                    'departure': row.departure,
                    'destination': row.destination,
                }
                for row in session.execute(stmt)
            ]

    def range_meta(self) -> dict:
        """Oldest and newest pilot timestamp plus total pilot row count."""
        stmt = select(
            func.min(PilotSnapshot.ts),
            func.max(PilotSnapshot.ts),
            func.count(PilotSnapshot.id),
        )
        with self._session_factory() as session:
            min_ts, max_ts, rows = session.execute(stmt).one()
        return {'min_ts': min_ts, 'max_ts': max_ts, 'rows': int(rows or 0)}

    # -------------------------------------------------------------------------
    # Controller reads
    # -------------------------------------------------------------------------

    def controllers_at(self, timestamp: int, window: int) -> List[ControllerSample]:
        """Controller samples within [timestamp - window, timestamp + window]."""
        stmt = (
            select(ControllerSnapshot)
            .where(
                ControllerSnapshot.ts >= timestamp - window,
                ControllerSnapshot.ts <= timestamp + window,
            )
            .order_by(ControllerSnapshot.ts.asc(), ControllerSnapshot.callsign.asc())
        )
        with self._session_factory() as session:
            return [ControllerSample.from_row(row) for row in session.scalars(stmt)]

    def controllers_at_timestamps(self, timestamps: Sequence[int]) -> List[ControllerSample]:
        """Controller samples whose ts is exactly one of the given timestamps."""
        wanted = sorted(set(timestamps))
        if not wanted:
            return []

        samples: List[ControllerSample] = []
        with self._session_factory() as session:
            for chunk in _chunks(wanted):
                stmt = (
                    select(ControllerSnapshot)
                    .where(ControllerSnapshot.ts.in_(chunk))
                    .order_by(ControllerSnapshot.ts.asc(), ControllerSnapshot.callsign.asc())
                )
                samples.extend(ControllerSample.from_row(row) for row in session.scalars(stmt))
        return samples

    # -------------------------------------------------------------------------
    # Protected ranges
    # -------------------------------------------------------------------------

    def protected_ranges(
        self,
        since: Optional[int] = None,
        until: Optional[int] = None,
        limit: int = 500,
        only_with_data: bool = False,
    ) -> List[ProtectedRange]:
        """
        Stored windows overlapping [since, until], newest first.

        only_with_data keeps windows that contain at least one pilot sample.
        """
        stmt = select(ProtectedRange)
        if since is not None:
            stmt = stmt.where(ProtectedRange.end_ts >= since)
        if until is not None:
            stmt = stmt.where(ProtectedRange.start_ts <= until)
        if only_with_data:
            has_data = (
                select(PilotSnapshot.id)
                .where(
                    PilotSnapshot.ts >= ProtectedRange.start_ts,
                    PilotSnapshot.ts <= ProtectedRange.end_ts,
                )
                .exists()
            )
            stmt = stmt.where(has_data)
        stmt = stmt.order_by(ProtectedRange.start_ts.desc()).limit(limit)

        with self._session_factory() as session:
            return list(session.scalars(stmt))
