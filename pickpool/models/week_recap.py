import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import IntegrityError

from pickpool import db
from pickpool.records import InvalidRecordError, ParticipantRecap, RecapRecord
from pickpool.utils.timezone_utils import ensure_utc

logger = logging.getLogger(__name__)


class WeekRecap(db.Model):
    """Persisted scoring result for one week, one row per week id"""

    __tablename__ = "week_recaps"

    week_id = db.Column(db.String(40), primary_key=True)
    season = db.Column(db.Integer, nullable=False)
    week_key = db.Column(db.String(30), nullable=False)
    calculated_at = db.Column(db.DateTime, nullable=False)
    participant_stats = db.Column(db.JSON, nullable=False, default=list)

    __table_args__ = (db.Index("idx_week_recap_season", "season"),)

    def __repr__(self):
        return f"<WeekRecap {self.week_id} ({len(self.participant_stats or [])} participants)>"

    @staticmethod
    def get_recap(week_id):
        """Validated RecapRecord or None"""
        row = db.session.get(WeekRecap, week_id)
        return row.to_record() if row else None

    @staticmethod
    def list_for_season(season):
        rows = (
            WeekRecap.query.filter_by(season=season)
            .order_by(WeekRecap.week_id)
            .all()
        )
        return [row.to_record() for row in rows]

    @staticmethod
    def list_raw_for_season(season):
        """Stored documents without validation, for independent re-aggregation"""
        rows = WeekRecap.query.filter_by(season=season).all()
        return [
            {"weekId": row.week_id, "perParticipant": row.participant_stats}
            for row in rows
        ]

    @staticmethod
    def put_recap(week_id, record):
        """
        Overwrite the recap for a week and commit. calculated_at only moves
        forward; a concurrent insert of the same week is retried as an update
        (last write wins).

        Returns:
            the stored calculated_at
        """
        for attempt in range(2):
            row = db.session.get(WeekRecap, week_id)
            is_new = row is None
            if is_new:
                row = WeekRecap(week_id=week_id)
                db.session.add(row)

            calculated_at = ensure_utc(record.calculated_at)
            previous = ensure_utc(row.calculated_at)
            if previous is not None and calculated_at <= previous:
                calculated_at = previous + timedelta(microseconds=1)

            row.season = record.season
            row.week_key = record.week_key
            # Stored as naive UTC
            row.calculated_at = calculated_at.replace(tzinfo=None)
            row.participant_stats = [p.to_dict() for p in record.participants]

            try:
                db.session.commit()
                return calculated_at
            except IntegrityError:
                db.session.rollback()
                if not is_new or attempt:
                    raise
                logger.warning(f"Recap {week_id} was inserted concurrently, overwriting")

    def to_record(self):
        """
        Build a RecapRecord, skipping malformed participant rows with a warning.
        """
        stats = self.participant_stats
        if not isinstance(stats, list):
            logger.warning(f"Recap {self.week_id} has malformed participant stats")
            stats = []

        participants = []
        for raw in stats:
            try:
                participants.append(ParticipantRecap.from_raw(raw))
            except InvalidRecordError as e:
                logger.warning(f"Skipping malformed row in recap {self.week_id}: {e}")

        return RecapRecord(
            week_id=self.week_id,
            season=self.season,
            week_key=self.week_key,
            calculated_at=ensure_utc(self.calculated_at) or datetime.now(timezone.utc),
            participants=tuple(participants),
        )

    def to_dict(self):
        return self.to_record().to_dict()
