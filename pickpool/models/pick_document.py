import logging
from datetime import datetime, timezone

from pickpool import db
from pickpool.records import InvalidRecordError, PickEntry

logger = logging.getLogger(__name__)


class PickDocument(db.Model):
    """
    One participant's picks for one week, stored the way the picking UI writes
    them: a JSON object keyed by contest id, each value {"pickedTeam", "pickedAt"}.
    """

    __tablename__ = "pick_documents"

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(
        db.String(128), db.ForeignKey("participants.id"), nullable=False
    )
    week_id = db.Column(db.String(40), nullable=False)
    picks = db.Column(db.JSON, nullable=False, default=dict)

    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    participant = db.relationship("Participant", backref="pick_documents")

    __table_args__ = (
        db.UniqueConstraint("participant_id", "week_id", name="unique_participant_week"),
        db.Index("idx_pick_document_week", "week_id"),
    )

    def __repr__(self):
        return f"<PickDocument {self.participant_id} {self.week_id}>"

    @staticmethod
    def get(participant_id, week_id):
        return PickDocument.query.filter_by(
            participant_id=participant_id, week_id=week_id
        ).first()

    @staticmethod
    def save(participant_id, week_id, picks):
        """Create or replace a participant's pick document (no commit)"""
        document = PickDocument.get(participant_id, week_id)
        if document is None:
            document = PickDocument(participant_id=participant_id, week_id=week_id)
            db.session.add(document)
        document.picks = {str(k): v for k, v in picks.items()}
        return document


class PickStore:
    """Read-only access to pick documents for the scoring engine"""

    @staticmethod
    def get_picks(participant_id, week_id):
        """
        Validated picks keyed by contest id. Malformed entries are skipped and
        logged; a missing or malformed document yields an empty mapping.
        """
        document = PickDocument.get(participant_id, week_id)
        if document is None:
            return {}

        raw = document.picks
        if not isinstance(raw, dict):
            logger.warning(
                f"Ignoring malformed pick document for {participant_id} in {week_id}"
            )
            return {}

        picks = {}
        for contest_id, value in raw.items():
            try:
                picks[str(contest_id)] = PickEntry.from_raw(contest_id, value)
            except InvalidRecordError as e:
                logger.warning(f"Skipping pick of {participant_id} in {week_id}: {e}")
        return picks

    @staticmethod
    def get_raw_keys(participant_id, week_id):
        """Contest keys exactly as stored, for identifier diagnostics"""
        document = PickDocument.get(participant_id, week_id)
        if document is None or not isinstance(document.picks, dict):
            return []
        return list(document.picks.keys())
