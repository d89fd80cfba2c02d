from datetime import datetime, timezone

from pickpool import db


class Participant(db.Model):
    __tablename__ = "participants"

    # Identifier issued by the auth provider (out of scope); opaque string
    id = db.Column(db.String(128), primary_key=True)
    display_name = db.Column(db.String(100))

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    # The always-favorite participant and similar generated players
    is_synthetic = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (db.Index("idx_participant_active", "is_active"),)

    def __repr__(self):
        return f"<Participant {self.id} {self.display_name!r}>"

    @staticmethod
    def get_scored():
        """Active participants with a display name, in a stable order"""
        return (
            Participant.query.filter(
                Participant.is_active.is_(True),
                Participant.display_name.isnot(None),
                Participant.display_name != "",
            )
            .order_by(Participant.id)
            .all()
        )

    @staticmethod
    def display_names():
        return {p.id: p.display_name for p in Participant.query.all()}

    def to_dict(self):
        return {
            "id": self.id,
            "displayName": self.display_name,
            "isActive": self.is_active,
            "isSynthetic": self.is_synthetic,
        }
