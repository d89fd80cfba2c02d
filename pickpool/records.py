"""
Plain records passed between the gateway, the stores and the scoring services.

Store documents and provider payloads are loosely typed; everything is validated
into these records at the boundary so scoring code only sees clean values.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

HOME = "home"
AWAY = "away"
SIDES = (HOME, AWAY)

SCHEDULED = "scheduled"
LIVE = "live"
FINAL = "final"

PRESEASON = "preseason"
REGULAR = "regular"
POSTSEASON = "postseason"
PRO_BOWL = "pro-bowl"
PHASES = (PRESEASON, REGULAR, POSTSEASON, PRO_BOWL)


class InvalidRecordError(ValueError):
    """A stored document or provider payload could not be validated"""


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class Contest:
    id: object
    home: str
    away: str
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status: str = SCHEDULED
    favorite_side: Optional[str] = None
    date: Optional[datetime] = None

    @property
    def key(self):
        """Identifier as used in pick documents"""
        return str(self.id)

    @property
    def has_scores(self):
        return _is_number(self.home_score) and _is_number(self.away_score)

    def to_dict(self):
        return {
            "id": self.key,
            "date": self.date.isoformat() if self.date else None,
            "home": self.home,
            "away": self.away,
            "homeScore": self.home_score,
            "awayScore": self.away_score,
            "status": self.status,
            "favoriteSide": self.favorite_side,
        }


@dataclass(frozen=True)
class WeekInfo:
    season: int
    phase: str
    ordinal: int
    start_date: datetime
    end_date: datetime
    round_label: Optional[str] = None
    label: Optional[str] = None

    @property
    def week_key(self):
        from pickpool.utils.week_keys import to_week_key

        return to_week_key(self.phase, self.ordinal, self.round_label)

    @property
    def week_id(self):
        from pickpool.utils.week_keys import make_week_id

        return make_week_id(self.season, self.week_key)

    def to_dict(self):
        return {
            "weekId": self.week_id,
            "season": self.season,
            "weekKey": self.week_key,
            "phase": self.phase,
            "label": self.label,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
        }


@dataclass(frozen=True)
class PickEntry:
    contest_id: str
    side: str
    submitted_at: Optional[str] = None

    @classmethod
    def from_raw(cls, contest_id, value):
        """
        Accepts both stored shapes: {"pickedTeam": "home", "pickedAt": ...} and
        the legacy bare "home"/"away" string.
        """
        submitted_at = None
        if isinstance(value, dict):
            side = value.get("pickedTeam")
            submitted_at = value.get("pickedAt")
        else:
            side = value
        if side not in SIDES:
            raise InvalidRecordError(f"Pick for {contest_id!r} has invalid side {side!r}")
        if submitted_at is not None and not isinstance(submitted_at, str):
            submitted_at = str(submitted_at)
        return cls(contest_id=str(contest_id), side=side, submitted_at=submitted_at)

    def to_raw(self):
        return {"pickedTeam": self.side, "pickedAt": self.submitted_at}


@dataclass(frozen=True)
class ScoreTally:
    correct: int
    total: int
    underdog_picks: int
    underdog_correct: int

    @property
    def percentage(self):
        if self.total <= 0:
            return 0
        return round_half_up(100 * self.correct / self.total)


def round_half_up(value):
    # Python's round() is banker's rounding; percentages round .5 up
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


@dataclass(frozen=True)
class ParticipantRecap:
    participant_id: str
    correct: int
    total: int
    percentage: int
    underdog_picks: int
    underdog_correct: int
    is_top_score: bool
    display_name: Optional[str] = None

    FIELDS = {
        "correct": "correct",
        "total": "total",
        "percentage": "percentage",
        "underdogPicks": "underdog_picks",
        "underdogCorrect": "underdog_correct",
    }

    @classmethod
    def from_tally(cls, participant_id, tally, is_top_score, display_name=None):
        return cls(
            participant_id=participant_id,
            correct=tally.correct,
            total=tally.total,
            percentage=tally.percentage,
            underdog_picks=tally.underdog_picks,
            underdog_correct=tally.underdog_correct,
            is_top_score=is_top_score,
            display_name=display_name,
        )

    @classmethod
    def from_raw(cls, raw):
        if not isinstance(raw, dict):
            raise InvalidRecordError(f"Recap row is not an object: {raw!r}")
        participant_id = raw.get("participantId") or raw.get("userId")
        if not participant_id:
            raise InvalidRecordError("Recap row has no participant id")

        values = {}
        for wire_name, attr in cls.FIELDS.items():
            value = raw.get(wire_name, 0)
            if not _is_number(value) or value < 0:
                raise InvalidRecordError(
                    f"Recap row for {participant_id} has invalid {wire_name}: {value!r}"
                )
            values[attr] = int(value)

        if values["correct"] > values["total"]:
            raise InvalidRecordError(
                f"Recap row for {participant_id} has correct > total"
            )

        return cls(
            participant_id=str(participant_id),
            is_top_score=bool(raw.get("isTopScore", False)),
            display_name=raw.get("displayName"),
            **values,
        )

    def to_dict(self):
        return {
            "participantId": self.participant_id,
            "displayName": self.display_name,
            "correct": self.correct,
            "total": self.total,
            "percentage": self.percentage,
            "underdogPicks": self.underdog_picks,
            "underdogCorrect": self.underdog_correct,
            "isTopScore": self.is_top_score,
        }


@dataclass(frozen=True)
class RecapRecord:
    week_id: str
    season: int
    week_key: str
    calculated_at: datetime
    participants: tuple = field(default_factory=tuple)

    @property
    def top_score(self):
        return max((p.correct for p in self.participants), default=0)

    @property
    def winners(self):
        return [p.participant_id for p in self.participants if p.is_top_score]

    def to_dict(self):
        return {
            "weekId": self.week_id,
            "season": self.season,
            "weekKey": self.week_key,
            "calculatedAt": self.calculated_at.isoformat(),
            "topScore": self.top_score,
            "perParticipant": [p.to_dict() for p in self.participants],
        }
