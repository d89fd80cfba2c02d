"""
Week key normalization.

A week key identifies a scheduling period inside a season:

    regular      week-1 .. week-18
    preseason    preseason-N
    exhibition   pro-bowl-N
    postseason   wild-card, divisional, conference, super-bowl

Week ids combine the season and the key: ``2024_week-3``.
"""

import re

from pickpool.records import POSTSEASON, PRESEASON, PRO_BOWL, REGULAR

REGULAR_SEASON_WEEKS = 18

# Canonical round names in playoff order; the index + 1 is the round ordinal
POSTSEASON_ROUNDS = ("wild card", "divisional", "conference", "super bowl")

_ROUND_PATTERNS = (
    ("wild card", re.compile(r"\bwild\s*card\b")),
    ("divisional", re.compile(r"\bdivisional\b")),
    ("conference", re.compile(r"\bconf(erence)?\b")),
    ("super bowl", re.compile(r"\bsuper\s*bowl\b")),
)

_NUMBERED_KEY = re.compile(r"^(week|preseason|pro-bowl)-(\d+)$")
_WEEK_ID = re.compile(r"^(\d{4})_(.+)$")


def normalize_round_label(label):
    """
    Map a provider round label to its canonical name.

    "Wild-Card Round", "WILD CARD" -> "wild card"
    "Conf Championship"            -> "conference"
    "Super Bowl LIX"               -> "super bowl"
    """
    if not label or not isinstance(label, str):
        raise ValueError(f"Postseason round label is required, got {label!r}")

    cleaned = re.sub(r"[^a-z0-9]+", " ", label.lower()).strip()
    for canonical, pattern in _ROUND_PATTERNS:
        if pattern.search(cleaned):
            return canonical
    raise ValueError(f"Unrecognized postseason round label: {label!r}")


def round_ordinal(round_name):
    return POSTSEASON_ROUNDS.index(round_name) + 1


def to_week_key(phase, ordinal, round_label=None):
    """Build the canonical week key for a phase/ordinal/label triple"""
    if phase == POSTSEASON:
        return normalize_round_label(round_label).replace(" ", "-")

    if isinstance(ordinal, bool) or not isinstance(ordinal, int):
        raise ValueError(f"Week ordinal must be an integer, got {ordinal!r}")
    number = abs(ordinal)

    if phase == REGULAR:
        if not 1 <= number <= REGULAR_SEASON_WEEKS:
            raise ValueError(
                f"Regular season week must be 1-{REGULAR_SEASON_WEEKS}, got {ordinal}"
            )
        return f"week-{number}"
    if phase == PRESEASON:
        return f"preseason-{number}"
    if phase == PRO_BOWL:
        return f"pro-bowl-{number}"

    raise ValueError(f"Unknown season phase: {phase!r}")


def parse_week_key(key):
    """
    Inverse of to_week_key: returns (phase, ordinal, round_label).

    Postseason keys yield the fixed round ordinal (1-4) and the canonical
    round name; other phases yield round_label None.
    """
    if not isinstance(key, str):
        raise ValueError(f"Week key must be a string, got {key!r}")

    match = _NUMBERED_KEY.match(key)
    if match:
        prefix, number = match.group(1), int(match.group(2))
        if prefix == "week":
            if not 1 <= number <= REGULAR_SEASON_WEEKS:
                raise ValueError(f"Regular season week out of range in {key!r}")
            return REGULAR, number, None
        if prefix == "preseason":
            return PRESEASON, number, None
        return PRO_BOWL, number, None

    round_name = key.replace("-", " ")
    if round_name in POSTSEASON_ROUNDS:
        return POSTSEASON, round_ordinal(round_name), round_name

    raise ValueError(f"Unrecognized week key: {key!r}")


def make_week_id(season, week_key):
    return f"{int(season)}_{week_key}"


def split_week_id(week_id):
    """'2024_week-3' -> (2024, 'week-3'); the key part is validated"""
    match = _WEEK_ID.match(week_id) if isinstance(week_id, str) else None
    if not match:
        raise ValueError(f"Malformed week id: {week_id!r}")
    season, key = int(match.group(1)), match.group(2)
    parse_week_key(key)
    return season, key


def is_scored_week_key(key):
    """Preseason and exhibition weeks never count toward scoring or standings"""
    phase, _, _ = parse_week_key(key)
    return phase not in (PRESEASON, PRO_BOWL)


def is_postseason_week_key(key):
    phase, _, _ = parse_week_key(key)
    return phase == POSTSEASON
