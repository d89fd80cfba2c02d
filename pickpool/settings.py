from dataclasses import dataclass

DRAW_NO_WINNER = "no_winner"
DRAW_AWAY_WINS = "away_wins"
DRAW_POLICIES = (DRAW_NO_WINNER, DRAW_AWAY_WINS)


@dataclass(frozen=True)
class EngineSettings:
    """Immutable view of the engine-related config, built per request or batch"""

    draw_policy: str = DRAW_NO_WINNER
    inter_week_delay: float = 2.0
    favorite_participant_id: str = "favorite-bot"
    favorite_participant_name: str = "Phil"
    slow_operation_threshold: float = 30.0

    def __post_init__(self):
        if self.draw_policy not in DRAW_POLICIES:
            raise ValueError(
                f"DRAW_POLICY must be one of {', '.join(DRAW_POLICIES)}, "
                f"got {self.draw_policy!r}"
            )
        if self.inter_week_delay < 0:
            raise ValueError("RECAP_INTER_WEEK_DELAY cannot be negative")

    @classmethod
    def from_config(cls, config):
        return cls(
            draw_policy=config.get("DRAW_POLICY", DRAW_NO_WINNER),
            inter_week_delay=float(config.get("RECAP_INTER_WEEK_DELAY", 2.0)),
            favorite_participant_id=config.get("FAVORITE_PARTICIPANT_ID", "favorite-bot"),
            favorite_participant_name=config.get("FAVORITE_PARTICIPANT_NAME", "Phil"),
            slow_operation_threshold=float(config.get("SLOW_OPERATION_THRESHOLD", 30.0)),
        )
