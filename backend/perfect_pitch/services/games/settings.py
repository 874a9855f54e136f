from dataclasses import dataclass


@dataclass(frozen=True)
class GameSettings:
    total_rounds: int = 9
    game_start_delay: float = 3.0
    round_timeout: float = 10.0
    next_round_delay: float = 2.0
    cleanup_delay: float = 10.0
    matchmaking_interval: float = 3.0
    wait_decay: float = 30.0
    wait_factor_floor: float = 0.2
    persist_retries: int = 2

    @classmethod
    def from_config(cls, config) -> 'GameSettings':
        """Build settings from a Flask config mapping, falling back to defaults."""
        defaults = cls()
        return cls(
            total_rounds=int(config.get('TOTAL_ROUNDS', defaults.total_rounds)),
            game_start_delay=float(config.get('GAME_START_DELAY_SEC', defaults.game_start_delay)),
            round_timeout=float(config.get('ROUND_TIMEOUT_SEC', defaults.round_timeout)),
            next_round_delay=float(config.get('NEXT_ROUND_DELAY_SEC', defaults.next_round_delay)),
            cleanup_delay=float(config.get('CLEANUP_DELAY_SEC', defaults.cleanup_delay)),
            matchmaking_interval=float(config.get('MATCHMAKING_INTERVAL_SEC', defaults.matchmaking_interval)),
            wait_decay=float(config.get('WAIT_DECAY_SEC', defaults.wait_decay)),
            wait_factor_floor=float(config.get('WAIT_FACTOR_FLOOR', defaults.wait_factor_floor)),
            persist_retries=int(config.get('PERSIST_RETRIES', defaults.persist_retries)),
        )
