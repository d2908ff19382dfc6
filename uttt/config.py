"""Tunable match policy: clocks, bonuses and the pacing of scheduled callbacks."""
import os
from dataclasses import dataclass, fields


@dataclass
class MatchConfig:
    start_clock:     int   = 60     # seconds per player
    win_bonus:       int   = 15
    loss_penalty:    int   = 10
    draw_bonus:      int   = 5
    tick_interval:   float = 1.0
    ai_delay_min:    float = 0.5
    ai_delay_max:    float = 1.0
    reset_delay:     float = 0.2    # pause after a board resolves before play resumes
    replay_interval: float = 1.0
    next_game_delay: float = 3.0
    best_of:         int   = 5
    bonus_display:   float = 2.0    # how long the clock UI should show a bonus message

    @property
    def total_clock(self):
        return 2 * self.start_clock

    @classmethod
    def from_env(cls, environ=None):
        """Build a config from ``UTTT_<FIELD>`` environment variables."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(f'UTTT_{f.name.upper()}')
            if raw is None or raw == '':
                continue
            cast = int if f.type in (int, 'int') else float
            try:
                values[f.name] = cast(raw)
            except ValueError:
                raise ValueError(f'UTTT_{f.name.upper()} must be a number, got {raw!r}')
        return cls(**values)
