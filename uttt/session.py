"""Best-of-N sessions and move-log replay.

A session chains matches on one ``TurnController``: each ``complete`` event is
summarised into the history, the next match starts after a short gap, and
after N games the side with more wins takes the session.

Replay rebuilds the last match by feeding its move log back through
``TurnController.apply_move`` one move per ``replay_interval``.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from .controller import SOURCE_REPLAY
from .logic import DRAW, IN_PROGRESS, O, X, opponent

log = logging.getLogger(__name__)

SINGLE, BEST_OF = 'single', 'best_of'
TIE = 'Tie'


@dataclass
class GameSummary:
    game_number: int
    winner:      str
    duration:    int      # starting clock total minus what is left on both clocks
    move_count:  int
    mode:        str = 'PvP'
    reason:      str = 'complete'

    def as_dict(self):
        return {"gameNumber": self.game_number, "winner": self.winner,
                "durationSeconds": self.duration, "moveCount": self.move_count,
                "mode": self.mode, "reason": self.reason}


@dataclass
class SessionState:
    max_games:        int
    games_played:     int = 0
    aggregate_score:  dict = field(default_factory=lambda: {X: 0, O: 0, DRAW: 0})
    history:          list = field(default_factory=list)
    total_moves:      int = 0
    fastest_win:      Optional[GameSummary] = None
    longest_game:     Optional[GameSummary] = None
    average_duration: float = 0.0
    finished:         bool = False

    def record(self, summary):
        self.history.append(summary)
        self.aggregate_score[summary.winner] += 1
        self.total_moves += summary.move_count
        if summary.winner != DRAW and (self.fastest_win is None
                                       or summary.duration < self.fastest_win.duration):
            self.fastest_win = summary
        if self.longest_game is None or summary.duration > self.longest_game.duration:
            self.longest_game = summary
        self.average_duration = sum(g.duration for g in self.history) / len(self.history)

    @property
    def overall_winner(self):
        x, o = self.aggregate_score[X], self.aggregate_score[O]
        return X if x > o else (O if o > x else TIE)

    def as_dict(self):
        return {
            "gamesPlayed":     self.games_played,
            "maxGames":        self.max_games,
            "aggregateScore":  dict(self.aggregate_score),
            "history":         [g.as_dict() for g in self.history],
            "totalMoves":      self.total_moves,
            "fastestWin":      self.fastest_win.as_dict() if self.fastest_win else None,
            "longestGame":     self.longest_game.as_dict() if self.longest_game else None,
            "averageDuration": self.average_duration,
            "finished":        self.finished,
            "overallWinner":   self.overall_winner if self.finished else None,
        }


class SessionManager:
    def __init__(self, controller):
        self.controller = controller
        self.config     = controller.config
        self.mode         = SINGLE
        self.session      = None
        self.last_session = None        # kept for display after the session ends or stops
        self._next_handle   = None
        self._replay_handle = None
        self._replay_log     = None
        self._replay_index   = 0
        self._replay_outcome = None
        controller.subscribe(self._on_event)

    @property
    def active(self):
        return self.session is not None

    @property
    def replaying(self):
        return self._replay_log is not None

    def _publish(self, status):
        payload = {"status": status, "mode": self.mode}
        current = self.session or self.last_session
        payload["session"] = current.as_dict() if current else None
        self.controller.emit('session', payload)

    # ── Best of N ─────────────────────────────────────────────────────────────
    def start(self, games=None):
        games = self.config.best_of if games is None else int(games)
        if games < 1:
            raise ValueError(f"a session needs at least one game, got {games}")
        self.stop_replay()
        self._cancel_next()
        self.session = SessionState(max_games=games)
        self.mode = BEST_OF
        log.info("session started: best of %s", games)
        self._start_next_game()

    def _count_next_game(self):
        """Book the next game; False once all of them have been played."""
        s = self.session
        if s is None: return False
        if s.games_played >= s.max_games:
            self._finish()
            return False
        s.games_played += 1
        log.debug("session game %s/%s", s.games_played, s.max_games)
        return True

    def _start_next_game(self):
        self._next_handle = None
        if self._count_next_game():
            self.controller.reset()
            self._publish('game_started')

    def _record(self, outcome):
        s, game = self.session, self.controller.game
        summary = GameSummary(s.games_played, outcome["winner"], game.elapsed(),
                              len(game.move_history), self.controller.mode, outcome["reason"])
        s.record(summary)
        log.info("session game %s won by %s; score %s", summary.game_number,
                 summary.winner, s.aggregate_score)
        self._publish('game_complete')
        self._next_handle = self.controller.scheduler.call_later(
            self.config.next_game_delay, self._start_next_game)

    def _finish(self):
        s = self.session
        s.finished = True
        self.last_session, self.session = s, None
        self.mode = SINGLE
        log.info("session complete: %s (%s)", s.overall_winner, s.aggregate_score)
        self._publish('complete')

    def stop(self):
        """Abandon the session; the match in progress is discarded."""
        if self.session is None: return False
        self._cancel_next()
        self.last_session, self.session = self.session, None
        self.mode = SINGLE
        self.controller.reset()
        self._publish('stopped')
        return True

    def shutdown(self):
        """Drop every pending timer; the table is going away."""
        self._cancel_next()
        self._clear_replay()
        self.session = None
        self.controller.unsubscribe(self._on_event)

    def _cancel_next(self):
        if self._next_handle is not None:
            self._next_handle.cancel()
            self._next_handle = None

    def _on_event(self, event, payload):
        if event == 'complete':
            if self.session is not None and not self.controller.replaying:
                self._record(payload)
        elif event == 'reset':
            if self.replaying:
                self._clear_replay()
            if self._next_handle is not None:
                # a reset during the gap starts the next game early
                self._cancel_next()
                if self._count_next_game():
                    self._publish('game_started')
        elif event == 'mode':
            # a new mode means new statistics
            if self.session is not None:
                self.start(self.session.max_games)
            else:
                self.last_session = None

    # ── Replay ────────────────────────────────────────────────────────────────
    def start_replay(self):
        game = self.controller.game
        if self.replaying or self.session is not None or not game.move_history:
            return False
        self._replay_log     = [dict(m) for m in game.move_history]
        self._replay_outcome = dict(game.outcome) if game.outcome else None
        self._replay_index   = 0
        log.info("replaying %s moves", len(self._replay_log))
        self.controller.begin_replay()
        self.controller.emit('replay', {"status": "started", "moves": len(self._replay_log)})
        self._replay_step()
        return True

    def _replay_step(self):
        self._replay_handle = None
        if not self.replaying: return
        if self._replay_index >= len(self._replay_log):
            self._finish_replay()
            return
        move = self._replay_log[self._replay_index]
        self._replay_index += 1
        if self.controller.game.current_player != move["player"]:
            log.warning("replay move %s was played by %s but %s is to move",
                        self._replay_index, move["player"], self.controller.game.current_player)
        result = self.controller.apply_move(move["board"], move["cell"], source=SOURCE_REPLAY)
        if not result.ok:
            log.warning("replay move %s refused: %s", self._replay_index, result.reason)
        self._replay_handle = self.controller.scheduler.call_later(
            self.config.replay_interval, self._replay_step)

    def _finish_replay(self):
        outcome = self._replay_outcome
        if (outcome and outcome["reason"] == 'timeout'
                and self.controller.game.status == IN_PROGRESS):
            self.controller.force_timeout(opponent(outcome["winner"]))
        self._clear_replay()
        self.controller.end_replay()
        self.controller.emit('replay', {"status": "finished"})

    def stop_replay(self):
        if not self.replaying: return False
        self._clear_replay()
        self.controller.end_replay()
        self.controller.emit('replay', {"status": "stopped"})
        return True

    def _clear_replay(self):
        if self._replay_handle is not None:
            self._replay_handle.cancel()
            self._replay_handle = None
        self._replay_log = None
        self._replay_index = 0
        self._replay_outcome = None
