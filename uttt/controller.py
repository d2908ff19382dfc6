"""Turn orchestration for one table.

``TurnController`` owns the match state. Every change goes through
``apply_move`` or ``tick``; listeners registered with ``subscribe`` receive
``(event, payload)`` pairs afterwards:

    state       full snapshot (after every accepted move, tick or command)
    sound       {"tag": move | win | draw | error | timeout}
    bonus       {"message": ..., "duration": ...} once per resolved board
    invalid     {"reason": ..., "board": ..., "cell": ...}
    complete    {"winner": X | O | D, "reason": complete | draw | timeout}
    aiThinking  bool
    mode        {"mode": ..., "difficulty": ...}
    difficulty  {"difficulty": ...}
    reset       None

``SessionManager`` publishes ``session`` and ``replay`` through the same
listeners.
"""
import logging, random

from .ai import get_settings, select_move, thinking_delay
from .config import MatchConfig
from .logic import DRAW, IN_PROGRESS, MoveResult, O, UltimateTicTacToe, X
from .scheduler import GeventScheduler

log = logging.getLogger(__name__)

MODES = ('PvP', 'PvAI', 'AIvP')
_AI_SIDE = {'PvP': None, 'PvAI': O, 'AIvP': X}

SOURCE_INPUT, SOURCE_AI, SOURCE_REPLAY = 'input', 'ai', 'replay'

# Refusals added on top of the board rules
PAUSED     = 'paused'
AI_TURN    = 'ai_turn'
REPLAYING  = 'replaying'
TRANSITION = 'transition'


class IllegalAIState(AssertionError):
    """The AI was asked to move where no legal move exists."""


def check_mode(mode):
    if mode not in MODES:
        raise ValueError(f"unknown mode {mode!r} (expected one of {', '.join(MODES)})")
    return mode


class TurnController:
    def __init__(self, config=None, mode='PvP', difficulty='medium',
                 scheduler=None, rng=None, settings=None):
        self.config    = config or MatchConfig()
        self.scheduler = scheduler or GeventScheduler()
        self.rng       = rng or random.Random()
        self.settings  = settings
        get_settings(difficulty, settings)
        self.mode       = check_mode(mode)
        self.difficulty = difficulty
        self.listeners  = []
        self.game = UltimateTicTacToe(self.config)
        self.paused        = False
        self.replaying     = False
        self.ai_thinking   = False
        self.transitioning = False
        self._tick_handle = self._ai_handle = self._transition_handle = None

    # ── Listeners ─────────────────────────────────────────────────────────────
    def subscribe(self, listener):
        self.listeners.append(listener)
        return listener

    def unsubscribe(self, listener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    def emit(self, event, payload=None):
        for listener in list(self.listeners):
            listener(event, payload)

    # ── Queries ───────────────────────────────────────────────────────────────
    @property
    def ai_player(self):
        return _AI_SIDE[self.mode]

    def is_ai_turn(self):
        return self.ai_player is not None and self.game.current_player == self.ai_player

    def snapshot(self):
        s = self.game.state()
        s["mode"]        = self.mode
        s["difficulty"]  = self.difficulty
        s["aiPlayer"]    = self.ai_player
        s["paused"]      = self.paused
        s["replaying"]   = self.replaying
        s["aiThinking"]  = self.ai_thinking
        return s

    # ── Moves ─────────────────────────────────────────────────────────────────
    def _refusal(self, source):
        if source != SOURCE_REPLAY and self.replaying: return REPLAYING
        if source != SOURCE_INPUT: return None
        if self.paused: return PAUSED
        if self.transitioning: return TRANSITION
        if self.game.accepting and self.is_ai_turn(): return AI_TURN
        return None

    def apply_move(self, b, c, source=SOURCE_INPUT):
        reason = self._refusal(source)
        if reason:
            result = MoveResult(False, reason, b, c, self.game.current_player)
        else:
            result = self.game.make_move(b, c)
        if not result.ok:
            self.emit('sound', {"tag": "error"})
            self.emit('invalid', {"reason": result.reason, "board": b, "cell": c})
            return result

        self._ensure_clock()
        self.emit('sound', {"tag": "move"})
        if result.resolution:
            self.emit('sound', {"tag": "draw" if result.resolution == DRAW else "win"})
            self.emit('bonus', {"message": result.bonus, "duration": self.config.bonus_display})
            if not result.complete and source != SOURCE_REPLAY and self.config.reset_delay > 0:
                self._begin_transition()
        self.emit('state', self.snapshot())
        if result.complete:
            self._on_complete()
        else:
            self.maybe_trigger_ai()
        return result

    def _on_complete(self):
        self._cancel(('_tick_handle', '_ai_handle', '_transition_handle'))
        self.ai_thinking = self.transitioning = False
        outcome = self.game.outcome
        if outcome["reason"] == 'timeout':
            self.emit('sound', {"tag": "timeout"})
        elif outcome["reason"] == 'complete':
            self.emit('sound', {"tag": "win"})
        else:
            self.emit('sound', {"tag": "draw"})
        self.emit('complete', dict(outcome))

    def _begin_transition(self):
        self.transitioning = True
        self._transition_handle = self.scheduler.call_later(self.config.reset_delay, self._end_transition)

    def _end_transition(self):
        self._transition_handle = None
        self.transitioning = False
        self.emit('state', self.snapshot())
        self.maybe_trigger_ai()

    # ── Clock ─────────────────────────────────────────────────────────────────
    def _ensure_clock(self):
        if (self._tick_handle is None and self.game.status == IN_PROGRESS
                and not self.paused and not self.replaying):
            self._tick_handle = self.scheduler.call_later(self.config.tick_interval, self._on_tick)

    def _on_tick(self):
        self._tick_handle = None
        self.tick()
        self._ensure_clock()

    def tick(self):
        """Take one second off the mover's clock; True if that ended the match."""
        if self.paused or self.replaying: return False
        expired = self.game.tick()
        if expired:
            log.info("%s ran out of time", self.game.current_player)
        self.emit('state', self.snapshot())
        if expired:
            self._on_complete()
        return expired

    def force_timeout(self, player):
        """End the match as if ``player``'s clock had run out."""
        if not self.game.expire(player): return False
        self.emit('state', self.snapshot())
        self._on_complete()
        return True

    # ── AI ────────────────────────────────────────────────────────────────────
    def maybe_trigger_ai(self):
        if self.paused or self.replaying or self.transitioning or not self.game.accepting:
            return False
        if not self.is_ai_turn():
            return False
        if self.ai_thinking:
            log.debug("AI already thinking, skipping")
            return False
        self.ai_thinking = True
        delay = thinking_delay(self.config, self.rng)
        log.debug("AI (%s) thinking for %.0fms", self.ai_player, delay * 1000)
        self._ai_handle = self.scheduler.call_later(delay, self._ai_move)
        self.emit('aiThinking', True)
        return True

    def _ai_move(self):
        self._ai_handle = None
        self.ai_thinking = False
        self.emit('aiThinking', False)
        # resume / the end of a transition triggers the AI again
        if self.paused or self.replaying or self.transitioning or not self.game.accepting:
            return
        if not self.is_ai_turn():
            return
        b = self.game.active_board
        if b is None or self.game.boards[b].finished:
            raise IllegalAIState(f"no open active board for {self.ai_player}")
        cell = select_move(self.game.boards[b].cells, self.game.current_player,
                           self.difficulty, self.rng, self.settings)
        if cell is None:
            raise IllegalAIState(f"board {b} has no empty cell")
        log.debug("AI plays %s at %s/%s", self.game.current_player, b, cell)
        self.apply_move(b, cell, source=SOURCE_AI)

    # ── Commands ──────────────────────────────────────────────────────────────
    def pause(self):
        if self.paused: return
        self.paused = True
        self._cancel(('_tick_handle',))
        self.emit('state', self.snapshot())

    def resume(self):
        if not self.paused: return
        self.paused = False
        self._ensure_clock()
        self.emit('state', self.snapshot())
        self.maybe_trigger_ai()

    def toggle_pause(self):
        if self.paused: self.resume()
        else: self.pause()

    def set_mode(self, mode):
        self.mode = check_mode(mode)
        self.emit('mode', {"mode": self.mode, "difficulty": self.difficulty})
        self.emit('state', self.snapshot())
        self.maybe_trigger_ai()

    def set_difficulty(self, difficulty):
        get_settings(difficulty, self.settings)
        self.difficulty = difficulty
        self.emit('difficulty', {"difficulty": difficulty})

    def _fresh_game(self):
        self._cancel(('_tick_handle', '_ai_handle', '_transition_handle'))
        self.ai_thinking = self.transitioning = False
        self.game = UltimateTicTacToe(self.config)

    def reset(self):
        self._fresh_game()
        self.paused = self.replaying = False
        self.emit('reset')
        self.emit('state', self.snapshot())
        self.maybe_trigger_ai()

    def begin_replay(self):
        self._fresh_game()
        self.paused = False
        self.replaying = True
        self.emit('state', self.snapshot())

    def end_replay(self):
        if not self.replaying: return
        self.replaying = False
        self._ensure_clock()
        self.emit('state', self.snapshot())
        self.maybe_trigger_ai()

    def shutdown(self):
        self._cancel(('_tick_handle', '_ai_handle', '_transition_handle'))
        self.listeners = []

    def _cancel(self, names):
        for name in names:
            handle = getattr(self, name)
            if handle is not None:
                handle.cancel()
                setattr(self, name, None)
