import heapq, itertools
import pytest

from uttt.config import MatchConfig
from uttt.logic import DRAW, O, X


class ManualHandle:
    def __init__(self):
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    @property
    def pending(self):
        return not (self.cancelled or self.fired)


class ManualScheduler:
    """Drop-in for GeventScheduler where time only moves when a test says so."""

    def __init__(self):
        self.now = 0.0
        self._queue = []
        self._seq = itertools.count()

    def call_later(self, delay, fn, *args):
        handle = ManualHandle()
        heapq.heappush(self._queue, (self.now + max(0.0, delay), next(self._seq), handle, fn, args))
        return handle

    def advance(self, seconds):
        end = self.now + seconds
        while self._queue and self._queue[0][0] <= end:
            due, _, handle, fn, args = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.now = due
            handle.fired = True
            fn(*args)
        self.now = end

    def pending(self):
        return [entry for entry in self._queue if not entry[2].cancelled]


class ScriptedRandom:
    """random()/choice()/uniform() with fixed answers: rolls cycle, choice takes the first."""

    def __init__(self, *rolls):
        self.rolls = itertools.cycle(rolls or (0.0,))

    def random(self):
        return next(self.rolls)

    def choice(self, seq):
        return seq[0]

    def uniform(self, a, b):
        return a


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, event, payload):
        self.events.append((event, payload))

    def of(self, name):
        return [payload for event, payload in self.events if event == name]

    def sounds(self):
        return [payload["tag"] for payload in self.of('sound')]

    def clear(self):
        self.events = []


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def config():
    return MatchConfig()


DRAWN_CELLS = [X, O, X,
               X, O, O,
               O, X, X]


def finish_board(game, index, winner):
    """Mark a board finished without playing it out."""
    board = game.boards[index]
    if winner == DRAW:
        board.cells = list(DRAWN_CELLS)
    else:
        loser = O if winner == X else X
        board.cells = [winner, winner, winner, loser, loser, None, None, None, None]
    board.finished = True
    board.winner = winner


@pytest.fixture
def finish():
    return finish_board


@pytest.fixture
def scripted():
    return ScriptedRandom
