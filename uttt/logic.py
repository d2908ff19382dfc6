import logging, time
from dataclasses import dataclass
from typing import Optional

from .config import MatchConfig

log = logging.getLogger(__name__)

X, O, DRAW = 'X', 'O', 'D'

WIN_LINES = [
    (0,1,2),(3,4,5),(6,7,8),
    (0,3,6),(1,4,7),(2,5,8),
    (0,4,8),(2,4,6)
]

# Centre, corners, edges
STRATEGIC_ORDER = (4, 0, 2, 6, 8, 1, 3, 5, 7)

# Match lifecycle
WAITING, IN_PROGRESS, COMPLETE = 'waiting', 'in_progress', 'complete'

# Why a move was refused
NOT_ACCEPTING  = 'not_accepting'
OUT_OF_RANGE   = 'out_of_range'
BOARD_FINISHED = 'board_finished'
WRONG_BOARD    = 'wrong_board'
CELL_TAKEN     = 'cell_taken'


# ── Single-board evaluation ───────────────────────────────────────────────────
def opponent(player):
    return O if player == X else X

def check_winner(board):
    for a, b, c in WIN_LINES:
        if board[a] and board[a] == board[b] == board[c]:
            return board[a]
    return None

def winning_line(board):
    for a, b, c in WIN_LINES:
        if board[a] and board[a] == board[b] == board[c]:
            return (a, b, c)
    return None

def is_full(board):
    return all(board)

def classify(board):
    """X / O for a won board, D for a full board with no line, None while open."""
    winner = check_winner(board)
    if winner: return winner
    return DRAW if is_full(board) else None

def available_moves(board):
    return [i for i, cell in enumerate(board) if cell is None]

def find_immediate_win(board, player):
    for line in WIN_LINES:
        cells = [board[i] for i in line]
        if cells.count(player) == 2 and cells.count(None) == 1:
            return line[cells.index(None)]
    return None

def find_immediate_block(board, player):
    return find_immediate_win(board, opponent(player))

def count_threats(board, player):
    """Lines where ``player`` holds two cells and the third is empty."""
    n = 0
    for line in WIN_LINES:
        cells = [board[i] for i in line]
        if cells.count(player) == 2 and cells.count(None) == 1:
            n += 1
    return n

def find_fork(board, player):
    for i in available_moves(board):
        trial = list(board); trial[i] = player
        if count_threats(trial, player) >= 2:
            return i
    return None


class SubBoard:
    __slots__ = ('cells', 'finished', 'winner')

    def __init__(self):
        self.cells    = [None]*9
        self.finished = False
        self.winner   = None

    def resolve(self):
        outcome = classify(self.cells)
        if outcome:
            self.finished = True
            self.winner   = outcome
        return outcome

    def reset(self):
        self.cells    = [None]*9
        self.finished = False
        self.winner   = None


@dataclass
class MoveResult:
    ok:         bool
    reason:     Optional[str] = None
    board:      Optional[int] = None
    cell:       Optional[int] = None
    player:     Optional[str] = None
    resolution: Optional[str] = None    # X / O / D when the move finished its board
    line:       Optional[tuple] = None
    bonus:      Optional[str] = None
    complete:   bool = False


# ── Match state ───────────────────────────────────────────────────────────────
class UltimateTicTacToe:
    """Nine boards played one at a time against a pair of chess clocks.

    Only ``active_board`` may be played. X and O alternate on it; after O moves
    the active board moves on to the next open board. A resolved board is
    cleared and replayed at once, the loser (or X after a draw) moving first.
    """

    def __init__(self, config=None):
        self.config = config or MatchConfig()
        self.boards = [SubBoard() for _ in range(9)]
        self.board_results   = [None]*9    # last result on each board, kept after the reset
        self.board_win_lines = [None]*9
        self.resolutions     = []          # [(board, X|O|D), ...] in play order
        self.active_board   = 0
        self.current_player = X
        self.scores = {X: 0, O: 0}
        self.clocks = {X: self.config.start_clock, O: self.config.start_clock}
        self.status  = WAITING
        self.outcome = None                # {"winner": X|O|D, "reason": complete|draw|timeout}
        self.last_move  = None             # [board, cell]
        self.last_bonus = None
        self.move_history = []             # [{board, cell, player, timestamp}, ...]

    @property
    def accepting(self): return self.status in (WAITING, IN_PROGRESS)

    def validate(self, b, c):
        if not self.accepting: return NOT_ACCEPTING
        if not (0 <= b < 9 and 0 <= c < 9): return OUT_OF_RANGE
        if self.boards[b].finished: return BOARD_FINISHED
        if self.active_board is not None and b != self.active_board: return WRONG_BOARD
        if self.boards[b].cells[c] is not None: return CELL_TAKEN
        return None

    def make_move(self, b, c, timestamp=None):
        player = self.current_player
        reason = self.validate(b, c)
        if reason:
            log.debug("rejected %s at %s/%s: %s", player, b, c, reason)
            return MoveResult(False, reason, b, c, player)
        if self.status == WAITING:
            self.status = IN_PROGRESS
        board = self.boards[b]
        board.cells[c] = player
        self.last_move = [b, c]
        self.move_history.append({"board": b, "cell": c, "player": player,
                                  "timestamp": time.time() if timestamp is None else timestamp})
        result = MoveResult(True, None, b, c, player)
        outcome = board.resolve()
        if outcome == DRAW:
            self._board_drawn(b, result)
        elif outcome:
            self._board_won(b, outcome, result)
        else:
            self.current_player = opponent(player)
            # X then O on the same board; only O's move moves play along
            if self.current_player == X:
                self._advance_board()
        return result

    def _board_won(self, b, winner, result):
        cfg, loser = self.config, opponent(winner)
        before = dict(self.clocks)
        self.scores[winner] += 1
        self.clocks[winner] += cfg.win_bonus
        self.clocks[loser] = max(0, self.clocks[loser] - cfg.loss_penalty)
        log.debug("board %s won by %s, clocks %s -> %s", b, winner, before, self.clocks)
        line = winning_line(self.boards[b].cells)
        self.board_results[b]   = winner
        self.board_win_lines[b] = line
        self.resolutions.append((b, winner))
        self.last_bonus = f"{winner} +{cfg.win_bonus}s, {loser} -{cfg.loss_penalty}s"
        result.resolution, result.line, result.bonus = winner, line, self.last_bonus
        self._settle(b, loser, result)

    def _board_drawn(self, b, result):
        bonus = self.config.draw_bonus
        self.clocks[X] += bonus
        self.clocks[O] += bonus
        log.debug("board %s drawn, clocks now %s", b, self.clocks)
        self.board_results[b]   = DRAW
        self.board_win_lines[b] = None
        self.resolutions.append((b, DRAW))
        self.last_bonus = f"Draw: X +{bonus}s, O +{bonus}s"
        result.resolution, result.bonus = DRAW, self.last_bonus
        self._settle(b, X, result)

    def _settle(self, b, next_player, result):
        if all(board.finished for board in self.boards):
            x, o = self.scores[X], self.scores[O]
            winner = X if x > o else (O if o > x else DRAW)
            self.active_board = None
            self._finish(winner, 'draw' if winner == DRAW else 'complete')
            result.complete = True
            return
        self.boards[b].reset()
        self.current_player = next_player
        self.active_board = b

    def _advance_board(self):
        if all(board.finished for board in self.boards):
            self.active_board = None
            return
        start = self.active_board if self.active_board is not None else -1
        for step in range(1, 10):
            idx = (start + step) % 9
            if not self.boards[idx].finished:
                self.active_board = idx
                return

    def _finish(self, winner, reason):
        self.status  = COMPLETE
        self.outcome = {"winner": winner, "reason": reason}
        log.info("match complete: %s (%s), score %s", winner, reason, self.scores)

    # ── Clock ─────────────────────────────────────────────────────────────────
    def tick(self):
        """One second off the mover's clock. Returns True if it ran out."""
        if self.status != IN_PROGRESS: return False
        p = self.current_player
        if self.clocks[p] > 0:
            self.clocks[p] -= 1
        if self.clocks[p] <= 0:
            self.expire(p)
            return True
        return False

    def expire(self, player):
        if self.status != IN_PROGRESS: return False
        self.clocks[player] = 0
        self._finish(opponent(player), 'timeout')
        return True

    # ── Queries ───────────────────────────────────────────────────────────────
    def get_valid_moves(self):
        if not self.accepting: return []
        boards_to_check = range(9) if self.active_board is None else [self.active_board]
        return [(b, c) for b in boards_to_check if not self.boards[b].finished
                for c in range(9) if self.boards[b].cells[c] is None]

    def elapsed(self):
        return self.config.total_clock - (self.clocks[X] + self.clocks[O])

    def stats(self):
        moves = len(self.move_history)
        elapsed = self.elapsed()
        return {"totalMoves": moves, "elapsed": elapsed,
                "averageTimePerMove": elapsed / moves if moves else 0}

    def state(self):
        return {
            "boards":        [list(board.cells) for board in self.boards],
            "finished":      [board.finished for board in self.boards],
            "winners":       [board.winner for board in self.boards],
            "boardResults":  list(self.board_results),
            "boardWinLines": list(self.board_win_lines),
            "activeBoard":   self.active_board,
            "player":        self.current_player,
            "scores":        dict(self.scores),
            "clocks":        dict(self.clocks),
            "status":        self.status,
            "outcome":       dict(self.outcome) if self.outcome else None,
            "lastMove":      self.last_move,
            "lastBonus":     self.last_bonus,
            "moveHistory":   [dict(m) for m in self.move_history],
            "stats":         self.stats(),
        }
