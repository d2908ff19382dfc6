"""AI for the active 3x3 board — easy / medium / hard difficulties.

Every call draws one random number against the difficulty's smart probability.

  hit  → play the difficulty's strategy: alpha-beta minimax when it has a
         search depth, otherwise the rule ladder
         (win → block → [fork → block fork] → centre/corners/edges).
  miss → any legal cell, uniformly.

The opening is booked: X on an empty board takes the centre unless the
difficulty is the easiest one.
"""
import logging, math, random
from collections import namedtuple

from .logic import (X, STRATEGIC_ORDER, opponent, check_winner, is_full,
                    available_moves, find_immediate_win, find_immediate_block,
                    find_fork)

log = logging.getLogger(__name__)


# ── Difficulty policy ─────────────────────────────────────────────────────────
# depth 0 means the rule ladder; forks adds the fork steps to it
Difficulty = namedtuple('Difficulty', ['smart_probability', 'depth', 'forks'],
                        defaults=(False,))

DIFFICULTY_SETTINGS = {
    'easy':   Difficulty(0.3, 0),
    'medium': Difficulty(0.5, 2),
    'hard':   Difficulty(0.9, 6),
}
EASIEST = 'easy'
_CENTER = 4


def get_settings(difficulty, settings=None):
    table = DIFFICULTY_SETTINGS if settings is None else settings
    try:
        return table[difficulty]
    except KeyError:
        raise ValueError(f"unknown difficulty {difficulty!r} (expected one of {', '.join(table)})") from None


def thinking_delay(config, rng=None):
    """Seconds the AI pretends to think before its move is applied."""
    rng = rng or random
    return rng.uniform(config.ai_delay_min, config.ai_delay_max)


# ── Minimax ───────────────────────────────────────────────────────────────────
def _minimax(board, to_move, ai, depth, limit, alpha, beta):
    winner = check_winner(board)
    if winner == ai: return 10 - depth
    if winner:       return depth - 10
    if is_full(board) or depth >= limit: return 0

    maximizing = to_move == ai
    best = -math.inf if maximizing else math.inf
    for m in available_moves(board):
        board[m] = to_move
        val = _minimax(board, opponent(to_move), ai, depth+1, limit, alpha, beta)
        board[m] = None
        if maximizing:
            best = max(best, val); alpha = max(alpha, best)
        else:
            best = min(best, val); beta = min(beta, best)
        if beta <= alpha: break
    return best


def minimax_move(board, player, depth_limit):
    """Best cell for ``player``; the first of equally scored cells wins."""
    best_move, best_val = None, -math.inf
    alpha, beta = -math.inf, math.inf
    work = list(board)
    for m in available_moves(work):
        work[m] = player
        val = _minimax(work, opponent(player), player, 1, depth_limit, alpha, beta)
        work[m] = None
        if val > best_val:
            best_val, best_move = val, m
        alpha = max(alpha, best_val)
    log.debug("minimax(%s, depth %s) -> %s scoring %s", player, depth_limit, best_move, best_val)
    return best_move


# ── Rule ladder ───────────────────────────────────────────────────────────────
def rule_based_move(board, player, rng=None, forks=False):
    move = find_immediate_win(board, player)
    if move is not None: return move
    move = find_immediate_block(board, player)
    if move is not None: return move
    if forks:
        move = find_fork(board, player)
        if move is not None: return move
        move = find_fork(board, opponent(player))
        if move is not None: return move
    for move in STRATEGIC_ORDER:
        if board[move] is None: return move
    moves = available_moves(board)
    return (rng or random).choice(moves) if moves else None


# ── Public API ────────────────────────────────────────────────────────────────
def select_move(board, player, difficulty='medium', rng=None, settings=None):
    """Cell index for ``player`` on ``board``, or None if the board is full."""
    rng  = rng or random
    conf = get_settings(difficulty, settings)
    moves = available_moves(board)
    if not moves: return None
    if len(moves) == 9 and player == X and difficulty != EASIEST:
        return _CENTER
    if rng.random() < conf.smart_probability:
        if conf.depth > 0:
            return minimax_move(board, player, conf.depth)
        return rule_based_move(board, player, rng, forks=conf.forks)
    move = rng.choice(moves)
    log.debug("%s (%s) plays random cell %s", player, difficulty, move)
    return move
