"""TurnController: clock, pause, AI scheduling and the refusals it adds."""
import pytest

from uttt.config import MatchConfig
from uttt.controller import (AI_TURN, PAUSED, TRANSITION, TurnController)
from uttt.logic import COMPLETE, IN_PROGRESS, O, WRONG_BOARD, X

_ = None


@pytest.fixture
def make(scheduler, recorder, scripted):
    def factory(mode='PvP', difficulty='medium', config=None, rolls=(0.0,)):
        c = TurnController(config, mode=mode, difficulty=difficulty,
                           scheduler=scheduler, rng=scripted(*rolls))
        c.subscribe(recorder)
        return c
    return factory


# ── Clock ────────────────────────────────────────────────────────────────────
def test_clock_starts_with_the_first_move(make, scheduler):
    c = make()
    scheduler.advance(5)
    assert c.game.clocks == {X: 60, O: 60}
    assert not scheduler.pending()

    c.apply_move(0, 4)
    scheduler.advance(3)
    assert c.game.clocks == {X: 60, O: 57}


def test_pause_freezes_the_clock_and_input(make, scheduler, recorder):
    c = make()
    c.apply_move(0, 4)
    c.pause()
    scheduler.advance(5)
    assert c.game.clocks[O] == 60
    assert c.snapshot()["paused"]

    assert c.apply_move(0, 0).reason == PAUSED
    assert recorder.of('invalid')[-1]["reason"] == PAUSED

    c.resume()
    scheduler.advance(2)
    assert c.game.clocks[O] == 58


def test_toggle_pause(make):
    c = make()
    c.toggle_pause()
    assert c.paused
    c.toggle_pause()
    assert not c.paused


def test_timeout_completes_the_match(make, scheduler, recorder):
    c = make(config=MatchConfig(start_clock=2))
    c.apply_move(0, 4)
    scheduler.advance(2)
    assert c.game.status == COMPLETE
    assert recorder.of('complete') == [{"winner": X, "reason": "timeout"}]
    assert recorder.sounds()[-1] == "timeout"
    assert not scheduler.pending()


def test_force_timeout(make, recorder):
    c = make()
    assert not c.force_timeout(X)   # nothing to expire before the first move
    c.apply_move(0, 4)
    assert c.force_timeout(X)
    assert c.game.outcome == {"winner": O, "reason": "timeout"}
    assert recorder.of('complete')[-1]["winner"] == O


# ── Moves ────────────────────────────────────────────────────────────────────
def test_invalid_move_reports_an_error(make, recorder):
    c = make()
    r = c.apply_move(3, 0)
    assert not r.ok
    assert recorder.sounds() == ["error"]
    assert recorder.of('invalid') == [{"reason": WRONG_BOARD, "board": 3, "cell": 0}]
    assert not recorder.of('state')


def test_accepted_move_plays_a_sound_and_publishes_state(make, recorder):
    c = make()
    c.apply_move(0, 4)
    assert recorder.sounds() == ["move"]
    assert recorder.of('state')[-1]["boards"][0][4] == X


def test_board_win_announces_a_bonus_and_holds_input(make, scheduler, recorder):
    c = make()
    c.game.boards[0].cells = [X,X,_, O,O,_, _,_,_]
    c.apply_move(0, 2)

    assert recorder.sounds() == ["move", "win"]
    assert recorder.of('bonus') == [{"message": "X +15s, O -10s", "duration": 2.0}]
    assert c.transitioning
    assert c.apply_move(0, 0).reason == TRANSITION

    scheduler.advance(0.2)
    assert not c.transitioning
    assert c.apply_move(0, 0).ok


def test_board_draw_sound(make, recorder):
    c = make()
    c.game.boards[0].cells = [X,O,X, X,O,O, O,X,_]
    c.apply_move(0, 8)
    assert recorder.sounds() == ["move", "draw"]
    assert recorder.of('bonus')[0]["message"] == "Draw: X +5s, O +5s"


# ── AI ───────────────────────────────────────────────────────────────────────
def test_ai_answers_after_thinking(make, scheduler, recorder):
    c = make(mode='PvAI')
    c.apply_move(0, 4)
    assert c.ai_thinking
    assert recorder.of('aiThinking') == [True]
    assert c.apply_move(0, 0).reason == AI_TURN

    scheduler.advance(0.5)
    assert recorder.of('aiThinking') == [True, False]
    assert [m["player"] for m in c.game.move_history] == [X, O]
    assert c.game.current_player == X and c.game.active_board == 1


def test_ai_opens_in_the_centre_as_x(make, scheduler):
    c = make(mode='AIvP')
    c.reset()
    scheduler.advance(0.5)
    assert c.game.boards[0].cells[4] == X
    assert c.game.current_player == O


def test_ai_is_only_scheduled_once(make, scheduler):
    c = make(mode='PvAI')
    c.apply_move(0, 4)
    assert not c.maybe_trigger_ai()
    scheduler.advance(0.5)
    assert len(c.game.move_history) == 2


def test_pause_while_thinking_holds_the_ai(make, scheduler):
    c = make(mode='PvAI')
    c.apply_move(0, 4)
    c.pause()
    scheduler.advance(1)
    assert len(c.game.move_history) == 1

    c.resume()
    scheduler.advance(0.5)
    assert len(c.game.move_history) == 2


def test_ai_waits_for_the_board_reset(make, scheduler):
    c = make(mode='AIvP')
    c.game.boards[0].cells = [X,X,_, O,O,_, _,_,_]
    c.game.current_player = O
    c.game.status = IN_PROGRESS
    c.apply_move(0, 5)
    # O won, so X (the AI) moves first on the fresh board once it is cleared
    assert c.game.current_player == X
    assert not c.ai_thinking
    scheduler.advance(0.2)
    assert c.ai_thinking
    scheduler.advance(0.5)
    assert c.game.current_player == O


def test_ai_moves_stay_legal_over_a_long_match(make, scheduler, recorder):
    c = make(mode='PvAI', difficulty='hard', rolls=(0.1, 0.95),
             config=MatchConfig(start_clock=10_000, reset_delay=0))
    for _i in range(150):
        if not c.is_ai_turn():
            b, cell = c.game.get_valid_moves()[0]
            assert c.apply_move(b, cell).ok
        scheduler.advance(0.5)
    assert recorder.of('invalid') == []
    assert len(c.game.move_history) >= 150
    assert c.game.resolutions


# ── Commands ─────────────────────────────────────────────────────────────────
def test_unknown_mode_or_difficulty_is_refused(make):
    with pytest.raises(ValueError):
        make(mode='AIvAI')
    with pytest.raises(ValueError):
        make(difficulty='brutal')
    c = make()
    with pytest.raises(ValueError):
        c.set_mode('solo')
    with pytest.raises(ValueError):
        c.set_difficulty('brutal')
    assert c.mode == 'PvP' and c.difficulty == 'medium'


def test_set_mode_hands_the_move_to_the_ai(make, scheduler, recorder):
    c = make()
    c.set_mode('AIvP')
    assert recorder.of('mode') == [{"mode": 'AIvP', "difficulty": 'medium'}]
    assert c.snapshot()["aiPlayer"] == X
    scheduler.advance(0.5)
    assert c.game.boards[0].cells[4] == X


def test_set_difficulty(make, recorder):
    c = make()
    c.set_difficulty('hard')
    assert c.difficulty == 'hard'
    assert recorder.of('difficulty') == [{"difficulty": 'hard'}]
    assert not recorder.of('mode')


def test_reset_cancels_timers(make, scheduler, recorder):
    c = make(mode='PvAI')
    c.apply_move(0, 4)
    assert scheduler.pending()
    c.reset()
    assert not scheduler.pending()
    assert recorder.of('reset') == [None]
    assert c.game.move_history == [] and c.game.clocks == {X: 60, O: 60}
    assert not c.ai_thinking


def test_shutdown_drops_listeners(make, scheduler, recorder):
    c = make()
    c.apply_move(0, 4)
    c.shutdown()
    recorder.clear()
    scheduler.advance(3)
    assert recorder.events == []
