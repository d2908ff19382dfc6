from gevent import monkey
monkey.patch_all()

from flask import Flask, jsonify, request
from flask_socketio import SocketIO, emit
from uttt.ai import DIFFICULTY_SETTINGS
from uttt.config import MatchConfig
from uttt.controller import MODES, TurnController
from uttt.session import SessionManager
from dataclasses import asdict
from functools import wraps
import os

app = Flask(__name__)
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'a_secret_key')
# Tests put a manual scheduler here; by default every table runs on gevent timers.
app.config.setdefault('UTTT_SCHEDULER', None)
socketio = SocketIO(app, async_mode='gevent')

MATCH_CONFIG = MatchConfig.from_env()

# One table per connection: the browser tab is the renderer, the clock display,
# the sound player and the input device for its own local match.
tables = {}

# Core event name -> socket event name
OUTBOUND = {'invalid': 'error'}


def make_table(sid, mode='PvP', difficulty='medium'):
    controller = TurnController(MATCH_CONFIG, mode=mode, difficulty=difficulty,
                                scheduler=app.config.get('UTTT_SCHEDULER'))
    session = SessionManager(controller)

    def forward(event, payload):
        socketio.emit(OUTBOUND.get(event, event), payload, to=sid)

    controller.subscribe(forward)
    return {"controller": controller, "session": session}


def table_event(f):
    """Look up the caller's table; command errors go back as an ``error`` event."""
    @wraps(f)
    def decorated(data=None):
        table = tables.get(request.sid)
        if not table: return
        try:
            return f(table, data or {})
        except (KeyError, TypeError, ValueError) as e:
            app.logger.debug("bad %s request from %s: %s", f.__name__, request.sid, e)
            emit('error', {'reason': 'bad_request', 'message': str(e)})
    return decorated


# ── Routes ───────────────────────────────────────────────────────────────────
@app.route('/')
def index():
    return jsonify({
        'modes':        list(MODES),
        'difficulties': {name: d._asdict() for name, d in DIFFICULTY_SETTINGS.items()},
        'config':       asdict(MATCH_CONFIG),
    })


# ── SocketIO Events ───────────────────────────────────────────────────────────
@socketio.on('connect')
def connect():
    sid = request.sid
    tables[sid] = make_table(sid)
    app.logger.info("table opened for %s", sid)
    emit('state', tables[sid]["controller"].snapshot())

@socketio.on('disconnect')
def disconnect():
    table = tables.pop(request.sid, None)
    if table:
        table["session"].shutdown()
        table["controller"].shutdown()
        app.logger.info("table closed for %s", request.sid)

@socketio.on('state')
@table_event
def state(table, data):
    emit('state', table["controller"].snapshot())

@socketio.on('move')
@table_event
def move(table, data):
    table["controller"].apply_move(int(data["board"]), int(data["cell"]))

@socketio.on('pause')
@table_event
def pause(table, data):
    table["controller"].pause()

@socketio.on('resume')
@table_event
def resume(table, data):
    table["controller"].resume()

@socketio.on('toggle_pause')
@table_event
def toggle_pause(table, data):
    table["controller"].toggle_pause()

@socketio.on('reset')
@table_event
def reset(table, data):
    table["controller"].reset()

@socketio.on('set_mode')
@table_event
def set_mode(table, data):
    table["controller"].set_mode(data["mode"])

@socketio.on('set_difficulty')
@table_event
def set_difficulty(table, data):
    table["controller"].set_difficulty(data["difficulty"])

@socketio.on('start_session')
@table_event
def start_session(table, data):
    table["session"].start(data.get("games"))

@socketio.on('stop_session')
@table_event
def stop_session(table, data):
    if not table["session"].stop():
        emit('error', {'reason': 'no_session'})

@socketio.on('replay')
@table_event
def replay(table, data):
    if not table["session"].start_replay():
        emit('error', {'reason': 'replay_unavailable'})


if __name__ == "__main__":
    socketio.run(app, debug=True)
