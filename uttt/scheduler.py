"""Timed callbacks on gevent greenlets.

Everything the table schedules (clock ticks, AI thinking, board reset pauses,
replay pacing, the gap between session games) goes through ``call_later`` so
that tests can swap in a manual clock.
"""
import gevent


class _Handle:
    __slots__ = ('greenlet',)

    def __init__(self, greenlet):
        self.greenlet = greenlet

    def cancel(self):
        # a callback may cancel its own handle while it runs
        if not self.greenlet.dead and self.greenlet is not gevent.getcurrent():
            self.greenlet.kill(block=False)

    @property
    def pending(self):
        return not self.greenlet.dead


class GeventScheduler:
    def call_later(self, delay, fn, *args):
        return _Handle(gevent.spawn_later(max(0.0, delay), fn, *args))
