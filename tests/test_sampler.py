from collections.abc import Sequence

from dronevis.config import SamplerConfig
from dronevis.models import ExplorationEvent
from dronevis.viz.clock import VirtualClock
from dronevis.viz.sampler import (Debouncer, ExplorationSampler, explored_positions,
                                  passes_change_gate, sample_markers)


def _explored(i: int):
    return ExplorationEvent(type="node_explored", position={"lat": 55.0 + i * 1e-4, "lng": -3.0})


def _make_sampler(max_wait_ms=1000.0):
    clock = VirtualClock()
    emitted = []
    sampler = ExplorationSampler(clock, emitted.append, SamplerConfig(max_wait_ms=max_wait_ms))
    return clock, sampler, emitted


def test_650_events_in_one_window_render_40_markers():
    clock, sampler, emitted = _make_sampler()
    events = []
    for i in range(650):
        events.append(_explored(i))
        sampler.update(events, True)

    assert emitted == []
    clock.advance(0.2)
    assert len(emitted) == 1
    assert len(sampler.markers) == 40
    # every 15th of the last 600
    assert sampler.markers[0] == events[50].position
    assert sampler.markers[1] == events[65].position
    assert sampler.last_len == 650


def test_nineteen_new_events_do_not_change_markers():
    clock, sampler, emitted = _make_sampler()
    events = [_explored(i) for i in range(100)]
    sampler.update(events, True)
    clock.advance(0.2)
    first = sampler.markers
    assert len(emitted) == 1

    events.extend(_explored(100 + i) for i in range(19))
    sampler.update(events, True)
    clock.advance(0.5)
    assert sampler.markers is first
    assert len(emitted) == 1

    events.append(_explored(500))
    sampler.update(events, True)
    clock.advance(0.2)
    assert len(emitted) == 2
    assert sampler.markers != first


def test_debounce_restarts_instead_of_stacking():
    clock, sampler, emitted = _make_sampler(max_wait_ms=None)
    events = []
    for i in range(60):
        events.extend(_explored(i * 10 + k) for k in range(10))
        sampler.update(events, True)
        clock.advance(0.1)
    assert emitted == []
    clock.advance(0.15)
    assert len(emitted) == 1
    assert clock.pending() == 0


def test_max_wait_bounds_starvation_under_sustained_updates():
    clock, sampler, emitted = _make_sampler(max_wait_ms=1000.0)
    events = []
    for i in range(30):
        events.extend(_explored(i * 30 + k) for k in range(30))
        sampler.update(events, True)
        clock.advance(0.1)
    # without the bound this would still be empty
    assert len(emitted) >= 2


def test_deactivation_clears_immediately_and_cancels_pending():
    clock, sampler, emitted = _make_sampler()
    events = [_explored(i) for i in range(100)]
    sampler.update(events, True)
    clock.advance(0.2)
    assert sampler.markers

    events.extend(_explored(200 + i) for i in range(50))
    sampler.update(events, True)
    sampler.update(events, False)
    assert sampler.markers == ()
    assert emitted[-1] == ()
    assert sampler.last_len == 0

    clock.advance(1.0)
    assert emitted[-1] == ()


def test_malformed_and_other_events_are_ignored():
    events = [ExplorationEvent(type="node_explored")] * 5
    events += [ExplorationEvent(type="path_found", position={"lat": 1, "lng": 2})]
    events += [_explored(i) for i in range(3)]
    markers = sample_markers(events, window=600, stride=1)
    assert len(markers) == 3


def test_change_gate():
    assert not passes_change_gate(19, 0)
    assert passes_change_gate(20, 0)
    assert passes_change_gate(0, 40)


def test_debouncer_cancel_drops_action():
    clock = VirtualClock()
    fired = []
    d = Debouncer(clock, 0.2)
    d.trigger(lambda: fired.append(1))
    assert d.pending
    d.cancel()
    clock.advance(1.0)
    assert fired == []
    assert not d.pending


class _CountingEvents(Sequence):
    """Long event buffer that records how many items were read."""

    def __init__(self, n: int):
        self.n = n
        self.reads = 0
        self._event = _explored(0)

    def __len__(self):
        return self.n

    def __getitem__(self, i):
        if isinstance(i, slice):
            raise TypeError("slicing the whole buffer")
        if i < 0:
            i += self.n
        if not 0 <= i < self.n:
            raise IndexError(i)
        self.reads += 1
        return self._event


def test_sampling_cost_does_not_grow_with_the_buffer():
    events = _CountingEvents(200_000)
    markers = sample_markers(events, window=600, stride=15)
    assert len(markers) == 40
    assert events.reads == 600


def test_window_keeps_the_newest_positions():
    events = [_explored(i) for i in range(1000)]
    assert explored_positions(events, 3) == [events[997].position, events[998].position,
                                             events[999].position]
