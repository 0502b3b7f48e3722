import pytest

from garybot.diagnostics import (
    DiagnosticAggregator,
    DiagnosticArray,
    DiagnosticLevel,
    DiagnosticStatus,
    KeyValue,
    ParameterError,
    get_parameter,
)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def setup():
    published = []
    clock = FakeClock()
    agg = DiagnosticAggregator(published.append, clock)
    agg.configure()
    return agg, published, clock


def status(hw, level=DiagnosticLevel.OK, message="ok", values=None):
    return DiagnosticStatus(name=hw, hardware_id=hw, level=level, message=message, values=values or [])


def test_get_parameter_returns_value():
    assert get_parameter({"x": "abc"}, "x", str) == "abc"
    assert get_parameter({"f": 2.5}, "f", float) == 2.5
    assert get_parameter({"b": True}, "b", bool) is True
    assert get_parameter({"l": ("a", "b")}, "l", list) == ["a", "b"]


def test_get_parameter_wrong_type():
    with pytest.raises(ParameterError, match="update_freq type must be double"):
        get_parameter({"update_freq": 10}, "update_freq", float)


def test_get_parameter_missing():
    with pytest.raises(ParameterError, match="agg_topic type must be string"):
        get_parameter({}, "agg_topic", str)


def test_get_parameter_bool_is_not_double():
    with pytest.raises(ParameterError):
        get_parameter({"v": True}, "v", float)


def test_configure_defaults(setup):
    agg, _, _ = setup
    assert agg.diagnose_topic == "/diagnostics"
    assert agg.agg_topic == "/diagnostics_agg"
    assert agg.update_freq == 10.0
    assert agg.stale_threshold == 0.5


def test_configure_overrides():
    agg = DiagnosticAggregator(lambda a: None, FakeClock())
    agg.configure({"agg_topic": "/agg", "stale_threshold": 2.0})
    assert agg.agg_topic == "/agg"
    assert agg.stale_threshold == 2.0
    assert agg.update_freq == 10.0


def test_configure_rejects_bad_type():
    agg = DiagnosticAggregator(lambda a: None, FakeClock())
    with pytest.raises(ParameterError, match="stale_threshold"):
        agg.configure({"stale_threshold": "soon"})
    assert not agg.configured


def test_activate_requires_configure():
    agg = DiagnosticAggregator(lambda a: None, FakeClock())
    with pytest.raises(RuntimeError):
        agg.activate()


def test_period_is_inverse_of_frequency(setup):
    agg, _, _ = setup
    assert agg.period * agg.update_freq == pytest.approx(1.0)


def test_merge_adds_and_replaces(setup):
    agg, _, _ = setup
    agg.on_diagnostics(DiagnosticArray(status=[status("a"), status("b")]))
    agg.on_diagnostics(
        DiagnosticArray(
            status=[status("a", DiagnosticLevel.ERROR, "offline", [KeyValue("k", "v")])]
        )
    )
    result = agg.update()
    assert [s.hardware_id for s in result.status] == ["a", "b"]
    assert result.status[0].level == DiagnosticLevel.ERROR
    assert result.status[0].message == "offline"
    assert result.status[0].values == [KeyValue("k", "v")]


def test_incoming_status_is_copied(setup):
    agg, _, _ = setup
    incoming = status("a")
    agg.on_diagnostics(DiagnosticArray(status=[incoming]))
    incoming.message = "changed"
    assert agg.update().status[0].message == "ok"


def test_stale_after_threshold(setup):
    agg, _, clock = setup
    agg.on_diagnostics(DiagnosticArray(status=[status("a")]))
    clock.now += agg.stale_threshold / 2
    assert agg.update().status[0].level == DiagnosticLevel.OK
    clock.now += agg.stale_threshold
    result = agg.update()
    assert result.status[0].level == DiagnosticLevel.STALE
    assert result.status[0].message == "stale"


def test_fresh_message_clears_stale(setup):
    agg, _, clock = setup
    agg.on_diagnostics(DiagnosticArray(status=[status("a")]))
    clock.now += 10
    agg.update()
    agg.on_diagnostics(DiagnosticArray(status=[status("a")]))
    assert agg.update().status[0].level == DiagnosticLevel.OK


def test_publishes_only_when_active(setup):
    agg, published, clock = setup
    agg.on_diagnostics(DiagnosticArray(status=[status("a")]))
    agg.update()
    assert published == []
    agg.activate()
    agg.update()
    assert len(published) == 1
    assert published[0].stamp == clock.now
    assert published[0].frame_id == ""
    agg.deactivate()
    agg.update()
    assert len(published) == 1