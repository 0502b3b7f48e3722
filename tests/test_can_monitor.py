import pytest

from garybot.can_monitor import CanRecvInfo, SocketCANMonitor, parse_rcvlist, read_rcvlist
from garybot.diagnostics import DiagnosticLevel, ParameterError

TITLE = "  device   can_id   can_mask  function  userdata   matches  ident"


def line(device, can_id, matches):
    return f"  {device}  {can_id}  000007ff  ffff0000  ffff1111  {matches}  raw"


class FakeProbe:
    def __init__(self, states=None, bitrates=None):
        self.states = states or {}
        self.bitrates = bitrates or {}
        self.opened = []

    def open_socket(self, ifname):
        self.opened.append(ifname)
        return True

    def get_state(self, ifname):
        return self.states.get(ifname, 0)

    def get_bitrate(self, ifname):
        return self.bitrates.get(ifname)


def write_lists(directory, all_lines, fil_lines=()):
    (directory / "rcvlist_all").write_text("\n".join([TITLE, *all_lines]) + "\n")
    (directory / "rcvlist_fil").write_text("\n".join([TITLE, *fil_lines]) + "\n")


def make_monitor(tmp_path, probe, **params):
    published = []
    monitor = SocketCANMonitor(published.append, probe, tmp_path)
    monitor.configure({"monitored_can_bus": ["can0"], **params})
    monitor.activate()
    return monitor, published


def test_parse_rcvlist_skips_title_and_reads_fields():
    entries = parse_rcvlist([TITLE, line("can0", "201", 12), "garbage"])
    assert entries == [CanRecvInfo("can0", 201, 12)]


def test_parse_rcvlist_needs_leading_digits_in_id():
    with pytest.raises(ValueError):
        parse_rcvlist([line("can0", "fff", 3)])


def test_read_rcvlist_missing_file_is_empty(tmp_path):
    assert read_rcvlist(tmp_path / "absent") == []


def test_read_rcvlist_from_file(tmp_path):
    path = tmp_path / "list"
    path.write_text("\n".join([TITLE, line("can1", "300", 7)]) + "\n")
    assert read_rcvlist(path) == [CanRecvInfo("can1", 300, 7)]


def test_configure_rejects_wrong_types(tmp_path):
    monitor = SocketCANMonitor(lambda a: None, FakeProbe(), tmp_path)
    with pytest.raises(ParameterError):
        monitor.configure({"update_freq": 10})
    with pytest.raises(ParameterError):
        monitor.configure({"monitored_can_bus": "can0"})


def test_activate_requires_configure(tmp_path):
    monitor = SocketCANMonitor(lambda a: None, FakeProbe(), tmp_path)
    with pytest.raises(RuntimeError):
        monitor.activate()


def test_activate_opens_sockets(tmp_path):
    probe = FakeProbe()
    make_monitor(tmp_path, probe)
    assert probe.opened == ["can0"]


def test_no_bus_gives_none(tmp_path):
    published = []
    monitor = SocketCANMonitor(published.append, FakeProbe(), tmp_path)
    monitor.configure()
    monitor.activate()
    assert monitor.update() is None
    assert published == []


def test_offline_bus_reopens(tmp_path):
    probe = FakeProbe()
    monitor, published = make_monitor(tmp_path, probe)
    write_lists(tmp_path, [line("can1", "0", 5)])
    array = monitor.update()
    status = array.status[0]
    assert (status.hardware_id, status.level, status.message) == (
        "can0",
        DiagnosticLevel.ERROR,
        "offline",
    )
    assert probe.opened == ["can0", "can0"]
    assert published == [array]


def test_jammed_bus(tmp_path):
    monitor, _ = make_monitor(tmp_path, FakeProbe(states={"can0": 2}, bitrates={"can0": 1000000}))
    write_lists(tmp_path, [line("can0", "0", 5)])
    status = monitor.update().status[0]
    assert (status.level, status.message) == (DiagnosticLevel.WARN, "transmission jammed")


def test_bitrate_failure(tmp_path):
    monitor, _ = make_monitor(tmp_path, FakeProbe())
    write_lists(tmp_path, [line("can0", "0", 5)])
    status = monitor.update().status[0]
    assert (status.level, status.message) == (DiagnosticLevel.WARN, "failed to get bitrate")


def test_overload(tmp_path):
    monitor, _ = make_monitor(tmp_path, FakeProbe(bitrates={"can0": 1000}))
    write_lists(tmp_path, [line("can0", "0", 1000)])
    status = monitor.update().status[0]
    assert (status.level, status.message) == (DiagnosticLevel.WARN, "can bus overload")


def test_ok_reports_load_and_filter_frequency(tmp_path):
    monitor, _ = make_monitor(tmp_path, FakeProbe(bitrates={"can0": 1000000}))
    write_lists(tmp_path, [line("can0", "0", 10)], [line("can0", "513", 5)])
    status = monitor.update().status[0]
    assert (status.level, status.message) == (DiagnosticLevel.OK, "ok")
    values = {kv.key: kv.value for kv in status.values}
    assert values["bus_load"] == "0.011000"
    assert values["id_513_freq"] == "50.000000"


def test_counts_are_deltas_between_updates(tmp_path):
    monitor, _ = make_monitor(tmp_path, FakeProbe(bitrates={"can0": 1000000}))
    write_lists(tmp_path, [line("can0", "0", 10)], [line("can0", "513", 5)])
    first = {kv.key: kv.value for kv in monitor.update().status[0].values}
    write_lists(tmp_path, [line("can0", "0", 10)], [line("can0", "513", 5)])
    second = {kv.key: kv.value for kv in monitor.update().status[0].values}
    assert float(first["bus_load"]) > 0
    assert float(second["bus_load"]) == 0.0
    assert float(second["id_513_freq"]) == 0.0


def test_inactive_does_not_publish(tmp_path):
    monitor, published = make_monitor(tmp_path, FakeProbe())
    monitor.deactivate()
    write_lists(tmp_path, [])
    array = monitor.update()
    assert array.status[0].message == "offline"
    assert published == []