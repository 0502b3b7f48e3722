# garybot

Building blocks for a competition robot, written as plain Python objects
that you connect to your own transport. Each component takes callables for
publishing its output and, where it needs time, a clock, so it can run under
any message bus or be driven directly from tests.

## Modules

### `garybot.diagnostics`

- `DiagnosticLevel` (`OK`, `WARN`, `ERROR`, `STALE`), `KeyValue`,
  `DiagnosticStatus` and `DiagnosticArray` describe diagnostic reports.
- `get_parameter(parameters, name, kind)` returns `parameters[name]` when it
  is of `kind` (`str`, `float`, `bool`, or `list` for a list of strings). A
  missing value or one of the wrong type raises `ParameterError`, which is a
  `ValueError`.
- `DiagnosticAggregator(publish, clock=time.monotonic)` merges incoming
  reports by hardware id:
  - `configure(parameters)` reads `diagnose_topic`, `agg_topic`,
    `update_freq` (default `10.0`) and `stale_threshold` (default `0.5`).
  - `activate()` and `deactivate()` switch publishing on and off. Both raise
    `RuntimeError` before `configure`.
  - `on_diagnostics(array)` adds new hardware ids and overwrites known ones.
  - `update()` sets every entry not heard from for longer than
    `stale_threshold` seconds to `STALE` with the message `"stale"`. It
    publishes a copy while active and returns the aggregate.
  - `period` is `1 / update_freq`.

### `garybot.mecanum_kinematics`

`MecanumKinematics(a, b, r)` takes the half wheelbase, the half track and
the wheel radius.

- `forward_solve(wheel_speed)` maps the speeds of `left_front`,
  `left_back`, `right_front` and `right_back` to `vx`, `vy` and `az`.
- `inverse_solve(chassis_speed, wheel_offline=WheelOffline.NONE)` does the
  reverse. With all four wheels online it returns all four speeds. With one
  wheel set as offline (`WheelOffline.LF`, `LB`, `RF` or `RB`) it returns
  speeds for two of the remaining wheels only. That pair follows the
  dominant translation axis, or gives pure rotation when `vx` and `vy` are
  both zero.

```python
from garybot.mecanum_kinematics import MecanumKinematics, WheelOffline

kinematics = MecanumKinematics(0.2, 0.2, 0.076)
wheels = kinematics.inverse_solve({"vx": 1.0, "vy": 0.0, "az": 0.0})
degraded = kinematics.inverse_solve({"vx": 1.0, "vy": 0.0, "az": 0.0}, WheelOffline.LF)
chassis = kinematics.forward_solve(wheels)
```

### `garybot.pid_controller`

`PIDController(clock=time.monotonic, publish=None)` runs one PID loop.

- `configure(parameters)` reads `command_interface`, `state_interface`,
  `kp`, `ki`, `kd`, `max_out`, `max_iout` (all defaulting to zero or empty)
  and `stale_threshold` (default `0.1`).
- `activate()` sets the command to zero. `set_command(value)` sets a new
  set point and records when it arrived.
- `update(feedback)` first passes a `PIDState` snapshot to `publish`, if one
  was given. It returns `None` before any command has arrived. If the last
  command is older than `stale_threshold`, it resets the working values and
  returns `0.0`. Otherwise it returns the output, with the integral term
  clamped to `±max_iout` and the total clamped to `±max_out`.
- `set_parameters(parameters)` updates the gains and limits from float
  values, ignores everything else, and returns a `SetParametersResult`.
- `state_interface_configuration()` and `command_interface_configuration()`
  return the configured interface names as one-element lists.

### `garybot.lifecycle_manager`

`LifecycleManager(client_factory, publish, parameters=None, name="lifecycle_manager")`
supervises lifecycle-managed nodes. It reads `node_names`, `diagnose_topic`,
`diag_freq`, `respawn` (default `True`) and `update_rate` when it is
constructed. `client_factory(node_name)` must return an object that follows
the `LifecycleClient` protocol. That object has `service_is_ready()`,
`get_state()` returning a future of the state label, and
`change_state(transition)` returning a future.

- `update()` polls each node and returns the current states. It requests
  `configure` for an `unconfigured` node and `activate` for an `inactive`
  one. Each request is sent only once, unless `respawn` is set. A node whose
  services are not ready is recorded as `"node offline"`.
- `diagnose()` publishes and returns one status per node, `ERROR` when the
  node is offline and `OK` otherwise. It adds an `"active"` status for the
  manager itself.
- `set_parameters(parameters)` applies changes in order. It starts tracking
  nodes newly added to `node_names`. On the first value of a wrong type it
  returns an unsuccessful `SetParametersResult` that gives the reason.
- `update_period` and `diag_period` give the intended timer periods.

### `garybot.socket_can`

Raw SocketCAN on Linux.

- `CanFrame(can_id, data)` holds up to eight data bytes and has a `dlc`
  property. `pack()` and `CanFrame.unpack(data)` convert to and from the
  kernel's 16-byte `struct can_frame`.
- `SocketCANReceiver(ifname)` opens one non-blocking socket per frame id.
  `open_socket(frame_id)` returns whether it worked. `read(frame_id)`
  returns a `CanFrame`, or `None` when nothing is pending or the id is not
  open. If the link is down, it closes that socket.
- `SocketCANSender(ifname)` uses one unfiltered socket.
  `open_socket(ifname=None)` returns whether it worked. `send(frame)`
  returns whether the whole frame was written, and closes the socket if the
  link is down.
- Both classes have `close()` and work as context managers.

### `garybot.can_monitor`

- `parse_rcvlist(lines)` and `read_rcvlist(path)` parse a kernel CAN
  receive list into `CanRecvInfo(device, can_id, matches)` entries. A
  missing file gives an empty list.
- `SocketCANMonitor(publish, bus_probe, rcvlist_dir="/proc/net/can")` reads
  `rcvlist_all` and `rcvlist_fil` from `rcvlist_dir`. `bus_probe` follows
  the `BusProbe` protocol: `open_socket`, `get_state` and `get_bitrate`.
  - `configure(parameters)` reads `diagnose_topic`, `update_freq` (default
    `10.0`), `monitored_can_bus` and `overload_threshold` (default `0.8`).
  - `activate()` opens a socket on each monitored bus. Both `activate()` and
    `deactivate()` raise `RuntimeError` before `configure`.
  - `update()` returns `None` when no bus is monitored. Otherwise it reports
    each bus with one of these messages:
    - `"offline"` (`ERROR`), after which the monitor tries to reopen the
      bus;
    - `"transmission jammed"`;
    - `"failed to get bitrate"`;
    - `"can bus overload"`;
    - `"ok"`, with a `bus_load` value and an `id_<id>_freq` value for each
      filtered identifier.

    Bus load counts 110 bits per frame against the bitrate over one update
    period. The statuses are published while active and returned.

## Using the components

The aggregator, the PID controller and the CAN monitor share a common
pattern. Build the component with its callables, call `configure` with a
mapping of parameters, then call `activate`. Feed it messages through its
methods, or call `update` on a timer. A parameter of the wrong type makes
`configure` raise `ParameterError`.

Topic names such as `diagnose_topic` are stored on the component, but
nothing subscribes or publishes under them. Routing messages is the job of
the callables you pass in.

## What the package does not do

- It provides no command-line program and no message transport. Timers,
  subscriptions and publishing have to be wired up by the caller.
- It does not turn velocity commands into wheel commands from motor
  diagnostics, and it does not handle remote-control teleoperation,
  gimbal aiming or reporting offline hardware interfaces. Of the chassis
  pieces, only the kinematics are included.

## Requirements

Python 3.10 or later. There are no third-party dependencies. The SocketCAN
classes and the CAN monitor's default receive-list location need Linux with
CAN support in the kernel.