#!/usr/bin/env python
"""
Device & Energy Simulator CLI
=============================
Usage:  python cli.py <command> [options]
"""

import sys, os, argparse, logging

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))


# ── helpers ──────────────────────────────────────────────────────────────
def _header(title):
    print(f"\n{'='*50}")
    print(f"  {title}")
    print(f"{'='*50}\n")


def _extra_summary(extra):
    parts = []
    for k, v in extra.items():
        if isinstance(v, float):
            parts.append(f"{k}={v:.6g}")
        else:
            parts.append(f"{k}={v}")
    return ', '.join(parts)


# ── commands ─────────────────────────────────────────────────────────────

def cmd_test(args):
    """Run module smoke checks."""
    _header("TEST SUITE")
    ok = fail = 0

    def check(name, fn):
        nonlocal ok, fail
        try:
            fn(); ok += 1; print(f"  PASS  {name}")
        except Exception as e:
            fail += 1; print(f"  FAIL  {name}: {e}")

    def expect(cond, msg):
        if not cond:
            raise ValueError(msg)

    from physics import diode_current, bjt_collector_current, mosfet_drain_current
    from simulation import (SimulationConfig, SimulationEngine, DeviceKind,
                            solve_diode, HistoryBuffer, SimulationSample)

    check("Diode model",  lambda: expect(diode_current(0.6) > 0, "no forward current"))
    check("BJT model",    lambda: expect(bjt_collector_current(5.0, 1e-5) <= 1.2e-3, "over ceiling"))
    check("MOSFET model", lambda: expect(mosfet_drain_current(5.0, 2.0) == 1e-12, "cutoff floor"))
    check("Diode solve",  lambda: expect(4.4e-3 < solve_diode(5.0, 1000.0).current < 4.5e-3, "operating point"))

    def _history():
        buf = HistoryBuffer(3)
        for i in range(1, 6):
            buf.append(SimulationSample(i, 0.0, 0.0, 'diode'))
        expect(len(buf) == 3 and buf.oldest().index == 3, "eviction")
    check("History",      _history)
    check("Presets",      lambda: [SimulationConfig.from_preset(n) for n in SimulationConfig.list_presets()])

    def _engines():
        for kind in DeviceKind:
            with SimulationEngine(SimulationConfig(device_kind=kind, seed=1)) as eng:
                eng.run_ticks(5)
                expect(len(eng.snapshot()) == 5, f"{kind.value} history")
    check("Engines",      _engines)

    print(f"\n  {ok} passed, {fail} failed")


def cmd_kinds(args):
    """List device kinds with their default timestep and history length."""
    from simulation.config import DeviceKind, DEFAULT_TIMESTEP_MS, DEFAULT_HISTORY_CAPACITY

    _header("DEVICE KINDS")
    for kind in DeviceKind:
        print(f"  {kind.value:20s}  {DEFAULT_TIMESTEP_MS[kind]:6.0f} ms  "
              f"{DEFAULT_HISTORY_CAPACITY[kind]:5d} samples")


def cmd_presets(args):
    """List or inspect available presets."""
    from simulation.config import SimulationConfig

    if args.name:
        _header(f"PRESET: {args.name}")
        cfg = SimulationConfig.from_preset(args.name)
        print(cfg.to_json())
    else:
        _header("AVAILABLE PRESETS")
        for name in SimulationConfig.list_presets():
            cfg = SimulationConfig.from_preset(name)
            print(f"  {name:20s}  {cfg.description or '(no description)'}")


def cmd_solve(args):
    """Solve one operating point and compare with the bracketed reference."""
    from physics import diode_current, bjt_collector_current, mosfet_drain_current
    from simulation.solver import (solve_diode, solve_bjt, solve_mosfet,
                                   reference_operating_point)

    _header(f"OPERATING POINT ({args.device})")
    Vs, R = args.vs, args.r
    if args.device == 'diode':
        op = solve_diode(Vs, R, args.is_, args.n)
        ref = reference_operating_point(lambda V: diode_current(V, args.is_, args.n), Vs, R)
        label = 'V_d'
    elif args.device == 'bjt':
        op = solve_bjt(Vs, R, args.ib, args.beta)
        ref = reference_operating_point(lambda V: bjt_collector_current(V, args.ib, args.beta), Vs, R)
        label = 'V_ce'
    else:
        op = solve_mosfet(Vs, R, args.vgs, args.vth, args.k)
        ref = reference_operating_point(
            lambda V: mosfet_drain_current(V, args.vgs, args.vth, args.k), Vs, R)
        label = 'V_ds'

    print(f"  Source:     {Vs} V through {R} Ohm")
    print(f"  Iterative:  {label} = {op.voltage:.6f} V,  I = {op.current*1e3:.6f} mA  "
          f"({op.iterations} it, {'converged' if op.converged else 'cap reached'})")
    print(f"  Reference:  {label} = {ref.voltage:.6f} V,  I = {ref.current*1e3:.6f} mA")


def cmd_run(args):
    """Run a simulation headless (or in real time) and print/export samples."""
    from simulation import SimulationConfig, SimulationEngine, RealtimeFrameHost
    from simulation.export import write_csv

    if args.preset:
        cfg = SimulationConfig.from_preset(args.preset)
    else:
        cfg = SimulationConfig(device_kind=args.kind)
    changes = {}
    if args.mode:
        changes['mode'] = args.mode
    if args.vs is not None:
        changes['source_voltage'] = args.vs
    if args.r is not None:
        changes['series_resistance'] = args.r
    if args.seed is not None:
        changes['seed'] = args.seed
    if changes:
        cfg = cfg.with_changes(**changes)

    _header(f"RUN ({cfg.device_kind.value})")
    print(f"  Config:  {cfg}\n")

    if args.realtime:
        host = RealtimeFrameHost()
        with SimulationEngine(cfg, host) as eng:
            host.run(args.realtime)
            samples = eng.snapshot()
    else:
        with SimulationEngine(cfg, autostart=False) as eng:
            eng.run_ticks(args.ticks)
            samples = eng.snapshot()

    if args.show:
        step = max(1, len(samples) // args.show)
        for s in samples[::step]:
            print(f"  #{s.index:5d}  drive={s.drive_value:10.5g}  I={s.measured_current:12.6g} A  "
                  f"{_extra_summary(s.extra)}")
    print(f"\n  {len(samples)} samples, {eng.substitutions} substituted")

    if args.csv:
        n = write_csv(args.csv, samples)
        print(f"  Wrote {n} rows to {args.csv}")


# ── parser ───────────────────────────────────────────────────────────────

def build_parser():
    from simulation.config import DeviceKind

    p = argparse.ArgumentParser(
        prog='devicesim',
        description='Device & Energy Simulation Core CLI')
    p.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    sub = p.add_subparsers(dest='command', help='command')

    # test
    sub.add_parser('test', help='Run module smoke checks')

    # kinds
    sub.add_parser('kinds', help='List device kinds')

    # presets
    ps = sub.add_parser('presets', help='List/inspect presets')
    ps.add_argument('name', nargs='?', help='Preset to inspect')

    # solve
    so = sub.add_parser('solve', help='Solve a single operating point')
    so.add_argument('device', choices=[k.value for k in DeviceKind if k.is_curve_tracer])
    so.add_argument('--vs', type=float, default=5.0, help='Source voltage (V)')
    so.add_argument('--r', type=float, default=1000.0, help='Series resistance (Ohm)')
    so.add_argument('--is', dest='is_', type=float, default=1e-12, help='Diode I_s (A)')
    so.add_argument('--n', type=float, default=1.0, help='Diode ideality')
    so.add_argument('--ib', type=float, default=1e-5, help='BJT base current (A)')
    so.add_argument('--beta', type=float, default=100.0, help='BJT current gain')
    so.add_argument('--vgs', type=float, default=4.5, help='MOSFET V_gs (V)')
    so.add_argument('--vth', type=float, default=2.5, help='MOSFET V_th (V)')
    so.add_argument('--k', type=float, default=2e-3, help='MOSFET k (A/V^2)')

    # run
    r = sub.add_parser('run', help='Run a simulation')
    r.add_argument('--preset', help='Preset name')
    r.add_argument('--kind', default='diode', choices=[k.value for k in DeviceKind])
    r.add_argument('--mode', choices=['fixed', 'sweep'])
    r.add_argument('--vs', type=float, help='Override source voltage (V)')
    r.add_argument('--r', type=float, help='Override series resistance (Ohm)')
    r.add_argument('--seed', type=int, help='Noise seed')
    r.add_argument('--ticks', type=int, default=100, help='Headless tick count')
    r.add_argument('--realtime', type=float, metavar='SECONDS',
                   help='Run on the wall clock for SECONDS instead')
    r.add_argument('--show', type=int, default=10, help='Samples to print (0 = none)')
    r.add_argument('--csv', help='Export history to CSV')

    return p


def main():
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s')

    commands = {
        'test':    cmd_test,
        'kinds':   cmd_kinds,
        'presets': cmd_presets,
        'solve':   cmd_solve,
        'run':     cmd_run,
    }

    if args.command in commands:
        commands[args.command](args)
    else:
        parser.print_help()


if __name__ == '__main__':
    main()
