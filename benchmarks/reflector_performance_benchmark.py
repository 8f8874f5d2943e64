"""Performance benchmark for direct attribute access vs reflector forwarding."""

import argparse
import json
import pathlib
import statistics
import sys
import time
from collections.abc import Callable
from typing import Literal

BenchmarkMode = Literal["direct", "reflector"]
CaseRunner = Callable[[object, object, int], int]
REPO_ROOT: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent

_CASE_ORDER: list[str] = [
    "cold_create",
    "field_get",
    "field_set",
    "private_field_get",
    "instance_call",
    "instance_call_with_default",
    "static_call",
    "static_field_get",
]

# Results depend on how many scrollers earlier repetitions created.
_VARYING_CASES: frozenset[str] = frozenset({"static_field_get"})

_CASE_DESCRIPTIONS: dict[str, str] = {
    "cold_create": "Create a fresh proxy per iteration and read one field.",
    "field_get": "Read an underscore instance field.",
    "field_set": "Write an underscore instance field.",
    "private_field_get": "Read a name-mangled instance field.",
    "instance_call": "Call a zero-argument private instance method.",
    "instance_call_with_default": "Call a private method relying on a declared default.",
    "static_call": "Call a private static method.",
    "static_field_get": "Read a private class-level field.",
}

_CASE_DEFAULT_ITERATIONS: dict[str, int] = {
    "cold_create": 20_000,
    "field_get": 100_000,
    "field_set": 100_000,
    "private_field_get": 100_000,
    "instance_call": 100_000,
    "instance_call_with_default": 50_000,
    "static_call": 100_000,
    "static_field_get": 100_000,
}

_CASE_QUICK_ITERATIONS: dict[str, int] = {
    "cold_create": 1_000,
    "field_get": 5_000,
    "field_set": 5_000,
    "private_field_get": 5_000,
    "instance_call": 5_000,
    "instance_call_with_default": 2_500,
    "static_call": 5_000,
    "static_field_get": 5_000,
}


def _ensure_repo_paths() -> None:
    """Ensure repository-local imports are resolvable for this process."""
    src_path: str = str(REPO_ROOT / "src")
    has_src_path: bool = src_path in sys.path
    if has_src_path is False:
        sys.path.insert(0, src_path)


def _run_case_cold_create(scroller: object, accessor: object, iterations: int) -> int:
    """Create a proxy (or skip creation in direct mode) and read one field.

    :param scroller: Scroller instance.
    :param accessor: Reflector proxy, or ``None`` in direct mode.
    :param iterations: Timed iterations.
    :returns: Checksum of read values.
    """
    from pyreflector import reflector
    from pyreflector.demo import ScrollerReflector

    checksum: int = 0
    for _ in range(iterations):
        if accessor is None:
            checksum += scroller._start_x  # type: ignore[attr-defined]
        else:
            checksum += reflector(ScrollerReflector, scroller).get_start_x()
    return checksum


def _run_case_field_get(scroller: object, accessor: object, iterations: int) -> int:
    """Read ``_start_x`` repeatedly.

    :param scroller: Scroller instance.
    :param accessor: Reflector proxy, or ``None`` in direct mode.
    :param iterations: Timed iterations.
    :returns: Checksum of read values.
    """
    checksum: int = 0
    if accessor is None:
        for _ in range(iterations):
            checksum += scroller._start_x  # type: ignore[attr-defined]
        return checksum
    for _ in range(iterations):
        checksum += accessor.get_start_x()  # type: ignore[attr-defined]
    return checksum


def _run_case_field_set(scroller: object, accessor: object, iterations: int) -> int:
    """Write ``_final_x`` repeatedly.

    :param scroller: Scroller instance.
    :param accessor: Reflector proxy, or ``None`` in direct mode.
    :param iterations: Timed iterations.
    :returns: Final written value.
    """
    if accessor is None:
        for index in range(iterations):
            scroller._final_x = index  # type: ignore[attr-defined]
    else:
        for index in range(iterations):
            accessor.set_final_x(index)  # type: ignore[attr-defined]
    return scroller._final_x  # type: ignore[attr-defined,no-any-return]


def _run_case_private_field_get(scroller: object, accessor: object, iterations: int) -> int:
    """Read the mangled ``__duration`` field repeatedly.

    :param scroller: Scroller instance.
    :param accessor: Reflector proxy, or ``None`` in direct mode.
    :param iterations: Timed iterations.
    :returns: Checksum of read values.
    """
    checksum: int = 0
    if accessor is None:
        for _ in range(iterations):
            checksum += scroller._Scroller__duration  # type: ignore[attr-defined]
        return checksum
    for _ in range(iterations):
        checksum += accessor.get_duration()  # type: ignore[attr-defined]
    return checksum


def _run_case_instance_call(scroller: object, accessor: object, iterations: int) -> int:
    """Call ``_delta_x`` repeatedly.

    :param scroller: Scroller instance.
    :param accessor: Reflector proxy, or ``None`` in direct mode.
    :param iterations: Timed iterations.
    :returns: Checksum of results.
    """
    checksum: int = 0
    if accessor is None:
        for _ in range(iterations):
            checksum += scroller._delta_x()  # type: ignore[attr-defined]
        return checksum
    for _ in range(iterations):
        checksum += accessor._delta_x()  # type: ignore[attr-defined]
    return checksum


def _run_case_instance_call_with_default(scroller: object, accessor: object, iterations: int) -> int:
    """Call ``_position_at`` relying on its ``clamp`` default.

    :param scroller: Scroller instance.
    :param accessor: Reflector proxy, or ``None`` in direct mode.
    :param iterations: Timed iterations.
    :returns: Checksum of results.
    """
    checksum: int = 0
    if accessor is None:
        for index in range(iterations):
            checksum += scroller._position_at(index % 400)  # type: ignore[attr-defined]
        return checksum
    for index in range(iterations):
        checksum += accessor._position_at(index % 400)  # type: ignore[attr-defined]
    return checksum


def _run_case_static_call(scroller: object, accessor: object, iterations: int) -> int:
    """Call the static ``_uptime_millis`` repeatedly.

    :param scroller: Scroller instance.
    :param accessor: Reflector proxy, or ``None`` in direct mode.
    :param iterations: Timed iterations.
    :returns: Number of calls that observed a non-negative clock.
    """
    observed: int = 0
    if accessor is None:
        for _ in range(iterations):
            observed += int(type(scroller)._uptime_millis() >= 0)  # type: ignore[attr-defined]
        return observed
    for _ in range(iterations):
        observed += int(accessor._uptime_millis() >= 0)  # type: ignore[attr-defined]
    return observed


def _run_case_static_field_get(scroller: object, accessor: object, iterations: int) -> int:
    """Read the class-level ``_s_created`` counter repeatedly.

    :param scroller: Scroller instance.
    :param accessor: Reflector proxy, or ``None`` in direct mode.
    :param iterations: Timed iterations.
    :returns: Checksum of read values.
    """
    checksum: int = 0
    if accessor is None:
        for _ in range(iterations):
            checksum += type(scroller)._s_created  # type: ignore[attr-defined]
        return checksum
    for _ in range(iterations):
        checksum += accessor.get_created_count()  # type: ignore[attr-defined]
    return checksum


_CASE_RUNNERS: dict[str, CaseRunner] = {
    "cold_create": _run_case_cold_create,
    "field_get": _run_case_field_get,
    "field_set": _run_case_field_set,
    "private_field_get": _run_case_private_field_get,
    "instance_call": _run_case_instance_call,
    "instance_call_with_default": _run_case_instance_call_with_default,
    "static_call": _run_case_static_call,
    "static_field_get": _run_case_static_field_get,
}


def _build_case_list(cases_arg: str | None) -> list[str]:
    """Build the ordered case list from user input.

    :param cases_arg: Optional comma-separated case names.
    :returns: Ordered case names.
    :raises ValueError: If unknown case names are requested.
    """
    if cases_arg is None:
        return list(_CASE_ORDER)

    requested: list[str] = []
    for raw_part in cases_arg.split(","):
        candidate: str = raw_part.strip()
        if len(candidate) == 0:
            continue
        known_case: bool = candidate in _CASE_RUNNERS
        if known_case is False:
            raise ValueError(f"Unknown case: {candidate}")
        already_seen: bool = candidate in requested
        if already_seen is False:
            requested.append(candidate)
    if len(requested) == 0:
        raise ValueError("No benchmark cases selected")
    return requested


def _scaled_iterations(base_iterations: int, scale: float) -> int:
    """Scale iteration counts while preserving a minimum of one iteration.

    :param base_iterations: Baseline iteration count.
    :param scale: Positive scale multiplier.
    :returns: Scaled iteration count.
    """
    scaled: int = int(base_iterations * scale)
    if scaled < 1:
        return 1
    return scaled


def _time_case(case_name: str, mode: BenchmarkMode, iterations: int, check_arguments: bool) -> tuple[float, int]:
    """Time one case in one mode against a freshly started scroller.

    :param case_name: Case name.
    :param mode: Execution mode.
    :param iterations: Timed iterations.
    :param check_arguments: Whether reflector forwarders validate arguments.
    :returns: Tuple of ``(elapsed_seconds, checksum)``.
    """
    from pyreflector import ReflectorFactory
    from pyreflector.demo import Scroller
    from pyreflector.demo import ScrollerReflector

    scroller = Scroller()
    scroller.start_scroll(0, 400, 400)
    accessor: object = None
    if mode == "reflector":
        factory = ReflectorFactory(check_arguments=check_arguments)
        accessor = factory.create(ScrollerReflector, scroller)

    runner: CaseRunner = _CASE_RUNNERS[case_name]
    started: float = time.perf_counter()
    checksum: int = runner(scroller, accessor, iterations)
    elapsed: float = time.perf_counter() - started
    return elapsed, checksum


def _render_table(
    case_names: list[str],
    iteration_map: dict[str, int],
    direct_medians: dict[str, float],
    reflector_medians: dict[str, float],
) -> str:
    """Render a summary table of benchmark results.

    :param case_names: Ordered case names.
    :param iteration_map: Iteration counts by case.
    :param direct_medians: Direct-mode median seconds by case.
    :param reflector_medians: Reflector-mode median seconds by case.
    :returns: Rendered table text.
    """
    header: str = (
        "Case                         Iter   Direct(ms)   Reflector(ms)   "
        "Slowdown   Direct(us/op)   Reflector(us/op)"
    )
    separator: str = "-" * len(header)
    lines: list[str] = [header, separator]

    for case_name in case_names:
        iterations: int = iteration_map[case_name]
        direct_seconds: float = direct_medians[case_name]
        reflector_seconds: float = reflector_medians[case_name]
        slowdown_x: float = reflector_seconds / direct_seconds if direct_seconds > 0 else float("inf")
        line: str = (
            f"{case_name:26} {iterations:6d} "
            + f"{direct_seconds * 1_000.0:12.3f} {reflector_seconds * 1_000.0:15.3f} "
            + f"{slowdown_x:9.2f}x {direct_seconds * 1_000_000.0 / iterations:14.3f} "
            + f"{reflector_seconds * 1_000_000.0 / iterations:18.3f}"
        )
        lines.append(line)
    return "\n".join(lines)


def _run_driver(args: argparse.Namespace) -> int:
    """Run every selected case in both modes and print a summary.

    :param args: Parsed CLI arguments.
    :returns: Process exit code.
    :raises ValueError: If numeric options are out of range.
    """
    repetitions: int = args.repetitions
    if repetitions < 1:
        raise ValueError("repetitions must be >= 1")
    iteration_scale: float = args.iteration_scale
    if iteration_scale <= 0:
        raise ValueError("iteration scale must be > 0")

    case_names: list[str] = _build_case_list(args.cases)
    base_iterations: dict[str, int] = _CASE_DEFAULT_ITERATIONS
    if args.quick is True:
        base_iterations = _CASE_QUICK_ITERATIONS
    iteration_map: dict[str, int] = {
        case_name: _scaled_iterations(base_iterations[case_name], iteration_scale) for case_name in case_names
    }

    check_arguments: bool = args.no_argument_checks is False
    direct_medians: dict[str, float] = {}
    reflector_medians: dict[str, float] = {}
    raw_results: dict[str, dict[str, list[float]]] = {}
    for case_name in case_names:
        timings: dict[str, list[float]] = {"direct": [], "reflector": []}
        checksums: dict[str, set[int]] = {"direct": set(), "reflector": set()}
        for _ in range(repetitions):
            for mode in ("direct", "reflector"):
                elapsed, checksum = _time_case(case_name, mode, iteration_map[case_name], check_arguments)
                timings[mode].append(elapsed)
                checksums[mode].add(checksum)
        if checksums["direct"] != checksums["reflector"] and case_name not in _VARYING_CASES:
            raise RuntimeError(f"Checksum mismatch in case {case_name}")
        direct_medians[case_name] = statistics.median(timings["direct"])
        reflector_medians[case_name] = statistics.median(timings["reflector"])
        raw_results[case_name] = timings

    print("Reflector Performance Benchmark")
    print(f"Python executable: {sys.executable}")
    print(f"Repetitions per mode: {repetitions}")
    print(f"Quick mode: {args.quick}")
    print(f"Argument checks: {check_arguments}")
    print(f"Iteration scale: {iteration_scale}")
    print("")
    print(_render_table(case_names, iteration_map, direct_medians, reflector_medians))
    print("")
    print("Regime descriptions:")
    for case_name in case_names:
        print(f"- {case_name}: {_CASE_DESCRIPTIONS[case_name]}")

    json_output: str | None = args.json_output
    if json_output is not None:
        json_path: pathlib.Path = pathlib.Path(json_output)
        payload: dict[str, object] = {
            "repetitions": repetitions,
            "check_arguments": check_arguments,
            "iterations": iteration_map,
            "timings_seconds": raw_results,
        }
        json_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        print("")
        print(f"Wrote raw benchmark JSON: {json_path}")
    return 0


def _parse_args() -> argparse.Namespace:
    """Parse CLI arguments.

    :returns: Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Compare direct private-member access against reflector forwarding."
    )
    parser.add_argument("--repetitions", type=int, default=5, help="Repetitions per mode/case.")
    parser.add_argument("--quick", action="store_true", help="Run lower-iteration quick benchmark settings.")
    parser.add_argument(
        "--cases",
        type=str,
        default=None,
        help="Comma-separated subset of cases to run.",
    )
    parser.add_argument(
        "--iteration-scale",
        type=float,
        default=1.0,
        help="Multiply per-case iteration counts by this scale.",
    )
    parser.add_argument(
        "--no-argument-checks",
        action="store_true",
        help="Build reflectors with check_arguments=False.",
    )
    parser.add_argument(
        "--json-output",
        type=str,
        default=None,
        help="Optional path to write raw timings as JSON.",
    )
    return parser.parse_args()


def main() -> int:
    """Run the benchmark driver.

    :returns: Process exit code.
    """
    _ensure_repo_paths()
    args: argparse.Namespace = _parse_args()
    return _run_driver(args)


if __name__ == "__main__":
    raise SystemExit(main())
