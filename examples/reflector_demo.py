"""Walk through reflector proxies over a scroller with hidden state."""

import argparse
import itertools
import pathlib
import sys

from loguru import logger


def _ensure_src_path(src_path: str) -> None:
    """Ensure ``src`` is importable in the current interpreter.

    :param src_path: Absolute path to the repository ``src`` directory.
    """
    exists: bool = src_path in sys.path
    if exists is False:
        sys.path.insert(0, src_path)


def _run_demo(start_x: int, dx: int, duration: int) -> int:
    """Drive a scroller and inspect it through ``ScrollerReflector``.

    :param start_x: Starting offset.
    :param dx: Distance to scroll.
    :param duration: Scroll duration in milliseconds.
    :returns: Process exit code.
    """
    from pyreflector import TypeMismatchError
    from pyreflector import reflector
    from pyreflector.demo import Scroller
    from pyreflector.demo import ScrollerConfig
    from pyreflector.demo import ScrollerReflector

    statics: ScrollerReflector = reflector(ScrollerReflector)
    statics.set_clock(itertools.count(0, 25))
    try:
        scroller = Scroller(ScrollerConfig(friction=0.02))
        scroller_reflector: ScrollerReflector = reflector(ScrollerReflector, scroller)
        scroller.start_scroll(start_x, dx, duration)

        print(f"proxy:        {scroller_reflector!r}")
        print(f"start_x:      {scroller_reflector.get_start_x()}")
        print(f"final_x:      {scroller_reflector.get_final_x()}")
        print(f"duration:     {scroller_reflector.get_duration()} ms")
        print(f"remaining:    {scroller_reflector.get_remaining_x()}")
        print(f"friction:     {scroller_reflector.get_config().friction}")
        print(f"scrollers:    {statics.get_created_count()}")
        print("")

        quarter: int = max(duration // 4, 1)
        for elapsed in range(0, duration + quarter, quarter):
            position: int = scroller_reflector._position_at(elapsed)
            print(f"t={elapsed:5d} ms  x={position}")
        print("")

        scroller_reflector.set_duration(duration * 2)
        print(f"stretched duration to {scroller_reflector.get_duration()} ms")
        print(f"t={duration:5d} ms  x={scroller_reflector._position_at(duration)}")
        print(f"finished: {scroller.is_finished()}")

        try:
            scroller_reflector.set_final_x("far away")  # type: ignore[arg-type]
        except TypeMismatchError as exc:
            print(f"rejected write: {exc}")
    finally:
        statics.set_clock(None)
    return 0


def _parse_args() -> argparse.Namespace:
    """Parse CLI arguments.

    :returns: Parsed arguments.
    """
    parser = argparse.ArgumentParser(description="Inspect a scroller's private state through a reflector.")
    parser.add_argument("--start-x", type=int, default=0, help="Starting offset.")
    parser.add_argument("--dx", type=int, default=400, help="Distance to scroll.")
    parser.add_argument("--duration", type=int, default=250, help="Scroll duration in milliseconds.")
    parser.add_argument("--verbose", action="store_true", help="Show pyreflector debug logging.")
    return parser.parse_args()


def main() -> int:
    """Run the demo.

    :returns: Process exit code.
    """
    repo_root: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
    _ensure_src_path(str(repo_root / "src"))
    args: argparse.Namespace = _parse_args()
    if args.verbose is True:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")
        logger.enable("pyreflector")
    return _run_demo(args.start_x, args.dx, args.duration)


if __name__ == "__main__":
    raise SystemExit(main())
