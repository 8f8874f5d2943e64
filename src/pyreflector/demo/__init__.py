"""Demo modules for showcasing pyreflector behavior."""

from pyreflector.demo.scroller import Scroller
from pyreflector.demo.scroller import ScrollerConfig
from pyreflector.demo.scroller import ScrollerReflector

__all__: list[str] = ["Scroller", "ScrollerConfig", "ScrollerReflector"]
