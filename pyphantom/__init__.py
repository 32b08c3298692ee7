"""
pyphantom - Drive a headless PhantomJS engine from Python over loopback RPC.

pyphantom starts a PhantomJS process with a small dispatcher script, waits until
it answers, and exposes the engine's ``webpage`` objects as Python objects. Each
method call is a JSON round trip to the dispatcher, which keeps the live objects
in a reference table keyed by opaque ids.

Key Features:
    - All-or-nothing process startup with readiness polling and full rollback
    - Typed facade over the PhantomJS ``webpage`` API
    - Stable object identity for pages reached through several paths
    - Cascading close of owned (popup) pages
    - Engine output forwarded to caller sinks or to logging

Basic Usage:
    >>> import pyphantom
    >>> with pyphantom.Process({"port": 0}) as process:
    ...     with process.create_web_page() as page:
    ...         page.open("https://example.com")
    ...         title = page.title()
"""

from .config import DEFAULT_BIN_PATH, DEFAULT_PORT, ProcessConfig
from .errors import (
    EngineError,
    LaunchError,
    NavigationError,
    NotFoundError,
    PhantomError,
    ProtocolError,
    ReadinessTimeoutError,
    TransportError,
)
from .process import Process
from .types import Cookie, KeyModifier, PaperSize, PaperSizeMargin, Position, Rect, WebPageSettings
from .webpage import WebPage

__version__ = "0.1.0"

__all__ = [
    "Process",
    "ProcessConfig",
    "WebPage",
    "DEFAULT_BIN_PATH",
    "DEFAULT_PORT",
    "Cookie",
    "KeyModifier",
    "PaperSize",
    "PaperSizeMargin",
    "Position",
    "Rect",
    "WebPageSettings",
    "PhantomError",
    "LaunchError",
    "ReadinessTimeoutError",
    "TransportError",
    "NotFoundError",
    "EngineError",
    "ProtocolError",
    "NavigationError",
]
