"""Loopback addressing helpers for the engine's HTTP dispatcher."""

import socket

__all__ = ["LOOPBACK_HOST", "loopback_url", "find_free_port"]

LOOPBACK_HOST = "127.0.0.1"


def loopback_url(port: int) -> str:
    """Return the base URL of a dispatcher listening on *port*."""
    return f"http://{LOOPBACK_HOST}:{port}"


def find_free_port() -> int:
    """Ask the OS for an unused loopback TCP port.

    The port is released before returning, so another process may claim it
    first; the readiness check surfaces that as a failed open.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((LOOPBACK_HOST, 0))
        return int(sock.getsockname()[1])
