"""
RPC Serialization Layer & Data Structures.

This module contains:
1. Wire structures: one TypedDict per request/response shape used by the dispatcher
2. Decoding helpers that turn loose JSON bodies into typed values or raise ProtocolError
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, TypedDict, TypeVar, cast

from ..errors import ProtocolError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Wire structures
# ---------------------------------------------------------------------------

class RefJSON(TypedDict):
    """Encoded handle as issued by the dispatcher's reference table."""
    id: str


class RefRequest(TypedDict):
    ref: str


class ValueRequest(RefRequest):
    value: Any


class OpenRequest(RefRequest):
    url: str


class GoRequest(RefRequest):
    index: int


class NameRequest(RefRequest):
    name: str


class PositionRequest(RefRequest):
    position: int


class ContentAndURLRequest(RefRequest):
    content: str
    url: str


class EvaluateRequest(RefRequest):
    script: str


class EvaluateAsyncRequest(EvaluateRequest):
    delay: int


class ScriptURLRequest(RefRequest):
    url: str


class InjectRequest(RefRequest):
    filename: str


class RenderRequest(RefRequest):
    filename: str
    format: str
    quality: int


class RenderBase64Request(RefRequest):
    format: str


class MouseEventRequest(RefRequest):
    eventType: str
    mouseX: int
    mouseY: int
    button: str


class KeyboardEventRequest(RefRequest):
    eventType: str
    key: str | int
    modifier: int


class UploadFileRequest(RefRequest):
    selector: str
    filename: str


class CreateResponse(TypedDict):
    ref: RefJSON


class PageResponse(TypedDict):
    ref: RefJSON | None


class PagesResponse(TypedDict):
    refs: list[RefJSON]


class ValueResponse(TypedDict):
    value: Any


class StatusResponse(TypedDict):
    status: str


class ReturnValueResponse(TypedDict):
    returnValue: Any


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_body(path: str, body: bytes) -> dict[str, Any]:
    """Decode a response body into a JSON object.

    An empty body decodes to an empty dict; operations without a result reply
    with no content.
    """
    if not body.strip():
        return {}
    try:
        decoded = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"{path}: response is not valid JSON: {exc}") from exc
    if not isinstance(decoded, dict):
        raise ProtocolError(f"{path}: expected a JSON object, got {type(decoded).__name__}")
    return decoded


def expect_field(
    response: Mapping[str, Any],
    key: str,
    expected: type[T] | tuple[type, ...],
    *,
    path: str,
    optional: bool = False,
) -> T:
    """Return ``response[key]`` after checking its type.

    ``bool`` is rejected where a number is expected, since JSON keeps them apart.

    Raises:
        ProtocolError: If the key is missing (and not *optional*) or has the wrong type.
    """
    if key not in response or response[key] is None:
        if optional:
            return cast(T, None)
        raise ProtocolError(f"{path}: response is missing {key!r}: {response!r}")

    value = response[key]
    numeric = expected in (int, float) or (isinstance(expected, tuple) and bool({int, float} & set(expected)))
    if isinstance(value, bool) and numeric and expected is not bool:
        raise ProtocolError(f"{path}: {key!r} should be a number, got {value!r}")
    if expected is float and isinstance(value, int):
        return cast(T, float(value))
    if not isinstance(value, expected):
        raise ProtocolError(
            f"{path}: {key!r} has type {type(value).__name__}, expected "
            f"{getattr(expected, '__name__', expected)}"
        )
    return cast(T, value)


def parse_ref(value: Any, *, path: str) -> str:
    """Extract the handle id from an encoded ``{"id": "..."}`` reference."""
    if not isinstance(value, dict) or not isinstance(value.get("id"), str) or not value["id"]:
        raise ProtocolError(f"{path}: malformed ref {value!r}")
    return cast(str, value["id"])


def expect_str_list(response: Mapping[str, Any], key: str, *, path: str) -> list[str]:
    items = expect_field(response, key, list, path=path)
    if not all(isinstance(item, str) for item in items):
        raise ProtocolError(f"{path}: {key!r} should only contain strings: {items!r}")
    return list(items)
