"""Value types exchanged with a web page.

Each type knows its engine (wire) representation through ``to_dict`` /
``from_dict``. Decoding fills absent fields with empty values so that an
empty structure written to the engine reads back equal to itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from enum import IntFlag
from typing import Any


class KeyModifier(IntFlag):
    """Keyboard modifiers understood by ``send_keyboard_event``."""

    NONE = 0
    SHIFT = 0x02000000
    CTRL = 0x04000000
    ALT = 0x08000000
    META = 0x10000000
    KEYPAD = 0x20000000


@dataclass
class Rect:
    """Rectangle in page coordinates (used for the clipping rectangle)."""

    top: int = 0
    left: int = 0
    width: int = 0
    height: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"top": self.top, "left": self.left, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rect:
        return cls(
            top=int(data.get("top") or 0),
            left=int(data.get("left") or 0),
            width=int(data.get("width") or 0),
            height=int(data.get("height") or 0),
        )


@dataclass
class Position:
    """Scroll offset of a page."""

    top: int = 0
    left: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"top": self.top, "left": self.left}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Position:
        return cls(top=int(data.get("top") or 0), left=int(data.get("left") or 0))


@dataclass
class PaperSizeMargin:
    top: str = ""
    bottom: str = ""
    left: str = ""
    right: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in vars(self).items() if v}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PaperSizeMargin:
        return cls(
            top=data.get("top") or "",
            bottom=data.get("bottom") or "",
            left=data.get("left") or "",
            right=data.get("right") or "",
        )


@dataclass
class PaperSize:
    """Sizing options used when rendering to PDF.

    Either ``width``/``height`` or ``format`` is set, e.g. ``PaperSize(format="A4")``.
    """

    width: str = ""
    height: str = ""
    format: str = ""
    orientation: str = ""
    margin: PaperSizeMargin | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for key in ("width", "height", "format", "orientation"):
            value = getattr(self, key)
            if value:
                data[key] = value
        if self.margin is not None:
            data["margin"] = self.margin.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PaperSize:
        margin = data.get("margin")
        return cls(
            width=data.get("width") or "",
            height=data.get("height") or "",
            format=data.get("format") or "",
            orientation=data.get("orientation") or "",
            margin=PaperSizeMargin.from_dict(margin) if isinstance(margin, dict) else None,
        )


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken as UTC, never as local time.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class Cookie:
    """An HTTP cookie as stored by the engine's cookie jar.

    ``raw_expires`` holds the engine's textual expiry and is filled in on read.
    """

    name: str
    value: str
    domain: str = ""
    path: str = ""
    expires: datetime | None = None
    raw_expires: str = ""
    http_only: bool = False
    secure: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "httponly": self.http_only,
            "secure": self.secure,
        }
        if self.expires is not None:
            expires = _as_utc(self.expires)
            data["expires"] = format_datetime(expires, usegmt=True)
            data["expiry"] = int(expires.timestamp())
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Cookie:
        expires: datetime | None = None
        if data.get("expiry"):
            expires = datetime.fromtimestamp(int(data["expiry"]), tz=timezone.utc)
        return cls(
            name=data.get("name") or "",
            value=data.get("value") or "",
            domain=data.get("domain") or "",
            path=data.get("path") or "",
            expires=expires,
            raw_expires=data.get("expires") or "",
            http_only=bool(data.get("httponly")),
            secure=bool(data.get("secure")),
        )


@dataclass
class WebPageSettings:
    """Per-page engine settings. ``resource_timeout`` is in seconds."""

    javascript_enabled: bool = False
    load_images: bool = False
    local_to_remote_url_access_enabled: bool = False
    user_agent: str = ""
    username: str = ""
    password: str = ""
    xss_auditing_enabled: bool = False
    web_security_enabled: bool = False
    resource_timeout: float = 0.0
    extra: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "javascriptEnabled": self.javascript_enabled,
            "loadImages": self.load_images,
            "localToRemoteUrlAccessEnabled": self.local_to_remote_url_access_enabled,
            "userAgent": self.user_agent,
            "userName": self.username,
            "password": self.password,
            "XSSAuditingEnabled": self.xss_auditing_enabled,
            "webSecurityEnabled": self.web_security_enabled,
            "resourceTimeout": int(round(self.resource_timeout * 1000)),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WebPageSettings:
        known = set(cls().to_dict())
        return cls(
            javascript_enabled=bool(data.get("javascriptEnabled")),
            load_images=bool(data.get("loadImages")),
            local_to_remote_url_access_enabled=bool(data.get("localToRemoteUrlAccessEnabled")),
            user_agent=data.get("userAgent") or "",
            username=data.get("userName") or "",
            password=data.get("password") or "",
            xss_auditing_enabled=bool(data.get("XSSAuditingEnabled")),
            web_security_enabled=bool(data.get("webSecurityEnabled")),
            resource_timeout=(data.get("resourceTimeout") or 0) / 1000,
            # Settings the engine reports that have no typed field yet.
            extra={k: v for k, v in data.items() if k not in known},
        )
