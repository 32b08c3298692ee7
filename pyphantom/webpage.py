"""Remote facade over a PhantomJS ``webpage`` object.

Every method is one round trip to ``/webpage/<operation>`` carrying the page's
ref id. Values are converted between the engine's JSON shapes and the types in
:mod:`pyphantom.types`.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import TYPE_CHECKING, Any, TypeVar, cast

from typing_extensions import Self

from ._internal.remote_handle import RemoteHandle
from ._internal.rpc_serialization import (
    ContentAndURLRequest,
    EvaluateAsyncRequest,
    EvaluateRequest,
    GoRequest,
    InjectRequest,
    KeyboardEventRequest,
    MouseEventRequest,
    NameRequest,
    OpenRequest,
    PageResponse,
    PagesResponse,
    PositionRequest,
    RenderBase64Request,
    RenderRequest,
    ReturnValueResponse,
    ScriptURLRequest,
    StatusResponse,
    UploadFileRequest,
    ValueRequest,
    ValueResponse,
    expect_field,
    expect_str_list,
    parse_ref,
)
from .errors import NavigationError, NotFoundError, ProtocolError
from .types import Cookie, KeyModifier, PaperSize, Position, Rect, WebPageSettings

if TYPE_CHECKING:
    from .process import Process

__all__ = ["WebPage"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

NAVIGATION_SUCCESS = "success"


class WebPage:
    """A page living in the engine process.

    Instances are created by :meth:`Process.create_web_page` or discovered
    through :meth:`pages` / :meth:`page`; the same engine page is always
    represented by the same ``WebPage`` object.
    """

    def __init__(self, process: Process, handle: RemoteHandle) -> None:
        self._process = process
        self._handle = handle

    @property
    def handle(self) -> RemoteHandle:
        return self._handle

    @property
    def id(self) -> str:
        return self._handle.ref_id

    @property
    def closed(self) -> bool:
        return self._handle.closed

    # ------------------------------------------------------------------
    # Call helpers
    # ------------------------------------------------------------------

    def _call(self, operation: str, request: Any = None) -> dict[str, Any]:
        return self._handle.call(operation, request)

    def _get(self, operation: str, expected: type[T] | tuple[type, ...], *, optional: bool = False) -> T:
        response = cast(ValueResponse, self._call(operation))
        return expect_field(response, "value", expected, path=self._path(operation), optional=optional)

    def _set(self, operation: str, value: Any) -> None:
        request: ValueRequest = {"ref": self.id, "value": value}
        self._call(operation, request)

    def _navigate(self, operation: str, request: Any = None, url: str | None = None) -> None:
        response = cast(StatusResponse, self._call(operation, request))
        status = expect_field(response, "status", str, path=self._path(operation))
        if status != NAVIGATION_SUCCESS:
            raise NavigationError(status, url=url)
        logger.debug("Page %s: %s completed", self.id, operation)

    def _path(self, operation: str) -> str:
        return f"/webpage/{operation}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the page and every page it owns.

        The facade and its owned pages are invalid afterwards even if the engine
        reports that the page was already gone.
        """
        try:
            self._call("close")
        except NotFoundError:
            self._process._pages.release(self.id)
            raise
        released = self._process._pages.release(self.id)
        logger.debug("Page %s closed (%d handle(s) released)", self.id, len(released))

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if not self.closed:
            self.close()

    # ------------------------------------------------------------------
    # Content & identity
    # ------------------------------------------------------------------

    def content(self) -> str:
        return self._get("content", str, optional=True) or ""

    def set_content(self, html: str) -> None:
        self._set("setContent", html)

    def set_content_and_url(self, html: str, url: str) -> None:
        """Set the page content and the URL it is considered to be loaded from."""
        request: ContentAndURLRequest = {"ref": self.id, "content": html, "url": url}
        self._call("setContentAndURL", request)

    def plain_text(self) -> str:
        return self._get("plainText", str, optional=True) or ""

    def title(self) -> str:
        return self._get("title", str, optional=True) or ""

    def url(self) -> str:
        return self._get("url", str, optional=True) or ""

    def window_name(self) -> str:
        return self._get("windowName", str, optional=True) or ""

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    def frame_content(self) -> str:
        return self._get("frameContent", str, optional=True) or ""

    def set_frame_content(self, html: str) -> None:
        self._set("setFrameContent", html)

    def frame_name(self) -> str:
        return self._get("frameName", str, optional=True) or ""

    def frame_plain_text(self) -> str:
        return self._get("framePlainText", str, optional=True) or ""

    def frame_title(self) -> str:
        return self._get("frameTitle", str, optional=True) or ""

    def frame_url(self) -> str:
        return self._get("frameURL", str, optional=True) or ""

    def frame_count(self) -> int:
        return self._get("frameCount", int)

    def frame_names(self) -> list[str]:
        return expect_str_list(self._call("frameNames"), "value", path=self._path("frameNames"))

    def focused_frame_name(self) -> str:
        return self._get("focusedFrameName", str, optional=True) or ""

    def switch_to_frame_name(self, name: str) -> None:
        request: NameRequest = {"ref": self.id, "name": name}
        self._call("switchToFrameName", request)

    def switch_to_frame_position(self, position: int) -> None:
        request: PositionRequest = {"ref": self.id, "position": position}
        self._call("switchToFramePosition", request)

    def switch_to_main_frame(self) -> None:
        self._call("switchToMainFrame")

    def switch_to_parent_frame(self) -> None:
        self._call("switchToParentFrame")

    def switch_to_focused_frame(self) -> None:
        self._call("switchToFocusedFrame")

    # ------------------------------------------------------------------
    # History & navigation
    # ------------------------------------------------------------------

    def can_go_back(self) -> bool:
        return self._get("canGoBack", bool)

    def can_go_forward(self) -> bool:
        return self._get("canGoForward", bool)

    def open(self, url: str) -> None:
        """Load *url* and block until the engine reports the load status.

        Raises:
            NavigationError: The load finished with a status other than ``success``.
        """
        request: OpenRequest = {"ref": self.id, "url": url}
        self._navigate("open", request, url=url)

    def reload(self) -> None:
        self._navigate("reload")

    def go_back(self) -> None:
        self._navigate("goBack")

    def go_forward(self) -> None:
        self._navigate("goForward")

    def go(self, index: int) -> None:
        """Navigate *index* steps through history (negative goes back)."""
        request: GoRequest = {"ref": self.id, "index": index}
        self._navigate("go", request)

    def stop(self) -> None:
        self._call("stop")

    def navigation_locked(self) -> bool:
        return self._get("navigationLocked", bool)

    def set_navigation_locked(self, value: bool) -> None:
        self._set("setNavigationLocked", value)

    # ------------------------------------------------------------------
    # Child pages
    # ------------------------------------------------------------------

    def owns_pages(self) -> bool:
        return self._get("ownsPages", bool)

    def set_owns_pages(self, value: bool) -> None:
        self._set("setOwnsPages", value)

    def page_window_names(self) -> list[str]:
        return expect_str_list(self._call("pageWindowNames"), "value", path=self._path("pageWindowNames"))

    def pages(self) -> list[WebPage]:
        """Return the child pages (popups) owned by this page."""
        path = self._path("pages")
        response = cast(PagesResponse, self._call("pages"))
        refs = expect_field(response, "refs", list, path=path)
        children = []
        for encoded in refs:
            child = self._process._adopt_page(parse_ref(encoded, path=path))
            self._process._pages.link(self.id, child.id)
            children.append(child)
        return children

    def page(self, name: str) -> WebPage | None:
        """Return the owned page whose window name is *name*, if any."""
        path = self._path("page")
        request: NameRequest = {"ref": self.id, "name": name}
        response = cast(PageResponse, self._call("page", request))
        encoded = expect_field(response, "ref", dict, path=path, optional=True)
        if encoded is None:
            return None
        child = self._process._adopt_page(parse_ref(encoded, path=path))
        self._process._pages.link(self.id, child.id)
        return child

    # ------------------------------------------------------------------
    # Cookies & headers
    # ------------------------------------------------------------------

    def cookies(self) -> list[Cookie]:
        values = self._get("cookies", list, optional=True) or []
        return [Cookie.from_dict(value) for value in values]

    def set_cookies(self, cookies: list[Cookie]) -> None:
        self._set("setCookies", [cookie.to_dict() for cookie in cookies])

    def add_cookie(self, cookie: Cookie) -> bool:
        """Add *cookie* to the page's jar. Returns False if the engine rejected it."""
        request: ValueRequest = {"ref": self.id, "value": cookie.to_dict()}
        return expect_field(self._call("addCookie", request), "value", bool, path=self._path("addCookie"))

    def delete_cookie(self, name: str) -> bool:
        request: NameRequest = {"ref": self.id, "name": name}
        return expect_field(self._call("deleteCookie", request), "value", bool, path=self._path("deleteCookie"))

    def clear_cookies(self) -> None:
        self._call("clearCookies")

    def custom_headers(self) -> dict[str, str]:
        return dict(self._get("customHeaders", dict, optional=True) or {})

    def set_custom_headers(self, headers: dict[str, str]) -> None:
        self._set("setCustomHeaders", dict(headers))

    # ------------------------------------------------------------------
    # Geometry & rendering
    # ------------------------------------------------------------------

    def clip_rect(self) -> Rect:
        return Rect.from_dict(self._get("clipRect", dict, optional=True) or {})

    def set_clip_rect(self, rect: Rect) -> None:
        self._set("setClipRect", rect.to_dict())

    def scroll_position(self) -> Position:
        return Position.from_dict(self._get("scrollPosition", dict, optional=True) or {})

    def set_scroll_position(self, position: Position) -> None:
        self._set("setScrollPosition", position.to_dict())

    def viewport_size(self) -> tuple[int, int]:
        """Return the viewport as ``(width, height)``."""
        value = self._get("viewportSize", dict, optional=True) or {}
        try:
            return int(value.get("width") or 0), int(value.get("height") or 0)
        except (TypeError, ValueError) as exc:
            raise ProtocolError(f"{self._path('viewportSize')}: malformed size {value!r}") from exc

    def set_viewport_size(self, width: int, height: int) -> None:
        self._set("setViewportSize", {"width": width, "height": height})

    def zoom_factor(self) -> float:
        return self._get("zoomFactor", float)

    def set_zoom_factor(self, factor: float) -> None:
        self._set("setZoomFactor", factor)

    def paper_size(self) -> PaperSize:
        return PaperSize.from_dict(self._get("paperSize", dict, optional=True) or {})

    def set_paper_size(self, size: PaperSize) -> None:
        self._set("setPaperSize", size.to_dict())

    def render(self, filename: str, format: str = "png", quality: int = -1) -> None:
        """Render the page to *filename*.

        Relative paths resolve against the process's private directory.

        Args:
            filename: Output file.
            format: ``png``, ``gif``, ``jpeg`` or ``pdf``.
            quality: Image quality 0-100; ``-1`` uses the engine default.
        """
        request: RenderRequest = {"ref": self.id, "filename": filename, "format": format, "quality": quality}
        self._call("render", request)

    def render_base64(self, format: str = "png") -> str:
        request: RenderBase64Request = {"ref": self.id, "format": format}
        response = self._call("renderBase64", request)
        return expect_field(response, "value", str, path=self._path("renderBase64"))

    # ------------------------------------------------------------------
    # Settings & storage
    # ------------------------------------------------------------------

    def settings(self) -> WebPageSettings:
        return WebPageSettings.from_dict(self._get("settings", dict, optional=True) or {})

    def set_settings(self, settings: WebPageSettings) -> None:
        self._set("setSettings", settings.to_dict())

    def library_path(self) -> str:
        return self._get("libraryPath", str, optional=True) or ""

    def set_library_path(self, path: str) -> None:
        self._set("setLibraryPath", path)

    def offline_storage_path(self) -> str:
        return self._get("offlineStoragePath", str, optional=True) or ""

    def offline_storage_quota(self) -> int:
        return self._get("offlineStorageQuota", int)

    # ------------------------------------------------------------------
    # Scripting
    # ------------------------------------------------------------------

    def evaluate(self, script: str) -> Any:
        """Evaluate a function expression in the page and return its JSON result.

        ``script`` is the source of a function, e.g. ``"function() { return document.title; }"``.
        """
        request: EvaluateRequest = {"ref": self.id, "script": script}
        response = cast(ReturnValueResponse, self._call("evaluate", request))
        if "returnValue" not in response:
            raise ProtocolError(f"{self._path('evaluate')}: response is missing 'returnValue': {response!r}")
        return response["returnValue"]

    evaluate_javascript = evaluate

    def evaluate_async(self, script: str, delay: float = 0.0) -> None:
        """Schedule *script* to run in the page after *delay* seconds."""
        request: EvaluateAsyncRequest = {"ref": self.id, "script": script, "delay": int(delay * 1000)}
        self._call("evaluateAsync", request)

    def include_js(self, url: str) -> None:
        """Load the script at *url* into the page and wait until it has run."""
        request: ScriptURLRequest = {"ref": self.id, "url": url}
        self._call("includeJS", request)

    def inject_js(self, filename: str) -> None:
        """Inject a local script; relative paths resolve against the library path."""
        request: InjectRequest = {"ref": self.id, "filename": filename}
        self._call("injectJS", request)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def send_mouse_event(self, event_type: str, x: int, y: int, button: str = "left") -> None:
        request: MouseEventRequest = {
            "ref": self.id,
            "eventType": event_type,
            "mouseX": x,
            "mouseY": y,
            "button": button,
        }
        self._call("sendMouseEvent", request)

    def send_keyboard_event(
        self,
        event_type: str,
        key: str | int,
        modifier: KeyModifier | int = KeyModifier.NONE,
    ) -> None:
        request: KeyboardEventRequest = {
            "ref": self.id,
            "eventType": event_type,
            "key": key,
            "modifier": int(modifier),
        }
        self._call("sendKeyboardEvent", request)

    def upload_file(self, selector: str, filename: str) -> None:
        request: UploadFileRequest = {"ref": self.id, "selector": selector, "filename": filename}
        self._call("uploadFile", request)

    def __repr__(self) -> str:
        state = "closed" if self.closed else "live"
        return f"<WebPage id={self.id} {state}>"
