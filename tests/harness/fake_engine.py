"""Stand-in engine for lifecycle and reference-table tests.

Speaks the same wire protocol as the bundled dispatcher script: ``GET /ping``,
``POST /webpage/<operation>`` with ``{"ref": id, ...}``, 404 for unknown paths
or refs, 500 with the exception text for handler errors. The reference table
follows the same rules (identity dedup, monotonic ids, cascading close).

The host stages this file as the entry script and runs it with the current
interpreter, so it must stay self-contained.

Behaviour switches (environment):
    FAKE_ENGINE_MODE   ``serve`` (default), ``exit`` (exit 3 at once),
                       ``silent`` (never listen), ``slow`` (listen after a delay)
    FAKE_ENGINE_DELAY  seconds to wait in ``slow`` mode

Test-only triggers:
    open("fail:...")   navigation reports ``fail``
    open("hang:...")   the request never completes (announced on stdout first)
    evaluate("... window.open('', 'name') ...")   spawns an owned child page
    evaluate("throw ...")                         handler raises (500)
    POST /debug/refs   ``{"refs": [...]}``, the ids currently in the table
"""

import copy
import json
import os
import re
import sys
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer

WINDOW_OPEN = re.compile(r"""window\.open\([^,)]*(?:,\s*['"]([^'"]*)['"])?""")


class RefNotFound(Exception):
    pass


class Page:
    def __init__(self, window_name=""):
        self.props = {
            "content": "<html><head></head><body></body></html>",
            "plainText": "",
            "title": "",
            "url": "about:blank",
            "windowName": window_name,
            "frameContent": "<html><head></head><body></body></html>",
            "frameName": "",
            "framePlainText": "",
            "frameTitle": "",
            "frameURL": "about:blank",
            "frameCount": 0,
            "frameNames": [],
            "focusedFrameName": "",
            "navigationLocked": False,
            "ownsPages": True,
            "clipRect": {"top": 0, "left": 0, "width": 0, "height": 0},
            "scrollPosition": {"top": 0, "left": 0},
            "viewportSize": {"width": 400, "height": 300},
            "zoomFactor": 1,
            "paperSize": {},
            "customHeaders": {},
            "cookies": [],
            "libraryPath": os.getcwd(),
            "offlineStoragePath": "",
            "offlineStorageQuota": 5242880,
            "settings": {
                "javascriptEnabled": True,
                "loadImages": True,
                "localToRemoteUrlAccessEnabled": False,
                "userAgent": "FakeEngine/1.0",
                "XSSAuditingEnabled": False,
                "webSecurityEnabled": True,
                "resourceTimeout": 0,
            },
        }
        self.pages = []
        self.owner = None
        self.history = []
        self.position = -1
        self.closed = False

    def navigate(self, url):
        self.history = self.history[: self.position + 1] + [url]
        self.position = len(self.history) - 1
        self.show(url)

    def show(self, url):
        self.props["url"] = url
        self.props["title"] = url.rsplit("/", 1)[-1]


class Engine:
    def __init__(self):
        self.ref_id = 0
        self.refs = {}

    def create_ref(self, value):
        for ref_id, existing in self.refs.items():
            if existing is value:
                return {"id": ref_id}
        self.ref_id += 1
        ref_id = str(self.ref_id)
        self.refs[ref_id] = value
        return {"id": ref_id}

    def ref(self, ref_id):
        if not isinstance(ref_id, str) or ref_id not in self.refs:
            raise RefNotFound("ref not found: %s" % (ref_id,))
        return self.refs[ref_id]

    def delete_ref(self, value):
        for ref_id in [k for k, v in self.refs.items() if v is value]:
            del self.refs[ref_id]

    def close_page(self, page):
        for child in list(page.pages):
            self.close_page(child)
        if page.owner is not None and page in page.owner.pages:
            page.owner.pages.remove(page)
        self.delete_ref(page)
        page.closed = True

    def dispatch(self, path, msg):
        if path == "/debug/refs":
            return {"refs": sorted(self.refs, key=int)}
        if not path.startswith("/webpage/"):
            raise LookupError(path)
        op = path[len("/webpage/"):]

        if op == "create":
            return {"ref": self.create_ref(Page())}
        page = self.ref(msg.get("ref"))

        handler = getattr(self, "op_" + op, None)
        if handler is not None:
            return handler(page, msg)
        if op.startswith("set") and len(op) > 3:
            prop = op[3].lower() + op[4:]
            if prop in page.props:
                page.props[prop] = copy.deepcopy(msg.get("value"))
                return None
        if op in page.props:
            return {"value": copy.deepcopy(page.props[op])}
        if op in ("canGoBack", "canGoForward", "pageWindowNames"):
            return {"value": getattr(self, "_" + op)(page)}
        raise LookupError(path)

    def _canGoBack(self, page):
        return page.position > 0

    def _canGoForward(self, page):
        return page.position < len(page.history) - 1

    def _pageWindowNames(self, page):
        return [child.props["windowName"] for child in page.pages]

    def op_close(self, page, msg):
        self.close_page(page)

    def op_pages(self, page, msg):
        return {"refs": [self.create_ref(child) for child in page.pages]}

    def op_page(self, page, msg):
        for child in page.pages:
            if child.props["windowName"] == msg.get("name"):
                return {"ref": self.create_ref(child)}
        return {"ref": None}

    def op_open(self, page, msg):
        url = msg["url"]
        if url.startswith("hang:"):
            print("fake engine: hanging on %s" % url, flush=True)
            threading.Event().wait()
        if url.startswith("fail:"):
            return {"status": "fail"}
        page.navigate(url)
        return {"status": "success"}

    def op_reload(self, page, msg):
        return {"status": "success" if page.history else "fail"}

    def op_goBack(self, page, msg):
        return self.op_go(page, {"index": -1})

    def op_goForward(self, page, msg):
        return self.op_go(page, {"index": 1})

    def op_go(self, page, msg):
        target = page.position + int(msg["index"])
        if not 0 <= target < len(page.history):
            return {"status": "fail"}
        page.position = target
        page.show(page.history[target])
        return {"status": "success"}

    def op_stop(self, page, msg):
        return None

    def op_setContentAndURL(self, page, msg):
        page.props["content"] = msg["content"]
        page.show(msg["url"])

    def op_evaluate(self, page, msg):
        script = msg["script"]
        if script.lstrip().startswith("throw"):
            raise Exception(script.strip()[len("throw"):].strip().strip("'\";") or "error")
        match = WINDOW_OPEN.search(script)
        if match:
            child = Page(window_name=match.group(1) or "")
            if page.props["ownsPages"]:
                child.owner = page
                page.pages.append(child)
            return {"returnValue": None}
        if "document.title" in script:
            return {"returnValue": page.props["title"]}
        return {"returnValue": None}

    def op_evaluateAsync(self, page, msg):
        return None

    def op_includeJS(self, page, msg):
        return None

    def op_injectJS(self, page, msg):
        path = os.path.join(page.props["libraryPath"], msg["filename"])
        if not os.path.exists(path):
            raise Exception("unable to inject " + msg["filename"])

    def op_addCookie(self, page, msg):
        cookie = msg["value"]
        if not cookie.get("name"):
            return {"value": False}
        page.props["cookies"] = [c for c in page.props["cookies"] if c["name"] != cookie["name"]]
        page.props["cookies"].append(cookie)
        return {"value": True}

    def op_deleteCookie(self, page, msg):
        before = len(page.props["cookies"])
        page.props["cookies"] = [c for c in page.props["cookies"] if c["name"] != msg["name"]]
        return {"value": len(page.props["cookies"]) != before}

    def op_clearCookies(self, page, msg):
        page.props["cookies"] = []

    def op_render(self, page, msg):
        with open(msg["filename"], "wb") as fh:
            fh.write(b"\x89PNG\r\n\x1a\n")

    def op_renderBase64(self, page, msg):
        return {"value": "iVBORw0KGgo="}

    def op_sendMouseEvent(self, page, msg):
        return None

    def op_sendKeyboardEvent(self, page, msg):
        return None

    def op_uploadFile(self, page, msg):
        return None

    def op_switchToFrameName(self, page, msg):
        page.props["frameName"] = msg["name"]

    def op_switchToFramePosition(self, page, msg):
        return None

    def op_switchToMainFrame(self, page, msg):
        page.props["frameName"] = ""

    def op_switchToParentFrame(self, page, msg):
        page.props["frameName"] = ""

    def op_switchToFocusedFrame(self, page, msg):
        return None


ENGINE = Engine()


class Handler(BaseHTTPRequestHandler):
    def log_message(self, format, *args):
        pass

    def _send(self, status, body, content_type):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        if self.path == "/ping":
            self._send(200, b"ok", "text/plain")
        else:
            self._send(404, b"not found", "text/plain")

    def do_POST(self):
        length = int(self.headers.get("Content-Length") or 0)
        raw = self.rfile.read(length) if length else b""
        try:
            msg = json.loads(raw) if raw else {}
            result = ENGINE.dispatch(self.path, msg)
        except RefNotFound as exc:
            self._send(404, str(exc).encode(), "text/plain")
            return
        except LookupError:
            self._send(404, b"not found", "text/plain")
            return
        except Exception as exc:
            self._send(500, ("%s: %s" % (self.path, exc)).encode(), "text/plain")
            return
        if result is None:
            self._send(200, b"", "application/json")
        else:
            self._send(200, json.dumps(result).encode(), "application/json")


def main():
    mode = os.environ.get("FAKE_ENGINE_MODE", "serve")
    port = int(os.environ["PORT"])

    if mode == "exit":
        print("fake engine: refusing to start", file=sys.stderr, flush=True)
        sys.exit(3)
    if mode == "silent":
        threading.Event().wait()
    if mode == "slow":
        time.sleep(float(os.environ.get("FAKE_ENGINE_DELAY", "1")))

    server = HTTPServer(("127.0.0.1", port), Handler)
    print("fake engine: listening on 127.0.0.1:%d" % port, flush=True)
    print("fake engine: cwd %s" % os.getcwd(), file=sys.stderr, flush=True)
    server.serve_forever()


if __name__ == "__main__":
    main()
