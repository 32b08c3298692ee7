"""Engine-side bootstrap for pyphantom.

The engine runs a single entry script, staged by the host into the process's
private directory. The bundled script is the dispatcher: a loopback HTTP server
that routes ``/<kind>/<operation>`` to handlers and owns the reference table
(ref id -> live engine object).

Reference table rules enforced here:

- a new ref is only minted after scanning for the same object, so an object
  reachable through several paths always has one id;
- ids come from a counter and are never reused within the process lifetime;
- closing a page closes and dereferences its owned pages first;
- an id absent from the table answers 404, the same as an unknown path.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

ENTRY_SCRIPT_NAME = "shim.js"

SHIM = r"""
var system = require('system');
var webpage = require('webpage');
var webserver = require('webserver');

/*
 * REFS
 */

var refID = 0;
var refs = {};

function RefNotFound(id) {
	this.message = 'ref not found: ' + id;
}

// Returns the existing ref for value, or registers it under a new id.
function createRef(value) {
	for (var id in refs) {
		if (refs.hasOwnProperty(id) && refs[id] === value) {
			return {id: id};
		}
	}
	refID++;
	var newID = refID.toString();
	refs[newID] = value;
	return {id: newID};
}

function ref(id) {
	if (typeof id !== 'string' || !refs.hasOwnProperty(id)) {
		throw new RefNotFound(id);
	}
	return refs[id];
}

function deleteRef(value) {
	for (var id in refs) {
		if (refs.hasOwnProperty(id) && refs[id] === value) {
			delete refs[id];
		}
	}
}

// Closes owned pages depth-first, then the page itself.
function closePage(page) {
	var children = page.pages || [];
	for (var i = 0; i < children.length; i++) {
		closePage(children[i]);
	}
	deleteRef(page);
	page.close();
}

/*
 * HTTP API
 */

function reply(response, body) {
	response.statusCode = 200;
	if (body !== undefined) {
		response.setHeader('Content-Type', 'application/json');
		response.write(JSON.stringify(body));
	}
	response.closeGracefully();
}

function fail(response, url, e) {
	if (e instanceof RefNotFound) {
		response.statusCode = 404;
		response.write(e.message);
	} else {
		response.statusCode = 500;
		response.write(url + ': ' + (e && e.message ? e.message : String(e)));
	}
	response.closeGracefully();
}

function getter(prop) {
	return function(msg, response) {
		var value = ref(msg.ref)[prop];
		reply(response, {value: value === undefined ? null : value});
	};
}

function setter(prop) {
	return function(msg, response) {
		ref(msg.ref)[prop] = msg.value;
		reply(response);
	};
}

// Replies with the load status once the navigation started by start() finishes.
function navigate(page, response, start) {
	page.onLoadFinished = function(status) {
		page.onLoadFinished = null;
		reply(response, {status: status});
	};
	var started;
	try {
		started = start();
	} catch (e) {
		page.onLoadFinished = null;
		throw e;
	}
	if (started === false) {
		page.onLoadFinished = null;
		reply(response, {status: 'fail'});
	}
}

var routes = {
	'/webpage/create': function(msg, response) {
		reply(response, {ref: createRef(webpage.create())});
	},
	'/webpage/close': function(msg, response) {
		closePage(ref(msg.ref));
		reply(response);
	},

	'/webpage/canGoBack': getter('canGoBack'),
	'/webpage/canGoForward': getter('canGoForward'),
	'/webpage/clipRect': getter('clipRect'),
	'/webpage/setClipRect': setter('clipRect'),
	'/webpage/content': getter('content'),
	'/webpage/setContent': setter('content'),
	'/webpage/cookies': getter('cookies'),
	'/webpage/setCookies': setter('cookies'),
	'/webpage/customHeaders': getter('customHeaders'),
	'/webpage/setCustomHeaders': setter('customHeaders'),
	'/webpage/focusedFrameName': getter('focusedFrameName'),
	'/webpage/frameContent': getter('frameContent'),
	'/webpage/setFrameContent': setter('frameContent'),
	'/webpage/frameName': getter('frameName'),
	'/webpage/framePlainText': getter('framePlainText'),
	'/webpage/frameTitle': getter('frameTitle'),
	'/webpage/frameURL': getter('frameUrl'),
	'/webpage/frameCount': getter('framesCount'),
	'/webpage/frameNames': getter('framesName'),
	'/webpage/libraryPath': getter('libraryPath'),
	'/webpage/setLibraryPath': setter('libraryPath'),
	'/webpage/navigationLocked': getter('navigationLocked'),
	'/webpage/setNavigationLocked': setter('navigationLocked'),
	'/webpage/offlineStoragePath': getter('offlineStoragePath'),
	'/webpage/offlineStorageQuota': getter('offlineStorageQuota'),
	'/webpage/ownsPages': getter('ownsPages'),
	'/webpage/setOwnsPages': setter('ownsPages'),
	'/webpage/pageWindowNames': getter('pagesWindowName'),
	'/webpage/paperSize': getter('paperSize'),
	'/webpage/setPaperSize': setter('paperSize'),
	'/webpage/plainText': getter('plainText'),
	'/webpage/scrollPosition': getter('scrollPosition'),
	'/webpage/setScrollPosition': setter('scrollPosition'),
	'/webpage/settings': getter('settings'),
	'/webpage/setSettings': setter('settings'),
	'/webpage/title': getter('title'),
	'/webpage/url': getter('url'),
	'/webpage/viewportSize': getter('viewportSize'),
	'/webpage/setViewportSize': setter('viewportSize'),
	'/webpage/windowName': getter('windowName'),
	'/webpage/zoomFactor': getter('zoomFactor'),
	'/webpage/setZoomFactor': setter('zoomFactor'),

	'/webpage/pages': function(msg, response) {
		var pages = ref(msg.ref).pages || [];
		reply(response, {refs: pages.map(function(p) { return createRef(p); })});
	},
	'/webpage/page': function(msg, response) {
		var child = ref(msg.ref).getPage(msg.name);
		reply(response, {ref: child ? createRef(child) : null});
	},

	'/webpage/addCookie': function(msg, response) {
		reply(response, {value: ref(msg.ref).addCookie(msg.value)});
	},
	'/webpage/deleteCookie': function(msg, response) {
		reply(response, {value: ref(msg.ref).deleteCookie(msg.name)});
	},
	'/webpage/clearCookies': function(msg, response) {
		ref(msg.ref).clearCookies();
		reply(response);
	},

	'/webpage/evaluate': function(msg, response) {
		var value = ref(msg.ref).evaluateJavaScript(msg.script);
		reply(response, {returnValue: value === undefined ? null : value});
	},
	'/webpage/evaluateAsync': function(msg, response) {
		ref(msg.ref).evaluateAsync(msg.script, msg.delay);
		reply(response);
	},
	'/webpage/includeJS': function(msg, response) {
		ref(msg.ref).includeJs(msg.url, function() { reply(response); });
	},
	'/webpage/injectJS': function(msg, response) {
		if (!ref(msg.ref).injectJs(msg.filename)) {
			throw new Error('unable to inject ' + msg.filename);
		}
		reply(response);
	},

	'/webpage/open': function(msg, response) {
		var page = ref(msg.ref);
		page.open(msg.url, function(status) {
			reply(response, {status: status});
		});
	},
	'/webpage/reload': function(msg, response) {
		var page = ref(msg.ref);
		navigate(page, response, function() { page.reload(); });
	},
	'/webpage/goBack': function(msg, response) {
		var page = ref(msg.ref);
		if (!page.canGoBack) return reply(response, {status: 'fail'});
		navigate(page, response, function() { return page.goBack(); });
	},
	'/webpage/goForward': function(msg, response) {
		var page = ref(msg.ref);
		if (!page.canGoForward) return reply(response, {status: 'fail'});
		navigate(page, response, function() { return page.goForward(); });
	},
	'/webpage/go': function(msg, response) {
		var page = ref(msg.ref);
		navigate(page, response, function() { return page.go(msg.index); });
	},
	'/webpage/stop': function(msg, response) {
		ref(msg.ref).stop();
		reply(response);
	},

	'/webpage/render': function(msg, response) {
		ref(msg.ref).render(msg.filename, {format: msg.format, quality: msg.quality});
		reply(response);
	},
	'/webpage/renderBase64': function(msg, response) {
		reply(response, {value: ref(msg.ref).renderBase64(msg.format)});
	},

	'/webpage/sendMouseEvent': function(msg, response) {
		ref(msg.ref).sendEvent(msg.eventType, msg.mouseX, msg.mouseY, msg.button);
		reply(response);
	},
	'/webpage/sendKeyboardEvent': function(msg, response) {
		ref(msg.ref).sendEvent(msg.eventType, msg.key, null, null, msg.modifier);
		reply(response);
	},
	'/webpage/setContentAndURL': function(msg, response) {
		ref(msg.ref).setContent(msg.content, msg.url);
		reply(response);
	},
	'/webpage/uploadFile': function(msg, response) {
		ref(msg.ref).uploadFile(msg.selector, msg.filename);
		reply(response);
	},

	'/webpage/switchToFocusedFrame': function(msg, response) {
		ref(msg.ref).switchToFocusedFrame();
		reply(response);
	},
	'/webpage/switchToFrameName': function(msg, response) {
		ref(msg.ref).switchToFrame(msg.name);
		reply(response);
	},
	'/webpage/switchToFramePosition': function(msg, response) {
		ref(msg.ref).switchToFrame(msg.position);
		reply(response);
	},
	'/webpage/switchToMainFrame': function(msg, response) {
		ref(msg.ref).switchToMainFrame();
		reply(response);
	},
	'/webpage/switchToParentFrame': function(msg, response) {
		ref(msg.ref).switchToParentFrame();
		reply(response);
	}
};

var server = webserver.create();
var listening = server.listen('127.0.0.1:' + system.env['PORT'], function(request, response) {
	if (request.url === '/ping') {
		response.statusCode = 200;
		response.write('ok');
		response.closeGracefully();
		return;
	}

	var handler = routes.hasOwnProperty(request.url) ? routes[request.url] : null;
	if (!handler) {
		response.statusCode = 404;
		response.write('not found');
		response.closeGracefully();
		return;
	}

	try {
		handler(request.post ? JSON.parse(request.post) : {}, response);
	} catch (e) {
		fail(response, request.url, e);
	}
});

if (!listening) {
	console.error('unable to listen on port ' + system.env['PORT']);
	phantom.exit(1);
}
"""


def stage_bootstrap(directory: Path, source: str = SHIM) -> Path:
    """Write the entry script into *directory* and return its path.

    The file is created exclusively and readable only by the current user.
    """
    path = Path(directory) / ENTRY_SCRIPT_NAME
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(source)
    logger.debug("Staged entry script %s (%d bytes)", path, len(source))
    return path
