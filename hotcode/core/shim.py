"""Compatibility shim injected into the entry document of a served bundle.

The shim defines ``window.WebAppLocalServer`` so the web app has a stable
update-control API regardless of which host plugin backs it.
"""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

SHIM_MARKER = "data-hotcode-shim"

_HEAD_OPEN = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
_HTML_OPEN = re.compile(r"<html(?:\s[^>]*)?>", re.IGNORECASE)

_SHIM_TEMPLATE = """<script type="text/javascript" {marker}>
(function() {{
    if (window.WebAppLocalServer) {{ return; }}

    function plugin() {{
        var P = ((window.Capacitor || {{}}).Plugins || {{}}).{plugin_name};
        if (!P) {{
            throw new Error('WebAppLocalServer shim: {plugin_name} plugin not available');
        }}
        return P;
    }}

    window.WebAppLocalServer = {{
        startupDidComplete: function(callback) {{
            plugin().startupDidComplete()
                .then(function() {{ if (callback) callback(); }})
                .catch(function(error) {{ console.error('WebAppLocalServer.startupDidComplete() failed:', error); }});
        }},

        checkForUpdates: function(callback) {{
            plugin().checkForUpdates()
                .then(function() {{ if (callback) callback(); }})
                .catch(function(error) {{ console.error('WebAppLocalServer.checkForUpdates() failed:', error); }});
        }},

        onNewVersionReady: function(callback) {{
            plugin().addListener('updateAvailable', callback);
        }},

        switchToPendingVersion: function(callback, errorCallback) {{
            plugin().reload()
                .then(function() {{ if (callback) callback(); }})
                .catch(function(error) {{
                    console.error('switchToPendingVersion failed:', error);
                    if (typeof errorCallback === 'function') errorCallback(error);
                }});
        }},

        onError: function(callback) {{
            plugin().addListener('error', function(event) {{
                callback(new Error(event.message || 'Unknown {plugin_name} error'));
            }});
        }}
    }};
}})();
</script>
"""


def render_shim(plugin_name: str = "CapacitorMeteorWebApp") -> str:
    return _SHIM_TEMPLATE.format(marker=SHIM_MARKER, plugin_name=plugin_name)


def inject_shim(document: str, plugin_name: str = "CapacitorMeteorWebApp") -> str:
    """Insert the shim as early as possible in an HTML document.

    The shim goes right after the opening <head> tag, else right after <html>,
    else at the very start. Documents that already carry the shim are returned
    unchanged.
    """
    if SHIM_MARKER in document:
        return document

    shim = render_shim(plugin_name)
    for pattern, where in ((_HEAD_OPEN, "<head>"), (_HTML_OPEN, "<html>")):
        match = pattern.search(document)
        if match:
            logger.debug("Injecting shim after %s", where)
            return document[: match.end()] + shim + document[match.end():]

    logger.debug("Injecting shim at start of document (no html/head tags)")
    return shim + document
