"""
URL rewriting for HTML, CSS and JavaScript payloads.

Rewriting is regex based and best-effort. The HTML pass is not attribute
aware: any quoted or whitespace-delimited token that looks like a URL or an
absolute path is rewritten, including plain text that merely resembles a
path. Each rewriter makes a single pass so a proxied URL is never rewritten
a second time.
"""

import json
import logging
import re
from dataclasses import dataclass

from render_proxy.errors import MalformedReferenceError
from render_proxy.rewrite.normalizer import (
    encode_uri_component,
    origin_of,
    proxied_url,
    resolve,
)

logger = logging.getLogger("uvicorn.error")

# Absolute, protocol-relative, then root-relative; order matters for "//"
HTML_URL_PATTERN = re.compile(
    r"""(["'\s])(https?://[^"'\s]+|//[^"'\s]+|/[^"'\s>]+)""",
    re.IGNORECASE,
)
CSS_URL_PATTERN = re.compile(r"""url\(['"]?([^'")]+)['"]?\)""", re.IGNORECASE)
JS_URL_PATTERN = re.compile(r"""(["'])((?:https?:)?//[^"']+)(["'])""")

HEAD_OPEN_PATTERN = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
HEAD_CLOSE_PATTERN = re.compile(r"</head>", re.IGNORECASE)
BINARY_CONTENT_PATTERN = re.compile(
    r"^(?:image|audio|video)|^application/pdf", re.IGNORECASE
)

INTERCEPTOR_SCRIPT = """
<script>
  (function() {
    var proxyEndpoint = %(endpoint)s;
    var originalFetch = window.fetch;
    window.fetch = function(url, options) {
      try {
        var absoluteUrl = new URL(url, window.location.href).href;
        return originalFetch(proxyEndpoint + encodeURIComponent(absoluteUrl), options);
      } catch (e) {
        return originalFetch(url, options);
      }
    };
    var originalXhrOpen = XMLHttpRequest.prototype.open;
    XMLHttpRequest.prototype.open = function(method, url) {
      var rest = Array.prototype.slice.call(arguments, 2);
      try {
        var absoluteUrl = new URL(url, window.location.href).href;
        return originalXhrOpen.apply(this, [method, proxyEndpoint + encodeURIComponent(absoluteUrl)].concat(rest));
      } catch (e) {
        return originalXhrOpen.apply(this, arguments);
      }
    };
  })();
</script>
"""


@dataclass(frozen=True)
class RewriteContext:
    target_url: str
    target_origin: str
    proxy_base: str
    asset_base: str

    @classmethod
    def build(cls, target_url: str, proxy_base_address: str) -> "RewriteContext":
        return cls(
            target_url=target_url,
            target_origin=origin_of(target_url),
            proxy_base=f"{proxy_base_address}/",
            asset_base=f"{proxy_base_address}/asset",
        )


def classify_content_type(content_type: str) -> str:
    """Map a content type onto the rewriter that handles it."""
    content_type = content_type or ""
    if BINARY_CONTENT_PATTERN.search(content_type):
        return "binary"
    lowered = content_type.lower()
    if "html" in lowered:
        return "html"
    if "css" in lowered:
        return "css"
    if "javascript" in lowered:
        return "javascript"
    return "text"


def _rewrite_reference(reference: str, target_url: str, base: str):
    """Proxied form of reference, or None when it cannot be resolved."""
    try:
        return proxied_url(base, resolve(reference, target_url))
    except MalformedReferenceError as e:
        logger.debug(f"[Rewrite] Leaving reference unrewritten: {e.message}")
        return None


def rewrite_html(payload: str, target_url: str, proxy_base: str) -> str:
    """Rewrite URL-like tokens in markup to proxy_base?url=<absolute URL>."""
    if not payload:
        return payload

    def _replace(match: re.Match) -> str:
        rewritten = _rewrite_reference(match.group(2), target_url, proxy_base)
        if rewritten is None:
            return match.group(0)
        return f"{match.group(1)}{rewritten}"

    return HTML_URL_PATTERN.sub(_replace, payload)


def rewrite_css(payload: str, target_url: str, asset_base: str) -> str:
    """Rewrite url(...) references, leaving data: URLs untouched."""
    if not payload:
        return payload

    def _replace(match: re.Match) -> str:
        reference = match.group(1)
        if reference.startswith("data:"):
            return match.group(0)
        rewritten = _rewrite_reference(reference, target_url, asset_base)
        if rewritten is None:
            return match.group(0)
        return f'url("{rewritten}")'

    return CSS_URL_PATTERN.sub(_replace, payload)


def rewrite_js(payload: str, target_url: str, asset_base: str) -> str:
    """
    Rewrite quoted absolute and protocol-relative URL literals.

    Root-relative literals are left alone since they cannot be told apart
    from ordinary strings.
    """
    if not payload:
        return payload

    def _replace(match: re.Match) -> str:
        rewritten = _rewrite_reference(match.group(2), target_url, asset_base)
        if rewritten is None:
            return match.group(0)
        return f"{match.group(1)}{rewritten}{match.group(3)}"

    return JS_URL_PATTERN.sub(_replace, payload)


def interceptor_script(proxy_base_address: str) -> str:
    """Script redirecting runtime fetch/XHR calls through the page endpoint."""
    endpoint = json.dumps(f"{proxy_base_address}/?url=")
    return INTERCEPTOR_SCRIPT % {"endpoint": endpoint}


def finalize_html(
    rewritten: str, final_url: str, proxy_base_address: str
) -> str:
    """Inject the <base> tag (unless one exists) and the interceptor script."""
    if "<base" not in rewritten:
        base_href = f"{proxy_base_address}/?url={encode_uri_component(final_url)}"
        base_tag = f'<base href="{base_href}">'
        rewritten = HEAD_OPEN_PATTERN.sub(
            lambda m: f"{m.group(0)}{base_tag}", rewritten, count=1
        )
    script = interceptor_script(proxy_base_address)
    return HEAD_CLOSE_PATTERN.sub(
        lambda m: f"{script}{m.group(0)}", rewritten, count=1
    )


def rewrite_content(
    payload: str, content_type: str, final_url: str, proxy_base_address: str
) -> str:
    """Run the rewriter matching content_type over payload, once."""
    context = RewriteContext.build(final_url, proxy_base_address)
    category = classify_content_type(content_type)
    if category == "html":
        rewritten = rewrite_html(payload, context.target_url, context.proxy_base)
        return finalize_html(rewritten, context.target_url, proxy_base_address)
    if category == "css":
        return rewrite_css(payload, context.target_url, context.asset_base)
    if category == "javascript":
        return rewrite_js(payload, context.target_url, context.asset_base)
    return payload
