from urllib.parse import quote, urljoin, urlparse

from render_proxy.errors import MalformedReferenceError

ALLOWED_SCHEMES = ("http", "https")

# Characters JavaScript's encodeURIComponent leaves alone besides alphanumerics
_URI_COMPONENT_SAFE = "-_.!~*'()"


def is_valid_target_url(url) -> bool:
    """True when url is an absolute http(s) URL with a host."""
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.hostname:
        return False
    return not any(ch.isspace() or not ch.isprintable() for ch in parsed.netloc)


def origin_of(url: str) -> str:
    """scheme://host[:port] of an absolute URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def host_of(url: str) -> str:
    return urlparse(url).hostname or ""


def encode_uri_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def proxied_url(base: str, url: str) -> str:
    """Callback URL routing url back through the proxy endpoint at base."""
    return f"{base}?url={encode_uri_component(url)}"


def resolve(reference: str, base_url: str) -> str:
    """
    Resolve a reference found in content against the page it came from.

    Absolute references come back unchanged, protocol-relative ones inherit
    the scheme of base_url, root-relative ones are joined to its origin and
    anything else is resolved against its directory.
    """
    if reference.lower().startswith("data:"):
        raise MalformedReferenceError(reference, "data: URLs are never resolved")

    lowered = reference.lower()
    if lowered.startswith("http://") or lowered.startswith("https://"):
        absolute = reference
    elif reference.startswith("//"):
        absolute = f"{urlparse(base_url).scheme}:{reference}"
    elif reference.startswith("/"):
        absolute = f"{origin_of(base_url)}{reference}"
    else:
        if urlparse(base_url).path:
            base_dir = base_url[: base_url.rfind("/") + 1]
        else:
            base_dir = f"{origin_of(base_url)}/"
        try:
            absolute = urljoin(base_dir, reference)
        except ValueError as e:
            raise MalformedReferenceError(reference, str(e)) from e

    if not is_valid_target_url(absolute):
        raise MalformedReferenceError(reference)
    return absolute
