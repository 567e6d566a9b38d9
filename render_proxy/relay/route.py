import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from opentelemetry import trace

from render_proxy.browser.fetch_controller import wait_for_network_idle
from render_proxy.context import ProxyContext, get_proxy_context
from render_proxy.errors import InvalidInputError, UpstreamAssetError
from render_proxy.models import AssetErrorResponse, ErrorResponse
from render_proxy.rewrite.normalizer import is_valid_target_url, proxied_url
from render_proxy.rewrite.rewriters import classify_content_type, rewrite_content
from render_proxy.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from render_proxy.vars import SETTLE_IDLE_TIMEOUT_MS, TRUST_FORWARDED_HEADERS

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization, X-Requested-With",
    "Access-Control-Allow-Credentials": "true",
}

# Cleared on page responses so proxied content can be framed and embedded
SECURITY_HEADERS = [
    "x-frame-options",
    "content-security-policy",
    "permissions-policy",
    "strict-transport-security",
    "x-content-type-options",
    "feature-policy",
    "referrer-policy",
]

DEFAULT_ASSET_CONTENT_TYPE = "application/octet-stream"


def proxy_base_address(request: Request) -> str:
    """scheme://host under which the client reached this proxy."""
    scheme = request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    if TRUST_FORWARDED_HEADERS:
        scheme = request.headers.get("x-forwarded-proto", scheme).split(",")[0].strip()
        host = request.headers.get("x-forwarded-host", host).split(",")[0].strip()
    return f"{scheme}://{host}"


def page_response_headers() -> Dict[str, str]:
    headers = dict(CORS_HEADERS)
    for name in SECURITY_HEADERS:
        headers[name] = ""
    return headers


def validate_page_request(method: str, url: Optional[str]) -> str:
    if method != "GET":
        raise InvalidInputError("Only GET requests are allowed.", status_code=405)
    if not is_valid_target_url(url):
        raise InvalidInputError("Invalid URL.", status_code=400)
    return url


@router.api_route(
    "/", methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]
)
async def proxy_page(
    request: Request,
    url: Optional[str] = Query(None, description="Absolute http(s) URL to load"),
    context: ProxyContext = Depends(get_proxy_context),
):
    """Load a page through the renderer and return it with URLs rewritten."""
    if request.method == "OPTIONS":
        return Response(status_code=204, headers=CORS_HEADERS)

    try:
        target_url = validate_page_request(request.method, url)
    except InvalidInputError as e:
        logger.warning(f"[Relay] Rejected {request.method} request: {e.message}")
        return JSONResponse(
            status_code=e.status_code,
            content=ErrorResponse(message=e.message).model_dump(exclude_none=True),
            headers=CORS_HEADERS,
        )

    base = proxy_base_address(request)
    headers = page_response_headers()

    with tracer.start_as_current_span("proxy_page") as span:
        span.set_attribute("proxy.target_url", target_url)
        span.set_attribute("proxy.base", base)
        page = None
        try:
            page = await context.fetch_controller.fetch(target_url)
            await wait_for_network_idle(page.session, SETTLE_IDLE_TIMEOUT_MS)

            final_url = page.final_url
            if page.redirected:
                logger.info(f"[Relay] Redirected from {target_url} to {final_url}")

            content_type = page.content_type
            category = classify_content_type(content_type)
            span.set_attribute("proxy.content_type", content_type)
            span.set_attribute("proxy.category", category)

            if category == "binary":
                location = proxied_url(f"{base}/asset", final_url)
                logger.debug(f"[Relay] Binary content, redirecting to {location}")
                return RedirectResponse(location, status_code=302, headers=headers)

            if category == "html":
                body = await page.content()
            else:
                body = await page.body_text()

            processed = rewrite_content(body, content_type, final_url, base)
            span.set_attribute("proxy.status_code", 200)
            return Response(content=processed, media_type=content_type, headers=headers)

        except Exception as e:
            log_exception_with_details(
                logger, f"[Relay] Error fetching page {target_url}.", e
            )
            span.set_attribute("proxy.error", format_exception_message(e))
            span.set_attribute("proxy.status_code", 500)
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(
                    message="Failed to load page through proxy",
                    details=format_exception_message(e),
                    url=target_url,
                ).model_dump(),
                headers=headers,
            )
        finally:
            if page is not None:
                try:
                    await page.close()
                except Exception as e:
                    logger.debug(f"[Relay] Ignoring error while closing page: {e}")


@router.get("/asset")
async def proxy_asset(
    url: Optional[str] = Query(None, description="Absolute http(s) asset URL"),
    context: ProxyContext = Depends(get_proxy_context),
):
    """Serve a sub-resource from the cache, downloading it on a miss."""
    if not is_valid_target_url(url):
        return JSONResponse(
            status_code=400,
            content=AssetErrorResponse(error="Invalid asset URL").model_dump(
                exclude_none=True
            ),
            headers=CORS_HEADERS,
        )

    with tracer.start_as_current_span("proxy_asset") as span:
        span.set_attribute("asset.url", url)
        cached = context.asset_cache.get(url)
        span.set_attribute("asset.cache.hit", cached is not None)
        if cached is not None:
            return Response(
                content=cached.payload,
                media_type=cached.content_type or DEFAULT_ASSET_CONTENT_TYPE,
                headers=CORS_HEADERS,
            )

        try:
            asset = await context.asset_fetcher.fetch(url)
        except UpstreamAssetError as e:
            logger.error(f"[Asset] Asset fetch error for {url}: {e.message}")
            span.set_attribute("asset.error", e.message)
            return JSONResponse(
                status_code=502,
                content=AssetErrorResponse(
                    error="Failed to fetch asset", details=e.message
                ).model_dump(),
                headers=CORS_HEADERS,
            )

        context.asset_cache.put(url, asset.payload, asset.content_type)
        return Response(
            content=asset.payload,
            media_type=asset.content_type or DEFAULT_ASSET_CONTENT_TYPE,
            headers=CORS_HEADERS,
        )
