# cybersuite/scanner/engines/http_engine.py
"""
Website fetch engine.

Fetches one URL the way a browser would (HEAD to warm up, then GET as the
source of truth), following redirects, and hands the response headers to
the header classifier.

Every request, including each redirect hop, is checked against the SSRF
guard before it is sent: a redirect to a private address aborts the fetch
with BlockedTargetError.

Outcomes:
    complete          normal response (any status code but 403)
    limited           403, timeout, connection reset or TLS failure.
                      Usually a WAF/CDN in front of the site; headers are
                      not trustworthy so header findings are suppressed.
    UNREACHABLE_HOST  DNS failure or connection refused (UnreachableHostError)
    fetch_failed      anything else (FetchError)

Output data structure (stored in EngineResult.data):
    {
        "scan_status": "complete",
        "scan_limit_reason": None,
        "active_protection": False,
        "original_url": "example.com",
        "final_url": "https://example.com/",
        "protocol_used": "https",
        "https": True,
        "host": "example.com",
        "port": 443,
        "status_code": 200,
        "redirect_chain": ["http://example.com/", "https://example.com/"],
        "headers": {"server": "nginx/1.18.0", ...},          # single value per name
        "raw_headers": {"server": "nginx/1.18.0", "set-cookie": [...], ...},
        "headers_classified": [HeaderClassification dicts],
        "header_exposures": [HeaderExposure dicts],
        "csp_meta": None,
    }
"""

from __future__ import annotations

import logging
import re
import ssl
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

import httpx

from cybersuite.scanner.analyzers.header_analyzer import classify_headers, detect_header_exposures
from cybersuite.scanner.base import BaseEngine, EngineResult, ScanContext
from cybersuite.scanner.target import TargetError, UnresolvableHostError, resolve_target

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; CybersuiteBot/1.0)"
HEAD_TIMEOUT = 15
GET_TIMEOUT = 30
MAX_REDIRECTS = 10
MAX_BODY_SCAN = 65536

LIMITATIONS: List[str] = [
    "CDN-based sites may rotate headers by region",
    "Bot protection may alter response headers",
    "Some headers may vary by request method or User-Agent",
    "TLS results reflect the handshakes this scanner could negotiate",
]

BLOCKED_REASON = "Target actively blocks automated scanning (WAF/CDN detected)"
TIMEOUT_REASON = "Server did not respond in time (timeout) or rate-limited"

CSP_META_RE = re.compile(
    r"""<meta\s+http-equiv\s*=\s*["']?Content-Security-Policy["']?\s+content\s*=\s*(["'])(.*?)\1""",
    re.IGNORECASE,
)

SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")

DNS_ERROR_MARKERS = ("name or service not known", "nodename nor servname", "getaddrinfo", "no address associated")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class FetchError(Exception):
    """The site could not be fetched and no limited scan is possible."""

    code = "fetch_failed"
    status_code = 502

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.code, "message": self.message}


class UnreachableHostError(FetchError):
    """DNS failure or refused connection. Reported with HTTP 200, ok=false."""

    code = "UNREACHABLE_HOST"
    status_code = 200

    def __init__(self, original_url: str, dns_error: str):
        super().__init__("Domain could not be resolved or is unreachable")
        self.original_url = original_url
        self.dns_error = dns_error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "context": {"original_url": self.original_url, "dns_error": self.dns_error},
        }


# ---------------------------------------------------------------------------
# URL handling
# ---------------------------------------------------------------------------

def _with_scheme(raw: str) -> str:
    return raw if SCHEME_RE.match(raw) else f"https://{raw}"


def normalize_url(value: Optional[str]) -> Dict[str, Any]:
    """
    "example.com", "https://example.com/x", "http://host:8080" → absolute URL.

    Input without a scheme gets https://. Raises ValueError when no host
    can be found.
    """
    raw = (value or "").strip()
    if not raw:
        raise ValueError("URL required")

    parts = urlsplit(_with_scheme(raw))
    if parts.scheme.lower() not in ("http", "https"):
        raise ValueError(f"Unsupported scheme: {parts.scheme}")

    try:
        host = parts.hostname
        parts.port                         # raises on a non-numeric port
    except ValueError as e:
        raise ValueError(f"Invalid URL format: {e}")
    if not host:
        raise ValueError("Invalid URL format: no host")

    final_url = parts._replace(scheme=parts.scheme.lower(), path=parts.path or "/").geturl()
    return {
        "original_url": raw,
        "final_url": final_url,
        "protocol_used": parts.scheme.lower(),
        "host": host,
    }


def host_from_url(url: Optional[str]) -> Optional[str]:
    """
    Bare host of a URL-ish string, parsed the way normalize_url() does.

    Brackets come off IPv6 literals. None when no host can be parsed.
    """
    if not url:
        return None
    try:
        host = urlsplit(_with_scheme(url.strip())).hostname
    except ValueError:
        return None
    return host or None


def extract_csp_from_meta(body: Optional[str]) -> Optional[str]:
    if not body:
        return None
    m = CSP_META_RE.search(body[:MAX_BODY_SCAN])
    return m.group(2) if m else None


def _ssrf_guard(request: httpx.Request) -> None:
    """Request hook: every outgoing request (and redirect hop) must target a public host."""
    resolve_target(request.url.host)


def _is_dns_failure(exc: Exception) -> bool:
    text = str(exc).lower()
    return any(m in text for m in DNS_ERROR_MARKERS)


def _is_tls_failure(exc: Exception) -> bool:
    cause = exc.__cause__ or exc.__context__
    return isinstance(cause, ssl.SSLError) or "ssl" in str(exc).lower() or "certificate" in str(exc).lower()


def _header_maps(headers: httpx.Headers) -> tuple:
    single: Dict[str, str] = {}
    raw: Dict[str, Any] = {}
    for key, value in headers.multi_items():
        key = key.lower()
        single.setdefault(key, value)
        if key in raw:
            existing = raw[key]
            raw[key] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            raw[key] = value
    return single, raw


# ---------------------------------------------------------------------------
# Fetch
# ---------------------------------------------------------------------------

def fetch_website(url: str, head_timeout: float = HEAD_TIMEOUT, get_timeout: float = GET_TIMEOUT) -> Dict[str, Any]:
    """
    Fetch a website and classify its response headers.

    Raises:
        ValueError:           the URL cannot be parsed
        TargetError:          the host (or a redirect hop) is private/blocked
        UnreachableHostError: DNS failure or connection refused
        FetchError:           any other transport failure
    """
    info = normalize_url(url)
    scan_status = "complete"
    limit_reason: Optional[str] = None
    active_protection = False

    try:
        resolve_target(info["host"])
    except UnresolvableHostError:
        raise UnreachableHostError(info["original_url"], "ENOTFOUND")

    response: Optional[httpx.Response] = None

    with httpx.Client(
        follow_redirects=True,
        max_redirects=MAX_REDIRECTS,
        headers={"User-Agent": USER_AGENT},
        event_hooks={"request": [_ssrf_guard]},
    ) as client:
        # HEAD failures are only a hint; the GET decides
        try:
            client.head(info["final_url"], timeout=head_timeout)
        except httpx.HTTPError as e:
            logger.debug("HEAD %s failed: %s", info["final_url"], e)

        try:
            response = client.get(info["final_url"], timeout=get_timeout)
        except httpx.TimeoutException as e:
            logger.info("GET %s timed out: %s", info["final_url"], e)
            scan_status, limit_reason, active_protection = "limited", TIMEOUT_REASON, True
        except httpx.ConnectError as e:
            if _is_dns_failure(e):
                raise UnreachableHostError(info["original_url"], "ENOTFOUND")
            if _is_tls_failure(e):
                logger.info("GET %s TLS failure: %s", info["final_url"], e)
                scan_status, limit_reason, active_protection = "limited", BLOCKED_REASON, True
            else:
                raise UnreachableHostError(info["original_url"], "NETWORK_ERROR")
        except (httpx.RemoteProtocolError, httpx.ReadError) as e:
            logger.info("GET %s reset: %s", info["final_url"], e)
            scan_status, limit_reason, active_protection = "limited", BLOCKED_REASON, True
        except httpx.HTTPError as e:
            logger.warning("GET %s failed: %s", info["final_url"], e)
            raise FetchError(str(e))

    if response is not None and response.status_code == 403:
        scan_status, limit_reason, active_protection = "limited", BLOCKED_REASON, True

    if response is not None:
        final_url = str(response.url)
        status_code = response.status_code
        single, raw = _header_maps(response.headers)
        redirect_chain = [str(r.url) for r in response.history]
        if redirect_chain:
            redirect_chain.append(final_url)
        content_type = single.get("content-type", "")
        csp_meta = extract_csp_from_meta(response.text) if "html" in content_type else None
    else:
        final_url = info["final_url"]
        status_code = None
        single, raw = {}, {}
        redirect_chain = []
        csp_meta = None

    parts = urlsplit(final_url)
    is_https = parts.scheme == "https"

    if scan_status == "limited":
        logger.info("Limited scan of %s: %s", final_url, limit_reason)

    return {
        "scan_status": scan_status,
        "scan_limit_reason": limit_reason,
        "active_protection": active_protection,
        "original_url": info["original_url"],
        "final_url": final_url,
        "protocol_used": "https" if is_https else "http",
        "https": is_https,
        "host": parts.hostname or info["host"],
        "port": parts.port or (443 if is_https else 80),
        "status_code": status_code,
        "redirect_chain": redirect_chain,
        "headers": single,
        "raw_headers": raw,
        "headers_classified": [c.to_dict() for c in classify_headers(raw, is_https=is_https)],
        "header_exposures": [e.to_dict() for e in detect_header_exposures(raw)],
        "csp_meta": csp_meta,
    }


class HTTPEngine(BaseEngine):
    """
    Website fetch for the lite scan.

    An unreachable host is not an engine crash: the result is marked failed
    and carries the UNREACHABLE_HOST payload under data["unreachable"] so
    the orchestrator can pass it through.
    A redirect to a blocked host is kept under data["target_error"]; the
    orchestrator re-raises it.

    Profile config:
        head_timeout: Seconds. Default 15.
        get_timeout:  Seconds. Default 30.
    """

    @property
    def name(self) -> str:
        return "http"

    def can_scan(self, ctx: ScanContext) -> bool:
        return bool(ctx.url) and ctx.target is not None

    def execute(self, ctx: ScanContext, config: Dict[str, Any]) -> EngineResult:
        result = EngineResult(engine_name=self.name)
        try:
            result.data = fetch_website(
                ctx.url,
                head_timeout=config.get("head_timeout", HEAD_TIMEOUT),
                get_timeout=config.get("get_timeout", GET_TIMEOUT),
            )
        except TargetError as e:
            result.success = False
            result.add_error(e.details)
            result.data = {"target_error": e}
        except UnreachableHostError as e:
            result.success = False
            result.add_error(e.message)
            result.data = {"unreachable": e.to_dict()}
        except FetchError as e:
            result.success = False
            result.add_error(e.message)
        return result
