"""
StatusPulse Gate - Edge Gate
First interceptor for every routed request. Rejects forged internal routing
headers, then hands the request to the session refresher.

Static assets, images, the favicon and the cron endpoints never reach the gate.
"""

import logging
import re
from typing import Awaitable, Callable, Iterable, Optional

from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

SUBREQUEST_HEADER = "x-middleware-subrequest"
PREFETCH_HEADER = "x-middleware-prefetch"

RULE_SUBREQUEST = "forged-subrequest"
RULE_PREFETCH = "forged-prefetch"

# Alternatives inside a regex lookahead, so entries are regex fragments.
EXCLUDED_PREFIXES = ("_next/static", "_next/image", "favicon.ico")
EXCLUDED_EXTENSIONS = ("svg", "png", "jpg", "jpeg", "gif", "webp")
CRON_PREFIX = "api/cron"

SessionRefresher = Callable[[Request, RequestResponseEndpoint], Awaitable[Response]]


class PathMatcher:
    """Decides which request paths the gate applies to."""

    def __init__(
        self,
        prefixes: Iterable[str] = EXCLUDED_PREFIXES,
        extensions: Iterable[str] = EXCLUDED_EXTENSIONS,
        trailing: Iterable[str] = (CRON_PREFIX,),
    ):
        alternatives = list(prefixes)
        alternatives.append(r"[^\n]*\.(?:%s)\Z" % "|".join(extensions))
        alternatives.extend(trailing)
        # A newline anywhere in the path never makes it excluded.
        self.pattern = re.compile(r"/(?!%s).*" % "|".join(alternatives), re.DOTALL)

    def applies_to(self, path: str) -> bool:
        return self.pattern.fullmatch(path) is not None

    def is_excluded(self, path: str) -> bool:
        return not self.applies_to(path)


_default_matcher = PathMatcher()


def is_excluded_path(path: str) -> bool:
    """True when the gate must not run for this path at all."""
    return _default_matcher.is_excluded(path)


def check_headers(headers: Headers) -> Optional[str]:
    """
    Apply the header-spoofing rules.

    Returns:
        The name of the violated rule, or None when the request may proceed.
    """
    if SUBREQUEST_HEADER in headers:
        return RULE_SUBREQUEST

    # Absent or empty passes; only a non-empty value other than "1" is rejected.
    # Repeated headers are combined the way the Fetch API does it.
    prefetch = ", ".join(headers.getlist(PREFETCH_HEADER))
    if prefetch and prefetch != "1":
        return RULE_PREFETCH

    return None


def forbidden() -> Response:
    return Response(status_code=403)


async def gate(
    request: Request,
    refresher: SessionRefresher,
    call_next: RequestResponseEndpoint,
) -> Response:
    """Run the header checks, then delegate to the session refresher."""
    violation = check_headers(request.headers)
    if violation:
        logger.warning(f"GATE - Rejected {request.method} {request.url.path} ({violation})")
        return forbidden()

    return await refresher(request, call_next)


class EdgeGateMiddleware(BaseHTTPMiddleware):
    """ASGI middleware wrapping `gate` with the path exclusion."""

    def __init__(
        self,
        app: ASGIApp,
        refresher: SessionRefresher,
        matcher: Optional[PathMatcher] = None,
    ):
        super().__init__(app)
        self.refresher = refresher
        self.matcher = matcher or _default_matcher

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self.matcher.is_excluded(request.url.path):
            return await call_next(request)
        return await gate(request, self.refresher, call_next)
