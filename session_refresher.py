"""
StatusPulse Gate - Session Refresher
Validates the caller's Supabase session on every gated request, rotates
expired tokens, and enforces the login / MFA / dashboard redirects.
"""

import logging
from typing import Awaitable, Callable, Optional

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from supabase import AsyncClient, AuthError, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from config import Settings
from error_handler import ErrorHandler, get_handler

logger = logging.getLogger(__name__)

DASHBOARD_PATH = "/dashboard"
LOGIN_PATH = "/login"
MFA_PATH = "/mfa"
AUTH_PAGES = ("/login", "/signup")

AAL1 = "aal1"
AAL2 = "aal2"

# Matches the lifetime the Supabase SSR helpers give their cookies.
COOKIE_MAX_AGE = 400 * 24 * 60 * 60

ClientFactory = Callable[[], Awaitable[AsyncClient]]


def supabase_client_factory(settings: Settings) -> ClientFactory:
    """Per-request async client factory; sessions are never shared between requests."""
    settings.require_supabase()

    async def create() -> AsyncClient:
        return await acreate_client(
            settings.supabase_url,
            settings.supabase_key,
            options=AsyncClientOptions(auto_refresh_token=False, persist_session=False),
        )

    return create


class SupabaseSessionRefresher:
    """
    Session refresher backed by Supabase Auth.

    Tokens travel in two cookies. When both are present the session is
    validated with the auth server (rotating the pair when the access token
    has expired) and the resolved user is stored on `request.state.user`.
    """

    def __init__(
        self,
        settings: Settings,
        client_factory: Optional[ClientFactory] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        self.access_cookie = settings.access_token_cookie
        self.refresh_cookie = settings.refresh_token_cookie
        self.cookie_secure = settings.session_cookie_secure
        self.client_factory = client_factory or supabase_client_factory(settings)
        self.error_handler = error_handler or get_handler()

    async def __call__(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        access_token = request.cookies.get(self.access_cookie)
        refresh_token = request.cookies.get(self.refresh_cookie)

        client = None
        user = None
        rotated = None
        clear_cookies = False

        if access_token and refresh_token:
            client = await self.client_factory()
            try:
                auth = await client.auth.set_session(access_token, refresh_token)
                user = auth.user
                session = auth.session
                if session and (
                    session.access_token != access_token
                    or session.refresh_token != refresh_token
                ):
                    rotated = (session.access_token, session.refresh_token)
                    logger.debug(f"SESSION - Rotated tokens for user {user.id if user else None}")
            except AuthError as e:
                await run_in_threadpool(
                    self.error_handler.handle, e, category="AUTH", context={"path": request.url.path}
                )
                clear_cookies = True

        request.state.user = user
        request.state.access_token = rotated[0] if rotated else (access_token if user else None)

        response = await self._route(request, call_next, client, user)

        if rotated:
            self._set_session_cookies(response, *rotated)
        elif clear_cookies:
            self._clear_session_cookies(response)

        return response

    async def _route(self, request: Request, call_next: RequestResponseEndpoint, client, user) -> Response:
        path = request.url.path

        if user is None:
            if path.startswith(DASHBOARD_PATH):
                return self._redirect(request, LOGIN_PATH)
            return await call_next(request)

        if path.startswith(DASHBOARD_PATH):
            if self._mfa_pending(await self._assurance_level(client, path)):
                return self._redirect(request, MFA_PATH)

        elif path in AUTH_PAGES:
            if self._mfa_pending(await self._assurance_level(client, path)):
                return self._redirect(request, MFA_PATH)
            return self._redirect(request, DASHBOARD_PATH)

        elif path == MFA_PATH:
            aal = await self._assurance_level(client, path)
            if not aal or aal.next_level == AAL1 or aal.current_level == AAL2:
                return self._redirect(request, DASHBOARD_PATH)

        return await call_next(request)

    async def _assurance_level(self, client, path: str):
        try:
            return await client.auth.mfa.get_authenticator_assurance_level()
        except AuthError as e:
            await run_in_threadpool(
                self.error_handler.handle, e, category="AUTH", context={"path": path, "step": "aal"}
            )
            return None

    @staticmethod
    def _mfa_pending(aal) -> bool:
        return bool(aal) and aal.next_level == AAL2 and aal.current_level != AAL2

    @staticmethod
    def _redirect(request: Request, path: str) -> RedirectResponse:
        return RedirectResponse(str(request.url.replace(path=path)), status_code=307)

    def _set_session_cookies(self, response: Response, access_token: str, refresh_token: str):
        for key, value in ((self.access_cookie, access_token), (self.refresh_cookie, refresh_token)):
            response.set_cookie(
                key,
                value,
                max_age=COOKIE_MAX_AGE,
                path="/",
                secure=self.cookie_secure,
                httponly=True,
                samesite="lax",
            )

    def _clear_session_cookies(self, response: Response):
        for key in (self.access_cookie, self.refresh_cookie):
            response.delete_cookie(key, path="/", secure=self.cookie_secure, httponly=True, samesite="lax")
