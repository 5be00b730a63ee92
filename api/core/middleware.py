"""ASGI middleware for security headers and forwarded user identity."""

from __future__ import annotations

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.logger import bind_contextvars
from core.telemetry import add_custom_attribute
from core.wide_event import set_wide_event_fields


class SecurityHeadersMiddleware:
    """Adds security headers suited to a JSON-only API."""

    SECURITY_HEADERS: list[tuple[bytes, bytes]] = [
        (b"x-content-type-options", b"nosniff"),
        (b"x-frame-options", b"DENY"),
        (b"referrer-policy", b"no-referrer"),
        (b"content-security-policy", b"default-src 'none'; frame-ancestors 'none'"),
        (b"strict-transport-security", b"max-age=31536000; includeSubDomains"),
        (b"cache-control", b"no-store"),
    ]

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message.get("type") == "http.response.start":
                headers: list[tuple[bytes, bytes]] = list(message.get("headers", []))
                headers.extend(self.SECURITY_HEADERS)
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)


class ForwardedUserMiddleware:
    """Copies the gateway-authenticated user id onto ``request.state``.

    The auth gateway in front of this service strips any client-supplied
    copy of the header, so its value is trusted as-is. Requests without the
    header leave ``request.state.user_id`` unset and are rejected by the
    ``UserId`` dependency.
    """

    def __init__(self, app: ASGIApp, header_name: str) -> None:
        self.app = app
        self.header_name = header_name.lower().encode("latin-1")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        for name, value in scope.get("headers", []):
            if name == self.header_name:
                user_id = value.decode("latin-1").strip()
                if user_id:
                    scope.setdefault("state", {})["user_id"] = user_id
                    bind_contextvars(user_id=user_id)
                    set_wide_event_fields(user_id=user_id)
                    add_custom_attribute("enduser.id", user_id)
                break

        await self.app(scope, receive, send)
