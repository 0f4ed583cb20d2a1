"""Security middleware: Basic Auth gate for admin routes, anti-crawl headers, cache control."""
import base64
import secrets

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.api.auth import ADMIN_ROLE, Principal
from app.config import get_settings

# Paths that require the admin Basic Auth credentials
ADMIN_PREFIXES = ("/admin", "/sync")


class SecurityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        settings = get_settings()
        path = request.url.path

        # --- Basic Auth gate ---
        if settings.dash_user and settings.dash_pass:
            if self._check_basic_auth(request, settings):
                request.state.user = Principal(id=None, name=settings.dash_user, role=ADMIN_ROLE)
            elif any(path.startswith(p) for p in ADMIN_PREFIXES):
                return Response(
                    content="Unauthorized",
                    status_code=401,
                    headers={"WWW-Authenticate": 'Basic realm="Bricks"'},
                )

        response: Response = await call_next(request)

        # --- Anti-crawl header on every response ---
        response.headers["X-Robots-Tag"] = "noindex, nofollow"

        # --- Cache-Control ---
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            # Order and label data must never be served stale
            response.headers["Cache-Control"] = "private, no-cache"

        return response

    @staticmethod
    def _check_basic_auth(request: Request, settings) -> bool:
        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Basic "):
            return False
        try:
            decoded = base64.b64decode(auth_header[6:]).decode("utf-8")
            user, password = decoded.split(":", 1)
        except Exception:
            return False
        user_ok = secrets.compare_digest(user, settings.dash_user)
        pass_ok = secrets.compare_digest(password, settings.dash_pass)
        return user_ok and pass_ok
