"""HTTP control surface for inspecting and triggering sync operations."""

import hmac
import json
import logging
from collections.abc import Awaitable, Callable

from aiohttp import BasicAuth, hdrs, web

from iracing_setup_sync.engine import SyncEngine
from iracing_setup_sync.models import AdminCredential

logger = logging.getLogger(__name__)

ENGINE_KEY = web.AppKey("engine", SyncEngine)
ADMIN_KEY = web.AppKey("admin", AdminCredential)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

INFO_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8" /><title>Setup Sync</title></head>
<body>
<h1>Setup Sync</h1>
<p>This agent mirrors datapack setup files into
<code>setups/&lt;car&gt;/&lt;track&gt;/</code>. New files are fetched every
two hours.</p>
<p>Operators can use the <a href="/admin/">admin page</a>.</p>
</body>
</html>
"""

ADMIN_PAGE = """<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8" /><title>Setup Sync - Admin</title></head>
<body>
<h1>Admin</h1>
<section>
  <h2>Current access token</h2>
  <pre id="token">loading...</pre>
</section>
<section>
  <h2>Update refresh token</h2>
  <input id="refresh" type="text" placeholder="Paste refresh token" />
  <button onclick="post('update-refresh-token', {refreshToken: refresh.value})">Update</button>
</section>
<section>
  <button onclick="post('refresh-jwt')">Refresh access token</button>
  <button onclick="post('download')">Download new files</button>
</section>
<pre id="status"></pre>
<script>
async function loadToken() {
  const r = await fetch('/admin/api/credential');
  const data = await r.json();
  document.getElementById('token').textContent = data.accessToken || '(none)';
}
async function post(action, body) {
  const r = await fetch('/admin/api/' + action, {
    method: 'POST',
    headers: {'Content-Type': 'application/json'},
    body: JSON.stringify(body || {}),
  });
  const data = await r.json();
  document.getElementById('status').textContent = data.message || data.error;
  loadToken();
}
loadToken();
</script>
</body>
</html>
"""


def _credentials_match(header: str | None, admin: AdminCredential) -> bool:
    """Check a Basic ``Authorization`` header against the admin login."""
    if not header:
        return False
    try:
        supplied = BasicAuth.decode(header, encoding="utf-8")
    except ValueError:
        return False
    username_ok = hmac.compare_digest(
        supplied.login.encode("utf-8"), admin.username.encode("utf-8")
    )
    password_ok = hmac.compare_digest(
        supplied.password.encode("utf-8"), admin.password.encode("utf-8")
    )
    return username_ok and password_ok


@web.middleware
async def basic_auth_middleware(
    request: web.Request, handler: Handler
) -> web.StreamResponse:
    """Require HTTP Basic auth for everything under /admin."""
    if request.path == "/admin" or request.path.startswith("/admin/"):
        admin = request.app[ADMIN_KEY]
        if not _credentials_match(request.headers.get(hdrs.AUTHORIZATION), admin):
            logger.warning(f"Rejected unauthenticated request to {request.path}")
            return web.Response(
                status=401,
                text="Unauthorized",
                headers={hdrs.WWW_AUTHENTICATE: 'Basic realm="Admin Area"'},
            )
    return await handler(request)


async def handle_info(request: web.Request) -> web.Response:
    return web.Response(text=INFO_PAGE, content_type="text/html")


async def handle_admin(request: web.Request) -> web.Response:
    return web.Response(text=ADMIN_PAGE, content_type="text/html")


async def handle_get_credential(request: web.Request) -> web.Response:
    """Return the current access token (empty string if none)."""
    engine = request.app[ENGINE_KEY]
    return web.json_response({"accessToken": engine.current_access_token()})


async def handle_update_refresh_token(request: web.Request) -> web.Response:
    """Install an operator-supplied refresh token and refresh immediately."""
    engine = request.app[ENGINE_KEY]
    try:
        payload = await request.json()
        refresh_token = payload["refreshToken"]
        if not isinstance(refresh_token, str):
            msg = "refreshToken must be a string"
            raise TypeError(msg)
        await engine.update_refresh_token(refresh_token)
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        logger.error(f"Invalid update-refresh-token request: {e!r}")
        return web.json_response(
            {"error": f"Failed to update token: invalid request body ({e!r})"},
            status=500,
        )
    except Exception as e:
        logger.error(f"Failed to update refresh token: {e}")
        return web.json_response(
            {"error": f"Failed to update token: {e}"}, status=500
        )
    return web.json_response({"message": "Refresh token updated and JWT refreshed"})


async def handle_refresh_jwt(request: web.Request) -> web.Response:
    """Trigger a credential refresh."""
    engine = request.app[ENGINE_KEY]
    try:
        await engine.refresh_credential()
    except Exception as e:
        logger.error(f"Manual credential refresh failed: {e}")
        return web.json_response({"error": f"Failed to refresh JWT: {e}"}, status=500)
    return web.json_response({"message": "JWT token refreshed successfully"})


async def handle_download(request: web.Request) -> web.Response:
    """Trigger a reconciliation run and report how many files were written."""
    engine = request.app[ENGINE_KEY]
    try:
        count = await engine.reconcile_files()
    except Exception as e:
        logger.error(f"Manual download failed: {e}")
        return web.json_response({"error": f"Download failed: {e}"}, status=500)
    return web.json_response(
        {
            "message": f"Successfully downloaded {count} new files",
            "downloaded": count,
        }
    )


def create_app(engine: SyncEngine, admin: AdminCredential) -> web.Application:
    """Create the control surface application.

    Args:
        engine: Engine the handlers call into
        admin: Login required for the /admin routes

    Returns:
        Configured aiohttp application
    """
    app = web.Application(middlewares=[basic_auth_middleware])
    app[ENGINE_KEY] = engine
    app[ADMIN_KEY] = admin

    app.router.add_get("/", handle_info)
    app.router.add_get("/admin/", handle_admin)
    app.router.add_get("/admin/api/credential", handle_get_credential)
    app.router.add_post("/admin/api/update-refresh-token", handle_update_refresh_token)
    app.router.add_post("/admin/api/refresh-jwt", handle_refresh_jwt)
    app.router.add_post("/admin/api/download", handle_download)
    return app
