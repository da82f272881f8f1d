"""
Plantwatch — Login Router

Literal credential check that sets a session flag. UI gate only.
"""
from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from auth import check_credentials, clear_login, is_logged_in, mark_logged_in
from log import get_logger
from metrics import logins

logger = get_logger()
router = APIRouter()


def login_page(failed: bool = False) -> str:
    alert = LOGIN_FAILED_SCRIPT if failed else ""
    return LOGIN_HTML.replace("__LOGIN_FAILED__", alert)


@router.get("/login", response_class=HTMLResponse, include_in_schema=False)
async def login_form(request: Request):
    if is_logged_in(request):
        return RedirectResponse(url="/ui", status_code=303)
    return HTMLResponse(login_page())


@router.post("/login", include_in_schema=False)
async def login(
    request: Request,
    username: str = Form(""),
    password: str = Form(""),
):
    settings = request.app.state.dashboard.settings
    if check_credentials(username, password, settings):
        mark_logged_in(request)
        logins.labels(outcome="ok").inc()
        logger.info("login.ok", username=username)
        return RedirectResponse(url="/ui", status_code=303)

    logins.labels(outcome="failed").inc()
    logger.warning("login.failed", username=username)
    return HTMLResponse(login_page(failed=True), status_code=401)


@router.get("/logout", include_in_schema=False)
async def logout(request: Request):
    clear_login(request)
    return RedirectResponse(url="/login", status_code=303)


LOGIN_FAILED_SCRIPT = """<script>
document.addEventListener('DOMContentLoaded', function () {
  Swal.fire({icon: 'error', title: 'Login Failed', text: 'Invalid username or password!', confirmButtonText: 'OK'});
});
</script>"""

LOGIN_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>Plantwatch — Login</title>
<script src="https://cdn.jsdelivr.net/npm/sweetalert2@11"></script>
<style>
*,*::before,*::after{box-sizing:border-box;margin:0;padding:0}
body{font-family:-apple-system,'Segoe UI',sans-serif;background:#0a0e17;color:#f1f5f9;min-height:100vh;display:flex;align-items:center;justify-content:center}
.login-card{background:#151d2e;border:1px solid rgba(148,163,184,.15);border-radius:14px;padding:2rem;width:320px}
.login-card h1{font-size:1.25rem;margin-bottom:1.25rem}
.login-card label{display:block;font-size:.75rem;color:#94a3b8;margin:.75rem 0 .25rem;text-transform:uppercase;letter-spacing:.08em}
.login-card input{width:100%;padding:.6rem .75rem;border-radius:8px;border:1px solid rgba(148,163,184,.25);background:#1a2235;color:#f1f5f9}
.login-card button{margin-top:1.25rem;width:100%;padding:.65rem;border:0;border-radius:8px;background:#3b82f6;color:#fff;font-weight:600;cursor:pointer}
</style>
</head>
<body>
<form class="login-card" method="post" action="/login">
  <h1>Plantwatch</h1>
  <label for="username">Username</label>
  <input id="username" name="username" autocomplete="username" required>
  <label for="password">Password</label>
  <input id="password" name="password" type="password" autocomplete="current-password" required>
  <button type="submit">Log in</button>
</form>
__LOGIN_FAILED__
</body>
</html>
"""
