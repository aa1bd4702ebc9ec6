"""
Staff Routes

Login, the live order dashboard and menu management. Every route except
the login page requires a valid staff session: pages redirect to
/admin/login, JSON endpoints answer 401.

Endpoints:
    - GET|POST /admin/login, POST /admin/logout
    - GET  /admin/dashboard: Dashboard page (opens the event stream)
    - GET  /admin/api/dashboard: Current orders and counters
    - GET  /admin/api/dashboard/events: Server-Sent Events stream
    - POST /admin/api/orders/{order_id}/status: Advance an order
    - POST /admin/api/reset: Delete every order (confirm required)
    - GET|POST /admin/menu, GET /admin/menu/{item_id}/edit,
      POST /admin/menu/{item_id}, /delete, /toggle
    - POST /admin/menu/image: Upload a menu image, returns its public URL

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, StreamingResponse

from oona.core.config import get_settings
from oona.deps import (
    get_backend,
    get_browsing_session,
    get_session_registry,
    require_staff_api,
    require_staff_page,
    templates,
)
from oona.pages.dashboard import DashboardPage, StatusUpdateOutcome
from oona.pages.menu_management import FormValidationError, MenuItemForm, MenuManager
from oona.schemas import (
    DashboardSnapshot,
    ErrorResponse,
    ImageUploadResponse,
    ResetRequest,
    StatusUpdateRequest,
    StatusUpdateResponse,
)
from oona.services.backend import BaseBackendService
from oona.state.sessions import BrowsingSession, SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


async def _dashboard_for(session: BrowsingSession, registry: SessionRegistry) -> DashboardPage:
    """The session's dashboard, loaded at least once."""
    dashboard = registry.get_dashboard(session)
    if dashboard.loading:
        await dashboard.refresh()
    return dashboard


def _safe_next(url: Optional[str]) -> str:
    if url and url.startswith("/admin/") and not url.startswith("//"):
        return url
    return "/admin/dashboard"


# =============================================================================
# AUTHENTICATION
# =============================================================================

@router.get("", include_in_schema=False)
async def admin_root() -> RedirectResponse:
    return RedirectResponse("/admin/dashboard", status_code=status.HTTP_303_SEE_OTHER)


@router.get("/login", response_class=HTMLResponse)
async def login_page(
    request: Request,
    next_url: str = Query("/admin/dashboard", alias="next"),
    session: BrowsingSession = Depends(get_browsing_session),
):
    if await session.auth.current_user() is not None:
        return RedirectResponse(_safe_next(next_url), status_code=status.HTTP_303_SEE_OTHER)
    return templates.TemplateResponse(
        request, "admin/login.html", {"email": "", "error": None, "next": _safe_next(next_url)}
    )


@router.post("/login")
async def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next_url: str = Form("/admin/dashboard", alias="next"),
    session: BrowsingSession = Depends(get_browsing_session),
):
    if not email.strip() or not password:
        error = "Please enter your email and password."
    else:
        result = await session.auth.sign_in(email.strip(), password)
        if result.success:
            return RedirectResponse(_safe_next(next_url), status_code=status.HTTP_303_SEE_OTHER)
        error = result.error_message or "Sign in failed"

    return templates.TemplateResponse(
        request,
        "admin/login.html",
        {"email": email, "error": error, "next": _safe_next(next_url)},
        status_code=status.HTTP_400_BAD_REQUEST,
    )


@router.post("/logout")
async def logout(
    session: BrowsingSession = Depends(get_browsing_session),
) -> RedirectResponse:
    await session.auth.sign_out()
    if session.dashboard is not None:
        await session.dashboard.close()
        session.dashboard = None
    return RedirectResponse("/admin/login", status_code=status.HTTP_303_SEE_OTHER)


# =============================================================================
# DASHBOARD
# =============================================================================

@router.get("/dashboard", response_class=HTMLResponse)
async def dashboard_page(
    request: Request,
    session: BrowsingSession = Depends(require_staff_page),
    registry: SessionRegistry = Depends(get_session_registry),
) -> HTMLResponse:
    dashboard = await _dashboard_for(session, registry)
    return templates.TemplateResponse(
        request,
        "admin/dashboard.html",
        {
            "snapshot": dashboard.snapshot(),
            "error": dashboard.last_error,
            "staff_email": session.auth.email,
        },
    )


@router.get("/api/dashboard", response_model=DashboardSnapshot)
async def dashboard_data(
    session: BrowsingSession = Depends(require_staff_api),
    registry: SessionRegistry = Depends(get_session_registry),
) -> DashboardSnapshot:
    dashboard = registry.get_dashboard(session)
    await dashboard.refresh()
    return dashboard.snapshot()


@router.get("/api/dashboard/events")
async def dashboard_events(
    request: Request,
    session: BrowsingSession = Depends(require_staff_api),
    registry: SessionRegistry = Depends(get_session_registry),
) -> StreamingResponse:
    """
    Stream dashboard snapshots as Server-Sent Events.

    The open stream is the mounted dashboard: it holds the realtime
    subscription until the client disconnects.
    """
    dashboard = registry.get_dashboard(session)
    keepalive = get_settings().sse_keepalive_seconds

    async def event_stream():
        queue = dashboard.add_listener()
        await dashboard.mount()
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    snapshot = await asyncio.wait_for(queue.get(), timeout=keepalive)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield f"event: dashboard\ndata: {snapshot.model_dump_json()}\n\n"
        finally:
            dashboard.remove_listener(queue)
            await dashboard.unmount()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post(
    "/api/orders/{order_id}/status",
    response_model=StatusUpdateResponse,
    responses={400: {"model": StatusUpdateResponse}, 502: {"model": StatusUpdateResponse}},
)
async def update_order_status(
    order_id: str,
    payload: StatusUpdateRequest,
    session: BrowsingSession = Depends(require_staff_api),
    registry: SessionRegistry = Depends(get_session_registry),
):
    dashboard = await _dashboard_for(session, registry)
    result = await dashboard.update_order_status(order_id, payload.status)

    body = StatusUpdateResponse(
        success=result.success,
        outcome=result.outcome.value,
        error=result.error_message,
        dashboard=dashboard.snapshot(),
    )
    if result.outcome == StatusUpdateOutcome.APPLIED:
        return body

    status_code = 400 if result.outcome == StatusUpdateOutcome.REJECTED else 502
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@router.post("/api/reset", responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}})
async def reset_all_data(
    payload: ResetRequest,
    session: BrowsingSession = Depends(require_staff_api),
    registry: SessionRegistry = Depends(get_session_registry),
):
    dashboard = registry.get_dashboard(session)
    result = await dashboard.reset_all_data(payload.confirm)

    if not result.success:
        status_code = 400 if not payload.confirm else 502
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=result.error_message).model_dump(),
        )

    logger.warning(f"Reset performed by {session.auth.email}")
    return {
        "success": True,
        "deleted": result.deleted,
        "message": "All data has been reset successfully!",
        "dashboard": dashboard.snapshot().model_dump(mode="json"),
    }


# =============================================================================
# MENU MANAGEMENT
# =============================================================================

def _render_menu(
    request: Request,
    manager: MenuManager,
    form: MenuItemForm,
    editing_id: Optional[str] = None,
    notice: Optional[str] = None,
    error: Optional[str] = None,
    status_code: int = 200,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "admin/menu.html",
        {
            "items": manager.items,
            "form": form,
            "editing_id": editing_id,
            "notice": notice,
            "error": error or manager.error,
        },
        status_code=status_code,
    )


@router.get("/menu", response_class=HTMLResponse)
async def menu_management_page(
    request: Request,
    session: BrowsingSession = Depends(require_staff_page),
    backend: BaseBackendService = Depends(get_backend),
) -> HTMLResponse:
    manager = MenuManager(backend)
    await manager.load()
    return _render_menu(request, manager, MenuItemForm(), notice=session.pop_notice())


@router.get("/menu/{item_id}/edit", response_class=HTMLResponse)
async def edit_menu_item_page(
    request: Request,
    item_id: str,
    session: BrowsingSession = Depends(require_staff_page),
    backend: BaseBackendService = Depends(get_backend),
):
    manager = MenuManager(backend)
    await manager.load()
    form = manager.edit_form(item_id)
    if form is None:
        session.flash("Menu item not found")
        return RedirectResponse("/admin/menu", status_code=status.HTTP_303_SEE_OTHER)
    return _render_menu(request, manager, form, editing_id=item_id)


async def _save_menu_item(
    request: Request,
    backend: BaseBackendService,
    session: BrowsingSession,
    form: MenuItemForm,
    item_id: Optional[str] = None,
):
    manager = MenuManager(backend)
    try:
        result = await manager.save(form, item_id=item_id)
    except FormValidationError:
        await manager.load()
        return _render_menu(request, manager, form, editing_id=item_id, status_code=400)

    if not result.success:
        await manager.load()
        return _render_menu(
            request, manager, form, editing_id=item_id, error=result.message, status_code=502
        )

    session.flash(result.message)
    return RedirectResponse("/admin/menu", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/menu")
async def create_menu_item(
    request: Request,
    name: str = Form(""),
    description: str = Form(""),
    category: str = Form(""),
    price: str = Form(""),
    available: bool = Form(False),
    image_url: str = Form(""),
    session: BrowsingSession = Depends(require_staff_page),
    backend: BaseBackendService = Depends(get_backend),
):
    form = MenuItemForm(name, description, category, price, available, image_url)
    return await _save_menu_item(request, backend, session, form)


@router.post("/menu/image", response_model=ImageUploadResponse)
async def upload_menu_image(
    file: UploadFile = File(...),
    session: BrowsingSession = Depends(require_staff_api),
    backend: BaseBackendService = Depends(get_backend),
):
    data = await file.read()
    result = await MenuManager(backend).upload_image(file.filename or "", file.content_type, data)

    if not result.success:
        return JSONResponse(
            status_code=400 if result.rejected else 502,
            content=ImageUploadResponse(success=False, error=result.error_message).model_dump(),
        )
    return ImageUploadResponse(success=True, image_url=result.image_url)


@router.post("/menu/{item_id}")
async def update_menu_item(
    request: Request,
    item_id: str,
    name: str = Form(""),
    description: str = Form(""),
    category: str = Form(""),
    price: str = Form(""),
    available: bool = Form(False),
    image_url: str = Form(""),
    session: BrowsingSession = Depends(require_staff_page),
    backend: BaseBackendService = Depends(get_backend),
):
    form = MenuItemForm(name, description, category, price, available, image_url)
    return await _save_menu_item(request, backend, session, form, item_id=item_id)


@router.post("/menu/{item_id}/delete")
async def delete_menu_item(
    item_id: str,
    confirm: bool = Form(False),
    session: BrowsingSession = Depends(require_staff_page),
    backend: BaseBackendService = Depends(get_backend),
) -> RedirectResponse:
    result = await MenuManager(backend).delete(item_id, confirmed=confirm)
    session.flash(result.message)
    return RedirectResponse("/admin/menu", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/menu/{item_id}/toggle")
async def toggle_menu_item(
    item_id: str,
    session: BrowsingSession = Depends(require_staff_page),
    backend: BaseBackendService = Depends(get_backend),
) -> RedirectResponse:
    manager = MenuManager(backend)
    await manager.load()
    result = await manager.toggle_availability(item_id)
    if not result.success:
        session.flash(result.message)
    return RedirectResponse("/admin/menu", status_code=status.HTTP_303_SEE_OTHER)
