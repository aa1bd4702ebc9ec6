"""
Customer Routes

Menu browsing, cart editing and checkout, as server-rendered pages under
/menu and as JSON under /api.

Endpoints:
    - GET  /menu: Menu page with search and category filter
    - POST /menu/cart/add | /menu/cart/decrement | /menu/cart/update | /menu/cart/remove
    - GET  /menu/cart: Cart and checkout form
    - POST /menu/checkout: Place the order (303 to /menu/success)
    - GET  /menu/success: Confirmation page
    - GET  /api/menu, GET /api/cart, POST /api/cart/items,
      PUT|DELETE /api/cart/items/{item_id}, POST /api/orders
"""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, Query, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from oona.deps import get_backend, get_browsing_session, templates
from oona.pages.checkout import CheckoutStatus, place_order
from oona.pages.menu import ALL_CATEGORIES, MenuBrowser
from oona.schemas import (
    CartItemAdd,
    CartItemUpdate,
    CartLine,
    CartResponse,
    CheckoutRequest,
    ErrorResponse,
    MenuResponse,
    OrderCreateResponse,
)
from oona.services.backend import BaseBackendService
from oona.state.cart import Cart
from oona.state.sessions import BrowsingSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Menu"])


def cart_response(cart: Cart) -> CartResponse:
    return CartResponse(
        items=[
            CartLine(
                id=entry.id,
                name=entry.name,
                price=entry.price,
                quantity=entry.quantity,
                line_total=entry.line_total,
                image_url=entry.image_url,
            )
            for entry in cart
        ],
        item_count=cart.item_count,
        total=cart.total,
    )


def _menu_url(search: str = "", category: str = "") -> str:
    params = {k: v for k, v in (("q", search), ("category", category)) if v}
    return "/menu" + (f"?{urlencode(params)}" if params else "")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


# =============================================================================
# PAGES
# =============================================================================

@router.get("/menu", response_class=HTMLResponse)
async def menu_page(
    request: Request,
    q: str = Query(""),
    category: str = Query(ALL_CATEGORIES),
    session: BrowsingSession = Depends(get_browsing_session),
    backend: BaseBackendService = Depends(get_backend),
) -> HTMLResponse:
    browser = MenuBrowser(backend)
    await browser.load()

    return templates.TemplateResponse(
        request,
        "menu.html",
        {
            "items": browser.filtered_items(q, category),
            "categories": [ALL_CATEGORIES] + browser.categories,
            "selected_category": category or ALL_CATEGORIES,
            "search_term": q,
            "cart": session.cart,
            "error": browser.error,
            "notice": session.pop_notice(),
        },
    )


@router.post("/menu/cart/add")
async def add_to_cart_form(
    item_id: str = Form(...),
    q: str = Form(""),
    category: str = Form(""),
    session: BrowsingSession = Depends(get_browsing_session),
    backend: BaseBackendService = Depends(get_backend),
) -> RedirectResponse:
    browser = MenuBrowser(backend)
    result = await browser.load()
    if not result.success:
        session.flash(browser.error)
    elif not browser.add_to_cart(session.cart, item_id):
        session.flash("That item is not available right now.")
    return RedirectResponse(_menu_url(q, category), status_code=status.HTTP_303_SEE_OTHER)


@router.post("/menu/cart/decrement")
async def decrement_cart_form(
    item_id: str = Form(...),
    q: str = Form(""),
    category: str = Form(""),
    return_to: str = Form("menu"),
    session: BrowsingSession = Depends(get_browsing_session),
    backend: BaseBackendService = Depends(get_backend),
) -> RedirectResponse:
    MenuBrowser(backend).remove_from_cart(session.cart, item_id)
    target = "/menu/cart" if return_to == "cart" else _menu_url(q, category)
    return RedirectResponse(target, status_code=status.HTTP_303_SEE_OTHER)


@router.post("/menu/cart/update")
async def update_cart_form(
    item_id: str = Form(...),
    quantity: int = Form(...),
    session: BrowsingSession = Depends(get_browsing_session),
) -> RedirectResponse:
    session.cart.update_quantity(item_id, quantity)
    return RedirectResponse("/menu/cart", status_code=status.HTTP_303_SEE_OTHER)


@router.post("/menu/cart/remove")
async def remove_cart_form(
    item_id: str = Form(...),
    session: BrowsingSession = Depends(get_browsing_session),
) -> RedirectResponse:
    session.cart.remove_item(item_id)
    return RedirectResponse("/menu/cart", status_code=status.HTTP_303_SEE_OTHER)


@router.get("/menu/cart", response_class=HTMLResponse)
async def cart_page(
    request: Request,
    session: BrowsingSession = Depends(get_browsing_session),
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "cart.html",
        {
            "cart": session.cart,
            "table_number": "",
            "customer_notes": "",
            "error": None,
            "notice": session.pop_notice(),
        },
    )


@router.post("/menu/checkout")
async def checkout_form(
    request: Request,
    table_number: str = Form(""),
    customer_notes: str = Form(""),
    session: BrowsingSession = Depends(get_browsing_session),
    backend: BaseBackendService = Depends(get_backend),
):
    result = await place_order(backend, session.cart, table_number, customer_notes)
    if result.success:
        return RedirectResponse("/menu/success", status_code=status.HTTP_303_SEE_OTHER)

    status_code = 400 if result.status == CheckoutStatus.INVALID else 502
    return templates.TemplateResponse(
        request,
        "cart.html",
        {
            "cart": session.cart,
            "table_number": table_number,
            "customer_notes": customer_notes,
            "error": result.error_message,
            "notice": None,
        },
        status_code=status_code,
    )


@router.get("/menu/success", response_class=HTMLResponse)
async def success_page(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(request, "success.html", {})


# =============================================================================
# JSON API
# =============================================================================

@router.get("/api/menu", response_model=MenuResponse)
async def menu_api(
    q: str = Query(""),
    category: str = Query(ALL_CATEGORIES),
    backend: BaseBackendService = Depends(get_backend),
):
    browser = MenuBrowser(backend)
    result = await browser.load()
    if not result.success:
        return _error(502, browser.error)
    return MenuResponse(items=browser.filtered_items(q, category), categories=browser.categories)


@router.get("/api/cart", response_model=CartResponse)
async def get_cart(session: BrowsingSession = Depends(get_browsing_session)) -> CartResponse:
    return cart_response(session.cart)


@router.post(
    "/api/cart/items",
    response_model=CartResponse,
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def add_cart_item(
    payload: CartItemAdd,
    session: BrowsingSession = Depends(get_browsing_session),
    backend: BaseBackendService = Depends(get_backend),
):
    browser = MenuBrowser(backend)
    result = await browser.load()
    if not result.success:
        return _error(502, browser.error)
    if not browser.add_to_cart(session.cart, payload.item_id):
        return _error(404, "Menu item not found or unavailable")
    return cart_response(session.cart)


@router.put("/api/cart/items/{item_id}", response_model=CartResponse)
async def update_cart_item(
    item_id: str,
    payload: CartItemUpdate,
    session: BrowsingSession = Depends(get_browsing_session),
) -> CartResponse:
    session.cart.update_quantity(item_id, payload.quantity)
    return cart_response(session.cart)


@router.delete("/api/cart/items/{item_id}", response_model=CartResponse)
async def remove_cart_item(
    item_id: str,
    session: BrowsingSession = Depends(get_browsing_session),
) -> CartResponse:
    session.cart.remove_item(item_id)
    return cart_response(session.cart)


@router.post(
    "/api/orders",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def create_order(
    payload: CheckoutRequest,
    session: BrowsingSession = Depends(get_browsing_session),
    backend: BaseBackendService = Depends(get_backend),
):
    """Place the session's cart as a pending table order."""
    result = await place_order(backend, session.cart, payload.table_number, payload.customer_notes)

    if result.status == CheckoutStatus.INVALID:
        return _error(400, result.error_message)
    if result.status == CheckoutStatus.FAILED:
        return _error(502, result.error_message)

    return OrderCreateResponse(success=True, message="Order placed successfully!", order=result.order)
