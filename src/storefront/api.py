"""FastAPI REST API for the storefront.

Each browser gets a browsing session tracked by the ``storefront_session``
cookie. The API only renders session state; cart, identity and order logic
live in the core modules.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .app import Storefront, StorefrontSession
from .cart import Cart
from .checkout import CART_EMPTY, SubmissionState
from .config import StorefrontConfig, load_config
from .document_store import MemoryDocumentStore
from .errors import (
    AuthError,
    DocumentNotFoundError,
    InitializationError,
    InvalidDocumentError,
    InvalidQuantityError,
    PermissionDeniedError,
    ProductNotFoundError,
    SessionNotFoundError,
    StoreError,
    StorefrontError,
)
from .models import Order, Product, format_money
from .views import Page

SESSION_COOKIE = "storefront_session"


# --- Pydantic Schemas ---


class ProductSchema(BaseModel):
    id: str
    name: str
    description: str
    price: str
    image_url: Optional[str] = None
    stock: int


class ProductListResponse(BaseModel):
    products: list[ProductSchema]
    count: int


class CartLineSchema(BaseModel):
    product_id: str
    name: str
    price: str
    quantity: int
    image_url: Optional[str] = None
    subtotal: str


class CartSchema(BaseModel):
    lines: list[CartLineSchema]
    item_count: int
    total: str


class AddItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)


class UpdateQuantityRequest(BaseModel):
    quantity: int = Field(..., description="New quantity; zero or less removes the line")


class PrincipalSchema(BaseModel):
    uid: str
    kind: str
    email: Optional[str] = None


class SessionSchema(BaseModel):
    session_id: str
    identity_state: str
    principal: Optional[PrincipalSchema] = None
    page: Page
    selected_product_id: Optional[str] = None
    advisory: Optional[str] = None
    loading: bool
    cart_item_count: int
    submission_state: SubmissionState


class ViewRequest(BaseModel):
    page: Page
    product_id: Optional[str] = None


class CredentialsRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class OrderLineSchema(BaseModel):
    product_id: str
    name: str
    price: str
    quantity: int


class OrderSchema(BaseModel):
    id: Optional[str]
    user_id: str
    items: list[OrderLineSchema]
    total_amount: str
    timestamp: str
    status: str


class CheckoutResponse(BaseModel):
    state: SubmissionState
    advisory: str
    order: OrderSchema


class ErrorResponse(BaseModel):
    detail: str
    error_type: str


# --- Converters ---


def product_to_schema(product: Product) -> ProductSchema:
    return ProductSchema(
        id=product.id,
        name=product.name,
        description=product.description,
        price=format_money(product.price),
        image_url=product.image_url,
        stock=product.stock,
    )


def cart_to_schema(cart: Cart) -> CartSchema:
    return CartSchema(
        lines=[CartLineSchema(**line.to_dict()) for line in cart],
        item_count=cart.item_count,
        total=cart.display_total(),
    )


def order_to_schema(order: Order) -> OrderSchema:
    return OrderSchema(
        id=order.id,
        user_id=order.user_id,
        items=[
            OrderLineSchema(
                product_id=item.product_id,
                name=item.name,
                price=format_money(item.price),
                quantity=item.quantity,
            )
            for item in order.items
        ],
        total_amount=format_money(order.total_amount),
        timestamp=order.timestamp,
        status=order.status.value,
    )


def session_to_schema(session: StorefrontSession) -> SessionSchema:
    principal = session.identity.principal
    return SessionSchema(
        session_id=session.id,
        identity_state=session.identity.state.value,
        principal=PrincipalSchema(**principal.to_dict()) if principal else None,
        page=session.state.page,
        selected_product_id=session.state.selected_product_id,
        advisory=session.state.advisory,
        loading=session.state.loading,
        cart_item_count=session.cart.cart.item_count,
        submission_state=session.checkout.state,
    )


# --- Error mapping ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    InitializationError: 503,
    StoreError: 502,
    PermissionDeniedError: 403,
    DocumentNotFoundError: 404,
    InvalidDocumentError: 502,
    AuthError: 400,
    InvalidQuantityError: 400,
    ProductNotFoundError: 404,
    SessionNotFoundError: 404,
}


# --- Dependencies ---


def get_storefront(request: Request) -> Storefront:
    return request.app.state.storefront


async def get_session(
    request: Request,
    response: Response,
    storefront: Storefront = Depends(get_storefront),
) -> StorefrontSession:
    """Return the caller's browsing session, opening one on first contact."""
    session_id = request.cookies.get(SESSION_COOKIE)
    if session_id:
        session = storefront.find_session(session_id)
        if session is not None:
            return session
    session = await storefront.open_session()
    # Error responses are built by the exception handlers, which read this
    request.state.new_session_id = session.id
    set_session_cookie(response, session.id)
    return session


def set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")


def error_response(
    request: Request,
    status_code: int,
    content: dict,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """JSON error response that still hands out a session opened by this request."""
    response = JSONResponse(status_code=status_code, content=content, headers=headers)
    session_id = getattr(request.state, "new_session_id", None)
    if session_id:
        set_session_cookie(response, session_id)
    return response


# --- App factory ---


def create_app(
    config: StorefrontConfig | None = None,
    store: MemoryDocumentStore | None = None,
) -> FastAPI:
    """
    Build the API.

    The storefront is started in the lifespan handler; an
    InitializationError there aborts startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        storefront = Storefront(config or load_config(), store=store)
        await storefront.start()
        app.state.storefront = storefront
        try:
            yield
        finally:
            await storefront.close()

    app = FastAPI(
        title="storefront API",
        description="Catalog, cart, checkout and sign-in for the storefront",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
        """Map StorefrontError subclasses to appropriate HTTP responses."""
        status_code = ERROR_STATUS_CODES.get(type(exc), 500)
        return error_response(
            request,
            status_code,
            {"detail": str(exc), "error_type": type(exc).__name__},
        )

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return error_response(
            request, exc.status_code, {"detail": exc.detail}, headers=exc.headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return error_response(request, 422, {"detail": jsonable_encoder(exc.errors())})

    # --- Health ---

    @app.get("/api/health")
    async def health_check(storefront: Storefront = Depends(get_storefront)):
        """Backend and catalog status."""
        catalog = storefront.catalog
        return {
            "status": "ok" if catalog.last_error is None else "degraded",
            "backend": storefront.config.backend,
            "app_id": storefront.config.app_id,
            "product_count": len(catalog.products),
            "catalog_error": str(catalog.last_error) if catalog.last_error else None,
        }

    # --- Catalog ---

    @app.get("/api/products", response_model=ProductListResponse)
    async def list_products(storefront: Storefront = Depends(get_storefront)):
        products = [product_to_schema(p) for p in storefront.catalog.products]
        return ProductListResponse(products=products, count=len(products))

    @app.get("/api/products/{product_id}", response_model=ProductSchema)
    async def get_product(product_id: str, storefront: Storefront = Depends(get_storefront)):
        return product_to_schema(storefront.catalog.require(product_id))

    # --- Session / view state ---

    @app.get("/api/session", response_model=SessionSchema)
    async def get_session_state(session: StorefrontSession = Depends(get_session)):
        return session_to_schema(session)

    @app.delete("/api/session/advisory", response_model=SessionSchema)
    async def dismiss_advisory(session: StorefrontSession = Depends(get_session)):
        session.state.dismiss_advisory()
        return session_to_schema(session)

    @app.post("/api/session/view", response_model=SessionSchema)
    async def navigate(
        request: ViewRequest,
        session: StorefrontSession = Depends(get_session),
        storefront: Storefront = Depends(get_storefront),
    ):
        if request.page == Page.PRODUCT_DETAIL:
            if not request.product_id:
                raise HTTPException(status_code=400, detail="product_id is required")
            storefront.catalog.require(request.product_id)
        session.state.navigate(request.page, request.product_id)
        return session_to_schema(session)

    # --- Cart ---

    @app.get("/api/cart", response_model=CartSchema)
    async def get_cart(session: StorefrontSession = Depends(get_session)):
        return cart_to_schema(session.cart.cart)

    @app.post("/api/cart/items", response_model=CartSchema, status_code=201)
    async def add_cart_item(
        request: AddItemRequest, session: StorefrontSession = Depends(get_session)
    ):
        return cart_to_schema(session.add_to_cart(request.product_id, request.quantity))

    @app.put("/api/cart/items/{product_id}", response_model=CartSchema)
    async def update_cart_item(
        product_id: str,
        request: UpdateQuantityRequest,
        session: StorefrontSession = Depends(get_session),
    ):
        return cart_to_schema(session.cart.update_quantity(product_id, request.quantity))

    @app.delete("/api/cart/items/{product_id}", response_model=CartSchema)
    async def remove_cart_item(product_id: str, session: StorefrontSession = Depends(get_session)):
        return cart_to_schema(session.cart.remove_item(product_id))

    # --- Checkout ---

    @app.post("/api/checkout", response_model=CheckoutResponse, status_code=201)
    async def checkout(session: StorefrontSession = Depends(get_session)):
        result = await session.place_order()
        if result.state == SubmissionState.IDLE:
            status_code = 400 if result.advisory == CART_EMPTY else 401
            raise HTTPException(status_code=status_code, detail=result.advisory)
        if not result.ok or result.order is None:
            raise HTTPException(status_code=502, detail=result.advisory)
        return CheckoutResponse(
            state=result.state,
            advisory=result.advisory,
            order=order_to_schema(result.order),
        )

    # --- Auth ---

    @app.post("/api/auth/register", response_model=SessionSchema, status_code=201)
    async def register(
        request: CredentialsRequest, session: StorefrontSession = Depends(get_session)
    ):
        if not await session.identity.register(request.email, request.password):
            raise HTTPException(status_code=400, detail=session.state.advisory)
        return session_to_schema(session)

    @app.post("/api/auth/login", response_model=SessionSchema)
    async def login(request: CredentialsRequest, session: StorefrontSession = Depends(get_session)):
        if not await session.identity.login(request.email, request.password):
            raise HTTPException(status_code=401, detail=session.state.advisory)
        return session_to_schema(session)

    @app.post("/api/auth/logout", response_model=SessionSchema)
    async def logout(session: StorefrontSession = Depends(get_session)):
        if not await session.identity.logout():
            raise HTTPException(status_code=502, detail=session.state.advisory)
        return session_to_schema(session)

    return app


app = create_app()
