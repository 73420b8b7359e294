import logging
import os
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import Body, Cookie, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field
from pymongo.errors import PyMongoError

import database
from auth import (
    SESSION_COOKIE,
    SESSION_TTL_DAYS,
    authenticate,
    create_session,
    register_user,
    resolve_session,
    revoke_session,
)
from catalog import DEFAULT_PAGE_SIZE, get_product, list_categories, list_products
from errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    StockError,
    StorefrontError,
    ValidationError,
)
from orders import get_order, list_orders, place_order

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("storefront")


def is_production() -> bool:
    return os.getenv("APP_ENV", "development").lower() == "production"


app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error mapping
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    AuthError: 401,
    NotFoundError: 404,
    ConflictError: 409,
    StockError: 409,
    PersistenceError: 500,
}

GENERIC_ERROR = "Something went wrong, please try again"


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    content = {"error": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, ValidationError):
        content["fieldErrors"] = exc.field_errors
    elif isinstance(exc, NotFoundError):
        content["ids"] = exc.ids
    elif isinstance(exc, StockError):
        content["productId"] = exc.product_id
        content["requested"] = exc.requested
        content["available"] = exc.available
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        if is_production():
            content = {"error": GENERIC_ERROR, "error_type": type(exc).__name__}
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    logger.error("%s %s failed", request.method, request.url.path, exc_info=exc)
    message = GENERIC_ERROR if is_production() else f"Database error: {exc}"
    return JSONResponse(status_code=500, content={"error": message, "error_type": "PersistenceError"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s failed unexpectedly", request.method, request.url.path, exc_info=exc)
    message = GENERIC_ERROR if is_production() else f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=500, content={"error": message, "error_type": "PersistenceError"})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = [str(part) for part in err["loc"]]
        if loc and loc[0] in ("body", "query", "path", "cookie", "header"):
            loc = loc[1:]
        errors.setdefault(".".join(loc) or "payload", []).append(err["msg"])
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid payload", "error_type": "ValidationError", "fieldErrors": errors},
    )


# Session transport

def current_user(session_token: Optional[str] = Cookie(None)) -> Optional[dict]:
    """Resolve the session cookie. Bad or expired tokens mean anonymous."""
    return resolve_session(session_token)


def require_user(user: Optional[dict] = Depends(current_user)) -> dict:
    if not user:
        raise AuthError()
    return user


def set_session_cookie(response: Response, token: str, expires_at: datetime) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=is_production(),
        path="/",
        expires=expires_at,
    )


def clear_session_cookie(response: Response) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value="",
        httponly=True,
        samesite="lax",
        secure=is_production(),
        path="/",
        max_age=0,
    )


# Auth models
class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: Optional[str] = Field(None, min_length=1, max_length=60)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


@app.get("/")
def read_root():
    return {"message": "Storefront API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "transactions": database.transactions_enabled(),
        "collections": [],
    }
    if database.db is None:
        return response
    response["database_name"] = database.db.name
    try:
        response["collections"] = database.db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
    return response


# Auth endpoints
@app.post("/api/auth/register")
def register(payload: RegisterRequest, response: Response):
    user = register_user(payload.email, payload.password, payload.name)
    token, expires_at = create_session(user["id"], SESSION_TTL_DAYS)
    set_session_cookie(response, token, expires_at)
    return {"user": user}


@app.post("/api/auth/login")
def login(payload: LoginRequest, response: Response):
    user = authenticate(payload.email, payload.password)
    token, expires_at = create_session(user["id"], SESSION_TTL_DAYS)
    set_session_cookie(response, token, expires_at)
    return {"user": user}


@app.post("/api/auth/logout")
def logout(response: Response, session_token: Optional[str] = Cookie(None)):
    revoke_session(session_token)
    clear_session_cookie(response)
    return {"ok": True}


@app.get("/api/auth/me")
def me(user: Optional[dict] = Depends(current_user)):
    return {"user": user}


# Catalog
@app.get("/api/products")
def products(
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=50, alias="pageSize"),
    category: Optional[str] = None,
    q: Optional[str] = None,
    min_price: Optional[Decimal] = Query(None, ge=0, alias="minPrice"),
    max_price: Optional[Decimal] = Query(None, ge=0, alias="maxPrice"),
    sort: Optional[str] = Query(None, pattern="^(price_asc|price_desc|name|newest)$"),
):
    return list_products(page, page_size, category, q, min_price, max_price, sort)


@app.get("/api/products/{product_id}")
def product_detail(product_id: int):
    return get_product(product_id)


@app.get("/api/categories")
def categories():
    return {"categories": list_categories()}


# Orders
@app.post("/api/orders", status_code=201)
def create_order(
    response: Response,
    payload: dict = Body(...),
    user: Optional[dict] = Depends(current_user),
):
    result = place_order(payload, user)
    response.headers["Cache-Control"] = "no-store"
    return result


@app.get("/api/orders")
def orders(response: Response, user: Optional[dict] = Depends(current_user)):
    response.headers["Cache-Control"] = "no-store, must-revalidate"
    return {"orders": list_orders(user)}


@app.get("/api/orders/{order_id}")
def order_detail(order_id: int, user: Optional[dict] = Depends(current_user)):
    return get_order(order_id, user)


@app.get("/api/account/orders")
def account_orders(user: dict = Depends(require_user)):
    """Order history for routes that must not fall back to anonymous."""
    return {"orders": list_orders(user)}


if __name__ == "__main__":
    import uvicorn

    if database.db is not None:
        database.ensure_indexes()
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
