import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Query, Request, Response, BackgroundTasks
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
import database
import analytics
import auth
import catalog
import notifications
import orders
import reviews
from errors import StoreError
from schemas import (
    LoginRequest, ChangePasswordRequest, CategoryCreate, CategoryUpdate, ProductCreate, ProductUpdate,
    OrderCreate, OrderUpdate, OrderStatus, ReviewCreate, ReviewUpdate,
)

logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes()
        auth.bootstrap_admin()
    else:
        logger.warning("Database not configured; set DATABASE_URL and DATABASE_NAME")
    yield


app = FastAPI(title="Home Decor Storefront API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StoreError)
def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(ValueError)
def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


require_admin = Depends(auth.require_admin)


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {"message": "Home Decor Storefront API running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    return response


# ===================== Auth =====================
@app.post("/auth/login")
def login(payload: LoginRequest, response: Response):
    token = auth.login(payload.email, payload.password)
    response.set_cookie(
        config.COOKIE_NAME,
        token,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
        max_age=config.JWT_EXPIRES_HOURS * 3600,
    )
    return {"message": "Login successful"}


@app.post("/auth/logout")
def logout(response: Response):
    response.delete_cookie(config.COOKIE_NAME, httponly=True, secure=config.COOKIE_SECURE, samesite="lax")
    return {"message": "Logout successful"}


@app.get("/auth/verify")
def verify(request: Request):
    claims = auth.decode_token(auth.token_from_request(request))
    return {"is_logged_in": True, "user": claims}


@app.post("/auth/change-password")
def change_password(payload: ChangePasswordRequest, user=require_admin):
    auth.change_password(payload.email, payload.password, payload.new_password)
    return {"message": "Password changed successfully"}


@app.get("/auth/admin-count")
def admin_count():
    return {"count": auth.admin_count()}


# ===================== Categories =====================
@app.get("/categories")
def list_categories():
    return catalog.list_categories()


@app.get("/categories/all")
def list_all_categories():
    return catalog.list_categories(include_inactive=True)


@app.get("/categories/{category_id}")
def get_category(category_id: str):
    return catalog.get_category(category_id)


@app.post("/categories", status_code=201)
def create_category(payload: CategoryCreate, user=require_admin):
    return catalog.create_category(payload)


@app.patch("/categories/{category_id}")
def update_category(category_id: str, payload: CategoryUpdate, user=require_admin):
    return catalog.update_category(category_id, payload)


@app.delete("/categories/{category_id}", status_code=204)
def remove_category(category_id: str, user=require_admin):
    catalog.delete_category(category_id)
    return Response(status_code=204)


# ===================== Products =====================
@app.get("/products")
def list_products(category: Optional[str] = None, search: Optional[str] = None,
                  min_price: Optional[float] = Query(None, ge=0), max_price: Optional[float] = Query(None, ge=0),
                  is_active: Optional[bool] = None,
                  page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100)):
    return catalog.list_products(category, search, min_price, max_price, is_active, page, limit)


@app.get("/products/featured")
def featured_products(limit: int = Query(10, ge=1, le=50)):
    return catalog.featured_products(limit)


@app.get("/products/categories")
def product_categories():
    return catalog.category_summaries()


@app.get("/products/category/{category}")
def products_by_category(category: str):
    return catalog.products_by_category(category)


@app.get("/products/{product_id}")
def get_product(product_id: str):
    return catalog.get_product(product_id)


@app.post("/products", status_code=201)
def create_product(payload: ProductCreate, user=require_admin):
    return catalog.create_product(payload)


@app.patch("/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, user=require_admin):
    return catalog.update_product(product_id, payload)


@app.delete("/products/{product_id}", status_code=204)
def delete_product(product_id: str, user=require_admin):
    catalog.delete_product(product_id)
    return Response(status_code=204)


# ===================== Orders =====================
@app.post("/orders", status_code=201)
def create_order(payload: OrderCreate, background_tasks: BackgroundTasks):
    order = orders.create_order(payload)
    background_tasks.add_task(notifications.deliver_pending)
    return order


@app.get("/orders")
def list_orders(status: Optional[OrderStatus] = None, customer_email: Optional[str] = None,
                order_number: Optional[str] = None,
                page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100), user=require_admin):
    return orders.list_orders(status, customer_email, order_number, page, limit)


@app.get("/orders/stats")
def order_stats(user=require_admin):
    return analytics.order_stats()


@app.get("/orders/analytics/revenue-by-month")
def revenue_by_month(months: int = Query(6, ge=1, le=36), user=require_admin):
    return analytics.revenue_by_month(months)


@app.get("/orders/analytics/top-products")
def top_products(limit: int = Query(5, ge=1, le=50), user=require_admin):
    return analytics.top_products(limit)


@app.get("/orders/analytics/orders-by-day")
def orders_by_day(user=require_admin):
    return analytics.orders_by_day_of_week()


@app.get("/orders/analytics/orders-by-status")
def orders_by_status(user=require_admin):
    return analytics.orders_by_status()


@app.get("/orders/analytics/monthly")
def monthly_analytics(month: int = Query(..., ge=1, le=12), year: int = Query(..., ge=2000, le=2100),
                      user=require_admin):
    return analytics.monthly_analytics(month, year)


@app.get("/orders/order-number/{order_number}")
def get_order_by_number(order_number: str):
    return orders.get_order_by_number(order_number)


@app.get("/orders/{order_id}")
def get_order(order_id: str, user=require_admin):
    return orders.get_order(order_id)


@app.patch("/orders/{order_id}")
def update_order(order_id: str, payload: OrderUpdate, background_tasks: BackgroundTasks, user=require_admin):
    order = orders.update_order(order_id, payload)
    background_tasks.add_task(notifications.deliver_pending)
    return order


@app.delete("/orders/{order_id}", status_code=204)
def delete_order(order_id: str, user=require_admin):
    orders.delete_order(order_id)
    return Response(status_code=204)


# ===================== Reviews =====================
@app.get("/reviews/featured")
def featured_reviews(limit: int = Query(3, ge=1, le=20)):
    return reviews.featured_reviews(limit)


@app.get("/reviews/active")
def active_reviews(limit: int = Query(10, ge=1, le=50)):
    return reviews.active_reviews(limit)


@app.post("/reviews", status_code=201)
def create_review(payload: ReviewCreate, user=require_admin):
    return reviews.create_review(payload)


@app.get("/reviews")
def list_reviews(is_active: Optional[bool] = None, is_featured: Optional[bool] = None,
                 limit: int = Query(10, ge=1, le=100), skip: int = Query(0, ge=0), user=require_admin):
    result = reviews.list_reviews(is_active, is_featured, limit, skip)
    return {**result, "limit": limit, "skip": skip}


@app.get("/reviews/{review_id}")
def get_review(review_id: str, user=require_admin):
    return reviews.get_review(review_id)


@app.patch("/reviews/{review_id}")
def update_review(review_id: str, payload: ReviewUpdate, user=require_admin):
    return reviews.update_review(review_id, payload)


@app.delete("/reviews/{review_id}", status_code=204)
def delete_review(review_id: str, user=require_admin):
    reviews.delete_review(review_id)
    return Response(status_code=204)


@app.patch("/reviews/{review_id}/toggle-active")
def toggle_review_active(review_id: str, user=require_admin):
    return reviews.toggle_active(review_id)


@app.patch("/reviews/{review_id}/toggle-featured")
def toggle_review_featured(review_id: str, user=require_admin):
    return reviews.toggle_featured(review_id)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
