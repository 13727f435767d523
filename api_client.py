"""
HTTP client for the storefront and the admin back-office.

List endpoints answer either with a bare JSON array (categories, user orders)
or with an envelope such as {"products": [...], "total": 12, "pages": 1}.
normalize_collection() resolves both shapes into a Collection once, at the
edge, so callers never inspect the raw payload themselves.
"""
import logging
from typing import Any, List, Optional, Union

import requests
from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/api"

ListPayload = Union[List[dict], dict]


class ApiError(Exception):
    def __init__(self, status_code: int, detail: Any):
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class Collection(BaseModel):
    items: List[dict]
    total: int
    pages: int = 1
    current_page: int = 1


def normalize_collection(payload: ListPayload, key: str) -> Collection:
    if isinstance(payload, list):
        return Collection(items=payload, total=len(payload), pages=1 if payload else 0)
    if not isinstance(payload, dict):
        raise ApiError(0, f"Unexpected payload type {type(payload).__name__}")
    items = payload.get(key)
    if items is None:
        items = payload.get("items", [])
    meta = payload.get("pagination") or payload
    return Collection(
        items=items,
        total=meta.get("total", len(items)),
        pages=meta.get("pages", 1 if items else 0),
        current_page=meta.get("current_page", 1),
    )


class VitaPharmClient:
    def __init__(self, base_url: str = DEFAULT_BASE_URL, token: Optional[str] = None,
                 session: Optional[requests.Session] = None, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        if token:
            self.set_token(token)

    def set_token(self, token: Optional[str]) -> None:
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        else:
            self.session.headers.pop("Authorization", None)

    def _request(self, method: str, path: str, **kwargs) -> Any:
        resp = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        if resp.status_code >= 300:
            try:
                body = resp.json()
            except ValueError:
                body = None
            detail = body.get("detail", resp.text) if isinstance(body, dict) else resp.text
            logger.error("API error %s on %s %s: %s", resp.status_code, method, path, detail)
            if resp.status_code == 401:
                self.set_token(None)
            raise ApiError(resp.status_code, detail)
        return resp.json()

    # Auth
    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/auth/login", data={"username": email, "password": password})
        self.set_token(data["access_token"])
        return data["user"]

    # Catalog
    def categories(self) -> Collection:
        return normalize_collection(self._request("GET", "/categories"), "categories")

    def products(self, **params) -> Collection:
        return normalize_collection(self._request("GET", "/products", params=params), "products")

    def product(self, product_id: str) -> dict:
        return self._request("GET", f"/products/{product_id}")["product"]

    # Reviews
    def reviews(self, product_id: str, **params) -> Collection:
        return normalize_collection(self._request("GET", f"/products/{product_id}/reviews", params=params), "reviews")

    def add_review(self, product_id: str, rating: int, title: str, comment: str) -> dict:
        body = {"rating": rating, "title": title, "comment": comment}
        return self._request("POST", f"/products/{product_id}/reviews", json=body)["review"]

    # Orders
    def create_order(self, payload: dict) -> dict:
        return self._request("POST", "/orders", json=payload)["order"]

    def my_orders(self) -> Collection:
        return normalize_collection(self._request("GET", "/orders/user"), "orders")

    # Admin
    def admin_orders(self, **params) -> Collection:
        return normalize_collection(self._request("GET", "/admin/orders", params=params), "orders")

    def admin_users(self, **params) -> Collection:
        return normalize_collection(self._request("GET", "/admin/users", params=params), "users")

    def admin_reviews(self, **params) -> Collection:
        return normalize_collection(self._request("GET", "/admin/reviews", params=params), "reviews")

    def set_order_status(self, order_id: str, status: str) -> dict:
        return self._request("PATCH", f"/admin/orders/{order_id}/status", json={"status": status})["order"]

    def moderate_review(self, review_id: str, status: str, admin_response: Optional[str] = None) -> dict:
        body = {"status": status}
        if admin_response:
            body["admin_response"] = admin_response
        return self._request("PATCH", f"/admin/reviews/{review_id}/status", json=body)["review"]

    def stats(self) -> dict:
        return self._request("GET", "/admin/stats")
