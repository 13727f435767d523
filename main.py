import os
import re
import logging
from contextlib import asynccontextmanager
from typing import Optional
from datetime import datetime, timedelta, timezone
from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError
from bson import ObjectId
from bson.errors import InvalidId

from database import get_db, ensure_indexes, create_document, get_documents
from catalog import CatalogQuery, query_catalog
from ratings import APPROVED, compute_rating_stats, update_product_rating
from orders import build_order_items, can_transition, delivery_fee, generate_order_number, has_purchased
from schemas import (
    User as UserSchema, UserCreate,
    CategoryCreate, CategoryUpdate,
    SubcategoryCreate, SubcategoryUpdate,
    Product as ProductSchema, ProductCreate, ProductUpdate,
    Review as ReviewSchema, ReviewCreate, ReviewUpdate, ReviewVote, ReviewStatusUpdate,
    Order as OrderSchema, OrderCreate, OrderStatusUpdate,
)

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger("vitapharm")

SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 30))
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@vitapharm.tn")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def create_default_admin(db) -> Optional[str]:
    if db["user"].find_one({"role": "admin"}):
        return None
    admin = UserSchema(
        name="Administrateur",
        email=ADMIN_EMAIL,
        password_hash=get_password_hash(ADMIN_PASSWORD),
        role="admin",
    )
    admin_id = db["user"].insert_one({**admin.model_dump(), "created_at": datetime.now(timezone.utc)}).inserted_id
    logger.warning("Default admin %s created, change its password", ADMIN_EMAIL)
    return str(admin_id)


@asynccontextmanager
async def lifespan(app: FastAPI):
    database = get_db()
    if database is None:
        logger.warning("DATABASE_URL/DATABASE_NAME not set, running without a database")
    else:
        ensure_indexes(database)
        create_default_admin(database)
    yield


app = FastAPI(title="VitaPharm API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Helpers
class UserOut(BaseModel):
    id: str
    name: str
    email: str
    role: str = "user"
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def to_obj_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(400, "Invalid id")


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    out = dict(doc)
    out["id"] = str(out.pop("_id"))
    out.pop("password_hash", None)
    return out


def user_out(user: dict) -> UserOut:
    return UserOut(
        id=str(user["_id"]),
        name=user.get("name", ""),
        email=user.get("email", ""),
        role=user.get("role", "user"),
        phone=user.get("phone"),
        address=user.get("address"),
        city=user.get("city"),
    )


def require_db(db=Depends(get_db)):
    if db is None:
        raise HTTPException(500, "Database not configured")
    return db


def _user_from_token(token: str, db) -> UserOut:
    credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise credentials_exception
        oid = ObjectId(user_id)
    except (JWTError, InvalidId):
        raise credentials_exception
    user = db["user"].find_one({"_id": oid})
    if not user:
        raise credentials_exception
    return user_out(user)


def get_current_user(token: str = Depends(oauth2_scheme), db=Depends(require_db)) -> UserOut:
    return _user_from_token(token, db)


def get_optional_user(token: Optional[str] = Depends(optional_oauth2_scheme), db=Depends(require_db)) -> Optional[UserOut]:
    if not token:
        return None
    return _user_from_token(token, db)


def require_admin(current: UserOut = Depends(get_current_user)) -> UserOut:
    if current.role != "admin":
        raise HTTPException(403, "Admin access required")
    return current


def page_meta(total: int, page: int, limit: int) -> dict:
    pages = (total + limit - 1) // limit
    return {"total": total, "pages": pages, "current_page": page}


@app.get("/")
def read_root():
    return {"message": "VitaPharm backend is running"}


# Auth
@app.post("/api/auth/register", response_model=Token, status_code=201)
def register(payload: UserCreate, db=Depends(require_db)):
    if db["user"].find_one({"email": payload.email}):
        raise HTTPException(400, "Email already registered")
    data = payload.model_dump(exclude={"password"})
    user = UserSchema(**data, password_hash=get_password_hash(payload.password), role="user")
    doc = {**user.model_dump(), "created_at": datetime.now(timezone.utc)}
    try:
        doc["_id"] = db["user"].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(400, "Email already registered")
    logger.info("User registered: %s", payload.email)
    access_token = create_access_token({"sub": str(doc["_id"])})
    return Token(access_token=access_token, user=user_out(doc))


@app.post("/api/auth/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db=Depends(require_db)):
    user = db["user"].find_one({"email": form_data.username})
    if not user or not verify_password(form_data.password, user.get("password_hash", "")):
        raise HTTPException(400, "Incorrect email or password")
    access_token = create_access_token({"sub": str(user["_id"])})
    return Token(access_token=access_token, user=user_out(user))


@app.get("/api/auth/me", response_model=UserOut)
def me(current: UserOut = Depends(get_current_user)):
    return current


# Categories
@app.get("/api/categories")
def list_categories(db=Depends(require_db)):
    cats = db["category"].find({"is_active": True}).sort("name", 1)
    return [serialize(c) for c in cats]


@app.post("/api/categories", status_code=201)
def create_category(payload: CategoryCreate, db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    if db["category"].find_one({"name": payload.name}):
        raise HTTPException(400, "Category already exists")
    doc = {**payload.model_dump(), "created_at": datetime.now(timezone.utc)}
    try:
        doc["_id"] = db["category"].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(400, "Category already exists")
    logger.info("Category created: %s", payload.name)
    return {"message": "Category created", "category": serialize(doc)}


@app.put("/api/categories/{category_id}")
def update_category(category_id: str, payload: CategoryUpdate, db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    oid = to_obj_id(category_id)
    update = {k: v for k, v in payload.model_dump().items() if v is not None}
    if update:
        try:
            db["category"].update_one({"_id": oid}, {"$set": update})
        except DuplicateKeyError:
            raise HTTPException(400, "Category already exists")
    cat = db["category"].find_one({"_id": oid})
    if not cat:
        raise HTTPException(404, "Category not found")
    return {"message": "Category updated", "category": serialize(cat)}


@app.delete("/api/categories/{category_id}")
def delete_category(category_id: str, db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    oid = to_obj_id(category_id)
    res = db["category"].update_one({"_id": oid}, {"$set": {"is_active": False}})
    if res.matched_count == 0:
        raise HTTPException(404, "Category not found")
    db["subcategory"].update_many({"category_id": str(oid)}, {"$set": {"is_active": False}})
    db["product"].update_many({"category_id": str(oid)}, {"$set": {"is_active": False}})
    logger.info("Category %s deactivated with its subcategories and products", category_id)
    return {"message": "Category deactivated"}


# Subcategories
def _attach_category_name(sub: dict, names: dict) -> dict:
    sub["category_name"] = names.get(sub.get("category_id"))
    return sub


@app.get("/api/subcategories")
def list_subcategories(category_id: Optional[str] = None, db=Depends(require_db)):
    query = {"is_active": True}
    if category_id:
        query["category_id"] = category_id
    names = {str(c["_id"]): c.get("name") for c in db["category"].find({}, {"name": 1})}
    subs = db["subcategory"].find(query).sort("name", 1)
    return [_attach_category_name(serialize(s), names) for s in subs]


def _require_category(db, category_id: str) -> dict:
    try:
        oid = ObjectId(category_id)
    except (InvalidId, TypeError):
        raise HTTPException(400, "Category not found")
    cat = db["category"].find_one({"_id": oid})
    if not cat:
        raise HTTPException(400, "Category not found")
    return cat


@app.post("/api/subcategories", status_code=201)
def create_subcategory(payload: SubcategoryCreate, db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    _require_category(db, payload.category_id)
    sub_id = create_document("subcategory", payload.model_dump(), database=db)
    doc = db["subcategory"].find_one({"_id": ObjectId(sub_id)})
    logger.info("Subcategory created: %s", payload.name)
    return {"message": "Subcategory created", "subcategory": serialize(doc)}


@app.put("/api/subcategories/{subcategory_id}")
def update_subcategory(subcategory_id: str, payload: SubcategoryUpdate, db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    oid = to_obj_id(subcategory_id)
    update = {k: v for k, v in payload.model_dump().items() if v is not None}
    if "category_id" in update:
        _require_category(db, update["category_id"])
    if update:
        db["subcategory"].update_one({"_id": oid}, {"$set": update})
    sub = db["subcategory"].find_one({"_id": oid})
    if not sub:
        raise HTTPException(404, "Subcategory not found")
    if "category_id" in update:
        # products follow their subcategory into the new category
        moved = db["product"].update_many({"subcategory_id": str(oid)}, {"$set": {"category_id": update["category_id"]}})
        logger.info("Subcategory %s moved to category %s with %d product(s)", subcategory_id, update["category_id"], moved.modified_count)
    return {"message": "Subcategory updated", "subcategory": serialize(sub)}


@app.delete("/api/subcategories/{subcategory_id}")
def delete_subcategory(subcategory_id: str, db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    oid = to_obj_id(subcategory_id)
    res = db["subcategory"].update_one({"_id": oid}, {"$set": {"is_active": False}})
    if res.matched_count == 0:
        raise HTTPException(404, "Subcategory not found")
    db["product"].update_many({"subcategory_id": str(oid)}, {"$set": {"is_active": False}})
    return {"message": "Subcategory deactivated"}


# Products
def _name_maps(db):
    categories = {str(c["_id"]): c.get("name") for c in get_documents("category", database=db)}
    subcategories = {str(s["_id"]): s.get("name") for s in get_documents("subcategory", database=db)}
    return categories, subcategories


def _with_names(product: dict, categories: dict, subcategories: dict) -> dict:
    product["category_name"] = categories.get(product.get("category_id"))
    product["subcategory_name"] = subcategories.get(product.get("subcategory_id"))
    return product


def _check_product_refs(db, category_id: Optional[str], subcategory_id: Optional[str]) -> None:
    if category_id is not None:
        _require_category(db, category_id)
    if subcategory_id:
        try:
            sub = db["subcategory"].find_one({"_id": ObjectId(subcategory_id)})
        except (InvalidId, TypeError):
            sub = None
        if not sub:
            raise HTTPException(400, "Subcategory not found")
        if category_id is not None and sub.get("category_id") != category_id:
            raise HTTPException(400, "Subcategory does not belong to the category")


@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[str] = None,
    max_price: Optional[str] = None,
    min_rating: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    in_stock: Optional[str] = None,
    badge: Optional[str] = None,
    db=Depends(require_db),
):
    query = CatalogQuery.from_params(
        category=category,
        subcategory=subcategory,
        search=search,
        min_price=min_price,
        max_price=max_price,
        min_rating=min_rating,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=limit,
        in_stock=in_stock,
        badge=badge,
    )
    categories, subcategories = _name_maps(db)
    # insertion order is the stable tie-break for equal sort keys
    products = [
        _with_names(serialize(p), categories, subcategories)
        for p in db["product"].find({"is_active": True}).sort("_id", 1)
    ]
    result = query_catalog(products, query)
    return {
        "products": result.items,
        "total": result.total,
        "pages": result.pages,
        "current_page": result.current_page,
        "limit": result.page_size,
    }


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db=Depends(require_db)):
    prod = db["product"].find_one({"_id": to_obj_id(product_id)})
    if not prod or not prod.get("is_active", True):
        raise HTTPException(404, "Product not found")
    categories, subcategories = _name_maps(db)
    prod = _with_names(serialize(prod), categories, subcategories)
    # related by category
    related = db["product"].find({
        "category_id": prod.get("category_id"),
        "is_active": True,
        "_id": {"$ne": ObjectId(product_id)},
    }).limit(4)
    return {"product": prod, "related": [_with_names(serialize(r), categories, subcategories) for r in related]}


@app.post("/api/products", status_code=201)
def create_product(payload: ProductCreate, db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    _check_product_refs(db, payload.category_id, payload.subcategory_id)
    data = ProductSchema(**payload.model_dump()).model_dump()
    if data.get("gallery") and not data.get("image"):
        data["image"] = data["gallery"][0]
    doc = {**data, "created_at": datetime.now(timezone.utc)}
    doc["_id"] = db["product"].insert_one(doc).inserted_id
    logger.info("Product created: %s", payload.name)
    return {"message": "Product created", "product": serialize(doc)}


@app.put("/api/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    oid = to_obj_id(product_id)
    prod = db["product"].find_one({"_id": oid})
    if not prod:
        raise HTTPException(404, "Product not found")
    update = {k: v for k, v in payload.model_dump().items() if v is not None}
    if "category_id" in update or "subcategory_id" in update:
        _check_product_refs(
            db,
            update.get("category_id", prod.get("category_id")),
            update.get("subcategory_id", prod.get("subcategory_id")),
        )
    update["updated_at"] = datetime.now(timezone.utc)
    db["product"].update_one({"_id": oid}, {"$set": update})
    return {"message": "Product updated", "product": serialize(db["product"].find_one({"_id": oid}))}


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    res = db["product"].update_one({"_id": to_obj_id(product_id)}, {"$set": {"is_active": False}})
    if res.matched_count == 0:
        raise HTTPException(404, "Product not found")
    return {"message": "Product deactivated"}


# Search suggestions
@app.get("/api/search")
def search_suggestions(q: str, db=Depends(require_db)):
    cursor = db["product"].find(
        {"name": {"$regex": re.escape(q), "$options": "i"}, "is_active": True},
        {"name": 1, "image": 1},
    ).limit(8)
    return [{"id": str(d["_id"]), "name": d.get("name"), "image": d.get("image")} for d in cursor]


# Reviews
REVIEW_SORT_FIELDS = ("created_at", "rating", "helpful_votes")


def _active_product(db, product_id: str) -> dict:
    prod = db["product"].find_one({"_id": to_obj_id(product_id)})
    if not prod or not prod.get("is_active", True):
        raise HTTPException(404, "Product not found")
    return prod


@app.get("/api/products/{product_id}/reviews")
def get_reviews(
    product_id: str,
    rating: Optional[int] = Query(None, ge=1, le=5),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db=Depends(require_db),
):
    query = {"product_id": product_id, "status": APPROVED}
    if rating:
        query["rating"] = rating
    field = sort_by if sort_by in REVIEW_SORT_FIELDS else "created_at"
    direction = 1 if sort_order == "asc" else -1
    total = db["review"].count_documents(query)
    cursor = db["review"].find(query).sort([(field, direction)]).skip((page - 1) * limit).limit(limit)
    stats = compute_rating_stats(
        r.get("rating", 0) for r in db["review"].find({"product_id": product_id, "status": APPROVED}, {"rating": 1})
    )
    meta = page_meta(total, page, limit)
    meta["has_next"] = page * limit < total
    meta["has_prev"] = page > 1
    return {
        "reviews": [serialize(r) for r in cursor],
        "pagination": meta,
        "stats": stats.as_document(),
    }


@app.post("/api/products/{product_id}/reviews", status_code=201)
def add_review(product_id: str, payload: ReviewCreate, db=Depends(require_db), current: UserOut = Depends(get_current_user)):
    prod = _active_product(db, product_id)
    product_id = str(prod["_id"])
    if db["review"].find_one({"product_id": product_id, "user_id": current.id}):
        raise HTTPException(409, "You already reviewed this product")
    review = ReviewSchema(
        product_id=product_id,
        user_id=current.id,
        user_name=current.name,
        rating=payload.rating,
        title=payload.title.strip(),
        comment=payload.comment.strip(),
        is_verified_purchase=has_purchased(db, current.id, product_id),
    )
    now = datetime.now(timezone.utc)
    doc = {**review.model_dump(), "created_at": now, "updated_at": now}
    try:
        doc["_id"] = db["review"].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise HTTPException(409, "You already reviewed this product")
    update_product_rating(db, product_id)
    return {"message": "Review created", "review": serialize(doc)}


def _get_review(db, review_id: str) -> dict:
    review = db["review"].find_one({"_id": to_obj_id(review_id)})
    if not review:
        raise HTTPException(404, "Review not found")
    return review


@app.put("/api/reviews/{review_id}")
def update_review(review_id: str, payload: ReviewUpdate, db=Depends(require_db), current: UserOut = Depends(get_current_user)):
    review = _get_review(db, review_id)
    if review.get("user_id") != current.id:
        raise HTTPException(403, "Not allowed")
    update = {k: v.strip() if isinstance(v, str) else v for k, v in payload.model_dump().items() if v is not None}
    # edits go back to moderation
    update["status"] = "pending"
    update["updated_at"] = datetime.now(timezone.utc)
    db["review"].update_one({"_id": review["_id"]}, {"$set": update})
    update_product_rating(db, review["product_id"])
    return {"message": "Review updated", "review": serialize(db["review"].find_one({"_id": review["_id"]}))}


@app.delete("/api/reviews/{review_id}")
def delete_review(review_id: str, db=Depends(require_db), current: UserOut = Depends(get_current_user)):
    review = _get_review(db, review_id)
    if review.get("user_id") != current.id and current.role != "admin":
        raise HTTPException(403, "Not allowed")
    db["review"].delete_one({"_id": review["_id"]})
    update_product_rating(db, review["product_id"])
    return {"message": "Review deleted"}


@app.post("/api/reviews/{review_id}/vote")
def vote_review(review_id: str, payload: ReviewVote, db=Depends(require_db), current: UserOut = Depends(get_current_user)):
    review = _get_review(db, review_id)
    if review.get("user_id") == current.id:
        raise HTTPException(400, "You cannot vote on your own review")
    field = "helpful_votes" if payload.vote_type == "helpful" else "unhelpful_votes"
    db["review"].update_one({"_id": review["_id"]}, {"$inc": {field: 1}})
    review = db["review"].find_one({"_id": review["_id"]})
    return {
        "message": "Vote recorded",
        "helpful_votes": review.get("helpful_votes", 0),
        "unhelpful_votes": review.get("unhelpful_votes", 0),
    }


@app.get("/api/user/reviews")
def my_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db=Depends(require_db),
    current: UserOut = Depends(get_current_user),
):
    query = {"user_id": current.id}
    total = db["review"].count_documents(query)
    cursor = db["review"].find(query).sort([("created_at", -1)]).skip((page - 1) * limit).limit(limit)
    return {"reviews": [serialize(r) for r in cursor], "pagination": page_meta(total, page, limit)}


@app.get("/api/products/{product_id}/can-review")
def can_review(product_id: str, db=Depends(require_db), current: UserOut = Depends(get_current_user)):
    existing = db["review"].find_one({"product_id": product_id, "user_id": current.id})
    if existing:
        return {"can_review": False, "reason": "already_reviewed", "existing_review": serialize(existing)}
    return {"can_review": True, "has_purchased": has_purchased(db, current.id, product_id)}


# Orders (checkout)
@app.post("/api/orders", status_code=201)
def create_order(payload: OrderCreate, db=Depends(require_db), current: Optional[UserOut] = Depends(get_optional_user)):
    items, subtotal = build_order_items(db, payload.items)
    fee = delivery_fee(subtotal)
    order = OrderSchema(
        user_id=current.id if current else None,
        items=items,
        customer_info=payload.customer_info,
        total_price=subtotal,
        delivery_fee=fee,
        final_total=round(subtotal + fee, 3),
        payment_method=payload.payment_method,
        order_number=generate_order_number(db),
    )
    doc = {**order.model_dump(), "created_at": datetime.now(timezone.utc)}
    doc["_id"] = db["order"].insert_one(doc).inserted_id
    logger.info("Order %s created, total %.3f", doc["order_number"], doc["final_total"])
    return {"message": "Order created", "order": serialize(doc)}


@app.get("/api/orders/user")
def my_orders(db=Depends(require_db), current: UserOut = Depends(get_current_user)):
    orders = db["order"].find({"user_id": current.id}).sort([("created_at", -1)])
    return [serialize(o) for o in orders]


# Admin
@app.get("/api/admin/orders")
def admin_orders(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db=Depends(require_db),
    admin: UserOut = Depends(require_admin),
):
    query = {"status": status} if status else {}
    total = db["order"].count_documents(query)
    cursor = db["order"].find(query).sort([("created_at", -1)]).skip((page - 1) * limit).limit(limit)
    return {"orders": [serialize(o) for o in cursor], **page_meta(total, page, limit)}


@app.patch("/api/admin/orders/{order_id}/status")
def update_order_status(order_id: str, payload: OrderStatusUpdate, db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    oid = to_obj_id(order_id)
    order = db["order"].find_one({"_id": oid})
    if not order:
        raise HTTPException(404, "Order not found")
    current_status = order.get("status", "pending")
    if not can_transition(current_status, payload.status):
        logger.info("Rejected order %s transition %s -> %s", order_id, current_status, payload.status)
        raise HTTPException(400, f"Cannot change status from {current_status} to {payload.status}")
    db["order"].update_one({"_id": oid}, {"$set": {"status": payload.status, "updated_at": datetime.now(timezone.utc)}})
    return {"message": "Status updated", "order": serialize(db["order"].find_one({"_id": oid}))}


@app.get("/api/admin/users")
def admin_users(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db=Depends(require_db),
    admin: UserOut = Depends(require_admin),
):
    total = db["user"].count_documents({})
    cursor = db["user"].find({}, {"password_hash": 0}).sort([("created_at", -1)]).skip((page - 1) * limit).limit(limit)
    return {"users": [serialize(u) for u in cursor], **page_meta(total, page, limit)}


@app.get("/api/admin/reviews")
def admin_reviews(
    status: Optional[str] = None,
    product_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db=Depends(require_db),
    admin: UserOut = Depends(require_admin),
):
    query = {}
    if status:
        query["status"] = status
    if product_id:
        query["product_id"] = product_id
    total = db["review"].count_documents(query)
    cursor = db["review"].find(query).sort([("created_at", -1)]).skip((page - 1) * limit).limit(limit)
    return {"reviews": [serialize(r) for r in cursor], "pagination": page_meta(total, page, limit)}


@app.patch("/api/admin/reviews/{review_id}/status")
def moderate_review(review_id: str, payload: ReviewStatusUpdate, db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    review = _get_review(db, review_id)
    update = {"status": payload.status, "updated_at": datetime.now(timezone.utc)}
    if payload.admin_response:
        update["admin_response"] = payload.admin_response
    db["review"].update_one({"_id": review["_id"]}, {"$set": update})
    update_product_rating(db, review["product_id"])
    return {"message": f"Review {payload.status}", "review": serialize(db["review"].find_one({"_id": review["_id"]}))}


@app.get("/api/admin/stats")
def admin_stats(db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    recent = db["order"].find().sort([("created_at", -1)]).limit(5)
    return {
        "total_users": db["user"].count_documents({"role": "user"}),
        "total_orders": db["order"].count_documents({}),
        "total_products": db["product"].count_documents({"is_active": True}),
        "total_categories": db["category"].count_documents({"is_active": True}),
        "pending_reviews": db["review"].count_documents({"status": "pending"}),
        "recent_orders": [serialize(o) for o in recent],
    }


# Seed sample data if empty
@app.post("/api/seed")
def seed(db=Depends(require_db), admin: UserOut = Depends(require_admin)):
    if db["category"].count_documents({}) == 0:
        categories = [
            {"name": "Visage", "description": "Soins du visage", "image": "/cat-visage.jpg", "is_active": True},
            {"name": "Corps", "description": "Soins du corps", "image": "/cat-corps.jpg", "is_active": True},
            {"name": "Compléments", "description": "Compléments alimentaires", "image": "/cat-complements.jpg", "is_active": True},
        ]
        db["category"].insert_many(categories)
    if db["product"].count_documents({}) == 0:
        cat_ids = {c["name"]: str(c["_id"]) for c in db["category"].find({}, {"name": 1})}
        hydratation = db["subcategory"].insert_one({
            "name": "Hydratation", "category_id": cat_ids.get("Visage"), "is_active": True,
        }).inserted_id
        products = [
            {
                "name": "Crème Hydratante Intense",
                "description": "Hydratation 24h pour peaux sèches.",
                "price": "39.900 TND",
                "original_price": "45.000 TND",
                "category_id": cat_ids.get("Visage"),
                "subcategory_id": str(hydratation),
                "image": "/prod-creme-1.jpg",
                "gallery": ["/prod-creme-1.jpg", "/prod-creme-2.jpg"],
                "badge": "promo",
            },
            {
                "name": "Huile Sèche Corps",
                "description": "Nourrit et satine la peau.",
                "price": "54.500 TND",
                "category_id": cat_ids.get("Corps"),
                "image": "/prod-huile-1.jpg",
                "gallery": ["/prod-huile-1.jpg"],
                "badge": "new",
            },
            {
                "name": "Vitamine C 1000mg",
                "description": "Complément antioxydant, 30 comprimés.",
                "price": "18.000 TND",
                "category_id": cat_ids.get("Compléments"),
                "image": "/prod-vitc-1.jpg",
                "gallery": ["/prod-vitc-1.jpg"],
            },
        ]
        now = datetime.now(timezone.utc)
        db["product"].insert_many([{**ProductSchema(**p).model_dump(), "created_at": now} for p in products])
    return {"ok": True}


@app.get("/test")
def test_database(db=Depends(get_db)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
