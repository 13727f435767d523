"""
Database Schemas for the VitaPharm storefront

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name.
Create/Update variants are the request bodies accepted by the API.
"""
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, Field, EmailStr, field_validator

ReviewStatus = Literal["pending", "approved", "rejected"]
OrderStatus = Literal["pending", "confirmed", "preparing", "shipped", "delivered", "cancelled"]


def _price_text(value):
    if value is None:
        return value
    return str(value)


# ------------ Users ------------
class UserCreate(BaseModel):
    name: str = Field(..., min_length=2, description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=6)
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None

class User(BaseModel):
    name: str
    email: EmailStr
    password_hash: str = Field(..., description="Hashed password")
    role: Literal["user", "admin"] = "user"
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None

# ------------ Categories ------------
class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: bool = True

class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: Optional[bool] = None

class SubcategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    category_id: str = Field(..., description="Parent category id")
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: bool = True

class SubcategoryUpdate(BaseModel):
    name: Optional[str] = None
    category_id: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    is_active: Optional[bool] = None

# ------------ Products ------------
class ProductCreate(BaseModel):
    name: str
    description: str
    price: str = Field(..., description="Display price, e.g. 12.500 TND")
    original_price: Optional[str] = None
    category_id: str
    subcategory_id: Optional[str] = None
    image: Optional[str] = None
    gallery: List[str] = []
    badge: Optional[str] = None
    in_stock: bool = True
    stock_quantity: int = Field(100, ge=0)
    is_active: bool = True

    @field_validator("price", "original_price", mode="before")
    @classmethod
    def price_as_text(cls, value):
        return _price_text(value)

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None
    original_price: Optional[str] = None
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    image: Optional[str] = None
    gallery: Optional[List[str]] = None
    badge: Optional[str] = None
    in_stock: Optional[bool] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None

    @field_validator("price", "original_price", mode="before")
    @classmethod
    def price_as_text(cls, value):
        return _price_text(value)

class Product(ProductCreate):
    average_rating: float = Field(0.0, ge=0, le=5)
    total_reviews: int = 0
    rating_breakdown: Dict[str, int] = {"5": 0, "4": 0, "3": 0, "2": 0, "1": 0}

# ------------ Reviews ------------
class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    title: str = Field(..., min_length=1, max_length=100)
    comment: str = Field(..., min_length=1, max_length=1000)

class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    comment: Optional[str] = Field(None, min_length=1, max_length=1000)

class ReviewVote(BaseModel):
    vote_type: Literal["helpful", "unhelpful"]

class ReviewStatusUpdate(BaseModel):
    status: ReviewStatus
    admin_response: Optional[str] = None

class Review(BaseModel):
    product_id: str
    user_id: str
    user_name: str
    rating: int = Field(..., ge=1, le=5)
    title: str
    comment: str
    status: ReviewStatus = "approved"
    is_verified_purchase: bool = False
    helpful_votes: int = 0
    unhelpful_votes: int = 0
    admin_response: Optional[str] = None

# ------------ Orders ------------
class OrderItemIn(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)

class OrderItem(BaseModel):
    product_id: str
    name: str
    price: float
    quantity: int

class CustomerInfo(BaseModel):
    full_name: str
    phone: str
    email: EmailStr
    address: str
    city: str
    notes: Optional[str] = None

class OrderCreate(BaseModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    customer_info: CustomerInfo
    payment_method: str = "COD"

class OrderStatusUpdate(BaseModel):
    status: OrderStatus

class Order(BaseModel):
    user_id: Optional[str] = None
    items: List[OrderItem]
    customer_info: CustomerInfo
    total_price: float
    delivery_fee: float = 15.0
    final_total: float
    status: OrderStatus = "pending"
    payment_method: str = "COD"
    order_number: Optional[str] = None
