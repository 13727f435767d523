import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from database import get_db, ensure_indexes


@pytest.fixture
def db():
    database = mongomock.MongoClient()["vitapharm_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    main.app.dependency_overrides[get_db] = lambda: db
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def make_user(db, name, email, role="user"):
    user_id = db["user"].insert_one({
        "name": name,
        "email": email,
        "password_hash": "not-used",
        "role": role,
    }).inserted_id
    token = main.create_access_token({"sub": str(user_id)})
    return str(user_id), {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin(db):
    return make_user(db, "Admin", "admin@vitapharm.tn", role="admin")


@pytest.fixture
def alice(db):
    return make_user(db, "Alice", "alice@vitapharm.tn")


@pytest.fixture
def bob(db):
    return make_user(db, "Bob", "bob@vitapharm.tn")


def add_category(db, name, active=True):
    return str(db["category"].insert_one({"name": name, "is_active": active}).inserted_id)


def add_subcategory(db, name, category_id):
    return str(db["subcategory"].insert_one({"name": name, "category_id": category_id, "is_active": True}).inserted_id)


def add_product(db, name, price, category_id, subcategory_id=None, **extra):
    doc = {
        "name": name,
        "description": f"{name} description",
        "price": price,
        "category_id": category_id,
        "subcategory_id": subcategory_id,
        "in_stock": True,
        "is_active": True,
        "average_rating": 0.0,
        "total_reviews": 0,
        "rating_breakdown": {"5": 0, "4": 0, "3": 0, "2": 0, "1": 0},
    }
    doc.update(extra)
    return str(db["product"].insert_one(doc).inserted_id)


@pytest.fixture
def catalog(db):
    visage = add_category(db, "Visage")
    corps = add_category(db, "Corps")
    hydratation = add_subcategory(db, "Hydratation", visage)
    return {
        "visage": visage,
        "corps": corps,
        "hydratation": hydratation,
        "creme": add_product(db, "Crème Hydratante", "39.900 TND", visage, hydratation, badge="promo"),
        "serum": add_product(db, "Sérum Éclat", "65.000 TND", visage),
        "huile": add_product(db, "Huile Sèche", "54.500 TND", corps, average_rating=4.5),
    }
