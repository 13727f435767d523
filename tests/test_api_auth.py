import main
from database import get_db


def register(client, email="nour@vitapharm.tn", password="secret123"):
    return client.post("/api/auth/register", json={"name": "Nour", "email": email, "password": password, "city": "Sfax"})


def test_register_returns_token_and_user(client, db):
    resp = register(client)
    assert resp.status_code == 201
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "user"
    assert body["user"]["city"] == "Sfax"
    assert db["user"].find_one({"email": "nour@vitapharm.tn"})["password_hash"] != "secret123"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json()["email"] == "nour@vitapharm.tn"


def test_register_rejects_duplicate_email(client):
    register(client)
    assert register(client).status_code == 400


def test_login(client):
    register(client)
    ok = client.post("/api/auth/login", data={"username": "nour@vitapharm.tn", "password": "secret123"})
    assert ok.status_code == 200
    assert ok.json()["user"]["name"] == "Nour"

    bad = client.post("/api/auth/login", data={"username": "nour@vitapharm.tn", "password": "wrong-one"})
    assert bad.status_code == 400


def test_invalid_token(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401


def test_token_for_deleted_user(client, db, alice):
    user_id, headers = alice
    db["user"].delete_many({})
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_default_admin_created_once(db):
    assert main.create_default_admin(db) is not None
    assert main.create_default_admin(db) is None
    admin = db["user"].find_one({"role": "admin"})
    assert admin["email"] == main.ADMIN_EMAIL
    assert main.verify_password(main.ADMIN_PASSWORD, admin["password_hash"])


def test_seed_fills_empty_catalog(client, admin):
    _, headers = admin
    assert client.post("/api/seed", headers=headers).json() == {"ok": True}
    products = client.get("/api/products").json()
    assert products["total"] == 3
    assert {p["category_name"] for p in products["products"]} == {"Visage", "Corps", "Compléments"}
    client.post("/api/seed", headers=headers)
    assert client.get("/api/products").json()["total"] == 3


def test_health_endpoint(client, catalog):
    body = client.get("/test").json()
    assert body["database"] == "✅ Connected & Working"
    assert "product" in body["collections"]


def test_missing_database_gives_500(client):
    main.app.dependency_overrides[get_db] = lambda: None
    assert client.get("/api/categories").status_code == 500
    assert client.get("/test").json()["connection_status"] == "Not Connected"
