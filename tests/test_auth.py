from datetime import datetime, timedelta, timezone
from pathlib import Path

from jose import jwt

from hausjogja.auth import create_access_token


async def test_register_returns_user_and_token(client, settings):
    resp = await client.post(
        "/api/auth/register",
        json={"name": "Dewi", "email": "dewi@hausjogja.com", "password": "rahasia1"},
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "success"
    assert body["data"]["email"] == "dewi@hausjogja.com"
    assert body["data"]["role"] == "USER"
    assert "password" not in body["data"]

    payload = jwt.decode(body["data"]["token"], settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert payload["id"] == body["data"]["id"]
    expires_in = datetime.fromtimestamp(payload["exp"], tz=timezone.utc) - datetime.now(timezone.utc)
    assert timedelta(days=29, hours=23) < expires_in <= timedelta(days=30)


async def test_register_rejects_duplicate_email(client, customer):
    resp = await client.post(
        "/api/auth/register",
        json={"name": "Sari 2", "email": customer.email, "password": "rahasia1"},
    )
    assert resp.status_code == 400
    assert resp.json() == {"status": "error", "message": "User already exists"}


async def test_register_rejects_short_password(client):
    resp = await client.post(
        "/api/auth/register",
        json={"name": "Dewi", "email": "dewi@hausjogja.com", "password": "123"},
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["status"] == "error"
    assert "password" in body["message"]


async def test_login(client, customer):
    resp = await client.post("/api/auth/login", json={"email": customer.email, "password": "secret123"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["id"] == customer.id
    assert data["token"]


async def test_login_with_wrong_password(client, customer):
    resp = await client.post("/api/auth/login", json={"email": customer.email, "password": "wrong-pass"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid credentials"


async def test_login_with_unknown_email(client):
    resp = await client.post("/api/auth/login", json={"email": "nobody@hausjogja.com", "password": "secret123"})
    assert resp.status_code == 401


async def test_profile_requires_token(client):
    resp = await client.get("/api/auth/profile")
    assert resp.status_code == 401
    assert resp.json()["message"] == "Not authorized, no token"


async def test_profile_rejects_garbage_token(client):
    resp = await client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Not authorized, token failed"


async def test_profile_rejects_expired_token(client, customer, settings):
    token = create_access_token(customer.id, settings, expires_delta=timedelta(minutes=-1))
    resp = await client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


async def test_profile_rejects_token_of_deleted_user(client, settings):
    token = create_access_token(424242, settings)
    resp = await client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


async def test_read_profile(client, customer, customer_headers):
    resp = await client.get("/api/auth/profile", headers=customer_headers)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["name"] == "Sari"
    assert data["email"] == customer.email
    assert "createdAt" in data


async def test_update_profile_is_merge_patch(client, customer, customer_headers):
    resp = await client.put("/api/auth/profile", headers=customer_headers, data={"name": "Sari Dewi"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["name"] == "Sari Dewi"
    assert data["email"] == customer.email
    assert data["token"]

    # The old password still works because none was sent.
    login = await client.post("/api/auth/login", json={"email": customer.email, "password": "secret123"})
    assert login.status_code == 200


async def test_update_profile_password(client, customer, customer_headers):
    resp = await client.put("/api/auth/profile", headers=customer_headers, data={"password": "baru12345"})
    assert resp.status_code == 200

    login = await client.post("/api/auth/login", json={"email": customer.email, "password": "baru12345"})
    assert login.status_code == 200


async def test_update_profile_rejects_taken_email(client, customer_headers, other_customer):
    resp = await client.put("/api/auth/profile", headers=customer_headers, data={"email": other_customer.email})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Email is already in use"


async def test_update_profile_image_replaces_old_file(client, customer_headers, settings):
    first = await client.put(
        "/api/auth/profile",
        headers=customer_headers,
        files={"image": ("me.png", b"first-image", "image/png")},
    )
    assert first.status_code == 200
    first_path = first.json()["data"]["image"]
    assert first_path.startswith("/uploads/profile/")
    first_file = Path(settings.UPLOAD_DIR) / first_path[len("/uploads/"):]
    assert first_file.read_bytes() == b"first-image"

    second = await client.put(
        "/api/auth/profile",
        headers=customer_headers,
        files={"image": ("me2.jpg", b"second-image", "image/jpeg")},
    )
    assert second.status_code == 200
    second_path = second.json()["data"]["image"]
    assert second_path != first_path
    assert not first_file.exists()

    served = await client.get(second_path)
    assert served.status_code == 200
    assert served.content == b"second-image"


async def test_update_profile_rejects_non_image(client, customer_headers):
    resp = await client.put(
        "/api/auth/profile",
        headers=customer_headers,
        files={"image": ("notes.txt", b"hello", "text/plain")},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Only image files are allowed!"


async def test_list_users_is_admin_only(client, customer_headers):
    resp = await client.get("/api/auth/users", headers=customer_headers)
    assert resp.status_code == 403
    assert resp.json()["message"] == "Not authorized as an admin"


async def test_list_users(client, admin_headers, customer, other_customer):
    resp = await client.get("/api/auth/users", headers=admin_headers, params={"limit": 2})
    assert resp.status_code == 200
    body = resp.json()
    # Newest first: other_customer was created last.
    assert [u["email"] for u in body["data"]] == [other_customer.email, customer.email]
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}


async def test_delete_user(client, admin_headers, customer):
    resp = await client.delete(f"/api/auth/users/{customer.id}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "User deleted"

    again = await client.delete(f"/api/auth/users/{customer.id}", headers=admin_headers)
    assert again.status_code == 404


async def test_admin_cannot_delete_self(client, admin, admin_headers):
    resp = await client.delete(f"/api/auth/users/{admin.id}", headers=admin_headers)
    assert resp.status_code == 400


async def test_update_profile_discards_image_when_commit_fails(
    server_error_client, customer_headers, settings, failing_commit
):
    failing_commit()
    resp = await server_error_client.put(
        "/api/auth/profile",
        headers=customer_headers,
        files={"image": ("me.png", b"first-image", "image/png")},
    )
    assert resp.status_code == 500
    profile_dir = Path(settings.UPLOAD_DIR) / "profile"
    assert not profile_dir.exists() or list(profile_dir.iterdir()) == []
