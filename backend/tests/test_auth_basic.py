from datetime import timedelta

import jwt

import auth


def test_password_hash_and_verify_roundtrip():
    """A hashed password verifies; a different password does not."""
    password = "My_S3cret_pass"
    wrong_password = "other_pass"

    hashed = auth.get_password_hash(password)

    assert hashed != password
    assert auth.verify_password(password, hashed) is True
    assert auth.verify_password(wrong_password, hashed) is False


def test_create_and_verify_access_token_contains_sub_and_role():
    data = {"sub": "test-user", "role": "admin"}

    token = auth.create_access_token(data)
    assert isinstance(token, str)
    # header.payload.signature
    assert len(token.split(".")) == 3

    payload = auth.verify_token(token)
    assert payload is not None
    assert payload["sub"] == data["sub"]
    assert payload["role"] == data["role"]
    assert "exp" in payload


def test_verify_token_returns_none_for_invalid_token():
    assert auth.verify_token("invalid.token.value") is None


def test_register_login_and_me(client):
    response = client.post("/register", json={
        "username": "alice",
        "password": "pass1234",
        "full_name": "Alice",
        "role": "waiter",
    })
    assert response.status_code == 200
    assert response.json()["role"] == "waiter"

    duplicate = client.post("/register", json={"username": "alice", "password": "pass1234", "role": "waiter"})
    assert duplicate.status_code == 400

    login = client.post("/login", json={"username": "alice", "password": "pass1234"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["username"] == "alice"


def test_login_with_wrong_password_is_rejected(client, waiter_user):
    response = client.post("/login", json={"username": "waiter", "password": "nope"})
    assert response.status_code == 401


def test_register_rejects_unknown_role(client):
    response = client.post("/register", json={"username": "bob", "password": "pass1234", "role": "chef"})
    assert response.status_code == 422


def test_protected_route_requires_token(client):
    assert client.get("/me").status_code == 401
    assert client.get("/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_users_listing_is_admin_only(client, admin_headers, waiter_headers):
    assert client.get("/users", headers=admin_headers).status_code == 200
    assert client.get("/users", headers=waiter_headers).status_code == 403


def test_expired_token_is_rejected():
    token = auth.create_access_token({"sub": "waiter", "role": "waiter"}, expires_delta=timedelta(seconds=-1))
    assert auth.verify_token(token) is None


def test_token_signed_with_another_key_is_rejected():
    foreign = jwt.encode({"sub": "admin", "role": "admin"}, "some-other-key", algorithm=auth.ALGORITHM)
    assert auth.verify_token(foreign) is None


def test_secret_key_is_generated_once_and_reused(tmp_path, monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    key_file = str(tmp_path / "signing.key")

    first = auth.get_secret_key(key_file)
    assert first
    assert auth.get_secret_key(key_file) == first


def test_secret_key_from_environment_wins(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "from-env")
    assert auth.get_secret_key(str(tmp_path / "unused.key")) == "from-env"
