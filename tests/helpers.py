"""Request helpers for the API tests."""
from __future__ import annotations

PASSWORD = "secret1"


def register(client, email="a@x.com", password=PASSWORD, name="Alice"):
    return client.post(
        "/api/v1/auth/register",
        json={"name": name, "email": email, "password": password},
    )


def login(client, email="a@x.com", password=PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def signed_up(client, email="a@x.com", name="Alice"):
    """Register and log in; returns the new user's id."""
    resp = register(client, email=email, name=name)
    assert resp.status_code == 201, resp.get_json()
    resp = login(client, email=email)
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]["user"]["id"]
