import os

# must be set before backend.settings is imported
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient

from backend.db import Base, engine
from backend.main import app


@pytest.fixture
def client():
    Base.metadata.create_all(bind=engine)
    with TestClient(app) as c:
        yield c
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def org(client):
    r = client.post("/api/organizations", json={"name": "Hillside Primary"})
    assert r.status_code == 200, r.text
    return r.json()


@pytest.fixture
def org_url(org):
    return f"/api/organizations/{org['id']}"


@pytest.fixture
def student(client, org_url):
    r = client.post(f"{org_url}/students", json={"name": "Ada Lovelace", "email": "ada@example.com"})
    assert r.status_code == 200, r.text
    return r.json()


@pytest.fixture
def category(client, org_url):
    """Look up a seeded category by kind and name."""
    def find(kind, name):
        return next(c for c in client.get(f"{org_url}/{kind}").json() if c["name"] == name)
    return find
