import mongomock
import pytest
from fastapi.testclient import TestClient

import auth
import config
import database
import guides
from schemas import GuideProfileCreate, Identity


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    mock_db = mongomock.MongoClient()["marketplace_test"]
    monkeypatch.setattr(database, "db", mock_db)
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)
    monkeypatch.setattr(config, "JWT_SECRET", "test-secret")
    database.ensure_indexes()
    return mock_db


@pytest.fixture
def client():
    import main
    return TestClient(main.app)


def _identity(account, role):
    return Identity(id=account["id"], email=account["email"], role=role)


@pytest.fixture
def make_guide():
    counter = {"n": 0}

    def factory(city="Delhi", hourly_rate=1000, languages=("English", "Hindi"), rating=None, with_profile=True):
        counter["n"] += 1
        email = f"guide{counter['n']}@guides.in"
        account, token = auth.register("guide", email, "secret123", f"Guide {counter['n']}")
        identity = _identity(account, "guide")
        if with_profile:
            guides.create_profile(identity, GuideProfileCreate(
                full_name=f"Guide {counter['n']}",
                email=email,
                phone="+91 98100 00000",
                city=city,
                languages=list(languages),
                experience="5 years",
                hourly_rate=hourly_rate,
                bio="Old city walks",
                profile_image=f"images/guide{counter['n']}.jpg",
            ))
            if rating is not None:
                database.db["guide"].update_one({"id": identity.id}, {"$set": {"rating": rating}})
        return identity, token

    return factory


@pytest.fixture
def make_tourist():
    counter = {"n": 0}

    def factory(name=None):
        counter["n"] += 1
        account, token = auth.register(
            "tourist", f"tourist{counter['n']}@travel.org", "secret123",
            name or f"Tourist {counter['n']}", "Indian",
        )
        return _identity(account, "tourist"), token

    return factory


@pytest.fixture
def guide(make_guide):
    return make_guide()


@pytest.fixture
def tourist(make_tourist):
    return make_tourist(name="Maya Iyer")
