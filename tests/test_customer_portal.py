from datetime import datetime, timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base, get_db
from app.models import Address, Booking, Client, Company, User
from app.routes.customer import router
from app.security_utils import create_jwt_token


def make_client(tmp_path):
    db_path = tmp_path / "test_cleanday_customer.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    testing_session_local = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)

    app = FastAPI()
    app.include_router(router)

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app), testing_session_local


def _headers(user_id: int) -> dict[str, str]:
    token = create_jwt_token({"sub": str(user_id)}, expires_delta=timedelta(hours=1))
    return {"Authorization": f"Bearer {token}"}


def _seed(session_local) -> dict:
    db = session_local()
    company = Company(name="Sparkle", slug="sparkle")
    db.add(company)
    db.flush()
    customer = User(company_id=company.id, email="jane@example.com", first_name="Jane", role="CLIENT")
    unlinked = User(company_id=company.id, email="ghost@example.com", first_name="Ghost", role="CLIENT")
    owner = User(company_id=company.id, email="owner@sparkle.test", first_name="Olga", role="OWNER")
    db.add_all([customer, unlinked, owner])
    db.flush()
    jane = Client(company_id=company.id, user_id=customer.id, first_name="Jane", last_name="Doe", tags=[])
    neighbor = Client(company_id=company.id, first_name="Nell", tags=[])
    db.add_all([jane, neighbor])
    db.flush()
    home = Address(client_id=jane.id, street="12 Elm St", city="Austin", state="TX", zip="78701")
    other_home = Address(client_id=neighbor.id, street="14 Elm St", city="Austin", state="TX", zip="78701")
    db.add_all([home, other_home])
    db.flush()
    now = datetime.utcnow()
    for days, number in ((-7, "BK-PAST-000001"), (7, "BK-NEXT-000001")):
        db.add(
            Booking(
                company_id=company.id,
                client_id=jane.id,
                address_id=home.id,
                booking_number=number,
                scheduled_date=now + timedelta(days=days),
                status="CONFIRMED",
                status_history=[],
            )
        )
    db.add(
        Booking(
            company_id=company.id,
            client_id=neighbor.id,
            address_id=other_home.id,
            booking_number="BK-NELL-000001",
            scheduled_date=now + timedelta(days=3),
            status_history=[],
        )
    )
    db.commit()
    ids = {
        "customer": customer.id,
        "unlinked": unlinked.id,
        "owner": owner.id,
        "jane": jane.id,
        "home": home.id,
        "other_home": other_home.id,
    }
    db.close()
    return ids


def test_profile_and_bookings_are_limited_to_own_client(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = _headers(ids["customer"])

    profile = client.get("/api/customer/profile", headers=headers)
    assert profile.status_code == 200
    assert profile.json()["data"]["id"] == ids["jane"]
    assert [a["street"] for a in profile.json()["data"]["addresses"]] == ["12 Elm St"]

    bookings = client.get("/api/customer/bookings", headers=headers).json()["data"]
    assert [b["bookingNumber"] for b in bookings] == ["BK-NEXT-000001", "BK-PAST-000001"]
    assert bookings[0]["address"] == "12 Elm St, Austin, TX 78701"

    upcoming = client.get("/api/customer/bookings?upcoming=true", headers=headers).json()["data"]
    assert [b["bookingNumber"] for b in upcoming] == ["BK-NEXT-000001"]
    past = client.get("/api/customer/bookings?upcoming=false", headers=headers).json()["data"]
    assert [b["bookingNumber"] for b in past] == ["BK-PAST-000001"]


def test_profile_update_saves_addresses_and_preferences_together(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = _headers(ids["customer"])

    response = client.put(
        "/api/customer/profile",
        headers=headers,
        json={
            "phone": "(512) 555-0101",
            "marketingOptOut": True,
            "addresses": [
                {"id": ids["home"], "street": "12 Elm St", "city": "Austin", "state": "TX", "zip": "78701", "gateCode": "9090"},
                {"street": "9 Lake Rd", "city": "Bastrop", "state": "TX", "zip": "78602"},
            ],
            "preferences": {"petHandlingInstructions": "Cat hides under bed"},
        },
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["phone"] == "+15125550101"
    assert data["marketingOptOut"] is True
    assert sorted(a["street"] for a in data["addresses"]) == ["12 Elm St", "9 Lake Rd"]
    assert data["preferences"]["petHandlingInstructions"] == "Cat hides under bed"


def test_profile_update_is_all_or_nothing(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = _headers(ids["customer"])

    response = client.put(
        "/api/customer/profile",
        headers=headers,
        json={
            "firstName": "Janet",
            "addresses": [{"id": ids["other_home"], "street": "Hijack", "city": "Austin", "state": "TX", "zip": "78701"}],
        },
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Address not found"

    db = session_local()
    assert db.query(Client).filter(Client.id == ids["jane"]).one().first_name == "Jane"
    assert db.query(Address).filter(Address.id == ids["other_home"]).one().street == "14 Elm St"
    db.close()


def test_preferences_endpoints(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = _headers(ids["customer"])

    assert client.get("/api/customer/preferences", headers=headers).json()["data"] is None
    saved = client.put("/api/customer/preferences", headers=headers, json={"avoidScents": True})
    assert saved.status_code == 200
    assert saved.json()["data"]["avoidScents"] is True


def test_portal_requires_linked_client_role(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)

    missing = client.get("/api/customer/profile", headers=_headers(ids["unlinked"]))
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Client profile not found"

    assert client.get("/api/customer/profile", headers=_headers(ids["owner"])).status_code == 403
