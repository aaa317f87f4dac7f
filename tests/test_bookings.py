from datetime import datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.database import Base, enable_sqlite_foreign_keys, get_db
from app.domain.bookings import service as booking_service
from app.domain.bookings.router import router
from app.models import Address, AuditLogEntry, Booking, Client, Company, Message, TeamMember, TimeEntry, User
from app.security_utils import create_jwt_token


def make_client(tmp_path):
    db_path = tmp_path / "test_cleanday_bookings.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    enable_sqlite_foreign_keys(engine)
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


def _seed(session_local, credits: float = 0.0) -> dict:
    db = session_local()
    company = Company(name="Sparkle", slug="sparkle")
    db.add(company)
    db.flush()
    owner = User(company_id=company.id, email="owner@sparkle.test", first_name="Olga", role="OWNER")
    cleaner_user = User(company_id=company.id, email="cleo@sparkle.test", first_name="Cleo", role="CLEANER")
    db.add_all([owner, cleaner_user])
    db.flush()
    member = TeamMember(company_id=company.id, user_id=cleaner_user.id, hourly_rate=20)
    inactive_user = User(company_id=company.id, email="old@sparkle.test", first_name="Old", role="CLEANER")
    db.add_all([member, inactive_user])
    db.flush()
    inactive = TeamMember(company_id=company.id, user_id=inactive_user.id, is_active=False)
    client = Client(company_id=company.id, first_name="Jane", last_name="Doe", referral_credits_balance=credits)
    other = Client(company_id=company.id, first_name="Nomad")
    db.add_all([inactive, client, other])
    db.flush()
    home = Address(client_id=client.id, street="12 Elm St", city="Austin", state="TX", zip="78701")
    cabin = Address(client_id=client.id, street="9 Lake Rd", city="Bastrop", state="TX", zip="78602")
    foreign = Address(client_id=other.id, street="1 Far Way", city="Waco", state="TX", zip="76701")
    db.add_all([home, cabin, foreign])
    db.commit()
    ids = {
        "owner": owner.id,
        "member": member.id,
        "inactive": inactive.id,
        "client": client.id,
        "other": other.id,
        "home": home.id,
        "cabin": cabin.id,
        "foreign": foreign.id,
    }
    db.close()
    return ids


def test_create_booking_defaults_and_history(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = _headers(ids["owner"])

    response = client.post(
        "/api/bookings",
        headers=headers,
        json={
            "clientId": ids["client"],
            "scheduledDate": "2030-03-09T14:00:00Z",
            "serviceType": "DEEP",
            "price": 180,
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "PENDING"
    assert body["duration"] == 120
    assert body["addressId"] == ids["home"]
    assert body["bookingNumber"].startswith("BK-20300309-")
    assert len(body["bookingNumber"]) == len("BK-20300309-") + 6
    assert [h["status"] for h in body["statusHistory"]] == ["PENDING"]

    db = session_local()
    assert db.query(AuditLogEntry).filter(AuditLogEntry.action == "BOOKING_CREATED").count() == 1
    db.close()


def test_create_booking_rejects_bad_references(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = _headers(ids["owner"])
    base = {"scheduledDate": "2030-03-09T14:00:00", "price": 100}

    missing_client = client.post("/api/bookings", headers=headers, json={**base, "clientId": 9999})
    assert missing_client.status_code == 404

    foreign_address = client.post(
        "/api/bookings", headers=headers, json={**base, "clientId": ids["client"], "addressId": ids["foreign"]}
    )
    assert foreign_address.status_code == 400
    assert foreign_address.json()["detail"] == "Address does not belong to this client"

    inactive_cleaner = client.post(
        "/api/bookings",
        headers=headers,
        json={**base, "clientId": ids["client"], "assignedCleanerId": ids["inactive"]},
    )
    assert inactive_cleaner.status_code == 400
    assert inactive_cleaner.json()["detail"] == "Team member not found or inactive"

    bad_type = client.post(
        "/api/bookings", headers=headers, json={**base, "clientId": ids["client"], "serviceType": "WINDOWS"}
    )
    assert bad_type.status_code == 422


def test_referral_credits_reduce_price(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local, credits=30.0)
    headers = _headers(ids["owner"])

    response = client.post(
        "/api/bookings",
        headers=headers,
        json={
            "clientId": ids["client"],
            "scheduledDate": "2030-03-09T14:00:00",
            "price": 120,
            "applyReferralCredits": True,
        },
    )
    assert response.status_code == 201
    assert response.json()["price"] == 90

    db = session_local()
    stored = db.query(Client).filter(Client.id == ids["client"]).one()
    assert stored.referral_credits_balance == 0
    assert stored.referral_credits_used == 30
    db.close()


def test_status_update_assignment_and_rescheduling(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = _headers(ids["owner"])
    booking_id = client.post(
        "/api/bookings",
        headers=headers,
        json={"clientId": ids["client"], "addressId": ids["cabin"], "scheduledDate": "2030-03-09T14:00:00"},
    ).json()["id"]

    db = session_local()
    db.query(Booking).filter(Booking.id == booking_id).update({"reminder_sent_at": datetime(2030, 3, 8, 14)})
    db.commit()
    db.close()

    assigned = client.post(f"/api/bookings/{booking_id}/assign", headers=headers, json={"teamMemberId": ids["member"]})
    assert assigned.status_code == 200
    assert assigned.json()["cleanerName"] == "Cleo"

    moved = client.patch(
        f"/api/bookings/{booking_id}",
        headers=headers,
        json={"scheduledDate": "2030-03-10T15:00:00", "status": "CONFIRMED"},
    )
    assert moved.status_code == 200
    assert moved.json()["status"] == "CONFIRMED"
    assert [h["status"] for h in moved.json()["statusHistory"]] == ["PENDING", "CONFIRMED"]

    db = session_local()
    stored = db.query(Booking).filter(Booking.id == booking_id).one()
    assert stored.reminder_sent_at is None
    db.close()

    # Managers may jump straight to a terminal status
    cancelled = client.patch(f"/api/bookings/{booking_id}", headers=headers, json={"status": "CANCELLED"})
    assert cancelled.status_code == 200

    db = session_local()
    assert db.query(AuditLogEntry).filter(AuditLogEntry.action == "BOOKING_CANCELLED").count() == 1
    db.close()

    unassigned = client.post(f"/api/bookings/{booking_id}/assign", headers=headers, json={"teamMemberId": None})
    assert unassigned.json()["assignedCleanerId"] is None


def test_list_filters_and_delete(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = _headers(ids["owner"])
    for day in (9, 10, 11):
        client.post(
            "/api/bookings",
            headers=headers,
            json={"clientId": ids["client"], "scheduledDate": f"2030-03-{day:02d}T14:00:00"},
        )

    ranged = client.get("/api/bookings?from=2030-03-10T00:00:00&to=2030-03-11T00:00:00", headers=headers)
    assert ranged.status_code == 200
    assert len(ranged.json()) == 1

    by_client = client.get(f"/api/bookings?clientId={ids['other']}", headers=headers)
    assert by_client.json() == []

    first_id = client.get("/api/bookings", headers=headers).json()[0]["id"]
    assert client.delete(f"/api/bookings/{first_id}", headers=headers).status_code == 200
    assert client.get(f"/api/bookings/{first_id}", headers=headers).status_code == 404
    assert len(client.get("/api/bookings", headers=headers).json()) == 2


def test_delete_booking_with_message_log_and_time_entries(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = _headers(ids["owner"])
    booking_id = client.post(
        "/api/bookings",
        headers=headers,
        json={"clientId": ids["client"], "scheduledDate": "2030-03-09T14:00:00", "assignedCleanerId": ids["member"]},
    ).json()["id"]

    db = session_local()
    company_id = db.query(Company).one().id
    db.add_all(
        [
            Message(
                company_id=company_id,
                booking_id=booking_id,
                client_id=ids["client"],
                channel="SMS",
                type="REMINDER",
                to_address="+15125550101",
                body="See you tomorrow",
                status="SENT",
            ),
            TimeEntry(
                company_id=company_id,
                team_member_id=ids["member"],
                booking_id=booking_id,
                clock_in=datetime(2030, 3, 9, 14, 0),
            ),
        ]
    )
    db.commit()
    db.close()

    deleted = client.delete(f"/api/bookings/{booking_id}", headers=headers)
    assert deleted.status_code == 200

    db = session_local()
    message = db.query(Message).one()
    assert message.booking_id is None
    assert message.client_id == ids["client"]
    assert db.query(TimeEntry).count() == 0
    db.close()


def test_failed_booking_insert_keeps_referral_credits(tmp_path, monkeypatch):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local, credits=30.0)
    headers = _headers(ids["owner"])
    monkeypatch.setattr(booking_service, "generate_booking_number", lambda scheduled=None: "BK-20300309-SAME01")

    first = client.post(
        "/api/bookings",
        headers=headers,
        json={"clientId": ids["client"], "scheduledDate": "2030-03-09T14:00:00", "price": 10, "applyReferralCredits": True},
    )
    assert first.status_code == 201

    with pytest.raises(IntegrityError):
        client.post(
            "/api/bookings",
            headers=headers,
            json={"clientId": ids["client"], "scheduledDate": "2030-03-09T14:00:00", "price": 50, "applyReferralCredits": True},
        )

    db = session_local()
    stored = db.query(Client).filter(Client.id == ids["client"]).one()
    assert stored.referral_credits_balance == 20
    assert stored.referral_credits_used == 10
    assert db.query(Booking).count() == 1
    db.close()
