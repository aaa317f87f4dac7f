from datetime import timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base, get_db
from app.models import Company, Prospect, User
from app.routes import platform, prospects
from app.security_utils import create_jwt_token, verify_password


def make_client(tmp_path):
    db_path = tmp_path / "test_cleanday_platform.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    testing_session_local = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)

    app = FastAPI()
    app.include_router(prospects.router)
    app.include_router(prospects.platform_router)
    app.include_router(platform.router)

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


def _seed_users(session_local) -> dict:
    db = session_local()
    company = Company(name="Sparkle", slug="sparkle")
    db.add(company)
    db.flush()
    admin = User(email="ops@cleanday.test", first_name="Ops", is_platform_admin=True)
    owner = User(company_id=company.id, email="owner@sparkle.test", first_name="Olga", role="OWNER")
    db.add_all([admin, owner])
    db.commit()
    ids = {"admin": admin.id, "owner": owner.id}
    db.close()
    return ids


LEAD = {
    "fullName": "Maria Lopez",
    "businessName": "Maria's Maids",
    "phone": "512-555-0142",
    "email": "Maria@MariasMaids.test",
    "area": "Austin, TX",
}


def test_public_prospect_form_upserts_by_email(tmp_path):
    client, session_local = make_client(tmp_path)

    first = client.post("/api/public/prospects", json=LEAD)
    assert first.status_code == 200
    assert first.json()["success"] is True
    assert first.json()["data"]["email"] == "maria@mariasmaids.test"
    assert first.json()["data"]["status"] == "NEW"
    assert first.json()["message"] == "Thank you! Our team will reach out to you shortly."

    again = client.post("/api/public/prospects", json={**LEAD, "area": "Round Rock, TX"})
    assert again.json()["message"].startswith("Thank you! We have updated your information")

    db = session_local()
    stored = db.query(Prospect).one()
    assert stored.area == "Round Rock, TX"
    db.close()

    short_phone = client.post("/api/public/prospects", json={**LEAD, "phone": "555-0142"})
    assert short_phone.status_code == 422


def test_prospect_form_is_rate_limited(tmp_path):
    client, _ = make_client(tmp_path)
    for i in range(5):
        assert client.post("/api/public/prospects", json={**LEAD, "email": f"lead{i}@example.com"}).status_code == 200
    limited = client.post("/api/public/prospects", json={**LEAD, "email": "lead9@example.com"})
    assert limited.status_code == 429


def test_platform_admin_works_the_prospect_list(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed_users(session_local)
    admin = _headers(ids["admin"])
    client.post("/api/public/prospects", json=LEAD)
    client.post(
        "/api/public/prospects",
        json={**LEAD, "fullName": "Tom Reed", "businessName": "Reed Clean", "email": "tom@reed.test"},
    )

    listed = client.get("/api/platform/prospects?search=reed", headers=admin).json()
    assert [p["fullName"] for p in listed["data"]] == ["Tom Reed"]
    assert listed["pagination"] == {"total": 1, "page": 1, "limit": 50, "pages": 1}

    prospect_id = listed["data"][0]["id"]
    contacted = client.patch(
        f"/api/platform/prospects/{prospect_id}", headers=admin, json={"status": "CONTACTED", "notes": "Call back"}
    )
    assert contacted.status_code == 200
    assert contacted.json()["data"]["lastContactedAt"] is not None
    assert contacted.json()["data"]["notes"] == "Call back"

    by_status = client.get("/api/platform/prospects?status=CONTACTED", headers=admin).json()
    assert by_status["pagination"]["total"] == 1

    bad_status = client.patch(f"/api/platform/prospects/{prospect_id}", headers=admin, json={"status": "WON"})
    assert bad_status.status_code == 422

    assert client.get("/api/platform/prospects", headers=_headers(ids["owner"])).status_code == 403


def test_onboard_company_with_owner(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed_users(session_local)
    admin = _headers(ids["admin"])
    payload = {
        "companyName": "Shine Co",
        "companySlug": "shine-co",
        "ownerName": "Sam Shine",
        "ownerEmail": "Sam@Shine.test",
        "ownerPassword": "Sparkling1",
    }

    created = client.post("/api/platform/companies", headers=admin, json=payload)
    assert created.status_code == 201
    data = created.json()["data"]
    assert data["company"]["slug"] == "shine-co"
    assert data["owner"] == {"id": data["owner"]["id"], "email": "sam@shine.test", "name": "Sam Shine"}

    db = session_local()
    owner = db.query(User).filter(User.email == "sam@shine.test").one()
    assert owner.role == "OWNER"
    assert verify_password("Sparkling1", owner.password_hash)
    db.close()

    same_slug = client.post("/api/platform/companies", headers=admin, json={**payload, "ownerEmail": "x@shine.test"})
    assert same_slug.status_code == 409

    bad_slug = client.post("/api/platform/companies", headers=admin, json={**payload, "companySlug": "Shine Co"})
    assert bad_slug.status_code == 422

    companies = client.get("/api/platform/companies?search=shine", headers=admin).json()
    assert [c["slug"] for c in companies["data"]] == ["shine-co"]
    assert companies["data"][0]["counts"] == {"users": 1, "clients": 0, "bookings": 0}

    stats = client.get("/api/platform/stats", headers=admin).json()["data"]
    assert stats["totalCompanies"] == 2
    assert stats["totalUsers"] == 3

    assert client.get("/api/platform/stats", headers=_headers(ids["owner"])).status_code == 403
