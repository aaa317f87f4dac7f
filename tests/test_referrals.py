from datetime import timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base, get_db
from app.models import AuditLogEntry, Client, Company, User
from app.routes.referrals import router
from app.security_utils import create_jwt_token
from app.services.referrals import apply_referral_credits, generate_referral_code


def make_client(tmp_path):
    db_path = tmp_path / "test_cleanday_referrals.db"
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


def _seed(session_local, referral_enabled: bool = True) -> dict:
    db = session_local()
    company = Company(
        name="Sparkle",
        slug="sparkle",
        referral_enabled=referral_enabled,
        referral_referrer_reward=25,
        referral_referee_reward=15,
    )
    db.add(company)
    db.flush()
    owner = User(company_id=company.id, email="owner@sparkle.test", first_name="Olga", role="OWNER")
    rita = Client(company_id=company.id, first_name="Rita", last_name="Moss")
    ned = Client(company_id=company.id, first_name="Ned")
    db.add_all([owner, rita, ned])
    db.commit()
    token = create_jwt_token({"sub": str(owner.id)}, expires_delta=timedelta(hours=1))
    ids = {"headers": {"Authorization": f"Bearer {token}"}, "rita": rita.id, "ned": ned.id}
    db.close()
    return ids


def test_generate_referral_code_uses_first_name():
    code = generate_referral_code("mary-kate Smith")
    assert code.startswith("MARYKATE-")
    assert len(code.split("-")[1]) == 5
    assert generate_referral_code("").startswith("REF-")


def test_code_is_stable_and_validates_case_insensitively(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = ids["headers"]

    first = client.post(f"/api/referrals/code/{ids['rita']}", headers=headers).json()
    second = client.post(f"/api/referrals/code/{ids['rita']}", headers=headers).json()
    assert first["success"] is True
    assert first["code"].startswith("RITA-")
    assert second["code"] == first["code"]

    valid = client.get(f"/api/referrals/validate?code={first['code'].lower()}", headers=headers).json()
    assert valid == {"valid": True, "clientId": ids["rita"], "clientName": "Rita Moss"}

    invalid = client.get("/api/referrals/validate?code=NOPE-00000", headers=headers).json()
    assert invalid["valid"] is False

    assert client.post("/api/referrals/code/9999", headers=headers).status_code == 404


def test_award_credits_both_sides_and_updates_stats(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = ids["headers"]

    awarded = client.post(
        "/api/referrals/award", headers=headers, json={"referrerId": ids["rita"], "refereeId": ids["ned"]}
    )
    assert awarded.status_code == 200
    assert awarded.json()["data"] == {
        "referrerId": ids["rita"],
        "referrerReward": 25,
        "refereeId": ids["ned"],
        "refereeReward": 15,
    }

    rita_stats = client.get(f"/api/referrals/stats?clientId={ids['rita']}", headers=headers).json()["data"]
    assert rita_stats["totalReferrals"] == 1
    assert rita_stats["creditsEarned"] == 25
    assert rita_stats["creditsBalance"] == 25

    company_stats = client.get("/api/referrals/stats", headers=headers).json()["data"]
    assert company_stats["totalReferrals"] == 1
    assert company_stats["totalCreditsEarned"] == 25.0
    assert company_stats["outstandingBalance"] == 40.0
    assert [t["name"] for t in company_stats["topReferrers"]] == ["Rita Moss"]

    self_referral = client.post(
        "/api/referrals/award", headers=headers, json={"referrerId": ids["rita"], "refereeId": ids["rita"]}
    )
    assert self_referral.status_code == 400

    db = session_local()
    assert db.query(AuditLogEntry).filter(AuditLogEntry.action == "REFERRAL_CREDITED").count() == 1
    db.close()


def test_award_requires_enabled_program(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local, referral_enabled=False)

    response = client.post(
        "/api/referrals/award", headers=ids["headers"], json={"referrerId": ids["rita"], "refereeId": ids["ned"]}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Referral program is not enabled"


def test_apply_credits_never_overdraws(tmp_path):
    _, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    db = session_local()
    db.query(Client).filter(Client.id == ids["ned"]).update({"referral_credits_balance": 20.0})
    db.commit()

    assert apply_referral_credits(db, ids["ned"], 50) == 20.0
    assert apply_referral_credits(db, ids["ned"], 50) == 0.0
    ned = db.query(Client).filter(Client.id == ids["ned"]).one()
    assert ned.referral_credits_balance == 0
    assert ned.referral_credits_used == 20
    db.close()
