from datetime import timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base, get_db
from app.models import Campaign, CampaignRecipient, Client, Company, Message, User
from app.routes.campaigns import router
from app.security_utils import create_jwt_token
from app.services import campaign_service


def make_client(tmp_path):
    db_path = tmp_path / "test_cleanday_campaigns.db"
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


def _seed(session_local) -> dict:
    db = session_local()
    company = Company(name="Sparkle", slug="sparkle")
    db.add(company)
    db.flush()
    owner = User(company_id=company.id, email="owner@sparkle.test", first_name="Olga", role="OWNER")
    db.add(owner)
    db.add_all(
        [
            Client(company_id=company.id, first_name="Ann", phone="+15125550101", tags=["vip"]),
            Client(company_id=company.id, first_name="Bob", phone="+15125550102", tags=[]),
            Client(company_id=company.id, first_name="Cat", phone="+15125550103", marketing_opt_out=True),
            Client(company_id=company.id, first_name="Dan", email="dan@example.com"),
        ]
    )
    db.commit()
    token = create_jwt_token({"sub": str(owner.id)}, expires_delta=timedelta(hours=1))
    db.close()
    return {"Authorization": f"Bearer {token}"}


def test_email_campaigns_require_subject(tmp_path):
    client, session_local = make_client(tmp_path)
    headers = _seed(session_local)

    response = client.post(
        "/api/marketing/campaigns", headers=headers, json={"name": "Spring", "channel": "EMAIL", "body": "Hi"}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Subject is required for email campaigns"

    bad_channel = client.post(
        "/api/marketing/campaigns", headers=headers, json={"name": "Spring", "channel": "FAX", "body": "Hi"}
    )
    assert bad_channel.status_code == 422


def test_preview_excludes_opted_out_and_unreachable_clients(tmp_path):
    client, session_local = make_client(tmp_path)
    headers = _seed(session_local)

    created = client.post(
        "/api/marketing/campaigns", headers=headers, json={"name": "Spring", "body": "Hi {{clientName}}"}
    )
    assert created.status_code == 201
    campaign = created.json()["data"]
    assert campaign["status"] == "DRAFT"

    preview = client.get(f"/api/marketing/campaigns/{campaign['id']}/preview-recipients", headers=headers)
    data = preview.json()["data"]
    assert [r["name"] for r in data["recipients"]] == ["Ann", "Bob"]
    assert data["optedOutCount"] == 1

    client.put(
        f"/api/marketing/campaigns/{campaign['id']}",
        headers=headers,
        json={"segmentFilter": {"tags": ["vip"]}},
    )
    vip_only = client.get(f"/api/marketing/campaigns/{campaign['id']}/preview-recipients", headers=headers)
    assert [r["name"] for r in vip_only.json()["data"]["recipients"]] == ["Ann"]


def test_sms_send_personalizes_and_counts_failures(tmp_path, monkeypatch):
    client, session_local = make_client(tmp_path)
    headers = _seed(session_local)
    sent = []

    async def fake_send_sms(db, company, to_phone, body, message_type, booking_id=None, client_id=None):
        sent.append((to_phone, body, message_type))
        if to_phone.endswith("0102"):
            return False, "Number unreachable"
        return True, None

    monkeypatch.setattr(campaign_service, "send_sms", fake_send_sms)

    campaign_id = client.post(
        "/api/marketing/campaigns",
        headers=headers,
        json={"name": "Spring", "body": "Hi {{clientName}}, 10% off at {{company.name}}!"},
    ).json()["data"]["id"]

    response = client.post(f"/api/marketing/campaigns/{campaign_id}/send", headers=headers)
    assert response.status_code == 200
    assert response.json()["data"] == {"recipientCount": 2, "sentCount": 1, "failedCount": 1}
    assert sent[0] == ("+15125550101", "Hi Ann, 10% off at Sparkle!", "MARKETING")

    db = session_local()
    stored = db.query(Campaign).filter(Campaign.id == campaign_id).one()
    assert stored.status == "SENT"
    assert stored.sent_at is not None
    statuses = {r.client.first_name: (r.status, r.error_message) for r in db.query(CampaignRecipient).all()}
    assert statuses == {"Ann": ("SENT", None), "Bob": ("FAILED", "Number unreachable")}
    db.close()

    again = client.post(f"/api/marketing/campaigns/{campaign_id}/send", headers=headers)
    assert again.status_code == 400
    assert again.json()["detail"] == "Campaign has already been sent or is currently sending"

    edit = client.put(f"/api/marketing/campaigns/{campaign_id}", headers=headers, json={"name": "Late edit"})
    assert edit.status_code == 400


def test_email_send_logs_messages_and_respects_exclusions(tmp_path, monkeypatch):
    client, session_local = make_client(tmp_path)
    headers = _seed(session_local)
    emails = []

    async def fake_send_campaign_email(company, to, subject, body):
        emails.append((to, subject, body))
        return {"id": "em_123"}

    monkeypatch.setattr(campaign_service, "send_campaign_email", fake_send_campaign_email)

    campaign_id = client.post(
        "/api/marketing/campaigns",
        headers=headers,
        json={"name": "News", "channel": "EMAIL", "subject": "News for {{client.name}}", "body": "Hello"},
    ).json()["data"]["id"]

    db = session_local()
    dan_id = db.query(Client).filter(Client.first_name == "Dan").one().id
    db.close()

    excluded = client.post(
        f"/api/marketing/campaigns/{campaign_id}/send", headers=headers, json={"excludedClientIds": [dan_id]}
    )
    assert excluded.status_code == 400
    assert excluded.json()["detail"] == "No recipients match the campaign filters"

    response = client.post(f"/api/marketing/campaigns/{campaign_id}/send", headers=headers)
    assert response.json()["data"]["sentCount"] == 1
    assert emails == [("dan@example.com", "News for Dan", "Hello")]

    db = session_local()
    message = db.query(Message).one()
    assert message.channel == "EMAIL"
    assert message.status == "SENT"
    assert message.provider_id == "em_123"
    db.close()

    recipients = client.get(f"/api/marketing/campaigns/{campaign_id}/recipients", headers=headers).json()["data"]
    assert recipients[0]["name"] == "Dan"
    assert recipients[0]["status"] == "SENT"
