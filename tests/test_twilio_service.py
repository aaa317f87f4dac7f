import asyncio

import httpx
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base
from app.models import Company, Message
from app.security_utils import decrypt_credential, encrypt_credential
from app.services import twilio_service
from app.services.twilio_service import get_twilio_credentials, send_sms

RealAsyncClient = httpx.AsyncClient


def make_session(tmp_path):
    db_path = tmp_path / "test_cleanday_sms.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    testing_session_local = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)
    return testing_session_local()


def _company(db) -> Company:
    company = Company(
        name="Sparkle",
        slug="sparkle",
        twilio_account_sid="AC123",
        twilio_auth_token=encrypt_credential("tw-secret"),
        twilio_phone_number="+15125550000",
    )
    db.add(company)
    db.commit()
    return company


def _mock_twilio(monkeypatch, handler) -> list:
    requests = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    monkeypatch.setattr(
        twilio_service.httpx,
        "AsyncClient",
        lambda *args, **kwargs: RealAsyncClient(transport=httpx.MockTransport(recording_handler)),
    )
    return requests


def test_credentials_are_stored_encrypted():
    token = encrypt_credential("tw-secret")
    assert token != "tw-secret"
    assert decrypt_credential(token) == "tw-secret"


def test_company_credentials_take_precedence(monkeypatch):
    monkeypatch.setattr(twilio_service, "TWILIO_ACCOUNT_SID", "ACplatform")
    monkeypatch.setattr(twilio_service, "TWILIO_AUTH_TOKEN", "platform-token")
    monkeypatch.setattr(twilio_service, "TWILIO_PHONE_NUMBER", "+15125559999")

    own = Company(
        twilio_account_sid="AC123",
        twilio_auth_token=encrypt_credential("tw-secret"),
        twilio_phone_number="+15125550000",
    )
    assert get_twilio_credentials(own) == ("AC123", "tw-secret", "+15125550000")
    assert get_twilio_credentials(Company()) == ("ACplatform", "platform-token", "+15125559999")

    broken = Company(twilio_account_sid="AC123", twilio_auth_token="not-a-token", twilio_phone_number="+15125550000")
    assert get_twilio_credentials(broken) is None


def test_successful_send_is_logged(tmp_path, monkeypatch):
    db = make_session(tmp_path)
    company = _company(db)
    requests = _mock_twilio(monkeypatch, lambda request: httpx.Response(201, json={"sid": "SM42"}))

    ok, error = asyncio.run(send_sms(db, company, "+15125550101", "See you tomorrow", "REMINDER", booking_id=3))

    assert (ok, error) == (True, None)
    assert requests[0].url.path == "/2010-04-01/Accounts/AC123/Messages.json"
    assert b"Body=See+you+tomorrow" in requests[0].content
    message = db.query(Message).one()
    assert message.status == "SENT"
    assert message.provider_id == "SM42"
    assert message.booking_id == 3
    db.close()


def test_provider_errors_are_returned_not_raised(tmp_path, monkeypatch):
    db = make_session(tmp_path)
    company = _company(db)
    _mock_twilio(
        monkeypatch,
        lambda request: httpx.Response(400, json={"code": 21211, "message": "Invalid 'To' Phone Number"}),
    )

    ok, error = asyncio.run(send_sms(db, company, "+15125550101", "Hi", "REMINDER"))

    assert ok is False
    assert error == "Invalid 'To' Phone Number"
    assert db.query(Message).one().error_message == "[21211] Invalid 'To' Phone Number"
    db.close()


def test_numbers_must_be_e164(tmp_path):
    db = make_session(tmp_path)
    company = _company(db)
    assert asyncio.run(send_sms(db, company, "512-555-0101", "Hi", "REMINDER")) == (
        False,
        "Phone number must be in E.164 format (e.g., +1234567890)",
    )
    assert asyncio.run(send_sms(db, company, "", "Hi", "REMINDER")) == (False, "No phone number provided")
    assert db.query(Message).count() == 0
    db.close()
