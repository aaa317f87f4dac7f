from datetime import datetime

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base, get_db
from app.models import Address, Booking, Client, Company, TeamMember, User
from app.routes.feedback import router
from app.services.job_actions import generate_feedback_token

TOKEN = generate_feedback_token(datetime(2030, 3, 9, 16, 0))


def make_client(tmp_path):
    db_path = tmp_path / "test_cleanday_feedback.db"
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


def _seed(session_local) -> int:
    db = session_local()
    company = Company(name="Sparkle", slug="sparkle", google_review_url="https://g.page/sparkle/review")
    db.add(company)
    db.flush()
    cleo = User(company_id=company.id, email="cleo@sparkle.test", first_name="Cleo", role="CLEANER")
    jane = Client(company_id=company.id, first_name="Jane", last_name="Doe")
    db.add_all([cleo, jane])
    db.flush()
    member = TeamMember(company_id=company.id, user_id=cleo.id)
    address = Address(client_id=jane.id, street="12 Elm St", city="Austin", state="TX", zip="78701")
    db.add_all([member, address])
    db.flush()
    booking = Booking(
        company_id=company.id,
        client_id=jane.id,
        address_id=address.id,
        assigned_cleaner_id=member.id,
        booking_number="BK-20300309-FEED01",
        scheduled_date=datetime(2030, 3, 9, 14, 0),
        status="CLEANER_COMPLETED",
        price=150,
        internal_notes="Charges extra next time",
        feedback_token=TOKEN,
        status_history=[],
    )
    db.add(booking)
    db.commit()
    booking_id = booking.id
    db.close()
    return booking_id


def test_booking_summary_by_token(tmp_path):
    client, session_local = make_client(tmp_path)
    _seed(session_local)

    response = client.get(f"/api/public/feedback/{TOKEN}")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["bookingNumber"] == "BK-20300309-FEED01"
    assert data["clientFirstName"] == "Jane"
    assert data["cleanerName"] == "Cleo"
    assert data["company"] == {"name": "Sparkle", "googleReviewUrl": "https://g.page/sparkle/review"}
    assert data["feedbackSubmittedAt"] is None
    assert "internalNotes" not in data
    assert "price" not in data

    assert client.get("/api/public/feedback/fb_unknown").status_code == 404


def test_feedback_is_stored_once(tmp_path):
    client, session_local = make_client(tmp_path)
    booking_id = _seed(session_local)

    response = client.post(
        f"/api/public/feedback/{TOKEN}",
        json={"rating": 5, "feedback": "<i>Spotless</i> kitchen", "tipAmount": 15},
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Thank you for your feedback!"

    db = session_local()
    booking = db.query(Booking).filter(Booking.id == booking_id).one()
    assert booking.customer_rating == 5
    assert booking.customer_feedback == "Spotless kitchen"
    assert booking.tip_amount == 15
    assert booking.feedback_submitted_at is not None
    db.close()

    again = client.post(f"/api/public/feedback/{TOKEN}", json={"rating": 1})
    assert again.status_code == 400
    assert again.json()["detail"] == "Feedback already submitted"


def test_feedback_rejects_bad_rating_and_unknown_token(tmp_path):
    client, session_local = make_client(tmp_path)
    booking_id = _seed(session_local)

    for body in ({}, {"rating": 0}, {"rating": 6}):
        response = client.post(f"/api/public/feedback/{TOKEN}", json=body)
        assert response.status_code == 400
        assert response.json()["detail"] == "Rating must be between 1 and 5"

    negative_tip = client.post(f"/api/public/feedback/{TOKEN}", json={"rating": 4, "tipAmount": -5})
    assert negative_tip.status_code == 400

    unknown = client.post("/api/public/feedback/fb_unknown", json={"rating": 4})
    assert unknown.status_code == 404
    assert unknown.json()["detail"] == "Booking not found"

    db = session_local()
    assert db.query(Booking).filter(Booking.id == booking_id).one().feedback_submitted_at is None
    db.close()
