from datetime import datetime, timedelta

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base, get_db
from app.models import Address, Booking, Client, Company, TeamMember, User
from app.routes.search import router
from app.services.search_service import like_pattern
from app.security_utils import create_jwt_token


def make_client(tmp_path):
    db_path = tmp_path / "test_cleanday_search.db"
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
    rival = Company(name="Rival", slug="rival")
    db.add_all([company, rival])
    db.flush()
    owner = User(company_id=company.id, email="owner@sparkle.test", first_name="Olga", role="OWNER")
    cleo = User(company_id=company.id, email="cleo@sparkle.test", first_name="Cleo", last_name="Park", role="CLEANER")
    db.add_all([owner, cleo])
    db.flush()
    member = TeamMember(company_id=company.id, user_id=cleo.id, specialties=["Deep cleans"])
    jane = Client(company_id=company.id, first_name="Jane", last_name="Doe", email="jane@example.com")
    stranger = Client(company_id=rival.id, first_name="Jane", last_name="Rival")
    db.add_all([member, jane, stranger])
    db.flush()
    address = Address(client_id=jane.id, street="12 Elm St", city="Austin", state="TX", zip="78701")
    db.add(address)
    db.flush()
    booking = Booking(
        company_id=company.id,
        client_id=jane.id,
        address_id=address.id,
        assigned_cleaner_id=member.id,
        booking_number="BK-20300309-SEARCH",
        scheduled_date=datetime(2030, 3, 9, 14, 0),
        price=150,
        status="CONFIRMED",
        status_history=[],
    )
    db.add(booking)
    db.commit()
    ids = {"owner": owner.id, "cleo": cleo.id, "member": member.id, "jane": jane.id, "booking": booking.id}
    db.close()
    return ids


def test_short_queries_return_nothing(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)

    response = client.get("/api/search/global?q=j", headers=_headers(ids["owner"]))
    assert response.status_code == 200
    body = response.json()
    assert body["data"] == {"clients": [], "bookings": [], "team": []}
    assert body["meta"]["total"] == 0


def test_search_spans_clients_and_bookings_within_company(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = _headers(ids["owner"])

    body = client.get("/api/search/global?q=JANE", headers=headers).json()
    assert [c["id"] for c in body["data"]["clients"]] == [ids["jane"]]
    assert body["data"]["clients"][0]["description"] == "Austin, TX"
    assert body["data"]["clients"][0]["url"] == f"/clients/{ids['jane']}"

    booking = body["data"]["bookings"][0]
    assert booking["title"] == "STANDARD - Jane Doe"
    assert booking["subtitle"] == "03/09/2030"
    assert booking["metadata"]["assignee"] == "Cleo Park"
    assert body["meta"] == {
        "query": "JANE",
        "total": 2,
        "clientsCount": 1,
        "bookingsCount": 1,
        "teamCount": 0,
    }

    by_street = client.get("/api/search/global?q=elm", headers=headers).json()
    assert by_street["data"]["clients"] == []
    assert [b["id"] for b in by_street["data"]["bookings"]] == [ids["booking"]]

    only_clients = client.get("/api/search/global?q=jane&type=clients", headers=headers).json()
    assert only_clients["data"]["bookings"] == []
    assert only_clients["meta"]["clientsCount"] == 1


def test_team_results_are_for_managers_only(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)

    as_owner = client.get("/api/search/global?q=cleo", headers=_headers(ids["owner"])).json()
    assert [t["id"] for t in as_owner["data"]["team"]] == [ids["member"]]
    assert as_owner["data"]["team"][0]["description"] == "Deep cleans"
    assert as_owner["data"]["team"][0]["metadata"] == {"role": "CLEANER", "isActive": True}

    as_cleaner = client.get("/api/search/global?q=cleo", headers=_headers(ids["cleo"])).json()
    assert as_cleaner["data"]["team"] == []

    assert client.get("/api/search/global?q=cleo").status_code == 401


def test_wildcards_in_the_query_match_literally(tmp_path):
    client, session_local = make_client(tmp_path)
    ids = _seed(session_local)
    headers = _headers(ids["owner"])

    percent = client.get("/api/search/global", params={"q": "%%"}, headers=headers).json()
    assert percent["meta"]["total"] == 0

    underscore = client.get("/api/search/global", params={"q": "j_ne"}, headers=headers).json()
    assert underscore["meta"]["total"] == 0

    assert like_pattern("50%_Off\\") == "%50\\%\\_off\\\\%"
