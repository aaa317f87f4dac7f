"""Client repository - Database operations for clients"""

from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from ...models import Address, Client, ClientPreference


def _full_name_expr():
    return func.lower(func.trim(Client.first_name + " " + func.coalesce(Client.last_name, "")))


class ClientRepository:
    """Repository for client database operations"""

    @staticmethod
    def get_clients(
        db: Session,
        company_id: int,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Client]:
        """Get clients for a company, newest first"""
        query = db.query(Client).filter(Client.company_id == company_id)

        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(
                or_(
                    _full_name_expr().like(pattern),
                    func.lower(Client.email).like(pattern),
                    Client.phone.like(pattern),
                )
            )

        return query.order_by(Client.created_at.desc(), Client.id.desc()).offset(offset).limit(limit).all()

    @staticmethod
    def get_client_by_id(db: Session, client_id: int, company_id: int) -> Optional[Client]:
        """Get a specific client with addresses and preferences"""
        return (
            db.query(Client)
            .options(joinedload(Client.addresses), joinedload(Client.preferences))
            .filter(Client.id == client_id, Client.company_id == company_id)
            .first()
        )

    @staticmethod
    def get_client_by_user_id(db: Session, user_id: int, company_id: int) -> Optional[Client]:
        """The client record behind a customer portal login"""
        return (
            db.query(Client)
            .filter(Client.user_id == user_id, Client.company_id == company_id)
            .first()
        )

    @staticmethod
    def find_by_name(db: Session, company_id: int, name: str) -> Optional[Client]:
        """Case-insensitive match on 'first last'"""
        return (
            db.query(Client)
            .filter(Client.company_id == company_id, _full_name_expr() == name.strip().lower())
            .first()
        )

    @staticmethod
    def find_by_email(db: Session, company_id: int, email: str) -> Optional[Client]:
        return (
            db.query(Client)
            .filter(Client.company_id == company_id, func.lower(Client.email) == email.strip().lower())
            .first()
        )

    @staticmethod
    def find_address_by_street(db: Session, client_id: int, street: str) -> Optional[Address]:
        return (
            db.query(Address)
            .filter(Address.client_id == client_id, func.lower(Address.street) == street.strip().lower())
            .first()
        )

    @staticmethod
    def create_client(db: Session, company_id: int, address: Optional[dict] = None, **client_data) -> Client:
        """Create a client and optionally its first address in one commit"""
        client = Client(company_id=company_id, **client_data)
        db.add(client)
        try:
            if address:
                db.flush()
                db.add(Address(client_id=client.id, **address))
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(client)
        return client

    @staticmethod
    def update_client(db: Session, client: Client, **updates) -> Client:
        """Update a client with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(client, key):
                setattr(client, key, value)

        db.commit()
        db.refresh(client)
        return client

    @staticmethod
    def delete_client(db: Session, client: Client) -> None:
        db.delete(client)
        db.commit()

    # Preferences
    @staticmethod
    def get_preferences(db: Session, client_id: int) -> Optional[ClientPreference]:
        return db.query(ClientPreference).filter(ClientPreference.client_id == client_id).first()

    @staticmethod
    def upsert_preferences(db: Session, client_id: int, commit: bool = True, **values) -> ClientPreference:
        """Create the preference row on first write, otherwise update the given fields"""
        preferences = ClientRepository.get_preferences(db, client_id)
        if not preferences:
            preferences = ClientPreference(client_id=client_id)
            db.add(preferences)

        for key, value in values.items():
            if hasattr(preferences, key):
                setattr(preferences, key, value)

        if commit:
            db.commit()
            db.refresh(preferences)
        return preferences

    @staticmethod
    def delete_preferences(db: Session, client_id: int) -> bool:
        preferences = ClientRepository.get_preferences(db, client_id)
        if not preferences:
            return False
        db.delete(preferences)
        db.commit()
        return True
