"""Client service - Business logic for client operations"""

import logging
from typing import Optional

from fastapi import HTTPException, Request
from sqlalchemy.orm import Session

from ...models import Client, ClientPreference, User
from ...security_utils import sanitize_text
from ...services import audit
from ...services.referrals import assign_referral_code, validate_referral_code
from .repository import ClientRepository
from .schemas import PREFERENCE_FIELDS, ClientCreate, ClientUpdate, PreferencesInput

logger = logging.getLogger(__name__)


class ClientService:
    """Service layer for client business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClientRepository()

    def get_clients(
        self, user: User, search: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> list[Client]:
        return self.repo.get_clients(self.db, user.company_id, search=search, limit=limit, offset=offset)

    def get_client(self, client_id: int, user: User) -> Client:
        """Get a specific client"""
        client = self.repo.get_client_by_id(self.db, client_id, user.company_id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")
        return client

    def create_client(self, data: ClientCreate, user: User, request: Optional[Request] = None) -> Client:
        """Create a new client, its first address and referral link"""
        logger.info(f"📥 Creating client for company_id: {user.company_id}")

        if data.email and self.repo.find_by_email(self.db, user.company_id, data.email):
            raise HTTPException(status_code=409, detail="A client with this email already exists")

        referred_by_id = None
        if data.referralCode:
            result = validate_referral_code(self.db, data.referralCode, user.company_id)
            if not result["valid"]:
                raise HTTPException(status_code=400, detail="Invalid referral code")
            referred_by_id = result["clientId"]

        client = self.repo.create_client(
            self.db,
            user.company_id,
            address=data.address.to_model_fields() if data.address else None,
            first_name=data.firstName,
            last_name=data.lastName,
            email=data.email,
            phone=data.phone,
            tags=data.tags or [],
            notes=sanitize_text(data.notes),
            is_vip=data.isVip,
            marketing_opt_out=data.marketingOptOut,
            referred_by_id=referred_by_id,
        )

        try:
            assign_referral_code(self.db, client)
        except ValueError as e:
            logger.warning(f"⚠️ Client {client.id} created without referral code: {e}")

        audit.log_activity(
            self.db,
            user.company_id,
            user.id,
            audit.CLIENT_CREATED,
            f"Created client {client.name}",
            entity_type="client",
            entity_id=client.id,
            request=request,
        )
        logger.info(f"✅ Client {client.id} created")
        return client

    def update_client(
        self, client_id: int, data: ClientUpdate, user: User, request: Optional[Request] = None
    ) -> Client:
        client = self.get_client(client_id, user)

        if data.email and data.email != (client.email or "").lower():
            existing = self.repo.find_by_email(self.db, user.company_id, data.email)
            if existing and existing.id != client.id:
                raise HTTPException(status_code=409, detail="A client with this email already exists")

        updates = {
            "first_name": data.firstName.strip() if data.firstName else None,
            "last_name": data.lastName,
            "email": data.email,
            "phone": data.phone,
            "tags": data.tags,
            "notes": sanitize_text(data.notes),
            "is_vip": data.isVip,
            "marketing_opt_out": data.marketingOptOut,
        }
        changed = sorted(k for k, v in updates.items() if v is not None)
        client = self.repo.update_client(self.db, client, **updates)

        audit.log_activity(
            self.db,
            user.company_id,
            user.id,
            audit.CLIENT_UPDATED,
            f"Updated client {client.name}",
            entity_type="client",
            entity_id=client.id,
            metadata={"fields": changed},
            request=request,
        )
        return client

    def delete_client(self, client_id: int, user: User, request: Optional[Request] = None) -> None:
        client = self.get_client(client_id, user)
        name = client.name
        self.repo.delete_client(self.db, client)
        logger.info(f"🗑️ Client {client_id} deleted by user {user.id}")

        audit.log_activity(
            self.db,
            user.company_id,
            user.id,
            audit.CLIENT_DELETED,
            f"Deleted client {name}",
            entity_type="client",
            entity_id=client_id,
            request=request,
        )

    # Preferences

    def get_preferences(self, client_id: int, user: User) -> Optional[ClientPreference]:
        client = self.get_client(client_id, user)
        return self.repo.get_preferences(self.db, client.id)

    def save_preferences(self, client_id: int, data: PreferencesInput, user: User) -> ClientPreference:
        """Upsert: fields left out of the body keep their stored value"""
        client = self.get_client(client_id, user)
        values = {
            PREFERENCE_FIELDS[key]: sanitize_text(value) if isinstance(value, str) else value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None
        }
        return self.repo.upsert_preferences(self.db, client.id, **values)

    def delete_preferences(self, client_id: int, user: User) -> None:
        client = self.get_client(client_id, user)
        if not self.repo.delete_preferences(self.db, client.id):
            raise HTTPException(status_code=404, detail="Preferences not found")
