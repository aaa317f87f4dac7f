"""Client router - FastAPI endpoints for client operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_manager
from ...database import get_db
from ...models import User
from .schemas import (
    ClientCreate,
    ClientResponse,
    ClientUpdate,
    PreferencesInput,
    client_to_response,
    preferences_to_dict,
)
from .service import ClientService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/clients", tags=["Clients"])


def get_client_service(db: Session = Depends(get_db)) -> ClientService:
    """Dependency injection for ClientService"""
    return ClientService(db)


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("", response_model=list[ClientResponse])
async def get_clients(
    search: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_manager),
    service: ClientService = Depends(get_client_service),
):
    """List the company's clients, optionally filtered by name, email or phone"""
    clients = service.get_clients(current_user, search=search, limit=limit, offset=offset)
    return [client_to_response(c) for c in clients]


@router.post("", response_model=ClientResponse, status_code=201)
async def create_client(
    data: ClientCreate,
    request: Request,
    current_user: User = Depends(get_manager),
    service: ClientService = Depends(get_client_service),
):
    client = service.create_client(data, current_user, request)
    return client_to_response(client, detailed=True)


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    current_user: User = Depends(get_manager),
    service: ClientService = Depends(get_client_service),
):
    """Get a client with addresses and preferences"""
    client = service.get_client(client_id, current_user)
    return client_to_response(client, detailed=True)


@router.put("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    data: ClientUpdate,
    request: Request,
    current_user: User = Depends(get_manager),
    service: ClientService = Depends(get_client_service),
):
    client = service.update_client(client_id, data, current_user, request)
    return client_to_response(client, detailed=True)


@router.delete("/{client_id}")
async def delete_client(
    client_id: int,
    request: Request,
    current_user: User = Depends(get_manager),
    service: ClientService = Depends(get_client_service),
):
    service.delete_client(client_id, current_user, request)
    return {"success": True, "message": "Client deleted"}


# ============================================================================
# PREFERENCES
# ============================================================================


@router.get("/{client_id}/preferences")
async def get_preferences(
    client_id: int,
    current_user: User = Depends(get_manager),
    service: ClientService = Depends(get_client_service),
):
    preferences = service.get_preferences(client_id, current_user)
    return {"preferences": preferences_to_dict(preferences)}


@router.put("/{client_id}/preferences")
async def save_preferences(
    client_id: int,
    data: PreferencesInput,
    current_user: User = Depends(get_manager),
    service: ClientService = Depends(get_client_service),
):
    preferences = service.save_preferences(client_id, data, current_user)
    return {"success": True, "preferences": preferences_to_dict(preferences)}


@router.delete("/{client_id}/preferences")
async def delete_preferences(
    client_id: int,
    current_user: User = Depends(get_manager),
    service: ClientService = Depends(get_client_service),
):
    service.delete_preferences(client_id, current_user)
    return {"success": True}
