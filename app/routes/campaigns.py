import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import get_manager
from ..database import get_db
from ..models import Campaign, CampaignRecipient, User
from ..rate_limiter import bulk_rate_limit
from ..services import audit
from ..services.campaign_service import CHANNELS, build_audience, opted_out_count, send_campaign

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/marketing/campaigns", tags=["Marketing"])


class SegmentFilter(BaseModel):
    tags: Optional[list[str]] = None
    noBookingDays: Optional[int] = None


class CampaignCreate(BaseModel):
    name: str
    channel: str = "SMS"
    subject: Optional[str] = None
    body: str
    segmentFilter: Optional[SegmentFilter] = None
    scheduledFor: Optional[datetime] = None

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v):
        if v not in CHANNELS:
            raise ValueError(f"Channel must be one of: {', '.join(CHANNELS)}")
        return v

    @field_validator("name", "body")
    @classmethod
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("Field is required")
        return v


class CampaignUpdate(BaseModel):
    name: Optional[str] = None
    channel: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    segmentFilter: Optional[SegmentFilter] = None
    scheduledFor: Optional[datetime] = None

    @field_validator("channel")
    @classmethod
    def validate_channel(cls, v):
        if v is not None and v not in CHANNELS:
            raise ValueError(f"Channel must be one of: {', '.join(CHANNELS)}")
        return v


class SendRequest(BaseModel):
    excludedClientIds: list[int] = []


def campaign_to_dict(campaign: Campaign) -> dict:
    return {
        "id": campaign.id,
        "name": campaign.name,
        "channel": campaign.channel,
        "subject": campaign.subject,
        "body": campaign.body,
        "segmentFilter": campaign.segment_filter or {},
        "status": campaign.status,
        "scheduledFor": campaign.scheduled_for.isoformat() if campaign.scheduled_for else None,
        "recipientCount": campaign.recipient_count,
        "sentCount": campaign.sent_count,
        "failedCount": campaign.failed_count,
        "sentAt": campaign.sent_at.isoformat() if campaign.sent_at else None,
        "createdAt": campaign.created_at.isoformat() if campaign.created_at else None,
    }


def _get_campaign(db: Session, campaign_id: int, company_id: int) -> Campaign:
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id, Campaign.company_id == company_id).first()
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


@router.get("")
async def list_campaigns(current_user: User = Depends(get_manager), db: Session = Depends(get_db)):
    campaigns = (
        db.query(Campaign)
        .filter(Campaign.company_id == current_user.company_id)
        .order_by(Campaign.created_at.desc(), Campaign.id.desc())
        .all()
    )
    return {"success": True, "data": [campaign_to_dict(c) for c in campaigns]}


@router.post("", status_code=201)
async def create_campaign(
    data: CampaignCreate,
    request: Request,
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    if data.channel in ("EMAIL", "BOTH") and not data.subject:
        raise HTTPException(status_code=400, detail="Subject is required for email campaigns")

    campaign = Campaign(
        company_id=current_user.company_id,
        name=data.name.strip(),
        channel=data.channel,
        subject=data.subject,
        body=data.body,
        segment_filter=data.segmentFilter.model_dump(exclude_none=True) if data.segmentFilter else {},
        status="SCHEDULED" if data.scheduledFor else "DRAFT",
        scheduled_for=data.scheduledFor,
        created_by_id=current_user.id,
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)

    audit.log_activity(
        db,
        current_user.company_id,
        current_user.id,
        audit.CAMPAIGN_CREATED,
        f"Created campaign {campaign.name}",
        entity_type="campaign",
        entity_id=campaign.id,
        request=request,
    )
    return {"success": True, "data": campaign_to_dict(campaign)}


@router.get("/{campaign_id}")
async def get_campaign(campaign_id: int, current_user: User = Depends(get_manager), db: Session = Depends(get_db)):
    campaign = _get_campaign(db, campaign_id, current_user.company_id)
    return {"success": True, "data": campaign_to_dict(campaign)}


@router.put("/{campaign_id}")
async def update_campaign(
    campaign_id: int,
    data: CampaignUpdate,
    request: Request,
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    campaign = _get_campaign(db, campaign_id, current_user.company_id)
    if campaign.status != "DRAFT":
        raise HTTPException(status_code=400, detail="Only draft campaigns can be edited")

    if data.name is not None:
        campaign.name = data.name.strip()
    if data.channel is not None:
        campaign.channel = data.channel
    if data.subject is not None:
        campaign.subject = data.subject
    if data.body is not None:
        campaign.body = data.body
    if data.segmentFilter is not None:
        campaign.segment_filter = data.segmentFilter.model_dump(exclude_none=True)
    if data.scheduledFor is not None:
        campaign.scheduled_for = data.scheduledFor

    db.commit()
    db.refresh(campaign)
    audit.log_activity(
        db,
        current_user.company_id,
        current_user.id,
        audit.CAMPAIGN_UPDATED,
        f"Updated campaign {campaign.name}",
        entity_type="campaign",
        entity_id=campaign.id,
        request=request,
    )
    return {"success": True, "data": campaign_to_dict(campaign)}


@router.delete("/{campaign_id}")
async def delete_campaign(
    campaign_id: int,
    request: Request,
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    campaign = _get_campaign(db, campaign_id, current_user.company_id)
    if campaign.status == "SENDING":
        raise HTTPException(status_code=400, detail="Cannot delete a campaign while it is sending")

    name = campaign.name
    db.delete(campaign)
    db.commit()
    audit.log_activity(
        db,
        current_user.company_id,
        current_user.id,
        audit.CAMPAIGN_DELETED,
        f"Deleted campaign {name}",
        entity_type="campaign",
        entity_id=campaign_id,
        request=request,
    )
    return {"success": True}


@router.get("/{campaign_id}/preview-recipients")
async def preview_recipients(
    campaign_id: int, current_user: User = Depends(get_manager), db: Session = Depends(get_db)
):
    """Who would receive the campaign if it were sent now"""
    campaign = _get_campaign(db, campaign_id, current_user.company_id)
    recipients = build_audience(db, current_user.company_id, campaign)
    return {
        "success": True,
        "data": {
            "recipients": [
                {"id": c.id, "name": c.name, "email": c.email, "phone": c.phone, "tags": c.tags or []}
                for c in recipients
            ],
            "optedOutCount": opted_out_count(db, current_user.company_id),
        },
    }


@router.get("/{campaign_id}/recipients")
async def list_recipients(campaign_id: int, current_user: User = Depends(get_manager), db: Session = Depends(get_db)):
    """Delivery status per recipient of a sent campaign"""
    campaign = _get_campaign(db, campaign_id, current_user.company_id)
    rows = db.query(CampaignRecipient).filter(CampaignRecipient.campaign_id == campaign.id).all()
    return {
        "success": True,
        "data": [
            {
                "clientId": r.client_id,
                "name": r.client.name if r.client else None,
                "channel": r.channel,
                "status": r.status,
                "errorMessage": r.error_message,
                "sentAt": r.sent_at.isoformat() if r.sent_at else None,
            }
            for r in rows
        ],
    }


@router.post("/{campaign_id}/send", dependencies=[Depends(bulk_rate_limit)])
async def send(
    campaign_id: int,
    request: Request,
    data: Optional[SendRequest] = None,
    current_user: User = Depends(get_manager),
    db: Session = Depends(get_db),
):
    campaign = _get_campaign(db, campaign_id, current_user.company_id)
    excluded = data.excludedClientIds if data else []

    try:
        result = await send_campaign(db, campaign, current_user, excluded)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    audit.log_activity(
        db,
        current_user.company_id,
        current_user.id,
        audit.CAMPAIGN_SENT,
        f"Sent campaign {campaign.name} to {result['recipientCount']} recipients",
        entity_type="campaign",
        entity_id=campaign.id,
        metadata=result,
        request=request,
    )
    return {"success": True, "data": result}
