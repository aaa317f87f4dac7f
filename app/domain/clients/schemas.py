"""Client domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_email, validate_us_phone


class AddressInput(BaseModel):
    street: str
    unit: Optional[str] = None
    city: str
    state: str
    zip: str
    parkingInfo: Optional[str] = None
    gateCode: Optional[str] = None
    petDetails: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    squareFootage: Optional[int] = None

    @field_validator("street", "city", "state", "zip")
    @classmethod
    def not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("Field is required")
        return v.strip()

    def to_model_fields(self) -> dict:
        return {
            "street": self.street,
            "unit": self.unit,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "parking_info": self.parkingInfo,
            "gate_code": self.gateCode,
            "pet_details": self.petDetails,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "square_footage": self.squareFootage,
        }


class ClientCreate(BaseModel):
    """Schema for creating a new client"""

    firstName: str
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = None
    isVip: bool = False
    marketingOptOut: bool = False
    address: Optional[AddressInput] = None
    referralCode: Optional[str] = None

    @field_validator("firstName")
    @classmethod
    def validate_first_name(cls, v):
        if not v or not v.strip():
            raise ValueError("First name is required")
        return v.strip()

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)


class ClientUpdate(BaseModel):
    """Schema for updating an existing client"""

    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    tags: Optional[list[str]] = None
    notes: Optional[str] = None
    isVip: Optional[bool] = None
    marketingOptOut: Optional[bool] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        return validate_email(v)


class PreferencesInput(BaseModel):
    cleaningSequence: Optional[str] = None
    priorityAreas: Optional[str] = None
    areasToAvoid: Optional[str] = None
    productAllergies: Optional[str] = None
    preferredProducts: Optional[str] = None
    customerProvidesProducts: Optional[bool] = None
    avoidScents: Optional[bool] = None
    ecoFriendlyOnly: Optional[bool] = None
    petHandlingInstructions: Optional[str] = None
    plantWatering: Optional[bool] = None
    plantInstructions: Optional[str] = None
    trashTakeout: Optional[bool] = None
    otherTasks: Optional[str] = None
    lastVisitNotes: Optional[str] = None


# wire name -> column name
PREFERENCE_FIELDS = {
    "cleaningSequence": "cleaning_sequence",
    "priorityAreas": "priority_areas",
    "areasToAvoid": "areas_to_avoid",
    "productAllergies": "product_allergies",
    "preferredProducts": "preferred_products",
    "customerProvidesProducts": "customer_provides_products",
    "avoidScents": "avoid_scents",
    "ecoFriendlyOnly": "eco_friendly_only",
    "petHandlingInstructions": "pet_handling_instructions",
    "plantWatering": "plant_watering",
    "plantInstructions": "plant_instructions",
    "trashTakeout": "trash_takeout",
    "otherTasks": "other_tasks",
    "lastVisitNotes": "last_visit_notes",
}


class AddressResponse(BaseModel):
    id: int
    street: str
    unit: Optional[str] = None
    city: str
    state: str
    zip: str
    parkingInfo: Optional[str] = None
    gateCode: Optional[str] = None
    petDetails: Optional[str] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    squareFootage: Optional[int] = None


class ClientResponse(BaseModel):
    """Schema for client response"""

    id: int
    firstName: str
    lastName: Optional[str]
    name: str
    email: Optional[str]
    phone: Optional[str]
    tags: list[str] = []
    notes: Optional[str]
    isVip: bool
    marketingOptOut: bool
    referralCode: Optional[str] = None
    referralCreditsBalance: float = 0
    created_at: Optional[datetime] = None
    addresses: Optional[list[AddressResponse]] = None
    preferences: Optional[dict] = None

    class Config:
        from_attributes = True


def address_to_response(address) -> AddressResponse:
    return AddressResponse(
        id=address.id,
        street=address.street,
        unit=address.unit,
        city=address.city,
        state=address.state,
        zip=address.zip,
        parkingInfo=address.parking_info,
        gateCode=address.gate_code,
        petDetails=address.pet_details,
        bedrooms=address.bedrooms,
        bathrooms=address.bathrooms,
        squareFootage=address.square_footage,
    )


def preferences_to_dict(preferences) -> Optional[dict]:
    if not preferences:
        return None
    return {wire: getattr(preferences, column) for wire, column in PREFERENCE_FIELDS.items()}


def client_to_response(client, detailed: bool = False) -> ClientResponse:
    return ClientResponse(
        id=client.id,
        firstName=client.first_name,
        lastName=client.last_name,
        name=client.name,
        email=client.email,
        phone=client.phone,
        tags=client.tags or [],
        notes=client.notes,
        isVip=client.is_vip,
        marketingOptOut=client.marketing_opt_out,
        referralCode=client.referral_code,
        referralCreditsBalance=client.referral_credits_balance or 0,
        created_at=client.created_at,
        addresses=[address_to_response(a) for a in client.addresses] if detailed else None,
        preferences=preferences_to_dict(client.preferences) if detailed else None,
    )
