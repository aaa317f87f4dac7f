"""
Referral program
Clients share a code like JANE-7KQ2M. When a referred client books, both sides
receive credit that is later applied against a booking price.
"""

import logging
import re
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models import Client, Company
from ..security_utils import generate_random_code

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 5


def generate_referral_code(name: str) -> str:
    prefix = re.sub(r"[^A-Z]", "", (name or "").split(" ")[0].upper())[:10] or "REF"
    return f"{prefix}-{generate_random_code(5)}"


def assign_referral_code(db: Session, client: Client) -> str:
    """Give a client a code unique within its company (existing codes are kept)"""
    if client.referral_code:
        return client.referral_code

    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_referral_code(client.first_name)
        taken = (
            db.query(Client.id)
            .filter(Client.company_id == client.company_id, Client.referral_code == code)
            .first()
        )
        if not taken:
            client.referral_code = code
            db.commit()
            db.refresh(client)
            logger.info(f"🎟️ Referral code {code} assigned to client {client.id}")
            return code

    raise ValueError("Could not generate a unique referral code")


def validate_referral_code(db: Session, code: str, company_id: int) -> dict:
    referrer = (
        db.query(Client)
        .filter(Client.company_id == company_id, Client.referral_code == (code or "").strip().upper())
        .first()
    )
    if not referrer:
        return {"valid": False, "clientId": None, "clientName": None}
    return {"valid": True, "clientId": referrer.id, "clientName": referrer.name}


def award_referral_credits(db: Session, referrer_id: int, referee_id: int, company_id: int) -> dict:
    """
    Credit both sides of a referral in one transaction

    Raises:
        ValueError: program disabled, unknown client, or self-referral
    """
    company = db.query(Company).filter(Company.id == company_id).first()
    if not company or not company.referral_enabled:
        raise ValueError("Referral program is not enabled")
    if referrer_id == referee_id:
        raise ValueError("A client cannot refer themselves")

    referrer = db.query(Client).filter(Client.id == referrer_id, Client.company_id == company_id).first()
    referee = db.query(Client).filter(Client.id == referee_id, Client.company_id == company_id).first()
    if not referrer or not referee:
        raise ValueError("Client not found")

    referrer_reward = company.referral_referrer_reward or 0
    referee_reward = company.referral_referee_reward or 0

    try:
        referrer.referral_credits_earned = (referrer.referral_credits_earned or 0) + referrer_reward
        referrer.referral_credits_balance = (referrer.referral_credits_balance or 0) + referrer_reward
        referee.referral_credits_balance = (referee.referral_credits_balance or 0) + referee_reward
        referee.referred_by_id = referrer.id
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"🎁 Referral credits awarded: referrer {referrer.id} +{referrer_reward}, "
        f"referee {referee.id} +{referee_reward}"
    )
    return {
        "referrerId": referrer.id,
        "referrerReward": referrer_reward,
        "refereeId": referee.id,
        "refereeReward": referee_reward,
    }


def apply_referral_credits(db: Session, client_id: int, amount: float, commit: bool = True) -> float:
    """Spend up to `amount` from the client's balance. Returns what was applied.

    With commit=False the balance change rides on the caller's transaction.
    """
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client or amount <= 0:
        return 0.0

    applied = min(client.referral_credits_balance or 0, amount)
    if applied <= 0:
        return 0.0

    client.referral_credits_balance = (client.referral_credits_balance or 0) - applied
    client.referral_credits_used = (client.referral_credits_used or 0) + applied
    if commit:
        db.commit()
    return applied


def referral_stats(db: Session, company_id: int, client_id: Optional[int] = None) -> dict:
    query = db.query(Client).filter(Client.company_id == company_id)
    if client_id is not None:
        client = query.filter(Client.id == client_id).first()
        if not client:
            raise ValueError("Client not found")
        referred = db.query(func.count(Client.id)).filter(Client.referred_by_id == client.id).scalar()
        return {
            "clientId": client.id,
            "referralCode": client.referral_code,
            "totalReferrals": referred or 0,
            "creditsEarned": client.referral_credits_earned or 0,
            "creditsBalance": client.referral_credits_balance or 0,
            "creditsUsed": client.referral_credits_used or 0,
        }

    total_referred = query.filter(Client.referred_by_id.isnot(None)).count()
    totals = (
        db.query(
            func.coalesce(func.sum(Client.referral_credits_earned), 0),
            func.coalesce(func.sum(Client.referral_credits_balance), 0),
        )
        .filter(Client.company_id == company_id)
        .one()
    )
    top = (
        query.filter(Client.referral_credits_earned > 0)
        .order_by(Client.referral_credits_earned.desc())
        .limit(5)
        .all()
    )
    return {
        "totalReferrals": total_referred,
        "totalCreditsEarned": float(totals[0]),
        "outstandingBalance": float(totals[1]),
        "topReferrers": [
            {"clientId": c.id, "name": c.name, "creditsEarned": c.referral_credits_earned} for c in top
        ],
    }
