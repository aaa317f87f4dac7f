"""
CSV importer for bookings and clients
Spreadsheet exports from other booking tools use many header spellings; each
canonical field has an alias list and the first alias present in the header row wins.
"""

import csv
import io
import logging
import re
from datetime import datetime
from typing import Optional

from dateutil import parser as date_parser
from sqlalchemy.orm import Session

from ..domain.bookings.service import generate_booking_number
from ..domain.clients.repository import ClientRepository
from ..models import Address, Booking, Client, User
from ..shared.formatting import split_name, to_utc_naive
from ..shared.validators import to_e164

logger = logging.getLogger(__name__)

IMPORT_TYPES = ("bookings", "clients")
MAX_REPORTED_ERRORS = 20

BOOKING_HEADER_ALIASES: dict[str, list[str]] = {
    "date": ["date", "scheduled_date", "booking_date", "appointment_date", "service_date", "booking start date time"],
    "client_name": ["client_name", "client", "customer", "customer_name", "name", "full name", "full_name"],
    "first_name": ["first_name", "first name", "firstname"],
    "last_name": ["last_name", "last name", "lastname"],
    "email": ["email", "email_address", "email address", "e-mail"],
    "phone": ["phone", "phone_number", "phone number", "telephone", "mobile"],
    "address": ["address", "street", "street_address", "street address"],
    "apt": ["apt", "apt.", "apt. no.", "apartment", "unit"],
    "city": ["city"],
    "state": ["state", "st"],
    "zip": ["zip", "zipcode", "zip_code", "postal", "zip/postal code", "zip/postal_code"],
    "service_type": ["service_type", "type", "service", "cleaning_type", "frequency"],
    "price": ["price", "amount", "total", "cost", "rate", "final amount (usd)", "final_amount", "service total (usd)"],
    "status": ["status", "booking_status", "booking status"],
    "cleaner": ["cleaner", "assigned_to", "team_member", "provider", "provider/team", "provider/team (without ids)", "provider details"],
    "duration": ["duration", "hours", "time", "estimated job length (hh:mm)"],
    "bedrooms": ["bedrooms", "beds", "br"],
    "bathrooms": ["bathrooms", "baths", "ba"],
    "sqft": ["sqft", "sq ft", "square_feet", "squarefeet", "house sq ft"],
    "notes": ["notes", "note", "comments", "description", "booking note", "private customer note"],
    "frequency": ["frequency", "occurrence"],
    "tip": ["tip", "tip (usd)"],
    "extras": ["extras"],
}

CLIENT_HEADER_ALIASES: dict[str, list[str]] = {
    "name": ["name", "client_name", "customer_name", "full_name", "full name"],
    "first_name": ["first_name", "first name", "firstname"],
    "last_name": ["last_name", "last name", "lastname"],
    "email": ["email", "email_address", "email address", "e-mail"],
    "phone": ["phone", "phone_number", "phone number", "telephone", "mobile"],
    "address": ["address", "street", "street_address"],
    "apt": ["apt", "apt.", "apt. no.", "apartment", "unit"],
    "city": ["city"],
    "state": ["state", "st"],
    "zip": ["zip", "zipcode", "zip_code", "postal", "zip/postal code"],
    "tags": ["tags", "labels", "categories"],
    "notes": ["notes", "note", "comments"],
    "status": ["status"],
}

DATE_FORMATS = (
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})"), ("year", "month", "day")),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})"), ("month", "day", "year")),
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})"), ("month", "day", "year")),
)


class ImportRow:
    """One data row with alias-aware field lookup"""

    def __init__(self, values: list[str], column_index: dict[str, int]):
        self.values = values
        self.column_index = column_index

    def get(self, field: str) -> str:
        index = self.column_index.get(field, -1)
        if index < 0 or index >= len(self.values):
            return ""
        return (self.values[index] or "").strip()


def build_column_index(headers: list[str], aliases: dict[str, list[str]]) -> dict[str, int]:
    """Map each canonical field to the position of its first matching header"""
    index = {}
    for field, variations in aliases.items():
        for variation in variations:
            if variation in headers:
                index[field] = headers.index(variation)
                break
    return index


def read_csv(text: str) -> tuple[list[str], list[list[str]]]:
    """Lower-cased headers plus non-empty data rows"""
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    rows = [row for row in reader]
    if not rows:
        return [], []
    headers = [h.strip().lower() for h in rows[0]]
    return headers, rows[1:]


def parse_import_date(value: str) -> Optional[datetime]:
    """YYYY-MM-DD, MM/DD/YYYY or MM-DD-YYYY (optionally followed by a time), then free-form"""
    if not value:
        return None

    for pattern, order in DATE_FORMATS:
        match = pattern.match(value)
        if not match:
            continue
        parts = dict(zip(order, (int(g) for g in match.groups())))
        try:
            day = datetime(parts["year"], parts["month"], parts["day"])
        except ValueError:
            return None
        rest = value[match.end():].strip(" T")
        if rest:
            try:
                clock = date_parser.parse(rest).time()
                return datetime.combine(day.date(), clock)
            except (ValueError, OverflowError):
                return day
        return day

    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError):
        return None
    return to_utc_naive(parsed) if parsed.tzinfo else parsed


def parse_price(value: str) -> float:
    try:
        return float(value.replace("$", "").replace(",", "")) if value else 0.0
    except ValueError:
        return 0.0


def parse_duration_minutes(value: str) -> int:
    """Minutes; values of 24 or less are hours, hh:mm is accepted"""
    if not value:
        return 120
    if ":" in value:
        hours, _, minutes = value.partition(":")
        try:
            total = int(hours) * 60 + int(minutes or 0)
            return total or 120
        except ValueError:
            return 120
    match = re.match(r"^\d+(\.\d+)?", value)
    if not match:
        return 120
    number = float(match.group(0))
    if number <= 0:
        return 120
    return int(round(number * 60)) if number <= 24 else int(number)


def map_service_type(value: str) -> str:
    value = value.lower()
    if "deep" in value:
        return "DEEP"
    if "move" in value:
        return "MOVE_OUT"
    return "STANDARD"


def map_import_status(value: str) -> str:
    """Imported history is assumed completed unless the export says otherwise"""
    value = value.lower()
    if "schedul" in value or "upcoming" in value:
        return "CONFIRMED"
    if "cancel" in value:
        return "CANCELLED"
    if "no show" in value or "no-show" in value:
        return "NO_SHOW"
    return "COMPLETED"


def _int_or_none(value: str) -> Optional[int]:
    try:
        return int(float(value.replace(",", ""))) if value else None
    except ValueError:
        return None


def _float_or_none(value: str) -> Optional[float]:
    try:
        return float(value) if value else None
    except ValueError:
        return None


class CSVImporter:
    """Row-by-row importer. Each good row is committed on its own."""

    def __init__(self, db: Session, user: User):
        self.db = db
        self.user = user
        self.company_id = user.company_id
        self.errors: list[str] = []
        self.imported = 0

    def run(self, import_type: str, text: str) -> dict:
        if import_type not in IMPORT_TYPES:
            raise ValueError("Invalid import type")

        headers, rows = read_csv(text)
        if import_type == "bookings":
            column_index = build_column_index(headers, BOOKING_HEADER_ALIASES)
            handler = self._import_booking_row
        else:
            column_index = build_column_index(headers, CLIENT_HEADER_ALIASES)
            handler = self._import_client_row

        for i, values in enumerate(rows):
            if not any(v.strip() for v in values):
                continue
            row_number = i + 2  # header is row 1
            try:
                error = handler(ImportRow(values, column_index), row_number)
                if error:
                    self.errors.append(error)
                    continue
                self.db.commit()
                self.imported += 1
            except Exception as e:
                self.db.rollback()
                logger.warning(f"⚠️ CSV import row {row_number} failed: {e}")
                self.errors.append(f"Row {row_number}: {e}")

        logger.info(
            f"📥 CSV import ({import_type}) for company {self.company_id}: "
            f"imported={self.imported}, errors={len(self.errors)}"
        )
        return {
            "success": True,
            "imported": self.imported,
            "errors": self.errors[:MAX_REPORTED_ERRORS],
            "totalErrors": len(self.errors),
        }

    @staticmethod
    def _row_name(row: ImportRow, full_name_field: str) -> str:
        name = row.get(full_name_field)
        if not name:
            name = f"{row.get('first_name')} {row.get('last_name')}".strip()
        return name

    def _find_or_create_client(self, name: str, row: ImportRow) -> Client:
        client = ClientRepository.find_by_name(self.db, self.company_id, name)
        if client:
            return client
        first_name, last_name = split_name(name)
        client = Client(
            company_id=self.company_id,
            first_name=first_name,
            last_name=last_name,
            email=row.get("email").lower() or None,
            phone=to_e164(row.get("phone")) or row.get("phone") or None,
            tags=[],
        )
        self.db.add(client)
        self.db.flush()
        return client

    def _find_or_create_address(self, client: Client, row: ImportRow) -> Address:
        street = row.get("address")
        if street:
            address = ClientRepository.find_address_by_street(self.db, client.id, street)
            if address:
                return address
            address = Address(
                client_id=client.id,
                street=street,
                unit=row.get("apt") or None,
                city=row.get("city") or "Unknown",
                state=row.get("state") or "CA",
                zip=row.get("zip") or "00000",
                bedrooms=_int_or_none(row.get("bedrooms")),
                bathrooms=_float_or_none(row.get("bathrooms")),
                square_footage=_int_or_none(row.get("sqft")),
            )
        else:
            address = self.db.query(Address).filter(Address.client_id == client.id).first()
            if address:
                return address
            address = Address(
                client_id=client.id,
                street="Address not provided",
                city=row.get("city") or "Unknown",
                state=row.get("state") or "TX",
                zip=row.get("zip") or "00000",
            )
        self.db.add(address)
        self.db.flush()
        return address

    def _import_booking_row(self, row: ImportRow, row_number: int) -> Optional[str]:
        client_name = self._row_name(row, "client_name")
        date_value = row.get("date")
        if not client_name or not date_value:
            return f"Row {row_number}: Missing required fields (client_name or date)"

        scheduled_date = parse_import_date(date_value)
        if not scheduled_date:
            return f'Row {row_number}: Invalid date format "{date_value}"'

        client = self._find_or_create_client(client_name, row)
        address = self._find_or_create_address(client, row)
        status = map_import_status(row.get("status"))

        self.db.add(
            Booking(
                company_id=self.company_id,
                client_id=client.id,
                address_id=address.id,
                created_by_id=self.user.id,
                booking_number=generate_booking_number(scheduled_date),
                scheduled_date=scheduled_date,
                duration=parse_duration_minutes(row.get("duration")),
                service_type=map_service_type(row.get("service_type")),
                status=status,
                price=parse_price(row.get("price")),
                is_paid=status == "COMPLETED",
                customer_notes=row.get("notes") or None,
                completed_at=scheduled_date if status == "COMPLETED" else None,
                status_history=[
                    {
                        "status": status,
                        "timestamp": datetime.utcnow().isoformat(),
                        "userId": self.user.id,
                        "userName": self.user.full_name,
                        "action": "import",
                    }
                ],
            )
        )
        return None

    def _import_client_row(self, row: ImportRow, row_number: int) -> Optional[str]:
        name = self._row_name(row, "name")
        if not name:
            return f"Row {row_number}: Missing required field (name)"

        email = row.get("email").lower() or None
        if ClientRepository.find_by_name(self.db, self.company_id, name) or (
            email and ClientRepository.find_by_email(self.db, self.company_id, email)
        ):
            return f'Row {row_number}: Client "{name}" already exists'

        tags_value = row.get("tags")
        tags = [t.strip() for t in re.split(r"[;|,]", tags_value) if t.strip()] if tags_value else []
        first_name, last_name = split_name(name)
        client = Client(
            company_id=self.company_id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=to_e164(row.get("phone")) or row.get("phone") or None,
            tags=tags,
            notes=row.get("notes") or None,
        )
        self.db.add(client)
        self.db.flush()

        street = row.get("address")
        if street:
            self.db.add(
                Address(
                    client_id=client.id,
                    street=street,
                    unit=row.get("apt") or None,
                    city=row.get("city") or "Unknown",
                    state=row.get("state") or "TX",
                    zip=row.get("zip") or "00000",
                )
            )
        return None


def import_csv(db: Session, user: User, import_type: str, text: str) -> dict:
    return CSVImporter(db, user).run(import_type, text)
