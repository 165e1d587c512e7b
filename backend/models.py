from dataclasses import dataclass
from typing import Annotated, Any, Dict, Optional, Tuple, Type

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _as_text(value):
    """Older clients posted times and phone numbers as bare JSON numbers"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


Text = Annotated[Optional[str], BeforeValidator(_as_text)]


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire and in the JSON files"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- RECORDS AS STORED IN visitors.json / keys.json ---

class StoredRecord(CamelModel):
    # Unknown keys from older files are kept so load -> save loses nothing
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    serial_number: str
    id_number: Text = None
    name: Text = None
    date: Text = None
    front_photo: Optional[str] = None
    back_photo: Optional[str] = None


class VisitorRecord(StoredRecord):
    company: Text = None
    phone: Text = None
    purpose: Text = None
    time_in: Text = None
    time_out: Text = None


class KeyRecord(StoredRecord):
    key_tag_name: Text = None
    time_taken: Text = None
    security_remarks: Text = None
    time_returned: Text = None


def dump_record(record: StoredRecord) -> Dict[str, Any]:
    """Wire/file form of a record: camelCase keys, unset fields left out"""
    return record.model_dump(by_alias=True, exclude_none=True)


# --- REQUEST BODIES ---
# Everything optional here: the store reports all missing fields at once.

class VisitorCreate(CamelModel):
    serial_number: Optional[str] = None  # ignored, always assigned by the store
    id_number: Text = None
    name: Text = None
    company: Text = None
    phone: Text = None
    purpose: Text = None
    time_in: Text = None
    date: Optional[str] = None  # ignored, visitors are always dated today
    front_photo: Optional[str] = Field(None, description="Base64 image or data URI")
    back_photo: Optional[str] = Field(None, description="Base64 image or data URI")


class KeyCreate(CamelModel):
    serial_number: Optional[str] = None
    id_number: Text = None
    name: Text = None
    key_tag_name: Text = None
    time_taken: Text = None
    security_remarks: Text = None
    date: Optional[str] = None  # defaults to today when empty
    front_photo: Optional[str] = Field(None, description="Base64 image or data URI")
    back_photo: Optional[str] = Field(None, description="Base64 image or data URI")


class TimeoutRequest(CamelModel):
    time_out: Text = None


class ReturnRequest(CamelModel):
    time_returned: Text = None


class Stats(CamelModel):
    total_visitors: int
    active_keys: int


# --- RECORD KINDS ---

@dataclass(frozen=True)
class RecordKind:
    """What differs between the visitor log and the key log"""
    name: str
    label: str
    record_model: Type[StoredRecord]
    photo_prefix: str
    required_fields: Tuple[str, ...]
    close_field: str
    close_attr: str
    override_date: bool
    report_columns: Tuple[Tuple[str, str], ...]

    def is_active(self, record: StoredRecord) -> bool:
        return not getattr(record, self.close_attr)


VISITORS = RecordKind(
    name="visitors",
    label="Visitor",
    record_model=VisitorRecord,
    photo_prefix="",
    required_fields=("idNumber", "name", "company", "phone", "timeIn", "purpose"),
    close_field="timeOut",
    close_attr="time_out",
    override_date=True,
    report_columns=(
        ("S.No", "serialNumber"),
        ("ID Number", "idNumber"),
        ("Name", "name"),
        ("Company", "company"),
        ("Phone", "phone"),
        ("Purpose", "purpose"),
        ("Date", "date"),
        ("Time In", "timeIn"),
        ("Time Out", "timeOut"),
        ("Front Photo", "frontPhoto"),
        ("Back Photo", "backPhoto"),
    ),
)

KEYS = RecordKind(
    name="keys",
    label="Key",
    record_model=KeyRecord,
    photo_prefix="key_",
    required_fields=("idNumber", "name", "keyTagName", "timeTaken", "securityRemarks"),
    close_field="timeReturned",
    close_attr="time_returned",
    override_date=False,
    report_columns=(
        ("S.No", "serialNumber"),
        ("ID Number", "idNumber"),
        ("Name", "name"),
        ("Key Tag", "keyTagName"),
        ("Date", "date"),
        ("Time Taken", "timeTaken"),
        ("Time Returned", "timeReturned"),
        ("Security Remarks", "securityRemarks"),
        ("Front Photo", "frontPhoto"),
        ("Back Photo", "backPhoto"),
    ),
)

RECORD_KINDS = {kind.name: kind for kind in (VISITORS, KEYS)}
