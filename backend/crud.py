import os
import re
from datetime import date
from io import BytesIO
from typing import List, Optional

import openpyxl
from pydantic import ValidationError as SchemaError

import photo_utils
from database import Database
from exceptions import NotFoundError, PhotoIOFault, StorageFault, ValidationError
from logging_config import logger
from models import KEYS, VISITORS, RecordKind, Stats, StoredRecord, dump_record

# Emirates ID: 784-XXXX-XXXXXXX-X
ID_NUMBER_PATTERN = re.compile(r'784-\d{4}-\d{7}-\d', re.ASCII)

PHOTO_FIELDS = ("frontPhoto", "backPhoto")


def format_serial(position: int) -> str:
    return f"{position:04d}"


def _clean(value):
    return value.strip() if isinstance(value, str) else value


def _load(db: Database, kind: RecordKind) -> List[StoredRecord]:
    collection = db.collection(kind)
    raw = collection.load()
    try:
        return [kind.record_model.model_validate(item) for item in raw]
    except SchemaError as e:
        logger.error(f"Malformed record in {collection.path}: {e}")
        raise StorageFault(f"Failed to read {kind.name} collection", path=collection.path) from e


def _save(db: Database, kind: RecordKind, records: List[StoredRecord]):
    db.collection(kind).save([dump_record(r) for r in records])


def _find(records: List[StoredRecord], serial_number: str) -> Optional[int]:
    for index, record in enumerate(records):
        if record.serial_number == serial_number:
            return index
    return None


def validate_entry(kind: RecordKind, payload: dict) -> dict:
    """Check required fields, ID number format and photo presence; returns trimmed values"""
    values = {key: _clean(value) for key, value in payload.items()}

    missing = [field for field in kind.required_fields if not values.get(field)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing)

    if not ID_NUMBER_PATTERN.fullmatch(values["idNumber"]):
        raise ValidationError(
            "Invalid ID Number format. Expected format: 784-XXXX-XXXXXXX-X", ["idNumber"]
        )

    missing_photos = [field for field in PHOTO_FIELDS if not values.get(field)]
    if missing_photos:
        raise ValidationError("Both front and back ID photos are required", missing_photos)

    return values


def create_entry(db: Database, kind: RecordKind, payload: dict) -> StoredRecord:
    """
    Validate and store a new visitor / key entry.

    The serial number is always the next one in sequence (client value ignored).
    Visitors are always dated today, whatever date the client sent; key entries
    keep a client date and fall back to today.
    Photos are written before the record is appended; if anything fails the
    photos written so far are removed again.
    """
    values = validate_entry(kind, payload)

    # Decode outside the lock; report every bad photo at once
    photos = {}
    bad = []
    for field in PHOTO_FIELDS:
        try:
            photos[field] = photo_utils.decode_photo_payload(values[field], field)
        except ValidationError:
            bad.append(field)
    if bad:
        raise ValidationError(f"Invalid photo data: {', '.join(bad)}", bad)

    collection = db.collection(kind)
    with collection.lock:
        records = _load(db, kind)
        serial_number = format_serial(len(records) + 1)

        entry_date = values.get("date")
        if kind.override_date or not entry_date:
            entry_date = db.clock().date().isoformat()

        written = []
        try:
            for field, side in zip(PHOTO_FIELDS, photo_utils.SIDES):
                filename = photo_utils.photo_filename(kind.photo_prefix, serial_number, side)
                photo_utils.write_photo(db.photos_dir, filename, photos[field])
                written.append(filename)
        except PhotoIOFault:
            for filename in written:
                photo_utils.remove_photo(db.photos_dir, filename)
            raise

        data = {field: values[field] for field in kind.required_fields}
        data.update({
            "serialNumber": serial_number,
            "date": entry_date,
            "frontPhoto": photo_utils.photo_url(written[0]),
            "backPhoto": photo_utils.photo_url(written[1]),
        })
        record = kind.record_model.model_validate(data)
        records.append(record)

        try:
            _save(db, kind, records)
        except StorageFault:
            for filename in written:
                photo_utils.remove_photo(db.photos_dir, filename)
            raise

    logger.info(f"{kind.label} {serial_number} created", extra={"serial_number": serial_number})
    return record


def close_entry(db: Database, kind: RecordKind, serial_number: str, time_value) -> StoredRecord:
    """Record time-out (visitors) or time-returned (keys). The value is stored as given."""
    if time_value is None:
        raise ValidationError(f"Missing required fields: {kind.close_field}", [kind.close_field])

    collection = db.collection(kind)
    with collection.lock:
        records = _load(db, kind)
        index = _find(records, serial_number)
        if index is None:
            raise NotFoundError(kind.label, serial_number)

        record = records[index]
        setattr(record, kind.close_attr, time_value)
        _save(db, kind, records)

    logger.info(f"{kind.label} {serial_number}: {kind.close_field}={time_value}")
    return record


def delete_entry(db: Database, kind: RecordKind, serial_number: str) -> int:
    """
    Delete one entry and renumber the rest 0001..N so serials stay contiguous.

    Photos of renumbered entries are copied to the staging folder under their
    new names first, then the collection is saved, and only then are the staged
    copies moved into place and the old files removed. If the save fails the
    photo folder is left untouched. A photo that cannot be staged or put in
    place is dropped from its record (logged) instead of leaving a dangling
    path; its old file is kept.
    Returns the number of remaining entries.
    """
    collection = db.collection(kind)
    staging_dir = db.staging_for(kind)

    with collection.lock:
        records = _load(db, kind)
        index = _find(records, serial_number)
        if index is None:
            raise NotFoundError(kind.label, serial_number)

        removed = records.pop(index)
        photo_utils.clear_staging(staging_dir)

        # (record, attr, old_name, new_name) for every staged copy
        staged = []
        for position, record in enumerate(records, start=1):
            new_serial = format_serial(position)
            old_serial = record.serial_number
            if new_serial == old_serial:
                continue

            record.serial_number = new_serial
            for side in photo_utils.SIDES:
                attr = f"{side}_photo"
                if getattr(record, attr) is None:
                    continue
                old_name = photo_utils.photo_filename(kind.photo_prefix, old_serial, side)
                new_name = photo_utils.photo_filename(kind.photo_prefix, new_serial, side)
                if photo_utils.stage_photo(db.photos_dir, staging_dir, old_name, new_name):
                    setattr(record, attr, photo_utils.photo_url(new_name))
                    staged.append((record, attr, old_name, new_name))
                else:
                    logger.error(
                        f"Photo {old_name} of {kind.label.lower()} {old_serial} could not be renamed; "
                        f"reference dropped",
                        extra={"serial_number": new_serial}
                    )
                    setattr(record, attr, None)

        try:
            _save(db, kind, records)
        except StorageFault:
            try:
                photo_utils.clear_staging(staging_dir)
            except PhotoIOFault as e:
                logger.error(f"Staging folder left dirty after failed save: {e.message}")
            raise

        # Committed: now the photo folder follows the collection
        for side in photo_utils.SIDES:
            photo_utils.remove_photo(
                db.photos_dir, photo_utils.photo_filename(kind.photo_prefix, removed.serial_number, side)
            )

        kept = set()
        for record, attr, old_name, new_name in staged:
            if not photo_utils.publish_staged(staging_dir, db.photos_dir, new_name):
                logger.error(
                    f"Photo {new_name} could not be put in place; reference dropped, {old_name} kept",
                    extra={"serial_number": record.serial_number}
                )
                setattr(record, attr, None)
                kept.add(old_name)
        if kept:
            _save(db, kind, records)

        referenced = set()
        for record in records:
            for ref in (record.front_photo, record.back_photo):
                if ref:
                    referenced.add(os.path.basename(ref))
        for _, _, old_name, _ in staged:
            if old_name not in referenced and old_name not in kept:
                photo_utils.remove_photo(db.photos_dir, old_name)

    logger.info(
        f"{kind.label} {serial_number} deleted, {len(records)} remaining",
        extra={"serial_number": serial_number}
    )
    return len(records)


def list_entries(db: Database, kind: RecordKind) -> List[StoredRecord]:
    """Full collection in stored order"""
    return _load(db, kind)


def get_stats(db: Database) -> Stats:
    visitors = _load(db, VISITORS)
    keys = _load(db, KEYS)
    return Stats(
        total_visitors=len(visitors),
        active_keys=sum(1 for k in keys if KEYS.is_active(k))
    )


def filter_entries(
    kind: RecordKind,
    records: List[StoredRecord],
    query: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    active_only: bool = False,
) -> List[StoredRecord]:
    """Search text fields (case-insensitive) and filter on date range / still-open entries"""
    needle = query.strip().lower() if query else ""
    result = []
    for record in records:
        if active_only and not kind.is_active(record):
            continue

        if start_date or end_date:
            try:
                record_date = date.fromisoformat(record.date or "")
            except ValueError:
                continue
            if start_date and record_date < start_date:
                continue
            if end_date and record_date > end_date:
                continue

        if needle:
            text = " ".join(
                str(value) for key, value in dump_record(record).items()
                if key not in PHOTO_FIELDS
            ).lower()
            if needle not in text:
                continue

        result.append(record)
    return result


def build_report(kind: RecordKind, records: List[StoredRecord]) -> bytes:
    """Excel export of the given entries"""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = f"{kind.label} Log"

    ws.append([header for header, _ in kind.report_columns])
    for record in records:
        row = dump_record(record)
        ws.append([row.get(field, "") for _, field in kind.report_columns])

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
