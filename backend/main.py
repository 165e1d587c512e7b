from datetime import date
from io import BytesIO
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles

import crud
from database import Database, db as default_db, get_db, init_db
from exceptions import FrontDeskError, NotFoundError, ValidationError
from logging_config import logger
from models import (
    KEYS, RECORD_KINDS, VISITORS, KeyCreate, ReturnRequest, TimeoutRequest,
    VisitorCreate, dump_record,
)

app = FastAPI(title="Front Desk Log")

# data/, data/photos, visitors.json, keys.json
init_db()

# Photos are served back at /photos/<serial>_front.jpg
app.mount("/photos", StaticFiles(directory=default_db.photos_dir), name="photos")


@app.exception_handler(FrontDeskError)
async def frontdesk_error_handler(request: Request, exc: FrontDeskError):
    if isinstance(exc, (ValidationError, NotFoundError)):
        logger.info(f"{request.method} {request.url.path}: {exc.message}")
    else:
        logger.error(f"{request.method} {request.url.path}: {exc.message}", exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


def _parse_date(value: Optional[str], field: str) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date for {field}, expected YYYY-MM-DD", [field])


def _kind(name: str):
    kind = RECORD_KINDS.get(name)
    if kind is None:
        raise ValidationError(f"Unknown record kind: {name}", ["kind"])
    return kind


@app.get("/health")
def health():
    return {"status": "ok"}


# --- VISITORS ---

@app.get("/api/visitors")
def read_visitors(db: Database = Depends(get_db)):
    return [dump_record(r) for r in crud.list_entries(db, VISITORS)]


@app.post("/api/visitors", status_code=201)
def create_visitor(visitor: VisitorCreate, db: Database = Depends(get_db)):
    """Register a visitor. Serial number and date are always set here."""
    record = crud.create_entry(db, VISITORS, visitor.model_dump(by_alias=True))
    return {"success": True, "message": "Visitor created successfully", "data": dump_record(record)}


@app.post("/api/visitors/{serial_number}/timeout")
def visitor_timeout(serial_number: str, body: TimeoutRequest, db: Database = Depends(get_db)):
    record = crud.close_entry(db, VISITORS, serial_number, body.time_out)
    return dump_record(record)


@app.delete("/api/visitors/{serial_number}")
@app.delete("/api/visitors/{serial_number}/adjust")
def delete_visitor(serial_number: str, db: Database = Depends(get_db)):
    """Delete a visitor; later visitors move up one serial number"""
    remaining = crud.delete_entry(db, VISITORS, serial_number)
    return {"message": "Visitor deleted and serial numbers adjusted", "remainingCount": remaining}


# --- KEYS ---

@app.get("/api/keys")
def read_keys(db: Database = Depends(get_db)):
    return [dump_record(r) for r in crud.list_entries(db, KEYS)]


@app.post("/api/keys", status_code=201)
def create_key(key: KeyCreate, db: Database = Depends(get_db)):
    record = crud.create_entry(db, KEYS, key.model_dump(by_alias=True))
    return {"success": True, "message": "Key entry created successfully", "data": dump_record(record)}


@app.post("/api/keys/{serial_number}/return")
def key_return(serial_number: str, body: ReturnRequest, db: Database = Depends(get_db)):
    record = crud.close_entry(db, KEYS, serial_number, body.time_returned)
    return dump_record(record)


@app.delete("/api/keys/{serial_number}")
def delete_key(serial_number: str, db: Database = Depends(get_db)):
    remaining = crud.delete_entry(db, KEYS, serial_number)
    return {"message": "Key record deleted and serial numbers adjusted", "remainingCount": remaining}


# --- DASHBOARD ---

@app.get("/api/stats")
def read_stats(db: Database = Depends(get_db)):
    return crud.get_stats(db).model_dump(by_alias=True)


@app.get("/api/search")
def search_entries(
    kind: str = "visitors",
    query: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    active: bool = False,
    db: Database = Depends(get_db)
):
    """Search by any text field, date range, and/or only entries still open"""
    record_kind = _kind(kind)
    records = crud.filter_entries(
        record_kind,
        crud.list_entries(db, record_kind),
        query=query,
        start_date=_parse_date(start_date, "start_date"),
        end_date=_parse_date(end_date, "end_date"),
        active_only=active,
    )
    return [dump_record(r) for r in records]


@app.get("/api/report")
def export_report(
    kind: str = "visitors",
    query: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    active: bool = False,
    db: Database = Depends(get_db)
):
    """Excel export of the (filtered) visitor or key log"""
    record_kind = _kind(kind)
    dt_start = _parse_date(start_date, "start_date")
    dt_end = _parse_date(end_date, "end_date")
    records = crud.filter_entries(
        record_kind,
        crud.list_entries(db, record_kind),
        query=query,
        start_date=dt_start,
        end_date=dt_end,
        active_only=active,
    )
    content = crud.build_report(record_kind, records)
    logger.info(f"Exported {len(records)} {record_kind.name} to Excel")

    stamp = (dt_start or db.clock().date()).strftime('%Y%m%d')
    filename = f"{record_kind.name}_{stamp}.xlsx"
    return StreamingResponse(
        BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )
