from fastapi import Body, Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Any, Dict, List
import logging
import os

from hms_backend.database import SessionLocal, create_tables, test_connection
from hms_backend.exceptions import (
    CascadeFailure, ConstraintViolation, DanglingReference, DuplicateKey, HospitalDataError,
    MinimumSpecialtyViolation, NotFound, TooManySpecialties,
)
from hms_backend.schemas import AdmissionCreate, DischargeRequest, ErrorResponse, StaffCreate
from hms_backend.services import admissions, sample_data, staffing
from hms_backend.services.entity_store import EntityStore, parse_key

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# NOTE: Initialize FastAPI with the integrity-enforcing hospital data layer
app = FastAPI(
    title="Central Hospital Data API",
    description="Integrity-enforcing data layer for departments, staff, patients, admissions and billing",
    version="1.0.0",
    responses={code: {"model": ErrorResponse} for code in (404, 409, 422)},
)

_store = None


def get_store() -> EntityStore:
    """Dependency returning the process-wide entity store."""
    global _store
    if _store is None:
        _store = EntityStore(SessionLocal)
    return _store


# Initialize database on startup
@app.on_event("startup")
async def startup_event():
    """Initialize database tables and verify connection on startup."""
    if not test_connection():
        raise HTTPException(status_code=500, detail="Database connection failed")
    create_tables()


app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:4200,http://127.0.0.1:4200").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STATUS_CODES = {
    NotFound: 404,
    DuplicateKey: 409,
    DanglingReference: 409,
    TooManySpecialties: 409,
    MinimumSpecialtyViolation: 409,
    CascadeFailure: 409,
    ConstraintViolation: 422,
}


@app.exception_handler(HospitalDataError)
async def hospital_data_error_handler(request: Request, exc: HospitalDataError) -> JSONResponse:
    status_code = next((code for cls, code in STATUS_CODES.items() if isinstance(exc, cls)), 400)
    context = {}
    if isinstance(exc, ConstraintViolation):
        context = {"field": exc.field, "rule": exc.rule}
    elif isinstance(exc, DanglingReference):
        context = {"field": exc.field, "value": str(exc.value)}
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=type(exc).__name__, detail=str(exc), context=context).model_dump(),
    )


@app.post("/entities/{entity_type}", status_code=201)
async def create_entity(
    entity_type: str,
    values: Dict[str, Any] = Body(...),
    store: EntityStore = Depends(get_store),
) -> Dict[str, Any]:
    """Create one row; every constraint and reactive rule applies."""
    return store.create(entity_type, values)


@app.get("/entities/{entity_type}")
async def list_entities(request: Request, entity_type: str, store: EntityStore = Depends(get_store)) -> List[Dict[str, Any]]:
    """List rows, optionally filtered by exact column values given as query parameters."""
    filters = dict(request.query_params)
    return store.query(entity_type, **filters)


@app.get("/entities/{entity_type}/{key:path}")
async def get_entity(entity_type: str, key: str, store: EntityStore = Depends(get_store)) -> Dict[str, Any]:
    return store.get(entity_type, parse_key(entity_type, tuple(key.split("/"))))


@app.patch("/entities/{entity_type}/{key:path}")
async def update_entity(
    entity_type: str,
    key: str,
    patch: Dict[str, Any] = Body(...),
    store: EntityStore = Depends(get_store),
) -> Dict[str, Any]:
    return store.update(entity_type, parse_key(entity_type, tuple(key.split("/"))), patch)


@app.delete("/entities/{entity_type}/{key:path}")
async def delete_entity(entity_type: str, key: str, store: EntityStore = Depends(get_store)) -> Dict[str, Any]:
    """Delete a row with its full cascade closure."""
    deleted = store.delete(entity_type, parse_key(entity_type, tuple(key.split("/"))))
    return {"deleted": deleted}


@app.post("/upload/{entity_type}", status_code=201)
async def upload_csv(
    entity_type: str,
    file: UploadFile = File(...),
    store: EntityStore = Depends(get_store),
) -> Dict[str, Any]:
    """
    Import one CSV of entity_type rows through the entity store.
    NOTE: All rows commit together or none do
    """
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Please upload a .csv file")
    content = await file.read()
    try:
        imported = sample_data.load_csv(store, entity_type, content)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"entity_type": entity_type, "imported": imported, "status": "success"}


@app.post("/staff", status_code=201)
async def create_staff(payload: StaffCreate, store: EntityStore = Depends(get_store)) -> Dict[str, Any]:
    """Register a staff member with the detail record for their role."""
    return staffing.register_staff(store, payload)


@app.post("/admissions", status_code=201)
async def create_admission(payload: AdmissionCreate, store: EntityStore = Depends(get_store)) -> Dict[str, Any]:
    """Admit a patient with the Planned or Emergency detail record."""
    return admissions.admit_patient(store, payload)


@app.post("/admissions/{admission_id}/discharge")
async def discharge_admission(
    admission_id: int,
    payload: DischargeRequest,
    store: EntityStore = Depends(get_store),
) -> Dict[str, Any]:
    return admissions.discharge(store, admission_id, payload.discharge_date)


@app.get("/health/")
async def health_check() -> Dict[str, str]:
    """Health check endpoint for monitoring database connectivity."""
    db_status = "healthy" if test_connection() else "unhealthy"
    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "database": db_status,
        "service": "central_hospital_data"
    }


@app.get("/")
async def root() -> Dict[str, str]:
    """Root endpoint with API information."""
    return {
        "message": "Central Hospital Data API",
        "version": "1.0.0",
        "endpoints": "/docs for API documentation"
    }
