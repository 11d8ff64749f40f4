from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

import anyio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import CONFIG
from .field_registry import field_registry_payload
from .pipeline.age_note import append_age_note, build_age_note_line
from .pipeline.barcode import parse_license_data
from .pipeline.canonical import identity_age
from .pipeline.mrz import parse_mrz
from .pipeline.rules import is_valid_transaction_id, validate_scan_result
from .schemas import (
    BarcodeScanRequest,
    CompleteRequest,
    CreateSessionRequest,
    MrzScanRequest,
    ScanResponse,
    ScanResultRequest,
    SessionLogRequest,
    session_payload,
)
from .sessions import ComplianceRecorder, LookupStatus, PosFinalizer, SessionStore, run_sweeper

logging.basicConfig(level=CONFIG.log_level, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
LOGGER = logging.getLogger("verifier")

STORE = SessionStore()
LOG_TAIL = 10


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with anyio.create_task_group() as tg:
        if CONFIG.sessions.sweeper_enabled:
            tg.start_soon(run_sweeper, STORE)
        yield
        tg.cancel_scope.cancel()


app = FastAPI(title="Checkout ID Verifier", lifespan=lifespan)
# Collaborators are wired in by the deployment; both are optional.
app.state.pos_finalizer = None
app.state.compliance_recorder = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _not_found(transaction_id: str, status: LookupStatus = LookupStatus.NOT_FOUND) -> JSONResponse:
    return JSONResponse(
        {"error": "not_found", "transaction_id": transaction_id, "reason": status.value},
        status_code=404,
    )


def _invalid_transaction_id(transaction_id: str) -> JSONResponse:
    return JSONResponse({"error": "Invalid transaction id", "transaction_id": transaction_id}, status_code=400)


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/field_registry")
async def field_registry() -> Dict[str, object]:
    return field_registry_payload()


@app.post("/scan/barcode")
async def scan_barcode(payload: BarcodeScanRequest):
    identity = parse_license_data(payload.parsed_info)
    return ScanResponse(identity=identity, age=identity_age(identity)).model_dump()


@app.post("/scan/mrz")
async def scan_mrz(payload: MrzScanRequest):
    identity = parse_mrz(payload.lines)
    if identity is None:
        return JSONResponse(
            {"error": "mrz_not_recognized", "message": "No MRZ layout recognised. Enter details manually."},
            status_code=422,
        )
    return ScanResponse(identity=identity, age=identity_age(identity)).model_dump()


@app.get("/sale-verifications/stats")
async def verification_stats() -> Dict[str, int]:
    return STORE.stats().model_dump()


@app.post("/sale-verifications/{transaction_id}")
async def create_verification(transaction_id: str, payload: Optional[CreateSessionRequest] = None):
    if not is_valid_transaction_id(transaction_id):
        return _invalid_transaction_id(transaction_id)
    register_id = payload.register_id if payload else None
    session = STORE.create(transaction_id, register_id=register_id)
    return JSONResponse(session_payload(session, log_tail=LOG_TAIL), status_code=201)


@app.get("/sale-verifications/{transaction_id}")
async def poll_verification(transaction_id: str):
    session, status = STORE.lookup(transaction_id)
    if session is None:
        return _not_found(transaction_id, status)
    return session_payload(session, log_tail=LOG_TAIL)


@app.post("/sale-verifications/{transaction_id}/heartbeat")
async def verification_heartbeat(transaction_id: str):
    session = STORE.heartbeat(transaction_id)
    if session is None:
        return _not_found(transaction_id)
    return {
        "transaction_id": transaction_id,
        "status": session.status,
        "remote_scanner_active": session.remote_scanner_active,
    }


@app.post("/sale-verifications/{transaction_id}/logs")
async def verification_log(transaction_id: str, payload: SessionLogRequest):
    if not STORE.add_log(transaction_id, payload.message, payload.level):
        return _not_found(transaction_id)
    return {"ok": True}


@app.post("/sale-verifications/{transaction_id}/result")
async def verification_result(transaction_id: str, payload: ScanResultRequest):
    issues = validate_scan_result(payload)
    if issues:
        return JSONResponse(
            {"error": "VALIDATION_ERROR", "issues": [issue.model_dump() for issue in issues]},
            status_code=400,
        )
    age = payload.age
    if age is None and payload.identity is not None:
        age = identity_age(payload.identity)
    session = STORE.update(
        transaction_id,
        approved=payload.approved,
        customer_id=payload.customer_id,
        customer_name=payload.customer_name,
        age=age,
        reason=payload.reason,
        register_id=payload.register_id,
    )
    if session is None:
        return _not_found(transaction_id)
    return session_payload(session, log_tail=LOG_TAIL)


@app.post("/sale-verifications/{transaction_id}/complete")
async def complete_verification(transaction_id: str, payload: Optional[CompleteRequest] = None):
    identity = payload.identity if payload else None
    note = payload.note if payload else None
    session, status = STORE.lookup(transaction_id)
    if session is None:
        return _not_found(transaction_id, status)
    if session.status == "pending":
        return JSONResponse(
            {"error": "Verification still pending", "transaction_id": transaction_id},
            status_code=409,
        )

    finalizer: Optional[PosFinalizer] = app.state.pos_finalizer
    if finalizer is not None:
        try:
            finalizer.finalize(transaction_id, identity, session)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("pos_finalize_failed transaction_id=%s error=%s", transaction_id, exc)
            return JSONResponse(
                {"error": "POS finalization failed", "transaction_id": transaction_id},
                status_code=502,
            )

    # The POS side is final from here on; a retry must not reach the finalizer again.
    STORE.complete(transaction_id)
    age = session.result.age if session.result else None
    body = {
        "transaction_id": transaction_id,
        "status": session.status,
        "completed": True,
        "age_note": build_age_note_line(age),
        "note": append_age_note(note, age),
    }

    recorder: Optional[ComplianceRecorder] = app.state.compliance_recorder
    if recorder is not None:
        try:
            recorder.record(transaction_id, identity, session)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("compliance_record_failed transaction_id=%s error=%s", transaction_id, exc)
            return JSONResponse(
                {"error": "Compliance record failed", "finalized": True, **body},
                status_code=500,
            )
    return body
