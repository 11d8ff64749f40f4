from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

DocumentType = Literal["drivers_license", "passport", "mrz_id", "manual"]
IdentitySource = Literal["pdf417", "mrz", "manual"]
VerificationStatus = Literal["pending", "approved", "rejected"]
LogLevel = Literal["info", "success", "warn", "error"]


class CanonicalIdentity(BaseModel):
    first_name: str = ""
    last_name: str = ""
    middle_name: str = ""
    date_of_birth: Optional[str] = None
    date_of_birth_formatted: Optional[str] = None
    document_type: DocumentType = "manual"
    document_number: str = ""
    license_number: str = ""
    issuing_country: str = ""
    nationality: str = ""
    document_expiry: Optional[str] = None
    sex: Literal["M", "F", "X", ""] = ""
    source: IdentitySource = "manual"


class SessionLogEntry(BaseModel):
    timestamp: datetime
    level: LogLevel = "info"
    message: str


class VerificationResult(BaseModel):
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    age: Optional[int] = None
    reason: Optional[str] = None


class VerificationSession(BaseModel):
    transaction_id: str
    status: VerificationStatus = "pending"
    result: Optional[VerificationResult] = None
    register_id: Optional[str] = None
    remote_scanner_active: bool = False
    last_heartbeat: Optional[datetime] = None
    logs: List[SessionLogEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    expires_at: datetime


class SessionStats(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    expired: int = 0
    active_remote_scanners: int = 0


class CreateSessionRequest(BaseModel):
    register_id: Optional[str] = None


class SessionLogRequest(BaseModel):
    message: str
    level: LogLevel = "info"


class ScanResultRequest(BaseModel):
    approved: bool
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    age: Optional[int] = None
    reason: Optional[str] = None
    register_id: Optional[str] = None
    identity: Optional[CanonicalIdentity] = None


class CompleteRequest(BaseModel):
    identity: Optional[CanonicalIdentity] = None
    # Existing POS customer note; the age line is appended to it.
    note: Optional[str] = None


class BarcodeScanRequest(BaseModel):
    # Decoded field tree as produced by the barcode SDK.
    parsed_info: Any = None


class MrzScanRequest(BaseModel):
    lines: List[str] = Field(default_factory=list)


class ScanResponse(BaseModel):
    identity: CanonicalIdentity
    age: Optional[int] = None


class RuleIssue(BaseModel):
    field: str
    rule: str
    message: str
    current_value: Optional[str] = None


def session_payload(session: VerificationSession, *, log_tail: int = 10) -> Dict[str, object]:
    payload = session.model_dump(mode="json")
    payload["logs"] = payload["logs"][-log_tail:] if log_tail else payload["logs"]
    return payload
