"""
Pydantic schemas for the extraction and sync API endpoints.
"""

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import Optional, Dict, Any, List

from schoolsync.core.source_config import PageKind, SourceKind


class ExtractRequest(BaseModel):
    """A captured page to classify and parse."""
    html: str = Field(..., min_length=1)
    url: str = ""


class ExtractResponse(BaseModel):
    source_kind: SourceKind
    page_kind: PageKind
    count: int
    students: List[Dict[str, Any]] = Field(default_factory=list)
    grades: List[Dict[str, Any]] = Field(default_factory=list)
    attendance: List[Dict[str, Any]] = Field(default_factory=list)
    csv_link: Optional[str] = None


class SyncRequest(BaseModel):
    """Sync either a captured page or raw CSV export text."""
    html: Optional[str] = None
    url: str = ""
    csv_text: Optional[str] = None
    source_kind: SourceKind = SourceKind.POWERSCHOOL
    passphrase: Optional[str] = None
    deep: bool = False

    @model_validator(mode="after")
    def validate_source(self):
        if not self.html and not self.csv_text:
            raise ValueError("Either html or csv_text is required")
        return self


class SyncOutcomeSchema(BaseModel):
    success: int
    failed: int
    errors: List[str] = Field(default_factory=list)
    status: str


class SyncResponse(BaseModel):
    success: bool
    count: int = 0
    total: int = 0
    message: Optional[str] = None
    error: Optional[str] = None
    source_kind: Optional[SourceKind] = None
    page_kind: Optional[PageKind] = None
    outcome: Optional[SyncOutcomeSchema] = None
    grades: List[Dict[str, Any]] = Field(default_factory=list)
    attendance: List[Dict[str, Any]] = Field(default_factory=list)


class SyncStatusResponse(BaseModel):
    """Last sync, schedule preference and the rolling sync log."""
    last_sync: Optional[Dict[str, Any]] = None
    schedule: Dict[str, Any]
    configured: bool
    sync_log: List[Dict[str, Any]] = Field(default_factory=list)
    recent_errors: List[Dict[str, Any]] = Field(default_factory=list)


class CredentialsRequest(BaseModel):
    endpoint: str = Field(..., min_length=1, max_length=500)
    token: str = Field(..., min_length=1)
    passphrase: str = Field(..., min_length=1)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError("Endpoint must start with http:// or https://")
        return v.rstrip("/")


class ConnectionTestRequest(BaseModel):
    passphrase: Optional[str] = None


class ScheduleRequest(BaseModel):
    enabled: bool
    interval_hours: int = Field(default=24, ge=1, le=168)


class HealthResponse(BaseModel):
    status: str
    app: str
    capsule_connected: Optional[bool] = None

    model_config = ConfigDict(from_attributes=True)
