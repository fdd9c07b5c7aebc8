"""
HTTP API for stakeholder tooling.

Routes:
    POST   /records                     create a record (secret value is encrypted)
    GET    /records                     list (search, verified, lifecycle, owner)
    GET    /records/{id}                read one record
    POST   /records/{id}/verify         request verification
    PATCH  /records/{id}/attributes     owner edit of public attributes
    GET    /stats                       dashboard counters
    GET    /health                      provider + store availability

Errors are returned as:

    { "error": { "code": ..., "message": ..., "retryable": ..., "details": {...} } }
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from supplyprov.core.runtime import SupplyProvRuntime
from supplyprov.protocol.enums import ErrorCode, LifecycleTag
from supplyprov.protocol.errors import SupplyProvError
from supplyprov.protocol.models import RecordFilter

logger = logging.getLogger(__name__)

STATUS_CODES: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.ENCRYPTION_ERROR: 502,
    ErrorCode.DECRYPTION_ERROR: 503,
    ErrorCode.VERIFICATION_TIMEOUT: 504,
    ErrorCode.PROOF_VERIFICATION_ERROR: 502,
    ErrorCode.INTEGRITY_ANOMALY: 500,
    ErrorCode.CONFLICT: 409,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.STORE_ERROR: 500,
    ErrorCode.CONTENTION: 503,
}


class CreateRecordRequest(BaseModel):
    owner_id: str
    public_attributes: Dict[str, Any] = Field(default_factory=dict)
    secret_value: Any = None
    record_id: Optional[str] = None


class VerifyRequest(BaseModel):
    timeout: Optional[float] = Field(default=None, gt=0)


class UpdateAttributesRequest(BaseModel):
    actor_id: str
    changes: Dict[str, Any] = Field(default_factory=dict)


def _error_response(error: SupplyProvError) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_CODES.get(error.code, 500),
        content={"error": error.to_dict()},
    )


def create_app(runtime: SupplyProvRuntime) -> FastAPI:
    app = FastAPI(title="SupplyProv", version="0.1.0")
    api = runtime.api

    @app.exception_handler(SupplyProvError)
    async def _handle_supplyprov_error(request: Request, exc: SupplyProvError):
        if exc.code in (ErrorCode.INTEGRITY_ANOMALY, ErrorCode.STORE_ERROR):
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _handle_request_validation(request: Request, exc: RequestValidationError):
        fields = {
            ".".join(str(p) for p in err.get("loc", ()) if p != "body"): err.get("msg", "invalid")
            for err in exc.errors()
        }
        return JSONResponse(
            status_code=422,
            content={
                "error": {
                    "code": ErrorCode.VALIDATION_ERROR.value,
                    "message": "Invalid request",
                    "retryable": False,
                    "details": {"fields": fields},
                }
            },
        )

    # Sync handlers: FastAPI runs them in its threadpool, so concurrent
    # verification requests race on the store exactly like in-process callers.

    @app.post("/records", status_code=201)
    def create_record(body: CreateRecordRequest):
        record_id = api.create(
            body.owner_id,
            body.public_attributes,
            body.secret_value,
            record_id=body.record_id,
        )
        return api.get(record_id).to_dict()

    @app.get("/records")
    def list_records(
        search: Optional[str] = None,
        verified: Optional[bool] = None,
        lifecycle: Optional[str] = None,
        owner: Optional[str] = None,
    ):
        tag = None
        if lifecycle:
            try:
                tag = LifecycleTag.parse(lifecycle)
            except ValueError:
                return JSONResponse(
                    status_code=422,
                    content={
                        "error": {
                            "code": ErrorCode.VALIDATION_ERROR.value,
                            "message": "Invalid lifecycle filter",
                            "retryable": False,
                            "details": {"fields": {"lifecycle": "unknown lifecycle tag"}},
                        }
                    },
                )
        record_filter = RecordFilter(search=search, verified=verified, lifecycle=tag, owner_id=owner)
        records = api.list(record_filter)
        return {"count": len(records), "records": [r.to_dict() for r in records]}

    @app.get("/records/{record_id}")
    def get_record(record_id: str):
        return api.get(record_id).to_dict()

    @app.post("/records/{record_id}/verify")
    def verify_record(record_id: str, body: Optional[VerifyRequest] = None):
        timeout = body.timeout if body is not None else None
        return api.verify(record_id, timeout=timeout).to_dict()

    @app.patch("/records/{record_id}/attributes")
    def update_attributes(record_id: str, body: UpdateAttributesRequest):
        return api.update_public_attributes(record_id, body.actor_id, body.changes).to_dict()

    @app.get("/stats")
    def stats():
        return api.stats().to_dict()

    @app.get("/health")
    def health():
        available = api.is_available()
        return JSONResponse(
            status_code=200 if available else 503,
            content={"available": available, "context": api.context},
        )

    return app


def serve(runtime: SupplyProvRuntime, host: Optional[str] = None, port: Optional[int] = None) -> None:
    import uvicorn

    gateway = runtime.settings.gateway
    host = host or gateway.host
    port = port or gateway.port
    logger.info("Starting HTTP API on %s:%d", host, port)
    uvicorn.run(create_app(runtime), host=host, port=port, log_level="info")
