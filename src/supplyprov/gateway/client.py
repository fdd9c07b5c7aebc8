"""
HTTP client for the SupplyProv API.

Used by remote stakeholder tooling. Error bodies are mapped back onto the
exception taxonomy by their `code`, so callers handle remote and in-process
failures the same way.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Type

import requests

from supplyprov.protocol.enums import ErrorCode, LifecycleTag, VerificationOutcomeKind
from supplyprov.protocol.errors import (
    ConflictError,
    ContentionError,
    DecryptionError,
    EncryptionError,
    IntegrityAnomalyError,
    NotOwnerError,
    ProofVerificationError,
    RecordNotFoundError,
    StoreError,
    SupplyProvError,
    ValidationError,
    VerificationTimeoutError,
)
from supplyprov.protocol.models import Record, RecordStats, VerificationOutcome

_ERRORS: Dict[str, Type[SupplyProvError]] = {
    ErrorCode.ENCRYPTION_ERROR.value: EncryptionError,
    ErrorCode.DECRYPTION_ERROR.value: DecryptionError,
    ErrorCode.VERIFICATION_TIMEOUT.value: VerificationTimeoutError,
    ErrorCode.PROOF_VERIFICATION_ERROR.value: ProofVerificationError,
    ErrorCode.INTEGRITY_ANOMALY.value: IntegrityAnomalyError,
    ErrorCode.CONFLICT.value: ConflictError,
    ErrorCode.NOT_FOUND.value: RecordNotFoundError,
    ErrorCode.FORBIDDEN.value: NotOwnerError,
    ErrorCode.STORE_ERROR.value: StoreError,
    ErrorCode.CONTENTION.value: ContentionError,
}


def decode_error(status_code: int, body: Any) -> SupplyProvError:
    """Rebuild the exception described by an error body."""
    err = body.get("error") if isinstance(body, dict) else None
    if not isinstance(err, dict):
        return StoreError(f"Unexpected HTTP {status_code} response", details={"body": body})

    code = err.get("code", ErrorCode.INTERNAL_ERROR.value)
    message = err.get("message", "")
    details = err.get("details") or {}

    if code == ErrorCode.VALIDATION_ERROR.value:
        return ValidationError(message, details.get("fields") or {})

    cls = _ERRORS.get(code)
    if cls is None:
        try:
            error_code = ErrorCode(code)
        except ValueError:
            error_code = ErrorCode.INTERNAL_ERROR
        return SupplyProvError(message, error_code, retryable=err.get("retryable"), details=details)
    return cls(message, retryable=err.get("retryable"), details=details)


class RecordServiceClient:
    def __init__(self, base_url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def _call(self, method: str, path: str, **kwargs) -> Any:
        response = self._session.request(
            method, self._base_url + path, timeout=self._timeout, **kwargs
        )
        try:
            body = response.json()
        except ValueError:
            body = None
        if response.status_code >= 400:
            raise decode_error(response.status_code, body)
        return body

    def create(
        self,
        owner_id: str,
        public_attributes: Mapping[str, Any],
        secret_value: int,
        *,
        record_id: Optional[str] = None,
    ) -> str:
        payload = {
            "owner_id": owner_id,
            "public_attributes": dict(public_attributes),
            "secret_value": secret_value,
            "record_id": record_id,
        }
        return self._call("POST", "/records", json=payload)["record_id"]

    def get(self, record_id: str) -> Record:
        return Record.from_dict(self._call("GET", f"/records/{record_id}"))

    def list(
        self,
        *,
        search: Optional[str] = None,
        verified: Optional[bool] = None,
        lifecycle: Optional[LifecycleTag] = None,
        owner_id: Optional[str] = None,
    ) -> list[Record]:
        params: Dict[str, Any] = {}
        if search:
            params["search"] = search
        if verified is not None:
            params["verified"] = "true" if verified else "false"
        if lifecycle is not None:
            params["lifecycle"] = lifecycle.value
        if owner_id:
            params["owner"] = owner_id
        body = self._call("GET", "/records", params=params)
        return [Record.from_dict(r) for r in body["records"]]

    def verify(self, record_id: str, *, timeout: Optional[float] = None) -> VerificationOutcome:
        payload = {"timeout": timeout} if timeout is not None else None
        body = self._call("POST", f"/records/{record_id}/verify", json=payload)
        return VerificationOutcome(
            record_id=body["record_id"],
            clear_value=body["clear_value"],
            kind=VerificationOutcomeKind(body["outcome"]),
            version=body["version"],
        )

    def request_verification(self, record_id: str, *, timeout: Optional[float] = None) -> int:
        return self.verify(record_id, timeout=timeout).clear_value

    def update_public_attributes(
        self, record_id: str, actor_id: str, changes: Mapping[str, Any]
    ) -> Record:
        body = self._call(
            "PATCH",
            f"/records/{record_id}/attributes",
            json={"actor_id": actor_id, "changes": dict(changes)},
        )
        return Record.from_dict(body)

    def stats(self) -> RecordStats:
        return RecordStats(**self._call("GET", "/stats"))

    def is_available(self) -> bool:
        try:
            body = self._call("GET", "/health")
        except (SupplyProvError, requests.RequestException):
            return False
        return bool(body.get("available"))
