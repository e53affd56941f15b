"""
FieldCrypt Service API implementation.

This module provides a REST API that runs query trees through the
FieldCrypt pipeline, so clients send and receive plaintext while the
storage engine only holds ciphertext and digests.
"""

import logging
from functools import lru_cache
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from ..config import FieldCryptConfig
from ..db.engine import ACTIONS
from ..errors import DecryptionError
from ..field_crypt_service import FieldCryptService


logger = logging.getLogger(__name__)


class QueryPayload(BaseModel):
    """Payload for running one operation."""

    model: str
    action: str
    args: Dict[str, Any] = Field(default_factory=dict)


class QueryResult(BaseModel):
    """Result of an operation, with encrypted fields decrypted."""

    result: Any = None


app = FastAPI(
    title="FieldCrypt Service",
    description="Transparent field-level encryption and searchable hashing for query trees",
    version="0.1.0",
)


@lru_cache(maxsize=1)
def get_service() -> FieldCryptService:
    """Get the process-wide FieldCrypt service built from configuration."""
    return FieldCryptService.from_config()


def _error_detail(message: str, e: Exception) -> str:
    # In production, hide error details
    return str(e) if FieldCryptConfig.is_dev_mode() else message


@app.post("/query", response_model=QueryResult)
def run_query(payload: QueryPayload, service: FieldCryptService = Depends(get_service)) -> QueryResult:
    """
    Run an operation through the FieldCrypt pipeline.

    Args:
        payload: Model, action and plaintext arguments
        service: FieldCrypt service

    Returns:
        The decoded result
    """
    if payload.action not in ACTIONS:
        raise HTTPException(status_code=400, detail=f"Unsupported action '{payload.action}'")

    try:
        result = service.execute(payload.model, payload.action, payload.args)
    except DecryptionError as e:
        logger.error("Failed to decrypt result of %s.%s: %s", payload.model, payload.action, e)
        raise HTTPException(status_code=422, detail=_error_detail("Failed to decrypt result", e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=_error_detail("Record not found", e))
    except ValueError as e:
        logger.error("Failed to run %s.%s: %s", payload.model, payload.action, e)
        raise HTTPException(status_code=400, detail=_error_detail("Invalid query", e))

    return QueryResult(result=result)


@app.get("/health")
def health_check(service: FieldCryptService = Depends(get_service)) -> Dict[str, Optional[str]]:
    """
    Check the health of the service.

    Returns:
        Health status
    """
    return {
        "status": "ok",
        "mode": FieldCryptConfig.get("mode"),
        "algorithm": service.cipher.algorithm.value,
    }


def start_api(host: str = "0.0.0.0", port: int = 8000, reload: bool = False) -> None:
    """
    Start the API server.

    Args:
        host: Host to bind to
        port: Port to bind to
        reload: Whether to enable auto-reload
    """
    uvicorn.run(
        "indaleko_fieldcrypt.service.api:app",
        host=host,
        port=port,
        reload=reload,
    )
