"""
FastAPI application for the Invoice Reconciliation Service.

Provides REST API endpoints for:
- Health check
- Batch reconciliation of uploaded supplier documents
- Run lookup and fee-override edits with recomputation
"""

import json
from typing import List

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from .config import API_HOST, API_PORT, MAX_UPLOAD_SIZE_MB, logger
from .reconciler import reconcile as reconcile_batch
from .reconciler import update_fee_overrides
from .schemas import (
    CAMEL_CONFIG,
    FeeOverrides,
    ImportResult,
    ReconciliationRun,
    SourceDocument,
    SupplierConfig,
)
from .selector import UnsupportedFormatError
from .store import InMemoryStore, LineItemStore, StoreError


# ============================================================================
# FastAPI App Configuration
# ============================================================================

app = FastAPI(
    title="Invoice Reconciliation Service API",
    description="""
    Supplier Invoice Reconciliation Service API.

    Imports auction purchase documents (CSV listings, PDF statements and
    invoices), recomputes the tax-included total with each supplier's rounding
    rules and flags any difference from the amount the supplier billed.

    ## Features

    - **Reconcile**: Upload one auction's documents and get the amount verdict
    - **Runs**: Inspect a persisted reconciliation run
    - **Fee edits**: Change a run's participation/shipping fees and recompute
    """,
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_store: LineItemStore = InMemoryStore()


def get_store() -> LineItemStore:
    """Store shared by all requests of this process."""
    return _store


# ============================================================================
# Request/Response Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class FeeEditRequest(BaseModel):
    """Request body for the fee-override edit endpoint."""
    overrides: FeeOverrides
    supplier_config: SupplierConfig = Field(default_factory=SupplierConfig)

    model_config = {
        **CAMEL_CONFIG,
        "json_schema_extra": {
            "examples": [{
                "overrides": {"participationFee": 3000, "participationFeeTaxType": "excluded"},
                "supplierConfig": {
                    "productPriceTaxType": "excluded",
                    "commissionTaxType": "excluded",
                    "taxRate": 0.1,
                    "roundingConfig": {"calculationType": "total", "roundingMode": "floor"}
                }
            }]
        }
    }


def _parse_json_form(value: str, field: str) -> dict:
    try:
        data = json.loads(value or "{}")
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=422, detail=f"{field}: invalid JSON ({e})")
    if not isinstance(data, dict):
        raise HTTPException(status_code=422, detail=f"{field}: expected a JSON object")
    return data


# ============================================================================
# API Endpoints
# ============================================================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns the service status and version information.
    """
    from . import __version__
    return HealthResponse(status="ok", version=__version__)


@app.post(
    "/reconcile",
    response_model=ImportResult,
    tags=["Reconciliation"],
    summary="Reconcile one batch of supplier documents",
)
async def reconcile(
    files: List[UploadFile] = File(..., description="CSV/PDF documents of one auction"),
    supplier_name: str = Form(..., description="Supplier name; aliases are recognized"),
    batch_key: str = Form(..., description="Auction/batch the line items belong to"),
    supplier_config: str = Form("{}", description="SupplierConfig as JSON"),
    extracted_texts: str = Form("{}", description="JSON map of file name to pre-extracted text"),
    store: LineItemStore = Depends(get_store),
) -> ImportResult:
    """
    Import uploaded documents and compare claimed vs. computed totals.

    **Processing Steps:**
    1. Extract line items from CSV listings and supplier listing PDFs
    2. Find the claimed total (listing summary, else invoice PDFs)
    3. Persist the line items under the batch
    4. Recompute the batch total with the supplier's tax and rounding rules
       and persist the verdict

    A missing claimed total is reported as a mismatch.
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files uploaded")

    try:
        config = SupplierConfig.model_validate(_parse_json_form(supplier_config, "supplier_config"))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"supplier_config: {e}")

    texts = {
        str(key): str(value)
        for key, value in _parse_json_form(extracted_texts, "extracted_texts").items()
    }

    max_size = MAX_UPLOAD_SIZE_MB * 1024 * 1024
    documents: List[SourceDocument] = []
    for file in files:
        content = await file.read()
        if len(content) > max_size:
            raise HTTPException(
                status_code=413,
                detail=f"{file.filename}: File too large (max {MAX_UPLOAD_SIZE_MB}MB)",
            )
        documents.append(SourceDocument(
            file_id=file.filename,
            name=file.filename,
            media_type=file.content_type,
            content=content,
        ))

    logger.info(f"Received {len(documents)} documents for {supplier_name} batch '{batch_key}'")

    try:
        return reconcile_batch(
            documents,
            supplier_name=supplier_name,
            supplier_config=config,
            store=store,
            batch_key=batch_key,
            extracted_texts=texts,
        )
    except UnsupportedFormatError as e:
        raise HTTPException(status_code=415, detail=str(e))


@app.get("/runs/{run_id}", response_model=ReconciliationRun, tags=["Reconciliation"])
async def get_run(run_id: str, store: LineItemStore = Depends(get_store)) -> ReconciliationRun:
    """Return a persisted reconciliation run."""
    try:
        return store.get_run(run_id)
    except StoreError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.patch(
    "/runs/{run_id}/fees",
    response_model=ImportResult,
    tags=["Reconciliation"],
    summary="Edit fee overrides and recompute the verdict",
)
async def edit_fees(
    run_id: str,
    request: FeeEditRequest,
    store: LineItemStore = Depends(get_store),
) -> ImportResult:
    """
    Apply participation/shipping fee overrides to a run and recompute.

    Only fields present in ``overrides`` change; an explicit null removes the
    override so the supplier's configured fee applies again. The system total
    is recomputed over the line items stored for the run's batch.
    """
    try:
        return update_fee_overrides(store, run_id, request.overrides, request.supplier_config)
    except StoreError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ============================================================================
# Error Handlers
# ============================================================================

@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# ============================================================================
# Startup/Shutdown Events
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Log startup information."""
    logger.info(f"Invoice Reconciliation Service API starting on {API_HOST}:{API_PORT}")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Invoice Reconciliation Service API shutting down")


# ============================================================================
# Main Entry Point
# ============================================================================

def run_server():
    """Run the API server using uvicorn."""
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)


if __name__ == "__main__":
    run_server()
