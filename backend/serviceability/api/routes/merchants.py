from pathlib import Path
from typing import Annotated, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse

from serviceability.core.config import settings
from serviceability.core.deps import get_sync_engine
from serviceability.core.errors import ErrorKind
from serviceability.core.rate_limit import limiter
from serviceability.schemas.merchant import ApiResponse, MerchantData, MerchantUpdate, Pincodes
from serviceability.services.csv_import import import_merchants
from serviceability.services.notifications import RegistrationMailer, get_mailer
from serviceability.services.sync_engine import MerchantSyncEngine, SyncResult

router = APIRouter(tags=["merchants"])

ALLOWED_EXTENSIONS = {".csv"}

_STATUS_BY_ERROR = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.NO_OP: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_INPUT: 422,
    ErrorKind.STORAGE_WRITE_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.INDEX_WRITE_FAILED: status.HTTP_502_BAD_GATEWAY,
}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse(status="error", data={"message": message}).model_dump(),
    )


def _respond(result: SyncResult, success_status: int = status.HTTP_200_OK) -> JSONResponse:
    """Render a sync result as the ``{"status", "data"}`` envelope."""

    data = dict(result.data)
    if result.ok:
        data.setdefault("message", result.message)
        body = ApiResponse(status="success", data=data)
        return JSONResponse(status_code=success_status, content=body.model_dump())

    data["message"] = result.message
    data["error"] = result.error.value if result.error else None
    if result.state is not None:
        data["state"] = result.state.value
    status_code = _STATUS_BY_ERROR.get(result.error, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(status_code=status_code, content=ApiResponse(status="error", data=data).model_dump())


@router.post("/merchant", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def add_merchant(
    payload: MerchantData,
    background_tasks: BackgroundTasks,
    engine: MerchantSyncEngine = Depends(get_sync_engine),
    mailer: Optional[RegistrationMailer] = Depends(get_mailer),
):
    result = await engine.create_merchant(payload)
    if result.ok and mailer is not None:
        background_tasks.add_task(
            mailer.send_registration, payload.contact.email, result.merchant_id
        )
    return _respond(result, status.HTTP_201_CREATED)


@router.get("/merchants", response_model=ApiResponse)
async def get_all_merchants(engine: MerchantSyncEngine = Depends(get_sync_engine)):
    return _respond(await engine.list_merchants())


@router.get("/merchants/snapshot", response_model=ApiResponse)
async def get_merchant_snapshots(engine: MerchantSyncEngine = Depends(get_sync_engine)):
    return _respond(await engine.list_snapshots())


@router.get("/merchant/serviceability", response_model=ApiResponse)
async def get_merchants_by_pincode(
    pincodes: Annotated[str, Query(min_length=1, description="Comma-separated pincodes")],
    engine: MerchantSyncEngine = Depends(get_sync_engine),
):
    requested = [code for code in (part.strip() for part in pincodes.split(",")) if code]
    if not requested:
        return _error(422, "At least one pincode is required")
    return _respond(await engine.lookup(requested))


@router.post("/merchant/index/reconcile", response_model=ApiResponse)
async def reconcile_index(engine: MerchantSyncEngine = Depends(get_sync_engine)):
    return _respond(await engine.reconcile())


@router.put("/merchant/serviceability/{merchant_id}", response_model=ApiResponse)
async def add_pincodes(
    merchant_id: int,
    payload: Pincodes,
    engine: MerchantSyncEngine = Depends(get_sync_engine),
):
    return _respond(await engine.add_pincodes(merchant_id, payload.pincodes))


@router.delete("/merchant/serviceability/{merchant_id}", response_model=ApiResponse)
async def delete_merchant_serviceability_for_pincode(
    merchant_id: int,
    payload: Pincodes,
    engine: MerchantSyncEngine = Depends(get_sync_engine),
):
    return _respond(await engine.remove_pincodes(merchant_id, payload.pincodes))


@router.get("/merchant/{merchant_id}", response_model=ApiResponse)
async def get_merchant_info(
    merchant_id: int, engine: MerchantSyncEngine = Depends(get_sync_engine)
):
    return _respond(await engine.get_merchant(merchant_id))


@router.put("/merchant/{merchant_id}", response_model=ApiResponse)
async def update_merchant_info(
    merchant_id: int,
    payload: MerchantUpdate,
    engine: MerchantSyncEngine = Depends(get_sync_engine),
):
    return _respond(await engine.update_fields(merchant_id, payload))


@router.delete("/merchant/{merchant_id}", response_model=ApiResponse)
async def delete_merchant(
    merchant_id: int, engine: MerchantSyncEngine = Depends(get_sync_engine)
):
    return _respond(await engine.delete_merchant(merchant_id))


@router.post("/upload_csv", response_model=ApiResponse)
@limiter.limit(settings.CSV_UPLOAD_RATE)
async def upload_csv(
    request: Request,
    background_tasks: BackgroundTasks,
    upload: Annotated[UploadFile, File()],
    engine: MerchantSyncEngine = Depends(get_sync_engine),
    mailer: Optional[RegistrationMailer] = Depends(get_mailer),
):
    """Create one merchant per CSV row through the regular create path."""

    filename = (upload.filename or "").strip()
    if not filename:
        return _error(status.HTTP_400_BAD_REQUEST, "No file was uploaded.")
    if Path(filename).suffix.lower() not in ALLOWED_EXTENSIONS:
        return _error(status.HTTP_400_BAD_REQUEST, "Only .csv files can be uploaded.")

    try:
        raw_bytes = await upload.read(settings.MAX_UPLOAD_BYTES + 1)
    finally:
        await upload.close()

    if not raw_bytes:
        return _error(status.HTTP_400_BAD_REQUEST, "The uploaded file is empty.")
    if len(raw_bytes) > settings.MAX_UPLOAD_BYTES:
        max_size_mb = settings.MAX_UPLOAD_BYTES / (1024 * 1024)
        return _error(
            413,
            f"File too large. Max allowed size is {max_size_mb:.0f} MB.",
        )

    def _notify(payload: MerchantData, created: SyncResult) -> None:
        if mailer is not None:
            background_tasks.add_task(
                mailer.send_registration, payload.contact.email, created.merchant_id
            )

    try:
        result = await import_merchants(engine, raw_bytes, on_created=_notify)
    except TimeoutError:
        return _error(
            status.HTTP_503_SERVICE_UNAVAILABLE, "CSV processing timed out. Please retry."
        )
    return _respond(result)
