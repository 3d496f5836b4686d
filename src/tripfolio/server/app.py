"""ASGI application for Tripfolio."""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import date
from time import perf_counter
from typing import Any, Optional
from uuid import uuid4

from fastapi import BackgroundTasks, Body, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict, Field

from tripfolio import __version__, metrics
from tripfolio.config import Settings, get_settings
from tripfolio.csv_export import csv_filename, receipts_to_csv
from tripfolio.db.receipts import RECEIPT_NOT_FOUND
from tripfolio.db.trips import FIELDS_REQUIRED, TRIP_NOT_FOUND
from tripfolio.filtering import (
    category_spending,
    date_bounds,
    filter_receipts,
    totals_by_currency,
)
from tripfolio.logging_utils import configure_logging as configure_app_logging
from tripfolio.models.filters import SpendingSummary
from tripfolio.models.receipt import LocalizedText, Receipt, ReceiptDraft, ReceiptItem, SyncStatus
from tripfolio.models.trip import Trip, TripDraft
from tripfolio.outcome import Outcome
from tripfolio.server import deps
from tripfolio.snapshot import export_snapshot, import_snapshot
from tripfolio.store import LocalStore

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10 MiB


def _json_safe(value: Any) -> Any:
    """Convert non-serializable values into JSON-safe representations."""

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_json_safe(entry) for entry in value]
    if isinstance(value, dict):
        return {key: _json_safe(sub_value) for key, sub_value in value.items()}
    return repr(value)


def _failure_status(reason: str) -> int:
    lowered = reason.lower()
    if "not found" in lowered:
        return status.HTTP_404_NOT_FOUND
    if "already exists" in lowered:
        return status.HTTP_409_CONFLICT
    if "could not be" in lowered:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_400_BAD_REQUEST


def _unwrap(outcome: Outcome) -> Any:
    """Return the outcome value or raise the HTTP error matching its reason."""

    if outcome.ok:
        return outcome.value
    reason = outcome.reason or "Request failed."
    raise HTTPException(status_code=_failure_status(reason), detail=reason)


def _decode_image(encoded: str) -> bytes:
    try:
        payload = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Image must be base64 encoded."
        ) from exc
    if not payload:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Image is empty.")
    if len(payload) > MAX_IMAGE_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Image exceeds {MAX_IMAGE_BYTES // (1024 * 1024)} MiB limit.",
        )
    return payload


def _configure_logging(settings: Settings) -> None:
    configure_app_logging(settings.log_level, settings.log_format, [settings.api_token or ""])


def create_app() -> FastAPI:
    """Create and configure a FastAPI application instance."""

    settings = get_settings()
    _configure_logging(settings)

    application = FastAPI(title="Tripfolio", version=__version__)
    logger.debug("Application created with log level %s", settings.log_level)

    if settings.log_requests:
        access_logger = logging.getLogger("tripfolio.access")

        @application.middleware("http")
        async def log_request_response(request: Request, call_next):
            """Log request/response details without leaking sensitive data."""

            request_id = request.headers.get("X-Request-ID") or uuid4().hex
            request.state.request_id = request_id
            start = perf_counter()
            path = request.url.path
            method = request.method
            try:
                response: Response = await call_next(request)
            except Exception:
                duration_ms = (perf_counter() - start) * 1000
                access_logger.exception(
                    "HTTP %s %s status=500 duration_ms=%.2f",
                    method,
                    path,
                    duration_ms,
                    extra={"request_id": request_id},
                )
                metrics.REQUEST_COUNT.labels(method=method, path=path, status="500").inc()
                metrics.REQUEST_LATENCY.labels(method=method, path=path).observe(
                    duration_ms / 1000.0
                )
                raise

            duration_ms = (perf_counter() - start) * 1000
            response.headers.setdefault("X-Request-ID", request_id)
            access_logger.info(
                "HTTP %s %s status=%s duration_ms=%.2f",
                method,
                path,
                response.status_code,
                duration_ms,
                extra={"request_id": request_id},
            )
            metrics.REQUEST_COUNT.labels(
                method=method,
                path=path,
                status=str(response.status_code),
            ).inc()
            metrics.REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000.0)
            return response

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        log_kwargs: dict[str, Any] = {}
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            log_kwargs["extra"] = {"request_id": request_id}

        logger.warning(
            "Validation error on %s %s: %s",
            request.method,
            request.url.path,
            exc.errors(),
            **log_kwargs,
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": [_json_safe(error) for error in exc.errors()]},
        )

    # Receipts ----------------------------------------------------------------

    @application.get("/receipts", response_model=list[Receipt], summary="List receipts")
    def receipts_list(
        query: deps.ReceiptQuery = Depends(),
        store: LocalStore = Depends(deps.get_store),
    ) -> list[Receipt]:
        return filter_receipts(
            store.receipts.list_receipts(), query.trip_id, query.search, query.filters
        )

    @application.post(
        "/receipts",
        response_model=Receipt,
        status_code=status.HTTP_201_CREATED,
        summary="Create a receipt with its image",
    )
    async def receipts_create(
        payload: ReceiptCreateRequest,
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> Receipt:
        image = _decode_image(payload.image)
        draft = ReceiptDraft(
            merchant=payload.merchant,
            date=payload.date,
            location=payload.location,
            currency=payload.currency,
            items=payload.items,
            trip_id=payload.trip_id,
        )
        return _unwrap(await store.receipts.add_receipt(draft, image))

    @application.get("/receipts/{receipt_id}", response_model=Receipt, summary="Fetch a receipt")
    def receipts_get(
        receipt_id: str,
        store: LocalStore = Depends(deps.get_store),
    ) -> Receipt:
        receipt = store.receipts.get_receipt(receipt_id)
        if receipt is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=RECEIPT_NOT_FOUND)
        return receipt

    @application.get("/receipts/{receipt_id}/image", summary="Download a receipt image")
    async def receipts_image(
        receipt_id: str,
        store: LocalStore = Depends(deps.get_store),
    ) -> Response:
        payload = await store.receipts.get_image(receipt_id)
        if payload is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found.")
        return Response(content=payload, media_type="image/jpeg")

    @application.put("/receipts/{receipt_id}", response_model=Receipt, summary="Replace a receipt")
    def receipts_update(
        receipt_id: str,
        payload: ReceiptUpdateRequest,
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> Receipt:
        current = store.receipts.get_receipt(receipt_id)
        if current is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=RECEIPT_NOT_FOUND)
        # Full replacement: omitted optional fields are cleared, not kept.
        changes = payload.model_dump()
        if changes["status"] is None:
            changes.pop("status")
        return _unwrap(store.receipts.update_receipt(current.evolve(**changes)))

    @application.delete(
        "/receipts/{receipt_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        summary="Delete a receipt and its image",
    )
    async def receipts_delete(
        receipt_id: str,
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> None:
        _unwrap(await store.receipts.delete_receipt(receipt_id))

    # Trips -------------------------------------------------------------------

    @application.get("/trips", response_model=list[Trip], summary="List trips")
    def trips_list(store: LocalStore = Depends(deps.get_store)) -> list[Trip]:
        return store.trips.list_trips()

    @application.post(
        "/trips",
        response_model=Trip,
        status_code=status.HTTP_201_CREATED,
        summary="Create a trip",
    )
    def trips_create(
        payload: TripDraft,
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> Trip:
        return _unwrap(store.trips.add_trip(payload))

    @application.put("/trips/{trip_id}", response_model=Trip, summary="Update a trip")
    def trips_update(
        trip_id: str,
        payload: TripDraft,
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> Trip:
        if store.trips.get_trip(trip_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=TRIP_NOT_FOUND)
        if not payload.name.strip() or payload.start_date is None or payload.end_date is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=FIELDS_REQUIRED)
        trip = Trip(
            id=trip_id,
            name=payload.name,
            start_date=payload.start_date,
            end_date=payload.end_date,
        )
        return _unwrap(store.trips.update_trip(trip))

    @application.delete("/trips/{trip_id}", summary="Delete a trip, keeping its receipts")
    def trips_delete(
        trip_id: str,
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> dict[str, int]:
        return {"unassigned": _unwrap(store.trips.delete_trip(trip_id))}

    # Categories --------------------------------------------------------------

    @application.get("/categories", summary="List default and custom categories")
    def categories_list(store: LocalStore = Depends(deps.get_store)) -> dict[str, list[str]]:
        return {
            "categories": store.categories.all_categories(),
            "custom": store.categories.custom_categories(),
        }

    @application.post(
        "/categories",
        status_code=status.HTTP_201_CREATED,
        summary="Add a custom category",
    )
    def categories_create(
        payload: CategoryRequest,
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> dict[str, str]:
        return {"name": _unwrap(store.categories.add_category(payload.name))}

    @application.put("/categories/{name}", summary="Rename a custom category")
    def categories_rename(
        name: str,
        payload: CategoryRequest,
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> dict[str, str]:
        return {"name": _unwrap(store.categories.rename_category(name, payload.name))}

    @application.delete("/categories/{name}", summary="Delete a custom category")
    def categories_delete(
        name: str,
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> dict[str, int]:
        return {"reassigned": _unwrap(store.categories.delete_category(name))}

    # Sync --------------------------------------------------------------------

    @application.get("/connectivity", summary="Current connectivity and sync counts")
    def connectivity_status(store: LocalStore = Depends(deps.get_store)) -> dict[str, Any]:
        return {"online": store.sync.is_online, "counts": store.receipts.status_counts()}

    @application.put("/connectivity", summary="Report connectivity changes")
    def connectivity_update(
        payload: ConnectivityRequest,
        background_tasks: BackgroundTasks,
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> dict[str, Any]:
        batch = store.sync.record_connectivity(payload.online)
        if batch:
            background_tasks.add_task(store.sync.complete_sync, batch)
        return {
            "online": store.sync.is_online,
            "syncing": len(batch),
            "counts": store.receipts.status_counts(),
        }

    # Spending ----------------------------------------------------------------

    @application.get("/summary", response_model=SpendingSummary, summary="Spending summary")
    async def spending_summary(
        query: deps.ReceiptQuery = Depends(),
        store: LocalStore = Depends(deps.get_store),
    ) -> SpendingSummary:
        receipts = filter_receipts(
            store.receipts.list_receipts(), query.trip_id, query.search, query.filters
        )
        earliest, latest = date_bounds(receipts)
        home_currency = store.rates.home_currency()
        converted = None
        if home_currency and receipts:
            converted = await store.rates.convert_total(receipts, home_currency)
        return SpendingSummary(
            receipt_count=len(receipts),
            totals_by_currency=totals_by_currency(receipts),
            category_spending=category_spending(receipts, store.categories.all_categories()),
            earliest=earliest,
            latest=latest,
            home_currency=home_currency,
            converted_total=converted,
        )

    @application.get("/rates", summary="Historical exchange rate")
    async def rates_lookup(
        rate_date: date = Query(alias="date"),
        from_currency: str = Query(min_length=3, max_length=3),
        to_currency: str = Query(min_length=3, max_length=3),
        store: LocalStore = Depends(deps.get_store),
    ) -> dict[str, Any]:
        rate = await store.rates.get_rate(rate_date, from_currency, to_currency)
        if rate is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="No exchange rate available."
            )
        return {
            "date": rate_date.isoformat(),
            "from": from_currency.upper(),
            "to": to_currency.upper(),
            "rate": rate,
        }

    @application.get("/settings/home-currency", summary="Home currency preference")
    def home_currency_get(store: LocalStore = Depends(deps.get_store)) -> dict[str, Any]:
        return {
            "currency": store.rates.home_currency(),
            "ratesLastUpdated": store.rates.rates_last_updated(),
        }

    @application.put("/settings/home-currency", summary="Set or clear the home currency")
    def home_currency_set(
        payload: HomeCurrencyRequest,
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> dict[str, Optional[str]]:
        return {"currency": _unwrap(store.rates.set_home_currency(payload.currency))}

    # Backup ------------------------------------------------------------------

    @application.get("/snapshot", summary="Export all local data")
    async def snapshot_export(
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> JSONResponse:
        snapshot = await export_snapshot(store)
        return JSONResponse(content=snapshot.to_document())

    @application.post("/snapshot", summary="Replace all local data with a backup")
    async def snapshot_import(
        payload: Any = Body(...),
        auth: None = Depends(deps.require_api_token),
        store: LocalStore = Depends(deps.get_store),
    ) -> dict[str, int]:
        snapshot = _unwrap(await import_snapshot(store, payload))
        return {
            "receipts": len(snapshot.data.receipts),
            "trips": len(snapshot.data.trips),
            "customCategories": len(snapshot.data.custom_categories),
            "images": len(snapshot.data.images),
        }

    @application.get("/export.csv", summary="Export receipts as CSV")
    def receipts_csv(
        day: Optional[date] = Query(default=None, alias="date"),
        query: deps.ReceiptQuery = Depends(),
        store: LocalStore = Depends(deps.get_store),
    ) -> Response:
        receipts = filter_receipts(
            store.receipts.list_receipts(), query.trip_id, query.search, query.filters
        )
        if day is not None:
            receipts = [receipt for receipt in receipts if receipt.date == day]
        headers = {"Content-Disposition": f'attachment; filename="{csv_filename(day)}"'}
        return Response(
            content=receipts_to_csv(receipts), media_type="text/csv; charset=utf-8", headers=headers
        )

    @application.get("/metrics", include_in_schema=False)
    def metrics_endpoint() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    @application.get("/healthz", include_in_schema=False)
    def healthz() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    return application


class ReceiptCreateRequest(BaseModel):
    merchant: LocalizedText
    date: date
    location: Optional[str] = None
    currency: str = Field(min_length=1, max_length=16)
    items: Optional[list[ReceiptItem]] = None
    trip_id: Optional[str] = Field(default=None, alias="tripId")
    image: str = Field(min_length=1, description="Base64-encoded receipt image")

    model_config = ConfigDict(populate_by_name=True)


class ReceiptUpdateRequest(BaseModel):
    """Complete editable receipt fields; ``total`` is always derived from ``items``."""

    merchant: LocalizedText
    date: date
    location: Optional[str] = None
    currency: str = Field(min_length=1, max_length=16)
    items: list[ReceiptItem] = Field(default_factory=list)
    trip_id: Optional[str] = Field(default=None, alias="tripId")
    status: Optional[SyncStatus] = None

    model_config = ConfigDict(populate_by_name=True)


class CategoryRequest(BaseModel):
    name: str


class ConnectivityRequest(BaseModel):
    online: bool


class HomeCurrencyRequest(BaseModel):
    currency: Optional[str] = None


app = create_app()
