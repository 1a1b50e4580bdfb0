"""
Backing store talking to the marketplace REST API
"""
import asyncio
import logging
import time
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import requests
from pydantic import ValidationError as PydanticValidationError

from rentals.core.config import settings
from rentals.core.errors import ConflictError, TransportError
from rentals.models import BookingStatus
from rentals.schemas.availability import AvailabilityRecord
from rentals.schemas.booking import BookingCreate, BookingRecord, TransitionPayload

logger = logging.getLogger(__name__)


def _unwrap_list(data: Any, *keys: str) -> List[dict]:
    """The API answers either a bare list or an envelope such as {"data": [...]}."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("data", *keys):
            value = data.get(key)
            if isinstance(value, list):
                return value
    raise TransportError(f"Unexpected response shape: {type(data).__name__}")


def _unwrap_object(data: Any, *keys: str) -> dict:
    if isinstance(data, dict):
        for key in ("data", *keys):
            value = data.get(key)
            if isinstance(value, dict):
                return value
        return data
    raise TransportError(f"Unexpected response shape: {type(data).__name__}")


def _parse_booking(raw: dict) -> BookingRecord:
    data = dict(raw)
    # Older endpoints name the listing "listing_id"
    if "product_id" not in data and "listing_id" in data:
        data["product_id"] = data["listing_id"]
    try:
        return BookingRecord.model_validate(data)
    except PydanticValidationError as e:
        logger.error(f"Malformed booking payload: {e}")
        raise TransportError(f"Malformed booking payload: {e}") from e


def _parse_availability(listing_id: str, raw: dict) -> AvailabilityRecord:
    try:
        return AvailabilityRecord.model_validate(
            {
                "listing_id": raw.get("product_id") or raw.get("listing_id") or listing_id,
                "date": raw.get("date"),
                "availability_type": raw.get("availability_type"),
                "reason": raw.get("reason") or raw.get("notes"),
            }
        )
    except PydanticValidationError as e:
        logger.error(f"Malformed availability payload: {e}")
        raise TransportError(f"Malformed availability payload: {e}") from e


def _parse_dates(raw: Any, fallback: Sequence[date]) -> List[date]:
    if isinstance(raw, dict):
        raw = raw.get("data", raw)
    applied = raw.get("applied_dates") if isinstance(raw, dict) else None
    if applied is None:
        # Endpoint only acknowledged the request
        return sorted(set(fallback))
    try:
        return sorted({date.fromisoformat(str(d)[:10]) for d in applied})
    except ValueError as e:
        raise TransportError(f"Malformed applied_dates: {applied!r}") from e


class HttpBackingStore:
    """Store implementation over the marketplace API (bearer token auth)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.api_base_url).rstrip("/")
        self.token = token if token is not None else settings.api_token
        self.timeout = timeout if timeout is not None else settings.api_timeout_seconds
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        start_time = time.perf_counter()
        status_code = None

        try:
            response = self.session.request(
                method, url, headers=self._headers(), timeout=self.timeout, **kwargs
            )
            status_code = response.status_code
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()

        except requests.exceptions.HTTPError as e:
            body = e.response.text if e.response is not None else "No response"
            if status_code == 409:
                logger.warning(f"⚠️ Conflict on {method} {path}: {body}")
                raise ConflictError(_error_message(e.response) or "Conflict") from e
            if status_code == 404:
                logger.warning(f"Not found: {method} {path}")
                raise ConflictError(_error_message(e.response) or "Not found") from e
            logger.error(f"❌ HTTP error on {method} {path}: {e}")
            logger.error(f"Response: {body}")
            raise TransportError(
                _error_message(e.response) or str(e), status_code=status_code
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"❌ Request failed: {method} {path}: {e}")
            raise TransportError(str(e)) from e
        except ValueError as e:
            # Body was not JSON
            raise TransportError(f"Invalid JSON from {path}", status_code=status_code) from e
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            if duration_ms > settings.log_slow_request_threshold_ms:
                logger.info(
                    f"Slow API call: {method} {path} took {duration_ms:.2f}ms",
                    extra={
                        "method": method,
                        "path": path,
                        "status_code": status_code,
                        "duration_ms": round(duration_ms, 2),
                    },
                )

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        return await asyncio.to_thread(self._request, method, path, **kwargs)

    async def get_availability(
        self, listing_id: str, start: date, end: date
    ) -> List[AvailabilityRecord]:
        data = await self._call(
            "GET",
            f"/products/{listing_id}/availability",
            params={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )
        return [_parse_availability(listing_id, raw) for raw in _unwrap_list(data, "availability")]

    async def get_bookings(
        self, listing_id: str, statuses: Sequence[BookingStatus]
    ) -> List[BookingRecord]:
        params = {"product_id": listing_id}
        if statuses:
            params["status"] = ",".join(s.value for s in statuses)
        data = await self._call("GET", "/bookings", params=params)
        return [_parse_booking(raw) for raw in _unwrap_list(data, "bookings")]

    async def withdraw_dates(
        self, listing_id: str, dates: Sequence[date], reason: str
    ) -> List[date]:
        data = await self._call(
            "POST",
            f"/products/{listing_id}/remove-from-market",
            json={"dates": [d.isoformat() for d in dates], "reason": reason},
        )
        return _parse_dates(data, dates)

    async def restore_dates(self, listing_id: str, dates: Sequence[date]) -> List[date]:
        data = await self._call(
            "POST",
            f"/products/{listing_id}/restore-to-market",
            json={"dates": [d.isoformat() for d in dates]},
        )
        return _parse_dates(data, dates)

    async def get_booking(self, booking_id: str) -> BookingRecord:
        data = await self._call("GET", f"/bookings/{booking_id}")
        return _parse_booking(_unwrap_object(data, "booking"))

    async def create_booking(self, payload: BookingCreate) -> BookingRecord:
        data = await self._call("POST", "/bookings", json=payload.model_dump(mode="json"))
        return _parse_booking(_unwrap_object(data, "booking"))

    async def transition_booking(
        self, booking_id: str, target: BookingStatus, payload: TransitionPayload
    ) -> BookingRecord:
        body = {"status": target.value, **payload.model_dump(mode="json", exclude_none=True)}
        data = await self._call("PATCH", f"/bookings/{booking_id}/status", json=body)
        return _parse_booking(_unwrap_object(data, "booking"))


def _error_message(response: Optional[requests.Response]) -> Optional[str]:
    if response is None:
        return None
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        return data.get("message") or data.get("error")
    return None
