from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from .models import FleetRoutePlan

logger = logging.getLogger(__name__)


class PlannerError(RuntimeError):
    """The remote planner could not be reached or returned garbage."""


class PlannerClient:
    """Thin HTTP client for the remote delivery path planner."""

    def __init__(self, base_url: str, timeout_s: float = 60.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def _post(self, path: str, body: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.post(url, json=body, timeout=self.timeout_s)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise PlannerError(f"{path} failed: {e}") from e
        except ValueError as e:
            raise PlannerError(f"{path} returned invalid JSON: {e}") from e

    def calculate(self, orders: List[Dict[str, Any]]) -> FleetRoutePlan:
        data = self._post("/calcDeliveryPath", orders)
        try:
            return FleetRoutePlan.model_validate(data)
        except ValidationError as e:
            raise PlannerError(f"planner returned a malformed plan: {e}") from e

    def available_drones(self, orders: List[Dict[str, Any]]) -> List[str]:
        data = self._post("/queryAvailableDrones", orders)
        if not isinstance(data, list):
            raise PlannerError("/queryAvailableDrones did not return a list")
        return [str(d) for d in data]

    async def calculate_async(self, orders: List[Dict[str, Any]]) -> FleetRoutePlan:
        """Run calculate() off the event loop.

        Cancelling the awaiting task abandons the call: the worker thread runs
        to completion but its result is dropped.
        """
        logger.info("requesting delivery paths for %d orders", len(orders))
        return await asyncio.to_thread(self.calculate, orders)
