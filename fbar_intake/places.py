"""Institution lookup through the Google Places "find place" API."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from .config import AppConfig
from .text import transliterate

logger = logging.getLogger(__name__)

MANUAL_ENTRY_MESSAGE = "Address search is unavailable. Please enter institution details manually."


@dataclass(frozen=True, slots=True)
class PlaceSuggestion:
    name: str
    formatted_address: str


class PlacesClient:
    """Pre-fill institution name and address from a partial search string."""

    def __init__(self, config: AppConfig, session: Optional[requests.Session] = None) -> None:
        self._config = config
        self._session = session or requests.Session()

    @property
    def available(self) -> bool:
        return bool(self._config.google_maps_key)

    def lookup(self, text: str) -> Optional[PlaceSuggestion]:
        """Return the best establishment match for ``text``.

        The function gracefully degrades to ``None`` when the API key is not
        configured, the service cannot be reached, or nothing matches, so the
        caller can fall back to manual entry.
        """

        if not self.available or not text.strip():
            return None

        params = {
            "input": text,
            "inputtype": "textquery",
            "fields": "name,formatted_address",
            "key": self._config.google_maps_key,
        }
        try:
            response = self._session.get(self._config.places_endpoint, params=params, timeout=10)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Places lookup failed: %s", exc)
            return None

        status = payload.get("status")
        if status != "OK":
            if status != "ZERO_RESULTS":
                logger.warning("Places lookup returned status %s", status)
            return None

        candidates = payload.get("candidates") or []
        for candidate in candidates:
            address = candidate.get("formatted_address")
            if address:
                return PlaceSuggestion(
                    name=transliterate(candidate.get("name") or ""),
                    formatted_address=transliterate(address),
                )
        return None
