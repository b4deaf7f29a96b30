from dataclasses import replace

import requests

from fbar_intake.places import PlacesClient, PlaceSuggestion


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        if self.error is not None:
            raise self.error
        return self.response


def test_missing_key_skips_the_request(app_config):
    session = FakeSession()
    client = PlacesClient(app_config, session=session)

    assert client.available is False
    assert client.lookup("Garanti") is None
    assert session.calls == []


def test_match_is_transliterated(app_config):
    payload = {
        "status": "OK",
        "candidates": [{"name": "Türkiye İş Bankası", "formatted_address": "İş Kuleleri, 34330 Beşiktaş/İstanbul"}],
    }
    session = FakeSession(FakeResponse(payload))
    client = PlacesClient(replace(app_config, google_maps_key="test-key"), session=session)

    suggestion = client.lookup("is bankasi")

    assert suggestion == PlaceSuggestion("Turkiye Is Bankasi", "Is Kuleleri, 34330 Besiktas/Istanbul")
    url, params = session.calls[0]
    assert url == app_config.places_endpoint
    assert params["fields"] == "name,formatted_address"
    assert params["key"] == "test-key"


def test_no_results_and_failures_fall_back_to_manual_entry(app_config):
    config = replace(app_config, google_maps_key="test-key")

    empty = PlacesClient(config, session=FakeSession(FakeResponse({"status": "ZERO_RESULTS", "candidates": []})))
    denied = PlacesClient(config, session=FakeSession(FakeResponse({"status": "REQUEST_DENIED"})))
    broken = PlacesClient(config, session=FakeSession(FakeResponse({}, status_code=500)))
    offline = PlacesClient(config, session=FakeSession(error=requests.ConnectionError("offline")))

    for client in (empty, denied, broken, offline):
        assert client.lookup("HSBC") is None
