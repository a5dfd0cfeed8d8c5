"""Tests for the REST encounter resource using an httpx mock transport."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest
from tenacity import wait_none

from clinform.config import EngineConfig
from clinform.errors import FetchError, OperationCancelled
from clinform.models.encounter import EncounterPayload, Observation
from clinform.resources.encounter import ENCOUNTER_PATH, EncounterResource
from clinform.session.cancellation import CancellationToken

ENCOUNTER_JSON = {
    "uuid": "enc-1",
    "encounterDatetime": "2024-03-01T10:00:00.000+0000",
    "location": {"uuid": "loc-1", "display": "Clinic"},
    "obs": [{"uuid": "o1", "concept": {"uuid": "c-weight"}, "value": 70}],
}


def _make_resource(
    handler: Callable[[httpx.Request], httpx.Response],
    **config: object,
) -> EncounterResource:
    client = httpx.Client(base_url="http://emr.test", transport=httpx.MockTransport(handler))
    return EncounterResource(EngineConfig(**config), client, wait=wait_none())


def _payload() -> EncounterPayload:
    return EncounterPayload(
        patient="pat-1",
        encounter_type="etype-1",
        obs=[Observation(concept="c-weight", value=70)],
    )


class TestFetchEncounter:
    def test_get_with_representation(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=ENCOUNTER_JSON)

        resource = _make_resource(handler)
        encounter = resource.fetch_encounter("enc-1", "custom:(uuid)", CancellationToken())

        assert encounter.uuid == "enc-1"
        assert encounter.obs[0].value_code == 70
        assert seen[0].method == "GET"
        assert seen[0].url.path == f"{ENCOUNTER_PATH}/enc-1"
        assert seen[0].url.params["v"] == "custom:(uuid)"

    def test_error_status_raises_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": {"message": "Object not found"}})

        with pytest.raises(FetchError, match="Object not found") as exc_info:
            _make_resource(handler).fetch_encounter("nope", "full", CancellationToken())
        assert exc_info.value.status_code == 404

    def test_invalid_body_raises_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"results": []})

        with pytest.raises(FetchError, match="not a valid encounter"):
            _make_resource(handler).fetch_encounter("enc-1", "full", CancellationToken())

    def test_transport_errors_retried_then_wrapped(self) -> None:
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError, match="connection refused"):
            _make_resource(handler, max_retries=3).fetch_encounter(
                "enc-1", "full", CancellationToken()
            )
        assert attempts == 3

    def test_transient_error_recovers(self) -> None:
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(200, json=ENCOUNTER_JSON)

        encounter = _make_resource(handler).fetch_encounter("enc-1", "full", CancellationToken())
        assert encounter.uuid == "enc-1"
        assert attempts == 2

    def test_cancelled_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("request should not be sent")

        token = CancellationToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            _make_resource(handler).fetch_encounter("enc-1", "full", token)


class TestSaveEncounter:
    def test_create_posts_to_collection(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"uuid": "new-enc"})

        result = _make_resource(handler).save_encounter(CancellationToken(), _payload())

        assert result.ok
        assert result.status_code == 201
        assert result.resource == {"uuid": "new-enc"}
        assert seen[0].method == "POST"
        assert seen[0].url.path == ENCOUNTER_PATH
        body = json.loads(seen[0].content)
        assert body["encounterType"] == "etype-1"
        assert body["obs"] == [{"concept": "c-weight", "value": 70}]

    def test_update_posts_to_instance(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"uuid": "enc-1"})

        _make_resource(handler).save_encounter(CancellationToken(), _payload(), "enc-1")
        assert seen[0].url.path == f"{ENCOUNTER_PATH}/enc-1"

    def test_error_status_is_not_ok(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": {"message": "Invalid Submission"}})

        result = _make_resource(handler).save_encounter(CancellationToken(), _payload())
        assert not result.ok
        assert result.status_code == 400
        assert result.message == "Invalid Submission"

    def test_owned_client_closed(self) -> None:
        resource = EncounterResource(EngineConfig())
        with resource:
            pass
        assert resource._client.is_closed
