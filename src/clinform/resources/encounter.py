"""REST implementation of the encounter fetch and save collaborators.

Talks to an OpenMRS-style ``/ws/rest/v1/encounter`` endpoint over httpx.
Transient transport errors are retried with exponential backoff; anything
that still fails surfaces as FetchError.
"""

from __future__ import annotations

from typing import Any

import httpx
import pydantic
from loguru import logger
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from clinform.config import EngineConfig
from clinform.errors import FetchError
from clinform.models.encounter import Encounter, EncounterPayload, SaveResult
from clinform.session.cancellation import CancellationToken

ENCOUNTER_PATH = "/ws/rest/v1/encounter"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("message", ""))
    return ""


class EncounterResource:
    """Encounter REST client.

    Usage::

        with EncounterResource(EngineConfig.from_env()) as resource:
            controller = FormStateController(
                schema, encounter_uuid=uuid, fetcher=resource, saver=resource
            )

    Args:
        config: Supplies base URL, timeout, and retry count.
        client: Preconfigured httpx client (tests pass one with a mock
            transport). Created from ``config`` when omitted.
        auth: Optional httpx auth for the default client.
        wait: tenacity wait strategy between retries.
    """

    def __init__(
        self,
        config: EngineConfig,
        client: httpx.Client | None = None,
        *,
        auth: httpx.Auth | tuple[str, str] | None = None,
        wait: wait_base | None = None,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = client or httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            auth=auth,
        )
        self._wait = wait if wait is not None else wait_exponential(min=1, max=10)

    def __enter__(self) -> EncounterResource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _request(
        self,
        method: str,
        url: str,
        cancel_token: CancellationToken,
        **kwargs: Any,
    ) -> httpx.Response:
        retrying = Retrying(
            stop=stop_after_attempt(self._config.max_retries),
            wait=self._wait,
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    cancel_token.raise_if_cancelled()
                    response = self._client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            msg = f"{method} {url} failed: {exc}"
            raise FetchError(msg) from exc
        cancel_token.raise_if_cancelled()
        return response

    def fetch_encounter(
        self,
        encounter_uuid: str,
        representation: str,
        cancel_token: CancellationToken,
    ) -> Encounter:
        """GET an encounter in the requested representation.

        Raises:
            FetchError: On transport failure, an error status, or a body
                that is not an encounter.
            OperationCancelled: If the token is cancelled.
        """
        url = f"{ENCOUNTER_PATH}/{encounter_uuid}"
        response = self._request("GET", url, cancel_token, params={"v": representation})
        if response.is_error:
            msg = f"Encounter {encounter_uuid} could not be loaded: {_error_message(response)}"
            raise FetchError(msg, status_code=response.status_code)
        try:
            return Encounter.model_validate(response.json())
        except (ValueError, pydantic.ValidationError) as exc:
            msg = f"Encounter {encounter_uuid} response is not a valid encounter"
            raise FetchError(msg, status_code=response.status_code) from exc

    def save_encounter(
        self,
        cancel_token: CancellationToken,
        payload: EncounterPayload,
        encounter_uuid: str | None = None,
    ) -> SaveResult:
        """POST a new encounter, or update an existing one when a uuid is given.

        Error statuses are reported as ``SaveResult(ok=False)``; only
        transport failures raise.
        """
        url = f"{ENCOUNTER_PATH}/{encounter_uuid}" if encounter_uuid else ENCOUNTER_PATH
        response = self._request("POST", url, cancel_token, json=payload.to_request())
        resource: dict[str, Any] | None = None
        try:
            body = response.json()
            resource = body if isinstance(body, dict) else None
        except ValueError:
            resource = None
        if response.is_error:
            logger.warning("Encounter save returned {}", response.status_code)
            return SaveResult(
                ok=False,
                status_code=response.status_code,
                resource=resource,
                message=_error_message(response),
            )
        return SaveResult(ok=True, status_code=response.status_code, resource=resource)
