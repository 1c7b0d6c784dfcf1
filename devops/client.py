import logging
import threading
from dataclasses import dataclass

import requests

from constants import API_VERSION, DEFAULT_REQUEST_TIMEOUT
from .errors import DataShapeError, HttpError, NetworkError, RunCancelled


@dataclass(frozen=True)
class Collection:
    """One organizational collection on the server and the token used for it."""

    server_url: str
    name: str
    token: str = ""

    @property
    def base_url(self) -> str:
        return f"{self.server_url.rstrip('/')}/{self.name}"

    def __repr__(self) -> str:
        return f"Collection(server_url={self.server_url!r}, name={self.name!r})"


_thread_local = threading.local()


def _get_session():
    session = getattr(_thread_local, "session", None)
    if session is None:
        session = requests.Session()
        session.headers.update(
            {"Content-Type": "application/json", "Accept": "application/json"}
        )
        _thread_local.session = session
    return session


def call(
    collection: Collection,
    path: str,
    method: str = "GET",
    params=None,
    json=None,
    timeout=None,
    cancel=None,
):
    """Issue one API request against ``collection`` and return decoded JSON.

    ``path`` is relative to ``{server_url}/{collection}``. The api-version
    parameter and Basic auth (empty user, token as password) are always set.
    """
    if cancel is not None and cancel.is_set():
        raise RunCancelled(f"Run cancelled before {method} {path}")
    url = f"{collection.base_url}{path}"
    query = dict(params or {})
    query["api-version"] = API_VERSION
    logging.debug("Fetching %s %s params=%s", method, url, query)
    try:
        response = _get_session().request(
            method,
            url,
            params=query,
            json=json,
            auth=("", collection.token),
            timeout=timeout or DEFAULT_REQUEST_TIMEOUT,
        )
    except requests.RequestException as e:
        raise NetworkError(f"{method} {url} failed: {e}") from e

    if not 200 <= response.status_code < 300:
        logging.error("API error %s from %s: %s", response.status_code, url, response.text)
        raise HttpError(response.status_code, response.text)

    try:
        data = response.json()
    except ValueError as e:
        raise DataShapeError(f"{url} returned a non-JSON body") from e
    logging.debug("API response from %s: %s", url, data)
    return data


def list_value(payload, what: str) -> list:
    """Return the ``value`` array of a list endpoint response."""
    if not isinstance(payload, dict) or not isinstance(payload.get("value"), list):
        raise DataShapeError(f"Unexpected {what} response: missing 'value' list")
    return payload["value"]


def list_entries(payload, what: str) -> list[dict]:
    """Return the ``value`` array, requiring every entry to be an object."""
    entries = list_value(payload, what)
    if not all(isinstance(entry, dict) for entry in entries):
        raise DataShapeError(f"Unexpected {what} response: non-object entry")
    return entries


def entry_id(entry: dict, what: str):
    value = entry.get("id")
    if value is None or value == "":
        raise DataShapeError(f"Unexpected {what} response: entry without 'id'")
    return value
