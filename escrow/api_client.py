"""
REST API Client
================
Thin wrapper over ``requests`` for the escrow backend.

  - base URL and timeout come from Settings
  - the bearer token comes from the Session passed in
  - responses use the ``{success, message, data}`` envelope; ``data`` is
    returned, failures are raised as EscrowClientError subclasses
  - a 401 clears the session so the next command starts signed out
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from escrow.errors import (
    ApiError,
    ApiValidationError,
    ForbiddenError,
    NetworkError,
    NotFoundError,
    UnauthorizedError,
)
from escrow.session import Session
from escrow.settings import Settings

logger = logging.getLogger(__name__)


ERROR_MESSAGES = {
    "network": "Network error. Please check your connection.",
    401: "You are not authorized to perform this action.",
    403: "You are not allowed to access this resource.",
    404: "Resource not found.",
    400: "Please check your input and try again.",
    500: "Server error. Please try again later.",
}

_STATUS_ERRORS: dict[int, type[ApiError]] = {
    400: ApiValidationError,
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    422: ApiValidationError,
}


class ApiClient:
    """
    Issues authenticated JSON requests against the escrow backend.
    """

    def __init__(
        self,
        session: Session,
        settings: Settings | None = None,
        http: requests.Session | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or Settings()
        self._http = http or requests.Session()

    def url(self, path: str) -> str:
        return f"{self.settings.api_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        headers = {"Content-Type": "application/json", **self.session.authorization_header()}
        url = self.url(path)
        logger.debug("%s %s", method.upper(), url)

        try:
            response = self._http.request(
                method.upper(),
                url,
                json=json,
                params=params,
                headers=headers,
                timeout=self.settings.request_timeout,
            )
        except requests.RequestException as e:
            logger.warning("Request failed: %s %s: %s", method.upper(), url, e)
            raise NetworkError(ERROR_MESSAGES["network"]) from e

        return self._handle(response)

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: dict[str, Any] | None = None) -> Any:
        return self.request("POST", path, json=json or {})

    def put(self, path: str, json: dict[str, Any] | None = None) -> Any:
        return self.request("PUT", path, json=json or {})

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)

    # --- Response handling ---

    def _handle(self, response: requests.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        status = response.status_code
        if status >= 400:
            error_cls = _STATUS_ERRORS.get(status, ApiError)
            message = body.get("message") or ERROR_MESSAGES.get(
                status, ERROR_MESSAGES[500] if status >= 500 else ERROR_MESSAGES[400]
            )
            logger.info("API error %s: %s", status, message)
            if error_cls is UnauthorizedError and self.session.is_authenticated:
                self.session.clear()
            raise error_cls(message, status_code=status, payload=body)

        if body.get("success") is False:
            raise ApiError(body.get("message") or "Request failed", status_code=status, payload=body)

        # Some endpoints put the token and user at the top level.
        if "data" in body:
            return body["data"]
        return {k: v for k, v in body.items() if k not in ("success", "message")}

