"""
Minimal GraphQL-over-HTTP client for the Hygraph endpoints.
"""
import logging
from typing import Any, Dict, Optional

import requests

from blogview.exceptions import SoftFailureError, TransportError, UpstreamTimeoutError

logger = logging.getLogger("graphql_client")

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class GraphQLClient:
    """
    Sends GraphQL operations as JSON POSTs.

    One instance is shared across threads; requests.Session is used for
    connection pooling.
    """

    def __init__(self, auth_token: Optional[str] = None, session: Optional[requests.Session] = None):
        self._auth_token = auth_token
        self._session = session or requests.Session()

    def _get_headers(self, authenticated: bool) -> Dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        if authenticated and self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers

    def post(
        self,
        url: str,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        timeout: float = 15.0,
        authenticated: bool = False,
    ) -> Dict[str, Any]:
        """
        Execute one GraphQL operation.

        Args:
            url: Endpoint URL
            query: GraphQL document
            variables: Operation variables
            timeout: Transport-level timeout in seconds
            authenticated: Send the bearer token if one is configured

        Returns:
            The ``data`` object of the response

        Raises:
            UpstreamTimeoutError: The transport timed out
            TransportError: Connection failure or non-2xx status
            SoftFailureError: Body is not JSON, or carries only GraphQL errors
        """
        try:
            response = self._session.post(
                url,
                json={"query": query, "variables": variables or {}},
                headers=self._get_headers(authenticated),
                timeout=timeout,
            )
        except requests.Timeout as e:
            raise UpstreamTimeoutError(f"Request to {url} timed out: {e}", endpoint=url) from e
        except requests.RequestException as e:
            raise TransportError(f"Request to {url} failed: {e}", endpoint=url) from e

        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"{url} returned HTTP {response.status_code}",
                endpoint=url,
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise SoftFailureError(f"{url} returned a non-JSON body", endpoint=url) from e

        if not isinstance(body, dict):
            raise SoftFailureError(f"{url} returned an unexpected body type", endpoint=url)

        data = body.get("data")
        if data is None:
            errors = body.get("errors") or []
            messages = ", ".join(str(err.get("message", err)) for err in errors if isinstance(err, dict))
            raise SoftFailureError(
                f"{url} returned no data" + (f": {messages}" if messages else ""),
                endpoint=url,
            )

        if body.get("errors"):
            logger.warning(f"Partial GraphQL errors from {url}: {body['errors']}")

        return data
