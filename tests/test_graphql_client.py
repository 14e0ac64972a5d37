"""
GraphQL client tests: request shape and mapping of transport outcomes to errors.
"""
import pytest
import requests

from blogview.exceptions import SoftFailureError, TransportError, UpstreamTimeoutError
from blogview.graphql_client import GraphQLClient

URL = "https://cdn.test/graphql"


class FakeResponse:
    def __init__(self, status_code=200, body=None, raw=None):
        self.status_code = status_code
        self._body = body
        self._raw = raw

    def json(self):
        if self._raw is not None:
            raise ValueError("No JSON object could be decoded")
        return self._body


class FakeSession:
    """Records posts and replays a canned response or exception."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


class TestRequestShape:

    def test_posts_query_and_variables(self):
        session = FakeSession(FakeResponse(body={"data": {"posts": []}}))
        client = GraphQLClient(session=session)

        data = client.post(URL, "query { posts { slug } }", {"limit": 3}, timeout=7)

        assert data == {"posts": []}
        sent = session.requests[0]
        assert sent["url"] == URL
        assert sent["json"] == {"query": "query { posts { slug } }", "variables": {"limit": 3}}
        assert sent["timeout"] == 7
        assert sent["headers"]["Content-Type"] == "application/json"
        assert "Authorization" not in sent["headers"]

    def test_bearer_token_only_when_authenticated(self):
        session = FakeSession(FakeResponse(body={"data": {"ok": True}}))
        client = GraphQLClient(auth_token="secret", session=session)

        client.post(URL, "query { ok }")
        client.post(URL, "mutation { ok }", authenticated=True)

        assert "Authorization" not in session.requests[0]["headers"]
        assert session.requests[1]["headers"]["Authorization"] == "Bearer secret"

    def test_partial_errors_still_return_data(self):
        body = {"data": {"posts": [{"slug": "a"}]}, "errors": [{"message": "field deprecated"}]}
        client = GraphQLClient(session=FakeSession(FakeResponse(body=body)))

        assert client.post(URL, "query { posts { slug } }") == {"posts": [{"slug": "a"}]}


class TestErrorMapping:

    def test_timeout(self):
        client = GraphQLClient(session=FakeSession(error=requests.Timeout("read timed out")))
        with pytest.raises(UpstreamTimeoutError) as exc_info:
            client.post(URL, "query { posts }")
        assert exc_info.value.endpoint == URL

    def test_connection_error(self):
        client = GraphQLClient(session=FakeSession(error=requests.ConnectionError("refused")))
        with pytest.raises(TransportError):
            client.post(URL, "query { posts }")

    def test_non_2xx_status(self):
        client = GraphQLClient(session=FakeSession(FakeResponse(status_code=502, body={})))
        with pytest.raises(TransportError) as exc_info:
            client.post(URL, "query { posts }")
        assert exc_info.value.status_code == 502

    def test_non_json_body(self):
        client = GraphQLClient(session=FakeSession(FakeResponse(raw="<html>")))
        with pytest.raises(SoftFailureError):
            client.post(URL, "query { posts }")

    def test_errors_without_data(self):
        body = {"errors": [{"message": "Not allowed"}]}
        client = GraphQLClient(session=FakeSession(FakeResponse(body=body)))
        with pytest.raises(SoftFailureError, match="Not allowed"):
            client.post(URL, "query { posts }")

    def test_unexpected_body_type(self):
        client = GraphQLClient(session=FakeSession(FakeResponse(body=["data"])))
        with pytest.raises(SoftFailureError):
            client.post(URL, "query { posts }")
