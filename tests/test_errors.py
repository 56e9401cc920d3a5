"""Tests for error normalisation."""
import httpx

from importer.errors import APIError, DuplicateImportError, describe_error


def test_rejected_request_uses_status_and_body_message():
    error = APIError(404, {"message": "The requested video couldn't be found."})
    assert describe_error(error) == "404: The requested video couldn't be found."


def test_rejected_request_falls_back_to_error_field():
    assert describe_error(APIError(401, {"error": "Unauthorized"})) == "401: Unauthorized"


def test_rejected_request_without_body():
    assert describe_error(APIError(500)) == "500: Request failed"


def test_rejected_request_with_text_body():
    assert describe_error(APIError(502, "Bad Gateway")) == "502: Bad Gateway"


def test_httpx_status_error():
    request = httpx.Request("GET", "https://api.example/videos/1")
    response = httpx.Response(403, json={"message": "Forbidden"}, request=request)
    error = httpx.HTTPStatusError("forbidden", request=request, response=response)
    assert describe_error(error) == "403: Forbidden"


def test_no_response():
    request = httpx.Request("GET", "https://api.example/videos/1")
    error = httpx.ConnectError("connection refused", request=request)
    assert describe_error(error) == "No response from server"


def test_client_side_failure():
    assert describe_error(ValueError("bad input")) == "bad input"
    assert describe_error(RuntimeError()) == "Unknown error"


def test_duplicate_message():
    error = DuplicateImportError("ign-9", "Launch Video")
    assert str(error) == 'Already imported (ID: ign-9, Title: "Launch Video")'
    assert describe_error(error) == str(error)
