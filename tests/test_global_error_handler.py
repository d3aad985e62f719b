import pytest
from unittest.mock import MagicMock, patch
from starlette.requests import Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from fastapi import FastAPI, status

from emasjid_billing.core.global_error_handler import (
    BillingServiceError,
    billing_service_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler,
    create_error_response,
    register_global_exception_handlers,
    unwrap,
)
from emasjid_billing.core.results import ErrorCode, failure, success

# --- Mocking dependencies ---
@pytest.fixture
def mock_logger():
    with patch("emasjid_billing.core.global_error_handler.logger") as mock:
        yield mock

@pytest.fixture
def mock_traceback():
    with patch("emasjid_billing.core.global_error_handler.traceback") as mock:
        mock.format_exc.return_value = "Mocked Traceback"
        yield mock

@pytest.fixture
def mock_json_response():
    with patch("emasjid_billing.core.global_error_handler.JSONResponse") as mock:
        yield mock

@pytest.fixture
def mock_fastapi_app():
    mock_app = MagicMock(spec=FastAPI)
    mock_app.exception_handler = MagicMock()
    return mock_app

@pytest.fixture
def mock_request():
    request = MagicMock(spec=Request)
    request.method = "POST"
    request.url.path = "/api/local-admins/7/assignments"
    return request

# --- Test Cases ---

def test_create_error_response():
    response = create_error_response(status.HTTP_404_NOT_FOUND, "Not Found")
    assert response == {"message": "Not Found", "code": 404}

    response = create_error_response(status.HTTP_409_CONFLICT, "Full", {"local_admin_id": 7}, error="CAPACITY_EXCEEDED")
    assert response == {"message": "Full", "code": 409, "error": "CAPACITY_EXCEEDED", "details": {"local_admin_id": 7}}


def test_unwrap_returns_value_of_success():
    assert unwrap(success("value", created=True)) == "value"


@pytest.mark.parametrize("code,expected", [
    (ErrorCode.NOT_FOUND, 404),
    (ErrorCode.CONFLICT, 409),
    (ErrorCode.INVALID_TRANSITION, 409),
    (ErrorCode.CAPACITY_EXCEEDED, 409),
    (ErrorCode.TENANT_NOT_ELIGIBLE, 403),
    (ErrorCode.VALIDATION_ERROR, 422),
])
def test_unwrap_raises_with_status(code, expected):
    with pytest.raises(BillingServiceError) as exc_info:
        unwrap(failure(code, "nope"))
    assert exc_info.value.status_code == expected
    assert exc_info.value.error.code == code


@pytest.mark.asyncio
async def test_billing_service_exception_handler(mock_logger, mock_json_response, mock_request):
    exc = BillingServiceError(failure(ErrorCode.CAPACITY_EXCEEDED, "No local admin is currently available").error)

    await billing_service_exception_handler(mock_request, exc)

    mock_logger.warning.assert_called_once_with(
        "Billing Error: CAPACITY_EXCEEDED - No local admin is currently available "
        "for POST /api/local-admins/7/assignments"
    )
    mock_json_response.assert_called_once_with(
        status_code=409,
        content={"message": "No local admin is currently available", "code": 409, "error": "CAPACITY_EXCEEDED"},
    )


@pytest.mark.asyncio
async def test_http_exception_handler(mock_logger, mock_json_response):
    mock_request = MagicMock(spec=Request)
    mock_request.method = "GET"
    mock_request.url.path = "/test"

    exc = StarletteHTTPException(status_code=404, detail="Resource not found")

    await http_exception_handler(mock_request, exc)

    mock_logger.warning.assert_called_once_with("HTTP Exception: 404 - Resource not found for GET /test")
    mock_json_response.assert_called_once_with(
        status_code=404,
        content={"message": "Resource not found", "code": 404},
        headers=None,
    )


@pytest.mark.asyncio
async def test_validation_exception_handler(mock_logger, mock_json_response, mock_request):
    validation_errors = [
        {"loc": ["body", "tenant_id"], "msg": "field required", "type": "missing"},
        {"loc": ["body", "max_capacity"], "msg": "Input should be greater than or equal to 1", "type": "greater_than_equal"},
    ]
    exc = RequestValidationError(errors=validation_errors)

    await validation_exception_handler(mock_request, exc)

    mock_logger.warning.assert_called_once()
    mock_json_response.assert_called_once_with(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "message": "Validation failed",
            "code": status.HTTP_422_UNPROCESSABLE_ENTITY,
            "error": "VALIDATION_ERROR",
            "details": {
                "errors": [
                    "Field 'body.tenant_id': field required",
                    "Field 'body.max_capacity': Input should be greater than or equal to 1",
                ]
            },
        },
    )


@pytest.mark.asyncio
async def test_general_exception_handler(mock_logger, mock_traceback, mock_json_response):
    mock_request = MagicMock(spec=Request)
    mock_request.method = "GET"
    mock_request.url.path = "/internal"

    exc = ValueError("Something went wrong internally")

    await general_exception_handler(mock_request, exc)

    mock_logger.error.assert_called_once()
    mock_json_response.assert_called_once_with(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "An unexpected internal server error occurred.", "code": 500},
    )


def test_register_global_exception_handlers(mock_fastapi_app):
    register_global_exception_handlers(mock_fastapi_app)

    assert mock_fastapi_app.exception_handler.call_count == 4
    mock_fastapi_app.exception_handler.assert_any_call(BillingServiceError)
    mock_fastapi_app.exception_handler.assert_any_call(StarletteHTTPException)
    mock_fastapi_app.exception_handler.assert_any_call(RequestValidationError)
    mock_fastapi_app.exception_handler.assert_any_call(Exception)
