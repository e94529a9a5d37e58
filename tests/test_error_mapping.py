"""Tests for the exception hierarchy and map_http_error()."""

import pytest

from tagplan_mcp.errors import (
    ConflictError,
    HttpErrorInfo,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
    PlanNotFoundError,
    PrerequisiteError,
    QuotaExceededError,
    RemoteApiError,
    TagPlanError,
    map_http_error,
)


class TestHierarchy:
    def test_plan_not_found_is_prerequisite(self):
        error = PlanNotFoundError("no plan", step="autoedit")

        assert isinstance(error, PrerequisiteError)
        assert isinstance(error, TagPlanError)
        assert error.step == "autoedit"
        assert error.details == {}

    def test_remote_errors_share_base(self):
        for cls in (QuotaExceededError, PermissionDeniedError, NotFoundError):
            assert issubclass(cls, RemoteApiError)

    def test_cause_kept(self):
        cause = OSError("disk")
        error = TagPlanError("failed", cause=cause, details={"path": "x"})

        assert error.cause is cause
        assert error.details == {"path": "x"}


class TestMapHttpError:
    @pytest.mark.parametrize(
        "status,reason,expected",
        [
            (429, None, QuotaExceededError),
            (403, "userRateLimitExceeded", QuotaExceededError),
            (403, "quotaExceeded", QuotaExceededError),
            (403, "forbidden", PermissionDeniedError),
            (403, None, PermissionDeniedError),
            (401, None, PermissionDeniedError),
            (404, None, NotFoundError),
            (409, None, ConflictError),
            (412, None, ConflictError),
            (400, "invalidArgument", InvalidRequestError),
        ],
    )
    def test_status_mapping(self, status, reason, expected):
        error = map_http_error(HttpErrorInfo(status_code=status, reason=reason))

        assert type(error) is expected

    def test_unknown_status(self):
        error = map_http_error(HttpErrorInfo(status_code=503))

        assert type(error) is RemoteApiError
        assert str(error) == "HTTP error 503"

    def test_details_merged(self):
        cause = ValueError("raw")
        error = map_http_error(
            HttpErrorInfo(
                status_code=404,
                reason="notFound",
                message="Container not found",
                details={"url": "https://api/x"},
            ),
            cause=cause,
        )

        assert str(error) == "Container not found"
        assert error.details == {
            "status_code": 404,
            "reason": "notFound",
            "url": "https://api/x",
        }
        assert error.cause is cause
