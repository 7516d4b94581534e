"""Tests for mapping kernel exceptions to HTTP-shaped responses."""

from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from colony_kernel.error_mapping import INTERNAL_ERROR, to_error_response
from colony_kernel.exceptions import (
    ColonyHasPlotsError,
    DuplicatePlotNumberError,
    ForbiddenError,
    PlotNotFoundError,
    SequencingError,
    ValidationError,
)


class TestKernelErrors:

    @pytest.mark.parametrize(
        "exc, status, code",
        [
            (ValidationError("area", "must be greater than zero"), 400, "VALIDATION_ERROR"),
            (PlotNotFoundError("p-1"), 404, "NOT_FOUND"),
            (ForbiddenError("plot_delete"), 403, "FORBIDDEN"),
            (DuplicatePlotNumberError("c-1", "PLOT-0001"), 409, "DUPLICATE_PLOT_NUMBER"),
            (SequencingError("plot_number", "a colony is required"), 409, "SEQUENCING_ERROR"),
            (ColonyHasPlotsError("c-1", 3), 409, "COLONY_HAS_PLOTS"),
        ],
    )
    def test_status_and_code(self, exc, status, code):
        http_status, payload = to_error_response(exc)

        assert http_status == status
        assert payload["success"] is False
        assert payload["error"]["code"] == code
        assert payload["error"]["message"] == str(exc)

    def test_structured_fields_included(self):
        _, payload = to_error_response(ValidationError("area", "must be greater than zero"))

        assert payload["error"]["field"] == "area"
        assert payload["error"]["reason"] == "must be greater than zero"

    def test_not_found_names_entity(self):
        plot_id = uuid4()

        _, payload = to_error_response(PlotNotFoundError(plot_id))

        assert payload["error"]["entity"] == "plot"
        assert payload["error"]["entity_id"] == str(plot_id)


class TestPersistenceErrors:

    def test_unreachable_database(self, captured_logs):
        exc = OperationalError("SELECT 1", {}, Exception("connection refused"))

        http_status, payload = to_error_response(exc)

        assert http_status == 503
        assert payload["error"]["code"] == "PERSISTENCE_UNAVAILABLE"
        assert any(
            r["message"] == "persistence_unavailable" and r["level"] == "ERROR"
            for r in captured_logs()
        )


class TestUnexpectedErrors:

    def test_details_hidden(self):
        http_status, payload = to_error_response(KeyError("secret_column"))

        assert http_status == 500
        assert payload["error"] == {
            "code": INTERNAL_ERROR,
            "message": "An internal error occurred",
        }

    def test_details_exposed(self):
        _, payload = to_error_response(RuntimeError("boom"), expose_details=True)

        assert payload["error"]["message"] == "boom"
        assert payload["error"]["type"] == "RuntimeError"
