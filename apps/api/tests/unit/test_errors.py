import pytest
from fastapi import HTTPException

from courier_dispatch.errors import (
    DependencyError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)


@pytest.mark.parametrize(
    ("error_type", "status_code"),
    [
        (ValidationError, 422),
        (StateConflictError, 409),
        (NotFoundError, 404),
        (DependencyError, 503),
    ],
)
def test_errors_carry_fixed_status_codes(error_type, status_code):
    error = error_type("nope")

    assert isinstance(error, HTTPException)
    assert error.status_code == status_code
    assert error.message == "nope"

