import json
from http import HTTPStatus

import pytest

from akriveia.errors import AkError, AkErrorType


def test_internal_json_matches_wire_format():
    assert AkError.internal().to_json() == (
        '{"Err":{"reason":"Internal Server Error","t":"Internal"}}'
    )


def test_str_is_json():
    err = AkError.not_found()
    assert str(err) == err.to_json()
    assert json.loads(str(err)) == err.to_dict()


@pytest.mark.parametrize(
    "factory, reason, kind",
    [
        (AkError.internal, "Internal Server Error", AkErrorType.INTERNAL),
        (AkError.not_found, "Not Found", AkErrorType.NOT_FOUND),
        (AkError.unauthorized, "Unauthorized", AkErrorType.UNAUTHORIZED),
        (AkError.file_upload, "File upload failure", AkErrorType.FILE_UPLOAD),
    ],
)
def test_fixed_reason_factories(factory, reason, kind):
    err = factory()
    assert err.reason == reason
    assert err.t is kind


def test_reason_factories_keep_reason():
    assert AkError.bad_request("bad id").to_dict() == {
        "Err": {"reason": "bad id", "t": "BadRequest"}
    }
    assert AkError.validation("dup key").t is AkErrorType.VALIDATION
    assert AkError.validation("dup key").reason == "dup key"


@pytest.mark.parametrize(
    "err, status",
    [
        (AkError.bad_request("x"), HTTPStatus.BAD_REQUEST),
        (AkError.file_upload(), HTTPStatus.BAD_REQUEST),
        (AkError.validation("x"), HTTPStatus.BAD_REQUEST),
        (AkError.internal(), HTTPStatus.INTERNAL_SERVER_ERROR),
        (AkError("db down", AkErrorType.CONNECTION_ERROR), HTTPStatus.INTERNAL_SERVER_ERROR),
        (AkError.not_found(), HTTPStatus.NOT_FOUND),
        (AkError.unauthorized(), HTTPStatus.UNAUTHORIZED),
    ],
)
def test_http_status(err, status):
    assert err.http_status() is status


def test_is_raisable_and_comparable():
    with pytest.raises(AkError) as info:
        raise AkError.not_found()
    assert info.value == AkError.not_found()
    assert AkError.bad_request("a") != AkError.validation("a")