from __future__ import annotations

import json
from unittest.mock import patch

import cloudinary.exceptions
import pytest

from functions import media_functions


@pytest.fixture
def creds(monkeypatch) -> None:
    monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "demo")
    monkeypatch.setenv("CLOUDINARY_API_KEY", "key")
    monkeypatch.setenv("CLOUDINARY_API_SECRET", "secret")


@pytest.fixture
def no_creds(monkeypatch) -> None:
    for name in ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"):
        monkeypatch.delenv(name, raising=False)


def _post(body) -> dict:
    return {"httpMethod": "POST", "body": body if isinstance(body, str) else json.dumps(body)}


def test_usage_without_credentials_is_zero(no_creds) -> None:
    res = media_functions.usage_handler({})
    assert res["statusCode"] == 200
    assert json.loads(res["body"]) == {"usage": 0, "limit": 0}


def test_usage_reports_storage(creds) -> None:
    with patch.object(media_functions.cloudinary.api, "usage") as usage:
        usage.return_value = {"storage": {"usage": 1024, "limit": 4096}}
        res = media_functions.usage_handler()
    assert json.loads(res["body"]) == {"usage": 1024, "limit": 4096}


def test_usage_error_is_500(creds) -> None:
    with patch.object(media_functions.cloudinary.api, "usage", side_effect=cloudinary.exceptions.Error("boom")):
        res = media_functions.usage_handler()
    assert res["statusCode"] == 500


def test_delete_rejects_other_methods(creds) -> None:
    assert media_functions.delete_handler({"httpMethod": "GET"})["statusCode"] == 405


def test_delete_without_credentials_is_a_no_op(no_creds) -> None:
    with patch.object(media_functions.cloudinary.uploader, "destroy") as destroy:
        res = media_functions.delete_handler(_post({"publicId": "a/b"}))
    assert json.loads(res["body"]) == {"ok": True}
    destroy.assert_not_called()


@pytest.mark.parametrize("body", ["{broken", {"resourceType": "image"}, "[]"])
def test_delete_bad_body_is_400(creds, body) -> None:
    assert media_functions.delete_handler(_post(body))["statusCode"] == 400


def test_delete_destroys_with_invalidation(creds) -> None:
    with patch.object(media_functions.cloudinary.uploader, "destroy") as destroy:
        destroy.return_value = {"result": "ok"}
        res = media_functions.delete_handler(_post({"publicId": "2024/05/01/clip", "resourceType": "video"}))

    destroy.assert_called_once_with("2024/05/01/clip", invalidate=True, resource_type="video")
    assert res["statusCode"] == 200
    assert json.loads(res["body"]) == {"result": "ok"}


def test_delete_error_is_500(creds) -> None:
    with patch.object(
        media_functions.cloudinary.uploader, "destroy", side_effect=cloudinary.exceptions.NotFound("gone")
    ):
        res = media_functions.delete_handler(_post({"publicId": "x"}))
    assert res["statusCode"] == 500
