"""
Tests unitaires de l'upload des photos vers S3 (client boto3 mocké).
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from app.services.errors import UpstreamFatalError
from app.services.image_storage import ImageUploader, is_transient_s3_error


def client_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "PutObject")


def test_upload_retourne_url_publique():
    s3 = MagicMock()
    uploader = ImageUploader(client=s3, bucket="expo-bucket")

    url = uploader.upload(b"jpeg-bytes", "image/jpeg", "expo-profile-images")

    kwargs = s3.put_object.call_args.kwargs
    assert kwargs["Bucket"] == "expo-bucket"
    assert kwargs["Key"].startswith("expo-profile-images/")
    assert kwargs["Key"].endswith(".jpg")
    assert kwargs["ContentType"] == "image/jpeg"
    assert url.endswith(kwargs["Key"])


def test_bucket_non_configure(monkeypatch):
    monkeypatch.setattr("app.services.image_storage.settings.S3_BUCKET", "")
    with pytest.raises(UpstreamFatalError):
        ImageUploader(client=MagicMock()).upload(b"x", "image/png", "expo-profile-images")


def test_ralentissement_retente(monkeypatch):
    monkeypatch.setattr("app.services.retry.time.sleep", lambda _: None)
    s3 = MagicMock()
    s3.put_object.side_effect = [client_error("SlowDown"), {}]

    ImageUploader(client=s3, bucket="expo-bucket").upload(b"x", "image/png", "expo-profile-images")

    assert s3.put_object.call_count == 2


def test_acces_refuse_erreur_fatale():
    s3 = MagicMock()
    s3.put_object.side_effect = client_error("AccessDenied")

    with pytest.raises(UpstreamFatalError):
        ImageUploader(client=s3, bucket="expo-bucket").upload(b"x", "image/png", "expo-profile-images")

    assert s3.put_object.call_count == 1


def test_classement_erreurs_s3():
    assert is_transient_s3_error(client_error("Throttling")) is True
    assert is_transient_s3_error(client_error("NoSuchBucket")) is False
    assert is_transient_s3_error(ValueError("x")) is False
