import base64

import pytest

from config.settings import settings
from storage.media import (
    LocalObjectStorage,
    MediaError,
    S3ObjectStorage,
    decode_data_uri,
    get_object_storage,
    is_data_uri,
    is_data_uri_too_large,
    media_path,
    media_type_for,
)


class FakeS3:
    def __init__(self):
        self.objects = {}

    def put_object(self, *, Bucket, Key, Body, ContentType):
        self.objects[(Bucket, Key)] = (Body, ContentType)


def test_decode_data_uri():
    uri = "data:audio/webm;base64," + base64.b64encode(b"clip").decode("ascii")
    assert decode_data_uri(uri) == ("audio/webm", b"clip")

    with pytest.raises(MediaError):
        decode_data_uri("https://example.com/clip.webm")
    with pytest.raises(MediaError):
        decode_data_uri("data:video/webm,plain")
    with pytest.raises(MediaError):
        decode_data_uri("data:video/webm;base64,!!!")


def test_size_estimate_uses_three_quarters_of_length():
    uri = "data:video/webm;base64," + "A" * 400
    assert is_data_uri_too_large(uri, limit=300)
    assert not is_data_uri_too_large(uri, limit=400)
    assert is_data_uri(uri) and not is_data_uri(None)


def test_media_path_uses_one_based_question_number():
    assert media_path("s1", 0, media_type_for("audio/ogg")) == "submissions/s1/Q1_audio.webm"
    assert media_path("s1", 4, media_type_for("video/webm")) == "submissions/s1/Q5_video.webm"


def test_s3_storage_puts_object_and_returns_url():
    client = FakeS3()
    storage = S3ObjectStorage("bucket-a", client=client)

    url = storage.put("submissions/s1/Q1_video.webm", b"data", "video/webm")

    assert url == "https://bucket-a.s3.amazonaws.com/submissions/s1/Q1_video.webm"
    assert client.objects[("bucket-a", "submissions/s1/Q1_video.webm")] == (b"data", "video/webm")


def test_local_storage_honours_base_url(tmp_path):
    storage = LocalObjectStorage(str(tmp_path), "https://cdn.example.com/")
    url = storage.put("submissions/s1/Q2_audio.webm", b"abc", "audio/webm")
    assert url == "https://cdn.example.com/submissions/s1/Q2_audio.webm"
    assert (tmp_path / "submissions" / "s1" / "Q2_audio.webm").read_bytes() == b"abc"


def test_s3_backend_without_credentials_falls_back_to_local(monkeypatch):
    monkeypatch.setattr(settings, "MEDIA_BACKEND", "s3")
    monkeypatch.setattr(settings, "AWS_ACCESS_KEY_ID", "")
    assert isinstance(get_object_storage(), LocalObjectStorage)

    monkeypatch.setattr(settings, "AWS_ACCESS_KEY_ID", "key")
    monkeypatch.setattr(settings, "AWS_SECRET_ACCESS_KEY", "secret")
    monkeypatch.setattr(settings, "AWS_S3_BUCKET", "bucket-a")
    assert isinstance(get_object_storage(), S3ObjectStorage)
