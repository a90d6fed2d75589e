import pytest

from conftest import FakeStorageError, make_jpeg

from app.services.exceptions import (
    ImageNotFoundError,
    ImageStorageError,
    ImageUploadError,
    InvalidImageError,
    ValidationError,
)


def test_upload_keys_object_by_owner_and_timestamp(image_store, fake_minio, jpeg_bytes):
    key = image_store.upload(jpeg_bytes, "u1")

    assert key == "u1/2024-01-01T12:00:00Z.jpg"
    assert fake_minio.objects[("receipts", key)] == jpeg_bytes


def test_upload_rejects_non_image_bytes(image_store, fake_minio):
    with pytest.raises(InvalidImageError):
        image_store.upload(b"definitely not a jpeg", "u1")
    assert fake_minio.objects == {}


def test_upload_failure_is_reported_as_upload_error(image_store, fake_minio, jpeg_bytes):
    fake_minio.failing.add("put_object")

    with pytest.raises(ImageUploadError):
        image_store.upload(jpeg_bytes, "u1")


def test_resolve_url_returns_presigned_link(image_store, jpeg_bytes):
    key = image_store.upload(jpeg_bytes, "u1")

    url = image_store.resolve_url(key)

    assert url.startswith(f"http://minio.test/receipts/{key}")


def test_resolve_url_of_missing_object_is_not_found(image_store):
    with pytest.raises(ImageNotFoundError):
        image_store.resolve_url("u1/2023-05-05T10:00:00Z.jpg")


def test_resolve_url_rejects_path_traversal(image_store):
    with pytest.raises(ValidationError):
        image_store.resolve_url("../other-user/secret.jpg")


def test_replace_overwrites_at_the_same_key(image_store, fake_minio, jpeg_bytes):
    key = image_store.upload(jpeg_bytes, "u1")
    replacement = make_jpeg(color=(10, 200, 10))

    image_store.replace(replacement, key)

    assert fake_minio.objects[("receipts", key)] == replacement
    assert len(fake_minio.objects) == 1


def test_delete_removes_object(image_store, fake_minio, jpeg_bytes):
    key = image_store.upload(jpeg_bytes, "u1")

    image_store.delete(key)

    assert not fake_minio.has(key)
    with pytest.raises(ImageNotFoundError):
        image_store.resolve_url(key)


def test_delete_of_already_deleted_image_does_not_raise(image_store, jpeg_bytes):
    key = image_store.upload(jpeg_bytes, "u1")
    image_store.delete(key)

    image_store.delete(key)


def test_delete_tolerates_storage_not_found_errors(image_store, fake_minio):
    def _remove_missing(bucket, key):
        raise FakeStorageError("NoSuchKey", "Object does not exist")

    fake_minio.remove_object = _remove_missing

    image_store.delete("u1/2024-01-01T12:00:00Z.jpg")


def test_delete_surfaces_other_storage_failures(image_store, fake_minio, jpeg_bytes):
    key = image_store.upload(jpeg_bytes, "u1")
    fake_minio.failing.add("remove_object")

    with pytest.raises(ImageStorageError):
        image_store.delete(key)
