import io
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi import UploadFile

from app.config import Settings
from app.services.assets import (
    AssetError,
    AssetUploadError,
    CloudinaryStorage,
    InvalidImageError,
    LocalDiskStorage,
    build_storage,
    is_protected,
    safe_delete,
    sign_params,
    storage_filename,
)


def make_upload(filename="cover.png", data=b"\x89PNG fake image"):
    return UploadFile(file=io.BytesIO(data), filename=filename)


def make_storage(handler) -> CloudinaryStorage:
    client = httpx.AsyncClient(
        base_url="https://api.cloudinary.com/v1_1/demo",
        transport=httpx.MockTransport(handler),
    )
    return CloudinaryStorage(client, api_key="key", api_secret="secret", root_folder="pedbook")


def test_sign_params_matches_reference_signature():
    params = {
        "eager": "w_400,h_300,c_pad|w_260,h_200,c_crop",
        "public_id": "sample_image",
        "timestamp": 1315060510,
    }
    assert sign_params(params, "abcd") == "bfd09f95f331f558cbd1320e67aa8d488770583e"


def test_sign_params_skips_empty_values():
    assert sign_params({"folder": "pedbook/books", "timestamp": 1700000000, "tags": ""}, "secret") == (
        "288065a1074d2d6a5c2c67bf6957f35e26a6d9b6"
    )


@pytest.mark.parametrize(
    "reference, protected",
    [
        ("pedbook/books/default-book", True),
        ("default-user.png", True),
        ("pedbook/authors/default-author", True),
        ("pedbook/books/abc123", False),
        ("books/1700000000000-default-book.png", False),
    ],
)
def test_is_protected(reference, protected):
    assert is_protected(reference) is protected


def test_storage_filename():
    assert storage_filename("../../etc/passwd") == "etc_passwd"
    assert storage_filename("my cover (1).png") == "my_cover_1.png"
    assert storage_filename("Cover.PNG") == "Cover.png"
    assert storage_filename("..") == "upload"
    assert storage_filename(None) == "upload"


def test_storage_filename_keeps_extension_of_non_ascii_names():
    assert storage_filename("обложка.png") == "upload.png"
    assert storage_filename("émile zola.jpg") == "emile_zola.jpg"


@pytest.mark.anyio
async def test_cloudinary_upload_posts_signed_request():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = request.content
        return httpx.Response(200, json={"public_id": "pedbook/books/abc123"})

    storage = make_storage(handler)
    reference = await storage.upload(make_upload(), "books")
    await storage.close()

    assert reference == "pedbook/books/abc123"
    assert seen["path"] == "/v1_1/demo/image/upload"
    assert b'name="folder"' in seen["body"]
    assert b"pedbook/books" in seen["body"]
    assert b'name="signature"' in seen["body"]
    assert b'name="api_key"' in seen["body"]


@pytest.mark.anyio
async def test_cloudinary_upload_failure_raises():
    storage = make_storage(lambda request: httpx.Response(500, json={"error": "boom"}))
    with pytest.raises(AssetUploadError):
        await storage.upload(make_upload(), "books")
    await storage.close()


@pytest.mark.anyio
async def test_cloudinary_upload_without_public_id_raises():
    storage = make_storage(lambda request: httpx.Response(200, json={}))
    with pytest.raises(AssetUploadError):
        await storage.upload(make_upload(), "books")
    await storage.close()


@pytest.mark.anyio
async def test_cloudinary_delete_uses_destroy():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"result": "ok"})

    storage = make_storage(handler)
    assert await storage.delete("pedbook/books/abc123") is True
    await storage.close()

    assert seen["path"] == "/v1_1/demo/image/destroy"
    assert seen["form"]["public_id"] == ["pedbook/books/abc123"]
    assert seen["form"]["api_key"] == ["key"]
    assert "signature" in seen["form"]


@pytest.mark.anyio
async def test_safe_delete_never_raises():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    storage = make_storage(handler)
    assert await safe_delete(storage, "pedbook/books/abc123") is False
    assert await safe_delete(storage, "pedbook/books/default-book") is False
    assert await safe_delete(storage, None) is False
    await storage.close()

    # Protected and empty references never reach the image host
    assert len(calls) == 1


@pytest.mark.anyio
async def test_local_storage_round_trip(tmp_path):
    storage = LocalDiskStorage(tmp_path)
    reference = await storage.upload(make_upload("my cover.png"), "books")

    assert reference.startswith("books/")
    assert reference.endswith("-my_cover.png")
    assert (tmp_path / reference).read_bytes() == b"\x89PNG fake image"

    assert await storage.delete(reference) is True
    assert await storage.delete(reference) is False


@pytest.mark.anyio
async def test_local_storage_rejects_bad_files(tmp_path):
    storage = LocalDiskStorage(tmp_path)

    with pytest.raises(InvalidImageError):
        await storage.upload(make_upload("notes.txt"), "books")
    with pytest.raises(InvalidImageError):
        await storage.upload(make_upload("empty.png", b""), "books")
    with pytest.raises(AssetError):
        storage.path_for("../outside.png")


def test_build_storage(tmp_path):
    assert isinstance(build_storage(Settings(asset_backend="local", upload_dir=str(tmp_path))), LocalDiskStorage)

    with pytest.raises(RuntimeError):
        build_storage(Settings(asset_backend="cloudinary", cloudinary_cloud_name=""))
    with pytest.raises(RuntimeError):
        build_storage(Settings(asset_backend="ftp"))
