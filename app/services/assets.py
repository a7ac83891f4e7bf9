"""
Image storage for book covers, author portraits and profile pictures.

Two backends are available. ``CloudinaryStorage`` talks to the hosted image
service over its signed REST API; ``LocalDiskStorage`` keeps files under the
upload directory, which the application serves at ``/uploads``. Either way the
rest of the system only keeps the opaque reference returned by ``upload``.
"""
import hashlib
import logging
import os
import time
from pathlib import Path
from typing import Protocol

import httpx
from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool
from werkzeug.utils import secure_filename

from app.config import Settings

logger = logging.getLogger(__name__)

CLOUDINARY_API_URL = "https://api.cloudinary.com/v1_1"

ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
MAX_IMAGE_BYTES = 10 * 1024 * 1024

# Default images shared by every record; never deleted
PROTECTED_IMAGES = {"default-book", "default-user", "default-author"}


class AssetError(Exception):
    pass


class InvalidImageError(AssetError):
    pass


class AssetUploadError(AssetError):
    pass


class AssetStorage(Protocol):
    async def upload(self, file: UploadFile, folder: str) -> str:
        ...

    async def delete(self, reference: str) -> bool:
        ...

    async def close(self) -> None:
        ...


def _extension(filename: str | None) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


async def read_image(file: UploadFile) -> bytes:
    """
    Reads an uploaded image, rejecting unsupported types and oversized files
    """
    if _extension(file.filename) not in ALLOWED_EXTENSIONS:
        raise InvalidImageError(
            f"Unsupported image type; allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    data = await file.read()
    if not data:
        raise InvalidImageError("Uploaded image is empty")
    if len(data) > MAX_IMAGE_BYTES:
        raise InvalidImageError("Uploaded image is too large")
    return data


def is_protected(reference: str) -> bool:
    stem = reference.rsplit("/", 1)[-1].rsplit(".", 1)[0]
    return stem in PROTECTED_IMAGES


def sign_params(params: dict, api_secret: str) -> str:
    """
    Computes a Cloudinary request signature:
    SHA-1 of the sorted ``key=value`` pairs joined by ``&``, followed by the secret
    """
    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ""))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class CloudinaryStorage:
    def __init__(self, client: httpx.AsyncClient, api_key: str, api_secret: str, root_folder: str):
        self.client = client
        self.api_key = api_key
        self.api_secret = api_secret
        self.root_folder = root_folder

    def _signed(self, params: dict) -> dict:
        params = {**params, "timestamp": int(time.time())}
        params["signature"] = sign_params(params, self.api_secret)
        params["api_key"] = self.api_key
        return params

    async def upload(self, file: UploadFile, folder: str) -> str:
        """
        Uploads an image and returns its public_id
        """
        data = await read_image(file)
        params = self._signed({"folder": f"{self.root_folder}/{folder}"})

        try:
            response = await self.client.post(
                "/image/upload",
                data={key: str(value) for key, value in params.items()},
                files={"file": (file.filename, data, file.content_type or "application/octet-stream")},
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise AssetUploadError(f"Image upload failed: {exc}") from exc

        public_id = response.json().get("public_id")
        if not public_id:
            raise AssetUploadError("Image host did not return a public_id")
        return public_id

    async def delete(self, reference: str) -> bool:
        params = self._signed({"public_id": reference})
        response = await self.client.post(
            "/image/destroy",
            data={key: str(value) for key, value in params.items()},
        )
        response.raise_for_status()
        return response.json().get("result") == "ok"

    async def close(self) -> None:
        await self.client.aclose()


def storage_filename(filename: str | None) -> str:
    """
    Safe on-disk name for an upload; the extension is kept even when
    nothing of the stem survives sanitizing
    """
    stem, ext = os.path.splitext(filename or "")
    name = secure_filename(stem) or "upload"
    ext = secure_filename(ext).lower()
    return f"{name}.{ext}" if ext else name


class LocalDiskStorage:
    """
    Stores images as ``<folder>/<millis>-<name>`` under the upload directory
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def path_for(self, reference: str) -> Path:
        path = (self.root / reference).resolve()
        if not path.is_relative_to(self.root):
            raise AssetError(f"Invalid asset reference: {reference}")
        return path

    async def upload(self, file: UploadFile, folder: str) -> str:
        data = await read_image(file)
        reference = f"{folder}/{int(time.time() * 1000)}-{storage_filename(file.filename)}"
        path = self.path_for(reference)

        def write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await run_in_threadpool(write)
        except OSError as exc:
            raise AssetUploadError(f"Could not store image: {exc}") from exc
        return reference

    async def delete(self, reference: str) -> bool:
        path = self.path_for(reference)
        if not path.is_file():
            return False
        await run_in_threadpool(path.unlink)
        return True

    async def close(self) -> None:
        return None


async def safe_delete(storage: AssetStorage, reference: str | None) -> bool:
    """
    Best-effort deletion of a stored image.
    Protected images are kept; failures are logged and never raised.
    """
    if not reference:
        return False

    if is_protected(reference):
        logger.info("Keeping protected image %s", reference)
        return False

    try:
        deleted = await storage.delete(reference)
    except (httpx.HTTPError, AssetError, OSError) as exc:
        logger.warning("Could not delete image %s: %s", reference, exc)
        return False

    if not deleted:
        logger.warning("Image %s was not deleted (not found)", reference)
    return deleted


def build_storage(settings: Settings, client: httpx.AsyncClient | None = None) -> AssetStorage:
    """
    Creates the storage backend selected by ASSET_BACKEND
    """
    if settings.asset_backend == "cloudinary":
        if not (settings.cloudinary_cloud_name and settings.cloudinary_api_key and settings.cloudinary_api_secret):
            raise RuntimeError("Cloudinary backend requires CLOUDINARY_CLOUD_NAME, _API_KEY and _API_SECRET")
        if client is None:
            client = httpx.AsyncClient(
                base_url=f"{CLOUDINARY_API_URL}/{settings.cloudinary_cloud_name}",
                timeout=settings.asset_timeout,
            )
        return CloudinaryStorage(
            client,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            root_folder=settings.cloudinary_folder,
        )

    if settings.asset_backend == "local":
        return LocalDiskStorage(settings.upload_dir)

    raise RuntimeError(f"Unknown ASSET_BACKEND: {settings.asset_backend}")
