from __future__ import annotations

import os
import secrets
import time
from pathlib import Path

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}


class LocalAssetStorage:
    """Write-once file storage for generated images, namespaced by business.

    Files are served back through ``GET /assets/files/...`` so the URL
    returned by :meth:`upload` stays stable for the lifetime of the file.
    """

    def __init__(self, root: Path, public_base_url: str):
        self.root = root
        self.public_base_url = public_base_url.rstrip("/")
        self.root.mkdir(parents=True, exist_ok=True)

    def generated_dir(self, business_id: str) -> Path:
        return self.root / "businesses" / self.safe_filename(business_id) / "generated"

    def upload(self, business_id: str, data: bytes, mime_type: str = "image/png") -> str:
        ext = _EXTENSIONS.get(mime_type, "png")
        name = f"{int(time.time() * 1000)}_{secrets.token_hex(4)}.{ext}"
        out_dir = self.generated_dir(business_id)
        out_dir.mkdir(parents=True, exist_ok=True)
        # "xb" refuses to overwrite an existing object
        with (out_dir / name).open("xb") as f:
            f.write(data)
        return self.public_url(business_id, name)

    def public_url(self, business_id: str, name: str) -> str:
        return f"{self.public_base_url}/assets/files/{self.safe_filename(business_id)}/generated/{name}"

    def resolve(self, business_id: str, name: str) -> Path:
        return self.generated_dir(business_id) / self.safe_filename(name)

    def safe_filename(self, name: str) -> str:
        # Very small sanitization to avoid path traversal
        name = os.path.basename(name)
        name = name.replace("..", ".")
        return name
