import os
import shutil
from typing import Optional

import requests

MEDIA_URL_PREFIX = "/media/"


class MediaStore:
    """Filesystem layout for generated media.

    Everything lives under ``root`` and is served by the app at ``/media``,
    so a stored file's public URL is its path relative to the root.
    """

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def ensure_media_dirs(self):
        for sub in ("clips", "frames", "films"):
            os.makedirs(os.path.join(self.root, sub), exist_ok=True)

    def path_for(self, *parts: str) -> str:
        path = os.path.join(self.root, *parts)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        return path

    def url_for(self, path: str) -> str:
        rel = os.path.relpath(os.path.abspath(path), self.root)
        return MEDIA_URL_PREFIX + rel.replace(os.sep, "/")

    def local_path(self, url: Optional[str]) -> Optional[str]:
        """Map a ``/media/...`` URL back onto disk, or None for anything else."""
        if not url or not url.startswith(MEDIA_URL_PREFIX):
            return None
        rel = url[len(MEDIA_URL_PREFIX):].split("?", 1)[0]
        path = os.path.abspath(os.path.join(self.root, rel))
        if not path.startswith(self.root + os.sep):
            return None
        return path

    def save_bytes(self, data: bytes, *parts: str) -> str:
        path = self.path_for(*parts)
        with open(path, "wb") as f:
            f.write(data)
        return self.url_for(path)

    def stage(self, url: str, dest_path: str, timeout: float = 120.0) -> str:
        """Copy a stored clip, or download a remote one, to ``dest_path``."""
        local = self.local_path(url)
        if local is not None:
            if not os.path.exists(local):
                raise FileNotFoundError(f"clip file missing: {url}")
            shutil.copyfile(local, dest_path)
            return dest_path

        if url.startswith("http://") or url.startswith("https://"):
            with requests.get(url, stream=True, timeout=timeout) as resp:
                resp.raise_for_status()
                with open(dest_path, "wb") as f:
                    for chunk in resp.iter_content(chunk_size=1 << 16):
                        f.write(chunk)
            return dest_path

        if os.path.exists(url):
            shutil.copyfile(url, dest_path)
            return dest_path

        raise FileNotFoundError(f"unsupported clip location: {url}")
