# Overview: Local image storage used by products and shops.

from __future__ import annotations

import os

from flask import current_app


class LocalImageStorage:
    """Images live under UPLOAD_DIR; refs are paths relative to it, optionally prefixed with /uploads/."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def path_for(self, ref: str) -> str:
        rel = ref.lstrip("/")
        if rel.startswith("uploads/"):
            rel = rel[len("uploads/"):]
        path = os.path.abspath(os.path.join(self.root, rel))
        if os.path.commonpath([path, self.root]) != self.root:
            raise ValueError(f"image ref escapes upload directory: {ref}")
        return path

    def remove(self, ref: str) -> bool:
        """Delete the file behind ref. Returns False if it was already gone."""
        try:
            os.remove(self.path_for(ref))
        except FileNotFoundError:
            return False
        return True


def default_storage() -> LocalImageStorage:
    return LocalImageStorage(current_app.config.get("UPLOAD_DIR", "uploads"))


def remove_image_quietly(ref: str | None, storage: LocalImageStorage | None = None) -> None:
    """Best-effort removal; failures are logged and never raised."""
    if not ref:
        return
    storage = storage or default_storage()
    try:
        storage.remove(ref)
    except (OSError, ValueError):
        current_app.logger.warning("Failed to remove image %s", ref, exc_info=True)
