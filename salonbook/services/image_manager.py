"""
Optimistic reorder/delete of a service's gallery images.

The local list changes immediately; the server call follows. If the server
rejects the change, the snapshot taken before the update is restored as-is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Sequence, Tuple

from ..domain.exceptions import ApiError

logger = logging.getLogger(__name__)


class ImageClientProtocol(Protocol):
    async def reorder_service_images(self, service_id: int, image_ids: Sequence[int]) -> Dict[str, Any]:
        """Persist the new order."""

    async def delete_service_image(self, service_id: int, image_id: int) -> Dict[str, Any]:
        """Delete one image."""


@dataclass(frozen=True)
class ServiceImage:
    id: int
    url: str
    order: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceImage":
        return cls(id=int(data["id"]), url=str(data.get("url", "")), order=int(data.get("order") or 0))


class ServiceImageManager:
    """Holds the image list of one service."""

    def __init__(self, client: ImageClientProtocol, service_id: int, images: Sequence[ServiceImage]):
        self._client = client
        self.service_id = service_id
        self._images: Tuple[ServiceImage, ...] = tuple(sorted(images, key=lambda i: i.order))
        self.error: Optional[str] = None

    @property
    def images(self) -> Tuple[ServiceImage, ...]:
        return self._images

    async def move(self, index: int, direction: str) -> bool:
        """
        Swap the image at ``index`` with its neighbour (``up`` or ``down``).

        Returns False when the move is out of range or was reverted.
        """
        target = index - 1 if direction == "up" else index + 1
        if not (0 <= index < len(self._images) and 0 <= target < len(self._images)):
            return False

        reordered = list(self._images)
        reordered[index], reordered[target] = reordered[target], reordered[index]
        renumbered = tuple(replace(img, order=pos) for pos, img in enumerate(reordered, start=1))

        return await self._apply(
            renumbered,
            lambda: self._client.reorder_service_images(self.service_id, [img.id for img in renumbered]),
        )

    async def delete(self, image_id: int) -> bool:
        remaining = tuple(img for img in self._images if img.id != image_id)
        if len(remaining) == len(self._images):
            return False
        return await self._apply(
            remaining,
            lambda: self._client.delete_service_image(self.service_id, image_id),
        )

    async def _apply(
        self,
        updated: Tuple[ServiceImage, ...],
        commit: Callable[[], Awaitable[Dict[str, Any]]],
    ) -> bool:
        snapshot = self._images
        self._images = updated
        self.error = None

        try:
            await commit()
        except ApiError as e:
            logger.warning("Image update for service %s rejected: %s", self.service_id, e)
            self._images = snapshot
            self.error = e.message
            return False

        return True
