from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from tokenforge.storage.ipfs import IpfsError, PinningClient
from tokenforge.runtime.errors import PinningFailure
from tokenforge.util.event_log import log_event

Json = Dict[str, Any]

log = logging.getLogger("tokenforge.pinner")


@dataclass(frozen=True)
class PinnedAsset:
    cid: str
    url: str


@dataclass(frozen=True)
class PinnedContent:
    image: Optional[PinnedAsset]
    metadata: PinnedAsset
    document: Json

    @property
    def metadata_uri(self) -> str:
        return self.metadata.url


def build_metadata_document(*, name: str, symbol: str, description: str, image_url: str) -> Json:
    return {
        "name": name,
        "symbol": symbol,
        "description": description,
        "image": image_url,
    }


class ContentPinner:
    """Pins the token image, then the JSON document that references it.

    The image upload returns before the document is built, so the document
    either carries the real image URL or "" when no image was supplied. A failed
    image upload never falls through to a document with an empty image field.
    """

    def __init__(self, client: PinningClient) -> None:
        self.client = client

    def _add(self, stage: str, data: bytes | str, *, name: str) -> PinnedAsset:
        try:
            res = self.client.add(data, name=name)
        except IpfsError as e:
            raise PinningFailure(f"{stage}_upload_failed", str(e), details={"stage": stage, "ipfs_code": e.code}) from e
        except OSError as e:
            raise PinningFailure(f"{stage}_upload_failed", f"ipfs add: {e}", details={"stage": stage}) from e

        url = self.client.gateway_url(res.cid)
        if not url:
            raise PinningFailure(f"{stage}_upload_failed", "no gateway url for pinned content", details={"stage": stage})
        log_event(log, "content_pinned", stage=stage, cid=res.cid, size=res.size, url=url)
        return PinnedAsset(cid=res.cid, url=url)

    def pin_image(self, image: bytes, *, name: str = "image") -> PinnedAsset:
        if not image:
            raise PinningFailure("image_upload_failed", "image is empty", details={"stage": "image"})
        return self._add("image", image, name=name)

    def pin(
        self,
        *,
        name: str,
        symbol: str,
        description: str,
        image: Optional[bytes] = None,
        image_name: str = "image",
    ) -> PinnedContent:
        pinned_image: Optional[PinnedAsset] = None
        if image is not None:
            pinned_image = self.pin_image(image, name=image_name)

        doc = build_metadata_document(
            name=name,
            symbol=symbol,
            description=description,
            image_url=pinned_image.url if pinned_image is not None else "",
        )
        payload = json.dumps(doc, separators=(",", ":"), ensure_ascii=False)
        pinned_doc = self._add("metadata", payload, name="metadata.json")
        return PinnedContent(image=pinned_image, metadata=pinned_doc, document=doc)
