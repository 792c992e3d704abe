"""Recorded audio and uploaded images as they cross into the service."""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Optional

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Uploads beyond this are rejected before they reach the model
MAX_MEDIA_BYTES = 15 * 1024 * 1024
# Longest edge sent to the model for handwritten pages
MAX_IMAGE_EDGE = 2048

_PIL_MIME = {
	"JPEG": "image/jpeg",
	"PNG": "image/png",
	"WEBP": "image/webp",
	"GIF": "image/gif",
	"HEIF": "image/heic",
}


class MediaError(ValueError):
	"""Raised when an upload cannot be used as a recording or image."""


@dataclass(frozen=True)
class MediaClip:
	data: bytes
	mime_type: str

	def to_base64(self) -> str:
		return base64.b64encode(self.data).decode("ascii")

	def to_data_url(self) -> str:
		return f"data:{self.mime_type};base64,{self.to_base64()}"

	def as_inline_part(self) -> dict:
		return {"inline_data": {"mime_type": self.mime_type, "data": self.to_base64()}}

	@classmethod
	def from_base64(cls, payload: str, mime_type: str) -> "MediaClip":
		# Accept data URLs as produced by browsers
		if payload.startswith("data:") and "," in payload:
			header, payload = payload.split(",", 1)
			mime_type = header[5:].split(";", 1)[0] or mime_type
		try:
			data = base64.b64decode(payload, validate=True)
		except (binascii.Error, ValueError) as exc:
			raise MediaError("payload is not valid base64") from exc
		return cls.audio(data, mime_type) if mime_type.startswith("audio/") else cls.image(data)

	@classmethod
	def audio(cls, data: bytes, mime_type: Optional[str] = None) -> "MediaClip":
		if not data:
			raise MediaError("empty recording; microphone access is required for this stage")
		if len(data) > MAX_MEDIA_BYTES:
			raise MediaError("recording is too large")
		return cls(data=data, mime_type=mime_type or "audio/webm")

	@classmethod
	def image(cls, data: bytes) -> "MediaClip":
		"""Validate an uploaded image, downscaling very large pages."""
		if not data:
			raise MediaError("empty image upload")
		if len(data) > MAX_MEDIA_BYTES:
			raise MediaError("image is too large")
		try:
			img = Image.open(BytesIO(data))
			img.load()
		except (UnidentifiedImageError, OSError) as exc:
			raise MediaError(f"could not read image: {exc}") from exc
		mime = _PIL_MIME.get(img.format or "", "")
		if max(img.size) > MAX_IMAGE_EDGE or not mime:
			img.thumbnail((MAX_IMAGE_EDGE, MAX_IMAGE_EDGE))
			if img.mode not in ("RGB", "L"):
				img = img.convert("RGB")
			out = BytesIO()
			img.save(out, format="JPEG", quality=85)
			logger.debug("Re-encoded %s upload to JPEG %sx%s", img.format, *img.size)
			return cls(data=out.getvalue(), mime_type="image/jpeg")
		return cls(data=data, mime_type=mime)


class RecordingBusy(RuntimeError):
	"""Raised when a second capture is started while one is active."""


class RecordingSlot:
	"""Exclusive capture slot of a session.

	The active recording stage acquires it, and it is released on stop, on
	error, and when the session is torn down.
	"""

	def __init__(self) -> None:
		self.owner: Optional[str] = None

	@property
	def busy(self) -> bool:
		return self.owner is not None

	def acquire(self, owner: str) -> None:
		if self.owner is not None:
			raise RecordingBusy(f"recording already active for {self.owner}")
		self.owner = owner

	def release(self) -> None:
		if self.owner is not None:
			logger.debug("Released recording slot held by %s", self.owner)
		self.owner = None

	def hold(self, owner: str) -> "RecordingSlot":
		self.acquire(owner)
		return self

	def __enter__(self) -> "RecordingSlot":
		return self

	def __exit__(self, *exc: Any) -> None:
		self.release()
