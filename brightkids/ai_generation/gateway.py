"""
Image synthesis gateway: the narrow contract the pipeline uses to talk to an image model.
"""

from __future__ import annotations

import base64
import binascii
import io
import json
import logging
import os
from typing import Any, Callable, Mapping, Protocol

import requests
from PIL import Image, UnidentifiedImageError

from brightkids.common.errors import ConfigurationError, InvalidResponseError, ProviderError

logger = logging.getLogger(__name__)

SQUARE_SIZE = "1024x1024"
PORTRAIT_SIZE = "1024x1536"
LANDSCAPE_SIZE = "1536x1024"
ALLOWED_SIZES: tuple[str, ...] = (SQUARE_SIZE, PORTRAIT_SIZE, LANDSCAPE_SIZE)
DEFAULT_SIZE = SQUARE_SIZE
AUTO_SIZE = "auto"

DEFAULT_API_BASE = "https://api.openai.com/v1"
DEFAULT_IMAGE_MODEL = "gpt-image-1"
DEFAULT_GENERATION_MODEL = "dall-e-2"


class ImageSynthesisGateway(Protocol):
    """
    Anything that can turn a prompt (and optionally a source image) into PNG bytes.

    Implementations raise :class:`ProviderError` for non-success responses and
    :class:`InvalidResponseError` when a successful response carries no image.
    """

    def generate(self, prompt: str, size: str) -> bytes: ...

    def edit(
        self,
        prompt: str,
        source_image: bytes,
        size: str,
        style_hint: bytes | None = None,
    ) -> bytes: ...


def parse_size(size: str) -> tuple[int, int]:
    width, _, height = size.partition("x")
    return int(width), int(height)


def resolve_size(requested: str | None, source_image: bytes | None = None) -> str:
    """
    Map a requested size onto the provider allow-list.

    Unknown values fall back to :data:`DEFAULT_SIZE`. ``"auto"`` resolves to the allowed
    size whose aspect ratio is closest to ``source_image`` when one is supplied, and to
    the default square size otherwise.
    """
    normalized = str(requested or DEFAULT_SIZE).strip().lower()

    if normalized in ALLOWED_SIZES:
        return normalized

    if normalized != AUTO_SIZE or source_image is None:
        return DEFAULT_SIZE

    try:
        with Image.open(io.BytesIO(source_image)) as image:
            width, height = image.size
    except (UnidentifiedImageError, OSError):
        logger.warning("Could not read source image to resolve 'auto' size; using default.")
        return DEFAULT_SIZE

    if not width or not height:
        return DEFAULT_SIZE

    aspect = width / height
    best = DEFAULT_SIZE
    best_score = float("inf")
    for candidate in ALLOWED_SIZES:
        cand_w, cand_h = parse_size(candidate)
        score = abs(cand_w / cand_h - aspect)
        if score < best_score:
            best, best_score = candidate, score
    return best


def decode_image_payload(
    content_type: str | None,
    body: bytes,
    *,
    fetch_url: Callable[[str], bytes] | None = None,
) -> bytes:
    """
    Turn a provider response body into raw image bytes.

    JSON envelopes (``{"data": [{"b64_json": ...}]}`` or ``{"data": [{"url": ...}]}``)
    are unpacked; any other content type is treated as the image itself.
    """
    if content_type and "application/json" in content_type.lower():
        try:
            envelope = json.loads(body)
        except ValueError as exc:
            raise InvalidResponseError("Provider returned malformed JSON.") from exc
        return decode_image_envelope(envelope, fetch_url=fetch_url)

    if not body:
        raise InvalidResponseError("No image returned (empty body).")
    return bytes(body)


def decode_image_envelope(
    envelope: Any,
    *,
    fetch_url: Callable[[str], bytes] | None = None,
) -> bytes:
    try:
        item = envelope["data"][0]
    except (KeyError, IndexError, TypeError) as exc:
        raise InvalidResponseError("No image returned (JSON response without data).") from exc

    if not isinstance(item, Mapping):
        raise InvalidResponseError("No image returned (unexpected data entry).")

    encoded = item.get("b64_json")
    if encoded:
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidResponseError("Image payload is not valid base64.") from exc

    url = item.get("url")
    if url and fetch_url is not None:
        return fetch_url(url)

    raise InvalidResponseError("No image returned (JSON response without b64_json)")


class OpenAIImageGateway:
    """
    Image gateway for OpenAI-compatible ``/images/generations`` and ``/images/edits``.

    Parameters
    ----------
    api_key:
        Bearer token. Falls back to ``OPENAI_API_KEY``.
    model:
        Model used for edits. Falls back to ``BRIGHTKIDS_IMAGE_MODEL`` then ``gpt-image-1``.
    generation_model:
        Model used for text-to-image generation. Falls back to
        ``BRIGHTKIDS_GENERATION_MODEL`` then ``dall-e-2``.
    api_base:
        Base URL. Falls back to ``BRIGHTKIDS_IMAGE_API_BASE``.
    session:
        Optional pre-configured :class:`requests.Session`. Mainly useful for testing.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        generation_model: str | None = None,
        api_base: str | None = None,
        request_timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self._api_key:
            raise ConfigurationError(
                "OpenAI API key is required. Set OPENAI_API_KEY or pass api_key."
            )
        self._model = model or os.getenv("BRIGHTKIDS_IMAGE_MODEL") or DEFAULT_IMAGE_MODEL
        self._generation_model = (
            generation_model
            or os.getenv("BRIGHTKIDS_GENERATION_MODEL")
            or DEFAULT_GENERATION_MODEL
        )
        self._api_base = (
            api_base or os.getenv("BRIGHTKIDS_IMAGE_API_BASE") or DEFAULT_API_BASE
        ).rstrip("/")
        self._timeout = request_timeout or float(os.getenv("BRIGHTKIDS_IMAGE_TIMEOUT", "300"))
        self._session = session or requests.Session()

    @property
    def model(self) -> str:
        return self._model

    def generate(self, prompt: str, size: str) -> bytes:
        response = self._post(
            "/images/generations",
            json={
                "model": self._generation_model,
                "prompt": prompt,
                "size": resolve_size(size),
                "n": 1,
            },
        )
        return self._decode(response)

    def edit(
        self,
        prompt: str,
        source_image: bytes,
        size: str,
        style_hint: bytes | None = None,
    ) -> bytes:
        resolved = resolve_size(size, source_image)
        if style_hint:
            files = [
                ("image[]", ("source.png", source_image, "image/png")),
                ("image[]", ("style.png", style_hint, "image/png")),
            ]
        else:
            files = [("image", ("source.png", source_image, "image/png"))]

        response = self._post(
            "/images/edits",
            data={"model": self._model, "prompt": prompt, "size": resolved},
            files=files,
        )
        return self._decode(response)

    def _post(self, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self._api_base}{path}"
        try:
            response = self._session.post(
                url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise ProviderError(None, str(exc)) from exc

        if not response.ok:
            logger.error("Image API error %s: %s", response.status_code, response.text)
            raise ProviderError(response.status_code, response.text)
        return response

    def _decode(self, response: requests.Response) -> bytes:
        return decode_image_payload(
            response.headers.get("content-type"),
            response.content,
            fetch_url=self._fetch_url,
        )

    def _fetch_url(self, url: str) -> bytes:
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            raise ProviderError(None, str(exc)) from exc
        if not response.ok:
            raise ProviderError(response.status_code, response.text)
        return response.content
