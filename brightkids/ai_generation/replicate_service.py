"""
Replicate-backed implementation of the image synthesis gateway.
"""

from __future__ import annotations

import io
import logging
import os
from collections.abc import Iterable as IterableABC
from typing import Any, BinaryIO, Callable

import replicate
import requests
from replicate.exceptions import ModelError, ReplicateError

from brightkids.common.errors import ConfigurationError, InvalidResponseError, ProviderError

from .gateway import parse_size, resolve_size
from .prompting import NEGATIVE_PROMPT

logger = logging.getLogger(__name__)

_ASPECT_RATIOS = {
    "1024x1024": "1:1",
    "1024x1536": "2:3",
    "1536x1024": "3:2",
}


def _build_flux_kontext_input(
    *,
    prompt: str,
    image_input: BinaryIO | None,
    size: str,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt,
        "output_format": "png",
        "safety_tolerance": 2,
        "prompt_upsampling": True,
        "aspect_ratio": _ASPECT_RATIOS.get(size, "1:1"),
    }
    if image_input is not None:
        payload["input_image"] = image_input
    return payload


def _build_sdxl_input(
    *,
    prompt: str,
    image_input: BinaryIO | None,
    size: str,
) -> dict[str, Any]:
    width, height = parse_size(size)
    payload: dict[str, Any] = {
        "prompt": prompt,
        "negative_prompt": NEGATIVE_PROMPT,
        "width": width,
        "height": height,
    }
    if image_input is not None:
        payload["image"] = image_input
    return payload


_MODEL_INPUT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "black-forest-labs/flux-kontext-pro": _build_flux_kontext_input,
    "black-forest-labs/flux-kontext-max": _build_flux_kontext_input,
    "stability-ai/sdxl": _build_sdxl_input,
}


def _resolve_input_builder(model_identifier: str) -> Callable[..., dict[str, Any]]:
    normalized_identifier = model_identifier.strip().lower()
    builder = _MODEL_INPUT_BUILDERS.get(normalized_identifier)
    if builder is None and ":" in normalized_identifier:
        base_identifier = normalized_identifier.split(":", maxsplit=1)[0]
        builder = _MODEL_INPUT_BUILDERS.get(base_identifier)
    if builder is None:
        supported_models = ", ".join(sorted(set(_MODEL_INPUT_BUILDERS)))
        raise ConfigurationError(
            "Model identifier "
            f"'{model_identifier}' is not configured with a default input payload. "
            f"Supported models: {supported_models}."
        )
    return builder


class ReplicateImageGateway:
    """
    Image gateway running generate/edit requests through a Replicate model.

    Parameters
    ----------
    api_token:
        Replicate API token. Falls back to ``REPLICATE_API_TOKEN`` environment variable.
    model_identifier:
        Model string in the ``owner/model[:version]`` format. Falls back to
        ``REPLICATE_MODEL`` and then ``black-forest-labs/flux-kontext-pro``.
    client:
        Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        model_identifier: str | None = None,
        client: replicate.Client | None = None,
        request_timeout: float = 60.0,
    ) -> None:
        self._api_token = api_token or os.getenv("REPLICATE_API_TOKEN")
        if not self._api_token and not client:
            raise ConfigurationError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token."
            )

        self._model_identifier = (
            model_identifier
            or os.getenv("REPLICATE_MODEL")
            or "black-forest-labs/flux-kontext-pro"
        )
        self._input_builder = _resolve_input_builder(self._model_identifier)
        self._client = client or replicate.Client(api_token=self._api_token)
        self._request_timeout = request_timeout

    @property
    def model_identifier(self) -> str:
        """Return the model identifier currently used."""
        return self._model_identifier

    def generate(self, prompt: str, size: str) -> bytes:
        return self._run(prompt=prompt, image_input=None, size=resolve_size(size))

    def edit(
        self,
        prompt: str,
        source_image: bytes,
        size: str,
        style_hint: bytes | None = None,
    ) -> bytes:
        if style_hint:
            logger.debug(
                "Model %s accepts a single input image; style hint ignored.",
                self._model_identifier,
            )
        return self._run(
            prompt=prompt,
            image_input=io.BytesIO(source_image),
            size=resolve_size(size, source_image),
        )

    def _run(self, *, prompt: str, image_input: BinaryIO | None, size: str) -> bytes:
        replicate_input = self._input_builder(
            prompt=prompt,
            image_input=image_input,
            size=size,
        )
        try:
            output = self._client.run(self._model_identifier, input=replicate_input)
        except ModelError as exc:
            raise ProviderError(None, str(exc)) from exc
        except ReplicateError as exc:
            raise ProviderError(getattr(exc, "status", None), str(exc)) from exc

        return self._read_output(output)

    def _read_output(self, output: Any) -> bytes:
        for item in _flatten_outputs(output):
            if hasattr(item, "read"):
                return item.read()
            if isinstance(item, bytes):
                return item
            url = str(item)
            if url.lower().startswith(("http://", "https://")):
                return self._download(url)
        raise InvalidResponseError("Replicate returned no image output.")

    def _download(self, url: str) -> bytes:
        try:
            response = requests.get(url, timeout=self._request_timeout)
        except requests.RequestException as exc:
            raise ProviderError(None, str(exc)) from exc
        if not response.ok:
            raise ProviderError(response.status_code, response.text)
        return response.content


def _flatten_outputs(raw: Any) -> list[Any]:
    """
    Flatten Replicate outputs (a single file/URL or nested iterables of them).
    """
    if raw is None:
        return []

    if isinstance(raw, (str, bytes)) or hasattr(raw, "read"):
        return [raw]

    if isinstance(raw, IterableABC):
        collected = list(raw)
        if collected and all(isinstance(item, str) and len(item) == 1 for item in collected):
            return ["".join(collected)]

        flattened: list[Any] = []
        for item in collected:
            flattened.extend(_flatten_outputs(item))
        return flattened

    return [raw]
