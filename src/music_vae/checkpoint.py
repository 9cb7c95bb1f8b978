"""
Checkpoint retrieval for local directories and http(s) URLs.

A checkpoint is a directory holding `manifest.json`:

    {
      "encoder/mu/kernel": {"filename": "encoder_mu_kernel", "shape": [512, 256]},
      "decoder/nade/w_enc": {
          "filename": "decoder_nade_w_enc", "shape": [88, 1, 128],
          "quantization": {"min": -0.5, "scale": 0.004, "dtype": "uint8"}
      },
      ...
    }

and one file per variable with its raw little-endian float32 values, or
uint8 codes dequantized as `min + scale * code` when "quantization" is set.
"""
import asyncio
import json
import logging
from pathlib import Path

import jax.numpy as jnp
import numpy as np
import requests

from music_vae.constants import HTTP_TIMEOUT, MANIFEST_FILE
from music_vae.errors import CheckpointError

logger = logging.getLogger(__name__)


def is_remote(url: str) -> bool:
    return url.startswith(('http://', 'https://'))


def join_url(url: str, name: str) -> str:
    if is_remote(url):
        return url.rstrip('/') + '/' + name
    return str(Path(url) / name)


def _fetch_bytes(location: str) -> bytes:
    if is_remote(location):
        resp = requests.get(location, timeout=HTTP_TIMEOUT)
        resp.raise_for_status()
        return resp.content
    return Path(location).read_bytes()


async def fetch_bytes(location: str) -> bytes:
    """Reads a local file or downloads a URL without blocking the event loop."""
    return await asyncio.to_thread(_fetch_bytes, location)


async def fetch_json(location: str):
    return json.loads(await fetch_bytes(location))


def decode_variable(name: str, entry: dict, raw: bytes) -> np.ndarray:
    """Raw bytes of one manifest entry -> float32 array of the declared shape."""
    shape = tuple(entry['shape'])
    quantization = entry.get('quantization')
    if quantization is None:
        values = np.frombuffer(raw, dtype='<f4')
    else:
        if quantization.get('dtype', 'uint8') != 'uint8':
            raise CheckpointError(
                f'Unsupported quantization dtype for `{name}`: {quantization["dtype"]}'
            )
        codes = np.frombuffer(raw, dtype=np.uint8).astype(np.float32)
        values = quantization['min'] + quantization['scale'] * codes

    expected = int(np.prod(shape))
    if values.size != expected:
        raise CheckpointError(
            f'`{name}` holds {values.size} values but its shape {list(shape)} '
            f'needs {expected}.'
        )
    return values.astype(np.float32).reshape(shape)


class CheckpointLoader:
    """Loads every variable named in a checkpoint manifest."""

    def __init__(self, url: str):
        self.url = url

    async def get_manifest(self) -> dict:
        manifest = await fetch_json(join_url(self.url, MANIFEST_FILE))
        if not isinstance(manifest, dict):
            raise CheckpointError(f'Malformed manifest at {self.url}')
        return manifest

    async def get_variable(self, name: str, entry: dict):
        if not isinstance(entry, dict) or not {'filename', 'shape'} <= entry.keys():
            raise CheckpointError(
                f'Manifest entry for `{name}` needs "filename" and "shape".'
            )
        raw = await fetch_bytes(join_url(self.url, entry['filename']))
        return jnp.asarray(decode_variable(name, entry, raw))

    async def get_all_variables(self) -> dict:
        manifest = await self.get_manifest()
        variables = {}
        for name, entry in manifest.items():
            variables[name] = await self.get_variable(name, entry)
        logger.info('Loaded %d variables from %s', len(variables), self.url)
        return variables
