import logging

import equinox as eqx
import jax.numpy as jnp
import jax.random as jr
from jaxtyping import Array, Key

from music_vae.arena import WeightArena
from music_vae.checkpoint import CheckpointLoader
from music_vae.constants import DEFAULT_SAMPLE_TEMPERATURE
from music_vae.converters import DataConverter, fetch_converter
from music_vae.errors import NotInitializedError
from music_vae.interpolation import get_interpolated_zs
from music_vae.topology import build_decoder, build_encoder

logger = logging.getLogger(__name__)


# Each call runs as one compiled computation, so no per-step intermediates
# outlive it. Python ints/floats/None (length, temperature) are static.

@eqx.filter_jit
def _encode(encoder, inputs):
    return encoder.encode(inputs)


@eqx.filter_jit
def _decode(decoder, z, length, temperature, key):
    return decoder.decode(z, length, None, temperature, key=key)


class MusicVAE:
    """
    Inference-only MusicVAE: an `Encoder` and `Decoder` assembled from a
    checkpoint, plus a `DataConverter` between domain sequences and arrays.

    `initialize` and `dispose` must not run concurrently with each other or
    with any other method.
    """

    def __init__(
        self,
        checkpoint_url: str,
        data_converter: DataConverter | None = None,
        *,
        loader=None,
        key: Key | None = None,
    ):
        """
        checkpoint_url: checkpoint directory (local path or http(s) URL)
        data_converter: if None, built from `<checkpoint_url>/converter.json`
                        on `initialize`
        loader:         anything with `async get_all_variables()`; defaults to
                        `CheckpointLoader(checkpoint_url)`
        key:            root PRNG key for calls not given their own key
        """
        self.checkpoint_url = checkpoint_url
        self.data_converter = data_converter
        self.loader = loader if loader is not None else CheckpointLoader(checkpoint_url)
        self.encoder = None
        self.decoder = None
        self.raw_vars: WeightArena | None = None
        self._key = key if key is not None else jr.PRNGKey(0)
        self._fetched_converter = False

    def _next_key(self):
        self._key, subkey = jr.split(self._key)
        return subkey

    def _require_initialized(self):
        if not self.is_initialized():
            raise NotInitializedError(
                'MusicVAE is not initialized; call `initialize()` first.'
            )

    async def initialize(self):
        """Loads the checkpoint and assembles the `Encoder` and `Decoder`."""
        self.dispose()

        if self.data_converter is None:
            self.data_converter = await fetch_converter(self.checkpoint_url)
            self._fetched_converter = True

        logger.info('Initializing MusicVAE from %s', self.checkpoint_url)
        self.raw_vars = WeightArena(await self.loader.get_all_variables())

        num_segments = self.data_converter.num_segments
        num_splits = self.data_converter.num_splits
        try:
            self.encoder = build_encoder(self.raw_vars, num_segments)
            self.decoder = build_decoder(self.raw_vars, num_segments, num_splits)
        except Exception:
            self.dispose()
            raise

        logger.info(
            'Initialized %s (z_dims=%s) and %s (output_dims=%d)',
            type(self.encoder).__name__, self.encoder.z_dims,
            type(self.decoder).__name__, self.decoder.output_dims,
        )
        return self

    def is_initialized(self) -> bool:
        return self.encoder is not None and self.decoder is not None

    def dispose(self):
        """Releases every loaded weight and drops the encoder/decoder."""
        if self.raw_vars is not None:
            self.raw_vars.dispose()
            logger.info('Disposed MusicVAE weights')
        self.raw_vars = None
        self.encoder = None
        self.decoder = None
        if self._fetched_converter:
            self.data_converter = None
            self._fetched_converter = False

    async def encode(self, input_sequences) -> Array:
        """
        Encodes sequences to the mean `mu` of their latent variables.
        Returns (len(input_sequences), z_dims).
        """
        self._require_initialized()
        inputs = jnp.stack([
            self.data_converter.to_tensor(s) for s in input_sequences
        ])
        logger.debug('Encoding batch of %d', inputs.shape[0])
        return _encode(self.encoder, inputs)

    async def decode(self, z: Array, temperature: float | None = None, *, key=None):
        """
        Decodes latent vectors `z` (batch, z_dims) into domain sequences of
        `data_converter.num_steps` steps, in batch order.

        temperature: softmax temperature; the argmax is used if None or 0
        key:         PRNG key for sampling; split from the model's key if None
        """
        self._require_initialized()
        if not temperature:
            key = None
        elif key is None:
            key = self._next_key()
        logger.debug('Decoding batch of %d', z.shape[0])

        oh_seqs = _decode(
            self.decoder, z, self.data_converter.num_steps, temperature, key
        )
        per_item = list(oh_seqs)
        oh_seqs.delete()

        output_sequences = []
        try:
            for oh in per_item:
                output_sequences.append(await self.data_converter.to_note_sequence(oh))
                oh.delete()
        finally:
            for oh in per_item:
                if not oh.is_deleted():
                    oh.delete()
        return output_sequences

    async def interpolate(self, input_sequences, num_interps: int):
        """
        Interpolates between 2 (linearly) or 4 (bilinearly) sequences in latent
        space.

        With 2 inputs the first and last of the `num_interps` outputs are the
        reconstructions of the inputs. With 4 inputs A, B, C, D the
        `num_interps ** 2` outputs are a row-major grid:

            | A . . C |
            | . . . . |
            | B . . D |
        """
        input_zs = await self.encode(input_sequences)
        try:
            interp_zs = get_interpolated_zs(input_zs, num_interps)
        finally:
            input_zs.delete()

        try:
            return await self.decode(interp_zs)
        finally:
            interp_zs.delete()

    async def sample(
        self,
        num_samples: int,
        temperature: float = DEFAULT_SAMPLE_TEMPERATURE,
        *,
        key=None,
    ):
        """Decodes `num_samples` latent vectors drawn from the standard normal prior."""
        self._require_initialized()
        if key is None:
            key = self._next_key()
        z_key, decode_key = jr.split(key)
        rand_zs = jr.normal(z_key, (num_samples, self.decoder.z_dims))
        try:
            return await self.decode(rand_zs, temperature, key=decode_key)
        finally:
            rand_zs.delete()
