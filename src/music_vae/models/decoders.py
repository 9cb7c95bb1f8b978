import abc

import equinox as eqx
import jax
import jax.numpy as jnp
import jax.random as jr
from jaxtyping import Array, Key

from music_vae.errors import ConfigurationError
from music_vae.layers import LayerVars, dense, init_lstm_cells, multi_rnn_cell
from music_vae.models.nade import Nade


def _check_sampling_args(temperature, key):
    if temperature is not None and temperature < 0:
        raise ConfigurationError(
            f'Temperature must be non-negative, got {temperature}.'
        )
    if temperature and key is None:
        raise ConfigurationError(
            'A PRNG `key` is required when decoding with a temperature.'
        )


class Decoder(eqx.Module):
    """Expands latent vectors into boolean sequences (batch, length, output_dims)."""

    @property
    @abc.abstractmethod
    def z_dims(self) -> int:
        ...

    @property
    @abc.abstractmethod
    def output_dims(self) -> int:
        ...

    @abc.abstractmethod
    def decode(
        self,
        z: Array,
        length: int,
        initial_input: Array | None = None,
        temperature: float | None = None,
        *,
        key: Key | None = None,
    ) -> Array:
        ...


class BaseDecoder(Decoder):
    """
    Autoregressive LSTM decoder with an optional NADE output head.

    Without a NADE the output projection gives the logits of a categorical
    distribution and each step emits a one-hot vector. With a NADE the
    projection gives its encoder/decoder biases and each step emits the NADE
    bit vector.
    """
    lstm_cell_vars:       list[LayerVars]
    z_to_init_state_vars: LayerVars
    output_project_vars:  LayerVars
    nade:                 Nade | None

    def __init__(self, lstm_cell_vars, z_to_init_state_vars, output_project_vars, nade=None):
        self.lstm_cell_vars = list(lstm_cell_vars)
        self.z_to_init_state_vars = z_to_init_state_vars
        self.output_project_vars = output_project_vars
        self.nade = nade

    @property
    def z_dims(self):
        return self.z_to_init_state_vars.in_dim

    @property
    def output_dims(self):
        if self.nade is not None:
            return self.nade.num_dims
        return self.output_project_vars.out_dim

    def decode(self, z, length, initial_input=None, temperature=None, *, key=None):
        """
        z:             (batch, z_dims)
        length:        number of steps to generate
        initial_input: (batch, output_dims) first-step input; zeros if None
        temperature:   softmax temperature for categorical sampling; the argmax
                       is used if None or 0. Ignored by the NADE head.
        key:           PRNG key, required when `temperature` is positive
        Returns:       (batch, length, output_dims) bool
        """
        _check_sampling_args(temperature, key)
        batch_size = z.shape[0]

        c, h = init_lstm_cells(z, self.lstm_cell_vars, self.z_to_init_state_vars)
        if initial_input is None:
            initial_input = jnp.zeros((batch_size, self.output_dims))
        initial_input = initial_input.astype(jnp.float32)

        def step(carry, step_key):
            c, h, next_input = carry
            c, h = multi_rnn_cell(
                self.lstm_cell_vars, jnp.concatenate([next_input, z], axis=1), c, h
            )
            logits = dense(self.output_project_vars, h[-1])
            next_input = self._sample_step(logits, temperature, step_key)
            return (c, h, next_input), next_input.astype(bool)

        keys = jr.split(key, length) if temperature else None
        _, samples = jax.lax.scan(step, (c, h, initial_input), keys, length=length)
        # (length, batch, depth) -> (batch, length, depth)
        return jnp.swapaxes(samples, 0, 1)

    def _sample_step(self, logits, temperature, step_key):
        if self.nade is not None:
            enc_bias, dec_bias = jnp.split(logits, [self.nade.num_hidden], axis=1)
            return self.nade.sample(enc_bias, dec_bias)
        if not temperature:
            labels = jnp.argmax(logits, axis=1)
        else:
            labels = jr.categorical(step_key, logits / temperature, axis=1)
        return jax.nn.one_hot(labels, self.output_dims, dtype=jnp.float32)


class ConductorDecoder(Decoder):
    """
    Hierarchical decoder: a conductor LSTM produces one embedding per segment,
    which every core decoder expands into `length // num_steps` steps.

    Core decoder outputs are concatenated along depth, conductor steps along
    time. Each core decoder's first input in a segment is its own last output
    from the previous segment.
    """
    core_decoders:        list[Decoder]
    lstm_cell_vars:       list[LayerVars]
    z_to_init_state_vars: LayerVars
    num_steps:            int

    def __init__(self, core_decoders, lstm_cell_vars, z_to_init_state_vars, num_steps):
        self.core_decoders = list(core_decoders)
        self.lstm_cell_vars = list(lstm_cell_vars)
        self.z_to_init_state_vars = z_to_init_state_vars
        self.num_steps = int(num_steps)

    @property
    def z_dims(self):
        return self.z_to_init_state_vars.in_dim

    @property
    def output_dims(self):
        return sum(dec.output_dims for dec in self.core_decoders)

    def decode(self, z, length, initial_input=None, temperature=None, *, key=None):
        """
        Same contract as `BaseDecoder.decode`. `initial_input` is unused: the
        conductor has no input signal of its own.
        """
        _check_sampling_args(temperature, key)
        if length <= 0 or length % self.num_steps:
            raise ConfigurationError(
                f'Length {length} is not a positive multiple of the '
                f'{self.num_steps} conductor steps.'
            )
        batch_size = z.shape[0]
        segment_length = length // self.num_steps

        c, h = init_lstm_cells(z, self.lstm_cell_vars, self.z_to_init_state_vars)
        dummy_input = jnp.zeros((batch_size, 1))
        # Zeros are what a core decoder uses when given no initial input.
        prev_outputs = tuple(
            jnp.zeros((batch_size, dec.output_dims)) for dec in self.core_decoders
        )

        def step(carry, step_key):
            c, h, prev_outputs = carry
            c, h = multi_rnn_cell(self.lstm_cell_vars, dummy_input, c, h)
            core_keys = (
                [None] * len(self.core_decoders) if step_key is None
                else jr.split(step_key, len(self.core_decoders))
            )
            segments = [
                dec.decode(h[-1], segment_length, prev, temperature, key=k)
                for dec, prev, k in zip(self.core_decoders, prev_outputs, core_keys)
            ]
            prev_outputs = tuple(s[:, -1, :].astype(jnp.float32) for s in segments)
            return (c, h, prev_outputs), jnp.concatenate(segments, axis=-1)

        keys = jr.split(key, self.num_steps) if temperature else None
        _, samples = jax.lax.scan(
            step, (c, h, prev_outputs), keys, length=self.num_steps
        )
        # (num_steps, batch, segment_length, depth) -> (batch, length, depth)
        samples = jnp.swapaxes(samples, 0, 1)
        return samples.reshape(batch_size, length, self.output_dims)
