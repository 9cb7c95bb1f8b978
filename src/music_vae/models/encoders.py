import abc

import equinox as eqx
import jax
import jax.numpy as jnp
from jaxtyping import Array

from music_vae.errors import ConfigurationError
from music_vae.layers import LayerVars, dense, lstm_cell, zero_state


class Encoder(eqx.Module):
    """Maps a batch of sequences (batch, time, depth) to latent vectors."""

    @property
    @abc.abstractmethod
    def z_dims(self) -> int | None:
        ...

    @abc.abstractmethod
    def encode(self, sequence: Array) -> Array:
        ...


class BidirectionalLstmEncoder(Encoder):
    """
    Single-layer bidirectional LSTM.

    The final hidden states of both directions are concatenated and, if
    `mu_vars` is given, projected to the mean `mu` of the latent variable.
    Without `mu_vars` the concatenated state is returned directly (this is how
    the levels of a `HierarchicalEncoder` are used).
    """
    lstm_fw_vars: LayerVars
    lstm_bw_vars: LayerVars
    mu_vars:      LayerVars | None

    def __init__(self, lstm_fw_vars, lstm_bw_vars, mu_vars=None):
        self.lstm_fw_vars = lstm_fw_vars
        self.lstm_bw_vars = lstm_bw_vars
        self.mu_vars = mu_vars

    @property
    def z_dims(self):
        return None if self.mu_vars is None else self.mu_vars.out_dim

    def encode(self, sequence):
        """
        sequence: (batch, time, depth)
        Returns:  (batch, z_dims), or (batch, 2 * units) without `mu_vars`.
        """
        _, fw_h = self._single_direction(sequence, self.lstm_fw_vars, reverse=False)
        _, bw_h = self._single_direction(sequence, self.lstm_bw_vars, reverse=True)
        final_state = jnp.concatenate([fw_h, bw_h], axis=1)
        if self.mu_vars is None:
            return final_state
        return dense(self.mu_vars, final_state)

    @staticmethod
    def _single_direction(inputs, lstm_vars, reverse):
        state = zero_state(lstm_vars, inputs.shape[0])

        def step(state, x_t):
            return lstm_cell(lstm_vars, x_t, *state), None

        # Scan over time: (batch, time, depth) -> (time, batch, depth)
        state, _ = jax.lax.scan(step, state, jnp.swapaxes(inputs, 0, 1), reverse=reverse)
        return state


class HierarchicalEncoder(Encoder):
    """
    Stacked encoders where each level's per-segment outputs form the input
    sequence of the next level.

    num_steps[level] segments are encoded independently at each level and the
    results stacked along a new time axis. num_steps must evenly divide each
    level's input length, and its last entry must be 1.
    """
    base_encoders: list[Encoder]
    num_steps:     tuple[int, ...]
    mu_vars:       LayerVars

    def __init__(self, base_encoders, num_steps, mu_vars):
        if len(base_encoders) != len(num_steps):
            raise ConfigurationError(
                f'Got {len(base_encoders)} encoder levels but '
                f'{len(num_steps)} step counts.'
            )
        if not num_steps or num_steps[-1] != 1:
            raise ConfigurationError(
                f'The final level must produce a single step, got {list(num_steps)}.'
            )
        self.base_encoders = list(base_encoders)
        self.num_steps = tuple(num_steps)
        self.mu_vars = mu_vars

    @property
    def z_dims(self):
        return self.mu_vars.out_dim

    def encode(self, sequence):
        inputs = sequence
        for encoder, level_steps in zip(self.base_encoders, self.num_steps):
            segments = jnp.split(inputs, level_steps, axis=1)
            inputs = jnp.stack([encoder.encode(s) for s in segments], axis=1)
        return dense(self.mu_vars, jnp.squeeze(inputs, axis=1))
