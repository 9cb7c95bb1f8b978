import equinox as eqx
import jax
import jax.numpy as jnp
from jaxtyping import Array

from music_vae.constants import FORGET_BIAS
from music_vae.errors import ConfigurationError


class LayerVars(eqx.Module):
    """
    Parameters of an affine transformation, borrowed from the weight arena.

    kernel: (in_dim, out_dim)
    bias:   (out_dim,)
    """
    kernel: Array
    bias:   Array

    def __init__(self, kernel, bias):
        if kernel is None:
            raise ConfigurationError('`kernel` is undefined.')
        if bias is None:
            raise ConfigurationError('`bias` is undefined.')
        if kernel.ndim != 2 or bias.ndim != 1:
            raise ConfigurationError(
                f'Expected a 2-D kernel and 1-D bias, got shapes '
                f'{tuple(kernel.shape)} and {tuple(bias.shape)}.'
            )
        if kernel.shape[1] != bias.shape[0]:
            raise ConfigurationError(
                f'Kernel output width {kernel.shape[1]} does not match '
                f'bias width {bias.shape[0]}.'
            )
        self.kernel = kernel
        self.bias = bias

    @property
    def in_dim(self) -> int:
        return self.kernel.shape[0]

    @property
    def out_dim(self) -> int:
        return self.bias.shape[0]

    def __call__(self, inputs):
        return dense(self, inputs)


def dense(layer: LayerVars, inputs: Array) -> Array:
    """(batch, in_dim) -> (batch, out_dim)"""
    return inputs @ layer.kernel + layer.bias


# ---------------------------------------------------------------------------
# LSTM recurrence
# ---------------------------------------------------------------------------

def lstm_cell(layer: LayerVars, x, c, h):
    """
    Basic LSTM step with gates packed as (i, j, f, o).

    x: (batch, input_dim), c/h: (batch, units)
    Returns (new_c, new_h).
    """
    gates = dense(layer, jnp.concatenate([x, h], axis=1))
    i, j, f, o = jnp.split(gates, 4, axis=1)
    new_c = (
        c * jax.nn.sigmoid(f + FORGET_BIAS)
        + jax.nn.sigmoid(i) * jnp.tanh(j)
    )
    new_h = jnp.tanh(new_c) * jax.nn.sigmoid(o)
    return new_c, new_h


def multi_rnn_cell(layers, x, c, h):
    """
    Advances a stack of LSTM layers by one step. Each layer's hidden output is
    the next layer's input.

    c, h: tuples with one (batch, units) state per layer.
    """
    new_c, new_h = [], []
    for layer, c_l, h_l in zip(layers, c, h):
        c_l, h_l = lstm_cell(layer, x, c_l, h_l)
        new_c.append(c_l)
        new_h.append(h_l)
        x = h_l
    return tuple(new_c), tuple(new_h)


def lstm_units(layer: LayerVars) -> int:
    return layer.out_dim // 4


def init_lstm_cells(z, layers, z_to_init_state: LayerVars):
    """
    Initial (c, h) for each layer of a stack, projected from latent `z`.

    tanh(z_to_init_state(z)) is cut into consecutive (c, h) chunks, one pair
    per layer, each chunk as wide as that layer's units.
    Returns (c, h) as tuples ordered by layer.
    """
    sizes = [u for layer in layers for u in (lstm_units(layer),) * 2]
    if z_to_init_state.out_dim != sum(sizes):
        raise ConfigurationError(
            f'Initial state projection has width {z_to_init_state.out_dim}, '
            f'but {len(layers)} LSTM layer(s) need {sum(sizes)}.'
        )
    states = jnp.tanh(dense(z_to_init_state, z))
    split_points = [sum(sizes[:k]) for k in range(1, len(sizes))]
    chunks = jnp.split(states, split_points, axis=1)
    return tuple(chunks[0::2]), tuple(chunks[1::2])


def zero_state(layer: LayerVars, batch_size: int):
    units = lstm_units(layer)
    return jnp.zeros((batch_size, units)), jnp.zeros((batch_size, units))
