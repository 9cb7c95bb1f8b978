import jax
import jax.numpy as jnp
import jax.random as jr
import numpy as np
import pytest

from music_vae.converters import DataConverter, register_converter


# Synthetic checkpoint sizes
DEPTH       = 5   # input/output one-hot depth
NUM_STEPS   = 8   # sequence length
Z_DIMS      = 4
ENC_UNITS   = 6
DEC_UNITS   = 7
COND_UNITS  = 5
NADE_DIMS   = 6
NADE_HIDDEN = 3
NUM_SEGMENTS = 2


@register_converter
class FakeConverter(DataConverter):
    """Sequences are lists of class indices, one-hot encoded."""

    def __init__(self, num_steps=NUM_STEPS, depth=DEPTH, num_segments=None, num_splits=None):
        self.num_steps = num_steps
        self.depth = depth
        self.num_segments = num_segments
        self.num_splits = num_splits

    def to_tensor(self, sequence):
        return jax.nn.one_hot(jnp.asarray(sequence), self.depth)

    async def to_note_sequence(self, tensor):
        return np.array(tensor)


class DictLoader:

    def __init__(self, variables):
        self.variables = variables

    async def get_all_variables(self):
        return dict(self.variables)


class _Weights:
    """Deterministic random weights, one fresh key per variable."""

    def __init__(self, seed=0):
        self.key = jr.PRNGKey(seed)
        self.variables = {}

    def add(self, name, shape):
        self.key, k = jr.split(self.key)
        self.variables[name] = jr.normal(k, shape) * 0.5

    def lstm(self, prefix, input_dim, units):
        self.add(prefix + 'kernel', (input_dim + units, 4 * units))
        self.add(prefix + 'bias', (4 * units,))

    def affine(self, prefix, in_dim, out_dim):
        self.add(prefix + 'kernel', (in_dim, out_dim))
        self.add(prefix + 'bias', (out_dim,))


def _base_decoder(w, prefix, z_dims, num_layers=2, nade=False):
    output_dims = NADE_DIMS if nade else DEPTH
    input_dim = output_dims + z_dims
    for l in range(num_layers):
        w.lstm(f'{prefix}multi_rnn_cell/cell_{l}/lstm_cell/', input_dim, DEC_UNITS)
        input_dim = DEC_UNITS
    w.affine(prefix + 'z_to_initial_state/', z_dims, 2 * DEC_UNITS * num_layers)
    if nade:
        w.affine(prefix + 'output_projection/', DEC_UNITS, NADE_HIDDEN + NADE_DIMS)
        w.add(prefix + 'nade/w_enc', (NADE_DIMS, 1, NADE_HIDDEN))
        w.add(prefix + 'nade/w_dec_t', (NADE_DIMS, NADE_HIDDEN, 1))
    else:
        w.affine(prefix + 'output_projection/', DEC_UNITS, DEPTH)


def flat_checkpoint(seed=0, encoder_layers=1, decoder_layers=2, nade=False, num_splits=None):
    w = _Weights(seed)
    for l in range(encoder_layers):
        for d in ('fw', 'bw'):
            w.lstm(
                f'encoder/cell_{l}/bidirectional_rnn/{d}/multi_rnn_cell/cell_0/lstm_cell/',
                DEPTH, ENC_UNITS,
            )
    w.affine('encoder/mu/', 2 * ENC_UNITS, Z_DIMS)
    if num_splits:
        for i in range(num_splits):
            _base_decoder(w, f'core_decoder_{i}/decoder/', Z_DIMS, decoder_layers, nade)
    else:
        _base_decoder(w, 'decoder/', Z_DIMS, decoder_layers, nade)
    return w.variables


def hierarchical_checkpoint(seed=0, encoder_levels=2, num_splits=None, nade=False):
    w = _Weights(seed)
    input_dim = DEPTH
    for level in range(encoder_levels):
        for d in ('fw', 'bw'):
            w.lstm(
                f'encoder/hierarchical_level_{level}/cell_0/bidirectional_rnn/'
                f'{d}/multi_rnn_cell/cell_0/lstm_cell/',
                input_dim, ENC_UNITS,
            )
        input_dim = 2 * ENC_UNITS
    w.affine('encoder/mu/', 2 * ENC_UNITS, Z_DIMS)

    w.lstm('decoder/hierarchical_level_0/cell_0/lstm_cell/', 1, COND_UNITS)
    w.affine('decoder/hierarchical_level_0/initial_state/', Z_DIMS, 2 * COND_UNITS)
    if num_splits:
        for i in range(num_splits):
            _base_decoder(w, f'core_decoder/core_decoder_{i}/decoder/', COND_UNITS, nade=nade)
    else:
        _base_decoder(w, 'core_decoder/decoder/', COND_UNITS, nade=nade)
    return w.variables


@pytest.fixture
def make_flat_checkpoint():
    return flat_checkpoint


@pytest.fixture
def make_hierarchical_checkpoint():
    return hierarchical_checkpoint


@pytest.fixture
def sequences():
    """Four index sequences of NUM_STEPS steps."""
    return [
        [i % DEPTH for i in range(NUM_STEPS)],
        [(i * 2) % DEPTH for i in range(NUM_STEPS)],
        [(i + 3) % DEPTH for i in range(NUM_STEPS)],
        [0] * NUM_STEPS,
    ]
