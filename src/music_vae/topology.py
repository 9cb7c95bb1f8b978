"""
Assembles encoder and decoder trees from checkpoint variable names.

Stacked-layer depth is never configured explicitly: layers are found by
probing `template % 0`, `template % 1`, ... until a kernel is missing.
"""
import logging
from collections.abc import Mapping

from music_vae.constants import *
from music_vae.errors import ConfigurationError, TopologyError
from music_vae.layers import LayerVars
from music_vae.models import (
    BaseDecoder,
    BidirectionalLstmEncoder,
    ConductorDecoder,
    HierarchicalEncoder,
    Nade,
)

logger = logging.getLogger(__name__)


def layer_name(template: str, index: int) -> str:
    """Substitutes the layer index for the single `%d` placeholder."""
    return template.replace('%d', str(index), 1)


def discover_layers(template: str, variables: Mapping) -> list[LayerVars]:
    """
    Probes `<template with index l>kernel` for l = 0, 1, ... and returns the
    LayerVars found, in order, stopping at the first absent kernel.
    """
    layers = []
    while True:
        prefix = layer_name(template, len(layers))
        if prefix + KERNEL not in variables:
            break
        logger.debug('Found layer %s', prefix)
        layers.append(load_layer(prefix, variables))
    return layers


def load_layer(prefix: str, variables: Mapping) -> LayerVars:
    return LayerVars(variables.get(prefix + KERNEL), variables.get(prefix + BIAS))


def load_nade(prefix: str, variables: Mapping) -> Nade:
    names = (prefix + NADE_ENC_WEIGHTS, prefix + NADE_DEC_WEIGHTS_T)
    missing = [name for name in names if name not in variables]
    if missing:
        raise ConfigurationError(
            f'NADE checkpoint variable(s) missing: {", ".join(missing)}.'
        )
    return Nade(*(variables[name] for name in names))


def _bidirectional_layers(template, variables):
    fw = discover_layers(template.replace('%s', FORWARD), variables)
    bw = discover_layers(template.replace('%s', BACKWARD), variables)
    return fw, bw


# ---------------------------------------------------------------------------
# Encoder
# ---------------------------------------------------------------------------

def build_encoder(variables: Mapping, num_segments: int | None = None):
    """
    A 2-level HierarchicalEncoder over `num_segments` segments if given,
    otherwise a single-layer BidirectionalLstmEncoder. Both project to `mu`.
    """
    mu_vars = load_layer(ENCODER_MU_PREFIX, variables)

    if num_segments:
        fw, bw = _bidirectional_layers(HIER_ENCODER_FORMAT, variables)
        if len(fw) != len(bw) or len(fw) != NUM_HIER_ENCODER_LEVELS:
            raise TopologyError(
                f'Only {NUM_HIER_ENCODER_LEVELS} hierarchical encoder levels '
                f'are supported. Got {len(fw)} forward and {len(bw)} backward.'
            )
        base_encoders = [
            BidirectionalLstmEncoder(fw_l, bw_l) for fw_l, bw_l in zip(fw, bw)
        ]
        return HierarchicalEncoder(base_encoders, [num_segments, 1], mu_vars)

    fw, bw = _bidirectional_layers(ENCODER_FORMAT, variables)
    if len(fw) != len(bw) or len(fw) != NUM_FLAT_ENCODER_LAYERS:
        raise TopologyError(
            'Only single-layer bidirectional encoders are supported. '
            f'Got {len(fw)} forward and {len(bw)} backward.'
        )
    return BidirectionalLstmEncoder(fw[0], bw[0], mu_vars)


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------

def decoder_prefixes(num_segments: int | None = None, num_splits: int | None = None):
    """Variable prefixes of each BaseDecoder stream."""
    base = CORE_DECODER_PREFIX if num_segments else ''
    if num_splits:
        return [base + layer_name(SPLIT_DECODER_FORMAT, i) for i in range(num_splits)]
    return [base + DECODER_PREFIX]


def build_base_decoder(prefix: str, variables: Mapping) -> BaseDecoder:
    lstm_layers = discover_layers(prefix + MULTI_LSTM_CELL_FORMAT, variables)
    if not lstm_layers:
        raise TopologyError(f'No decoder LSTM layers found under `{prefix}`.')
    nade = None
    if prefix + NADE_ENC_WEIGHTS in variables or prefix + NADE_DEC_WEIGHTS_T in variables:
        nade = load_nade(prefix, variables)
    return BaseDecoder(
        lstm_layers,
        load_layer(prefix + Z_TO_INITIAL_STATE_PREFIX, variables),
        load_layer(prefix + OUTPUT_PROJECTION_PREFIX, variables),
        nade,
    )


def build_decoder(
    variables: Mapping,
    num_segments: int | None = None,
    num_splits: int | None = None,
):
    """
    One BaseDecoder per stream; with `num_segments` they become the core
    decoders of a ConductorDecoder, otherwise there must be exactly one.
    """
    base_decoders = [
        build_base_decoder(prefix, variables)
        for prefix in decoder_prefixes(num_segments, num_splits)
    ]

    if num_segments:
        conductor_layers = discover_layers(CONDUCTOR_PREFIX + LSTM_CELL_FORMAT, variables)
        if not conductor_layers:
            raise TopologyError('No conductor LSTM layers found.')
        return ConductorDecoder(
            base_decoders,
            conductor_layers,
            load_layer(CONDUCTOR_INITIAL_STATE_PREFIX, variables),
            num_segments,
        )
    if len(base_decoders) == 1:
        return base_decoders[0]
    raise TopologyError(
        'Unexpected number of base decoders without conductor: '
        f'{len(base_decoders)}'
    )
