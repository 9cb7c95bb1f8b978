from music_vae.errors import (
    CheckpointError,
    ConfigurationError,
    NotInitializedError,
    TopologyError,
)
from music_vae.layers import LayerVars, dense
from music_vae.models import (
    Encoder,
    BidirectionalLstmEncoder,
    HierarchicalEncoder,
    Decoder,
    BaseDecoder,
    ConductorDecoder,
    Nade,
)
from music_vae.arena import WeightArena
from music_vae.checkpoint import CheckpointLoader
from music_vae.converters import (
    DataConverter,
    converter_from_spec,
    register_converter,
)
from music_vae.interpolation import get_interpolated_zs
from music_vae.topology import build_decoder, build_encoder, discover_layers
from music_vae.model import MusicVAE
