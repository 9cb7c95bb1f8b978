from music_vae.models.encoders import (
    Encoder,
    BidirectionalLstmEncoder,
    HierarchicalEncoder,
)
from music_vae.models.decoders import (
    Decoder,
    BaseDecoder,
    ConductorDecoder,
)
from music_vae.models.nade import Nade
