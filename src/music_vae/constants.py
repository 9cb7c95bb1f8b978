"""
Constants:

- LSTM recurrence constants
- Checkpoint variable-name templates (layer index placeholder: %d,
  direction placeholder: %s)
- Sidecar / manifest file names
- Sampling defaults
"""

# Added to the forget-gate pre-activation of every LSTM cell.
FORGET_BIAS = 1.0

# NADE bits are the MAP of each conditional Bernoulli.
NADE_THRESHOLD = 0.5

DEFAULT_SAMPLE_TEMPERATURE = 0.5

# ---------------------------------------------------------------------------
# Checkpoint naming conventions
# ---------------------------------------------------------------------------

KERNEL = 'kernel'
BIAS   = 'bias'

LSTM_CELL_FORMAT       = 'cell_%d/lstm_cell/'
MULTI_LSTM_CELL_FORMAT = 'multi_rnn_cell/' + LSTM_CELL_FORMAT
BIDI_LSTM_CELL_FORMAT  = 'cell_%d/bidirectional_rnn/%s/multi_rnn_cell/cell_0/lstm_cell/'

FORWARD  = 'fw'
BACKWARD = 'bw'

# Encoder
ENCODER_MU_PREFIX   = 'encoder/mu/'
ENCODER_FORMAT      = 'encoder/' + BIDI_LSTM_CELL_FORMAT
# Level index takes the %d slot; each level is a single bidirectional layer.
HIER_ENCODER_FORMAT = (
    'encoder/hierarchical_level_%d/' + BIDI_LSTM_CELL_FORMAT.replace('%d', '0')
)

# Decoder (relative to a stream prefix such as 'decoder/' or
# 'core_decoder/core_decoder_1/decoder/')
DECODER_PREFIX            = 'decoder/'
CORE_DECODER_PREFIX       = 'core_decoder/'
SPLIT_DECODER_FORMAT      = 'core_decoder_%d/decoder/'
Z_TO_INITIAL_STATE_PREFIX = 'z_to_initial_state/'
OUTPUT_PROJECTION_PREFIX  = 'output_projection/'
NADE_ENC_WEIGHTS          = 'nade/w_enc'
NADE_DEC_WEIGHTS_T        = 'nade/w_dec_t'

# Conductor
CONDUCTOR_PREFIX               = 'decoder/hierarchical_level_0/'
CONDUCTOR_INITIAL_STATE_PREFIX = CONDUCTOR_PREFIX + 'initial_state/'

# Fixed architecture expectations
NUM_HIER_ENCODER_LEVELS = 2
NUM_FLAT_ENCODER_LAYERS = 1

# ---------------------------------------------------------------------------
# Files next to a checkpoint
# ---------------------------------------------------------------------------

MANIFEST_FILE  = 'manifest.json'
CONVERTER_FILE = 'converter.json'

HTTP_TIMEOUT = 60  # seconds
