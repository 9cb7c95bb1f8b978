class ConfigurationError(ValueError):
    """Invalid weights, arguments or model configuration."""


class TopologyError(ConfigurationError):
    """Checkpoint layer/level counts differ from the supported architecture."""


class CheckpointError(ConfigurationError):
    """Malformed checkpoint manifest or weight file."""


class NotInitializedError(RuntimeError):
    """A model operation was called before `initialize()` or after `dispose()`."""
