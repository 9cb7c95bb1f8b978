import abc
import logging

from jaxtyping import Array

from music_vae.checkpoint import fetch_json, join_url
from music_vae.constants import CONVERTER_FILE
from music_vae.errors import ConfigurationError

logger = logging.getLogger(__name__)


class DataConverter(abc.ABC):
    """
    Converts between domain sequences and (time, depth) arrays.

    num_steps:    decoded sequence length
    num_segments: if set, the model is hierarchical over this many segments
    num_splits:   if set, the decoder has this many parallel output streams
    """
    num_steps: int
    num_segments: int | None = None
    num_splits: int | None = None

    @abc.abstractmethod
    def to_tensor(self, sequence) -> Array:
        ...

    @abc.abstractmethod
    async def to_note_sequence(self, tensor: Array):
        """
        (time, depth) bool array -> domain sequence. The array is released once
        this returns, so it must not be retained.
        """
        ...


CONVERTERS: dict[str, type[DataConverter]] = {}


def register_converter(cls=None, *, name=None):
    """Class decorator making a converter available to `converter_from_spec`."""
    def register(cls):
        CONVERTERS[name or cls.__name__] = cls
        return cls
    return register if cls is None else register(cls)


def converter_from_spec(spec: dict) -> DataConverter:
    """{"type": <registered name>, "args": {...}} -> converter instance"""
    try:
        converter_type = spec['type']
    except (KeyError, TypeError):
        raise ConfigurationError(f'Converter spec has no "type": {spec!r}') from None
    if converter_type not in CONVERTERS:
        raise ConfigurationError(
            f'Unknown converter type `{converter_type}`. '
            f'Registered: {sorted(CONVERTERS)}'
        )
    return CONVERTERS[converter_type](**spec.get('args', {}))


async def fetch_converter(checkpoint_url: str) -> DataConverter:
    """Builds the converter described by the checkpoint's `converter.json`."""
    spec = await fetch_json(join_url(checkpoint_url, CONVERTER_FILE))
    converter = converter_from_spec(spec)
    logger.info('Using %s from %s', type(converter).__name__, checkpoint_url)
    return converter
