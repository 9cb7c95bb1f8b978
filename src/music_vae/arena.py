import logging
from collections.abc import Mapping

from jaxtyping import Array

from music_vae.errors import ConfigurationError

logger = logging.getLogger(__name__)


class WeightArena(Mapping):
    """
    Sole owner of every weight array loaded from a checkpoint.

    Layers and NADE heads hold borrowed references to these arrays. `dispose`
    deletes the device buffers, which invalidates all of those references at
    once.
    """

    def __init__(self, variables: Mapping[str, Array]):
        self._variables = dict(variables)
        self._disposed = False

    def __getitem__(self, name):
        if self._disposed:
            raise ConfigurationError('The weight arena has been disposed.')
        return self._variables[name]

    def __iter__(self):
        return iter(self._variables)

    def __len__(self):
        return len(self._variables)

    def __contains__(self, name):
        return name in self._variables

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self):
        deleted = 0
        for array in self._variables.values():
            # Several names may alias one buffer.
            if hasattr(array, 'delete') and not array.is_deleted():
                array.delete()
                deleted += 1
        self._variables.clear()
        self._disposed = True
        logger.debug('Released %d weight buffers', deleted)
