import jax.numpy as jnp
from jaxtyping import Array

from music_vae.errors import ConfigurationError


def interpolate_linear(z0: Array, z1: Array, num_interps: int) -> Array:
    """
    `num_interps` evenly spaced points from z0 to z1, endpoints included.
    Returns (num_interps, z_dims).
    """
    t = jnp.linspace(0.0, 1.0, num_interps)[:, None]
    # (1 - t) * z0 + t * z1 is exact at both endpoints.
    return (1.0 - t) * z0 + t * z1


def interpolate_bilinear(z_a, z_b, z_c, z_d, num_interps: int) -> Array:
    """
    Bilinear grid in row-major order, rows indexed by t and columns by u:

        | A . . C |
        | . . . . |
        | B . . D |

    Returns (num_interps ** 2, z_dims).
    """
    r = jnp.linspace(0.0, 1.0, num_interps)
    rev = 1.0 - r
    corners = [
        (jnp.outer(rev, rev), z_a),
        (jnp.outer(r,   rev), z_b),
        (jnp.outer(rev, r),   z_c),
        (jnp.outer(r,   r),   z_d),
    ]
    grid = sum(w[:, :, None] * z for w, z in corners)
    return grid.reshape(num_interps * num_interps, -1)


def get_interpolated_zs(z: Array, num_interps: int) -> Array:
    """
    Linear interpolation for 2 latent vectors, bilinear for 4.

    z: (2 | 4, z_dims)
    """
    if z.shape[0] == 2:
        return interpolate_linear(z[0], z[1], num_interps)
    if z.shape[0] == 4:
        return interpolate_bilinear(z[0], z[1], z[2], z[3], num_interps)
    raise ConfigurationError(
        'Invalid number of input sequences. Requires length 2, or 4; '
        f'got {z.shape[0]}.'
    )
