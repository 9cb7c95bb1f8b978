import pytest
import jax.numpy as jnp
import jax.random as jr

from music_vae.errors import ConfigurationError
from music_vae.interpolation import (
    get_interpolated_zs,
    interpolate_bilinear,
    interpolate_linear,
)


KEY = jr.PRNGKey(0)
Z   = 8


class TestLinear:

    @pytest.fixture(scope="class")
    def zs(self):
        return jr.normal(KEY, (2, Z))

    def test_endpoints_and_midpoint(self, zs):
        out = get_interpolated_zs(zs, 3)
        assert out.shape == (3, Z)
        assert jnp.array_equal(out[0], zs[0])
        assert jnp.array_equal(out[2], zs[1])
        assert jnp.allclose(out[1], (zs[0] + zs[1]) / 2, atol=1e-6)

    def test_count(self, zs):
        assert get_interpolated_zs(zs, 5).shape == (5, Z)

    def test_evenly_spaced(self, zs):
        out = interpolate_linear(zs[0], zs[1], 5)
        steps = jnp.diff(out, axis=0)
        assert jnp.allclose(steps, steps[0], atol=1e-5)


class TestBilinear:

    @pytest.fixture(scope="class")
    def zs(self):
        return jr.normal(KEY, (4, Z))

    def test_corners(self, zs):
        out = get_interpolated_zs(zs, 2)
        assert out.shape == (4, Z)
        # Row-major over (t, u): A top-left, C top-right, B bottom-left, D bottom-right.
        assert jnp.array_equal(out[0], zs[0])
        assert jnp.array_equal(out[1], zs[2])
        assert jnp.array_equal(out[2], zs[1])
        assert jnp.array_equal(out[3], zs[3])

    def test_corners_larger_grid(self, zs):
        n = 4
        grid = interpolate_bilinear(*zs, n).reshape(n, n, Z)
        assert jnp.array_equal(grid[0, 0], zs[0])
        assert jnp.array_equal(grid[n - 1, 0], zs[1])
        assert jnp.array_equal(grid[0, n - 1], zs[2])
        assert jnp.array_equal(grid[n - 1, n - 1], zs[3])

    def test_center_is_mean(self, zs):
        out = get_interpolated_zs(zs, 3).reshape(3, 3, Z)
        assert jnp.allclose(out[1, 1], zs.mean(axis=0), atol=1e-6)

    def test_edges_are_linear(self, zs):
        out = get_interpolated_zs(zs, 4).reshape(4, 4, Z)
        assert jnp.allclose(out[:, 0], interpolate_linear(zs[0], zs[1], 4), atol=1e-6)
        assert jnp.allclose(out[0, :], interpolate_linear(zs[0], zs[2], 4), atol=1e-6)

    def test_count(self, zs):
        assert get_interpolated_zs(zs, 4).shape == (16, Z)


@pytest.mark.parametrize("n", [1, 3, 5])
def test_invalid_input_count(n):
    with pytest.raises(ConfigurationError, match='Requires length 2, or 4'):
        get_interpolated_zs(jnp.zeros((n, Z)), 3)
