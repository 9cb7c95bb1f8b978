import equinox as eqx
import jax
import jax.numpy as jnp
from jaxtyping import Array

from music_vae.constants import NADE_THRESHOLD


class Nade(eqx.Module):
    """
    Neural Autoregressive Distribution Estimator over `num_dims` binary
    variables with `num_hidden` hidden units.

    Weights are kept exactly as stored in the checkpoint, sized
    (num_dims, 1, num_hidden) or (num_dims, num_hidden), and viewed as 2-D on
    use.
    """
    enc_weights:   Array
    dec_weights_t: Array

    def __init__(self, enc_weights, dec_weights_t):
        self.enc_weights = enc_weights
        self.dec_weights_t = dec_weights_t

    @property
    def num_dims(self) -> int:
        return self.enc_weights.shape[0]

    @property
    def num_hidden(self) -> int:
        return self.enc_weights.shape[-1]

    def sample(self, enc_bias: Array, dec_bias: Array) -> Array:
        """
        Generates a batch of bit vectors, one dimension at a time.

        Each bit is the MAP of its conditional Bernoulli (probability >= 0.5),
        so the output is a deterministic function of the biases.

        enc_bias: (batch, num_hidden)
        dec_bias: (batch, num_dims)
        Returns:  (batch, num_dims) float32 bits
        """
        enc_w = jnp.reshape(self.enc_weights, (self.num_dims, self.num_hidden))
        dec_w_t = jnp.reshape(self.dec_weights_t, (self.num_dims, self.num_hidden))

        def step(a, xs):
            enc_w_i, dec_w_t_i, dec_bias_i = xs
            h = jax.nn.sigmoid(a)
            cond_logits_i = dec_bias_i + h @ dec_w_t_i
            bits_i = (jax.nn.sigmoid(cond_logits_i) >= NADE_THRESHOLD).astype(jnp.float32)
            # The accumulator after the final dimension is discarded.
            a = a + jnp.outer(bits_i, enc_w_i)
            return a, bits_i

        _, bits = jax.lax.scan(step, enc_bias, (enc_w, dec_w_t, dec_bias.T))
        return bits.T
