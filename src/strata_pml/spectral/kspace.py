"""
Wavenumbers for spectral field updates on finite-order stencils.

A spectral solver of finite order ``m`` (even) replaces the exact wave
vector ``k`` by the modified wavenumber of the equivalent centred finite
difference, which keeps the solver local enough to run per box with a
small number of guard cells:

    collocated:  k_mod = sum_n c_n * sin(k * n * dx) / (n * dx),          n = 1..m/2
    staggered:   k_mod = sum_n c_n * sin(k * (n - 1/2) * dx) / ((n - 1/2) * dx)

The coefficients ``c_n`` follow from the Fornberg recurrence. An order of
``-1`` selects the exact ``k`` (infinite order).

Example:
    >>> stencil_coefficients(2, staggered=False)
    array([1.])
    >>> stencil_coefficients(4, staggered=False)
    array([ 1.33333333, -0.33333333])
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray
from scipy import fft


def stencil_coefficients(order: int, staggered: bool) -> NDArray[np.float64]:
    """Finite-difference coefficients of an even-order centred stencil."""
    if order <= 0 or order % 2:
        raise ValueError(f"stencil order must be a positive even number, got {order}")
    m = order // 2
    coeffs = np.zeros(m, dtype=np.float64)
    if staggered:
        prod = 1.0
        for k in range(1, m + 1):
            prod *= (m + k) / (4.0 * k)
        coeffs[0] = 4.0 * m * prod**2
        for n in range(1, m):
            coeffs[n] = -((2 * n - 1) * (m - n)) / ((2 * n + 1) * (m + n)) * coeffs[n - 1]
    else:
        coeffs[0] = 2.0 * m / (m + 1)
        for n in range(1, m):
            coeffs[n] = -(m - n) / (m + n + 1) * coeffs[n - 1]
    return coeffs


def exact_wavenumbers(n: int, dx: float) -> NDArray[np.float64]:
    """Angular wavenumbers of an ``n``-point periodic FFT with spacing ``dx``."""
    return 2.0 * np.pi * fft.fftfreq(n, d=dx)


def modified_wavenumbers(
    k: NDArray[np.float64],
    dx: float,
    order: int,
    staggered: bool,
) -> NDArray[np.float64]:
    """Modified wavenumbers of a stencil of the given order (-1 for exact)."""
    if order == -1:
        return np.array(k, dtype=np.float64)
    coeffs = stencil_coefficients(order, staggered)
    k_mod = np.zeros_like(k, dtype=np.float64)
    for n, c_n in enumerate(coeffs):
        # Stencil half-width of term n in cells
        width = (n + 0.5) if staggered else (n + 1.0)
        k_mod += c_n * np.sin(k * width * dx) / (width * dx)
    return k_mod


def shift_factor(k: NDArray[np.float64], dx: float, forward: bool) -> NDArray[np.complex128]:
    """Half-cell staggering shift, ``exp(-i k dx/2)`` forward and ``exp(+i k dx/2)`` back."""
    sign = -1.0 if forward else 1.0
    return np.exp(sign * 0.5j * k * dx)


class SpectralKSpace:
    """Wave vectors of one box for a spectral update.

    Args:
        shape: Number of points per spatial axis of the transformed box
        dx: Cell size per axis
        order: Stencil order per axis (-1 for infinite order)
        staggered: Whether the fields live on a staggered grid

    Attributes:
        k_exact: Exact wavenumbers per axis, shaped to broadcast against the
            transformed array
        k_mod: Modified wavenumbers per axis, same shapes; axes beyond the
            box dimension hold a scalar zero
        k_norm: Norm of the modified wave vector
    """

    def __init__(
        self,
        shape: Sequence[int],
        dx: Sequence[float],
        order: Sequence[int],
        staggered: bool,
    ):
        self.shape = tuple(shape)
        self.dim = len(self.shape)
        self.dx = tuple(dx)
        self.staggered = staggered
        self.k_exact: list[NDArray] = []
        self.k_mod: list[NDArray] = []
        for d, n in enumerate(self.shape):
            bshape = [1] * self.dim
            bshape[d] = n
            k = exact_wavenumbers(n, self.dx[d])
            self.k_exact.append(k.reshape(bshape))
            self.k_mod.append(
                modified_wavenumbers(k, self.dx[d], order[d], staggered).reshape(bshape)
            )
        for _ in range(self.dim, 3):
            self.k_exact.append(np.zeros(1))
            self.k_mod.append(np.zeros(1))
        self.k_norm = np.sqrt(sum(k**2 for k in self.k_mod))

    def shift(self, ixtype: Sequence[int], forward: bool) -> NDArray[np.complex128] | float:
        """Product of the half-cell shifts along the cell-centred axes of ``ixtype``."""
        factor = 1.0
        for d, t in enumerate(ixtype):
            if t == 0:
                factor = factor * shift_factor(self.k_exact[d], self.dx[d], forward)
        return factor
