"""Pacejka magic-formula tire forces for pure and combined slip."""

from __future__ import annotations

import math
from typing import Tuple

from .params import TireParameters


def _sign(value: float) -> float:
    if value > 0:
        return 1.0
    if value < 0:
        return -1.0
    return 0.0


def formula_longitudinal(kappa: float, gamma: float, f_z: float, p: TireParameters) -> float:
    """Pure-slip longitudinal force for slip ratio ``kappa`` and camber ``gamma``.

    The force vanishes at zero slip only when the shifts ``p_hx1`` and ``p_vx1``
    are zero; the fitted defaults leave a small residual.
    """
    # slip ratio is defined with the opposite sign convention to the formula
    kappa = -kappa

    s_hx = p.p_hx1
    s_vx = f_z * p.p_vx1

    kappa_x = kappa + s_hx
    mu_x = p.p_dx1 * (1 - p.p_dx3 * gamma**2)

    c_x = p.p_cx1
    d_x = mu_x * f_z
    e_x = p.p_ex1
    k_x = f_z * p.p_kx1
    b_x = k_x / (c_x * d_x) if d_x != 0 else 0.0

    return d_x * math.sin(
        c_x * math.atan(b_x * kappa_x - e_x * (b_x * kappa_x - math.atan(b_x * kappa_x))) + s_vx
    )


def formula_lateral(alpha: float, gamma: float, f_z: float, p: TireParameters) -> Tuple[float, float]:
    """Pure-slip lateral force and lateral friction coefficient for slip angle ``alpha``."""
    s_hy = _sign(gamma) * (p.p_hy1 + p.p_hy3 * abs(gamma))
    s_vy = _sign(gamma) * f_z * (p.p_vy1 + p.p_vy3 * abs(gamma))

    alpha_y = alpha + s_hy
    mu_y = p.p_dy1 * (1 - p.p_dy3 * gamma**2)

    c_y = p.p_cy1
    d_y = mu_y * f_z
    e_y = p.p_ey1
    k_y = f_z * p.p_ky1
    b_y = k_y / (c_y * d_y) if d_y != 0 else 0.0

    f_y = d_y * math.sin(
        c_y * math.atan(b_y * alpha_y - e_y * (b_y * alpha_y - math.atan(b_y * alpha_y)))
    ) + s_vy
    return f_y, mu_y


def formula_longitudinal_combined(kappa: float, alpha: float, f0_x: float, p: TireParameters) -> float:
    """Reduce the pure longitudinal force ``f0_x`` for simultaneous slip angle ``alpha``."""
    s_hxalpha = p.r_hx1
    alpha_s = alpha + s_hxalpha

    b_xalpha = p.r_bx1 * math.cos(math.atan(p.r_bx2 * kappa))
    c_xalpha = p.r_cx1
    e_xalpha = p.r_ex1

    denominator = math.cos(
        c_xalpha
        * math.atan(
            b_xalpha * s_hxalpha
            - e_xalpha * (b_xalpha * s_hxalpha - math.atan(b_xalpha * s_hxalpha))
        )
    )
    d_xalpha = f0_x / denominator if denominator != 0 else 0.0

    return d_xalpha * math.cos(
        c_xalpha
        * math.atan(b_xalpha * alpha_s - e_xalpha * (b_xalpha * alpha_s - math.atan(b_xalpha * alpha_s)))
    )


def formula_lateral_combined(
    kappa: float,
    alpha: float,
    gamma: float,
    mu_y: float,
    f_z: float,
    f0_y: float,
    p: TireParameters,
) -> float:
    """Reduce the pure lateral force ``f0_y`` for simultaneous slip ratio ``kappa``."""
    s_hykappa = p.r_hy1
    kappa_s = kappa + s_hykappa

    b_ykappa = p.r_by1 * math.cos(math.atan(p.r_by2 * (alpha - p.r_by3)))
    c_ykappa = p.r_cy1
    e_ykappa = p.r_ey1

    denominator = math.cos(
        c_ykappa
        * math.atan(
            b_ykappa * s_hykappa
            - e_ykappa * (b_ykappa * s_hykappa - math.atan(b_ykappa * s_hykappa))
        )
    )
    d_ykappa = f0_y / denominator if denominator != 0 else 0.0

    d_vykappa = mu_y * f_z * (p.r_vy1 + p.r_vy3 * gamma) * math.cos(math.atan(p.r_vy4 * alpha))
    s_vykappa = d_vykappa * math.sin(p.r_vy5 * math.atan(p.r_vy6 * kappa))

    return d_ykappa * math.cos(
        c_ykappa
        * math.atan(b_ykappa * kappa_s - e_ykappa * (b_ykappa * kappa_s - math.atan(b_ykappa * kappa_s)))
    ) + s_vykappa


__all__ = [
    "formula_longitudinal",
    "formula_lateral",
    "formula_longitudinal_combined",
    "formula_lateral_combined",
]
