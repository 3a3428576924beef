"""
Shared heat exchanger utilities.

This module provides the energy balance, LMTD and overall-coefficient helpers used
by both the double-pipe and the shell-tube tools. LMTD and the multi-pass F
correction come from the upstream ht library.
"""

import logging
import math
from typing import Dict, Optional, Tuple

from ht.core import LMTD
from ht.hx import F_LMTD_Fakheri

from utils.constants import DEG_C_to_K, ENERGY_BALANCE_TOLERANCE, F_CORRECTION_FALLBACK
from utils.hx_models import FluidStream
from utils.validation import (
    EnergyBalanceMismatch,
    InvalidPhysicalState,
    TemperatureCross,
    UnderspecifiedEnergyBalance,
    ValidationError,
    require_physical,
)

logger = logging.getLogger("hx-design-mcp.hx_common")


def close_energy_balance(
    hot: FluidStream,
    cold: FluidStream,
    heat_duty_W: Optional[float] = None,
    tolerance: float = ENERGY_BALANCE_TOLERANCE,
) -> Tuple[float, FluidStream, FluidStream]:
    """
    Solve the hot/cold energy balance for the single unknown and return the duty.

    Q = m_h * cp_h * (Th_in - Th_out) = m_c * cp_c * (Tc_out - Tc_in)

    Supported cases:
    - one mass flow unknown: all four temperatures must be known
    - both mass flows known: at most one outlet temperature unknown; when all
      four are known the two sides must agree within ``tolerance``
    - ``heat_duty_W`` given: both mass flows required, missing outlets follow
      from the inlets

    Args:
        hot: Hot stream (mass flow and outlet temperature may be None)
        cold: Cold stream (mass flow and outlet temperature may be None)
        heat_duty_W: Optional fixed duty (W)
        tolerance: Allowed relative mismatch between Q_hot and Q_cold

    Returns:
        Tuple of (Q in W, resolved hot stream, resolved cold stream)
    """
    m_h, m_c = hot.mass_flow_kg_s, cold.mass_flow_kg_s
    Thi, Tho = hot.inlet_temp_K, hot.outlet_temp_K
    Tci, Tco = cold.inlet_temp_K, cold.outlet_temp_K
    cp_h = require_physical(hot.specific_heat_J_kgK, "hot specific heat")
    cp_c = require_physical(cold.specific_heat_J_kgK, "cold specific heat")

    if Thi is None or Tci is None:
        raise UnderspecifiedEnergyBalance("Both inlet temperatures are required")
    if m_h is None and m_c is None:
        raise UnderspecifiedEnergyBalance("At least one mass flow rate must be provided")
    if m_h is not None:
        require_physical(m_h, "hot mass flow")
    if m_c is not None:
        require_physical(m_c, "cold mass flow")
    if Thi <= Tci:
        raise TemperatureCross(
            f"Hot inlet ({Thi:.2f} K) must be hotter than cold inlet ({Tci:.2f} K)"
        )
    _check_direction(Thi, Tho, Tci, Tco)

    if heat_duty_W is not None:
        if m_h is None or m_c is None:
            raise UnderspecifiedEnergyBalance("Both mass flow rates are required when heat_duty_W is given")
        Q = require_physical(heat_duty_W, "heat_duty_W")
        if Tho is None:
            Tho = Thi - Q / (m_h * cp_h)
        elif abs(m_h * cp_h * (Thi - Tho) - Q) > tolerance * Q:
            raise EnergyBalanceMismatch(
                f"Hot side duty {m_h * cp_h * (Thi - Tho):.1f} W does not match heat_duty_W={Q:.1f} W"
            )
        if Tco is None:
            Tco = Tci + Q / (m_c * cp_c)
        elif abs(m_c * cp_c * (Tco - Tci) - Q) > tolerance * Q:
            raise EnergyBalanceMismatch(
                f"Cold side duty {m_c * cp_c * (Tco - Tci):.1f} W does not match heat_duty_W={Q:.1f} W"
            )
    elif m_h is None or m_c is None:
        if Tho is None or Tco is None:
            raise UnderspecifiedEnergyBalance(
                "To calculate an unknown mass flow rate, all inlet and outlet temperatures must be provided"
            )
        if m_h is None:
            Q = m_c * cp_c * (Tco - Tci)
            m_h = Q / (cp_h * (Thi - Tho))
        else:
            Q = m_h * cp_h * (Thi - Tho)
            m_c = Q / (cp_c * (Tco - Tci))
    else:
        if Tho is None and Tco is None:
            raise UnderspecifiedEnergyBalance(
                "With both mass flows known, at least one outlet temperature is required"
            )
        if Tho is None:
            Q = m_c * cp_c * (Tco - Tci)
            Tho = Thi - Q / (m_h * cp_h)
        elif Tco is None:
            Q = m_h * cp_h * (Thi - Tho)
            Tco = Tci + Q / (m_c * cp_c)
        else:
            Q_hot = m_h * cp_h * (Thi - Tho)
            Q_cold = m_c * cp_c * (Tco - Tci)
            if abs(Q_hot - Q_cold) > tolerance * Q_hot:
                raise EnergyBalanceMismatch(
                    f"Energy balance not satisfied: Q_hot={Q_hot:.1f} W, Q_cold={Q_cold:.1f} W "
                    f"(> {tolerance * 100:.0f}% difference)"
                )
            Q = Q_hot

    if not math.isfinite(Q) or Q <= 0:
        raise InvalidPhysicalState(f"Heat duty must be finite and > 0; got {Q}")

    hot_resolved = hot.with_updates(mass_flow_kg_s=m_h, outlet_temp_K=Tho)
    cold_resolved = cold.with_updates(mass_flow_kg_s=m_c, outlet_temp_K=Tco)
    return Q, hot_resolved, cold_resolved


def _check_direction(Thi: float, Tho: Optional[float], Tci: float, Tco: Optional[float]) -> None:
    if Tho is not None and Tho >= Thi:
        raise TemperatureCross(f"Hot stream must cool: inlet {Thi:.2f} K, outlet {Tho:.2f} K")
    if Tco is not None and Tco <= Tci:
        raise TemperatureCross(f"Cold stream must heat: inlet {Tci:.2f} K, outlet {Tco:.2f} K")


def calculate_lmtd(
    Thi: float,
    Tho: float,
    Tci: float,
    Tco: float,
    counterflow: bool = True
) -> float:
    """
    Calculate LMTD, raising TemperatureCross when it is undefined.

    Uses ht.core.LMTD; the dT1 == dT2 limit returns dT1 exactly.

    Args:
        Thi: Hot fluid inlet temperature (K)
        Tho: Hot fluid outlet temperature (K)
        Tci: Cold fluid inlet temperature (K)
        Tco: Cold fluid outlet temperature (K)
        counterflow: True for counterflow, False for parallel flow

    Returns:
        LMTD in K
    """
    if counterflow:
        dT1 = Thi - Tco
        dT2 = Tho - Tci
    else:
        dT1 = Thi - Tci
        dT2 = Tho - Tco

    if not (math.isfinite(dT1) and math.isfinite(dT2)):
        raise InvalidPhysicalState(f"Terminal temperature differences must be finite: dT1={dT1}, dT2={dT2}")
    if dT1 <= 0 or dT2 <= 0:
        raise TemperatureCross(
            f"Temperature cross in {'counter-current' if counterflow else 'co-current'} flow: "
            f"dT1={dT1:.2f}K, dT2={dT2:.2f}K"
        )
    if dT1 == dT2:
        return dT1
    if abs(dT1 - dT2) <= 1e-9 * dT1:
        # ln(dT1/dT2) underflows to zero; arithmetic mean is exact to second order
        return (dT1 + dT2) / 2

    return LMTD(Thi=Thi, Tho=Tho, Tci=Tci, Tco=Tco, counterflow=counterflow)


def calculate_f_correction(
    Thi: float,
    Tho: float,
    Tci: float,
    Tco: float,
    tube_passes: int = 2,
    shells: int = 1,
    fallback: float = F_CORRECTION_FALLBACK,
) -> Tuple[float, str]:
    """
    Calculate LMTD correction factor for multi-pass shell-tube HX.

    Uses ht.hx.F_LMTD_Fakheri. A single tube pass is true counterflow (F = 1).
    When the correlation is undefined for the terminal temperatures the constant
    ``fallback`` is returned instead and the approximation is logged.

    Returns:
        Tuple of (F, source) with source one of 'counterflow', 'Fakheri', 'fallback'
    """
    if tube_passes == 1:
        return 1.0, "counterflow"

    if tube_passes % (2 * shells) != 0:
        logger.warning(
            f"F_LMTD_Fakheri: tube_passes ({tube_passes}) is not a multiple of 2 * shells ({2 * shells}). "
            "F correction may be inaccurate."
        )

    try:
        F = F_LMTD_Fakheri(Thi=Thi, Tho=Tho, Tci=Tci, Tco=Tco, shells=shells)
    except (ValueError, ZeroDivisionError, ArithmeticError) as e:
        logger.warning(f"F_LMTD_Fakheri failed: {e}, using F={fallback}")
        return fallback, "fallback"

    if isinstance(F, complex) or not math.isfinite(F) or F <= 0 or F > 1.0 + 1e-9:
        logger.warning(f"F_LMTD_Fakheri returned {F}, using F={fallback}")
        return fallback, "fallback"
    if F < 0.75:
        logger.warning(f"Low F correction ({F:.3f}) suggests temperature approach is tight")
    return min(float(F), 1.0), "Fakheri"


def calculate_annulus_geometry(
    D_outer: float,
    D_inner: float
) -> Dict:
    """
    Calculate annulus geometry for double-pipe heat exchangers.

    Args:
        D_outer: Inner diameter of outer pipe (m)
        D_inner: Outer diameter of inner pipe (m)

    Returns:
        Dict with annulus geometry properties
    """
    if D_outer <= D_inner:
        raise ValidationError(f"Outer diameter ({D_outer}m) must be greater than inner diameter ({D_inner}m)")

    # Cross-sectional area of annulus
    A_annulus = math.pi / 4 * (D_outer**2 - D_inner**2)

    # Hydraulic diameter for annulus: Dh = 4*A/P = D_outer - D_inner
    D_hydraulic = D_outer - D_inner

    # Equivalent diameter for heat transfer (heated perimeter is the inner pipe only)
    D_equivalent = (D_outer**2 - D_inner**2) / D_inner

    return {
        "D_outer_m": D_outer,
        "D_inner_m": D_inner,
        "A_annulus_m2": A_annulus,
        "D_hydraulic_m": D_hydraulic,
        "D_equivalent_m": D_equivalent,
        "gap_m": (D_outer - D_inner) / 2
    }


def calculate_overall_U(
    h_inner: float,
    h_outer: float,
    D_inner: float,
    D_outer: float,
    k_wall: Optional[float] = None,
    fouling_inner: float = 0.0,
    fouling_outer: float = 0.0,
) -> Dict:
    """
    Calculate clean and fouled overall coefficients for a cylindrical wall.

    Resistances in series, referenced to the outer surface of the inner tube:
    1/U_o = 1/h_o + R_fo + d_o*ln(d_o/d_i)/(2k) + R_fi*(d_o/d_i) + (d_o/d_i)/h_i

    The wall term is dropped when k_wall is None; the clean coefficient omits
    both fouling terms.

    Args:
        h_inner: Inner (tube-side) film coefficient (W/m²K)
        h_outer: Outer (annulus/shell-side) film coefficient (W/m²K)
        D_inner: Tube inner diameter (m)
        D_outer: Tube outer diameter (m)
        k_wall: Wall thermal conductivity (W/m-K), optional
        fouling_inner: Inner fouling resistance (m²K/W)
        fouling_outer: Outer fouling resistance (m²K/W)

    Returns:
        Dict with clean/fouled U and resistance breakdown
    """
    require_physical(h_inner, "h_inner")
    require_physical(h_outer, "h_outer")
    ratio = D_outer / D_inner
    if ratio <= 1.0:
        raise InvalidPhysicalState(f"Tube OD/ID ratio must exceed 1; got {ratio}")

    R_conv_inner = ratio / h_inner
    R_fouling_inner = fouling_inner * ratio
    R_wall = D_outer * math.log(ratio) / (2 * k_wall) if k_wall else 0.0
    R_fouling_outer = fouling_outer
    R_conv_outer = 1 / h_outer

    R_clean = R_conv_inner + R_wall + R_conv_outer
    R_total = R_clean + R_fouling_inner + R_fouling_outer

    return {
        "U_clean_W_m2K": require_physical(1 / R_clean, "U_clean"),
        "U_fouled_W_m2K": require_physical(1 / R_total, "U_fouled"),
        "R_total_m2K_W": R_total,
        "R_conv_inner_m2K_W": R_conv_inner,
        "R_fouling_inner_m2K_W": R_fouling_inner,
        "R_wall_m2K_W": R_wall,
        "R_fouling_outer_m2K_W": R_fouling_outer,
        "R_conv_outer_m2K_W": R_conv_outer,
    }


def format_temperature_output(
    Thi: float,
    Tho: float,
    Tci: float,
    Tco: float
) -> Dict:
    """
    Format temperatures in standard output structure.

    Returns:
        Dict with temperatures in K and C
    """
    return {
        "hot_inlet_K": Thi,
        "hot_inlet_C": Thi - DEG_C_to_K,
        "hot_outlet_K": Tho,
        "hot_outlet_C": Tho - DEG_C_to_K,
        "cold_inlet_K": Tci,
        "cold_inlet_C": Tci - DEG_C_to_K,
        "cold_outlet_K": Tco,
        "cold_outlet_C": Tco - DEG_C_to_K,
        "approach_hot_end_K": Thi - Tco,
        "approach_cold_end_K": Tho - Tci,
    }
