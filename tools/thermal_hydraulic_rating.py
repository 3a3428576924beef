"""
Thermal-hydraulic rating of a fully specified exchanger geometry.

Given a geometry and the two fluid streams, returns film coefficients, Reynolds
and Prandtl numbers, velocities and pressure drops for each side plus the clean
and fouled overall coefficient. Dimensionless groups, friction factors and
velocity-head pressure drops come from the fluids library.

Correlations:
- Tube / inner pipe / annulus: Nu = 0.023 Re^0.8 Pr^(1/3)
- Shell side (Kern): Nu = 0.36 Re^0.55 Pr^(1/3) on the equivalent diameter
- Friction: Blasius for turbulent pipe flow, 64/Re below Re = 2300 when laminar
  handling is on, Kern f = exp(0.576 - 0.19 ln Re) on the shell side

Reference: Kern, Process Heat Transfer (1950), Chapters 6, 7 and 9
"""

import logging
import math
from dataclasses import replace
from typing import Optional, Tuple

from fluids.core import Prandtl, Reynolds, dP_from_K
from fluids.friction import Blasius, friction_laminar

from utils.constants import LAMINAR_RE_LIMIT
from utils.hx_common import calculate_annulus_geometry, calculate_overall_U
from utils.hx_models import (
    CorrelationResult,
    DoublePipeGeometry,
    FluidStream,
    Geometry,
    RatingResult,
    ShellTubeGeometry,
)
from utils.validation import InvalidPhysicalState, ValidationError, require_physical

logger = logging.getLogger("hx-design-mcp.thermal_hydraulic_rating")


def _dimensionless_groups(stream: FluidStream, velocity: float, length: float, side: str) -> Tuple[float, float]:
    Re = Reynolds(V=velocity, D=length, rho=stream.density_kg_m3, mu=stream.viscosity_Pa_s)
    Pr = Prandtl(Cp=stream.specific_heat_J_kgK, k=stream.conductivity_W_mK, mu=stream.viscosity_Pa_s)
    require_physical(Re, f"{side} Reynolds number")
    require_physical(Pr, f"{side} Prandtl number")
    return Re, Pr


def _pipe_friction(Re: float, laminar_friction: bool) -> Tuple[float, str]:
    if Re < LAMINAR_RE_LIMIT:
        if laminar_friction:
            return friction_laminar(Re), "laminar"
        logger.debug(f"Re={Re:.0f} is laminar but Blasius friction was requested")
    return Blasius(Re), "turbulent"


def _check_stream(stream: FluidStream, side: str) -> float:
    require_physical(stream.density_kg_m3, f"{side} density")
    require_physical(stream.viscosity_Pa_s, f"{side} viscosity")
    require_physical(stream.specific_heat_J_kgK, f"{side} specific heat")
    require_physical(stream.conductivity_W_mK, f"{side} thermal conductivity")
    return require_physical(stream.mass_flow_kg_s, f"{side} mass flow")


def rate_pipe_side(
    side: str,
    stream: FluidStream,
    flow_area_m2: float,
    diameter_m: float,
    laminar_friction: bool = True,
) -> CorrelationResult:
    """Rate flow inside circular tubes (inner pipe or tube bundle pass).

    The returned pressure gradient is the single-pass friction loss per metre,
    4f * (1/D) * rho*v²/2; callers scale it by length and passes.
    """
    m = _check_stream(stream, side)
    require_physical(flow_area_m2, f"{side} flow area")
    require_physical(diameter_m, f"{side} diameter")

    G = m / flow_area_m2
    v = G / stream.density_kg_m3
    Re, Pr = _dimensionless_groups(stream, v, diameter_m, side)

    Nu = 0.023 * Re**0.8 * Pr ** (1 / 3)
    h = require_physical(Nu * stream.conductivity_W_mK / diameter_m, f"{side} film coefficient")
    if Re < LAMINAR_RE_LIMIT:
        logger.debug(f"{side}: Re={Re:.0f} is below the turbulent range of the Nusselt correlation")

    f, regime = _pipe_friction(Re, laminar_friction)
    gradient = dP_from_K(K=4 * f / diameter_m, rho=stream.density_kg_m3, V=v)

    return CorrelationResult(
        side=side,
        h_W_m2K=h,
        Nu=Nu,
        Re=Re,
        Pr=Pr,
        velocity_m_s=v,
        mass_velocity_kg_m2s=G,
        characteristic_length_m=diameter_m,
        friction_factor=f,
        friction_regime=regime,
        pressure_gradient_Pa_m=gradient,
    )


def rate_annulus_side(
    stream: FluidStream,
    outer_id_m: float,
    inner_od_m: float,
    length_m: Optional[float] = None,
    laminar_friction: bool = True,
) -> CorrelationResult:
    """Rate the annulus of a double-pipe exchanger.

    Heat transfer uses the equivalent diameter De = (D² - d²)/d, friction the
    hydraulic diameter Dh = D - d.
    """
    side = "annulus"
    m = _check_stream(stream, side)
    geom = calculate_annulus_geometry(D_outer=outer_id_m, D_inner=inner_od_m)

    G = m / geom["A_annulus_m2"]
    v = G / stream.density_kg_m3
    De = geom["D_equivalent_m"]
    Dh = geom["D_hydraulic_m"]
    Re, Pr = _dimensionless_groups(stream, v, De, side)

    Nu = 0.023 * Re**0.8 * Pr ** (1 / 3)
    h = require_physical(Nu * stream.conductivity_W_mK / De, "annulus film coefficient")

    Re_friction = require_physical(
        Reynolds(V=v, D=Dh, rho=stream.density_kg_m3, mu=stream.viscosity_Pa_s), "annulus friction Reynolds number"
    )
    f, regime = _pipe_friction(Re_friction, laminar_friction)
    gradient = dP_from_K(K=4 * f / Dh, rho=stream.density_kg_m3, V=v)

    return CorrelationResult(
        side=side,
        h_W_m2K=h,
        Nu=Nu,
        Re=Re,
        Pr=Pr,
        velocity_m_s=v,
        mass_velocity_kg_m2s=G,
        characteristic_length_m=De,
        friction_factor=f,
        friction_regime=regime,
        pressure_gradient_Pa_m=gradient,
        pressure_drop_Pa=gradient * length_m if length_m is not None else None,
    )


def shell_equivalent_diameter(pitch_m: float, tube_od_m: float, pitch_type: str) -> float:
    """Kern equivalent diameter for square or triangular tube layouts."""
    if pitch_type == "square":
        De = 4 * (pitch_m**2 - math.pi * tube_od_m**2 / 4) / (math.pi * tube_od_m)
    elif pitch_type == "triangular":
        De = 4 * (0.5 * pitch_m * 0.866 * pitch_m - 0.5 * math.pi * tube_od_m**2 / 4) / (0.5 * math.pi * tube_od_m)
    else:
        raise ValidationError(f"pitch_type must be 'square' or 'triangular', got '{pitch_type}'")
    return require_physical(De, "shell equivalent diameter")


def rate_shell_side(stream: FluidStream, geometry: ShellTubeGeometry) -> CorrelationResult:
    """Kern shell-side coefficient and pressure drop."""
    side = "shell"
    m = _check_stream(stream, side)

    clearance = geometry.pitch_m - geometry.tube_od_m
    A_cross = geometry.shell_id_m * clearance * geometry.baffle_spacing_m / geometry.pitch_m
    require_physical(A_cross, "shell crossflow area")
    Gs = m / A_cross
    v = Gs / stream.density_kg_m3
    De = shell_equivalent_diameter(geometry.pitch_m, geometry.tube_od_m, geometry.pitch_type)
    Re, Pr = _dimensionless_groups(stream, v, De, side)

    Nu = 0.36 * Re**0.55 * Pr ** (1 / 3)
    h = require_physical(Nu * stream.conductivity_W_mK / De, "shell film coefficient")

    f = math.exp(0.576 - 0.19 * math.log(Re))
    n_crossings = geometry.baffle_count + 1
    dP = f * Gs**2 * geometry.shell_id_m * n_crossings / (2 * stream.density_kg_m3 * De)
    require_physical(dP, "shell pressure drop")

    return CorrelationResult(
        side=side,
        h_W_m2K=h,
        Nu=Nu,
        Re=Re,
        Pr=Pr,
        velocity_m_s=v,
        mass_velocity_kg_m2s=Gs,
        characteristic_length_m=De,
        friction_factor=f,
        friction_regime="kern",
        pressure_gradient_Pa_m=dP / geometry.tube_length_m,
        pressure_drop_Pa=dP,
    )


def tube_side_pressure_drop(tube: CorrelationResult, tube_length_m: float, tube_passes: int, density_kg_m3: float) -> float:
    """Friction over every pass plus 4 velocity heads of return loss per pass when multi-pass."""
    dP = tube.pressure_drop_over(tube_length_m * tube_passes)
    if tube_passes > 1:
        dP += dP_from_K(K=4 * tube_passes, rho=density_kg_m3, V=tube.velocity_m_s)
    return dP


def rate_double_pipe(
    geometry: DoublePipeGeometry,
    inner_stream: FluidStream,
    annulus_stream: FluidStream,
    k_wall_W_mK: Optional[float] = None,
    laminar_friction: bool = True,
) -> RatingResult:
    """Rate a double-pipe exchanger.

    Pressure drops are filled in only when ``geometry.length_m`` is known; the
    per-metre gradients are always available.

    Args:
        geometry: Inner pipe OD/ID, outer pipe ID and optional length
        inner_stream: Stream flowing inside the inner pipe
        annulus_stream: Stream flowing in the annulus
        k_wall_W_mK: Inner pipe wall conductivity; wall resistance omitted if None
        laminar_friction: Use 64/Re below Re = 2300

    Returns:
        RatingResult referenced to the inner pipe outer surface

    Raises:
        InvalidPhysicalState: non-positive or non-finite intermediate values
    """
    if geometry.outer_id_m <= geometry.inner_od_m or geometry.inner_id_m >= geometry.inner_od_m:
        raise InvalidPhysicalState(f"Degenerate double-pipe geometry: {geometry}")

    flow_area = math.pi * geometry.inner_id_m**2 / 4
    inner = rate_pipe_side("inner", inner_stream, flow_area, geometry.inner_id_m, laminar_friction)
    if geometry.length_m is not None:
        inner = _with_pressure_drop(inner, inner.pressure_drop_over(geometry.length_m))
    outer = rate_annulus_side(
        annulus_stream, geometry.outer_id_m, geometry.inner_od_m, geometry.length_m, laminar_friction
    )

    U = calculate_overall_U(
        h_inner=inner.h_W_m2K,
        h_outer=outer.h_W_m2K,
        D_inner=geometry.inner_id_m,
        D_outer=geometry.inner_od_m,
        k_wall=k_wall_W_mK,
        fouling_inner=inner_stream.fouling_m2K_W,
        fouling_outer=annulus_stream.fouling_m2K_W,
    )
    return _rating_from(inner, outer, U)


def rate_shell_tube(
    geometry: ShellTubeGeometry,
    tube_stream: FluidStream,
    shell_stream: FluidStream,
    k_wall_W_mK: Optional[float] = None,
    laminar_friction: bool = True,
) -> RatingResult:
    """Rate a shell-tube exchanger: tube side in ``inner``, Kern shell side in ``outer``.

    Raises:
        InvalidPhysicalState: non-positive or non-finite intermediate values
    """
    try:
        geometry.validate()
    except ValidationError as e:
        raise InvalidPhysicalState(str(e)) from e

    tubes_per_pass = geometry.tube_count / geometry.tube_passes
    flow_area = math.pi * geometry.tube_id_m**2 / 4 * tubes_per_pass
    tube = rate_pipe_side("tube", tube_stream, flow_area, geometry.tube_id_m, laminar_friction)
    tube = _with_pressure_drop(
        tube,
        tube_side_pressure_drop(tube, geometry.tube_length_m, geometry.tube_passes, tube_stream.density_kg_m3),
    )
    shell = rate_shell_side(shell_stream, geometry)

    U = calculate_overall_U(
        h_inner=tube.h_W_m2K,
        h_outer=shell.h_W_m2K,
        D_inner=geometry.tube_id_m,
        D_outer=geometry.tube_od_m,
        k_wall=k_wall_W_mK,
        fouling_inner=tube_stream.fouling_m2K_W,
        fouling_outer=shell_stream.fouling_m2K_W,
    )
    return _rating_from(tube, shell, U)


def rate_exchanger(
    geometry: Geometry,
    inner_stream: FluidStream,
    outer_stream: FluidStream,
    k_wall_W_mK: Optional[float] = None,
    laminar_friction: bool = True,
) -> RatingResult:
    """Dispatch on the geometry variant."""
    if isinstance(geometry, DoublePipeGeometry):
        return rate_double_pipe(geometry, inner_stream, outer_stream, k_wall_W_mK, laminar_friction)
    if isinstance(geometry, ShellTubeGeometry):
        return rate_shell_tube(geometry, inner_stream, outer_stream, k_wall_W_mK, laminar_friction)
    raise ValidationError(f"Unsupported geometry type: {type(geometry).__name__}")


def _with_pressure_drop(result: CorrelationResult, dP: float) -> CorrelationResult:
    require_physical(dP, f"{result.side} pressure drop")
    return replace(result, pressure_drop_Pa=dP)


def _rating_from(inner: CorrelationResult, outer: CorrelationResult, U: dict) -> RatingResult:
    return RatingResult(
        inner=inner,
        outer=outer,
        U_clean_W_m2K=U["U_clean_W_m2K"],
        U_fouled_W_m2K=U["U_fouled_W_m2K"],
        resistances_m2K_W={k: v for k, v in U.items() if k.startswith("R_")},
    )
