"""
Shell-tube heat exchanger design and rating with thermal-hydraulic coupling.

Design mode solves for the tube count and shell size by fixed-point iteration on
the overall coefficient U: a guessed U fixes the area, the area fixes the tube
count and shell, and rating that geometry gives a calculated U. The guess is
damped toward the calculated value until the two agree within tolerance.

Key features:
- Bundle diameter from ht.hx.DBundle_for_Ntubes_Phadkeb plus a shell clearance
- Shell snapped to the TEMA catalog (smallest shell at least as large as the bundle)
- Tube side Dittus-Boelter type correlation, shell side by the Kern method
- LMTD correction factor via F_LMTD_Fakheri for multi-pass configurations
- Non-convergence is reported on the result, never raised

Rating mode takes a fully specified exchanger and reports clean and design U,
required versus provided area and the overdesign.

Reference: Kern, Process Heat Transfer (1950), Chapter 7
"""

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from ht.hx import DBundle_for_Ntubes_Phadkeb

from tools.fluid_properties import resolve_streams
from tools.thermal_hydraulic_rating import rate_shell_tube
from utils.catalogs import STANDARD_SHELLS, ShellSize, smallest_shell_at_least, standard_tube
from utils.constants import (
    BAFFLE_SPACING_FRACTION,
    BUNDLE_SHELL_CLEARANCE_M,
    CARBON_STEEL_CONDUCTIVITY,
    DEFAULT_FOULING_M2K_W,
    DEFAULT_PITCH_RATIO,
    DEFAULT_TUBE_LENGTH_M,
    KPA_to_PA,
    MAX_ITERATIONS,
    P_ATM,
    TUBE_COUNT_MARGIN,
    U_DAMPING,
    U_INITIAL_W_M2K,
    U_TOLERANCE,
)
from utils.hx_common import (
    calculate_f_correction,
    calculate_lmtd,
    close_energy_balance,
    format_temperature_output,
)
from utils.hx_models import DesignCandidate, DesignResult, FluidStream, ShellTubeGeometry, TrialLog
from utils.validation import (
    MAX_ITERATIONS_EXCEEDED,
    InvalidPhysicalState,
    NoFeasibleDesign,
    ValidationError,
    error_payload,
    require_count,
    require_positive,
)

logger = logging.getLogger("hx-design-mcp.size_shell_tube_heat_exchanger")

# Tube layout angle for ht.hx bundle functions
LAYOUT_ANGLES = {"triangular": 30, "square": 90}


@dataclass(frozen=True)
class IterationState:
    """Everything one pass of the U loop produced. Built fresh each iteration."""

    iteration: int
    U_guess_W_m2K: float
    geometry: ShellTubeGeometry
    candidate: DesignCandidate
    U_calc_W_m2K: float
    relative_error: float


def baffle_layout(shell_id_m: float, tube_length_m: float, spacing_fraction: float = BAFFLE_SPACING_FRACTION):
    """Baffle spacing as a fraction of the shell ID, kept within [Ds/5, Ds], and the baffle count."""
    spacing = min(max(spacing_fraction * shell_id_m, shell_id_m / 5), shell_id_m)
    count = max(1, int(tube_length_m / spacing) - 1)
    return spacing, count


def tube_count_for_area(area_m2: float, tube_od_m: float, tube_length_m: float, tube_passes: int,
                        margin: float = TUBE_COUNT_MARGIN) -> int:
    """Tubes needed for an area with margin, rounded up to a whole number per pass."""
    n = math.ceil(margin * area_m2 / (math.pi * tube_od_m * tube_length_m))
    n = max(n, tube_passes)
    return int(math.ceil(n / tube_passes) * tube_passes)


def resolve_tube_id(tube_od_m: float, tube_id_m: Optional[float] = None) -> float:
    """Tube ID as given, else the ID of the standard tube with this OD."""
    if tube_id_m is not None:
        return tube_id_m
    tube = standard_tube(tube_od_m)
    if tube is None:
        raise ValidationError(
            f"tube_inner_diameter_m is required for non-standard tube OD {tube_od_m} m"
        )
    return tube.inner_diameter_m


def estimate_shell(
    tube_count: int,
    tube_od_m: float,
    pitch_m: float,
    tube_passes: int,
    pitch_type: str,
    shells: Sequence[ShellSize],
) -> ShellSize:
    """Smallest catalog shell that holds the tube bundle plus clearance.

    Raises:
        NoFeasibleDesign: the bundle does not fit the largest catalog shell
    """
    try:
        D_bundle = DBundle_for_Ntubes_Phadkeb(
            Ntubes=tube_count, Do=tube_od_m, pitch=pitch_m, Ntp=tube_passes, angle=LAYOUT_ANGLES[pitch_type]
        )
    except ValueError as e:
        raise NoFeasibleDesign(f"No bundle layout for {tube_count} tubes: {e}") from e

    shell = smallest_shell_at_least(D_bundle + BUNDLE_SHELL_CLEARANCE_M, shells)
    if shell is None:
        largest = max(s.inner_diameter_m for s in shells) if shells else 0.0
        raise NoFeasibleDesign(
            f"Bundle of {tube_count} tubes needs a {D_bundle + BUNDLE_SHELL_CLEARANCE_M:.3f} m shell; "
            f"largest catalog shell is {largest:.3f} m"
        )
    return shell


def design_shell_tube(
    hot: FluidStream,
    cold: FluidStream,
    tube_od_m: float = 0.019,
    tube_id_m: float = 0.016,
    tube_length_m: float = DEFAULT_TUBE_LENGTH_M,
    tube_passes: int = 2,
    pitch_ratio: float = DEFAULT_PITCH_RATIO,
    pitch_type: str = "triangular",
    baffle_spacing_fraction: float = BAFFLE_SPACING_FRACTION,
    shell_catalog: Optional[Sequence[ShellSize]] = None,
    U_initial_W_m2K: float = U_INITIAL_W_M2K,
    tolerance: float = U_TOLERANCE,
    max_iterations: int = MAX_ITERATIONS,
    damping: float = U_DAMPING,
    tube_count_margin: float = TUBE_COUNT_MARGIN,
    shell_side: str = "hot",
    heat_duty_W: Optional[float] = None,
    k_wall_W_mK: Optional[float] = None,
    laminar_friction: bool = True,
) -> DesignResult:
    """Size a shell-tube exchanger by iterating on the overall coefficient.

    Args:
        hot: Hot stream
        cold: Cold stream
        tube_od_m: Tube outer diameter
        tube_id_m: Tube inner diameter
        tube_length_m: Tube length
        tube_passes: Number of tube passes
        pitch_ratio: Tube pitch / tube OD
        pitch_type: 'triangular' or 'square'
        baffle_spacing_fraction: Baffle spacing as a fraction of shell ID
        shell_catalog: Shell sizes to snap to; TEMA standard shells by default
        U_initial_W_m2K: Starting U guess
        tolerance: Convergence limit on |U_calc - U_guess| / U_guess
        max_iterations: Iteration ceiling
        damping: Weight w in U_next = w*U_guess + (1-w)*U_calc
        tube_count_margin: Multiplier on the area-derived tube count
        shell_side: Which stream flows in the shell, 'hot' or 'cold'
        heat_duty_W: Fixed duty; outlets then follow from the inlets
        k_wall_W_mK: Tube wall conductivity; wall resistance omitted if None
        laminar_friction: Use 64/Re below Re = 2300 on the tube side

    Returns:
        DesignResult. ``converged`` is False and ``status`` is
        MaxIterationsExceeded when the ceiling was hit; the last candidate is
        still returned.

    Raises:
        UnderspecifiedEnergyBalance, EnergyBalanceMismatch, TemperatureCross,
        InvalidPhysicalState: before the first iteration
        NoFeasibleDesign: the bundle outgrows the shell catalog, or a derived
            geometry cannot be rated; carries the iterations completed so far
    """
    if shell_side not in ("hot", "cold"):
        raise ValidationError(f"shell_side must be 'hot' or 'cold', got '{shell_side}'")
    if pitch_type not in LAYOUT_ANGLES:
        raise ValidationError(f"pitch_type must be 'square' or 'triangular', got '{pitch_type}'")
    tube_passes = require_count(tube_passes, "tube_passes")
    max_iterations = require_count(max_iterations, "max_iterations")
    if not 0 <= damping < 1:
        raise ValidationError(f"damping must be in [0, 1); got {damping}")
    for value, name in (
        (tube_od_m, "tube_od_m"),
        (tube_id_m, "tube_id_m"),
        (tube_length_m, "tube_length_m"),
        (U_initial_W_m2K, "U_initial_W_m2K"),
        (tolerance, "tolerance"),
        (baffle_spacing_fraction, "baffle_spacing_fraction"),
        (tube_count_margin, "tube_count_margin"),
    ):
        require_positive(value, name)
    if tube_id_m >= tube_od_m:
        raise ValidationError(f"tube_id_m ({tube_id_m}) must be < tube_od_m ({tube_od_m})")
    if pitch_ratio <= 1.0:
        raise ValidationError(f"pitch_ratio must exceed 1; got {pitch_ratio}")
    shells = tuple(shell_catalog) if shell_catalog is not None else STANDARD_SHELLS

    Q, hot_r, cold_r = close_energy_balance(hot, cold, heat_duty_W=heat_duty_W)
    Thi, Tho, Tci, Tco = hot_r.inlet_temp_K, hot_r.outlet_temp_K, cold_r.inlet_temp_K, cold_r.outlet_temp_K
    lmtd = calculate_lmtd(Thi=Thi, Tho=Tho, Tci=Tci, Tco=Tco, counterflow=True)
    F, F_source = calculate_f_correction(Thi=Thi, Tho=Tho, Tci=Tci, Tco=Tco, tube_passes=tube_passes)
    shell_stream, tube_stream = (hot_r, cold_r) if shell_side == "hot" else (cold_r, hot_r)
    pitch = pitch_ratio * tube_od_m

    logger.info(
        f"Shell-tube design: Q={Q / 1000:.1f} kW, LMTD={lmtd:.2f} K, F={F:.3f} ({F_source}), "
        f"U_initial={U_initial_W_m2K:.0f} W/m²K"
    )

    trial_log = TrialLog()
    state: Optional[IterationState] = None
    U_guess = U_initial_W_m2K
    converged = False

    for iteration in range(1, max_iterations + 1):
        try:
            # Guessing
            area = Q / (U_guess * lmtd * F)
            n_tubes = tube_count_for_area(area, tube_od_m, tube_length_m, tube_passes, tube_count_margin)
            shell = estimate_shell(n_tubes, tube_od_m, pitch, tube_passes, pitch_type, shells)
            spacing, n_baffles = baffle_layout(shell.inner_diameter_m, tube_length_m, baffle_spacing_fraction)
            geometry = ShellTubeGeometry(
                shell_id_m=shell.inner_diameter_m,
                tube_od_m=tube_od_m,
                tube_id_m=tube_id_m,
                tube_length_m=tube_length_m,
                tube_count=n_tubes,
                tube_passes=tube_passes,
                pitch_m=pitch,
                pitch_type=pitch_type,
                baffle_spacing_m=spacing,
                baffle_count=n_baffles,
            )

            # Rating
            rating = rate_shell_tube(geometry, tube_stream, shell_stream, k_wall_W_mK, laminar_friction)
        except (NoFeasibleDesign, InvalidPhysicalState) as e:
            logger.info(f"Iteration {iteration} failed after {len(trial_log)} completed iterations: {e}")
            raise NoFeasibleDesign(
                f"Iteration {iteration} (U_guess={U_guess:.1f} W/m²K): {e}",
                trial_log=trial_log,
                closest=state.candidate.summary() if state is not None else None,
            ) from e
        U_calc = rating.U_fouled_W_m2K
        relative_error = abs(U_calc - U_guess) / U_guess
        candidate = DesignCandidate(
            geometry=geometry,
            rating=rating,
            required_area_m2=Q / (U_calc * lmtd * F),
            provided_area_m2=geometry.provided_area_m2,
            pressure_drop_inner_Pa=rating.inner.pressure_drop_Pa,
            pressure_drop_outer_Pa=rating.outer.pressure_drop_Pa,
            label=f"{n_tubes} tubes in {shell.name} shell",
        )
        state = IterationState(iteration, U_guess, geometry, candidate, U_calc, relative_error)

        record = trial_log.append(
            f"Iteration {iteration}",
            {
                "U_guess_W_m2K": U_guess,
                "tubes": n_tubes,
                "shell_id_m": shell.inner_diameter_m,
                "U_calc_W_m2K": U_calc,
                "overdesign_pct": candidate.overdesign_pct,
            },
            delta=relative_error,
        )
        logger.debug(record.line())

        if relative_error <= tolerance:
            converged = True
            break
        U_guess = damping * U_guess + (1 - damping) * U_calc

    if converged:
        logger.info(f"Converged after {state.iteration} iterations: {state.candidate.label}, U={state.U_calc_W_m2K:.1f}")
    else:
        logger.warning(
            f"U did not converge within {max_iterations} iterations "
            f"(last relative error {state.relative_error * 100:.1f}%); returning last candidate"
        )

    return DesignResult(
        candidate=state.candidate,
        trial_log=trial_log,
        converged=converged,
        status="converged" if converged else MAX_ITERATIONS_EXCEEDED,
        iterations=state.iteration,
        duty_W=Q,
        lmtd_K=lmtd,
        f_correction=F,
        hot=hot_r,
        cold=cold_r,
    )


def _design_summary(candidate: DesignCandidate) -> Dict[str, Any]:
    geometry = candidate.geometry
    tube, shell = candidate.rating.inner, candidate.rating.outer
    return {
        "shell_inner_diameter_m": geometry.shell_id_m,
        "tube_count": geometry.tube_count,
        "tube_passes": geometry.tube_passes,
        "tube_length_m": geometry.tube_length_m,
        "tube_pitch_m": geometry.pitch_m,
        "baffle_spacing_m": geometry.baffle_spacing_m,
        "baffle_count": geometry.baffle_count,
        "U_clean_W_m2K": candidate.U_clean_W_m2K,
        "U_design_W_m2K": candidate.U_fouled_W_m2K,
        "required_area_m2": candidate.required_area_m2,
        "provided_area_m2": candidate.provided_area_m2,
        "overdesign_pct": candidate.overdesign_pct,
        "h_tube_W_m2K": tube.h_W_m2K,
        "h_shell_W_m2K": shell.h_W_m2K,
        "Re_tube": tube.Re,
        "Re_shell": shell.Re,
        "velocity_tube_m_s": tube.velocity_m_s,
        "velocity_shell_m_s": shell.velocity_m_s,
        "pressure_drop_tube_kPa": tube.pressure_drop_Pa / KPA_to_PA,
        "pressure_drop_shell_kPa": shell.pressure_drop_Pa / KPA_to_PA,
    }


def size_shell_tube_heat_exchanger(
    # Temperature specs
    hot_inlet_temp_K: float,
    cold_inlet_temp_K: float,
    hot_outlet_temp_K: Optional[float] = None,
    cold_outlet_temp_K: Optional[float] = None,
    # Flow rates
    hot_mass_flow_kg_s: Optional[float] = None,
    cold_mass_flow_kg_s: Optional[float] = None,
    heat_duty_W: Optional[float] = None,
    # Fluids
    hot_fluid: str = "water",
    cold_fluid: str = "water",
    hot_fluid_pressure_Pa: float = P_ATM,
    cold_fluid_pressure_Pa: float = P_ATM,
    property_source: str = "thermo",
    hot_properties: Optional[Dict[str, float]] = None,
    cold_properties: Optional[Dict[str, float]] = None,
    # Tube geometry
    tube_outer_diameter_m: float = 0.019,  # 3/4" OD default
    tube_inner_diameter_m: Optional[float] = None,  # from STANDARD_TUBES when omitted
    tube_length_m: float = DEFAULT_TUBE_LENGTH_M,  # 16 ft
    pitch_ratio: float = DEFAULT_PITCH_RATIO,
    pitch_type: str = "triangular",
    tube_material_conductivity_W_mK: Optional[float] = CARBON_STEEL_CONDUCTIVITY,
    # Configuration
    n_tube_passes: int = 2,
    shell_side_fluid: str = "hot",
    baffle_spacing_fraction: float = BAFFLE_SPACING_FRACTION,
    # Fouling
    fouling_factor_hot_m2K_W: float = DEFAULT_FOULING_M2K_W,
    fouling_factor_cold_m2K_W: float = DEFAULT_FOULING_M2K_W,
    # Solver options
    U_initial_W_m2K: float = U_INITIAL_W_M2K,
    tolerance: float = U_TOLERANCE,
    max_iterations: int = MAX_ITERATIONS,
    damping: float = U_DAMPING,
    include_trial_log: bool = True,
) -> str:
    """Size a shell-tube heat exchanger by iterating on U.

    Args:
        hot_inlet_temp_K: Hot fluid inlet temperature (K)
        cold_inlet_temp_K: Cold fluid inlet temperature (K)
        hot_outlet_temp_K: Hot fluid outlet temperature (K), optional
        cold_outlet_temp_K: Cold fluid outlet temperature (K), optional
        hot_mass_flow_kg_s: Hot fluid mass flow rate (kg/s)
        cold_mass_flow_kg_s: Cold fluid mass flow rate (kg/s)
        heat_duty_W: Fixed duty (W); both flows required

        hot_fluid: Hot fluid name (default 'water')
        cold_fluid: Cold fluid name (default 'water')
        property_source: 'thermo' or 'table'
        hot_properties: Overrides: density_kg_m3, viscosity_Pa_s, specific_heat_J_kgK, conductivity_W_mK
        cold_properties: Same overrides for the cold fluid

        tube_outer_diameter_m: Tube OD (m). Default 0.019.
        tube_inner_diameter_m: Tube ID (m). Looked up from the standard tube list by OD if omitted.
        tube_length_m: Tube length (m). Default 4.88.
        pitch_ratio: Pitch / tube OD. Default 1.25.
        pitch_type: 'triangular' or 'square'.
        tube_material_conductivity_W_mK: Wall k; wall resistance ignored if None.

        n_tube_passes: Number of tube passes. Default 2.
        shell_side_fluid: Which fluid in the shell ("hot" or "cold"). Default "hot".
        baffle_spacing_fraction: Baffle spacing / shell ID. Default 0.4.

        fouling_factor_hot_m2K_W: Hot side fouling (m²K/W). Default 0.0002.
        fouling_factor_cold_m2K_W: Cold side fouling (m²K/W). Default 0.0002.

        U_initial_W_m2K: Starting U guess. Default 500.
        tolerance: Relative U tolerance. Default 0.10.
        max_iterations: Iteration ceiling. Default 20.
        damping: Weight on the previous guess. Default 0.5.
        include_trial_log: Include the per-iteration log in the output.

    Returns:
        JSON with the design, convergence flag and status, iteration count and
        trial log, or an error payload with error_kind.
    """
    try:
        hot, cold = resolve_streams(
            hot_fluid=hot_fluid,
            cold_fluid=cold_fluid,
            hot_inlet_temp_K=hot_inlet_temp_K,
            cold_inlet_temp_K=cold_inlet_temp_K,
            hot_outlet_temp_K=hot_outlet_temp_K,
            cold_outlet_temp_K=cold_outlet_temp_K,
            hot_mass_flow_kg_s=hot_mass_flow_kg_s,
            cold_mass_flow_kg_s=cold_mass_flow_kg_s,
            fouling_hot_m2K_W=fouling_factor_hot_m2K_W,
            fouling_cold_m2K_W=fouling_factor_cold_m2K_W,
            hot_properties=hot_properties,
            cold_properties=cold_properties,
            hot_pressure_Pa=hot_fluid_pressure_Pa,
            cold_pressure_Pa=cold_fluid_pressure_Pa,
            source=property_source,
        )
        result = design_shell_tube(
            hot,
            cold,
            tube_od_m=tube_outer_diameter_m,
            tube_id_m=resolve_tube_id(tube_outer_diameter_m, tube_inner_diameter_m),
            tube_length_m=tube_length_m,
            tube_passes=n_tube_passes,
            pitch_ratio=pitch_ratio,
            pitch_type=pitch_type,
            baffle_spacing_fraction=baffle_spacing_fraction,
            U_initial_W_m2K=U_initial_W_m2K,
            tolerance=tolerance,
            max_iterations=max_iterations,
            damping=damping,
            shell_side=shell_side_fluid,
            heat_duty_W=heat_duty_W,
            k_wall_W_mK=tube_material_conductivity_W_mK,
        )

        output = result.to_dict()
        output["selection"] = _design_summary(result.candidate)
        output["relative_errors"] = result.trial_log.deltas
        output["temperatures"] = format_temperature_output(
            result.hot.inlet_temp_K, result.hot.outlet_temp_K, result.cold.inlet_temp_K, result.cold.outlet_temp_K
        )
        output["configuration"] = {
            "shell_side_fluid": shell_side_fluid,
            "pitch_type": pitch_type,
            "tube_passes": n_tube_passes,
        }
        output["adequate"] = result.candidate.overdesign_pct >= 0
        warnings = []
        if not result.converged:
            warnings.append(
                f"Design did not converge within {max_iterations} iterations; "
                "the returned geometry is a best-effort estimate"
            )
        if not output["adequate"]:
            # U_calc may sit below U_guess by up to the tolerance at convergence
            warnings.append(
                f"Provided area is {-result.candidate.overdesign_pct:.1f}% below the area required at the "
                "calculated U; add tubes or tighten the tolerance"
            )
        if warnings:
            output["warning"] = " ".join(warnings)
        if not include_trial_log:
            output.pop("trial_log")
        return json.dumps(output)

    except (ValueError, NoFeasibleDesign) as e:
        logger.info(f"size_shell_tube_heat_exchanger failed: {e}")
        return json.dumps(error_payload(e))
    except Exception as e:
        logger.error(f"Error in size_shell_tube_heat_exchanger: {e}", exc_info=True)
        return json.dumps({"error": str(e)})


def rate_shell_tube_heat_exchanger(
    shell_inner_diameter_m: float,
    tube_count: int,
    hot_inlet_temp_K: float,
    cold_inlet_temp_K: float,
    hot_outlet_temp_K: Optional[float] = None,
    cold_outlet_temp_K: Optional[float] = None,
    hot_mass_flow_kg_s: Optional[float] = None,
    cold_mass_flow_kg_s: Optional[float] = None,
    heat_duty_W: Optional[float] = None,
    hot_fluid: str = "water",
    cold_fluid: str = "water",
    property_source: str = "thermo",
    hot_properties: Optional[Dict[str, float]] = None,
    cold_properties: Optional[Dict[str, float]] = None,
    tube_outer_diameter_m: float = 0.019,
    tube_inner_diameter_m: Optional[float] = None,
    tube_length_m: float = DEFAULT_TUBE_LENGTH_M,
    pitch_ratio: float = DEFAULT_PITCH_RATIO,
    pitch_type: str = "triangular",
    baffle_spacing_m: Optional[float] = None,
    baffle_count: Optional[int] = None,
    n_tube_passes: int = 2,
    shell_side_fluid: str = "hot",
    tube_material_conductivity_W_mK: Optional[float] = CARBON_STEEL_CONDUCTIVITY,
    fouling_factor_hot_m2K_W: float = DEFAULT_FOULING_M2K_W,
    fouling_factor_cold_m2K_W: float = DEFAULT_FOULING_M2K_W,
) -> str:
    """Rate an existing shell-tube exchanger against a duty.

    Baffle spacing defaults to 0.4 x shell ID and the baffle count to
    tube_length / spacing - 1 when not given.

    Returns:
        JSON with Q, LMTD, F, clean and design U, required vs provided area,
        overdesign, film coefficients, velocities and pressure drops.
    """
    try:
        hot, cold = resolve_streams(
            hot_fluid=hot_fluid,
            cold_fluid=cold_fluid,
            hot_inlet_temp_K=hot_inlet_temp_K,
            cold_inlet_temp_K=cold_inlet_temp_K,
            hot_outlet_temp_K=hot_outlet_temp_K,
            cold_outlet_temp_K=cold_outlet_temp_K,
            hot_mass_flow_kg_s=hot_mass_flow_kg_s,
            cold_mass_flow_kg_s=cold_mass_flow_kg_s,
            fouling_hot_m2K_W=fouling_factor_hot_m2K_W,
            fouling_cold_m2K_W=fouling_factor_cold_m2K_W,
            hot_properties=hot_properties,
            cold_properties=cold_properties,
            source=property_source,
        )
        if shell_side_fluid not in ("hot", "cold"):
            raise ValidationError(f"shell_side_fluid must be 'hot' or 'cold', got '{shell_side_fluid}'")
        if pitch_type not in LAYOUT_ANGLES:
            raise ValidationError(f"pitch_type must be 'square' or 'triangular', got '{pitch_type}'")
        require_positive(shell_inner_diameter_m, "shell_inner_diameter_m")

        spacing = baffle_spacing_m
        if spacing is None:
            spacing, _ = baffle_layout(shell_inner_diameter_m, tube_length_m)
        require_positive(spacing, "baffle_spacing_m")
        if baffle_count is None:
            baffle_count = max(1, int(tube_length_m / spacing) - 1)
        baffle_count = require_count(baffle_count, "baffle_count", minimum=0)

        geometry = ShellTubeGeometry(
            shell_id_m=shell_inner_diameter_m,
            tube_od_m=tube_outer_diameter_m,
            tube_id_m=resolve_tube_id(tube_outer_diameter_m, tube_inner_diameter_m),
            tube_length_m=tube_length_m,
            tube_count=require_count(tube_count, "tube_count"),
            tube_passes=require_count(n_tube_passes, "n_tube_passes"),
            pitch_m=pitch_ratio * tube_outer_diameter_m,
            pitch_type=pitch_type,
            baffle_spacing_m=spacing,
            baffle_count=baffle_count,
        )
        geometry.validate()

        Q, hot_r, cold_r = close_energy_balance(hot, cold, heat_duty_W=heat_duty_W)
        Thi, Tho, Tci, Tco = hot_r.inlet_temp_K, hot_r.outlet_temp_K, cold_r.inlet_temp_K, cold_r.outlet_temp_K
        lmtd = calculate_lmtd(Thi=Thi, Tho=Tho, Tci=Tci, Tco=Tco, counterflow=True)
        F, F_source = calculate_f_correction(Thi=Thi, Tho=Tho, Tci=Tci, Tco=Tco, tube_passes=geometry.tube_passes)
        shell_stream, tube_stream = (hot_r, cold_r) if shell_side_fluid == "hot" else (cold_r, hot_r)

        rating = rate_shell_tube(geometry, tube_stream, shell_stream, tube_material_conductivity_W_mK)
        candidate = DesignCandidate(
            geometry=geometry,
            rating=rating,
            required_area_m2=Q / (rating.U_fouled_W_m2K * lmtd * F),
            provided_area_m2=geometry.provided_area_m2,
            pressure_drop_inner_Pa=rating.inner.pressure_drop_Pa,
            pressure_drop_outer_Pa=rating.outer.pressure_drop_Pa,
            label="rated",
        )
        logger.info(
            f"Rated {geometry.tube_count} tubes in {shell_inner_diameter_m:.3f} m shell: "
            f"U={candidate.U_fouled_W_m2K:.1f} W/m²K, overdesign={candidate.overdesign_pct:.1f}%"
        )

        output = {
            "duty_W": Q,
            "duty_kW": Q / 1000,
            "LMTD_K": lmtd,
            "F_correction": F,
            "F_source": F_source,
            "corrected_MTD_K": lmtd * F,
            "adequate": candidate.overdesign_pct >= 0,
            "rating": _design_summary(candidate),
            "design": candidate.to_dict(),
            "temperatures": format_temperature_output(Thi, Tho, Tci, Tco),
        }
        return json.dumps(output)

    except ValueError as e:
        logger.info(f"rate_shell_tube_heat_exchanger failed: {e}")
        return json.dumps(error_payload(e))
    except Exception as e:
        logger.error(f"Error in rate_shell_tube_heat_exchanger: {e}", exc_info=True)
        return json.dumps({"error": str(e)})
