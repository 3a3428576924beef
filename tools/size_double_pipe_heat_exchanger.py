"""
Double-pipe heat exchanger sizing by search over standard pipe pairs.

Every (inner pipe, outer pipe) pair from an ordered catalog is rated: the overall
coefficient fixes the required area and pipe length, the length fixes the
pressure drops, and the pair is kept only if velocities and pressure drops stay
inside their limits. The feasible pair with the smallest required area wins;
ties go to the pair enumerated first (smaller inner pipe, then smaller outer
pipe).

Key features:
- Inner pipe carries one fluid, annulus (outer pipe - inner pipe) carries the other
- Counterflow or parallel flow
- Catalog defaults to Schedule 40 NPS 1/2" - 4" from fluids.piping
- Every pair is recorded in the trial log, feasible or not

Reference: Kern, Process Heat Transfer (1950), Chapter 6
"""

import json
import logging
import math
from dataclasses import replace
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from tools.fluid_properties import resolve_streams
from tools.thermal_hydraulic_rating import rate_double_pipe
from utils.catalogs import DEFAULT_PIPE_NPS, PipeSize, sort_catalog, standard_pipe_catalog
from utils.constants import (
    DEFAULT_FOULING_M2K_W,
    KPA_to_PA,
    LENGTH_STEP_M,
    MAX_VELOCITY_ANNULUS_M_S,
    MAX_VELOCITY_INNER_M_S,
    MIN_ANNULAR_GAP_M,
    P_ATM,
)
from utils.hx_common import calculate_lmtd, close_energy_balance, format_temperature_output
from utils.hx_models import DesignCandidate, DesignResult, DoublePipeGeometry, FluidStream, TrialLog
from utils.validation import InvalidPhysicalState, NoFeasibleDesign, ValidationError, error_payload

logger = logging.getLogger("hx-design-mcp.size_double_pipe_heat_exchanger")


def enumerate_pipe_pairs(
    catalog: Sequence[PipeSize],
    min_annular_gap_m: float = MIN_ANNULAR_GAP_M,
) -> Iterator[Tuple[PipeSize, PipeSize]]:
    """Yield (inner, outer) pairs in ascending order.

    The inner pipe must be strictly smaller than the outer pipe and leave a
    radial gap of at least ``min_annular_gap_m``.
    """
    pipes = sort_catalog(catalog)
    for i, inner in enumerate(pipes):
        for outer in pipes[i + 1:]:
            if outer.outer_diameter_m <= inner.outer_diameter_m:
                continue
            if (outer.inner_diameter_m - inner.outer_diameter_m) / 2 >= min_annular_gap_m:
                yield inner, outer


def _round_up(value: float, step: float) -> float:
    rounded = math.ceil(value / step) * step
    if rounded < value:
        rounded += step
    return rounded


def optimize_double_pipe(
    hot: FluidStream,
    cold: FluidStream,
    catalog: Optional[Sequence[PipeSize]] = None,
    max_velocity_inner_m_s: Optional[float] = MAX_VELOCITY_INNER_M_S,
    max_velocity_annulus_m_s: Optional[float] = MAX_VELOCITY_ANNULUS_M_S,
    max_pressure_drop_inner_Pa: Optional[float] = None,
    max_pressure_drop_annulus_Pa: Optional[float] = None,
    min_annular_gap_m: float = MIN_ANNULAR_GAP_M,
    inner_pipe_fluid: str = "hot",
    counterflow: bool = True,
    heat_duty_W: Optional[float] = None,
    k_wall_W_mK: Optional[float] = None,
    length_step_m: float = LENGTH_STEP_M,
    laminar_friction: bool = True,
) -> DesignResult:
    """Pick the standard pipe pair with the smallest required area meeting all constraints.

    Args:
        hot: Hot stream; at most one unknown across the pair's flows and outlets
        cold: Cold stream
        catalog: Standard pipe sizes; defaults to Schedule 40 NPS 1/2" - 4"
        max_velocity_inner_m_s: Inner pipe velocity limit (None disables)
        max_velocity_annulus_m_s: Annulus velocity limit (None disables)
        max_pressure_drop_inner_Pa: Inner pipe pressure drop limit (None disables)
        max_pressure_drop_annulus_Pa: Annulus pressure drop limit (None disables)
        min_annular_gap_m: Minimum radial gap between the pipes
        inner_pipe_fluid: 'hot' or 'cold'
        counterflow: Counter-current (True) or co-current (False)
        heat_duty_W: Fixed duty; outlets then follow from the inlets
        k_wall_W_mK: Inner pipe wall conductivity; wall resistance omitted if None
        length_step_m: Pipe length is rounded up to a multiple of this
        laminar_friction: Use 64/Re below Re = 2300

    Returns:
        DesignResult with the winning candidate and one trial per pipe pair

    Raises:
        UnderspecifiedEnergyBalance, EnergyBalanceMismatch, TemperatureCross,
        InvalidPhysicalState: before the search starts
        NoFeasibleDesign: no pair satisfies every constraint
    """
    if inner_pipe_fluid not in ("hot", "cold"):
        raise ValidationError(f"inner_pipe_fluid must be 'hot' or 'cold', got '{inner_pipe_fluid}'")
    if length_step_m <= 0:
        raise ValidationError(f"length_step_m must be > 0; got {length_step_m}")
    if catalog is None:
        catalog = standard_pipe_catalog()

    Q, hot_r, cold_r = close_energy_balance(hot, cold, heat_duty_W=heat_duty_W)
    lmtd = calculate_lmtd(
        Thi=hot_r.inlet_temp_K,
        Tho=hot_r.outlet_temp_K,
        Tci=cold_r.inlet_temp_K,
        Tco=cold_r.outlet_temp_K,
        counterflow=counterflow,
    )
    inner_stream, annulus_stream = (hot_r, cold_r) if inner_pipe_fluid == "hot" else (cold_r, hot_r)

    limits = {
        "velocity_inner_m_s": max_velocity_inner_m_s,
        "velocity_annulus_m_s": max_velocity_annulus_m_s,
        "pressure_drop_inner_Pa": max_pressure_drop_inner_Pa,
        "pressure_drop_annulus_Pa": max_pressure_drop_annulus_Pa,
    }

    trial_log = TrialLog()
    best: Optional[DesignCandidate] = None
    closest: Optional[Dict[str, Any]] = None
    closest_excess = math.inf

    for inner_pipe, outer_pipe in enumerate_pipe_pairs(catalog, min_annular_gap_m):
        label = f"{inner_pipe.name} in {outer_pipe.name}"
        geometry = DoublePipeGeometry(
            inner_od_m=inner_pipe.outer_diameter_m,
            inner_id_m=inner_pipe.inner_diameter_m,
            outer_id_m=outer_pipe.inner_diameter_m,
        )
        try:
            rating = rate_double_pipe(geometry, inner_stream, annulus_stream, k_wall_W_mK, laminar_friction)
        except InvalidPhysicalState as e:
            logger.debug(f"{label}: rating failed: {e}")
            trial_log.append(label, {}, feasible=False, note=str(e))
            continue

        U = rating.U_fouled_W_m2K
        A_required = Q / (U * lmtd)
        length = _round_up(A_required / (math.pi * geometry.inner_od_m), length_step_m)
        A_provided = math.pi * geometry.inner_od_m * length
        dP_inner = rating.inner.pressure_drop_over(length)
        dP_annulus = rating.outer.pressure_drop_over(length)

        values = {
            "velocity_inner_m_s": rating.inner.velocity_m_s,
            "velocity_annulus_m_s": rating.outer.velocity_m_s,
            "pressure_drop_inner_Pa": dP_inner,
            "pressure_drop_annulus_Pa": dP_annulus,
        }
        ratios = {key: values[key] / limit for key, limit in limits.items() if limit is not None}
        violations = [f"{key} {values[key]:.4g} > {limits[key]:.4g}" for key, r in ratios.items() if r > 1.0]
        feasible = not violations

        candidate = DesignCandidate(
            geometry=replace(geometry, length_m=length),
            rating=replace(
                rating,
                inner=replace(rating.inner, pressure_drop_Pa=dP_inner),
                outer=replace(rating.outer, pressure_drop_Pa=dP_annulus),
            ),
            required_area_m2=A_required,
            provided_area_m2=A_provided,
            pressure_drop_inner_Pa=dP_inner,
            pressure_drop_outer_Pa=dP_annulus,
            label=label,
        )
        trial_log.append(
            label,
            {
                "U_W_m2K": U,
                "area_m2": A_required,
                "length_m": length,
                "v_inner_m_s": values["velocity_inner_m_s"],
                "v_annulus_m_s": values["velocity_annulus_m_s"],
                "dP_inner_kPa": dP_inner / KPA_to_PA,
                "dP_annulus_kPa": dP_annulus / KPA_to_PA,
            },
            feasible=feasible,
            note="; ".join(violations),
        )
        logger.debug(trial_log[-1].line())

        if feasible:
            if best is None or A_required < best.required_area_m2:
                best = candidate
        else:
            excess = max(ratios.values())
            if excess < closest_excess:
                closest_excess = excess
                closest = {**candidate.summary(), "violations": violations}

    if best is None:
        raise NoFeasibleDesign(
            f"No pipe pair out of {len(trial_log)} satisfies the velocity and pressure-drop constraints",
            trial_log=trial_log,
            closest=closest,
        )

    logger.info(
        f"Selected {best.label}: A_req={best.required_area_m2:.3f} m², "
        f"L={best.geometry.length_m:.2f} m after {len(trial_log)} trials"
    )
    return DesignResult(
        candidate=best,
        trial_log=trial_log,
        converged=True,
        status="optimal",
        iterations=len(trial_log),
        duty_W=Q,
        lmtd_K=lmtd,
        f_correction=1.0,
        hot=hot_r,
        cold=cold_r,
    )


def size_double_pipe_heat_exchanger(
    # Temperature specs
    hot_inlet_temp_K: float,
    cold_inlet_temp_K: float,
    hot_outlet_temp_K: Optional[float] = None,
    cold_outlet_temp_K: Optional[float] = None,
    # Flow rates (one may be omitted when all four temperatures are known)
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
    # Catalog
    pipe_nps: Optional[List[float]] = None,
    pipe_schedule: str = "40",
    min_annular_gap_m: float = MIN_ANNULAR_GAP_M,
    inner_pipe_material_conductivity_W_mK: Optional[float] = None,
    # Configuration
    flow_arrangement: str = "counterflow",
    inner_pipe_fluid: str = "hot",
    # Constraints
    max_velocity_inner_m_s: Optional[float] = MAX_VELOCITY_INNER_M_S,
    max_velocity_annulus_m_s: Optional[float] = MAX_VELOCITY_ANNULUS_M_S,
    max_pressure_drop_inner_kPa: Optional[float] = None,
    max_pressure_drop_annulus_kPa: Optional[float] = None,
    # Fouling
    fouling_factor_hot_m2K_W: float = DEFAULT_FOULING_M2K_W,
    fouling_factor_cold_m2K_W: float = DEFAULT_FOULING_M2K_W,
    length_step_m: float = LENGTH_STEP_M,
    include_trial_log: bool = True,
) -> str:
    """Select the cheapest standard double-pipe exchanger for a duty.

    Searches every standard inner/outer pipe pair and returns the one with the
    smallest required area that respects the velocity and pressure-drop limits.

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

        pipe_nps: Nominal pipe sizes to search (inches). Default NPS 1/2" - 4".
        pipe_schedule: Pipe schedule. Default '40'.
        min_annular_gap_m: Minimum radial annulus gap (m). Default 0.005.
        inner_pipe_material_conductivity_W_mK: Wall k; wall resistance ignored if None.

        flow_arrangement: "counterflow" or "parallel". Default "counterflow".
        inner_pipe_fluid: Which fluid in inner pipe ("hot" or "cold"). Default "hot".

        max_velocity_inner_m_s: Maximum inner pipe velocity (m/s). Default 3.0.
        max_velocity_annulus_m_s: Maximum annulus velocity (m/s). Default 2.0.
        max_pressure_drop_inner_kPa: Maximum inner pipe dP (kPa).
        max_pressure_drop_annulus_kPa: Maximum annulus dP (kPa).

        fouling_factor_hot_m2K_W: Hot side fouling (m²K/W). Default 0.0002.
        fouling_factor_cold_m2K_W: Cold side fouling (m²K/W). Default 0.0002.
        length_step_m: Length rounding increment (m). Default 0.1.
        include_trial_log: Include the per-pair trial log in the output.

    Returns:
        JSON with the selected pipes, length, areas, overdesign, U, film
        coefficients, velocities, pressure drops and the trial log, or an
        error payload with error_kind.
    """
    try:
        flow_lower = flow_arrangement.lower()
        if flow_lower not in ("counterflow", "parallel", "parallelflow"):
            raise ValidationError(f"flow_arrangement must be 'counterflow' or 'parallel', got '{flow_arrangement}'")

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
        catalog = standard_pipe_catalog(tuple(pipe_nps) if pipe_nps else DEFAULT_PIPE_NPS, pipe_schedule)

        result = optimize_double_pipe(
            hot,
            cold,
            catalog=catalog,
            max_velocity_inner_m_s=max_velocity_inner_m_s,
            max_velocity_annulus_m_s=max_velocity_annulus_m_s,
            max_pressure_drop_inner_Pa=(
                max_pressure_drop_inner_kPa * KPA_to_PA if max_pressure_drop_inner_kPa is not None else None
            ),
            max_pressure_drop_annulus_Pa=(
                max_pressure_drop_annulus_kPa * KPA_to_PA if max_pressure_drop_annulus_kPa is not None else None
            ),
            min_annular_gap_m=min_annular_gap_m,
            inner_pipe_fluid=inner_pipe_fluid,
            counterflow=flow_lower == "counterflow",
            heat_duty_W=heat_duty_W,
            k_wall_W_mK=inner_pipe_material_conductivity_W_mK,
            length_step_m=length_step_m,
        )

        output = result.to_dict()
        best = result.candidate
        inner_pipe, outer_pipe = best.label.split(" in ")
        pipes_by_name = {pipe.name: pipe for pipe in catalog}
        output["selection"] = {
            "inner_pipe": inner_pipe,
            "outer_pipe": outer_pipe,
            "inner_pipe_wall_thickness_m": pipes_by_name[inner_pipe].wall_thickness_m,
            "outer_pipe_wall_thickness_m": pipes_by_name[outer_pipe].wall_thickness_m,
            "pipe_length_m": best.geometry.length_m,
            "required_area_m2": best.required_area_m2,
            "provided_area_m2": best.provided_area_m2,
            "overdesign_pct": best.overdesign_pct,
            "U_W_m2K": best.U_fouled_W_m2K,
            "pressure_drop_inner_kPa": best.pressure_drop_inner_Pa / KPA_to_PA,
            "pressure_drop_annulus_kPa": best.pressure_drop_outer_Pa / KPA_to_PA,
        }
        output["temperatures"] = format_temperature_output(
            result.hot.inlet_temp_K, result.hot.outlet_temp_K, result.cold.inlet_temp_K, result.cold.outlet_temp_K
        )
        output["configuration"] = {
            "flow_arrangement": "counterflow" if flow_lower == "counterflow" else "parallel",
            "inner_pipe_fluid": inner_pipe_fluid,
            "pipe_schedule": pipe_schedule,
            "catalog_size": len(catalog),
        }
        if not include_trial_log:
            output.pop("trial_log")
        return json.dumps(output)

    except (ValueError, NoFeasibleDesign) as e:
        logger.info(f"size_double_pipe_heat_exchanger failed: {e}")
        return json.dumps(error_payload(e))
    except Exception as e:
        logger.error(f"Error in size_double_pipe_heat_exchanger: {e}", exc_info=True)
        return json.dumps({"error": str(e)})
