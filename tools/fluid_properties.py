"""
Fluid properties tool to retrieve thermophysical properties of fluids.

Properties come from thermo.Chemical at the requested temperature and pressure,
or from a fixed table of common process fluids at 25 °C. The exchanger solvers
never look properties up themselves: the tools resolve a FluidStream here and
pass plain numbers down.
"""

import json
import logging
import math
from functools import lru_cache
from typing import Any, Dict, Optional, Tuple

from thermo import Chemical

from utils.constants import P_ATM
from utils.hx_models import FluidStream
from utils.validation import ValidationError, error_payload, require_non_negative

logger = logging.getLogger("hx-design-mcp.fluid_properties")

# Properties at 25 °C / 1 atm: density kg/m³, viscosity Pa·s, Cp J/(kg·K), k W/(m·K)
FLUID_PROPERTY_TABLE: Dict[str, Dict[str, float]] = {
    "water": {"rho": 997.0, "mu": 0.00089, "Cp": 4180.0, "k": 0.607},
    "air": {"rho": 1.18, "mu": 0.000018, "Cp": 1005.0, "k": 0.026},
    "engine_oil": {"rho": 884.0, "mu": 0.486, "Cp": 1910.0, "k": 0.145},
    "kerosene": {"rho": 820.0, "mu": 0.00164, "Cp": 2000.0, "k": 0.12},
    "benzene": {"rho": 876.0, "mu": 0.0006, "Cp": 1740.0, "k": 0.14},
    "ethanol": {"rho": 789.0, "mu": 0.0012, "Cp": 2440.0, "k": 0.17},
    "acetone": {"rho": 784.0, "mu": 0.0003, "Cp": 2150.0, "k": 0.16},
}

PROPERTY_SOURCES = ("thermo", "table")


@lru_cache(maxsize=128)
def _cached_get_properties_thermo(fluid_name: str, temperature: float, pressure: float) -> Dict[str, Any]:
    """Cached property lookup using thermo.Chemical for pure fluids."""
    try:
        chem = Chemical(fluid_name, T=temperature, P=pressure)
    except Exception as e:
        raise ValidationError(f"thermo could not resolve fluid '{fluid_name}': {e}") from e

    # Only liquid or gas phases are supported
    phase = getattr(chem, "phase", None)
    if phase not in ("l", "g"):
        raise ValidationError(f"Unsupported phase '{phase}' for {fluid_name} at T={temperature} K, P={pressure} Pa")

    props = {"rho": chem.rho, "Cp": chem.Cp, "k": chem.k, "mu": chem.mu, "phase": phase}
    missing = [key for key in ("rho", "Cp", "k", "mu") if props[key] is None]
    if missing:
        raise ValidationError(f"thermo returned no {', '.join(missing)} for '{fluid_name}'")
    return {key: (float(value) if key != "phase" else value) for key, value in props.items()}


def lookup_fluid_properties(
    fluid_name: str,
    temperature: float,
    pressure: float = P_ATM,
    source: str = "thermo",
) -> Dict[str, Any]:
    """Return rho, Cp, k, mu for a named fluid.

    Args:
        fluid_name: Fluid name ('water', 'ethanol', ...)
        temperature: Temperature in K (ignored by the table source)
        pressure: Pressure in Pa (ignored by the table source)
        source: 'thermo' or 'table'

    Raises:
        ValidationError: unknown fluid, unsupported source or invalid state
    """
    if source not in PROPERTY_SOURCES:
        raise ValidationError(f"source must be one of {PROPERTY_SOURCES}, got '{source}'")
    if not math.isfinite(temperature) or temperature <= 0:
        raise ValidationError(f"Temperature must be a finite value above 0 K; got {temperature}")
    if not math.isfinite(pressure) or pressure <= 0:
        raise ValidationError(f"Pressure must be positive; got {pressure}")

    if source == "table":
        key = fluid_name.strip().lower().replace(" ", "_")
        if key not in FLUID_PROPERTY_TABLE:
            raise ValidationError(
                f"Fluid '{fluid_name}' not in property table; known fluids: {', '.join(FLUID_PROPERTY_TABLE)}"
            )
        return {**FLUID_PROPERTY_TABLE[key], "phase": "g" if key == "air" else "l"}

    return dict(_cached_get_properties_thermo(fluid_name.strip(), float(temperature), float(pressure)))


def build_fluid_stream(
    name: str,
    inlet_temp_K: float,
    outlet_temp_K: Optional[float] = None,
    mass_flow_kg_s: Optional[float] = None,
    fouling_m2K_W: float = 0.0,
    pressure_Pa: float = P_ATM,
    source: str = "thermo",
    density_kg_m3: Optional[float] = None,
    viscosity_Pa_s: Optional[float] = None,
    specific_heat_J_kgK: Optional[float] = None,
    conductivity_W_mK: Optional[float] = None,
) -> FluidStream:
    """Resolve a FluidStream, looking up any property not given explicitly.

    Properties are evaluated at the bulk temperature (mean of inlet and outlet,
    or the inlet when the outlet is unknown).
    """
    require_non_negative(fouling_m2K_W, f"{name} fouling factor")
    overrides = {
        "rho": density_kg_m3,
        "mu": viscosity_Pa_s,
        "Cp": specific_heat_J_kgK,
        "k": conductivity_W_mK,
    }
    props = {k: v for k, v in overrides.items() if v is not None}
    if len(props) < len(overrides):
        bulk_temp = (inlet_temp_K + outlet_temp_K) / 2 if outlet_temp_K is not None else inlet_temp_K
        looked_up = lookup_fluid_properties(name, bulk_temp, pressure_Pa, source=source)
        for key in overrides:
            props.setdefault(key, looked_up[key])
        logger.debug(f"Resolved {name} properties at {bulk_temp:.2f} K from {source}")

    return FluidStream(
        name=name,
        inlet_temp_K=inlet_temp_K,
        outlet_temp_K=outlet_temp_K,
        mass_flow_kg_s=mass_flow_kg_s,
        density_kg_m3=props["rho"],
        viscosity_Pa_s=props["mu"],
        specific_heat_J_kgK=props["Cp"],
        conductivity_W_mK=props["k"],
        fouling_m2K_W=fouling_m2K_W,
    )


def get_fluid_properties(
    fluid_name: str,
    temperature: float,
    pressure: float = P_ATM,
    source: str = "thermo",
) -> str:
    """Retrieves thermophysical properties of common fluids at specified conditions.

    Args:
        fluid_name: Name of the fluid (e.g., 'water', 'air', 'ethanol')
        temperature: Temperature in Kelvin (K)
        pressure: Pressure in Pascals (Pa)
        source: 'thermo' (default) or 'table' for the fixed 25 °C values

    Returns:
        JSON string with fluid properties
    """
    try:
        T = float(temperature)
        P = float(pressure)
        props = lookup_fluid_properties(fluid_name, T, P, source=source)
        result = {
            "name": fluid_name,
            "temperature_k": T,
            "pressure_pa": P,
            "source": source,
            "phase": props.get("phase"),
            "density": props["rho"],
            "specific_heat_cp": props["Cp"],
            "thermal_conductivity": props["k"],
            "dynamic_viscosity": props["mu"],
            "kinematic_viscosity": props["mu"] / props["rho"],
            "prandtl_number": props["Cp"] * props["mu"] / props["k"],
        }
        return json.dumps(result)
    except (TypeError, ValueError) as e:
        logger.info(f"get_fluid_properties rejected input: {e}")
        return json.dumps(error_payload(e))
    except Exception as e:
        logger.error(f"Unexpected error in get_fluid_properties: {e}", exc_info=True)
        return json.dumps({"error": f"An unexpected error occurred: {str(e)}"})


_OVERRIDE_KEYS = ("density_kg_m3", "viscosity_Pa_s", "specific_heat_J_kgK", "conductivity_W_mK")


def resolve_streams(
    hot_fluid: str,
    cold_fluid: str,
    hot_inlet_temp_K: float,
    cold_inlet_temp_K: float,
    hot_outlet_temp_K: Optional[float] = None,
    cold_outlet_temp_K: Optional[float] = None,
    hot_mass_flow_kg_s: Optional[float] = None,
    cold_mass_flow_kg_s: Optional[float] = None,
    fouling_hot_m2K_W: float = 0.0,
    fouling_cold_m2K_W: float = 0.0,
    hot_properties: Optional[Dict[str, float]] = None,
    cold_properties: Optional[Dict[str, float]] = None,
    hot_pressure_Pa: float = P_ATM,
    cold_pressure_Pa: float = P_ATM,
    source: str = "thermo",
) -> Tuple[FluidStream, FluidStream]:
    """Build the hot and cold streams for a tool call from names and optional overrides."""
    if hot_inlet_temp_K is None or cold_inlet_temp_K is None:
        raise ValidationError("hot_inlet_temp_K and cold_inlet_temp_K are required")
    streams = []
    for label, fluid, Tin, Tout, m, fouling, overrides, pressure in (
        ("hot", hot_fluid, hot_inlet_temp_K, hot_outlet_temp_K, hot_mass_flow_kg_s,
         fouling_hot_m2K_W, hot_properties, hot_pressure_Pa),
        ("cold", cold_fluid, cold_inlet_temp_K, cold_outlet_temp_K, cold_mass_flow_kg_s,
         fouling_cold_m2K_W, cold_properties, cold_pressure_Pa),
    ):
        overrides = dict(overrides or {})
        unknown = set(overrides) - set(_OVERRIDE_KEYS)
        if unknown:
            raise ValidationError(
                f"Unknown {label} property override(s): {', '.join(sorted(unknown))}; "
                f"allowed: {', '.join(_OVERRIDE_KEYS)}"
            )
        streams.append(
            build_fluid_stream(
                name=fluid,
                inlet_temp_K=Tin,
                outlet_temp_K=Tout,
                mass_flow_kg_s=m,
                fouling_m2K_W=fouling,
                pressure_Pa=pressure,
                source=source,
                **overrides,
            )
        )
    return streams[0], streams[1]
