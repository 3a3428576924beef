"""
Heat duty calculation tool to close the hot/cold energy balance.

Given both inlet temperatures and any consistent subset of the two mass flows and
two outlet temperatures, solves for the single unknown and reports the duty from
each side.
"""

import json
import logging
from typing import Dict, Optional

from tools.fluid_properties import resolve_streams
from utils.constants import P_ATM
from utils.hx_common import close_energy_balance, format_temperature_output
from utils.validation import error_payload

logger = logging.getLogger("hx-design-mcp.heat_duty")


def calculate_heat_duty(
    hot_inlet_temp_K: float,
    cold_inlet_temp_K: float,
    hot_outlet_temp_K: Optional[float] = None,
    cold_outlet_temp_K: Optional[float] = None,
    hot_mass_flow_kg_s: Optional[float] = None,
    cold_mass_flow_kg_s: Optional[float] = None,
    heat_duty_W: Optional[float] = None,
    hot_fluid: str = "water",
    cold_fluid: str = "water",
    hot_fluid_pressure_Pa: float = P_ATM,
    cold_fluid_pressure_Pa: float = P_ATM,
    hot_specific_heat_J_kgK: Optional[float] = None,
    cold_specific_heat_J_kgK: Optional[float] = None,
    property_source: str = "thermo",
) -> str:
    """Calculates the heat duty between a hot and a cold stream.

    Args:
        hot_inlet_temp_K: Hot fluid inlet temperature in K
        cold_inlet_temp_K: Cold fluid inlet temperature in K
        hot_outlet_temp_K: Hot fluid outlet temperature in K, if known
        cold_outlet_temp_K: Cold fluid outlet temperature in K, if known
        hot_mass_flow_kg_s: Hot fluid mass flow rate in kg/s, if known
        cold_mass_flow_kg_s: Cold fluid mass flow rate in kg/s, if known
        heat_duty_W: Fixed duty in W (both flows required)
        hot_fluid: Hot fluid name for property lookup
        cold_fluid: Cold fluid name for property lookup
        hot_specific_heat_J_kgK: Override hot Cp in J/kg·K
        cold_specific_heat_J_kgK: Override cold Cp in J/kg·K
        property_source: 'thermo' or 'table'

    Returns:
        JSON string with the duty, the resolved flows and temperatures, or an
        error payload with error_kind
    """
    try:
        hot_properties: Dict[str, float] = {}
        cold_properties: Dict[str, float] = {}
        if hot_specific_heat_J_kgK is not None:
            hot_properties["specific_heat_J_kgK"] = hot_specific_heat_J_kgK
        if cold_specific_heat_J_kgK is not None:
            cold_properties["specific_heat_J_kgK"] = cold_specific_heat_J_kgK

        hot, cold = resolve_streams(
            hot_fluid=hot_fluid,
            cold_fluid=cold_fluid,
            hot_inlet_temp_K=hot_inlet_temp_K,
            cold_inlet_temp_K=cold_inlet_temp_K,
            hot_outlet_temp_K=hot_outlet_temp_K,
            cold_outlet_temp_K=cold_outlet_temp_K,
            hot_mass_flow_kg_s=hot_mass_flow_kg_s,
            cold_mass_flow_kg_s=cold_mass_flow_kg_s,
            hot_properties=hot_properties,
            cold_properties=cold_properties,
            hot_pressure_Pa=hot_fluid_pressure_Pa,
            cold_pressure_Pa=cold_fluid_pressure_Pa,
            source=property_source,
        )
        Q, hot_r, cold_r = close_energy_balance(hot, cold, heat_duty_W=heat_duty_W)

        C_hot = hot_r.mass_flow_kg_s * hot_r.specific_heat_J_kgK
        C_cold = cold_r.mass_flow_kg_s * cold_r.specific_heat_J_kgK
        Q_hot = C_hot * (hot_r.inlet_temp_K - hot_r.outlet_temp_K)
        Q_cold = C_cold * (cold_r.outlet_temp_K - cold_r.inlet_temp_K)

        result = {
            "heat_duty_W": Q,
            "heat_duty_kW": Q / 1000,
            "hot_side_duty_W": Q_hot,
            "cold_side_duty_W": Q_cold,
            "hot_mass_flow_kg_s": hot_r.mass_flow_kg_s,
            "cold_mass_flow_kg_s": cold_r.mass_flow_kg_s,
            "hot_capacity_rate_W_K": C_hot,
            "cold_capacity_rate_W_K": C_cold,
            "hot_specific_heat_J_kgK": hot_r.specific_heat_J_kgK,
            "cold_specific_heat_J_kgK": cold_r.specific_heat_J_kgK,
            "temperatures": format_temperature_output(
                hot_r.inlet_temp_K, hot_r.outlet_temp_K, cold_r.inlet_temp_K, cold_r.outlet_temp_K
            ),
        }
        return json.dumps(result)

    except ValueError as e:
        logger.info(f"calculate_heat_duty rejected input: {e}")
        return json.dumps(error_payload(e))
    except Exception as e:
        logger.error(f"Error in calculate_heat_duty: {e}", exc_info=True)
        return json.dumps({"error": f"Heat duty calculation failed: {str(e)}"})
