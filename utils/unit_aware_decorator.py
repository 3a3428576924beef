"""Unit-aware decorator for HX design MCP tools.

The decorator converts string parameters carrying units ("80 degC", "10 psi")
to the SI values the tools expect. It is applied at server registration for
every tool that has an entry in TOOL_MAPPINGS.
"""

import json
import logging
from functools import wraps
from typing import Any, Dict, Optional

from utils.unit_converter import parse_and_convert

logger = logging.getLogger("hx-design-mcp.unit_decorator")

# Parameter type definitions with their target SI units
PARAMETER_TYPES = {
    "temperature": {"target_unit": "kelvin"},
    "length": {"target_unit": "meter"},
    "mass_flow": {"target_unit": "kg/s"},
    "pressure": {"target_unit": "pascal"},
    # Pressure-drop limits are given to the tools in kPa
    "pressure_kpa": {"target_unit": "kilopascal"},
    "velocity": {"target_unit": "m/s"},
    "power": {"target_unit": "watt"},
    "htc": {"target_unit": "W/(m^2*K)"},
    "thermal_conductivity": {"target_unit": "W/(m*K)"},
    "specific_heat": {"target_unit": "J/(kg*K)"},
    "fouling": {"target_unit": "m^2*K/W"},
}


class UnitConversionError(ValueError):
    kind = "UnitConversionError"


def convert_value(value: Any, param_type: str, param_name: Optional[str] = None) -> Any:
    """Convert a single value based on parameter type.

    Args:
        value: Value to convert (number or string with unit)
        param_type: Type of parameter from PARAMETER_TYPES
        param_name: Parameter name for error messages

    Returns:
        Converted value in SI units

    Raises:
        UnitConversionError: the value cannot be parsed or has the wrong dimension
    """
    if value is None or param_type not in PARAMETER_TYPES:
        return value
    try:
        return parse_and_convert(value, PARAMETER_TYPES[param_type]["target_unit"])
    except (TypeError, ValueError) as e:
        raise UnitConversionError(f"{param_name or param_type}: {e}") from e


def convert_dict_values(data: Dict[str, Any], mappings: Dict[str, str]) -> Dict[str, Any]:
    """Convert values in a dictionary based on parameter mappings.

    Parameters without a mapping pass through unchanged.
    """
    return {key: convert_value(value, mappings[key], key) if key in mappings else value for key, value in data.items()}


def unit_aware(param_mappings: Dict[str, str]):
    """Decorator to make a JSON tool function unit-aware.

    A value that cannot be converted produces the tool's JSON error payload
    instead of calling the tool.

    Example:
        @unit_aware({"hot_inlet_temp_K": "temperature"})
        def my_tool(hot_inlet_temp_K):
            ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(**kwargs):
            logger.debug(f"Unit conversion for {func.__name__} with params: {list(kwargs.keys())}")

            try:
                converted_kwargs = convert_dict_values(kwargs, param_mappings)
            except UnitConversionError as e:
                logger.info(f"Unit conversion error in {func.__name__}: {e}")
                return json.dumps({"error": str(e), "error_kind": e.kind})

            for key in kwargs:
                if kwargs[key] != converted_kwargs[key]:
                    logger.info(f"Converted {key}: {kwargs[key]} → {converted_kwargs[key]}")

            return func(**converted_kwargs)

        wrapper._unit_aware = True
        wrapper._param_mappings = param_mappings

        return wrapper

    return decorator


_STREAM_MAPPINGS = {
    "hot_inlet_temp_K": "temperature",
    "hot_outlet_temp_K": "temperature",
    "cold_inlet_temp_K": "temperature",
    "cold_outlet_temp_K": "temperature",
    "hot_mass_flow_kg_s": "mass_flow",
    "cold_mass_flow_kg_s": "mass_flow",
    "heat_duty_W": "power",
    "hot_fluid_pressure_Pa": "pressure",
    "cold_fluid_pressure_Pa": "pressure",
    "fouling_factor_hot_m2K_W": "fouling",
    "fouling_factor_cold_m2K_W": "fouling",
}

# Tool-specific parameter mappings
TOOL_MAPPINGS = {
    "get_fluid_properties": {"temperature": "temperature", "pressure": "pressure"},
    "calculate_heat_duty": {
        **_STREAM_MAPPINGS,
        "hot_specific_heat_J_kgK": "specific_heat",
        "cold_specific_heat_J_kgK": "specific_heat",
    },
    "size_double_pipe_heat_exchanger": {
        **_STREAM_MAPPINGS,
        "min_annular_gap_m": "length",
        "inner_pipe_material_conductivity_W_mK": "thermal_conductivity",
        "max_velocity_inner_m_s": "velocity",
        "max_velocity_annulus_m_s": "velocity",
        "max_pressure_drop_inner_kPa": "pressure_kpa",
        "max_pressure_drop_annulus_kPa": "pressure_kpa",
        "length_step_m": "length",
    },
    "size_shell_tube_heat_exchanger": {
        **_STREAM_MAPPINGS,
        "tube_outer_diameter_m": "length",
        "tube_inner_diameter_m": "length",
        "tube_length_m": "length",
        "tube_material_conductivity_W_mK": "thermal_conductivity",
        "U_initial_W_m2K": "htc",
    },
    "rate_shell_tube_heat_exchanger": {
        **_STREAM_MAPPINGS,
        "shell_inner_diameter_m": "length",
        "tube_outer_diameter_m": "length",
        "tube_inner_diameter_m": "length",
        "tube_length_m": "length",
        "baffle_spacing_m": "length",
        "tube_material_conductivity_W_mK": "thermal_conductivity",
    },
}


def get_tool_mapping(tool_name: str) -> Dict[str, str]:
    """Get parameter mappings for a specific tool."""
    return TOOL_MAPPINGS.get(tool_name, {})


def make_tool_unit_aware(tool_func):
    """Make a tool function unit-aware using its predefined mappings.

    Args:
        tool_func: The tool function to wrap

    Returns:
        Unit-aware version of the function
    """
    tool_name = tool_func.__name__
    mappings = get_tool_mapping(tool_name)

    if not mappings:
        logger.debug(f"No unit mappings defined for {tool_name}")
        return tool_func

    return unit_aware(mappings)(tool_func)
