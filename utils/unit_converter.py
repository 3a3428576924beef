"""Unit conversion utilities using Pint for the HX Design MCP server.

Tool parameters are SI. Callers may pass strings such as "80 degC", "0.75 inch"
or "10 psi"; these are parsed here and converted to the SI unit the tool expects.
"""

from pint import UnitRegistry
import logging
from typing import Union

logger = logging.getLogger("hx-design-mcp.units")

# Initialize unit registry
ureg = UnitRegistry()


def convert_units(value: float, from_unit: str, to_unit: str) -> float:
    """Convert between units using Pint.

    Args:
        value: Numerical value to convert
        from_unit: Source unit string (e.g., 'degF', 'inch', 'psi')
        to_unit: Target unit string (e.g., 'kelvin', 'meter', 'pascal')

    Returns:
        Converted value as float

    Raises:
        ValueError: If conversion fails
    """
    try:
        quantity = ureg.Quantity(value, from_unit)
        converted = quantity.to(to_unit)
        return float(converted.magnitude)
    except Exception as e:
        logger.debug(f"Unit conversion failed: {e}")
        raise ValueError(f"Cannot convert {value} {from_unit} to {to_unit}: {e}") from e


def parse_and_convert(value_str: Union[str, float, int], target_unit: str) -> float:
    """Parse a value with optional unit and convert to target unit.

    Numbers, and strings holding a bare number, are taken to be in the target
    unit already.

    Args:
        value_str: Value, or string with value and unit (e.g., "80 degC", "0.75 inch", "50")
        target_unit: Target unit to convert to

    Returns:
        Converted value in target units

    Raises:
        ValueError: unparseable string or incompatible unit

    Examples:
        >>> parse_and_convert("80 degC", "kelvin")
        353.15
        >>> parse_and_convert("0.5", "meter")
        0.5
    """
    if isinstance(value_str, bool):
        raise ValueError(f"Expected a number or a 'value unit' string, got {value_str!r}")
    if isinstance(value_str, (int, float)):
        return float(value_str)

    text = value_str.strip()
    try:
        return float(text)
    except ValueError:
        pass

    parts = text.split(maxsplit=1)
    if len(parts) != 2:
        raise ValueError(f"Could not parse '{value_str}' as a number or 'value unit' string")
    try:
        value = float(parts[0])
    except ValueError as e:
        raise ValueError(f"Could not parse '{value_str}': '{parts[0]}' is not a number") from e
    return convert_units(value, parts[1], target_unit)
