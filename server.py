"""
MCP Server for heat exchanger design with automatic unit conversion.

Registers the double-pipe and shell-tube design tools together with the fluid
property and heat duty helpers they build on.
"""

import logging

from mcp.server.fastmcp import FastMCP

from tools.fluid_properties import get_fluid_properties
from tools.heat_duty import calculate_heat_duty
from tools.size_double_pipe_heat_exchanger import size_double_pipe_heat_exchanger
from tools.size_shell_tube_heat_exchanger import (
    rate_shell_tube_heat_exchanger,
    size_shell_tube_heat_exchanger,
)
from utils.unit_aware_decorator import TOOL_MAPPINGS, make_tool_unit_aware

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("hx-design-mcp")

# Initialize the MCP server
mcp = FastMCP("hx-design-calculator")

TOOLS = [
    get_fluid_properties,
    calculate_heat_duty,
    # Exchanger design tools (thermal-hydraulic coupled)
    size_double_pipe_heat_exchanger,
    size_shell_tube_heat_exchanger,
    rate_shell_tube_heat_exchanger,
]

for tool in TOOLS:
    tool_name = tool.__name__
    if tool_name in TOOL_MAPPINGS:
        mcp.tool()(make_tool_unit_aware(tool))
        logger.info(f"Registered {tool_name} with unit conversion support")
    else:
        mcp.tool()(tool)
        logger.info(f"Registered {tool_name} (SI units only)")


def log_server_capabilities():
    """Log server capabilities and unit support."""
    logger.info("=" * 60)
    logger.info("HX DESIGN MCP SERVER STARTING")
    logger.info("=" * 60)
    logger.info("  Supported units:")
    logger.info("    Temperature: °F, °C, K")
    logger.info("    Length: ft, in, mm, m")
    logger.info("    Mass Flow: lb/hr, kg/s")
    logger.info("    Pressure: psi, bar, kPa, Pa")
    logger.info("    Heat Transfer Coeff: BTU/(hr·ft²·°F), W/(m²·K)")
    logger.info("")
    logger.info("  Usage examples:")
    logger.info('    hot_inlet_temp_K="80 degC"')
    logger.info('    hot_mass_flow_kg_s="15000 lb/hr"')
    logger.info('    max_pressure_drop_inner_kPa="10 psi"')
    logger.info("=" * 60)
    logger.info(f"Server registered {len(TOOLS)} tools successfully")
    logger.info("=" * 60)


if __name__ == "__main__":
    log_server_capabilities()

    # Start the server
    mcp.run()
