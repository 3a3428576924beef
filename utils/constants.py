"""
Constants used across the HX Design MCP server.

This module defines unit conversion factors and the default design settings used
as keyword defaults by the exchanger solvers.
"""

# Conversion factors
INCH_to_M = 0.0254           # inch to meter
DEG_C_to_K = 273.15          # Celsius to Kelvin (offset)
KPA_to_PA = 1000.0           # kPa to Pascal

# Standard atmospheric conditions
P_ATM = 101325.0             # Standard atmospheric pressure, Pa (1 atm)

# Flow regime
LAMINAR_RE_LIMIT = 2300.0    # Below this Re the laminar friction factor applies

# Energy balance
ENERGY_BALANCE_TOLERANCE = 0.05  # Allowed |Q_hot - Q_cold| / Q_hot

# Double-pipe search defaults
MIN_ANNULAR_GAP_M = 0.005            # Minimum radial gap between pipes, m
MAX_VELOCITY_INNER_M_S = 3.0
MAX_VELOCITY_ANNULUS_M_S = 2.0
LENGTH_STEP_M = 0.1                  # Pipe length is rounded up to this increment

# Shell-tube design-mode defaults
U_INITIAL_W_M2K = 500.0              # Starting guess for the overall coefficient
U_TOLERANCE = 0.10                   # Relative |U_calc - U_guess| / U_guess
MAX_ITERATIONS = 20
U_DAMPING = 0.5                      # Weight on the previous guess
TUBE_COUNT_MARGIN = 1.05             # Safety margin on the tube count
BUNDLE_SHELL_CLEARANCE_M = 0.020     # Pull-through bundle to shell clearance
BAFFLE_SPACING_FRACTION = 0.4        # Baffle spacing as a fraction of shell ID
DEFAULT_TUBE_LENGTH_M = 4.88         # 16 ft
DEFAULT_PITCH_RATIO = 1.25

# Used when the Fakheri F correction is undefined for the terminal temperatures
F_CORRECTION_FALLBACK = 0.9

# Default fouling resistances, m²K/W
DEFAULT_FOULING_M2K_W = 0.0002

# Wall conductivity of carbon steel, W/(m·K)
CARBON_STEEL_CONDUCTIVITY = 45.0
