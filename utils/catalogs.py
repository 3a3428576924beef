"""
Standard equipment size catalogs.

Catalogs are read-only tuples ordered ascending by size. The solvers take them as
explicit arguments; the defaults here are only what the tools pass when the
caller supplies none.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Sequence, Tuple

from fluids.piping import nearest_pipe

from utils.constants import INCH_to_M

logger = logging.getLogger("hx-design-mcp.catalogs")


@dataclass(frozen=True)
class PipeSize:
    name: str
    nominal_size: float
    inner_diameter_m: float
    outer_diameter_m: float

    @property
    def wall_thickness_m(self) -> float:
        return (self.outer_diameter_m - self.inner_diameter_m) / 2


@dataclass(frozen=True)
class ShellSize:
    name: str
    inner_diameter_m: float


@dataclass(frozen=True)
class TubeSize:
    name: str
    outer_diameter_m: float
    inner_diameter_m: float


# NPS 1/2" through 4"
DEFAULT_PIPE_NPS = (0.5, 0.75, 1.0, 1.25, 1.5, 2.0, 2.5, 3.0, 3.5, 4.0)

# TEMA shell inner diameters, inches
_SHELL_IDS_IN = (8, 10, 12, 13.25, 15.25, 17.25, 19.25, 21.25, 23.25, 25, 27, 29, 31,
                 33, 35, 37, 39, 42, 45, 48, 54, 60)

STANDARD_SHELLS: Tuple[ShellSize, ...] = tuple(
    ShellSize(name=f'{d:g}"', inner_diameter_m=d * INCH_to_M) for d in _SHELL_IDS_IN
)

STANDARD_TUBES: Tuple[TubeSize, ...] = (
    TubeSize(name="19 mm (3/4 in)", outer_diameter_m=0.019, inner_diameter_m=0.016),
    TubeSize(name="25 mm (1 in)", outer_diameter_m=0.025, inner_diameter_m=0.021),
    TubeSize(name="32 mm (1.25 in)", outer_diameter_m=0.032, inner_diameter_m=0.028),
    TubeSize(name="38 mm (1.5 in)", outer_diameter_m=0.038, inner_diameter_m=0.033),
)


@lru_cache(maxsize=16)
def standard_pipe_catalog(nps: Tuple[float, ...] = DEFAULT_PIPE_NPS, schedule: str = "40") -> Tuple[PipeSize, ...]:
    """Build a pipe catalog from fluids.piping for the given nominal sizes.

    Args:
        nps: Nominal pipe sizes (inches), any order
        schedule: Pipe schedule, default '40'

    Returns:
        Tuple of PipeSize ordered ascending by outer diameter
    """
    pipes = []
    for size in nps:
        NPS, Di, Do, _t = nearest_pipe(NPS=size, schedule=schedule)
        pipes.append(
            PipeSize(
                name=f"NPS {NPS:g} Sch {schedule}",
                nominal_size=float(NPS),
                inner_diameter_m=float(Di),
                outer_diameter_m=float(Do),
            )
        )
    logger.debug(f"Built Schedule {schedule} catalog with {len(pipes)} sizes")
    return sort_catalog(pipes)


def sort_catalog(pipes: Iterable[PipeSize]) -> Tuple[PipeSize, ...]:
    """Order pipes ascending by outer diameter, then inner diameter (stable)."""
    return tuple(sorted(pipes, key=lambda p: (p.outer_diameter_m, p.inner_diameter_m)))


def smallest_shell_at_least(diameter_m: float, shells: Sequence[ShellSize]):
    """Return the first catalog shell with ID >= diameter_m, or None when the catalog is exhausted."""
    for shell in sorted(shells, key=lambda s: s.inner_diameter_m):
        if shell.inner_diameter_m >= diameter_m:
            return shell
    return None


def standard_tube(outer_diameter_m: float, tolerance_m: float = 1e-4):
    """Return the catalog tube with this OD, or None for a non-standard size."""
    for tube in STANDARD_TUBES:
        if abs(tube.outer_diameter_m - outer_diameter_m) <= tolerance_m:
            return tube
    return None
