"""
Data structures shared by the heat exchanger rating and sizing tools.

All values are SI: kg/s, K, Pa, m, W. Correlation and rating results are frozen
and produced fresh for every trial; the trial log is the only append-only
structure and lives for a single solver call.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Iterator, List, Optional, Union

from utils.constants import MIN_ANNULAR_GAP_M
from utils.validation import ValidationError


@dataclass(frozen=True)
class FluidStream:
    """One side of the exchanger. Outlet temperature and mass flow may be unknown (None)."""

    name: str
    inlet_temp_K: float
    density_kg_m3: float
    viscosity_Pa_s: float
    specific_heat_J_kgK: float
    conductivity_W_mK: float
    mass_flow_kg_s: Optional[float] = None
    outlet_temp_K: Optional[float] = None
    fouling_m2K_W: float = 0.0

    def with_updates(self, **changes) -> "FluidStream":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DoublePipeGeometry:
    inner_od_m: float
    inner_id_m: float
    outer_id_m: float
    length_m: Optional[float] = None

    @property
    def annular_gap_m(self) -> float:
        return (self.outer_id_m - self.inner_od_m) / 2

    def validate(self, min_annular_gap_m: float = MIN_ANNULAR_GAP_M) -> None:
        if self.inner_id_m <= 0 or self.inner_od_m <= 0 or self.outer_id_m <= 0:
            raise ValidationError("Pipe diameters must be > 0")
        if self.inner_id_m >= self.inner_od_m:
            raise ValidationError(
                f"inner pipe ID ({self.inner_id_m}) must be < inner pipe OD ({self.inner_od_m})"
            )
        if self.outer_id_m <= self.inner_od_m:
            raise ValidationError(
                f"outer pipe ID ({self.outer_id_m}) must be > inner pipe OD ({self.inner_od_m})"
            )
        if self.annular_gap_m < min_annular_gap_m:
            raise ValidationError(
                f"Annular gap {self.annular_gap_m * 1000:.1f} mm is below the "
                f"{min_annular_gap_m * 1000:.1f} mm minimum"
            )
        if self.length_m is not None and self.length_m <= 0:
            raise ValidationError(f"length_m must be > 0; got {self.length_m}")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = "double_pipe"
        data["annular_gap_m"] = self.annular_gap_m
        return data


@dataclass(frozen=True)
class ShellTubeGeometry:
    shell_id_m: float
    tube_od_m: float
    tube_id_m: float
    tube_length_m: float
    tube_count: int
    tube_passes: int
    pitch_m: float
    pitch_type: str
    baffle_spacing_m: float
    baffle_count: int

    def validate(self) -> None:
        if self.tube_id_m <= 0 or self.tube_id_m >= self.tube_od_m:
            raise ValidationError(f"tube ID ({self.tube_id_m}) must be > 0 and < tube OD ({self.tube_od_m})")
        if self.pitch_m <= self.tube_od_m:
            raise ValidationError(f"tube pitch ({self.pitch_m}) must exceed tube OD ({self.tube_od_m})")
        if self.pitch_type not in ("square", "triangular"):
            raise ValidationError(f"pitch_type must be 'square' or 'triangular', got '{self.pitch_type}'")
        if self.shell_id_m <= self.tube_od_m:
            raise ValidationError(f"shell ID ({self.shell_id_m}) must exceed tube OD ({self.tube_od_m})")
        if self.tube_length_m <= 0 or self.baffle_spacing_m <= 0:
            raise ValidationError("tube_length_m and baffle_spacing_m must be > 0")
        if self.tube_count < 1 or self.tube_passes < 1 or self.baffle_count < 0:
            raise ValidationError("tube_count and tube_passes must be >= 1, baffle_count >= 0")
        if self.tube_count < self.tube_passes:
            raise ValidationError(
                f"tube_count ({self.tube_count}) must be at least tube_passes ({self.tube_passes})"
            )

    @property
    def provided_area_m2(self) -> float:
        return self.tube_count * math.pi * self.tube_od_m * self.tube_length_m

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = "shell_tube"
        data["provided_area_m2"] = self.provided_area_m2
        return data


Geometry = Union[DoublePipeGeometry, ShellTubeGeometry]


@dataclass(frozen=True)
class CorrelationResult:
    """Film coefficient and hydraulics for one side of one trial geometry."""

    side: str
    h_W_m2K: float
    Nu: float
    Re: float
    Pr: float
    velocity_m_s: float
    mass_velocity_kg_m2s: float
    characteristic_length_m: float
    friction_factor: float
    friction_regime: str
    # Pressure drop per metre of single-pass straight length, no return losses
    pressure_gradient_Pa_m: float
    pressure_drop_Pa: Optional[float] = None

    def pressure_drop_over(self, length_m: float) -> float:
        return self.pressure_gradient_Pa_m * length_m

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RatingResult:
    inner: CorrelationResult
    outer: CorrelationResult
    U_clean_W_m2K: float
    U_fouled_W_m2K: float
    resistances_m2K_W: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inner": self.inner.to_dict(),
            "outer": self.outer.to_dict(),
            "U_clean_W_m2K": self.U_clean_W_m2K,
            "U_fouled_W_m2K": self.U_fouled_W_m2K,
            "resistances_m2K_W": dict(self.resistances_m2K_W),
        }


@dataclass(frozen=True)
class DesignCandidate:
    geometry: Geometry
    rating: RatingResult
    required_area_m2: float
    provided_area_m2: float
    pressure_drop_inner_Pa: float
    pressure_drop_outer_Pa: float
    label: str = ""

    @property
    def U_clean_W_m2K(self) -> float:
        return self.rating.U_clean_W_m2K

    @property
    def U_fouled_W_m2K(self) -> float:
        return self.rating.U_fouled_W_m2K

    @property
    def overdesign_pct(self) -> float:
        return (self.provided_area_m2 - self.required_area_m2) / self.required_area_m2 * 100

    def summary(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "U_fouled_W_m2K": self.U_fouled_W_m2K,
            "required_area_m2": self.required_area_m2,
            "provided_area_m2": self.provided_area_m2,
            "overdesign_pct": self.overdesign_pct,
            "velocity_inner_m_s": self.rating.inner.velocity_m_s,
            "velocity_outer_m_s": self.rating.outer.velocity_m_s,
            "pressure_drop_inner_Pa": self.pressure_drop_inner_Pa,
            "pressure_drop_outer_Pa": self.pressure_drop_outer_Pa,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "geometry": self.geometry.to_dict(),
            "rating": self.rating.to_dict(),
            "U_clean_W_m2K": self.U_clean_W_m2K,
            "U_fouled_W_m2K": self.U_fouled_W_m2K,
            "required_area_m2": self.required_area_m2,
            "provided_area_m2": self.provided_area_m2,
            "overdesign_pct": self.overdesign_pct,
            "pressure_drop_inner_Pa": self.pressure_drop_inner_Pa,
            "pressure_drop_outer_Pa": self.pressure_drop_outer_Pa,
        }


@dataclass(frozen=True)
class TrialRecord:
    index: int
    label: str
    metrics: Dict[str, Any]
    delta: Optional[float] = None
    feasible: Optional[bool] = None
    note: str = ""

    def line(self) -> str:
        parts = [f"{k}={_fmt(v)}" for k, v in self.metrics.items()]
        text = f"Trial {self.index}: {self.label}"
        if parts:
            text += " | " + ", ".join(parts)
        if self.delta is not None:
            text += f" | delta={self.delta * 100:.1f}%"
        if self.feasible is not None:
            text += " | feasible" if self.feasible else " | infeasible"
        if self.note:
            text += f" ({self.note})"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.4g}"
    return str(value)


class TrialLog:
    """Ordered, append-only record of solver trials. Never read by the solvers."""

    def __init__(self) -> None:
        self._records: List[TrialRecord] = []

    def append(self, label: str, metrics: Dict[str, Any], delta: Optional[float] = None,
               feasible: Optional[bool] = None, note: str = "") -> TrialRecord:
        record = TrialRecord(
            index=len(self._records) + 1,
            label=label,
            metrics=dict(metrics),
            delta=delta,
            feasible=feasible,
            note=note,
        )
        self._records.append(record)
        return record

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[TrialRecord]:
        return iter(self._records)

    def __getitem__(self, index: int) -> TrialRecord:
        return self._records[index]

    @property
    def deltas(self) -> List[Optional[float]]:
        return [r.delta for r in self._records]

    def lines(self) -> List[str]:
        return [r.line() for r in self._records]

    def to_list(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self._records]


@dataclass
class DesignResult:
    """Outcome of one solver call: the retained candidate plus its trial log."""

    candidate: DesignCandidate
    trial_log: TrialLog
    converged: bool
    status: str
    iterations: int
    duty_W: float
    lmtd_K: float
    f_correction: float
    hot: FluidStream
    cold: FluidStream

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "converged": self.converged,
            "iterations": self.iterations,
            "duty_W": self.duty_W,
            "duty_kW": self.duty_W / 1000,
            "LMTD_K": self.lmtd_K,
            "F_correction": self.f_correction,
            "design": self.candidate.to_dict(),
            "streams": {"hot": self.hot.to_dict(), "cold": self.cold.to_dict()},
            "trial_count": len(self.trial_log),
            "trial_log": self.trial_log.lines(),
        }
