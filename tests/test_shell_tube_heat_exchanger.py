"""Tests for shell-tube heat exchanger design (U iteration) and rating."""
import json
import math
import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tools.size_shell_tube_heat_exchanger import (
    baffle_layout,
    design_shell_tube,
    rate_shell_tube_heat_exchanger,
    resolve_tube_id,
    size_shell_tube_heat_exchanger,
    tube_count_for_area,
)
from utils.catalogs import STANDARD_SHELLS, ShellSize
from utils.hx_models import FluidStream
from utils.validation import (
    MAX_ITERATIONS_EXCEEDED,
    NoFeasibleDesign,
    TemperatureCross,
    ValidationError,
    error_payload,
)


def water(T_in_C, T_out_C=None, m=None, fouling=0.0002):
    return FluidStream(
        name="water",
        inlet_temp_K=T_in_C + 273.15,
        outlet_temp_K=T_out_C + 273.15 if T_out_C is not None else None,
        mass_flow_kg_s=m,
        density_kg_m3=997.0,
        viscosity_Pa_s=0.00089,
        specific_heat_J_kgK=4180.0,
        conductivity_W_mK=0.607,
        fouling_m2K_W=fouling,
    )


def design(**kwargs):
    """Hot water 2 kg/s from 90 °C, cold water 3 kg/s from 20 °C, 250.8 kW."""
    return design_shell_tube(water(90, m=2.0), water(20, m=3.0), heat_duty_W=250800.0, **kwargs)


class TestGeometryHelpers:
    def test_tube_count_rounds_up_to_passes(self):
        n = tube_count_for_area(10.0, 0.019, 4.88, 4)
        assert n % 4 == 0
        assert n >= 1.05 * 10.0 / (math.pi * 0.019 * 4.88)
        assert n - 4 < 1.05 * 10.0 / (math.pi * 0.019 * 4.88)

    def test_tube_count_at_least_one_per_pass(self):
        assert tube_count_for_area(1e-6, 0.019, 4.88, 2) == 2

    def test_tube_id_from_catalog(self):
        assert resolve_tube_id(0.025) == 0.021
        assert resolve_tube_id(0.025, 0.02) == 0.02
        with pytest.raises(ValidationError):
            resolve_tube_id(0.021)

    def test_baffle_layout(self):
        spacing, count = baffle_layout(0.5, 4.88)
        assert spacing == pytest.approx(0.2)
        assert count == int(4.88 / 0.2) - 1

    def test_baffle_spacing_clamped(self):
        spacing, _ = baffle_layout(0.5, 4.88, spacing_fraction=0.05)
        assert spacing == pytest.approx(0.1)
        spacing, _ = baffle_layout(0.5, 4.88, spacing_fraction=2.0)
        assert spacing == pytest.approx(0.5)


class TestDesignLoop:
    """Fixed-point iteration on U."""

    def test_converges_or_reports_max_iterations(self):
        """Starting from U = 500 with a fixed duty, at most 20 iterations."""
        result = design(U_initial_W_m2K=500.0)
        log = result.trial_log

        assert 1 <= len(log) <= 20
        assert result.iterations == len(log)
        if result.converged:
            assert result.status == "converged"
            assert log[-1].delta <= 0.10
            assert all(delta > 0.10 for delta in log.deltas[:-1])
        else:
            assert result.status == MAX_ITERATIONS_EXCEEDED
            assert len(log) == 20

    def test_design_is_consistent(self):
        result = design()
        candidate = result.candidate
        geometry = candidate.geometry

        assert result.duty_W == pytest.approx(250800.0)
        assert result.hot.outlet_temp_K == pytest.approx(60 + 273.15)
        assert result.cold.outlet_temp_K == pytest.approx(40 + 273.15)
        assert 0.75 < result.f_correction <= 1.0

        assert geometry.tube_count % geometry.tube_passes == 0
        assert geometry.shell_id_m in [shell.inner_diameter_m for shell in STANDARD_SHELLS]
        assert geometry.pitch_m == pytest.approx(1.25 * 0.019)
        assert geometry.shell_id_m / 5 <= geometry.baffle_spacing_m <= geometry.shell_id_m
        assert candidate.provided_area_m2 == pytest.approx(geometry.tube_count * math.pi * 0.019 * 4.88)
        assert candidate.required_area_m2 == pytest.approx(
            result.duty_W / (candidate.U_fouled_W_m2K * result.lmtd_K * result.f_correction)
        )

    def test_every_iteration_logged(self):
        result = design(max_iterations=5, tolerance=1e-12)
        log = result.trial_log

        assert len(log) == 5
        assert [record.index for record in log] == [1, 2, 3, 4, 5]
        for record in log:
            assert set(record.metrics) >= {"U_guess_W_m2K", "tubes", "shell_id_m", "U_calc_W_m2K"}
            assert record.delta is not None

    def test_max_iterations_is_not_an_error(self):
        """An unreachable tolerance returns the last candidate, flagged."""
        result = design(max_iterations=3, tolerance=1e-12)

        assert result.converged is False
        assert result.status == MAX_ITERATIONS_EXCEEDED
        assert result.iterations == 3
        assert result.candidate is not None
        assert result.candidate.label.startswith(str(result.candidate.geometry.tube_count))

    def test_damped_update(self):
        """U_guess(k+1) = 0.5 * U_guess(k) + 0.5 * U_calc(k)."""
        log = design(max_iterations=4, tolerance=1e-12).trial_log
        for previous, current in zip(log, list(log)[1:]):
            expected = 0.5 * previous.metrics["U_guess_W_m2K"] + 0.5 * previous.metrics["U_calc_W_m2K"]
            assert current.metrics["U_guess_W_m2K"] == pytest.approx(expected)

    def test_single_pass_no_f_correction(self):
        result = design(tube_passes=1)
        assert result.f_correction == 1.0

    def test_square_pitch(self):
        result = design(pitch_type="square")
        assert result.candidate.geometry.pitch_type == "square"

    def test_shell_catalog_exhausted(self):
        with pytest.raises(NoFeasibleDesign) as exc_info:
            design(shell_catalog=[ShellSize("tiny", 0.05)])
        # Fails on the first pass, before any iteration completes
        assert len(exc_info.value.trial_log) == 0
        assert exc_info.value.closest is None

    def test_catalog_exhausted_mid_loop_keeps_log(self):
        """A high U guess fits the first bundles; growing tube counts then outgrow the shell."""
        with pytest.raises(NoFeasibleDesign) as exc_info:
            design(U_initial_W_m2K=6000.0, shell_catalog=[ShellSize("small", 0.13)])
        exc = exc_info.value
        log = exc.trial_log

        assert len(log) >= 1
        assert [record.index for record in log] == list(range(1, len(log) + 1))
        assert exc.closest is not None
        assert exc.closest["label"].startswith(str(log[-1].metrics["tubes"]))
        assert f"Iteration {len(log) + 1}" in str(exc)

        payload = error_payload(exc)
        assert payload["error_kind"] == "NoFeasibleDesign"
        assert payload["trial_count"] == len(log)
        assert len(payload["trial_log"]) == len(log)
        assert payload["closest_candidate"] == exc.closest

    def test_temperature_cross(self):
        with pytest.raises(TemperatureCross):
            design_shell_tube(water(60, 40, m=2.5), water(20, 70))

    def test_invalid_inputs(self):
        with pytest.raises(ValidationError):
            design(shell_side="both")
        with pytest.raises(ValidationError):
            design(pitch_ratio=0.9)
        with pytest.raises(ValidationError):
            design(tube_id_m=0.02)
        with pytest.raises(ValidationError):
            design(max_iterations=0)
        with pytest.raises(ValidationError):
            design(tube_passes=2.5)


class TestShellTubeTools:
    """JSON tool wrappers."""

    def test_size_tool(self):
        result = json.loads(
            size_shell_tube_heat_exchanger(
                heat_duty_W=250800,
                hot_inlet_temp_K=363.15,  # 90°C
                cold_inlet_temp_K=293.15,  # 20°C
                hot_mass_flow_kg_s=2.0,
                cold_mass_flow_kg_s=3.0,
                property_source="table",
            )
        )

        assert "error" not in result, f"Unexpected error: {result.get('error')}"
        assert result["status"] in ("converged", MAX_ITERATIONS_EXCEEDED)
        assert result["converged"] == (result["status"] == "converged")
        assert len(result["relative_errors"]) == result["iterations"] == len(result["trial_log"])
        assert result["iterations"] <= 20

        selection = result["selection"]
        assert selection["tube_count"] % 2 == 0
        assert selection["U_design_W_m2K"] < selection["U_clean_W_m2K"]
        assert selection["pressure_drop_tube_kPa"] > 0
        assert selection["pressure_drop_shell_kPa"] > 0
        assert result["adequate"] == (selection["overdesign_pct"] >= 0)
        if not result["adequate"]:
            assert "below the area required" in result["warning"]
        assert result["design"]["geometry"]["type"] == "shell_tube"
        assert result["temperatures"]["cold_outlet_C"] == pytest.approx(40.0)

    def test_size_tool_reports_non_convergence(self):
        result = json.loads(
            size_shell_tube_heat_exchanger(
                heat_duty_W=250800,
                hot_inlet_temp_K=363.15,
                cold_inlet_temp_K=293.15,
                hot_mass_flow_kg_s=2.0,
                cold_mass_flow_kg_s=3.0,
                property_source="table",
                tolerance=1e-12,
                max_iterations=2,
            )
        )

        assert result["converged"] is False
        assert result["status"] == "MaxIterationsExceeded"
        assert "warning" in result
        assert len(result["trial_log"]) == 2

    def test_size_tool_error_payload(self):
        result = json.loads(
            size_shell_tube_heat_exchanger(
                hot_inlet_temp_K=363.15,
                cold_inlet_temp_K=293.15,
                property_source="table",
            )
        )
        assert result["error_kind"] == "UnderspecifiedEnergyBalance"

    def test_rate_tool(self):
        result = json.loads(
            rate_shell_tube_heat_exchanger(
                shell_inner_diameter_m=0.254,
                tube_count=44,
                heat_duty_W=250800,
                hot_inlet_temp_K=363.15,
                cold_inlet_temp_K=293.15,
                hot_mass_flow_kg_s=2.0,
                cold_mass_flow_kg_s=3.0,
                property_source="table",
            )
        )

        assert "error" not in result, f"Unexpected error: {result.get('error')}"
        rating = result["rating"]
        assert rating["provided_area_m2"] == pytest.approx(44 * math.pi * 0.019 * 4.88)
        assert rating["baffle_spacing_m"] == pytest.approx(0.4 * 0.254)
        assert rating["overdesign_pct"] == pytest.approx(
            (rating["provided_area_m2"] - rating["required_area_m2"]) / rating["required_area_m2"] * 100
        )
        assert result["adequate"] == (rating["overdesign_pct"] >= 0)
        assert result["corrected_MTD_K"] == pytest.approx(result["LMTD_K"] * result["F_correction"])

    def test_rate_tool_invalid_geometry(self):
        result = json.loads(
            rate_shell_tube_heat_exchanger(
                shell_inner_diameter_m=0.254,
                tube_count=44,
                heat_duty_W=250800,
                hot_inlet_temp_K=363.15,
                cold_inlet_temp_K=293.15,
                hot_mass_flow_kg_s=2.0,
                cold_mass_flow_kg_s=3.0,
                property_source="table",
                pitch_ratio=0.9,
            )
        )
        assert result["error_kind"] == "ValidationError"

    def test_rate_tool_rejects_fractional_counts(self):
        def rate(**overrides):
            kwargs = dict(
                shell_inner_diameter_m=0.254,
                tube_count=44,
                heat_duty_W=250800,
                hot_inlet_temp_K=363.15,
                cold_inlet_temp_K=293.15,
                hot_mass_flow_kg_s=2.0,
                cold_mass_flow_kg_s=3.0,
                property_source="table",
            )
            kwargs.update(overrides)
            return json.loads(rate_shell_tube_heat_exchanger(**kwargs))

        for overrides in ({"tube_count": 44.7}, {"baffle_count": 47.5}, {"n_tube_passes": 1.5}):
            result = rate(**overrides)
            assert result["error_kind"] == "ValidationError", overrides
            assert next(iter(overrides)) in result["error"]

        # A whole-valued float is accepted as the same count
        whole = rate(tube_count=44.0)
        assert "error" not in whole, f"Unexpected error: {whole.get('error')}"
        assert whole["rating"]["provided_area_m2"] == pytest.approx(rate()["rating"]["provided_area_m2"])
