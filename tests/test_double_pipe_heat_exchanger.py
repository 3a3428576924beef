"""
Tests for the double-pipe heat exchanger search over standard pipe pairs.

These tests verify:
1. A feasible pair is found for a water-water duty under pressure-drop limits
2. Selection is deterministic and ties go to the pair enumerated first
3. Temperature cross is rejected before the search starts
4. Unattainable constraints exhaust the search with the full trial log
5. The JSON tool wraps results and errors
"""

import json
import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tools.size_double_pipe_heat_exchanger import (
    enumerate_pipe_pairs,
    optimize_double_pipe,
    size_double_pipe_heat_exchanger,
)
from utils.catalogs import PipeSize, standard_pipe_catalog
from utils.hx_models import FluidStream
from utils.validation import NoFeasibleDesign, TemperatureCross, UnderspecifiedEnergyBalance


def water(T_in_C, T_out_C=None, m=None):
    return FluidStream(
        name="water",
        inlet_temp_K=T_in_C + 273.15,
        outlet_temp_K=T_out_C + 273.15 if T_out_C is not None else None,
        mass_flow_kg_s=m,
        density_kg_m3=997.0,
        viscosity_Pa_s=0.00089,
        specific_heat_J_kgK=4180.0,
        conductivity_W_mK=0.607,
    )


# NPS 2 and NPS 3-1/2, Schedule 40
SMALL = dict(inner_diameter_m=0.05250, outer_diameter_m=0.06033)
LARGE = dict(inner_diameter_m=0.09012, outer_diameter_m=0.10160)


class TestPipePairs:
    """Enumeration of geometrically valid pairs."""

    def test_pairs_respect_gap_and_order(self):
        catalog = standard_pipe_catalog()
        pairs = list(enumerate_pipe_pairs(catalog, 0.005))

        assert len(catalog) == 10
        assert pairs
        for inner, outer in pairs:
            assert inner.outer_diameter_m < outer.outer_diameter_m
            assert (outer.inner_diameter_m - inner.outer_diameter_m) / 2 >= 0.005

        # Smaller inner pipe first, then smaller outer pipe
        keys = [(inner.outer_diameter_m, outer.outer_diameter_m) for inner, outer in pairs]
        assert keys == sorted(keys)

    def test_larger_gap_prunes_pairs(self):
        catalog = standard_pipe_catalog()
        assert len(list(enumerate_pipe_pairs(catalog, 0.02))) < len(list(enumerate_pipe_pairs(catalog, 0.005)))

    def test_identical_sizes_are_not_paired(self):
        catalog = [PipeSize("a", 2.0, **SMALL), PipeSize("b", 2.0, **SMALL)]
        assert list(enumerate_pipe_pairs(catalog, 0.0)) == []


class TestDoublePipeSearch:
    """Scenario tests for the discrete search."""

    def test_feasible_water_water(self):
        """Hot water 2 kg/s 80→50 °C, cold water 2.5 kg/s from 20 °C, 70 kPa limits."""
        catalog = standard_pipe_catalog()
        result = optimize_double_pipe(
            water(80, 50, m=2.0),
            water(20, m=2.5),
            catalog=catalog,
            max_pressure_drop_inner_Pa=70e3,
            max_pressure_drop_annulus_Pa=70e3,
            min_annular_gap_m=0.005,
        )
        best = result.candidate
        geometry = best.geometry

        assert result.converged
        assert result.status == "optimal"
        assert result.duty_W == pytest.approx(250800.0)
        assert result.cold.outlet_temp_K == pytest.approx(44 + 273.15)

        assert geometry.inner_od_m < geometry.outer_id_m
        assert geometry.annular_gap_m >= 0.005
        assert best.overdesign_pct >= 0
        assert best.provided_area_m2 >= best.required_area_m2
        assert best.pressure_drop_inner_Pa <= 70e3
        assert best.pressure_drop_outer_Pa <= 70e3
        assert best.rating.inner.velocity_m_s <= 3.0
        assert best.rating.outer.velocity_m_s <= 2.0

        # Length is a whole number of 0.1 m steps
        assert geometry.length_m / 0.1 == pytest.approx(round(geometry.length_m / 0.1))
        assert best.required_area_m2 == pytest.approx(
            result.duty_W / (best.U_fouled_W_m2K * result.lmtd_K)
        )

        # One trial per geometrically valid pair
        assert len(result.trial_log) == len(list(enumerate_pipe_pairs(catalog, 0.005)))

    def test_selected_pair_has_smallest_feasible_area(self):
        result = optimize_double_pipe(
            water(80, 50, m=2.0),
            water(20, m=2.5),
            max_pressure_drop_inner_Pa=70e3,
            max_pressure_drop_annulus_Pa=70e3,
        )
        feasible_areas = [r.metrics["area_m2"] for r in result.trial_log if r.feasible]

        assert result.candidate.required_area_m2 == pytest.approx(min(feasible_areas))

    def test_deterministic(self):
        """Identical inputs give the identical candidate and trial log."""
        kwargs = dict(max_pressure_drop_inner_Pa=70e3, max_pressure_drop_annulus_Pa=70e3)
        first = optimize_double_pipe(water(80, 50, m=2.0), water(20, m=2.5), **kwargs)
        second = optimize_double_pipe(water(80, 50, m=2.0), water(20, m=2.5), **kwargs)

        assert first.candidate == second.candidate
        assert len(first.trial_log) == len(second.trial_log)
        assert first.trial_log.lines() == second.trial_log.lines()

    def test_tie_goes_to_first_enumerated(self):
        """Two identical outer pipes give equal areas; the first listed wins."""
        small = PipeSize("small", 2.0, **SMALL)
        outer_a = PipeSize("outer-a", 3.5, **LARGE)
        outer_b = PipeSize("outer-b", 3.5, **LARGE)

        result = optimize_double_pipe(water(80, 50, m=2.0), water(20, m=2.5), catalog=[small, outer_a, outer_b])
        assert len(result.trial_log) == 2
        assert result.trial_log[0].metrics["area_m2"] == result.trial_log[1].metrics["area_m2"]
        assert result.candidate.label == "small in outer-a"

        reordered = optimize_double_pipe(water(80, 50, m=2.0), water(20, m=2.5), catalog=[small, outer_b, outer_a])
        assert reordered.candidate.label == "small in outer-b"

    def test_cold_fluid_in_inner_pipe(self):
        catalog = [PipeSize("small", 2.0, **SMALL), PipeSize("large", 3.5, **LARGE)]
        hot_inside = optimize_double_pipe(water(80, 50, m=2.0), water(20, m=2.5), catalog=catalog)
        cold_inside = optimize_double_pipe(
            water(80, 50, m=2.0), water(20, m=2.5), catalog=catalog, inner_pipe_fluid="cold"
        )

        G_hot_inside = hot_inside.candidate.rating.inner.mass_velocity_kg_m2s
        G_cold_inside = cold_inside.candidate.rating.inner.mass_velocity_kg_m2s
        assert G_cold_inside == pytest.approx(G_hot_inside * 2.5 / 2.0)

    def test_temperature_cross(self):
        """Hot in at 60 °C with cold out at 70 °C cannot run counter-current."""
        with pytest.raises(TemperatureCross):
            optimize_double_pipe(water(60, 40, m=2.5), water(20, 70), catalog=standard_pipe_catalog())

    def test_underspecified(self):
        with pytest.raises(UnderspecifiedEnergyBalance):
            optimize_double_pipe(water(80, 50), water(20))

    def test_unattainable_pressure_drop(self):
        """A 1 Pa limit rules out every pair; the whole search is logged."""
        catalog = standard_pipe_catalog()
        with pytest.raises(NoFeasibleDesign) as exc_info:
            optimize_double_pipe(
                water(80, 50, m=2.0),
                water(20, m=2.5),
                catalog=catalog,
                max_pressure_drop_inner_Pa=1.0,
                max_pressure_drop_annulus_Pa=1.0,
            )

        error = exc_info.value
        assert len(error.trial_log) == len(list(enumerate_pipe_pairs(catalog, 0.005)))
        assert all(record.feasible is False for record in error.trial_log)
        assert error.closest is not None
        assert error.closest["violations"]

    def test_empty_search_space(self):
        with pytest.raises(NoFeasibleDesign) as exc_info:
            optimize_double_pipe(water(80, 50, m=2.0), water(20, m=2.5), min_annular_gap_m=1.0)
        assert len(exc_info.value.trial_log) == 0


class TestDoublePipeTool:
    """JSON tool wrapper."""

    def test_water_water_sizing(self):
        result = json.loads(
            size_double_pipe_heat_exchanger(
                hot_inlet_temp_K=353.15,  # 80°C
                hot_outlet_temp_K=323.15,  # 50°C
                cold_inlet_temp_K=293.15,  # 20°C
                hot_mass_flow_kg_s=2.0,
                cold_mass_flow_kg_s=2.5,
                property_source="table",
                max_pressure_drop_inner_kPa=70,
                max_pressure_drop_annulus_kPa=70,
            )
        )

        assert "error" not in result, f"Sizing failed: {result.get('error')}"
        assert result["status"] == "optimal"
        assert result["converged"] is True
        assert result["duty_W"] == pytest.approx(250800.0)

        selection = result["selection"]
        assert selection["overdesign_pct"] >= 0
        assert selection["pressure_drop_inner_kPa"] <= 70
        assert selection["pressure_drop_annulus_kPa"] <= 70
        assert selection["inner_pipe"].startswith("NPS")
        geometry = result["design"]["geometry"]
        assert selection["inner_pipe_wall_thickness_m"] == pytest.approx(
            (geometry["inner_od_m"] - geometry["inner_id_m"]) / 2
        )
        assert selection["outer_pipe_wall_thickness_m"] > 0
        assert result["design"]["geometry"]["type"] == "double_pipe"
        assert result["trial_count"] == len(result["trial_log"])
        assert result["temperatures"]["cold_outlet_C"] == pytest.approx(44.0)

    def test_parallel_flow(self):
        result = json.loads(
            size_double_pipe_heat_exchanger(
                heat_duty_W=10000,
                hot_inlet_temp_K=353.15,
                cold_inlet_temp_K=293.15,
                hot_mass_flow_kg_s=0.5,
                cold_mass_flow_kg_s=0.5,
                property_source="table",
                flow_arrangement="parallel",
                include_trial_log=False,
            )
        )

        assert "error" not in result, f"Sizing failed: {result.get('error')}"
        assert result["configuration"]["flow_arrangement"] == "parallel"
        assert "trial_log" not in result

    def test_infeasible_returns_trial_log(self):
        result = json.loads(
            size_double_pipe_heat_exchanger(
                hot_inlet_temp_K=353.15,
                hot_outlet_temp_K=323.15,
                cold_inlet_temp_K=293.15,
                hot_mass_flow_kg_s=2.0,
                cold_mass_flow_kg_s=2.5,
                property_source="table",
                max_pressure_drop_inner_kPa=0.001,
                max_pressure_drop_annulus_kPa=0.001,
            )
        )

        assert result["error_kind"] == "NoFeasibleDesign"
        assert result["trial_count"] == len(list(enumerate_pipe_pairs(standard_pipe_catalog(), 0.005)))
        assert len(result["trial_log"]) == result["trial_count"]
        assert "closest_candidate" in result

    def test_temperature_cross_payload(self):
        result = json.loads(
            size_double_pipe_heat_exchanger(
                hot_inlet_temp_K=333.15,  # 60°C
                hot_outlet_temp_K=313.15,  # 40°C
                cold_inlet_temp_K=293.15,  # 20°C
                cold_outlet_temp_K=343.15,  # 70°C
                hot_mass_flow_kg_s=2.5,
                property_source="table",
            )
        )
        assert result["error_kind"] == "TemperatureCross"
        assert "design" not in result

    def test_invalid_flow_arrangement(self):
        result = json.loads(
            size_double_pipe_heat_exchanger(
                hot_inlet_temp_K=353.15,
                cold_inlet_temp_K=293.15,
                hot_mass_flow_kg_s=0.5,
                cold_mass_flow_kg_s=0.5,
                heat_duty_W=10000,
                flow_arrangement="crossflow",
                property_source="table",
            )
        )
        assert result["error_kind"] == "ValidationError"

    def test_unknown_fluid(self):
        result = json.loads(
            size_double_pipe_heat_exchanger(
                hot_inlet_temp_K=353.15,
                cold_inlet_temp_K=293.15,
                hot_mass_flow_kg_s=0.5,
                cold_mass_flow_kg_s=0.5,
                heat_duty_W=10000,
                hot_fluid="unobtainium",
                property_source="table",
            )
        )
        assert "error" in result
