"""
Statistics aggregation component for the fleet telemetry engine.

Summarises a window of fuel, emission or OBD readings: averages and totals,
bucket breakdowns and half-window trend directions. Works on a pandas
DataFrame built from the window; an empty window yields an all-zero summary
instead of an error.
"""

from collections import Counter
from typing import List, Optional

import pandas as pd

from fleet_telemetry.components.base import EngineComponent
from fleet_telemetry.components.classification import (
    ReadingClassifier,
    classify_efficiency,
    classify_level,
    classify_rpm,
    classify_temperature
)
from fleet_telemetry.config import EngineConfig
from fleet_telemetry.models import (
    ConsumptionAnalysis,
    ConsumptionRangeSummary,
    EmissionStatisticsSummary,
    EngineAnalysis,
    FaultCodeCount,
    FuelLevelAnalysis,
    FuelStatisticsSummary,
    FuelSummary,
    FuelTrends,
    ObdPerformanceMetrics,
    ObdStatisticsSummary,
    ObdSummary,
    ReadingFilter,
    RpmAnalysis,
    StoredReading,
    TelemetryKind,
    TemperatureAnalysis,
    TimeWindow,
    Trend
)
from fleet_telemetry.utils import get_logger

FUEL_THRESHOLD_PARAMETERS = ("fuel_consumption", "fuel_level", "fuel_efficiency")
EMISSION_THRESHOLD_PARAMETERS = ("co2_percentage", "co_percentage", "hc_ppm", "nox_ppm", "pm25_level")
OBD_THRESHOLD_PARAMETERS = ("engine_temperature", "rpm", "fault_count")

MOST_COMMON_FAULTS = 10


def readings_frame(readings: List[StoredReading]) -> pd.DataFrame:
    """One row per reading (timestamp plus measurements), sorted by timestamp."""
    if not readings:
        return pd.DataFrame()
    rows = [
        {"timestamp": r.timestamp, "vehicle_id": r.vehicle_id, "plate_number": r.plate_number, **r.fields}
        for r in readings
    ]
    frame = pd.DataFrame(rows)
    # Stable sort keeps arrival order for equal timestamps
    return frame.sort_values("timestamp", kind="mergesort").reset_index(drop=True)


def half_window_trend(values: pd.Series, noise_floor: float) -> Trend:
    """
    Compare the mean of the second half of a time-ordered series with the first.

    The split is at ``len // 2``, so for odd lengths the second half holds the
    extra sample. A half that is empty (fewer than two samples) means STABLE.
    """
    half = len(values) // 2
    first, second = values.iloc[:half], values.iloc[half:]
    if first.empty or second.empty:
        return Trend.STABLE

    difference = second.mean() - first.mean()
    if abs(difference) < noise_floor:
        return Trend.STABLE
    return Trend.INCREASING if difference > 0 else Trend.DECREASING


def efficiency_trend(consumption_trend: Trend) -> Trend:
    """Falling consumption means improving efficiency and vice versa."""
    if consumption_trend == Trend.DECREASING:
        return Trend.IMPROVING
    if consumption_trend == Trend.INCREASING:
        return Trend.DECLINING
    return Trend.STABLE


def _percentage(count: int, total: int) -> str:
    if total == 0:
        return "0"
    return f"{count / total * 100:.1f}"


def fault_severity(occurrences: int) -> str:
    """How often a fault code recurs in the window: HIGH above 5, MEDIUM above 2."""
    if occurrences > 5:
        return "HIGH"
    if occurrences > 2:
        return "MEDIUM"
    return "LOW"


class StatisticsAggregator(EngineComponent):
    """Computes statistics summaries over windows of stored readings."""

    def __init__(self, config: EngineConfig):
        """
        Initialize aggregator.

        Args:
            config: Engine configuration (thresholds, trend noise floors)
        """
        super().__init__(config)
        self.logger = get_logger(__name__)
        self.classifier = ReadingClassifier(config)

        self.stats = {
            "windows_summarised": 0,
            "readings_summarised": 0,
            "empty_windows": 0
        }

    def fuel_statistics(self, readings: List[StoredReading], window: Optional[TimeWindow] = None) -> FuelStatisticsSummary:
        """
        Summarise a window of fuel readings.

        Args:
            readings: Fuel readings in the window (any order)
            window: Window the readings were queried with, echoed as time_range

        Returns:
            Fuel statistics summary; all zeros for an empty window
        """
        window = window or TimeWindow()
        self.stats["windows_summarised"] += 1

        base = FuelStatisticsSummary(
            thresholds=self.config.thresholds.as_table(*FUEL_THRESHOLD_PARAMETERS),
            time_range=window.describe()
        )

        frame = readings_frame(readings)
        if frame.empty:
            self.stats["empty_windows"] += 1
            self.logger.info("Fuel statistics requested for an empty window")
            return base

        total = len(frame)
        self.stats["readings_summarised"] += total

        level_rule = self.config.threshold("fuel_level")
        consumption_rule = self.config.threshold("fuel_consumption")

        levels = frame["fuel_level"].astype(float)
        consumption = frame["fuel_consumption"].astype(float)

        level_buckets = levels.map(lambda v: classify_level(v, level_rule).value).value_counts()
        consumption_buckets = consumption.map(lambda v: classify_efficiency(v, consumption_rule).value).value_counts()

        average_consumption = consumption.mean()
        estimated_total_cost = self.classifier.cost_estimate(average_consumption) * total * 100

        summary = FuelSummary(
            total_records=total,
            average_fuel_level=f"{levels.mean():.1f}",
            average_consumption=f"{average_consumption:.2f}",
            total_consumption=f"{consumption.sum():.2f}",
            estimated_total_cost=f"{estimated_total_cost:.2f}",
            high_consumption_count=int(consumption_rule.breaches(consumption, consumption_rule.warning).sum()),
            low_fuel_level_count=int(level_rule.breaches(levels, level_rule.warning).sum())
        )

        efficient = int(consumption_buckets.get("EFFICIENT", 0))
        normal_consumption = int(consumption_buckets.get("NORMAL", 0))
        poor = int(consumption_buckets.get("POOR", 0))
        consumption_analysis = ConsumptionAnalysis(
            efficient=efficient,
            normal=normal_consumption,
            poor=poor,
            efficient_percentage=_percentage(efficient, total),
            normal_percentage=_percentage(normal_consumption, total),
            poor_percentage=_percentage(poor, total)
        )

        low = int(level_buckets.get("LOW", 0))
        normal_level = int(level_buckets.get("NORMAL", 0))
        high = int(level_buckets.get("HIGH", 0))
        fuel_level_analysis = FuelLevelAnalysis(
            low=low,
            normal=normal_level,
            high=high,
            low_percentage=_percentage(low, total),
            normal_percentage=_percentage(normal_level, total),
            high_percentage=_percentage(high, total)
        )

        consumption_trend = half_window_trend(consumption, self.config.trends.consumption_noise_floor)
        trends = FuelTrends(
            consumption_trend=consumption_trend,
            fuel_level_trend=half_window_trend(levels, self.config.trends.fuel_level_noise_floor),
            efficiency_trend=efficiency_trend(consumption_trend)
        )

        self.logger.info(
            f"Fuel statistics over {total} readings: consumption {trends.consumption_trend.value}, "
            f"fuel level {trends.fuel_level_trend.value}"
        )

        return base.model_copy(update={
            "summary": summary,
            "consumption_analysis": consumption_analysis,
            "fuel_level_analysis": fuel_level_analysis,
            "trends": trends
        })

    def emission_statistics(self, readings: List[StoredReading], window: Optional[TimeWindow] = None) -> EmissionStatisticsSummary:
        """Averages per gas and a normal/high/critical breakdown for emission readings."""
        window = window or TimeWindow()
        self.stats["windows_summarised"] += 1

        result = EmissionStatisticsSummary(
            averages={"co2": "0", "co": "0", "o2": "0", "hc": "0", "nox": None, "pm25": None},
            totals={"records": 0, "exceedsThresholds": 0, "exceedsPercentage": "0"},
            threshold_analysis={
                "normal": 0, "high": 0, "critical": 0,
                "normalPercentage": "0", "highPercentage": "0", "criticalPercentage": "0"
            },
            thresholds=self.config.thresholds.as_table(*EMISSION_THRESHOLD_PARAMETERS),
            time_range=window.describe()
        )

        frame = readings_frame(readings)
        if frame.empty:
            self.stats["empty_windows"] += 1
            return result

        total = len(frame)
        self.stats["readings_summarised"] += total

        levels = pd.Series([self.classifier.classify(r.to_reading()).emission_level for r in readings])
        counts = levels.value_counts()
        critical = int(counts.get("CRITICAL", 0))
        high = int(counts.get("HIGH", 0))
        normal = total - critical - high

        def _average(column: str) -> Optional[str]:
            # Optional gases are averaged over the readings that reported them
            if column not in frame.columns:
                return None
            present = frame[column].dropna()
            if present.empty:
                return None
            return f"{present.astype(float).mean():.2f}"

        result.averages.update({
            "co2": _average("co2_percentage"),
            "co": _average("co_percentage"),
            "o2": _average("o2_percentage"),
            "hc": _average("hc_ppm"),
            "nox": _average("nox_ppm"),
            "pm25": _average("pm25_level"),
        })
        result.totals.update({
            "records": total,
            "exceedsThresholds": critical + high,
            "exceedsPercentage": _percentage(critical + high, total),
        })
        result.threshold_analysis.update({
            "normal": normal,
            "high": high,
            "critical": critical,
            "normalPercentage": _percentage(normal, total),
            "highPercentage": _percentage(high, total),
            "criticalPercentage": _percentage(critical, total),
        })
        return result

    def obd_statistics(self, readings: List[StoredReading], window: Optional[TimeWindow] = None) -> ObdStatisticsSummary:
        """
        Summarise a window of OBD readings.

        Args:
            readings: OBD readings in the window (any order)
            window: Window the readings were queried with, echoed as time_range

        Returns:
            Engine health, temperature and RPM breakdowns, the most common
            fault codes and the average performance score; all zeros for an
            empty window
        """
        window = window or TimeWindow()
        self.stats["windows_summarised"] += 1

        base = ObdStatisticsSummary(
            thresholds=self.config.thresholds.as_table(*OBD_THRESHOLD_PARAMETERS),
            time_range=window.describe()
        )

        frame = readings_frame(readings)
        if frame.empty:
            self.stats["empty_windows"] += 1
            self.logger.info("OBD statistics requested for an empty window")
            return base

        total = len(frame)
        self.stats["readings_summarised"] += total

        obd = self.config.obd
        temperature_rule = self.config.threshold("engine_temperature")
        rpm_rule = self.config.threshold("rpm")

        # Same order as the frame: by timestamp, arrival order for ties
        typed = [r.to_reading() for r in sorted(readings, key=lambda r: r.timestamp)]

        rpm = frame["rpm"].astype(float)
        temperatures = frame["engine_temperature"].astype(float)
        throttle = (
            frame["throttle_position"].dropna().astype(float)
            if "throttle_position" in frame.columns else pd.Series(dtype=float)
        )

        rpm_buckets = rpm.map(lambda v: classify_rpm(v, obd, rpm_rule)).value_counts()
        temperature_buckets = temperatures.map(lambda v: classify_temperature(v, temperature_rule)).value_counts()
        health_buckets = pd.Series([self.classifier.engine_health(r) for r in typed]).value_counts()
        scores = pd.Series([self.classifier.performance_score(r) for r in typed])

        fault_counts = Counter(code for r in typed for code in r.fault_codes)
        plates_with_faults = list(dict.fromkeys(r.plate_number for r in typed if r.fault_codes))

        healthy = int(health_buckets.get("HEALTHY", 0))
        warning = int(health_buckets.get("WARNING", 0))
        critical = int(health_buckets.get("CRITICAL", 0))

        summary = ObdSummary(
            total_records=total,
            average_rpm=f"{rpm.mean():.0f}",
            average_throttle_position=f"{throttle.mean():.1f}" if not throttle.empty else "0",
            average_engine_temperature=f"{temperatures.mean():.1f}",
            total_fault_codes=sum(fault_counts.values()),
            vehicles_with_faults=len(plates_with_faults),
            critical_engine_issues=critical
        )

        engine_analysis = EngineAnalysis(
            healthy=healthy,
            warning=warning,
            critical=critical,
            healthy_percentage=_percentage(healthy, total),
            warning_percentage=_percentage(warning, total),
            critical_percentage=_percentage(critical, total)
        )

        normal_temperature = int(temperature_buckets.get("NORMAL", 0))
        high_temperature = int(temperature_buckets.get("HIGH", 0))
        overheating = int(temperature_buckets.get("OVERHEATING", 0))
        temperature_analysis = TemperatureAnalysis(
            normal=normal_temperature,
            high=high_temperature,
            overheating=overheating,
            normal_percentage=_percentage(normal_temperature, total),
            high_percentage=_percentage(high_temperature, total),
            overheating_percentage=_percentage(overheating, total)
        )

        rpm_counts = {name: int(rpm_buckets.get(name, 0)) for name in ("IDLE", "NORMAL", "HIGH", "REDLINE")}
        rpm_analysis = RpmAnalysis(
            idle=rpm_counts["IDLE"],
            normal=rpm_counts["NORMAL"],
            high=rpm_counts["HIGH"],
            redline=rpm_counts["REDLINE"],
            idle_percentage=_percentage(rpm_counts["IDLE"], total),
            normal_percentage=_percentage(rpm_counts["NORMAL"], total),
            high_percentage=_percentage(rpm_counts["HIGH"], total),
            redline_percentage=_percentage(rpm_counts["REDLINE"], total)
        )

        # Counter.most_common keeps first-seen order among equal counts
        most_common = {
            code: FaultCodeCount(count=count, severity=fault_severity(count))
            for code, count in fault_counts.most_common(MOST_COMMON_FAULTS)
        }

        self.logger.info(
            f"OBD statistics over {total} readings: {summary.total_fault_codes} fault code(s), "
            f"{critical} critical"
        )

        return base.model_copy(update={
            "summary": summary,
            "engine_analysis": engine_analysis,
            "temperature_analysis": temperature_analysis,
            "rpm_analysis": rpm_analysis,
            "most_common_faults": most_common,
            "performance_metrics": ObdPerformanceMetrics(
                average_performance_score=round(float(scores.mean()), 1),
                maintenance_required=plates_with_faults
            )
        })

    def consumption_range_summary(
        self,
        readings: List[StoredReading],
        min_consumption: float,
        max_consumption: float
    ) -> ConsumptionRangeSummary:
        """Average/total consumption and inefficient count for a consumption-range query."""
        frame = readings_frame(readings)
        if frame.empty:
            return ConsumptionRangeSummary(min_consumption=min_consumption, max_consumption=max_consumption)

        rule = self.config.threshold("fuel_consumption")
        consumption = frame["fuel_consumption"].astype(float)
        return ConsumptionRangeSummary(
            min_consumption=min_consumption,
            max_consumption=max_consumption,
            average_consumption=round(float(consumption.mean()), 2),
            total_consumption=round(float(consumption.sum()), 2),
            inefficient_records=int(rule.breaches(consumption, rule.warning).sum())
        )

    def filter_by_status(self, readings: List[StoredReading], reading_filter: ReadingFilter) -> List[StoredReading]:
        """
        Apply the bucket filters (level/efficiency status) of a fuel query.

        Buckets depend on the threshold catalog, so they are evaluated here
        rather than pushed down to the store.
        """
        if reading_filter.level_status is None and reading_filter.efficiency_status is None:
            return readings

        level_rule = self.config.threshold("fuel_level")
        consumption_rule = self.config.threshold("fuel_consumption")
        selected = []
        for reading in readings:
            if reading.kind != TelemetryKind.FUEL:
                continue
            fields = reading.fields
            if (reading_filter.level_status is not None
                    and classify_level(fields["fuel_level"], level_rule) != reading_filter.level_status):
                continue
            if (reading_filter.efficiency_status is not None
                    and classify_efficiency(fields["fuel_consumption"], consumption_rule) != reading_filter.efficiency_status):
                continue
            selected.append(reading)
        return selected
