"""Point climate series and its source identity."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from ..errors import InputDataError
from ..wb_logging import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = get_logger(__name__)

HISTORICAL = "historical"


@dataclass(frozen=True)
class ClimateSource:
    """
    Identity of a climate series: the observed record or one GCM × scenario.

    Attributes:
        model: GCM name, or "historical".
        scenario: Emissions scenario, or "historical".
    """

    model: str
    scenario: str

    @classmethod
    def historical(cls) -> ClimateSource:
        return cls(HISTORICAL, HISTORICAL)

    @property
    def is_historical(self) -> bool:
        return self.model == HISTORICAL

    @property
    def label(self) -> str:
        """``{model}_{scenario}``, used in artifact names."""
        return f"{self.model}_{self.scenario}"


@dataclass
class ClimateSeries:
    """
    Daily point climate for one site and one source.

    Dates are strictly increasing with one-day steps. Construct from a
    table with :meth:`from_csv` or :meth:`from_dataframe`; monthly tables
    are disaggregated to daily on load.

    Attributes:
        dates: Daily DatetimeIndex.
        tmin: Minimum temperature (°C).
        tmax: Maximum temperature (°C).
        precip: Precipitation (mm/day).
        source: Where the series came from.
        aux: Any further numeric columns (wind, humidity, radiation), carried
            through unchanged for PET formulas that need them.
    """

    dates: pd.DatetimeIndex
    tmin: NDArray[np.float64]
    tmax: NDArray[np.float64]
    precip: NDArray[np.float64]
    source: ClimateSource = field(default_factory=ClimateSource.historical)
    aux: dict[str, NDArray[np.float64]] = field(default_factory=dict)

    def __post_init__(self):
        self.dates = pd.DatetimeIndex(self.dates).normalize()
        self.tmin = np.asarray(self.tmin, dtype=np.float64)
        self.tmax = np.asarray(self.tmax, dtype=np.float64)
        self.precip = np.asarray(self.precip, dtype=np.float64)
        self._validate()

    def _validate(self) -> None:
        n = len(self.dates)
        if n == 0:
            raise InputDataError("Climate series is empty", field="date", reason="empty")
        for name in ("tmin", "tmax", "precip"):
            arr = getattr(self, name)
            if arr.shape != (n,):
                raise InputDataError(
                    f"Climate variable '{name}' has {arr.shape} values for {n} dates", field=name, reason="length"
                )
            n_nan = int(np.count_nonzero(~np.isfinite(arr)))
            if n_nan:
                first = self.dates[np.flatnonzero(~np.isfinite(arr))[0]].date()
                raise InputDataError(
                    f"Climate variable '{name}' has {n_nan} missing value(s), first on {first}",
                    field=name,
                    reason="missing",
                )
        if self.dates.has_duplicates:
            dup = self.dates[self.dates.duplicated()][0].date()
            raise InputDataError(f"Climate series has duplicate date {dup}", field="date", reason="duplicate")
        if n > 1:
            steps = np.diff(self.dates.values).astype("timedelta64[D]").astype(np.int64)
            if np.any(steps < 1):
                raise InputDataError("Climate series dates are not increasing", field="date", reason="order")
            gaps = np.flatnonzero(steps != 1)
            if gaps.size:
                after = self.dates[gaps[0]].date()
                raise InputDataError(
                    f"Climate series has {gaps.size} gap(s); first after {after} ({steps[gaps[0]] - 1} day(s) missing)",
                    field="date",
                    reason="gap",
                )
        n_swapped = int(np.count_nonzero(self.tmin > self.tmax))
        if n_swapped:
            logger.warning(f"{self.source.label}: tmin exceeds tmax on {n_swapped} day(s)")

    def __len__(self) -> int:
        return len(self.dates)

    @property
    def tmean(self) -> NDArray[np.float64]:
        return (self.tmin + self.tmax) / 2.0

    @property
    def years(self) -> list[int]:
        return sorted(set(self.dates.year))

    @property
    def day_of_year(self) -> NDArray[np.int64]:
        return np.asarray(self.dates.dayofyear, dtype=np.int64)

    def select_years(self, start: int, end: int) -> ClimateSeries:
        """Sub-series for the closed year range [start, end]."""
        keep = (self.dates.year >= start) & (self.dates.year <= end)
        if not keep.any():
            raise InputDataError(
                f"No climate data between {start} and {end} (series covers {self.years[0]}-{self.years[-1]})",
                field="date",
                reason="range",
            )
        return ClimateSeries(
            dates=self.dates[keep],
            tmin=self.tmin[keep],
            tmax=self.tmax[keep],
            precip=self.precip[keep],
            source=self.source,
            aux={k: v[keep] for k, v in self.aux.items()},
        )

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, source: ClimateSource | None = None) -> ClimateSeries:
        """
        Build from a date-indexed frame with ``tmin``, ``tmax``, ``precip`` columns.

        A frame whose dates are all first-of-month, one month apart, is
        treated as monthly and disaggregated with :func:`monthly_to_daily`.
        """
        source = source or ClimateSource.historical()
        if is_monthly(df.index):
            logger.info(f"{source.label}: monthly series detected, disaggregating {len(df)} months to daily")
            df = monthly_to_daily(df)
        aux = {c: df[c].to_numpy(dtype=np.float64) for c in df.columns if c not in ("tmin", "tmax", "precip")}
        return cls(
            dates=df.index,
            tmin=df["tmin"].to_numpy(dtype=np.float64),
            tmax=df["tmax"].to_numpy(dtype=np.float64),
            precip=df["precip"].to_numpy(dtype=np.float64),
            source=source,
            aux=aux,
        )

    @classmethod
    def from_csv(
        cls, path: str | Path, source: ClimateSource | None = None, columns: dict[str, str] | None = None
    ) -> ClimateSeries:
        """
        Load a climate table.

        Raises:
            InputDataError: If the file is missing, lacks a column, or the
                series has gaps, duplicates, or missing values.
        """
        from .. import io

        try:
            df = io.read_climate_table(path, columns=columns)
        except FileNotFoundError as e:
            raise InputDataError(str(e), field="climate", path=str(path), reason="missing_file") from e
        except ValueError as e:
            raise InputDataError(str(e), field="climate", path=str(path), reason="malformed") from e
        try:
            return cls.from_dataframe(df, source=source)
        except InputDataError as e:
            e.path = str(path)
            raise


def is_monthly(index: pd.DatetimeIndex) -> bool:
    """True when every date is the first of a month and consecutive dates are one month apart."""
    if len(index) < 2 or not np.all(index.day == 1):
        return False
    months = index.year * 12 + index.month
    return bool(np.all(np.diff(months) == 1))


def monthly_to_daily(df: pd.DataFrame) -> pd.DataFrame:
    """
    Disaggregate a monthly table to daily.

    Precipitation (a monthly total) is spread evenly across the days of the
    month; temperatures and other variables are repeated on each day.
    """
    end = df.index[-1] + pd.offsets.MonthEnd(0)
    days = pd.date_range(df.index[0], end, freq="D", name=df.index.name)
    daily = df.reindex(days, method="ffill")
    days_in_month = np.asarray(days.days_in_month, dtype=np.float64)
    daily["precip"] = daily["precip"].to_numpy() / days_in_month
    return daily
