"""
Management KPIs — pure functions with no side effects.

Machinery downtime, purity statistics per material, monthly production,
and supply consumption, computed from the report DataFrames.
"""

import logging

import pandas as pd

from .config import MATERIALS, PURITY_WINDOW_DAYS

logger = logging.getLogger(__name__)


def calc_change_pct(current: float, previous: float) -> float | None:
    """Return the percentage change from previous to current.

    None if there is no previous value to compare against.
    """
    if not previous:
        return None
    return (current - previous) / previous * 100


def downtime_summary(failures: pd.DataFrame) -> dict:
    """Summarise plant failures.

    Returns
    -------
    {
        "failures": int,
        "total_hours": float,
        "mean_hours": float | None,
        "machines": int,               # distinct machines with a failure
        "open": int,                   # estado == "abierta"
        "by_machine": DataFrame[maquina, failures, hours], most hours first
    }
    """
    if failures.empty:
        return {
            "failures": 0,
            "total_hours": 0.0,
            "mean_hours": None,
            "machines": 0,
            "open": 0,
            "by_machine": pd.DataFrame(columns=["maquina", "failures", "hours"]),
        }

    hours = failures["duracion_horas"].fillna(0)
    machines = failures["maquina"].fillna("").replace("", pd.NA)
    by_machine = (
        pd.DataFrame({"maquina": machines, "hours": hours})
        .dropna(subset=["maquina"])
        .groupby("maquina")
        .agg(failures=("hours", "size"), hours=("hours", "sum"))
        .reset_index()
        .sort_values(["hours", "maquina"], ascending=[False, True])
        .reset_index(drop=True)
    )

    return {
        "failures": len(failures),
        "total_hours": float(hours.sum()),
        "mean_hours": float(hours.mean()),
        "machines": int(machines.dropna().nunique()),
        "open": int((failures["estado"] == "abierta").sum()),
        "by_machine": by_machine,
    }


def purity_stats(
    runs: pd.DataFrame,
    today: pd.Timestamp | None = None,
    window_days: int = PURITY_WINDOW_DAYS,
) -> dict:
    """Final purity per material over the trailing window.

    Parameters
    ----------
    runs : plant_runs DataFrame from load_collection() (needs "date").
    today : End of the window; defaults to now (UTC).
    window_days : Window length in days, inclusive of today.

    Returns
    -------
    {material: {"count", "mean", "std", "min", "max", "min_lot", "max_lot"}}
    for each material, plus "lots" with the number of runs evaluated.
    Standard deviation is the population deviation. Materials with no runs
    in the window have count 0 and None statistics.
    """
    today = today if today is not None else pd.Timestamp.now(tz="UTC")
    if today.tz is None:
        today = today.tz_localize("UTC")
    window_start = today.normalize() - pd.Timedelta(days=window_days)

    if runs.empty:
        in_window = runs
    else:
        mask = (
            runs["pureza_final"].notna()
            & runs["date"].notna()
            & (runs["date"] >= window_start)
            & (runs["date"] <= today)
        )
        in_window = runs[mask]

    result: dict = {"lots": len(in_window)}
    for material in MATERIALS:
        subset = in_window[in_window["material"] == material] if len(in_window) else in_window
        values = subset["pureza_final"] if len(subset) else pd.Series(dtype=float)
        if values.empty:
            result[material] = {
                "count": 0, "mean": None, "std": None,
                "min": None, "max": None, "min_lot": None, "max_lot": None,
            }
            continue
        result[material] = {
            "count": len(values),
            "mean": float(values.mean()),
            "std": float(values.std(ddof=0)),
            "min": float(values.min()),
            "max": float(values.max()),
            "min_lot": subset.loc[values.idxmin(), "lote"],
            "max_lot": subset.loc[values.idxmax(), "lote"],
        }

    logger.info("Purity stats over %d days: %d runs", window_days, len(in_window))
    return result


def monthly_production(runs: pd.DataFrame) -> pd.DataFrame:
    """Tonnes produced per month and material.

    Runs without a parseable date are left out.

    Returns
    -------
    DataFrame with columns: month (Timestamp, first of month), oro, cobre,
    total, change_pct (vs. previous month, None for the first month).
    """
    columns = ["month", *MATERIALS, "total", "change_pct"]
    if runs.empty:
        return pd.DataFrame(columns=columns)

    df = runs[runs["date"].notna()].copy()
    if df.empty:
        return pd.DataFrame(columns=columns)

    df["month"] = df["date"].dt.tz_convert(None).dt.to_period("M").dt.to_timestamp()
    df["cantidad_t"] = df["cantidad_t"].fillna(0)

    pivot = (
        df.pivot_table(index="month", columns="material", values="cantidad_t", aggfunc="sum", fill_value=0)
        .reindex(columns=list(MATERIALS), fill_value=0)
        .sort_index()
    )
    pivot["total"] = pivot[list(MATERIALS)].sum(axis=1)

    previous = pivot["total"].shift(1)
    # object dtype keeps None for "no previous month" instead of NaN
    pivot["change_pct"] = pd.Series(
        [
            calc_change_pct(cur, prev) if pd.notna(prev) else None
            for cur, prev in zip(pivot["total"], previous)
        ],
        index=pivot.index,
        dtype=object,
    )

    monthly = pivot.reset_index()
    monthly.columns.name = None
    logger.info("Built monthly production with %d months", len(monthly))
    return monthly[columns]


def latest_month_change(monthly: pd.DataFrame) -> dict:
    """Latest month total and its change against the month before."""
    if monthly.empty:
        return {"month": None, "total": 0.0, "change_pct": None}
    last = monthly.iloc[-1]
    return {
        "month": last["month"],
        "total": float(last["total"]),
        "change_pct": last["change_pct"],
    }


def consumption_summary(consumptions: pd.DataFrame, supplies: pd.DataFrame) -> dict:
    """Supply consumption totals, top supply, and low-stock items.

    A supply is low on stock when cantidad_actual <= cantidad_minima.
    """
    if consumptions.empty:
        by_supply = pd.DataFrame(columns=["insumo", "total"])
        total = 0.0
    else:
        by_supply = (
            consumptions.assign(insumo=consumptions["insumo"].fillna("").replace("", "(unnamed)"))
            .groupby("insumo", as_index=False)["cantidad"].sum()
            .rename(columns={"cantidad": "total"})
            .sort_values(["total", "insumo"], ascending=[False, True])
            .reset_index(drop=True)
        )
        total = float(by_supply["total"].sum())

    if supplies.empty:
        low_stock = []
    else:
        low = supplies[supplies["cantidad_actual"].fillna(0) <= supplies["cantidad_minima"].fillna(0)]
        low_stock = sorted(low["nombre"].fillna("").tolist())

    return {
        "total": total,
        "by_supply": by_supply,
        "top_supply": by_supply.iloc[0]["insumo"] if len(by_supply) else None,
        "low_stock": low_stock,
    }
