"""
Report generation utilities.

This module turns historical analysis results and live rows into
human‑readable artefacts: CSV files of the per-symbol rows, a JSON
summary of the run and a PNG chart of P/L per symbol.
"""

from __future__ import annotations

import os
import json
from typing import Any, Dict, List, Mapping, Sequence
import pandas as pd
import matplotlib

# Use non‑interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.models import TradeStatus
from .metrics import compute_summary, sort_rows


_STATUS_COLORS = {
    TradeStatus.EXITED_TARGET: 'tab:blue',
    TradeStatus.EXITED_SL: 'tab:red',
    TradeStatus.ENTERED: 'tab:green',
    TradeStatus.PENDING: 'tab:gray',
}


def _rows_frame(rows: Sequence[Mapping[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame([dict(r) for r in sort_rows(rows)])


def write_live_rows(rows: Sequence[Mapping[str, Any]], out_dir: str = "results") -> str:
    """Write the latest live view to `live.csv` and return its path."""
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, 'live.csv')
    _rows_frame(rows).to_csv(path, index=False)
    return path


def generate_historical_report(snapshot: Mapping[str, Any], out_dir: str = "results") -> Dict[str, str]:
    """Generate report files for one historical analysis.

    Creates `<out_dir>/<date>/` if it does not exist and writes the
    following files:

    - `results.csv` – one row per analysed symbol
    - `summary.json` – parameters and summary statistics
    - `pnl.png` – bar chart of P/L % per traded symbol

    Returns
    -------
    dict
        Paths of the written files keyed by kind.
    """
    date = snapshot['date']
    rows: List[Mapping[str, Any]] = snapshot.get('results') or []
    day_dir = os.path.join(out_dir, date)
    os.makedirs(day_dir, exist_ok=True)

    # Results CSV
    df = _rows_frame(rows)
    results_path = os.path.join(day_dir, 'results.csv')
    df.to_csv(results_path, index=False)

    # Summary JSON
    summary = {
        'date': date,
        'params': snapshot.get('params') or {},
        **compute_summary(rows),
    }
    summary_path = os.path.join(day_dir, 'summary.json')
    with open(summary_path, 'w', encoding='utf-8') as fh:
        json.dump(summary, fh, indent=2, ensure_ascii=False)

    # P/L plot
    fig, ax = plt.subplots(figsize=(10, 4))
    if not df.empty:
        traded = df[df['status'] != TradeStatus.PENDING].sort_values('pnl_pct')
        if not traded.empty:
            colors = [_STATUS_COLORS.get(s, 'tab:gray') for s in traded['status']]
            ax.bar(traded['symbol'], traded['pnl_pct'], color=colors)
            ax.axhline(0.0, color='black', linewidth=0.8)
            ax.tick_params(axis='x', labelrotation=90)
    ax.set_title(f'Breakout P/L % – {date}')
    ax.set_xlabel('Symbol')
    ax.set_ylabel('P/L %')
    fig.tight_layout()
    plot_path = os.path.join(day_dir, 'pnl.png')
    fig.savefig(plot_path)
    plt.close(fig)

    return {'results': results_path, 'summary': summary_path, 'plot': plot_path}
