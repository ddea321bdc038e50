"""
Checkpoint -> clean exports.

Filters visited records down to genuine finds, newest first, and writes
`popup_codes.json` + `popup_codes.csv` (pandas) for data entry / review.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import pandas as pd

from promoattr.models.schemas import VisitRecord
from promoattr.services.context import route_from_url
from promoattr.util.logger import get_logger

logger = get_logger(__name__)

EXPORT_COLUMNS = [
    "checked_at", "product_url", "product_route", "code",
    "percent_off", "amount_off", "currency", "amount_off_cents",
    "source_url", "content_type",
]


def positives(records: Iterable[VisitRecord]) -> List[Dict]:
    rows = []
    for r in records:
        if not (r.found and r.code):
            continue
        rows.append({
            "checked_at": r.checked_at,
            "product_url": r.url,
            "product_route": route_from_url(r.url),
            "code": r.code,
            "percent_off": r.percent_off,
            "amount_off": r.amount_off,
            "currency": r.currency,
            "amount_off_cents": r.amount_off_cents,
            "source_url": r.source_url,
            "content_type": r.content_type,
        })
    rows.sort(key=lambda row: row["checked_at"] or "", reverse=True)
    return rows


def to_dataframe(rows: List[Dict]) -> pd.DataFrame:
    df = pd.DataFrame(rows)
    for c in EXPORT_COLUMNS:
        if c not in df.columns:
            df[c] = None
    return df[EXPORT_COLUMNS]


def materialize(records: Iterable[VisitRecord], out_dir: Union[str, Path],
                stem: str = "popup_codes") -> Optional[pd.DataFrame]:
    """Write JSON + CSV of positive finds; returns the DataFrame (None when nothing was found)."""
    rows = positives(records)
    if not rows:
        logger.info("no positive finds to materialize")
        return None
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    df = to_dataframe(rows)
    df.to_json(out_dir / f"{stem}.json", orient="records", indent=2)
    df.to_csv(out_dir / f"{stem}.csv", index=False)
    logger.info(f"materialized {len(df)} finds to {out_dir}")
    return df
