"""Sqlite persistence for depth-of-market analysis records.

The writer stores flattened result columns for fast querying and a
`components` JSON payload for anything else the caller wants to keep with a
record. Missing columns are added on open so older DB files remain usable.
"""

from __future__ import annotations

import json
import sqlite3
import time
from typing import Any, Dict, List

import pandas as pd
from loguru import logger


class AnalysisWriter:
    """Sqlite-backed writer for analyzer output.

    Guarantees:
      - Creates `dom_analysis` table if missing
      - Adds new result columns if they are not present
      - Stores a JSON `components` blob for extensible fields
    """

    BASE_COLUMNS = {
        "ts": "INTEGER",
        "symbol": "TEXT",
        "ok": "INTEGER",
        "price": "REAL",
        "components": "TEXT",
    }

    RESULT_COLUMNS = {
        "bid_ask_imbalance": "REAL",
        "order_book_pressure": "REAL",
        "total_bid_depth": "REAL",
        "total_ask_depth": "REAL",
        "strong_bid_levels": "INTEGER",
        "strong_ask_levels": "INTEGER",
        "absorption_score": "REAL",
        "is_dom_available": "INTEGER",
        "dom_confidence": "REAL",
    }

    def __init__(self, sqlite_path: str = "dom_analysis.db") -> None:
        self._conn = sqlite3.connect(sqlite_path)
        self._conn.row_factory = sqlite3.Row
        cols = ", ".join(f"{k} {t}" for k, t in self.BASE_COLUMNS.items())
        self._conn.execute(f"CREATE TABLE IF NOT EXISTS dom_analysis ({cols})")
        self._conn.commit()
        self._ensure_columns()

    def _existing_columns(self) -> List[str]:
        cur = self._conn.execute("PRAGMA table_info(dom_analysis)")
        return [r[1] for r in cur.fetchall()]

    def _ensure_columns(self) -> None:
        existing = set(self._existing_columns())
        for col, typ in self.RESULT_COLUMNS.items():
            if col not in existing:
                self._conn.execute(f"ALTER TABLE dom_analysis ADD COLUMN {col} {typ}")
                logger.debug(f"dom_analysis: added column {col}")
        self._conn.commit()

    def write_record(self, record: Dict[str, Any]) -> None:
        """Write a single analysis record.

        Result fields are taken from the top level of `record`; `components`
        is stored verbatim as JSON. Timestamps default to now.
        """
        cols = list(self.BASE_COLUMNS)
        vals: List[Any] = [
            int(record.get("ts") or int(time.time())),
            str(record.get("symbol") or ""),
            1 if record.get("ok") else 0,
            None if record.get("price") is None else float(record["price"]),
            json.dumps(record.get("components") or {}),
        ]
        for k in self.RESULT_COLUMNS:
            cols.append(k)
            v = record.get(k)
            vals.append(int(v) if isinstance(v, bool) else v)

        q = f"INSERT INTO dom_analysis ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})"
        self._conn.execute(q, tuple(vals))
        self._conn.commit()

    def query_recent(self, limit: int = 10) -> List[Dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM dom_analysis ORDER BY ts DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        out: List[Dict[str, Any]] = []
        for r in cur.fetchall():
            data: Dict[str, Any] = {k: r[k] for k in r.keys()}
            data["components"] = json.loads(data.get("components") or "{}")
            out.append(data)
        return out

    def query_frame(self, limit: int = 200) -> pd.DataFrame:
        """Recent records as a DataFrame in chronological order."""
        rows = self.query_recent(limit)
        df = pd.DataFrame(rows, columns=[*self.BASE_COLUMNS, *self.RESULT_COLUMNS])
        return df.iloc[::-1].reset_index(drop=True)

    def close(self) -> None:
        self._conn.close()


__all__ = ["AnalysisWriter"]
