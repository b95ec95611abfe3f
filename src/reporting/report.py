"""
Tabular reporting over verification passes.

One row per (record, resolver) lookup, plus per-resolver and per-record
rollups for the CLI and for spotting a resolver that keeps failing across runs.
"""

from collections import Counter
from typing import Any, Dict, List, Sequence

import pandas as pd

from propagation.models import RecordVerdict
from propagation.verifier import confirms

LOOKUP_COLUMNS = ["record", "server", "address", "success", "confirms", "values", "value_set", "error"]


def lookup_frame(verdicts: Sequence[RecordVerdict]) -> pd.DataFrame:
    rows: List[Dict[str, Any]] = []

    for v in verdicts:
        for r in v.lookup_results:
            rows.append({
                "record": v.record.name,
                "server": r.resolver.label,
                "address": r.resolver.address,
                "success": r.succeeded,
                "confirms": r.succeeded and confirms(r.values, v.record.expected_value),
                "values": ", ".join(r.values),
                "value_set": "|".join(r.value_set()),
                "error": r.error_message or "",
            })

    return pd.DataFrame(rows, columns=LOOKUP_COLUMNS)


class ReportAnalyzer:

    def analytics(self, df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
        # Always return the same keys
        empty = {
            "by_resolver": pd.DataFrame(columns=["server", "lookups", "succeeded", "confirmed", "success_rate"]),
            "by_record": pd.DataFrame(columns=["record", "lookups", "succeeded", "confirmed", "distinct_answers"]),
            "errors": pd.DataFrame(columns=["error", "count"]),
        }
        if df is None or df.empty:
            return empty

        by_resolver = (
            df.groupby("server", sort=False)
              .agg(lookups=("success", "size"), succeeded=("success", "sum"), confirmed=("confirms", "sum"))
              .reset_index()
        )
        by_resolver["success_rate"] = (by_resolver["succeeded"] / by_resolver["lookups"] * 100).round(1)
        by_resolver = by_resolver.sort_values(["success_rate", "server"], ascending=[True, True]).reset_index(drop=True)

        ok = df[df["success"]]
        answers = ok.groupby("record")["value_set"].nunique().rename("distinct_answers")
        by_record = (
            df.groupby("record", sort=False)
              .agg(lookups=("success", "size"), succeeded=("success", "sum"), confirmed=("confirms", "sum"))
              .join(answers)
              .fillna({"distinct_answers": 0})
              .reset_index()
        )
        by_record["distinct_answers"] = by_record["distinct_answers"].astype(int)

        # Error strings vary per resolver address; count by their leading token.
        error_counts: Counter = Counter(
            e.split(":", 1)[0].strip() for e in df.loc[~df["success"], "error"] if e
        )
        if error_counts:
            errors = pd.DataFrame(
                [{"error": k, "count": c} for k, c in error_counts.items()]
            ).sort_values(["count", "error"], ascending=[False, True]).reset_index(drop=True)
        else:
            errors = empty["errors"]

        return {
            "by_resolver": by_resolver,
            "by_record": by_record,
            "errors": errors,
        }


def run_propagation_report(verdicts: Sequence[RecordVerdict]):
    df = lookup_frame(verdicts)
    return df, ReportAnalyzer().analytics(df)
