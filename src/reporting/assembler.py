from typing import Any, Dict, List, Optional, Sequence
from fastapi.encoders import jsonable_encoder

from propagation.models import PropagationSummary, RecordVerdict
from .recommendations import Recommendations

class Assemble:
    """
    Turns one verification pass into a single consistent API response.

    Design intent:
      - The verifier focuses on detection (per-record verdicts + summary)
      - The assembler is responsible for shaping results into a single response format:
          - JSON-safe output
          - unified findings list (one entry per record issue)
          - recommendations
          - severity summary
    """

    def build(
        self,
        target: str,
        verdicts: Sequence[RecordVerdict],
        summary: PropagationSummary,
        recommendations: Optional[List[str]] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Build a unified response.

        Args:
            target: The domain being checked (already validated/normalized upstream).
            verdicts: Per-record verdicts from PropagationVerifier.verify().
            summary: The pass-level PropagationSummary.
            recommendations: Optional pre-built operator actions. Derived from the
                             verdicts when not provided.
            meta: Optional metadata (version, timings, etc.).

        Returns:
            A dict containing only JSON-safe values (dict/list/str/int/etc.).
        """
        records_json = [self._to_json(v) for v in verdicts]

        # One finding per record issue, tagged with the record it came from.
        findings = self._collect_findings(records_json)
        self._attach_recommendations(findings)

        if recommendations is None:
            recommendations = Recommendations.derive(verdicts, summary)

        response: Dict[str, Any] = {
            "target": target,
            "dnsResults": records_json,
            "globalDnsStatus": self._to_json(summary),
            "findings": findings,
            "summary": self._summarize(findings),
            "recommendations": recommendations,
            "meta": meta or {},
        }

        # Final safety pass: ensure *everything* in response is JSON-safe.
        return jsonable_encoder(response)

    def _to_json(self, obj: Any) -> Any:
        if hasattr(obj, "to_dict"):
            return jsonable_encoder(obj.to_dict())
        return jsonable_encoder(obj)

    def _collect_findings(self, records_json: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for rec in records_json:
            for issue in rec.get("issues") or []:
                f = dict(issue)
                f.setdefault("record", rec.get("recordName", ""))
                out.append(f)
        return out

    def _attach_recommendations(self, findings: List[Dict[str, Any]]) -> None:
        for f in findings:
            issue = (f.get("issue") or "").strip()
            f["recommendation"] = Recommendations.recommend(issue) if issue else ""

    def _summarize(self, findings: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Counts by severity bucket plus a simple 0..100 score where severe issues
        reduce the score.
        """
        counts = {"high": 0, "medium": 0, "low": 0, "info": 0, "unknown": 0}

        for f in findings:
            sev = f.get("severity")
            sev = sev.lower() if isinstance(sev, str) else "unknown"
            counts[sev] = counts.get(sev, 0) + 1

        total = sum(counts.values())
        score = 100 - (counts["high"] * 20 + counts["medium"] * 10 + counts["low"] * 5)
        score = max(0, min(100, score))

        return {"issues": total, **counts, "score": score}
