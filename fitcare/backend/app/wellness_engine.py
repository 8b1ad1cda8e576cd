from __future__ import annotations

import statistics
from datetime import date, datetime
from typing import Dict, List, Optional

METRIC_KEYS = [
    "mood_rating",
    "energy_level",
    "stress_level",
    "sleep_hours",
    "sleep_quality",
]

SUMMARY_LABELS = {
    "mood_rating": "average_mood",
    "energy_level": "average_energy",
    "stress_level": "average_stress",
    "sleep_hours": "average_sleep",
    "sleep_quality": "average_sleep_quality",
}

CONTEXT_KEYS = METRIC_KEYS + ["notes"]


def average(values: List[Optional[float]]) -> Optional[float]:
    present = [float(v) for v in values if v is not None]
    if not present:
        return None
    return round(statistics.mean(present), 2)


def sort_key(entry: dict):
    return (entry.get("entry_date") or date.min, entry.get("created_at") or datetime.min)


def summarize_entries(entries: List[dict]) -> dict:
    summary = {
        label: average([entry.get(key) for entry in entries])
        for key, label in SUMMARY_LABELS.items()
    }
    summary["total_entries"] = len(entries)
    return summary


def compute_trends(entries: List[dict]) -> Dict[str, Optional[float]]:
    trends: Dict[str, Optional[float]] = {key: None for key in METRIC_KEYS}
    if len(entries) < 2:
        return trends
    ordered = sorted(entries, key=sort_key, reverse=True)
    latest, previous = ordered[0], ordered[1]
    for key in METRIC_KEYS:
        if latest.get(key) is not None and previous.get(key) is not None:
            trends[key] = round(float(latest[key]) - float(previous[key]), 2)
    return trends


def build_wellness_context(entry: Optional[dict]) -> Optional[dict]:
    if not entry:
        return None
    context = {key: entry.get(key) for key in CONTEXT_KEYS if entry.get(key) not in (None, "")}
    return context or None


def build_chart_rows(entries: List[dict]) -> List[dict]:
    rows = []
    for entry in sorted(entries, key=sort_key):
        entry_date = entry.get("entry_date")
        rows.append({
            "date": entry_date.isoformat() if entry_date else None,
            "mood": entry.get("mood_rating"),
            "energy": entry.get("energy_level"),
            "sleep": entry.get("sleep_hours") or 0,
            "stress": entry.get("stress_level"),
        })
    return rows


def build_analytics(entries: List[dict]) -> dict:
    return {
        "entries": build_chart_rows(entries),
        "summary": summarize_entries(entries),
        "trends": compute_trends(entries),
    }
