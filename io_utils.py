"""
IO utilities for saving/loading run summaries and exporting simulation history.
Handles JSON serialization of summaries, the bounded cross-run history file,
and CSV exports of year-by-year records.
"""
import json
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd

from finance import CareerType
from simulation import SimulationSummary, YearRecord

HISTORY_STORAGE_KEY = 'lifewealth_history_v1'
MAX_HISTORY_RECORDS = 10

_SUMMARY_FIELDS = {f.name for f in fields(SimulationSummary)}
_RECORD_FIELDS = {f.name for f in fields(YearRecord)}


def summary_to_dict(summary: SimulationSummary) -> Dict[str, Any]:
    """
    Convert SimulationSummary to dictionary for JSON serialization.

    Args:
        summary: SimulationSummary object

    Returns:
        Dictionary representation with the career type as its name
    """
    summary_dict = asdict(summary)
    summary_dict['career_type'] = CareerType(summary.career_type).value
    return summary_dict


def dict_to_summary(summary_dict: Dict[str, Any]) -> SimulationSummary:
    """
    Convert dictionary to SimulationSummary object.

    Args:
        summary_dict: Dictionary with summary values

    Returns:
        SimulationSummary object
    """
    missing = _SUMMARY_FIELDS - set(summary_dict)
    if missing:
        raise ValueError(f"Missing summary fields: {', '.join(sorted(missing))}")

    # Ignore keys written by other tools
    filtered_dict = {k: v for k, v in summary_dict.items() if k in _SUMMARY_FIELDS}
    filtered_dict['career_type'] = CareerType(filtered_dict['career_type'])
    return SimulationSummary(**filtered_dict)


def summary_to_json(summary: SimulationSummary) -> str:
    return json.dumps(summary_to_dict(summary), indent=2)


def summary_from_json(json_string: str) -> SimulationSummary:
    return dict_to_summary(json.loads(json_string))


def validate_summary_json(json_string: str) -> tuple[bool, str]:
    """
    Validate a JSON string holding a run summary.

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        summary_from_json(json_string)
        return True, ""
    except json.JSONDecodeError as e:
        return False, f"Invalid JSON format: {str(e)}"
    except (ValueError, TypeError) as e:
        return False, f"Summary validation error: {str(e)}"


def record_to_dict(record: YearRecord) -> Dict[str, Any]:
    return asdict(record)


def dict_to_record(record_dict: Dict[str, Any]) -> YearRecord:
    return YearRecord(**{k: v for k, v in record_dict.items() if k in _RECORD_FIELDS})


def history_to_dataframe(history: Iterable[YearRecord]) -> pd.DataFrame:
    """Year-by-year records as a table, one row per simulated year"""
    columns = [f.name for f in fields(YearRecord)]
    return pd.DataFrame([record_to_dict(record) for record in history], columns=columns)


def export_year_by_year_csv(history: Iterable[YearRecord]) -> str:
    """
    Export year-by-year records to CSV string.

    Args:
        history: Year records, oldest first

    Returns:
        CSV string
    """
    df = history_to_dataframe(history)
    return df.to_csv(index=False)


def summaries_to_dataframe(summaries: Iterable[SimulationSummary]) -> pd.DataFrame:
    """Cross-run history as a table, newest first"""
    columns = [f.name for f in fields(SimulationSummary)]
    return pd.DataFrame([summary_to_dict(s) for s in summaries], columns=columns)


class HistoryStore:
    """Most-recent-first list of run summaries persisted as a JSON file"""

    def __init__(self, filepath: Union[str, Path], max_records: int = MAX_HISTORY_RECORDS):
        self.filepath = Path(filepath)
        self.max_records = max_records
        self._records: Optional[List[SimulationSummary]] = None

    @property
    def records(self) -> List[SimulationSummary]:
        if self._records is None:
            self._records = self.load()
        return list(self._records)

    def load(self) -> List[SimulationSummary]:
        """Read the history file; a missing or unreadable file yields an empty history"""
        if not self.filepath.exists():
            return []
        try:
            with open(self.filepath, 'r') as f:
                payload = json.load(f)
            entries = payload.get(HISTORY_STORAGE_KEY, []) if isinstance(payload, dict) else payload
            return [dict_to_summary(entry) for entry in entries][:self.max_records]
        except (OSError, json.JSONDecodeError, ValueError, TypeError, AttributeError) as e:
            print(f"Warning: Failed to parse history {self.filepath}: {e}")
            return []

    def save(self, records: List[SimulationSummary]) -> bool:
        """Write the history file, returning False if it could not be written"""
        payload = {HISTORY_STORAGE_KEY: [summary_to_dict(r) for r in records]}
        try:
            with open(self.filepath, 'w') as f:
                json.dump(payload, f, indent=2)
            return True
        except OSError as e:
            print(f"Warning: Could not save history to {self.filepath}: {e}")
            return False

    def add(self, summary: SimulationSummary) -> List[SimulationSummary]:
        """Prepend a finished run and keep only the newest max_records"""
        updated = [summary] + self.records
        self._records = updated[:self.max_records]
        self.save(self._records)
        return list(self._records)

    def clear(self) -> None:
        self._records = []
        self.save(self._records)


def format_currency(value: float, precision: int = 0) -> str:
    """
    Format currency values for display.

    Args:
        value: Numeric value to format
        precision: Number of decimal places

    Returns:
        Formatted string
    """
    sign = "-" if value < 0 else ""
    value = abs(value)
    if value >= 1_000_000:
        return f"{sign}${value/1_000_000:.{precision}f}M"
    elif value >= 1_000:
        return f"{sign}${value/1_000:.{precision}f}K"
    return f"{sign}${value:.{precision}f}"
