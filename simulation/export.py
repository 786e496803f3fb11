# simulation/export.py
"""
History export.

CSV rows are (index, drive_value, measured_current, device_kind, extra)
with extra serialized as JSON. Column names and order are fixed;
downstream tooling reads them by position.
"""

import csv
import io
import json
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

import numpy as np

from .history import SimulationSample

EXPORT_COLUMNS = ('index', 'drive_value', 'measured_current', 'device_kind', 'extra')


def history_rows(samples: Iterable[SimulationSample]) -> List[Tuple]:
    """Rows in EXPORT_COLUMNS order."""
    return [
        (s.index, s.drive_value, s.measured_current, s.device_kind,
         json.dumps(dict(s.extra), sort_keys=True))
        for s in samples
    ]


def _write(handle, samples) -> int:
    writer = csv.writer(handle)
    writer.writerow(EXPORT_COLUMNS)
    rows = history_rows(samples)
    writer.writerows(rows)
    return len(rows)


def to_csv_string(samples: Iterable[SimulationSample]) -> str:
    """CSV text with a header row."""
    buf = io.StringIO()
    _write(buf, samples)
    return buf.getvalue()


def write_csv(path, samples: Iterable[SimulationSample]) -> int:
    """
    Write samples to a CSV file.

    Returns:
        Number of data rows written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', newline='', encoding='utf-8') as f:
        return _write(f, samples)


def history_columns(samples: Iterable[SimulationSample]) -> Dict[str, np.ndarray]:
    """Column view for plotting: index, drive_value and measured_current arrays."""
    samples = list(samples)
    return {
        'index': np.array([s.index for s in samples], dtype=np.int64),
        'drive_value': np.array([s.drive_value for s in samples], dtype=float),
        'measured_current': np.array([s.measured_current for s in samples], dtype=float),
    }
