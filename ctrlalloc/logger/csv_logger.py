from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path

from ctrlalloc.control.allocation import AllocationResult
from ctrlalloc.control.effectiveness import ControlAxis


def allocation_fieldnames(num_actuators: int) -> list[str]:
    """
    Column names for one allocation cycle per row.
    """
    axes = [a.name.lower() for a in ControlAxis]
    N = int(num_actuators)
    return (
        ["t", "mode", "saturated"]
        + [f"sp_{a}" for a in axes]
        + [f"alloc_{a}" for a in axes]
        + [f"u_raw_{i}" for i in range(N)]
        + [f"u_desat_{i}" for i in range(N)]
        + [f"u_{i}" for i in range(N)]
    )


def allocation_row(result: AllocationResult, *, t: float = 0.0, **extra) -> dict:
    row: dict = {"t": float(t), "mode": str(result.mode), "saturated": int(bool(result.saturated))}
    for a in ControlAxis:
        name = a.name.lower()
        row[f"sp_{name}"] = float(result.control_sp[a])
        row[f"alloc_{name}"] = float(result.control_allocated[a])
    for i in range(int(result.actuator_sp.shape[0])):
        row[f"u_raw_{i}"] = float(result.actuator_raw[i])
        row[f"u_desat_{i}"] = float(result.actuator_desaturated[i])
        row[f"u_{i}"] = float(result.actuator_sp[i])
    row.update(extra)
    return row


@dataclass
class CsvLogger:
    """
    Per-cycle CSV writer.
    - columns fixed at open(); unknown keys in a row are ignored
    - flush every `flush_every` rows (0 disables periodic flush)
    """

    path: Path
    fieldnames: list[str]
    flush_every: int = 1

    _fp = None
    _writer: csv.DictWriter | None = None
    _n: int = 0

    @classmethod
    def for_allocation(cls, path, num_actuators: int, *, extra_fields: list[str] | None = None, flush_every: int = 1):
        fields = allocation_fieldnames(num_actuators) + list(extra_fields or [])
        return cls(path=Path(path), fieldnames=fields, flush_every=int(flush_every))

    @property
    def rows_written(self) -> int:
        return int(self._n)

    def open(self):
        self.path = Path(self.path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fp = self.path.open("w", newline="", encoding="utf-8")
        self._writer = csv.DictWriter(self._fp, fieldnames=list(self.fieldnames), extrasaction="ignore")
        self._writer.writeheader()
        self._n = 0
        self._fp.flush()

    def write(self, row: dict):
        if self._writer is None or self._fp is None:
            raise RuntimeError("CsvLogger is not open. Call open() first.")
        self._writer.writerow(row)
        self._n += 1
        if int(self.flush_every) > 0 and (self._n % int(self.flush_every) == 0):
            self._fp.flush()

    def write_result(self, result: AllocationResult, *, t: float = 0.0, **extra):
        self.write(allocation_row(result, t=t, **extra))

    def close(self):
        if self._fp is None:
            return
        try:
            self._fp.flush()
            self._fp.close()
        finally:
            self._fp = None
            self._writer = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
