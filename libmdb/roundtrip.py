"""libmdb.roundtrip

mdb -> OBJ -> mdb check.

The mdb is exported with its collision boxes, converted back with the
exported box hierarchy, and every triangle corner of the result is compared
with the source. Vertex order changes on the way (corners are re-deduplicated)
so the comparison is per triangle corner, not per vertex record.
"""

from __future__ import annotations

import math
import os
import tempfile
from dataclasses import dataclass, field
from typing import List, Optional

from .convert import LogSink, mdbs_to_objs, objs_to_mdbs
from .errors import MdbError
from .model import MdbModel, Vec3
from .names import base_name
from .reader import read_mdb

TOLERANCE = 1e-4


@dataclass
class RoundtripReport:
    source: str
    models: int = 0
    triangles: int = 0
    max_error: float = 0.0
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def _corners(model: MdbModel, group_index: int, report: RoundtripReport, label: str) -> Optional[List[Vec3]]:
    """Triangle corner positions of one group, None when an index is out of range."""
    out: List[Vec3] = []
    group = model.groups[group_index]
    first = _first_vertex(model, group_index)
    n = 0
    for run in group.runs:
        for tri in run.triangles:
            for p in (tri.p0, tri.p1, tri.p2):
                if p >= group.vertex_count or first + p >= len(model.positions):
                    report.problems.append(
                        f"{label} model {group_index}: triangle {n} uses point {p} of {group.vertex_count}")
                    return None
                out.append(model.positions[first + p])
            n += 1
    return out


def _first_vertex(model: MdbModel, group_index: int) -> int:
    return sum(g.vertex_count for g in model.groups[:group_index])


def compare_models(a: MdbModel, b: MdbModel, report: RoundtripReport, tolerance: float = TOLERANCE) -> None:
    if len(a.groups) != len(b.groups):
        report.problems.append(f"model count {len(a.groups)} -> {len(b.groups)}")
        return
    report.models = len(a.groups)
    for i in range(len(a.groups)):
        ca = _corners(a, i, report, "source")
        cb = _corners(b, i, report, "result")
        if ca is None or cb is None:
            continue
        report.triangles += len(ca) // 3
        if len(ca) != len(cb):
            report.problems.append(f"model {i}: triangle count {len(ca) // 3} -> {len(cb) // 3}")
            continue
        for j, (pa, pb) in enumerate(zip(ca, cb)):
            err = max(abs(pa[k] - pb[k]) for k in range(3))
            report.max_error = max(report.max_error, err)
            if err > tolerance * max(1.0, max(abs(c) for c in pa)):
                report.problems.append(f"model {i}: triangle {j // 3} corner {j % 3} moved by {err:g}")
                break


def verify_roundtrip(mdb_path: str, logs: Optional[LogSink] = None,
                     tolerance: float = TOLERANCE, work_dir: Optional[str] = None) -> RoundtripReport:
    """Convert mdb_path to OBJ and back inside a scratch folder and compare."""
    report = RoundtripReport(source=mdb_path)
    source = read_mdb(mdb_path, base_name(mdb_path))
    for i in range(len(source.groups)):
        _corners(source, i, report, "source")
    if report.problems:
        return report

    with tempfile.TemporaryDirectory(dir=work_dir) as tmp:
        obj_dir = os.path.join(tmp, "obj")
        mdb_dir = os.path.join(tmp, "mdb")
        os.mkdir(obj_dir)
        os.mkdir(mdb_dir)

        res = mdbs_to_objs([mdb_path], obj_dir, True, logs=logs)
        if not res.ok:
            raise MdbError(f"Export to OBJ failed for {mdb_path}")
        obj_path = os.path.join(obj_dir, f"{base_name(mdb_path)}.obj")
        res = objs_to_mdbs([obj_path], mdb_dir, False, logs=logs)
        if not res.ok or not res.outputs:
            raise MdbError(f"Import from OBJ failed for {obj_path}")
        back = read_mdb(res.outputs[0], base_name(mdb_path))

    compare_models(source, back, report, tolerance)
    if not math.isfinite(report.max_error):
        report.problems.append("non-finite coordinates")
    return report
