from __future__ import annotations
import os
from .cbox import iter_boxes
from .model import MdbModelInfo, MdbSummary
from .names import base_name
from .reader import parse_mdb

def summarize_mdb(path: str) -> MdbSummary:
    size = os.path.getsize(path)
    with open(path, "rb") as f:
        data = f.read()

    model = parse_mdb(data, base_name(path))

    models = [
        MdbModelInfo(
            name=g.name,
            vertices=g.vertex_count,
            triangles=g.triangle_count,
            material_runs=len(g.runs),
        )
        for g in model.groups
    ]

    # Box tree as stored; levels come from the file, not from our own limit
    boxes = list(iter_boxes(model.box))
    max_level = max((b.level for b in boxes), default=0)

    return MdbSummary(
        path=path,
        file_size=size,
        model_count=len(model.groups),
        models=models,
        materials=model.materials,
        bone_count=model.bone_count,
        box_count=len(boxes),
        max_box_level=max_level,
    )
