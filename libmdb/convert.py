"""libmdb.convert

Batch entry points used by the CLI (or any other front end).

Every entry point takes the input paths, an output path or folder, the
collision box flag and two optional sinks:

  progress(count)  number of inputs processed so far, failed ones included
  logs(line)       free-text progress/diagnostic lines

A failing input is logged as "[ERROR] <path>: <message>" and skipped; the
batch always runs to the end. Outputs are rendered in memory and written in
one go so a failure never leaves a half-written file behind.
"""

from __future__ import annotations

import io
import os
import time
from contextlib import ExitStack, contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from .cbox import apply_hierarchy, auto_generate
from .config import Settings
from .errors import MdbError
from .model import BatchResult, CboxHierarchy, CollisionBox, MaterialTable, ObjCounters, ObjGroup, ObjModel
from .names import base_name, change_extension, file_name, format_elapsed, natural_key, real_group_name
from .objreader import box_names, hierarchy_for, mtl_path_for, read_hierarchy, read_mtl, read_obj
from .objwriter import write_mtl, write_obj_model
from .reader import read_mdb
from .writer import MdbFileWriter, write_mdb

ProgressSink = Callable[[int], None]
LogSink = Callable[[str], None]

# Failures that cost one file, not the batch.
FILE_ERRORS = (MdbError, OSError, ValueError)


def _nop(_value) -> None:
    return None


@contextmanager
def _step(logs: LogSink, label: str) -> Iterator[None]:
    start = time.perf_counter()
    yield
    logs(f"{label} ... Done in {format_elapsed(time.perf_counter() - start)}")


def _write_text(path: str, text: str) -> None:
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(text)


# ----------------------------
# mdb -> OBJ
# ----------------------------

def mdbs_to_obj(mdb_paths: Sequence[str], obj_path: str, export_cbox: bool,
                progress: Optional[ProgressSink] = None, logs: Optional[LogSink] = None,
                settings: Optional[Settings] = None) -> BatchResult:
    """Merge every mdb into one OBJ (+ one MTL, + one .txt with export_cbox)."""
    progress = progress or _nop
    logs = logs or _nop
    settings = settings or Settings()
    result = BatchResult()

    materials = MaterialTable()
    counters = ObjCounters()
    mtl_path = change_extension(obj_path, "mtl")
    txt_path = change_extension(obj_path, "txt")

    with ExitStack() as stack:
        obj_f = stack.enter_context(open(obj_path, "w", encoding="utf-8", newline="\n"))
        cbox_f = None
        if export_cbox:
            cbox_f = stack.enter_context(open(txt_path, "w", encoding="utf-8", newline="\n"))
        obj_f.write(f"mtllib {file_name(mtl_path)}\n")

        for i, path in enumerate(mdb_paths):
            try:
                with _step(logs, f"Reading {path}"):
                    model = read_mdb(path, base_name(path))
                obj_buf = io.StringIO()
                cbox_buf = io.StringIO() if export_cbox else None
                with _step(logs, "Writing obj"):
                    next_counters = write_obj_model(obj_buf, model, materials, counters,
                                                    base_name(path), cbox_buf, logs)
                obj_f.write(obj_buf.getvalue())
                if cbox_f is not None and cbox_buf is not None:
                    cbox_f.write(cbox_buf.getvalue())
                counters = next_counters
                result.done += 1
            except FILE_ERRORS as e:
                logs(f"[ERROR] {path}: {e}")
                result.failed.append(path)
            progress(i + 1)

    mtl_buf = io.StringIO()
    with _step(logs, "Writing mtl"):
        write_mtl(mtl_buf, materials, settings.texture_directory)
        _write_text(mtl_path, mtl_buf.getvalue())

    result.outputs.extend([obj_path, mtl_path])
    if export_cbox:
        result.outputs.append(txt_path)
    return result


def mdbs_to_objs(mdb_paths: Sequence[str], obj_folder: str, export_cbox: bool,
                 progress: Optional[ProgressSink] = None, logs: Optional[LogSink] = None,
                 settings: Optional[Settings] = None) -> BatchResult:
    """One OBJ/MTL (and .txt) per mdb, each numbered from 1 on its own."""
    progress = progress or _nop
    logs = logs or _nop
    settings = settings or Settings()
    result = BatchResult()

    for i, path in enumerate(mdb_paths):
        try:
            with _step(logs, f"Reading {path}"):
                model = read_mdb(path, base_name(path))
            obj_path = os.path.join(obj_folder, f"{base_name(path)}.obj")
            mtl_path = change_extension(obj_path, "mtl")
            txt_path = change_extension(obj_path, "txt")

            materials = MaterialTable()
            obj_buf = io.StringIO()
            cbox_buf = io.StringIO() if export_cbox else None
            mtl_buf = io.StringIO()
            with _step(logs, "Writing obj"):
                obj_buf.write(f"mtllib {file_name(mtl_path)}\n")
                write_obj_model(obj_buf, model, materials, ObjCounters(), base_name(path), cbox_buf, logs)
                _write_text(obj_path, obj_buf.getvalue())
                if cbox_buf is not None:
                    _write_text(txt_path, cbox_buf.getvalue())
            with _step(logs, "Writing mtl"):
                write_mtl(mtl_buf, materials, settings.texture_directory)
                _write_text(mtl_path, mtl_buf.getvalue())

            result.outputs.extend([obj_path, mtl_path])
            if cbox_buf is not None:
                result.outputs.append(txt_path)
            result.done += 1
        except FILE_ERRORS as e:
            logs(f"[ERROR] {path}: {e}")
            result.failed.append(path)
        progress(i + 1)
    return result


# ----------------------------
# OBJ -> mdb
# ----------------------------

def _load_materials(obj_path: str, obj: ObjModel, logs: LogSink) -> MaterialTable:
    materials = MaterialTable()
    mtl_path = mtl_path_for(obj_path, obj)
    try:
        with _step(logs, "Reading mtl file"):
            read_mtl(mtl_path, materials)
    except OSError:
        logs(f"Warning : unable to read mtl file {mtl_path}, every face uses the NULL material.")
    return materials


def _load_hierarchies(obj_path: str, obj: ObjModel, auto_cbox: bool, logs: LogSink) -> List[CboxHierarchy]:
    """Read <obj>.txt and take the box wireframe groups out of obj.groups.

    Without auto_cbox the boxes are also refitted to their wireframes.
    """
    txt_path = change_extension(obj_path, "txt")
    try:
        with _step(logs, "Reading collision box file"):
            hierarchies = read_hierarchy(txt_path)
    except OSError:
        if not auto_cbox:
            logs("Unable to read collision box file.")
        return []

    if auto_cbox:
        names = set(box_names(hierarchies))
        obj.groups[:] = [g for g in obj.groups if g.name not in names]
    else:
        with _step(logs, "Reading collision boxes values"):
            for h in hierarchies:
                apply_hierarchy(h.root, obj.groups, obj.positions, logs)
    return hierarchies


def _build_mdb(obj: ObjModel, groups: Sequence[ObjGroup], materials: MaterialTable, name: str,
               auto_cbox: bool, hierarchies: List[CboxHierarchy], logs: LogSink) -> bytes:
    writer = MdbFileWriter(obj, materials)
    for g in groups:
        with _step(logs, f"Writing model {g.name}"):
            writer.add_group(g.mat_groups)

    box: Optional[CollisionBox] = None
    if not auto_cbox:
        h = hierarchy_for(hierarchies, name)
        if h is not None:
            box = h.root
        else:
            logs(f"No collision boxes found for {name}.")
    if box is None:
        with _step(logs, "Creating collision boxes"):
            box = auto_generate(CollisionBox(), writer.first_triangles, obj.positions)
    with _step(logs, "Writing collision boxes, hitbox and strings"):
        return writer.finish(box)


def _read_obj_input(path: str, auto_cbox: bool, logs: LogSink):
    with _step(logs, f"Reading {path}"):
        obj = read_obj(path)
    materials = _load_materials(path, obj, logs)
    obj.groups.sort(key=lambda g: natural_key(g.name))
    hierarchies = _load_hierarchies(path, obj, auto_cbox, logs)
    return obj, materials, hierarchies


def obj_to_mdbs(obj_paths: Sequence[str], mdb_folder: str, auto_cbox: bool,
                progress: Optional[ProgressSink] = None, logs: Optional[LogSink] = None,
                settings: Optional[Settings] = None) -> BatchResult:
    """Split each OBJ into one mdb per base group name (Hull_0, Hull_1 -> Hull.mdb)."""
    progress = progress or _nop
    logs = logs or _nop
    result = BatchResult()

    for i, path in enumerate(obj_paths):
        failed = False
        try:
            obj, materials, hierarchies = _read_obj_input(path, auto_cbox, logs)
            buckets: Dict[str, List[ObjGroup]] = {}
            for g in obj.groups:
                name = real_group_name(g.name)
                if not name.strip():
                    name = "-"
                buckets.setdefault(name, []).append(g)

            for name, groups in buckets.items():
                out_path = os.path.join(mdb_folder, f"{name}.mdb")
                logs(f"---- {name}.mdb ----")
                try:
                    data = _build_mdb(obj, groups, materials, name, auto_cbox, hierarchies, logs)
                    write_mdb(out_path, data)
                    result.outputs.append(out_path)
                except FILE_ERRORS as e:
                    logs(f"[ERROR] {out_path}: {e}")
                    failed = True
        except FILE_ERRORS as e:
            logs(f"[ERROR] {path}: {e}")
            failed = True

        if failed:
            result.failed.append(path)
        else:
            result.done += 1
        progress(i + 1)
    return result


def objs_to_mdbs(obj_paths: Sequence[str], mdb_folder: str, auto_cbox: bool,
                 progress: Optional[ProgressSink] = None, logs: Optional[LogSink] = None,
                 settings: Optional[Settings] = None) -> BatchResult:
    """One mdb per OBJ, named after the OBJ, every group becoming a model."""
    progress = progress or _nop
    logs = logs or _nop
    result = BatchResult()

    for i, path in enumerate(obj_paths):
        try:
            obj, materials, hierarchies = _read_obj_input(path, auto_cbox, logs)
            name = base_name(path) or "-"
            out_path = os.path.join(mdb_folder, f"{name}.mdb")
            logs(f"---- {name}.mdb ----")
            data = _build_mdb(obj, obj.groups, materials, name, auto_cbox, hierarchies, logs)
            write_mdb(out_path, data)
            result.outputs.append(out_path)
            result.done += 1
        except FILE_ERRORS as e:
            logs(f"[ERROR] {path}: {e}")
            result.failed.append(path)
        progress(i + 1)
    return result
