from __future__ import annotations
import argparse
import os
from typing import Callable, List, Sequence

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from libmdb.config import DEFAULT_SETTINGS_FILE, Settings, load_settings
from libmdb.convert import mdbs_to_obj, mdbs_to_objs, obj_to_mdbs, objs_to_mdbs
from libmdb.errors import MdbError
from libmdb.model import BatchResult
from libmdb.roundtrip import verify_roundtrip
from libmdb.summary import summarize_mdb

console = Console()

def _log_line(line: str) -> None:
    if line.startswith("[ERROR]"):
        console.print(line, style="red", markup=False)
    elif line.startswith("Warning") or line.startswith("No collision"):
        console.print(line, style="yellow", markup=False)
    else:
        console.print(line, markup=False, highlight=False)

def _settings(args: argparse.Namespace) -> Settings:
    s = load_settings(args.settings)
    if getattr(args, "texture_dir", None) is not None:
        s.texture_directory = args.texture_dir
    return s

def _run_batch(label: str, inputs: Sequence[str], job: Callable[..., BatchResult]) -> int:
    with Progress(
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(label, total=len(inputs))
        result = job(lambda n: progress.update(task, completed=n), _log_line)

    console.print(f"[bold]Converted:[/bold] {result.done}/{len(inputs)}")
    for p in result.outputs:
        console.print(f"  [green]wrote[/green] {p}")
    if result.failed:
        console.print(f"[red]Failed:[/red] {', '.join(result.failed)}")
        return 1
    return 0

def cmd_summary(args: argparse.Namespace) -> int:
    s = summarize_mdb(args.mdb)
    console.print(f"[bold]File:[/bold] {s.path}")
    console.print(f"[bold]Size:[/bold] {s.file_size} bytes")
    console.print(f"[bold]Models:[/bold] {s.model_count}   [bold]Bones:[/bold] {s.bone_count}")
    console.print(f"[bold]Collision boxes:[/bold] {s.box_count}   [bold]Max level:[/bold] {s.max_box_level}")

    mt = Table(title="Models")
    mt.add_column("Name", overflow="fold")
    mt.add_column("Vertices", justify="right")
    mt.add_column("Triangles", justify="right")
    mt.add_column("Material runs", justify="right")
    if s.models:
        for m in s.models:
            mt.add_row(m.name, str(m.vertices), str(m.triangles), str(m.material_runs))
    else:
        mt.add_row("(none found)", "-", "-", "-")
    console.print(mt)

    t = Table(title="Materials")
    t.add_column("#", justify="right")
    t.add_column("Name", overflow="fold")
    t.add_column("Texture", overflow="fold")
    if s.materials:
        for i, m in enumerate(s.materials):
            t.add_row(str(i), m.name, m.texture)
    else:
        t.add_row("-", "(none found)", "")
    console.print(t)
    return 0

def cmd_to_obj(args: argparse.Namespace) -> int:
    settings = _settings(args)
    cbox = args.cbox or settings.export_cbox
    if args.split:
        os.makedirs(args.out, exist_ok=True)
        job = lambda prog, logs: mdbs_to_objs(args.mdb, args.out, cbox, prog, logs, settings)
    else:
        if not args.out.lower().endswith(".obj"):
            console.print("[red]--out must end with .obj (use --split to write one OBJ per file into a folder)[/red]")
            return 2
        job = lambda prog, logs: mdbs_to_obj(args.mdb, args.out, cbox, prog, logs, settings)
    return _run_batch("mdb -> obj", args.mdb, job)

def cmd_to_mdb(args: argparse.Namespace) -> int:
    settings = _settings(args)
    auto = settings.auto_cbox and not args.hierarchy
    os.makedirs(args.out, exist_ok=True)
    if args.per_file:
        job = lambda prog, logs: objs_to_mdbs(args.obj, args.out, auto, prog, logs, settings)
    else:
        job = lambda prog, logs: obj_to_mdbs(args.obj, args.out, auto, prog, logs, settings)
    return _run_batch("obj -> mdb", args.obj, job)

def cmd_verify_roundtrip(args: argparse.Namespace) -> int:
    logs: List[str] = []
    try:
        r = verify_roundtrip(args.mdb, logs=logs.append)
    except (MdbError, OSError) as e:
        for line in logs:
            _log_line(line)
        console.print(f"[red]Round trip failed:[/red] {e}")
        return 1
    if args.verbose:
        for line in logs:
            _log_line(line)
    console.print(f"[bold]IN :[/bold] {r.source}")
    console.print(f"[bold]Models:[/bold] {r.models}   [bold]Triangles:[/bold] {r.triangles}")
    console.print(f"[bold]Max corner error:[/bold] {r.max_error:g}")
    if r.ok:
        console.print("[green]IDENTICAL[/green] (within tolerance)")
        return 0
    for p in r.problems:
        console.print(f"  [red]{p}[/red]")
    console.print("[red]DIFF[/red]")
    return 1

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mdbcli")
    p.add_argument("--settings", default=DEFAULT_SETTINGS_FILE, help="JSON settings file (created with defaults if missing)")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("summary", help="Print info about an mdb file")
    s.add_argument("mdb")
    s.set_defaults(fn=cmd_summary)

    o = sub.add_parser("to-obj", help="Convert mdb file(s) to OBJ/MTL")
    o.add_argument("mdb", nargs="+")
    o.add_argument("--out", required=True, help="OBJ file, or a folder with --split")
    o.add_argument("--split", action="store_true", help="One OBJ per mdb instead of one merged OBJ")
    o.add_argument("--cbox", action="store_true", help="Export collision boxes and their .txt hierarchy")
    o.add_argument("--texture-dir", dest="texture_dir", default=None, help="Prefix for map_Kd texture paths")
    o.set_defaults(fn=cmd_to_obj)

    m = sub.add_parser("to-mdb", help="Convert OBJ file(s) to mdb")
    m.add_argument("obj", nargs="+")
    m.add_argument("--out", required=True, help="Output folder")
    m.add_argument("--per-file", action="store_true", help="One mdb per OBJ instead of one per group base name")
    m.add_argument("--hierarchy", action="store_true", help="Rebuild collision boxes from the .txt next to each OBJ")
    m.set_defaults(fn=cmd_to_mdb)

    r = sub.add_parser("verify-roundtrip", help="mdb -> obj -> mdb and compare triangle corners")
    r.add_argument("mdb")
    r.add_argument("-v", "--verbose", action="store_true")
    r.set_defaults(fn=cmd_verify_roundtrip)

    return p

def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        return int(args.fn(args))
    except (MdbError, OSError) as e:
        console.print(f"[red]\\[ERROR][/red] {e}")
        return 1

if __name__ == "__main__":
    raise SystemExit(main())
