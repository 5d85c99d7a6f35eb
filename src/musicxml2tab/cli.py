from __future__ import annotations
import argparse, logging, pathlib, sys
from . import process, write
from .config import ImportConfig
from .errors import ParseError, ReadError

def main(argv=None):
    p = argparse.ArgumentParser(description="MusicXML (Tab/Drums) -> Timeline/MIDI")
    p.add_argument("--in", dest="infile", required=True, help="Input MusicXML (.musicxml/.xml, uncompressed)")
    p.add_argument("--out", dest="outfile", required=False, help="Output MIDI file (.mid), default: input name + .mid")
    p.add_argument("--config", dest="config", default=None, help="YAML config (defaults applied if omitted)")
    p.add_argument("--staves-out-dir", dest="staves_out_dir", default=None, help="Additionally write one MIDI per staff into this directory")

    p.add_argument("--no-markers", action="store_true", help="Do not import tempo/time signature markers")
    p.add_argument("--no-regions", action="store_true", help="Do not import rehearsal marks as regions")
    p.add_argument("--chord-offset", dest="chord_offset", type=int, default=None, help="Tick offset between chord notes (0 = off)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = p.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="[%(name)s] %(levelname)s: %(message)s")

    in_path = pathlib.Path(args.infile).expanduser().resolve()
    if not in_path.exists():
        print(f"[cli] ERROR: Input not found: {in_path}", file=sys.stderr)
        return 1

    cfg = ImportConfig.load(args.config)
    overrides = {}
    if args.no_markers:
        overrides["import_markers"] = False
    if args.no_regions:
        overrides["import_regions"] = False
    if args.chord_offset is not None:
        overrides["chord_offset_ticks"] = max(0, args.chord_offset)
    if overrides:
        cfg = cfg.with_options(**overrides)
    print(f"[cli] infile = {in_path}")

    try:
        result = process.import_musicxml(in_path, cfg)
    except ReadError as e:
        print(f"[cli] ERROR: {e}", file=sys.stderr)
        return 2
    except ParseError as e:
        print(f"[cli] ERROR: {e}", file=sys.stderr)
        return 3

    out_path = pathlib.Path(args.outfile).expanduser().resolve() if args.outfile else in_path.with_suffix(".mid")
    write.write_midi(result, str(out_path))
    print(f"[cli] midi      -> {out_path}")

    if args.staves_out_dir:
        out_dir = pathlib.Path(args.staves_out_dir).expanduser().resolve()
        write.write_staves_separately(result, str(out_dir))
        print(f"[cli] staves    -> {out_dir}")

    total_notes = sum(len(st.notes) for st in result.staves)
    print(f"[cli] Done. staves={len(result.staves)} notes={total_notes} "
          f"markers={len(result.tempo_markers)} regions={len(result.regions)} length={result.total_seconds:.2f}s")
    return 0

if __name__ == "__main__":
    sys.exit(main())
