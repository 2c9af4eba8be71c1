"""
pop'n music ifs -> WAV

Renders a chart's keysounds into one 32-bit stereo 44.1 kHz WAV.

Usage:
    popntowav song.ifs                     # normal chart -> song_normal.wav
    popntowav song.ifs --hyper out.wav
    popntowav song_ifs/ --ex               # already extracted directory

.ifs packages are unpacked with ifstools (pip install ifstools), which must be on PATH.
The extracted <stem>_ifs directory is removed again afterwards.
"""

import argparse
import os
import shutil
import subprocess
import sys

from popntowav.convert import DIFFICULTIES, load_inputs, render
from popntowav.errors import ExtractError, MissingChartError, PopnToWavError
from popntowav.wavout import write_mixdown


def positive_int(value):
    jobs = int(value)
    if jobs < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return jobs


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Render a pop'n music ifs chart to a WAV file.")
    parser.add_argument("input", help="Path to the .ifs package (or its extracted _ifs directory)")
    parser.add_argument("output", nargs="?", help="Output .wav path (default: <stem>_<difficulty>.wav)")
    group = parser.add_mutually_exclusive_group()
    for name in DIFFICULTIES:
        group.add_argument(f"--{name}", dest="difficulty", action="store_const", const=name,
                           help=f"Render the {name} chart")
    parser.add_argument("--jobs", type=positive_int, default=None, help="Keysound decode workers (default: auto)")
    parser.add_argument("--keep-extracted", action="store_true", help="Do not delete the extracted directory")
    parser.add_argument("--ifstools", default="ifstools", help="ifstools executable (default: ifstools)")
    parser.add_argument("--quiet", action="store_true", help="Only print errors")
    parser.set_defaults(difficulty="normal")
    # Intermixed so the output path may follow a difficulty flag
    return parser.parse_intermixed_args(argv)


def package_stem(path):
    """'songs/foo.ifs' -> 'foo', 'songs/foo_ifs/' -> 'foo'"""
    base = os.path.basename(os.path.normpath(path))
    if os.path.isdir(path) and base.endswith("_ifs"):
        return base[:-4]
    return os.path.splitext(base)[0]


def extract_ifs(ifs_path, ifstools="ifstools"):
    """Runs ifstools on the package; returns the <stem>_ifs directory it creates."""
    ifs_path = os.path.abspath(ifs_path)
    out_dir = os.path.join(os.path.dirname(ifs_path), f"{package_stem(ifs_path)}_ifs")
    try:
        subprocess.run([ifstools, ifs_path], check=True, cwd=os.path.dirname(ifs_path),
                       stdout=subprocess.DEVNULL)
    except FileNotFoundError as e:
        raise ExtractError(f"{ifstools} not found, is it installed?") from e
    except subprocess.CalledProcessError as e:
        raise ExtractError(f"{ifstools} failed on {ifs_path} (exit {e.returncode})") from e

    if not os.path.isdir(out_dir):
        raise ExtractError(f"{ifstools} did not produce {out_dir}")
    return out_dir


def run(args, log=print):
    stem = package_stem(args.input)
    output = args.output or f"{os.path.splitext(os.path.normpath(args.input))[0]}_{args.difficulty}.wav"
    if os.path.isdir(args.input) and not args.output:
        output = os.path.join(os.path.dirname(os.path.normpath(args.input)), f"{stem}_{args.difficulty}.wav")

    log(f"ifs file: {args.input}")
    log(f"difficulty: {args.difficulty}")
    log(f"output file: {output}")

    if os.path.isdir(args.input):
        extracted_dir, owned = args.input, False
    else:
        extracted_dir, owned = extract_ifs(args.input, args.ifstools), True

    try:
        archive_data, chart_data = load_inputs(extracted_dir, stem, args.difficulty)
    finally:
        # Inputs are in memory now; the extracted files are no longer needed
        if owned and not args.keep_extracted:
            shutil.rmtree(extracted_dir, ignore_errors=True)

    result = render(archive_data, chart_data, workers=args.jobs, log=log)
    write_mixdown(output, result)
    log(f"Saved {output}")
    return output


def main(argv=None):
    args = parse_args(argv)
    log = (lambda msg: None) if args.quiet else print
    try:
        run(args, log)
    except MissingChartError as e:
        print(f"ifs file contains {e}", file=sys.stderr)
        return 1
    except (PopnToWavError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
