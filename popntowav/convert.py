"""
Conversion pipeline: archive + chart bytes in, normalized mixdown out.

    parse archive ─┬─> decode/resample every keysound (process pool) ┐
                   └─> parse chart (layout from archive) ────────────┴─> mixdown

Nothing here touches the filesystem except the chart lookup helpers, which only
look at an already extracted directory.
"""

import os
from concurrent.futures import ProcessPoolExecutor

from popntowav.errors import MissingChartError
from popntowav.mixdown import OUTPUT_CHANNELS, mixdown
from popntowav.msadpcm import decode_keysound
from popntowav.popnchart import parse_chart
from popntowav.resample import OUTPUT_RATE, resample_keysound
from popntowav.twodx import parse_archive

# Chart suffixes inside an ifs package, in difficulty order
DIFFICULTIES = {
    "easy": "ep",
    "normal": "np",
    "hyper": "hp",
    "ex": "op",
}


def prepare_keysound(record, rate=OUTPUT_RATE):
    """Decode -> stereo -> output rate, for one archive entry."""
    decoded = decode_keysound(record).to_stereo()
    return resample_keysound(decoded, rate)


def prepare_keysounds(archive, workers=None, rate=OUTPUT_RATE):
    """
    Decodes and resamples every keysound, concurrently unless workers == 1.
    Worker processes rather than threads: the nibble loop is pure Python and
    would hold the GIL.
    Results keep archive order. The first failure is re-raised once every
    submitted job has finished.
    """
    if workers == 1 or len(archive.keysounds) < 2:
        return [prepare_keysound(record, rate) for record in archive.keysounds]

    with ProcessPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(prepare_keysound, record, rate) for record in archive.keysounds]
        return [future.result() for future in futures]


def render(archive_data, chart_data, workers=None, log=None):
    """
    Runs the whole conversion on in-memory inputs and returns a MixdownResult.
    Any FormatError/DecodeError/ResampleError aborts it.
    """
    log = log or (lambda msg: None)

    archive = parse_archive(archive_data)
    log(f"Archive '{archive.display_name}': {len(archive)} keysounds, "
        f"{archive.chart_layout.value} chart layout")

    events = parse_chart(chart_data, archive.chart_layout)
    log(f"Chart: {len(events)} play events")

    keysounds = prepare_keysounds(archive, workers)
    log(f"Decoded and resampled {len(keysounds)} keysounds to {OUTPUT_RATE} Hz")

    result = mixdown(keysounds, events, OUTPUT_RATE, OUTPUT_CHANNELS)
    log(f"Mixed {result.duration:.2f}s, peak {result.peak}, scale x{result.scale}")
    return result


def available_charts(extracted_dir, stem):
    return [name for name, short in DIFFICULTIES.items()
            if os.path.exists(os.path.join(extracted_dir, f"{stem}_{short}.bin"))]


def find_chart(extracted_dir, stem, difficulty):
    """Returns (archive_path, chart_path) inside an extracted ifs directory."""
    available = available_charts(extracted_dir, stem)
    if difficulty not in available:
        raise MissingChartError(difficulty, available)
    archive_path = os.path.join(extracted_dir, f"{stem}.2dx")
    chart_path = os.path.join(extracted_dir, f"{stem}_{DIFFICULTIES[difficulty]}.bin")
    return archive_path, chart_path


def load_inputs(extracted_dir, stem, difficulty):
    archive_path, chart_path = find_chart(extracted_dir, stem, difficulty)
    with open(archive_path, 'rb') as f:
        archive_data = f.read()
    with open(chart_path, 'rb') as f:
        chart_data = f.read()
    return archive_data, chart_data
