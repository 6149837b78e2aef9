import argparse
import json
import logging
from pathlib import Path

from pitchtrace.pipeline.config import PipelineConfig
from pitchtrace.pipeline.transcribe import import_files


def main(argv=None):
    parser = argparse.ArgumentParser(description="Extract pitch contours from audio files.")
    parser.add_argument("paths", nargs="+", help="Audio files (.wav, .mp3, ...)")
    parser.add_argument("--output", default="outputs", help="Directory for <name>_contour.json files")
    parser.add_argument("--hop", type=int, default=256, help="Analysis hop in samples")
    parser.add_argument("--sr", type=int, default=None, help="Resample to this rate before analysis")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    config = PipelineConfig()
    config.contour.hop_length = args.hop
    config.loader.target_sample_rate = args.sr

    out_dir = Path(args.output)
    out_dir.mkdir(parents=True, exist_ok=True)

    report = import_files(args.paths, config=config)
    for track in report.tracks:
        payload = {
            "name": track.name,
            "duration_sec": track.duration_sec,
            "hop_sec": track.hop_sec,
            "note_range": track.note_range,
            "points": [[p.time, p.note] for p in track.points],
        }
        path = out_dir / f"{track.name}_contour.json"
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        print("Wrote:", path)

    for failure in report.failures:
        print("Failed:", failure.path, "-", failure.error)

    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
