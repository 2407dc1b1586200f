from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from speedwatch.io.sources import FileOpener
from speedwatch.pipeline.monitor import MonitorPipeline, MonitorPipelineConfig
from speedwatch.utils.config import load_yaml, merge_dicts, resolve_path, section
from speedwatch.utils.logging import setup_logging
from speedwatch.utils.settings import DetectionSettings, SettingsStore


def main() -> None:
    ap = argparse.ArgumentParser(description="Live motion speed monitor")
    ap.add_argument("--config", default="configs/monitor.yaml", help="Monitor YAML")
    ap.add_argument("--video", default=None, help="Replay a video file instead of opening a camera")
    ap.add_argument("--threshold", type=float, default=None, help="Override detection threshold (km/h)")
    ap.add_argument("--show", action="store_true", help="Show the overlay window (press q to quit)")
    ap.add_argument("--max-ticks", type=int, default=None)
    ap.add_argument("--log-level", default=None)
    ap.add_argument("--log-file", default=None)
    args = ap.parse_args()

    base_dir = os.getcwd()
    config_path = resolve_path(args.config, base_dir)
    cfg = load_yaml(config_path)
    logging_cfg = section(cfg, "logging")
    setup_logging(
        level=args.log_level or str(logging_cfg.get("level", "INFO")),
        log_file=args.log_file or logging_cfg.get("file"),
        module_levels=section(logging_cfg, "modules"),
    )

    if args.show:
        cfg = merge_dicts(cfg, {"output": {"overlay": {"enabled": True, "show": True}}})

    settings = SettingsStore(DetectionSettings.from_dict(section(cfg, "detection")), path=config_path)
    if args.threshold is not None:
        settings.update(speed_threshold_kmh=args.threshold)

    opener = FileOpener(resolve_path(args.video, base_dir)) if args.video else None
    pipeline = MonitorPipeline(MonitorPipelineConfig.from_dict(cfg, base_dir=base_dir, opener=opener, settings=settings))
    try:
        asyncio.run(pipeline.run(max_ticks=args.max_ticks))
    except KeyboardInterrupt:
        pipeline.stop()

    for ev in pipeline.feed.items(limit=10):
        print(f"{ev.wall_time} [{ev.severity}] {ev.location}: {ev.details}")


if __name__ == "__main__":
    main()
