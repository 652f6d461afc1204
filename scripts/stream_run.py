#!/usr/bin/env python3
"""
Run the pipeline for a free-text request and print every streamed event.
Usage: python scripts/stream_run.py "Test the search box on https://example.com" [work_dir]
"""
import sys
import json
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.core.artifacts import inspect
from app.core.config import PipelineConfig, settings
from app.core.logging import configure_logging
from app.streaming.bridge import StreamingBridge


def print_event(envelope: dict):
    data = envelope["data"]
    kind = envelope["type"]
    if kind == "chat":
        print(f"[{data['role']:>9}] {data['content']}")
    elif kind == "workflow":
        print(f"--- stage {data['currentStage']}/{data['totalStages']} {data['stageName']} "
              f"({data['progress']}%, {data['status']})")
    elif kind == "file":
        print(f"--- files: {', '.join(f['name'] for f in data) or 'none'}")
    else:
        print(f"=== {kind}: {json.dumps(data, indent=2, ensure_ascii=False)}")


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        return 1
    request = sys.argv[1]
    work_dir = sys.argv[2] if len(sys.argv) > 2 else settings.work_dir

    configure_logging("WARNING")
    try:
        config = PipelineConfig.from_prompt(request, work_dir)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    if inspect(work_dir).needs_fresh_config:
        print(f"Configuration saved to {config.save()}")

    print("=" * 80)
    print(f"Streaming run for {config.target_url} in {work_dir}")
    print("=" * 80)
    report = StreamingBridge(print_event).run(config)
    return 0 if report is not None else 1


if __name__ == "__main__":
    sys.exit(main())
