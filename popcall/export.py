"""JSON export for probe results."""

from __future__ import annotations

import json
from dataclasses import asdict

from popcall.models import ProbeResult


def export_json(results: list[ProbeResult], best: ProbeResult, indent: int = 2) -> str:
    """Export probe results and the selected POP as a JSON string."""
    data = {
        "selected": asdict(best),
        "fallback": not best.is_reachable,
        "results": [asdict(r) for r in results],
    }
    return json.dumps(data, indent=indent)


def write_to_file(content: str, filepath: str) -> None:
    """Write export content to a file."""
    with open(filepath, "w") as f:
        f.write(content)
