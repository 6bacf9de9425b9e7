import json
import logging
from typing import List, Sequence

from .aggregate import Report

logger = logging.getLogger("jstat.report")


def flatten(text: str) -> str:
    """Keep multi-line messages on a single table row."""
    return " ".join(text.splitlines())


def format_table(headers: Sequence[str], rows: List[Sequence[str]]) -> str:
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))

    separator = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

    def _format_row(row: Sequence[str]) -> str:
        cells = [f" {cell:<{widths[i]}} " for i, cell in enumerate(row)]
        return "|" + "|".join(cells) + "|"

    lines = [separator, _format_row(headers), separator]
    lines.extend(_format_row(row) for row in rows)
    lines.append(separator)
    return "\n".join(lines)


def format_text(report: Report) -> str:
    lines = [f"Journal statistics for {report.input}"]

    if report.top_talkers is not None:
        rows = []
        for rank, entry in enumerate(report.top_talkers, 1):
            obj = entry.as_dict()
            rows.append(
                [
                    str(rank),
                    str(obj["frequency"]),
                    obj["process"],
                    flatten(obj["message"]),
                ]
            )

        lines.append(f"Top {len(rows)} most frequent messages:")
        if rows:
            lines.append(
                format_table(["Rank", "Frequency", "Process", "Message"], rows)
            )

    if report.large_messages is not None:
        rows = []
        for rank, entry in enumerate(report.large_messages, 1):
            obj = entry.as_dict()
            rows.append(
                [
                    str(rank),
                    str(obj["size"]),
                    obj["unit"],
                    obj["timestamp"],
                    flatten(obj["message"]),
                ]
            )

        lines.append(f"Top {len(rows)} largest messages:")
        if rows:
            lines.append(
                format_table(["Rank", "Size", "Unit", "Timestamp", "Message"], rows)
            )

    summary = (
        f"Scanned {report.files_scanned} file(s), {report.records_seen} record(s), "
        f"{report.records_admitted} matched"
    )
    if report.files_failed:
        summary += f", {report.files_failed} file(s) failed"
    if report.cancelled:
        summary += " (cancelled, results are partial)"
    lines.append(summary)

    return "\n".join(lines)


def format_json(report: Report) -> str:
    return json.dumps(report.as_dict(), indent=4)


def render(report: Report, output: str = "text") -> str:
    if output == "json":
        return format_json(report)
    return format_text(report)
