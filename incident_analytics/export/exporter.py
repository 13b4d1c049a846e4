"""Report exporter — writes report rows to CSV or JSON files."""

import csv
import json
import os
from datetime import datetime, timezone
from pathlib import Path

from ..exceptions import ConfigurationError
from ..reporting.service import REPORT_ROW_MODELS, validate_request
from ..utils.logging import get_logger

logger = get_logger("export.exporter")

EXPORT_FORMATS = ("csv", "json")


class ReportExporter:
    """Evaluates a report through the ``ReportService`` and writes it to disk.

    CSV files always carry the report's header, even when the report is
    empty, so downstream tools can rely on the column layout.
    """

    def __init__(self, report_service, export_dir: str = "exports") -> None:
        self._report_service = report_service
        self._export_dir = export_dir
        self._ensure_export_dir()

    def _ensure_export_dir(self) -> None:
        """Create the export directory if it does not exist."""
        Path(self._export_dir).mkdir(parents=True, exist_ok=True)

    async def export(self, name: str, fmt: str = "csv", filters=None, **options) -> dict:
        """Run report ``name`` and write it as ``fmt``.

        Returns the file path, its size in bytes and the number of rows.
        """
        fmt = fmt.lower()
        if fmt not in EXPORT_FORMATS:
            raise ConfigurationError(f"Unsupported export format: {fmt!r}. Available: {list(EXPORT_FORMATS)}")
        validate_request(name, options)

        rows = await self._report_service.run(name, filters, **options)
        records = [row.model_dump(mode="json") for row in rows]

        timestamp_str = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        file_path = os.path.join(self._export_dir, f"{name}_{timestamp_str}.{fmt}")
        if fmt == "csv":
            self._write_csv(file_path, list(REPORT_ROW_MODELS[name].model_fields), records)
        else:
            self._write_json(file_path, records)

        file_size = os.path.getsize(file_path)
        logger.info(
            "export_completed",
            report=name,
            format=fmt,
            file_path=file_path,
            file_size=file_size,
            rows=len(records),
        )
        return {"file_path": file_path, "file_size": file_size, "rows": len(records)}

    # ── File writing helpers ───────────────────────────────────────────────

    @staticmethod
    def _write_csv(path: str, fieldnames: list[str], rows: list[dict]) -> None:
        """Write a list of dictionaries to a CSV file."""
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)

    @staticmethod
    def _write_json(path: str, records: list[dict]) -> None:
        """Write a list of dictionaries to a JSON file."""
        with open(path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2, default=str)
