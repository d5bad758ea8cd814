"""
Local file exporter for generated reports.
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from app.core.config import settings

logger = logging.getLogger(__name__)


class CsvReportExporter:
    """Writes report rows to CSV files under REPORT_DIR."""

    media_type = "text/csv"
    extension = ".csv"

    def __init__(self, report_dir: Optional[str] = None):
        self.report_dir = Path(report_dir or settings.REPORT_DIR)

    def export(self, rows: List[Dict[str, Any]], file_name: str) -> Tuple[str, int]:
        """
        Write rows to a CSV file.

        Args:
            rows: Flat report rows (same keys in every row)
            file_name: File name without directory

        Returns:
            Tuple of (file path, file size in bytes)
        """
        self.report_dir.mkdir(parents=True, exist_ok=True)
        path = self.report_dir / file_name

        df = pd.DataFrame(rows)
        df.to_csv(path, index=False)

        size = path.stat().st_size
        logger.info(f"Exported {len(df)} rows to {path} ({size} bytes)")
        return str(path), size

    def remove(self, file_path: Optional[str]) -> None:
        """Delete a (possibly partial) report file."""
        if not file_path:
            return
        try:
            os.remove(file_path)
            logger.info(f"Removed report file {file_path}")
        except FileNotFoundError:
            logger.debug(f"Report file {file_path} already gone")
