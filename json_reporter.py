"""
JSON reporting module for Bitbucket pull request statistics.

This module writes the complete aggregated statistics, including every
pull request summary, to a pretty-printed JSON file for later ingestion.
"""

import json
import logging
from pathlib import Path

from pr_stats import StatsReport


DEFAULT_OUTPUT_FILE = 'bitbucket-stats.json'


class JSONReportError(Exception):
    """Custom exception for JSON reporting related errors."""
    pass


class JSONReporter:
    """
    JSON reporter for open pull request statistics.

    Each call to ``generate_report`` replaces the output file.
    """

    def __init__(self, output_path: str = DEFAULT_OUTPUT_FILE):
        """
        Initialize JSON reporter with output file path.

        Args:
            output_path: Path where the JSON file will be written

        Raises:
            JSONReportError: If output path is invalid
        """
        if not output_path:
            raise JSONReportError("Output path is required")

        self.output_path = Path(output_path)
        self.logger = logging.getLogger(__name__)

    def generate_report(self, report: StatsReport) -> str:
        """
        Write the statistics to the output file.

        Args:
            report: Aggregated statistics to persist

        Returns:
            Path to the generated JSON file

        Raises:
            JSONReportError: If the report is missing or cannot be written
        """
        if report is None:
            raise JSONReportError("Stats report is required")

        if self.output_path.is_dir():
            raise JSONReportError(f"Output path is a directory: {self.output_path}")

        try:
            with open(self.output_path, 'w', encoding='utf-8') as f:
                json.dump(report.to_dict(), f, indent=2, ensure_ascii=False)
                f.write('\n')
        except (OSError, TypeError, ValueError) as e:
            raise JSONReportError(f"Failed to write JSON report: {e}")

        self.logger.info(f"Wrote stats for {report.total_prs} PRs to {self.output_path}")
        return str(self.output_path)
