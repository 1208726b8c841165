#!/usr/bin/env python3
"""
hclust CLI

Command-line interface for hierarchical clustering of vector files.

Usage:
    hclust cluster vectors.csv                        # Newick tree on stdout
    hclust cluster vectors.csv --labels-column        # First CSV column holds labels
    hclust cluster vectors.json --format tree         # ASCII dendrogram
    hclust cluster vectors.json --format json --k 3   # Full result plus a 3-way partition

Input is a CSV file (one vector per row) or a JSON file holding either a
list of vectors or {"vectors": [...], "labels": [...]}.

Exit status: 0 on success, 1 on error, 130 when interrupted.
"""

import argparse
import concurrent.futures
import csv
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from hclust.config.settings_loader import ConfigManager
from hclust.core.base_clustering import ClusteringResult, ClusterOptions
from hclust.core.partitions import labels_for_k
from hclust.core.worker import ClusteringWorker
from hclust.utils.advanced_logging import configure_logging, get_logger, timed
from hclust.utils.error_handling import (
    ClusteringCancelledError,
    HClustError,
    InvalidInputError,
)
from hclust.utils.tree_utils import print_tree, to_newick

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130

OUTPUT_FORMATS = ("newick", "tree", "json")
RESULT_POLL_SECONDS = 0.5


@timed(operation="load_vectors", log_level="debug")
def load_vectors(
    path: str,
    labels_column: bool = False,
) -> Tuple[List[List[float]], Optional[List[str]]]:
    """
    Read vectors (and optional labels) from a CSV or JSON file.

    Args:
        path: Input file path
        labels_column: Treat the first CSV column as sample labels

    Returns:
        (vectors, labels); labels is None when the file carries none

    Raises:
        InvalidInputError: If the file is missing or malformed
    """
    file_path = Path(path)
    if not file_path.exists():
        raise InvalidInputError(f"Input file not found: {path}", details={"path": path})

    if file_path.suffix.lower() == ".json":
        return _load_json(file_path)
    return _load_csv(file_path, labels_column)


def _load_json(file_path: Path) -> Tuple[List[List[float]], Optional[List[str]]]:
    try:
        with open(file_path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidInputError(f"Could not read JSON input {file_path}: {e}") from e

    if isinstance(data, dict):
        if "vectors" not in data:
            raise InvalidInputError(f"JSON object in {file_path} has no 'vectors' key")
        labels = data.get("labels")
        return data["vectors"], [str(label) for label in labels] if labels is not None else None
    if isinstance(data, list):
        return data, None

    raise InvalidInputError(f"Unsupported JSON input in {file_path}: expected a list or object")


def _load_csv(
    file_path: Path,
    labels_column: bool,
) -> Tuple[List[List[float]], Optional[List[str]]]:
    vectors: List[List[float]] = []
    labels: List[str] = []

    try:
        with open(file_path, "r", newline="") as f:
            for line_number, row in enumerate(csv.reader(f), start=1):
                row = [cell.strip() for cell in row]
                if not any(row):
                    continue
                if labels_column:
                    labels.append(row[0])
                    row = row[1:]
                try:
                    vectors.append([float(cell) for cell in row])
                except ValueError as e:
                    raise InvalidInputError(
                        f"Non-numeric value on line {line_number} of {file_path}: {e}",
                        details={"line": line_number},
                    ) from e
    except OSError as e:
        raise InvalidInputError(f"Could not read CSV input {file_path}: {e}") from e

    return vectors, labels if labels_column else None


class ClusteringCLI:
    """Runs one clustering job and renders its result."""

    def __init__(self):
        self.logger = get_logger(__name__)

    def _on_progress(self, message: str) -> None:
        self.logger.info("clustering_progress", message=message)

    def run(
        self,
        vectors: Sequence[Sequence[float]],
        labels: Optional[Sequence[str]] = None,
    ) -> ClusteringResult:
        """
        Cluster on a worker thread; Ctrl-C sets the job's stop token.

        Raises:
            ClusteringCancelledError: If interrupted
            HClustError: On any engine failure
        """
        options = ClusterOptions(sample_labels=labels, on_progress=self._on_progress)

        with ClusteringWorker() as worker:
            job = worker.submit(vectors, options)
            try:
                while True:
                    try:
                        return job.result(timeout=RESULT_POLL_SECONDS)
                    except concurrent.futures.TimeoutError:
                        continue
            except KeyboardInterrupt:
                self.logger.warning("interrupt_received", job_id=job.job_id)
                job.cancel()
                return job.result()

    @staticmethod
    def render(
        result: ClusteringResult,
        output_format: str,
        k: Optional[int] = None,
    ) -> str:
        """Format a result as newick, an ASCII tree or JSON."""
        partition = _partition_for_k(result, k) if k is not None else None

        if output_format == "json":
            data = result.to_dict()
            if partition is not None:
                data["partition"] = partition
            return json.dumps(data, indent=2, default=str) + "\n"

        if output_format == "tree":
            output = print_tree(result.tree)
        else:
            output = to_newick(result.tree) + "\n"

        if partition is not None:
            output += f"\nk={partition['k']}\n"
            for i, members in enumerate(partition["clusters"]):
                output += f"  {i}: {', '.join(members)}\n"
        return output


def _partition_for_k(result: ClusteringResult, k: int) -> Dict[str, Any]:
    labels = labels_for_k(result.clusters_given_k, k)
    names = _sample_names(result)
    return {
        "k": k,
        "labels": [int(label) for label in labels],
        "clusters": [
            [names[i] for i in cluster] for cluster in result.clusters_given_k[k - 1]
        ],
    }


def _sample_names(result: ClusteringResult) -> List[str]:
    """Sample names by index; tree leaves appear in result.order."""
    names = [""] * result.n_samples
    for sample, leaf in zip(result.order, result.tree.leaves()):
        names[sample] = leaf.name
    return names


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hclust",
        description="Hierarchical average-linkage clustering",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command")

    cluster = subparsers.add_parser("cluster", help="Cluster the vectors in a CSV or JSON file")
    cluster.add_argument("input", help="Input file (.csv or .json)")
    cluster.add_argument("--labels-column", action="store_true", help="First CSV column holds sample labels")
    cluster.add_argument("--format", "-f", choices=OUTPUT_FORMATS, default="newick", help="Output format")
    cluster.add_argument("--k", type=int, help="Also print the partition into K clusters")
    cluster.add_argument("--config", help="Configuration file (defaults to $HCLUST_CONFIG or config/settings.yaml)")
    cluster.add_argument(
        "--log-level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override the configured log level",
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command != "cluster":
        parser.print_help()
        return EXIT_ERROR

    try:
        settings = ConfigManager.load_config(args.config) if args.config else ConfigManager.get_settings()
    except HClustError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return EXIT_ERROR

    log_settings = settings.logging
    configure_logging(
        log_level=args.log_level or log_settings.level,
        log_format=log_settings.format,
        log_file=log_settings.file.path if log_settings.file.enabled else None,
        service_name=settings.service.name,
    )

    cli = ClusteringCLI()
    try:
        vectors, labels = load_vectors(args.input, labels_column=args.labels_column)
        result = cli.run(vectors, labels)
        sys.stdout.write(cli.render(result, args.format, args.k))
    except ClusteringCancelledError:
        print("🚫 Clustering aborted", file=sys.stderr)
        return EXIT_INTERRUPTED
    except HClustError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return EXIT_ERROR

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
