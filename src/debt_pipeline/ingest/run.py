"""Ingest module for the International Debt Statistics pipeline.

Fetches every configured series from the API, flattens the responses into
one long observation table, and writes it (long or wide) to CSV together
with the per-series last-updated dates and the metadata lookups.

Fetching and processing are two separate passes so that network failures
surface before any response is processed. Within each pass the series are
independent and handled by a bounded thread pool.
"""

import argparse
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd
import requests

import debt_pipeline.config as config
from debt_pipeline.api.client import (
    build_bulk_query_url,
    create_session,
    fetch_all_pages,
    fetch_metadata,
)
from debt_pipeline.api.models import RawApiResponse, SeriesSpec
from debt_pipeline.error_handler import (
    PartialFailureCollector,
    with_context,
)
from debt_pipeline.exceptions import (
    ConfigurationError,
    IngestError,
    PipelineBaseError,
)
from debt_pipeline.logging_config import create_logger, log_exception
from debt_pipeline.persist import (
    dataset_path,
    last_updated_frame,
    last_updated_path,
    metadata_path,
    pivot_wide,
    write_csv,
)
from debt_pipeline.quality_metrics import DatasetSummary, QualityMetrics
from debt_pipeline.transform import (
    empty_dataset,
    extract_last_updated,
    flatten,
    sort_dataset,
)
from debt_pipeline.upload.run import Upload

logger = create_logger(__name__)


@dataclass
class PipelineResult:
    """Outcome of a pipeline run."""

    dataset: pd.DataFrame
    last_updated: Dict[str, date]
    failures: List[Tuple[str, Exception]] = field(default_factory=list)
    summary: Optional[DatasetSummary] = None
    written_files: List[str] = field(default_factory=list)


def fetch_series(
    spec: SeriesSpec, session: Optional[requests.Session] = None
) -> List[RawApiResponse]:
    """Fetch every page of the bulk data for one series."""
    url = build_bulk_query_url(spec.api_code)
    logger.info(f"Fetching {spec.short_name} ({spec.api_code})")
    return fetch_all_pages(url, session=session)


def process_series(
    spec: SeriesSpec, responses: List[RawApiResponse]
) -> Tuple[pd.DataFrame, date]:
    """Flatten one series' responses and read its last-updated date."""
    return flatten(responses, spec.short_name), extract_last_updated(responses)


def _map_series(
    func: Callable[[SeriesSpec], Any],
    series_specs: Sequence[SeriesSpec],
    stage: str,
    max_workers: int,
    failure_policy: str,
    collector: PartialFailureCollector,
) -> Dict[str, Any]:
    """Run ``func`` for every series in a thread pool.

    Results are keyed by series short name. Under the ``abort`` policy the
    first failure cancels the pending work and is raised, labelled with the
    stage and series; under ``partial`` failures go to ``collector``.
    """
    results: Dict[str, Any] = {}
    if not series_specs:
        return results

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(func, spec): spec for spec in series_specs}
        try:
            for future in as_completed(futures):
                spec = futures[future]
                try:
                    results[spec.short_name] = future.result()
                except PipelineBaseError as e:
                    error = with_context(e, f"{stage}:{spec.short_name}")
                    if failure_policy == "abort":
                        raise error from e
                    collector.add_failure(spec.short_name, error)
        except BaseException:
            for pending in futures:
                pending.cancel()
            raise

    return results


def _session_scope(session: Optional[requests.Session]):
    """Use ``session`` as given, or a new one that is closed on exit."""
    return nullcontext(session) if session is not None else create_session()


def _check_series_specs(series_specs: Sequence[SeriesSpec]) -> None:
    short_names = [spec.short_name for spec in series_specs]
    duplicates = sorted({name for name in short_names if short_names.count(name) > 1})
    if duplicates:
        raise ConfigurationError(
            f"Series short names must be unique, repeated: {', '.join(duplicates)}"
        )


def run_series(
    series_specs: Sequence[SeriesSpec],
    session: Optional[requests.Session] = None,
    max_workers: Optional[int] = None,
    failure_policy: Optional[str] = None,
) -> PipelineResult:
    """Fetch, flatten and consolidate the given series.

    Duplicate series/debtor/creditor/year rows are kept and reported; the
    duplicate policy is applied when the dataset is pivoted to wide.

    :param series_specs: Series to pull
    :param session: Optional HTTP session shared by all requests
    :param max_workers: Thread pool size (default: MAX_WORKERS)
    :param failure_policy: ``abort`` or ``partial`` (default: FAILURE_POLICY)
    :return: PipelineResult with the sorted long dataset
    :raises PipelineBaseError: Under ``abort``, the first series failure
    :raises PartialFailureException: Under ``partial``, if every series failed
    """
    max_workers = max_workers or config.MAX_WORKERS
    failure_policy = failure_policy or config.FAILURE_POLICY
    _check_series_specs(series_specs)

    collector = PartialFailureCollector()
    with _session_scope(session) as session:
        fetched = _map_series(
            lambda spec: fetch_series(spec, session=session),
            series_specs,
            "fetch",
            max_workers,
            failure_policy,
            collector,
        )
    if collector.has_failures():
        logger.warning(
            f"{len(collector.failures)} series could not be fetched, "
            f"processing the remaining {len(fetched)}"
        )

    fetched_specs = [spec for spec in series_specs if spec.short_name in fetched]
    processed = _map_series(
        lambda spec: process_series(spec, fetched[spec.short_name]),
        fetched_specs,
        "process",
        max_workers,
        failure_policy,
        collector,
    )

    # Input order, so that "last" duplicates follow the series then API order
    succeeded = [spec for spec in fetched_specs if spec.short_name in processed]
    for spec in succeeded:
        collector.add_success(spec.short_name)
    collector.log_summary()
    if series_specs and not collector.has_successes():
        collector.raise_if_failures("Every series failed")

    frames = [processed[spec.short_name][0] for spec in succeeded]
    last_updated = {spec.short_name: processed[spec.short_name][1] for spec in succeeded}
    dataset = pd.concat(frames, ignore_index=True) if frames else empty_dataset()
    dataset = sort_dataset(dataset)

    metrics = QualityMetrics()
    try:
        duplicates = metrics.find_duplicate_keys(dataset)
        if not duplicates.empty:
            logger.warning(
                f"{len(duplicates)} series/debtor/creditor/year keys have more "
                "than one value"
            )
        summary = metrics.summarize_dataset(dataset)
    finally:
        metrics.close()

    return PipelineResult(
        dataset=dataset,
        last_updated=last_updated,
        failures=collector.failures,
        summary=summary,
    )


def run_pipeline(
    series_specs: Sequence[SeriesSpec],
    session: Optional[requests.Session] = None,
    max_workers: Optional[int] = None,
    failure_policy: Optional[str] = None,
) -> Tuple[pd.DataFrame, Dict[str, date]]:
    """Run the pipeline and return the long dataset and last-updated dates."""
    result = run_series(
        series_specs,
        session=session,
        max_workers=max_workers,
        failure_policy=failure_policy,
    )
    return result.dataset, result.last_updated


class Ingest:
    """Manage a full ingestion run.

    Resolves the metadata lookups, runs the series pipeline, writes the
    dataset and lookups to CSV, and optionally publishes the files to S3.
    """

    def __init__(
        self,
        series_specs: Optional[Sequence[SeriesSpec]] = None,
        output_dir: Optional[str] = None,
        output_format: Optional[str] = None,
        failure_policy: Optional[str] = None,
        duplicate_policy: Optional[str] = None,
        fetch_metadata: Optional[bool] = None,
        enable_s3_upload: Optional[bool] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.series_specs = list(
            config.DEFAULT_SERIES if series_specs is None else series_specs
        )
        self.output_dir = output_dir or config.OUTPUT_DIR
        self.output_format = output_format or config.OUTPUT_FORMAT
        self.failure_policy = failure_policy or config.FAILURE_POLICY
        self.duplicate_policy = duplicate_policy or config.DUPLICATE_POLICY
        self.fetch_metadata = (
            config.FETCH_METADATA if fetch_metadata is None else fetch_metadata
        )
        self.enable_s3_upload = (
            config.ENABLE_S3_UPLOAD if enable_s3_upload is None else enable_s3_upload
        )
        self.session = session

    def fetch_metadata_lookups(
        self, session: Optional[requests.Session] = None
    ) -> Dict[str, pd.DataFrame]:
        """Resolve every metadata concept into a code/name lookup."""
        session = session or self.session
        lookups = {}
        for concept in config.METADATA_CONCEPTS:
            try:
                lookups[concept] = fetch_metadata(concept, session=session)
            except PipelineBaseError as e:
                if self.failure_policy == "abort":
                    raise
                logger.warning(f"Skipping metadata concept {concept!r}: {e}")
        self._check_page_size(lookups)
        return lookups

    def _check_page_size(self, lookups: Dict[str, pd.DataFrame]) -> None:
        """Warn when a series could exceed a single bulk page."""
        sizes = [len(lookups[c]) for c in ("country", "counterpart-area", "time") if c in lookups]
        if len(sizes) < 3:
            return
        worst_case = sizes[0] * sizes[1] * sizes[2]
        if worst_case > config.BULK_PAGE_SIZE:
            logger.warning(
                f"Up to {worst_case} observations per series exceeds "
                f"BULK_PAGE_SIZE={config.BULK_PAGE_SIZE}; responses will be paginated"
            )

    def write_outputs(
        self, result: PipelineResult, lookups: Dict[str, pd.DataFrame]
    ) -> List[str]:
        """Write the dataset, last-updated dates and lookups to CSV."""
        if self.output_format == "wide":
            table = pivot_wide(result.dataset, self.duplicate_policy)
        else:
            table = result.dataset

        paths = [
            write_csv(table, dataset_path(self.output_dir, self.output_format)),
            write_csv(
                last_updated_frame(result.last_updated, self.series_specs),
                last_updated_path(self.output_dir),
            ),
        ]
        for concept, lookup in lookups.items():
            paths.append(write_csv(lookup, metadata_path(self.output_dir, concept)))
        return paths

    def run(self) -> PipelineResult:
        """
        Main method to run the ingestion process.

        :raises IngestError: If the ingestion process fails
        """
        pipeline_start_time = time.time()

        try:
            config.validate_config(
                output_format=self.output_format,
                failure_policy=self.failure_policy,
                duplicate_policy=self.duplicate_policy,
                output_dir=self.output_dir,
            )
            logger.info(
                f"Starting ingestion of {len(self.series_specs)} series "
                f"({self.output_format} output, {self.failure_policy} on failure)"
            )

            with _session_scope(self.session) as session:
                lookups = (
                    self.fetch_metadata_lookups(session) if self.fetch_metadata else {}
                )
                result = run_series(
                    self.series_specs,
                    session=session,
                    failure_policy=self.failure_policy,
                )
            result.written_files = self.write_outputs(result, lookups)

            if self.enable_s3_upload:
                Upload().run(result.written_files)

            duration = time.time() - pipeline_start_time
            logger.info(
                f"Ingestion completed: {len(result.last_updated)}/{len(self.series_specs)} "
                f"series, {len(result.dataset)} observations in {duration:.2f}s"
            )
            return result

        except Exception as e:
            log_exception(logger, e, {"context": "Ingest process"})
            raise IngestError(f"Ingestion process failed: {e}") from e


def parse_series_option(value: str) -> SeriesSpec:
    """Parse a ``SHORT_NAME=API_CODE`` command-line value."""
    short_name, sep, api_code = value.partition("=")
    if not sep or not short_name.strip() or not api_code.strip():
        raise argparse.ArgumentTypeError(
            f"Expected SHORT_NAME=API_CODE, got {value!r}"
        )
    return SeriesSpec(short_name.strip(), api_code.strip())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fetch bilateral external debt statistics and write them to CSV."
    )
    parser.add_argument(
        "--series",
        action="append",
        type=parse_series_option,
        metavar="SHORT_NAME=API_CODE",
        help="Series to pull (repeatable); replaces the default series list",
    )
    parser.add_argument("--format", choices=config.OUTPUT_FORMATS, dest="output_format")
    parser.add_argument("--output-dir")
    parser.add_argument("--failure-policy", choices=config.FAILURE_POLICIES)
    parser.add_argument("--duplicate-policy", choices=config.DUPLICATE_POLICIES)
    parser.add_argument(
        "--metadata",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Also write the metadata lookup files",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        Ingest(
            series_specs=args.series,
            output_dir=args.output_dir,
            output_format=args.output_format,
            failure_policy=args.failure_policy,
            duplicate_policy=args.duplicate_policy,
            fetch_metadata=args.metadata,
        ).run()
    except IngestError as e:
        logger.error(f"Ingestion process failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
