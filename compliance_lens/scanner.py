"""
Scan pipeline entry point.

Wires the image normalizer, the compliance analyzer and the evidence store
into one sequential flow (normalize, analyze, persist), and tracks the
per-user scan workflow in ScanSession.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .models.analysis import AnalysisResult
from .models.history import HistoryItem
from .models.image import NormalizedImage
from .plugins.compliance_analyzer import ComplianceAnalyzerPlugin
from .plugins.image_normalizer import ImageNormalizer, ImageSource
from .storage.evidence_store import EvidenceStore, generate_item_id
from .utils.bedrock_client import BedrockClient
from .utils.config import Config
from .utils.errors import (
    ComplianceLensError,
    ConfigurationError,
    ErrorType,
    ImageCaptureError,
    ScanInProgressError,
    USER_MESSAGES,
)
from .utils.geometry import ViolationSelection
from .utils.logging import log_context, setup_logging
from .utils.report_builder import build_report_html

logger = logging.getLogger(__name__)


class ScanStep(Enum):
    """Workflow steps of one scan."""
    UPLOAD = "upload"
    DISCLAIMER = "disclaimer"
    ANALYZING = "analyzing"
    RESULTS = "results"


@dataclass
class ScanOutcome:
    """
    Result of one completed analysis.

    Attributes:
        result: The validated analysis
        item: The saved history item, None if it could not be persisted
        history: Refreshed history, newest first
    """
    result: AnalysisResult
    item: Optional[HistoryItem]
    history: List[HistoryItem]


class ComplianceScanner:
    """Runs normalize, analyze and persist strictly in sequence."""

    def __init__(
        self,
        normalizer: ImageNormalizer,
        analyzer: ComplianceAnalyzerPlugin,
        store: EvidenceStore
    ):
        self.normalizer = normalizer
        self.analyzer = analyzer
        self.store = store

    def prepare(self, source: ImageSource) -> NormalizedImage:
        """
        Normalize a capture for upload.

        Raises:
            ImageCaptureError: If the source cannot be read at all
        """
        return self.normalizer.normalize(source)

    async def analyze(self, image: NormalizedImage) -> ScanOutcome:
        """
        Analyze a prepared image and save it to history.

        Storage problems never abort a successful analysis: the outcome then
        carries item=None and whatever history could be read.

        Raises:
            AnalysisError: Classified analysis failure (nothing is saved)
        """
        with log_context(scan_id=generate_item_id()):
            logger.info("Scan started")
            result = await self.analyzer.analyze(image)
            history = await self.store.append(result, image)

            item = next(
                (entry for entry in history if entry.result == result and entry.image == image),
                None
            )
            if item is None:
                logger.warning("Analysis succeeded but was not saved to history")
            else:
                logger.info(f"Scan complete: saved as {item.id}")

            return ScanOutcome(result=result, item=item, history=history)

    async def history(self) -> List[HistoryItem]:
        return await self.store.list()

    async def clear_history(self) -> List[HistoryItem]:
        await self.store.clear()
        return await self.store.list()


class ScanSession:
    """
    Workflow state for one user: upload, disclaimer, analyzing, results.

    Every surfaced error returns the session to UPLOAD with `error` set to
    a user-facing message. Only one analysis can be in flight.
    """

    def __init__(self, scanner: ComplianceScanner):
        self.scanner = scanner
        self.step = ScanStep.UPLOAD
        self.image: Optional[NormalizedImage] = None
        self.result: Optional[AnalysisResult] = None
        self.error: Optional[str] = None
        self.history: List[HistoryItem] = []
        self.selection = ViolationSelection()

    @property
    def active_violation_id(self) -> Optional[str]:
        return self.selection.active_id

    async def load_history(self) -> List[HistoryItem]:
        self.history = await self.scanner.history()
        return self.history

    def select_image(self, source: ImageSource) -> Optional[NormalizedImage]:
        """
        Normalize a capture and move to the disclaimer step.

        Returns:
            The prepared image, or None if the capture was unreadable
        """
        self._ensure_idle()
        try:
            image = self.scanner.prepare(source)
        except ImageCaptureError as e:
            logger.warning(f"Capture rejected: {e}")
            self._fail(e)
            return None

        self.image = image
        self.result = None
        self.error = None
        self.selection.clear()
        self.step = ScanStep.DISCLAIMER
        return image

    def cancel(self) -> None:
        """Decline the disclaimer; the prepared image is discarded."""
        self._ensure_idle()
        self.image = None
        self.step = ScanStep.UPLOAD

    async def confirm(self) -> Optional[ScanOutcome]:
        """
        Accept the disclaimer and run the analysis.

        Returns:
            ScanOutcome on success, None if the analysis failed (see `error`)

        Raises:
            ScanInProgressError: If an analysis is already running
        """
        self._ensure_idle()
        if self.image is None:
            self._fail(ImageCaptureError.unreadable("session", ValueError("no image selected")))
            return None

        self.step = ScanStep.ANALYZING
        self.error = None
        try:
            outcome = await self.scanner.analyze(self.image)
        except ComplianceLensError as e:
            logger.error(f"Scan failed: {e}")
            self._fail(e)
            return None
        except Exception as e:
            logger.error(f"Unexpected scan failure: {e}", exc_info=True)
            self.step = ScanStep.UPLOAD
            self.error = USER_MESSAGES[ErrorType.ANALYSIS_FAILED]
            return None

        self.result = outcome.result
        self.history = outcome.history
        self.selection.clear()
        self.step = ScanStep.RESULTS
        return outcome

    def open_history_item(self, item: HistoryItem) -> None:
        """Show a past inspection."""
        self._ensure_idle()
        self.image = item.image
        self.result = item.result
        self.error = None
        self.selection.clear()
        self.step = ScanStep.RESULTS

    def toggle_violation(self, violation_id: str) -> Optional[str]:
        return self.selection.toggle(violation_id)

    def reset(self) -> None:
        self._ensure_idle()
        self.image = None
        self.result = None
        self.error = None
        self.selection.clear()
        self.step = ScanStep.UPLOAD

    async def clear_history(self) -> None:
        self.history = await self.scanner.clear_history()

    def _ensure_idle(self) -> None:
        if self.step == ScanStep.ANALYZING:
            raise ScanInProgressError.create()

    def _fail(self, error: ComplianceLensError) -> None:
        self.step = ScanStep.UPLOAD
        self.error = error.user_message


def build_scanner(config: Config) -> ComplianceScanner:
    """
    Construct the production components from configuration.

    The returned scanner's store still has to be opened by the caller.

    Raises:
        ConfigurationError: If a component cannot be constructed
    """
    try:
        normalizer = ImageNormalizer(
            max_dimension=config.image.max_dimension,
            quality=config.image.quality
        )
        bedrock = BedrockClient(
            region=config.aws_region,
            model_id=config.bedrock.model_id,
            timeout=config.bedrock.timeout
        )
        analyzer = ComplianceAnalyzerPlugin(
            bedrock,
            strict_validation=config.analysis.strict_validation,
            temperature=config.bedrock.temperature,
            max_tokens=config.bedrock.max_tokens
        )
        store = EvidenceStore(config.history.path, capacity=config.history.capacity)
    except ValueError as e:
        raise ConfigurationError.initialization_failed("scanner", e)

    logger.info(
        f"Scanner ready: model={config.bedrock.model_id}, region={config.aws_region}, "
        f"history={config.history.path}"
    )
    return ComplianceScanner(normalizer, analyzer, store)


async def _scan_file(config: Config, image_path: str, report_path: Optional[str]) -> int:
    scanner = build_scanner(config)
    async with scanner.store:
        session = ScanSession(scanner)
        await session.load_history()

        image = session.select_image(image_path)
        if image is None:
            logger.error(session.error)
            return 1

        outcome = await session.confirm()
        if outcome is None:
            logger.error(session.error)
            return 1

    result = outcome.result
    print(f"Summary: {result.summary.text}")
    for violation in result.violations:
        print(f"  [{violation.severity}] {violation.code}: {violation.title} ({violation.location})")
    if not result.has_violations:
        print("  No clear violations found.")
    for entry in result.what_to_look_for:
        print(f"  Check: {entry.item} - {entry.details}")

    if report_path:
        html = build_report_html(result, image, datetime.now(timezone.utc))
        Path(report_path).write_text(html, encoding="utf-8")
        logger.info(f"Report written to {report_path}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Scan a site photo for code-compliance violations.")
    parser.add_argument("image", help="Path to the photo to analyze")
    parser.add_argument("--config", default="config.yaml", help="Path to YAML configuration")
    parser.add_argument("--report", help="Write an HTML report to this path")
    args = parser.parse_args(argv)

    try:
        config = Config.load(args.config)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(
        level=config.logging.level,
        log_format=config.logging.format,
        log_file=config.logging.file
    )

    try:
        return asyncio.run(_scan_file(config, args.image, args.report))
    except KeyboardInterrupt:
        logger.info("Scan interrupted by user")
        return 1
    except ComplianceLensError as e:
        logger.error(f"Scan failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
