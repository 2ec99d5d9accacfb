"""Batch runner that migrates preprints one at a time.

Each preprint is a single unit of work: its resource graph is fetched, its
document and side-effect statements are built, and the outputs are written.
The XML document is written last, so its presence on disk marks the preprint
as done and lets an interrupted run resume without any other checkpoint.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from time import sleep
from typing import Any, Iterable

from pydantic import ValidationError as PydanticValidationError

from schemas.osf import Preprint
from schemas.settings import ImportSettings

from ..builders.document_builder import DocumentBuilder
from ..clients.exceptions import ClientError, ValidationError
from ..clients.osf_client import OsfClient
from ..exceptions import ContractViolationError
from ..generators.statement_generator import StatementGenerator
from ..graph.fetcher import ResourceGraph
from ..graph.reconciler import VersionReconciler

module_logger = logging.getLogger(__name__)

FATAL_ERRORS = (ContractViolationError, ValidationError)
RETRYABLE_ERRORS = (ClientError, OSError)


class AttemptState(Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass
class Attempt:
    """Retry state of one preprint.

    Attributes:
        state: Current state
        remaining: Attempts left while ATTEMPTING
        error: Last error seen, if any
    """

    state: AttemptState
    remaining: int
    error: Exception | None = None

    @classmethod
    def start(cls, max_attempts: int) -> "Attempt":
        return cls(AttemptState.ATTEMPTING, max_attempts)

    def succeed(self) -> "Attempt":
        return Attempt(AttemptState.SUCCEEDED, self.remaining)

    def fail(self, error: Exception) -> "Attempt":
        """Transition after a failed attempt.

        Only transport errors use up a single attempt; anything else exhausts
        the budget at once.
        """
        if isinstance(error, FATAL_ERRORS) or not isinstance(error, RETRYABLE_ERRORS):
            return Attempt(AttemptState.EXHAUSTED, 0, error)
        remaining = self.remaining - 1
        state = AttemptState.ATTEMPTING if remaining > 0 else AttemptState.EXHAUSTED
        return Attempt(state, remaining, error)


@dataclass
class RunSummary:
    """Outcome of a run, as lists of preprint ids."""

    succeeded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.succeeded) + len(self.failed)


class MigrationRunner:
    """Migrate a sequence of preprints with a bounded retry per preprint.

    A failing preprint never aborts the batch: once its attempts are used up
    it is recorded as failed and the run moves on.

    Example:
        runner = MigrationRunner(client, settings)
        summary = runner.run(client.fetch("engrxiv"))
    """

    def __init__(
        self,
        client: OsfClient,
        settings: ImportSettings,
        logger: logging.Logger | None = None,
        generator: StatementGenerator | None = None,
        builder: DocumentBuilder | None = None,
    ):
        self.client = client
        self.settings = settings
        self.logger = logger or module_logger
        self.generator = generator or StatementGenerator(settings)
        self.builder = builder or DocumentBuilder(settings, client)

    def run(
        self,
        preprints: Iterable[Preprint | dict[str, Any]],
        total: int | None = None,
    ) -> RunSummary:
        """Process preprints sequentially.

        Raw listing items are validated one at a time, so a malformed record
        only fails itself.

        Args:
            preprints: Preprints or raw preprint items (typically a lazy
                PageIterator over a provider listing)
            total: Expected number of preprints, for progress messages

        Returns:
            RunSummary with succeeded, skipped and failed ids

        Raises:
            ClientError: If fetching the next page of the listing fails
        """
        summary = RunSummary()
        total_label = str(total) if total is not None else "?"

        for position, item in enumerate(preprints, start=1):
            preprint_id = self._item_id(item, position)
            xml_path = self.settings.xml_path(preprint_id)
            if xml_path.exists():
                self.logger.info(
                    f"[{position}/{total_label}] Skipping preprint {preprint_id}: "
                    f"{xml_path} exists"
                )
                summary.skipped.append(preprint_id)
                continue

            self.logger.info(f"[{position}/{total_label}] Processing preprint {preprint_id}")
            attempt = self.process(item)
            if attempt.state is AttemptState.SUCCEEDED:
                summary.succeeded.append(preprint_id)
            else:
                self.logger.error(
                    f"Giving up on preprint {preprint_id}: {attempt.error}"
                )
                summary.failed.append(preprint_id)

            if self.settings.sleep_seconds:
                sleep(self.settings.sleep_seconds)

        self.logger.info(
            f"Run finished: {len(summary.succeeded)} succeeded, "
            f"{len(summary.skipped)} skipped, {len(summary.failed)} failed"
        )
        return summary

    def process(self, item: Preprint | dict[str, Any]) -> Attempt:
        """Run the retry state machine for one preprint until it settles."""
        attempt = Attempt.start(self.settings.max_attempts)
        try:
            preprint = self.validate(item)
        except ValidationError as e:
            return attempt.fail(e)

        while attempt.state is AttemptState.ATTEMPTING:
            try:
                self.migrate(preprint)
            except FATAL_ERRORS + RETRYABLE_ERRORS as e:
                attempt = attempt.fail(e)
                if attempt.state is AttemptState.ATTEMPTING:
                    self.logger.warning(
                        f"Attempt failed for preprint {preprint.id} "
                        f"({attempt.remaining} left): {e}"
                    )
            except Exception as e:
                self.logger.error(f"Unexpected error migrating preprint {preprint.id}: {e!r}")
                attempt = attempt.fail(e)
            else:
                attempt = attempt.succeed()
        return attempt

    @staticmethod
    def validate(item: Preprint | dict[str, Any]) -> Preprint:
        """Validate a raw listing item as a Preprint.

        Raises:
            ValidationError: If the item fails schema validation
        """
        if isinstance(item, Preprint):
            return item
        try:
            return Preprint.model_validate(item)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Preprint {item.get('id')} failed validation",
                errors=[str(err) for err in e.errors()],
            ) from e

    @staticmethod
    def _item_id(item: Preprint | dict[str, Any], position: int) -> str:
        if isinstance(item, Preprint):
            return item.id
        return str(item.get("id") or f"item-{position}")

    def migrate(self, preprint: Preprint) -> Path:
        """Build and write every output of one preprint.

        Returns:
            Path of the written XML document
        """
        graph = ResourceGraph(
            preprint,
            self.client,
            include_supplementary=self.settings.save_supplementary_files,
        )
        reconciler = VersionReconciler(graph)
        document = self.builder.build(graph, reconciler)
        bundle = self.generator.generate(document, preprint, reconciler)

        sql_dir = self.settings.sql_dir_for(preprint.id)
        sql_dir.mkdir(parents=True, exist_ok=True)
        for name, content in bundle.files().items():
            (sql_dir / name).write_text(content, encoding="utf-8")

        xml_path = self.settings.xml_path(preprint.id)
        xml_path.parent.mkdir(parents=True, exist_ok=True)
        xml_path.write_bytes(DocumentBuilder.serialize(document))
        self.logger.info(f"Wrote {xml_path}")
        return xml_path
