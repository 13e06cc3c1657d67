"""
Vendor Import Job Handler

Runs one queued vendor import:
1. Load the target statement; it must belong to the job's organization
2. Refuse a vendor/description pair already imported for the month, and a
   job that already left unmatched items
3. Extract per-property expense lines from the document
4. Match vendor property names against the month's properties
5. Write matched expenses and unmatched items, then recompute totals of
   every touched statement, all in one transaction
6. Report the outcome

Failures after step 1 leave the job failed; nothing is committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from logging_config import bind_job_context
from sentry_integration import capture_exception
from vendor_import.errors import DuplicateImportError, NotFoundError, VendorImportError
from vendor_import.job_store import JobStatus, JobStore
from vendor_import.matching_rules import KnownProperty, PropertyMatcher
from vendor_import.schemas import VendorImportJob
from vendor_import.services.extraction import VendorDocumentExtractor
from vendor_import.services.statement_store import (
    NewExpense, NewUnmatchedItem, StatementRef, StatementStore
)
from vendor_import.services.totals import recompute_statement_totals

logger = logging.getLogger(__name__)

DEFAULT_EXPENSE_DAY = 15


@dataclass
class JobResult:
    """Outcome of a vendor import job."""
    job_id: str
    status: JobStatus
    message: str
    updated_count: int = 0
    created_count: int = 0
    matched: Dict[str, Any] = field(default_factory=dict)
    unmatched: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "message": self.message,
            "updated_count": self.updated_count,
            "created_count": self.created_count,
            "matched": self.matched,
            "unmatched": list(self.unmatched),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobResult":
        return cls(
            job_id=data["job_id"],
            status=JobStatus(data["status"]),
            message=data["message"],
            updated_count=data.get("updated_count", 0),
            created_count=data.get("created_count", 0),
            matched=dict(data.get("matched") or {}),
            unmatched=list(data.get("unmatched") or []),
        )


def default_expense_date(statement_month: date) -> date:
    """Date used for lines the vendor did not date: the 15th of the statement month."""
    return statement_month.replace(day=DEFAULT_EXPENSE_DAY)


class VendorImportJobHandler:
    """
    Processes vendor import jobs delivered by the queue.

    Collaborators are injected; one handler instance serves one request.
    """

    def __init__(
        self,
        store: StatementStore,
        matcher: PropertyMatcher,
        extractor: VendorDocumentExtractor,
        job_store: JobStore
    ):
        self.store = store
        self.matcher = matcher
        self.extractor = extractor
        self.job_store = job_store

    async def handle(self, job: VendorImportJob, final_attempt: bool = True) -> JobResult:
        """
        Process a job.

        Args:
            job: queue payload
            final_attempt: False when the queue will redeliver on failure

        Raises:
            NotFoundError, DuplicateImportError, ExtractionError,
            PersistenceFailure: the job failed; re-raised after recording
        """
        bind_job_context(job.job_id, org_id=job.org_id, user_id=job.user_id)

        previous = self.job_store.get(job.job_id)
        if previous is not None and previous.status == JobStatus.COMPLETED and previous.result:
            logger.info(
                f"Vendor import job {job.job_id} already completed; skipping redelivery",
                extra={"job_id": job.job_id}
            )
            return JobResult.from_dict(previous.result)

        self.job_store.mark_processing(
            job.job_id, job.org_id, job.user_id, job.current_statement_id
        )
        logger.info(
            f"Processing vendor import job {job.job_id}",
            extra={"job_id": job.job_id, "org_id": job.org_id, "vendor": job.vendor}
        )

        try:
            result = await self._run(job)
        except Exception as e:
            self._record_failure(job, e, final_attempt)
            raise

        self.job_store.mark_completed(job.job_id, result.message, result.to_dict())
        logger.info(
            f"Vendor import job {job.job_id} completed",
            extra={
                "job_id": job.job_id,
                "updated_count": result.updated_count,
                "created_count": result.created_count,
                "unmatched_count": len(result.unmatched),
            }
        )
        return result

    def _record_failure(self, job: VendorImportJob, error: Exception, final_attempt: bool):
        message = error.message if isinstance(error, VendorImportError) else str(error)
        if isinstance(error, VendorImportError):
            error.job_id = job.job_id

        logger.error(
            f"Vendor import job {job.job_id} failed: {message}",
            exc_info=True,
            extra={"job_id": job.job_id, "org_id": job.org_id}
        )
        capture_exception(
            error,
            tags={"job_id": job.job_id, "component": "vendor_import"},
            statement_id=job.current_statement_id,
        )

        # Deterministic outcomes do not improve on redelivery
        if final_attempt or isinstance(error, (NotFoundError, DuplicateImportError)):
            self.job_store.mark_failed(job.job_id, message)
        else:
            self.job_store.mark_retrying(job.job_id, message)

    async def _run(self, job: VendorImportJob) -> JobResult:
        statement = await self.store.find_statement(job.current_statement_id)
        if statement is None or statement.management_group_id != job.org_id:
            raise NotFoundError("Statement not found", job_id=job.job_id)

        month = statement.statement_month

        duplicate = await self.store.find_duplicate_expense(
            job.org_id, month, job.vendor, job.description
        )
        if duplicate:
            raise DuplicateImportError(
                f'Vendor "{job.vendor}" with description "{job.description}" '
                f"already has expenses for this month",
                job_id=job.job_id
            )

        # Redelivery of a job whose lines all went to unmatched items
        if await self.store.has_unmatched_items(job.job_id):
            raise DuplicateImportError(
                f"Vendor import job {job.job_id} was already processed",
                job_id=job.job_id
            )

        month_statements = await self.store.list_month_statements(job.org_id, month)
        properties, statement_by_property = await self._month_properties(job.org_id, month_statements)

        extracted = await self.extractor.extract(
            job.pdf_base64, [p.name for p in properties]
        )

        match_result = await self.matcher.match(list(extracted.keys()), properties)

        fallback_date = default_expense_date(month)
        expenses: List[NewExpense] = []
        unmatched_items: List[NewUnmatchedItem] = []
        touched = set()

        for name, match in match_result.matches.items():
            target = statement_by_property[match.property_id]
            touched.add(target.id)
            for line in extracted[name]:
                expenses.append(NewExpense(
                    owner_statement_id=target.id,
                    date=line.date or fallback_date,
                    description=job.description,
                    vendor=job.vendor,
                    amount=line.amount,
                ))

        for name in match_result.unmatched:
            for line in extracted[name]:
                unmatched_items.append(NewUnmatchedItem(
                    job_id=job.job_id,
                    management_group_id=job.org_id,
                    statement_month=month,
                    property_name=name,
                    vendor=job.vendor,
                    description=job.description,
                    date=line.date or fallback_date,
                    amount=line.amount,
                    created_by=job.user_id,
                ))

        async with self.store.transaction(touched):
            created = await self.store.write_line_items(expenses)
            await self.store.write_unmatched_items(unmatched_items)
            for statement_id in sorted(touched):
                await recompute_statement_totals(self.store, statement_id, job.user_id)

        return JobResult(
            job_id=job.job_id,
            status=JobStatus.COMPLETED,
            message=f"Successfully processed expenses for {len(touched)} properties",
            updated_count=len(touched),
            created_count=created,
            matched={name: m.to_dict() for name, m in match_result.matches.items()},
            unmatched=list(match_result.unmatched),
        )

    async def _month_properties(self, org_id: str, month_statements: List[StatementRef]):
        """
        Properties in scope for matching, and the statement to write to for each.

        Only properties with a live statement in the month are candidates.
        """
        statement_by_property: Dict[str, StatementRef] = {}
        for s in month_statements:
            statement_by_property.setdefault(s.property_id, s)

        registry = {
            p.id: p for p in await self.store.list_properties(org_id, list(statement_by_property))
        }

        properties: List[KnownProperty] = []
        for property_id, s in statement_by_property.items():
            known: Optional[KnownProperty] = registry.get(property_id)
            if known is None:
                if not s.property_name:
                    continue
                known = KnownProperty(id=property_id, name=s.property_name)
            properties.append(known)

        return properties, statement_by_property
