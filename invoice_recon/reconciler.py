"""
Reconciliation engine.

This module orchestrates one import run over a batch of supplier documents:
it classifies the files, extracts line items and the claimed invoice total,
persists the items, recomputes the system total over the items the batch
now holds with the supplier's tax/rounding rules and records the verdict
on a ReconciliationRun.

It also implements fee-override edits, which recompute the verdict for an
existing run from the line items already persisted for its batch.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .calculator import calculate_system_amount
from .config import (
    INVOICE_FILENAME_KEYWORDS,
    ITEMS_PDF_KEYWORDS,
    LISTING_FILENAME_KEYWORDS,
    MISMATCH_THRESHOLD,
    PROVISIONAL_TOTAL_SUPPLIERS,
    ErrorCategory,
    RunStatus,
    logger,
)
from .extractor import ExtractionError, extract_text_from_pdf_bytes
from .invoice_summary import extract_invoice_summary
from .schemas import (
    AmountVerdict,
    FeeOverrides,
    ImportResult,
    InvoiceSummary,
    LineItem,
    ReconciliationRun,
    SourceDocument,
    SupplierConfig,
)
from .selector import resolve_supplier_key, select_extractor
from .store import LineItemStore


DocumentLoader = Callable[[SourceDocument], bytes]

CSV_MEDIA_TYPE = "text/csv"
PDF_MEDIA_TYPE = "application/pdf"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _error(category: ErrorCategory, subject: str, message: str) -> str:
    return f"{category.value}:{subject}: {message}"


# ============================================================================
# Classification
# ============================================================================

def is_csv_document(document: SourceDocument) -> bool:
    return document.name.lower().endswith(".csv") or "csv" in (document.media_type or "").lower()


def is_pdf_document(document: SourceDocument) -> bool:
    return document.name.lower().endswith(".pdf") or "pdf" in (document.media_type or "").lower()


def classify_documents(
    documents: list[SourceDocument],
    supplier_name: str,
) -> tuple[list[SourceDocument], list[SourceDocument], list[SourceDocument], list[SourceDocument]]:
    """
    Split a batch into CSV items-files, PDF items-files and reference PDFs.

    A PDF is an items-file only when the supplier has a listing PDF layout and
    the filename carries that supplier's keyword (Apre ``落札明細``, RevaAuc
    ``精算書``, Ore ``Slip``). Listing order is preserved within each group.
    Documents that are neither CSV nor PDF by name or declared media type
    are returned separately as unsupported.

    Each group is later parsed as CSV or PDF, so the Selector only ever sees
    those two media types from the engine; its unsupported-type error is
    raised for direct callers such as the CLI ``extract`` command.

    Returns:
        (csv_files, items_pdfs, reference_pdfs, unsupported)
    """
    key = resolve_supplier_key(supplier_name)
    keyword = ITEMS_PDF_KEYWORDS.get(key)

    csv_files, items_pdfs, reference_pdfs, unsupported = [], [], [], []
    for document in documents:
        if is_csv_document(document):
            csv_files.append(document)
        elif is_pdf_document(document):
            if keyword and keyword in document.name:
                items_pdfs.append(document)
            else:
                reference_pdfs.append(document)
        else:
            logger.warning(f"Unsupported document type: {document.name} ({document.media_type})")
            unsupported.append(document)

    logger.info(
        f"Classified {len(documents)} documents: {len(csv_files)} CSV, "
        f"{len(items_pdfs)} items PDF, {len(reference_pdfs)} reference PDF, {len(unsupported)} unsupported"
    )
    return csv_files, items_pdfs, reference_pdfs, unsupported


def _has_keyword(name: str, keywords: list[str]) -> bool:
    lowered = name.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def sort_reference_pdfs(documents: list[SourceDocument]) -> list[SourceDocument]:
    """
    Reference PDFs worth scanning for a claimed total, in scan order.

    Only listing- or invoice-like filenames are kept; listings come first.
    The sort is stable so listing order breaks ties.
    """
    candidates = [
        document for document in documents
        if _has_keyword(document.name, LISTING_FILENAME_KEYWORDS)
        or _has_keyword(document.name, INVOICE_FILENAME_KEYWORDS)
    ]
    return sorted(
        candidates,
        key=lambda document: 0 if _has_keyword(document.name, LISTING_FILENAME_KEYWORDS) else 1,
    )


# ============================================================================
# Verdict
# ============================================================================

def compare_amounts(
    invoice_amount: Optional[float],
    system_amount: Optional[int],
    threshold: float = MISMATCH_THRESHOLD,
) -> AmountVerdict:
    """
    Compare the claimed total with the system total.

    A difference of ``threshold`` or more is a mismatch. A missing claimed
    total is always a mismatch: there is nothing to confirm the items against.
    """
    if invoice_amount is None or system_amount is None:
        return AmountVerdict(
            invoice_amount=invoice_amount,
            system_amount=system_amount,
            amount_difference=None,
            has_amount_mismatch=True,
        )

    difference = abs(invoice_amount - system_amount)
    return AmountVerdict(
        invoice_amount=invoice_amount,
        system_amount=system_amount,
        amount_difference=difference,
        has_amount_mismatch=difference >= threshold,
    )


def determine_status(succeeded: int, failed: int) -> RunStatus:
    """``error`` when nothing was saved despite failures, ``partial`` on some failures."""
    if failed > 0 and succeeded == 0:
        return RunStatus.ERROR
    if failed > 0:
        return RunStatus.PARTIAL
    return RunStatus.SUCCESS


def _apply_verdict(run: ReconciliationRun, verdict: AmountVerdict) -> None:
    run.invoice_amount = verdict.invoice_amount
    run.system_amount = verdict.system_amount
    run.amount_difference = verdict.amount_difference
    run.has_amount_mismatch = verdict.has_amount_mismatch

    if verdict.invoice_amount is None:
        logger.warning(f"Run {run.run_id}: no claimed total found, flagged as mismatch")
    elif verdict.has_amount_mismatch:
        logger.warning(
            f"Run {run.run_id}: amount mismatch: invoice={verdict.invoice_amount}, "
            f"system={verdict.system_amount}, difference={verdict.amount_difference}"
        )
    else:
        logger.info(f"Run {run.run_id}: amounts match at {verdict.system_amount}")


# ============================================================================
# Import Run
# ============================================================================

class _RunState:
    """Mutable accumulator for one import run."""

    def __init__(self, run: ReconciliationRun) -> None:
        self.run = run
        self.items: list[LineItem] = []
        self.summary: Optional[InvoiceSummary] = None
        self.summary_is_provisional = False


def _load_content(document: SourceDocument, loader: Optional[DocumentLoader]) -> bytes:
    if document.content is not None:
        return document.content
    if loader is None:
        raise ExtractionError(f"No content and no loader for {document.name}")
    return loader(document)


def _extract_items_file(
    state: _RunState,
    document: SourceDocument,
    media_type: str,
    supplier_name: str,
    extracted_texts: dict[str, str],
    loader: Optional[DocumentLoader],
) -> None:
    """Run one items-file through its extractor and fold the result into the run."""
    extractor = select_extractor(media_type, supplier_name)
    logger.info(f"Processing {document.name} with {extractor.name} extractor")

    if extractor.requires_external_text:
        text = extracted_texts.get(document.file_id)
        if text is None:
            logger.warning(f"Skipping {document.name}: no pre-extracted text supplied")
            state.run.errors.append(_error(
                ErrorCategory.EXTRACTION_UNAVAILABLE,
                document.name,
                "text must be extracted outside the engine",
            ))
            return
        data = text
    else:
        data = _load_content(document, loader)

    try:
        result = extractor.parse(data)
    except ExtractionError as e:
        logger.warning(f"Could not read {document.name}: {e}")
        state.run.errors.append(_error(ErrorCategory.UNRECOGNIZED_DOCUMENT, document.name, str(e)))
        return

    if not result.items and result.invoice_summary is None:
        logger.warning(f"No line items or totals recognized in {document.name}")
        state.run.errors.append(_error(
            ErrorCategory.UNRECOGNIZED_DOCUMENT,
            document.name,
            "no line items or totals recognized",
        ))
        return

    state.items.extend(result.items)
    logger.info(f"{document.name}: {len(result.items)} line items")

    if result.invoice_summary is not None and state.summary is None:
        state.summary = result.invoice_summary
        state.summary_is_provisional = (
            media_type == PDF_MEDIA_TYPE
            and resolve_supplier_key(supplier_name) in PROVISIONAL_TOTAL_SUPPLIERS
        )
        logger.info(f"Claimed total {state.summary.total_amount} taken from {document.name}")


def _scan_reference_pdfs(
    documents: list[SourceDocument],
    supplier_name: str,
    extracted_texts: dict[str, str],
    loader: Optional[DocumentLoader],
) -> Optional[InvoiceSummary]:
    """First claimed total found in the reference PDFs, structured layout first."""
    for document in sort_reference_pdfs(documents):
        logger.info(f"Scanning {document.name} for a claimed total")
        try:
            text = extracted_texts.get(document.file_id)
            content = None
            if text is None:
                content = _load_content(document, loader)
                text = extract_text_from_pdf_bytes(content)

            extractor = select_extractor(PDF_MEDIA_TYPE, supplier_name)
            summary = None
            try:
                if extractor.accepts_text:
                    summary = extractor.parse(text).invoice_summary
                elif content is not None:
                    summary = extractor.parse(content).invoice_summary
            except ExtractionError as e:
                logger.debug(f"{extractor.name} extractor found nothing in {document.name}: {e}")

            if summary is None:
                summary = extract_invoice_summary(text, supplier_name)
        except ExtractionError as e:
            logger.warning(f"Could not read reference document {document.name}: {e}")
            continue

        if summary is not None:
            logger.info(f"Claimed total {summary.total_amount} taken from {document.name}")
            return summary

    return None


def _persist_items(state: _RunState, store: LineItemStore) -> None:
    """
    Upsert every extracted item under the run's batch.

    An item whose product ID was already written earlier in the same run
    replaces that item; each replacement is recorded in the error list.
    """
    run = state.run
    saved_ids: set[str] = set()
    for item in state.items:
        run.items_processed += 1
        try:
            outcome = store.upsert_line_item(item.product_id, run.batch_key, item)
            logger.debug(f"{outcome}: {item.product_id}")
            run.items_succeeded += 1
            if item.product_id in saved_ids:
                logger.warning(f"Product ID {item.product_id} appears more than once in this batch")
                run.errors.append(_error(
                    ErrorCategory.DUPLICATE_PRODUCT_ID,
                    item.product_id,
                    f"replaces an earlier item of this run ({item.name})",
                ))
            saved_ids.add(item.product_id)
        except Exception as e:
            logger.error(f"Failed to save line item {item.product_id or item.name}: {e}")
            run.items_failed += 1
            run.errors.append(_error(ErrorCategory.PERSISTENCE_FAILURE, item.product_id or item.name, str(e)))


def reconcile(
    documents: list[SourceDocument],
    supplier_name: str,
    supplier_config: SupplierConfig,
    store: LineItemStore,
    batch_key: str,
    extracted_texts: Optional[dict[str, str]] = None,
    loader: Optional[DocumentLoader] = None,
) -> ImportResult:
    """
    Import one batch of supplier documents and record the verdict.

    Args:
        documents: Files of one auction/batch, in listing order
        supplier_name: Resolved supplier name (free text, aliases allowed)
        supplier_config: Tax, fee and rounding rules for the supplier
        store: Persistence collaborator for line items and runs
        batch_key: Auction/batch identifier the line items belong to
        extracted_texts: Pre-extracted text keyed by file ID, for layouts
            whose text cannot be extracted in-process
        loader: Fetches bytes for documents handed in without content

    Returns:
        ImportResult with counts, errors and the amount verdict

    Raises:
        UnsupportedFormatError: Propagated after the run is saved as ``error``
    """
    extracted_texts = extracted_texts or {}
    run = ReconciliationRun(batch_key=batch_key, supplier_name=supplier_name)
    store.save_run(run)

    run.status = RunStatus.PROCESSING
    store.save_run(run)
    logger.info(f"Run {run.run_id} started for {supplier_name} batch '{batch_key}' ({len(documents)} documents)")

    state = _RunState(run)
    try:
        csv_files, items_pdfs, reference_pdfs, unsupported = classify_documents(documents, supplier_name)

        for document in unsupported:
            run.errors.append(_error(
                ErrorCategory.UNRECOGNIZED_DOCUMENT,
                document.name,
                f"unsupported document type ({document.media_type or 'unknown'})",
            ))

        for document in csv_files:
            _extract_items_file(state, document, CSV_MEDIA_TYPE, supplier_name, extracted_texts, loader)
        for document in items_pdfs:
            _extract_items_file(state, document, PDF_MEDIA_TYPE, supplier_name, extracted_texts, loader)

        if state.summary is None or state.summary_is_provisional:
            reference = _scan_reference_pdfs(reference_pdfs, supplier_name, extracted_texts, loader)
            if reference is not None:
                if state.summary is not None:
                    logger.info(
                        f"Reference total {reference.total_amount} supersedes "
                        f"listing total {state.summary.total_amount}"
                    )
                state.summary = reference

        _persist_items(state, store)

        # Same item source as recompute_run: what the batch holds after saving
        persisted = store.find_line_items_for_batch(batch_key)
        system_amount = calculate_system_amount(persisted, supplier_config, run)
        invoice_amount = state.summary.total_amount if state.summary is not None else None
        _apply_verdict(run, compare_amounts(invoice_amount, system_amount))

        run.status = determine_status(run.items_succeeded, run.items_failed)
        run.completed_at = _utcnow()
        store.save_run(run)
    except Exception as e:
        logger.error(f"Run {run.run_id} failed: {e}")
        run.status = RunStatus.ERROR
        run.errors.append(_error(ErrorCategory.RUN_FAILURE, run.run_id, str(e)))
        run.completed_at = _utcnow()
        store.save_run(run)
        raise

    logger.info(
        f"Run {run.run_id} finished: {run.status.value}, "
        f"{run.items_succeeded}/{run.items_processed} items saved"
    )
    return ImportResult.from_run(run)


# ============================================================================
# Fee-Override Recomputation
# ============================================================================

def recompute_run(
    run: ReconciliationRun,
    items: list[LineItem],
    supplier_config: SupplierConfig,
) -> ReconciliationRun:
    """
    Recompute a run's system total and verdict from persisted line items.

    Uses the same fee resolution, calculator and comparison as the import
    path, so unchanged inputs reproduce the original verdict exactly.
    """
    updated = run.model_copy(deep=True)
    system_amount = calculate_system_amount(items, supplier_config, updated)
    _apply_verdict(updated, compare_amounts(updated.invoice_amount, system_amount))
    return updated


def update_fee_overrides(
    store: LineItemStore,
    run_id: str,
    overrides: FeeOverrides,
    supplier_config: SupplierConfig,
) -> ImportResult:
    """
    Edit a run's fee overrides and re-persist the recomputed verdict.

    Only fields present in ``overrides`` are applied; an explicit null clears
    the override so the supplier default applies again.

    Raises:
        StoreError: If the run does not exist
    """
    run = store.get_run(run_id)
    for field in overrides.model_fields_set:
        setattr(run, field, getattr(overrides, field))

    items = store.find_line_items_for_batch(run.batch_key)
    logger.info(f"Recomputing run {run_id} over {len(items)} line items after fee edit")

    updated = recompute_run(run, items, supplier_config)
    store.save_run(updated)
    return ImportResult.from_run(updated)


# ============================================================================
# Batch Loading & Reporting
# ============================================================================

MEDIA_TYPES_BY_SUFFIX = {
    ".csv": CSV_MEDIA_TYPE,
    ".pdf": PDF_MEDIA_TYPE,
}


def load_documents_from_dir(batch_dir: Path) -> list[SourceDocument]:
    """
    Read every CSV and PDF file in a directory as one batch.

    Files are listed in name order; the filename doubles as the file ID.

    Args:
        batch_dir: Directory holding one auction's documents

    Returns:
        SourceDocuments with their content loaded
    """
    if not batch_dir.exists():
        raise FileNotFoundError(f"Directory not found: {batch_dir}")

    documents = []
    for path in sorted(batch_dir.iterdir()):
        media_type = MEDIA_TYPES_BY_SUFFIX.get(path.suffix.lower())
        if not path.is_file() or media_type is None:
            continue
        documents.append(SourceDocument(
            file_id=path.name,
            name=path.name,
            media_type=media_type,
            content=path.read_bytes(),
        ))

    if not documents:
        logger.warning(f"No CSV or PDF files found in: {batch_dir}")
    else:
        logger.info(f"Found {len(documents)} documents in {batch_dir}")
    return documents


def format_result_text(result: ImportResult) -> str:
    """
    Format an ImportResult as human-readable text for CLI output.

    Args:
        result: ImportResult to format

    Returns:
        Formatted string for display
    """
    def amount(value: Optional[float]) -> str:
        return "-" if value is None else f"¥{value:,.0f}"

    lines = [
        "=" * 50,
        "RECONCILIATION SUMMARY",
        "=" * 50,
        f"Run:              {result.run_id}",
        f"Status:           {result.status.value}",
        f"Items processed:  {result.items_processed}",
        f"Items saved:      {result.items_succeeded}",
        f"Items failed:     {result.items_failed}",
        "",
        f"Invoice amount:   {amount(result.invoice_amount)}",
        f"System amount:    {amount(result.system_amount)}",
        f"Difference:       {amount(result.amount_difference)}",
        "",
    ]

    if result.has_amount_mismatch:
        if result.invoice_amount is None:
            lines.append("!! AMOUNT MISMATCH: no invoice total found")
        else:
            lines.append("!! AMOUNT MISMATCH")
        lines.append("")

    if result.errors:
        lines.append("Errors:")
        lines.append("-" * 40)
        for error in result.errors:
            lines.append(f"  {error}")
        lines.append("")

    lines.append("=" * 50)

    return "\n".join(lines)
