"""
Command-line interface for the Invoice Reconciliation Service.

Provides the main commands:
- extract: Extract line items and the claimed total from one document to JSON
- reconcile: Import a directory of supplier documents and report the verdict
- recompute: Edit a run's fee overrides and recompute its verdict
"""

import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError

from .config import TaxType, logger
from .extractor import extract_text_from_pdf_bytes
from .reconciler import (
    MEDIA_TYPES_BY_SUFFIX,
    format_result_text,
    load_documents_from_dir,
    reconcile as reconcile_batch,
    update_fee_overrides,
)
from .schemas import FeeOverrides, SupplierConfig
from .selector import select_extractor
from .store import StoreError, open_store


# Create Typer app
app = typer.Typer(
    name="invoice-recon",
    help="Supplier Invoice Reconciliation Service CLI",
    add_completion=False,
)


def load_supplier_config(path: Optional[Path]) -> SupplierConfig:
    """Read a SupplierConfig JSON file (camelCase or snake_case keys); defaults when absent."""
    if path is None:
        return SupplierConfig()
    with open(path, "r", encoding="utf-8") as f:
        return SupplierConfig.model_validate(json.load(f))


def load_extracted_texts(path: Optional[Path]) -> dict[str, str]:
    """Read a ``{fileId: text}`` JSON map of text extracted outside the engine."""
    if path is None:
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError("Extracted-texts file must hold a JSON object keyed by file ID")
    return {str(key): str(value) for key, value in data.items()}


@app.command()
def extract(
    file: Path = typer.Option(
        ...,
        "--file",
        "-f",
        help="Supplier CSV or PDF document",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    supplier: str = typer.Option(
        "",
        "--supplier",
        "-s",
        help="Supplier name (aliases such as 大吉 or アプレ are recognized)",
    ),
    text_file: Optional[Path] = typer.Option(
        None,
        "--text-file",
        "-t",
        help="Pre-extracted text of the document, for layouts that need it",
        exists=True,
        dir_okay=False,
    ),
    output: Path = typer.Option(
        "extracted_items.json",
        "--output",
        "-o",
        help="Output JSON file path",
    ),
) -> None:
    """
    Extract line items from one supplier document to JSON.

    The extractor is chosen from the file suffix and the supplier name.
    """
    typer.echo(f"Extracting line items from: {file}")

    try:
        media_type = MEDIA_TYPES_BY_SUFFIX.get(file.suffix.lower(), file.suffix.lstrip("."))
        extractor = select_extractor(media_type, supplier)

        if text_file is not None and extractor.accepts_text:
            data = text_file.read_text(encoding="utf-8")
        elif extractor.requires_external_text:
            data = extract_text_from_pdf_bytes(file.read_bytes())
        else:
            data = file.read_bytes()

        result = extractor.parse(data)

        with open(output, "w", encoding="utf-8") as f:
            json.dump(result.model_dump(mode="json", by_alias=True), f, indent=2, ensure_ascii=False)

        typer.echo(f"\n[OK] Extracted {len(result.items)} line item(s) with the {extractor.name} extractor to: {output}")
        for item in result.items[:10]:  # Show first 10
            typer.echo(f"  - {item.product_id} | {item.name} | {item.purchase_price:,.0f} + {item.commission:,.0f}")
        if len(result.items) > 10:
            typer.echo(f"  ... and {len(result.items) - 10} more")
        if result.invoice_summary is not None:
            typer.echo(f"\nClaimed total: ¥{result.invoice_summary.total_amount:,.0f}")

    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Error during extraction: {e}", err=True)
        logger.exception("Extraction failed")
        raise typer.Exit(code=1)


@app.command()
def reconcile(
    batch_dir: Path = typer.Option(
        ...,
        "--dir",
        "-d",
        help="Directory holding one auction's CSV/PDF documents",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    supplier: str = typer.Option(
        ...,
        "--supplier",
        "-s",
        help="Supplier name (aliases such as 大吉 or アプレ are recognized)",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="SupplierConfig JSON file (tax types, rate, fees, rounding)",
        exists=True,
        dir_okay=False,
    ),
    batch_key: Optional[str] = typer.Option(
        None,
        "--batch",
        "-b",
        help="Batch/auction key (defaults to the directory name)",
    ),
    store_path: Path = typer.Option(
        "recon_store.json",
        "--store",
        help="JSON file persisting line items and runs",
    ),
    texts: Optional[Path] = typer.Option(
        None,
        "--texts",
        "-t",
        help="JSON map of file name to pre-extracted text",
        exists=True,
        dir_okay=False,
    ),
    report: Optional[Path] = typer.Option(
        None,
        "--report",
        "-r",
        help="Also write the result JSON to this file",
    ),
    fail_on_mismatch: bool = typer.Option(
        False,
        "--fail-on-mismatch",
        help="Exit with non-zero status if the amounts do not match",
    ),
) -> None:
    """
    Reconcile a batch of supplier documents against the invoice total.

    Extracts and persists line items, recomputes the system total with the
    supplier's rules and compares it with the claimed invoice total.
    """
    typer.echo(f"Reconciling documents in: {batch_dir}")

    try:
        supplier_config = load_supplier_config(config)
        documents = load_documents_from_dir(batch_dir)
        if not documents:
            typer.echo("No CSV or PDF documents found.", err=True)
            raise typer.Exit(code=1)

        result = reconcile_batch(
            documents,
            supplier_name=supplier,
            supplier_config=supplier_config,
            store=open_store(store_path),
            batch_key=batch_key or batch_dir.name,
            extracted_texts=load_extracted_texts(texts),
        )

        if report is not None:
            with open(report, "w", encoding="utf-8") as f:
                json.dump(result.model_dump(mode="json", by_alias=True), f, indent=2, ensure_ascii=False)

        typer.echo("\n" + format_result_text(result))
        if report is not None:
            typer.echo(f"\n[OK] Result saved to: {report}")

        if fail_on_mismatch and result.has_amount_mismatch:
            raise typer.Exit(code=1)

    except typer.Exit:
        raise
    except (json.JSONDecodeError, ValidationError) as e:
        typer.echo(f"Error: Invalid configuration: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Error during reconciliation: {e}", err=True)
        logger.exception("Reconciliation failed")
        raise typer.Exit(code=1)


@app.command()
def recompute(
    run_id: str = typer.Option(..., "--run-id", help="Run to recompute"),
    config: Path = typer.Option(
        ...,
        "--config",
        "-c",
        help="SupplierConfig JSON file the run was imported with",
        exists=True,
        dir_okay=False,
    ),
    store_path: Path = typer.Option(
        "recon_store.json",
        "--store",
        help="JSON file persisting line items and runs",
    ),
    participation_fee: Optional[float] = typer.Option(
        None, "--participation-fee", min=0, help="Participation fee override"
    ),
    participation_fee_tax_type: Optional[TaxType] = typer.Option(
        None, "--participation-fee-tax-type", help="Tax type of the participation fee override"
    ),
    shipping_fee: Optional[float] = typer.Option(
        None, "--shipping-fee", min=0, help="Shipping fee override"
    ),
    shipping_fee_tax_type: Optional[TaxType] = typer.Option(
        None, "--shipping-fee-tax-type", help="Tax type of the shipping fee override"
    ),
    clear_participation_fee: bool = typer.Option(
        False, "--clear-participation-fee", help="Remove the participation fee override"
    ),
    clear_shipping_fee: bool = typer.Option(
        False, "--clear-shipping-fee", help="Remove the shipping fee override"
    ),
) -> None:
    """
    Edit a run's fee overrides and recompute its verdict.

    The system total is recomputed over the line items currently stored for
    the run's batch; the claimed total is kept.
    """
    changes: dict = {}
    if clear_participation_fee:
        changes.update(participation_fee=None, participation_fee_tax_type=None)
    elif participation_fee is not None:
        changes["participation_fee"] = participation_fee
        changes["participation_fee_tax_type"] = participation_fee_tax_type
    if clear_shipping_fee:
        changes.update(shipping_fee=None, shipping_fee_tax_type=None)
    elif shipping_fee is not None:
        changes["shipping_fee"] = shipping_fee
        changes["shipping_fee_tax_type"] = shipping_fee_tax_type

    try:
        result = update_fee_overrides(
            open_store(store_path),
            run_id,
            FeeOverrides(**changes),
            load_supplier_config(config),
        )
        typer.echo("\n" + format_result_text(result))

    except StoreError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    except Exception as e:
        typer.echo(f"Error during recomputation: {e}", err=True)
        logger.exception("Recomputation failed")
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show version information."""
    from . import __version__
    typer.echo(f"Invoice Reconciliation Service v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
