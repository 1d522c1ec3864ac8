from __future__ import annotations

from ..models.batch_outcome import BatchOutcome

"""SUMMARY line rendering for an ingest run."""


def _format_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # avoid scientific notation for very small numbers
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(table: str, outcome: BatchOutcome, elapsed_seconds: float) -> str:
    """Render the SUMMARY line for one persisted table.

    Format:
    SUMMARY table={table} processed={n} errors={m} skipped={k} elapsed_sec={s}

    Examples:
        >>> from grid_ingest.models.batch_outcome import BatchOutcome
        >>> o = BatchOutcome(success=True, message="Processed: 3, Errors: 0",
        ...                  processed_count=3, error_count=0)
        >>> render_summary_line("ml_sales", o, 2.0)
        'SUMMARY table=ml_sales processed=3 errors=0 skipped=0 elapsed_sec=2'
    """
    return (
        f"SUMMARY table={table} "
        f"processed={outcome.processed_count} "
        f"errors={outcome.error_count} "
        f"skipped={outcome.skipped_count} "
        f"elapsed_sec={_format_seconds(elapsed_seconds)}"
    )
