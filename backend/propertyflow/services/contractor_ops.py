"""Status rules and numbering for contractor jobs and invoices."""

from typing import Iterable

from propertyflow.models.contractor import ContractorProfile
from propertyflow.models.enums import ContractorJobStatus, InvoiceStatus

JOB_TRANSITIONS: dict[ContractorJobStatus, frozenset[ContractorJobStatus]] = {
    ContractorJobStatus.QUOTED: frozenset({ContractorJobStatus.SCHEDULED, ContractorJobStatus.CANCELED}),
    ContractorJobStatus.SCHEDULED: frozenset({ContractorJobStatus.IN_PROGRESS, ContractorJobStatus.CANCELED}),
    ContractorJobStatus.IN_PROGRESS: frozenset({ContractorJobStatus.COMPLETED, ContractorJobStatus.CANCELED}),
    ContractorJobStatus.COMPLETED: frozenset(),
    ContractorJobStatus.CANCELED: frozenset(),
}

# Jobs in these states no longer count against active_jobs
FINAL_JOB_STATUSES = frozenset({ContractorJobStatus.COMPLETED, ContractorJobStatus.CANCELED})

INVOICE_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.VOID}),
    InvoiceStatus.SENT: frozenset({InvoiceStatus.PAID, InvoiceStatus.VOID}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.VOID: frozenset(),
}


def can_transition_job(current: ContractorJobStatus, target: ContractorJobStatus) -> bool:
    return target in JOB_TRANSITIONS[current]


def can_transition_invoice(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    return target in INVOICE_TRANSITIONS[current]


def format_invoice_number(sequence: int) -> str:
    """7 -> "INV-000007"."""
    return f"INV-{sequence:06d}"


def claim_invoice_number(contractor: ContractorProfile) -> str:
    """Take the contractor's next invoice number and advance the sequence."""
    sequence = contractor.next_invoice_number or 1
    contractor.next_invoice_number = sequence + 1
    return format_invoice_number(sequence)


def invoice_total_cents(line_items: Iterable[dict]) -> int:
    return sum(int(item["quantity"]) * int(item["unit_price_cents"]) for item in line_items)
