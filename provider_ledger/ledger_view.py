"""Route for browsing the ledger store as HTML tables."""
from __future__ import annotations

import html
import json
from typing import Any, Dict, Iterable, List, Mapping

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse

from provider_ledger.dependencies.services import get_ledger_store
from provider_ledger.schemas.billing import Invoice
from provider_ledger.schemas.provider import Provider, ProviderFilters
from provider_ledger.services.exceptions import ServiceError
from provider_ledger.services.ledger import LedgerStore

router = APIRouter()


def _stringify(value: Any) -> str:
    """Return a JSON-friendly string representation for table cells."""
    if value is None:
        return ""
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    return json.dumps(value, default=str)


def _build_table(title: str, rows: Iterable[Mapping[str, Any]]) -> str:
    row_list: List[Dict[str, Any]] = [dict(row) for row in rows]
    section_parts = [f"<section><h2>{html.escape(title)}</h2>"]
    if not row_list:
        section_parts.append("<p>No records found.</p></section>")
        return "".join(section_parts)

    columns: List[str] = []
    for row in row_list:
        for key in row.keys():
            if key not in columns:
                columns.append(key)

    header = "".join(f"<th>{html.escape(column)}</th>" for column in columns)
    body_rows: List[str] = []
    for row in row_list:
        cells = [f"<td>{html.escape(_stringify(row.get(column)))}</td>" for column in columns]
        body_rows.append("<tr>" + "".join(cells) + "</tr>")
    section_parts.append(
        "<table><thead><tr>"
        + header
        + "</tr></thead><tbody>"
        + "".join(body_rows)
        + "</tbody></table></section>"
    )
    return "".join(section_parts)


def _provider_rows(providers: Iterable[Provider]) -> List[Dict[str, Any]]:
    return [
        {
            "id": provider.id,
            "document": provider.document,
            "name": provider.name,
            "contact": provider.contact_name,
            "email": provider.email,
            "city": provider.city,
            "payment_terms": provider.payment_terms,
            "active": provider.is_active,
        }
        for provider in providers
    ]


def _invoice_rows(invoices: Iterable[Invoice]) -> List[Dict[str, Any]]:
    return [
        {
            "id": invoice.id,
            "provider": invoice.provider_name,
            "number": invoice.invoice_number,
            "date": invoice.date.date().isoformat(),
            "total": f"{invoice.total_cost:,.2f}",
            "paid": f"{invoice.paid_amount:,.2f}",
            "balance": f"{invoice.balance:,.2f}",
            "status": invoice.status,
            "payments": len(invoice.payments),
        }
        for invoice in invoices
    ]


@router.get("/ledger-view", response_class=HTMLResponse)
async def view_ledger(store: LedgerStore = Depends(get_ledger_store)) -> HTMLResponse:
    """Render the store's providers, invoices and totals."""
    try:
        await store.fetch_providers()
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=store.error or str(exc)) from exc
    stats = store.get_providers_stats()
    totals = [
        {
            "providers": stats.total_providers,
            "active": stats.active_providers,
            "invoices": stats.total_invoices,
            "pending": stats.pending_invoices,
            "debt": f"{stats.total_debt:,.2f}",
            "paid": f"{stats.total_paid:,.2f}",
        }
    ]
    all_providers = store.get_filtered_providers(
        search_term="", filters=ProviderFilters(status="all")
    )
    sections = [
        _build_table("Summary", totals),
        _build_table("Providers", _provider_rows(all_providers)),
        _build_table("Invoices", _invoice_rows(store.get_filtered_invoices())),
        _build_table(
            "Top Providers",
            (entry.model_dump() for entry in stats.top_providers),
        ),
    ]

    sections_html = "".join(sections)
    html_content = f"""
    <html>
        <head>
            <title>Ledger Overview</title>
            <style>
                body {{ font-family: Arial, sans-serif; margin: 2rem; }}
                h1 {{ text-align: center; }}
                section {{ margin-bottom: 2rem; }}
                table {{ border-collapse: collapse; width: 100%; }}
                th, td {{ border: 1px solid #ccc; padding: 0.5rem; text-align: left; }}
                th {{ background-color: #f0f0f0; }}
            </style>
        </head>
        <body>
            <h1>Ledger Overview</h1>
            {sections_html}
        </body>
    </html>
    """
    return HTMLResponse(content=html_content)
