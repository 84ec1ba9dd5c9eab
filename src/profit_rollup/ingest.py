"""Settlement and cost-sheet normalisation into typed records."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable

import pandas as pd

from .channels import FulfillmentTag, parse_fulfillment_tag
from .config import ProductCostOverride
from .shipping import ShippingSource, parse_shipping_source

logger = logging.getLogger(__name__)

ORDER = "Order"
REFUND = "Refund"

_NON_ALNUM = re.compile(r"[^0-9a-z]")


@dataclass(frozen=True)
class Transaction:
    """One settlement-ledger line. Amounts are in the marketplace's currency."""

    sku: str
    marketplace: str
    kind: str
    fulfillment: FulfillmentTag = FulfillmentTag.UNKNOWN
    quantity: float = 0.0
    product_sales: float = 0.0
    promotional_rebates: float = 0.0
    selling_fees: float = 0.0
    fba_fees: float = 0.0
    vat: float = 0.0
    total: float = 0.0
    name: str | None = None
    parent: str | None = None
    asin: str | None = None
    category: str | None = None
    timestamp: datetime | None = None
    # Cost enrichment carried by some exports
    unit_cost: float | None = None
    weight: float | None = None
    custom_shipping: float | None = None
    shipping_source: ShippingSource | None = None


# Normalised header -> canonical field
_TRANSACTION_ALIASES: dict[str, str] = {
    "sku": "sku",
    "marketplace": "marketplace",
    "marketplacecode": "marketplace",
    "type": "kind",
    "kind": "kind",
    "categorytype": "kind",
    "fulfillment": "fulfillment",
    "fulfilment": "fulfillment",
    "quantity": "quantity",
    "productsales": "product_sales",
    "promotionalrebates": "promotional_rebates",
    "sellingfees": "selling_fees",
    "fbafees": "fba_fees",
    "vat": "vat",
    "marketplacewithheldtax": "vat",
    "total": "total",
    "name": "name",
    "parent": "parent",
    "asin": "asin",
    "category": "category",
    "productcategory": "category",
    "datetime": "timestamp",
    "date": "timestamp",
    "timestamp": "timestamp",
    "cost": "unit_cost",
    "unitcost": "unit_cost",
    "productcost": "unit_cost",
    "size": "weight",
    "desi": "weight",
    "weight": "weight",
    "productsize": "weight",
    "customshipping": "custom_shipping",
    "productcustomshipping": "custom_shipping",
    "fbmsource": "shipping_source",
    "productfbmsource": "shipping_source",
    "shippingsource": "shipping_source",
    "source": "shipping_source",
}


def _normalize_col(name: str) -> str:
    return _NON_ALNUM.sub("", str(name).lower())


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return isinstance(value, str) and not value.strip()


def _text(value: Any) -> str | None:
    if _is_blank(value):
        return None
    return re.sub(r"\s+", " ", str(value)).strip()


def _num(value: Any) -> float | None:
    """
    Parse an amount cell.

    Accepts floats, ints and strings such as ``"1,234.50"`` or ``" -3.2 "``.
    Returns ``None`` for blank or unparseable input.
    """
    if _is_blank(value):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).replace(",", "").strip()
    try:
        return float(cleaned)
    except ValueError:
        logger.debug("Unparseable amount %r", value)
        return None


def _timestamp(value: Any) -> datetime | None:
    if _is_blank(value):
        return None
    parsed = pd.to_datetime(value, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def canonical_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Rename recognised headers to canonical field names (copy)."""
    mapping: dict[str, str] = {}
    for col in df.columns:
        target = _TRANSACTION_ALIASES.get(_normalize_col(col))
        if target and target not in mapping.values():
            mapping[col] = target
    return df.rename(columns=mapping)


def transactions_from_dataframe(df: pd.DataFrame) -> list[Transaction]:
    """Convert a settlement DataFrame into :class:`Transaction` records."""
    df = canonical_columns(df)
    missing = [c for c in ("sku", "marketplace", "kind") if c not in df.columns]
    if missing:
        raise ValueError(f"Settlement data is missing required columns: {', '.join(missing)}")

    records: list[Transaction] = []
    for row in df.to_dict(orient="records"):
        records.append(
            Transaction(
                sku=_text(row.get("sku")) or "",
                marketplace=(_text(row.get("marketplace")) or "").upper(),
                kind=_text(row.get("kind")) or "",
                fulfillment=parse_fulfillment_tag(_text(row.get("fulfillment"))),
                quantity=_num(row.get("quantity")) or 0.0,
                product_sales=_num(row.get("product_sales")) or 0.0,
                promotional_rebates=_num(row.get("promotional_rebates")) or 0.0,
                selling_fees=_num(row.get("selling_fees")) or 0.0,
                fba_fees=_num(row.get("fba_fees")) or 0.0,
                vat=_num(row.get("vat")) or 0.0,
                total=_num(row.get("total")) or 0.0,
                name=_text(row.get("name")),
                parent=_text(row.get("parent")),
                asin=_text(row.get("asin")),
                category=_text(row.get("category")),
                timestamp=_timestamp(row.get("timestamp")),
                unit_cost=_num(row.get("unit_cost")),
                weight=_num(row.get("weight")),
                custom_shipping=_num(row.get("custom_shipping")),
                shipping_source=parse_shipping_source(_text(row.get("shipping_source"))),
            )
        )
    logger.info("Normalised %d settlement rows", len(records))
    return records


def cost_overrides_from_dataframe(df: pd.DataFrame) -> dict[str, ProductCostOverride]:
    """
    Convert a cost sheet into per-SKU overrides keyed by SKU.

    Rows without a SKU are dropped.  A later row for the same SKU replaces
    an earlier one.
    """
    df = canonical_columns(df)
    if "sku" not in df.columns:
        raise ValueError("Cost data is missing the SKU column")

    overrides: dict[str, ProductCostOverride] = {}
    for row in df.to_dict(orient="records"):
        sku = _text(row.get("sku"))
        if not sku:
            continue
        overrides[sku] = ProductCostOverride(
            sku=sku,
            unit_cost=_num(row.get("unit_cost")),
            weight=_num(row.get("weight")),
            custom_shipping=_num(row.get("custom_shipping")),
            shipping_source=parse_shipping_source(_text(row.get("shipping_source"))),
            name=_text(row.get("name")),
            parent=_text(row.get("parent")),
            category=_text(row.get("category")),
            asin=_text(row.get("asin")),
        )
    logger.info("Loaded cost data for %d SKUs", len(overrides))
    return overrides


def load_transactions_csv(path: str | Path) -> list[Transaction]:
    return transactions_from_dataframe(pd.read_csv(Path(path), dtype=str, low_memory=False))


def load_cost_overrides_csv(path: str | Path) -> dict[str, ProductCostOverride]:
    return cost_overrides_from_dataframe(pd.read_csv(Path(path), dtype=str, low_memory=False))


def filter_by_date(
    transactions: Iterable[Transaction],
    start: date | None = None,
    end: date | None = None,
) -> list[Transaction]:
    """Keep transactions dated within [start, end]; undated rows are kept."""
    kept = []
    for t in transactions:
        if t.timestamp is not None:
            day = t.timestamp.date()
            if start is not None and day < start:
                continue
            if end is not None and day > end:
                continue
        kept.append(t)
    return kept
