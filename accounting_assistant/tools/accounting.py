"""LangChain tools over the accounting dataset.

Each tool wraps one :class:`AccountingDataset` query and returns the
rendered Turkish text block the model relays to the business owner.
Argument schemas are derived by LangChain from the signatures, so the
``Literal`` filters below are what the model sees as allowed values.
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from langchain_core.tools import BaseTool, tool

from accounting_assistant.services.dataset import get_dataset

logger = logging.getLogger(__name__)

InvoiceFilter = Literal["tümü", "ödendi", "beklemede", "kısmi ödendi", "gecikmiş"]
PaymentType = Literal["tümü", "nakit", "cek", "kredi_karti", "senet", "havale"]
TaxFilter = Literal["tümü", "ödendi", "beklemede"]


# ── Overview ─────────────────────────────────────────────────────────


@tool
def get_company_info() -> str:
    """Get the company profile: name, tax number, sector, address."""
    return get_dataset().company_info()


@tool
def get_summary() -> str:
    """Get the overall business summary: revenue, expenses, net profit,
    profit margin, receivables, payables and stock value."""
    return get_dataset().summary()


@tool
def search_records(query: str) -> str:
    """Free-text search across invoices (number, customer) and stock
    (product name, code, category).

    Args:
        query: Text to look for, e.g. "Ege Ofis" or "tablet".
    """
    return get_dataset().search_text(query)


# ── Sales invoices & customers ───────────────────────────────────────


@tool
def get_invoices(status: InvoiceFilter = "tümü") -> str:
    """List sales invoices, optionally filtered by payment status.

    Args:
        status: "tümü" for all, or one of "ödendi", "beklemede",
                "kısmi ödendi", "gecikmiş" (overdue).
    """
    return get_dataset().invoices(status)


@tool
def get_invoice_detail(invoice_id: str) -> str:
    """Get the full detail of one sales invoice.

    Args:
        invoice_id: Invoice number, e.g. "FT-2025-003" (case-insensitive).
    """
    return get_dataset().invoice_detail(invoice_id)


@tool
def get_overdue_customers() -> str:
    """List customers with overdue invoices and those who paid only partially."""
    return get_dataset().overdue_customers()


@tool
def get_customer_analysis(customer_name: str | None = None) -> str:
    """Per-customer invoice count, revenue and last purchase date.

    Args:
        customer_name: Optional (partial) customer name; omit for all customers.
    """
    return get_dataset().customer_analysis(customer_name)


@tool
def get_customer_details(customer_name: str | None = None) -> str:
    """Customer master data: contact, payment terms, credit limit, risk score.

    Args:
        customer_name: Optional (partial) customer name.
    """
    return get_dataset().customer_details(customer_name)


@tool
def get_collections(payment_type: PaymentType = "tümü") -> str:
    """List received payments (collections), optionally by payment type.

    Args:
        payment_type: "tümü", "nakit", "cek", "kredi_karti", "senet" or "havale".
    """
    return get_dataset().collections(payment_type)


@tool
def get_receivables() -> str:
    """List open receivables with due dates and days overdue."""
    return get_dataset().receivables()


# ── Stock & products ─────────────────────────────────────────────────


@tool
def get_stock(low_stock_only: bool = False) -> str:
    """Show stock levels and values.

    Args:
        low_stock_only: When true, only items at or below their minimum level.
    """
    return get_dataset().stock(low_stock_only)


@tool
def get_top_selling_products(last_months: int = 2) -> str:
    """Best-selling products by revenue over the trailing period.

    Args:
        last_months: How many months back to look (default 2).
    """
    return get_dataset().top_selling_products(last_months)


@tool
def get_category_sales() -> str:
    """Sales totals per product category with each category's share."""
    return get_dataset().category_sales()


@tool
def get_product_profit_margin(product_name: str | None = None) -> str:
    """Purchase cost vs. sale price and profit margin per product.

    Args:
        product_name: Optional (partial) product name.
    """
    return get_dataset().product_profit_margin(product_name)


@tool
def get_product_performance() -> str:
    """Products ranked by number of returns (most returned first)."""
    return get_dataset().product_performance()


@tool
def get_returns() -> str:
    """List product returns with reason, status and total amount."""
    return get_dataset().returns()


@tool
def get_campaigns() -> str:
    """Results of sales campaigns: dates, units sold and revenue."""
    return get_dataset().campaigns()


# ── Expenses, payables & purchasing ──────────────────────────────────


@tool
def get_expenses(month: str | None = None) -> str:
    """List expenses with totals per category.

    Args:
        month: Optional Turkish month name, e.g. "Ekim" or "Eylül".
    """
    return get_dataset().expenses(month)


@tool
def get_fixed_expenses() -> str:
    """Fixed monthly expenses (rent, utilities, accounting, ...) and their total."""
    return get_dataset().fixed_expenses()


@tool
def get_debts() -> str:
    """List payables owed to suppliers."""
    return get_dataset().debts()


@tool
def get_purchase_invoices() -> str:
    """List purchase invoices from suppliers with remaining balances."""
    return get_dataset().purchase_invoices()


@tool
def get_credit_card_debts() -> str:
    """Company credit cards: limit, used amount, usage ratio, payment date."""
    return get_dataset().credit_card_debts()


@tool
def get_tax_payments(status: TaxFilter = "tümü") -> str:
    """List tax payments.

    Args:
        status: "tümü", "ödendi" or "beklemede".
    """
    return get_dataset().tax_payments(status)


# ── Monthly performance ──────────────────────────────────────────────


@tool
def get_monthly_report(month: str | None = None) -> str:
    """Monthly revenue, expenses, profit, invoice count and new customers.

    Args:
        month: Optional Turkish month name; omit for every month on record.
    """
    return get_dataset().monthly_report(month)


@tool
def compare_months(month1: str, month2: str) -> str:
    """Compare two months: revenue, expenses, profit, margin, invoices.

    Args:
        month1: The earlier month, e.g. "Ağustos".
        month2: The later month, e.g. "Eylül".
    """
    return get_dataset().compare_months(month1, month2)


@tool
def get_growth_rate(base_month: str, compare_month: str) -> str:
    """Revenue and profit growth rate between two months.

    Args:
        base_month: Month to measure from.
        compare_month: Month to measure to.
    """
    return get_dataset().growth_rate(base_month, compare_month)


# ── Personnel ────────────────────────────────────────────────────────


@tool
def get_personnel_list() -> str:
    """List active staff with position, salary and start date."""
    return get_dataset().personnel_list()


@tool
def get_salary_payments(month: str | None = None) -> str:
    """Payroll totals: gross salaries, employer social security, income tax, net.

    Args:
        month: Optional Turkish month name.
    """
    return get_dataset().salary_payments(month)


@tool
def get_advances() -> str:
    """List salary advances given to staff."""
    return get_dataset().advances()


@tool
def get_attendance_issues() -> str:
    """Staff with frequent late arrivals or many leave days."""
    return get_dataset().attendance_issues()


# ── Registry & dispatch ──────────────────────────────────────────────

ALL_TOOLS: list[BaseTool] = [
    get_company_info,
    get_summary,
    search_records,
    get_invoices,
    get_invoice_detail,
    get_overdue_customers,
    get_customer_analysis,
    get_customer_details,
    get_collections,
    get_receivables,
    get_stock,
    get_top_selling_products,
    get_category_sales,
    get_product_profit_margin,
    get_product_performance,
    get_returns,
    get_campaigns,
    get_expenses,
    get_fixed_expenses,
    get_debts,
    get_purchase_invoices,
    get_credit_card_debts,
    get_tax_payments,
    get_monthly_report,
    compare_months,
    get_growth_rate,
    get_personnel_list,
    get_salary_payments,
    get_advances,
    get_attendance_issues,
]

TOOLS_BY_NAME: dict[str, BaseTool] = {t.name: t for t in ALL_TOOLS}


def dispatch_tool_call(name: str, args: dict[str, Any] | None) -> str:
    """Run the named tool and always return a string for the model."""
    selected = TOOLS_BY_NAME.get(name)
    if selected is None:
        logger.warning("Model requested unknown tool %r", name)
        return f"❌ Bilinmeyen fonksiyon: {name}"
    try:
        return str(selected.invoke(args or {}))
    except Exception:
        logger.exception("Tool %s failed with args %r", name, args)
        return f"❌ Fonksiyon çalıştırılırken hata oluştu: {name}"
