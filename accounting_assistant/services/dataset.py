"""Read-only accessor over the static accounting dataset.

The dataset is a single JSON document (Turkish field names, produced
upstream) loaded once at start-up.  Every public method answers one kind of
question and renders the answer as a short WhatsApp-friendly Turkish text
block.  Nothing here raises for "no data": an empty filter result is rendered
as a descriptive sentence so the LLM always has something to work with.

Dates that depend on "today" (overdue detection, trailing sales windows) use
the injectable ``clock`` so tests can pin the calendar.
"""

from __future__ import annotations

import json
import logging
import threading
from calendar import monthrange
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Any

from accounting_assistant.config import DATA_PATH
from accounting_assistant.formatting import (
    format_currency,
    format_date,
    format_percent,
    normalize_key,
    parse_date,
    percent_change,
    trend_indicator,
)

logger = logging.getLogger(__name__)

ALL = "tümü"

# Month name (normalised) → month number.  Combined with the year found in the
# monthly aggregates this yields the fixed name → "YYYY-MM" table.
_TURKISH_MONTHS = {
    "ocak": 1, "subat": 2, "mart": 3, "nisan": 4, "mayis": 5, "haziran": 6,
    "temmuz": 7, "agustos": 8, "eylul": 9, "ekim": 10, "kasim": 11, "aralik": 12,
}

PAYMENT_TYPE_LABELS = {
    "nakit": "Nakit",
    "cek": "Çek",
    "kredi_karti": "Kredi Kartı",
    "senet": "Senet",
    "havale": "Havale",
}

FIXED_EXPENSE_LABELS = {
    "kira": "Kira",
    "elektrik": "Elektrik",
    "su": "Su",
    "dogalgaz": "Doğalgaz",
    "internet": "İnternet",
    "yakit": "Yakıt",
    "muhasebe": "Muhasebe",
}


class InvoiceStatus(str, Enum):
    PAID = "ödendi"
    PENDING = "beklemede"
    PARTIALLY_PAID = "kısmi ödendi"
    OVERDUE = "gecikmiş"

    @property
    def emoji(self) -> str:
        return _STATUS_EMOJI[self]


_STATUS_EMOJI = {
    InvoiceStatus.PAID: "✅",
    InvoiceStatus.PENDING: "⏳",
    InvoiceStatus.PARTIALLY_PAID: "🔄",
    InvoiceStatus.OVERDUE: "🔴",
}


def _status_key(value: str) -> str:
    return normalize_key(value).replace("_", " ")


_STATUS_BY_KEY = {_status_key(s.value): s for s in InvoiceStatus}


def parse_status(value: str | None) -> InvoiceStatus | None:
    """Map a stored or user-supplied status string onto :class:`InvoiceStatus`."""
    if not value:
        return None
    return _STATUS_BY_KEY.get(_status_key(value))


@dataclass
class SearchResult:
    """Matches of a free-text search across invoices and stock."""

    invoices: list[dict[str, Any]] = field(default_factory=list)
    stock: list[dict[str, Any]] = field(default_factory=list)
    customer_names: set[str] = field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not self.invoices and not self.stock


def _total(items: list[dict[str, Any]], key: str) -> float:
    return sum(item.get(key, 0) or 0 for item in items)


def _months_ago(today: date, months: int) -> date:
    """Shift *today* back by whole calendar months, clamping the day."""
    index = today.year * 12 + (today.month - 1) - months
    year, month0 = divmod(index, 12)
    day = min(today.day, monthrange(year, month0 + 1)[1])
    return date(year, month0 + 1, day)


class AccountingDataset:
    """Query and render the immutable business record set."""

    def __init__(self, data: dict[str, Any], *, clock: Callable[[], date] = date.today) -> None:
        self._data = data
        self._clock = clock
        self._months = self._build_month_table()

    @classmethod
    def from_file(cls, path: Path | str, **kwargs: Any) -> AccountingDataset:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        logger.info("Loaded accounting dataset from %s", path)
        return cls(data, **kwargs)

    @property
    def company_name(self) -> str:
        return (self._data.get("firma") or {}).get("ad", "işletme")

    def today(self) -> date:
        return self._clock()

    # ── Internal helpers ─────────────────────────────────────────────

    def _records(self, key: str) -> list[dict[str, Any]]:
        return self._data.get(key) or []

    def _build_month_table(self) -> dict[str, tuple[str, str]]:
        """Map normalised month names to ``(label, "YYYY-MM")``.

        Built from the monthly aggregate labels, e.g. ``"Eylül 2025"``.
        """
        table: dict[str, tuple[str, str]] = {}
        for row in self._records("aylikOzet"):
            label = row.get("ay", "")
            parts = normalize_key(label).split()
            if len(parts) != 2 or parts[0] not in _TURKISH_MONTHS or not parts[1].isdigit():
                continue
            prefix = f"{parts[1]}-{_TURKISH_MONTHS[parts[0]]:02d}"
            table[parts[0]] = (label, prefix)
        return table

    def resolve_month(self, name: str | None) -> tuple[str, str] | None:
        """Return ``(label, "YYYY-MM")`` for a month name, or ``None``."""
        if not name:
            return None
        parts = normalize_key(name).split()
        if not parts:
            return None
        return self._months.get(parts[0])

    def _monthly_row(self, name: str) -> dict[str, Any] | None:
        month = self.resolve_month(name)
        if month is None:
            return None
        label = month[0]
        return next((row for row in self._records("aylikOzet") if row.get("ay") == label), None)

    def _is_overdue(self, invoice: dict[str, Any], today: date) -> bool:
        status = parse_status(invoice.get("durum"))
        if status is InvoiceStatus.OVERDUE:
            return True
        due = invoice.get("vadeTarihi")
        return status is InvoiceStatus.PENDING and bool(due) and parse_date(due) < today

    # ── Company & summary ────────────────────────────────────────────

    def company_info(self) -> str:
        firma = self._data.get("firma") or {}
        if not firma:
            return "Firma bilgisi bulunamadı."
        lines = [
            f"🏢 *{firma.get('ad', '-')}*",
            f"Vergi No: {firma.get('vergiNo', '-')}",
            f"Sektör: {firma.get('sektor', '-')}",
            f"Adres: {firma.get('adres', '-')}",
        ]
        if firma.get("kurulusTarihi"):
            lines.append(f"Kuruluş: {format_date(firma['kurulusTarihi'])}")
        return "\n".join(lines)

    def summary(self) -> str:
        ozet = self._data.get("ozet") or {}
        lines = [
            "📊 *İşletme Özeti*",
            "",
            f"💰 Toplam Ciro: {format_currency(ozet.get('toplamCiro', 0))}",
            f"📉 Toplam Gider: {format_currency(ozet.get('toplamGider', 0))}",
            f"✅ Net Kar: {format_currency(ozet.get('netKar', 0))}",
            f"📈 Kar Marjı: %{ozet.get('karMarji', 0)}",
            "",
            f"💳 Toplam Alacak: {format_currency(ozet.get('toplamAlacak', 0))}",
            f"🔴 Toplam Borç: {format_currency(ozet.get('toplamBorc', 0))}",
            f"📦 Stok Değeri: {format_currency(ozet.get('stokDegeri', 0))}",
        ]
        if ozet.get("sonGuncelleme"):
            lines += ["", f"Son Güncelleme: {format_date(ozet['sonGuncelleme'])}"]
        return "\n".join(lines)

    def data_context(self) -> str:
        """Compact JSON snapshot embedded in the system prompt."""
        today = self._clock()
        invoices = self._records("faturalar")
        context = {
            "firma": self._data.get("firma") or {},
            "ozet": self._data.get("ozet") or {},
            "faturaAdedi": len(invoices),
            "bekleyenFatura": sum(
                1 for f in invoices if parse_status(f.get("durum")) is InvoiceStatus.PENDING
            ),
            "vadesiGecmisFatura": sum(1 for f in invoices if self._is_overdue(f, today)),
            "kritikStok": sum(
                1 for s in self._records("stok")
                if s.get("mevcutMiktar", 0) <= s.get("minimumStok", 0)
            ),
            "gecikmisAlacak": sum(
                1 for a in self._records("alacaklar")
                if parse_status(a.get("durum")) is InvoiceStatus.OVERDUE
            ),
            "aylikOzet": self._records("aylikOzet"),
        }
        return json.dumps(context, ensure_ascii=False)

    # ── Invoices ─────────────────────────────────────────────────────

    def invoices(self, status: str | None = None, limit: int = 10) -> str:
        today = self._clock()
        faturalar = self._records("faturalar")
        wanted = None if not status or normalize_key(status) == normalize_key(ALL) else parse_status(status)

        if wanted is InvoiceStatus.OVERDUE:
            faturalar = [f for f in faturalar if self._is_overdue(f, today)]
        elif wanted is not None:
            faturalar = [f for f in faturalar if parse_status(f.get("durum")) is wanted]
        elif status and normalize_key(status) != normalize_key(ALL):
            faturalar = []

        if not faturalar:
            return "Bu kriterde fatura bulunamadı."

        blocks = []
        for f in faturalar[:limit]:
            marker = self._invoice_emoji(f, today)
            blocks.append(
                f"{marker} *{f['id']}* - {f.get('musteri', '-')}\n"
                f"   {format_date(f['tarih'])} | {format_currency(f.get('genelToplam', 0))}"
            )

        header = "📄 *Faturalar*"
        if wanted is not None:
            header += f" ({wanted.value})"
        if len(faturalar) > limit:
            header += f"\n(İlk {limit} / {len(faturalar)} fatura gösteriliyor)"
        return header + "\n\n" + "\n\n".join(blocks)

    def _invoice_emoji(self, invoice: dict[str, Any], today: date) -> str:
        if self._is_overdue(invoice, today):
            return InvoiceStatus.OVERDUE.emoji
        status = parse_status(invoice.get("durum"))
        return status.emoji if status else "📄"

    def find_invoice(self, invoice_id: str) -> dict[str, Any] | None:
        key = normalize_key(invoice_id or "")
        return next(
            (f for f in self._records("faturalar") if normalize_key(f.get("id", "")) == key),
            None,
        )

    def invoice_detail(self, invoice_id: str) -> str:
        fatura = self.find_invoice(invoice_id)
        if fatura is None:
            return f"❌ {invoice_id} numaralı fatura bulunamadı."

        items = "\n".join(
            f"  • {u['ad']}\n"
            f"    {u['adet']} adet x {format_currency(u['birimFiyat'])} = {format_currency(u['toplam'])}"
            for u in fatura.get("urunler", [])
        )
        status = parse_status(fatura.get("durum"))
        marker = f"{status.emoji} " if status else ""

        lines = [
            "📄 *Fatura Detayı*",
            "",
            f"Fatura No: {fatura['id']}",
            f"Tarih: {format_date(fatura['tarih'])}",
            f"Müşteri: {fatura.get('musteri', '-')}",
            f"Vergi No: {fatura.get('musteriVergiNo', '-')}",
            "",
            "*Ürünler:*",
            items or "  (kalem yok)",
            "",
            f"Ara Toplam: {format_currency(fatura.get('araToplam', 0))}",
            f"KDV: {format_currency(fatura.get('kdvToplam', 0))}",
            f"*Genel Toplam: {format_currency(fatura.get('genelToplam', 0))}*",
            "",
            f"Durum: {marker}{fatura.get('durum', '-')}",
        ]
        if fatura.get("odenenMiktar"):
            lines.append(f"Ödenen: {format_currency(fatura['odenenMiktar'])}")
        if fatura.get("odemeTarihi"):
            lines.append(f"Ödeme Tarihi: {format_date(fatura['odemeTarihi'])}")
        if fatura.get("vadeTarihi"):
            lines.append(f"Vade Tarihi: {format_date(fatura['vadeTarihi'])}")
        if fatura.get("odemeTipi"):
            payment = PAYMENT_TYPE_LABELS.get(fatura["odemeTipi"], fatura["odemeTipi"])
            lines.append(f"Ödeme Tipi: {payment}")
        return "\n".join(lines)

    def overdue_customers(self) -> str:
        today = self._clock()
        faturalar = self._records("faturalar")
        overdue = [
            f for f in faturalar
            if parse_status(f.get("durum")) is InvoiceStatus.PENDING
            and f.get("vadeTarihi")
            and parse_date(f["vadeTarihi"]) < today
        ]
        partial = [f for f in faturalar if parse_status(f.get("durum")) is InvoiceStatus.PARTIALLY_PAID]

        if not overdue and not partial:
            return "✅ Ödemesi geciken müşteri yok!"

        sections = []
        if overdue:
            lines = ["🔴 *Vadesi Geçmiş Faturalar:*", ""]
            for f in overdue:
                due = parse_date(f["vadeTarihi"])
                lines += [
                    f"• *{f.get('musteri', '-')}*",
                    f"  Fatura: {f['id']}",
                    f"  Tutar: {format_currency(f.get('genelToplam', 0))}",
                    f"  Gecikme: {(today - due).days} gün",
                    f"  Vade: {format_date(due)}",
                    "",
                ]
            sections.append("\n".join(lines))
        if partial:
            lines = ["🟡 *Kısmi Ödeme Yapanlar:*", ""]
            for f in partial:
                paid = f.get("odenenMiktar", 0) or 0
                total = f.get("genelToplam", 0)
                lines += [
                    f"• *{f.get('musteri', '-')}*",
                    f"  Fatura: {f['id']}",
                    f"  Toplam: {format_currency(total)}",
                    f"  Ödenen: {format_currency(paid)}",
                    f"  Kalan: {format_currency(total - paid)}",
                    "",
                ]
            sections.append("\n".join(lines))
        return "\n".join(sections).strip()

    # ── Stock & sales ────────────────────────────────────────────────

    def stock(self, low_stock_only: bool = False, limit: int = 15) -> str:
        stoklar = self._records("stok")
        if low_stock_only:
            stoklar = [s for s in stoklar if s.get("mevcutMiktar", 0) <= s.get("minimumStok", 0)]

        if not stoklar:
            return "✅ Tüm stoklar yeterli seviyede!"

        blocks = []
        for s in stoklar[:limit]:
            on_hand = s.get("mevcutMiktar", 0)
            marker = "⚠️" if on_hand <= s.get("minimumStok", 0) else "✅"
            blocks.append(
                f"{marker} {s['urunAdi']}\n"
                f"   Stok: {on_hand} adet | Değer: {format_currency(on_hand * s.get('birimMaliyet', 0))}"
            )

        header = "📦 *Stok Durumu*" + (" (Kritik Stoklar)" if low_stock_only else "")
        text = header + "\n\n" + "\n\n".join(blocks)
        if not low_stock_only:
            value = sum(s.get("mevcutMiktar", 0) * s.get("birimMaliyet", 0) for s in stoklar)
            text += f"\n\n*Toplam Stok Değeri: {format_currency(value)}*"
        return text

    def top_selling_products(self, last_months: int = 2, limit: int = 10) -> str:
        last_months = max(1, int(last_months))
        cutoff = _months_ago(self._clock(), last_months)

        sales: dict[str, dict[str, float]] = defaultdict(lambda: {"adet": 0, "tutar": 0})
        for f in self._records("faturalar"):
            if parse_date(f["tarih"]) < cutoff:
                continue
            for u in f.get("urunler", []):
                sales[u["ad"]]["adet"] += u.get("adet", 0)
                sales[u["ad"]]["tutar"] += u.get("toplam", 0)

        ranked = sorted(sales.items(), key=lambda kv: kv[1]["tutar"], reverse=True)[:limit]
        if not ranked:
            return "Bu dönemde satış bulunamadı."

        blocks = [
            f"{i}. *{name}*\n   {int(data['adet'])} adet | {format_currency(data['tutar'])}"
            for i, (name, data) in enumerate(ranked, start=1)
        ]
        return f"🏆 *En Çok Satan Ürünler* (Son {last_months} Ay)\n\n" + "\n\n".join(blocks)

    def category_sales(self) -> str:
        categories = {s["urunAdi"]: s.get("kategori", "Diğer") for s in self._records("stok")}
        totals: dict[str, dict[str, float]] = defaultdict(lambda: {"adet": 0, "tutar": 0})
        for f in self._records("faturalar"):
            for u in f.get("urunler", []):
                category = categories.get(u["ad"], "Diğer")
                totals[category]["adet"] += u.get("adet", 0)
                totals[category]["tutar"] += u.get("toplam", 0)

        grand_total = sum(data["tutar"] for data in totals.values())
        if not grand_total:
            return "Satış kaydı bulunamadı."

        ranked = sorted(totals.items(), key=lambda kv: kv[1]["tutar"], reverse=True)
        blocks = [
            f"📊 *{category}*\n"
            f"   {int(data['adet'])} adet | {format_currency(data['tutar'])} "
            f"(%{data['tutar'] / grand_total * 100:.1f})"
            for category, data in ranked
        ]
        return (
            "📈 *Kategorilere Göre Satışlar*\n\n"
            + "\n\n".join(blocks)
            + f"\n\n*Toplam Ciro: {format_currency(grand_total)}*"
        )

    def product_profit_margin(self, product_name: str | None = None, limit: int = 10) -> str:
        sale_prices = {s["urunAdi"]: s.get("satisFiyati") for s in self._records("stok")}
        needle = normalize_key(product_name) if product_name else ""

        # Latest purchase cost per product wins.
        costs: dict[str, float] = {}
        purchases = sorted(self._records("alisFaturalari"), key=lambda a: a.get("tarih", ""))
        for alis in purchases:
            for u in alis.get("urunler", []):
                if needle and needle not in normalize_key(u["ad"]):
                    continue
                if sale_prices.get(u["ad"]) and u.get("birimMaliyet"):
                    costs[u["ad"]] = u["birimMaliyet"]

        if not costs:
            return "Kar marjı bilgisi bulunamadı."

        blocks = []
        for name, cost in list(costs.items())[:limit]:
            price = sale_prices[name]
            profit = price - cost
            blocks.append(
                f"📊 *{name}*\n"
                f"   Alış: {format_currency(cost)}\n"
                f"   Satış: {format_currency(price)}\n"
                f"   Kar: {format_currency(profit)} (%{profit / price * 100:.2f})"
            )
        return "💹 *Ürün Kar Marjları*\n\n" + "\n\n".join(blocks)

    def product_performance(self) -> str:
        iadeler = self._records("iadeler")
        if not iadeler:
            return "İade kaydı yok."

        stats: dict[str, dict[str, float]] = defaultdict(lambda: {"adet": 0, "tutar": 0})
        for i in iadeler:
            stats[i["urun"]]["adet"] += 1
            stats[i["urun"]]["tutar"] += i.get("tutar", 0)
        ranked = sorted(stats.items(), key=lambda kv: (kv[1]["adet"], kv[1]["tutar"]), reverse=True)

        blocks = [
            f"❌ *{name}*\n   {int(data['adet'])} iade | {format_currency(data['tutar'])}"
            for name, data in ranked
        ]
        return "📊 *Ürün Performansı (En Çok İade Edilenler)*\n\n" + "\n\n".join(blocks)

    # ── Expenses ─────────────────────────────────────────────────────

    def expenses(self, month: str | None = None) -> str:
        giderler = self._records("giderler")
        if month:
            resolved = self.resolve_month(month)
            if resolved is None:
                return f"❌ '{month}' ayı için gider kaydı bulunamadı."
            giderler = [g for g in giderler if g.get("tarih", "").startswith(resolved[1])]

        if not giderler:
            return "Bu dönemde gider kaydı bulunamadı."

        recent = sorted(giderler, key=lambda g: g.get("tarih", ""))[-8:][::-1]
        blocks = [
            f"💸 {format_date(g['tarih'])}\n   {g.get('aciklama', '-')}\n   {format_currency(g.get('tutar', 0))}"
            for g in recent
        ]

        by_category: dict[str, float] = defaultdict(float)
        for g in giderler:
            by_category[g.get("kategori", "Diğer")] += g.get("tutar", 0)
        category_lines = "\n".join(
            f"  • {category}: {format_currency(total)}" for category, total in by_category.items()
        )

        header = f"📉 *Giderler* ({month})" if month else "📉 *Giderler* (Son Kayıtlar)"
        return (
            f"{header}\n\n"
            + "\n\n".join(blocks)
            + f"\n\n*Toplam: {format_currency(_total(giderler, 'tutar'))}*"
            + f"\n\n*Kategorilere Göre:*\n{category_lines}"
        )

    def fixed_expenses(self) -> str:
        sabitler = self._data.get("sabitGiderler") or {}
        if not sabitler:
            return "Sabit gider kaydı bulunamadı."
        lines = ["🏢 *Sabit Giderler* (Aylık)", ""]
        for key, amount in sabitler.items():
            label = FIXED_EXPENSE_LABELS.get(normalize_key(key), key.capitalize())
            lines.append(f"{label}: {format_currency(amount or 0)}")
        lines += ["", f"*Toplam: {format_currency(sum(v or 0 for v in sabitler.values()))}*"]
        return "\n".join(lines)

    # ── Receivables, payables, collections ──────────────────────────

    def receivables(self) -> str:
        alacaklar = [a for a in self._records("alacaklar") if (a.get("tutar") or 0) > 0]
        if not alacaklar:
            return "✅ Bekleyen alacak yok!"

        blocks = []
        for a in alacaklar:
            status = normalize_key(a.get("durum", ""))
            if status == normalize_key("gecikmiş"):
                marker = "🔴"
            elif status == normalize_key("vadesi yaklaşıyor"):
                marker = "🟡"
            else:
                marker = "⏳"
            delay = f" ({a['gecikmeGunu']} gün gecikmiş)" if a.get("gecikmeGunu", 0) > 0 else ""
            blocks.append(
                f"{marker} {a.get('musteri', '-')}\n"
                f"   Fatura: {a.get('faturaId', '-')}\n"
                f"   Tutar: {format_currency(a['tutar'])}{delay}\n"
                f"   Vade: {format_date(a['vadeTarihi'])}"
            )
        return (
            "💳 *Alacaklar*\n\n"
            + "\n\n".join(blocks)
            + f"\n\n*Toplam Alacak: {format_currency(_total(alacaklar, 'tutar'))}*"
        )

    def debts(self) -> str:
        borclar = self._records("borclar")
        if not borclar:
            return "✅ Bekleyen borç yok!"
        blocks = [
            f"🔴 {b.get('tedarikci', '-')}\n"
            f"   {b.get('aciklama', '')}\n"
            f"   Tutar: {format_currency(b.get('tutar', 0))}\n"
            f"   Vade: {format_date(b['vadeTarihi'])}"
            for b in borclar
        ]
        return (
            "💰 *Borçlar*\n\n"
            + "\n\n".join(blocks)
            + f"\n\n*Toplam Borç: {format_currency(_total(borclar, 'tutar'))}*"
        )

    def purchase_invoices(self) -> str:
        alislar = self._records("alisFaturalari")
        if not alislar:
            return "Alış faturası bulunamadı."
        blocks = []
        for a in alislar:
            status = parse_status(a.get("durum"))
            marker = status.emoji if status else "⏳"
            block = (
                f"{marker} *{a['id']}*\n"
                f"   Tarih: {format_date(a['tarih'])}\n"
                f"   Tedarikçi: {a.get('tedarikci', '-')}\n"
                f"   Tutar: {format_currency(a.get('genelToplam', 0))}\n"
                f"   Durum: {a.get('durum', '-').replace('_', ' ')}"
            )
            if a.get("kalanBorc"):
                block += f"\n   Kalan: {format_currency(a['kalanBorc'])}"
            blocks.append(block)
        return "📦 *Alış Faturaları*\n\n" + "\n\n".join(blocks)

    def collections(self, payment_type: str | None = None, limit: int = 10) -> str:
        tahsilatlar = self._records("tahsilatlar")
        filtered_by = None
        if payment_type and normalize_key(payment_type) != normalize_key(ALL):
            filtered_by = normalize_key(payment_type).replace(" ", "_")
            tahsilatlar = [t for t in tahsilatlar if normalize_key(t.get("odemeTipi", "")) == filtered_by]

        if not tahsilatlar:
            return "Bu kriterde tahsilat bulunamadı."

        blocks = []
        for t in tahsilatlar[:limit]:
            kind = t.get("odemeTipi", "")
            lines = [
                f"💰 {format_date(t['tarih'])}",
                f"   Fatura: {t.get('faturaId', '-')}",
                f"   Müşteri: {t.get('musteri', '-')}",
                f"   Tutar: {format_currency(t.get('tutar', 0))}",
                f"   Tip: {PAYMENT_TYPE_LABELS.get(kind, kind)}",
            ]
            if t.get("cekNo"):
                lines.append(f"   Çek No: {t['cekNo']}")
            if t.get("cekVadesi"):
                lines.append(f"   Çek Vadesi: {format_date(t['cekVadesi'])}")
            if t.get("senetVadesi"):
                lines.append(f"   Senet Vadesi: {format_date(t['senetVadesi'])}")
            if t.get("banka"):
                lines.append(f"   Banka: {t['banka']}")
            if t.get("taksitSayisi"):
                lines.append(f"   Taksit: {t['taksitSayisi']}")
            blocks.append("\n".join(lines))

        header = "💵 *Tahsilatlar*"
        if filtered_by:
            header += f" ({PAYMENT_TYPE_LABELS.get(filtered_by, payment_type)})"
        return (
            header + "\n\n" + "\n\n".join(blocks)
            + f"\n\n*Toplam: {format_currency(_total(tahsilatlar, 'tutar'))}*"
        )

    def credit_card_debts(self) -> str:
        kartlar = self._records("krediKartlari")
        if not kartlar:
            return "Kredi kartı kaydı yok."
        blocks = []
        for k in kartlar:
            limit, used = k.get("limit", 0), k.get("kullanilan", 0)
            ratio = f"%{used / limit * 100:.1f}" if limit else "—"
            blocks.append(
                f"💳 *{k.get('banka', '-')}*\n"
                f"   Limit: {format_currency(limit)}\n"
                f"   Kullanılan: {format_currency(used)} ({ratio})\n"
                f"   Kalan: {format_currency(limit - used)}\n"
                f"   Son Ödeme: {format_date(k['sonOdemeTarihi'])}"
            )
        return (
            "💳 *Kredi Kartları*\n\n"
            + "\n\n".join(blocks)
            + f"\n\n*Toplam Limit: {format_currency(_total(kartlar, 'limit'))}*"
            + f"\n*Toplam Kullanılan: {format_currency(_total(kartlar, 'kullanilan'))}*"
        )

    # ── Monthly performance ──────────────────────────────────────────

    def monthly_report(self, month: str | None = None) -> str:
        aylar = self._records("aylikOzet")
        if month:
            row = self._monthly_row(month)
            if row is None:
                return f"❌ '{month}' ayı için rapor bulunamadı."
            aylar = [row]
        if not aylar:
            return "Aylık rapor bulunamadı."

        blocks = [
            f"📅 *{a['ay']}*\n"
            f"   Ciro: {format_currency(a.get('ciro', 0))}\n"
            f"   Gider: {format_currency(a.get('gider', 0))}\n"
            f"   Net Kar: {format_currency(a.get('netKar', 0))}\n"
            f"   Kar Marjı: %{a.get('karMarji', 0)}\n"
            f"   Fatura: {a.get('faturaAdedi', 0)} adet | Yeni Müşteri: {a.get('yeniMusteri', 0)}"
            for a in aylar
        ]
        return "📊 *Aylık Performans Raporu*\n\n" + "\n\n".join(blocks)

    def compare_months(self, month1: str, month2: str) -> str:
        first, second = self._monthly_row(month1), self._monthly_row(month2)
        if first is None or second is None:
            return "❌ Belirtilen aylardan biri bulunamadı."

        a, b = first["ay"], second["ay"]
        sections = [f"📊 *Ay Karşılaştırması*\n{a} vs {b}"]
        for title, key in (("💰 *Ciro:*", "ciro"), ("📉 *Gider:*", "gider"), ("✅ *Net Kar:*", "netKar")):
            change = percent_change(first.get(key, 0), second.get(key, 0))
            sections.append(
                f"{title}\n"
                f"{a}: {format_currency(first.get(key, 0))}\n"
                f"{b}: {format_currency(second.get(key, 0))}\n"
                f"Değişim: {trend_indicator(change)} {format_percent(change)}"
            )
        sections += [
            f"📈 *Kar Marjı:*\n{a}: %{first.get('karMarji', 0)}\n{b}: %{second.get('karMarji', 0)}",
            f"📄 *Fatura Sayısı:*\n{a}: {first.get('faturaAdedi', 0)} adet\n{b}: {second.get('faturaAdedi', 0)} adet",
            f"👥 *Yeni Müşteri:*\n{a}: {first.get('yeniMusteri', 0)} müşteri\n{b}: {second.get('yeniMusteri', 0)} müşteri",
        ]
        return "\n\n".join(sections)

    def growth_rate(self, base_month: str, compare_month: str) -> str:
        base, current = self._monthly_row(base_month), self._monthly_row(compare_month)
        if base is None or current is None:
            return "❌ Belirtilen aylardan biri bulunamadı."

        revenue_growth = percent_change(base.get("ciro", 0), current.get("ciro", 0))
        profit_growth = percent_change(base.get("netKar", 0), current.get("netKar", 0))
        growing = revenue_growth is not None and revenue_growth > 0
        verdict = (
            "✨ Tebrikler! İşletmeniz büyüyor!"
            if growing
            else "⚠️ Bu dönemde performans düşüşü var, analiz gerekebilir."
        )
        return "\n".join([
            f"{'🚀' if growing else '📉'} *Büyüme Analizi*",
            "",
            f"{base['ay']} → {current['ay']}",
            "",
            f"💰 Ciro Büyümesi: *{format_percent(revenue_growth)}*",
            f"({format_currency(base.get('ciro', 0))} → {format_currency(current.get('ciro', 0))})",
            "",
            f"✅ Kar Büyümesi: *{format_percent(profit_growth)}*",
            f"({format_currency(base.get('netKar', 0))} → {format_currency(current.get('netKar', 0))})",
            "",
            verdict,
        ])

    # ── Customers ────────────────────────────────────────────────────

    def customer_analysis(self, customer_name: str | None = None, limit: int = 10) -> str:
        needle = normalize_key(customer_name) if customer_name else ""
        stats: dict[str, dict[str, Any]] = {}
        for f in self._records("faturalar"):
            name = f.get("musteri", "-")
            if needle and needle not in normalize_key(name):
                continue
            entry = stats.setdefault(name, {"count": 0, "total": 0, "last": f["tarih"]})
            entry["count"] += 1
            entry["total"] += f.get("genelToplam", 0)
            if parse_date(f["tarih"]) > parse_date(entry["last"]):
                entry["last"] = f["tarih"]

        if not stats:
            return "❌ Müşteri bulunamadı."

        ranked = sorted(stats.items(), key=lambda kv: kv[1]["total"], reverse=True)[:limit]
        blocks = [
            f"{i}. *{name}*\n"
            f"   {data['count']} fatura | {format_currency(data['total'])}\n"
            f"   Son alışveriş: {format_date(data['last'])}"
            for i, (name, data) in enumerate(ranked, start=1)
        ]
        scope = f"({customer_name})" if customer_name else "(Tüm Müşteriler)"
        return f"👥 *Müşteri Analizi* {scope}\n\n" + "\n\n".join(blocks)

    def customer_details(self, customer_name: str | None = None, limit: int = 5) -> str:
        musteriler = self._records("musteriler")
        if customer_name:
            needle = normalize_key(customer_name)
            musteriler = [m for m in musteriler if needle in normalize_key(m.get("ad", ""))]
        if not musteriler:
            return "❌ Müşteri bulunamadı."

        blocks = []
        for m in musteriler[:limit]:
            lines = [
                f"👤 *{m.get('ad', '-')}*",
                f"   Yetkili: {m.get('yetkili', '-')}",
                f"   Telefon: {m.get('telefon', '-')}",
                f"   Vade: {m.get('vadeGunu', 0)} gün",
                f"   Kredi Limiti: {format_currency(m.get('krediLimiti', 0))}",
                f"   Risk Skoru: {m.get('riskSkoru', '-')}",
                f"   Toplam Alışveriş: {format_currency(m.get('toplamAlisveris', 0))}",
                f"   Ortalama Gecikme: {m.get('ortalamaGecikmeSuresi', 0)} gün",
            ]
            if m.get("uyari"):
                lines.append(f"   ⚠️ {m['uyari']}")
            blocks.append("\n".join(lines))
        return "💼 *Müşteri Detayları*\n\n" + "\n\n".join(blocks)

    # ── Personnel & payroll ──────────────────────────────────────────

    def personnel_list(self) -> str:
        active = [p for p in self._records("personel") if p.get("aktif")]
        if not active:
            return "Personel kaydı bulunamadı."
        blocks = []
        for p in active:
            lines = [
                f"👤 *{p.get('adSoyad', '-')}*",
                f"   Pozisyon: {p.get('pozisyon', '-')}",
                f"   Maaş: {format_currency(p.get('maas', 0))}",
                f"   İşe Başlama: {format_date(p['iseBaslamaTarihi'])}",
            ]
            if p.get("uyari"):
                lines.append(f"   ⚠️ {p['uyari']}")
            blocks.append("\n".join(lines))
        return "👥 *Personel Listesi*\n\n" + "\n\n".join(blocks)

    def salary_payments(self, month: str | None = None) -> str:
        maaslar = self._records("maasOdemeleri")
        if month:
            resolved = self.resolve_month(month)
            label = resolved[0] if resolved else None
            maaslar = [m for m in maaslar if m.get("ay") == label]
        if not maaslar:
            return "Maaş kaydı bulunamadı."
        blocks = [
            f"💼 *{m['ay']}*\n"
            f"   Toplam Maaş: {format_currency(m.get('toplamMaas', 0))}\n"
            f"   SGK İşveren: {format_currency(m.get('sgkIsveren', 0))}\n"
            f"   Gelir Vergisi: {format_currency(m.get('gelirVergisi', 0))}\n"
            f"   Net Ödeme: {format_currency(m.get('netOdeme', 0))}"
            for m in maaslar
        ]
        return "💰 *Maaş Ödemeleri*\n\n" + "\n\n".join(blocks)

    def advances(self) -> str:
        avanslar = self._records("avanslar")
        if not avanslar:
            return "Avans kaydı yok."
        blocks = [
            f"💵 {a.get('personel', '-')}\n"
            f"   Tutar: {format_currency(a.get('tutar', 0))}\n"
            f"   Tarih: {format_date(a['tarih'])}\n"
            f"   {a.get('aciklama', '')}".rstrip()
            for a in avanslar
        ]
        return (
            "💸 *Personel Avansları*\n\n"
            + "\n\n".join(blocks)
            + f"\n\n*Toplam: {format_currency(_total(avanslar, 'tutar'))}*"
        )

    def attendance_issues(self) -> str:
        flagged = [
            p for p in self._records("personel")
            if p.get("aktif") and (p.get("gecGelme", 0) > 3 or p.get("izinGunu", 0) > 7)
        ]
        if not flagged:
            return "✅ Devamsızlık sorunu olan personel yok."
        blocks = []
        for p in flagged:
            lines = [
                f"⚠️ *{p.get('adSoyad', '-')}*",
                f"   Pozisyon: {p.get('pozisyon', '-')}",
                f"   Geç Gelme: {p.get('gecGelme', 0)} kez",
                f"   İzin Günü: {p.get('izinGunu', 0)} gün",
            ]
            if p.get("uyari"):
                lines.append(f"   ⚠️ {p['uyari']}")
            blocks.append("\n".join(lines))
        return "📋 *Devamsızlık Problemleri*\n\n" + "\n\n".join(blocks)

    # ── Taxes, campaigns, returns ───────────────────────────────────

    def tax_payments(self, status: str | None = None) -> str:
        vergiler = self._records("vergiler")
        if status and normalize_key(status) != normalize_key(ALL):
            wanted = normalize_key(status)
            vergiler = [v for v in vergiler if normalize_key(v.get("durum", "")) == wanted]
        if not vergiler:
            return "Vergi kaydı bulunamadı."

        blocks = []
        for v in vergiler:
            paid = parse_status(v.get("durum")) is InvoiceStatus.PAID
            if v.get("odemeTarihi"):
                when = f"   Ödeme: {format_date(v['odemeTarihi'])}"
            elif v.get("sonOdemeTarihi"):
                when = f"   Son Ödeme: {format_date(v['sonOdemeTarihi'])}"
            else:
                when = ""
            block = (
                f"{'✅' if paid else '⏳'} *{v.get('tip', '-')}* - {v.get('donem', '-')}\n"
                f"   Tutar: {format_currency(v.get('tutar', 0))}"
            )
            blocks.append(f"{block}\n{when}" if when else block)
        return (
            "🏛️ *Vergiler*\n\n"
            + "\n\n".join(blocks)
            + f"\n\n*Toplam: {format_currency(_total(vergiler, 'tutar'))}*"
        )

    def campaigns(self) -> str:
        kampanyalar = self._records("kampanyalar")
        if not kampanyalar:
            return "Aktif kampanya yok."
        blocks = [
            f"🎯 *{k.get('ad', '-')}*\n"
            f"   Tarih: {format_date(k['baslangic'])} - {format_date(k['bitis'])}\n"
            f"   Satılan: {k.get('satilanAdet', 0)} adet\n"
            f"   Ciro: {format_currency(k.get('ciro', 0))}"
            for k in kampanyalar
        ]
        return "🎁 *Kampanyalar*\n\n" + "\n\n".join(blocks)

    def returns(self) -> str:
        iadeler = self._records("iadeler")
        if not iadeler:
            return "✅ İade kaydı yok."
        blocks = [
            f"🔄 {i.get('urun', '-')}\n"
            f"   Tutar: {format_currency(i.get('tutar', 0))}\n"
            f"   Sebep: {i.get('sebep', '-')}\n"
            f"   Durum: {i.get('durum', '-')}\n"
            f"   Tarih: {format_date(i['tarih'])}"
            for i in iadeler
        ]
        return (
            "📦 *İadeler*\n\n"
            + "\n\n".join(blocks)
            + f"\n\n*Toplam: {format_currency(_total(iadeler, 'tutar'))}*"
        )

    # ── Free-text search ─────────────────────────────────────────────

    def search(self, query: str) -> SearchResult:
        """Case-insensitive substring search across invoices and stock."""
        result = SearchResult()
        needle = normalize_key(query or "")
        if not needle:
            return result

        for f in self._records("faturalar"):
            if needle in normalize_key(f.get("id", "")) or needle in normalize_key(f.get("musteri", "")):
                result.invoices.append(f)
                result.customer_names.add(f.get("musteri", "-"))

        for s in self._records("stok"):
            haystack = (s.get("urunAdi", ""), s.get("urunKodu", ""), s.get("kategori", ""))
            if any(needle in normalize_key(value) for value in haystack):
                result.stock.append(s)
        return result

    def search_text(self, query: str) -> str:
        result = self.search(query)
        if result.is_empty:
            return f"🔍 '{query}' için kayıt bulunamadı."

        sections = [f"🔍 *Arama Sonuçları* ({query})"]
        if result.invoices:
            lines = [f"📄 *Faturalar* ({len(result.invoices)})"]
            lines += [
                f"• {f['id']} - {f.get('musteri', '-')} | "
                f"{format_currency(f.get('genelToplam', 0))} | {f.get('durum', '-')}"
                for f in result.invoices
            ]
            sections.append("\n".join(lines))
        if result.customer_names:
            sections.append("👥 *Müşteriler:* " + ", ".join(sorted(result.customer_names)))
        if result.stock:
            lines = [f"📦 *Stok* ({len(result.stock)})"]
            lines += [
                f"• {s['urunAdi']} ({s.get('urunKodu', '-')}) | {s.get('mevcutMiktar', 0)} adet"
                for s in result.stock
            ]
            sections.append("\n".join(lines))
        return "\n\n".join(sections)


# ── Module-level singleton (thread-safe) ────────────────────────────
_dataset: AccountingDataset | None = None
_dataset_lock = threading.Lock()


def get_dataset() -> AccountingDataset:
    """Return the process-wide dataset, loading it on first use.

    Uses double-checked locking so that the lock is only acquired during
    the first load, not on every subsequent call.
    """
    global _dataset
    if _dataset is None:
        with _dataset_lock:
            if _dataset is None:
                _dataset = AccountingDataset.from_file(DATA_PATH)
    return _dataset
