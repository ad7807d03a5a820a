"""Tests for the accounting dataset accessor.

All "today"-relative assertions assume the calendar pinned to 31 Oct 2025
by the ``dataset`` fixture.
"""

from __future__ import annotations

import json
from datetime import date

import pytest

from accounting_assistant.services.dataset import (
    InvoiceStatus,
    _months_ago,
    get_dataset,
    parse_status,
)


class TestMonthResolution:
    @pytest.mark.parametrize("name", ["Eylül", "EYLÜL", "eylul", "Eylül 2025"])
    def test_month_names_map_to_label_and_prefix(self, dataset, name):
        assert dataset.resolve_month(name) == ("Eylül 2025", "2025-09")

    def test_unknown_month(self, dataset):
        assert dataset.resolve_month("Şubat") is None
        assert dataset.resolve_month("") is None

    def test_months_ago_clamps_day(self):
        assert _months_ago(date(2025, 3, 31), 1) == date(2025, 2, 28)
        assert _months_ago(date(2025, 1, 15), 2) == date(2024, 11, 15)


class TestStatusParsing:
    def test_accepts_underscore_spelling(self):
        assert parse_status("kısmi_ödendi") is InvoiceStatus.PARTIALLY_PAID

    def test_case_and_accent_insensitive(self):
        assert parse_status("ODENDI") is InvoiceStatus.PAID

    def test_unknown(self):
        assert parse_status("iptal") is None
        assert parse_status(None) is None


class TestSummaryAndCompany:
    def test_summary_figures(self, dataset):
        text = dataset.summary()
        assert "₺1.533.000" in text
        assert "%28.29" in text
        assert "₺456.100" in text
        assert "Son Güncelleme: 31.10.2025" in text

    def test_company_info(self, dataset):
        text = dataset.company_info()
        assert "Tekno Elektronik Ticaret Ltd. Şti." in text
        assert "8450231967" in text

    def test_data_context_is_compact_json(self, dataset):
        context = json.loads(dataset.data_context())
        assert context["firma"]["ad"] == "Tekno Elektronik Ticaret Ltd. Şti."
        assert context["bekleyenFatura"] == 4
        assert context["vadesiGecmisFatura"] == 2
        assert context["kritikStok"] == 3
        assert context["gecikmisAlacak"] == 3
        assert len(context["aylikOzet"]) == 3


class TestInvoices:
    def test_lists_all_invoices(self, dataset):
        text = dataset.invoices()
        assert text.startswith("📄 *Faturalar*")
        assert text.count("*FT-2025-") == 8

    def test_overdue_filter_includes_pending_past_due(self, dataset):
        text = dataset.invoices("gecikmiş")
        assert "FT-2025-002" in text
        assert "FT-2025-006" in text
        assert "FT-2025-005" not in text  # due in November
        assert "FT-2025-003" not in text  # partially paid, not pending

    def test_paid_filter(self, dataset):
        text = dataset.invoices("ödendi")
        assert [i for i in ("FT-2025-001", "FT-2025-004", "FT-2025-007") if i in text] == [
            "FT-2025-001", "FT-2025-004", "FT-2025-007",
        ]
        assert "FT-2025-002" not in text

    def test_caps_listing_at_limit(self, dataset):
        text = dataset.invoices(limit=3)
        assert text.count("*FT-2025-") == 3
        assert "İlk 3 / 8" in text

    def test_unknown_filter_finds_nothing(self, dataset):
        assert dataset.invoices("iptal") == "Bu kriterde fatura bulunamadı."

    def test_invoice_detail_is_case_insensitive(self, dataset):
        text = dataset.invoice_detail("ft-2025-003")
        assert "Fatura No: FT-2025-003" in text
        assert "Anadolu Teknoloji Ltd." in text
        assert "*Genel Toplam: ₺36.000*" in text
        assert "Ödenen: ₺20.000" in text
        assert "Ödeme Tipi: Çek" in text

    def test_missing_invoice(self, dataset):
        assert dataset.invoice_detail("FT-9999") == "❌ FT-9999 numaralı fatura bulunamadı."

    def test_overdue_customers(self, dataset):
        text = dataset.overdue_customers()
        assert "Gecikme: 44 gün" in text
        assert "Gecikme: 10 gün" in text
        assert "🟡 *Kısmi Ödeme Yapanlar:*" in text
        assert "Kalan: ₺16.000" in text


class TestStockAndSales:
    def test_low_stock_only(self, dataset):
        text = dataset.stock(low_stock_only=True)
        assert "Kritik" in text
        for name in ('27" Monitör P27', "Mekanik Klavye K7", "Tablet T10"):
            assert name in text
        assert "Dizüstü Bilgisayar X15" not in text

    def test_full_listing_has_total_value(self, dataset):
        assert "*Toplam Stok Değeri: ₺456.100*" in dataset.stock()

    def test_top_selling_uses_trailing_window(self, dataset):
        text = dataset.top_selling_products(2)
        assert "(Son 2 Ay)" in text
        assert "1. *Tablet T10*\n   26 adet | ₺169.000" in text
        assert "2. *Dizüstü Bilgisayar X15*\n   2 adet | ₺56.000" in text

    def test_longer_window_includes_august(self, dataset):
        text = dataset.top_selling_products(3)
        assert "2. *Dizüstü Bilgisayar X15*\n   5 adet | ₺140.000" in text
        assert "Kablosuz Mouse M2*\n   25 adet | ₺11.250" in text

    def test_category_sales(self, dataset):
        text = dataset.category_sales()
        assert "*Tablet*\n   26 adet | ₺169.000 (%38.2)" in text
        assert "*Toplam Ciro: ₺442.850*" in text
        assert text.index("*Tablet*") < text.index("*Bilgisayar*")

    def test_profit_margin_for_one_product(self, dataset):
        text = dataset.product_profit_margin("tablet")
        assert "Alış: ₺4.900" in text
        assert "Kar: ₺1.600 (%24.62)" in text
        assert "Monitör" not in text

    def test_product_performance_ranks_by_return_count(self, dataset):
        text = dataset.product_performance()
        assert text.index("Kablosuz Mouse M2") < text.index("Tablet T10")
        assert "2 iade | ₺1.350" in text


class TestExpensesAndPayables:
    def test_expenses_for_month(self, dataset):
        text = dataset.expenses("Ekim")
        assert "*Toplam: ₺72.600*" in text
        assert "Pazarlama: ₺18.500" in text
        assert "Eylül dükkan kirası" not in text

    def test_expenses_show_latest_eight_newest_first(self, dataset):
        text = dataset.expenses()
        assert "Ağustos dükkan kirası" not in text
        assert text.index("20.10.2025") < text.index("14.10.2025")
        assert "*Toplam: ₺414.200*" in text

    def test_unknown_month_is_reported(self, dataset):
        assert "bulunamadı" in dataset.expenses("Şubat")

    def test_fixed_expenses(self, dataset):
        text = dataset.fixed_expenses()
        assert "İnternet: ₺1.200" in text
        assert "*Toplam: ₺60.800*" in text

    def test_receivables(self, dataset):
        text = dataset.receivables()
        assert "(44 gün gecikmiş)" in text
        assert "*Toplam Alacak: ₺284.920*" in text

    def test_debts(self, dataset):
        assert "*Toplam Borç: ₺92.400*" in dataset.debts()

    def test_purchase_invoices(self, dataset):
        text = dataset.purchase_invoices()
        assert "🔄 *AF-2025-014*" in text
        assert "Durum: kısmi ödendi" in text
        assert "Kalan: ₺33.600" in text

    def test_collections_by_type(self, dataset):
        text = dataset.collections("cek")
        assert "(Çek)" in text
        assert "Çek No: CK-448812" in text
        assert "*Toplam: ₺20.000*" in text

    def test_collections_without_match(self, dataset):
        assert dataset.collections("senet") == "Bu kriterde tahsilat bulunamadı."

    def test_credit_cards(self, dataset):
        text = dataset.credit_card_debts()
        assert "Kullanılan: ₺71.500 (%89.4)" in text
        assert "*Toplam Limit: ₺230.000*" in text

    def test_pending_taxes(self, dataset):
        text = dataset.tax_payments("beklemede")
        assert "Geçici Vergi" in text
        assert "*Toplam: ₺102.500*" in text
        assert "Muhtasar" not in text


class TestMonthlyPerformance:
    def test_monthly_report_filter(self, dataset):
        text = dataset.monthly_report("eylül")
        assert "Eylül 2025" in text
        assert "Ciro: ₺540.000" in text
        assert "Ağustos" not in text

    def test_compare_months_growth(self, dataset):
        text = dataset.compare_months("Ağustos", "Eylül")
        assert "Ağustos 2025 vs Eylül 2025" in text
        assert "Değişim: 📈 %12.50" in text
        assert "Değişim: 📈 %26.56" in text
        assert "Değişim: 📈 %7.39" in text

    def test_compare_months_decline(self, dataset):
        assert "Değişim: 📉 %-5.00" in dataset.compare_months("Eylül", "Ekim")

    def test_compare_missing_month(self, dataset):
        assert dataset.compare_months("Ocak", "Eylül") == "❌ Belirtilen aylardan biri bulunamadı."

    def test_growth_rate_positive(self, dataset):
        text = dataset.growth_rate("Ağustos", "Eylül")
        assert text.startswith("🚀")
        assert "Ciro Büyümesi: *%12.50*" in text
        assert "Tebrikler" in text

    def test_growth_rate_negative(self, dataset):
        text = dataset.growth_rate("Eylül", "Ekim")
        assert text.startswith("📉")
        assert "⚠️" in text


class TestCustomers:
    def test_customer_analysis_ranks_by_revenue(self, dataset):
        text = dataset.customer_analysis()
        assert text.index("Yıldız Bilgisayar") < text.index("Marmara")
        assert "2 fatura | ₺186.000" in text

    def test_customer_analysis_filter(self, dataset):
        text = dataset.customer_analysis("ege")
        assert "2 fatura | ₺66.120" in text
        assert "Son alışveriş: 07.10.2025" in text
        assert "Yıldız" not in text

    def test_unknown_customer(self, dataset):
        assert dataset.customer_analysis("Olmayan") == "❌ Müşteri bulunamadı."

    def test_customer_details_show_warning(self, dataset):
        text = dataset.customer_details("EGE")
        assert "Risk Skoru: Yüksek" in text
        assert "⚠️ Kredi limitine" in text


class TestPersonnel:
    def test_personnel_list_skips_inactive(self, dataset):
        text = dataset.personnel_list()
        assert "Elif Kaya" in text
        assert "Can Öztürk" not in text

    def test_salary_payments_for_month(self, dataset):
        text = dataset.salary_payments("Ekim")
        assert "Toplam Maaş: ₺190.000" in text
        assert "Ağustos" not in text

    def test_salary_payments_unknown_month(self, dataset):
        assert dataset.salary_payments("Ocak") == "Maaş kaydı bulunamadı."

    def test_advances_total(self, dataset):
        assert "*Toplam: ₺13.000*" in dataset.advances()

    def test_attendance_issues(self, dataset):
        text = dataset.attendance_issues()
        assert "Elif Kaya" in text
        assert "Mehmet Demir" in text
        assert "Ahmet Yılmaz" not in text


class TestMiscellaneous:
    def test_campaigns(self, dataset):
        assert "Okula Dönüş Tablet Kampanyası" in dataset.campaigns()

    def test_returns_total(self, dataset):
        assert "*Toplam: ₺7.850*" in dataset.returns()


class TestSearch:
    def test_matches_customer_on_invoices(self, dataset):
        result = dataset.search("ege")
        assert [f["id"] for f in result.invoices] == ["FT-2025-002", "FT-2025-006"]
        assert result.customer_names == {"Ege Ofis Malzemeleri Ltd."}
        assert result.stock == []

    def test_matches_stock_by_code_or_category(self, dataset):
        result = dataset.search("AKS")
        assert {s["urunKodu"] for s in result.stock} == {"AKS-001", "AKS-002", "AKS-003"}

    def test_blank_query_matches_nothing(self, dataset):
        assert dataset.search("  ").is_empty

    def test_search_text_not_found(self, dataset):
        assert dataset.search_text("zzz") == "🔍 'zzz' için kayıt bulunamadı."


class TestEmptyDataset:
    """Every operation degrades to a descriptive sentence, never an exception."""

    def test_receivables(self, empty_dataset):
        assert empty_dataset.receivables() == "✅ Bekleyen alacak yok!"

    def test_invoices(self, empty_dataset):
        assert empty_dataset.invoices() == "Bu kriterde fatura bulunamadı."

    def test_stock(self, empty_dataset):
        assert empty_dataset.stock() == "✅ Tüm stoklar yeterli seviyede!"

    def test_summary_renders_zeros(self, empty_dataset):
        assert "₺0" in empty_dataset.summary()

    def test_month_operations(self, empty_dataset):
        assert empty_dataset.monthly_report() == "Aylık rapor bulunamadı."
        assert "bulunamadı" in empty_dataset.compare_months("Ekim", "Eylül")

    def test_data_context(self, empty_dataset):
        assert json.loads(empty_dataset.data_context())["faturaAdedi"] == 0


class TestSingleton:
    def test_get_dataset_returns_same_instance(self):
        assert get_dataset() is get_dataset()
