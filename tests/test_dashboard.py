"""Dashboard entry points."""

import pytest

from conftest import extraction_doc
from minesmart.config import EXTRACTION_RECORDS, LAB_ANALYSES, PLANT_RUNS, STATUS_MESSAGES
from minesmart.dashboard import (
    LotLookupSession,
    describe_stage,
    get_lot_overview,
    get_report_page,
    get_sold_lots_table,
)
from minesmart.gateway import GatewayError
from minesmart.sales import confirm_sale


class TestGetLotOverview:

    def test_found(self, gateway, seed_lot):
        seed_lot(gateway)
        overview = get_lot_overview(gateway, "O-123")
        assert overview["status"] == "found"
        assert overview["lot"]["zona"] == "Zona Norte"
        assert overview["lot"]["cantidad"] == 12.5
        assert overview["lot"]["fecha_display"] == "01/06/2024"
        assert overview["stage"]["current_stage"] == "plant"
        assert len(overview["history"]) == 3
        assert overview["error"] is None

    def test_not_found(self, gateway):
        overview = get_lot_overview(gateway, "X-999")
        assert overview["status"] == "not_found"
        assert overview["stage"]["current_stage"] == "pending"
        assert "X-999" in overview["error"]
        assert describe_stage(overview) == STATUS_MESSAGES["not_found"]

    def test_blank_code(self, gateway):
        overview = get_lot_overview(gateway, "  ")
        assert overview["status"] == "not_found"
        assert overview["history"] == []

    def test_extraction_failure_is_error(self, flaky_gateway, seed_lot):
        seed_lot(flaky_gateway)
        flaky_gateway.fail.add(("query", EXTRACTION_RECORDS))
        overview = get_lot_overview(flaky_gateway, "O-123")
        assert overview["status"] == "error"
        assert overview["lot"] is None

    def test_degraded(self, flaky_gateway, seed_lot):
        seed_lot(flaky_gateway)
        flaky_gateway.fail.add(("query", LAB_ANALYSES))
        overview = get_lot_overview(flaky_gateway, "O-123")
        assert overview["status"] == "found"
        assert overview["degraded"] == [LAB_ANALYSES]
        assert LAB_ANALYSES in overview["error"]
        # Without lab results the forward walk stops at extraction.
        assert overview["stage"]["current_stage"] == "extraction"


class TestLotLookupSession:

    def test_accepts_current(self, gateway, seed_lot):
        seed_lot(gateway)
        session = LotLookupSession(gateway)
        result = session.lookup("O-123")
        assert session.accept("O-123", result)
        assert session.result is result

    def test_discards_stale_result(self, gateway, seed_lot):
        seed_lot(gateway, lote="O-123")
        seed_lot(gateway, lote="C-045", plant=False)
        session = LotLookupSession(gateway)

        first = session.lookup("O-123")
        second = session.lookup("C-045")

        assert session.accept("C-045", second)
        assert not session.accept("O-123", first)
        assert session.result["query"] == "C-045"
        assert session.result["stage"]["current_stage"] == "lab"

    def test_whitespace_does_not_make_result_stale(self, gateway, seed_lot):
        seed_lot(gateway)
        session = LotLookupSession(gateway)
        result = session.lookup(" O-123")
        assert session.accept("O-123 ", result)


class TestSoldLotsTable:

    def test_filter_and_display_columns(self, gateway, seed_lot):
        ids = seed_lot(gateway, lote="O-123")
        seed_lot(gateway, lote="C-045")
        confirm_sale(gateway, ids[PLANT_RUNS][0], "plant")

        table = get_sold_lots_table(gateway, "o-1")
        assert set(table["lote"]) == {"O-123"}
        assert set(table["tipo"]) == {"planta", "despacho"}
        assert set(table["estado"]) == {"Sold"}
        assert table["fecha_display"].iloc[0] != "—"

    def test_no_filter(self, gateway, seed_lot):
        seed_lot(gateway, lote="O-123")
        seed_lot(gateway, lote="C-045")
        table = get_sold_lots_table(gateway, "")
        assert len(table) == 2
        assert set(table["estado"]) == {"Pending"}

    def test_empty(self, gateway):
        assert get_sold_lots_table(gateway).empty

    def test_store_failure_propagates(self, flaky_gateway):
        flaky_gateway.fail.add(("query", PLANT_RUNS))
        with pytest.raises(GatewayError):
            get_sold_lots_table(flaky_gateway)


class TestReportPage:

    def test_paged_and_summarised(self, gateway):
        gateway.load(EXTRACTION_RECORDS, [
            extraction_doc(f"O-{i:03d}", fecha=f"2024-06-{i:02d}", cantidad_t=1) for i in range(1, 24)
        ])
        result = get_report_page(gateway, EXTRACTION_RECORDS, {}, 3)
        assert result["page"] == 3
        assert result["total_pages"] == 3
        assert len(result["rows"]) == 3
        assert result["caption"] == "Showing 21 to 23 of 23 records"
        assert result["summary"]["total_t"] == 23
        # Newest first: the last page holds the oldest records.
        assert list(result["rows"]["lote"]) == ["O-003", "O-002", "O-001"]

    def test_filters_apply_before_paging(self, gateway):
        gateway.load(EXTRACTION_RECORDS, [extraction_doc("O-001", zona="Norte"), extraction_doc("O-002", zona="Sur")])
        result = get_report_page(gateway, EXTRACTION_RECORDS, {"zone": "sur"}, 5)
        assert result["page"] == 1
        assert list(result["rows"]["lote"]) == ["O-002"]

    def test_unknown_report(self, gateway):
        with pytest.raises(ValueError):
            get_report_page(gateway, "invoices", {}, 1)
