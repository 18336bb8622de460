"""Sale confirmation and the merged sale record listing."""

import pytest

from conftest import FIXED_NOW, plant_doc, shipping_doc
from minesmart.config import (
    DIRECT_SALE_CLIENT,
    DIRECT_SALE_NOTE,
    PENDING_CARRIER,
    PLANT_RUNS,
    SHIPPING_RECORDS,
)
from minesmart.lots import fetch_lot_aggregate
from minesmart.sales import (
    RecordNotFoundError,
    SaleConfirmationError,
    confirm_sale,
    list_sale_records,
    product_name,
)
from minesmart.stages import infer_stage


class TestConfirmPlantSale:

    def test_creates_exactly_one_shipping_record(self, gateway, seed_lot, now):
        ids = seed_lot(gateway)
        run_id = ids[PLANT_RUNS][0]

        confirm_sale(gateway, run_id, "plant", now=now)

        shipping = gateway.query(SHIPPING_RECORDS, where=("lote", "O-123"))
        assert len(shipping) == 1
        record = shipping[0]
        assert record["vendido"] is True
        assert record["fecha_venta"] == now
        assert record["cliente_destino"] == DIRECT_SALE_CLIENT
        assert record["transportista"] == PENDING_CARRIER
        assert record["observaciones"] == DIRECT_SALE_NOTE
        assert record["producto"] == "Concentrado de Oro"
        assert record["cantidad_kg"] == 4000.0
        assert record["pureza_final"] == 91.2
        assert record["fecha"] == "2024-06-03"

        run = gateway.get(PLANT_RUNS, run_id)
        assert run["vendido"] is True
        assert run["fecha_venta"] == now

    def test_existing_shipping_record_is_updated(self, gateway, seed_lot, now):
        ids = seed_lot(gateway, shipping=True)

        confirm_sale(gateway, ids[PLANT_RUNS][0], "planta", now=now)

        assert gateway.count(SHIPPING_RECORDS) == 1
        record = gateway.get(SHIPPING_RECORDS, ids[SHIPPING_RECORDS][0])
        assert record["vendido"] is True
        assert record["fecha_venta"] == now
        assert record["cliente_destino"] == "Fundición Sur"

    def test_quantity_falls_back_to_tonnes(self, gateway, seed_lot, now):
        seed_lot(gateway, plant=False)
        [run_id] = gateway.load(PLANT_RUNS, [plant_doc(cantidad_kg=None, cantidad_t=2.5, material="cobre")])
        confirm_sale(gateway, run_id, "plant", now=now)
        record = gateway.query(SHIPPING_RECORDS)[0]
        assert record["cantidad_kg"] == 2500.0
        assert record["producto"] == "Concentrado de Cobre"

    def test_missing_date_uses_today(self, gateway, seed_lot, now):
        seed_lot(gateway, plant=False)
        [run_id] = gateway.load(PLANT_RUNS, [plant_doc(fecha="")])
        confirm_sale(gateway, run_id, "plant", now=now)
        assert gateway.query(SHIPPING_RECORDS)[0]["fecha"] == "2024-06-10"

    def test_lot_becomes_sold(self, gateway, seed_lot, now):
        ids = seed_lot(gateway)
        confirm_sale(gateway, ids[PLANT_RUNS][0], "plant", now=now)
        assert infer_stage(fetch_lot_aggregate(gateway, "O-123"))["current_stage"] == "sold"

    def test_fixed_clock_is_used(self, gateway, seed_lot):
        ids = seed_lot(gateway)
        confirm_sale(gateway, ids[PLANT_RUNS][0], "plant")
        assert gateway.get(PLANT_RUNS, ids[PLANT_RUNS][0])["updated_at"] == FIXED_NOW

    def test_run_without_lot_touches_no_shipping_record(self, flaky_gateway):
        [unrelated] = flaky_gateway.load(SHIPPING_RECORDS, [shipping_doc(lote="")])
        [run_id] = flaky_gateway.load(PLANT_RUNS, [plant_doc(lote="  ")])

        with pytest.raises(SaleConfirmationError) as excinfo:
            confirm_sale(flaky_gateway, run_id, "plant")

        assert excinfo.value.step == "shipping lookup"
        assert flaky_gateway.get(SHIPPING_RECORDS, unrelated)["vendido"] is False
        assert flaky_gateway.count(SHIPPING_RECORDS) == 1
        assert flaky_gateway.get(PLANT_RUNS, run_id)["vendido"] is False
        assert [op for op, _ in flaky_gateway.calls] == ["get"]


class TestConfirmShippingSale:

    def test_updates_only_that_record(self, gateway, seed_lot, now):
        ids = seed_lot(gateway, shipping=True)

        confirm_sale(gateway, ids[SHIPPING_RECORDS][0], "shipping", now=now)

        assert gateway.count(SHIPPING_RECORDS) == 1
        assert gateway.get(SHIPPING_RECORDS, ids[SHIPPING_RECORDS][0])["vendido"] is True
        assert gateway.get(PLANT_RUNS, ids[PLANT_RUNS][0])["vendido"] is False

    def test_accepts_despacho_alias(self, gateway, seed_lot, now):
        ids = seed_lot(gateway, shipping=True)
        confirm_sale(gateway, ids[SHIPPING_RECORDS][0], "despacho", now=now)
        assert gateway.get(SHIPPING_RECORDS, ids[SHIPPING_RECORDS][0])["vendido"] is True


class TestConfirmSaleFailures:

    def test_unknown_record_type(self, gateway):
        with pytest.raises(ValueError):
            confirm_sale(gateway, "abc", "warehouse")

    def test_unknown_id_writes_nothing(self, flaky_gateway, seed_lot):
        seed_lot(flaky_gateway)
        flaky_gateway.calls.clear()
        with pytest.raises(RecordNotFoundError):
            confirm_sale(flaky_gateway, "missing", "plant")
        assert flaky_gateway.count(SHIPPING_RECORDS) == 0
        assert [op for op, _ in flaky_gateway.calls] == ["get"]

    def test_record_not_found_is_a_sale_error(self):
        assert issubclass(RecordNotFoundError, SaleConfirmationError)

    @pytest.mark.parametrize("failing, step", [
        (("query", SHIPPING_RECORDS), "shipping lookup"),
        (("insert", SHIPPING_RECORDS), "shipping create"),
        (("update", PLANT_RUNS), "source update"),
        (("get", PLANT_RUNS), "load"),
    ])
    def test_failure_reports_step(self, flaky_gateway, seed_lot, failing, step):
        ids = seed_lot(flaky_gateway)
        flaky_gateway.fail.add(failing)
        with pytest.raises(SaleConfirmationError) as excinfo:
            confirm_sale(flaky_gateway, ids[PLANT_RUNS][0], "plant")
        assert excinfo.value.step == step

    @pytest.mark.parametrize("failing, step", [
        (("query", SHIPPING_RECORDS), "shipping lookup"),
        (("update", SHIPPING_RECORDS), "shipping update"),
        (("update", PLANT_RUNS), "source update"),
    ])
    def test_failure_reports_step_with_existing_shipping(self, flaky_gateway, seed_lot, failing, step):
        ids = seed_lot(flaky_gateway, shipping=True)
        flaky_gateway.fail.add(failing)
        with pytest.raises(SaleConfirmationError) as excinfo:
            confirm_sale(flaky_gateway, ids[PLANT_RUNS][0], "plant")
        assert excinfo.value.step == step
        assert flaky_gateway.count(SHIPPING_RECORDS) == 1

    def test_failed_source_update_is_not_rolled_back(self, flaky_gateway, seed_lot):
        ids = seed_lot(flaky_gateway)
        flaky_gateway.fail.add(("update", PLANT_RUNS))
        with pytest.raises(SaleConfirmationError):
            confirm_sale(flaky_gateway, ids[PLANT_RUNS][0], "plant")
        assert flaky_gateway.count(SHIPPING_RECORDS) == 1
        assert flaky_gateway.get(PLANT_RUNS, ids[PLANT_RUNS][0])["vendido"] is False

    def test_retry_after_partial_failure_does_not_duplicate(self, flaky_gateway, seed_lot):
        ids = seed_lot(flaky_gateway)
        flaky_gateway.fail.add(("update", PLANT_RUNS))
        with pytest.raises(SaleConfirmationError):
            confirm_sale(flaky_gateway, ids[PLANT_RUNS][0], "plant")
        flaky_gateway.fail.clear()
        confirm_sale(flaky_gateway, ids[PLANT_RUNS][0], "plant")
        assert flaky_gateway.count(SHIPPING_RECORDS) == 1
        assert flaky_gateway.get(PLANT_RUNS, ids[PLANT_RUNS][0])["vendido"] is True


class TestProductName:

    @pytest.mark.parametrize("material, expected", [
        ("oro", "Concentrado de Oro"),
        ("Cobre", "Concentrado de Cobre"),
        ("Concentrado de Oro", "Concentrado de Oro"),
        ("plata", "plata"),
        ("", "Concentrado"),
        (None, "Concentrado"),
    ])
    def test_mapping(self, material, expected):
        assert product_name(material) == expected


class TestListSaleRecords:

    def test_merges_and_sorts_newest_first(self, gateway):
        gateway.load(PLANT_RUNS, [plant_doc("O-1", fecha="2024-06-03"), plant_doc("O-2", fecha="2024-06-09")])
        gateway.load(SHIPPING_RECORDS, [shipping_doc("O-1", fecha="2024-06-05")])
        df = list_sale_records(gateway)
        assert list(df["fecha"]) == ["2024-06-09", "2024-06-05", "2024-06-03"]
        assert list(df["tipo"]) == ["planta", "despacho", "planta"]

    def test_plant_rows_have_no_client(self, gateway):
        gateway.load(PLANT_RUNS, [plant_doc()])
        row = list_sale_records(gateway).iloc[0]
        assert row["cliente_destino"] is None
        assert row["producto"] == "Concentrado de Oro"

    def test_empty(self, gateway):
        df = list_sale_records(gateway)
        assert df.empty
        assert "tipo" in df.columns

    def test_query_failure_propagates(self, flaky_gateway):
        from minesmart.gateway import GatewayError

        flaky_gateway.fail.add(("query", SHIPPING_RECORDS))
        with pytest.raises(GatewayError):
            list_sale_records(flaky_gateway)

    def test_serialised_dates_sort_by_instant(self, gateway):
        gateway.load(PLANT_RUNS, [
            plant_doc("O-1", fecha="2024-06-03"),
            plant_doc("O-2", fecha={"seconds": 1717891200, "nanoseconds": 0}),
        ])
        gateway.load(SHIPPING_RECORDS, [shipping_doc("O-1", fecha="2024-06-05"), shipping_doc("O-3", fecha="")])
        df = list_sale_records(gateway)
        assert list(df["lote"]) == ["O-2", "O-1", "O-1", "O-3"]
        assert list(df["tipo"]) == ["planta", "despacho", "planta", "despacho"]
