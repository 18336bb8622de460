"""
MineSmart — Mining Operations Dashboard

Run with:  streamlit run app.py

Set DATABASE_URL (and optionally DATABASE_NAME) to use MongoDB; without it
the app runs on an in-memory store that lives as long as the server.
"""

import sys
from datetime import date
from pathlib import Path

import streamlit as st
import plotly.graph_objects as go
import plotly.express as px

sys.path.insert(0, str(Path(__file__).resolve().parent))

from minesmart.config import (
    CONDITIONS,
    DATABASE_URL,
    EXTRACTION_RECORDS,
    FAILURE_STATES,
    LAB_ANALYSES,
    LOT_STAGES,
    MATERIALS,
    PLANT_CONSUMPTIONS,
    PLANT_FAILURES,
    PLANT_RUNS,
    PRODUCT_NAMES,
    SHIFTS,
    SHIPPING_RECORDS,
    SOIL_ANALYSES,
    SUPPLIES,
)
from minesmart.dashboard import (
    LotLookupSession,
    describe_stage,
    get_report_page,
    get_sold_lots_table,
)
from minesmart.gateway import GatewayError, InMemoryGateway, MongoGateway
from minesmart.history import history_frame, resolve_timestamp
from minesmart.kpis import (
    consumption_summary,
    downtime_summary,
    latest_month_change,
    monthly_production,
    purity_stats,
)
from minesmart.loaders import format_number, format_percent, load_collection
from minesmart.registration import (
    RegistrationError,
    known_lots,
    known_zones,
    register_extraction,
    register_lab_analysis,
    register_plant_run,
    register_shipment,
    register_soil_analysis,
    register_supply,
)
from minesmart.sales import SaleConfirmationError, confirm_sale

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="MineSmart Dashboard",
    page_icon="⛏️",
    layout="wide",
    initial_sidebar_state="expanded",
)

STAGE_COLORS = {
    "extraction": "#2B5E7E",
    "lab": "#6366F1",
    "plant": "#EC7E3A",
    "shipping": "#14B8A6",
    "sold": "#22C55E",
}

REPORTS = {
    "Extraction": EXTRACTION_RECORDS,
    "Laboratory": LAB_ANALYSES,
    "Plant": PLANT_RUNS,
    "Shipping": SHIPPING_RECORDS,
    "Soil analysis": SOIL_ANALYSES,
}


# ---------------------------------------------------------------------------
# Store (cached for the server's lifetime)
# ---------------------------------------------------------------------------
@st.cache_resource
def get_gateway():
    if DATABASE_URL:
        return MongoGateway.from_env()
    return InMemoryGateway()


gateway = get_gateway()

if "lookup" not in st.session_state:
    st.session_state.lookup = LotLookupSession(gateway)

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title("MineSmart")
st.sidebar.markdown("Mining Operations Dashboard")
st.sidebar.divider()

page = st.sidebar.radio(
    "Navigate",
    ["Lot Tracking", "Sold Lots", "Reports", "Management", "Register"],
)

st.sidebar.divider()
st.sidebar.caption("Store: MongoDB" if DATABASE_URL else "Store: in-memory (DATABASE_URL not set)")


# ---------------------------------------------------------------------------
# Helper: lot timeline
# ---------------------------------------------------------------------------
def timeline_figure(events: list[dict]) -> go.Figure:
    points = [(resolve_timestamp(e), e) for e in events]
    points = [(ts, e) for ts, e in points if ts is not None]
    fig = go.Figure(go.Scatter(
        x=[ts for ts, _ in points],
        y=[e["stage"] for _, e in points],
        mode="markers+lines",
        marker=dict(size=12, color=[STAGE_COLORS.get(e["stage"], "#95a5a6") for _, e in points]),
        text=[e["label"] for _, e in points],
        hovertemplate="%{text}<br>%{x}<extra></extra>",
    ))
    fig.update_layout(
        height=300,
        yaxis=dict(categoryorder="array", categoryarray=[s["id"] for s in LOT_STAGES]),
        plot_bgcolor="rgba(0,0,0,0)",
        margin=dict(l=10, r=10, t=10, b=40),
    )
    return fig


# ===========================================================================
# PAGE: Lot Tracking
# ===========================================================================
if page == "Lot Tracking":
    st.title("Lot Tracking")

    session: LotLookupSession = st.session_state.lookup
    code = st.text_input("Lot code", placeholder="O-123")
    if st.button("Search", type="primary") and code.strip():
        with st.spinner("Looking up lot..."):
            result = session.lookup(code)
        session.accept(code, result)

    overview = session.result
    if overview is not None:
        if overview["status"] == "error":
            st.error(overview["error"])
        elif overview["status"] == "not_found":
            st.warning(overview["error"] or describe_stage(overview))
        else:
            if overview["degraded"]:
                st.warning(overview["error"])

            lot = overview["lot"]
            cols = st.columns(4)
            cols[0].metric("Lot", lot["lote"])
            cols[1].metric("Zone", lot["zona"] or "—")
            cols[2].metric("Material", lot["material"] or "—")
            cols[3].metric("Quantity", f"{format_number(lot['cantidad'])} t")

            st.subheader("Process")
            flags = overview["stage"]["stages"]
            stage_cols = st.columns(len(LOT_STAGES))
            for col, stage in zip(stage_cols, LOT_STAGES):
                done = flags[stage["id"]]
                col.markdown(
                    f"<div style='border-top: 4px solid {STAGE_COLORS[stage['id']] if done else '#ddd'};"
                    f" padding: 8px;'><b>{stage['label']}</b><br>"
                    f"<span style='color: #888;'>{stage['description']}</span></div>",
                    unsafe_allow_html=True,
                )
            st.info(describe_stage(overview))

            st.subheader("History")
            if overview["history"]:
                st.plotly_chart(timeline_figure(overview["history"]), use_container_width=True)
            st.dataframe(history_frame(overview["history"]), use_container_width=True, hide_index=True)


# ===========================================================================
# PAGE: Sold Lots
# ===========================================================================
elif page == "Sold Lots":
    st.title("Sold Lots")

    lot_filter = st.text_input("Filter by lot")
    try:
        table = get_sold_lots_table(gateway, lot_filter)
    except GatewayError as exc:
        st.error(f"Could not load records: {exc}")
        st.stop()

    if table.empty:
        st.info("No plant or shipping records.")

    for _, row in table.iterrows():
        cols = st.columns([1, 2, 2, 2, 2, 2, 2])
        cols[0].write("Plant" if row["tipo"] == "planta" else "Shipping")
        cols[1].write(row["lote"] or "—")
        cols[2].write(row["fecha_display"])
        cols[3].write(row["producto"] or "—")
        cols[4].write(f"{format_number(row['cantidad_kg'])} kg")
        cols[5].write(row["cliente_destino"] or "—")
        if row["vendido"]:
            cols[6].success(f"Sold {row['fecha_venta_display']}")
        elif cols[6].button("Confirm sale", key=f"sell-{row['tipo']}-{row['id']}"):
            try:
                confirm_sale(gateway, row["id"], row["tipo"])
            except SaleConfirmationError as exc:
                st.error(f"Sale not confirmed ({exc.step}): {exc}")
            else:
                st.rerun()


# ===========================================================================
# PAGE: Reports
# ===========================================================================
elif page == "Reports":
    st.title("Reports")

    label = st.selectbox("Report", list(REPORTS))
    report = REPORTS[label]

    col1, col2, col3 = st.columns(3)
    zone = col1.text_input("Zone")
    lot = col2.text_input("Lot")
    material = col3.selectbox("Material", ["", *MATERIALS])
    col4, col5 = st.columns(2)
    start = col4.date_input("From", value=None)
    end = col5.date_input("To", value=None)

    page_key = f"page-{report}"
    requested = st.session_state.get(page_key, 1)
    filters = {"zone": zone, "lot": lot, "material": material, "start": start, "end": end}

    try:
        result = get_report_page(gateway, report, filters, requested)
    except GatewayError as exc:
        st.error(f"Could not load report: {exc}")
        st.stop()

    summary = result["summary"] or {}
    metric_cols = st.columns(max(1, len(summary)))
    for col, (name, value) in zip(metric_cols, summary.items()):
        if isinstance(value, float):
            value = format_number(value)
        elif value is None:
            value = "—"
        elif isinstance(value, dict):
            value = ", ".join(f"{k}: {format_number(v)}" for k, v in value.items()) or "—"
        col.metric(name.replace("_", " ").capitalize(), value)

    st.dataframe(result["rows"].drop(columns=["date"]), use_container_width=True, hide_index=True)
    st.caption(result["caption"])

    prev_col, _, next_col = st.columns([1, 4, 1])
    if prev_col.button("Previous", disabled=result["page"] <= 1):
        st.session_state[page_key] = result["page"] - 1
        st.rerun()
    if next_col.button("Next", disabled=result["page"] >= result["total_pages"]):
        st.session_state[page_key] = result["page"] + 1
        st.rerun()


# ===========================================================================
# PAGE: Management
# ===========================================================================
elif page == "Management":
    st.title("Management")

    try:
        runs = load_collection(gateway, PLANT_RUNS)
        failures = load_collection(gateway, PLANT_FAILURES)
        consumptions = load_collection(gateway, PLANT_CONSUMPTIONS)
        supplies = load_collection(gateway, SUPPLIES)
    except GatewayError as exc:
        st.error(f"Could not load management data: {exc}")
        st.stop()

    downtime = downtime_summary(failures)
    purity = purity_stats(runs)
    monthly = monthly_production(runs)
    latest = latest_month_change(monthly)
    consumption = consumption_summary(consumptions, supplies)

    cols = st.columns(4)
    cols[0].metric("Failures", downtime["failures"], help=f"{downtime['open']} open")
    cols[1].metric("Mean downtime", f"{format_number(downtime['mean_hours'], 1)} h")
    cols[2].metric(
        "Latest month production",
        f"{format_number(latest['total'])} t",
        delta=f"{latest['change_pct']:+.1f}%" if latest["change_pct"] is not None else None,
    )
    cols[3].metric("Supplies consumed", format_number(consumption["total"]))

    st.subheader("Downtime by machine")
    if not downtime["by_machine"].empty:
        fig = px.bar(downtime["by_machine"], x="maquina", y="hours", text="failures")
        fig.update_layout(height=350, plot_bgcolor="rgba(0,0,0,0)", xaxis_title="", yaxis_title="Hours")
        st.plotly_chart(fig, use_container_width=True)

    st.subheader(f"Final purity, last {purity['lots']} runs in window")
    purity_cols = st.columns(len(MATERIALS))
    for col, material in zip(purity_cols, MATERIALS):
        stats = purity[material]
        col.metric(
            PRODUCT_NAMES[material],
            format_percent(stats["mean"]),
            help=f"std {format_percent(stats['std'])}, min {stats['min_lot'] or '—'}, max {stats['max_lot'] or '—'}",
        )

    st.subheader("Monthly production")
    if not monthly.empty:
        fig = go.Figure()
        for material in MATERIALS:
            fig.add_trace(go.Bar(x=monthly["month"], y=monthly[material], name=material.capitalize()))
        fig.update_layout(barmode="stack", height=350, plot_bgcolor="rgba(0,0,0,0)", yaxis_title="t")
        st.plotly_chart(fig, use_container_width=True)

    if consumption["low_stock"]:
        st.warning("Low stock: " + ", ".join(consumption["low_stock"]))


# ===========================================================================
# PAGE: Register
# ===========================================================================
elif page == "Register":
    st.title("Register")

    form_name = st.selectbox(
        "Entry", ["Soil analysis", "Extraction", "Laboratory", "Plant", "Shipping", "Supply"],
    )

    def submit(register, entry, *args, **kwargs):
        try:
            record_id = register(gateway, entry, *args, **kwargs)
        except RegistrationError as exc:
            for message in exc.errors:
                st.error(message)
        except GatewayError as exc:
            st.error(f"Could not save the record: {exc}")
        else:
            st.success(f"Saved ({record_id})")

    with st.form(form_name):
        if form_name == "Soil analysis":
            entry = {
                "zona": st.text_input("Zone"),
                "fecha": st.date_input("Date", value=date.today()),
                "analista": st.text_input("Analyst"),
                "resultado_ph": st.number_input("pH", min_value=0.0, max_value=14.0, value=7.0),
                "pureza": st.number_input("Purity %", min_value=0.0, max_value=100.0),
                "humedad": st.number_input("Humidity %", min_value=0.0, max_value=100.0),
                "zona_apta": st.checkbox("Zone suitable"),
                "observaciones": st.text_area("Notes"),
            }
            if st.form_submit_button("Save"):
                submit(register_soil_analysis, entry)

        elif form_name == "Extraction":
            entry = {
                "zona": st.text_input("Zone"),
                "material": st.selectbox("Material", MATERIALS),
                "lote": st.text_input("Lot code", placeholder="O-123"),
                "fecha": st.date_input("Date", value=date.today()),
                "cantidad_t": st.number_input("Quantity (t)", min_value=0.0),
                "operador": st.text_input("Operator"),
                "condicion": st.selectbox("Condition", CONDITIONS),
                "observaciones": st.text_area("Notes"),
            }
            if st.form_submit_button("Save"):
                submit(register_extraction, entry)

        elif form_name == "Laboratory":
            entry = {
                "zona": st.selectbox("Zone", known_zones(gateway)),
                "lote": st.selectbox("Lot", known_lots(gateway)),
                "operador": st.text_input("Operator"),
                "material": st.selectbox("Material", MATERIALS),
                "fecha_envio": st.date_input("Sent", value=date.today()),
                "resultado": st.selectbox("Result", ["Aprobado", "Rechazado"]),
                "pureza": st.number_input("Purity %", min_value=1.0, max_value=100.0),
                "humedad": st.number_input("Humidity %", min_value=1.0, max_value=100.0),
                "observaciones": st.text_area("Notes"),
            }
            if st.form_submit_button("Save"):
                submit(register_lab_analysis, entry)

        elif form_name == "Plant":
            entry = {
                "zona": st.selectbox("Zone", known_zones(gateway)),
                "lote": st.selectbox("Lot", known_lots(gateway)),
                "material": st.selectbox("Material", MATERIALS),
                "operador": st.text_input("Operator"),
                "condicion": st.selectbox("Condition", CONDITIONS),
                "fecha": st.date_input("Date", value=date.today()),
                "cantidad_t": st.number_input("Quantity (t)", min_value=0.0),
                "pureza_final": st.number_input("Final purity %", min_value=1.0, max_value=100.0),
                "turno": st.selectbox("Shift", SHIFTS),
                "observaciones": st.text_area("Notes"),
            }
            has_failure = st.checkbox("Machine failure")
            breakdown = {
                "maquina": st.text_input("Machine"),
                "tipo_falla": st.text_input("Failure type"),
                "duracion_horas": st.number_input("Duration (h)", min_value=0.0),
                "estado": st.selectbox("Failure status", FAILURE_STATES),
                "responsable": st.text_input("Responsible"),
                "descripcion": st.text_area("Failure description"),
            }
            if st.form_submit_button("Save"):
                submit(register_plant_run, entry, failure=breakdown if has_failure else None)

        elif form_name == "Shipping":
            entry = {
                "fecha": st.date_input("Date", value=date.today()),
                "lote": st.selectbox("Lot", known_lots(gateway)),
                "producto": st.selectbox("Product", list(PRODUCT_NAMES.values())),
                "cantidad_kg": st.number_input("Quantity (kg)", min_value=0.0),
                "pureza_final": st.number_input("Final purity %", min_value=1.0, max_value=100.0),
                "cliente_destino": st.text_input("Client"),
                "transportista": st.text_input("Carrier"),
                "observaciones": st.text_area("Notes"),
            }
            if st.form_submit_button("Save"):
                submit(register_shipment, entry)

        else:
            entry = {
                "codigo": st.text_input("Code"),
                "nombre": st.text_input("Name"),
                "unidad": st.text_input("Unit"),
                "cantidad_actual": st.number_input("Stock", min_value=0.0),
                "cantidad_minima": st.number_input("Minimum stock", min_value=0.0),
            }
            if st.form_submit_button("Save"):
                submit(register_supply, entry)
