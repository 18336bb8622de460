"""
MineSmart — Operations & Lot Traceability Dashboard

Backend for a small mining operation: field records (soil analysis,
extraction, lab results, plant production, machinery failures, supply
consumption, shipping) live in a hosted document store, and this package
turns them into lot status, lot history, and paginated reports.

To swap the document store:
    Implement gateway.PersistenceGateway (query / get / insert / update)
    and pass the instance to the functions below. Collection and field
    names are the persisted layout and must not change.

To connect to Streamlit:
    Call dashboard.get_lot_overview(gateway, lot_code) for the tracking
    page, dashboard.get_sold_lots_table(gateway) for the sales page, and
    dashboard.get_report_page(gateway, report, filters, page) for reports.

To add a lot stage:
    Add an entry to config.LOT_STAGES and extend stages.infer_stage; the
    history builder and the UI read labels from the same table.
"""
