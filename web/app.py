#!/usr/bin/env python3
from __future__ import annotations

import tempfile
from pathlib import Path

import pandas as pd
import streamlit as st

from paap_doctor.analytics import category_breakdown, time_distribution, value_distribution
from paap_doctor.data_model import DataModel
from paap_doctor.loader import ALL_FORMATS
from paap_doctor.reporter import generate_comprehensive_analysis

UPLOAD_TYPES = sorted(ext.lstrip(".") for ext in ALL_FORMATS)


def ensure_state() -> None:
    st.session_state.setdefault("model", DataModel())
    st.session_state.setdefault("messages", [])


def import_upload(upload, loader_name: str) -> None:
    """Write the upload to a temporary file and import it; a failure keeps the current data."""
    model: DataModel = st.session_state["model"]
    with tempfile.TemporaryDirectory(prefix="paap_doctor_ui_") as tmpdir:
        path = Path(tmpdir) / upload.name
        path.write_bytes(upload.getvalue())
        try:
            result = getattr(model, loader_name)(path)
        except Exception as exc:
            st.session_state["messages"].append(("error", f"{upload.name}: {exc}"))
            return
    for warning in result.warnings:
        st.session_state["messages"].append(("warning", f"{upload.name}: {warning}"))
    st.session_state["messages"].append(("info", f"{upload.name} imported"))


def render_uploads() -> None:
    left, right = st.columns(2)
    with left:
        cpv_upload = st.file_uploader("CPV registry", type=UPLOAD_TYPES, key="cpv_upload")
        if cpv_upload is not None and st.button("Import CPV registry", width="stretch"):
            import_upload(cpv_upload, "load_cpv_file")
    with right:
        paap_upload = st.file_uploader("Procurement plan (PAAP)", type=UPLOAD_TYPES, key="paap_upload")
        if paap_upload is not None and st.button("Import procurement plan", width="stretch"):
            import_upload(paap_upload, "load_procurement_file")

    for level, message in st.session_state["messages"]:
        if level == "error":
            st.error(message)
        elif level == "warning":
            st.warning(message)
        else:
            st.info(message)
    st.session_state["messages"] = []


def render_metrics(model: DataModel) -> None:
    stats = model.get_statistics()
    cols = st.columns(4)
    cols[0].metric("Procurement items", stats["item_count"])
    cols[1].metric("CPV codes loaded", stats["cpv_code_count"])
    cols[2].metric("Total without TVA (RON)", f"{stats['total_without_tva']:,.2f}")
    cols[3].metric("Total with TVA (RON)", f"{stats['total_with_tva']:,.2f}")


def render_charts(model: DataModel) -> None:
    snapshot = model.snapshot()
    categories = category_breakdown(snapshot)[: model.settings.top_categories]
    ranges = value_distribution(snapshot)
    months = time_distribution(snapshot).months

    st.subheader("Value by CPV category")
    if categories:
        frame = pd.DataFrame({"category": [entry.category for entry in categories], "value": [entry.value for entry in categories]})
        st.bar_chart(frame, x="category", y="value")
    else:
        st.caption("No categorised value yet.")

    left, right = st.columns(2)
    with left:
        st.subheader("Items per value range")
        st.bar_chart(pd.DataFrame({"range": [entry.label for entry in ranges], "items": [entry.count for entry in ranges]}), x="range", y="items")
    with right:
        st.subheader("Monthly value")
        st.bar_chart(
            pd.DataFrame({"month": [bucket.label for bucket in months], "value": [bucket.value for bucket in months]}),
            x="month",
            y="value",
        )


def render_search(model: DataModel) -> None:
    st.subheader("Search")
    query = st.text_input("Item name, CPV code or CPV description", key="search_query")
    matches = model.search(query)
    st.caption(f"{len(matches)} matching item(s)")
    if matches:
        st.dataframe(model.to_dataframe(matches), width="stretch", hide_index=True)


def render_report(model: DataModel) -> None:
    st.subheader("Comprehensive analysis")
    report = generate_comprehensive_analysis(model)
    st.code(report, language=None)
    st.download_button(
        "Download report",
        data=report.encode("utf-8"),
        file_name="procurement-analysis.txt",
        mime="text/plain",
        width="stretch",
    )


def main() -> None:
    st.set_page_config(page_title="paap-doctor", page_icon="📊", layout="wide")
    ensure_state()
    st.title("paap-doctor")
    st.caption("Import a CPV registry and an annual procurement plan, then explore the analysis.")
    render_uploads()

    model: DataModel = st.session_state["model"]
    render_metrics(model)
    if not model.items:
        st.info("Import a procurement plan to see charts and the analysis report.")
        return
    render_charts(model)
    render_search(model)
    render_report(model)


if __name__ == "__main__":
    main()
