"""UK Crime Dashboard: street-level crime around one or more postcodes."""

from __future__ import annotations

import asyncio
import logging

import pandas as pd
import plotly.express as px
import pydeck as pdk
import streamlit as st

from pipeline import aggregate
from pipeline.config import configure_logging
from pipeline.errors import CrimeDashboardError
from pipeline.history import HistoryStore, PostcodeHistory
from pipeline.models import CrimeFilter
from pipeline.months import current_month, format_month, months_between
from pipeline.postcodes import parse_postcode_input
from pipeline.search import SearchOrchestrator
from pipeline.session import SearchSession
from pipeline.state import UrlMirror, state_from_query_params, validate_postcode_input

configure_logging()
logger = logging.getLogger(__name__)

CHART_COLOR = "#83c9ff"
FIRST_MONTH = "2020-01"
ALL = "All"

# ── Page config ────────────────────────────────────────────────────────
st.set_page_config(
    page_title="UK Crime Dashboard",
    page_icon="🚓",
    layout="wide",
)
st.title("UK Crime Dashboard")


# ── Session ────────────────────────────────────────────────────────────
@st.cache_resource
def _shared_history() -> PostcodeHistory:
    """One history for every browser session, loaded once from disk."""
    return HistoryStore().load()


def _session() -> SearchSession:
    """One SearchSession per browser session, seeded from the URL once."""
    if "session" not in st.session_state:
        state = state_from_query_params(st.query_params.to_dict())
        mirror = UrlMirror(st.query_params)
        state.subscribe(mirror)
        mirror.loaded()
        st.session_state["session"] = SearchSession(
            SearchOrchestrator(), _shared_history(), state
        )
    return st.session_state["session"]


session = _session()
state = session.state


def _month_options() -> list[str]:
    months = months_between(FIRST_MONTH, current_month())
    for month in (state.date_from, state.date_to):
        if month not in months:
            months.append(month)
    return sorted(months, reverse=True)


def _fmt(n: int | float) -> str:
    return f"{int(n):,}"


# ── Sidebar: recent searches ───────────────────────────────────────────
st.sidebar.header("Recent Searches")
history = session.history.entries
if history:
    for entry in history:
        c1, c2 = st.sidebar.columns([4, 1])
        c1.button(
            f"{entry.postcode} · {format_month(entry.search_date)}",
            key=f"hist-{entry.postcode}",
            on_click=state.set_postcodes, args=([entry.postcode],),
            use_container_width=True,
        )
        c2.button(
            "✕", key=f"hist-rm-{entry.postcode}",
            on_click=session.history.remove, args=(entry.postcode,),
        )
    st.sidebar.button("Clear history", on_click=session.history.clear)
else:
    st.sidebar.caption("No recent searches yet.")


# ── Search form ────────────────────────────────────────────────────────
st.subheader("Search Crime Data")
options = _month_options()
with st.form("search"):
    c1, c2, c3 = st.columns([3, 1, 1])
    raw_input = c1.text_input(
        "Postcodes (comma-separated)",
        value=", ".join(state.postcodes),
        placeholder="e.g., SW1A 1AA, M1 1AA",
    )
    date_from = c2.selectbox(
        "From", options, index=options.index(state.date_from), format_func=format_month,
    )
    date_to = c3.selectbox(
        "To", options, index=options.index(state.date_to), format_func=format_month,
    )
    submitted = st.form_submit_button("Search", disabled=state.is_loading)

if submitted:
    validation_error = validate_postcode_input(raw_input)
    if validation_error:
        st.warning(validation_error)
    else:
        dates_changed = (date_from, date_to) != (state.date_from, state.date_to)
        state.set_date_from(date_from)
        state.set_date_to(date_to)
        # Dates are not part of the search key; force a refetch for them
        if dates_changed and state.postcodes:
            state.trigger_search()
        state.set_postcodes(parse_postcode_input(raw_input))

if state.postcodes:
    st.button("Refresh", on_click=state.trigger_search)

if session.needs_search:
    with st.spinner("Searching..."):
        try:
            asyncio.run(session.search())
        except CrimeDashboardError:
            logger.info("Search for %s failed: %s", state.postcodes, state.error)

if state.error:
    st.error(state.error)

result = session.result
crimes = result.crimes


# ── Tabs ───────────────────────────────────────────────────────────────
tab_overview, tab_table, tab_map = st.tabs(["Overview", "Crime Data", "Map"])


# ═══════════════════════════════════════════════════════════════════════
# TAB 1: Overview
# ═══════════════════════════════════════════════════════════════════════
with tab_overview:
    if not crimes:
        st.info(
            "No crime data available. Please search for postcodes to see statistics.\n\n"
            "Tip: if you searched but see no data, try a month 2-3 months in the past."
        )
    else:
        stats = aggregate.stats(crimes)
        c1, c2, c3 = st.columns(3)
        c1.metric("Total Crimes", _fmt(stats.total_crimes))
        c2.metric("Crime Categories", _fmt(len(stats.category_breakdown)))
        c3.metric("Outcome Types", _fmt(len(stats.outcome_breakdown)))

        col1, col2 = st.columns(2)
        with col1:
            st.subheader("Crimes by Category")
            cat_df = pd.DataFrame(
                list(stats.category_breakdown.items()), columns=["category", "count"]
            )
            fig = px.bar(cat_df, x="count", y="category", orientation="h",
                         color_discrete_sequence=[CHART_COLOR])
            fig.update_layout(yaxis=dict(autorange="reversed"), yaxis_title="", xaxis_title="Crimes")
            st.plotly_chart(fig, use_container_width=True)

        with col2:
            st.subheader("Outcomes")
            out_df = pd.DataFrame(
                list(stats.outcome_breakdown.items()), columns=["outcome", "count"]
            )
            fig = px.pie(out_df, names="outcome", values="count", hole=0.4)
            st.plotly_chart(fig, use_container_width=True)


# ═══════════════════════════════════════════════════════════════════════
# TAB 2: Crime table
# ═══════════════════════════════════════════════════════════════════════
with tab_table:
    if not crimes:
        st.info("No crime data available. Please search for postcodes to see crime details.")
    else:
        values = aggregate.unique_values(crimes)
        f1, f2, f3, f4, f5 = st.columns(5)
        pc_filter = f1.selectbox("Postcode", [ALL, *values.postcodes])
        cat_filter = f2.selectbox("Category", [ALL, *values.categories])
        out_filter = f3.selectbox("Outcome", [ALL, *values.outcomes])
        sort_field = f4.selectbox(
            "Sort by", aggregate.SORTABLE_FIELDS,
            format_func=lambda f: f.replace("_", " ").title(),
        )
        sort_dir = f5.radio("Direction", ["desc", "asc"], horizontal=True)

        rows = aggregate.filter_records(crimes, CrimeFilter(
            postcode=None if pc_filter == ALL else pc_filter,
            category=None if cat_filter == ALL else cat_filter,
            outcome=None if out_filter == ALL else out_filter,
        ))
        rows = aggregate.sort_records(rows, sort_field, sort_dir)

        st.subheader(f"Crime Data - {len(rows):,} crime(s)")
        table = aggregate.to_frame(rows)[
            ["postcode", "display_date", "street_name", "category", "outcome"]
        ]
        st.dataframe(
            table, use_container_width=True, hide_index=True,
            column_config={
                "postcode": "Postcode",
                "display_date": "Month",
                "street_name": "Street",
                "category": "Category",
                "outcome": "Outcome",
            },
        )


# ═══════════════════════════════════════════════════════════════════════
# TAB 3: Map
# ═══════════════════════════════════════════════════════════════════════
with tab_map:
    if not crimes:
        st.info("No crime data available. Please search for postcodes to see crime locations on the map.")
    else:
        groups = aggregate.group_by_location(crimes)
        map_df = pd.DataFrame([
            {
                "lat": g.latitude,
                "lng": g.longitude,
                "postcode": g.postcode,
                "street": g.crimes[0].street_name,
                "count": len(g.crimes),
                "categories": ", ".join(sorted({c.category for c in g.crimes})),
            }
            for g in groups
        ])
        layer = pdk.Layer(
            "ScatterplotLayer",
            data=map_df,
            get_position=["lng", "lat"],
            get_radius="20 + count * 6",
            get_fill_color=[220, 53, 69, 160],
            pickable=True,
        )
        lat, lng = aggregate.map_centre(result.valid_postcodes)
        view = pdk.ViewState(latitude=lat, longitude=lng, zoom=13, pitch=0)
        st.pydeck_chart(pdk.Deck(
            layers=[layer], initial_view_state=view, map_style="light",
            tooltip={"text": "{street} ({postcode})\n{count} crime(s): {categories}"},
        ))
        st.caption(f"Crime Map - {len(crimes):,} crime(s) at {len(groups):,} locations")
