import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio
from datetime import date

import pandas as pd
import streamlit as st

from xpensemate import config
from xpensemate.api import ResourceApi, RestClient
from xpensemate.controller import OptimisticMutationController
from xpensemate.domain import (
    GOAL_DURATIONS,
    GOAL_PRIORITIES,
    GOAL_STATUSES,
    PAYMENT_METHODS,
    PAYMENT_TYPES,
    BudgetGoal,
    Expense,
    Payment,
)
from xpensemate.errors import XpenseMateError, user_message
from xpensemate.events import EventBus
from xpensemate.insights import InsightsPanel, PERIOD_DAYS, records_frame
from xpensemate.logs import configure_logging
from xpensemate.notifications import ERROR, Notifier
from xpensemate.resources import BUDGET_GOALS, EXPENSES, PAYMENTS
from xpensemate.store import RecordListStore

configure_logging(config.LOG_LEVEL)
st.set_page_config(page_title="XpenseMate", layout="wide")


def build_session():
    client = RestClient(
        config.API_URL,
        token_provider=config.token_provider,
        timeout=config.request_timeout(),
        on_unauthorized=config.clear_token,
    )
    bus = EventBus()
    controllers = {}
    for resource in (EXPENSES, BUDGET_GOALS, PAYMENTS):
        controllers[resource.plural] = OptimisticMutationController(
            resource,
            ResourceApi(client, resource),
            store=RecordListStore(per_page=config.PAGE_SIZE),
            notifier=Notifier(duration=config.NOTIFICATION_SECONDS),
            bus=bus,
        )
    st.session_state.loop = asyncio.new_event_loop()
    st.session_state.bus = bus
    st.session_state.controllers = controllers
    st.session_state.insights = InsightsPanel(bus)


if "controllers" not in st.session_state:
    build_session()


def run(coro):
    # one loop per session so per-record locks stay on the loop that made them
    return st.session_state.loop.run_until_complete(coro)


def show_notification(ctrl):
    note = ctrl.notifier.current
    if note is None:
        return
    if note.kind == ERROR:
        st.error(note.message)
    else:
        st.success(note.message)


def pager(ctrl, key):
    store = ctrl.store
    total_pages = max(1, -(-store.total // store.per_page))
    c1, c2, c3 = st.columns([1, 2, 1])
    with c1:
        if st.button("◀ Prev", key=f"{key}_prev", disabled=store.page <= 1):
            run(ctrl.load_page(store.page - 1))
            st.rerun()
    with c2:
        st.caption(f"Page {store.page} of {total_pages} · {store.total} records")
    with c3:
        if st.button("Next ▶", key=f"{key}_next", disabled=store.page >= total_pages):
            run(ctrl.load_page(store.page + 1))
            st.rerun()


def records_table(ctrl, columns):
    if not ctrl.store.records:
        st.info("Nothing here yet")
        return
    rows = [{c: getattr(r, c) for c in ["id", *columns]} for r in ctrl.store.records]
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


def delete_section(ctrl, key, labels, **params):
    options = {r.key: labels(r) for r in ctrl.store.records}
    selected = st.multiselect(
        "Select records to delete", options=list(options), format_func=options.get, key=f"{key}_sel"
    )
    if st.button("🗑 Delete selected", key=f"{key}_del", disabled=not selected):
        if len(selected) == 1:
            run(ctrl.delete(selected[0], **params))
        else:
            run(ctrl.delete_many(selected, **params))
        st.rerun()


def edit_section(ctrl, key, labels, fields):
    """Edit one record of the current page in place.

    ``fields(record, widget_key)`` draws the inputs and returns their values
    by field name; only the ones that differ are sent.
    """
    if not ctrl.store.records:
        return
    st.subheader("Edit")
    options = {r.key: labels(r) for r in ctrl.store.records}
    selected = st.selectbox("Record", list(options), format_func=options.get, key=f"{key}_edit_sel")
    record = ctrl.store.find(selected)
    with st.form(f"{key}_edit_form"):
        values = fields(record, lambda name: f"{key}_edit_{record.key}_{name}")
        if st.form_submit_button("Save changes"):
            changes = {k: v for k, v in values.items() if getattr(record, k) != v}
            if changes:
                run(ctrl.update(record.key, **changes))
            st.rerun()


def choice_index(options, value):
    return options.index(value) if value in options else 0


def expense_fields(record, k):
    return {
        "name": st.text_input("Name", record.name, key=k("name")),
        "amount": st.number_input("Amount", min_value=0.0, value=float(record.amount), step=1.0,
                                  format="%.2f", key=k("amount")),
        "date": st.date_input("Date", value=record.date, key=k("date")),
        "category": st.text_input("Category", record.category, key=k("category")),
        "payment_method": st.selectbox("Payment method", PAYMENT_METHODS,
                                       index=choice_index(PAYMENT_METHODS, record.payment_method),
                                       key=k("method")),
        "detail": st.text_input("Detail", record.detail, key=k("detail")),
    }


def goal_fields(record, k):
    return {
        "name": st.text_input("Name", record.name, key=k("name")),
        "amount": st.number_input("Target amount", min_value=0.0, value=float(record.amount), step=10.0,
                                  format="%.2f", key=k("amount")),
        "category": st.text_input("Category", record.category, key=k("category")),
        "duration": st.selectbox("Duration", GOAL_DURATIONS,
                                 index=choice_index(GOAL_DURATIONS, record.duration), key=k("duration")),
        "priority": st.selectbox("Priority", GOAL_PRIORITIES,
                                 index=choice_index(GOAL_PRIORITIES, record.priority), key=k("priority")),
    }


def payment_fields(record, k):
    return {
        "name": st.text_input("Payer", record.name, key=k("name")),
        "amount": st.number_input("Amount", min_value=0.0, value=float(record.amount), step=1.0,
                                  format="%.2f", key=k("amount")),
        "date": st.date_input("Date", value=record.date, key=k("date")),
        "payment_type": st.selectbox("Type", PAYMENT_TYPES,
                                     index=choice_index(PAYMENT_TYPES, record.payment_type), key=k("type")),
        "custom_payment_type": st.text_input("Custom type", record.custom_payment_type, key=k("custom")),
        "detail": st.text_input("Detail", record.detail, key=k("detail")),
    }


def ensure_loaded(ctrl, key):
    flag = f"{key}_loaded"
    if not st.session_state.get(flag):
        run(ctrl.load_page(1))
        st.session_state[flag] = True


controllers = st.session_state.controllers

menu = st.sidebar.radio("Menu", ["💸 Expenses", "🎯 Budget Goals", "💳 Payments", "📊 Insights"])
if st.sidebar.button("🔄 Refresh"):
    for ctrl in controllers.values():
        run(ctrl.refresh())

if menu == "💸 Expenses":
    ctrl = controllers["expenses"]
    ensure_loaded(ctrl, "expenses")
    st.title("💸 Expenses")
    show_notification(ctrl)

    goals = {g.key: g.name for g in controllers["budget-goals"].store.records}
    with st.form("expense_form", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Name")
            amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
            when = st.date_input("Date", value=date.today())
        with col2:
            category = st.text_input("Category")
            method = st.selectbox("Payment method", PAYMENT_METHODS)
            goal = st.selectbox("Budget goal", [None, *goals], format_func=lambda k: goals.get(k, "—"))
        detail = st.text_input("Detail (optional)")
        if st.form_submit_button("Add Expense"):
            run(ctrl.create(Expense(
                id="", name=name, amount=amount, date=when, category=category,
                detail=detail, payment_method=method, budget_goal_id=goal,
            )))
            st.rerun()

    records_table(ctrl, ["name", "amount", "date", "category", "payment_method"])
    pager(ctrl, "expenses")
    edit_section(ctrl, "expenses", lambda r: f"{r.name} ({r.amount:,.2f})", expense_fields)
    delete_section(ctrl, "expenses", lambda r: f"{r.name} ({r.amount:,.2f})")

elif menu == "🎯 Budget Goals":
    ctrl = controllers["budget-goals"]
    ensure_loaded(ctrl, "goals")
    st.title("🎯 Budget Goals")
    show_notification(ctrl)

    with st.form("goal_form", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Name")
            amount = st.number_input("Target amount", min_value=0.0, step=10.0, format="%.2f")
            when = st.date_input("Date", value=date.today())
        with col2:
            category = st.text_input("Category")
            duration = st.selectbox("Duration", GOAL_DURATIONS, index=1)
            priority = st.selectbox("Priority", GOAL_PRIORITIES, index=1)
        if st.form_submit_button("Add Goal"):
            run(ctrl.create(BudgetGoal(
                id="", name=name, amount=amount, date=when, category=category,
                duration=duration, priority=priority,
            )))
            st.rerun()

    records_table(ctrl, ["name", "amount", "category", "duration", "priority", "status"])
    pager(ctrl, "goals")
    edit_section(ctrl, "goals", lambda r: r.name, goal_fields)

    if ctrl.store.records:
        st.subheader("Change status")
        names = {g.key: g.name for g in ctrl.store.records}
        c1, c2, c3 = st.columns([2, 1, 1])
        with c1:
            goal_key = st.selectbox("Goal", list(names), format_func=names.get)
        with c2:
            status = st.selectbox("Status", GOAL_STATUSES)
        with c3:
            if st.button("Update status"):
                run(ctrl.set_status(goal_key, status))
                st.rerun()
    delete_section(ctrl, "goals", lambda r: r.name)

elif menu == "💳 Payments":
    ctrl = controllers["payments"]
    ensure_loaded(ctrl, "payments")
    st.title("💳 Payments")
    show_notification(ctrl)

    with st.form("payment_form", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Payer")
            amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
            when = st.date_input("Date", value=date.today())
        with col2:
            payment_type = st.selectbox("Type", PAYMENT_TYPES, index=PAYMENT_TYPES.index("one_time"))
            custom = st.text_input("Custom type (when Type is custom)")
        if st.form_submit_button("Add Payment"):
            run(ctrl.create(Payment(
                id="", name=name, amount=amount, date=when,
                payment_type=payment_type, custom_payment_type=custom,
            )))
            st.rerun()

    records_table(ctrl, ["name", "amount", "date", "category"])
    pager(ctrl, "payments")
    edit_section(ctrl, "payments", lambda r: f"{r.name} ({r.amount:,.2f})", payment_fields)
    subtract = st.checkbox("Subtract deleted payments from wallet")
    delete_section(ctrl, "payments", lambda r: f"{r.name} ({r.amount:,.2f})", subtractFromWallet=subtract)

elif menu == "📊 Insights":
    st.title("📊 Budget Insights")
    panel = st.session_state.insights
    expenses = controllers["expenses"]
    goals = controllers["budget-goals"]

    period = st.selectbox("Period", list(PERIOD_DAYS), index=0)
    if panel.stale or st.session_state.get("insights_period") != period:
        try:
            run(panel.reload(expenses.api, goals.api, period=period))
            st.session_state.insights_period = period
        except XpenseMateError as e:
            st.error(user_message(e, "Failed to load insights."))
    summary = panel.summary
    if not summary:
        st.stop()

    growth = summary["growth"]
    k1, k2, k3 = st.columns(3)
    with k1:
        st.metric("This period", f"{growth['current']:,.2f}")
    with k2:
        st.metric("Previous period", f"{growth['previous']:,.2f}")
    with k3:
        st.metric("Growth", f"{growth['growth']:+.1f}%")

    st.subheader("By category")
    if summary["categories"]:
        st.dataframe(pd.DataFrame(summary["categories"], columns=["Category", "Total"]),
                     use_container_width=True, hide_index=True)
    else:
        st.info("No expenses recorded yet")

    st.subheader("Last 7 days")
    st.dataframe(pd.DataFrame(
        [{"Day": d, "Total": v} for d, v in summary["weekly"].items()]
    ), use_container_width=True, hide_index=True)

    st.subheader("Goals")
    for key, g in summary["goals"].items():
        st.metric(g["name"], f"{g['spent']:,.2f} / {g['target']:,.2f}", f"{g['remaining']:,.2f} remaining")
        st.progress(g["percent"] / 100)

    with st.expander("Expense rows used"):
        st.dataframe(records_frame(panel.expenses), use_container_width=True, hide_index=True)
