"""
Streamlit Operator Dashboard for Bookkeeper

A read/ops view over one business's books. Conversational entry of
sales happens elsewhere; this screen is for checking the numbers and
fixing mistakes.

DESIGN PRINCIPLES:
1. Every figure comes from the report aggregator, never computed here
2. Explicit confirmation before anything is deleted
3. Clear error messages in simple language
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import streamlit as st

from bookkeeper.config import validate_all_settings
from bookkeeper.orchestrator import (
    AccountingOrchestrator,
    ReconciliationRequiredError,
    create_app_components,
)
from bookkeeper.queries import ReportAggregator
from bookkeeper.services.storage import DuplicateNameError, NotFoundError
from bookkeeper.validation import InvalidInputError


# Page configuration
st.set_page_config(
    page_title="Bookkeeper",
    page_icon="📒",
    layout="wide",
    initial_sidebar_state="expanded",
)


@st.cache_resource
def get_event_loop() -> asyncio.AbstractEventLoop:
    """One loop for the whole session; ledger locks belong to it."""
    return asyncio.new_event_loop()


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = get_event_loop()
    asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    return create_app_components()


def money(value: Decimal) -> str:
    return f"{value:,.2f}"


def main():
    """Main application entry point."""
    orchestrator, reports, _ = get_components()

    # Sidebar navigation
    st.sidebar.title("📒 Bookkeeper")
    owner_id = st.sidebar.text_input("Business ID", value=st.session_state.get("owner_id", ""))
    st.session_state.owner_id = owner_id
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Overview", "📦 Inventory", "🏦 Balances", "🧾 Transactions", "⚙️ Settings"],
        index=0,
    )

    if page == "⚙️ Settings":
        render_settings_page()
        return

    if not owner_id.strip():
        st.info("Enter a business ID in the sidebar to open its books.")
        return

    owner_id = owner_id.strip()
    if page == "📊 Overview":
        render_overview_page(reports, owner_id)
    elif page == "📦 Inventory":
        render_inventory_page(orchestrator, reports, owner_id)
    elif page == "🏦 Balances":
        render_balances_page(orchestrator, reports, owner_id)
    elif page == "🧾 Transactions":
        render_transactions_page(orchestrator, reports, owner_id)


def render_overview_page(reports: ReportAggregator, owner_id: str):
    """Profit and loss plus the twelve-month chart."""
    st.title("📊 Overview")

    col1, col2 = st.columns(2)
    with col1:
        start = st.date_input("From", value=date.today().replace(day=1))
    with col2:
        end = st.date_input("To", value=date.today())

    try:
        pnl = run_async(reports.compute_profit_and_loss(owner_id, start, end))
    except InvalidInputError as e:
        st.error(str(e))
        return

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Sales", money(pnl.total_sales))
    c2.metric("Cost of goods sold", money(pnl.total_cogs))
    c3.metric("Expenses", money(pnl.total_expenses))
    c4.metric("Net profit", money(pnl.net_profit))

    if pnl.top_expenses_by_category:
        st.markdown("### Top expense categories")
        st.table([
            {"Category": c.category, "Amount": money(c.amount)}
            for c in pnl.top_expenses_by_category
        ])

    stats = run_async(reports.dashboard_stats(owner_id, date.today()))
    st.markdown("### Last 12 months")
    st.bar_chart(
        {
            "Sales": {m.label: float(m.sales) for m in stats.months},
            "Expenses": {m.label: float(m.expenses) for m in stats.months},
        }
    )

    st.markdown("### Recent transactions")
    if stats.recent_transactions:
        st.table([
            {
                "Date": t.transaction_date.isoformat(),
                "Type": t.type.value,
                "Amount": money(t.amount),
                "Description": t.description,
            }
            for t in stats.recent_transactions
        ])
    else:
        st.info("No transactions yet.")

    due = run_async(reports.due_credit_sales(owner_id, date.today(), date.today() + timedelta(days=7)))
    if due:
        st.markdown("### Credit due this week")
        st.table([
            {"Customer": d.customer_name, "Amount": money(d.amount), "Due": d.due_date.isoformat()}
            for d in due
        ])


def render_inventory_page(
    orchestrator: AccountingOrchestrator,
    reports: ReportAggregator,
    owner_id: str,
):
    st.title("📦 Inventory")

    report = run_async(reports.inventory_report(owner_id))
    st.metric("Stock value", money(report.total_value))
    if report.rows:
        st.dataframe([
            {
                "Product": r.name,
                "Qty": r.quantity,
                "Avg cost": money(r.average_cost),
                "Price": money(r.selling_price),
                "Value": money(r.stock_value),
                "Low": "⚠️" if r.is_low_stock else "",
            }
            for r in report.rows
        ])

    st.markdown("### Receive stock")
    banks = run_async(reports.list_bank_balances(owner_id))
    with st.form("receive_stock"):
        name = st.text_input("Product name")
        quantity = st.number_input("Quantity added", min_value=0, step=1)
        unit_cost = st.number_input("Cost per unit", min_value=0.0, step=1.0)
        selling_price = st.number_input("Selling price", min_value=0.0, step=1.0)
        bank = st.selectbox(
            "Paid from",
            options=[None] + banks,
            format_func=lambda b: "Not recorded" if b is None else b.name,
        )
        submitted = st.form_submit_button("Save")

    if submitted:
        try:
            product = run_async(orchestrator.receive_stock(
                owner_id,
                name,
                Decimal(int(quantity)),
                Decimal(str(unit_cost)),
                Decimal(str(selling_price)),
                bank_id=bank.id if bank else None,
            ))
            st.success(f"{product.name}: {product.quantity} in stock at {money(product.average_cost)}")
        except (InvalidInputError, NotFoundError) as e:
            st.error(str(e))


def render_balances_page(
    orchestrator: AccountingOrchestrator,
    reports: ReportAggregator,
    owner_id: str,
):
    st.title("🏦 Balances")

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("### Bank accounts")
        banks = run_async(reports.list_bank_balances(owner_id))
        if banks:
            st.table([{"Account": b.name, "Balance": money(b.balance)} for b in banks])
        else:
            st.info("No bank accounts yet.")

        with st.form("new_bank"):
            name = st.text_input("New account name")
            opening = st.number_input("Opening balance", step=100.0)
            if st.form_submit_button("Create account"):
                try:
                    run_async(orchestrator.create_bank_account(
                        owner_id, name, Decimal(str(opening)),
                    ))
                    st.success(f'Created "{name}"')
                except (InvalidInputError, DuplicateNameError) as e:
                    st.error(str(e))

    with col2:
        st.markdown("### Customers who owe")
        customers = run_async(reports.list_customers_with_balance(owner_id))
        if customers:
            st.table([{"Customer": c.name, "Owes": money(c.balance_owed)} for c in customers])
        else:
            st.info("Nobody owes anything.")


def render_transactions_page(
    orchestrator: AccountingOrchestrator,
    reports: ReportAggregator,
    owner_id: str,
):
    st.title("🧾 Transactions")

    col1, col2 = st.columns(2)
    with col1:
        start = st.date_input("From", value=date.today() - timedelta(days=30))
    with col2:
        end = st.date_input("To", value=date.today())

    try:
        transactions = run_async(reports.list_transactions(owner_id, None, start, end))
    except InvalidInputError as e:
        st.error(str(e))
        return

    if not transactions:
        st.info("No transactions in this period.")
        return

    for txn in reversed(transactions):
        with st.expander(f"{txn.transaction_date} · {txn.type.value} · {money(txn.amount)}"):
            st.write(txn.description)
            confirm = st.checkbox("I want to delete this", key=f"confirm-{txn.id}")
            if st.button("Delete", key=f"delete-{txn.id}", disabled=not confirm):
                try:
                    run_async(orchestrator.delete_transaction(owner_id, txn.id))
                    st.success("Deleted and all balances restored.")
                    st.rerun()
                except ReconciliationRequiredError as e:
                    st.error(
                        "The delete stopped halfway and the books need checking: "
                        f"{e}"
                    )
                except NotFoundError as e:
                    st.error(str(e))


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Application settings", "app"),
        ("Google Sheets (Storage)", "google_sheets"),
    ]

    for name, key in services:
        if key not in status:
            st.info(f"{name} - Not in use")
        elif status[key]:
            st.success(f"✅ {name} - OK")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "Set `STORAGE_BACKEND=google_sheets` and the `GOOGLE_SHEETS_*` "
        "variables in a `.env` file to keep the books in Google Sheets."
    )


if __name__ == "__main__":
    main()
