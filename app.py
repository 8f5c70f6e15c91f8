"""
app.py
Streamlit patient visit bookkeeping (single user account per login).
Run: streamlit run app.py
"""

from __future__ import annotations

from datetime import date

import streamlit as st

import utils
import views
from auth import Session, UserDirectory
from book import VisitBook
from config import configure_logging, settings
from models import Visit
from storage import build_gateway
from templates import DAYS_OF_WEEK, TemplateBook, day_index

st.set_page_config(page_title="Patient Visits", layout="wide")

ALL = "All"
SESSION_PARAM = "session"


def init_once():
    configure_logging()
    if "gateway" not in st.session_state:
        gateway = build_gateway(settings)
        directory = UserDirectory(
            gateway,
            rounds=settings.BCRYPT_ROUNDS,
            min_password_length=settings.MIN_PASSWORD_LENGTH,
        )
        directory.ensure_default_admin(settings.DEFAULT_ADMIN_EMAIL, settings.DEFAULT_ADMIN_PASSWORD)
        st.session_state.gateway = gateway
        st.session_state.session = Session(directory, gateway.cache)
        st.session_state.session.restore(st.query_params.get(SESSION_PARAM))
    if "book" not in st.session_state:
        st.session_state.book = None
        st.session_state.templates = None


def current_session() -> Session:
    return st.session_state.session


def open_books():
    """Load the signed-in user's visits and templates once per login."""
    user = current_session().user
    if st.session_state.book is not None and st.session_state.book.user_id == user.id:
        return
    gateway = st.session_state.gateway
    book = VisitBook(user.id, gateway, history_limit=settings.HISTORY_LIMIT)
    with st.spinner("Loading visits..."):
        book.load()
    templates = TemplateBook(user.id, gateway)
    templates.load()
    st.session_state.book = book
    st.session_state.templates = templates


def close_books():
    if st.session_state.book is not None:
        st.session_state.book.close()
        st.session_state.templates.close()
    st.session_state.book = None
    st.session_state.templates = None


def logout():
    close_books()
    current_session().logout()
    st.query_params.pop(SESSION_PARAM, None)
    st.success("Logged out.")


def login_screen():
    st.title("🔐 Patient Visits Login")

    tab_login, tab_register = st.tabs(["Login", "Create account"])
    with tab_login:
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        remember = st.checkbox("Remember me")
        if st.button("Login", type="primary"):
            if current_session().login(email, password, remember=remember):
                token = current_session().token
                if token:
                    st.query_params[SESSION_PARAM] = token
                else:
                    st.query_params.pop(SESSION_PARAM, None)
                st.rerun()
            else:
                st.error("Invalid email or password.")

    with tab_register:
        name = st.text_input("Name", key="reg_name")
        reg_email = st.text_input("Email", key="reg_email")
        reg_pw = st.text_input("Password", type="password", key="reg_pw")
        if st.button("Create account"):
            try:
                current_session().directory.register(name, reg_email, reg_pw)
            except ValueError as e:
                st.error(str(e))
            else:
                st.success("Account created. You can log in now.")


def force_change_password_screen():
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the app.")
    new1 = st.text_input("New password", type="password")
    new2 = st.text_input("Confirm new password", type="password")

    if st.button("Update password", type="primary"):
        if new1 != new2:
            st.error("Passwords do not match.")
            return
        try:
            current_session().directory.change_password(current_session().user.email, new1)
        except ValueError as e:
            st.error(str(e))
            return
        current_session().refresh()
        st.success("Password updated. You can continue.")
        st.rerun()


# ---------- Shared widgets ----------

def sidebar_filters(visits: list[Visit]) -> views.FilterCriteria:
    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search by name")
        basis = st.radio("Month of", ["service", "payment"], horizontal=True)
        months = views.available_months(visits, basis)
        month = st.selectbox("Month", [ALL] + months, format_func=lambda m: m if m == ALL else utils.month_label(m))
        status = st.selectbox("Payment status", [ALL, "paid", "pending"])
        billing = st.selectbox("Billing", [ALL, "plan", "private"])

    return views.FilterCriteria(
        search=search,
        month=None if month == ALL else month,
        date_basis=basis,
        status=None if status == ALL else status,
        billing_mode=None if billing == ALL else billing,
    )


def history_controls(book: VisitBook):
    c1, c2, c3 = st.columns([1, 1, 4])
    with c1:
        if st.button("↩️ Undo", disabled=not book.can_undo):
            entry = book.undo()
            if entry:
                st.toast(f"Undone: {entry.description}")
            st.rerun()
    with c2:
        if st.button("↪️ Redo", disabled=not book.can_redo):
            entry = book.redo()
            if entry:
                st.toast(f"Redone: {entry.description}")
            st.rerun()
    with c3:
        if book.history.can_undo:
            st.caption(f"Last change: {book.history.entries[book.history.index].description}")


def sync_warning():
    book = st.session_state.book
    templates = st.session_state.templates
    if (book and book.sync_failed) or (templates and templates.sync_failed):
        st.warning("Cloud sync failed; changes are saved on this device only.")


# ---------- Pages ----------

def dashboard_page():
    st.header("📊 Dashboard")

    book: VisitBook = st.session_state.book
    visits = book.visits
    criteria = sidebar_filters(visits)
    summary = views.aggregate(views.filter_visits(visits, criteria))

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Visits", summary.count)
    c2.metric("Total", utils.format_currency(summary.total_amount))
    c3.metric("Paid", utils.format_currency(summary.paid_amount))
    c4.metric("Pending", utils.format_currency(summary.pending_amount))

    received = views.received_in_month(visits, criteria.month)
    title = f"Received in {utils.month_label(criteria.month)}" if criteria.month else "Total received"
    st.metric(title, utils.format_currency(received))

    if summary.total_amount > 0:
        st.progress(min(summary.paid_amount / summary.total_amount, 1.0), text="Paid share")


def visit_form(book: VisitBook, existing: Visit | None = None):
    if existing:
        st.subheader(f"✏️ Edit visit of {existing.subject_name}")
    else:
        st.subheader("➕ Add visit")

    visits = book.visits
    col1, col2, col3 = st.columns(3)
    with col1:
        subject_name = st.text_input("Patient name", value=(existing.subject_name if existing else ""))
        suggestions = views.name_suggestions(visits, subject_name) if not existing else []
        if suggestions and subject_name not in suggestions:
            st.caption("Known patients: " + ", ".join(suggestions[:5]))
        latest = views.latest_visit_for(visits, subject_name) if not existing else None
        service_date = st.date_input(
            "Visit date", value=(utils.parse_iso(existing.service_date) if existing else date.today())
        ).isoformat()

    with col2:
        default_mode = existing.billing_mode if existing else (latest.billing_mode if latest else "plan")
        billing_mode = st.selectbox("Billing", ["plan", "private"], index=["plan", "private"].index(default_mode))
        plan_name = None
        if billing_mode == "plan":
            default_plan = (existing or latest).plan_name if (existing or latest) else None
            plan_name = st.text_input("Plan name", value=default_plan or "")
            known = views.plan_names(visits)
            if known:
                st.caption("Plans: " + ", ".join(known))
        default_amount = existing.amount if existing else (latest.amount if latest else 0.0)
        amount = st.text_input("Amount", value=str(default_amount))

    with col3:
        payment_status = st.selectbox(
            "Payment status",
            ["pending", "paid"],
            index=(1 if existing and existing.payment_status == "paid" else 0),
        )
        payment_date = None
        if payment_status == "paid":
            payment_date = st.date_input(
                "Payment date",
                value=(utils.parse_iso(existing.payment_date) if existing and existing.payment_date else date.today()),
            ).isoformat()
        notes = st.text_input("Notes", value=(existing.notes or "") if existing else "")

    errors = utils.validate_visit_inputs(
        subject_name, amount, service_date, billing_mode, plan_name, payment_status, payment_date
    )
    if errors and subject_name:
        for e in errors:
            st.error(e)

    if st.button("Save", type="primary", disabled=bool(errors)):
        if existing:
            # construction clears plan_name / payment_date where they no longer apply
            updated = Visit(
                id=existing.id,
                subject_name=subject_name.strip(),
                service_date=service_date,
                billing_mode=billing_mode,
                amount=float(amount),
                payment_status=payment_status,
                plan_name=(plan_name or "").strip() or None,
                payment_date=payment_date,
                notes=notes.strip() or None,
            )
            book.edit(updated)
            st.session_state.edit_visit_id = None
            st.success("Visit updated.")
        else:
            book.add(
                Visit.create(
                    subject_name=subject_name,
                    service_date=service_date,
                    billing_mode=billing_mode,
                    amount=float(amount),
                    payment_status=payment_status,
                    plan_name=plan_name,
                    payment_date=payment_date,
                    notes=notes,
                )
            )
            st.success("Visit added.")
        st.rerun()


def visits_page():
    st.header("🩺 Visits")

    book: VisitBook = st.session_state.book
    history_controls(book)

    criteria = sidebar_filters(book.visits)
    shown = views.sort_by_service_date(views.filter_visits(book.visits, criteria))
    st.caption(f"{len(shown)} visit(s) found")
    st.dataframe(utils.visits_to_dataframe(shown), use_container_width=True, hide_index=True)

    st.divider()

    labels = {f"{v.service_date} · {v.subject_name} · {v.amount:.2f} ({v.payment_status})": v.id for v in shown}
    selected = st.selectbox("Select visit", ["(none)"] + list(labels.keys()))
    if selected != "(none)":
        visit_id = labels[selected]
        c1, c2, c3 = st.columns(3)
        with c1:
            if st.button("Edit"):
                st.session_state.edit_visit_id = visit_id
                st.rerun()
        with c2:
            if st.button("Toggle paid / pending"):
                book.toggle_payment(visit_id)
                st.rerun()
        with c3:
            delete_confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
            if st.button("Delete", type="secondary", disabled=not delete_confirm):
                book.delete(visit_id)
                st.success("Visit deleted.")
                st.rerun()

    st.divider()

    editing = book.get(st.session_state.get("edit_visit_id") or "")
    if editing:
        visit_form(book, existing=editing)
        if st.button("Cancel edit"):
            st.session_state.edit_visit_id = None
            st.rerun()
    else:
        visit_form(book)


def bulk_page():
    st.header("🧮 Bulk actions")

    book: VisitBook = st.session_state.book
    visits = book.visits
    history_controls(book)

    st.subheader("Mark a plan's month as paid")
    plans = views.plan_names(visits)
    months = views.available_months(visits)
    if not plans or not months:
        st.caption("No plan visits yet.")
    else:
        c1, c2 = st.columns(2)
        with c1:
            plan = st.selectbox("Plan", plans)
        with c2:
            month = st.selectbox("Month", months, format_func=utils.month_label, key="bulk_month")
        pending = views.pending_count_for_plan(visits, plan, month)
        st.info(f"{pending} pending visit(s) will be marked as paid today.")
        if st.button("Mark as paid", type="primary", disabled=pending == 0):
            book.mark_plan_paid(plan, month)
            st.success(f"{pending} visit(s) marked as paid.")
            st.rerun()

    st.divider()

    st.subheader("Clear a month")
    if months:
        month = st.selectbox("Month to clear", months, format_func=utils.month_label, key="clear_month")
        count = sum(1 for v in visits if v.service_date.startswith(month))
        confirm = st.checkbox(f"Delete all {count} visit(s) of {utils.month_label(month)}")
        if st.button("Clear month", disabled=not confirm):
            book.clear_month(month)
            st.success("Month cleared. Use Undo to restore it.")
            st.rerun()
    else:
        st.caption("No visits yet.")


def templates_page():
    st.header("📅 Weekly templates")

    book: VisitBook = st.session_state.book
    tbook: TemplateBook = st.session_state.templates

    today = date.today()
    todays = tbook.entries_for_date(today)
    st.subheader(f"Today ({DAYS_OF_WEEK[day_index(today)]})")
    if st.button(f"Add today's {len(todays)} appointment(s)", type="primary", disabled=not todays):
        created = book.add_day_appointments(todays, today)
        st.success(f"{len(created)} visit(s) added for today.")
    if not todays:
        st.caption(f"No patients configured for {DAYS_OF_WEEK[day_index(today)]}.")

    st.divider()

    day = st.selectbox("Day", list(range(7)), index=1, format_func=lambda d: DAYS_OF_WEEK[d])
    entries = tbook.entries_for(day)
    if entries:
        for entry in entries:
            c1, c2 = st.columns([4, 1])
            plan = f" · {entry.plan_name}" if entry.plan_name else ""
            c1.write(f"**{entry.subject_name}** · {entry.billing_mode}{plan} · {utils.format_currency(entry.amount)}")
            if c2.button("Remove", key=f"rm_{entry.id}"):
                tbook.remove(day, entry.id)
                st.rerun()
    else:
        st.caption("No patients on this day yet.")

    st.subheader("Add patient to this day")
    col1, col2, col3 = st.columns(3)
    with col1:
        name = st.text_input("Patient name", key="tpl_name")
    with col2:
        billing_mode = st.selectbox("Billing", ["private", "plan"], key="tpl_mode")
        plan_name = st.text_input("Plan name", key="tpl_plan") if billing_mode == "plan" else None
    with col3:
        amount = st.number_input("Amount", min_value=0.0, step=10.0, key="tpl_amount")
        notes = st.text_input("Notes", key="tpl_notes")
    if st.button("Add to template"):
        try:
            tbook.add(day, name, billing_mode, amount, plan_name=plan_name, notes=notes)
        except ValueError as e:
            st.error(str(e))
        else:
            st.success("Added.")
            st.rerun()


def reports_page():
    st.header("🧾 Reports")

    book: VisitBook = st.session_state.book
    visits = book.visits

    st.subheader("Export visits to CSV")
    if visits:
        st.download_button(
            "Download visits.csv",
            data=utils.visits_to_csv_bytes(views.sort_by_service_date(visits)),
            file_name="visits.csv",
            mime="text/csv",
        )
    else:
        st.caption("No visits to export.")

    st.divider()

    st.subheader("Revenue summary by month")
    df = utils.revenue_summary_by_month(visits)
    st.dataframe(df, use_container_width=True, hide_index=True)


def settings_page():
    st.header("⚙️ Settings")

    st.subheader("Change password")
    p1 = st.text_input("New password", type="password")
    p2 = st.text_input("Confirm new password", type="password")
    if st.button("Update password", type="primary"):
        if p1 != p2:
            st.error("Passwords do not match.")
        else:
            try:
                current_session().directory.change_password(current_session().user.email, p1)
            except ValueError as e:
                st.error(str(e))
            else:
                st.success("Password updated.")


def main_app():
    user = current_session().user
    st.sidebar.title("🩺 Patient Visits")
    st.sidebar.caption(f"Logged in as: {user.name} ({user.email})")

    open_books()
    sync_warning()

    pages = ["Dashboard", "Visits", "Bulk actions", "Weekly templates", "Reports", "Settings"]
    if "page" not in st.session_state:
        st.session_state.page = "Visits"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Logout"):
        logout()
        st.rerun()

    if st.session_state.page == "Dashboard":
        dashboard_page()
    elif st.session_state.page == "Visits":
        visits_page()
    elif st.session_state.page == "Bulk actions":
        bulk_page()
    elif st.session_state.page == "Weekly templates":
        templates_page()
    elif st.session_state.page == "Reports":
        reports_page()
    elif st.session_state.page == "Settings":
        settings_page()


# --------- App entry ---------

def run():
    init_once()

    if not current_session().is_authenticated:
        login_screen()
        return

    # Seeded admin must pick a real password first
    if current_session().user.must_change_password:
        force_change_password_screen()
        return

    main_app()


if __name__ == "__main__":
    run()
