from datetime import date

import altair as alt
import pandas as pd
import requests
import streamlit as st

st.set_page_config(page_title="FitCare", page_icon="💚", layout="centered")

API_BASE = st.text_input("API base URL", value="http://127.0.0.1:8000")

if "token" not in st.session_state:
    st.session_state.token = None
if "dev_mode" not in st.session_state:
    st.session_state.dev_mode = False
if "chat_session_id" not in st.session_state:
    st.session_state.chat_session_id = None
if "last_crisis" not in st.session_state:
    st.session_state.last_crisis = False


def api_headers() -> dict:
    if st.session_state.token:
        return {"Authorization": f"Bearer {st.session_state.token}"}
    return {}


def api_url(path: str) -> str:
    return f"{API_BASE}{path}"


def safe_json(resp: requests.Response):
    content_type = resp.headers.get("content-type", "")
    if "application/json" not in content_type:
        return None
    try:
        return resp.json()
    except ValueError:
        return None


def show_response_error(resp: requests.Response, path: str, fallback_message: str) -> None:
    payload = safe_json(resp)
    if payload and isinstance(payload, dict):
        detail = payload.get("detail", fallback_message)
        if resp.status_code == 429:
            retry_after = resp.headers.get("Retry-After")
            if retry_after:
                detail = f"{detail} Retry in {retry_after}s."
        st.error(f"{fallback_message} ({resp.status_code}) | {api_url(path)} | {detail}")
        return
    snippet = (resp.text or "").strip()[:500] or "No response body."
    st.error(f"{fallback_message} ({resp.status_code}) | {api_url(path)} | {snippet}")


def api_get(path: str, params=None):
    try:
        return requests.get(api_url(path), headers=api_headers(), params=params, timeout=10)
    except requests.RequestException as exc:
        st.error(f"Request failed: {exc}")
        return None


def api_post(path: str, json=None, data=None, timeout: int = 10):
    try:
        return requests.post(
            api_url(path),
            headers=api_headers(),
            json=json,
            data=data,
            timeout=timeout,
        )
    except requests.RequestException as exc:
        st.error(f"Request failed: {exc}")
        return None


def show_crisis_resources() -> None:
    st.error(
        "If you are thinking about harming yourself, please reach out now: "
        "call or text **988**, text **HOME** to **741741**, or call **911** in an emergency."
    )


st.title("FitCare")
st.caption("Not medical advice. If you feel unsafe contact local emergency services.")

health_resp = api_get("/health")
if health_resp is None:
    st.error("Backend check failed. Start backend with: uvicorn fitcare.backend.app.main:app --reload --port 8000")
elif health_resp.ok:
    payload = safe_json(health_resp) or {}
    st.session_state.dev_mode = bool(payload.get("dev_mode"))
    if st.session_state.dev_mode:
        st.caption("Dev mode enabled.")
else:
    show_response_error(health_resp, "/health", "Backend unhealthy.")

account_tab, checkin_tab, dashboard_tab, chat_tab = st.tabs(["Account", "Check-in", "Dashboard", "Chat"])

with account_tab:
    st.subheader("Sign up")
    with st.form("register_form"):
        reg_first = st.text_input("First name", key="reg_first")
        reg_last = st.text_input("Last name", key="reg_last")
        reg_email = st.text_input("Email", key="reg_email")
        reg_password = st.text_input("Password", type="password", key="reg_password")
        if st.form_submit_button("Create account"):
            if not all([reg_first, reg_last, reg_email, reg_password]):
                st.warning("Fill in every field.")
            else:
                resp = api_post(
                    "/auth/register",
                    json={
                        "email": reg_email,
                        "password": reg_password,
                        "first_name": reg_first,
                        "last_name": reg_last,
                    },
                )
                if resp is not None and resp.ok:
                    st.session_state.token = (safe_json(resp) or {}).get("access_token")
                    st.success("Account created. You are signed in.")
                elif resp is not None:
                    show_response_error(resp, "/auth/register", "Registration failed.")

    st.subheader("Login")
    with st.form("login_form"):
        login_email = st.text_input("Email", key="login_email")
        login_password = st.text_input("Password", type="password", key="login_password")
        if st.form_submit_button("Sign in"):
            if not login_email or not login_password:
                st.warning("Enter your email and password.")
            else:
                resp = api_post("/auth/login", data={"username": login_email, "password": login_password})
                if resp is not None and resp.ok:
                    st.session_state.token = (safe_json(resp) or {}).get("access_token")
                    st.success("Signed in.")
                elif resp is not None:
                    show_response_error(resp, "/auth/login", "Login failed.")

    if st.session_state.token:
        me_resp = api_get("/auth/me")
        if me_resp is not None and me_resp.ok:
            me = safe_json(me_resp) or {}
            st.info(f"Signed in as {me.get('first_name') or me.get('email')}.")
        if st.button("Sign out"):
            st.session_state.token = None
            st.session_state.chat_session_id = None
            st.rerun()

with checkin_tab:
    if not st.session_state.token:
        st.warning("Sign in on the Account tab to continue.")
    else:
        st.subheader("Daily check-in")
        checkin_date = date.today()
        if st.session_state.dev_mode:
            checkin_date = st.date_input("Check-in date", value=date.today())
        with st.form("wellness_form"):
            mood = st.slider("Mood", 1, 10, 5)
            energy = st.slider("Energy", 1, 10, 5)
            stress = st.slider("Stress", 1, 10, 5)
            sleep_hours = st.number_input("Hours slept", min_value=0.0, max_value=24.0, value=7.0, step=0.5)
            sleep_quality = st.slider("Sleep quality", 1, 10, 5)
            notes = st.text_area("Notes (optional)", max_chars=1000)
            if st.form_submit_button("Save check-in"):
                resp = api_post(
                    "/wellness",
                    json={
                        "mood_rating": mood,
                        "energy_level": energy,
                        "stress_level": stress,
                        "sleep_hours": sleep_hours,
                        "sleep_quality": sleep_quality,
                        "notes": notes,
                        "entry_date": checkin_date.isoformat(),
                    },
                )
                if resp is not None and resp.ok:
                    entry = safe_json(resp) or {}
                    st.success("Check-in saved.")
                    if entry.get("crisis"):
                        show_crisis_resources()
                elif resp is not None:
                    show_response_error(resp, "/wellness", "Unable to save check-in.")

with dashboard_tab:
    if not st.session_state.token:
        st.warning("Sign in on the Account tab to continue.")
    else:
        days = st.selectbox("Window", [7, 14, 30, 90], index=2, format_func=lambda d: f"Last {d} days")
        analytics_resp = api_get("/wellness/analytics", params={"days": days})
        if analytics_resp is None:
            st.stop()
        if not analytics_resp.ok:
            show_response_error(analytics_resp, "/wellness/analytics", "Unable to load analytics.")
            st.stop()
        analytics = safe_json(analytics_resp) or {}
        summary = analytics.get("summary", {})
        trends = analytics.get("trends", {})
        if not summary.get("total_entries"):
            st.info("No check-ins yet. Save one on the Check-in tab.")
        else:
            cols = st.columns(4)
            metrics = [
                ("Mood", "average_mood", "mood_rating"),
                ("Energy", "average_energy", "energy_level"),
                ("Stress", "average_stress", "stress_level"),
                ("Sleep (h)", "average_sleep", "sleep_hours"),
            ]
            for col, (label, summary_key, trend_key) in zip(cols, metrics):
                value = summary.get(summary_key)
                col.metric(label, "-" if value is None else value, trends.get(trend_key))
            st.caption(f"{summary['total_entries']} check-ins in the last {days} days")

            df = pd.DataFrame(analytics.get("entries", []))
            if not df.empty:
                long_df = df.melt(id_vars=["date"], var_name="metric", value_name="value").dropna()
                chart = (
                    alt.Chart(long_df)
                    .mark_line(point=True)
                    .encode(
                        x=alt.X("date:T", title="Date"),
                        y=alt.Y("value:Q", title="Score"),
                        color=alt.Color("metric:N", title="Metric"),
                        tooltip=["date:T", "metric:N", "value:Q"],
                    )
                )
                st.altair_chart(chart, use_container_width=True)

with chat_tab:
    if not st.session_state.token:
        st.warning("Sign in on the Account tab to continue.")
    else:
        params = {"limit": 50}
        if st.session_state.chat_session_id:
            params["session_id"] = st.session_state.chat_session_id
        history_resp = api_get("/chat/history", params=params)
        if history_resp is not None and history_resp.ok:
            for item in (safe_json(history_resp) or {}).get("messages", []):
                role = "user" if item["sender"] == "user" else "assistant"
                with st.chat_message(role):
                    st.markdown(item["content"])

        if st.session_state.last_crisis:
            show_crisis_resources()

        prompt = st.chat_input("How are you feeling today?")
        if prompt:
            resp = api_post(
                "/chat/message",
                json={"message": prompt, "session_id": st.session_state.chat_session_id},
                timeout=45,
            )
            if resp is not None and resp.ok:
                payload = safe_json(resp) or {}
                st.session_state.chat_session_id = payload.get("session_id")
                st.session_state.last_crisis = bool(payload.get("crisis_response_shown"))
                st.rerun()
            elif resp is not None:
                show_response_error(resp, "/chat/message", "Message failed.")

        if st.button("Start new conversation"):
            st.session_state.chat_session_id = None
            st.session_state.last_crisis = False
            st.rerun()
