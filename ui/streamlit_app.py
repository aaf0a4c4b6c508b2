# ui/streamlit_app.py
"""
Meal Calorie Analyzer — Streamlit Front-End
===========================================
Upload a meal photo, add optional context, and get a calorie and macro
breakdown. Saved analyses live in the History tab.
"""

import base64
import os
from dataclasses import dataclass
from typing import Optional

import streamlit as st
import requests
import pandas as pd
import plotly.graph_objects as go

# ========================================
# CONFIGURATION
# ========================================
API_BASE = os.environ.get("CALORIE_API_URL", "http://localhost:8000/api/v1")
REQUEST_TIMEOUT_SHORT = 5
REQUEST_TIMEOUT_LONG = 120

UPLOAD_TYPES = ["jpg", "jpeg", "png", "webp", "gif"]


@dataclass
class AppConfig:
    """Application configuration."""
    page_title: str = "Meal Calorie Analyzer"
    page_icon: str = "🍽️"
    layout: str = "wide"


# ========================================
# PAGE SETUP
# ========================================
st.set_page_config(
    page_title=AppConfig.page_title,
    page_icon=AppConfig.page_icon,
    layout=AppConfig.layout,
    initial_sidebar_state="expanded"
)


# ========================================
# STYLING
# ========================================
def load_styles():
    """Load custom CSS styles."""
    st.markdown("""
    <style>
        .stButton>button {
            border-radius: 8px;
            font-weight: 600;
        }
        .metric-card {
            background: linear-gradient(135deg, #1E1E2E 0%, #2D2D3D 100%);
            padding: 1.5rem;
            border-radius: 12px;
            text-align: center;
            border-left: 4px solid #FF8C00;
            margin: 0.5rem 0;
        }
        .big-number {
            font-size: 2.5rem;
            font-weight: bold;
            margin: 0;
            color: #FFF;
        }
        .label {
            font-size: 0.9rem;
            color: #AAA;
            text-transform: uppercase;
            letter-spacing: 1px;
        }
    </style>
    """, unsafe_allow_html=True)


# ========================================
# SESSION STATE
# ========================================
def init_session_state():
    """Initialize session state variables."""
    defaults = {
        "user_id": "default",
        "last_result": None,
        "last_history_id": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


# ========================================
# API CLIENT
# ========================================
class APIClient:
    """Handles all API communication."""

    def __init__(self, base_url: str):
        self.base_url = base_url
        self.root_url = base_url.replace("/api/v1", "").rstrip("/")

    def check_health(self) -> bool:
        """Check if the API is online."""
        try:
            response = requests.get(self.root_url, timeout=REQUEST_TIMEOUT_SHORT)
            return response.status_code == 200
        except requests.RequestException:
            return False

    def analyze(self, image_bytes: bytes, filename: str, mime_type: str,
                meal_context: str, save: bool) -> dict:
        """Send the photo as multipart form data."""
        try:
            response = requests.post(
                f"{self.base_url}/meal/analyze",
                data={
                    "meal_context": meal_context,
                    "user_id": st.session_state.user_id,
                    "save_to_history": str(save).lower(),
                },
                files={"image": (filename, image_bytes, mime_type)},
                timeout=REQUEST_TIMEOUT_LONG,
            )
            if response.status_code == 200:
                return response.json()
            return {"error": f"API Error: {response.status_code} - {response.text}"}
        except requests.exceptions.ConnectionError:
            return {"error": "API Offline"}
        except requests.RequestException as e:
            return {"error": str(e)}

    def history(self) -> dict:
        try:
            response = requests.get(
                f"{self.base_url}/history",
                params={"user_id": st.session_state.user_id},
                timeout=REQUEST_TIMEOUT_SHORT,
            )
            if response.status_code == 200:
                return response.json()
            return {"error": f"API Error: {response.status_code}"}
        except requests.RequestException as e:
            return {"error": str(e)}

    def delete_history(self, record_id: str) -> bool:
        try:
            response = requests.delete(
                f"{self.base_url}/history/{record_id}",
                timeout=REQUEST_TIMEOUT_SHORT,
            )
            return response.status_code == 200
        except requests.RequestException:
            return False


# Initialize API client
api = APIClient(API_BASE)


# ========================================
# UI COMPONENTS
# ========================================
class UIComponents:
    """Reusable UI components."""

    @staticmethod
    def metric_card(label: str, value: str, color: str = "#FF8C00") -> str:
        """Generate HTML for a metric card."""
        return f"""
        <div class="metric-card" style="border-left-color: {color};">
            <div class="big-number">{value}</div>
            <div class="label">{label}</div>
        </div>
        """

    @staticmethod
    def items_table(items: list) -> Optional[pd.DataFrame]:
        if not items:
            return None
        df = pd.DataFrame(items)
        columns = ["itemName", "quantity", "calories", "protein_g", "carbs_g", "fat_g"]
        df = df.reindex(columns=[c for c in columns if c in df.columns])
        return df.rename(columns={
            "itemName": "Item",
            "quantity": "Quantity",
            "calories": "Calories",
            "protein_g": "Protein (g)",
            "carbs_g": "Carbs (g)",
            "fat_g": "Fat (g)",
        })

    @staticmethod
    def macro_chart(items: list) -> Optional[go.Figure]:
        """Donut of total protein / carbs / fat across items."""
        totals = {"Protein": 0.0, "Carbs": 0.0, "Fat": 0.0}
        for item in items:
            totals["Protein"] += float(item.get("protein_g") or 0)
            totals["Carbs"] += float(item.get("carbs_g") or 0)
            totals["Fat"] += float(item.get("fat_g") or 0)

        if sum(totals.values()) <= 0:
            return None

        fig = go.Figure(go.Pie(
            labels=list(totals.keys()),
            values=list(totals.values()),
            hole=0.5,
            marker={"colors": ["#4B9CD3", "#FFA500", "#FF4B4B"]},
        ))
        fig.update_layout(
            height=300,
            margin=dict(l=20, r=20, t=30, b=20),
            paper_bgcolor="rgba(0,0,0,0)",
        )
        return fig


# ========================================
# PAGE SECTIONS
# ========================================
class HeaderSection:
    """Header and connection status."""

    @staticmethod
    def render(is_online: bool) -> None:
        col_title, col_status = st.columns([3, 1])

        with col_title:
            st.title("🍽️ Meal Calorie Analyzer")
            st.caption("Snap a meal, get calories and macros, checked across multiple AI analyses")

        with col_status:
            if is_online:
                st.success("🟢 System Online")
            else:
                st.error("🔴 API Offline")
                st.caption(f"Trying: {API_BASE}")


class SidebarSection:
    """Sidebar with user identity."""

    @staticmethod
    def render() -> None:
        with st.sidebar:
            st.header("👤 User")
            st.session_state.user_id = st.text_input(
                "User ID", value=st.session_state.user_id,
                help="History is stored per user id"
            ).strip() or "default"


class ResultPanel:
    """Renders one analysis result (or its error)."""

    @staticmethod
    def render(result: dict) -> None:
        if result.get("error"):
            st.error(f"❌ {result['error']}")
            return

        col1, col2 = st.columns([1, 2])
        with col1:
            st.markdown(UIComponents.metric_card(
                "Total Calories", f"{result.get('totalEstimatedCalories', 0):.0f}"
            ), unsafe_allow_html=True)
            confidence = result.get("confidenceScore")
            if confidence is not None:
                st.caption(f"Confidence: {confidence:.0%}")
                st.progress(min(max(float(confidence), 0.0), 1.0))
        with col2:
            st.subheader(result.get("mealDescription") or "Meal")
            if result.get("assumptionsMade"):
                st.info(f"📝 {result['assumptionsMade']}")

        items = result.get("items") or []
        df = UIComponents.items_table(items)
        if df is not None:
            st.markdown("#### Breakdown")
            st.dataframe(df, use_container_width=True, hide_index=True)

        fig = UIComponents.macro_chart(items)
        if fig is not None:
            st.markdown("#### Macros")
            st.plotly_chart(fig, use_container_width=True)


class AnalyzeTab:
    """Upload form and results."""

    @staticmethod
    def render(is_online: bool) -> None:
        with st.form("analyze_form"):
            uploaded = st.file_uploader("Meal photo", type=UPLOAD_TYPES)
            meal_context = st.text_area(
                "Context (optional)",
                placeholder="e.g. 'Homemade, cooked with olive oil, large portion'",
            )
            save = st.checkbox("Save to history", value=True)
            submitted = st.form_submit_button("🔍 Analyze Meal", disabled=not is_online)

        if submitted:
            AnalyzeTab._handle_submission(uploaded, meal_context, save)

        if uploaded is not None:
            st.image(uploaded, caption="Your meal", width=320)

        if st.session_state.last_result is not None:
            st.markdown("---")
            ResultPanel.render(st.session_state.last_result)
            if st.session_state.last_history_id:
                st.caption(f"💾 Saved to history ({st.session_state.last_history_id})")

    @staticmethod
    def _handle_submission(uploaded, meal_context: str, save: bool) -> None:
        if uploaded is None:
            st.warning("Please upload a photo first.")
            return

        with st.spinner("Analyzing your meal across several AI passes..."):
            response = api.analyze(
                image_bytes=uploaded.getvalue(),
                filename=uploaded.name,
                mime_type=uploaded.type or "image/jpeg",
                meal_context=meal_context,
                save=save,
            )

        if "result" in response:
            st.session_state.last_result = response["result"]
            st.session_state.last_history_id = response.get("history_id")
        else:
            st.session_state.last_result = {"error": response.get("error", "Unknown error")}
            st.session_state.last_history_id = None


class HistoryTab:
    """Saved analyses for the current user."""

    @staticmethod
    def render(is_online: bool) -> None:
        if not is_online:
            st.info("History is unavailable while the API is offline.")
            return

        data = api.history()
        if "error" in data:
            st.error(data["error"])
            return

        items = data.get("items", [])
        if not items:
            st.info("📭 No saved analyses yet.")
            return

        for entry in items:
            result = entry.get("result", {})
            title = result.get("mealDescription") or "Meal"
            calories = result.get("totalEstimatedCalories", 0)
            with st.expander(f"{entry.get('timestamp', '')[:16]} • {title} • {calories:.0f} kcal"):
                if entry.get("imageBase64"):
                    st.image(base64.b64decode(entry["imageBase64"]), width=240)
                if entry.get("mealContext"):
                    st.caption(f"Context: {entry['mealContext']}")
                ResultPanel.render(result)
                if st.button("🗑️ Delete", key=f"del_{entry['id']}"):
                    if api.delete_history(entry["id"]):
                        st.success("Deleted")
                        st.rerun()
                    else:
                        st.error("Delete failed")


# ========================================
# MAIN APPLICATION
# ========================================
def main():
    """Main application entry point."""
    load_styles()
    init_session_state()

    is_online = api.check_health()

    HeaderSection.render(is_online)
    SidebarSection.render()

    tab1, tab2 = st.tabs(["📸 Analyze", "📜 History"])

    with tab1:
        AnalyzeTab.render(is_online)

    with tab2:
        HistoryTab.render(is_online)


if __name__ == "__main__":
    main()
