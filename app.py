import logging

import streamlit as st

from modules.admin import show_admin_page
from modules.analyze import get_session_id, show_analyze_page
from modules.documents import show_documents_page
from modules.history import show_history_page
from modules.results import show_results_page
from utils.analytics import get_analytics_tracker
from utils.config_manager import get_ui_config
from utils.feedback_system import FeedbackLearningSystem
from utils.firebase_config import initialize_firebase
from utils.validation import RequestValidationError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ui_config = get_ui_config()

# Page configuration
st.set_page_config(
    page_title=ui_config.page_title,
    page_icon=ui_config.page_icon,
    layout=ui_config.layout,
    initial_sidebar_state="expanded"
)

# Custom CSS for better styling
st.markdown(f"""
<style>
    #MainMenu {{visibility: hidden;}}
    footer {{visibility: hidden;}}

    .main-header {{
        background: linear-gradient(90deg, {ui_config.primary_color} 0%, #228B22 100%);
        padding: 1.5rem;
        border-radius: 10px;
        margin-bottom: 2rem;
        margin-top: 1rem;
        text-align: center;
        color: white;
        box-shadow: 0 4px 6px rgba(0, 0, 0, 0.1);
    }}

    .main-header h1 {{
        margin: 0;
        font-size: 2.5rem;
        font-weight: 700;
    }}

    .main-header p {{
        margin: 0.5rem 0 0 0;
        font-size: 1.1rem;
        opacity: 0.95;
    }}

    .sidebar-logo {{
        text-align: center;
        padding: 1rem;
        margin-bottom: 1rem;
    }}

    .info-card {{
        background-color: #f8f9fa;
        padding: 2rem;
        border-radius: 10px;
        margin: 1rem 0;
        border-left: 4px solid {ui_config.primary_color};
    }}

    .footer {{
        text-align: center;
        padding: 2rem;
        margin-top: 3rem;
        border-top: 1px solid #e0e0e0;
        color: #666;
    }}
</style>
""", unsafe_allow_html=True)

# (page key, sidebar label, renderer)
PAGES = [
    ('home', "🏠 Home", None),
    ('analyze', "🔬 Analyze", show_analyze_page),
    ('results', "📊 Results", show_results_page),
    ('history', "📜 History", show_history_page),
    ('documents', "📚 Documents", show_documents_page),
    ('admin', "🔧 Admin", show_admin_page),
]


def initialize_app():
    """Initialize the application"""
    if not initialize_firebase():
        st.error("Failed to initialize Firebase. Please check the [firebase] section of your secrets.")
        st.stop()

    if 'current_page' not in st.session_state:
        st.session_state.current_page = 'home'


def track_page_view(page: str):
    # Once per page change, not on every rerun
    if st.session_state.get('last_tracked_page') == page:
        return
    st.session_state.last_tracked_page = page
    try:
        get_analytics_tracker().track_event({
            'event_name': 'page_view',
            'event_category': 'navigation',
            'event_action': 'view',
            'event_label': page,
            'session_id': get_session_id(),
            'page': page,
        })
    except Exception as e:
        logger.warning(f"Page view tracking failed: {e}")


def show_header():
    """Display application header"""
    st.markdown(f"""
    <div class="main-header">
        <h1>{ui_config.page_icon} {ui_config.page_title}</h1>
        <p>AI agronomy advisor for Malaysian oil palm soil and leaf analysis</p>
    </div>
    """, unsafe_allow_html=True)


def show_sidebar():
    """Display sidebar navigation"""
    with st.sidebar:
        st.markdown(f"""
        <div class="sidebar-logo">
            <h2>{ui_config.page_icon} {ui_config.page_title}</h2>
            <p>MPOB-aligned recommendations</p>
        </div>
        """, unsafe_allow_html=True)

        st.divider()

        for key, label, _ in PAGES:
            button_type = "primary" if st.session_state.current_page == key else "secondary"
            if st.button(label, use_container_width=True, type=button_type, key=f"nav_{key}"):
                st.session_state.current_page = key
                st.rerun()

        st.divider()
        show_issue_report_form()


def show_issue_report_form():
    """Bug reports and feature requests from the sidebar"""
    with st.expander("🐞 Report an Issue"):
        with st.form("issue_report", clear_on_submit=True):
            feedback_type = st.selectbox("Type", ['bug', 'feature', 'improvement', 'general'])
            category = st.selectbox("Area", ['analysis', 'ui', 'performance', 'data', 'other'])
            title = st.text_input("Title")
            description = st.text_area("Description", height=100)
            priority = st.selectbox("Priority", ['medium', 'low', 'high'])
            submitted = st.form_submit_button("Send")

        if submitted:
            try:
                FeedbackLearningSystem().submit_feedback({
                    'type': feedback_type,
                    'category': category,
                    'title': title,
                    'description': description,
                    'priority': priority,
                }, st.session_state.get('user_id'))
                st.success("✅ Thank you! Your report was sent.")
            except RequestValidationError as e:
                st.error(f"❌ {e}")
            except Exception as e:
                logger.error(f"Error submitting issue report: {e}")
                st.error("❌ Report could not be sent")


def show_home_page():
    """Display home/landing page"""
    col1, col2 = st.columns(2)

    with col1:
        st.markdown("""
        <div class="info-card">
            <h3 style="margin-top: 0;">What it does</h3>
            <ul style="line-height: 1.8;">
                <li>Reads soil and leaf lab reports from Excel, PDF, Word or photos</li>
                <li>Compares every parameter with MPOB optimal ranges</li>
                <li>Builds an improvement plan matched to your budget and goals</li>
                <li>Forecasts yield and benchmarks you against Malaysian averages</li>
            </ul>
        </div>
        """, unsafe_allow_html=True)

    with col2:
        st.markdown("""
        <div class="info-card">
            <h3 style="margin-top: 0;">How to use it</h3>
            <ol style="line-height: 1.8;">
                <li>Upload a lab report or enter values manually</li>
                <li>Set your priorities, land size and yield history</li>
                <li>Run the analysis</li>
                <li>Review the results and download the PDF report</li>
            </ol>
        </div>
        """, unsafe_allow_html=True)

    if st.button("🚀 Start Analysis", use_container_width=True, type="primary"):
        st.session_state.current_page = 'analyze'
        st.rerun()


def main():
    """Main application function"""
    initialize_app()
    show_header()
    show_sidebar()

    renderers = {key: renderer for key, _, renderer in PAGES}
    current_page = st.session_state.current_page
    if current_page not in renderers:
        current_page = st.session_state.current_page = 'home'

    track_page_view(current_page)
    try:
        (renderers[current_page] or show_home_page)()
    except Exception as e:
        logger.error(f"Error rendering {current_page} page: {e}")
        st.error("❌ Something went wrong on this page. Please try again.")

    st.markdown("""
    <div class="footer">
        <p>Oil Palm AGS | Recommendations follow MPOB guidelines</p>
    </div>
    """, unsafe_allow_html=True)


if __name__ == "__main__":
    main()
