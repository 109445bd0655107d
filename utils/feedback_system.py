"""
Feedback Learning System for Oil Palm Analysis
Collects ratings on analysis reports and user-submitted issue reports, and
turns them into insights for improving prompts and presentation.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import streamlit as st

from utils.firebase_config import COLLECTIONS, FieldFilter, get_firestore_client
from utils.validation import FeedbackInput, validate_request

# Configure logging
logger = logging.getLogger(__name__)

RATING_KEYS = ['overall', 'accuracy', 'usefulness', 'clarity', 'recommendations', 'visualizations']
MIN_FEEDBACK_FOR_INSIGHTS = 5
INSIGHTS_DAYS_BACK = 90


class FeedbackLearningSystem:
    """Report ratings and issue reports stored in the user_feedback collection"""

    def __init__(self, db=None):
        self.logger = logging.getLogger(f"{__name__}.FeedbackLearningSystem")
        self.db = db if db is not None else get_firestore_client()

    @property
    def feedback(self):
        if self.db is None:
            raise RuntimeError("Firestore is not available")
        return self.db.collection(COLLECTIONS['user_feedback'])

    def collect_feedback(self, analysis_id: str, user_id: Optional[str], feedback_data: Dict[str, Any]) -> bool:
        """
        Collect user ratings for an analysis report

        Args:
            analysis_id: Report identifier
            user_id: User identifier, None for anonymous feedback
            feedback_data: Ratings (1-5), written feedback and categories

        Returns:
            True when the rating was stored
        """
        try:
            now = datetime.now(timezone.utc)
            feedback_doc = {
                'kind': 'rating',
                'analysis_id': analysis_id,
                'user_id': user_id,
                'timestamp': now,
                'written_feedback': feedback_data.get('written_feedback', ''),
                'improvement_suggestions': feedback_data.get('improvement_suggestions', ''),
                'would_recommend': feedback_data.get('would_recommend', False),
                'feedback_categories': feedback_data.get('feedback_categories', []),
                'session_data': {
                    'user_agent': feedback_data.get('user_agent', ''),
                    'timestamp': now.isoformat()
                }
            }
            for key in RATING_KEYS:
                feedback_doc[f'{key}_rating'] = feedback_data.get(f'{key}_rating', 0)

            self.feedback.document().set(feedback_doc)
            self.logger.info(f"Feedback saved successfully for analysis {analysis_id}")
            return True

        except Exception as e:
            self.logger.error(f"Error saving feedback: {str(e)}")
            return False

    def submit_feedback(self, feedback, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Store a bug report, feature request or general comment

        Raises:
            RequestValidationError: if the submission is incomplete
        """
        report = validate_request(FeedbackInput, feedback)
        now = datetime.now(timezone.utc)
        record = {
            **report.model_dump(),
            'kind': 'report',
            'user_id': user_id,
            'status': 'pending',
            'timestamp': now,
            'created_at': now,
        }
        doc_ref = self.feedback.document()
        doc_ref.set(record)
        self.logger.info(f"Stored {report.type} feedback {doc_ref.id}")
        return {**record, 'id': doc_ref.id}

    def get_feedback_analytics(self, days_back: int = 30) -> Dict[str, Any]:
        """
        Average ratings, recommendation rate and weakest areas over a window

        Args:
            days_back: Window size in days; only report ratings are counted

        Returns:
            total_feedback, average_ratings, recommendation_rate, improvement_areas,
            feedback_trends and improvement_suggestions
        """
        try:
            start_date = datetime.now(timezone.utc) - timedelta(days=days_back)
            feedback_query = self.feedback.where(filter=FieldFilter('timestamp', '>=', start_date))
            ratings = [doc.to_dict() or {} for doc in feedback_query.stream()]
            ratings = [data for data in ratings if data.get('kind', 'rating') == 'rating']

            if not ratings:
                return {
                    'total_feedback': 0,
                    'average_ratings': {},
                    'feedback_trends': {},
                    'improvement_areas': [],
                    'recommendation_rate': 0,
                    'improvement_suggestions': []
                }

            total_feedback = len(ratings)
            ratings_sum = {key: 0 for key in RATING_KEYS}
            recommendation_count = 0
            feedback_categories = {}
            improvement_suggestions = []

            for data in ratings:
                for key in RATING_KEYS:
                    ratings_sum[key] += data.get(f'{key}_rating') or 0

                if data.get('would_recommend', False):
                    recommendation_count += 1

                for category in data.get('feedback_categories', []):
                    feedback_categories[category] = feedback_categories.get(category, 0) + 1

                if data.get('improvement_suggestions'):
                    improvement_suggestions.append(data['improvement_suggestions'])

            average_ratings = {
                key: round(value / total_feedback, 2)
                for key, value in ratings_sum.items()
            }
            recommendation_rate = round((recommendation_count / total_feedback) * 100, 2)

            # Lowest rated areas first
            improvement_areas = sorted(average_ratings.items(), key=lambda x: x[1])[:3]

            return {
                'total_feedback': total_feedback,
                'average_ratings': average_ratings,
                'feedback_trends': feedback_categories,
                'improvement_areas': improvement_areas,
                'recommendation_rate': recommendation_rate,
                'improvement_suggestions': improvement_suggestions[:10]
            }

        except Exception as e:
            self.logger.error(f"Error getting feedback analytics: {str(e)}")
            return {}

    def get_learning_insights(self) -> Dict[str, Any]:
        """
        Priorities, strengths and suggested changes from the last 90 days of ratings

        Returns:
            improvement_priorities, strengths and recommendations, or
            insufficient_data when fewer than the minimum ratings exist
        """
        analytics = self.get_feedback_analytics(days_back=INSIGHTS_DAYS_BACK)

        if analytics.get('total_feedback', 0) < MIN_FEEDBACK_FOR_INSIGHTS:
            return {
                'insufficient_data': True,
                'message': 'Need more feedback data to generate insights'
            }

        average_ratings = analytics['average_ratings']
        insights = {
            'system_performance': {
                'overall_score': average_ratings.get('overall', 0),
                'accuracy_score': average_ratings.get('accuracy', 0),
                'usefulness_score': average_ratings.get('usefulness', 0),
                'clarity_score': average_ratings.get('clarity', 0)
            },
            'improvement_priorities': [],
            'strengths': [],
            'recommendations': []
        }

        for area, score in analytics['improvement_areas']:
            if score < 3.0:
                insights['improvement_priorities'].append({
                    'area': area,
                    'current_score': score,
                    'priority': 'high' if score < 2.5 else 'medium'
                })

        for area, score in average_ratings.items():
            if score >= 4.0:
                insights['strengths'].append({'area': area, 'score': score})

        if average_ratings.get('accuracy', 0) < 3.5:
            insights['recommendations'].append({
                'type': 'accuracy',
                'suggestion': 'Improve analysis accuracy by refining prompt templates and reference documents'
            })

        if average_ratings.get('clarity', 0) < 3.5:
            insights['recommendations'].append({
                'type': 'clarity',
                'suggestion': 'Enhance result presentation and explanation clarity'
            })

        if average_ratings.get('visualizations', 0) < 3.5:
            insights['recommendations'].append({
                'type': 'visualizations',
                'suggestion': 'Improve chart quality and relevance'
            })

        return insights


def display_feedback_section(analysis_id: str, user_id: Optional[str] = None):
    """Feedback form shown under an analysis report"""
    st.markdown("---")
    st.subheader("Help Us Improve")
    st.caption("Your feedback helps us improve the oil palm recommendations")

    feedback_system = FeedbackLearningSystem()

    with st.form(f"feedback_form_{analysis_id}", clear_on_submit=True):
        overall_rating = st.slider("How would you rate this analysis overall?", 1, 5, 3,
                                   help="1 = Poor, 5 = Excellent")

        col1, col2 = st.columns(2)
        with col1:
            accuracy_rating = st.slider("Accuracy of Analysis", 1, 5, 3)
            usefulness_rating = st.slider("Usefulness of Recommendations", 1, 5, 3)
            clarity_rating = st.slider("Clarity of Presentation", 1, 5, 3)
        with col2:
            recommendations_rating = st.slider("Quality of Recommendations", 1, 5, 3)
            visualizations_rating = st.slider("Quality of Charts", 1, 5, 3)

        written_feedback = st.text_area("Please share your thoughts about this analysis:", height=100)
        improvement_suggestions = st.text_area("Suggestions for improvement:", height=80)
        feedback_categories = st.multiselect(
            "What aspects would you like to see improved?",
            [
                "Data Accuracy",
                "Recommendation Relevance",
                "Chart Quality",
                "Explanation Clarity",
                "Yield Forecasts",
                "Scientific References",
                "Loading Speed"
            ]
        )
        would_recommend = st.radio("Would you recommend this system to other planters?",
                                   ["Yes", "No", "Maybe"], horizontal=True)

        if st.form_submit_button("Submit Feedback", type="primary"):
            feedback_data = {
                'overall_rating': overall_rating,
                'accuracy_rating': accuracy_rating,
                'usefulness_rating': usefulness_rating,
                'clarity_rating': clarity_rating,
                'recommendations_rating': recommendations_rating,
                'visualizations_rating': visualizations_rating,
                'written_feedback': written_feedback,
                'improvement_suggestions': improvement_suggestions,
                'feedback_categories': feedback_categories,
                'would_recommend': would_recommend == "Yes",
                'user_agent': st.session_state.get('user_agent', 'Unknown')
            }
            if feedback_system.collect_feedback(analysis_id, user_id, feedback_data):
                st.success("Thank you for your feedback!")
            else:
                st.error("There was an error saving your feedback. Please try again.")


def display_feedback_analytics():
    """Feedback summary for the admin page"""
    st.markdown("### Feedback Analytics")

    feedback_system = FeedbackLearningSystem()
    analytics = feedback_system.get_feedback_analytics(days_back=30)

    if analytics.get('total_feedback', 0) == 0:
        st.info("No feedback data available yet.")
        return

    insights = feedback_system.get_learning_insights()

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Total Feedback", analytics['total_feedback'])
    with col2:
        st.metric("Overall Rating", f"{analytics['average_ratings'].get('overall', 0):.1f}/5.0")
    with col3:
        st.metric("Recommendation Rate", f"{analytics['recommendation_rate']:.1f}%")
    with col4:
        st.metric("Accuracy Score", f"{analytics['average_ratings'].get('accuracy', 0):.1f}/5.0")

    for category, score in analytics['average_ratings'].items():
        if category != 'overall':
            st.progress(score / 5.0)
            st.write(f"**{category.title()}**: {score:.1f}/5.0")

    for priority in insights.get('improvement_priorities', []):
        st.write(f"**{priority['area'].title()}** ({priority['priority']}): {priority['current_score']:.1f}/5.0")

    for strength in insights.get('strengths', []):
        st.write(f"Strength - **{strength['area'].title()}**: {strength['score']:.1f}/5.0")

    for rec in insights.get('recommendations', []):
        st.write(f"**{rec['type'].title()}**: {rec['suggestion']}")
