"""
Usage analytics: event tracking, session bookkeeping and the daily, page and
feature counters shown on the admin dashboard.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pandas as pd

from utils.firebase_config import COLLECTIONS, FieldFilter, get_firestore_client
from utils.validation import AnalyticsEventInput, validate_request

logger = logging.getLogger(__name__)

MOBILE_MARKERS = ('mobile', 'android', 'iphone', 'ipad', 'ipod', 'blackberry', 'iemobile', 'opera mini')
SESSION_EVENTS = ('page_view', 'session_start')
MAX_DASHBOARD_EVENTS = 1000
TOP_PAGES = 10


def extract_device_info(user_agent: Optional[str]) -> Dict[str, str]:
    """Device type, browser and OS guessed from a user agent string"""
    user_agent = user_agent or ''
    lowered = user_agent.lower()

    if any(marker in lowered for marker in MOBILE_MARKERS):
        device_type = 'tablet' if 'ipad' in lowered else 'mobile'
    else:
        device_type = 'desktop'

    browser = 'Unknown'
    if 'Chrome' in user_agent and 'Edg' not in user_agent:
        browser = 'Chrome'
    elif 'Firefox' in user_agent:
        browser = 'Firefox'
    elif 'Safari' in user_agent and 'Chrome' not in user_agent:
        browser = 'Safari'
    elif 'Edg' in user_agent:
        browser = 'Edge'

    # Android agents also mention Linux, iOS agents mention Mac OS
    os_name = 'Unknown'
    if 'Windows' in user_agent:
        os_name = 'Windows'
    elif 'Android' in user_agent:
        os_name = 'Android'
    elif 'iOS' in user_agent or 'iPhone' in user_agent or 'iPad' in user_agent:
        os_name = 'iOS'
    elif 'Mac OS' in user_agent:
        os_name = 'macOS'
    elif 'Linux' in user_agent:
        os_name = 'Linux'

    return {'device_type': device_type, 'browser': browser, 'os': os_name}


class AnalyticsTracker:
    """Stores analytics events and maintains the aggregate counters"""

    def __init__(self, db=None, clock=None):
        self.logger = logging.getLogger(f"{__name__}.AnalyticsTracker")
        self.db = db if db is not None else get_firestore_client()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _collection(self, name: str):
        if self.db is None:
            raise RuntimeError("Firestore is not available")
        return self.db.collection(COLLECTIONS[name])

    def _first_match(self, name: str, **equals):
        query = self._collection(name)
        for field, value in equals.items():
            query = query.where(filter=FieldFilter(field, '==', value))
        for doc in query.limit(1).stream():
            return doc
        return None

    def track_event(self, event) -> Dict[str, Any]:
        """Record one analytics event

        Args:
            event: AnalyticsEventInput or a dict accepted by it

        Returns:
            {'success': True} or {'success': False, 'error': ...}

        Raises:
            RequestValidationError: if the event is malformed
        """
        event = validate_request(AnalyticsEventInput, event)
        device_info = extract_device_info(event.user_agent)
        occurred_at = (datetime.fromtimestamp(event.timestamp / 1000, tz=timezone.utc)
                       if event.timestamp is not None else self.clock())

        try:
            self._collection('analytics_events').document().set({
                'session_id': event.session_id,
                'user_id': event.user_id,
                'event_name': event.event_name,
                'event_category': event.event_category,
                'event_action': event.event_action,
                'event_label': event.event_label,
                'event_value': event.event_value,
                'custom_dimensions': event.custom_dimensions,
                'page_url': event.page,
                'user_agent': event.user_agent,
                **device_info,
                'timestamp': occurred_at,
            })
        except Exception as e:
            self.logger.error(f"Error inserting analytics event: {e}")
            return {'success': False, 'error': 'Failed to store analytics event'}

        if event.event_name in SESSION_EVENTS:
            self.update_session(event, device_info, occurred_at)
        self.update_counters(event)
        return {'success': True}

    def update_session(self, event: AnalyticsEventInput, device_info: Dict[str, str], occurred_at: datetime) -> None:
        try:
            doc_ref = self._collection('user_sessions').document(event.session_id)
            snapshot = doc_ref.get()
            is_page_view = 1 if event.event_name == 'page_view' else 0
            if snapshot.exists:
                session = snapshot.to_dict() or {}
                doc_ref.update({
                    'last_activity': occurred_at,
                    'page_views': (session.get('page_views') or 0) + is_page_view,
                    'events_count': (session.get('events_count') or 0) + 1,
                })
            else:
                doc_ref.set({
                    'session_id': event.session_id,
                    'user_id': event.user_id,
                    'start_time': occurred_at,
                    'last_activity': occurred_at,
                    'page_views': is_page_view,
                    'events_count': 1,
                    **device_info,
                    'user_agent': event.user_agent,
                })
        except Exception as e:
            self.logger.warning(f"Error updating session data: {e}")

    def update_counters(self, event: AnalyticsEventInput) -> None:
        """Daily, page-view and feature-usage counters for today"""
        try:
            now = self.clock()
            today = now.date().isoformat()
            has_user = 1 if event.user_id else 0

            metric = self._first_match('daily_analytics', date=today, metric_type=event.event_category)
            if metric is not None:
                metric.reference.update({
                    'value': ((metric.to_dict() or {}).get('value') or 0) + 1,
                    'updated_at': now,
                })
            else:
                self._collection('daily_analytics').document().set({
                    'date': today,
                    'metric_type': event.event_category,
                    'metric_name': event.event_action,
                    'value': 1,
                })

            if event.event_name == 'page_view':
                page = self._first_match('page_analytics', page_url=event.page, date=today)
                if page is not None:
                    data = page.to_dict() or {}
                    page.reference.update({
                        'views': (data.get('views') or 0) + 1,
                        'unique_users': (data.get('unique_users') or 0) + has_user,
                    })
                else:
                    self._collection('page_analytics').document().set({
                        'page_url': event.page,
                        'date': today,
                        'views': 1,
                        'unique_users': has_user,
                    })

            if event.event_category == 'feature':
                feature = self._first_match('feature_analytics', feature_name=event.event_label, date=today)
                if feature is not None:
                    data = feature.to_dict() or {}
                    feature.reference.update({
                        'usage_count': (data.get('usage_count') or 0) + 1,
                        'unique_users': (data.get('unique_users') or 0) + has_user,
                    })
                else:
                    self._collection('feature_analytics').document().set({
                        'feature_name': event.event_label,
                        'action': event.event_action,
                        'date': today,
                        'usage_count': 1,
                        'unique_users': has_user,
                    })
        except Exception as e:
            self.logger.warning(f"Error processing analytics counters: {e}")

    def get_dashboard_metrics(self, days: int = 30) -> Dict[str, Any]:
        """Event summary for the last `days` days"""
        start = self.clock() - timedelta(days=days)
        query = (self._collection('analytics_events')
                 .where(filter=FieldFilter('timestamp', '>=', start))
                 .order_by('timestamp', direction='DESCENDING')
                 .limit(MAX_DASHBOARD_EVENTS))
        events = [doc.to_dict() or {} for doc in query.stream()]

        if not events:
            return {
                'total_events': 0,
                'unique_sessions': 0,
                'unique_users': 0,
                'events_by_category': {},
                'top_events': {},
                'top_pages': {},
                'device_types': {},
                'browsers': {},
                'daily_counts': {},
            }

        df = pd.DataFrame(events)
        for column in ('user_id', 'session_id', 'event_category', 'event_action', 'page_url',
                       'device_type', 'browser'):
            if column not in df.columns:
                df[column] = None
        df['date'] = pd.to_datetime(df['timestamp'], utc=True).dt.strftime('%Y-%m-%d')
        df['event_key'] = df['event_category'].astype(str) + ':' + df['event_action'].astype(str)
        pages = df['page_url'].dropna()
        pages = pages[pages != '']

        return {
            'total_events': len(df),
            'unique_sessions': int(df['session_id'].nunique()),
            'unique_users': int(df['user_id'].dropna().nunique()),
            'events_by_category': {k: int(v) for k, v in df['event_category'].value_counts().items()},
            'top_events': {k: int(v) for k, v in df['event_key'].value_counts().items()},
            'top_pages': {k: int(v) for k, v in pages.value_counts().head(TOP_PAGES).items()},
            'device_types': {k: int(v) for k, v in df['device_type'].value_counts().items()},
            'browsers': {k: int(v) for k, v in df['browser'].value_counts().items()},
            'daily_counts': {k: int(v) for k, v in df.groupby('date').size().sort_index().items()},
        }


_analytics_tracker = None


def get_analytics_tracker() -> AnalyticsTracker:
    global _analytics_tracker
    if _analytics_tracker is None:
        _analytics_tracker = AnalyticsTracker()
    return _analytics_tracker
