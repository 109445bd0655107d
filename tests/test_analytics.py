from datetime import datetime, timezone

import pytest

from utils.analytics import AnalyticsTracker, extract_device_info
from utils.validation import RequestValidationError

NOW = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)

WINDOWS_CHROME = ('Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) '
                  'Chrome/120.0 Safari/537.36')
ANDROID_CHROME = ('Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 (KHTML, like Gecko) '
                  'Chrome/120.0 Mobile Safari/537.36')
IPAD_SAFARI = ('Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) '
               'Version/17.0 Mobile/15E148 Safari/604.1')
EDGE = ('Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) '
        'Chrome/120.0 Safari/537.36 Edg/120.0')


def event(name='page_view', category='navigation', action='view', **extra):
    data = {
        'eventName': name,
        'eventCategory': category,
        'eventAction': action,
        'sessionId': 's1',
        'page': '/analyze',
        'userAgent': WINDOWS_CHROME,
    }
    data.update(extra)
    return data


@pytest.fixture
def tracker(db):
    return AnalyticsTracker(db=db, clock=lambda: NOW)


@pytest.mark.parametrize('user_agent, expected', [
    (WINDOWS_CHROME, {'device_type': 'desktop', 'browser': 'Chrome', 'os': 'Windows'}),
    (ANDROID_CHROME, {'device_type': 'mobile', 'browser': 'Chrome', 'os': 'Android'}),
    (IPAD_SAFARI, {'device_type': 'tablet', 'browser': 'Safari', 'os': 'iOS'}),
    (EDGE, {'device_type': 'desktop', 'browser': 'Edge', 'os': 'Windows'}),
    (None, {'device_type': 'desktop', 'browser': 'Unknown', 'os': 'Unknown'}),
])
def test_extract_device_info(user_agent, expected):
    assert extract_device_info(user_agent) == expected


def test_track_event_stores_event_and_session(tracker, db):
    assert tracker.track_event(event(userId='u1')) == {'success': True}

    stored = list(db.docs('analytics_events').values())[0]
    assert stored['event_name'] == 'page_view'
    assert stored['page_url'] == '/analyze'
    assert stored['browser'] == 'Chrome'
    assert stored['timestamp'] == NOW

    session = db.docs('user_sessions')['s1']
    assert session['page_views'] == 1
    assert session['events_count'] == 1

    tracker.track_event(event(name='session_start'))
    session = db.docs('user_sessions')['s1']
    assert session['page_views'] == 1
    assert session['events_count'] == 2


def test_event_timestamp_in_milliseconds(tracker, db):
    tracker.track_event(event(name='click', timestamp=1_700_000_000_000))

    stored = list(db.docs('analytics_events').values())[0]
    assert stored['timestamp'] == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert db.docs('user_sessions') == {}


def test_counters_are_incremented(tracker, db):
    tracker.track_event(event(userId='u1'))
    tracker.track_event(event())
    tracker.track_event(event(name='upload', category='feature', action='upload', eventLabel='excel_upload',
                              userId='u1'))

    daily = {d['metric_type']: d for d in db.docs('daily_analytics').values()}
    assert daily['navigation']['value'] == 2
    assert daily['navigation']['date'] == '2024-05-01'
    assert daily['feature']['value'] == 1

    page = list(db.docs('page_analytics').values())[0]
    assert page['views'] == 2
    assert page['unique_users'] == 1

    feature = list(db.docs('feature_analytics').values())[0]
    assert feature['feature_name'] == 'excel_upload'
    assert feature['usage_count'] == 1


def test_invalid_event_is_rejected(tracker):
    with pytest.raises(RequestValidationError):
        tracker.track_event({'eventName': 'x', 'eventCategory': 'y', 'eventAction': 'z'})


def test_storage_failure_is_reported(tracker, db):
    db.read_only.add('analytics_events')
    assert tracker.track_event(event()) == {'success': False, 'error': 'Failed to store analytics event'}


def test_dashboard_metrics(tracker):
    tracker.track_event(event(userId='u1'))
    tracker.track_event(event(sessionId='s2', userAgent=ANDROID_CHROME))
    tracker.track_event(event(name='upload', category='feature', action='upload', page='', userId='u1'))

    metrics = tracker.get_dashboard_metrics()

    assert metrics['total_events'] == 3
    assert metrics['unique_sessions'] == 2
    assert metrics['unique_users'] == 1
    assert metrics['events_by_category'] == {'navigation': 2, 'feature': 1}
    assert metrics['top_events']['navigation:view'] == 2
    assert metrics['top_pages'] == {'/analyze': 2}
    assert metrics['device_types'] == {'desktop': 2, 'mobile': 1}
    assert metrics['daily_counts'] == {'2024-05-01': 3}


def test_dashboard_metrics_without_events(tracker):
    metrics = tracker.get_dashboard_metrics()
    assert metrics['total_events'] == 0
    assert metrics['daily_counts'] == {}
