"""
Persistence of analysis reports and the admin dashboard figures built from them.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from utils.firebase_config import COLLECTIONS, FieldFilter, get_firestore_client

logger = logging.getLogger(__name__)

RISK_LEVELS = ['Low', 'Medium', 'High', 'Critical']
RECENT_ACTIVITY_DAYS = 7


def _as_utc(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            return _as_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))
        except ValueError:
            return None
    return None


class AnalysisStore:
    """Analysis reports in the analysis_reports collection"""

    def __init__(self, db=None):
        self.logger = logging.getLogger(f"{__name__}.AnalysisStore")
        self.db = db if db is not None else get_firestore_client()

    @property
    def reports(self):
        if self.db is None:
            raise RuntimeError("Firestore is not available")
        return self.db.collection(COLLECTIONS['analysis_reports'])

    def store_analysis_report(self, result: Dict[str, Any], values: Dict[str, Any], priorities: Dict[str, Any],
                              sample_type: str, user_id: Optional[str] = None,
                              metadata: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """Save a completed analysis

        Returns:
            The new report id, or None when the report could not be stored
        """
        try:
            doc_ref = self.reports.document()
            doc_ref.set({
                'sample_type': sample_type,
                'user_id': user_id,
                'input_data': values,
                'analysis_result': result,
                'user_preferences': priorities,
                'created_at': datetime.now(timezone.utc),
                'confidence_score': result.get('confidence_score'),
                'risk_level': result.get('risk_level'),
                'status': 'completed',
                'metadata': metadata or {},
            })
            self.logger.info(f"Stored analysis report {doc_ref.id}")
            return doc_ref.id
        except Exception as e:
            self.logger.warning(f"Failed to store analysis report: {e}")
            return None

    def get_analysis(self, analysis_id: str) -> Optional[Dict[str, Any]]:
        snapshot = self.reports.document(analysis_id).get()
        if not snapshot.exists:
            return None
        data = snapshot.to_dict() or {}
        data['id'] = snapshot.id
        return data

    def get_recent_analyses(self, limit: int = 10, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        query = self.reports
        if user_id:
            query = query.where(filter=FieldFilter('user_id', '==', user_id))
        query = query.order_by('created_at', direction='DESCENDING').limit(limit)
        analyses = []
        for doc in query.stream():
            data = doc.to_dict() or {}
            data['id'] = doc.id
            analyses.append(data)
        return analyses

    def delete_analysis(self, analysis_id: str) -> None:
        self.reports.document(analysis_id).delete()

    def get_dashboard_stats(self) -> Dict[str, Any]:
        """Totals and distributions for the admin dashboard"""
        reports = [doc.to_dict() or {} for doc in self.reports.stream()]
        feedback_count = sum(1 for _ in self.db.collection(COLLECTIONS['user_feedback']).stream())
        active_prompts = sum(
            1 for _ in self.db.collection(COLLECTIONS['prompt_templates'])
            .where(filter=FieldFilter('is_active', '==', True)).stream()
        )

        scores = [r['confidence_score'] for r in reports
                  if isinstance(r.get('confidence_score'), (int, float))]
        risk_distribution = {level: 0 for level in RISK_LEVELS}
        for report in reports:
            level = report.get('risk_level')
            if level in risk_distribution:
                risk_distribution[level] += 1

        cutoff = datetime.now(timezone.utc) - timedelta(days=RECENT_ACTIVITY_DAYS)
        recent = 0
        for report in reports:
            created = _as_utc(report.get('created_at'))
            if created and created >= cutoff:
                recent += 1

        return {
            'total_reports': len(reports),
            'total_feedback': feedback_count,
            'active_prompts': active_prompts,
            'avg_confidence': round(sum(scores) / len(scores), 1) if scores else 0,
            'risk_distribution': risk_distribution,
            'recent_activity': recent,
        }


_analysis_store = None


def get_analysis_store() -> AnalysisStore:
    global _analysis_store
    if _analysis_store is None:
        _analysis_store = AnalysisStore()
    return _analysis_store
