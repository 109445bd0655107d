"""
Dynamic prompt templates stored in Firestore.

Templates are scored against the analysis context (sample type, plantation
type, soil type, budget and focus) and the best match is extended with
context-specific constraint blocks before it is sent to the model.
"""

import logging
import math
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from utils.cache import CacheManager
from utils.config_manager import get_cache_config
from utils.firebase_config import COLLECTIONS, FieldFilter, get_firestore_client
from utils.validation import PromptTemplateInput, UserPriorities, validate_request

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PRIORITY_SCORES = {'high': 30, 'medium': 20, 'low': 10}
PRIORITY_RANK = {'high': 3, 'medium': 2, 'low': 1}

TENERA_CONSTRAINTS = """

MALAYSIAN CONTEXT CONSTRAINTS:
- Focus on Tenera palm variety (N >2.5%, P >0.15%, K >1.0%)
- Consider Malaysian soil conditions (pH 5.5-6.5, tropical climate)
- Reference MPOB standards and guidelines
- Include cost considerations in Malaysian Ringgit
- Address sustainability and RSPO compliance
- Consider regional weather patterns and monsoon seasons
- Include local pest and disease management strategies
- Reference Malaysian fertilizer recommendations and application timing"""

PEAT_CONSTRAINTS = """

PEAT SOIL SPECIFIC CONSTRAINTS:
- Address high organic matter content and CEC
- Consider subsidence and drainage requirements
- Include micronutrient management (Cu, Zn, B)
- Address pH management and liming requirements
- Consider water table management
- Include peat soil specific fertilizer application methods"""

BUDGET_CONSTRAINTS = """

BUDGET CONSTRAINTS:
- Prioritize cost-effective solutions
- Focus on gradual improvements over time
- Consider local material availability
- Include DIY or low-cost alternatives
- Emphasize long-term ROI over immediate results"""

SUSTAINABILITY_FOCUS = """

SUSTAINABILITY FOCUS:
- Emphasize environmental impact reduction
- Include carbon sequestration strategies
- Address biodiversity conservation
- Consider circular economy principles
- Include waste reduction and recycling
- Address water conservation and management"""

FALLBACK_PROMPT = """You are an expert Malaysian oil palm agronomist with 20+ years of experience in {sample_type} analysis.

ANALYSIS REQUIREMENTS:
- Provide specific, actionable recommendations for Malaysian conditions
- Reference MPOB standards and local best practices
- Include cost-benefit analysis in Malaysian Ringgit
- Address sustainability and environmental impact
- Consider regional climate and soil conditions
- Provide timeline for implementation
- Include risk assessment and mitigation strategies

RESPONSE FORMAT:
Respond with ONLY valid JSON in this exact format:
{{
  "interpretation": "Detailed analysis interpretation with Malaysian context",
  "issues": ["Specific issues identified"],
  "improvementPlan": [
    {{
      "recommendation": "Specific actionable recommendation",
      "reasoning": "Scientific explanation with Malaysian context",
      "estimatedImpact": "Expected impact with metrics",
      "priority": "High|Medium|Low",
      "timeframe": "Implementation timeline",
      "costBenefitRatio": "ROI estimate"
    }}
  ],
  "riskLevel": "Low|Medium|High|Critical",
  "confidenceScore": 85,
  "malaysianContext": "Specific Malaysian considerations",
  "sustainabilityMetrics": {{
    "environmentalImpact": "Environmental considerations",
    "rspoCompliance": "RSPO compliance status",
    "carbonSequestration": "Carbon sequestration potential"
  }}
}}

USER PREFERENCES:
Focus: {focus}
Budget: {budget}
Timeframe: {timeframe}
Soil Type: {soil_type}
Palm Variety: {plantation_type}"""


@dataclass
class PromptContext:
    sample_type: str
    user_priorities: Mapping[str, Any] = field(default_factory=dict)
    data_values: Dict[str, Any] = field(default_factory=dict)
    reference_data: Dict[str, Any] = field(default_factory=dict)
    nutrient_balance: Dict[str, Any] = field(default_factory=dict)
    benchmarking: Dict[str, Any] = field(default_factory=dict)
    reference_context: str = ''

    def priority(self, key: str) -> Any:
        return self.user_priorities.get(key, getattr(UserPriorities(), key))


def validate_prompt_template(template_content: str, variables: List[str]) -> Dict[str, Any]:
    """Check a template's placeholders against its declared variables"""
    validation_result = {
        'valid': True,
        'errors': [],
        'warnings': []
    }

    if not template_content.strip():
        validation_result['valid'] = False
        validation_result['errors'].append("Template content cannot be empty")
        return validation_result

    template_placeholders = re.findall(r'\{([^{}]+)\}', template_content)

    for template_ph in template_placeholders:
        if template_ph not in variables:
            validation_result['warnings'].append(f"Placeholder '{template_ph}' is used in template but not declared")

    for declared in variables:
        if declared not in template_placeholders:
            validation_result['warnings'].append(f"Variable '{declared}' is declared but not used in template")

    if len(template_content) < 50:
        validation_result['warnings'].append("Template seems very short. Consider adding more detailed instructions.")

    if 'analyze' not in template_content.lower() and 'analysis' not in template_content.lower():
        validation_result['warnings'].append("Template doesn't seem to contain analysis instructions")

    return validation_result


class DynamicPromptManager:
    """Selects, extends and maintains the analysis prompt templates"""

    def __init__(self, db=None, clock: Callable[[], float] = time.time):
        self.logger = logging.getLogger(f"{__name__}.DynamicPromptManager")
        self.db = db if db is not None else get_firestore_client()
        self.cache = CacheManager(ttl=get_cache_config().prompt_cache_seconds, clock=clock)

    @property
    def templates(self):
        if self.db is None:
            raise RuntimeError("Firestore is not available")
        return self.db.collection(COLLECTIONS['prompt_templates'])

    @staticmethod
    def _to_template(doc) -> Dict[str, Any]:
        data = doc.to_dict() or {}
        data['id'] = doc.id
        return data

    def get_optimal_prompt(self, context: PromptContext) -> str:
        """Best scoring active template for the context, with context constraints appended

        Falls back to the built-in expert prompt when no template exists or
        anything goes wrong.
        """
        try:
            templates = self.get_active_templates(context.sample_type)
            if not templates:
                return self.get_fallback_prompt(context)

            best = max(templates, key=lambda t: self.calculate_template_score(t, context))
            self.update_template_usage(best['id'])
            return self.apply_context_modifications(best.get('template', ''), context)
        except Exception as e:
            self.logger.error(f"Error getting optimal prompt: {e}")
            return self.get_fallback_prompt(context)

    @staticmethod
    def calculate_template_score(template: Dict[str, Any], context: PromptContext) -> int:
        score = PRIORITY_SCORES.get(template.get('priority'), 10)

        if template.get('malaysian_context') and context.priority('plantation_type') == 'tenera':
            score += 25
        if template.get('category') == context.sample_type:
            score += 20
        if template.get('specificity_level') == 'high':
            score += 15
        if template.get('scientific_rigor') == 'high':
            score += 10

        score += math.floor((template.get('success_rate') or 0) * 10)
        return score

    @staticmethod
    def apply_context_modifications(template: str, context: PromptContext) -> str:
        modified = template
        if context.priority('plantation_type') == 'tenera':
            modified += TENERA_CONSTRAINTS
        if context.priority('soil_type') == 'peat':
            modified += PEAT_CONSTRAINTS
        if context.priority('budget') == 'low':
            modified += BUDGET_CONSTRAINTS
        if context.priority('focus') == 'sustainability':
            modified += SUSTAINABILITY_FOCUS
        return modified

    def get_active_templates(self, sample_type: str) -> List[Dict[str, Any]]:
        """Active templates for a sample type, best priority and success rate first"""
        cache_key = f"templates_{sample_type}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        query = (self.templates
                 .where(filter=FieldFilter('is_active', '==', True))
                 .where(filter=FieldFilter('category', '==', sample_type)))
        templates = [self._to_template(doc) for doc in query.stream()]
        templates.sort(
            key=lambda t: (PRIORITY_RANK.get(t.get('priority'), 0), t.get('success_rate') or 0),
            reverse=True,
        )
        if templates:
            self.cache.set(cache_key, templates)
        return templates

    def update_template_usage(self, template_id: str) -> None:
        try:
            doc_ref = self.templates.document(template_id)
            snapshot = doc_ref.get()
            if snapshot.exists:
                current = (snapshot.to_dict() or {}).get('usage_count') or 0
                doc_ref.update({
                    'usage_count': current + 1,
                    'last_used': datetime.now(timezone.utc),
                })
        except Exception as e:
            self.logger.warning(f"Error updating template usage: {e}")

    def create_template(self, data) -> Dict[str, Any]:
        """Store a new template

        Args:
            data: PromptTemplateInput or a dict accepted by it

        Returns:
            The stored template including its id
        """
        template = validate_request(PromptTemplateInput, data)
        now = datetime.now(timezone.utc)
        record = {
            **template.model_dump(),
            'version': '1.0',
            'usage_count': 0,
            'success_rate': 0.8,
            'last_used': None,
            'created_at': now,
            'updated_at': now,
        }
        doc_ref = self.templates.document()
        doc_ref.set(record)
        self.clear_cache()
        self.logger.info(f"Created prompt template {template.name}")
        return {**record, 'id': doc_ref.id}

    def update_template(self, template_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        doc_ref = self.templates.document(template_id)
        if not doc_ref.get().exists:
            raise KeyError(f"Prompt template {template_id} not found")
        changes = {k: v for k, v in updates.items() if k != 'id'}
        changes['updated_at'] = datetime.now(timezone.utc)
        doc_ref.update(changes)
        self.clear_cache()
        return self._to_template(doc_ref.get())

    def delete_template(self, template_id: str) -> None:
        self.templates.document(template_id).delete()
        self.clear_cache()

    def get_all_templates(self, category: Optional[str] = None) -> List[Dict[str, Any]]:
        try:
            query = self.templates
            if category:
                query = query.where(filter=FieldFilter('category', '==', category))
            templates = [self._to_template(doc) for doc in query.stream()]
        except Exception as e:
            self.logger.error(f"Error fetching templates: {e}")
            return []
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        templates.sort(
            key=lambda t: (PRIORITY_RANK.get(t.get('priority'), 0), t.get('created_at') or epoch),
            reverse=True,
        )
        return templates

    def get_template_analytics(self) -> Dict[str, Any]:
        templates = [self._to_template(doc) for doc in self.templates.stream()]

        most_used = None
        for template in templates:
            if (template.get('usage_count') or 0) > ((most_used or {}).get('usage_count') or 0):
                most_used = template

        category_distribution: Dict[str, int] = {}
        for template in templates:
            category = template.get('category') or 'general'
            category_distribution[category] = category_distribution.get(category, 0) + 1

        return {
            'total_templates': len(templates),
            'active_templates': sum(1 for t in templates if t.get('is_active')),
            'average_success_rate': (
                sum(t.get('success_rate') or 0 for t in templates) / len(templates) if templates else 0
            ),
            'most_used_template': most_used.get('name') if most_used else None,
            'category_distribution': category_distribution,
        }

    @staticmethod
    def get_fallback_prompt(context: PromptContext) -> str:
        return FALLBACK_PROMPT.format(
            sample_type=context.sample_type,
            focus=context.priority('focus'),
            budget=context.priority('budget'),
            timeframe=context.priority('timeframe'),
            soil_type=context.priority('soil_type'),
            plantation_type=context.priority('plantation_type'),
        )

    def clear_cache(self) -> None:
        self.cache.clear()


_prompt_manager = None


def get_prompt_manager() -> DynamicPromptManager:
    global _prompt_manager
    if _prompt_manager is None:
        _prompt_manager = DynamicPromptManager()
    return _prompt_manager
