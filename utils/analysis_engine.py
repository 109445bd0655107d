import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from langchain_core.prompts import PromptTemplate

from utils.document_processor import extract_values_with_regex, strip_json_fences
from utils.llm_client import LLMError
from utils.nutrient_analysis import (
    calculate_nutrient_balance,
    calculate_regional_benchmarking,
    calculate_sustainability_metrics,
    generate_yield_forecasts,
    is_parameter_critical,
)
from utils.parameter_standardizer import parameter_standardizer
from utils.prompt_manager import PromptContext
from utils.reference_data import reference_data_as_dict
from utils.scientific_references import get_curated_references
from utils.validation import AnalysisResultModel, UserPriorities, validate_request

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 85
MIN_CONFIDENCE = 70
MIN_INTERPRETATION_LENGTH = 50

FOCUS_KEYWORDS = {
    'sustainability': 'RSPO sustainable practices carbon sequestration environmental impact',
    'cost': 'cost effective budget fertilizer recommendations economic analysis',
    'yield': 'yield improvement productivity optimization fruit production',
    'balanced': 'balanced approach integrated management holistic practices',
}

SOIL_TYPE_KEYWORDS = {
    'mineral': 'mineral soil latosol oxisol tropical soil',
    'peat': 'peat soil organic matter acidic soil drainage',
    'coastal': 'coastal soil salinity sandy soil irrigation',
}

STANDARDIZED_TERMS = {
    'soil': [
        'soil_analysis', 'soil_fertility', 'soil_management',
        'fertilizer_recommendation', 'nutrient_deficiency',
        'pH_correction', 'organic_matter', 'soil_preparation',
    ],
    'leaf': [
        'leaf_analysis', 'foliar_nutrition', 'nutrient_symptoms',
        'leaf_sampling', 'tissue_analysis', 'deficiency_symptoms',
        'frond_analysis', 'nutrient_monitoring',
    ],
}

MALAYSIAN_KEYWORDS = [
    'malaysia', 'malaysian', 'mpob', 'felda', 'sabah', 'sarawak',
    'peninsular malaysia', 'tropical', 'equatorial', 'southeast asia',
]

SCIENTIFIC_KEYWORDS = [
    'research', 'study', 'analysis', 'experiment', 'trial',
    'statistical', 'significant', 'correlation', 'methodology',
    'peer-reviewed', 'journal', 'publication',
]

NUMERICAL_DATA_PATTERN = re.compile(r'\d+\.?\d*\s*(mg/l|ppm|%|kg/ha|tons/ha)', re.IGNORECASE)

SIMPLE_ANALYSIS_PROMPT = PromptTemplate.from_template("""
You are an expert agronomist specialized in oil palm production in Malaysia. Analyze the provided {sample_type} test data and provide specific, actionable recommendations.

ANALYSIS DATA:
{data_values}

REFERENCE STANDARDS:
{reference_standards}

RELEVANT KNOWLEDGE BASE INFORMATION:
{reference_context}

Please provide a comprehensive analysis with:
1. Detailed interpretation of the test results
2. Identification of any nutrient deficiencies, excesses, or imbalances
3. Specific recommendations for improvement with different investment levels
4. Risk assessment and confidence level

Respond with ONLY a valid JSON object in this exact format:
{{
  "interpretation": "string - detailed interpretation of results",
  "issues": ["array of strings - identified issues or deficiencies"],
  "improvementPlan": [
    {{
      "recommendation": "string - specific recommendation",
      "reasoning": "string - scientific explanation",
      "estimatedImpact": "string - expected impact on yield/health",
      "priority": "High|Medium|Low"
    }}
  ],
  "riskLevel": "Low|Medium|High|Critical",
  "confidenceScore": number between 0-100
}}
""")

COMPREHENSIVE_SECTIONS = """

ANALYSIS DATA:
{data_values}

REFERENCE STANDARDS:
{reference_standards}

CALCULATED NUTRIENT BALANCE:
{nutrient_balance}

REGIONAL BENCHMARKING:
{benchmarking}

KNOWLEDGE BASE CONTEXT:
{reference_context}

USER PREFERENCES:
Focus: {focus}
Budget: {budget}
Timeframe: {timeframe}
Soil Type: {soil_type}
Palm Variety: {plantation_type}

Provide comprehensive analysis with enhanced features including automated nutrient balance calculations,
regional benchmarking, and 5-year yield forecasting. Respond with valid JSON only.
"""

OCR_EXTRACTION_PROMPT = PromptTemplate.from_template("""
Extract numerical values for oil palm {sample_type} analysis from the following text.
Look for common parameters like pH, nitrogen, phosphorus, potassium, calcium, magnesium, etc.

TEXT TO ANALYZE:
{ocr_text}

Return ONLY a JSON object with parameter names as keys and numerical values as numbers.
Example: {{"pH": 6.5, "nitrogen": 0.25, "phosphorus": 20}}

If a parameter is not found, do not include it in the result.
""")

DEFAULT_PLAN_ITEM = {
    'recommendation': 'Implement Malaysian-specific nutrient management protocol',
    'reasoning': 'Local soil conditions and climate require tailored approaches based on MPOB guidelines',
    'estimated_impact': '15-25% improvement in nutrient uptake efficiency and yield stability',
    'priority': 'High',
    'timeframe': '3-6 months',
    'cost_benefit_ratio': '1:3.5 return on investment',
}


class AnalysisError(RuntimeError):
    """Raised when the advanced analysis cannot complete"""

    def __init__(self, cause):
        self.cause = cause
        super().__init__(f"Analysis failed: {cause}")


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=str)


def _escape_braces(text: str) -> str:
    return text.replace('{', '{{').replace('}', '}}')


def _canonical(param: str) -> Optional[str]:
    return parameter_standardizer.standardize_parameter_name(param)


def _rag_context_item(doc: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        'content': doc.get('content', ''),
        'metadata': dict(doc.get('metadata') or {}),
        'similarity': doc.get('similarity', 0.0),
        'document_title': doc.get('document_title'),
        'document_source': doc.get('document_source'),
        'chunk_index': doc.get('chunk_index', 0),
    }


def _coerce_confidence(value: Any) -> float:
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return DEFAULT_CONFIDENCE
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    if math.isnan(value) or value < 0 or value > 100:
        return DEFAULT_CONFIDENCE
    return value


class AdvancedAgronomistAnalyzer:
    """Malaysian oil palm agronomist: deterministic calculations plus LLM interpretation"""

    def __init__(self, llm=None, reference_manager=None, prompt_manager=None,
                 reference_service=None, store=None):
        self.logger = logging.getLogger(f"{__name__}.AdvancedAgronomistAnalyzer")
        self._llm = llm
        self._reference_manager = reference_manager
        self._prompt_manager = prompt_manager
        self._reference_service = reference_service
        self._store = store

    # Collaborators are resolved lazily so the page can render without Firebase or Gemini

    @property
    def llm(self):
        if self._llm is None:
            from utils.llm_client import get_llm_client
            self._llm = get_llm_client()
        return self._llm

    @property
    def reference_manager(self):
        if self._reference_manager is None:
            from utils.reference_manager import get_reference_manager
            self._reference_manager = get_reference_manager()
        return self._reference_manager

    @property
    def prompt_manager(self):
        if self._prompt_manager is None:
            from utils.prompt_manager import get_prompt_manager
            self._prompt_manager = get_prompt_manager()
        return self._prompt_manager

    @property
    def reference_service(self):
        if self._reference_service is None:
            from utils.scientific_references import get_reference_service
            self._reference_service = get_reference_service()
        return self._reference_service

    @property
    def store(self):
        if self._store is None:
            from utils.analysis_store import get_analysis_store
            self._store = get_analysis_store()
        return self._store

    @staticmethod
    def resolve_priorities(priorities: Any) -> Dict[str, Any]:
        return validate_request(UserPriorities, priorities or {}).model_dump()

    def analyze_data_advanced(self, sample_type: str, values: Dict[str, Any], reference_data: Optional[Dict[str, Any]],
                              priorities: Any, land_size: Optional[float] = None,
                              historical_yield: Optional[List[float]] = None) -> Dict[str, Any]:
        """Full analysis with dynamic prompt, calculations, RAG context and references

        Args:
            sample_type: 'soil' or 'leaf'
            values: parameter -> measured value
            reference_data: optimal ranges; defaults to the built-in tables
            priorities: UserPriorities or dict
            land_size: plantation size in hectares, kept in the report metadata
            historical_yield: yearly yields in tons/ha, oldest first

        Returns:
            Analysis result dict (snake_case keys)

        Raises:
            AnalysisError: when any step of the analysis fails
        """
        try:
            self.logger.info("Starting comprehensive oil palm analysis...")
            prefs = self.resolve_priorities(priorities)
            reference_data = reference_data or reference_data_as_dict(sample_type)

            dynamic_prompt = self.get_dynamic_prompt(sample_type, prefs, values, reference_data)
            nutrient_balance = calculate_nutrient_balance(values, sample_type)
            benchmarking = calculate_regional_benchmarking(historical_yield)
            yield_forecast = (generate_yield_forecasts(historical_yield[-1], prefs)
                              if historical_yield else None)

            search_query = self.create_advanced_search_query(sample_type, values, prefs)
            reference_documents = self.reference_manager.search_relevant_documents(search_query, 10)
            reference_context = '\n\n'.join(doc['content'] for doc in reference_documents)

            prompt = self.build_comprehensive_prompt(
                dynamic_prompt, values, reference_data, prefs, nutrient_balance, benchmarking, reference_context)

            llm = self.llm
            if llm is None:
                raise LLMError("LLM service is not available")
            result = self.parse_and_validate_response(llm.generate(prompt))

            result['nutrient_balance'] = nutrient_balance
            result['regional_benchmarking'] = benchmarking
            if yield_forecast:
                result['yield_forecast'] = yield_forecast
            result['sustainability_metrics'] = calculate_sustainability_metrics(values, prefs)
            if reference_documents:
                result['rag_context'] = [_rag_context_item(doc) for doc in reference_documents]
            result['scientific_references'] = self._fetch_scientific_references(sample_type, result['issues'])
            result['metadata'] = {
                'sample_type': sample_type,
                'land_size': land_size,
                'analyzed_at': datetime.now(timezone.utc).isoformat(),
            }

            report_id = self.store.store_analysis_report(result, values, prefs, sample_type)
            if report_id:
                result['metadata']['report_id'] = report_id

            self.logger.info("Comprehensive analysis completed successfully")
            return result
        except AnalysisError:
            raise
        except Exception as e:
            self.logger.error(f"Advanced analysis failed: {e}")
            raise AnalysisError(e) from e

    def _fetch_scientific_references(self, sample_type: str, issues: List[str]) -> List[Dict[str, Any]]:
        search_terms = [f"oil palm {sample_type} analysis", *issues[:3], 'Malaysia plantation management']
        try:
            return self.reference_service.get_references(sample_type, search_terms, limit=5)['references']
        except Exception as e:
            self.logger.warning(f"Failed to fetch scientific references: {e}")
            return []

    def analyze_data(self, sample_type: str, values: Dict[str, Any],
                     reference_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Single-prompt analysis; falls back to a basic result when the model fails"""
        reference_data = reference_data or reference_data_as_dict(sample_type)
        search_query = self.create_search_query(sample_type, values)
        self.logger.info(f"Searching for enhanced RAG context with query: {search_query}")
        reference_documents = self.get_enhanced_rag_context(search_query, sample_type, values, 5)
        reference_context = '\n\n'.join(doc['content'] for doc in reference_documents)

        prompt = SIMPLE_ANALYSIS_PROMPT.format(
            sample_type=sample_type,
            data_values=_to_json(values),
            reference_standards=_to_json(reference_data),
            reference_context=reference_context or 'No additional reference information available.',
        )

        llm = self.llm
        if llm is None:
            self.logger.warning("LLM not available, returning fallback analysis")
            return self.get_fallback_analysis(sample_type)
        try:
            content = llm.generate(prompt)
        except LLMError as e:
            self.logger.error(f"Analysis LLM error: {e}")
            return self.get_fallback_analysis(sample_type)

        try:
            result = self.parse_and_validate_response(content)
        except ValueError:
            return self.get_fallback_analysis(sample_type)

        return self.validate_and_enhance_result(result, sample_type, reference_documents)

    def analyze_with_ocr(self, sample_type: str, ocr_text: str,
                         reference_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Extract values from OCR text, then analyze them

        Returns:
            {'values': extracted values, 'analysis': analysis result}
        """
        try:
            llm = self.llm
            if llm is None:
                raise LLMError("LLM service is not available")
            response = llm.generate(OCR_EXTRACTION_PROMPT.format(sample_type=sample_type, ocr_text=ocr_text))
            try:
                extracted = json.loads(strip_json_fences(response))
                if not isinstance(extracted, dict):
                    raise ValueError("Extraction response is not an object")
                values = parameter_standardizer.to_numeric_values(
                    parameter_standardizer.standardize_data_dict(extracted))
            except ValueError:
                values = extract_values_with_regex(ocr_text)
        except LLMError as e:
            self.logger.error(f"OCR analysis error: {e}")
            values = extract_values_with_regex(ocr_text)

        analysis = self.analyze_data(sample_type, values, reference_data)
        return {'values': values, 'analysis': analysis}

    def get_dynamic_prompt(self, sample_type: str, priorities: Dict[str, Any],
                           values: Optional[Dict[str, Any]] = None,
                           reference_data: Optional[Dict[str, Any]] = None) -> str:
        try:
            context = PromptContext(
                sample_type=sample_type,
                user_priorities=priorities,
                data_values=values or {},
                reference_data=reference_data or {},
            )
            return self.prompt_manager.get_optimal_prompt(context)
        except Exception as e:
            self.logger.warning(f"Dynamic prompt unavailable, using default: {e}")
            return self.get_default_prompt(sample_type, priorities)

    @staticmethod
    def get_default_prompt(sample_type: str, priorities: Mapping[str, Any]) -> str:
        language = 'Bahasa Malaysia' if priorities.get('language') == 'ms' else 'English'
        return f"""
You are an expert Malaysian oil palm agronomist. Analyze this {sample_type} test data and provide comprehensive recommendations in {language}.

Focus on: {priorities.get('focus')}
Budget level: {priorities.get('budget')}
Timeframe: {priorities.get('timeframe')}
Soil type: {priorities.get('soil_type')}
Palm variety: {priorities.get('plantation_type')}

Provide detailed analysis with specific, actionable recommendations for Malaysian conditions.
Include nutrient balance calculations, yield forecasting, and sustainability considerations.

Respond with ONLY valid JSON in the specified format.
"""

    @staticmethod
    def build_comprehensive_prompt(dynamic_prompt: str, values: Dict[str, Any], reference_data: Dict[str, Any],
                                   priorities: Mapping[str, Any], nutrient_balance: Dict[str, Any],
                                   benchmarking: Dict[str, Any], reference_context: str) -> str:
        # Stored templates may contain literal JSON examples
        template = PromptTemplate.from_template(_escape_braces(dynamic_prompt) + COMPREHENSIVE_SECTIONS)
        return template.format(
            data_values=_to_json(values),
            reference_standards=_to_json(reference_data),
            nutrient_balance=_to_json(nutrient_balance),
            benchmarking=_to_json(benchmarking),
            reference_context=reference_context or 'No additional context available',
            focus=priorities.get('focus'),
            budget=priorities.get('budget'),
            timeframe=priorities.get('timeframe'),
            soil_type=priorities.get('soil_type'),
            plantation_type=priorities.get('plantation_type'),
        )

    @staticmethod
    def parse_and_validate_response(content: str) -> Dict[str, Any]:
        """Parse the model's JSON answer into a validated result dict

        Raises:
            ValueError: 'Invalid analysis response format' when the answer
                is not JSON or does not match the result schema
        """
        try:
            match = re.search(r'\{[\s\S]*\}', content or '')
            parsed = json.loads(match.group(0) if match else content)
            if not isinstance(parsed, dict):
                raise ValueError("Response is not a JSON object")
            if 'confidenceScore' in parsed:
                raw_score = parsed['confidenceScore']
            else:
                raw_score = parsed.pop('confidence_score', None)
            parsed['confidenceScore'] = _coerce_confidence(raw_score)
            result = AnalysisResultModel.model_validate(parsed)
        except (ValueError, TypeError) as e:
            logger.error(f"Failed to parse LLM response: {e}")
            raise ValueError('Invalid analysis response format') from e
        return result.model_dump(exclude_none=True)

    def validate_and_enhance_result(self, result: Dict[str, Any], sample_type: str,
                                    reference_documents: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        if len(result.get('interpretation') or '') < MIN_INTERPRETATION_LENGTH:
            result['interpretation'] = (
                f"Analysis of {sample_type} sample for Malaysian oil palm cultivation reveals specific nutrient "
                "patterns. Based on MPOB standards and local soil conditions, targeted interventions are recommended."
            )

        if not result.get('improvement_plan'):
            result['improvement_plan'] = [dict(DEFAULT_PLAN_ITEM)]

        score = result.get('confidence_score')
        if not score or score < MIN_CONFIDENCE:
            result['confidence_score'] = max(MIN_CONFIDENCE, score or 80)

        issues = result.get('issues') or []
        try:
            enhanced_query = self.create_standardized_search_query(sample_type, issues)
            enhanced_docs = self.reference_manager.get_enhanced_rag_context(enhanced_query, 8)
            if enhanced_docs:
                result['rag_context'] = [_rag_context_item(doc) for doc in enhanced_docs]
            elif reference_documents:
                result['rag_context'] = [_rag_context_item(doc) for doc in reference_documents]
        except Exception as e:
            self.logger.warning(f"Enhanced RAG retrieval failed, using fallback: {e}")

        if not result.get('scientific_references'):
            result['scientific_references'] = get_curated_references(sample_type, issues)

        return result

    @staticmethod
    def get_fallback_analysis(sample_type: str) -> Dict[str, Any]:
        return {
            'interpretation': (
                f"Basic analysis of {sample_type} sample completed. The data shows various nutrient levels that "
                "should be evaluated against optimal ranges for oil palm cultivation."
            ),
            'issues': ['Limited analysis due to processing constraints'],
            'improvement_plan': [
                {
                    'recommendation': 'Conduct detailed soil/leaf analysis',
                    'reasoning': 'More comprehensive data needed for accurate recommendations',
                    'estimated_impact': 'Better informed management decisions',
                    'priority': 'High',
                }
            ],
            'risk_level': 'Medium',
            'confidence_score': 65,
            'regional_benchmarking': {
                'current_yield_vs_benchmark': 'Insufficient data for benchmarking',
                'potential_improvement': 'Provide historical yield data for forecasting',
                'ranking_percentile': 50,
            },
            'sustainability_metrics': {
                'carbon_sequestration_potential': 'Moderate potential with improved practices',
                'rspo_compliance': 'Practices should align with RSPO standards',
                'environmental_impact': 'Focus on sustainable management practices',
            },
        }

    # Search queries

    @staticmethod
    def create_search_query(sample_type: str, values: Dict[str, Any]) -> str:
        issues = []
        parameters = []
        for param, value in values.items():
            parameters.append(param)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            key = _canonical(param)
            if key == 'pH' and (value < 4.5 or value > 6.5):
                issues.append('pH imbalance')
            if key == 'N' and value < 0.2:
                issues.append('nitrogen deficiency')
            if key == 'P' and value < 15:
                issues.append('phosphorus deficiency')
            if key == 'K' and value < 0.15:
                issues.append('potassium deficiency')

        query_parts = [f"oil palm {sample_type} analysis", *parameters[:3], *issues[:2]]
        if sample_type == 'soil':
            query_parts.extend(['fertilizer management', 'soil preparation'])
        else:
            query_parts.extend(['nutrient deficiency', 'leaf symptoms'])
        return ' '.join(query_parts)

    @staticmethod
    def create_advanced_search_query(sample_type: str, values: Dict[str, Any], priorities: Mapping[str, Any]) -> str:
        parts = [
            f"Malaysian oil palm {sample_type} analysis",
            ' '.join(values.keys()),
            FOCUS_KEYWORDS.get(priorities.get('focus'), ''),
            SOIL_TYPE_KEYWORDS.get(priorities.get('soil_type'), ''),
            'Tenera variety MPOB guidelines nutrient management',
        ]
        return ' '.join(part for part in parts if part)

    @staticmethod
    def create_standardized_search_query(sample_type: str, issues: List[str]) -> str:
        search_terms = [
            f"{sample_type}_analysis_malaysia",
            'oil_palm_nutrition',
            'mpob_guidelines',
            'tenera_variety',
            *STANDARDIZED_TERMS.get(sample_type, [])[:3],
        ]
        for issue in issues[:3]:
            search_terms.append(re.sub(r'[^\w_]', '', re.sub(r'\s+', '_', issue.lower())))
        search_terms.extend([
            'malaysia_plantation',
            'tropical_soil',
            'peninsular_malaysia',
            'sabah_sarawak',
            'rspo_sustainable',
        ])
        return ' '.join(search_terms)

    @staticmethod
    def build_enhanced_query(query: str, sample_type: str, values: Dict[str, Any]) -> str:
        critical = [param for param, value in values.items() if is_parameter_critical(param, value, sample_type)]
        return f"{query} {sample_type} analysis Malaysian oil palm {' '.join(critical)} MPOB guidelines"

    @staticmethod
    def generate_fallback_queries(sample_type: str, values: Dict[str, Any]) -> List[str]:
        queries = [
            f"Malaysian oil palm {sample_type} nutrient management",
            f"oil palm {sample_type} deficiency symptoms Malaysia",
            f"MPOB {sample_type} analysis guidelines",
            'oil palm fertilizer recommendations Malaysia',
            'palm oil plantation best practices Malaysia',
        ]
        for param in values:
            key = _canonical(param)
            if key == 'pH':
                queries.append('oil palm soil pH management Malaysia')
            elif key == 'N':
                queries.append('oil palm nitrogen fertilizer Malaysia')
            elif key == 'K':
                queries.append('oil palm potassium deficiency Malaysia')
        return queries

    @staticmethod
    def validate_malaysian_context(result: Mapping[str, Any]) -> bool:
        content = (result.get('content') or '').lower()
        return any(keyword in content for keyword in MALAYSIAN_KEYWORDS)

    @staticmethod
    def validate_scientific_rigor(result: Mapping[str, Any]) -> bool:
        content = (result.get('content') or '').lower()
        has_scientific_content = any(keyword in content for keyword in SCIENTIFIC_KEYWORDS)
        return has_scientific_content or bool(NUMERICAL_DATA_PATTERN.search(content))

    def get_enhanced_rag_context(self, query: str, sample_type: str, values: Dict[str, Any],
                                 limit: int = 10) -> List[Dict[str, Any]]:
        """Knowledge base chunks for the analysis, widened with fallback queries when sparse"""
        try:
            manager = self.reference_manager
            results = list(manager.search_relevant_documents(
                self.build_enhanced_query(query, sample_type, values), limit))

            if len(results) < 3:
                self.logger.info("Performing fallback content analysis...")
                for fallback_query in self.generate_fallback_queries(sample_type, values):
                    remaining = limit - len(results)
                    if remaining <= 0:
                        break
                    results.extend(manager.search_relevant_documents(fallback_query, remaining))

            filtered = []
            seen = set()
            for r in results:
                # fallback queries often return the same chunk again
                key = r.get('id') or r.get('content')
                if key in seen:
                    continue
                seen.add(key)
                if self.validate_malaysian_context(r) and self.validate_scientific_rigor(r):
                    filtered.append(r)
            return filtered[:limit]
        except Exception as e:
            self.logger.error(f"Enhanced RAG retrieval failed: {e}")
            return self.get_fallback_curated_content(sample_type, values)

    @staticmethod
    def get_fallback_curated_content(sample_type: str, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        numeric = {(_canonical(k) or k): v for k, v in parameter_standardizer.to_numeric_values(values).items()}
        has_low_ph = numeric.get('pH', 99) < 5.0
        has_nutrient_deficiency = (
            numeric.get('N', 99) < 2.5 or numeric.get('P', 99) < 0.15 or numeric.get('K', 99) < 1.0
        )

        if sample_type == 'soil':
            content = (
                "Malaysian oil palm cultivation in acidic soils (pH <5.0) requires lime application and careful "
                "nutrient management. Peat soils common in Malaysia need special drainage and potassium management "
                "strategies to prevent nutrient leaching."
                if has_low_ph else
                "Malaysian oil palm soil management requires specific attention to pH levels (optimal 5.0-6.0), "
                "nutrient balance, and organic matter content. Regular soil testing and targeted fertilizer "
                "application are essential for optimal yield."
            )
            return [{
                'content': content,
                'metadata': {'source': 'MPOB Guidelines', 'type': 'soil_management', 'ph_issue': has_low_ph},
                'similarity': 0.85,
                'document_title': 'Malaysian Oil Palm Soil Management Guidelines',
                'document_source': 'mpob_soil_guidelines.pdf',
                'chunk_index': 1,
            }]

        content = (
            "Oil palm nutrient deficiency in Malaysian plantations requires systematic diagnosis using frond 17 "
            "analysis. Critical nutrient ranges include N: 2.5-2.8%, P: 0.15-0.18%, K: 1.0-1.3%. Deficiency symptoms "
            "appear systematically from older to younger fronds and require immediate corrective fertilization."
            if has_nutrient_deficiency else
            "Oil palm leaf analysis in Malaysia follows specific sampling protocols using frond 17. Optimal nutrient "
            "ranges include N: 2.5-2.8%, P: 0.15-0.18%, K: 1.0-1.3%. Regular monitoring ensures optimal palm health "
            "and productivity."
        )
        return [{
            'content': content,
            'metadata': {'source': 'MPOB Guidelines', 'type': 'leaf_analysis',
                         'deficiency_detected': has_nutrient_deficiency},
            'similarity': 0.85,
            'document_title': 'Malaysian Oil Palm Leaf Analysis Standards',
            'document_source': 'mpob_leaf_analysis.pdf',
            'chunk_index': 1,
        }]
