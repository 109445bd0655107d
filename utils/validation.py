"""
Input and result models for the analysis, knowledge base and admin flows.

Models accept both snake_case and camelCase keys so that LLM responses
(camelCase) and form data (snake_case) validate against the same schema.
"""

from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

ModelT = TypeVar("ModelT", bound=BaseModel)

Language = Literal['en', 'ms', 'zh', 'ta']
Level = Literal['high', 'medium', 'low']
TitleLevel = Literal['High', 'Medium', 'Low']

# Form fields that carry a measured value, with their canonical parameter key
SAMPLE_FIELD_KEYS = {
    'ph': 'pH',
    'organic_matter': 'OC',
    'nitrogen': 'N',
    'phosphorus': 'P',
    'potassium': 'K',
    'calcium': 'Ca',
    'magnesium': 'Mg',
    'sulfur': 'S',
    'boron': 'B',
    'zinc': 'Zn',
    'iron': 'Fe',
    'manganese': 'Mn',
    'copper': 'Cu',
    'cation_exchange_capacity': 'CEC',
    'electrical_conductivity': 'EC',
}


class RequestValidationError(ValueError):
    """Raised when input data does not match its model"""

    def __init__(self, details: str):
        self.details = details
        super().__init__(f"Validation error: {details}")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# User priorities

class UserPriorities(CamelModel):
    focus: Literal['sustainability', 'cost', 'yield', 'balanced'] = 'balanced'
    budget: Level = 'medium'
    timeframe: Literal['immediate', 'short_term', 'long_term'] = 'short_term'
    language: Literal['en', 'ms'] = 'en'
    plantation_type: Literal['tenera', 'dura', 'pisifera'] = 'tenera'
    soil_type: Literal['mineral', 'peat', 'coastal'] = 'mineral'


# Sample inputs

class _SampleInput(CamelModel):
    field_id: Optional[str] = None
    sample_location: str = Field(min_length=1)
    nitrogen: float = Field(ge=0)
    phosphorus: float = Field(ge=0)
    potassium: float = Field(ge=0)
    calcium: float = Field(ge=0)
    magnesium: float = Field(ge=0)
    sulfur: float = Field(ge=0)
    boron: Optional[float] = Field(default=None, ge=0)
    zinc: Optional[float] = Field(default=None, ge=0)
    iron: Optional[float] = Field(default=None, ge=0)
    manganese: Optional[float] = Field(default=None, ge=0)
    copper: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None

    def analysis_values(self) -> Dict[str, float]:
        """Measured values keyed by canonical parameter names"""
        data = self.model_dump()
        return {key: float(data[field]) for field, key in SAMPLE_FIELD_KEYS.items()
                if data.get(field) is not None}


class SoilAnalysisInput(_SampleInput):
    sample_depth: float = Field(ge=0, le=200)
    ph: float = Field(ge=0, le=14)
    organic_matter: float = Field(ge=0, le=100)
    texture: Literal['clay', 'sandy', 'loam', 'silt']
    cation_exchange_capacity: Optional[float] = Field(default=None, ge=0)
    electrical_conductivity: Optional[float] = Field(default=None, ge=0)


class LeafAnalysisInput(_SampleInput):
    leaf_age: Literal['young', 'mature', 'old']
    plant_age: float = Field(ge=0, le=50)
    chlorophyll: Optional[float] = Field(default=None, ge=0)


# Knowledge base and admin inputs

class DocumentUploadInput(CamelModel):
    filename: str = Field(min_length=1)
    file_size: int = Field(gt=0)
    mime_type: str = Field(min_length=1)
    category: Literal['research', 'guide', 'regulation', 'case_study', 'best_practice']
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    language: Language = 'en'
    is_public: bool = False


class PromptTemplateInput(CamelModel):
    name: str = Field(min_length=1)
    description: str = ''
    template: str = Field(min_length=10)
    category: Literal['soil', 'leaf', 'general', 'troubleshooting', 'recommendations']
    variables: List[str] = Field(default_factory=list)
    is_active: bool = True
    language: Language = 'en'
    priority: Level = 'medium'
    malaysian_context: bool = True
    scientific_rigor: Level = 'medium'
    specificity_level: Level = 'medium'


class FeedbackInput(CamelModel):
    type: Literal['bug', 'feature', 'improvement', 'general']
    title: str = Field(min_length=1)
    description: str = Field(min_length=10)
    priority: Literal['low', 'medium', 'high'] = 'medium'
    category: Literal['ui', 'analysis', 'performance', 'data', 'other']
    reproduction_steps: Optional[str] = None
    expected_behavior: Optional[str] = None
    actual_behavior: Optional[str] = None
    browser_info: Optional[str] = None


class AnalyticsEventInput(CamelModel):
    event_name: str = Field(min_length=1)
    event_category: str = Field(min_length=1)
    event_action: str = Field(min_length=1)
    event_label: Optional[str] = None
    event_value: Optional[float] = None
    custom_dimensions: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    session_id: str = Field(min_length=1)
    timestamp: Optional[float] = None  # epoch milliseconds
    page: str = ''
    user_agent: str = ''


class ModuleToggleInput(CamelModel):
    module_key: str = Field(min_length=1)
    is_enabled: bool


# Query parameters

class PaginationParams(CamelModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class SortParams(CamelModel):
    sort_by: Optional[str] = None
    sort_order: Literal['asc', 'desc'] = 'desc'


class DateRange(CamelModel):
    start: str
    end: str


class SearchParams(CamelModel):
    query: Optional[str] = None
    category: List[str] = Field(default_factory=list)
    status: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    date_range: Optional[DateRange] = None
    sort_by: str = 'relevance'
    sort_order: Literal['asc', 'desc'] = 'desc'
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    tables: Optional[List[str]] = None
    filters: Dict[str, Any] = Field(default_factory=dict)


# Analysis result

class ImprovementPlanItem(CamelModel):
    investment_level: Optional[TitleLevel] = None
    recommendation: str
    reasoning: str
    estimated_impact: str
    implementation_steps: Optional[str] = None
    sustainability_benefits: Optional[str] = None
    priority: TitleLevel
    cost_benefit_ratio: Optional[str] = None
    timeframe: Optional[str] = None


class NutrientBalance(CamelModel):
    ratios: Dict[str, float] = Field(default_factory=dict)
    imbalances: List[str] = Field(default_factory=list)
    critical_deficiencies: List[str] = Field(default_factory=list)
    antagonisms: List[str] = Field(default_factory=list)


class BenchmarkComparison(CamelModel):
    malaysia_average: float
    regional_average: float
    potential_improvement: str


class YieldForecast(CamelModel):
    high_investment: List[float]
    medium_investment: List[float]
    low_investment: List[float]
    baseline: List[float]
    benchmark_comparison: BenchmarkComparison


class RegionalBenchmarking(CamelModel):
    current_yield_vs_benchmark: str
    potential_improvement: str
    ranking_percentile: float


class SustainabilityMetrics(CamelModel):
    carbon_sequestration_potential: str
    rspo_compliance: str
    environmental_impact: str


class RagContextItem(BaseModel):
    content: str
    metadata: Dict[str, Union[str, float, bool]] = Field(default_factory=dict)
    similarity: float
    document_title: Optional[str] = None
    document_source: Optional[str] = None
    chunk_index: int = 0


class ScientificReference(CamelModel):
    id: str
    title: str
    authors: List[str] = Field(default_factory=list)
    journal: str = ''
    year: int
    doi: Optional[str] = None
    url: Optional[str] = None
    relevance_score: float = 0.0
    summary: str = ''
    key_findings: List[str] = Field(default_factory=list)
    application_to_analysis: str = ''
    confidence_level: TitleLevel = 'Medium'


class AnalysisResultModel(CamelModel):
    interpretation: str
    issues: List[str]
    improvement_plan: List[ImprovementPlanItem]
    risk_level: Literal['Low', 'Medium', 'High', 'Critical']
    confidence_score: float = Field(ge=0, le=100)
    nutrient_balance: Optional[NutrientBalance] = None
    yield_forecast: Optional[YieldForecast] = None
    regional_benchmarking: Optional[RegionalBenchmarking] = None
    sustainability_metrics: Optional[SustainabilityMetrics] = None
    rag_context: Optional[List[RagContextItem]] = None
    scientific_references: Optional[List[ScientificReference]] = None
    metadata: Optional[Dict[str, Any]] = None


def format_validation_error(error: ValidationError) -> str:
    return ', '.join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors()
    )


def validate_request(model: Type[ModelT], data: Any) -> ModelT:
    """Validate data against a model

    Raises:
        RequestValidationError: listing each failing field path and message
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise RequestValidationError(format_validation_error(e)) from e


def safe_validate(model: Type[ModelT], data: Any) -> Dict[str, Any]:
    try:
        return {'success': True, 'data': validate_request(model, data)}
    except RequestValidationError as e:
        return {'success': False, 'error': e.details}
