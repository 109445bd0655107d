# Configuration manager
import json
import os
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict, fields

logger = logging.getLogger(__name__)


@dataclass
class AIConfig:
    """AI configuration settings"""
    model: str = "gemini-2.5-pro"
    embedding_model: str = "models/text-embedding-004"
    temperature: float = 0.1
    max_tokens: int = 4096
    extraction_temperature: float = 0.0
    retry_attempts: int = 3
    timeout_seconds: int = 60
    enable_rag: bool = True
    confidence_threshold: float = 0.7


@dataclass
class RAGConfig:
    """Knowledge base and retrieval settings"""
    chunk_size: int = 1000
    chunk_overlap: int = 200
    extraction_chunk_size: int = 4000
    extraction_chunk_overlap: int = 200
    min_similarity: float = 0.7
    min_relevance_score: float = 0.5
    default_top_k: int = 5
    documents_path: str = "reference_documents"
    use_firestore_vectors: bool = True


@dataclass
class CacheConfig:
    """In-process cache settings"""
    default_ttl_seconds: float = 300.0
    max_size: int = 1000
    api_ttl_seconds: float = 120.0
    api_max_size: int = 500
    prompt_cache_seconds: float = 300.0


@dataclass
class MPOBStandard:
    """MPOB standard definition"""
    parameter: str
    min_value: float
    max_value: float
    unit: str
    description: str = ""
    critical: bool = False

    @property
    def optimal_value(self) -> float:
        return round((self.min_value + self.max_value) / 2, 4)


@dataclass
class MPOBStandards:
    """MPOB standards collection"""
    soil_standards: Dict[str, MPOBStandard] = field(default_factory=dict)
    leaf_standards: Dict[str, MPOBStandard] = field(default_factory=dict)

    def for_sample(self, sample_type: str) -> Dict[str, MPOBStandard]:
        return self.leaf_standards if sample_type == 'leaf' else self.soil_standards


@dataclass
class UIConfig:
    """UI configuration"""
    page_title: str = "Oil Palm AGS"
    page_icon: str = "🌴"
    layout: str = "wide"
    primary_color: str = "#2E7D32"
    language: str = "en"
    date_format: str = "%Y-%m-%d %H:%M"
    history_page_size: int = 20


def get_secret_section(name: str) -> Dict[str, Any]:
    """Read a section from Streamlit secrets.

    Returns an empty dict when Streamlit has no secrets file or the section
    is missing, so callers can fall back to environment variables.
    """
    try:
        import streamlit as st
        if hasattr(st, 'secrets') and name in st.secrets:
            return dict(st.secrets[name])
    except Exception as e:
        logger.debug(f"Streamlit secrets unavailable for [{name}]: {e}")
    return {}


def get_google_api_key() -> Optional[str]:
    """Resolve the Gemini API key from secrets, then environment"""
    section = get_secret_section('google_ai')
    key = section.get('api_key') or section.get('google_api_key') or section.get('gemini_api_key')
    if key:
        return key
    return os.getenv('GOOGLE_API_KEY') or os.getenv('GEMINI_API_KEY')


class ConfigManager:
    """Configuration manager for the application"""

    CONFIG_TYPES = {
        'ai_config': AIConfig,
        'rag_config': RAGConfig,
        'cache_config': CacheConfig,
        'ui_config': UIConfig,
    }

    def __init__(self, config_dir: str = "config"):
        self.config_dir = config_dir
        self._cache = {}

    def ensure_config_dir(self):
        """Ensure config directory exists"""
        if not os.path.exists(self.config_dir):
            os.makedirs(self.config_dir)

    def _build(self, config_type: str):
        if config_type in self._cache:
            return self._cache[config_type]
        cls = self.CONFIG_TYPES[config_type]
        stored = self.load_config(config_type) or {}
        known = {f.name for f in fields(cls)}
        overrides = {k: v for k, v in stored.items() if k in known}
        ignored = set(stored) - known
        if ignored:
            logger.warning(f"Ignoring unknown keys in {config_type}: {sorted(ignored)}")
        instance = cls(**overrides)
        self._cache[config_type] = instance
        return instance

    def get_ai_config(self) -> AIConfig:
        """Get AI configuration"""
        return self._build('ai_config')

    def get_rag_config(self) -> RAGConfig:
        """Get retrieval configuration"""
        return self._build('rag_config')

    def get_cache_config(self) -> CacheConfig:
        """Get cache configuration"""
        return self._build('cache_config')

    def get_ui_config(self) -> UIConfig:
        """Get UI configuration"""
        return self._build('ui_config')

    def get_mpob_standards(self) -> MPOBStandards:
        """Get MPOB standards built from the soil and leaf reference ranges"""
        from utils.reference_data import get_reference_data, CRITICAL_PARAMETERS

        def build(sample_type):
            return {
                name: MPOBStandard(
                    parameter=name,
                    min_value=item.optimal[0],
                    max_value=item.optimal[1],
                    unit=item.unit,
                    description=item.interpretation,
                    critical=name in CRITICAL_PARAMETERS[sample_type],
                )
                for name, item in get_reference_data(sample_type).items()
            }

        return MPOBStandards(soil_standards=build('soil'), leaf_standards=build('leaf'))

    def save_config(self, config_type: str, config_data: Dict[str, Any]) -> bool:
        """Save configuration"""
        try:
            self.ensure_config_dir()
            config_path = os.path.join(self.config_dir, f"{config_type}.json")
            with open(config_path, 'w') as f:
                json.dump(config_data, f, indent=2)
            self._cache.pop(config_type, None)
            return True
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save {config_type}: {e}")
            return False

    def load_config(self, config_type: str) -> Optional[Dict[str, Any]]:
        """Load configuration"""
        config_path = os.path.join(self.config_dir, f"{config_type}.json")
        if not os.path.exists(config_path):
            return None
        try:
            with open(config_path, 'r') as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load {config_type}: {e}")
            return None

    def reset_to_defaults(self, config_type: str) -> bool:
        """Reset configuration to defaults"""
        try:
            config_path = os.path.join(self.config_dir, f"{config_type}.json")
            if os.path.exists(config_path):
                os.remove(config_path)
            self._cache.pop(config_type, None)
            return True
        except OSError as e:
            logger.error(f"Failed to reset {config_type}: {e}")
            return False

    def get_all_configs(self) -> Dict[str, Any]:
        """Get all configuration objects as plain dicts"""
        configs = {name: asdict(self._build(name)) for name in self.CONFIG_TYPES}
        standards = self.get_mpob_standards()
        configs['mpob_standards'] = {
            'soil_standards': {k: asdict(v) for k, v in standards.soil_standards.items()},
            'leaf_standards': {k: asdict(v) for k, v in standards.leaf_standards.items()},
        }
        return configs

    def clear_cache(self) -> bool:
        """Clear the configuration cache"""
        self._cache.clear()
        return True


# Global config manager instance
config_manager = ConfigManager()


def get_ui_config() -> UIConfig:
    """Get UI configuration"""
    return config_manager.get_ui_config()


def get_ai_config() -> AIConfig:
    """Get AI configuration"""
    return config_manager.get_ai_config()


def get_rag_config() -> RAGConfig:
    """Get retrieval configuration"""
    return config_manager.get_rag_config()


def get_cache_config() -> CacheConfig:
    """Get cache configuration"""
    return config_manager.get_cache_config()


def get_mpob_standards() -> MPOBStandards:
    """Get MPOB standards"""
    return config_manager.get_mpob_standards()
