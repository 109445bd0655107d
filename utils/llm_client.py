"""
Gemini client wrappers for text generation and embeddings.

Both wrappers read the API key and model names from configuration and can be
swapped for any object exposing the same methods (tests inject fakes).
"""

import logging
import time
from typing import List, Optional

from utils.config_manager import get_ai_config, get_google_api_key

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Permissive safety settings for agricultural content
SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]

FINISH_REASON_NAMES = {0: "UNSPECIFIED", 1: "STOP", 2: "MAX_TOKENS", 3: "SAFETY", 4: "RECITATION", 5: "OTHER"}

RATE_LIMIT_MARKERS = ("429", "quota", "insufficient_quota", "quota_exceeded", "resource_exhausted")


class LLMError(RuntimeError):
    """Raised when the language model cannot produce a usable answer"""


def _configure_genai(api_key: Optional[str]):
    import google.generativeai as genai

    key = api_key or get_google_api_key()
    if not key:
        raise LLMError("Google API key not found. Add it to [google_ai] in secrets or set GOOGLE_API_KEY.")
    genai.configure(api_key=key)
    return genai


class GeminiClient:
    """Thin wrapper around google.generativeai.GenerativeModel"""

    def __init__(self, model: Optional[str] = None, temperature: Optional[float] = None,
                 max_tokens: Optional[int] = None, api_key: Optional[str] = None):
        self.logger = logging.getLogger(f"{__name__}.GeminiClient")
        ai_config = get_ai_config()
        self.model_name = model or ai_config.model
        self.temperature = ai_config.temperature if temperature is None else temperature
        self.max_tokens = max_tokens or ai_config.max_tokens
        self.retry_attempts = max(1, ai_config.retry_attempts or 1)
        self._genai = _configure_genai(api_key)
        self.model = self._genai.GenerativeModel(self.model_name, safety_settings=SAFETY_SETTINGS)
        self.logger.info(f"Configured Gemini model {self.model_name} (temperature={self.temperature})")

    def _generate_once(self, prompt: str, temperature: float) -> str:
        generation_config = self._genai.types.GenerationConfig(
            temperature=temperature,
            max_output_tokens=self.max_tokens,
        )
        resp = self.model.generate_content(
            prompt,
            generation_config=generation_config,
            safety_settings=SAFETY_SETTINGS,
        )

        if not resp.candidates:
            raise LLMError("No response candidates generated. Safety filters may have blocked content.")

        candidate = resp.candidates[0]
        finish_reason = getattr(candidate, 'finish_reason', 1)
        if finish_reason != 1:
            reason_name = FINISH_REASON_NAMES.get(finish_reason, f"UNKNOWN_{finish_reason}")
            raise LLMError(f"Response generation failed with finish_reason: {reason_name} ({finish_reason})")

        if not getattr(resp, 'text', None):
            raise LLMError("Empty response from Gemini API")
        return resp.text

    def generate(self, prompt: str, temperature: Optional[float] = None) -> str:
        """Generate text, retrying with backoff on rate or quota errors

        Raises:
            LLMError: when every attempt fails or the answer is unusable
        """
        temp = self.temperature if temperature is None else temperature
        last_err = None
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return self._generate_once(prompt, temp)
            except LLMError:
                raise
            except Exception as e:
                last_err = e
                err_str = str(e).lower()
                if any(k in err_str for k in RATE_LIMIT_MARKERS) and attempt < self.retry_attempts:
                    sleep_s = min(2 ** attempt, 8)
                    self.logger.warning(f"LLM quota/rate error on attempt {attempt}, retrying in {sleep_s}s...")
                    time.sleep(sleep_s)
                    continue
                break
        raise LLMError(f"Gemini request failed: {last_err}") from last_err


class GeminiEmbeddings:
    """Embeddings via genai.embed_content (text-embedding-004, 768 dimensions)"""

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None):
        self.logger = logging.getLogger(f"{__name__}.GeminiEmbeddings")
        self.model_name = model or get_ai_config().embedding_model
        self._genai = _configure_genai(api_key)

    def _embed(self, text: str, task_type: str) -> List[float]:
        try:
            result = self._genai.embed_content(model=self.model_name, content=text, task_type=task_type)
        except Exception as e:
            raise LLMError(f"Embedding request failed: {e}") from e
        return list(result['embedding'])

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self._embed(text, "retrieval_document") for text in texts]

    def embed_query(self, text: str) -> List[float]:
        return self._embed(text, "retrieval_query")


_llm_client = None
_embeddings = None


def get_llm_client() -> Optional[GeminiClient]:
    """Process-wide Gemini client, or None when no API key is configured"""
    global _llm_client
    if _llm_client is None:
        try:
            _llm_client = GeminiClient()
        except LLMError as e:
            logger.warning(f"LLM unavailable: {e}")
            return None
    return _llm_client


def get_embeddings() -> Optional[GeminiEmbeddings]:
    """Process-wide embeddings client, or None when no API key is configured"""
    global _embeddings
    if _embeddings is None:
        try:
            _embeddings = GeminiEmbeddings()
        except LLMError as e:
            logger.warning(f"Embeddings unavailable: {e}")
            return None
    return _embeddings
