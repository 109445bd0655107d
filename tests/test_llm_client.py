from types import SimpleNamespace

import pytest

from utils import llm_client
from utils.llm_client import GeminiClient, GeminiEmbeddings, LLMError


class FakeModel:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def generate_content(self, prompt, generation_config=None, safety_settings=None):
        self.calls.append((prompt, generation_config))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeGenAI:
    def __init__(self, responses=()):
        self.model = FakeModel(responses)
        self.embedded = []
        self.types = SimpleNamespace(GenerationConfig=lambda **kwargs: kwargs)

    def GenerativeModel(self, name, safety_settings=None):
        self.model.name = name
        return self.model

    def embed_content(self, model, content, task_type):
        self.embedded.append((model, content, task_type))
        return {'embedding': [float(len(content)), 1.0]}


def answer(text, finish_reason=1):
    return SimpleNamespace(candidates=[SimpleNamespace(finish_reason=finish_reason)], text=text)


@pytest.fixture
def fake_genai(monkeypatch):
    def install(*responses):
        genai = FakeGenAI(responses)
        monkeypatch.setattr(llm_client, '_configure_genai', lambda api_key: genai)
        monkeypatch.setattr(llm_client.time, 'sleep', lambda seconds: None)
        return genai
    return install


def test_generate_returns_text(fake_genai):
    genai = fake_genai(answer('{"ok": true}'))
    client = GeminiClient(temperature=0.3)

    assert client.generate('prompt') == '{"ok": true}'
    assert genai.model.calls[0][1] == {'temperature': 0.3, 'max_output_tokens': 4096}
    assert genai.model.name == 'gemini-2.5-pro'


def test_generate_retries_on_quota_errors(fake_genai):
    genai = fake_genai(RuntimeError('429 quota exceeded'), answer('done'))
    assert GeminiClient().generate('prompt') == 'done'
    assert len(genai.model.calls) == 2


def test_generate_gives_up_on_other_errors(fake_genai):
    fake_genai(RuntimeError('connection reset'), answer('never used'))
    with pytest.raises(LLMError, match='connection reset'):
        GeminiClient().generate('prompt')


@pytest.mark.parametrize('response, message', [
    (SimpleNamespace(candidates=[], text=''), 'No response candidates'),
    (answer('partial', finish_reason=3), 'SAFETY'),
    (answer(''), 'Empty response'),
])
def test_unusable_answers_raise(fake_genai, response, message):
    fake_genai(response)
    with pytest.raises(LLMError, match=message):
        GeminiClient().generate('prompt')


def test_embeddings_use_task_types(fake_genai):
    genai = fake_genai()
    embeddings = GeminiEmbeddings()

    assert embeddings.embed_documents(['abc', 'de']) == [[3.0, 1.0], [2.0, 1.0]]
    assert embeddings.embed_query('soil') == [4.0, 1.0]
    assert [call[2] for call in genai.embedded] == ['retrieval_document', 'retrieval_document', 'retrieval_query']
    assert genai.embedded[0][0] == 'models/text-embedding-004'


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(llm_client, 'get_google_api_key', lambda: None)
    monkeypatch.setattr(llm_client, '_llm_client', None)
    with pytest.raises(LLMError, match='API key not found'):
        llm_client._configure_genai(None)
    assert llm_client.get_llm_client() is None
