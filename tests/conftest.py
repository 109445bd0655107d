import copy

import pytest

from fakes import VALID_ANALYSIS, FakeEmbeddings, FakeFirestore


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def embeddings():
    return FakeEmbeddings()


@pytest.fixture
def valid_analysis():
    return copy.deepcopy(VALID_ANALYSIS)
