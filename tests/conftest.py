import os

os.environ.setdefault("LEARNIT_LOG_TO_FILE", "false")

import fakeredis
import pytest
from fastapi.testclient import TestClient

from learnit.main import create_app

STUDY_TEXT = (
    "Photosynthesis is the process by which green plants convert sunlight into chemical energy. "
    "Chlorophyll is the pigment that absorbs light inside chloroplasts. "
    "Mitochondria are organelles that release energy through cellular respiration. "
    "The nucleus stores genetic information in chromosomes made of protein and acids. "
    "Enzymes speed up chemical reactions without being consumed themselves. "
    "Osmosis moves water across a membrane toward higher solute concentration. "
    "Diffusion spreads molecules from crowded regions into sparse regions. "
    "Ribosomes assemble proteins by reading messenger molecules."
)


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def client(redis_client):
    app = create_app(redis_client=redis_client)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def study_text():
    return STUDY_TEXT
