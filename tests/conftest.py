from __future__ import annotations

import random
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import dialect_quiz.app as app_module
from dialect_quiz.phrases import PhraseStore
from dialect_quiz.services.progress import ProgressService
from dialect_quiz.storage.db import Database


@pytest.fixture()
def temp_db(tmp_path):
    db = Database(tmp_path / "dialect_quiz_test.db")
    db.initialize()
    return db


@pytest.fixture(scope="session")
def phrase_store():
    return PhraseStore.from_file()


@pytest.fixture()
def phrases(phrase_store):
    return phrase_store.all()


@pytest.fixture()
def phrase(phrase_store):
    def lookup(phrase_id: str):
        found = phrase_store.get(phrase_id)
        assert found is not None, phrase_id
        return found

    return lookup


@pytest.fixture()
def rng():
    return random.Random(7)


@pytest.fixture()
def progress(temp_db):
    return ProgressService(temp_db)


@pytest.fixture()
def client(temp_db, tmp_path, monkeypatch):
    monkeypatch.setattr(app_module, "db", temp_db)
    monkeypatch.setattr(app_module, "ARTIFACTS_DIR", tmp_path / "artifacts")
    monkeypatch.setattr(app_module, "EXPORTS_DIR", tmp_path / "artifacts" / "exports")
    with TestClient(app_module.app) as c:
        yield c
