"""Tests for engine settings validation."""
import pytest
from pydantic import ValidationError

from ragengine.config import RAGSettings


def test_defaults_are_valid():
    settings = RAGSettings()

    assert 128 <= settings.chunk_size <= 2048
    assert settings.chunk_overlap < settings.chunk_size
    assert 1 <= settings.top_k <= 10


def test_overlap_must_be_smaller_than_chunk_size():
    with pytest.raises(ValidationError, match="chunk_overlap"):
        RAGSettings(chunk_size=256, chunk_overlap=256)


@pytest.mark.parametrize(
    "field,value",
    [
        ("chunk_size", 64),
        ("chunk_size", 4096),
        ("chunk_overlap", -1),
        ("chunk_overlap", 600),
        ("top_k", 0),
        ("top_k", 11),
        ("index_backend", "annoy"),
        ("embedding_model", ""),
    ],
)
def test_out_of_range_values_rejected(field, value):
    with pytest.raises(ValidationError):
        RAGSettings(**{"chunk_size": 1024, field: value})


def test_settings_are_immutable():
    settings = RAGSettings()

    with pytest.raises(ValidationError):
        settings.chunk_size = 1024
