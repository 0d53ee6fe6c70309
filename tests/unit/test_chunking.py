"""Unit tests for word-based chunking."""

import pytest
from hypothesis import given, settings, strategies as st

from rag.chunking import split_into_chunks, split_words
from services.exceptions import EmptyDocument

words_strategy = st.lists(
    st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789.,'", min_size=1, max_size=12),
    min_size=1,
    max_size=400,
)
separators = st.sampled_from([" ", "  ", "\n", "\t", " \n\n "])


@pytest.mark.unit
def test_splits_into_fixed_word_groups():
    text = " ".join(f"w{i}" for i in range(7))
    chunks = split_into_chunks(text, chunk_size=3)

    assert chunks == ["w0 w1 w2", "w3 w4 w5", "w6"]


@pytest.mark.unit
def test_default_chunk_size_is_300_words():
    text = " ".join(["word"] * 650)
    chunks = split_into_chunks(text)

    assert [len(c.split()) for c in chunks] == [300, 300, 50]


@pytest.mark.unit
def test_whitespace_runs_collapse():
    chunks = split_into_chunks("  alpha\n\nbeta\t gamma  ", chunk_size=2)

    assert chunks == ["alpha beta", "gamma"]


@pytest.mark.unit
@pytest.mark.parametrize("text", ["", "   ", "\n\t  \n"])
def test_empty_text_raises_empty_document(text):
    with pytest.raises(EmptyDocument) as exc:
        split_into_chunks(text)
    assert exc.value.stage == "chunking"


@pytest.mark.unit
@pytest.mark.parametrize("chunk_size", [0, -5])
def test_invalid_chunk_size_raises(chunk_size):
    with pytest.raises(ValueError):
        split_into_chunks("some text", chunk_size=chunk_size)


@pytest.mark.unit
@settings(max_examples=50, deadline=None)
@given(words=words_strategy, sep=separators, chunk_size=st.integers(min_value=1, max_value=50))
def test_chunks_preserve_word_sequence(words, sep, chunk_size):
    text = sep.join(words)
    chunks = split_into_chunks(text, chunk_size=chunk_size)

    rejoined = " ".join(chunks).split(" ")
    assert rejoined == split_words(text)
    assert all(len(c.split(" ")) <= chunk_size for c in chunks)
    # Deterministic
    assert split_into_chunks(text, chunk_size=chunk_size) == chunks
