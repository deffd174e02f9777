"""Tests for sentence-based chunking."""
from arcana.rag.chunker import TextChunker, chunk, split_sentences


def _sentences(count):
    return [f"Sentence number {i} talks about the cards." for i in range(count)]


def test_empty_text_yields_no_chunks():
    assert chunk("", "doc") == []
    assert chunk("   \n\n  ", "doc") == []


def test_short_text_is_one_trimmed_chunk():
    text = "  The Fool begins the journey. He steps off a cliff!  Why not?  "

    chunks = chunk(text, "fool.txt")

    assert len(chunks) == 1
    assert chunks[0].text == text.strip()
    assert chunks[0].source_id == "fool.txt"
    assert chunks[0].chunk_index == 0
    assert chunks[0].page == 1


def test_oversized_unit_is_emitted_whole():
    text = "x" * 1500

    chunks = chunk(text, "big", target_size=1000)

    assert [c.text for c in chunks] == [text]


def test_chunks_respect_target_size_and_are_indexed():
    text = " ".join(_sentences(40))

    chunks = chunk(text, "doc", target_size=200, overlap=50)

    assert len(chunks) > 1
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
    # Overlap adds at most 5 words on top of the target
    assert all(len(c.text) <= 200 + 60 for c in chunks)


def test_new_chunk_starts_with_overlap_words():
    text = " ".join(_sentences(40))

    chunks = chunk(text, "doc", target_size=200, overlap=50)

    for previous, current in zip(chunks, chunks[1:]):
        tail = " ".join(previous.text.split()[-5:])
        assert current.text.startswith(tail + " ")


def test_zero_overlap_window_carries_nothing():
    text = " ".join(_sentences(10))

    chunks = chunk(text, "doc", target_size=100, overlap=5)

    for c in chunks:
        assert c.text.startswith("Sentence number")


def test_chunking_keeps_every_sentence_in_order():
    sentences = _sentences(30)
    chunks = chunk(" ".join(sentences), "doc", target_size=150, overlap=30)

    positions = []
    for sentence in sentences:
        holders = [c.chunk_index for c in chunks if sentence in c.text]
        assert holders, f"lost sentence: {sentence}"
        positions.append(min(holders))

    assert positions == sorted(positions)


def test_page_counter_follows_blank_lines():
    text = "First page text.\n\nSecond page text."

    chunks = chunk(text, "doc", target_size=20, overlap=0)

    assert [c.text for c in chunks] == ["First page text.", "Second page text."]
    assert [c.page for c in chunks] == [1, 2]


def test_split_sentences_keeps_punctuation():
    pairs = split_sentences("Wands burn!! Cups flow. Swords cut")

    assert [unit for unit, _ in pairs] == ["Wands burn!!", "Cups flow.", "Swords cut"]


def test_chunk_stats():
    chunker = TextChunker(chunk_size=100, chunk_overlap=20)
    chunks = chunker.chunk_text(" ".join(_sentences(10)), "doc")

    stats = chunker.get_chunk_stats(chunks)

    assert stats["chunk_count"] == len(chunks)
    assert stats["overlap_words"] == 2
    assert chunker.get_chunk_stats([])["chunk_count"] == 0
