"""Discovery of the already-extracted document set.

The knowledge base directory holds plain text (`.txt`) or markdown (`.md`)
files produced by an external extraction step. Each file is one source.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import List
import structlog

logger = structlog.get_logger()

DOCUMENT_SUFFIXES = (".txt", ".md")


@dataclass(frozen=True)
class SourceDocument:
    """Raw extracted text of one document plus its identifier."""

    source_id: str
    text: str


def discover_documents(directory: Path) -> List[SourceDocument]:
    """Read every text document in a directory.

    Args:
        directory: Directory containing extracted documents

    Returns:
        SourceDocument list sorted by file name

    Raises:
        FileNotFoundError: If the directory doesn't exist
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Documents directory not found: {directory}")

    documents = []
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix.lower() not in DOCUMENT_SUFFIXES:
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("document_read_failed", path=str(path), error=str(e))
            continue
        documents.append(SourceDocument(source_id=path.name, text=text))

    logger.info(
        "documents_discovered",
        count=len(documents),
        directory=str(directory),
    )

    return documents
