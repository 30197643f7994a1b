from src.core.documents.models import DocumentSequence
from src.core.documents.number_generator import (
    DocumentNumberGenerator,
    get_document_number,
    max_existing_number,
)
from src.core.documents.schemas import DocumentSequenceRead
from src.core.documents.sequence import (
    SequenceAllocator,
    allocate_next,
    list_sequences,
    peek_sequence,
)

__all__ = [
    "DocumentSequence",
    "DocumentSequenceRead",
    "DocumentNumberGenerator",
    "SequenceAllocator",
    "allocate_next",
    "get_document_number",
    "list_sequences",
    "max_existing_number",
    "peek_sequence",
]
