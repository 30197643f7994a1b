from src.shared.schemas import BaseSchema


class DocumentSequenceRead(BaseSchema):
    """Current state of one document series counter."""

    scope: str
    last_value: int
