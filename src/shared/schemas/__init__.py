from src.shared.schemas.base import BaseSchema

__all__ = ["BaseSchema"]
