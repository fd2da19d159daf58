# Import all models to ensure they are registered with SQLAlchemy
from . import (
    appointment,
    availability_exception,
    workshop,
)

__all__ = [
    "appointment",
    "availability_exception",
    "workshop",
]
