"""
Resource translation: TrainingJob to derived workloads.
"""

from trainingjob.resource.translator import Translation, derived_name, translate
from trainingjob.resource.quantity import parse_quantity

__all__ = [
    "Translation",
    "derived_name",
    "translate",
    "parse_quantity",
]
