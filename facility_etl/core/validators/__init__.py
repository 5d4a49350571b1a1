"""
Validation rules for raw facility records.

Provides the required-field, data-type, business and quality rule groups and
the FacilityValidator that runs them.
"""

from .base_rule import BaseRule
from .business_rules import BusinessRule
from .data_type_rules import DataTypeRule
from .facility_validator import FacilityValidator
from .quality_rules import QualityIndicatorRule
from .required_fields import RequiredFieldRule

__all__ = [
    "BaseRule",
    "RequiredFieldRule",
    "DataTypeRule",
    "BusinessRule",
    "QualityIndicatorRule",
    "FacilityValidator",
]
