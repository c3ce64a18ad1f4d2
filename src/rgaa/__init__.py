"""RGAA knowledge layer: criteria bank, rules and labels."""

from .criteria_bank import DEFAULT_CRITERIA_BANK, get_criteria_bank, load_criteria_bank
from .i18n import Translator, get_translator
from .rules import RgaaRuleEvaluator

__all__ = [
    "DEFAULT_CRITERIA_BANK",
    "RgaaRuleEvaluator",
    "Translator",
    "get_criteria_bank",
    "get_translator",
    "load_criteria_bank",
]
