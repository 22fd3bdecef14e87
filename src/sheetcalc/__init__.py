"""sheetcalc-core: stack-based evaluation of spreadsheet arithmetic formulas."""

__version__ = "0.1.0"
__core_api_version__ = 1
