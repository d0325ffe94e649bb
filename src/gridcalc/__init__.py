"""gridcalc -- spreadsheet formula and range-command engine."""

__version__ = "0.3.0"
