"""FRCCalc - final repair costing reconciliation for vehicle-insurance assessments."""

__version__ = "1.0.0"
