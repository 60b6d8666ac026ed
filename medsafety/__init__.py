"""
Medication safety core: prescription lifecycle, interaction checks and alerts
"""
__version__ = "1.0.0"
