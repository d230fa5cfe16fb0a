"""dosefold — Correlate medication dosage changes with the clinical data that preceded them.

Loads medication histories, daily vitals, symptom reports and alerts into
SQLite and reports what the patient's readings looked like before each change.
"""

__version__ = "0.3.0"
