"""
leadtemplates - template selection and A/B experimentation for lead outreach.

Matches communication templates to lead characteristics with a weighted rule
catalog, derives template variants for experiments, and tracks their live
performance with normal-approximation statistics and heuristic alerts.
"""

__version__ = "1.0.0"
