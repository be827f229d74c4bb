"""
Azure DevOps Requirements Traceability Matrix (RTM) service.
"""
__version__ = "1.0.0"
