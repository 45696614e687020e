"""
Backend Scripts Module

Available scripts:
    - seed_data.py: Seeds sample applications, actor roles and guard facts
    - validate_workflow.py: Prints the workflow definition and flags unreachable or dead-end states

Usage:
    python -m scripts.seed_data
    python -m scripts.validate_workflow
"""
