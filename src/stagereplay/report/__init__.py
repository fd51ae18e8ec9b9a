"""
Reporting module for Stagereplay.

Describes replay bundles for people and for scripts.

Output formats:
    - Console: Rich terminal output with a step timeline and summary
    - JSON: Structured output for programmatic consumption

Example:
    from stagereplay.bundle import load_bundle
    from stagereplay.report import generate_console_report, generate_json_report

    bundle = load_bundle("replay.zip")
    generate_console_report(bundle)
    print(generate_json_report(bundle))
"""

from stagereplay.report.console import generate_console_report
from stagereplay.report.json import build_report_dict, generate_json_report, unresolved_references

__all__ = [
    "build_report_dict",
    "generate_console_report",
    "generate_json_report",
    "unresolved_references",
]
