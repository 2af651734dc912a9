#
# src/gest/tui/__init__.py
#
"""
Textual dashboard for gest. Requires the `tui` extra.
"""
