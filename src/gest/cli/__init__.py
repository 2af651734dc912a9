#
# src/gest/cli/__init__.py
#
