#
# src/gest/__init__.py
#
"""
gest: a watch-mode dashboard for `go test`.
"""

__version__ = "0.1.0"

# 🔼⚙️
