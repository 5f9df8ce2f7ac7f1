"""
Care Compliance - Source Package

Staff-allocation compliance engine for disability-support providers
(NDIS, Support at Home and Private clients).

DESIGN PRINCIPLES:
1. Collect every finding, never stop at the first
2. Hard blocks invalidate, soft blocks are surfaced
3. Missing data means "no constraint", not an error
4. Every decision is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Care Compliance Team"
