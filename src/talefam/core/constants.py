"""
Shared constants for alignment, clustering and significance computations.
"""

from __future__ import annotations

import math

# Gap token used in aligned rows
GAP = "-"

# Separator between RVDs in the textual item representation (e.g. NI-NG-NN)
RVD_SEPARATOR = "-"

# Costs closer than this are merged when aggregating cost distributions
COST_MERGE_TOLERANCE = 1e-3

# Offset below a family's merge height used when splitting it
SPLIT_EPSILON = 1e-6

# Default tolerance for |d(i,j) - d(j,i)| in the distance matrix
SYMMETRY_TOLERANCE = 1e-6

LN10 = math.log(10.0)

# Default alignment costs
DEFAULT_GAP_OPEN = 5.0
DEFAULT_GAP_COST = 1.0
DEFAULT_POSITION12_COST = 0.2
DEFAULT_POSITION13_COST = 0.8
DEFAULT_MATCH_COST = 0.0
DEFAULT_EXTRA_GAP_OPENING = 1.0
DEFAULT_EXTRA_GAP_EXTENSION = 0.1

# Default clustering and significance thresholds
DEFAULT_CUT = 5.0
DEFAULT_PVALUE = 0.01

# Letters for schema family identifiers (TalAA..TalZZ)
FAMILY_ID_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
FAMILY_ID_PREFIX = "Tal"
