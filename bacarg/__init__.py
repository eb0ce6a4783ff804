#
# Copyright (C) 2024 The bacarg developers
#
# This file is part of bacarg.
#
# bacarg is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# bacarg is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with bacarg.  If not, see <http://www.gnu.org/licenses/>.
#
"""
Bayesian inference of bacterial ancestral conversion graphs.
"""

from bacarg.core import __version__, NULL, RandomSource

from bacarg.exceptions import (
    BacargException,
    ConfigurationError,
    FileFormatError,
    InvariantError,
)

from bacarg.graph import Conversion, ConversionGraph, Locus
from bacarg.events import CFEvent, EventType
from bacarg.marginal import MarginalTree, Region, marginal_tree, to_tree_sequence

from bacarg.populations import (
    ConstantPopulation,
    ExponentialGrowth,
    PiecewiseConstantPopulation,
    PopulationSizeFunction,
)

from bacarg.likelihood import ACGCoalescent, ACGLikelihood
from bacarg.substitutions import GTR, HKY, JC69, SubstitutionModel
from bacarg.alignments import Alignment, read_fasta
from bacarg.operators import (
    ClonalFrameConversionSwap,
    ConversionCreationSampler,
    Proposal,
)
from bacarg.mcmc import MetropolisHastings
from bacarg.formats import parse_acg, write_acg

__all__ = [
    "ACGCoalescent",
    "ACGLikelihood",
    "Alignment",
    "BacargException",
    "CFEvent",
    "ClonalFrameConversionSwap",
    "ConfigurationError",
    "ConstantPopulation",
    "Conversion",
    "ConversionCreationSampler",
    "ConversionGraph",
    "EventType",
    "ExponentialGrowth",
    "FileFormatError",
    "GTR",
    "HKY",
    "InvariantError",
    "JC69",
    "Locus",
    "MarginalTree",
    "MetropolisHastings",
    "NULL",
    "PiecewiseConstantPopulation",
    "PopulationSizeFunction",
    "Proposal",
    "RandomSource",
    "Region",
    "SubstitutionModel",
    "__version__",
    "marginal_tree",
    "parse_acg",
    "read_fasta",
    "to_tree_sequence",
    "write_acg",
]
